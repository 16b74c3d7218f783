"""In-app notifications and email preferences of the current user."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from budget_app.database import get_session
from budget_app.models import User
from budget_app.schemas import (
    NotificationRead,
    MarkAllRead,
    NotificationPreferenceRead,
    NotificationPreferenceUpdate,
)
from budget_app.crud import (
    get_user_notifications,
    get_unread_count,
    mark_notification_read,
    mark_all_read,
    archive_notification,
    get_notification_preferences,
    save_notification_preferences,
)
from budget_app.auth import get_current_user

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/")
async def list_notifications(
    unread_only: bool = False,
    limit: int = 50,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    notifications = await get_user_notifications(
        db, current_user.id, limit, unread_only
    )
    return {
        "success": True,
        "notifications": [NotificationRead.model_validate(n) for n in notifications],
        "unread_count": await get_unread_count(db, current_user.id),
    }


@router.get("/unread-count")
async def unread_count(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return {"success": True, "count": await get_unread_count(db, current_user.id)}


@router.post("/read-all")
async def read_all(
    data: Optional[MarkAllRead] = None,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    household_id = data.household_id if data else None
    updated = await mark_all_read(db, current_user.id, household_id)
    return {"success": True, "updated": updated}


@router.post("/{notification_id}/read")
async def read_one(
    notification_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    if not await mark_notification_read(db, notification_id, current_user.id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}


@router.post("/{notification_id}/archive")
async def archive(
    notification_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    if not await archive_notification(db, notification_id, current_user.id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}


@router.get("/preferences")
async def read_preferences(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    prefs = await get_notification_preferences(db, current_user.id)
    return {
        "success": True,
        "preferences": NotificationPreferenceRead.model_validate(prefs),
    }


@router.put("/preferences")
async def update_preferences(
    data: NotificationPreferenceUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    prefs = await get_notification_preferences(db, current_user.id)
    for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(prefs, field, value)
    prefs = await save_notification_preferences(db, prefs)
    return {
        "success": True,
        "preferences": NotificationPreferenceRead.model_validate(prefs),
    }
