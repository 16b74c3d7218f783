"""Endpoints for viewing and updating site-wide settings."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from budget_app.database import get_session
from budget_app.models import User
from budget_app.auth import require_role
from budget_app.schemas import SettingsRead, SettingsUpdate
from budget_app.crud import get_settings, save_settings

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/", response_model=SettingsRead)
async def read_settings(db: AsyncSession = Depends(get_session)):
    """Retrieve the current configuration values."""
    return await get_settings(db)


@router.put("/", response_model=SettingsRead)
async def update_settings(
    data: SettingsUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
):
    """Update settings; only admins may change configuration."""
    settings = await get_settings(db)
    changes = data.model_dump(exclude_unset=True)
    if changes.get("currency_code"):
        changes["currency_code"] = changes["currency_code"].upper()
    for field, value in changes.items():
        setattr(settings, field, value)
    return await save_settings(db, settings)
