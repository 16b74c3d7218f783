"""Guardian review of children's money requests."""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from budget_app.database import get_session
from budget_app.models import User
from budget_app.schemas import MoneyRequestRead, ReviewNotes
from budget_app.crud import (
    get_parent_requests,
    get_money_request,
    approve_money_request,
    reject_money_request,
)
from budget_app.auth import require_permissions, ensure_household_role
from budget_app.acl import PERM_REVIEW_MONEY_REQUESTS, GUARDIAN_ROLES

router = APIRouter(prefix="/approval", tags=["approval"])


@router.get("/")
async def list_requests(
    status: str = "pending",
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_REVIEW_MONEY_REQUESTS)),
):
    rows = await get_parent_requests(db, current_user.id, status)
    requests = []
    for req, child_name in rows:
        read = MoneyRequestRead.model_validate(req)
        read.child_name = child_name
        requests.append(read)
    return {"success": True, "requests": requests}


async def _ensure_reviewer(db: AsyncSession, request_id: int, user: User) -> None:
    # Missing requests fall through so the workflow reports the state conflict.
    req = await get_money_request(db, request_id)
    if req:
        await ensure_household_role(db, user, req.household_id, *GUARDIAN_ROLES)


@router.post("/{request_id}/approve")
async def approve_request(
    request_id: int,
    data: Optional[ReviewNotes] = None,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_REVIEW_MONEY_REQUESTS)),
):
    await _ensure_reviewer(db, request_id, current_user)
    notes = data.notes if data else None
    await approve_money_request(db, request_id, current_user.id, notes)
    return {"success": True, "message": "Request approved"}


@router.post("/{request_id}/reject")
async def reject_request(
    request_id: int,
    data: Optional[ReviewNotes] = None,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_REVIEW_MONEY_REQUESTS)),
):
    await _ensure_reviewer(db, request_id, current_user)
    notes = data.notes if data else None
    await reject_money_request(db, request_id, current_user.id, notes)
    return {"success": True, "message": "Request rejected"}
