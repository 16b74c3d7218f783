"""Routes for child balances, spending and money requests."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from budget_app.database import get_session
from budget_app.models import User, ChildAccountSettings
from budget_app.schemas import (
    ChildSettingsRead,
    LimitsUpdate,
    AmountCreate,
    LedgerEntryRead,
    MoneyRequestCreate,
    MoneyRequestRead,
)
from budget_app.crud import (
    get_child_settings,
    get_children_in_household,
    update_child_settings,
    add_balance,
    get_ledger,
    get_spending_snapshot,
    check_spend,
    record_spend,
    create_money_request,
    get_money_request,
    get_child_requests,
    get_household_member,
    get_settings,
    create_notification,
)
from budget_app.auth import (
    get_current_user,
    require_permissions,
    ensure_household_role,
)
from budget_app.acl import (
    PERM_MANAGE_CHILD_SETTINGS,
    PERM_DEPOSIT,
    PERM_REQUEST_MONEY,
    PERM_SPEND,
    GUARDIAN_ROLES,
)
from budget_app.spending import format_money

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/child-account", tags=["child-account"])


async def _own_account(
    db: AsyncSession, user: User, household_id: int
) -> ChildAccountSettings:
    settings = await get_child_settings(db, user.id, household_id)
    if not settings:
        raise HTTPException(status_code=404, detail="Child account not found")
    return settings


async def _child_account(
    db: AsyncSession, user: User, household_id: int, child_id: int
) -> ChildAccountSettings:
    """Load a child's account for the child itself or one of its guardians."""

    if user.id != child_id:
        await ensure_household_role(db, user, household_id, *GUARDIAN_ROLES)
    settings = await get_child_settings(db, child_id, household_id)
    if not settings:
        raise HTTPException(status_code=404, detail="Child account not found")
    return settings


@router.get("/money-requests")
async def my_money_requests(
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_REQUEST_MONEY)),
):
    requests = await get_child_requests(db, current_user.id, status)
    return {
        "success": True,
        "requests": [MoneyRequestRead.model_validate(r) for r in requests],
    }


@router.get("/money-request/{request_id}")
async def read_money_request(
    request_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    req = await get_money_request(db, request_id)
    if not req:
        raise HTTPException(status_code=404, detail="Request not found")
    if current_user.id != req.requested_by:
        await ensure_household_role(db, current_user, req.household_id, *GUARDIAN_ROLES)
    return {"success": True, "request": MoneyRequestRead.model_validate(req)}


@router.get("/{household_id}/children")
async def list_children(
    household_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await ensure_household_role(db, current_user, household_id, *GUARDIAN_ROLES)
    children = await get_children_in_household(db, household_id)
    return {
        "success": True,
        "children": [ChildSettingsRead.model_validate(c) for c in children],
    }


@router.get("/{household_id}/children/{child_id}")
async def read_child_account(
    household_id: int,
    child_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    settings = await _child_account(db, current_user, household_id, child_id)
    snapshot = await get_spending_snapshot(db, child_id, household_id)
    return {
        "success": True,
        "settings": ChildSettingsRead.model_validate(settings),
        "snapshot": snapshot,
    }


@router.put("/{household_id}/children/{child_id}/limits")
async def update_limits(
    household_id: int,
    child_id: int,
    data: LimitsUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_CHILD_SETTINGS)),
):
    """Change a child's ceilings; fields sent as ``null`` remove the ceiling."""

    await ensure_household_role(db, current_user, household_id, *GUARDIAN_ROLES)
    settings = await get_child_settings(db, child_id, household_id)
    if not settings:
        raise HTTPException(status_code=404, detail="Child account not found")
    changes = data.model_dump(exclude_unset=True)
    if "supervised_by" in changes:
        member = await get_household_member(db, household_id, changes["supervised_by"])
        if not member or member.role not in GUARDIAN_ROLES:
            raise HTTPException(status_code=400, detail="Supervisor must be a guardian")
    updated = await update_child_settings(db, settings, changes)
    logger.info(
        "Limits for child %s in household %s updated by user %s",
        child_id,
        household_id,
        current_user.id,
    )
    return {"success": True, "settings": ChildSettingsRead.model_validate(updated)}


@router.post("/{household_id}/children/{child_id}/deposit")
async def deposit(
    household_id: int,
    child_id: int,
    data: AmountCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_DEPOSIT)),
):
    await ensure_household_role(db, current_user, household_id, *GUARDIAN_ROLES)
    if not await add_balance(
        db, child_id, household_id, data.amount, "deposit", data.memo
    ):
        raise HTTPException(status_code=404, detail="Child account not found")
    site = await get_settings(db)
    await create_notification(
        db,
        household_id,
        child_id,
        "activity",
        "Money Added",
        f"{current_user.name} added {format_money(data.amount, site.currency_code)}"
        " to your balance",
        "normal",
        icon="💰",
    )
    settings = await get_child_settings(db, child_id, household_id)
    return {"success": True, "settings": ChildSettingsRead.model_validate(settings)}


@router.get("/{household_id}/children/{child_id}/ledger")
async def read_ledger(
    household_id: int,
    child_id: int,
    limit: int = 100,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await _child_account(db, current_user, household_id, child_id)
    entries = await get_ledger(db, child_id, household_id, limit)
    return {
        "success": True,
        "entries": [LedgerEntryRead.model_validate(e) for e in entries],
    }


@router.get("/{household_id}/snapshot")
async def my_snapshot(
    household_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await _own_account(db, current_user, household_id)
    snapshot = await get_spending_snapshot(db, current_user.id, household_id)
    return {"success": True, "snapshot": snapshot}


@router.post("/{household_id}/spend/check")
async def check_spend_route(
    household_id: int,
    data: AmountCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_SPEND)),
):
    """Preview whether a spend would pass every limit without recording it."""

    await _own_account(db, current_user, household_id)
    check = await check_spend(db, current_user.id, household_id, data.amount)
    return {"success": True, **check.model_dump()}


@router.post("/{household_id}/spend")
async def spend(
    household_id: int,
    data: AmountCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_SPEND)),
):
    await _own_account(db, current_user, household_id)
    await record_spend(db, current_user.id, household_id, data.amount, data.memo)
    settings = await get_child_settings(db, current_user.id, household_id)
    return {"success": True, "balance": settings.current_balance}


@router.post("/{household_id}/money-request")
async def request_money(
    household_id: int,
    data: MoneyRequestCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_REQUEST_MONEY)),
):
    """Ask the supervising guardian for money."""

    settings = await _own_account(db, current_user, household_id)
    request_id = await create_money_request(
        db,
        household_id,
        current_user.id,
        settings.supervised_by,
        data.amount,
        data.reason,
        data.category,
    )
    return {"success": True, "request_id": request_id}
