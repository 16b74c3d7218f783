import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from budget_app.database import get_session
from budget_app.models import Allowance, User
from budget_app.schemas import (
    AllowanceCreate,
    AllowanceRead,
    AllowanceUpdate,
    AllowancePaymentRead,
)
from budget_app.crud import (
    create_allowance,
    get_allowance,
    get_household_allowances,
    get_child_allowances,
    update_allowance,
    get_allowance_payments,
    get_child_settings,
    process_allowance_payments,
)
from budget_app.auth import (
    get_current_user,
    require_permissions,
    ensure_household_role,
)
from budget_app.acl import (
    PERM_MANAGE_ALLOWANCES,
    PERM_PROCESS_ALLOWANCES,
    GUARDIAN_ROLES,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/allowances", tags=["allowances"])


async def _guarded_allowance(
    db: AsyncSession, allowance_id: int, user: User
) -> Allowance:
    allowance = await get_allowance(db, allowance_id)
    if not allowance:
        raise HTTPException(status_code=404, detail="Allowance not found")
    await ensure_household_role(db, user, allowance.household_id, *GUARDIAN_ROLES)
    return allowance


@router.post("/process")
async def run_allowance_tick(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_PROCESS_ALLOWANCES)),
):
    """Pay every due allowance now instead of waiting for the daily task."""

    processed = await process_allowance_payments(db)
    logger.info("Allowance tick triggered by user %s", current_user.id)
    return {"success": True, "processed": processed}


@router.post("/household/{household_id}")
async def add_allowance(
    household_id: int,
    data: AllowanceCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_ALLOWANCES)),
):
    await ensure_household_role(db, current_user, household_id, *GUARDIAN_ROLES)
    if not await get_child_settings(db, data.child_user_id, household_id):
        raise HTTPException(status_code=404, detail="Child account not found")
    allowance = Allowance(
        household_id=household_id,
        parent_user_id=current_user.id,
        **data.model_dump(),
    )
    allowance = await create_allowance(db, allowance)
    logger.info(
        "Allowance %s created for child %s by user %s",
        allowance.id,
        data.child_user_id,
        current_user.id,
    )
    return {"success": True, "allowance": AllowanceRead.model_validate(allowance)}


@router.get("/household/{household_id}")
async def list_household_allowances(
    household_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await ensure_household_role(db, current_user, household_id, *GUARDIAN_ROLES)
    allowances = await get_household_allowances(db, household_id)
    return {
        "success": True,
        "allowances": [AllowanceRead.model_validate(a) for a in allowances],
    }


@router.get("/mine")
async def list_my_allowances(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    allowances = await get_child_allowances(db, current_user.id)
    return {
        "success": True,
        "allowances": [AllowanceRead.model_validate(a) for a in allowances],
    }


@router.put("/{allowance_id}")
async def edit_allowance(
    allowance_id: int,
    data: AllowanceUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_ALLOWANCES)),
):
    allowance = await _guarded_allowance(db, allowance_id, current_user)
    updated = await update_allowance(db, allowance, data.model_dump(exclude_unset=True))
    logger.info("Allowance %s updated by user %s", allowance_id, current_user.id)
    return {"success": True, "allowance": AllowanceRead.model_validate(updated)}


@router.delete("/{allowance_id}")
async def deactivate_allowance(
    allowance_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_ALLOWANCES)),
):
    """Stop an allowance; its payment history is kept."""

    allowance = await _guarded_allowance(db, allowance_id, current_user)
    await update_allowance(db, allowance, {"is_active": False})
    logger.info("Allowance %s deactivated by user %s", allowance_id, current_user.id)
    return {"success": True, "message": "Allowance deactivated"}


@router.get("/{allowance_id}/payments")
async def list_payments(
    allowance_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    allowance = await get_allowance(db, allowance_id)
    if not allowance:
        raise HTTPException(status_code=404, detail="Allowance not found")
    if allowance.child_user_id != current_user.id:
        await ensure_household_role(
            db, current_user, allowance.household_id, *GUARDIAN_ROLES
        )
    payments = await get_allowance_payments(db, allowance_id)
    return {
        "success": True,
        "payments": [AllowancePaymentRead.model_validate(p) for p in payments],
    }
