import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from budget_app.database import get_session
from budget_app.models import Chore, User
from budget_app.schemas import (
    ChoreCreate,
    ChoreRead,
    ChoreCompletionCreate,
    ChoreCompletionRead,
    ChoreVerify,
)
from budget_app.crud import (
    create_chore,
    get_chore,
    get_household_chores,
    complete_chore,
    get_chore_completion,
    get_pending_verifications,
    verify_chore_completion,
    get_child_settings,
)
from budget_app.auth import (
    get_current_user,
    require_permissions,
    ensure_household_role,
)
from budget_app.acl import PERM_MANAGE_CHORES, PERM_COMPLETE_CHORES, GUARDIAN_ROLES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chores", tags=["chores"])


@router.post("/household/{household_id}")
async def add_chore(
    household_id: int,
    data: ChoreCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_CHORES)),
):
    await ensure_household_role(db, current_user, household_id, *GUARDIAN_ROLES)
    if data.assigned_to is not None and not await get_child_settings(
        db, data.assigned_to, household_id
    ):
        raise HTTPException(status_code=404, detail="Child account not found")
    chore = Chore(household_id=household_id, created_by=current_user.id, **data.model_dump())
    chore = await create_chore(db, chore)
    logger.info("Chore %s created by user %s", chore.id, current_user.id)
    return {"success": True, "chore": ChoreRead.model_validate(chore)}


@router.get("/household/{household_id}")
async def list_chores(
    household_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Guardians see every chore; children see theirs and unassigned ones."""

    member = await ensure_household_role(db, current_user, household_id)
    assigned_to = current_user.id if member and member.role == "child" else None
    chores = await get_household_chores(db, household_id, assigned_to)
    return {"success": True, "chores": [ChoreRead.model_validate(c) for c in chores]}


@router.get("/household/{household_id}/pending")
async def list_pending_verifications(
    household_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await ensure_household_role(db, current_user, household_id, *GUARDIAN_ROLES)
    completions = await get_pending_verifications(db, household_id)
    return {
        "success": True,
        "completions": [ChoreCompletionRead.model_validate(c) for c in completions],
    }


@router.post("/{chore_id}/complete")
async def mark_complete(
    chore_id: int,
    data: ChoreCompletionCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_COMPLETE_CHORES)),
):
    chore = await get_chore(db, chore_id)
    if not chore or not chore.is_active:
        raise HTTPException(status_code=404, detail="Chore not found")
    await ensure_household_role(db, current_user, chore.household_id, "child")
    completion = await complete_chore(db, chore, current_user.id, data.notes)
    return {
        "success": True,
        "completion": ChoreCompletionRead.model_validate(completion),
    }


@router.get("/completion/{completion_id}")
async def read_completion(
    completion_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    completion = await get_chore_completion(db, completion_id)
    if not completion:
        raise HTTPException(status_code=404, detail="Completion not found")
    if completion.completed_by != current_user.id:
        await ensure_household_role(
            db, current_user, completion.household_id, *GUARDIAN_ROLES
        )
    return {
        "success": True,
        "completion": ChoreCompletionRead.model_validate(completion),
    }


@router.post("/completion/{completion_id}/verify")
async def verify_completion(
    completion_id: int,
    data: ChoreVerify,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_CHORES)),
):
    completion = await get_chore_completion(db, completion_id)
    if not completion:
        raise HTTPException(status_code=404, detail="Completion not found")
    await ensure_household_role(
        db, current_user, completion.household_id, *GUARDIAN_ROLES
    )
    completion = await verify_chore_completion(
        db, completion_id, current_user.id, data.approved, data.notes
    )
    logger.info(
        "Chore completion %s %s by user %s",
        completion_id,
        completion.status,
        current_user.id,
    )
    return {
        "success": True,
        "completion": ChoreCompletionRead.model_validate(completion),
    }
