"""Routes for households, their guardians and child enrollment."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from budget_app.database import get_session
from budget_app.models import User
from budget_app.schemas import (
    HouseholdCreate,
    HouseholdRead,
    MemberAdd,
    MemberRead,
    ChildEnroll,
    ChildSettingsRead,
)
from budget_app.crud import (
    create_household,
    get_household,
    get_households_for_user,
    add_household_member,
    get_household_member,
    get_household_members,
    get_user_by_email,
    enroll_child,
    create_notification,
)
from budget_app.auth import (
    get_current_user,
    require_permissions,
    ensure_household_role,
)
from budget_app.acl import PERM_MANAGE_HOUSEHOLD, PERM_ENROLL_CHILD, GUARDIAN_ROLES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/households", tags=["households"])


@router.post("/")
async def create_household_route(
    data: HouseholdCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_HOUSEHOLD)),
):
    household = await create_household(db, data.name, current_user.id)
    logger.info("Household %s created by user %s", household.id, current_user.id)
    return {"success": True, "household": HouseholdRead.model_validate(household)}


@router.get("/")
async def list_my_households(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    households = await get_households_for_user(db, current_user.id)
    return {
        "success": True,
        "households": [HouseholdRead.model_validate(h) for h in households],
    }


@router.get("/{household_id}/members")
async def list_members(
    household_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await ensure_household_role(db, current_user, household_id)
    members = await get_household_members(db, household_id)
    return {
        "success": True,
        "members": [
            MemberRead(user_id=user.id, name=user.name, role=member.role)
            for member, user in members
        ],
    }


@router.post("/{household_id}/members")
async def add_member(
    household_id: int,
    data: MemberAdd,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_HOUSEHOLD)),
):
    """Add an existing guardian account to the household."""

    await ensure_household_role(db, current_user, household_id, "owner")
    household = await get_household(db, household_id)
    if not household:
        raise HTTPException(status_code=404, detail="Household not found")
    user = await get_user_by_email(db, data.email)
    if not user or user.role == "child":
        raise HTTPException(status_code=404, detail="User not found")
    if await get_household_member(db, household_id, user.id):
        raise HTTPException(status_code=400, detail="User is already a member")
    member = await add_household_member(db, household_id, user.id, data.role)
    await create_notification(
        db,
        household_id,
        user.id,
        "invitation",
        "Added to Household",
        f"{current_user.name} added you to {household.name}",
        "normal",
        action_url=f"/households/{household_id}/members",
        action_label="Open",
    )
    logger.info(
        "User %s added to household %s by user %s",
        user.id,
        household_id,
        current_user.id,
    )
    return {
        "success": True,
        "member": MemberRead(user_id=user.id, name=user.name, role=member.role),
    }


@router.post("/{household_id}/children")
async def enroll_child_route(
    household_id: int,
    data: ChildEnroll,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_ENROLL_CHILD)),
):
    """Create a child login and its account within the household."""

    await ensure_household_role(db, current_user, household_id, *GUARDIAN_ROLES)
    if not await get_household(db, household_id):
        raise HTTPException(status_code=404, detail="Household not found")
    if await get_user_by_email(db, data.email):
        raise HTTPException(status_code=400, detail="Email is already registered.")
    child = User(name=data.name, email=data.email, password_hash=data.password)
    limits = data.model_dump(exclude_unset=True, exclude={"name", "email", "password"})
    settings = await enroll_child(db, household_id, child, current_user.id, limits)
    return {"success": True, "child": ChildSettingsRead.model_validate(settings)}
