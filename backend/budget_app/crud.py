"""Asynchronous CRUD helpers and workflows for the application's models.

Each function in this module encapsulates a specific database operation
using SQLModel and SQLAlchemy.  Centralizing the logic keeps route
handlers light and makes behavior easier to test.  Functions that depend
on the current date accept ``today``/``now`` so callers and tests can pin
the clock.
"""

import logging
from datetime import datetime, date, time
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select, delete
from sqlalchemy.orm import selectinload
from sqlalchemy import func, case, update

from budget_app.models import (
    User,
    Household,
    HouseholdMember,
    ChildAccountSettings,
    ChildLedgerEntry,
    Allowance,
    AllowancePayment,
    MoneyRequest,
    Chore,
    ChoreCompletion,
    Notification,
    NotificationPreference,
    Permission,
    UserPermissionLink,
    Settings,
)
from budget_app.auth import get_password_hash
from budget_app.acl import get_default_permissions_for_role
from budget_app.emailing import EmailSender, get_email_sender
from budget_app.exceptions import (
    NotFoundError,
    InvalidRequestStateError,
    InsufficientFundsError,
    SpendingLimitError,
    ChoreAssignmentError,
)
from budget_app.schedule import (
    calculate_next_payment_date,
    start_of_week,
    start_of_month,
)
from budget_app.schemas import SpendingSnapshot, SpendCheck
from budget_app.spending import evaluate_spend, format_money

logger = logging.getLogger(__name__)

SKIP_REASON_CHORES = "Insufficient chores completed"

PRIORITY_RANK = {"urgent": 4, "high": 3, "normal": 2, "low": 1}

# Notification types whose email is controlled by a preference column.
EMAIL_PREFERENCE_COLUMNS = {
    "approval": "email_approvals",
    "alert": "email_alerts",
    "invitation": "email_invitations",
}


async def ensure_permissions_exist(db: AsyncSession, names: list[str]) -> None:
    """Ensure that a set of permission records exists in the database."""

    for name in names:
        result = await db.execute(
            select(Permission).where(Permission.name == name)
        )
        perm = result.scalar_one_or_none()
        if not perm:
            db.add(Permission(name=name))
    await db.commit()


async def assign_permissions_by_names(
    db: AsyncSession, user: User, names: list[str]
) -> None:
    """Assign named permissions to a user if not already granted."""
    for name in names:
        result = await db.execute(
            select(Permission).where(Permission.name == name)
        )
        perm = result.scalar_one_or_none()
        if perm:
            link_result = await db.execute(
                select(UserPermissionLink)
                    .where(
                        UserPermissionLink.user_id == user.id,
                        UserPermissionLink.permission_id == perm.id,
                    )
            )
            link = link_result.scalar_one_or_none()
            if not link:
                db.add(
                    UserPermissionLink(user_id=user.id, permission_id=perm.id)
                )
    await db.commit()


async def get_settings(db: AsyncSession) -> Settings:
    """Fetch the singleton settings record, creating it if necessary."""
    result = await db.execute(select(Settings).where(Settings.id == 1))
    settings = result.scalar_one_or_none()
    if not settings:
        settings = Settings()
        db.add(settings)
        await db.commit()
        await db.refresh(settings)
    return settings


async def save_settings(db: AsyncSession, settings: Settings) -> Settings:
    """Persist settings changes and return the refreshed object."""

    db.add(settings)
    await db.commit()
    await db.refresh(settings)
    return settings


# --- Users & households -----------------------------------------------------

async def create_user(db: AsyncSession, user: User):
    """Create a new user, hashing the password and assigning defaults."""

    if not user.password_hash.startswith("$2b$"):
        user.password_hash = get_password_hash(user.password_hash)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    defaults = get_default_permissions_for_role(user.role)
    if defaults:
        await assign_permissions_by_names(db, user, defaults)
    return user


async def get_user_by_email(db: AsyncSession, email: str):
    """Return a user by email or ``None`` if not found."""
    result = await db.execute(
        select(User)
        .where(User.email == email)
        .options(selectinload(User.permissions))
    )
    return result.scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: int) -> User | None:
    """Load a user by primary key."""
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .options(selectinload(User.permissions))
    )
    return result.scalar_one_or_none()


async def create_household(db: AsyncSession, name: str, owner_id: int) -> Household:
    """Create a household with ``owner_id`` as its first member."""

    household = Household(name=name, created_by=owner_id)
    db.add(household)
    await db.flush()
    db.add(
        HouseholdMember(household_id=household.id, user_id=owner_id, role="owner")
    )
    await db.commit()
    await db.refresh(household)
    return household


async def get_household(db: AsyncSession, household_id: int) -> Household | None:
    result = await db.execute(select(Household).where(Household.id == household_id))
    return result.scalar_one_or_none()


async def get_households_for_user(db: AsyncSession, user_id: int) -> list[Household]:
    result = await db.execute(
        select(Household)
        .join(HouseholdMember, HouseholdMember.household_id == Household.id)
        .where(HouseholdMember.user_id == user_id)
        .order_by(Household.id)
    )
    return result.scalars().all()


async def add_household_member(
    db: AsyncSession, household_id: int, user_id: int, role: str = "partner"
) -> HouseholdMember:
    member = HouseholdMember(household_id=household_id, user_id=user_id, role=role)
    db.add(member)
    await db.commit()
    await db.refresh(member)
    return member


async def get_household_member(
    db: AsyncSession, household_id: int, user_id: int
) -> HouseholdMember | None:
    result = await db.execute(
        select(HouseholdMember).where(
            HouseholdMember.household_id == household_id,
            HouseholdMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_household_members(
    db: AsyncSession, household_id: int
) -> list[tuple[HouseholdMember, User]]:
    """Return ``(membership, user)`` pairs ordered by join time."""
    result = await db.execute(
        select(HouseholdMember, User)
        .join(User, User.id == HouseholdMember.user_id)
        .where(HouseholdMember.household_id == household_id)
        .order_by(HouseholdMember.joined_at)
    )
    return result.all()


async def enroll_child(
    db: AsyncSession,
    household_id: int,
    child: User,
    supervised_by: int,
    limits: dict | None = None,
) -> ChildAccountSettings:
    """Create a child user, its membership and account settings."""

    child.role = "child"
    child = await create_user(db, child)
    db.add(HouseholdMember(household_id=household_id, user_id=child.id, role="child"))
    settings = ChildAccountSettings(
        household_id=household_id,
        user_id=child.id,
        supervised_by=supervised_by,
    )
    for field, value in (limits or {}).items():
        setattr(settings, field, value)
    db.add(settings)
    await db.commit()
    await db.refresh(settings)
    logger.info(
        "Child %s enrolled in household %s by user %s",
        child.id,
        household_id,
        supervised_by,
    )
    return settings


# --- Child accounts ---------------------------------------------------------

async def get_child_settings(
    db: AsyncSession, user_id: int, household_id: int
) -> ChildAccountSettings | None:
    """Load a child's settings, bypassing any stale copy in the session."""
    result = await db.execute(
        select(ChildAccountSettings)
        .where(
            ChildAccountSettings.user_id == user_id,
            ChildAccountSettings.household_id == household_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_children_in_household(
    db: AsyncSession, household_id: int
) -> list[ChildAccountSettings]:
    result = await db.execute(
        select(ChildAccountSettings)
        .where(ChildAccountSettings.household_id == household_id)
        .order_by(ChildAccountSettings.id)
    )
    return result.scalars().all()


async def update_child_settings(
    db: AsyncSession, settings: ChildAccountSettings, changes: dict
) -> ChildAccountSettings:
    for field, value in changes.items():
        setattr(settings, field, value)
    settings.updated_at = datetime.utcnow()
    db.add(settings)
    await db.commit()
    await db.refresh(settings)
    return settings


def _ledger_entry(
    user_id: int,
    household_id: int,
    type: str,
    source: str,
    amount: Decimal,
    memo: str | None = None,
) -> ChildLedgerEntry:
    return ChildLedgerEntry(
        child_user_id=user_id,
        household_id=household_id,
        type=type,
        source=source,
        amount=amount,
        memo=memo,
    )


async def add_balance(
    db: AsyncSession,
    user_id: int,
    household_id: int,
    amount: Decimal,
    source: str = "allowance",
    memo: str | None = None,
    *,
    commit: bool = True,
) -> int:
    """Credit a child's balance and record it in the ledger.

    Returns the number of settings rows updated; ``0`` means the child has
    no account in the household and nothing was recorded.
    """

    result = await db.execute(
        update(ChildAccountSettings)
        .where(
            ChildAccountSettings.user_id == user_id,
            ChildAccountSettings.household_id == household_id,
        )
        .values(current_balance=ChildAccountSettings.current_balance + amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        db.add(_ledger_entry(user_id, household_id, "credit", source, amount, memo))
    if commit:
        await db.commit()
    return result.rowcount


async def deduct_balance(
    db: AsyncSession,
    user_id: int,
    household_id: int,
    amount: Decimal,
    source: str = "spend",
    memo: str | None = None,
    *,
    commit: bool = True,
) -> int:
    """Debit a child's balance only when it covers ``amount``.

    The guard lives in the ``UPDATE`` itself, so two concurrent debits
    cannot both drive the balance negative.  Returns the affected row count;
    ``0`` means the debit was refused and the balance is unchanged.
    """

    result = await db.execute(
        update(ChildAccountSettings)
        .where(
            ChildAccountSettings.user_id == user_id,
            ChildAccountSettings.household_id == household_id,
            ChildAccountSettings.current_balance >= amount,
        )
        .values(current_balance=ChildAccountSettings.current_balance - amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        db.add(_ledger_entry(user_id, household_id, "debit", source, amount, memo))
    if commit:
        await db.commit()
    return result.rowcount


async def get_ledger(
    db: AsyncSession, user_id: int, household_id: int, limit: int = 100
) -> list[ChildLedgerEntry]:
    """Return a child's ledger, newest first."""
    result = await db.execute(
        select(ChildLedgerEntry)
        .where(
            ChildLedgerEntry.child_user_id == user_id,
            ChildLedgerEntry.household_id == household_id,
        )
        .order_by(ChildLedgerEntry.created_at.desc(), ChildLedgerEntry.id.desc())
        .limit(limit)
    )
    return result.scalars().all()


async def _spent_since(
    db: AsyncSession, user_id: int, household_id: int, since: date
) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(ChildLedgerEntry.amount), 0)).where(
            ChildLedgerEntry.child_user_id == user_id,
            ChildLedgerEntry.household_id == household_id,
            ChildLedgerEntry.type == "debit",
            ChildLedgerEntry.source == "spend",
            ChildLedgerEntry.created_at >= datetime.combine(since, time.min),
        )
    )
    return Decimal(str(result.scalar_one())).quantize(Decimal("0.01"))


async def get_spending_snapshot(
    db: AsyncSession, user_id: int, household_id: int, today: date | None = None
) -> SpendingSnapshot:
    """Balance plus spent totals for today, this week and this month."""

    settings = await get_child_settings(db, user_id, household_id)
    if not settings:
        raise NotFoundError("Child account not found")
    today = today or datetime.utcnow().date()
    return SpendingSnapshot(
        balance=settings.current_balance,
        daily_spent=await _spent_since(db, user_id, household_id, today),
        daily_limit=settings.daily_limit,
        weekly_spent=await _spent_since(
            db, user_id, household_id, start_of_week(today)
        ),
        weekly_limit=settings.weekly_limit,
        monthly_spent=await _spent_since(
            db, user_id, household_id, start_of_month(today)
        ),
        monthly_limit=settings.monthly_limit,
    )


async def check_spend(
    db: AsyncSession,
    user_id: int,
    household_id: int,
    amount: Decimal,
    today: date | None = None,
) -> SpendCheck:
    snapshot = await get_spending_snapshot(db, user_id, household_id, today)
    settings = await get_settings(db)
    return evaluate_spend(snapshot, amount, settings.currency_code)


async def record_spend(
    db: AsyncSession,
    user_id: int,
    household_id: int,
    amount: Decimal,
    memo: str | None = None,
    today: date | None = None,
) -> SpendCheck:
    """Re-run the spending guard server side, then debit the balance."""

    check = await check_spend(db, user_id, household_id, amount, today)
    if not check.allowed:
        raise SpendingLimitError(check.reason)
    if not await deduct_balance(db, user_id, household_id, amount, "spend", memo):
        raise InsufficientFundsError("Insufficient balance")
    logger.info("Child %s spent %s in household %s", user_id, amount, household_id)
    return check


# --- Notifications ----------------------------------------------------------

async def should_send_email(
    db: AsyncSession, user_id: int, notification_type: str, priority: str
) -> bool:
    """Decide from the user's global preferences whether to email."""

    result = await db.execute(
        select(NotificationPreference).where(
            NotificationPreference.user_id == user_id,
            NotificationPreference.household_id.is_(None),
        )
    )
    prefs = result.scalars().first()
    if not prefs:
        return priority == "urgent"
    column = EMAIL_PREFERENCE_COLUMNS.get(notification_type)
    return bool(column and getattr(prefs, column))


async def _send_notification_email(
    db: AsyncSession,
    sender: EmailSender,
    user_id: int,
    title: str,
    message: str,
    action_url: str | None,
) -> None:
    user = await get_user(db, user_id)
    if not user:
        return
    body = message
    if action_url:
        body += f"\n\nView details: {action_url}"
    try:
        await sender.send(user.email, title, body)
    except Exception as exc:
        logger.warning("Failed to send notification email to user %s: %s", user_id, exc)


async def create_notification(
    db: AsyncSession,
    household_id: int,
    user_id: int,
    notification_type: str,
    title: str,
    message: str,
    priority: str = "normal",
    *,
    action_url: str | None = None,
    action_label: str | None = None,
    icon: str | None = None,
    related_entity_type: str | None = None,
    related_entity_id: int | None = None,
    metadata: dict | None = None,
    expires_at: datetime | None = None,
    email_sender: EmailSender | None = None,
) -> int:
    """Store a notification and email it when the recipient wants that.

    ``email_sender`` defaults to the one configured in the environment.
    Email problems are logged and never reach the caller.
    """

    notification = Notification(
        household_id=household_id,
        user_id=user_id,
        notification_type=notification_type,
        title=title,
        message=message,
        priority=priority,
        action_url=action_url,
        action_label=action_label,
        icon=icon,
        related_entity_type=related_entity_type,
        related_entity_id=related_entity_id,
        metadata_json=metadata,
        expires_at=expires_at,
    )
    db.add(notification)
    await db.commit()
    await db.refresh(notification)

    sender = email_sender or get_email_sender()
    if sender and await should_send_email(db, user_id, notification_type, priority):
        await _send_notification_email(db, sender, user_id, title, message, action_url)
    return notification.id


async def notify_members(
    db: AsyncSession,
    household_id: int,
    user_ids: list[int],
    notification_type: str,
    title: str,
    message: str,
    priority: str = "normal",
    **options,
) -> list[int]:
    """Create the same notification for each user, one commit per user."""

    return [
        await create_notification(
            db,
            household_id,
            user_id,
            notification_type,
            title,
            message,
            priority,
            **options,
        )
        for user_id in user_ids
    ]


async def get_user_notifications(
    db: AsyncSession, user_id: int, limit: int = 50, unread_only: bool = False
) -> list[Notification]:
    """Return non-archived notifications, most urgent then newest first."""

    rank = case(PRIORITY_RANK, value=Notification.priority, else_=0)
    stmt = select(Notification).where(
        Notification.user_id == user_id,
        Notification.is_archived == False,  # noqa: E712
    )
    if unread_only:
        stmt = stmt.where(Notification.is_read == False)  # noqa: E712
    stmt = stmt.order_by(
        rank.desc(), Notification.created_at.desc(), Notification.id.desc()
    ).limit(limit)
    result = await db.execute(stmt)
    return result.scalars().all()


async def get_unread_count(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
            Notification.is_archived == False,  # noqa: E712
        )
    )
    return result.scalar_one()


async def mark_notification_read(
    db: AsyncSession, notification_id: int, user_id: int
) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(is_read=True, read_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount


async def mark_all_read(
    db: AsyncSession, user_id: int, household_id: int | None = None
) -> int:
    stmt = update(Notification).where(
        Notification.user_id == user_id,
        Notification.is_read == False,  # noqa: E712
    )
    if household_id:
        stmt = stmt.where(Notification.household_id == household_id)
    result = await db.execute(
        stmt.values(is_read=True, read_at=datetime.utcnow()).execution_options(
            synchronize_session=False
        )
    )
    await db.commit()
    return result.rowcount


async def archive_notification(
    db: AsyncSession, notification_id: int, user_id: int
) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(is_archived=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount


async def delete_expired_notifications(
    db: AsyncSession, now: datetime | None = None
) -> int:
    """Hard-delete notifications whose ``expires_at`` has passed."""

    now = now or datetime.utcnow()
    result = await db.execute(
        delete(Notification).where(
            Notification.expires_at.is_not(None),
            Notification.expires_at < now,
        )
    )
    await db.commit()
    return result.rowcount


async def get_notification_preferences(
    db: AsyncSession, user_id: int
) -> NotificationPreference:
    """Return the user's global preferences, creating defaults if needed."""

    result = await db.execute(
        select(NotificationPreference).where(
            NotificationPreference.user_id == user_id,
            NotificationPreference.household_id.is_(None),
        )
    )
    prefs = result.scalars().first()
    if not prefs:
        prefs = NotificationPreference(user_id=user_id)
        db.add(prefs)
        await db.commit()
        await db.refresh(prefs)
    return prefs


async def save_notification_preferences(
    db: AsyncSession, prefs: NotificationPreference
) -> NotificationPreference:
    db.add(prefs)
    await db.commit()
    await db.refresh(prefs)
    return prefs


# --- Money requests ---------------------------------------------------------

async def create_money_request(
    db: AsyncSession,
    household_id: int,
    child_id: int,
    parent_id: int,
    amount: Decimal,
    reason: str,
    category: str | None = None,
    *,
    email_sender: EmailSender | None = None,
) -> int:
    """Store a pending request and alert the parent who must review it."""

    req = MoneyRequest(
        household_id=household_id,
        requested_by=child_id,
        requested_from=parent_id,
        amount=amount,
        reason=reason,
        category=category,
    )
    db.add(req)
    await db.commit()
    await db.refresh(req)

    child = await get_user(db, child_id)
    settings = await get_settings(db)
    child_name = child.name if child else "Your child"
    await create_notification(
        db,
        household_id,
        parent_id,
        "approval",
        "Money Request",
        f"{child_name} requested {format_money(amount, settings.currency_code)}"
        f" for: {reason}",
        "high",
        action_url=f"/child-account/money-request/{req.id}",
        action_label="Review",
        related_entity_type="money_request",
        related_entity_id=req.id,
        email_sender=email_sender,
    )
    logger.info("Money request %s created by child %s", req.id, child_id)
    return req.id


async def get_money_request(db: AsyncSession, request_id: int) -> MoneyRequest | None:
    result = await db.execute(
        select(MoneyRequest)
        .where(MoneyRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _resolve_money_request(
    db: AsyncSession,
    request_id: int,
    parent_id: int,
    status: str,
    notes: str | None,
) -> MoneyRequest:
    """Move a pending request to ``status`` without committing.

    The status check is part of the ``UPDATE`` so two reviewers racing on
    the same request cannot both win.
    """

    result = await db.execute(
        update(MoneyRequest)
        .where(MoneyRequest.id == request_id, MoneyRequest.status == "pending")
        .values(
            status=status,
            reviewed_by=parent_id,
            reviewed_at=datetime.utcnow(),
            review_notes=notes,
        )
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        await db.rollback()
        raise InvalidRequestStateError("Invalid or already processed request")
    return await get_money_request(db, request_id)


async def approve_money_request(
    db: AsyncSession,
    request_id: int,
    parent_id: int,
    notes: str | None = None,
    *,
    email_sender: EmailSender | None = None,
) -> bool:
    """Approve a pending request and credit the child in one transaction."""

    req = await _resolve_money_request(db, request_id, parent_id, "approved", notes)
    credited = await add_balance(
        db,
        req.requested_by,
        req.household_id,
        req.amount,
        "money_request",
        req.reason,
        commit=False,
    )
    if not credited:
        await db.rollback()
        raise NotFoundError("Child account not found")
    await db.commit()

    settings = await get_settings(db)
    await create_notification(
        db,
        req.household_id,
        req.requested_by,
        "approval",
        "Money Request Approved",
        f"Your request for {format_money(req.amount, settings.currency_code)}"
        " has been approved",
        "normal",
        icon="✅",
        related_entity_type="money_request",
        related_entity_id=req.id,
        email_sender=email_sender,
    )
    logger.info("Money request %s approved by user %s", request_id, parent_id)
    return True


async def reject_money_request(
    db: AsyncSession,
    request_id: int,
    parent_id: int,
    notes: str | None = None,
    *,
    email_sender: EmailSender | None = None,
) -> bool:
    req = await _resolve_money_request(db, request_id, parent_id, "rejected", notes)
    await db.commit()

    settings = await get_settings(db)
    message = (
        f"Your request for {format_money(req.amount, settings.currency_code)}"
        " was denied."
    )
    if notes:
        message += f" {notes}"
    await create_notification(
        db,
        req.household_id,
        req.requested_by,
        "approval",
        "Money Request Denied",
        message,
        "normal",
        icon="❌",
        related_entity_type="money_request",
        related_entity_id=req.id,
        email_sender=email_sender,
    )
    logger.info("Money request %s rejected by user %s", request_id, parent_id)
    return True


async def get_child_requests(
    db: AsyncSession, child_id: int, status: str | None = None
) -> list[MoneyRequest]:
    """Return a child's own requests, newest first."""
    stmt = select(MoneyRequest).where(MoneyRequest.requested_by == child_id)
    if status:
        stmt = stmt.where(MoneyRequest.status == status)
    stmt = stmt.order_by(MoneyRequest.created_at.desc(), MoneyRequest.id.desc())
    result = await db.execute(stmt)
    return result.scalars().all()


async def get_parent_requests(
    db: AsyncSession, parent_id: int, status: str = "pending"
) -> list[tuple[MoneyRequest, str]]:
    """Return ``(request, child_name)`` pairs addressed to a parent."""
    result = await db.execute(
        select(MoneyRequest, User.name)
        .join(User, User.id == MoneyRequest.requested_by)
        .where(
            MoneyRequest.requested_from == parent_id,
            MoneyRequest.status == status,
        )
        .order_by(MoneyRequest.created_at.desc(), MoneyRequest.id.desc())
    )
    return result.all()


# --- Chores -----------------------------------------------------------------

async def create_chore(db: AsyncSession, chore: Chore) -> Chore:
    db.add(chore)
    await db.commit()
    await db.refresh(chore)
    return chore


async def get_chore(db: AsyncSession, chore_id: int) -> Chore | None:
    result = await db.execute(select(Chore).where(Chore.id == chore_id))
    return result.scalar_one_or_none()


async def get_household_chores(
    db: AsyncSession, household_id: int, assigned_to: int | None = None
) -> list[Chore]:
    stmt = select(Chore).where(
        Chore.household_id == household_id,
        Chore.is_active == True,  # noqa: E712
    )
    if assigned_to is not None:
        stmt = stmt.where(
            (Chore.assigned_to == assigned_to) | (Chore.assigned_to.is_(None))
        )
    result = await db.execute(stmt.order_by(Chore.id))
    return result.scalars().all()


async def complete_chore(
    db: AsyncSession,
    chore: Chore,
    user_id: int,
    notes: str | None = None,
    today: date | None = None,
    *,
    email_sender: EmailSender | None = None,
) -> ChoreCompletion:
    """Record a completion claim and ask the chore's creator to verify it."""

    if chore.assigned_to and chore.assigned_to != user_id:
        raise ChoreAssignmentError("This chore is not assigned to you")
    completion = ChoreCompletion(
        chore_id=chore.id,
        household_id=chore.household_id,
        completed_by=user_id,
        completion_date=today or datetime.utcnow().date(),
        reward_amount=chore.reward_amount,
        notes=notes,
    )
    db.add(completion)
    await db.commit()
    await db.refresh(completion)

    await create_notification(
        db,
        chore.household_id,
        chore.created_by,
        "approval",
        "Chore Completed",
        f"Chore '{chore.title}' has been marked complete",
        "normal",
        action_url=f"/chores/completion/{completion.id}",
        action_label="Verify",
        related_entity_type="chore_completion",
        related_entity_id=completion.id,
        email_sender=email_sender,
    )
    return completion


async def get_chore_completion(
    db: AsyncSession, completion_id: int
) -> ChoreCompletion | None:
    result = await db.execute(
        select(ChoreCompletion)
        .where(ChoreCompletion.id == completion_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_pending_verifications(
    db: AsyncSession, household_id: int
) -> list[ChoreCompletion]:
    result = await db.execute(
        select(ChoreCompletion)
        .where(
            ChoreCompletion.household_id == household_id,
            ChoreCompletion.status == "pending",
        )
        .order_by(ChoreCompletion.completion_date, ChoreCompletion.id)
    )
    return result.scalars().all()


async def verify_chore_completion(
    db: AsyncSession,
    completion_id: int,
    verified_by: int,
    approved: bool,
    notes: str | None = None,
    *,
    email_sender: EmailSender | None = None,
) -> ChoreCompletion:
    """Approve or reject a pending completion, paying any reward on approval."""

    status = "approved" if approved else "rejected"
    result = await db.execute(
        update(ChoreCompletion)
        .where(
            ChoreCompletion.id == completion_id,
            ChoreCompletion.status == "pending",
        )
        .values(
            status=status,
            verified_by=verified_by,
            verified_at=datetime.utcnow(),
            verification_notes=notes,
        )
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        await db.rollback()
        raise InvalidRequestStateError("Invalid or already verified completion")
    completion = await get_chore_completion(db, completion_id)
    chore = await get_chore(db, completion.chore_id)
    if approved and completion.reward_amount > 0:
        await add_balance(
            db,
            completion.completed_by,
            completion.household_id,
            completion.reward_amount,
            "chore_reward",
            chore.title,
            commit=False,
        )
    await db.commit()

    if approved:
        message = f"Your chore '{chore.title}' has been approved!"
    else:
        message = f"Your chore '{chore.title}' was not approved."
        if notes:
            message += f" {notes}"
    await create_notification(
        db,
        completion.household_id,
        completion.completed_by,
        "activity",
        "Chore Approved" if approved else "Chore Rejected",
        message,
        "normal",
        icon="✅" if approved else "❌",
        email_sender=email_sender,
    )
    return completion


async def count_approved_chores(
    db: AsyncSession, user_id: int, household_id: int, since: date
) -> int:
    """Count a child's approved chore completions on or after ``since``."""
    result = await db.execute(
        select(func.count()).select_from(ChoreCompletion).where(
            ChoreCompletion.completed_by == user_id,
            ChoreCompletion.household_id == household_id,
            ChoreCompletion.status == "approved",
            ChoreCompletion.completion_date >= since,
        )
    )
    return result.scalar_one()


# --- Allowances -------------------------------------------------------------

async def create_allowance(
    db: AsyncSession, allowance: Allowance, today: date | None = None
) -> Allowance:
    """Store an allowance, scheduling its first payment if none was given."""

    if allowance.next_payment_date is None:
        allowance.next_payment_date = calculate_next_payment_date(
            allowance.frequency,
            allowance.day_of_payment,
            today or datetime.utcnow().date(),
        )
    db.add(allowance)
    await db.commit()
    await db.refresh(allowance)
    return allowance


async def get_allowance(db: AsyncSession, allowance_id: int) -> Allowance | None:
    result = await db.execute(
        select(Allowance)
        .where(Allowance.id == allowance_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_household_allowances(
    db: AsyncSession, household_id: int
) -> list[Allowance]:
    result = await db.execute(
        select(Allowance)
        .where(Allowance.household_id == household_id)
        .order_by(Allowance.id)
    )
    return result.scalars().all()


async def get_child_allowances(db: AsyncSession, child_id: int) -> list[Allowance]:
    result = await db.execute(
        select(Allowance)
        .where(
            Allowance.child_user_id == child_id,
            Allowance.is_active == True,  # noqa: E712
        )
        .order_by(Allowance.next_payment_date)
    )
    return result.scalars().all()


async def update_allowance(
    db: AsyncSession, allowance: Allowance, changes: dict, today: date | None = None
) -> Allowance:
    """Apply a guardian edit; a new schedule recomputes the next due date."""

    reschedule = any(
        key in changes and changes[key] != getattr(allowance, key)
        for key in ("frequency", "day_of_payment")
    )
    for field, value in changes.items():
        setattr(allowance, field, value)
    if reschedule:
        allowance.next_payment_date = calculate_next_payment_date(
            allowance.frequency,
            allowance.day_of_payment,
            today or datetime.utcnow().date(),
        )
    db.add(allowance)
    await db.commit()
    await db.refresh(allowance)
    return allowance


async def get_allowance_payments(
    db: AsyncSession, allowance_id: int
) -> list[AllowancePayment]:
    result = await db.execute(
        select(AllowancePayment)
        .where(AllowancePayment.allowance_id == allowance_id)
        .order_by(AllowancePayment.paid_at.desc(), AllowancePayment.id.desc())
    )
    return result.scalars().all()


def _allowance_payment(
    allowance: Allowance, status: str, skip_reason: str | None = None
) -> AllowancePayment:
    return AllowancePayment(
        allowance_id=allowance.id,
        household_id=allowance.household_id,
        child_user_id=allowance.child_user_id,
        parent_user_id=allowance.parent_user_id,
        amount=allowance.amount,
        status=status,
        skip_reason=skip_reason,
        scheduled_date=allowance.next_payment_date,
    )


async def _process_allowance(
    db: AsyncSession,
    allowance: Allowance,
    today: date,
    currency: str,
    email_sender: EmailSender | None,
) -> bool:
    """Pay or skip one due allowance; returns ``True`` when it was paid."""

    if allowance.requires_chores:
        completed = await count_approved_chores(
            db,
            allowance.child_user_id,
            allowance.household_id,
            start_of_month(today),
        )
        if completed < allowance.min_chores_required:
            db.add(_allowance_payment(allowance, "skipped", SKIP_REASON_CHORES))
            # The cycle is consumed even when skipped.
            allowance.next_payment_date = calculate_next_payment_date(
                allowance.frequency, allowance.day_of_payment, today
            )
            db.add(allowance)
            await db.commit()
            logger.info(
                "Allowance %s skipped: %s of %s chores",
                allowance.id,
                completed,
                allowance.min_chores_required,
            )
            return False

    db.add(_allowance_payment(allowance, "completed"))
    credited = await add_balance(
        db,
        allowance.child_user_id,
        allowance.household_id,
        allowance.amount,
        "allowance",
        f"{allowance.frequency.capitalize()} allowance",
        commit=False,
    )
    if not credited:
        raise NotFoundError("Child account not found")
    allowance.last_payment_date = today
    allowance.next_payment_date = calculate_next_payment_date(
        allowance.frequency, allowance.day_of_payment, today
    )
    db.add(allowance)
    await db.commit()

    # The payment is committed; a failed notice must not report it as unpaid.
    try:
        await create_notification(
            db,
            allowance.household_id,
            allowance.child_user_id,
            "activity",
            "Allowance Received",
            f"You received your {allowance.frequency} allowance of "
            f"{format_money(allowance.amount, currency)}",
            "normal",
            icon="💰",
            related_entity_type="allowance",
            related_entity_id=allowance.id,
            email_sender=email_sender,
        )
    except Exception:
        logger.exception("Allowance %s paid but notification failed", allowance.id)
        await db.rollback()
    return True


async def process_allowance_payments(
    db: AsyncSession,
    today: date | None = None,
    *,
    email_sender: EmailSender | None = None,
) -> int:
    """Pay every active allowance due on or before ``today``.

    Each allowance is committed separately; one that fails is rolled back
    and logged while the sweep continues, so a rerun only picks up
    allowances that are still due.  Returns how many were paid.
    """

    today = today or datetime.utcnow().date()
    settings = await get_settings(db)
    currency = settings.currency_code
    result = await db.execute(
        select(Allowance.id)
        .where(
            Allowance.is_active == True,  # noqa: E712
            Allowance.next_payment_date <= today,
        )
        .order_by(Allowance.id)
    )
    # A rollback expires loaded rows, so each allowance is loaded afresh.
    due_ids = result.scalars().all()
    processed = 0
    for allowance_id in due_ids:
        try:
            allowance = await get_allowance(db, allowance_id)
            # Re-check in case it was edited or stopped since the id query.
            if (
                allowance is None
                or not allowance.is_active
                or allowance.next_payment_date > today
            ):
                logger.info("Allowance %s no longer due", allowance_id)
                continue
            if await _process_allowance(db, allowance, today, currency, email_sender):
                processed += 1
        except Exception:
            await db.rollback()
            logger.exception("Failed to process allowance %s", allowance_id)
    logger.info("Processed %s of %s due allowances", processed, len(due_ids))
    return processed
