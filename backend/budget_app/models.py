"""Database models for the household budget service.

The models are defined with SQLModel (built on SQLAlchemy and Pydantic)
and cover household membership, child accounts, allowances, money
requests, chores and notifications.  Money columns use ``Decimal`` and are
stored as ``NUMERIC(12, 2)``.
"""

from decimal import Decimal
from typing import Optional, List
from datetime import datetime, date
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON

MONEY = {"max_digits": 12, "decimal_places": 2}


class UserPermissionLink(SQLModel, table=True):
    """Association table linking users and their granted permissions."""

    user_id: int = Field(foreign_key="user.id", primary_key=True)
    permission_id: int = Field(foreign_key="permission.id", primary_key=True)

    user: "User" = Relationship(back_populates="permission_links")
    permission: "Permission" = Relationship(back_populates="user_links")


class Permission(SQLModel, table=True):
    """Named permission that can be assigned to users."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    user_links: List["UserPermissionLink"] = Relationship(
        back_populates="permission"
    )
    users: List["User"] = Relationship(
        back_populates="permissions",
        link_model=UserPermissionLink,
        sa_relationship_kwargs={"overlaps": "user_links,permission,user"},
    )


class User(SQLModel, table=True):
    """Any person who can sign in: guardians, children and admins."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str  # display name shown in notifications
    email: str = Field(index=True)
    password_hash: str
    role: str = "parent"  # 'admin', 'parent' or 'child'
    status: str = "active"
    created_at: datetime = Field(default_factory=datetime.utcnow)

    permission_links: List["UserPermissionLink"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"overlaps": "users"},
    )
    permissions: List[Permission] = Relationship(
        back_populates="users",
        link_model=UserPermissionLink,
        sa_relationship_kwargs={"overlaps": "permission_links,user"},
    )


class Household(SQLModel, table=True):
    """Tenancy boundary grouping members and their data."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    created_by: int = Field(foreign_key="user.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)


class HouseholdMember(SQLModel, table=True):
    """Membership of a user in a household."""

    household_id: int = Field(foreign_key="household.id", primary_key=True)
    user_id: int = Field(foreign_key="user.id", primary_key=True)
    role: str = "partner"  # 'owner', 'partner' or 'child'
    joined_at: datetime = Field(default_factory=datetime.utcnow)


class ChildAccountSettings(SQLModel, table=True):
    """Balance and spending ceilings of a child within one household.

    A ``None`` limit means the child has no ceiling for that period.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    household_id: int = Field(foreign_key="household.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    supervised_by: int = Field(foreign_key="user.id")
    current_balance: Decimal = Field(default=Decimal("0.00"), **MONEY)
    daily_limit: Optional[Decimal] = Field(default=Decimal("10.00"), **MONEY)
    weekly_limit: Optional[Decimal] = Field(default=Decimal("50.00"), **MONEY)
    monthly_limit: Optional[Decimal] = Field(default=Decimal("200.00"), **MONEY)
    per_transaction_limit: Optional[Decimal] = Field(
        default=Decimal("20.00"), **MONEY
    )
    requires_approval_above: Optional[Decimal] = Field(
        default=Decimal("10.00"), **MONEY
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ChildLedgerEntry(SQLModel, table=True):
    """Append-only record of every movement of a child's balance."""

    id: Optional[int] = Field(default=None, primary_key=True)
    household_id: int = Field(foreign_key="household.id")
    child_user_id: int = Field(foreign_key="user.id", index=True)
    type: str  # "credit" or "debit"
    source: str  # allowance, money_request, chore_reward, deposit, spend
    amount: Decimal = Field(**MONEY)
    memo: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Allowance(SQLModel, table=True):
    """Recurring credit from a guardian to a child."""
    id: Optional[int] = Field(default=None, primary_key=True)
    household_id: int = Field(foreign_key="household.id")
    child_user_id: int = Field(foreign_key="user.id")
    parent_user_id: int = Field(foreign_key="user.id")
    amount: Decimal = Field(**MONEY)
    frequency: str  # daily, weekly, biweekly, monthly
    day_of_payment: Optional[int] = None  # weekday 0=Sunday or day of month
    next_payment_date: date
    last_payment_date: Optional[date] = None
    requires_chores: bool = False
    min_chores_required: int = 0
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)


class AllowancePayment(SQLModel, table=True):
    """Outcome of one due cycle of an allowance; never updated."""

    id: Optional[int] = Field(default=None, primary_key=True)
    allowance_id: int = Field(foreign_key="allowance.id", index=True)
    household_id: int = Field(foreign_key="household.id")
    child_user_id: int = Field(foreign_key="user.id")
    parent_user_id: int = Field(foreign_key="user.id")
    amount: Decimal = Field(**MONEY)
    status: str  # completed or skipped
    skip_reason: Optional[str] = None
    scheduled_date: date
    paid_at: datetime = Field(default_factory=datetime.utcnow)


class MoneyRequest(SQLModel, table=True):
    """Ad hoc transfer a child asks a guardian to approve."""
    id: Optional[int] = Field(default=None, primary_key=True)
    household_id: int = Field(foreign_key="household.id")
    requested_by: int = Field(foreign_key="user.id", index=True)
    requested_from: int = Field(foreign_key="user.id", index=True)
    amount: Decimal = Field(**MONEY)
    reason: str
    category: Optional[str] = None
    status: str = "pending"  # pending, approved, rejected
    reviewed_by: Optional[int] = Field(default=None, foreign_key="user.id")
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Chore(SQLModel, table=True):
    """Household chore, optionally assigned to one child."""

    id: Optional[int] = Field(default=None, primary_key=True)
    household_id: int = Field(foreign_key="household.id", index=True)
    created_by: int = Field(foreign_key="user.id")
    assigned_to: Optional[int] = Field(default=None, foreign_key="user.id")
    title: str
    description: Optional[str] = None
    reward_amount: Decimal = Field(default=Decimal("0.00"), **MONEY)
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ChoreCompletion(SQLModel, table=True):
    """A child's claim that a chore was done, pending guardian verification."""

    id: Optional[int] = Field(default=None, primary_key=True)
    chore_id: int = Field(foreign_key="chore.id")
    household_id: int = Field(foreign_key="household.id", index=True)
    completed_by: int = Field(foreign_key="user.id", index=True)
    completion_date: date
    status: str = "pending"  # pending, approved, rejected
    reward_amount: Decimal = Field(default=Decimal("0.00"), **MONEY)
    notes: Optional[str] = None
    verified_by: Optional[int] = Field(default=None, foreign_key="user.id")
    verified_at: Optional[datetime] = None
    verification_notes: Optional[str] = None


class Notification(SQLModel, table=True):
    """In-app notification addressed to one household member."""

    id: Optional[int] = Field(default=None, primary_key=True)
    household_id: int = Field(foreign_key="household.id")
    user_id: int = Field(foreign_key="user.id", index=True)
    notification_type: str  # activity, approval, alert, invitation, ...
    title: str
    message: str
    priority: str = "normal"  # low, normal, high, urgent
    action_url: Optional[str] = None
    action_label: Optional[str] = None
    icon: Optional[str] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None
    metadata_json: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    is_read: bool = False
    read_at: Optional[datetime] = None
    is_archived: bool = False
    expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class NotificationPreference(SQLModel, table=True):
    """Email switches per notification type; ``household_id`` NULL is global."""

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    household_id: Optional[int] = Field(default=None, foreign_key="household.id")
    email_approvals: bool = True
    email_alerts: bool = True
    email_invitations: bool = True


class Settings(SQLModel, table=True):
    """Singleton table storing site-wide configuration values."""
    id: Optional[int] = Field(default=1, primary_key=True)
    site_name: str = "Household Budget"
    currency_code: str = "CZK"
