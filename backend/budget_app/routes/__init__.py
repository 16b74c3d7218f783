"""Aggregate import for all API route modules."""

from . import (
    auth,
    users,
    settings,
    households,
    child_accounts,
    approvals,
    allowances,
    chores,
    notifications,
)

__all__ = [
    "auth",
    "users",
    "settings",
    "households",
    "child_accounts",
    "approvals",
    "allowances",
    "chores",
    "notifications",
]
