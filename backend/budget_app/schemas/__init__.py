"""Convenience imports for all schema classes used by the API."""

from .user import UserCreate, UserResponse, UserMeResponse, UserLogin
from .settings import SettingsRead, SettingsUpdate
from .household import (
    HouseholdCreate,
    HouseholdRead,
    MemberAdd,
    MemberRead,
    ChildEnroll,
)
from .child_account import (
    ChildSettingsRead,
    LimitsUpdate,
    AmountCreate,
    LedgerEntryRead,
    SpendingSnapshot,
    SpendCheck,
)
from .allowance import (
    AllowanceCreate,
    AllowanceRead,
    AllowanceUpdate,
    AllowancePaymentRead,
)
from .money_request import MoneyRequestCreate, MoneyRequestRead, ReviewNotes
from .notification import (
    NotificationRead,
    MarkAllRead,
    NotificationPreferenceRead,
    NotificationPreferenceUpdate,
)
from .chore import (
    ChoreCreate,
    ChoreRead,
    ChoreCompletionCreate,
    ChoreCompletionRead,
    ChoreVerify,
)

__all__ = [
    "UserCreate",
    "UserResponse",
    "UserMeResponse",
    "UserLogin",
    "SettingsRead",
    "SettingsUpdate",
    "HouseholdCreate",
    "HouseholdRead",
    "MemberAdd",
    "MemberRead",
    "ChildEnroll",
    "ChildSettingsRead",
    "LimitsUpdate",
    "AmountCreate",
    "LedgerEntryRead",
    "SpendingSnapshot",
    "SpendCheck",
    "AllowanceCreate",
    "AllowanceRead",
    "AllowanceUpdate",
    "AllowancePaymentRead",
    "MoneyRequestCreate",
    "MoneyRequestRead",
    "ReviewNotes",
    "NotificationRead",
    "MarkAllRead",
    "NotificationPreferenceRead",
    "NotificationPreferenceUpdate",
    "ChoreCreate",
    "ChoreRead",
    "ChoreCompletionCreate",
    "ChoreCompletionRead",
    "ChoreVerify",
]
