"""Schemas for child balances, spending limits and the spending guard."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .money import Money


class ChildSettingsRead(BaseModel):
    id: int
    household_id: int
    user_id: int
    supervised_by: int
    current_balance: Money
    daily_limit: Optional[Money] = None
    weekly_limit: Optional[Money] = None
    monthly_limit: Optional[Money] = None
    per_transaction_limit: Optional[Money] = None
    requires_approval_above: Optional[Money] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LimitsUpdate(BaseModel):
    """Guardian edit of ceilings; an explicit ``null`` removes the ceiling."""

    daily_limit: Optional[Money] = Field(default=None, ge=0)
    weekly_limit: Optional[Money] = Field(default=None, ge=0)
    monthly_limit: Optional[Money] = Field(default=None, ge=0)
    per_transaction_limit: Optional[Money] = Field(default=None, ge=0)
    requires_approval_above: Optional[Money] = Field(default=None, ge=0)
    supervised_by: Optional[int] = None


class AmountCreate(BaseModel):
    amount: Money = Field(gt=0)
    memo: Optional[str] = None


class LedgerEntryRead(BaseModel):
    id: int
    type: str
    source: str
    amount: Money
    memo: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SpendingSnapshot(BaseModel):
    """Balance and spent-versus-limit pairs the spending guard evaluates."""

    balance: Money
    daily_spent: Money = Decimal("0")
    daily_limit: Optional[Money] = None
    weekly_spent: Money = Decimal("0")
    weekly_limit: Optional[Money] = None
    monthly_spent: Money = Decimal("0")
    monthly_limit: Optional[Money] = None


class SpendCheck(BaseModel):
    allowed: bool
    checks: dict[str, bool]
    reason: Optional[str] = None
