"""Schemas for allowances and their payment history."""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .money import Money

Frequency = Literal["daily", "weekly", "biweekly", "monthly"]


class AllowanceCreate(BaseModel):
    child_user_id: int
    amount: Money = Field(gt=0)
    frequency: Frequency
    day_of_payment: Optional[int] = Field(default=None, ge=0, le=31)
    next_payment_date: Optional[date] = None
    requires_chores: bool = False
    min_chores_required: int = Field(default=0, ge=0)


class AllowanceRead(BaseModel):
    id: int
    household_id: int
    child_user_id: int
    parent_user_id: int
    amount: Money
    frequency: str
    day_of_payment: Optional[int] = None
    next_payment_date: date
    last_payment_date: Optional[date] = None
    requires_chores: bool
    min_chores_required: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class AllowanceUpdate(BaseModel):
    amount: Optional[Money] = Field(default=None, gt=0)
    frequency: Optional[Frequency] = None
    day_of_payment: Optional[int] = Field(default=None, ge=0, le=31)
    requires_chores: Optional[bool] = None
    min_chores_required: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None

    @field_validator(
        "amount", "frequency", "requires_chores", "min_chores_required", "is_active"
    )
    @classmethod
    def reject_null(cls, v):
        """Only ``day_of_payment`` may be cleared; the other columns are required."""
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class AllowancePaymentRead(BaseModel):
    id: int
    allowance_id: int
    child_user_id: int
    amount: Money
    status: str
    skip_reason: Optional[str] = None
    scheduled_date: date
    paid_at: datetime

    model_config = ConfigDict(from_attributes=True)
