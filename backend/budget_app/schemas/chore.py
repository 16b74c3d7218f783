from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from .money import Money


class ChoreCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    assigned_to: Optional[int] = None
    reward_amount: Money = Field(default=Decimal("0"), ge=0)


class ChoreRead(BaseModel):
    id: int
    household_id: int
    created_by: int
    assigned_to: Optional[int] = None
    title: str
    description: Optional[str] = None
    reward_amount: Money
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class ChoreCompletionCreate(BaseModel):
    notes: Optional[str] = None


class ChoreCompletionRead(BaseModel):
    id: int
    chore_id: int
    completed_by: int
    completion_date: date
    status: str
    reward_amount: Money
    notes: Optional[str] = None
    verified_by: Optional[int] = None
    verified_at: Optional[datetime] = None
    verification_notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ChoreVerify(BaseModel):
    approved: bool
    notes: Optional[str] = None
