"""Schemas for child money requests and guardian reviews."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .money import Money


class MoneyRequestCreate(BaseModel):
    amount: Money = Field(gt=0)
    reason: str = Field(min_length=1)
    category: Optional[str] = None


class MoneyRequestRead(BaseModel):
    id: int
    household_id: int
    requested_by: int
    requested_from: int
    amount: Money
    reason: str
    category: Optional[str] = None
    status: str
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    created_at: datetime
    child_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ReviewNotes(BaseModel):
    notes: Optional[str] = None
