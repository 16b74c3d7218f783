"""Schemas for households, their members and child enrollment."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .money import Money


class HouseholdCreate(BaseModel):
    name: str = Field(min_length=1)


class HouseholdRead(BaseModel):
    id: int
    name: str
    created_by: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MemberAdd(BaseModel):
    email: EmailStr
    role: Literal["partner", "owner"] = "partner"


class MemberRead(BaseModel):
    user_id: int
    name: str
    role: str


class ChildEnroll(BaseModel):
    """A guardian enrolls a child; limits left out keep their defaults."""

    name: str = Field(min_length=1)
    email: EmailStr
    password: str
    daily_limit: Optional[Money] = Field(default=None, ge=0)
    weekly_limit: Optional[Money] = Field(default=None, ge=0)
    monthly_limit: Optional[Money] = Field(default=None, ge=0)
    per_transaction_limit: Optional[Money] = Field(default=None, ge=0)
    requires_approval_above: Optional[Money] = Field(default=None, ge=0)
