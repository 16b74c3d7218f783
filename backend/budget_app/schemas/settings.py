"""Pydantic models for application configuration settings."""

from pydantic import BaseModel, ConfigDict, Field


class SettingsRead(BaseModel):
    site_name: str
    currency_code: str

    model_config = ConfigDict(from_attributes=True)


class SettingsUpdate(BaseModel):
    site_name: str | None = None
    currency_code: str | None = Field(default=None, min_length=3, max_length=3)
