from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class NotificationRead(BaseModel):
    id: int
    household_id: int
    notification_type: str
    title: str
    message: str
    priority: str
    action_url: Optional[str] = None
    action_label: Optional[str] = None
    icon: Optional[str] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None
    metadata_json: Optional[dict] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MarkAllRead(BaseModel):
    household_id: Optional[int] = None


class NotificationPreferenceRead(BaseModel):
    email_approvals: bool
    email_alerts: bool
    email_invitations: bool

    model_config = ConfigDict(from_attributes=True)


class NotificationPreferenceUpdate(BaseModel):
    email_approvals: Optional[bool] = None
    email_alerts: Optional[bool] = None
    email_invitations: Optional[bool] = None
