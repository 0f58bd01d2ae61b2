from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Snake_case in Python, camelCase on the wire (dump with by_alias=True)."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class ActivityLogSchema(WireModel):
    id: int
    user: str
    role: str
    action: str
    details: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    success: Optional[bool] = None
    timestamp: datetime

    model_config = {"from_attributes": True}


class ActivityPage(WireModel):
    activities: list[ActivityLogSchema]
    total: int
    has_more: bool


class ActivityStats(WireModel):
    total_activities: int = 0
    unique_user_count: int = 0
    admin_count: int = 0
    user_count: int = 0
    guest_count: int = 0


class NotificationStats(WireModel):
    active_subscribers: int
    queue_length: int
    is_processing: bool
    total_notifications: int


# ── Request bodies ────────────────────────────────────────────────────────────

class CleanupRequest(BaseModel):
    days: Optional[int] = Field(default=None, ge=1)


class OlderThanRequest(BaseModel):
    days: Optional[int] = None


class DateRangeRequest(BaseModel):
    # ISO-8601 date or datetime strings; a missing bound leaves the range open
    startDate: Optional[str] = None
    endDate: Optional[str] = None


class ClearByUserRequest(BaseModel):
    username: Optional[str] = None


class ClearByActionRequest(BaseModel):
    action: Optional[str] = None


class ClearByRoleRequest(BaseModel):
    role: Optional[str] = None


class SendNotificationRequest(BaseModel):
    action: str
    details: Optional[dict] = None
    resource: Optional[str] = None
    severity: Optional[str] = None
