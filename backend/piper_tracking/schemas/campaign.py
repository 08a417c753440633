"""
Pydantic schemas for campaign and recipient operations.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import EmailStr, Field, field_validator

from piper_tracking.core.config import settings
from piper_tracking.schemas.analytics import CampaignAnalyticsResponse
from piper_tracking.schemas.common import CamelModel, Pagination


class Segment(CamelModel):
    """Audience selection for a campaign."""
    type: Literal["all", "tag", "custom"] = "all"
    criteria: dict[str, Any] = Field(default_factory=dict)


class CampaignCreate(CamelModel):
    """Schema for creating a campaign."""
    name: str = Field(..., min_length=1, max_length=200)
    subject: str = Field(..., min_length=1, max_length=300)
    content: str = Field(..., min_length=1)
    template: str = Field(default="default", max_length=100)
    from_email: EmailStr
    from_name: str = Field(default="Piper Newsletter", max_length=255)
    reply_to: Optional[EmailStr] = None
    segment: Segment = Field(default_factory=Segment)
    tags: list[str] = Field(default_factory=list)
    track_opens: bool = True
    track_clicks: bool = True
    track_unsubscribes: bool = True


class CampaignUpdate(CamelModel):
    """Schema for updating a draft campaign. Only provided fields change."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    subject: Optional[str] = Field(default=None, min_length=1, max_length=300)
    content: Optional[str] = Field(default=None, min_length=1)
    template: Optional[str] = Field(default=None, max_length=100)
    from_email: Optional[EmailStr] = None
    from_name: Optional[str] = Field(default=None, max_length=255)
    reply_to: Optional[EmailStr] = None
    segment: Optional[Segment] = None
    tags: Optional[list[str]] = None
    track_opens: Optional[bool] = None
    track_clicks: Optional[bool] = None
    track_unsubscribes: Optional[bool] = None

    @field_validator(
        "name", "subject", "content", "template", "from_email", "from_name",
        "segment", "tags", "track_opens", "track_clicks", "track_unsubscribes",
    )
    @classmethod
    def reject_null(cls, value):
        # Omit a field to leave it unchanged; only replyTo can be cleared.
        if value is None:
            raise ValueError("Field cannot be null")
        return value


class ScheduleRequest(CamelModel):
    scheduled_date: datetime


class RecipientIn(CamelModel):
    subscriber_id: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    first_name: Optional[str] = Field(default=None, max_length=255)
    last_name: Optional[str] = Field(default=None, max_length=255)


class AddRecipientsRequest(CamelModel):
    recipients: list[RecipientIn] = Field(
        ..., min_length=1, max_length=settings.max_recipients_per_request
    )


class RemoveRecipientsRequest(CamelModel):
    subscriber_ids: list[str] = Field(
        ..., min_length=1, max_length=settings.max_recipients_per_request
    )


class CampaignResponse(CamelModel):
    """Campaign as returned by the API."""
    id: UUID
    user_id: str
    name: str
    subject: str
    content: str
    template: Optional[str] = None
    status: str
    from_email: str
    from_name: Optional[str] = None
    reply_to: Optional[str] = None
    segment: Optional[dict[str, Any]] = None
    tags: list[str] = Field(default_factory=list)
    track_opens: bool = True
    track_clicks: bool = True
    track_unsubscribes: bool = True
    scheduled_date: Optional[datetime] = None
    sent_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    total_recipients: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CampaignDetailResponse(CampaignResponse):
    analytics: Optional[CampaignAnalyticsResponse] = None


class CampaignListResponse(CamelModel):
    campaigns: list[CampaignResponse]
    pagination: Pagination


class CampaignMessageResponse(CamelModel):
    message: str
    campaign: CampaignResponse


class RecipientResponse(CamelModel):
    subscriber_id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    status: str
    sent_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    clicked_at: Optional[datetime] = None
    added_at: Optional[datetime] = None


class RecipientListResponse(CamelModel):
    recipients: list[RecipientResponse]
    pagination: Pagination


class RecipientsAddedResponse(CamelModel):
    message: str
    added: int
    total_recipients: int


class RecipientsRemovedResponse(CamelModel):
    message: str
    removed: int
    total_recipients: int
