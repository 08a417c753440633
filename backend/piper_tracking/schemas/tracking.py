"""
Pydantic schemas for the tracking endpoints.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field, HttpUrl

from piper_tracking.models.tracking_event import ComplaintType
from piper_tracking.schemas.common import CamelModel


class TrackingIds(CamelModel):
    """Identifier fields shared by every tracking request body."""
    email_id: str = Field(..., min_length=1, max_length=255)
    subscriber_id: str = Field(..., min_length=1, max_length=255)
    campaign_id: str = Field(..., min_length=1, max_length=255)


class UnsubscribeRequest(TrackingIds):
    reason: Optional[str] = Field(default=None, max_length=1000)


class SpamComplaintRequest(TrackingIds):
    complaint_type: ComplaintType = ComplaintType.SPAM
    feedback: Optional[str] = Field(default=None, max_length=2000)


class GeneratePixelRequest(TrackingIds):
    pass


class GenerateLinkRequest(TrackingIds):
    original_url: HttpUrl
    link_id: str = Field(..., min_length=1, max_length=255)


class TrackingEventResponse(CamelModel):
    """Recorded event as returned to the caller."""
    id: str
    event_type: str
    email_id: str
    subscriber_id: str
    campaign_id: str
    reason: Optional[str] = None
    complaint_type: Optional[str] = None
    feedback: Optional[str] = None


class UnsubscribeResponse(CamelModel):
    message: str
    unsubscribe: TrackingEventResponse


class SpamComplaintResponse(CamelModel):
    message: str
    spam_complaint: TrackingEventResponse


class PixelUrlResponse(CamelModel):
    pixel_url: str


class TrackingLinkResponse(CamelModel):
    tracking_link: str
