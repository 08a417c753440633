"""
SQLAlchemy models for PostgreSQL persistence.
"""

from piper_tracking.models.campaign import Campaign, CampaignRecipient
from piper_tracking.models.tracking_event import TrackingEvent, EventType, ComplaintType

__all__ = [
    "Campaign",
    "CampaignRecipient",
    "TrackingEvent",
    "EventType",
    "ComplaintType",
]
