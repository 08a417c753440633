"""
Append-only tracking event model.

One row per inbound open, click, unsubscribe or spam complaint. Rows are
never updated or deduplicated: repeated pixel fetches each produce a row.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, String, Text, Index
from sqlalchemy.dialects.postgresql import UUID

from piper_tracking.db.postgres import Base


class EventType(str, Enum):
    """Kinds of tracking events."""
    OPEN = "open"
    CLICK = "click"
    UNSUBSCRIBE = "unsubscribe"
    SPAM_COMPLAINT = "spam_complaint"


class ComplaintType(str, Enum):
    """Spam complaint categories."""
    SPAM = "spam"
    ABUSE = "abuse"
    OTHER = "other"


class TrackingEvent(Base):
    """Single recorded tracking event."""

    __tablename__ = "tracking_events"
    __table_args__ = (
        Index("ix_tracking_events_campaign_type", "campaign_id", "event_type"),
        Index("ix_tracking_events_campaign_subscriber", "campaign_id", "subscriber_id"),
        Index("ix_tracking_events_email_subscriber", "email_id", "subscriber_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    event_type = Column(String(20), nullable=False)

    # Decoded tracking identifier
    email_id = Column(String(255), nullable=False)
    subscriber_id = Column(String(255), nullable=False)
    campaign_id = Column(String(255), nullable=False)
    link_id = Column(String(255), nullable=True)

    # Click destination
    link_url = Column(Text, nullable=True)
    utm_source = Column(String(255), nullable=True)
    utm_medium = Column(String(255), nullable=True)
    utm_campaign = Column(String(255), nullable=True)

    # Network metadata
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    device_type = Column(String(20), default="other")  # desktop, mobile, tablet, other

    # Unsubscribe / complaint details
    reason = Column(Text, nullable=True)
    complaint_type = Column(String(20), nullable=True)
    feedback = Column(Text, nullable=True)

    occurred_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
