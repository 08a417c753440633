"""
Campaign model for newsletter sends and their recipient lists.
"""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, JSON, UniqueConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from piper_tracking.db.postgres import Base


class Campaign(Base):
    """One outbound newsletter send."""

    __tablename__ = "campaigns"
    __table_args__ = (
        Index("ix_campaigns_user_status", "user_id", "status"),
        Index("ix_campaigns_status_scheduled", "status", "scheduled_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(String(64), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    subject = Column(String(300), nullable=False)
    content = Column(Text, nullable=False)
    template = Column(String(100), default="default")

    # Status
    status = Column(String(20), default="draft", nullable=False)  # draft, scheduled, sending, sent, cancelled

    # Sender settings
    from_email = Column(String(255), nullable=False)
    from_name = Column(String(255), default="Piper Newsletter")
    reply_to = Column(String(255), nullable=True)

    # Targeting
    segment = Column(JSON, default=lambda: {"type": "all", "criteria": {}})
    tags = Column(JSON, default=list)

    # Tracking features
    track_opens = Column(Boolean, default=True)
    track_clicks = Column(Boolean, default=True)
    track_unsubscribes = Column(Boolean, default=True)

    # Scheduling
    scheduled_date = Column(DateTime, nullable=True)
    sent_date = Column(DateTime, nullable=True)
    completed_date = Column(DateTime, nullable=True)

    total_recipients = Column(Integer, default=0)
    is_deleted = Column(Boolean, default=False, index=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    recipients = relationship(
        "CampaignRecipient",
        back_populates="campaign",
        cascade="all, delete-orphan",
        lazy="noload",
    )


class CampaignRecipient(Base):
    """A subscriber enrolled in a campaign."""

    __tablename__ = "campaign_recipients"
    __table_args__ = (
        UniqueConstraint("campaign_id", "subscriber_id", name="uq_campaign_recipient_subscriber"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    subscriber_id = Column(String(255), nullable=False)

    email = Column(String(255), nullable=False)
    first_name = Column(String(255), default="")
    last_name = Column(String(255), default="")

    status = Column(String(20), default="pending")  # pending, sent, failed, bounced, opened, clicked

    # Delivery tracking (written by the send worker)
    sent_at = Column(DateTime, nullable=True)
    opened_at = Column(DateTime, nullable=True)
    clicked_at = Column(DateTime, nullable=True)
    bounce_reason = Column(Text, nullable=True)

    added_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    campaign = relationship("Campaign", back_populates="recipients")
