"""
Campaign analytics aggregation.

Summaries are derived from the tracking event table on every call and never
cached, so they always reflect the latest appended events.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from piper_tracking.core.exceptions import StorageError
from piper_tracking.models.campaign import CampaignRecipient
from piper_tracking.models.tracking_event import EventType, TrackingEvent

logger = logging.getLogger(__name__)


def _rate(count: int, base: int) -> float:
    """Percentage rounded to 2 decimals; 0 when the base is 0."""
    if not base:
        return 0.0
    return round(count / base * 100, 2)


class AnalyticsService:
    """Service for computing per-campaign engagement summaries."""

    async def _total_sent(self, session: AsyncSession, campaign_id: str) -> int:
        try:
            campaign_uid = UUID(campaign_id)
        except ValueError:
            return 0

        result = await session.execute(
            select(func.count(CampaignRecipient.id)).where(
                CampaignRecipient.campaign_id == campaign_uid
            )
        )
        return result.scalar_one() or 0

    async def _event_counts(
        self, session: AsyncSession, campaign_id: str
    ) -> dict[str, tuple[int, int]]:
        """Map event_type -> (total events, distinct subscribers)."""
        result = await session.execute(
            select(
                TrackingEvent.event_type,
                func.count(TrackingEvent.id),
                func.count(func.distinct(TrackingEvent.subscriber_id)),
            )
            .where(TrackingEvent.campaign_id == campaign_id)
            .group_by(TrackingEvent.event_type)
        )
        return {row[0]: (row[1], row[2]) for row in result.all()}

    async def get_campaign_summary(
        self,
        session: AsyncSession,
        campaign_id: str,
    ) -> dict[str, Any]:
        """
        Compute engagement metrics for a campaign.

        Rates divide total event counts by the number of recipients.
        Unknown campaign ids produce an all-zero summary rather than an error.
        """
        try:
            total_sent = await self._total_sent(session, campaign_id)
            counts = await self._event_counts(session, campaign_id)
        except SQLAlchemyError as exc:
            logger.error("Error computing analytics for campaign %s: %s", campaign_id, exc)
            raise StorageError(
                "Failed to compute campaign analytics",
                details={"campaign_id": campaign_id},
            ) from exc

        total_opened, unique_opens = counts.get(EventType.OPEN.value, (0, 0))
        total_clicked, unique_clicks = counts.get(EventType.CLICK.value, (0, 0))
        total_unsubscribed, _ = counts.get(EventType.UNSUBSCRIBE.value, (0, 0))
        total_spam, _ = counts.get(EventType.SPAM_COMPLAINT.value, (0, 0))

        return {
            "campaign_id": campaign_id,
            "total_sent": total_sent,
            "total_opened": total_opened,
            "total_clicked": total_clicked,
            "total_unsubscribed": total_unsubscribed,
            "total_spam_complaints": total_spam,
            "unique_opens": unique_opens,
            "unique_clicks": unique_clicks,
            "open_rate": _rate(total_opened, total_sent),
            "click_rate": _rate(total_clicked, total_sent),
            "unsubscribe_rate": _rate(total_unsubscribed, total_sent),
            "click_through_rate": _rate(unique_clicks, unique_opens),
            "computed_at": datetime.utcnow(),
        }
