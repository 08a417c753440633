"""
Tracking event recorder.

Appends one TrackingEvent row per inbound tracking request. Appends are
independent inserts with no shared counters, so concurrent requests for the
same campaign never contend.

Opens and clicks are best-effort: the HTTP contract for those (serve the
pixel, follow the redirect) must hold even when storage is down, so failures
are logged, counted and swallowed here. Unsubscribes and spam complaints are
synchronous: the caller returns a confirmation and needs to know.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Awaitable, Callable, Optional
from urllib.parse import parse_qs, urlparse
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from piper_tracking.core.exceptions import StorageError
from piper_tracking.models.tracking_event import ComplaintType, EventType, TrackingEvent
from piper_tracking.monitoring.metrics import track_event_dropped, track_event_recorded

logger = logging.getLogger(__name__)

_TABLET_RE = re.compile(r"ipad|tablet|kindle|silk|playbook|nexus (7|9|10)")
_MOBILE_RE = re.compile(r"mobile|android|iphone|ipod|phone|blackberry|opera mini")
_DESKTOP_RE = re.compile(r"windows|macintosh|linux|x11|cros")


def detect_device_type(user_agent: Optional[str]) -> str:
    """Classify a user agent as desktop, mobile, tablet or other."""
    ua = (user_agent or "").lower()
    if _TABLET_RE.search(ua):
        return "tablet"
    if _MOBILE_RE.search(ua):
        return "mobile"
    if _DESKTOP_RE.search(ua):
        return "desktop"
    return "other"


def extract_utm_params(url: str) -> dict:
    """Pull utm_source/utm_medium/utm_campaign out of a destination URL."""
    query = parse_qs(urlparse(url).query)
    return {
        key: query[key][0][:255]
        for key in ("utm_source", "utm_medium", "utm_campaign")
        if query.get(key)
    }


class EventRecorder:
    """Persist open, click, unsubscribe and spam-complaint events."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _append(self, event: TrackingEvent) -> TrackingEvent:
        """Insert one event in its own transaction."""
        try:
            async with self._session_factory() as session:
                session.add(event)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(
                f"Failed to record {event.event_type} event",
                details={"campaign_id": event.campaign_id},
            ) from exc

        track_event_recorded(event.event_type)
        return event

    async def _best_effort(
        self,
        event_type: EventType,
        append: Callable[[], Awaitable[TrackingEvent]],
    ) -> Optional[TrackingEvent]:
        """Run an append whose failure must not reach the caller."""
        try:
            return await append()
        except Exception:
            logger.exception("Dropped %s tracking event", event_type.value)
            track_event_dropped(event_type.value)
            return None

    async def record_open(
        self,
        email_id: str,
        subscriber_id: str,
        campaign_id: str,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> Optional[TrackingEvent]:
        """Record an email open. Never raises; returns None if dropped."""
        event = TrackingEvent(
            id=uuid4(),
            event_type=EventType.OPEN.value,
            email_id=email_id,
            subscriber_id=subscriber_id,
            campaign_id=campaign_id,
            ip_address=ip_address,
            user_agent=user_agent,
            device_type=detect_device_type(user_agent),
            occurred_at=datetime.utcnow(),
        )
        recorded = await self._best_effort(EventType.OPEN, lambda: self._append(event))
        if recorded is not None:
            logger.info(
                "Open recorded: campaign=%s subscriber=%s email=%s",
                campaign_id,
                subscriber_id,
                email_id,
            )
        return recorded

    async def record_click(
        self,
        email_id: str,
        subscriber_id: str,
        campaign_id: str,
        link_id: Optional[str],
        destination_url: str,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> Optional[TrackingEvent]:
        """Record a link click. Never raises; returns None if dropped."""
        utm = extract_utm_params(destination_url)
        event = TrackingEvent(
            id=uuid4(),
            event_type=EventType.CLICK.value,
            email_id=email_id,
            subscriber_id=subscriber_id,
            campaign_id=campaign_id,
            link_id=link_id,
            link_url=destination_url,
            utm_source=utm.get("utm_source"),
            utm_medium=utm.get("utm_medium"),
            utm_campaign=utm.get("utm_campaign"),
            ip_address=ip_address,
            user_agent=user_agent,
            device_type=detect_device_type(user_agent),
            occurred_at=datetime.utcnow(),
        )
        recorded = await self._best_effort(EventType.CLICK, lambda: self._append(event))
        if recorded is not None:
            logger.info(
                "Click recorded: campaign=%s subscriber=%s url=%s",
                campaign_id,
                subscriber_id,
                destination_url[:80],
            )
        return recorded

    async def record_unsubscribe(
        self,
        email_id: str,
        subscriber_id: str,
        campaign_id: str,
        ip_address: Optional[str],
        reason: Optional[str] = None,
    ) -> TrackingEvent:
        """Record an unsubscribe.

        Raises
        ------
        StorageError
            If the event could not be persisted.
        """
        event = TrackingEvent(
            id=uuid4(),
            event_type=EventType.UNSUBSCRIBE.value,
            email_id=email_id,
            subscriber_id=subscriber_id,
            campaign_id=campaign_id,
            ip_address=ip_address,
            reason=reason,
            occurred_at=datetime.utcnow(),
        )
        try:
            await self._append(event)
        except StorageError:
            logger.error(
                "Error recording unsubscribe: campaign=%s subscriber=%s",
                campaign_id,
                subscriber_id,
            )
            raise

        logger.info(
            "Unsubscribe recorded: campaign=%s subscriber=%s email=%s",
            campaign_id,
            subscriber_id,
            email_id,
        )
        return event

    async def record_spam_complaint(
        self,
        email_id: str,
        subscriber_id: str,
        campaign_id: str,
        ip_address: Optional[str],
        complaint_type: ComplaintType = ComplaintType.SPAM,
        feedback: Optional[str] = None,
    ) -> TrackingEvent:
        """Record a spam complaint.

        Raises
        ------
        StorageError
            If the event could not be persisted.
        """
        event = TrackingEvent(
            id=uuid4(),
            event_type=EventType.SPAM_COMPLAINT.value,
            email_id=email_id,
            subscriber_id=subscriber_id,
            campaign_id=campaign_id,
            ip_address=ip_address,
            complaint_type=ComplaintType(complaint_type).value,
            feedback=feedback,
            occurred_at=datetime.utcnow(),
        )
        try:
            await self._append(event)
        except StorageError:
            logger.error(
                "Error recording spam complaint: campaign=%s subscriber=%s",
                campaign_id,
                subscriber_id,
            )
            raise

        logger.info(
            "Spam complaint recorded: campaign=%s subscriber=%s type=%s",
            campaign_id,
            subscriber_id,
            event.complaint_type,
        )
        return event
