"""
Campaign persistence service.

Handles campaign CRUD, recipient management, and the lifecycle transitions
defined in ``campaign_lifecycle``. PostgreSQL is the source of truth.

Status transitions are conditional UPDATEs keyed by (id, expected status), so
two racing requests cannot both win. Draft-only mutations take a row lock on
the campaign for the rest of the transaction, so a schedule cannot slip in
between the draft check and the write.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterator, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from piper_tracking.core.exceptions import InvalidCampaignState, NotFoundError
from piper_tracking.models.campaign import Campaign, CampaignRecipient
from piper_tracking.monitoring.metrics import track_transition
from piper_tracking.services.campaign_lifecycle import (
    CampaignStatus,
    assert_transition,
    ensure_draft,
    validate_schedule_date,
)

logger = logging.getLogger(__name__)

RECIPIENTS_LOCKED = "Cannot modify recipients for non-draft campaigns"

# Fields a draft campaign update may touch
EDITABLE_FIELDS = frozenset({
    "name",
    "subject",
    "content",
    "template",
    "from_email",
    "from_name",
    "reply_to",
    "segment",
    "tags",
    "track_opens",
    "track_clicks",
    "track_unsubscribes",
})


def _chunks(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _parse_campaign_id(campaign_id: str | UUID) -> UUID:
    if isinstance(campaign_id, UUID):
        return campaign_id
    try:
        return UUID(str(campaign_id))
    except ValueError:
        raise NotFoundError("Campaign not found")


class CampaignService:
    """Service for managing newsletter campaigns using PostgreSQL."""

    def __init__(self, recipient_batch_size: int = 500):
        self.recipient_batch_size = max(1, recipient_batch_size)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _campaign_query(self, campaign_uid: UUID, user_id: Optional[str]):
        query = select(Campaign).where(
            Campaign.id == campaign_uid,
            Campaign.is_deleted.is_(False),
        )
        if user_id is not None:
            query = query.where(Campaign.user_id == user_id)
        return query

    async def get_campaign(
        self,
        session: AsyncSession,
        campaign_id: str | UUID,
        user_id: Optional[str] = None,
    ) -> Campaign:
        """Get a live campaign by ID, optionally scoped to its owner.

        Raises NotFoundError if it does not exist, is deleted, or belongs to
        someone else.
        """
        uid = _parse_campaign_id(campaign_id)
        result = await session.execute(self._campaign_query(uid, user_id))
        campaign = result.scalar_one_or_none()
        if campaign is None:
            raise NotFoundError("Campaign not found")
        return campaign

    async def _lock_campaign(
        self,
        session: AsyncSession,
        campaign_id: str | UUID,
        user_id: Optional[str],
    ) -> Campaign:
        """SELECT ... FOR UPDATE the campaign row for the current transaction."""
        uid = _parse_campaign_id(campaign_id)
        result = await session.execute(
            self._campaign_query(uid, user_id).with_for_update()
        )
        campaign = result.scalar_one_or_none()
        if campaign is None:
            raise NotFoundError("Campaign not found")
        return campaign

    async def list_campaigns(
        self,
        session: AsyncSession,
        user_id: str,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> tuple[list[Campaign], int]:
        """List the caller's campaigns, newest first.

        Returns the page of campaigns and the total matching count.
        """
        conditions = [Campaign.user_id == user_id, Campaign.is_deleted.is_(False)]
        if status:
            conditions.append(Campaign.status == status)
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(Campaign.name.ilike(pattern), Campaign.subject.ilike(pattern)))

        total_result = await session.execute(
            select(func.count(Campaign.id)).where(*conditions)
        )
        total = total_result.scalar_one()

        result = await session.execute(
            select(Campaign)
            .where(*conditions)
            .order_by(Campaign.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    # ------------------------------------------------------------------
    # Draft-only mutations
    # ------------------------------------------------------------------

    async def create_campaign(
        self,
        session: AsyncSession,
        user_id: str,
        name: str,
        subject: str,
        content: str,
        from_email: str,
        template: str = "default",
        from_name: str = "Piper Newsletter",
        reply_to: Optional[str] = None,
        segment: Optional[dict] = None,
        tags: Optional[list[str]] = None,
        track_opens: bool = True,
        track_clicks: bool = True,
        track_unsubscribes: bool = True,
    ) -> Campaign:
        """Create a new campaign in draft."""
        now = datetime.utcnow()
        campaign = Campaign(
            id=uuid4(),
            user_id=user_id,
            name=name,
            subject=subject,
            content=content,
            template=template,
            status=CampaignStatus.DRAFT.value,
            from_email=from_email,
            from_name=from_name,
            reply_to=reply_to,
            segment=segment or {"type": "all", "criteria": {}},
            tags=list(tags or []),
            track_opens=track_opens,
            track_clicks=track_clicks,
            track_unsubscribes=track_unsubscribes,
            total_recipients=0,
            is_deleted=False,
            created_at=now,
            updated_at=now,
        )
        session.add(campaign)
        await session.flush()

        logger.info("Campaign created: id=%s user=%s", campaign.id, user_id)
        return campaign

    async def update_campaign(
        self,
        session: AsyncSession,
        campaign_id: str | UUID,
        user_id: str,
        changes: dict[str, Any],
    ) -> Campaign:
        """Apply field changes to a draft campaign."""
        campaign = await self._lock_campaign(session, campaign_id, user_id)
        ensure_draft(campaign.status, "Cannot update campaign that is not in draft status")

        for field, value in changes.items():
            if field in EDITABLE_FIELDS:
                setattr(campaign, field, value)
        campaign.updated_at = datetime.utcnow()
        await session.flush()

        logger.info("Campaign updated: id=%s fields=%s", campaign.id, sorted(changes))
        return campaign

    async def delete_campaign(
        self,
        session: AsyncSession,
        campaign_id: str | UUID,
        user_id: str,
    ) -> None:
        """Soft-delete a draft campaign."""
        campaign = await self._lock_campaign(session, campaign_id, user_id)
        ensure_draft(campaign.status, "Cannot delete campaign that is not in draft status")

        campaign.is_deleted = True
        campaign.updated_at = datetime.utcnow()
        await session.flush()

        logger.info("Campaign deleted: id=%s", campaign.id)

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    async def _transition(
        self,
        session: AsyncSession,
        campaign_id: str | UUID,
        user_id: Optional[str],
        source: CampaignStatus,
        target: CampaignStatus,
        guards: Sequence[Any] = (),
        guard_error: str = "",
        **values: Any,
    ) -> Campaign:
        """Move a campaign from ``source`` to ``target`` atomically.

        The UPDATE only matches while the row is still in ``source`` (and any
        extra ``guards`` hold). When nothing matches, the current row is read
        back to report why.
        """
        assert_transition(source, target)
        uid = _parse_campaign_id(campaign_id)

        stmt = (
            update(Campaign)
            .where(
                Campaign.id == uid,
                Campaign.status == source.value,
                Campaign.is_deleted.is_(False),
                *guards,
            )
            .values(status=target.value, updated_at=datetime.utcnow(), **values)
            .returning(Campaign)
        )
        if user_id is not None:
            stmt = stmt.where(Campaign.user_id == user_id)

        result = await session.execute(stmt)
        campaign = result.scalar_one_or_none()

        if campaign is None:
            current = await self.get_campaign(session, uid, user_id)
            assert_transition(current.status, target)
            # Status matched but a guard did not, or we lost a race
            raise InvalidCampaignState(
                guard_error or f"Campaign is no longer {source.value}",
                details={"currentStatus": current.status, "targetStatus": target.value},
            )

        track_transition(source.value, target.value)
        logger.info("Campaign %s: %s -> %s", uid, source.value, target.value)
        return campaign

    async def schedule_campaign(
        self,
        session: AsyncSession,
        campaign_id: str | UUID,
        user_id: str,
        scheduled_date: datetime,
    ) -> Campaign:
        """draft -> scheduled, for a date strictly in the future."""
        when = validate_schedule_date(scheduled_date)
        return await self._transition(
            session,
            campaign_id,
            user_id,
            CampaignStatus.DRAFT,
            CampaignStatus.SCHEDULED,
            scheduled_date=when,
        )

    async def cancel_campaign(
        self,
        session: AsyncSession,
        campaign_id: str | UUID,
        user_id: str,
    ) -> Campaign:
        """scheduled -> cancelled; clears the scheduled date."""
        return await self._transition(
            session,
            campaign_id,
            user_id,
            CampaignStatus.SCHEDULED,
            CampaignStatus.CANCELLED,
            scheduled_date=None,
        )

    async def start_sending(
        self,
        session: AsyncSession,
        campaign_id: str | UUID,
        now: Optional[datetime] = None,
    ) -> Campaign:
        """scheduled -> sending, once the scheduled date has been reached.

        Called by the external scheduler, not exposed over HTTP.
        """
        now = now or datetime.utcnow()
        return await self._transition(
            session,
            campaign_id,
            None,
            CampaignStatus.SCHEDULED,
            CampaignStatus.SENDING,
            guards=(Campaign.scheduled_date <= now,),
            guard_error="Scheduled date has not been reached",
            sent_date=now,
        )

    async def mark_sent(
        self,
        session: AsyncSession,
        campaign_id: str | UUID,
    ) -> Campaign:
        """sending -> sent, once no recipient is still pending.

        Called by the external send worker, not exposed over HTTP.
        """
        pending = (
            select(CampaignRecipient.id)
            .where(
                CampaignRecipient.campaign_id == Campaign.id,
                CampaignRecipient.status == "pending",
            )
            .exists()
        )
        return await self._transition(
            session,
            campaign_id,
            None,
            CampaignStatus.SENDING,
            CampaignStatus.SENT,
            guards=(~pending,),
            guard_error="Campaign still has pending recipients",
            completed_date=datetime.utcnow(),
        )

    # ------------------------------------------------------------------
    # Recipients
    # ------------------------------------------------------------------

    async def _count_recipients(self, session: AsyncSession, campaign_uid: UUID) -> int:
        result = await session.execute(
            select(func.count(CampaignRecipient.id)).where(
                CampaignRecipient.campaign_id == campaign_uid
            )
        )
        return result.scalar_one()

    async def add_recipients(
        self,
        session: AsyncSession,
        campaign_id: str | UUID,
        user_id: str,
        recipients: list[dict[str, Any]],
    ) -> tuple[int, int]:
        """Enroll subscribers in a draft campaign.

        Recipients are de-duplicated by subscriber_id, both within the request
        and against those already enrolled.

        Returns:
            (number newly added, new total)
        """
        campaign = await self._lock_campaign(session, campaign_id, user_id)
        ensure_draft(campaign.status, RECIPIENTS_LOCKED)

        # First occurrence wins within the request
        incoming: dict[str, dict[str, Any]] = {}
        for recipient in recipients:
            incoming.setdefault(recipient["subscriber_id"], recipient)

        existing: set[str] = set()
        for chunk in _chunks(list(incoming), self.recipient_batch_size):
            result = await session.execute(
                select(CampaignRecipient.subscriber_id).where(
                    CampaignRecipient.campaign_id == campaign.id,
                    CampaignRecipient.subscriber_id.in_(chunk),
                )
            )
            existing.update(result.scalars().all())

        now = datetime.utcnow()
        new_rows = [
            CampaignRecipient(
                id=uuid4(),
                campaign_id=campaign.id,
                subscriber_id=subscriber_id,
                email=recipient["email"],
                first_name=recipient.get("first_name") or "",
                last_name=recipient.get("last_name") or "",
                status="pending",
                added_at=now,
            )
            for subscriber_id, recipient in incoming.items()
            if subscriber_id not in existing
        ]
        for chunk in _chunks(new_rows, self.recipient_batch_size):
            session.add_all(chunk)
            await session.flush()

        total = await self._count_recipients(session, campaign.id)
        campaign.total_recipients = total
        campaign.updated_at = now
        await session.flush()

        logger.info(
            "Recipients added: campaign=%s added=%d total=%d",
            campaign.id,
            len(new_rows),
            total,
        )
        return len(new_rows), total

    async def remove_recipients(
        self,
        session: AsyncSession,
        campaign_id: str | UUID,
        user_id: str,
        subscriber_ids: list[str],
    ) -> tuple[int, int]:
        """Remove subscribers from a draft campaign. Unknown ids are ignored.

        Returns:
            (number removed, new total)
        """
        campaign = await self._lock_campaign(session, campaign_id, user_id)
        ensure_draft(campaign.status, RECIPIENTS_LOCKED)

        removed = 0
        for chunk in _chunks(list(dict.fromkeys(subscriber_ids)), self.recipient_batch_size):
            result = await session.execute(
                delete(CampaignRecipient).where(
                    CampaignRecipient.campaign_id == campaign.id,
                    CampaignRecipient.subscriber_id.in_(chunk),
                )
            )
            removed += result.rowcount or 0

        total = await self._count_recipients(session, campaign.id)
        campaign.total_recipients = total
        campaign.updated_at = datetime.utcnow()
        await session.flush()

        logger.info(
            "Recipients removed: campaign=%s removed=%d total=%d",
            campaign.id,
            removed,
            total,
        )
        return removed, total

    async def get_recipients(
        self,
        session: AsyncSession,
        campaign_id: str | UUID,
        user_id: str,
        page: int = 1,
        limit: int = 100,
    ) -> tuple[list[CampaignRecipient], int]:
        """Page through a campaign's recipients in enrollment order."""
        campaign = await self.get_campaign(session, campaign_id, user_id)
        total = await self._count_recipients(session, campaign.id)

        result = await session.execute(
            select(CampaignRecipient)
            .where(CampaignRecipient.campaign_id == campaign.id)
            .order_by(CampaignRecipient.added_at, CampaignRecipient.subscriber_id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total
