"""
Campaign send-state machine.

    draft ──schedule──▶ scheduled ──start──▶ sending ──finish──▶ sent
                            │
                            └──cancel──▶ cancelled

Pure rules only; CampaignService applies them against the database.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from piper_tracking.core.exceptions import InvalidCampaignState, ValidationError


class CampaignStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENDING = "sending"
    SENT = "sent"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS: dict[CampaignStatus, frozenset[CampaignStatus]] = {
    CampaignStatus.DRAFT: frozenset({CampaignStatus.SCHEDULED}),
    CampaignStatus.SCHEDULED: frozenset({CampaignStatus.CANCELLED, CampaignStatus.SENDING}),
    CampaignStatus.SENDING: frozenset({CampaignStatus.SENT}),
    CampaignStatus.SENT: frozenset(),
    CampaignStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({CampaignStatus.SENT, CampaignStatus.CANCELLED})

# Per-action error messages shown to API callers
_TRANSITION_ERRORS = {
    CampaignStatus.SCHEDULED.value: "Only draft campaigns can be scheduled",
    CampaignStatus.CANCELLED.value: "Only scheduled campaigns can be cancelled",
    CampaignStatus.SENDING.value: "Only scheduled campaigns can start sending",
    CampaignStatus.SENT.value: "Only sending campaigns can be marked as sent",
}


def can_transition(current: str, target: str) -> bool:
    try:
        return CampaignStatus(target) in ALLOWED_TRANSITIONS[CampaignStatus(current)]
    except ValueError:
        return False


def _value(status) -> str:
    return status.value if isinstance(status, CampaignStatus) else str(status)


def assert_transition(current: str, target: str) -> None:
    """Raise InvalidCampaignState unless current -> target is a legal move."""
    if can_transition(current, target):
        return
    current, target = _value(current), _value(target)
    message = _TRANSITION_ERRORS.get(target, f"Cannot move campaign from {current} to {target}")
    raise InvalidCampaignState(
        message,
        details={"currentStatus": current, "targetStatus": target},
    )


def ensure_draft(status: str, message: str) -> None:
    """Content, settings and recipients are only mutable in draft."""
    if status != CampaignStatus.DRAFT.value:
        raise InvalidCampaignState(
            message,
            details={"currentStatus": status},
        )


def validate_schedule_date(scheduled_date: datetime, now: Optional[datetime] = None) -> datetime:
    """Normalise to naive UTC and require the date to lie in the future."""
    if scheduled_date.tzinfo is not None:
        scheduled_date = scheduled_date.astimezone(timezone.utc).replace(tzinfo=None)
    now = now or datetime.utcnow()
    if scheduled_date <= now:
        raise ValidationError("Scheduled date must be in the future")
    return scheduled_date
