"""
Campaign management API endpoints.

All routes require authentication and only see the caller's own campaigns.
Content, settings and recipients can only change while a campaign is a draft.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from piper_tracking.api.deps import get_analytics_service, get_campaign_service
from piper_tracking.core.security import TokenData, require_auth
from piper_tracking.db.postgres import get_db_session
from piper_tracking.models.campaign import Campaign
from piper_tracking.schemas.analytics import CampaignAnalyticsResponse
from piper_tracking.schemas.campaign import (
    AddRecipientsRequest,
    CampaignCreate,
    CampaignDetailResponse,
    CampaignListResponse,
    CampaignMessageResponse,
    CampaignResponse,
    CampaignUpdate,
    RecipientListResponse,
    RecipientResponse,
    RecipientsAddedResponse,
    RecipientsRemovedResponse,
    RemoveRecipientsRequest,
    ScheduleRequest,
)
from piper_tracking.schemas.common import Pagination
from piper_tracking.services.analytics_service import AnalyticsService
from piper_tracking.services.campaign_lifecycle import CampaignStatus
from piper_tracking.services.campaign_service import CampaignService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/campaigns", tags=["Campaigns"])


# ============================================================================
# Helper Functions
# ============================================================================


def campaign_to_response(campaign: Campaign) -> CampaignResponse:
    """Convert Campaign to response model."""
    return CampaignResponse.model_validate(campaign)


# ============================================================================
# Endpoints
# ============================================================================


@router.get("", response_model=CampaignListResponse)
async def list_campaigns(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status: Optional[CampaignStatus] = Query(None, description="Filter by status"),
    search: Optional[str] = Query(None, max_length=200, description="Match name or subject"),
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
    campaigns: CampaignService = Depends(get_campaign_service),
):
    """
    List the caller's campaigns, newest first.

    Filter by status: draft, scheduled, sending, sent, cancelled
    """
    items, total = await campaigns.list_campaigns(
        session,
        user.user_id,
        page=page,
        limit=limit,
        status=status.value if status else None,
        search=search,
    )
    return CampaignListResponse(
        campaigns=[campaign_to_response(c) for c in items],
        pagination=Pagination.build(page, limit, total),
    )


@router.post("", response_model=CampaignResponse, status_code=201)
async def create_campaign(
    payload: CampaignCreate,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
    campaigns: CampaignService = Depends(get_campaign_service),
):
    """Create a new draft campaign."""
    campaign = await campaigns.create_campaign(session, user.user_id, **payload.model_dump())
    return campaign_to_response(campaign)


@router.get("/{campaign_id}", response_model=CampaignDetailResponse)
async def get_campaign(
    campaign_id: str,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
    campaigns: CampaignService = Depends(get_campaign_service),
    analytics: AnalyticsService = Depends(get_analytics_service),
):
    """
    Get a campaign by ID, with its analytics summary when available.
    """
    campaign = await campaigns.get_campaign(session, campaign_id, user.user_id)
    response = CampaignDetailResponse.model_validate(campaign)

    try:
        summary = await analytics.get_campaign_summary(session, str(campaign.id))
        response.analytics = CampaignAnalyticsResponse(**summary)
    except Exception as exc:
        logger.warning("Analytics unavailable for campaign %s: %s", campaign.id, exc)

    return response


@router.put("/{campaign_id}", response_model=CampaignResponse)
async def update_campaign(
    campaign_id: str,
    payload: CampaignUpdate,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
    campaigns: CampaignService = Depends(get_campaign_service),
):
    """Update a draft campaign. Only fields present in the body change."""
    campaign = await campaigns.update_campaign(
        session,
        campaign_id,
        user.user_id,
        payload.model_dump(exclude_unset=True),
    )
    return campaign_to_response(campaign)


@router.delete("/{campaign_id}")
async def delete_campaign(
    campaign_id: str,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
    campaigns: CampaignService = Depends(get_campaign_service),
):
    """Soft-delete a draft campaign."""
    await campaigns.delete_campaign(session, campaign_id, user.user_id)
    return {"message": "Campaign deleted successfully"}


@router.post("/{campaign_id}/schedule", response_model=CampaignMessageResponse)
async def schedule_campaign(
    campaign_id: str,
    payload: ScheduleRequest,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
    campaigns: CampaignService = Depends(get_campaign_service),
):
    """Schedule a draft campaign for a future date."""
    campaign = await campaigns.schedule_campaign(
        session, campaign_id, user.user_id, payload.scheduled_date
    )
    return CampaignMessageResponse(
        message="Campaign scheduled successfully",
        campaign=campaign_to_response(campaign),
    )


@router.post("/{campaign_id}/cancel", response_model=CampaignMessageResponse)
async def cancel_campaign(
    campaign_id: str,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
    campaigns: CampaignService = Depends(get_campaign_service),
):
    """Cancel a scheduled campaign and clear its scheduled date."""
    campaign = await campaigns.cancel_campaign(session, campaign_id, user.user_id)
    return CampaignMessageResponse(
        message="Campaign cancelled successfully",
        campaign=campaign_to_response(campaign),
    )


@router.get("/{campaign_id}/recipients", response_model=RecipientListResponse)
async def get_recipients(
    campaign_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=100, ge=1, le=500),
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
    campaigns: CampaignService = Depends(get_campaign_service),
):
    """Page through a campaign's recipients."""
    recipients, total = await campaigns.get_recipients(
        session, campaign_id, user.user_id, page=page, limit=limit
    )
    return RecipientListResponse(
        recipients=[RecipientResponse.model_validate(r) for r in recipients],
        pagination=Pagination.build(page, limit, total),
    )


@router.post("/{campaign_id}/recipients", response_model=RecipientsAddedResponse)
async def add_recipients(
    campaign_id: str,
    payload: AddRecipientsRequest,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
    campaigns: CampaignService = Depends(get_campaign_service),
):
    """
    Add subscribers to a draft campaign.

    Subscribers already on the campaign are skipped.
    """
    added, total = await campaigns.add_recipients(
        session,
        campaign_id,
        user.user_id,
        [r.model_dump() for r in payload.recipients],
    )
    return RecipientsAddedResponse(
        message=f"{added} recipients added successfully",
        added=added,
        total_recipients=total,
    )


@router.delete("/{campaign_id}/recipients", response_model=RecipientsRemovedResponse)
async def remove_recipients(
    campaign_id: str,
    payload: RemoveRecipientsRequest,
    user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
    campaigns: CampaignService = Depends(get_campaign_service),
):
    """Remove subscribers from a draft campaign. Unknown ids are ignored."""
    removed, total = await campaigns.remove_recipients(
        session, campaign_id, user.user_id, payload.subscriber_ids
    )
    return RecipientsRemovedResponse(
        message=f"{removed} recipients removed successfully",
        removed=removed,
        total_recipients=total,
    )
