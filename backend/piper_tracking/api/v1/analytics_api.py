"""
Analytics API endpoints.

Per-campaign engagement summaries, recomputed from the tracking event
table on every request.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from piper_tracking.api.deps import get_analytics_service
from piper_tracking.core.security import TokenData, require_auth
from piper_tracking.db.postgres import get_db_session
from piper_tracking.schemas.analytics import CampaignAnalyticsResponse
from piper_tracking.services.analytics_service import AnalyticsService

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("/{campaign_id}", response_model=CampaignAnalyticsResponse)
async def get_campaign_analytics(
    campaign_id: str,
    current_user: TokenData = Depends(require_auth),
    session: AsyncSession = Depends(get_db_session),
    analytics: AnalyticsService = Depends(get_analytics_service),
):
    """Get the open, click, unsubscribe and complaint summary for a campaign.

    Unknown campaign ids yield an all-zero summary.
    """
    summary = await analytics.get_campaign_summary(session, campaign_id)
    return CampaignAnalyticsResponse(**summary)
