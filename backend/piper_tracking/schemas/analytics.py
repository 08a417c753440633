"""
Pydantic schemas for campaign analytics.
"""

from datetime import datetime

from piper_tracking.schemas.common import CamelModel


class CampaignAnalyticsResponse(CamelModel):
    """Engagement summary for one campaign. Rates are percentages."""
    campaign_id: str
    total_sent: int = 0
    total_opened: int = 0
    total_clicked: int = 0
    total_unsubscribed: int = 0
    total_spam_complaints: int = 0
    unique_opens: int = 0
    unique_clicks: int = 0
    open_rate: float = 0.0
    click_rate: float = 0.0
    unsubscribe_rate: float = 0.0
    click_through_rate: float = 0.0
    computed_at: datetime
