"""
Route dependencies that hand out the app-scoped services.

Services are built once in ``create_app`` and stored on ``app.state``.
"""

from fastapi import Request

from piper_tracking.services.analytics_service import AnalyticsService
from piper_tracking.services.campaign_service import CampaignService
from piper_tracking.services.event_recorder import EventRecorder
from piper_tracking.services.tracking_codec import TrackingCodec


def get_tracking_codec(request: Request) -> TrackingCodec:
    return request.app.state.tracking_codec


def get_event_recorder(request: Request) -> EventRecorder:
    return request.app.state.event_recorder


def get_campaign_service(request: Request) -> CampaignService:
    return request.app.state.campaign_service


def get_analytics_service(request: Request) -> AnalyticsService:
    return request.app.state.analytics_service


def get_client_ip(request: Request) -> str | None:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None
