"""
Public email tracking endpoints.

The open and click endpoints are unauthenticated because they are embedded
in outgoing emails. They never fail from the reader's point of view: a bad
token or a storage outage still yields the pixel or the redirect.

Routes:
    GET  /track/open/{tracking_id}   - 1x1 transparent pixel (records open)
    GET  /track/click/{tracking_id}  - Click redirect (records click, redirects)
    POST /track/unsubscribe          - Record an unsubscribe
    POST /track/spam                 - Record a spam complaint
    POST /track/generate-pixel       - Build a pixel URL (authenticated)
    POST /track/generate-link        - Build a click-tracking URL (authenticated)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse, Response

from piper_tracking.api.deps import get_client_ip, get_event_recorder, get_tracking_codec
from piper_tracking.core.config import settings
from piper_tracking.core.exceptions import (
    MalformedRedirectURL,
    MalformedTrackingToken,
    ValidationError,
)
from piper_tracking.core.security import TokenData, require_auth
from piper_tracking.middleware.rate_limit import limiter
from piper_tracking.models.tracking_event import TrackingEvent
from piper_tracking.monitoring.metrics import track_malformed_token
from piper_tracking.schemas.tracking import (
    GenerateLinkRequest,
    GeneratePixelRequest,
    PixelUrlResponse,
    SpamComplaintRequest,
    SpamComplaintResponse,
    TrackingEventResponse,
    TrackingLinkResponse,
    UnsubscribeRequest,
    UnsubscribeResponse,
)
from piper_tracking.services.event_recorder import EventRecorder
from piper_tracking.services.tracking_codec import TrackingCodec, decode_redirect_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/track", tags=["Tracking"])

# Transparent 1x1 GIF pixel (43 bytes)
TRACKING_PIXEL = (
    b"\x47\x49\x46\x38\x39\x61\x01\x00\x01\x00\x80\x00\x00"
    b"\xff\xff\xff\x00\x00\x00\x21\xf9\x04\x00\x00\x00\x00"
    b"\x00\x2c\x00\x00\x00\x00\x01\x00\x01\x00\x00\x02\x02"
    b"\x44\x01\x00\x3b"
)

PIXEL_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _pixel_response() -> Response:
    return Response(content=TRACKING_PIXEL, media_type="image/gif", headers=PIXEL_HEADERS)


def _user_agent(request: Request) -> str:
    return request.headers.get("User-Agent") or "Unknown"


def _event_response(event: TrackingEvent) -> TrackingEventResponse:
    return TrackingEventResponse(
        id=str(event.id),
        event_type=event.event_type,
        email_id=event.email_id,
        subscriber_id=event.subscriber_id,
        campaign_id=event.campaign_id,
        reason=event.reason,
        complaint_type=event.complaint_type,
        feedback=event.feedback,
    )


@router.get("/open/{tracking_id:path}")
async def track_open(
    tracking_id: str,
    request: Request,
    codec: TrackingCodec = Depends(get_tracking_codec),
    recorder: EventRecorder = Depends(get_event_recorder),
):
    """Record an email open event and return a 1x1 transparent pixel.

    Embedded in emails as: <img src="{pixel_url}" width="1" height="1" />
    """
    try:
        ids = codec.decode(tracking_id)
    except MalformedTrackingToken:
        # Still return the pixel (don't break email rendering) but don't record
        logger.warning("Invalid tracking ID for open: %s", tracking_id[:64])
        track_malformed_token("open", "token")
        return _pixel_response()

    try:
        await recorder.record_open(
            ids.email_id,
            ids.subscriber_id,
            ids.campaign_id,
            ip_address=get_client_ip(request),
            user_agent=_user_agent(request),
        )
    except Exception as exc:
        logger.error("Error recording open for %s: %s", tracking_id[:64], exc)

    return _pixel_response()


@router.get("/click/{tracking_id:path}")
async def track_click(
    tracking_id: str,
    request: Request,
    url: Optional[str] = Query(default=None, description="Base64-encoded destination URL"),
    codec: TrackingCodec = Depends(get_tracking_codec),
    recorder: EventRecorder = Depends(get_event_recorder),
):
    """Record a link click and redirect to the original destination URL.

    Links in emails are rewritten to pass through this endpoint.
    """
    if not url:
        raise ValidationError("URL parameter is required")

    try:
        destination = decode_redirect_url(url)
    except MalformedRedirectURL:
        logger.warning("Invalid redirect URL for click: %s", tracking_id[:64])
        track_malformed_token("click", "url")
        raise

    try:
        ids = codec.decode(tracking_id)
    except MalformedTrackingToken:
        # Still redirect so the user experience isn't broken
        logger.warning("Invalid tracking ID for click: %s", tracking_id[:64])
        track_malformed_token("click", "token")
        return RedirectResponse(url=destination, status_code=302)

    try:
        await recorder.record_click(
            ids.email_id,
            ids.subscriber_id,
            ids.campaign_id,
            link_id=ids.link_id,
            destination_url=destination,
            ip_address=get_client_ip(request),
            user_agent=_user_agent(request),
        )
    except Exception as exc:
        logger.error("Error recording click for %s: %s", tracking_id[:64], exc)

    return RedirectResponse(url=destination, status_code=302)


@router.post("/unsubscribe", response_model=UnsubscribeResponse)
@limiter.limit(settings.rate_limit_feedback)
async def unsubscribe(
    request: Request,
    payload: UnsubscribeRequest,
    recorder: EventRecorder = Depends(get_event_recorder),
):
    """Record an unsubscribe request."""
    event = await recorder.record_unsubscribe(
        payload.email_id,
        payload.subscriber_id,
        payload.campaign_id,
        ip_address=get_client_ip(request),
        reason=payload.reason,
    )
    return UnsubscribeResponse(
        message="Unsubscribe request processed successfully",
        unsubscribe=_event_response(event),
    )


@router.post("/spam", response_model=SpamComplaintResponse)
@limiter.limit(settings.rate_limit_feedback)
async def spam_complaint(
    request: Request,
    payload: SpamComplaintRequest,
    recorder: EventRecorder = Depends(get_event_recorder),
):
    """Record a spam complaint."""
    event = await recorder.record_spam_complaint(
        payload.email_id,
        payload.subscriber_id,
        payload.campaign_id,
        ip_address=get_client_ip(request),
        complaint_type=payload.complaint_type,
        feedback=payload.feedback,
    )
    return SpamComplaintResponse(
        message="Spam complaint processed successfully",
        spam_complaint=_event_response(event),
    )


@router.post("/generate-pixel", response_model=PixelUrlResponse)
async def generate_pixel(
    payload: GeneratePixelRequest,
    current_user: TokenData = Depends(require_auth),
    codec: TrackingCodec = Depends(get_tracking_codec),
):
    """Build the open-tracking pixel URL for one outbound message."""
    return PixelUrlResponse(
        pixel_url=codec.pixel_url(payload.email_id, payload.subscriber_id, payload.campaign_id),
    )


@router.post("/generate-link", response_model=TrackingLinkResponse)
async def generate_link(
    payload: GenerateLinkRequest,
    current_user: TokenData = Depends(require_auth),
    codec: TrackingCodec = Depends(get_tracking_codec),
):
    """Wrap a destination URL in a click-tracking redirect."""
    return TrackingLinkResponse(
        tracking_link=codec.tracking_link(
            str(payload.original_url),
            payload.email_id,
            payload.subscriber_id,
            payload.campaign_id,
            payload.link_id,
        ),
    )
