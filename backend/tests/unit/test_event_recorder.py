"""
Tests for the tracking event recorder.
"""

import pytest

from piper_tracking.core.exceptions import StorageError
from piper_tracking.models.tracking_event import ComplaintType
from piper_tracking.monitoring.metrics import REGISTRY
from piper_tracking.services.event_recorder import (
    EventRecorder,
    detect_device_type,
    extract_utm_params,
)

IPHONE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148"
IPAD_UA = "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) Mobile/15E148"
DESKTOP_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0"


def _sample(name: str, event_type: str) -> float:
    return REGISTRY.get_sample_value(name, {"event_type": event_type}) or 0.0


class TestDeviceDetection:
    """Test cases for user agent classification."""

    @pytest.mark.parametrize(
        "user_agent,expected",
        [
            (DESKTOP_UA, "desktop"),
            (IPHONE_UA, "mobile"),
            (IPAD_UA, "tablet"),
            ("Mozilla/5.0 (Linux; Android 14; Pixel 8) Mobile Safari", "mobile"),
            ("GoogleImageProxy", "other"),
            ("Unknown", "other"),
            (None, "other"),
        ],
    )
    def test_detect_device_type(self, user_agent, expected):
        assert detect_device_type(user_agent) == expected


class TestUtmExtraction:

    def test_extracts_utm_fields(self):
        url = "https://example.com/p?utm_source=news&utm_medium=email&utm_campaign=oct&x=1"

        assert extract_utm_params(url) == {
            "utm_source": "news",
            "utm_medium": "email",
            "utm_campaign": "oct",
        }

    def test_no_query(self):
        assert extract_utm_params("https://example.com/") == {}


class TestEventRecorder:
    """Test cases for EventRecorder."""

    @pytest.mark.asyncio
    async def test_record_open_appends_one_event(self, session_factory):
        recorder = EventRecorder(session_factory)

        event = await recorder.record_open("e1", "s1", "c1", "203.0.113.9", IPHONE_UA)

        assert event is not None
        assert session_factory.committed == [event]
        assert event.event_type == "open"
        assert event.ip_address == "203.0.113.9"
        assert event.device_type == "mobile"

    @pytest.mark.asyncio
    async def test_repeated_opens_are_not_deduplicated(self, session_factory):
        recorder = EventRecorder(session_factory)

        await recorder.record_open("e1", "s1", "c1", "203.0.113.9", DESKTOP_UA)
        await recorder.record_open("e1", "s1", "c1", "203.0.113.9", DESKTOP_UA)

        assert len(session_factory.committed) == 2
        assert session_factory.committed[0].id != session_factory.committed[1].id

    @pytest.mark.asyncio
    async def test_record_click_stores_link_and_utm(self, session_factory):
        recorder = EventRecorder(session_factory)

        event = await recorder.record_click(
            "e1", "s1", "c1", "cta",
            "https://example.com/offer?utm_source=piper&utm_medium=email",
            "198.51.100.4", DESKTOP_UA,
        )

        assert event.event_type == "click"
        assert event.link_id == "cta"
        assert event.link_url.startswith("https://example.com/offer")
        assert event.utm_source == "piper"
        assert event.utm_medium == "email"
        assert event.utm_campaign is None
        assert event.device_type == "desktop"

    @pytest.mark.asyncio
    async def test_open_failure_is_swallowed_and_counted(self, failing_session_factory):
        recorder = EventRecorder(failing_session_factory)
        before = _sample("piper_tracking_events_dropped_total", "open")

        result = await recorder.record_open("e1", "s1", "c1", None, None)

        assert result is None
        assert _sample("piper_tracking_events_dropped_total", "open") == before + 1

    @pytest.mark.asyncio
    async def test_click_failure_is_swallowed_and_counted(self, failing_session_factory):
        recorder = EventRecorder(failing_session_factory)
        before = _sample("piper_tracking_events_dropped_total", "click")

        result = await recorder.record_click(
            "e1", "s1", "c1", "l1", "https://example.com/", None, None
        )

        assert result is None
        assert _sample("piper_tracking_events_dropped_total", "click") == before + 1

    @pytest.mark.asyncio
    async def test_successful_append_is_counted(self, session_factory):
        recorder = EventRecorder(session_factory)
        before = _sample("piper_tracking_events_recorded_total", "unsubscribe")

        await recorder.record_unsubscribe("e1", "s1", "c1", None)

        assert _sample("piper_tracking_events_recorded_total", "unsubscribe") == before + 1

    @pytest.mark.asyncio
    async def test_record_unsubscribe(self, session_factory):
        recorder = EventRecorder(session_factory)

        event = await recorder.record_unsubscribe("e1", "s1", "c1", "203.0.113.9", reason="Too many emails")

        assert event.event_type == "unsubscribe"
        assert event.reason == "Too many emails"
        assert session_factory.committed == [event]

    @pytest.mark.asyncio
    async def test_unsubscribe_failure_raises_storage_error(self, failing_session_factory):
        recorder = EventRecorder(failing_session_factory)

        with pytest.raises(StorageError) as exc_info:
            await recorder.record_unsubscribe("e1", "s1", "c1", None)

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_record_spam_complaint_defaults_to_spam(self, session_factory):
        recorder = EventRecorder(session_factory)

        event = await recorder.record_spam_complaint("e1", "s1", "c1", None)

        assert event.event_type == "spam_complaint"
        assert event.complaint_type == "spam"

    @pytest.mark.asyncio
    async def test_record_spam_complaint_with_type_and_feedback(self, session_factory):
        recorder = EventRecorder(session_factory)

        event = await recorder.record_spam_complaint(
            "e1", "s1", "c1", None, complaint_type=ComplaintType.ABUSE, feedback="Never signed up"
        )

        assert event.complaint_type == "abuse"
        assert event.feedback == "Never signed up"

    @pytest.mark.asyncio
    async def test_spam_complaint_failure_raises_storage_error(self, failing_session_factory):
        recorder = EventRecorder(failing_session_factory)

        with pytest.raises(StorageError):
            await recorder.record_spam_complaint("e1", "s1", "c1", None)
