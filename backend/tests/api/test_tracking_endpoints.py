"""
API tests for the public tracking endpoints.
"""

import pytest

from piper_tracking.api.v1.tracking import TRACKING_PIXEL
from piper_tracking.core.security import require_auth
from piper_tracking.services.event_recorder import EventRecorder
from piper_tracking.services.tracking_codec import encode_redirect_url

BROWSER = {"User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0"}


def _assert_pixel(response):
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/gif"
    assert response.headers["cache-control"] == "no-store, no-cache, must-revalidate, private"
    assert response.content == TRACKING_PIXEL
    assert len(response.content) == 43


class TestOpenPixel:
    """Test cases for GET /track/open/{trackingId}."""

    @pytest.mark.asyncio
    async def test_records_open_and_serves_pixel(self, client, codec, session_factory):
        token = codec.encode("email-1", "sub-1", "camp-1")

        response = await client.get(
            f"/api/v1/track/open/{token}",
            headers={**BROWSER, "X-Forwarded-For": "203.0.113.5, 10.0.0.1"},
        )

        _assert_pixel(response)
        assert len(session_factory.committed) == 1
        event = session_factory.committed[0]
        assert (event.event_type, event.email_id, event.subscriber_id, event.campaign_id) == (
            "open", "email-1", "sub-1", "camp-1"
        )
        assert event.ip_address == "203.0.113.5"
        assert event.device_type == "desktop"

    @pytest.mark.asyncio
    async def test_malformed_token_still_serves_pixel(self, client, session_factory):
        response = await client.get("/api/v1/track/open/not-a-real-token", headers=BROWSER)

        _assert_pixel(response)
        assert session_factory.committed == []

    @pytest.mark.asyncio
    async def test_token_with_slash_still_serves_pixel(self, client, session_factory):
        response = await client.get("/api/v1/track/open/a%2Fb", headers=BROWSER)

        _assert_pixel(response)
        assert session_factory.committed == []

    @pytest.mark.asyncio
    async def test_storage_failure_still_serves_pixel(self, app, client, codec, failing_session_factory):
        app.state.event_recorder = EventRecorder(failing_session_factory)
        token = codec.encode("email-1", "sub-1", "camp-1")

        response = await client.get(f"/api/v1/track/open/{token}", headers=BROWSER)

        _assert_pixel(response)

    @pytest.mark.asyncio
    async def test_repeated_fetches_append_each_time(self, client, codec, session_factory):
        token = codec.encode("email-1", "sub-1", "camp-1")

        for _ in range(3):
            await client.get(f"/api/v1/track/open/{token}", headers=BROWSER)

        assert len(session_factory.committed) == 3


class TestClickRedirect:
    """Test cases for GET /track/click/{trackingId}."""

    @pytest.mark.asyncio
    async def test_records_click_and_redirects(self, client, codec, session_factory):
        destination = "https://example.com/offer?utm_source=piper"
        token = codec.encode("email-1", "sub-1", "camp-1", "cta")

        response = await client.get(
            f"/api/v1/track/click/{token}",
            params={"url": encode_redirect_url(destination)},
            headers=BROWSER,
        )

        assert response.status_code == 302
        assert response.headers["location"] == destination
        event = session_factory.committed[0]
        assert event.event_type == "click"
        assert event.link_id == "cta"
        assert event.link_url == destination
        assert event.utm_source == "piper"

    @pytest.mark.asyncio
    async def test_missing_url(self, client, codec):
        token = codec.encode("email-1", "sub-1", "camp-1", "cta")

        response = await client.get(f"/api/v1/track/click/{token}")

        assert response.status_code == 400
        assert response.json() == {"error": "URL parameter is required"}

    @pytest.mark.asyncio
    async def test_undecodable_url(self, client, codec, session_factory):
        token = codec.encode("email-1", "sub-1", "camp-1", "cta")

        response = await client.get(f"/api/v1/track/click/{token}", params={"url": "%%%not base64"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid URL encoding"}
        assert session_factory.committed == []

    @pytest.mark.asyncio
    async def test_unparseable_url(self, client, codec, session_factory):
        token = codec.encode("email-1", "sub-1", "camp-1", "cta")

        response = await client.get(
            f"/api/v1/track/click/{token}",
            params={"url": encode_redirect_url("http://[oops/path")},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid URL encoding"}
        assert session_factory.committed == []

    @pytest.mark.asyncio
    async def test_token_with_slash_still_redirects(self, client, session_factory):
        response = await client.get(
            "/api/v1/track/click/a%2Fb",
            params={"url": encode_redirect_url("https://example.com/")},
        )

        assert response.status_code == 302
        assert response.headers["location"] == "https://example.com/"
        assert session_factory.committed == []

    @pytest.mark.asyncio
    async def test_malformed_token_still_redirects(self, client, session_factory):
        destination = "https://example.com/"

        response = await client.get(
            "/api/v1/track/click/garbage",
            params={"url": encode_redirect_url(destination)},
        )

        assert response.status_code == 302
        assert response.headers["location"] == destination
        assert session_factory.committed == []

    @pytest.mark.asyncio
    async def test_storage_failure_still_redirects(self, app, client, codec, failing_session_factory):
        app.state.event_recorder = EventRecorder(failing_session_factory)
        token = codec.encode("email-1", "sub-1", "camp-1", "cta")

        response = await client.get(
            f"/api/v1/track/click/{token}",
            params={"url": encode_redirect_url("https://example.com/a")},
        )

        assert response.status_code == 302
        assert response.headers["location"] == "https://example.com/a"


class TestUnsubscribe:
    """Test cases for POST /track/unsubscribe."""

    @pytest.mark.asyncio
    async def test_unsubscribe(self, client, session_factory):
        response = await client.post(
            "/api/v1/track/unsubscribe",
            json={"emailId": "email-1", "subscriberId": "sub-1", "campaignId": "camp-1", "reason": "Too many"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Unsubscribe request processed successfully"
        assert data["unsubscribe"]["eventType"] == "unsubscribe"
        assert data["unsubscribe"]["subscriberId"] == "sub-1"
        assert data["unsubscribe"]["reason"] == "Too many"
        assert len(session_factory.committed) == 1

    @pytest.mark.asyncio
    async def test_missing_field_is_validation_error(self, client, session_factory):
        response = await client.post(
            "/api/v1/track/unsubscribe",
            json={"emailId": "email-1", "subscriberId": "sub-1"},
        )

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Validation failed"
        assert any(d["field"] == "campaignId" for d in data["details"])
        assert session_factory.committed == []

    @pytest.mark.asyncio
    async def test_storage_failure_is_500(self, app, client, failing_session_factory):
        app.state.event_recorder = EventRecorder(failing_session_factory)

        response = await client.post(
            "/api/v1/track/unsubscribe",
            json={"emailId": "email-1", "subscriberId": "sub-1", "campaignId": "camp-1"},
        )

        assert response.status_code == 500
        assert "error" in response.json()


class TestSpamComplaint:
    """Test cases for POST /track/spam."""

    @pytest.mark.asyncio
    async def test_defaults_to_spam(self, client):
        response = await client.post(
            "/api/v1/track/spam",
            json={"emailId": "email-1", "subscriberId": "sub-1", "campaignId": "camp-1"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Spam complaint processed successfully"
        assert data["spamComplaint"]["complaintType"] == "spam"

    @pytest.mark.asyncio
    async def test_abuse_with_feedback(self, client, session_factory):
        response = await client.post(
            "/api/v1/track/spam",
            json={
                "emailId": "email-1",
                "subscriberId": "sub-1",
                "campaignId": "camp-1",
                "complaintType": "abuse",
                "feedback": "Never signed up",
            },
        )

        assert response.status_code == 200
        assert session_factory.committed[0].complaint_type == "abuse"
        assert session_factory.committed[0].feedback == "Never signed up"

    @pytest.mark.asyncio
    async def test_unknown_complaint_type_rejected(self, client):
        response = await client.post(
            "/api/v1/track/spam",
            json={"emailId": "e", "subscriberId": "s", "campaignId": "c", "complaintType": "phishing"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Validation failed"


class TestGenerateUrls:
    """Test cases for the authenticated URL builders."""

    @pytest.mark.asyncio
    async def test_generate_pixel(self, client, codec):
        response = await client.post(
            "/api/v1/track/generate-pixel",
            json={"emailId": "email-1", "subscriberId": "sub-1", "campaignId": "camp-1"},
        )

        assert response.status_code == 200
        pixel_url = response.json()["pixelUrl"]
        prefix = "http://track.test/api/v1/track/open/"
        assert pixel_url.startswith(prefix)
        assert codec.decode(pixel_url[len(prefix):]).campaign_id == "camp-1"

    @pytest.mark.asyncio
    async def test_generated_link_redirects_and_records(self, client, session_factory):
        response = await client.post(
            "/api/v1/track/generate-link",
            json={
                "originalUrl": "https://example.com/pricing?plan=pro",
                "emailId": "email-1",
                "subscriberId": "sub-1",
                "campaignId": "camp-1",
                "linkId": "pricing",
            },
        )
        assert response.status_code == 200
        link = response.json()["trackingLink"]

        followed = await client.get(link.replace("http://track.test", ""))

        assert followed.status_code == 302
        assert followed.headers["location"] == "https://example.com/pricing?plan=pro"
        assert session_factory.committed[0].link_id == "pricing"

    @pytest.mark.asyncio
    async def test_generate_requires_auth(self, app, client):
        app.dependency_overrides.pop(require_auth)

        response = await client.post(
            "/api/v1/track/generate-pixel",
            json={"emailId": "email-1", "subscriberId": "sub-1", "campaignId": "camp-1"},
        )

        assert response.status_code == 401
