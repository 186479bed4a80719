from __future__ import annotations

import httpx
import pytest

from reelworks import http as http_helpers
from reelworks.errors import PlatformPublishError
from reelworks.models import ConnectedAccount, Platform
from reelworks.publishers import InstagramPublisher, YouTubePublisher


@pytest.fixture(autouse=True)
def _no_backoff_delay(monkeypatch) -> None:
    monkeypatch.setattr(http_helpers, "BASE_DELAY", 0)
    monkeypatch.setattr(http_helpers, "JITTER_MAX", 0)


def _account(platform: Platform, platform_user_id: str = "1784") -> ConnectedAccount:
    return ConnectedAccount(
        user_id="user-1",
        platform=platform,
        platform_user_id=platform_user_id,
        access_token="tok",
    )


@pytest.mark.anyio
async def test_youtube_resumable_upload() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(f"{request.method} {request.url.host}")
        if request.url.host == "cdn.example":
            return httpx.Response(200, content=b"mp4-bytes")
        if request.method == "POST":
            assert request.url.params["uploadType"] == "resumable"
            assert request.headers["X-Upload-Content-Length"] == "9"
            return httpx.Response(200, headers={"Location": "https://upload.example/session-1"})
        assert request.content == b"mp4-bytes"
        return httpx.Response(200, json={"id": "yt-123"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await YouTubePublisher(client).publish(
            _account(Platform.YOUTUBE), "https://cdn.example/v.mp4", "Title", "Desc", ["#space"]
        )

    assert result.post_id == "yt-123"
    assert result.post_url == "https://youtube.com/watch?v=yt-123"
    assert seen == ["GET cdn.example", "POST www.googleapis.com", "PUT upload.example"]


@pytest.mark.anyio
async def test_youtube_rejected_session_is_a_publish_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, content=b"x")
        return httpx.Response(403, json={"error": {"message": "quotaExceeded"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(PlatformPublishError, match="youtube: upload session rejected"):
            await YouTubePublisher(client).publish(
                _account(Platform.YOUTUBE), "https://cdn.example/v.mp4", "T", "D", []
            )


@pytest.mark.anyio
async def test_instagram_waits_for_container_then_publishes() -> None:
    statuses = ["IN_PROGRESS", "FINISHED"]

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/media"):
            return httpx.Response(200, json={"id": "container-1"})
        if request.url.path.endswith("/media_publish"):
            return httpx.Response(200, json={"id": "reel-9"})
        return httpx.Response(200, json={"status_code": statuses.pop(0)})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await InstagramPublisher(client, poll_interval=0).publish(
            _account(Platform.INSTAGRAM), "https://cdn.example/v.mp4", "T", "D", ["#space"]
        )

    assert result.post_id == "reel-9"
    assert statuses == []


@pytest.mark.anyio
async def test_instagram_container_error_stops_publishing() -> None:
    published: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/media"):
            return httpx.Response(200, json={"id": "container-1"})
        if request.url.path.endswith("/media_publish"):
            published.append("called")
            return httpx.Response(200, json={"id": "reel-9"})
        return httpx.Response(200, json={"status_code": "ERROR", "status": "unsupported codec"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(PlatformPublishError, match="unsupported codec"):
            await InstagramPublisher(client, poll_interval=0).publish(
                _account(Platform.INSTAGRAM), "https://cdn.example/v.mp4", "T", "D", []
            )

    assert published == []
