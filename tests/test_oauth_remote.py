from __future__ import annotations

import json
from urllib.parse import parse_qs

import httpx
import pytest

from reelworks import http as http_helpers
from reelworks.errors import OAuthError
from reelworks.models import ConnectedAccount, Platform
from reelworks.oauth import InstagramOAuth, YouTubeOAuth
from reelworks.pipeline.models import Job, JobKind, Scene
from reelworks.pipeline.remote import PollinationsImageGenerator, RemoteRenderer, RemoteSpeechSynthesizer
from reelworks.pipeline.script_gen import GeminiScriptGenerator


@pytest.fixture(autouse=True)
def _no_backoff_delay(monkeypatch) -> None:
    monkeypatch.setattr(http_helpers, "BASE_DELAY", 0)
    monkeypatch.setattr(http_helpers, "JITTER_MAX", 0)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _account(platform: Platform, refresh_token: str | None = None) -> ConnectedAccount:
    return ConnectedAccount(
        user_id="user-1",
        platform=platform,
        platform_user_id="acct-1",
        platform_username="someone",
        access_token="old",
        refresh_token=refresh_token,
    )


# ── OAuth ────────────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_youtube_refresh_keeps_refresh_token_when_not_rotated() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["refresh-1"]
        return httpx.Response(200, json={"access_token": "new", "expires_in": 3599})

    async with _client(handler) as client:
        grant = await YouTubeOAuth(client, "id", "secret", "uri").refresh(
            _account(Platform.YOUTUBE, refresh_token="refresh-1")
        )

    assert grant.access_token == "new"
    assert grant.refresh_token == "refresh-1"
    assert grant.expires_at is not None


@pytest.mark.anyio
async def test_youtube_revoked_grant_is_an_oauth_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant"})

    async with _client(handler) as client:
        with pytest.raises(OAuthError, match="invalid_grant"):
            await YouTubeOAuth(client, "id", "secret", "uri").refresh(
                _account(Platform.YOUTUBE, refresh_token="refresh-1")
            )


@pytest.mark.anyio
async def test_instagram_refresh_rederives_long_lived_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["grant_type"] == "fb_exchange_token"
        assert request.url.params["fb_exchange_token"] == "old"
        return httpx.Response(200, json={"access_token": "long-2"})

    async with _client(handler) as client:
        grant = await InstagramOAuth(client, "app", "secret", "uri").refresh(_account(Platform.INSTAGRAM))

    assert grant.access_token == "long-2"
    assert grant.platform_user_id == "acct-1"
    assert grant.expires_at is not None


@pytest.mark.anyio
async def test_instagram_connect_requires_a_business_account() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/me/accounts"):
            return httpx.Response(200, json={"data": [{"id": "page-1"}]})
        return httpx.Response(200, json={"access_token": "tok", "expires_in": 5184000})

    async with _client(handler) as client:
        with pytest.raises(OAuthError, match="No Instagram business account"):
            await InstagramOAuth(client, "app", "secret", "uri").exchange_code("code-1")


# ── Capability clients ───────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_speech_service_stub_is_reported_as_placeholder() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["voice"] == "en-US-JennyNeural"
        return httpx.Response(200, json={"audioUrl": "/audio/silent.mp3", "duration": 3, "isMock": True})

    async with _client(handler) as client:
        result = await RemoteSpeechSynthesizer(client, "http://tts").synthesize(
            "hello", "en-US", "en-US-JennyNeural", 1.0
        )

    assert result.is_placeholder is True
    assert result.has_audio is False


@pytest.mark.anyio
async def test_image_url_encodes_prompt_and_frame() -> None:
    requested: list[httpx.URL] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url)
        return httpx.Response(200, content=b"jpeg")

    async with _client(handler) as client:
        result = await PollinationsImageGenerator(client, "https://img.test").generate(
            "red planet sunrise", "cinematic", "high"
        )

    assert result.image_url.startswith("https://img.test/prompt/red%20planet%20sunrise?")
    assert requested[0].params["width"] == "1080"
    assert requested[0].params["height"] == "1920"
    assert requested[0].params["enhance"] == "true"


@pytest.mark.anyio
async def test_renderer_posts_scene_list_and_returns_file() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["videoId"] == "job-1"
        assert [s["id"] for s in body["scenes"]] == ["scene-0", "scene-1"]
        return httpx.Response(200, json={"file": "job-1.mp4"})

    job = Job(
        id="job-1",
        owner_id="user-1",
        kind=JobKind.STANDARD,
        scenes=[
            Scene(id="scene-0", narration="a", duration=5),
            Scene(id="scene-1", narration="b", duration=5),
        ],
    )

    async with _client(handler) as client:
        assert await RemoteRenderer(client, "http://render").render(job) == "job-1.mp4"


@pytest.mark.anyio
async def test_youtube_refresh_gateway_error_is_not_a_rejection() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="backend unavailable")

    async with _client(handler) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await YouTubeOAuth(client, "id", "secret", "uri").refresh(
                _account(Platform.YOUTUBE, refresh_token="refresh-1")
            )


@pytest.mark.anyio
async def test_script_generation_retries_rate_limits() -> None:
    calls = {"n": 0}
    script = {
        "title": "Mars in 60 seconds",
        "caption": "Red planet facts",
        "hashtags": ["#space"],
        "scenes": [{"narration": "Mars has two moons.", "textOverlay": "2 moons", "duration": 6}],
    }

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(429, json={"error": {"status": "RESOURCE_EXHAUSTED"}})
        return httpx.Response(200, json={
            "candidates": [{"content": {"parts": [{"text": json.dumps(script)}]}}],
        })

    async with _client(handler) as client:
        result = await GeminiScriptGenerator(client, "gem-key").generate("mars", 60, "en-US")

    assert calls["n"] == 2
    assert result.title == "Mars in 60 seconds"
    assert [s.narration for s in result.scenes] == ["Mars has two moons."]
