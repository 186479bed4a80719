from __future__ import annotations

import json

import httpx
import pytest

from reelworks import http as http_helpers
from reelworks.errors import ProviderError, ValidationError
from reelworks.providers import ProviderParams, ProviderStatus
from reelworks.providers import fal, heygen, kie, replicate, skyreels


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def _no_backoff_delay(monkeypatch) -> None:
    monkeypatch.setattr(http_helpers, "BASE_DELAY", 0)
    monkeypatch.setattr(http_helpers, "JITTER_MAX", 0)


@pytest.mark.parametrize(
    "raw, flag, expected",
    [
        ("GENERATING", None, ProviderStatus.PROCESSING),
        ("", 0, ProviderStatus.PROCESSING),
        ("SUCCESS", None, ProviderStatus.SUCCESS),
        ("", 1, ProviderStatus.SUCCESS),
        ("SENSITIVE_WORD_ERROR", None, ProviderStatus.ERROR),
        ("", 3, ProviderStatus.ERROR),
    ],
)
def test_kie_status_vocabulary(raw, flag, expected) -> None:
    assert kie.normalize_status(raw, flag) is expected


def test_other_vocabularies_map_unknown_values_to_processing() -> None:
    assert fal.normalize_status("IN_QUEUE") is ProviderStatus.PROCESSING
    assert fal.normalize_status("COMPLETED") is ProviderStatus.SUCCESS
    assert replicate.normalize_status("canceled") is ProviderStatus.ERROR
    assert replicate.normalize_status("starting") is ProviderStatus.PROCESSING
    assert heygen.normalize_status("waiting") is ProviderStatus.PROCESSING
    assert skyreels.normalize_status("error") is ProviderStatus.ERROR
    assert skyreels.normalize_status("something-new") is ProviderStatus.PROCESSING


@pytest.mark.anyio
async def test_kie_submit_and_poll_success() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/veo/generate"):
            body = json.loads(request.content)
            assert body["model"] == "veo3_fast"
            assert body["aspectRatio"] == "9:16"
            return httpx.Response(200, json={"code": 200, "data": {"taskId": "task-1"}})
        assert request.url.params["taskId"] == "task-1"
        return httpx.Response(200, json={
            "code": 200,
            "data": {"successFlag": 1, "response": {"resultUrls": ["https://kie/out.mp4"]}},
        })

    async with _client(handler) as client:
        adapter = kie.KieAdapter(client, "kie-key")
        external_id = await adapter.submit(ProviderParams(prompt="a cat surfing"))
        result = await adapter.poll(external_id)

    assert external_id == "task-1"
    assert seen[0].headers["Authorization"] == "Bearer kie-key"
    assert result.status is ProviderStatus.SUCCESS
    assert result.result_url == "https://kie/out.mp4"


@pytest.mark.anyio
async def test_kie_rejection_in_body_is_a_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": 402, "msg": "insufficient credits"})

    async with _client(handler) as client:
        with pytest.raises(ProviderError, match="insufficient credits"):
            await kie.KieAdapter(client, "kie-key").submit(ProviderParams(prompt="x"))


@pytest.mark.anyio
async def test_missing_api_key_fails_before_any_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with _client(handler) as client:
        with pytest.raises(ProviderError, match="API key not configured"):
            await replicate.ReplicateAdapter(client, "").submit(ProviderParams(prompt="x"))


@pytest.mark.anyio
async def test_fal_completed_status_fetches_result_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/status"):
            return httpx.Response(200, json={"status": "COMPLETED"})
        return httpx.Response(200, json={"video": {"url": "https://fal/out.mp4"}})

    async with _client(handler) as client:
        result = await fal.FalAdapter(client, "fal-key").poll("req-1")

    assert result.status is ProviderStatus.SUCCESS
    assert result.result_url == "https://fal/out.mp4"


@pytest.mark.anyio
async def test_fal_retries_gateway_errors_on_submit() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, json={"request_id": "req-7"})

    async with _client(handler) as client:
        external_id = await fal.FalAdapter(client, "fal-key").submit(ProviderParams(prompt="x"))

    assert external_id == "req-7"
    assert calls["n"] == 2


@pytest.mark.anyio
async def test_replicate_failed_prediction_carries_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "p-1", "status": "failed", "error": "NSFW content detected"})

    async with _client(handler) as client:
        result = await replicate.ReplicateAdapter(client, "r8-token").poll("p-1")

    assert result.status is ProviderStatus.ERROR
    assert result.error == "NSFW content detected"


@pytest.mark.anyio
async def test_heygen_uses_script_voice_when_no_audio() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        voice = body["video_inputs"][0]["voice"]
        assert voice["type"] == "text"
        assert voice["input_text"] == "Hello from the avatar"
        return httpx.Response(200, json={"error": None, "data": {"video_id": "vid-1"}})

    async with _client(handler) as client:
        external_id = await heygen.HeyGenAdapter(client, "hg-key").submit(
            ProviderParams(script="Hello from the avatar")
        )

    assert external_id == "vid-1"


@pytest.mark.anyio
async def test_skyreels_requires_avatar_image_before_calling_out() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with _client(handler) as client:
        with pytest.raises(ValidationError, match="Avatar image is required for Image-to-Video generation"):
            await skyreels.SkyReelsAdapter(client, "sk-key").submit(
                ProviderParams(audio_url="https://a/voice.mp3")
            )


@pytest.mark.anyio
async def test_skyreels_envelope_error_is_a_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": 4001, "code_msg": "model schema not found"})

    async with _client(handler) as client:
        with pytest.raises(ProviderError, match="model schema not found"):
            await skyreels.SkyReelsAdapter(client, "sk-key").submit(
                ProviderParams(audio_url="https://a/voice.mp3", avatar_image="https://a/face.png")
            )


@pytest.mark.anyio
async def test_skyreels_success_reads_first_video_from_result() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/status"):
            return httpx.Response(200, json={"code": 200, "resp_data": {"status": "success"}})
        return httpx.Response(200, json={
            "code": 200,
            "resp_data": {"status": "success", "video_list": [{"url": "https://sky/out.mp4"}]},
        })

    async with _client(handler) as client:
        result = await skyreels.SkyReelsAdapter(client, "sk-key").poll("req-3")

    assert result.status is ProviderStatus.SUCCESS
    assert result.result_url == "https://sky/out.mp4"
