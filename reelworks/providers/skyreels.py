"""
SkyReels single-avatar adapter, served through the APIFree gateway.

Every response is wrapped in an envelope `{code, code_msg, resp_data}`;
anything other than code 200 is a provider-side rejection.
"""

import logging

from ..errors import ProviderError, ValidationError
from ..http import request_with_backoff
from .base import PollResult, ProviderAdapter, ProviderParams, ProviderStatus

logger = logging.getLogger(__name__)

SKYREELS_API_BASE = "https://api.apifree.ai/v1"
DEFAULT_MODEL = "skywork-ai/skyreels-v3/standard/single-avatar"

# Models that animate a still image (first frame) rather than generating one
IMAGE_TO_VIDEO_MODELS = {
    "skywork-ai/skyreels-v3/standard/single-avatar",
    "skywork-ai/skyreels-v3/pro/single-avatar",
}

_STATUS_MAP = {
    "processing": ProviderStatus.PROCESSING,
    "queued": ProviderStatus.PROCESSING,
    "success": ProviderStatus.SUCCESS,
    "failed": ProviderStatus.ERROR,
    "error": ProviderStatus.ERROR,
}


def normalize_status(raw_status: str) -> ProviderStatus:
    return _STATUS_MAP.get(raw_status, ProviderStatus.PROCESSING)


class SkyReelsAdapter(ProviderAdapter):
    name = "skyreels"

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}

    def _unwrap(self, response, action: str) -> dict:
        self._raise_for_status(response, action)
        body = response.json()
        if body.get("code") != 200:
            raise ProviderError(self.name, body.get("code_msg") or f"{action} rejected")
        return body.get("resp_data") or {}

    async def submit(self, params: ProviderParams) -> str:
        model = params.model or DEFAULT_MODEL
        if model in IMAGE_TO_VIDEO_MODELS and not params.avatar_image:
            raise ValidationError("Avatar image is required for Image-to-Video generation")
        if not params.audio_url:
            raise ValidationError("An audio_url is required for SkyReels avatar generation")
        self._require_available()

        payload = {
            "model": model,
            "audios": [params.audio_url],
            "prompt": params.prompt or "A person talking naturally to the camera",
        }
        if params.avatar_image:
            payload["first_frame_image"] = params.avatar_image

        response = await request_with_backoff(
            self._http, "POST", f"{SKYREELS_API_BASE}/video/submit",
            headers=self._headers(), json=payload,
        )
        data = self._unwrap(response, "submit")
        request_id = data.get("request_id")
        if not request_id:
            raise ProviderError(self.name, "no request_id in response")
        logger.info(f"[skyreels] Submitted request {request_id} ({model})")
        return request_id

    async def poll(self, external_id: str) -> PollResult:
        response = await request_with_backoff(
            self._http, "GET", f"{SKYREELS_API_BASE}/video/{external_id}/status",
            headers=self._headers(),
        )
        data = self._unwrap(response, "status check")
        status = normalize_status(data.get("status", ""))

        if status is ProviderStatus.ERROR:
            return PollResult(status=status, error=data.get("error") or "Generation failed")
        if status is ProviderStatus.PROCESSING:
            return PollResult(status=status)

        result_resp = await request_with_backoff(
            self._http, "GET", f"{SKYREELS_API_BASE}/video/{external_id}/result",
            headers=self._headers(),
        )
        result = self._unwrap(result_resp, "result fetch")
        videos = result.get("video_list") or result.get("videoList") or []
        if not videos or not videos[0].get("url"):
            return PollResult(status=ProviderStatus.ERROR, error="Completed but no video URL found")
        return PollResult(status=ProviderStatus.SUCCESS, result_url=videos[0]["url"])
