"""
HeyGen talking-avatar adapter.

Generation is driven either by a pre-rendered audio track or, when no
audio is given, by script text spoken with a stock voice.
"""

import logging

from ..errors import ProviderError, ValidationError
from ..http import request_with_backoff
from .base import PollResult, ProviderAdapter, ProviderParams, ProviderStatus

logger = logging.getLogger(__name__)

HEYGEN_API_BASE = "https://api.heygen.com"
DEFAULT_AVATAR_ID = "default-avatar"
DEFAULT_VOICE_ID = "cef3bc4e0a84424cafcde6f2cf466c97"

_STATUS_MAP = {
    "pending": ProviderStatus.PROCESSING,
    "waiting": ProviderStatus.PROCESSING,
    "processing": ProviderStatus.PROCESSING,
    "completed": ProviderStatus.SUCCESS,
    "failed": ProviderStatus.ERROR,
}


def normalize_status(raw_status: str) -> ProviderStatus:
    return _STATUS_MAP.get(raw_status, ProviderStatus.PROCESSING)


class HeyGenAdapter(ProviderAdapter):
    name = "heygen"

    def _headers(self) -> dict:
        return {"X-Api-Key": self._api_key, "Content-Type": "application/json"}

    def _build_payload(self, params: ProviderParams) -> dict:
        if params.audio_url:
            voice = {"type": "audio", "audio_url": params.audio_url}
        elif params.script:
            voice = {"type": "text", "input_text": params.script, "voice_id": DEFAULT_VOICE_ID}
        else:
            raise ValidationError("An audio_url or script is required for avatar generation")

        video_input = {
            "character": {
                "type": "avatar",
                "avatar_id": params.model or DEFAULT_AVATAR_ID,
                "avatar_style": "normal",
            },
            "voice": voice,
        }
        if params.avatar_image:
            video_input["background"] = {"type": "image", "url": params.avatar_image}

        return {
            "video_inputs": [video_input],
            "dimension": {"width": 720, "height": 1280},
        }

    async def submit(self, params: ProviderParams) -> str:
        payload = self._build_payload(params)
        self._require_available()

        response = await request_with_backoff(
            self._http, "POST", f"{HEYGEN_API_BASE}/v2/video/generate",
            headers=self._headers(), json=payload,
        )
        self._raise_for_status(response, "submit")

        body = response.json()
        if body.get("error"):
            raise ProviderError(self.name, str(body["error"]))
        video_id = (body.get("data") or {}).get("video_id")
        if not video_id:
            raise ProviderError(self.name, f"no video_id in response: {body}")
        logger.info(f"[heygen] Video {video_id} submitted")
        return video_id

    async def poll(self, external_id: str) -> PollResult:
        response = await request_with_backoff(
            self._http, "GET", f"{HEYGEN_API_BASE}/v1/video_status.get",
            headers=self._headers(), params={"video_id": external_id},
        )
        self._raise_for_status(response, "status check")

        data = response.json().get("data") or {}
        status = normalize_status(data.get("status", ""))
        if status is ProviderStatus.SUCCESS:
            if not data.get("video_url"):
                return PollResult(status=ProviderStatus.ERROR, error="Completed but no video URL found")
            return PollResult(status=status, result_url=data["video_url"])
        if status is ProviderStatus.ERROR:
            error = data.get("error")
            if isinstance(error, dict):
                error = error.get("message") or error.get("detail")
            return PollResult(status=status, error=error or "Unknown error")
        return PollResult(status=status)
