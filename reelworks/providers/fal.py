"""
fal.ai adapter using the queue REST API (submit, poll status, fetch result).

fal.ai queue protocol:
  POST /{endpoint}                              → { request_id, ... }
  GET  /{endpoint}/requests/{request_id}/status → { status: IN_QUEUE|IN_PROGRESS|COMPLETED }
  GET  /{endpoint}/requests/{request_id}        → result payload
"""

import logging

from ..errors import ProviderError
from ..http import request_with_backoff
from .base import PollResult, ProviderAdapter, ProviderParams, ProviderStatus

logger = logging.getLogger(__name__)

FAL_API_BASE = "https://queue.fal.run"

# ── fal.ai endpoints ─────────────────────────────────────────────────────────
DEFAULT_ENDPOINT = "fal-ai/ltx-video"

NEGATIVE_PROMPT = "worst quality, low quality, blurry, distorted, bad anatomy, bad proportions"
FRAMES_PER_SECOND = 24
MAX_FRAMES = 97

_STATUS_MAP = {
    "IN_QUEUE": ProviderStatus.PROCESSING,
    "IN_PROGRESS": ProviderStatus.PROCESSING,
    "COMPLETED": ProviderStatus.SUCCESS,
    "FAILED": ProviderStatus.ERROR,
    "ERROR": ProviderStatus.ERROR,
}


def normalize_status(raw_status: str) -> ProviderStatus:
    return _STATUS_MAP.get(raw_status, ProviderStatus.PROCESSING)


def _extract_video_url(result: dict):
    video = result.get("video") or (result.get("output") or {}).get("video")
    if isinstance(video, dict):
        return video.get("url")
    return video


class FalAdapter(ProviderAdapter):
    name = "fal"

    def __init__(self, http, api_key: str = "", endpoint: str = DEFAULT_ENDPOINT):
        super().__init__(http, api_key)
        self.endpoint = endpoint

    def _headers(self) -> dict:
        return {
            "Authorization": f"Key {self._api_key}",
            "Content-Type": "application/json",
        }

    def _requests_url(self, request_id: str) -> str:
        return f"{FAL_API_BASE}/{self.endpoint}/requests/{request_id}"

    async def submit(self, params: ProviderParams) -> str:
        self._require_available()

        input_data = {
            "prompt": params.prompt,
            "negative_prompt": NEGATIVE_PROMPT,
            "num_frames": min(params.duration * FRAMES_PER_SECOND, MAX_FRAMES),
            "fps": FRAMES_PER_SECOND,
            "aspect_ratio": params.aspect_ratio,
        }
        if params.avatar_image:
            input_data["image_url"] = params.avatar_image

        response = await request_with_backoff(
            self._http, "POST", f"{FAL_API_BASE}/{self.endpoint}",
            headers=self._headers(), json=input_data,
        )
        self._raise_for_status(response, "submit")

        submit_data = response.json()
        request_id = submit_data.get("request_id")
        if not request_id:
            raise ProviderError(self.name, f"No request_id in fal.ai response: {submit_data}")

        logger.info(f"[fal] Queued: request_id={request_id}")
        return request_id

    async def poll(self, external_id: str) -> PollResult:
        response = await request_with_backoff(
            self._http, "GET", f"{self._requests_url(external_id)}/status",
            headers=self._headers(),
        )
        self._raise_for_status(response, "status check")

        status_data = response.json()
        status = normalize_status(status_data.get("status", ""))
        logger.debug(f"[fal] {external_id} status: {status_data.get('status')}")

        if status is ProviderStatus.ERROR:
            return PollResult(status=status, error=status_data.get("error") or "Unknown error")
        if status is ProviderStatus.PROCESSING:
            return PollResult(status=status)

        result_resp = await request_with_backoff(
            self._http, "GET", self._requests_url(external_id), headers=self._headers(),
        )
        self._raise_for_status(result_resp, "result fetch")
        url = _extract_video_url(result_resp.json())
        if not url:
            return PollResult(status=ProviderStatus.ERROR, error="Completed but no video URL found")
        return PollResult(status=ProviderStatus.SUCCESS, result_url=url)
