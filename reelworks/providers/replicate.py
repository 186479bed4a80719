"""Replicate predictions adapter."""

import logging

from ..errors import ProviderError
from ..http import request_with_backoff
from .base import PollResult, ProviderAdapter, ProviderParams, ProviderStatus

logger = logging.getLogger(__name__)

REPLICATE_API_BASE = "https://api.replicate.com/v1"
DEFAULT_MODEL = "minimax/video-01"

_STATUS_MAP = {
    "starting": ProviderStatus.PROCESSING,
    "processing": ProviderStatus.PROCESSING,
    "succeeded": ProviderStatus.SUCCESS,
    "failed": ProviderStatus.ERROR,
    "canceled": ProviderStatus.ERROR,
}


def normalize_status(raw_status: str) -> ProviderStatus:
    return _STATUS_MAP.get(raw_status, ProviderStatus.PROCESSING)


def _extract_video_url(output):
    # Models return a bare URL, a list of URLs, or {"video": url}
    if isinstance(output, str):
        return output
    if isinstance(output, list) and output:
        return output[0]
    if isinstance(output, dict):
        return output.get("video")
    return None


class ReplicateAdapter(ProviderAdapter):
    name = "replicate"

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def submit(self, params: ProviderParams) -> str:
        self._require_available()

        model = params.model if params.model and "/" in params.model else DEFAULT_MODEL
        model_input = {"prompt": params.prompt}
        if params.avatar_image:
            model_input["first_frame_image"] = params.avatar_image

        response = await request_with_backoff(
            self._http, "POST", f"{REPLICATE_API_BASE}/models/{model}/predictions",
            headers=self._headers(), json={"input": model_input},
        )
        self._raise_for_status(response, "submit")

        data = response.json()
        prediction_id = data.get("id")
        if not prediction_id:
            raise ProviderError(self.name, f"no prediction id in response: {data}")
        logger.info(f"[replicate] Prediction {prediction_id} created on {model}")
        return prediction_id

    async def poll(self, external_id: str) -> PollResult:
        response = await request_with_backoff(
            self._http, "GET", f"{REPLICATE_API_BASE}/predictions/{external_id}",
            headers=self._headers(),
        )
        self._raise_for_status(response, "status check")

        data = response.json()
        status = normalize_status(data.get("status", ""))
        if status is ProviderStatus.SUCCESS:
            url = _extract_video_url(data.get("output"))
            if not url:
                return PollResult(status=ProviderStatus.ERROR, error="Completed but no video URL found")
            return PollResult(status=status, result_url=url)
        if status is ProviderStatus.ERROR:
            return PollResult(status=status, error=data.get("error") or data.get("status"))
        return PollResult(status=status)
