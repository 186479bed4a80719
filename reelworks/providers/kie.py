"""
Kie.ai adapter (Veo family).

Kie reports progress two ways: `data.status` (SUCCESS / GENERATING /
PENDING / GENERATE_FAILED ...) and, for Veo, `data.successFlag`
(0 generating, 1 success, 2/3 failed). Either may be present.
"""

import logging

from ..errors import ProviderError
from ..http import request_with_backoff
from .base import PollResult, ProviderAdapter, ProviderParams, ProviderStatus

logger = logging.getLogger(__name__)

KIE_API_BASE = "https://api.kie.ai/api/v1"
GENERATE_PATH = "veo/generate"
STATUS_PATH = "veo/record-info"
DEFAULT_MODEL = "veo-3.1-fast"

# Map our internal model IDs to Kie.ai API model names
MODEL_API_NAMES = {
    "veo-3.1-fast": "veo3_fast",
    "veo-3.1-quality": "veo3",
    "product-showcase-1": "veo3_fast",
}

_SUCCESS = {"SUCCESS", "success"}
_FAILED = {"GENERATE_FAILED", "CREATE_TASK_FAILED", "SENSITIVE_WORD_ERROR", "fail"}


def normalize_status(raw_status: str, success_flag) -> ProviderStatus:
    if raw_status in _SUCCESS or success_flag == 1:
        return ProviderStatus.SUCCESS
    if raw_status in _FAILED or success_flag in (2, 3):
        return ProviderStatus.ERROR
    return ProviderStatus.PROCESSING


def _extract_video_url(data: dict):
    response = data.get("response") or {}
    urls = response.get("resultUrls") if isinstance(response, dict) else None
    if urls:
        return urls[0]

    # Some models use a "results" or "works" array with "url" or "videoUrl" keys
    results = data.get("results") or data.get("works") or []
    if results and isinstance(results, list) and isinstance(results[0], dict):
        first = results[0]
        url = first.get("url") or first.get("videoUrl") or first.get("video_url")
        if url:
            return url
    return data.get("videoUrl") or data.get("url") or data.get("video_url")


class KieAdapter(ProviderAdapter):
    name = "kie"

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"}

    async def submit(self, params: ProviderParams) -> str:
        self._require_available()

        payload = {
            "prompt": params.prompt,
            "aspectRatio": params.aspect_ratio,
        }
        if params.avatar_image:
            # REFERENCE_2_VIDEO must use veo3_fast for 9:16 compatibility
            payload["mode"] = "REFERENCE_2_VIDEO"
            payload["model"] = "veo3_fast"
            payload["imageUrls"] = [params.avatar_image]
        else:
            model = params.model or DEFAULT_MODEL
            payload["model"] = MODEL_API_NAMES.get(model, MODEL_API_NAMES[DEFAULT_MODEL])

        logger.info(f"Kie.ai submit: model={payload['model']}, mode={payload.get('mode', 'TEXT_2_VIDEO')}")
        response = await request_with_backoff(
            self._http, "POST", f"{KIE_API_BASE}/{GENERATE_PATH}",
            headers=self._headers(), json=payload,
        )
        self._raise_for_status(response, "submit")

        body = response.json()
        if body.get("code") not in (None, 200):
            raise ProviderError(self.name, body.get("msg") or f"rejected with code {body.get('code')}")

        data = body.get("data") or {}
        task_id = data.get("taskId") or data.get("task_id") or body.get("taskId")
        if not task_id:
            raise ProviderError(self.name, f"no taskId in response: {body}")
        return task_id

    async def poll(self, external_id: str) -> PollResult:
        response = await request_with_backoff(
            self._http, "GET", f"{KIE_API_BASE}/{STATUS_PATH}",
            headers=self._headers(), params={"taskId": external_id},
        )
        self._raise_for_status(response, "status check")

        data = response.json().get("data")
        if not isinstance(data, dict):
            data = {}

        status = normalize_status(data.get("status", ""), data.get("successFlag"))
        if status is ProviderStatus.SUCCESS:
            url = _extract_video_url(data)
            if not url:
                return PollResult(status=ProviderStatus.ERROR, error="Completed but no video URL found")
            return PollResult(status=status, result_url=url)
        if status is ProviderStatus.ERROR:
            error = data.get("errorMessage") or data.get("failReason") or data.get("msg") or "Unknown error"
            return PollResult(status=status, error=error)
        return PollResult(status=status)
