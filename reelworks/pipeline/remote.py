"""
HTTP clients for the speech, image and render capabilities.

Speech and rendering run as separate services next to the worker; images
come from Pollinations, which renders on first fetch of the prompt URL.
"""

import logging
from urllib.parse import quote

import httpx

from .. import config
from ..http import request_with_backoff
from .capabilities import ImageResult, SpeechResult
from .models import Job

logger = logging.getLogger(__name__)

# 9:16 vertical frame
IMAGE_WIDTH = 1080
IMAGE_HEIGHT = 1920


class RemoteSpeechSynthesizer:
    def __init__(self, http: httpx.AsyncClient, base_url: str = config.TTS_SERVICE_URL):
        self._http = http
        self._base_url = base_url.rstrip("/")

    async def synthesize(
        self, text: str, language: str, voice_name: str, speaking_rate: float
    ) -> SpeechResult:
        response = await request_with_backoff(
            self._http, "POST", f"{self._base_url}/synthesize",
            json={
                "text": text,
                "language": language,
                "voice": voice_name,
                "rate": speaking_rate,
            },
        )
        response.raise_for_status()
        data = response.json()
        return SpeechResult(
            audio_url=data.get("audioUrl"),
            duration=float(data.get("duration") or 0.0),
            is_placeholder=bool(data.get("isMock")),
        )


class PollinationsImageGenerator:
    def __init__(self, http: httpx.AsyncClient, base_url: str = config.IMAGE_API_BASE):
        self._http = http
        self._base_url = base_url.rstrip("/")

    async def generate(self, prompt: str, style: str, quality: str) -> ImageResult:
        url = (
            f"{self._base_url}/prompt/{quote(prompt)}"
            f"?width={IMAGE_WIDTH}&height={IMAGE_HEIGHT}&nologo=true"
        )
        if quality == "high":
            url += "&enhance=true"

        # Fetching triggers generation; a non-2xx means no usable image
        response = await request_with_backoff(self._http, "GET", url)
        response.raise_for_status()
        return ImageResult(image_url=url, extra={"style": style, "quality": quality})


class RemoteRenderer:
    def __init__(self, http: httpx.AsyncClient, base_url: str = config.RENDER_SERVICE_URL):
        self._http = http
        self._base_url = base_url.rstrip("/")

    async def render(self, job: Job) -> str:
        payload = {
            "videoId": job.id,
            "title": job.title,
            "scenes": [scene.model_dump(mode="json") for scene in job.scenes],
            "output": f"{job.id}.mp4",
        }
        logger.info(f"[{job.id}] render requested ({len(job.scenes)} scenes)")
        response = await request_with_backoff(
            self._http, "POST", f"{self._base_url}/render", json=payload,
            timeout=config.PROVIDER_WAIT_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        return response.json().get("file") or payload["output"]
