"""
Platform publish adapters.

Both take a publicly reachable video URL (the rendered job's resultUrl):
  YouTube:   download the file, then a resumable upload to the Data API
  Instagram: create a REELS container from the URL, wait until the
              container is FINISHED, then media_publish it
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .errors import PlatformPublishError
from .http import request_with_backoff
from .models import ConnectedAccount, Platform

logger = logging.getLogger(__name__)

YOUTUBE_UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"
GRAPH_API_BASE = "https://graph.facebook.com/v18.0"

CONTAINER_POLL_INTERVAL = 5   # seconds
CONTAINER_MAX_POLLS = 60


@dataclass
class PublishResult:
    post_id: str
    post_url: Optional[str] = None


class YouTubePublisher:
    platform = Platform.YOUTUBE

    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    async def publish(
        self,
        account: ConnectedAccount,
        video_url: str,
        title: str,
        description: str,
        tags: list[str],
    ) -> PublishResult:
        video = await self._http.get(video_url)
        if not video.is_success:
            raise PlatformPublishError("youtube", f"could not fetch video ({video.status_code})")
        content = video.content

        metadata = {
            "snippet": {
                "title": title[:100],
                "description": description,
                "tags": [t.lstrip("#") for t in tags],
                "categoryId": "22",
            },
            "status": {"privacyStatus": "public", "selfDeclaredMadeForKids": False},
        }
        session = await request_with_backoff(
            self._http, "POST", YOUTUBE_UPLOAD_URL,
            params={"uploadType": "resumable", "part": "snippet,status"},
            headers={
                "Authorization": f"Bearer {account.access_token}",
                "X-Upload-Content-Type": "video/mp4",
                "X-Upload-Content-Length": str(len(content)),
            },
            json=metadata,
        )
        upload_url = session.headers.get("Location")
        if not session.is_success or not upload_url:
            raise PlatformPublishError(
                "youtube", f"upload session rejected ({session.status_code}): {session.text[:200]}"
            )

        upload = await request_with_backoff(
            self._http, "PUT", upload_url,
            headers={"Authorization": f"Bearer {account.access_token}", "Content-Type": "video/mp4"},
            content=content,
        )
        if not upload.is_success:
            raise PlatformPublishError(
                "youtube", f"upload failed ({upload.status_code}): {upload.text[:200]}"
            )

        video_id = upload.json()["id"]
        logger.info(f"YouTube upload complete: {video_id}")
        return PublishResult(post_id=video_id, post_url=f"https://youtube.com/watch?v={video_id}")


class InstagramPublisher:
    platform = Platform.INSTAGRAM

    def __init__(self, http: httpx.AsyncClient, poll_interval: float = CONTAINER_POLL_INTERVAL):
        self._http = http
        self._poll_interval = poll_interval

    async def _wait_for_container(self, container_id: str, token: str):
        for _ in range(CONTAINER_MAX_POLLS):
            response = await request_with_backoff(
                self._http, "GET", f"{GRAPH_API_BASE}/{container_id}",
                params={"fields": "status_code,status", "access_token": token},
            )
            if not response.is_success:
                raise PlatformPublishError(
                    "instagram", f"container status failed ({response.status_code})"
                )
            data = response.json()
            status = data.get("status_code")
            if status == "FINISHED":
                return
            if status in ("ERROR", "EXPIRED"):
                raise PlatformPublishError("instagram", f"container {status}: {data.get('status', '')}")
            await asyncio.sleep(self._poll_interval)
        raise PlatformPublishError("instagram", "container was not ready in time")

    async def publish(
        self,
        account: ConnectedAccount,
        video_url: str,
        title: str,
        description: str,
        tags: list[str],
    ) -> PublishResult:
        ig_user_id = account.platform_user_id
        if not ig_user_id:
            raise PlatformPublishError("instagram", "account has no Instagram business id")

        caption = "\n\n".join(part for part in (description or title, " ".join(tags)) if part)
        container = await request_with_backoff(
            self._http, "POST", f"{GRAPH_API_BASE}/{ig_user_id}/media",
            data={
                "media_type": "REELS",
                "video_url": video_url,
                "caption": caption,
                "access_token": account.access_token,
            },
        )
        if not container.is_success:
            raise PlatformPublishError(
                "instagram", f"container rejected ({container.status_code}): {container.text[:200]}"
            )
        container_id = container.json()["id"]

        await self._wait_for_container(container_id, account.access_token)

        published = await request_with_backoff(
            self._http, "POST", f"{GRAPH_API_BASE}/{ig_user_id}/media_publish",
            data={"creation_id": container_id, "access_token": account.access_token},
        )
        if not published.is_success:
            raise PlatformPublishError(
                "instagram", f"publish failed ({published.status_code}): {published.text[:200]}"
            )

        reel_id = published.json()["id"]
        logger.info(f"Instagram reel published: {reel_id}")
        return PublishResult(post_id=reel_id, post_url=f"https://instagram.com/reel/{reel_id}")


def build_publishers(http: httpx.AsyncClient) -> dict:
    return {
        Platform.YOUTUBE: YouTubePublisher(http),
        Platform.INSTAGRAM: InstagramPublisher(http),
    }
