"""
Posting Orchestrator: publishes one claimed queue entry to every requested
platform and records the per-platform breakdown.

Platforms are posted concurrently and independently. A missing or dead
credential, or a platform rejecting the upload, is recorded as that
platform's failure and never aborts its siblings. The entry ends `posted`
only if every platform succeeded.
"""

import asyncio
import logging
from typing import Optional, Protocol

import httpx

from .errors import ConflictError, NotFoundError, PlatformPublishError
from .models import ConnectedAccount, Platform, PlatformResult, QueueEntry
from .pipeline.job_store import JobStore
from .pipeline.models import Job, JobStatus
from .publishers import PublishResult
from .queue import QueueStore
from .token_vault import TokenVault

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    async def publish(
        self,
        account: ConnectedAccount,
        video_url: str,
        title: str,
        description: str,
        tags: list[str],
    ) -> PublishResult:
        ...


def _failure(platform: Platform, error: str) -> PlatformResult:
    return PlatformResult(platform=platform.value, success=False, error=error)


class PostingOrchestrator:
    def __init__(
        self,
        queue: QueueStore,
        jobs: JobStore,
        vault: TokenVault,
        publishers: dict[Platform, Publisher],
    ):
        self.queue = queue
        self.jobs = jobs
        self.vault = vault
        self.publishers = publishers

    async def _post_to_platform(self, entry: QueueEntry, job: Job, platform: Platform) -> PlatformResult:
        try:
            return await self._publish(entry, job, platform)
        except Exception as e:
            logger.error(f"[queue {entry.id}] {platform.value} posting crashed: {e}", exc_info=True)
            return _failure(platform, f"{platform.value}: {e.__class__.__name__}: {e}")

    async def _publish(self, entry: QueueEntry, job: Job, platform: Platform) -> PlatformResult:
        account = await self.vault.get_valid_account(entry.user_id, platform)
        if account is None:
            return _failure(platform, f"{platform.value} account not connected")

        publisher = self.publishers.get(platform)
        if publisher is None:
            return _failure(platform, f"{platform.value} publishing is not available")

        try:
            published = await publisher.publish(
                account,
                job.result_url,
                job.title or "",
                job.caption or "",
                job.hashtags,
            )
        except PlatformPublishError as e:
            logger.warning(f"[queue {entry.id}] {platform.value} rejected the post: {e.message}")
            return _failure(platform, e.message)
        except httpx.HTTPError as e:
            logger.warning(f"[queue {entry.id}] {platform.value} unreachable: {e}")
            return _failure(platform, f"{platform.value}: {e}")

        logger.info(f"[queue {entry.id}] posted to {platform.value}: {published.post_id}")
        return PlatformResult(
            platform=platform.value,
            success=True,
            post_id=published.post_id,
            post_url=published.post_url,
        )

    async def post_entry(self, entry: QueueEntry) -> Optional[QueueEntry]:
        """Publish a claimed (processing) entry and record the outcome.

        The entry is always finalized, even if collecting results fails
        part-way; platforms without a recorded outcome are marked failed.
        """
        results: list[PlatformResult] = []
        try:
            try:
                job = self.jobs.get(entry.video_id)
            except NotFoundError:
                job = None

            if job is None:
                results = [_failure(p, "Video not found") for p in entry.platforms]
            elif job.status is not JobStatus.COMPLETED or not job.result_url:
                results = [
                    _failure(p, f"Video is not ready for posting ({job.status.value})")
                    for p in entry.platforms
                ]
            else:
                results = list(await asyncio.gather(*(
                    self._post_to_platform(entry, job, platform) for platform in entry.platforms
                )))
        finally:
            recorded = {r.platform for r in results}
            results += [
                _failure(p, "Posting was interrupted")
                for p in entry.platforms if p.value not in recorded
            ]
            succeeded = sum(1 for r in results if r.success)
            logger.info(f"[queue {entry.id}] {succeeded}/{len(results)} platforms succeeded")
            finalized = self.queue.finalize(entry.id, results)
        return finalized

    async def post_now(self, entry_id: str, user_id: str) -> Optional[QueueEntry]:
        """Dispatch an entry ahead of schedule, with the same claim the scheduler uses."""
        self.queue.get(entry_id, user_id)
        claimed = self.queue.claim(entry_id)
        if claimed is None:
            current = self.queue.get(entry_id, user_id)
            raise ConflictError(f"Queue item is already {current.status.value}")
        logger.info(f"[queue {entry_id}] immediate dispatch by user {user_id}")
        return await self.post_entry(claimed)
