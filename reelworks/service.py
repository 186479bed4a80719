"""
Exposed operations.

Every call returns a ServiceResponse envelope. ReelworksError subclasses
become failure envelopes carrying their status code and error code; any
other exception propagates to the transport layer unchanged.
"""

import functools
import logging
from typing import Any, Optional

from .errors import AuthError, ReelworksError, ValidationError
from .models import (
    EnqueueRequest,
    Platform,
    QueueStatus,
    ServiceResponse,
    UpdateQueueRequest,
    validate_request,
)
from .pipeline.orchestrator import GenerationPipeline
from .posting import PostingOrchestrator
from .queue import QueueStore
from .token_vault import TokenVault

logger = logging.getLogger(__name__)


def _dump(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(v) for v in value]
    return value


def envelope(fn):
    """Map ReelworksError raised by an operation to a failure ServiceResponse."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs) -> ServiceResponse:
        try:
            return await fn(*args, **kwargs)
        except ReelworksError as e:
            logger.info(f"{fn.__name__} failed ({e.code}): {e.message}")
            return ServiceResponse(
                success=False,
                message=e.message,
                data={"violations": e.violations} if isinstance(e, ValidationError) else None,
                status_code=e.status_code,
                error_code=e.code,
            )

    return wrapper


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise AuthError("Authentication required")
    return user_id


def _platform(value) -> Platform:
    try:
        return Platform(value)
    except ValueError:
        raise ValidationError("Invalid platform. Must be youtube or instagram")


class ReelworksService:
    def __init__(
        self,
        pipeline: GenerationPipeline,
        queue: QueueStore,
        posting: PostingOrchestrator,
        vault: TokenVault,
    ):
        self.pipeline = pipeline
        self.queue = queue
        self.posting = posting
        self.vault = vault

    # ── Videos ───────────────────────────────────────────────────────────

    @envelope
    async def create_video(self, user_id: Optional[str], payload: dict) -> ServiceResponse:
        job = self.pipeline.create_job(user_id, payload)
        job = await self.pipeline.run_pipeline(job.id)
        return ServiceResponse(
            success=True,
            message="Video generation started",
            data=_dump(job),
            status_code=201,
        )

    @envelope
    async def get_video(self, user_id: Optional[str], job_id: str) -> ServiceResponse:
        job = self.pipeline.get_status(job_id, user_id)
        return ServiceResponse(success=True, message="Video retrieved", data=_dump(job))

    @envelope
    async def list_videos(self, user_id: Optional[str], limit: int = 50) -> ServiceResponse:
        jobs = self.pipeline.list_jobs(user_id, limit)
        return ServiceResponse(success=True, message=f"{len(jobs)} videos", data=_dump(jobs))

    @envelope
    async def regenerate_video(self, user_id: Optional[str], job_id: str) -> ServiceResponse:
        job = await self.pipeline.regenerate(job_id, user_id)
        return ServiceResponse(success=True, message="Video regeneration started", data=_dump(job))

    # ── Queue ────────────────────────────────────────────────────────────

    @envelope
    async def enqueue(self, user_id: Optional[str], payload: dict) -> ServiceResponse:
        user_id = _require_user(user_id)
        request = validate_request(EnqueueRequest, payload)
        entry = self.queue.enqueue(user_id, request.video_id, request.platforms, request.scheduled_at)
        return ServiceResponse(
            success=True, message="Video added to queue", data=_dump(entry), status_code=201
        )

    @envelope
    async def list_queue(
        self,
        user_id: Optional[str],
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> ServiceResponse:
        user_id = _require_user(user_id)
        try:
            status_filter = QueueStatus(status) if status else None
        except ValueError:
            raise ValidationError(f"Invalid status filter: {status}")
        entries = self.queue.list_for_user(user_id, status_filter, page, page_size)
        return ServiceResponse(
            success=True,
            message="Queue retrieved",
            data={"items": _dump(entries), "page": page, "page_size": page_size},
        )

    @envelope
    async def update_queue_entry(self, user_id: Optional[str], entry_id: str, payload: dict) -> ServiceResponse:
        user_id = _require_user(user_id)
        request = validate_request(UpdateQueueRequest, payload)
        entry = self.queue.update(entry_id, user_id, request.scheduled_at, request.platforms)
        return ServiceResponse(success=True, message="Queue item updated", data=_dump(entry))

    @envelope
    async def remove_from_queue(self, user_id: Optional[str], entry_id: str) -> ServiceResponse:
        user_id = _require_user(user_id)
        self.queue.remove(entry_id, user_id)
        return ServiceResponse(success=True, message="Video removed from queue")

    @envelope
    async def post_now(self, user_id: Optional[str], entry_id: str) -> ServiceResponse:
        user_id = _require_user(user_id)
        entry = await self.posting.post_now(entry_id, user_id)
        posted = entry is not None and entry.status is QueueStatus.POSTED
        return ServiceResponse(
            success=True,
            message="Video posted" if posted else "Posting finished with errors",
            data=_dump(entry),
        )

    @envelope
    async def requeue(self, user_id: Optional[str], entry_id: str, scheduled_at: Optional[str] = None) -> ServiceResponse:
        user_id = _require_user(user_id)
        if scheduled_at is not None:
            scheduled_at = validate_request(UpdateQueueRequest, {"scheduled_at": scheduled_at}).scheduled_at
        entry = self.queue.requeue(entry_id, user_id, scheduled_at)
        return ServiceResponse(success=True, message="Queue item requeued", data=_dump(entry))

    # ── Accounts ─────────────────────────────────────────────────────────

    @envelope
    async def list_accounts(self, user_id: Optional[str]) -> ServiceResponse:
        user_id = _require_user(user_id)
        accounts = self.vault.list_accounts(user_id)
        return ServiceResponse(success=True, message="Accounts retrieved", data=_dump(accounts))

    @envelope
    async def connect_account(self, user_id: Optional[str], platform: str, code: str) -> ServiceResponse:
        user_id = _require_user(user_id)
        if not code:
            raise ValidationError("Authorization code is required")
        account = await self.vault.connect_account(user_id, _platform(platform), code)
        return ServiceResponse(
            success=True,
            message=f"{account.platform.value} connected",
            data={"platform": account.platform.value, "username": account.platform_username},
        )

    @envelope
    async def disconnect_account(self, user_id: Optional[str], platform: str) -> ServiceResponse:
        user_id = _require_user(user_id)
        platform = _platform(platform)
        self.vault.disconnect(user_id, platform)
        return ServiceResponse(success=True, message=f"{platform.value} disconnected")
