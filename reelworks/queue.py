"""
Queue Store: scheduled-posting entries in `video_queue`.

Lifecycle:
  1. enqueue          → queued
  2. claim            → processing (conditional update, exactly one winner)
  3. finalize         → posted | failed, with the per-platform breakdown
  4. requeue (manual) → failed back to queued, results cleared

Failed entries are never retried automatically. Remove and update are
only allowed while an entry is still queued.

At most one active (queued or processing) entry exists per user and video.
The `_has_active` check gives the friendly error up front; the partial
unique index in migrations/001_video_queue.sql is what holds under races.
"""

import logging
from typing import Optional
from uuid import uuid4

from supabase import Client

from .db import execute, now_iso
from .errors import ConflictError, NotFoundError
from .models import ACTIVE_QUEUE_STATUSES, PlatformResult, QueueEntry, QueueStatus
from .pipeline.job_store import JobStore

logger = logging.getLogger(__name__)

TABLE = "video_queue"
DEFAULT_PAGE_SIZE = 20
DUPLICATE_MESSAGE = "Video is already in queue. Remove it first to reschedule."


def _row_to_entry(row: dict) -> QueueEntry:
    return QueueEntry.model_validate(row)


class QueueStore:
    def __init__(self, client: Client, jobs: JobStore):
        self._client = client
        self._jobs = jobs

    def _table(self):
        return self._client.table(TABLE)

    # ── Enqueue ──────────────────────────────────────────────────────────

    def _has_active(self, user_id: str, video_id: str) -> bool:
        rows = execute(
            self._table()
            .select("id")
            .eq("user_id", user_id)
            .eq("video_id", video_id)
            .in_("status", ACTIVE_QUEUE_STATUSES)
            .limit(1),
            "queue duplicate check",
        )
        return bool(rows)

    def enqueue(
        self, user_id: str, video_id: str, platforms: list, scheduled_at: str
    ) -> QueueEntry:
        """Add a video to the posting queue. The video must be a job owned by `user_id`."""
        self._jobs.get(video_id, user_id)

        if self._has_active(user_id, video_id):
            raise ConflictError(DUPLICATE_MESSAGE)

        now = now_iso()
        entry = QueueEntry(
            id=str(uuid4()),
            user_id=user_id,
            video_id=video_id,
            scheduled_at=scheduled_at,
            platforms=platforms,
            status=QueueStatus.QUEUED,
            created_at=now,
            updated_at=now,
        )
        execute(
            self._table().insert(entry.model_dump(mode="json")),
            "queue insert",
            on_conflict=DUPLICATE_MESSAGE,
        )
        logger.info(
            f"[queue {entry.id}] video {video_id} queued for "
            f"{[p.value for p in entry.platforms]} at {scheduled_at}"
        )
        return entry

    # ── Read ─────────────────────────────────────────────────────────────

    def get(self, entry_id: str, user_id: Optional[str] = None) -> QueueEntry:
        query = self._table().select("*").eq("id", entry_id)
        if user_id is not None:
            query = query.eq("user_id", user_id)
        rows = execute(query.limit(1), "queue read")
        if not rows:
            raise NotFoundError("Queue item not found")
        return _row_to_entry(rows[0])

    def list_due(self, now: str, limit: int = 50) -> list[QueueEntry]:
        rows = execute(
            self._table()
            .select("*")
            .eq("status", QueueStatus.QUEUED.value)
            .lte("scheduled_at", now)
            .order("scheduled_at")
            .limit(limit),
            "queue due scan",
        )
        return [_row_to_entry(row) for row in rows]

    def list_for_user(
        self,
        user_id: str,
        status: Optional[QueueStatus] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> list[QueueEntry]:
        page = max(page, 1)
        query = self._table().select("*").eq("user_id", user_id)
        if status is not None:
            query = query.eq("status", status.value)
        start = (page - 1) * page_size
        rows = execute(
            query.order("scheduled_at").range(start, start + page_size - 1),
            "queue list",
        )
        return [_row_to_entry(row) for row in rows]

    # ── Guarded Transitions ──────────────────────────────────────────────

    def _conditional_update(
        self, entry_id: str, expected: QueueStatus, update: dict, action: str, on_conflict: Optional[str] = None
    ):
        update["updated_at"] = now_iso()
        rows = execute(
            self._table().update(update).eq("id", entry_id).eq("status", expected.value),
            action,
            on_conflict=on_conflict,
        )
        return _row_to_entry(rows[0]) if rows else None

    def claim(self, entry_id: str) -> Optional[QueueEntry]:
        """Atomically move an entry from queued to processing. None if someone else got it."""
        entry = self._conditional_update(
            entry_id, QueueStatus.QUEUED, {"status": QueueStatus.PROCESSING.value}, "queue claim"
        )
        if entry is None:
            logger.info(f"[queue {entry_id}] claim lost, already taken")
        return entry

    def finalize(self, entry_id: str, results: list[PlatformResult]) -> Optional[QueueEntry]:
        status = QueueStatus.POSTED if results and all(r.success for r in results) else QueueStatus.FAILED
        entry = self._conditional_update(
            entry_id,
            QueueStatus.PROCESSING,
            {
                "status": status.value,
                "results": [r.model_dump(mode="json") for r in results],
            },
            "queue finalize",
        )
        if entry is None:
            logger.warning(f"[queue {entry_id}] finalize skipped, entry is no longer processing")
        else:
            logger.info(f"[queue {entry_id}] → {status.value}")
        return entry

    def _require_queued(self, entry_id: str, user_id: str, action: str) -> QueueEntry:
        entry = self.get(entry_id, user_id)
        if entry.status is not QueueStatus.QUEUED:
            raise ConflictError(f"Cannot {action} a queue item that is {entry.status.value}")
        return entry

    def remove(self, entry_id: str, user_id: str):
        self._require_queued(entry_id, user_id, "remove")
        rows = execute(
            self._table()
            .delete()
            .eq("id", entry_id)
            .eq("user_id", user_id)
            .eq("status", QueueStatus.QUEUED.value),
            "queue remove",
        )
        if not rows:
            raise ConflictError("Queue item was picked up before it could be removed")
        logger.info(f"[queue {entry_id}] removed by user {user_id}")

    def update(
        self,
        entry_id: str,
        user_id: str,
        scheduled_at: Optional[str] = None,
        platforms: Optional[list] = None,
    ) -> QueueEntry:
        self._require_queued(entry_id, user_id, "update")
        update = {}
        if scheduled_at is not None:
            update["scheduled_at"] = scheduled_at
        if platforms is not None:
            update["platforms"] = [getattr(p, "value", p) for p in platforms]

        entry = self._conditional_update(entry_id, QueueStatus.QUEUED, update, "queue update")
        if entry is None:
            raise ConflictError("Queue item was picked up before it could be updated")
        return entry

    def requeue(self, entry_id: str, user_id: str, scheduled_at: Optional[str] = None) -> QueueEntry:
        """Manually re-arm a failed entry. Results from the failed attempt are cleared."""
        entry = self.get(entry_id, user_id)
        if entry.status is not QueueStatus.FAILED:
            raise ConflictError(f"Only failed queue items can be requeued (is {entry.status.value})")
        if self._has_active(user_id, entry.video_id):
            raise ConflictError(DUPLICATE_MESSAGE)

        update = {"status": QueueStatus.QUEUED.value, "results": []}
        if scheduled_at is not None:
            update["scheduled_at"] = scheduled_at
        requeued = self._conditional_update(
            entry_id, QueueStatus.FAILED, update, "queue requeue", on_conflict=DUPLICATE_MESSAGE
        )
        if requeued is None:
            raise ConflictError("Queue item changed state before it could be requeued")
        logger.info(f"[queue {entry_id}] requeued by user {user_id}")
        return requeued
