"""
Job Store: persistence for Generation Jobs and their scenes.

Every status change is a conditional update guarded by the job's current
status, so two workers racing on the same job cannot both advance it.
A transition that finds the job in an unexpected status is a no-op and
returns None; callers decide whether that is a conflict.
"""

import logging
from typing import Iterable, Optional, Union
from uuid import uuid4

from supabase import Client

from ..db import execute, now_iso
from ..errors import NotFoundError
from .models import Job, JobKind, JobStatus, can_transition

logger = logging.getLogger(__name__)

TABLE = "jobs"

NON_TERMINAL = [
    s.value for s in JobStatus if not s.terminal
]


def _row_to_job(row: dict) -> Job:
    return Job.model_validate(row)


class JobStore:
    def __init__(self, client: Client):
        self._client = client

    def _table(self):
        return self._client.table(TABLE)

    # ── Create / Read ────────────────────────────────────────────────────

    def create(self, owner_id: str, kind: JobKind, request: dict) -> Job:
        now = now_iso()
        job = Job(
            id=str(uuid4()),
            owner_id=owner_id,
            kind=kind,
            status=JobStatus.DRAFT,
            metadata={"request": request},
            created_at=now,
            updated_at=now,
        )
        execute(self._table().insert(job.model_dump(mode="json")), "job create")
        logger.info(f"[{job.id}] created {kind.value} job for user {owner_id}")
        return job

    def get(self, job_id: str, owner_id: Optional[str] = None) -> Job:
        """Fetch a job. With owner_id, a job owned by someone else is reported as missing."""
        query = self._table().select("*").eq("id", job_id)
        if owner_id is not None:
            query = query.eq("owner_id", owner_id)
        rows = execute(query.limit(1), "job read")
        if not rows:
            raise NotFoundError("Video not found")
        return _row_to_job(rows[0])

    def list_for_owner(self, owner_id: str, limit: int = 50) -> list[Job]:
        rows = execute(
            self._table()
            .select("*")
            .eq("owner_id", owner_id)
            .order("created_at", desc=True)
            .limit(limit),
            "job list",
        )
        return [_row_to_job(row) for row in rows]

    # ── Guarded Transitions ──────────────────────────────────────────────

    def transition(
        self,
        job_id: str,
        expected: Union[JobStatus, Iterable[JobStatus]],
        target: JobStatus,
        **fields,
    ) -> Optional[Job]:
        """
        Move a job to `target` only if it is currently in one of `expected`.

        Returns the updated job, or None when the guard did not match.
        """
        expected = [expected] if isinstance(expected, JobStatus) else list(expected)
        for current in expected:
            if not can_transition(current, target):
                raise ValueError(f"Illegal job transition {current.value} -> {target.value}")

        update = {key: _dump(value) for key, value in fields.items()}
        update["status"] = target.value
        update["updated_at"] = now_iso()
        if target is not JobStatus.COMPLETED:
            update["result_url"] = None
        if target is not JobStatus.FAILED:
            update["error_message"] = None

        query = self._table().update(update).eq("id", job_id)
        if len(expected) == 1:
            query = query.eq("status", expected[0].value)
        else:
            query = query.in_("status", [s.value for s in expected])

        rows = execute(query, f"job transition to {target.value}")
        if not rows:
            logger.warning(
                f"[{job_id}] transition to {target.value} skipped, not in "
                f"{[s.value for s in expected]}"
            )
            return None
        logger.info(f"[{job_id}] → {target.value}")
        return _row_to_job(rows[0])

    def update_fields(self, job_id: str, expected: JobStatus, **fields) -> Optional[Job]:
        """Write fields without changing status, only while the job is still in `expected`."""
        update = {key: _dump(value) for key, value in fields.items()}
        update["updated_at"] = now_iso()
        rows = execute(
            self._table().update(update).eq("id", job_id).eq("status", expected.value),
            "job update",
        )
        return _row_to_job(rows[0]) if rows else None

    def mark_completed(self, job_id: str, result_url: str) -> Optional[Job]:
        return self.transition(
            job_id, JobStatus.RENDERING, JobStatus.COMPLETED, result_url=result_url
        )

    def mark_failed(self, job_id: str, error_message: str) -> Optional[Job]:
        """Fail a job from any non-terminal status."""
        rows = execute(
            self._table()
            .update({
                "status": JobStatus.FAILED.value,
                "error_message": error_message or "Unknown error",
                "result_url": None,
                "updated_at": now_iso(),
            })
            .eq("id", job_id)
            .in_("status", NON_TERMINAL),
            "job fail",
        )
        if not rows:
            logger.warning(f"[{job_id}] already terminal, failure not recorded: {error_message}")
            return None
        logger.error(f"[{job_id}] → failed: {error_message}")
        return _row_to_job(rows[0])

    def reset_for_regenerate(self, job_id: str, metadata: dict) -> Optional[Job]:
        """Return a terminal job to draft, clearing its generated output."""
        return self.transition(
            job_id,
            [JobStatus.COMPLETED, JobStatus.FAILED],
            JobStatus.DRAFT,
            scenes=[],
            provider_ref=None,
            metadata=metadata,
        )


def _dump(value):
    """Serialise models (and lists of models) for a JSON column."""
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(v) for v in value]
    return value
