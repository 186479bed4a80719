"""
Models shared by the social side: platforms, connected accounts, queue
entries and their request schemas, plus the single-pass request validator
used by every exposed operation.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .db import parse_ts
from .errors import ValidationError


# ── Platforms & Accounts ─────────────────────────────────────────────────────

class Platform(str, Enum):
    YOUTUBE = "youtube"
    INSTAGRAM = "instagram"


class ConnectedAccount(BaseModel):
    user_id: str
    platform: Platform
    platform_user_id: str = ""
    platform_username: str = ""
    access_token: str
    refresh_token: Optional[str] = None
    token_expires_at: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class AccountInfo(BaseModel):
    platform: Platform
    is_connected: bool
    username: Optional[str] = None


# ── Queue ────────────────────────────────────────────────────────────────────

class QueueStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    POSTED = "posted"
    FAILED = "failed"


ACTIVE_QUEUE_STATUSES = [QueueStatus.QUEUED.value, QueueStatus.PROCESSING.value]


class PlatformResult(BaseModel):
    platform: str
    success: bool
    post_id: Optional[str] = None
    post_url: Optional[str] = None
    error: Optional[str] = None


class QueueEntry(BaseModel):
    id: str
    user_id: str
    video_id: str
    scheduled_at: str
    platforms: list[Platform]
    status: QueueStatus = QueueStatus.QUEUED
    results: list[PlatformResult] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ── Request Schemas ──────────────────────────────────────────────────────────

def _iso_timestamp(value: str) -> str:
    try:
        parse_ts(value)
    except ValueError:
        raise ValueError("must be an ISO-8601 timestamp")
    return value


class EnqueueRequest(BaseModel):
    video_id: str = Field(..., min_length=1)
    platforms: list[Platform] = Field(..., min_length=1)
    scheduled_at: str = Field(..., min_length=1)

    @field_validator("scheduled_at")
    @classmethod
    def check_scheduled_at(cls, v):
        return _iso_timestamp(v)


class UpdateQueueRequest(BaseModel):
    scheduled_at: Optional[str] = None
    platforms: Optional[list[Platform]] = Field(None, min_length=1)

    @field_validator("scheduled_at")
    @classmethod
    def check_scheduled_at(cls, v):
        return None if v is None else _iso_timestamp(v)

    def violations(self) -> list[str]:
        if self.scheduled_at is None and self.platforms is None:
            return ["No fields to update"]
        return []


class ServiceResponse(BaseModel):
    """Envelope every exposed operation returns."""

    success: bool
    message: str
    data: Any = None
    status_code: int = 200
    error_code: Optional[str] = None


def validate_request(schema: type[BaseModel], payload: dict[str, Any]):
    """Validate a payload in one pass, raising ValidationError listing every violation."""
    try:
        parsed = schema.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e) from e

    check = getattr(parsed, "violations", None)
    problems = check() if check else []
    if problems:
        raise ValidationError("; ".join(problems), problems)
    return parsed
