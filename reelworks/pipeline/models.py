"""
Pydantic models and enums for generation jobs.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..providers.registry import ProviderName


# ── Job Kind & Status ────────────────────────────────────────────────────────

class JobKind(str, Enum):
    STANDARD = "standard"
    TEXT_TO_VIDEO = "text-to-video"
    AVATAR = "avatar"
    AI_VIDEO = "ai-video"

    @property
    def provider_backed(self) -> bool:
        return self is not JobKind.STANDARD


class JobStatus(str, Enum):
    DRAFT = "draft"
    SCRIPTING = "scripting"
    VOICING = "voicing"
    IMAGING = "imaging"
    RENDERING = "rendering"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Provider-backed kinds go straight from draft to rendering. Leaving a
# terminal state is only possible through a regenerate reset to draft.
ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.DRAFT: {JobStatus.SCRIPTING, JobStatus.RENDERING, JobStatus.FAILED},
    JobStatus.SCRIPTING: {JobStatus.VOICING, JobStatus.FAILED},
    JobStatus.VOICING: {JobStatus.IMAGING, JobStatus.FAILED},
    JobStatus.IMAGING: {JobStatus.RENDERING, JobStatus.FAILED},
    JobStatus.RENDERING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: {JobStatus.DRAFT},
    JobStatus.FAILED: {JobStatus.DRAFT},
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


# ── Scenes ───────────────────────────────────────────────────────────────────

class Background(BaseModel):
    type: str = "gradient"  # image, video, gradient, color
    source: str = ""


class Scene(BaseModel):
    id: str
    narration: str
    text_overlay: str = ""
    duration: float = Field(..., gt=0)
    background: Background = Field(default_factory=Background)
    audio_url: Optional[str] = None
    audio_duration: Optional[float] = None


class ProviderRef(BaseModel):
    provider_name: str
    external_id: str


# ── Job ──────────────────────────────────────────────────────────────────────

class Job(BaseModel):
    id: str
    owner_id: str
    kind: JobKind
    status: JobStatus = JobStatus.DRAFT
    title: Optional[str] = None
    caption: Optional[str] = None
    scenes: list[Scene] = Field(default_factory=list)
    provider_ref: Optional[ProviderRef] = None
    result_url: Optional[str] = None
    error_message: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def hashtags(self) -> list[str]:
        return list(self.metadata.get("hashtags", []))

    @property
    def request(self) -> dict[str, Any]:
        """Generation parameters the job was created with."""
        return dict(self.metadata.get("request", {}))


# ── Request Schemas ──────────────────────────────────────────────────────────

class CreateJobRequest(BaseModel):
    """Parameters for every job kind. Kind-specific requirements are checked in violations()."""

    kind: JobKind = JobKind.STANDARD

    # standard
    niche: Optional[str] = Field(None, min_length=1, max_length=200)
    duration: int = Field(60, ge=5, le=180)
    visual_style: str = "modern"
    language: str = "en-US"
    voice_name: str = "en-US-JennyNeural"
    speaking_rate: float = Field(1.0, ge=0.5, le=2.0)
    generate_images: bool = False
    image_style: Optional[str] = None
    image_quality: str = "high"

    # provider-backed
    prompt: Optional[str] = Field(None, max_length=2000)
    provider: Optional[ProviderName] = None
    model: Optional[str] = None
    avatar_image: Optional[str] = None
    audio_url: Optional[str] = None
    script: Optional[str] = None

    def violations(self) -> list[str]:
        problems = []
        if self.kind is JobKind.STANDARD and not self.niche:
            problems.append("niche: required for standard videos")
        if self.kind in (JobKind.TEXT_TO_VIDEO, JobKind.AI_VIDEO) and not self.prompt:
            problems.append(f"prompt: required for {self.kind.value} videos")
        if self.kind is JobKind.AVATAR and not (self.script or self.audio_url):
            problems.append("script: a script or an audio_url is required for avatar videos")
        return problems
