"""
External capabilities the Generation Pipeline drives.

Script text, speech audio, background images and the final composition
are produced by collaborators outside this package. The pipeline only
depends on these interfaces, so any backend (or a test fake) can be
plugged in at process start.
"""

from dataclasses import dataclass, field
from typing import Optional, Protocol

from .models import Job, Scene


@dataclass
class ScriptResult:
    title: str
    caption: str
    hashtags: list[str]
    scenes: list[Scene]


@dataclass
class SpeechResult:
    audio_url: Optional[str]
    duration: float = 0.0
    # Set by synthesizers that return silence or a stub when no engine is
    # reachable. Such a result counts as "no audio", never as success.
    is_placeholder: bool = False

    @property
    def has_audio(self) -> bool:
        return bool(self.audio_url) and not self.is_placeholder


@dataclass
class ImageResult:
    image_url: str
    extra: dict = field(default_factory=dict)


class ScriptGenerator(Protocol):
    async def generate(self, niche: str, duration: int, language: str) -> ScriptResult:
        ...


class SpeechSynthesizer(Protocol):
    async def synthesize(
        self, text: str, language: str, voice_name: str, speaking_rate: float
    ) -> SpeechResult:
        ...


class ImageGenerator(Protocol):
    async def generate(self, prompt: str, style: str, quality: str) -> ImageResult:
        ...


class Renderer(Protocol):
    async def render(self, job: Job) -> str:
        """Compose the job's scenes into a video and return the output file name."""
        ...
