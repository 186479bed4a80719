"""
GenerationPipeline: drives a job from request to rendered video.

Standard jobs run four stages with status tracking:
  Stage 1: Script (title, caption, hashtags, scenes)
  Stage 2: Voice (per-scene speech, concurrent, non-fatal)
  Stage 3: Imaging (per-scene backgrounds, concurrent, non-fatal, optional)
  Stage 4: Render (background task, completes or fails the job later)

Provider-backed jobs (text-to-video, ai-video, avatar) go straight to
rendering: the request is submitted through the provider fallback chain
and a background task waits for the remote result.

`run_pipeline` returns as soon as the job reaches rendering. Callers poll
`get_status` for the final outcome.
"""

import asyncio
import logging
from typing import Optional

from .. import config
from ..db import now_iso
from ..errors import AuthError, ConflictError, ProviderError, ReelworksError
from ..models import validate_request
from ..providers import FallbackOrchestrator, ProviderAdapter, ProviderParams, ProviderRegistry
from .capabilities import ImageGenerator, Renderer, ScriptGenerator, SpeechSynthesizer
from .job_store import JobStore
from .models import Background, CreateJobRequest, Job, JobKind, JobStatus, ProviderRef, Scene

logger = logging.getLogger(__name__)

AVATAR_AUDIO_ERROR = "Failed to generate audio for avatar video"


class GenerationPipeline:
    def __init__(
        self,
        store: JobStore,
        script_generator: ScriptGenerator,
        synthesizer: SpeechSynthesizer,
        image_generator: ImageGenerator,
        renderer: Renderer,
        registry: ProviderRegistry,
        fallback: Optional[FallbackOrchestrator] = None,
        wait_timeout: float = config.PROVIDER_WAIT_TIMEOUT_SECONDS,
        poll_interval: float = config.PROVIDER_POLL_INTERVAL_SECONDS,
    ):
        self.store = store
        self.script_generator = script_generator
        self.synthesizer = synthesizer
        self.image_generator = image_generator
        self.renderer = renderer
        self.registry = registry
        self.fallback = fallback or FallbackOrchestrator()
        self.wait_timeout = wait_timeout
        self.poll_interval = poll_interval
        self._background: set[asyncio.Task] = set()

    # ── Job Lifecycle ────────────────────────────────────────────────────

    def create_job(self, owner_id: Optional[str], payload: dict) -> Job:
        if not owner_id:
            raise AuthError("Authentication required")
        request = validate_request(CreateJobRequest, payload)
        return self.store.create(
            owner_id, request.kind, request.model_dump(mode="json", exclude={"kind"})
        )

    def get_status(self, job_id: str, owner_id: Optional[str]) -> Job:
        if not owner_id:
            raise AuthError("Authentication required")
        return self.store.get(job_id, owner_id)

    def list_jobs(self, owner_id: Optional[str], limit: int = 50) -> list[Job]:
        if not owner_id:
            raise AuthError("Authentication required")
        return self.store.list_for_owner(owner_id, limit)

    async def regenerate(self, job_id: str, owner_id: Optional[str]) -> Job:
        """Re-run the pipeline for an existing job with the parameters stored in its metadata."""
        job = self.get_status(job_id, owner_id)

        if job.status.terminal:
            metadata = {**job.metadata, "regeneratedAt": now_iso()}
            if self.store.reset_for_regenerate(job_id, metadata) is None:
                raise ConflictError("Video is already being regenerated")
            logger.info(f"[{job_id}] reset to draft for regeneration")
        elif job.status is not JobStatus.DRAFT:
            raise ConflictError(f"Video is still being generated ({job.status.value})")

        return await self.run_pipeline(job_id)

    async def run_pipeline(self, job_id: str) -> Job:
        job = self.store.get(job_id)
        if job.kind.provider_backed:
            return await self._run_provider_job(job)
        return await self._run_standard_job(job)

    async def drain(self):
        """Wait for every background render/poll task spawned so far."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ── Standard Pipeline ────────────────────────────────────────────────

    async def _run_standard_job(self, job: Job) -> Job:
        job_id = job.id
        if self.store.transition(job_id, JobStatus.DRAFT, JobStatus.SCRIPTING) is None:
            raise ConflictError("Video is already being generated")

        request = CreateJobRequest.model_validate({**job.request, "kind": job.kind.value})

        try:
            # Stage 1: Script
            script = await self.script_generator.generate(
                request.niche, request.duration, request.language
            )
            metadata = {
                **job.metadata,
                "hashtags": script.hashtags,
                "voiceName": request.voice_name,
                "speakingRate": request.speaking_rate,
                "hasImages": request.generate_images,
            }
            self._advance(
                job_id, JobStatus.SCRIPTING, JobStatus.VOICING,
                title=script.title, caption=script.caption,
                scenes=script.scenes, metadata=metadata,
            )

            # Stage 2: Voice
            scenes = await self._voice_scenes(job_id, script.scenes, request)
            self._advance(job_id, JobStatus.VOICING, JobStatus.IMAGING, scenes=scenes)

            # Stage 3: Imaging
            if request.generate_images:
                scenes = await self._image_scenes(job_id, scenes, request)
            job = self._advance(job_id, JobStatus.IMAGING, JobStatus.RENDERING, scenes=scenes)

        except Exception as e:
            logger.error(f"[{job_id}] pipeline failed: {e}", exc_info=True)
            self.store.mark_failed(job_id, _error_message(e))
            raise

        # Stage 4: Render in the background
        self._spawn(job_id, self._render(job_id))
        logger.info(f"[{job_id}] rendering dispatched ({len(scenes)} scenes)")
        return job

    def _advance(self, job_id: str, expected: JobStatus, target: JobStatus, **fields) -> Job:
        job = self.store.transition(job_id, expected, target, **fields)
        if job is None:
            raise ConflictError(f"Video left {expected.value} while it was being generated")
        return job

    async def _voice_scene(
        self, job_id: str, index: int, scene: Scene, request: CreateJobRequest
    ) -> Scene:
        try:
            speech = await self.synthesizer.synthesize(
                scene.narration, request.language, request.voice_name, request.speaking_rate
            )
        except Exception as e:
            logger.warning(f"[{job_id}] scene {index + 1} synthesis failed, continuing without audio: {e}")
            return scene

        if not speech.has_audio:
            logger.warning(f"[{job_id}] scene {index + 1} got no real audio, continuing without audio")
            return scene
        return scene.model_copy(update={
            "audio_url": speech.audio_url,
            "audio_duration": speech.duration or None,
        })

    async def _voice_scenes(
        self, job_id: str, scenes: list[Scene], request: CreateJobRequest
    ) -> list[Scene]:
        # gather() keeps input order, so every result lands in its scene's slot
        voiced = await asyncio.gather(*(
            self._voice_scene(job_id, i, scene, request) for i, scene in enumerate(scenes)
        ))
        logger.info(
            f"[{job_id}] voiced {sum(1 for s in voiced if s.audio_url)}/{len(voiced)} scenes"
        )
        return list(voiced)

    async def _image_scene(
        self, job_id: str, index: int, scene: Scene, request: CreateJobRequest
    ) -> Scene:
        style = request.image_style or request.visual_style
        prompt = f"{style} style background for video scene: {scene.narration[:50]}"
        try:
            image = await self.image_generator.generate(prompt, style, request.image_quality)
        except Exception as e:
            logger.warning(f"[{job_id}] scene {index + 1} background failed, keeping default: {e}")
            return scene
        return scene.model_copy(update={
            "background": Background(type="image", source=image.image_url),
        })

    async def _image_scenes(
        self, job_id: str, scenes: list[Scene], request: CreateJobRequest
    ) -> list[Scene]:
        imaged = await asyncio.gather(*(
            self._image_scene(job_id, i, scene, request) for i, scene in enumerate(scenes)
        ))
        return list(imaged)

    async def _render(self, job_id: str):
        job = self.store.get(job_id)
        filename = await self.renderer.render(job)
        result_url = f"{config.PUBLIC_BASE_URL}{config.RENDERS_PATH}/{filename}"
        if self.store.mark_completed(job_id, result_url) is None:
            logger.warning(f"[{job_id}] render finished but job is no longer rendering")
            return
        logger.info(f"[{job_id}] completed: {result_url}")

    # ── Provider-backed Pipeline ─────────────────────────────────────────

    async def _run_provider_job(self, job: Job) -> Job:
        job_id = job.id
        request = CreateJobRequest.model_validate({**job.request, "kind": job.kind.value})
        preferred = request.provider.value if request.provider else None
        candidates = self.registry.chain_for(job.kind.value, preferred)

        if self.store.transition(job_id, JobStatus.DRAFT, JobStatus.RENDERING) is None:
            raise ConflictError("Video is already being generated")

        try:
            audio_url = request.audio_url
            if job.kind is JobKind.AVATAR and not audio_url:
                audio_url = await self._avatar_audio(job_id, request)

            params = ProviderParams(
                prompt=request.prompt or "",
                model=request.model,
                duration=request.duration,
                avatar_image=request.avatar_image,
                audio_url=audio_url,
                script=request.script,
            )
            submitted = await self.fallback.attempt(candidates, params)
            job = self.store.update_fields(
                job_id, JobStatus.RENDERING,
                provider_ref=ProviderRef(
                    provider_name=submitted.provider_name,
                    external_id=submitted.external_id,
                ),
            )
            if job is None:
                raise ConflictError("Video left rendering while it was being submitted")

        except Exception as e:
            logger.error(f"[{job_id}] provider submission failed: {e}")
            self.store.mark_failed(job_id, _error_message(e))
            raise

        adapter = self.registry.get(submitted.provider_name)
        self._spawn(job_id, self._await_provider(job_id, adapter, submitted.external_id))
        logger.info(f"[{job_id}] submitted to {adapter.name} as {submitted.external_id}")
        return job

    async def _avatar_audio(self, job_id: str, request: CreateJobRequest) -> str:
        speech = await self.synthesizer.synthesize(
            request.script, request.language, request.voice_name, request.speaking_rate
        )
        if not speech.has_audio:
            raise ProviderError("speech", AVATAR_AUDIO_ERROR)
        logger.info(f"[{job_id}] avatar narration ready: {speech.audio_url}")
        return speech.audio_url

    async def _await_provider(self, job_id: str, adapter: ProviderAdapter, external_id: str):
        result = await self.fallback.wait_for_completion(
            adapter, external_id, self.wait_timeout, self.poll_interval
        )
        if self.store.mark_completed(job_id, result.result_url) is None:
            logger.warning(f"[{job_id}] provider finished but job is no longer rendering")
            return
        logger.info(f"[{job_id}] completed via {adapter.name}: {result.result_url}")

    # ── Background Tasks ─────────────────────────────────────────────────

    def _spawn(self, job_id: str, coro):
        task = asyncio.create_task(self._guarded(job_id, coro))
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    async def _guarded(self, job_id: str, coro):
        """Run a background stage; any failure lands on the job as status=failed."""
        try:
            await coro
        except Exception as e:
            logger.error(f"[{job_id}] background stage failed: {e}", exc_info=True)
            self.store.mark_failed(job_id, _error_message(e))

    def _on_background_done(self, task: asyncio.Task):
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            # Only reachable when recording the failure itself failed
            logger.error(f"Background task could not record its outcome: {exc}", exc_info=exc)


def _error_message(exc: Exception) -> str:
    if isinstance(exc, ReelworksError):
        return exc.message
    return str(exc) or exc.__class__.__name__
