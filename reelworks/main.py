import logging
import os
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from supabase import Client

from . import config
from .db import create_supabase
from .oauth import build_oauth_clients
from .pipeline.job_store import JobStore
from .pipeline.orchestrator import GenerationPipeline
from .pipeline.remote import PollinationsImageGenerator, RemoteRenderer, RemoteSpeechSynthesizer
from .pipeline.script_gen import GeminiScriptGenerator
from .posting import PostingOrchestrator
from .providers import FallbackOrchestrator, build_registry
from .publishers import build_publishers
from .queue import QueueStore
from .scheduler import Scheduler
from .service import ReelworksService
from .token_vault import AccountStore, TokenVault

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

RENDERS_DIR = os.environ.get("RENDERS_DIR", "public/renders")


def build_service(client: Client, http: httpx.AsyncClient) -> tuple[ReelworksService, Scheduler]:
    """Construct every long-lived component once and wire them together."""
    jobs = JobStore(client)
    pipeline = GenerationPipeline(
        store=jobs,
        script_generator=GeminiScriptGenerator(http),
        synthesizer=RemoteSpeechSynthesizer(http),
        image_generator=PollinationsImageGenerator(http),
        renderer=RemoteRenderer(http),
        registry=build_registry(http),
        fallback=FallbackOrchestrator(),
    )
    queue = QueueStore(client, jobs)
    vault = TokenVault(AccountStore(client), build_oauth_clients(http))
    posting = PostingOrchestrator(queue, jobs, vault, build_publishers(http))
    scheduler = Scheduler(queue, posting)
    return ReelworksService(pipeline, queue, posting, vault), scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Worker starting up...")
    http = httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS)
    service, scheduler = build_service(create_supabase(), http)
    app.state.service = service
    app.state.scheduler = scheduler
    scheduler.start()
    yield
    logger.info("Worker shutting down...")
    await scheduler.stop()
    await service.pipeline.drain()
    await http.aclose()


app = FastAPI(lifespan=lifespan)
app.mount(config.RENDERS_PATH, StaticFiles(directory=RENDERS_DIR, check_dir=False), name="renders")


@app.get("/health")
def health_check():
    """Verify worker is running and env vars are configured."""
    scheduler = getattr(app.state, "scheduler", None)
    return {
        "status": "ok",
        "scheduler_running": bool(scheduler and scheduler.running),
        "supabase_url_set": bool(config.SUPABASE_URL),
        "gemini_api_key_set": bool(config.GEMINI_API_KEY),
        "providers_configured": {
            "kie": bool(config.KIE_API_KEY),
            "fal": bool(config.FAL_API_KEY),
            "replicate": bool(config.REPLICATE_API_TOKEN),
            "heygen": bool(config.HEYGEN_API_KEY),
            "skyreels": bool(config.SKYREELS_API_KEY),
        },
    }


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("reelworks.main:app", host="0.0.0.0", port=port)
