"""
Environment configuration for the Reelworks worker.

Values are read once at import time. A `.env` file in the working
directory is loaded first so local runs do not need exported variables.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# ── Store ────────────────────────────────────────────────────────────────────

SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")

# ── Serving ──────────────────────────────────────────────────────────────────

PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:8000")
RENDERS_PATH = "/renders"
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# ── Timing ───────────────────────────────────────────────────────────────────

SCHEDULER_INTERVAL_SECONDS = int(os.environ.get("SCHEDULER_INTERVAL_SECONDS", "60"))
PROVIDER_POLL_INTERVAL_SECONDS = int(os.environ.get("PROVIDER_POLL_INTERVAL_SECONDS", "10"))
PROVIDER_WAIT_TIMEOUT_SECONDS = int(os.environ.get("PROVIDER_WAIT_TIMEOUT_SECONDS", "600"))
HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "30"))
TOKEN_REFRESH_MARGIN_SECONDS = int(os.environ.get("TOKEN_REFRESH_MARGIN_SECONDS", "300"))

# ── Provider keys ────────────────────────────────────────────────────────────

KIE_API_KEY = os.environ.get("KIE_API_KEY", "")
FAL_API_KEY = os.environ.get("FAL_API_KEY", "")
REPLICATE_API_TOKEN = os.environ.get("REPLICATE_API_TOKEN", "")
HEYGEN_API_KEY = os.environ.get("HEYGEN_API_KEY", "")
SKYREELS_API_KEY = os.environ.get("SKYREELS_API_KEY", "")
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")

# Priority order per provider-backed job kind. An explicitly requested
# provider is moved to the front of its chain.
FALLBACK_CHAINS = {
    "text-to-video": ["kie", "fal", "replicate"],
    "ai-video": ["fal", "replicate", "kie"],
    "avatar": ["skyreels", "heygen"],
}

# ── OAuth ────────────────────────────────────────────────────────────────────

YOUTUBE_CLIENT_ID = os.environ.get("YOUTUBE_CLIENT_ID", "")
YOUTUBE_CLIENT_SECRET = os.environ.get("YOUTUBE_CLIENT_SECRET", "")
YOUTUBE_REDIRECT_URI = os.environ.get(
    "YOUTUBE_REDIRECT_URI", "http://localhost:8000/oauth/youtube/callback"
)
INSTAGRAM_APP_ID = os.environ.get("INSTAGRAM_APP_ID", "")
INSTAGRAM_APP_SECRET = os.environ.get("INSTAGRAM_APP_SECRET", "")
INSTAGRAM_REDIRECT_URI = os.environ.get(
    "INSTAGRAM_REDIRECT_URI", "http://localhost:8000/oauth/instagram/callback"
)

# ── Capability services ──────────────────────────────────────────────────────

TTS_SERVICE_URL = os.environ.get("TTS_SERVICE_URL", "http://localhost:5002")
RENDER_SERVICE_URL = os.environ.get("RENDER_SERVICE_URL", "http://localhost:3002")
IMAGE_API_BASE = os.environ.get("IMAGE_API_BASE", "https://image.pollinations.ai")
