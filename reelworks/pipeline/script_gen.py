"""
Script generation with Gemini via the Generative Language REST API.

Turns a niche and a target duration into a title, caption, hashtags and
an ordered scene list. The model is asked for bare JSON; markdown fences
are stripped before parsing.
"""

import json
import logging
from uuid import uuid4

import httpx

from .. import config
from ..http import request_with_backoff
from .capabilities import ScriptResult
from .models import Background, Scene

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

SCRIPT_MODEL = "gemini-1.5-flash"
SCRIPT_API_URL = (
    f"https://generativelanguage.googleapis.com/v1beta/models/"
    f"{SCRIPT_MODEL}:generateContent"
)

SCENE_SECONDS = 6  # rough narration length per scene

SCRIPT_PROMPT = """Write a short-form vertical video script about: {niche}
Target length: {duration} seconds, about {scene_count} scenes. Language: {language}.

Respond with ONLY a JSON object, no markdown, no explanation:
{{
  "title": "catchy title under 80 characters",
  "caption": "one or two sentence post caption",
  "hashtags": ["#tag", "#tag"],
  "scenes": [
    {{"narration": "spoken text", "textOverlay": "short on-screen text", "duration": 6}}
  ]
}}
"""


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[-1]
    if text.endswith("```"):
        text = text.rsplit("```", 1)[0]
    return text.strip()


def parse_script(text: str) -> ScriptResult:
    """Parse the model's JSON answer into a ScriptResult."""
    data = json.loads(_strip_fences(text))

    scenes = []
    for raw in data.get("scenes", []):
        narration = (raw.get("narration") or "").strip()
        if not narration:
            continue
        scenes.append(Scene(
            id=str(uuid4()),
            narration=narration,
            text_overlay=raw.get("textOverlay") or raw.get("text_overlay") or "",
            duration=float(raw.get("duration") or SCENE_SECONDS),
            background=Background(type="gradient", source=""),
        ))

    if not scenes:
        raise ValueError("Script contained no scenes")

    return ScriptResult(
        title=(data.get("title") or "Untitled").strip(),
        caption=(data.get("caption") or "").strip(),
        hashtags=[str(tag) for tag in data.get("hashtags", [])],
        scenes=scenes,
    )


class GeminiScriptGenerator:
    def __init__(self, http: httpx.AsyncClient, api_key: str = ""):
        self._http = http
        self._api_key = api_key or config.GEMINI_API_KEY

    async def generate(self, niche: str, duration: int, language: str) -> ScriptResult:
        prompt = SCRIPT_PROMPT.format(
            niche=niche,
            duration=duration,
            scene_count=max(1, duration // SCENE_SECONDS),
            language=language,
        )
        request_body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": 0.8,
                "maxOutputTokens": 2048,
            },
        }

        response = await request_with_backoff(
            self._http, "POST", SCRIPT_API_URL,
            params={"key": self._api_key},
            json=request_body,
        )
        response.raise_for_status()
        result = response.json()

        candidates = result.get("candidates", [])
        if not candidates:
            raise RuntimeError("Gemini returned no candidates for script generation.")

        text = candidates[0].get("content", {}).get("parts", [{}])[0].get("text", "")
        script = parse_script(text)
        logger.info(f"Script generated for '{niche}': {script.title} ({len(script.scenes)} scenes)")
        return script
