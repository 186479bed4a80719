"""
Canonical provider contract.

Every generation backend is wrapped in an adapter exposing `submit` and
`poll`. Native status vocabularies are translated inside each adapter; no
provider-specific status string is visible above this module.
"""

from enum import Enum
from typing import Optional

import httpx
from pydantic import BaseModel

from ..errors import ProviderError


class ProviderStatus(str, Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class ProviderParams(BaseModel):
    prompt: str = ""
    model: Optional[str] = None
    duration: int = 5
    aspect_ratio: str = "9:16"
    avatar_image: Optional[str] = None
    audio_url: Optional[str] = None
    script: Optional[str] = None


class ProviderRequest(BaseModel):
    """One submitted (or resolved) request against a named provider."""

    provider_name: str
    external_id: str
    status: ProviderStatus = ProviderStatus.PROCESSING
    result_url: Optional[str] = None
    error: Optional[str] = None


class PollResult(BaseModel):
    status: ProviderStatus
    result_url: Optional[str] = None
    error: Optional[str] = None


class ProviderAdapter:
    """Base for provider adapters. Subclasses set `name` and implement submit/poll."""

    name = ""

    def __init__(self, http: httpx.AsyncClient, api_key: str = ""):
        self._http = http
        self._api_key = api_key

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _require_available(self):
        if not self.is_available():
            raise ProviderError(self.name, "API key not configured")

    async def submit(self, params: ProviderParams) -> str:
        """Start a remote job and return its external id."""
        raise NotImplementedError

    async def poll(self, external_id: str) -> PollResult:
        """Read the remote job's state, normalised to ProviderStatus."""
        raise NotImplementedError

    def _raise_for_status(self, response: httpx.Response, action: str):
        if response.is_success:
            return
        detail = response.text[:300]
        raise ProviderError(self.name, f"{action} failed with HTTP {response.status_code}: {detail}")
