"""
Provider lookup and fallback-chain resolution.

The adapter table is built once at process start. Callers ask for the
ordered candidates for a job kind; an explicitly requested provider is
tried first, followed by the rest of that kind's chain.
"""

from enum import Enum
from typing import Optional

import httpx

from .. import config
from ..errors import ValidationError
from .base import ProviderAdapter
from .fal import FalAdapter
from .heygen import HeyGenAdapter
from .kie import KieAdapter
from .replicate import ReplicateAdapter
from .skyreels import SkyReelsAdapter


class ProviderName(str, Enum):
    KIE = "kie"
    FAL = "fal"
    REPLICATE = "replicate"
    HEYGEN = "heygen"
    SKYREELS = "skyreels"


class ProviderRegistry:
    def __init__(self, adapters: list[ProviderAdapter], chains: Optional[dict[str, list[str]]] = None):
        self._adapters = {adapter.name: adapter for adapter in adapters}
        self._chains = chains if chains is not None else config.FALLBACK_CHAINS

    def get(self, name: str) -> ProviderAdapter:
        adapter = self._adapters.get(name)
        if adapter is None:
            raise ValidationError(f"Unknown provider: {name}")
        return adapter

    def chain_for(self, kind: str, preferred: Optional[str] = None) -> list[ProviderAdapter]:
        names = list(self._chains.get(kind, []))
        if preferred:
            self.get(preferred)
            names = [preferred] + [n for n in names if n != preferred]
        if not names:
            raise ValidationError(f"No providers configured for {kind} videos")
        return [self.get(name) for name in names]


def build_registry(http: httpx.AsyncClient) -> ProviderRegistry:
    return ProviderRegistry([
        KieAdapter(http, config.KIE_API_KEY),
        FalAdapter(http, config.FAL_API_KEY),
        ReplicateAdapter(http, config.REPLICATE_API_TOKEN),
        HeyGenAdapter(http, config.HEYGEN_API_KEY),
        SkyReelsAdapter(http, config.SKYREELS_API_KEY),
    ])
