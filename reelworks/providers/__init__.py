from .base import PollResult, ProviderAdapter, ProviderParams, ProviderRequest, ProviderStatus
from .fallback import FallbackOrchestrator
from .registry import ProviderName, ProviderRegistry, build_registry

__all__ = [
    "FallbackOrchestrator",
    "PollResult",
    "ProviderAdapter",
    "ProviderName",
    "ProviderParams",
    "ProviderRegistry",
    "ProviderRequest",
    "ProviderStatus",
    "build_registry",
]
