"""
Provider fallback and completion waiting.

`attempt` walks an ordered candidate list and stops at the first provider
that accepts the submission. Input defects (ValidationError) are the
caller's problem and abort immediately; provider-side failures move on to
the next candidate.

`wait_for_completion` polls one provider on a fixed interval until it
reports success or error, or the deadline passes. A deadline expiry means
the remote outcome is unknown and is reported as ProviderTimeoutError,
never as a provider failure.
"""

import asyncio
import logging
from typing import Optional

import httpx

from .. import config
from ..errors import ProviderError, ProviderTimeoutError, ValidationError
from .base import ProviderAdapter, ProviderParams, ProviderRequest, ProviderStatus

logger = logging.getLogger(__name__)


class FallbackOrchestrator:
    async def attempt(
        self, candidates: list[ProviderAdapter], params: ProviderParams
    ) -> ProviderRequest:
        if not candidates:
            raise ValidationError("No provider candidates given")

        last_error: Optional[Exception] = None
        for adapter in candidates:
            try:
                external_id = await adapter.submit(params)
            except ValidationError:
                raise
            except (ProviderError, ProviderTimeoutError, httpx.HTTPError) as e:
                logger.warning(f"[fallback] {adapter.name} failed to submit: {e}; trying next provider")
                last_error = e
                continue

            logger.info(f"[fallback] {adapter.name} accepted request {external_id}")
            return ProviderRequest(provider_name=adapter.name, external_id=external_id)

        names = ", ".join(a.name for a in candidates)
        raise ProviderError(
            candidates[-1].name,
            f"all providers failed ({names}); last error: {last_error}",
        )

    async def wait_for_completion(
        self,
        adapter: ProviderAdapter,
        external_id: str,
        timeout: float = config.PROVIDER_WAIT_TIMEOUT_SECONDS,
        interval: float = config.PROVIDER_POLL_INTERVAL_SECONDS,
    ) -> ProviderRequest:
        """Poll until success. Raises ProviderError on a reported failure."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            try:
                result = await adapter.poll(external_id)
            except (ProviderError, httpx.HTTPError) as e:
                # Transient poll failures do not settle the remote job
                logger.warning(f"[{adapter.name}] poll error for {external_id}: {e}")
            else:
                if result.status is ProviderStatus.SUCCESS:
                    logger.info(f"[{adapter.name}] {external_id} completed: {result.result_url}")
                    return ProviderRequest(
                        provider_name=adapter.name,
                        external_id=external_id,
                        status=result.status,
                        result_url=result.result_url,
                    )
                if result.status is ProviderStatus.ERROR:
                    raise ProviderError(adapter.name, result.error or "generation failed")

            if loop.time() + interval > deadline:
                raise ProviderTimeoutError(adapter.name, external_id, timeout)
            await asyncio.sleep(interval)
