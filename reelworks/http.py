"""
Shared async HTTP helper with exponential backoff.

Retries only on 429 / 5xx gateway codes and transport errors, using
base_delay * 2^attempt + random jitter. Any other non-2xx response is
returned to the caller untouched so adapters can read the error body.
"""

import asyncio
import logging
import random

import httpx

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
BASE_DELAY = 2.0       # seconds, doubles each retry: 2, 4, 8
JITTER_MAX = 1.0
RETRYABLE_STATUS_CODES = {429, 502, 503, 504}


async def request_with_backoff(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    max_retries: int = MAX_RETRIES,
    **kwargs,
) -> httpx.Response:
    for attempt in range(max_retries + 1):
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            if attempt >= max_retries:
                raise
            delay = BASE_DELAY * (2 ** attempt) + random.uniform(0, JITTER_MAX)
            logger.warning(
                f"{method} {url} transport error on attempt {attempt + 1}/{max_retries + 1}: {e} "
                f"; retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)
            continue

        if response.status_code not in RETRYABLE_STATUS_CODES or attempt >= max_retries:
            return response

        retry_after = response.headers.get("Retry-After")
        if retry_after and retry_after.isdigit():
            delay = int(retry_after)
        else:
            delay = BASE_DELAY * (2 ** attempt) + random.uniform(0, JITTER_MAX)

        logger.warning(
            f"{method} {url} returned {response.status_code} on attempt "
            f"{attempt + 1}/{max_retries + 1}; retrying in {delay:.1f}s"
        )
        await asyncio.sleep(delay)

    raise RuntimeError(f"{method} {url} failed after {max_retries + 1} attempts")
