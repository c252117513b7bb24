"""
Shared HTTP helpers for outbound integrations.
"""

import asyncio
from typing import Any

import httpx

MAX_RETRIES = 3
RETRY_BACKOFF = (0.5, 1.0, 2.0)  # seconds


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    """
    Perform a request with backoff for 5xx, 429 and connection errors.

    Only safe for idempotent calls: callers that create resources must send
    an idempotency key.
    """
    last_exc = None
    for attempt in range(MAX_RETRIES):
        try:
            response = await client.request(method, url, **kwargs)
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            last_exc = e
            if attempt < MAX_RETRIES - 1:
                await asyncio.sleep(RETRY_BACKOFF[attempt])
            continue

        retryable = response.status_code == 429 or response.status_code >= 500
        if retryable and attempt < MAX_RETRIES - 1:
            retry_after = response.headers.get("Retry-After")
            wait = (
                int(retry_after)
                if retry_after and retry_after.isdigit()
                else RETRY_BACKOFF[attempt]
            )
            await asyncio.sleep(wait)
            continue
        return response

    if last_exc:
        raise last_exc
    return await client.request(method, url, **kwargs)
