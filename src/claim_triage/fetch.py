"""
Bounded-concurrency image download with fixed-delay retries.

`fetch_all(urls, client)` returns one entry per URL, in request order:
an ImageTask with its bytes attached, or None when the URL was discarded.
"""
from __future__ import annotations
import asyncio, logging
from typing import List, Optional, Sequence

import httpx
from tenacity import (AsyncRetrying, before_sleep_log, retry_if_exception_type,
                      stop_after_attempt, wait_fixed)

from .models import ImageTask

log = logging.getLogger(__name__)

FETCH_CONCURRENCY = 15
FETCH_ATTEMPTS = 3
RETRY_DELAY = 0.3   # seconds


async def fetch_bytes(client: httpx.AsyncClient, url: str,
                      attempts: int = FETCH_ATTEMPTS,
                      delay: float = RETRY_DELAY) -> bytes:
    """GET `url`, retrying non-2xx statuses and transport errors."""
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        retry=retry_if_exception_type(httpx.HTTPError),
        before_sleep=before_sleep_log(log, logging.DEBUG),
        reraise=True,
    ):
        with attempt:
            resp = await client.get(url)
            resp.raise_for_status()
            return resp.content
    raise AssertionError("unreachable")


async def fetch_image(client: httpx.AsyncClient, url: str, sem: asyncio.Semaphore,
                      attempts: int = FETCH_ATTEMPTS, delay: float = RETRY_DELAY,
                      corr_id: str = "-") -> Optional[ImageTask]:
    async with sem:
        try:
            data = await fetch_bytes(client, url, attempts, delay)
        except httpx.InvalidURL as exc:
            log.warning("%s bad image url %s (%s)", corr_id, url, exc)
            return None
        except httpx.HTTPError as exc:
            log.warning("%s fetch failed %s after %d attempts (%s)",
                        corr_id, url, attempts, exc)
            return None

    log.debug("%s fetched %s (%d bytes)", corr_id, url, len(data))
    return ImageTask(url=url, data=data)


async def fetch_all(urls: Sequence[str], client: httpx.AsyncClient,
                    concurrency: int = FETCH_CONCURRENCY,
                    attempts: int = FETCH_ATTEMPTS,
                    delay: float = RETRY_DELAY,
                    corr_id: str = "-") -> List[Optional[ImageTask]]:
    sem = asyncio.Semaphore(concurrency)
    return list(await asyncio.gather(*(
        fetch_image(client, url, sem, attempts, delay, corr_id) for url in urls
    )))
