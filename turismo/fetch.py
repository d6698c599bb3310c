"""Download the sheet CSV export."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from .errors import FetchError

logger = logging.getLogger(__name__)

USER_AGENT = "turismo-feed/0.1"


async def fetch_csv(
    url: str,
    timeout: float = 10.0,
    session: Optional[aiohttp.ClientSession] = None,
) -> bytes:
    """
    GET the export and return the raw body.

    Any non-2xx status, timeout or connection problem is raised as FetchError.
    """
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    owns_session = session is None
    if owns_session:
        session = aiohttp.ClientSession(timeout=client_timeout, headers={"User-Agent": USER_AGENT})

    try:
        async with session.get(url, timeout=client_timeout) as response:
            if not 200 <= response.status < 300:
                raise FetchError(f"HTTP error! status: {response.status}", status=response.status)
            return await response.read()
    except asyncio.TimeoutError as exc:
        raise FetchError(f"timed out after {timeout}s fetching {url}") from exc
    except aiohttp.ClientError as exc:
        raise FetchError(f"connection failed: {exc}") from exc
    finally:
        if owns_session:
            await session.close()


class SheetFetcher:
    """Callable fetcher bound to a URL and timeout."""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    async def __call__(self) -> bytes:
        logger.debug("fetching %s", self.url)
        return await fetch_csv(self.url, timeout=self.timeout)
