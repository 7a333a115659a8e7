"""Parallel metafile fetching.

Uses ``aiohttp`` to pull every feed's ``.meta`` descriptor concurrently
before a sync starts.  The descriptors are tiny, so fetching ~25 of them
in parallel cuts the resolve phase to a single round trip; the large
payload downloads and the merges still run one feed at a time.

Usage from synchronous code::

    from nvdcache.async_downloaders import fetch_metafiles_parallel
    texts = fetch_metafiles_parallel(config.url, ["2021", "recent"])
"""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import urljoin

import aiohttp

from . import __version__
from .downloaders import metafile_name
from .errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=60, connect=15)
MAX_CONCURRENCY = 8


def _headers() -> dict[str, str]:
    return {"User-Agent": f"nvdcache/{__version__}", "Accept": "*/*"}


async def _fetch_text(session: aiohttp.ClientSession, url: str) -> str:
    """Fetch a URL and return its body as text."""
    async with session.get(url) as resp:
        resp.raise_for_status()
        return await resp.text()


async def _fetch_metafile(
    session: aiohttp.ClientSession,
    base_url: str,
    feed: str,
    limit: asyncio.Semaphore,
) -> str:
    url = urljoin(base_url, metafile_name(feed))
    async with limit:
        try:
            return await _fetch_text(session, url)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise TransportError(f"failed to fetch {url}: {e}") from e


async def _fetch_all(
    session: aiohttp.ClientSession,
    base_url: str,
    feeds: list[str],
) -> dict[str, str | TransportError]:
    limit = asyncio.Semaphore(MAX_CONCURRENCY)
    tasks = [_fetch_metafile(session, base_url, feed, limit) for feed in feeds]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    out: dict[str, str | TransportError] = {}
    for feed, result in zip(feeds, results):
        if isinstance(result, TransportError):
            logger.warning("Metafile for %s failed: %s", feed, result)
            out[feed] = result
        elif isinstance(result, Exception):
            logger.warning("Metafile for %s failed: %s", feed, result)
            out[feed] = TransportError(f"metafile for {feed}: {type(result).__name__}: {result}")
        elif isinstance(result, BaseException):
            raise result
        else:
            out[feed] = result
    return out


async def _fetch_metafiles(base_url: str, feeds: list[str]) -> dict[str, str | TransportError]:
    async with aiohttp.ClientSession(headers=_headers(), timeout=DEFAULT_TIMEOUT) as session:
        return await _fetch_all(session, base_url, feeds)


def fetch_metafiles_parallel(base_url: str, feeds: list[str]) -> dict[str, str | TransportError]:
    """Synchronous wrapper that fetches all metafiles via asyncio.

    Args:
        base_url: Feed root URL.
        feeds: Feed identifiers.

    Returns:
        Mapping of feed to metafile text, or to the ``TransportError``
        that prevented fetching it.  One failure never hides the others.
    """
    if not base_url.endswith("/"):
        base_url += "/"
    return asyncio.run(_fetch_metafiles(base_url, list(feeds)))
