"""Sync orchestrator.

Drives metafile resolution, payload download and merge for each
configured feed.  Feeds are isolated from each other: a feed that fails
to fetch, decompress, parse or commit is recorded as failed and the
remaining feeds are still synced.  A failed feed keeps its previous
watermark, so the next sync retries it.
"""

import functools
import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol

from .async_downloaders import fetch_metafiles_parallel
from .config import SyncConfig
from .downloaders import FeedClient
from .errors import NVDCacheError, TransportError
from .merger import merge_feed
from .metafile import Metafile, fetch_metafile, needs_update, parse_metafile
from .store import Store

logger = logging.getLogger(__name__)

UPDATED = "updated"
SKIPPED = "skipped"
FAILED = "failed"

FeedProgress = Callable[[str, int, int | None], None]


class FeedSource(Protocol):
    def get_metafile(self, feed: str) -> str: ...

    def get_feed(self, feed: str, progress: Callable[[int, int | None], None] | None = None) -> bytes: ...


@dataclass
class FeedResult:
    """Outcome of syncing a single feed.

    Attributes:
        feed: Feed identifier.
        status: ``updated``, ``skipped`` or ``failed``.
        records: Number of CVEs merged (0 unless updated).
        error: Failure message when ``status`` is ``failed``.
        metafile: Remote metafile, when it could be fetched.
    """

    feed: str
    status: str
    records: int = 0
    error: str | None = None
    metafile: Metafile | None = None


@dataclass
class SyncResult:
    """Aggregate outcome of a sync run."""

    results: list[FeedResult] = field(default_factory=list)

    def _feeds(self, status: str) -> list[str]:
        return [r.feed for r in self.results if r.status == status]

    @property
    def updated(self) -> list[str]:
        return self._feeds(UPDATED)

    @property
    def skipped(self) -> list[str]:
        return self._feeds(SKIPPED)

    @property
    def failed(self) -> dict[str, str]:
        return {r.feed: r.error or "unknown error" for r in self.results if r.status == FAILED}

    @property
    def records_merged(self) -> int:
        return sum(r.records for r in self.results)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        text = f"{len(self.updated)} updated, {len(self.skipped)} skipped, {len(self.failed)} failed"
        if self.failed:
            text += f" ({', '.join(self.failed)})"
        return text


def _remote_metafile(client: FeedSource, feed: str, prefetched: dict[str, str | TransportError]) -> Metafile:
    if feed in prefetched:
        text = prefetched[feed]
        if isinstance(text, TransportError):
            raise text
        return parse_metafile(text)
    return fetch_metafile(client, feed)


def sync_feed(
    store: Store,
    client: FeedSource,
    feed: str,
    force: bool = False,
    progress: FeedProgress | None = None,
    prefetched: dict[str, str | TransportError] | None = None,
) -> FeedResult:
    """Resolve, fetch and merge one feed.

    Never raises for per-feed problems; they are reported in the
    returned ``FeedResult``.
    """
    remote: Metafile | None = None
    try:
        remote = _remote_metafile(client, feed, prefetched or {})
        cached = store.get_metafile(feed)
        if not needs_update(remote, cached, force):
            logger.debug("Cached metafile for %s is the latest (%s)", feed, remote.format_last_modified_date())
            return FeedResult(feed=feed, status=SKIPPED, metafile=remote)

        on_progress = functools.partial(progress, feed) if progress is not None else None
        logger.info("Fetching feed %s (%d bytes compressed)", feed, remote.gz_size)
        payload = client.get_feed(feed, progress=on_progress)
        count = merge_feed(store, feed, payload, remote)
    except NVDCacheError as e:
        logger.warning("Feed %s failed: %s", feed, e)
        return FeedResult(feed=feed, status=FAILED, error=f"{type(e).__name__}: {e}", metafile=remote)

    return FeedResult(feed=feed, status=UPDATED, records=count, metafile=remote)


def sync_feeds(
    config: SyncConfig,
    client: FeedSource | None = None,
    store: Store | None = None,
    progress: FeedProgress | None = None,
) -> SyncResult:
    """Sync every feed in ``config.feeds`` into the local store.

    Args:
        config: Sync configuration.
        client: Feed source; defaults to a ``FeedClient`` for ``config.url``.
        store: Store to write to; defaults to ``config.db`` (opened and
            closed here).
        progress: Optional ``progress(feed, downloaded, total)`` observer.

    Returns:
        ``SyncResult`` with one entry per distinct feed.

    Raises:
        StoreError: if the store can't be opened or initialised at all.
    """
    if client is None:
        client = FeedClient.from_config(config)

    feeds = list(dict.fromkeys(config.feeds))
    own_store = store is None
    if store is None:
        store = Store(config.db)

    result = SyncResult()
    try:
        store.create_schema()

        prefetched: dict[str, str | TransportError] = {}
        if config.parallel_metafiles:
            prefetched = fetch_metafiles_parallel(config.url, feeds)

        for feed in feeds:
            result.results.append(
                sync_feed(
                    store,
                    client,
                    feed,
                    force=config.force_update,
                    progress=progress,
                    prefetched=prefetched,
                )
            )
    finally:
        if own_store:
            store.close()

    logger.info("Sync finished: %s", result.summary())
    return result
