"""Merge a decompressed feed payload into the store."""

import logging

from .metafile import Metafile
from .parsers import parse_feed
from .store import Store

logger = logging.getLogger(__name__)


def merge_feed(store: Store, feed: str, payload: bytes, metafile: Metafile) -> int:
    """Parse ``payload`` and commit it together with the feed's watermark.

    Records are upserted by CVE ID (last write wins); the metafile is
    written in the same transaction, after the records.  Merging the same
    payload twice leaves the store unchanged.

    Args:
        store: Writable store.
        feed: Feed identifier.
        payload: Uncompressed feed JSON.
        metafile: Remote metafile that describes ``payload``.

    Returns:
        Number of records merged.

    Raises:
        ParseError: if the payload is malformed (nothing is written).
        StoreError: if the commit fails (nothing is written).
    """
    records = parse_feed(payload)
    count = store.commit_feed(feed, records, metafile)
    logger.info("Merged %d CVEs from feed %s", count, feed)
    return count
