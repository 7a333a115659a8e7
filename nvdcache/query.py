"""Read-only lookups against the store."""

import json

from .errors import NotFound
from .parsers import normalize_cve_id
from .store import Store


def lookup(store: Store, cve_id: str) -> str:
    """Return the cached record for ``cve_id`` exactly as it was stored.

    Raises:
        NotFound: if the CVE isn't in the cache.
        StoreError: if the store can't be read.
    """
    key = normalize_cve_id(cve_id)
    data = store.get_record(key)
    if data is None:
        raise NotFound(f"{key or cve_id!r} not found in local cache")
    return data


def lookup_pretty(store: Store, cve_id: str) -> str:
    """Like ``lookup`` but indented for display."""
    return json.dumps(json.loads(lookup(store, cve_id)), indent=2, ensure_ascii=False)


def search(store: Store, text: str) -> list[str]:
    """Return IDs of CVEs whose description contains ``text``.

    Matching is a case-insensitive substring test; results are sorted by
    CVE ID so repeated calls give the same order.

    Raises:
        ValueError: if ``text`` is empty or only whitespace.
        StoreError: if the store can't be read.
    """
    if text is None or not text.strip():
        raise ValueError("search text must not be empty")
    return store.search_descriptions(text)
