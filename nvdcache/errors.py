"""Exception types raised by nvdcache.

Every module wraps the low-level exceptions it owns (``requests``,
``gzip``, ``json``, ``pydantic``, ``sqlite3``) into one of these so the
sync orchestrator and the CLI only need to know about this hierarchy.
"""


class NVDCacheError(Exception):
    """Base class for all nvdcache errors."""


class TransportError(NVDCacheError):
    """A descriptor or payload fetch failed (network, DNS, TLS, HTTP status)."""


class DecompressionError(NVDCacheError):
    """A feed payload was not valid gzip data."""


class ParseError(NVDCacheError):
    """Payload bytes did not match the expected record schema."""


class MetafileError(ParseError):
    """A feed ``.meta`` descriptor could not be parsed."""


class StoreError(NVDCacheError):
    """The SQLite store failed (missing database, corruption, lock contention)."""


class NotFound(NVDCacheError, LookupError):
    """A query yielded no result.

    This is a normal outcome rather than a failure; callers render it
    differently from the other errors.
    """
