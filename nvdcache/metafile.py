"""Feed metafiles and the skip-or-fetch decision.

Every NVD feed ships a small ``.meta`` text file next to the compressed
JSON payload::

    lastModifiedDate:2021-12-18T19:00:00-05:00
    size:1744779
    zipSize:116171
    gzSize:116031
    sha256:0EA38A9771747DD51A3E009FB8738732144266C4EF4EDC548B70F33555CC1586

Comparing the remote metafile against the one stored after the last
successful sync tells us whether the (much larger) payload needs to be
downloaded again.
"""

import datetime as dt
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .errors import MetafileError

logger = logging.getLogger(__name__)

STORAGE_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S"
EPOCH = dt.datetime(1970, 1, 1)

_FIELDS = ("lastModifiedDate", "size", "zipSize", "gzSize", "sha256")


class MetafileSource(Protocol):
    def get_metafile(self, feed: str) -> str: ...


@dataclass(frozen=True)
class Metafile:
    """Metadata describing one compressed JSON feed.

    Attributes:
        last_modified_date: Naive UTC timestamp of the last feed update.
        size: Size of the uncompressed JSON in bytes.
        zip_size: Size of the zip variant in bytes.
        gz_size: Size of the gzip variant in bytes.
        sha256: SHA-256 of the uncompressed JSON.
    """

    last_modified_date: dt.datetime
    size: int
    zip_size: int
    gz_size: int
    sha256: str

    def format_last_modified_date(self) -> str:
        """Render the timestamp the way the store keeps it."""
        return self.last_modified_date.strftime(STORAGE_DATETIME_FORMAT)


def parse_datetime(value: str) -> dt.datetime:
    """Parse a metafile or stored timestamp into a naive UTC datetime.

    Accepts RFC 3339 timestamps with an offset and the bare
    ``%Y-%m-%dT%H:%M:%S`` form used in the store.  Anything else is
    logged and mapped to the Unix epoch; ``needs_update`` then falls
    back to comparing content checksums.
    """
    text = (value or "").strip()
    try:
        parsed = dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Failed parsing datetime: %r", value)
        return EPOCH
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return parsed.replace(microsecond=0)


def parse_metafile(text: str) -> Metafile:
    """Parse the contents of a ``.meta`` file.

    Each of the five lines is split on its first ``:``; the key is not
    checked, only the position.

    Raises:
        MetafileError: on a missing line, a line without ``:`` or a
            size that isn't an integer.
    """
    lines = [line for line in (text or "").splitlines() if line.strip()]
    if len(lines) < len(_FIELDS):
        raise MetafileError(f"expected {len(_FIELDS)} lines, got {len(lines)}")

    values: list[str] = []
    for name, line in zip(_FIELDS, lines):
        key, sep, value = line.partition(":")
        if not sep:
            raise MetafileError(f"line for {name} has no ':' separator: {line!r}")
        values.append(value.strip())

    try:
        size, zip_size, gz_size = (int(v) for v in values[1:4])
    except ValueError as e:
        raise MetafileError(f"invalid size value: {e}") from e

    return Metafile(
        last_modified_date=parse_datetime(values[0]),
        size=size,
        zip_size=zip_size,
        gz_size=gz_size,
        sha256=values[4],
    )


def load_metafile(path: Path) -> Metafile:
    """Parse a metafile stored on disk.

    Raises:
        MetafileError: if the file can't be read or parsed.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise MetafileError(f"could not read {path}: {e}") from e
    return parse_metafile(text)


def fetch_metafile(client: MetafileSource, feed: str) -> Metafile:
    """Fetch and parse the remote metafile for ``feed``.

    Raises:
        TransportError: if the client can't fetch it.
        MetafileError: if the response doesn't parse.
    """
    return parse_metafile(client.get_metafile(feed))


def needs_update(remote: Metafile, cached: Metafile | None, force: bool = False) -> bool:
    """Decide whether a feed has to be downloaded and merged.

    Args:
        remote: Metafile just fetched from the feed source.
        cached: Metafile stored after the last successful merge, or
            ``None`` if the feed was never synced.
        force: Skip the comparison and always update.

    When neither timestamp could be parsed both are the epoch, so the
    SHA-256 and size decide instead.

    Returns:
        ``True`` when the feed must be re-synced.
    """
    if force or cached is None:
        return True
    if remote.last_modified_date != cached.last_modified_date:
        return True
    # an epoch timestamp carries no information
    if remote.last_modified_date == EPOCH:
        return (remote.sha256.upper(), remote.size) != (cached.sha256.upper(), cached.size)
    return False
