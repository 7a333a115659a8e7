"""Configuration models using Pydantic.

``SyncConfig`` carries everything a sync or search needs: the feed base
URL, which feed shards to sync, where the SQLite store lives and a few
behaviour flags.  Values come from defaults, environment variables, an
optional YAML file and finally CLI flags, in that order.
"""

import datetime as dt
import os
import re
import tempfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_FEED_URL = "https://nvd.nist.gov/feeds/json/cve/1.1/"
FIRST_FEED_YEAR = 2002
ROLLING_FEEDS = ("recent", "modified")

CACHE_NAMESPACE = "nvd"
DB_NAME = "nvd.sqlite3"

_FEED_RE = re.compile(r"^(\d{4}|recent|modified)$")


def known_feeds(current_year: int | None = None) -> list[str]:
    """Return every feed shard published by the NVD.

    Args:
        current_year: Last yearly shard to include (defaults to this year).

    Returns:
        Yearly shards from 2002 onward followed by ``recent`` and ``modified``.
    """
    if current_year is None:
        current_year = dt.datetime.now().year
    feeds = [str(year) for year in range(FIRST_FEED_YEAR, current_year + 1)]
    feeds.extend(ROLLING_FEEDS)
    return feeds


def default_db_path() -> Path:
    """Pick a location for the local database.

    ``$NVDCACHE_DB`` wins when set.  Otherwise follows the XDG base
    directory spec: ``$XDG_CACHE_HOME/nvd/nvd.sqlite3``, falling back to
    ``~/.cache/nvd/nvd.sqlite3`` and, if the home directory can't be
    determined, the OS temporary directory.
    """
    explicit = os.environ.get("NVDCACHE_DB")
    if explicit:
        return Path(explicit)

    xdg_cache_home = os.environ.get("XDG_CACHE_HOME")
    if xdg_cache_home:
        base = Path(xdg_cache_home)
    else:
        try:
            base = Path.home() / ".cache"
        except RuntimeError:
            base = Path(tempfile.gettempdir())
    return base / CACHE_NAMESPACE / DB_NAME


def parse_feed_list(value: Any) -> list[str]:
    """Normalize a feed selection into an ordered, de-duplicated list.

    Accepts a comma-separated string (``"2019, recent"``) or a list.

    Raises:
        ValueError: if an entry is not a known feed identifier.
    """
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = [str(v) for v in value]
    else:
        raise ValueError(f"feeds must be a list or comma separated string, got {type(value).__name__}")

    last_year = dt.datetime.now().year
    out: list[str] = []
    for item in items:
        name = item.strip().lower()
        if not name:
            continue
        if not _FEED_RE.match(name):
            raise ValueError(f"unknown feed {item.strip()!r} (expected a year, 'recent' or 'modified')")
        if name.isdigit() and not FIRST_FEED_YEAR <= int(name) <= last_year:
            raise ValueError(f"unknown feed {name!r} (yearly feeds run from {FIRST_FEED_YEAR} to {last_year})")
        if name not in out:
            out.append(name)
    return out


class SyncConfig(BaseModel):
    """Validated sync/search configuration.

    Example YAML::

        url: https://mirror.example.com/nvd/feeds/json/cve/1.1/
        feeds: [2021, 2022, recent, modified]
        db: ~/.cache/nvd/nvd.sqlite3
        show_progress: false
        parallel_metafiles: true

    Attributes:
        url: Base URL that feed files are resolved against.
        feeds: Feed shards to sync, in order.
        db: Path to the SQLite store.
        show_progress: Render a progress bar while downloading.
        force_update: Ignore cached metafiles and re-sync every feed.
        parallel_metafiles: Fetch all ``.meta`` descriptors concurrently
            before syncing.
        timeout_seconds: Read timeout for HTTP requests.
        retries: Attempts per request on connection errors.
    """

    url: str = DEFAULT_FEED_URL
    feeds: list[str] = Field(default_factory=known_feeds)
    db: Path = Field(default_factory=default_db_path)
    show_progress: bool = True
    force_update: bool = False
    parallel_metafiles: bool = False
    timeout_seconds: float = Field(default=120.0, gt=0)
    retries: int = Field(default=3, ge=1, le=10)

    @field_validator("url", mode="before")
    @classmethod
    def _normalize_url(cls, v: Any) -> str:
        url = str(v or "").strip()
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"url must be http(s), got {url!r}")
        if not url.endswith("/"):
            url += "/"
        return url

    @field_validator("feeds", mode="before")
    @classmethod
    def _normalize_feeds(cls, v: Any) -> list[str]:
        feeds = parse_feed_list(v)
        if not feeds:
            raise ValueError("at least one feed is required")
        return feeds

    @field_validator("db", mode="before")
    @classmethod
    def _expand_db(cls, v: Any) -> Path:
        return Path(str(v)).expanduser()


def default_config(**overrides: Any) -> SyncConfig:
    """Build a config from defaults and environment variables.

    ``NVDCACHE_URL`` overrides the feed base URL.  Keyword arguments
    whose value is not ``None`` take precedence over both.
    """
    values: dict[str, Any] = {}
    env_url = os.environ.get("NVDCACHE_URL")
    if env_url:
        values["url"] = env_url
    values.update({k: v for k, v in overrides.items() if v is not None})
    return SyncConfig.model_validate(values)


def load_config(path: Path, **overrides: Any) -> SyncConfig:
    """Load a config from a YAML file.

    Args:
        path: Path to the YAML file.
        **overrides: Values that win over the file (``None`` is ignored).

    Returns:
        Validated ``SyncConfig`` instance.

    Raises:
        FileNotFoundError: if the file doesn't exist.
        pydantic.ValidationError: if content fails validation.
    """
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a YAML mapping")
    env_url = os.environ.get("NVDCACHE_URL")
    if env_url and "url" not in raw:
        raw["url"] = env_url
    raw.update({k: v for k, v in overrides.items() if v is not None})
    return SyncConfig.model_validate(raw)
