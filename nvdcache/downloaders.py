"""HTTP download helpers for the NVD feed source.

``FeedClient`` fetches a feed's ``.meta`` descriptor and its gzipped JSON
payload.  All network I/O is isolated here; the rest of the package
works with bytes, strings and parsed models.
"""

import gzip
import io
import logging
import zlib
from typing import Callable
from urllib.parse import urljoin

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from . import __version__
from .config import DEFAULT_FEED_URL, SyncConfig
from .errors import DecompressionError, TransportError

logger = logging.getLogger(__name__)

FEED_FILE_PREFIX = "nvdcve-1.1-"
DEFAULT_HTTP_TIMEOUT = (10, 120)  # (connect, read)
CHUNK_SIZE = 1024 * 1024

ProgressCallback = Callable[[int, int | None], None]


def requests_session() -> requests.Session:
    """Create a requests session with the nvdcache User-Agent.

    Returns:
        Configured ``requests.Session``.
    """
    s = requests.Session()
    s.headers.update(
        {
            "User-Agent": f"nvdcache/{__version__}",
            "Accept": "*/*",
        }
    )
    return s


def metafile_name(feed: str) -> str:
    return f"{FEED_FILE_PREFIX}{feed}.meta"


def feed_name(feed: str) -> str:
    return f"{FEED_FILE_PREFIX}{feed}.json.gz"


def decompress(raw: bytes) -> bytes:
    """Gunzip a feed payload (multi-member archives included).

    Raises:
        DecompressionError: if ``raw`` is not valid gzip data.
    """
    try:
        with gzip.GzipFile(fileobj=io.BytesIO(raw), mode="rb") as gz:
            return gz.read()
    except (OSError, EOFError, zlib.error) as e:
        raise DecompressionError(f"payload is not valid gzip data: {e}") from e


def _report_progress(progress: ProgressCallback | None, done: int, total: int | None) -> None:
    if progress is None:
        return
    try:
        progress(done, total)
    except Exception as e:
        logger.warning("Progress callback failed: %s", e)


class FeedClient:
    """Fetches NVD feed files relative to a base URL.

    Connection errors and timeouts are retried with exponential backoff;
    HTTP status errors are not.  Every failure surfaces as
    ``TransportError``.

    Attributes:
        base_url: Feed root, always ending in ``/``.
        session: Underlying ``requests.Session``.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_FEED_URL,
        session: requests.Session | None = None,
        timeout: tuple[float, float] = DEFAULT_HTTP_TIMEOUT,
        retries: int = 3,
        backoff: float = 1.0,
    ):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.session = session or requests_session()
        self.timeout = timeout
        self.retries = retries
        self.backoff = backoff

    @classmethod
    def from_config(cls, config: SyncConfig, session: requests.Session | None = None) -> "FeedClient":
        return cls(
            base_url=config.url,
            session=session,
            timeout=(DEFAULT_HTTP_TIMEOUT[0], config.timeout_seconds),
            retries=config.retries,
        )

    def metafile_url(self, feed: str) -> str:
        return urljoin(self.base_url, metafile_name(feed))

    def feed_url(self, feed: str) -> str:
        return urljoin(self.base_url, feed_name(feed))

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.retries),
            wait=wait_exponential(multiplier=self.backoff, min=0, max=30),
            retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
            reraise=True,
        )

    def _get_text(self, url: str) -> str:
        r = self.session.get(url, timeout=self.timeout)
        r.raise_for_status()
        return r.text

    def _download(self, url: str, progress: ProgressCallback | None) -> bytes:
        with self.session.get(url, stream=True, timeout=self.timeout) as r:
            r.raise_for_status()
            length = r.headers.get("Content-Length")
            total = int(length) if length and str(length).isdigit() else None
            buf = io.BytesIO()
            done = 0
            for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                if chunk:
                    buf.write(chunk)
                    done += len(chunk)
                    _report_progress(progress, done, total)
            return buf.getvalue()

    def get_metafile(self, feed: str) -> str:
        """Fetch the ``.meta`` descriptor text for ``feed``.

        Raises:
            TransportError: if the request fails.
        """
        url = self.metafile_url(feed)
        logger.debug("Fetching metafile %s", url)
        try:
            return self._retrying()(self._get_text, url)
        except requests.RequestException as e:
            raise TransportError(f"failed to fetch {url}: {e}") from e

    def get_feed(self, feed: str, progress: ProgressCallback | None = None) -> bytes:
        """Download and decompress the JSON payload for ``feed``.

        Args:
            feed: Feed identifier (``2019``, ``recent`` …).
            progress: Optional ``progress(downloaded_bytes, total_bytes)``
                observer.  Exceptions it raises are logged, never
                propagated.

        Returns:
            The uncompressed JSON bytes.

        Raises:
            TransportError: if the download fails.
            DecompressionError: if the payload isn't gzip.
        """
        url = self.feed_url(feed)
        logger.debug("Downloading feed %s", url)
        try:
            raw = self._retrying()(self._download, url, progress)
        except requests.RequestException as e:
            raise TransportError(f"failed to fetch {url}: {e}") from e
        return decompress(raw)
