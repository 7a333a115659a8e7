"""Unit tests for nvdcache.downloaders — HTTP download helpers."""

import gzip
import io
from unittest.mock import MagicMock

import pytest
import requests

from nvdcache import __version__
from nvdcache.config import SyncConfig
from nvdcache.downloaders import (
    FeedClient,
    decompress,
    feed_name,
    metafile_name,
    requests_session,
)
from nvdcache.errors import DecompressionError, TransportError


def _gzip(data: bytes) -> bytes:
    buf = io.BytesIO()
    with gzip.GzipFile(fileobj=buf, mode="wb") as gz:
        gz.write(data)
    return buf.getvalue()


def _stream_response(chunks: list[bytes], length: str | None = None) -> MagicMock:
    mock_resp = MagicMock()
    mock_resp.iter_content.return_value = chunks
    mock_resp.headers = {"Content-Length": length} if length is not None else {}
    mock_resp.raise_for_status = MagicMock()
    mock_resp.__enter__ = lambda s: s
    mock_resp.__exit__ = MagicMock(return_value=False)
    return mock_resp


# ── requests_session ─────────────────────────────────────────────────────────


class TestRequestsSession:
    def test_user_agent(self):
        s = requests_session()
        assert s.headers["User-Agent"] == f"nvdcache/{__version__}"

    def test_accept_anything(self):
        s = requests_session()
        assert s.headers["Accept"] == "*/*"


# ── file names / URLs ────────────────────────────────────────────────────────


class TestFeedUrls:
    def test_names(self):
        assert metafile_name("2021") == "nvdcve-1.1-2021.meta"
        assert feed_name("recent") == "nvdcve-1.1-recent.json.gz"

    def test_urls(self):
        client = FeedClient("https://nvd.nist.gov/feeds/json/cve/1.1/", session=MagicMock())
        assert client.metafile_url("2021") == "https://nvd.nist.gov/feeds/json/cve/1.1/nvdcve-1.1-2021.meta"
        assert client.feed_url("modified") == "https://nvd.nist.gov/feeds/json/cve/1.1/nvdcve-1.1-modified.json.gz"

    def test_base_url_without_slash(self):
        client = FeedClient("https://mirror.example.com/nvd", session=MagicMock())
        assert client.metafile_url("2021") == "https://mirror.example.com/nvd/nvdcve-1.1-2021.meta"

    def test_from_config(self):
        config = SyncConfig(url="https://mirror.example.com/nvd/", timeout_seconds=5, retries=2)
        client = FeedClient.from_config(config, session=MagicMock())
        assert client.base_url == "https://mirror.example.com/nvd/"
        assert client.timeout[1] == 5
        assert client.retries == 2


# ── decompress ───────────────────────────────────────────────────────────────


class TestDecompress:
    def test_round_trip(self):
        assert decompress(_gzip(b'{"CVE_Items": []}')) == b'{"CVE_Items": []}'

    def test_multi_member(self):
        assert decompress(_gzip(b"ab") + _gzip(b"cd")) == b"abcd"

    def test_not_gzip(self):
        with pytest.raises(DecompressionError):
            decompress(b"definitely not gzip")

    def test_truncated(self):
        with pytest.raises(DecompressionError):
            decompress(_gzip(b"x" * 1000)[:-8])


# ── FeedClient.get_metafile ──────────────────────────────────────────────────


class TestGetMetafile:
    def test_returns_text(self, recent_meta):
        mock_session = MagicMock()
        mock_session.get.return_value.text = recent_meta
        mock_session.get.return_value.raise_for_status = MagicMock()
        client = FeedClient("https://example.com/", session=mock_session)

        assert client.get_metafile("recent") == recent_meta
        url = mock_session.get.call_args[0][0]
        assert url == "https://example.com/nvdcve-1.1-recent.meta"

    def test_http_error_not_retried(self):
        mock_session = MagicMock()
        mock_session.get.return_value.raise_for_status.side_effect = requests.HTTPError("404 Not Found")
        client = FeedClient("https://example.com/", session=mock_session, retries=3, backoff=0)

        with pytest.raises(TransportError, match="404"):
            client.get_metafile("1999")
        assert mock_session.get.call_count == 1

    def test_connection_error_retried(self, recent_meta):
        ok = MagicMock()
        ok.text = recent_meta
        mock_session = MagicMock()
        mock_session.get.side_effect = [requests.ConnectionError("reset"), ok]
        client = FeedClient("https://example.com/", session=mock_session, retries=3, backoff=0)

        assert client.get_metafile("recent") == recent_meta
        assert mock_session.get.call_count == 2

    def test_gives_up_after_retries(self):
        mock_session = MagicMock()
        mock_session.get.side_effect = requests.Timeout("slow")
        client = FeedClient("https://example.com/", session=mock_session, retries=2, backoff=0)

        with pytest.raises(TransportError, match="slow"):
            client.get_metafile("recent")
        assert mock_session.get.call_count == 2


# ── FeedClient.get_feed ──────────────────────────────────────────────────────


class TestGetFeed:
    def test_downloads_and_decompresses(self):
        payload = _gzip(b'{"CVE_Items": []}')
        mock_session = MagicMock()
        mock_session.get.return_value = _stream_response([payload[:10], payload[10:]])
        client = FeedClient("https://example.com/", session=mock_session)

        assert client.get_feed("2021") == b'{"CVE_Items": []}'
        args, kwargs = mock_session.get.call_args
        assert args[0] == "https://example.com/nvdcve-1.1-2021.json.gz"
        assert kwargs["stream"] is True

    def test_progress_reports_bytes(self):
        payload = _gzip(b"x" * 100)
        mock_session = MagicMock()
        mock_session.get.return_value = _stream_response([payload[:5], payload[5:]], length=str(len(payload)))
        client = FeedClient("https://example.com/", session=mock_session)

        calls = []
        client.get_feed("2021", progress=lambda done, total: calls.append((done, total)))
        assert calls == [(5, len(payload)), (len(payload), len(payload))]

    def test_progress_without_length(self):
        payload = _gzip(b"x")
        mock_session = MagicMock()
        mock_session.get.return_value = _stream_response([payload])
        client = FeedClient("https://example.com/", session=mock_session)

        calls = []
        client.get_feed("2021", progress=lambda done, total: calls.append((done, total)))
        assert calls == [(len(payload), None)]

    def test_failing_progress_is_ignored(self):
        payload = _gzip(b"data")
        mock_session = MagicMock()
        mock_session.get.return_value = _stream_response([payload])
        client = FeedClient("https://example.com/", session=mock_session)

        def boom(done, total):
            raise RuntimeError("display gone")

        assert client.get_feed("2021", progress=boom) == b"data"

    def test_bad_payload(self):
        mock_session = MagicMock()
        mock_session.get.return_value = _stream_response([b"<html>maintenance</html>"])
        client = FeedClient("https://example.com/", session=mock_session)

        with pytest.raises(DecompressionError):
            client.get_feed("2021")

    def test_transport_error(self):
        mock_session = MagicMock()
        mock_session.get.side_effect = requests.ConnectionError("refused")
        client = FeedClient("https://example.com/", session=mock_session, retries=1, backoff=0)

        with pytest.raises(TransportError, match="nvdcve-1.1-2021.json.gz"):
            client.get_feed("2021")
