"""Shared fixtures: sample NVD feed documents, metafiles and a fake feed source."""

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from nvdcache.errors import TransportError
from nvdcache.store import Store

RECENT_META = (
    "lastModifiedDate:2021-12-18T19:00:00-05:00\r\n"
    "size:1744779\r\n"
    "zipSize:116171\r\n"
    "gzSize:116031\r\n"
    "sha256:0EA38A9771747DD51A3E009FB8738732144266C4EF4EDC548B70F33555CC1586\r\n"
)


def _make_item(
    cve_id: str = "CVE-2021-43437",
    description: str = "Test vulnerability",
    assigner: str = "cve@mitre.org",
    lang: str = "en",
) -> dict[str, Any]:
    return {
        "cve": {
            "data_type": "CVE",
            "data_format": "MITRE",
            "data_version": "4.0",
            "CVE_data_meta": {"ID": cve_id, "ASSIGNER": assigner},
            "problemtype": {"problemtype_data": [{"description": [{"lang": "en", "value": "CWE-79"}]}]},
            "references": {
                "reference_data": [
                    {
                        "url": f"https://example.com/{cve_id}",
                        "name": f"https://example.com/{cve_id}",
                        "refsource": "MISC",
                        "tags": ["Third Party Advisory"],
                    }
                ]
            },
            "description": {"description_data": [{"lang": lang, "value": description}]},
        },
        "configurations": {"CVE_data_version": "4.0", "nodes": []},
        "impact": {},
        "publishedDate": "2021-12-17T22:15Z",
        "lastModifiedDate": "2021-12-18T01:04Z",
    }


def _make_feed(items: list[dict[str, Any]]) -> bytes:
    doc = {
        "CVE_data_type": "CVE",
        "CVE_data_format": "MITRE",
        "CVE_data_version": "4.0",
        "CVE_data_numberOfCVEs": str(len(items)),
        "CVE_data_timestamp": "2021-12-18T19:00Z",
        "CVE_Items": items,
    }
    return json.dumps(doc).encode("utf-8")


def _make_meta(last_modified: str = "2021-12-18T19:00:00-05:00", gz_size: int = 116031) -> str:
    return (
        f"lastModifiedDate:{last_modified}\n"
        "size:1744779\n"
        "zipSize:116171\n"
        f"gzSize:{gz_size}\n"
        "sha256:0EA38A9771747DD51A3E009FB8738732144266C4EF4EDC548B70F33555CC1586\n"
    )


class FakeFeedClient:
    """In-memory stand-in for ``FeedClient``.

    ``metafiles`` and ``feeds`` map a feed name to the metafile text and
    the decompressed payload; an exception value is raised instead.
    Unknown feeds raise ``TransportError`` like a 404 would.
    """

    def __init__(self) -> None:
        self.metafiles: dict[str, Any] = {}
        self.feeds: dict[str, Any] = {}
        self.metafile_calls: list[str] = []
        self.feed_calls: list[str] = []

    def publish(self, feed: str, items: list[dict[str, Any]], last_modified: str = "2021-12-18T19:00:00-05:00") -> None:
        self.metafiles[feed] = _make_meta(last_modified)
        self.feeds[feed] = _make_feed(items)

    def _get(self, table: dict[str, Any], feed: str) -> Any:
        if feed not in table:
            raise TransportError(f"404 Not Found: {feed}")
        value = table[feed]
        if isinstance(value, Exception):
            raise value
        return value

    def get_metafile(self, feed: str) -> str:
        self.metafile_calls.append(feed)
        return self._get(self.metafiles, feed)

    def get_feed(self, feed: str, progress: Callable[[int, int | None], None] | None = None) -> bytes:
        self.feed_calls.append(feed)
        payload = self._get(self.feeds, feed)
        if progress is not None:
            progress(len(payload), len(payload))
        return payload


@pytest.fixture
def make_item() -> Callable[..., dict[str, Any]]:
    return _make_item


@pytest.fixture
def make_feed() -> Callable[[list[dict[str, Any]]], bytes]:
    return _make_feed


@pytest.fixture
def make_meta() -> Callable[..., str]:
    return _make_meta


@pytest.fixture
def recent_meta() -> str:
    return RECENT_META


@pytest.fixture
def fake_client() -> FakeFeedClient:
    return FakeFeedClient()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "cache" / "nvd" / "nvd.sqlite3"


@pytest.fixture
def store(db_path: Path):
    s = Store(db_path)
    s.create_schema()
    yield s
    s.close()
