"""SQLite store for cached CVE records and feed watermarks.

Two tables live in one database file:

``cve``
    One row per CVE ID holding the searchable description and the
    original serialized ``cve`` object.
``metafile``
    One row per feed holding the metafile seen at its last successful
    merge.  This row is the feed's watermark: it is written in the same
    transaction as the feed's records, so a feed without a current
    watermark is simply re-synced next time.

The database runs in WAL mode so readers never see a feed that is only
half merged.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

from .errors import StoreError
from .metafile import Metafile, parse_datetime
from .models import VulnerabilityRecord

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS cve (
    id VARCHAR PRIMARY KEY,
    description TEXT NOT NULL DEFAULT '',
    description_folded TEXT NOT NULL DEFAULT '',
    data TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS metafile (
    feed VARCHAR PRIMARY KEY,
    last_modified_date VARCHAR NOT NULL,
    size INTEGER NOT NULL,
    zip_size INTEGER NOT NULL,
    gz_size INTEGER NOT NULL,
    sha256 VARCHAR NOT NULL
);
"""

UPSERT_CVE_SQL = """
INSERT INTO cve (id, description, description_folded, data)
VALUES (?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    description = excluded.description,
    description_folded = excluded.description_folded,
    data = excluded.data
"""

UPSERT_METAFILE_SQL = """
INSERT INTO metafile (feed, last_modified_date, size, zip_size, gz_size, sha256)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT(feed) DO UPDATE SET
    last_modified_date = excluded.last_modified_date,
    size = excluded.size,
    zip_size = excluded.zip_size,
    gz_size = excluded.gz_size,
    sha256 = excluded.sha256
"""

NOT_SYNCED_HINT = "run `nvdcache sync` first"


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except (sqlite3.Error, OSError) as e:
        raise StoreError(f"{action} failed: {e}") from e


class Store:
    """Keyed collection of CVE records plus per-feed metafiles.

    Attributes:
        path: Path to the SQLite database file.
        readonly: Open the database read-only (queries).
    """

    def __init__(self, path: Path, readonly: bool = False):
        self.path = Path(path)
        self.readonly = readonly
        self._conn: sqlite3.Connection | None = None

    @classmethod
    def open_readonly(cls, path: Path) -> "Store":
        """Open an existing store for queries.

        Raises:
            StoreError: if the database doesn't exist yet.
        """
        path = Path(path)
        if not path.is_file():
            raise StoreError(f"no local cache at {path}; {NOT_SYNCED_HINT}")
        store = cls(path, readonly=True)
        store.connect()
        return store

    def connect(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        with _store_errors(f"opening {self.path}"):
            if self.readonly:
                uri = self.path.resolve().as_uri() + "?mode=ro"
                conn = sqlite3.connect(uri, uri=True, isolation_level=None, timeout=30)
            else:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.path), isolation_level=None, timeout=30)
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
        self._conn = conn
        return conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "Store":
        self.connect()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def create_schema(self) -> None:
        """Create the tables if they don't exist yet."""
        conn = self.connect()
        with _store_errors("creating schema"):
            conn.executescript(SCHEMA)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the body inside one ``BEGIN IMMEDIATE`` transaction.

        Commits on success and rolls back on any exception, so a failed
        body leaves no trace in the database.
        """
        conn = self.connect()
        with _store_errors("transaction"):
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    # ── Metafiles ────────────────────────────────────────────────────────

    @staticmethod
    def _metafile_from_row(row: tuple) -> Metafile:
        last_modified, size, zip_size, gz_size, sha256 = row
        return Metafile(
            last_modified_date=parse_datetime(last_modified),
            size=int(size or 0),
            zip_size=int(zip_size or 0),
            gz_size=int(gz_size or 0),
            sha256=sha256 or "",
        )

    def get_metafile(self, feed: str) -> Metafile | None:
        """Return the watermark for ``feed``, or ``None`` if never synced."""
        conn = self.connect()
        with _store_errors(f"reading metafile for {feed}"):
            row = conn.execute(
                "SELECT last_modified_date, size, zip_size, gz_size, sha256 FROM metafile WHERE feed = ?",
                (feed,),
            ).fetchone()
        return self._metafile_from_row(row) if row else None

    def get_metafiles(self, feeds: Iterable[str]) -> dict[str, Metafile | None]:
        return {feed: self.get_metafile(feed) for feed in feeds}

    def list_metafiles(self) -> list[tuple[str, Metafile]]:
        """Return every stored watermark ordered by feed name."""
        conn = self.connect()
        with _store_errors("listing metafiles"):
            rows = conn.execute(
                "SELECT feed, last_modified_date, size, zip_size, gz_size, sha256 FROM metafile ORDER BY feed"
            ).fetchall()
        return [(row[0], self._metafile_from_row(row[1:])) for row in rows]

    @staticmethod
    def _write_metafile(conn: sqlite3.Connection, feed: str, metafile: Metafile) -> None:
        conn.execute(
            UPSERT_METAFILE_SQL,
            (
                feed,
                metafile.format_last_modified_date(),
                metafile.size,
                metafile.zip_size,
                metafile.gz_size,
                metafile.sha256,
            ),
        )

    def set_metafile(self, feed: str, metafile: Metafile) -> None:
        """Replace the watermark for ``feed``."""
        with self.transaction() as conn:
            self._write_metafile(conn, feed, metafile)

    # ── Records ──────────────────────────────────────────────────────────

    @staticmethod
    def _write_records(conn: sqlite3.Connection, records: Iterable[VulnerabilityRecord]) -> int:
        count = 0
        for record in records:
            conn.execute(
                UPSERT_CVE_SQL,
                (record.cve_id, record.description, record.description.casefold(), record.raw),
            )
            count += 1
        return count

    def upsert_records(self, records: Iterable[VulnerabilityRecord]) -> int:
        """Insert or replace records by CVE ID without touching watermarks.

        Returns:
            Number of records written.
        """
        with self.transaction() as conn:
            return self._write_records(conn, records)

    def commit_feed(self, feed: str, records: Iterable[VulnerabilityRecord], metafile: Metafile) -> int:
        """Upsert a feed's records and then advance its watermark atomically.

        Returns:
            Number of records written.

        Raises:
            StoreError: if anything fails; nothing is committed then.
        """
        with self.transaction() as conn:
            count = self._write_records(conn, records)
            self._write_metafile(conn, feed, metafile)
        logger.debug("Committed %d records and watermark for %s", count, feed)
        return count

    def get_record(self, cve_id: str) -> str | None:
        """Return the stored serialized ``cve`` object, or ``None``."""
        conn = self.connect()
        with _store_errors(f"reading {cve_id}; {NOT_SYNCED_HINT}"):
            row = conn.execute("SELECT data FROM cve WHERE id = ?", (cve_id,)).fetchone()
        return row[0] if row else None

    def search_descriptions(self, text: str) -> list[str]:
        """Return IDs whose description contains ``text``, case-insensitively.

        Results are ordered by CVE ID.
        """
        conn = self.connect()
        with _store_errors(f"searching descriptions; {NOT_SYNCED_HINT}"):
            rows = conn.execute(
                "SELECT id FROM cve WHERE instr(description_folded, ?) > 0 ORDER BY id",
                (text.casefold(),),
            ).fetchall()
        return [row[0] for row in rows]

    def count_records(self) -> int:
        conn = self.connect()
        with _store_errors("counting records"):
            return int(conn.execute("SELECT COUNT(*) FROM cve").fetchone()[0])
