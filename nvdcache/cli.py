"""Command-line interface: ``nvdcache sync``, ``search`` and ``status``."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from pydantic import ValidationError
from tqdm import tqdm

from . import __version__
from .config import SyncConfig, default_config, default_db_path, load_config
from .errors import NotFound, StoreError
from .query import lookup, lookup_pretty, search
from .report import render_config, render_status, render_sync_summary
from .store import Store
from .sync import sync_feeds

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ERROR = 2


class _ProgressBars:
    """Feed-keyed tqdm download bars, used as the sync progress observer."""

    def __init__(self) -> None:
        self._bars: dict[str, tqdm] = {}

    def __call__(self, feed: str, done: int, total: int | None) -> None:
        bar = self._bars.get(feed)
        if bar is None:
            bar = tqdm(total=total, desc=f"[Feed: {feed}]", unit="B", unit_scale=True, leave=False)
            self._bars[feed] = bar
        bar.update(done - bar.n)

    def close(self) -> None:
        for bar in self._bars.values():
            bar.close()
        self._bars.clear()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_config(args: argparse.Namespace) -> SyncConfig:
    overrides = {
        "url": args.url,
        "feeds": args.feeds,
        "db": args.db,
        "show_progress": False if args.no_progress else None,
        "force_update": True if args.force else None,
        "parallel_metafiles": True if args.parallel_metafiles else None,
    }
    if args.config:
        return load_config(Path(args.config), **overrides)
    return default_config(**overrides)


def cmd_sync(args: argparse.Namespace) -> int:
    try:
        config = _build_config(args)
    except (ValidationError, ValueError, OSError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_ERROR

    if args.show_default:
        print(render_config(config), end="")
        return EXIT_OK

    bars = _ProgressBars() if config.show_progress else None
    try:
        result = sync_feeds(config, progress=bars)
    except StoreError as e:
        print(f"Fatal Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        if bars is not None:
            bars.close()

    print(render_sync_summary(result), end="")
    return EXIT_OK if result.ok else EXIT_FAILED


def cmd_search(args: argparse.Namespace) -> int:
    if args.text is None and not args.cve:
        print("Error: give a CVE ID or --text STRING", file=sys.stderr)
        return EXIT_ERROR
    if args.text is not None and not args.text.strip():
        print("Error: search text must not be empty", file=sys.stderr)
        return EXIT_ERROR

    db = Path(args.db).expanduser() if args.db else default_db_path()
    try:
        with Store.open_readonly(db) as store:
            if args.text is not None:
                ids = search(store, args.text)
                if not ids:
                    print("No results found", file=sys.stderr)
                    return EXIT_FAILED
                for cve_id in ids:
                    print(cve_id)
                return EXIT_OK

            print(lookup_pretty(store, args.cve) if args.pretty else lookup(store, args.cve))
            return EXIT_OK
    except NotFound as e:
        print(f"Not found: {e}", file=sys.stderr)
        return EXIT_FAILED
    except StoreError as e:
        print(f"Fatal Error: {e}", file=sys.stderr)
        return EXIT_ERROR


def cmd_status(args: argparse.Namespace) -> int:
    db = Path(args.db).expanduser() if args.db else default_db_path()
    try:
        with Store.open_readonly(db) as store:
            text = render_status(db, store.list_metafiles(), store.count_records())
    except StoreError as e:
        print(f"Fatal Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    print(text, end="")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nvdcache",
        description="Search for CVEs against a local cached copy of the NIST National Vulnerability Database.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    p_sync = sub.add_parser("sync", help="Sync CVE feeds to the local database")
    p_sync.add_argument("-u", "--url", help="Base URL for fetching feeds (default: NVD JSON 1.1 feed root)")
    p_sync.add_argument("-l", "--feeds", metavar="LIST", help="Comma separated feeds to sync (default: all)")
    p_sync.add_argument("-d", "--db", metavar="FILE", help="Path to the SQLite database")
    p_sync.add_argument("-c", "--config", metavar="FILE", help="YAML config file")
    p_sync.add_argument("-s", "--show-default", action="store_true", help="Show effective config values and exit")
    p_sync.add_argument("-n", "--no-progress", action="store_true", help="Don't show progress bars")
    p_sync.add_argument("-f", "--force", action="store_true", help="Ignore cached metafiles and re-sync all feeds")
    p_sync.add_argument(
        "-p", "--parallel-metafiles", action="store_true", help="Fetch all feed metafiles concurrently first"
    )
    p_sync.add_argument("-v", "--verbose", action="store_true", help="Print debug logs")
    p_sync.set_defaults(func=cmd_sync)

    p_search = sub.add_parser("search", help="Search the local cache by CVE ID or description text")
    p_search.add_argument("cve", nargs="?", metavar="CVE", help="CVE ID to retrieve")
    p_search.add_argument("-t", "--text", help="Search CVE descriptions (case-insensitive substring)")
    p_search.add_argument("-d", "--db", metavar="FILE", help="Path to the SQLite database")
    p_search.add_argument("--pretty", action="store_true", help="Indent the returned record")
    p_search.add_argument("-v", "--verbose", action="store_true", help="Print debug logs")
    p_search.set_defaults(func=cmd_search)

    p_status = sub.add_parser("status", help="Show synced feeds and record count")
    p_status.add_argument("-d", "--db", metavar="FILE", help="Path to the SQLite database")
    p_status.add_argument("-v", "--verbose", action="store_true", help="Print debug logs")
    p_status.set_defaults(func=cmd_status)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_usage(sys.stderr)
        print("Error: a subcommand is required: sync, search or status", file=sys.stderr)
        return EXIT_ERROR
    _setup_logging(args.verbose)
    return args.func(args)
