"""Plain-text rendering using Jinja2 templates.

The templates live in ``nvdcache/templates/``: one for the per-feed
sync summary, one for the ``status`` command and one for
``sync --show-default``.
"""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .config import SyncConfig
from .metafile import Metafile
from .sync import SyncResult

_TEMPLATES_DIR = Path(__file__).parent / "templates"


def filesize(num: int | float | None) -> str:
    """Format a byte count with binary units (``1.5 MiB``)."""
    value = float(num or 0)
    if value < 1024:
        return f"{value:.0f} B"
    for unit in ("KiB", "MiB"):
        value /= 1024
        if value < 1024:
            return f"{value:.1f} {unit}"
    return f"{value / 1024:.1f} GiB"


def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)),
        autoescape=select_autoescape(default_for_string=False, default=False),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["filesize"] = filesize
    return env


def render_sync_summary(result: SyncResult) -> str:
    """Render one line per feed plus the aggregate summary."""
    template = _environment().get_template("sync_summary.txt.j2")
    return template.render(results=result.results, summary=result.summary())


def render_status(path: Path, metafiles: list[tuple[str, Metafile]], record_count: int) -> str:
    """Render the cached watermarks of a store."""
    template = _environment().get_template("status.txt.j2")
    return template.render(path=path, metafiles=metafiles, record_count=record_count)


def render_config(config: SyncConfig) -> str:
    """Render the effective configuration (``sync --show-default``)."""
    template = _environment().get_template("config.txt.j2")
    return template.render(config=config)
