"""Feed payload parsing.

Pure functions that turn decompressed feed bytes into
``VulnerabilityRecord`` objects.  No I/O or network calls; all inputs
are in-memory data structures.
"""

import json
from typing import Any

from pydantic import ValidationError

from .errors import ParseError
from .models import Cve, CveItem, FeedHeader, VulnerabilityRecord


def normalize_cve_id(cve_id: str) -> str:
    """Strip and uppercase a CVE identifier (``cve-2021-1`` → ``CVE-2021-1``)."""
    return (cve_id or "").strip().upper()


def pick_description(cve: Cve) -> str:
    """Select the best English description of a CVE.

    Prefers English (``en``, ``en-US``, etc.), falls back to the first
    description with a value.

    Returns:
        Description string, or empty string if none found.
    """
    descs = cve.description.description_data
    for d in descs:
        if d.lang.lower().startswith("en") and d.value:
            return d.value
    for d in descs:
        if d.value:
            return d.value
    return ""


def serialize_cve(cve_obj: dict[str, Any]) -> str:
    """Serialize the original ``cve`` object as compact JSON.

    Key order is kept as it appeared in the feed so the same input
    always produces the same bytes.
    """
    return json.dumps(cve_obj, ensure_ascii=False, separators=(",", ":"))


def record_from_item(item: dict[str, Any]) -> VulnerabilityRecord:
    """Build a record from one ``CVE_Items`` entry.

    Raises:
        ParseError: if the entry doesn't match the feed schema.
    """
    try:
        parsed = CveItem.model_validate(item)
    except ValidationError as e:
        raise ParseError(f"invalid CVE item: {e}") from e

    cve_id = normalize_cve_id(parsed.cve.cve_data_meta.id)
    if not cve_id:
        raise ParseError("CVE item has an empty ID")
    return VulnerabilityRecord(
        cve_id=cve_id,
        description=pick_description(parsed.cve),
        raw=serialize_cve(item["cve"]),
        cve=parsed.cve,
    )


def parse_feed(payload: bytes) -> list[VulnerabilityRecord]:
    """Parse a decompressed feed document into records.

    A single malformed item fails the whole payload: a feed is merged
    completely or not at all.

    Args:
        payload: Uncompressed feed JSON.

    Returns:
        Records in feed order.

    Raises:
        ParseError: if the payload isn't a valid feed document.
    """
    try:
        data = json.loads(payload)
    except (UnicodeDecodeError, ValueError) as e:
        raise ParseError(f"feed is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParseError(f"feed must be a JSON object, got {type(data).__name__}")

    try:
        header = FeedHeader.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"invalid feed document: {e}") from e

    records: list[VulnerabilityRecord] = []
    for index, item in enumerate(header.cve_items):
        try:
            records.append(record_from_item(item))
        except ParseError as e:
            raise ParseError(f"CVE_Items[{index}]: {e}") from e
    return records
