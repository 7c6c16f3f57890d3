"""
Record decoding shared by the store implementations.

The database holds plain dicts keyed by entry id. A single malformed record
(hand-edited in the console, written by an old client) must not take the
whole list down, so bad records are logged and skipped.
"""

from datetime import tzinfo
from typing import Any, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from kasbon.models.debt import DebtEntry
from kasbon.reconciliation import sort_entries


logger = structlog.get_logger(__name__)


def without_nulls(fields: dict) -> dict:
    """Drop None values; the Realtime Database never stores them."""
    return {k: v for k, v in fields.items() if v is not None}


def decode_entry(entry_id: str, record: Any, tz: Optional[tzinfo] = None) -> Optional[DebtEntry]:
    """Decode one stored record, or None if it can't be read. Timestamps are read in tz."""
    if not isinstance(record, dict):
        logger.warning("record_skipped", entry_id=entry_id, reason="not an object")
        return None
    try:
        return DebtEntry.from_record(entry_id, record, tz)
    except (PydanticValidationError, ValueError, TypeError) as e:
        logger.warning("record_skipped", entry_id=entry_id, reason=str(e))
        return None


def decode_collection(snapshot: Any, tz: Optional[tzinfo] = None) -> list[DebtEntry]:
    """
    Decode the whole collection, newest date first.

    The database returns None for an empty path and may return a list
    when keys look like array indices; both are handled.
    """
    if not snapshot:
        return []
    if isinstance(snapshot, list):
        items = [(str(i), record) for i, record in enumerate(snapshot) if record is not None]
    else:
        items = list(snapshot.items())

    entries = []
    for entry_id, record in items:
        entry = decode_entry(str(entry_id), record, tz)
        if entry is not None:
            entries.append(entry)
    return sort_entries(entries)
