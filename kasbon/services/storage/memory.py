"""
In-Memory Storage Implementation

Used by the tests and as the fallback when Firebase isn't configured.
Records are kept in the same shape as in the Realtime Database so the
record codec is exercised exactly as in production.

Changes are pushed to subscribers synchronously, right after each write.
"""

from datetime import tzinfo
from typing import Optional
from uuid import uuid4

from kasbon.models.debt import DebtDraft, DebtEntry
from kasbon.models.audit import AuditEvent
from kasbon.services.storage.codec import decode_collection, without_nulls
from kasbon.services.storage.interface import (
    AuditStorageInterface,
    ChangeCallback,
    DebtStoreInterface,
    NotFoundError,
    StoreError,
    Unsubscribe,
)


class InMemoryDebtStore(DebtStoreInterface):
    """
    Dict-backed debt store.

    Call fail_next() to make the next write raise, which is how the
    tests simulate a backend outage.
    """

    name = "memory"

    def __init__(
        self,
        records: Optional[dict[str, dict]] = None,
        tz: Optional[tzinfo] = None,
    ):
        self._tz = tz
        self._records: dict[str, dict] = {
            key: without_nulls(record) for key, record in (records or {}).items()
        }
        self._subscribers: list[ChangeCallback] = []
        self._next_error: Optional[Exception] = None
        self.writes: list[tuple[str, str]] = []

    @property
    def records(self) -> dict[str, dict]:
        """Copy of the raw stored records."""
        return {key: dict(record) for key, record in self._records.items()}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def fail_next(self, error: Optional[Exception] = None) -> None:
        """Make the next create/patch/delete raise this error."""
        self._next_error = error or StoreError("Simulated backend failure")

    def _raise_if_failing(self) -> None:
        if self._next_error is not None:
            error, self._next_error = self._next_error, None
            raise error

    def _notify(self) -> None:
        entries = decode_collection(self._records, self._tz)
        for callback in list(self._subscribers):
            callback(entries)

    async def subscribe(self, on_change: ChangeCallback) -> Unsubscribe:
        self._subscribers.append(on_change)
        on_change(decode_collection(self._records, self._tz))

        def unsubscribe() -> None:
            if on_change in self._subscribers:
                self._subscribers.remove(on_change)

        return unsubscribe

    async def create(self, draft: DebtDraft) -> str:
        self._raise_if_failing()
        entry_id = uuid4().hex
        self._records[entry_id] = without_nulls(draft.to_record())
        self.writes.append(("create", entry_id))
        self._notify()
        return entry_id

    async def patch(self, entry_id: str, fields: dict) -> None:
        self._raise_if_failing()
        record = self._records.get(entry_id)
        if record is None:
            raise NotFoundError(f"Debt not found: {entry_id}")

        # Same semantics as a Realtime Database update: None removes the key
        for key, value in fields.items():
            if value is None:
                record.pop(key, None)
            else:
                record[key] = value
        self.writes.append(("patch", entry_id))
        self._notify()

    async def delete(self, entry_id: str) -> None:
        self._raise_if_failing()
        self._records.pop(entry_id, None)
        self.writes.append(("delete", entry_id))
        self._notify()

    async def list_entries(self) -> list[DebtEntry]:
        return decode_collection(self._records, self._tz)


class InMemoryAuditStorage(AuditStorageInterface):
    """Keeps audit events in a list."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True
