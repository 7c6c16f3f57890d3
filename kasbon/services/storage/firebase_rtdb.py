"""
Firebase Realtime Database Storage Implementation

DESIGN DECISION: The Realtime Database is the backend because:
1. Every open page gets changes pushed to it, no polling
2. No server of our own to run
3. The data can be inspected and fixed in the Firebase console

TRADEOFFS:
- No transactions across entries and no uniqueness constraints, so the
  one-open-debt-per-name rule is kept by the reconciler only
- Records are ordered by a string date; we re-sort on the client

Records live under one path (default "hutang"), one child per entry, keyed
by the push id the database generates.
"""

import threading
from datetime import tzinfo
from typing import Any, Optional

import firebase_admin
import structlog
from firebase_admin import credentials, db
from firebase_admin.exceptions import FirebaseError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from kasbon.config import FirebaseSettings, get_settings
from kasbon.models.debt import DebtDraft, DebtEntry
from kasbon.models.audit import AuditEvent
from kasbon.services.storage.codec import decode_collection, without_nulls
from kasbon.services.storage.interface import (
    AuditStorageInterface,
    ChangeCallback,
    DebtStoreInterface,
    NotFoundError,
    StoreConnectionError,
    StoreError,
    Unsubscribe,
)


logger = structlog.get_logger(__name__)

APP_NAME = "kasbon"

# Errors the admin SDK raises for failed requests and bad arguments
SDK_ERRORS = (FirebaseError, ValueError)


def _split_path(path: str) -> list[str]:
    return [part for part in path.split("/") if part]


def _set_path(tree: dict, parts: list[str], value: Any) -> dict:
    """Copy of tree with value written at parts. None deletes the node."""
    if not parts:
        return dict(value) if isinstance(value, dict) else {}

    head, rest = parts[0], parts[1:]
    updated = dict(tree)
    if rest:
        child = tree.get(head)
        child = _set_path(child if isinstance(child, dict) else {}, rest, value)
        if child:
            updated[head] = child
        else:
            updated.pop(head, None)
    elif value is None:
        updated.pop(head, None)
    else:
        updated[head] = value
    return updated


def apply_stream_event(
    snapshot: dict,
    event_type: str,
    path: str,
    data: Any,
) -> dict:
    """
    Apply one listener event to a local copy of the collection.

    "put" replaces the node at path; "patch" merges the given children
    into it. Any other event type leaves the snapshot as is.
    """
    parts = _split_path(path)
    if event_type == "put":
        return _set_path(snapshot, parts, data)
    if event_type == "patch" and isinstance(data, dict):
        for key, value in data.items():
            snapshot = _set_path(snapshot, parts + _split_path(key), value)
    return snapshot


class FirebaseClient:
    """
    Low-level Firebase wrapper.

    Handles app initialization and provides retry logic for the initial
    connection. Writes are never retried.
    """

    def __init__(self, settings: Optional[FirebaseSettings] = None):
        self._settings = settings or get_settings().firebase
        self._app: Optional[firebase_admin.App] = None

    @property
    def settings(self) -> FirebaseSettings:
        return self._settings

    def _initialize_app(self) -> firebase_admin.App:
        try:
            return firebase_admin.get_app(APP_NAME)
        except ValueError:
            pass

        if self._settings.credentials_path:
            credential = credentials.Certificate(self._settings.credentials_path)
        else:
            credential = credentials.ApplicationDefault()
        return firebase_admin.initialize_app(
            credential,
            {"databaseURL": self._settings.database_url},
            name=APP_NAME,
        )

    @retry(
        retry=retry_if_exception_type(StoreConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> firebase_admin.App:
        """
        Initialize the app and check the database answers.

        Uses a service account file if configured, otherwise the
        application default credentials.
        """
        if self._app is None:
            try:
                app = self._initialize_app()
                db.reference(self._settings.debts_path, app=app).get(shallow=True)
            except FileNotFoundError:
                raise StoreConnectionError(
                    f"Firebase credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StoreConnectionError(f"Failed to connect to Firebase: {e}")
            self._app = app
            logger.info("firebase_connected", database_url=self._settings.database_url)

        return self._app

    def reference(self, path: str) -> db.Reference:
        """Reference to a path in the configured database."""
        return db.reference(path, app=self.connect())

    def debts(self) -> db.Reference:
        return self.reference(self._settings.debts_path)

    def audit(self) -> db.Reference:
        return self.reference(self._settings.audit_path)


class _StreamSubscription:
    """One listener on the debts path and its local copy of the data."""

    def __init__(
        self,
        reference: db.Reference,
        on_change: ChangeCallback,
        tz: Optional[tzinfo] = None,
    ):
        self._tz = tz
        self._reference = reference
        self._on_change = on_change
        self._snapshot: dict = {}
        self._lock = threading.Lock()
        self._registration = None

    def start(self) -> None:
        self._registration = self._reference.listen(self._handle)

    def stop(self) -> None:
        if self._registration is not None:
            self._registration.close()
            self._registration = None

    def _handle(self, event: db.Event) -> None:
        # Runs on the SDK's listener thread
        with self._lock:
            self._snapshot = apply_stream_event(
                self._snapshot, event.event_type, event.path, event.data
            )
            entries = decode_collection(self._snapshot, self._tz)
        try:
            self._on_change(entries)
        except Exception:
            logger.exception("change_callback_failed", path=self._reference.path)


class FirebaseDebtStore(DebtStoreInterface):
    """
    Realtime Database implementation of the debt store.

    Each entry is one child of the debts path, in stored-record shape.
    """

    name = "firebase"

    def __init__(
        self,
        client: Optional[FirebaseClient] = None,
        tz: Optional[tzinfo] = None,
    ):
        self._client = client or FirebaseClient()
        self._tz = tz

    async def subscribe(self, on_change: ChangeCallback) -> Unsubscribe:
        """Start a listener that pushes the whole collection on every change."""
        try:
            subscription = _StreamSubscription(self._client.debts(), on_change, self._tz)
            subscription.start()
        except StoreError:
            raise
        except SDK_ERRORS as e:
            raise StoreError(f"Failed to subscribe to debts: {e}")
        return subscription.stop

    async def create(self, draft: DebtDraft) -> str:
        try:
            new_ref = self._client.debts().push(without_nulls(draft.to_record()))
        except StoreError:
            raise
        except SDK_ERRORS as e:
            raise StoreError(f"Failed to create debt: {e}")
        return new_ref.key

    async def patch(self, entry_id: str, fields: dict) -> None:
        """
        Update fields of an existing entry.

        None values delete the field, as in any Realtime Database update.
        """
        try:
            entry_ref = self._client.debts().child(entry_id)
            # An update on a missing key would silently recreate a deleted debt
            if entry_ref.get(shallow=True) is None:
                raise NotFoundError(f"Debt not found: {entry_id}")
            entry_ref.update(fields)
        except StoreError:
            raise
        except SDK_ERRORS as e:
            raise StoreError(f"Failed to update debt: {e}")

    async def delete(self, entry_id: str) -> None:
        try:
            self._client.debts().child(entry_id).delete()
        except StoreError:
            raise
        except SDK_ERRORS as e:
            raise StoreError(f"Failed to delete debt: {e}")

    async def list_entries(self) -> list[DebtEntry]:
        try:
            snapshot = self._client.debts().get()
        except StoreError:
            raise
        except SDK_ERRORS as e:
            raise StoreError(f"Failed to list debts: {e}")
        return decode_collection(snapshot, self._tz)


class FirebaseAuditStorage(AuditStorageInterface):
    """
    Realtime Database implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[FirebaseClient] = None):
        self._client = client or FirebaseClient()

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._client.audit().push(event.to_record())
            return True
        except (StoreError, *SDK_ERRORS) as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False
