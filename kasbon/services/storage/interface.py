"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Use the Firebase Realtime Database in production
2. Use in-memory storage for testing and offline use
3. Keep the reconciliation logic decoupled from the backend SDK

The interface is intentionally small: a change subscription plus
create / patch / delete. Every failure surfaces as a StoreError; nothing
is retried automatically.
"""

from abc import ABC, abstractmethod
from typing import Callable

from kasbon.models.debt import DebtDraft, DebtEntry
from kasbon.models.audit import AuditEvent


ChangeCallback = Callable[[list[DebtEntry]], None]
Unsubscribe = Callable[[], None]


class DebtStoreInterface(ABC):
    """
    Abstract interface for the debt collection.

    Any backend (Realtime Database, in-memory, ...) must implement these.
    """

    name: str = "store"

    @abstractmethod
    async def subscribe(self, on_change: ChangeCallback) -> Unsubscribe:
        """
        Register for the full collection on every change.

        The callback receives every entry, newest date first, once right
        after subscribing and again after each change.

        Returns:
            A function that stops the subscription

        Raises:
            StoreError: If the subscription cannot be started
        """
        pass

    @abstractmethod
    async def create(self, draft: DebtDraft) -> str:
        """
        Store a new entry.

        Returns:
            The id assigned by the store

        Raises:
            StoreError: If the write fails
        """
        pass

    @abstractmethod
    async def patch(self, entry_id: str, fields: dict) -> None:
        """
        Overwrite some fields of an existing entry.

        Args:
            entry_id: Id of the entry to update
            fields: Stored-record fields to write (see DebtEntry.to_record)

        Raises:
            StoreError: If the write fails
            NotFoundError: If the entry doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, entry_id: str) -> None:
        """
        Delete an entry.

        Raises:
            StoreError: If the delete fails
        """
        pass

    @abstractmethod
    async def list_entries(self) -> list[DebtEntry]:
        """
        Read the whole collection once, newest date first.

        Raises:
            StoreError: If the read fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass


class StoreError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StoreError):
    """Entity not found in storage."""
    pass


class StoreConnectionError(StoreError):
    """Could not connect to storage backend."""
    pass
