"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The Firebase Realtime Database is the production backend; the in-memory
store backs the tests and the offline fallback.
"""

from kasbon.services.storage.interface import (
    AuditStorageInterface,
    ChangeCallback,
    DebtStoreInterface,
    NotFoundError,
    StoreConnectionError,
    StoreError,
    Unsubscribe,
)
from kasbon.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryDebtStore,
)
from kasbon.services.storage.firebase_rtdb import (
    FirebaseAuditStorage,
    FirebaseClient,
    FirebaseDebtStore,
    apply_stream_event,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ChangeCallback",
    "DebtStoreInterface",
    "Unsubscribe",
    # Exceptions
    "NotFoundError",
    "StoreConnectionError",
    "StoreError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryDebtStore",
    # Firebase implementation
    "FirebaseAuditStorage",
    "FirebaseClient",
    "FirebaseDebtStore",
    "apply_stream_event",
]
