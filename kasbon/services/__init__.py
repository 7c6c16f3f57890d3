"""Services package."""

from kasbon.services.storage import (
    AuditStorageInterface,
    DebtStoreInterface,
    FirebaseAuditStorage,
    FirebaseClient,
    FirebaseDebtStore,
    InMemoryAuditStorage,
    InMemoryDebtStore,
    NotFoundError,
    StoreConnectionError,
    StoreError,
)

__all__ = [
    "AuditStorageInterface",
    "DebtStoreInterface",
    "FirebaseAuditStorage",
    "FirebaseClient",
    "FirebaseDebtStore",
    "InMemoryAuditStorage",
    "InMemoryDebtStore",
    "NotFoundError",
    "StoreConnectionError",
    "StoreError",
]
