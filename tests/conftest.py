"""Shared fixtures for the Kasbon tests."""

from datetime import date

import pytest

from kasbon.audit import AuditLogger
from kasbon.config import AppSettings
from kasbon.orchestrator import DebtBook
from kasbon.services.storage import InMemoryAuditStorage, InMemoryDebtStore

from tests.factories import SECRET


@pytest.fixture
def settings():
    return AppSettings(
        action_password=SECRET,
        max_photo_size_mb=5,
        earliest_entry_date=date(1900, 1, 1),
    )


@pytest.fixture
def store():
    return InMemoryDebtStore()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def book(store, audit_storage, settings):
    return DebtBook(
        store=store,
        audit_logger=AuditLogger(audit_storage),
        settings=settings,
    )
