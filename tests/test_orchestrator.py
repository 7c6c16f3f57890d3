"""Flow tests for DebtBook against the in-memory store."""

import asyncio

import pytest
from datetime import date, datetime
from zoneinfo import ZoneInfo

from kasbon.audit import AuditLogger
from kasbon.config import DEFAULT_TIMEZONE
from kasbon.gate import ActionInProgressError, NoPendingActionError, WrongSecretError
from kasbon.models.audit import AuditEventType
from kasbon.models.debt import (
    DebtForm,
    DebtStatus,
    PendingActionKind,
    PhotoUpload,
    ReconcileAction,
)
from kasbon.orchestrator import DebtBook, DebtCollection, create_app_components
from kasbon.services.storage import InMemoryDebtStore, NotFoundError, StoreError
from kasbon.validation import ValidationError
from kasbon.validation.validator import to_data_uri

from tests.factories import PNG_DATA_URI, SECRET, budi_record, png_bytes


def form(name="Budi", amount="50.000", status=DebtStatus.UNPAID, **kwargs) -> DebtForm:
    kwargs.setdefault("debt_date", datetime.now(ZoneInfo(DEFAULT_TIMEZONE)).date())
    return DebtForm(name=name, amount=amount, status=status, **kwargs)


def seeded_book(settings, audit_storage, records):
    store = InMemoryDebtStore(records)
    book = DebtBook(store=store, audit_logger=AuditLogger(audit_storage), settings=settings)
    asyncio.run(book.open())
    return book, store


def event_types(audit_storage):
    return [event.event_type for event in audit_storage.events]


class TestSubscription:

    def test_open_loads_collection(self, settings, audit_storage):
        book, _ = seeded_book(settings, audit_storage, {"k1": budi_record()})
        assert book.is_loaded
        assert [e.name for e in book.entries] == ["Budi"]
        assert book.outstanding_total == 50000

    def test_not_loaded_before_open(self, book):
        assert not book.is_loaded
        assert book.entries == []

    def test_open_twice_keeps_one_subscription(self, book, store):
        asyncio.run(book.open())
        asyncio.run(book.open())
        assert store.subscriber_count == 1
        assert book.is_open

    def test_close_unsubscribes(self, book, store, audit_storage):
        asyncio.run(book.open())
        asyncio.run(book.close())
        assert store.subscriber_count == 0
        assert not book.is_open
        assert event_types(audit_storage)[-1] is AuditEventType.SUBSCRIPTION_STOPPED

    def test_external_change_is_pushed(self, book, store, settings):
        asyncio.run(book.open())
        # Another session writing to the same store
        other = DebtBook(store=store, settings=settings)
        asyncio.run(other.stage_add(form(name="Siti")))
        asyncio.run(other.confirm(SECRET))
        assert [e.name for e in book.entries] == ["Siti"]

    def test_bad_records_are_skipped(self, settings, audit_storage):
        book, _ = seeded_book(settings, audit_storage, {
            "good": budi_record(),
            "bad": {"nama": "Rusak", "nominal": "banyak"},
        })
        assert [e.id for e in book.entries] == ["good"]


class TestScenarios:
    """The add flow end to end: validate, confirm, reconcile, write, push."""

    def test_new_debt(self, book, store):
        asyncio.run(book.open())
        asyncio.run(book.stage_add(form(amount="50.000")))
        outcome = asyncio.run(book.confirm(SECRET))

        assert outcome.action is ReconcileAction.CREATE
        assert len(book.entries) == 1
        created = book.entries[0]
        assert created.amount == 50000
        assert created.status is DebtStatus.UNPAID
        assert created.id == outcome.entry_id
        assert store.records[created.id]["nominal"] == 50000
        assert "fotoDataUris" not in store.records[created.id]

    def test_partial_payment(self, settings, audit_storage):
        book, store = seeded_book(settings, audit_storage, {"k1": budi_record()})
        asyncio.run(book.stage_add(form(name="budi", amount="20000", status=DebtStatus.PAID)))
        outcome = asyncio.run(book.confirm(SECRET))

        assert outcome.action is ReconcileAction.MERGE
        assert store.writes == [("patch", "k1")]
        merged = book.get_entry("k1")
        assert merged.amount == 30000
        assert merged.status is DebtStatus.UNPAID
        assert merged.name == "Budi"
        assert "Budi" in outcome.message

    def test_full_payment(self, settings, audit_storage):
        book, store = seeded_book(settings, audit_storage, {"k1": budi_record()})
        asyncio.run(book.stage_add(form(amount="50000", status=DebtStatus.PAID)))
        asyncio.run(book.confirm(SECRET))

        merged = book.get_entry("k1")
        assert merged.amount == 0
        assert merged.status is DebtStatus.PAID
        assert book.outstanding_total == 0
        assert store.records["k1"]["status"] == "Lunas"

    def test_partially_paid_status_adds_debt(self, settings, audit_storage):
        book, _ = seeded_book(settings, audit_storage, {"k1": budi_record()})
        asyncio.run(book.stage_add(form(amount="10000", status="LunasSebagian")))
        asyncio.run(book.confirm(SECRET))

        merged = book.get_entry("k1")
        assert merged.amount == 60000
        assert merged.status is DebtStatus.UNPAID

    def test_after_full_payment_a_new_debt_is_created(self, settings, audit_storage):
        book, store = seeded_book(settings, audit_storage, {
            "k1": budi_record(nominal=0, status="Lunas"),
        })
        asyncio.run(book.stage_add(form(amount="5000")))
        outcome = asyncio.run(book.confirm(SECRET))

        assert outcome.action is ReconcileAction.CREATE
        assert len(book.entries) == 2
        assert store.records["k1"]["nominal"] == 0

    def test_merge_appends_description_and_photos(self, settings, audit_storage):
        book, store = seeded_book(settings, audit_storage, {
            "k1": budi_record(fotoDataUris=[PNG_DATA_URI]),
        })
        content = png_bytes()
        asyncio.run(book.stage_add(
            form(amount="1000", description="Bensin"),
            [PhotoUpload(filename="nota.png", mime_type="image/png", content=content)],
        ))
        asyncio.run(book.confirm(SECRET))

        merged = book.get_entry("k1")
        assert merged.description == "Makan siang; Bensin"
        assert merged.photos == [PNG_DATA_URI, to_data_uri(content, "image/png")]

    def test_merge_is_audited(self, settings, audit_storage):
        book, _ = seeded_book(settings, audit_storage, {"k1": budi_record()})
        asyncio.run(book.stage_add(form(amount="20000", status=DebtStatus.PAID)))
        asyncio.run(book.confirm(SECRET))

        merged_event = audit_storage.events[-1]
        assert merged_event.event_type is AuditEventType.DEBT_MERGED
        assert merged_event.entry_id == "k1"
        assert merged_event.details["previous_amount"] == 50000
        assert merged_event.details["new_amount"] == 30000
        assert merged_event.details["as_payment"] is True


class TestGateInFlow:

    def test_wrong_password_writes_nothing(self, settings, audit_storage):
        book, store = seeded_book(settings, audit_storage, {"k1": budi_record()})
        asyncio.run(book.stage_add(form(amount="20000", status=DebtStatus.PAID)))

        with pytest.raises(WrongSecretError):
            asyncio.run(book.confirm("salah"))

        assert store.writes == []
        assert book.gate.pending is not None
        assert event_types(audit_storage)[-1] is AuditEventType.GATE_REJECTED

        asyncio.run(book.confirm(SECRET))
        assert book.get_entry("k1").amount == 30000

    def test_cancel_writes_nothing(self, book, store, audit_storage):
        asyncio.run(book.open())
        asyncio.run(book.stage_add(form()))
        cancelled = asyncio.run(book.cancel())

        assert cancelled.kind is PendingActionKind.CREATE
        assert store.writes == []
        assert book.gate.pending is None
        assert event_types(audit_storage)[-1] is AuditEventType.ACTION_CANCELLED
        with pytest.raises(NoPendingActionError):
            asyncio.run(book.confirm(SECRET))

    def test_invalid_form_never_reaches_gate(self, book, audit_storage):
        asyncio.run(book.open())
        with pytest.raises(ValidationError):
            asyncio.run(book.stage_add(form(amount="0")))
        assert book.gate.pending is None
        assert event_types(audit_storage)[-1] is AuditEventType.VALIDATION_FAILED

    def test_rejected_photo_is_reported_and_others_kept(self, book, settings, audit_storage):
        asyncio.run(book.open())
        too_big = b"\x00" * (settings.max_photo_size_bytes + 1)
        batch = asyncio.run(book.stage_add(form(), [
            PhotoUpload(filename="big.png", mime_type="image/png", content=too_big),
            PhotoUpload(filename="ok.png", mime_type="image/png", content=png_bytes()),
        ]))

        assert [e.filename for e in batch.rejected] == ["big.png"]
        assert len(book.gate.pending.draft.photos) == 1
        assert AuditEventType.PHOTO_REJECTED in event_types(audit_storage)

    def test_correlation_id_ties_events(self, settings, audit_storage):
        book, _ = seeded_book(settings, audit_storage, {"k1": budi_record()})
        asyncio.run(book.stage_add(form(amount="1000")))
        correlation_id = book.gate.pending.correlation_id
        with pytest.raises(WrongSecretError):
            asyncio.run(book.confirm("salah"))
        asyncio.run(book.confirm(SECRET))

        related = [e.event_type for e in audit_storage.events if e.correlation_id == correlation_id]
        assert related == [AuditEventType.GATE_REJECTED, AuditEventType.DEBT_MERGED]


class TestEditAndDelete:

    def test_edit_replaces_fields(self, settings, audit_storage):
        book, store = seeded_book(settings, audit_storage, {"k1": budi_record()})
        asyncio.run(book.stage_edit(
            "k1",
            form(name="Budi Santoso", amount="45000", status=DebtStatus.PARTIALLY_PAID, description=""),
        ))
        outcome = asyncio.run(book.confirm(SECRET))

        assert outcome.action is ReconcileAction.EDIT
        edited = book.get_entry("k1")
        assert edited.name == "Budi Santoso"
        assert edited.amount == 45000
        assert edited.status is DebtStatus.PARTIALLY_PAID
        assert edited.description == ""
        assert "deskripsi" in store.records["k1"]

    def test_edit_bypasses_merge(self, settings, audit_storage):
        book, _ = seeded_book(settings, audit_storage, {
            "k1": budi_record(),
            "k2": budi_record(nama="Siti"),
        })
        # Renaming Siti to Budi does not fold her debt into Budi's
        asyncio.run(book.stage_edit("k2", form(name="Budi", amount="1000")))
        asyncio.run(book.confirm(SECRET))

        assert book.get_entry("k1").amount == 50000
        assert book.get_entry("k2").amount == 1000
        assert book.get_entry("k2").name == "Budi"

    def test_edit_keeps_existing_photos_by_default(self, settings, audit_storage):
        book, _ = seeded_book(settings, audit_storage, {
            "k1": budi_record(fotoDataUris=[PNG_DATA_URI]),
        })
        asyncio.run(book.stage_edit("k1", form(amount="1000")))
        asyncio.run(book.confirm(SECRET))
        assert book.get_entry("k1").photos == [PNG_DATA_URI]

    def test_edit_can_remove_all_photos(self, settings, audit_storage):
        book, store = seeded_book(settings, audit_storage, {
            "k1": budi_record(fotoDataUris=[PNG_DATA_URI]),
        })
        asyncio.run(book.stage_edit("k1", form(amount="1000"), keep_photos=[]))
        asyncio.run(book.confirm(SECRET))

        assert book.get_entry("k1").photos == []
        assert "fotoDataUris" not in store.records["k1"]

    def test_edit_appends_new_photos(self, settings, audit_storage):
        book, _ = seeded_book(settings, audit_storage, {
            "k1": budi_record(fotoDataUris=[PNG_DATA_URI]),
        })
        content = png_bytes()
        asyncio.run(book.stage_edit(
            "k1",
            form(amount="1000"),
            [PhotoUpload(filename="baru.png", mime_type="image/png", content=content)],
        ))
        asyncio.run(book.confirm(SECRET))
        assert book.get_entry("k1").photos == [PNG_DATA_URI, to_data_uri(content, "image/png")]

    def test_edit_unknown_entry(self, book):
        asyncio.run(book.open())
        with pytest.raises(NotFoundError):
            asyncio.run(book.stage_edit("missing", form()))
        assert book.gate.pending is None

    def test_edit_of_entry_deleted_meanwhile(self, settings, audit_storage):
        book, store = seeded_book(settings, audit_storage, {"k1": budi_record()})
        asyncio.run(book.stage_edit("k1", form(amount="1000")))
        asyncio.run(store.delete("k1"))

        with pytest.raises(NotFoundError):
            asyncio.run(book.confirm(SECRET))
        assert "k1" not in store.records
        assert book.gate.pending is None

    def test_delete(self, settings, audit_storage):
        book, store = seeded_book(settings, audit_storage, {"k1": budi_record()})
        book.stage_delete("k1")
        outcome = asyncio.run(book.confirm(SECRET))

        assert outcome.action is ReconcileAction.DELETE
        assert outcome.name == "Budi"
        assert book.entries == []
        assert store.records == {}
        assert event_types(audit_storage)[-1] is AuditEventType.DEBT_DELETED

    def test_delete_needs_password(self, settings, audit_storage):
        book, store = seeded_book(settings, audit_storage, {"k1": budi_record()})
        book.stage_delete("k1")
        with pytest.raises(WrongSecretError):
            asyncio.run(book.confirm(""))
        assert "k1" in store.records


class TestStoreFailure:

    def test_failed_write_leaves_collection_as_stored(self, settings, audit_storage):
        book, store = seeded_book(settings, audit_storage, {"k1": budi_record()})
        asyncio.run(book.stage_add(form(amount="20000", status=DebtStatus.PAID)))
        store.fail_next()

        with pytest.raises(StoreError):
            asyncio.run(book.confirm(SECRET))

        assert book.get_entry("k1").amount == 50000
        assert store.records["k1"]["nominal"] == 50000
        assert book.gate.pending is None
        assert not book.gate.is_busy
        assert event_types(audit_storage)[-1] is AuditEventType.STORE_ERROR

    def test_no_staging_while_busy(self, settings, audit_storage):
        book, _ = seeded_book(settings, audit_storage, {"k1": budi_record()})
        book.gate._busy = True
        with pytest.raises(ActionInProgressError):
            book.stage_delete("k1")


class TestSessions:
    """Each page session has its own gate over one shared collection."""

    def shared(self, settings, audit_storage, records):
        store = InMemoryDebtStore(records)
        collection = DebtCollection(store, AuditLogger(audit_storage))
        asyncio.run(collection.open())
        first = DebtBook(collection=collection, settings=settings)
        second = DebtBook(collection=collection, settings=settings)
        return first, second, store

    def test_pending_actions_do_not_cross_sessions(self, settings, audit_storage):
        first, second, store = self.shared(settings, audit_storage, {"k1": budi_record()})

        first.stage_delete("k1")
        asyncio.run(second.stage_add(form(name="Siti")))
        outcome = asyncio.run(first.confirm(SECRET))

        assert outcome.action is ReconcileAction.DELETE
        assert "k1" not in store.records
        assert store.writes == [("delete", "k1")]
        assert second.gate.pending.kind is PendingActionKind.CREATE
        assert first.gate.pending is None

    def test_sessions_see_the_same_collection(self, settings, audit_storage):
        first, second, store = self.shared(settings, audit_storage, {"k1": budi_record()})

        asyncio.run(second.stage_add(form(name="Siti")))
        asyncio.run(second.confirm(SECRET))

        assert store.subscriber_count == 1
        assert [e.name for e in first.entries] == ["Siti", "Budi"]
        assert first.collection is second.collection

    def test_busy_session_does_not_block_another(self, settings, audit_storage):
        first, second, _ = self.shared(settings, audit_storage, {"k1": budi_record()})
        first.gate._busy = True
        second.stage_delete("k1")
        assert second.gate.pending.entry_id == "k1"

    def test_book_needs_store_or_collection(self, settings):
        with pytest.raises(ValueError):
            DebtBook(settings=settings)


class TestLongText:

    def test_merge_past_five_thousand_characters(self, settings, audit_storage):
        book, store = seeded_book(settings, audit_storage, {"k1": budi_record(deskripsi="x" * 4990)})
        asyncio.run(book.stage_add(form(description="kopi pagi")))
        outcome = asyncio.run(book.confirm(SECRET))

        assert outcome.action is ReconcileAction.MERGE
        description = store.records["k1"]["deskripsi"]
        assert len(description) > 5000
        assert description.endswith("; kopi pagi")
        assert len(book.get_entry("k1").description) == len(description)

    def test_long_name_and_description_are_accepted(self, book, store):
        asyncio.run(book.open())
        asyncio.run(book.stage_add(form(name="B" * 300, description="y" * 5001)))
        asyncio.run(book.confirm(SECRET))

        (record,) = store.records.values()
        assert len(record["nama"]) == 300
        assert len(record["deskripsi"]) == 5001
        assert len(book.entries) == 1


class TestCreateAppComponents:

    def test_without_storage_uses_memory(self, settings):
        collection, client = create_app_components(use_storage=False, settings=settings)
        assert client is None
        assert collection.store_name == "memory"
        assert DebtBook(collection=collection, settings=settings).store_name == "memory"

    def test_unconfigured_firebase_falls_back_to_memory(self, settings, monkeypatch):
        from kasbon.config import get_settings

        monkeypatch.delenv("FIREBASE_DATABASE_URL", raising=False)
        get_settings.cache_clear()
        try:
            collection, client = create_app_components(use_storage=True, settings=settings)
        finally:
            get_settings.cache_clear()
        assert client is None
        assert collection.store_name == "memory"

    def test_store_reads_timestamps_in_app_timezone(self, settings):
        collection, _ = create_app_components(use_storage=False, settings=settings)
        collection.store._records["k1"] = budi_record(tanggal="2026-09-30T17:00:00.000Z")
        entries = asyncio.run(collection.store.list_entries())
        assert entries[0].debt_date == date(2026, 10, 1)
