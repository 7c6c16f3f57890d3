"""Tests for the record codec, the in-memory store and the listener event handling."""

import asyncio

import pytest
from datetime import date
from zoneinfo import ZoneInfo

from kasbon.models.debt import DebtDraft, DebtStatus
from kasbon.services.storage import (
    InMemoryDebtStore,
    NotFoundError,
    StoreError,
    apply_stream_event,
)
from kasbon.services.storage.codec import decode_collection, decode_entry, without_nulls

from tests.factories import PNG_DATA_URI, budi_record


class TestCodec:

    def test_without_nulls(self):
        assert without_nulls({"a": 1, "b": None, "c": ""}) == {"a": 1, "c": ""}

    def test_decode_entry_skips_non_objects(self):
        assert decode_entry("k", "Budi") is None
        assert decode_entry("k", None) is None

    def test_decode_entry_skips_bad_status(self):
        assert decode_entry("k", budi_record(status="Entahlah")) is None

    def test_decode_entry_skips_unpaid_zero(self):
        assert decode_entry("k", budi_record(nominal=0)) is None

    @pytest.mark.parametrize("snapshot", [None, {}, []])
    def test_empty_snapshots(self, snapshot):
        assert decode_collection(snapshot) == []

    def test_list_snapshot(self):
        entries = decode_collection([None, budi_record()])
        assert [e.id for e in entries] == ["1"]

    def test_long_records_are_kept(self):
        entries = decode_collection({"k1": budi_record(deskripsi="x" * 5001, nama="B" * 201)})
        assert [e.id for e in entries] == ["k1"]

    def test_timestamps_are_read_in_given_timezone(self):
        record = budi_record(tanggal="2026-09-30T17:00:00.000Z")
        assert decode_entry("k", record, ZoneInfo("Asia/Jakarta")).debt_date == date(2026, 10, 1)
        assert decode_entry("k", record, ZoneInfo("UTC")).debt_date == date(2026, 9, 30)

    def test_sorted_newest_first(self):
        entries = decode_collection({
            "a": budi_record(tanggal="2026-01-01"),
            "b": budi_record(nama="Siti", tanggal="2026-10-01"),
            "c": {"nama": "Rusak"},
        })
        assert [e.id for e in entries] == ["b", "a"]


class TestInMemoryDebtStore:

    def test_create_stores_record_without_nulls(self):
        store = InMemoryDebtStore()
        entry_id = asyncio.run(store.create(DebtDraft(
            name="Budi",
            amount=50000,
            debt_date=date(2026, 10, 19),
        )))
        assert store.records[entry_id] == {
            "nama": "Budi",
            "tanggal": "2026-10-19",
            "nominal": 50000,
            "status": "Belum Lunas",
            "deskripsi": "",
        }
        assert store.writes == [("create", entry_id)]

    def test_subscribe_pushes_immediately_and_on_write(self):
        store = InMemoryDebtStore({"k1": budi_record()})
        pushes = []
        unsubscribe = asyncio.run(store.subscribe(pushes.append))

        assert [e.id for e in pushes[0]] == ["k1"]

        asyncio.run(store.delete("k1"))
        assert pushes[-1] == []

        unsubscribe()
        asyncio.run(store.create(DebtDraft(name="Siti", amount=1)))
        assert len(pushes) == 2
        assert store.subscriber_count == 0

    def test_patch_none_removes_field(self):
        store = InMemoryDebtStore({"k1": budi_record(fotoDataUris=[PNG_DATA_URI])})
        asyncio.run(store.patch("k1", {"nominal": 100, "fotoDataUris": None}))
        record = store.records["k1"]
        assert record["nominal"] == 100
        assert "fotoDataUris" not in record
        assert record["nama"] == "Budi"

    def test_patch_missing_entry(self):
        store = InMemoryDebtStore()
        with pytest.raises(NotFoundError):
            asyncio.run(store.patch("missing", {"nominal": 1}))
        assert "missing" not in store.records

    def test_delete_missing_entry_is_quiet(self):
        store = InMemoryDebtStore()
        asyncio.run(store.delete("missing"))
        assert store.writes == [("delete", "missing")]

    def test_fail_next_fails_once(self):
        store = InMemoryDebtStore({"k1": budi_record()})
        store.fail_next()
        with pytest.raises(StoreError):
            asyncio.run(store.delete("k1"))
        assert "k1" in store.records

        asyncio.run(store.delete("k1"))
        assert store.records == {}

    def test_store_decodes_in_its_timezone(self):
        records = {"k1": budi_record(tanggal="2026-09-30T17:00:00.000Z")}
        store = InMemoryDebtStore(records, tz=ZoneInfo("UTC"))
        (entry,) = asyncio.run(store.list_entries())
        assert entry.debt_date == date(2026, 9, 30)

    def test_list_entries(self):
        store = InMemoryDebtStore({"k1": budi_record(status="Lunas Sebagian")})
        entries = asyncio.run(store.list_entries())
        assert entries[0].status is DebtStatus.PARTIALLY_PAID


class TestApplyStreamEvent:
    """The listener's first event is a put at "/" with the whole tree."""

    def test_initial_put(self):
        snapshot = apply_stream_event({}, "put", "/", {"k1": budi_record()})
        assert snapshot == {"k1": budi_record()}

    def test_initial_put_of_empty_path(self):
        assert apply_stream_event({"old": {}}, "put", "/", None) == {}

    def test_put_new_child(self):
        snapshot = apply_stream_event({"k1": budi_record()}, "put", "/k2", budi_record(nama="Siti"))
        assert set(snapshot) == {"k1", "k2"}

    def test_put_null_deletes_child(self):
        snapshot = apply_stream_event({"k1": budi_record(), "k2": {}}, "put", "/k1", None)
        assert "k1" not in snapshot

    def test_put_nested_field(self):
        snapshot = apply_stream_event({"k1": budi_record()}, "put", "/k1/nominal", 10)
        assert snapshot["k1"]["nominal"] == 10
        assert snapshot["k1"]["nama"] == "Budi"

    def test_patch_merges_children(self):
        snapshot = apply_stream_event(
            {"k1": budi_record(fotoDataUris=[PNG_DATA_URI])},
            "patch",
            "/k1",
            {"nominal": 0, "status": "Lunas", "fotoDataUris": None},
        )
        assert snapshot["k1"]["nominal"] == 0
        assert snapshot["k1"]["status"] == "Lunas"
        assert "fotoDataUris" not in snapshot["k1"]
        assert snapshot["k1"]["nama"] == "Budi"

    def test_does_not_mutate_input(self):
        original = {"k1": budi_record()}
        apply_stream_event(original, "put", "/k1", None)
        assert "k1" in original

    def test_unknown_event_is_ignored(self):
        snapshot = {"k1": budi_record()}
        assert apply_stream_event(snapshot, "keep-alive", "/", None) == snapshot
