from __future__ import annotations

import asyncio
import re

import pytest

from conftest import FakeExtractor, FakeSheets, data_uri
from registration_desk.domain.constants import (
    SOURCE_MANUAL,
    STATUS_COMPLETED,
    STATUS_ERROR,
    STATUS_PENDING,
    STATUS_PROCESSING,
    SYNC_FAILED,
    SYNC_IDLE,
    SYNC_SYNCED,
)
from registration_desk.orchestrator.extraction import USER_FACING_FAILURE, ExtractionError
from registration_desk.orchestrator.ingestion import (
    IngestionController,
    ManualEntryError,
    UploadedFile,
    compute_remaining,
)
from registration_desk.orchestrator.records import RecordNotFoundError, RecordStateError, RecordStore
from registration_desk.orchestrator.storage import SessionStorage


def _form(name: str, admission_id: str) -> dict:
    return {"name": name, "admission_id": admission_id, "gender": "F", "date": "01/05/2024"}


def _controller(extractor=None, sheets=None) -> IngestionController:
    return IngestionController(RecordStore(SessionStorage()), extractor or FakeExtractor(), sheets or FakeSheets())


def test_uploads_settle_independently_and_out_of_order() -> None:
    a, b, c = data_uri("QUFB"), data_uri("QkJC"), data_uri("Q0ND")
    extractor = FakeExtractor(
        {
            a: _form("Asha", "EHA-1"),
            b: ExtractionError(detail="model refused"),
            c: _form("Chetan", "EHA-3"),
        }
    )
    controller = _controller(extractor)

    async def scenario():
        gates = {uri: extractor.gate(uri) for uri in (a, b, c)}
        created = controller.ingest_files(
            [UploadedFile("a.jpg", a), UploadedFile("b.jpg", b), UploadedFile("c.jpg", c)]
        )
        assert [r.status for r in created] == [STATUS_PENDING] * 3
        assert all(r.image_url == f"/api/images/{r.id}" for r in created)

        await asyncio.sleep(0)
        assert {r.status for r in controller.store.list_all()} == {STATUS_PROCESSING}

        # Last file finishes first; the others must not be disturbed.
        gates[c].set()
        await asyncio.sleep(0.01)
        by_name = {r.file_name: r for r in controller.store.list_all()}
        assert by_name["c.jpg"].status == STATUS_COMPLETED
        assert by_name["a.jpg"].status == STATUS_PROCESSING

        gates[b].set()
        gates[a].set()
        await controller.wait_idle()
        return created

    created = asyncio.run(scenario())
    records = controller.store.list_all()
    assert [r.id for r in records] == [r.id for r in created]
    statuses = {r.file_name: r.status for r in records}
    assert statuses == {"a.jpg": STATUS_COMPLETED, "b.jpg": STATUS_ERROR, "c.jpg": STATUS_COMPLETED}
    failed = next(r for r in records if r.status == STATUS_ERROR)
    assert failed.error == USER_FACING_FAILURE
    assert failed.data is None
    assert controller.in_flight == 0

    # Removing the failed one leaves the rest untouched.
    before = [(r.id, r.data) for r in records if r.id != failed.id]
    controller.remove_record(failed.id)
    assert [(r.id, r.data) for r in controller.store.list_all()] == before
    assert controller.images.get(failed.id) is None


def test_record_removed_during_extraction_is_not_resurrected() -> None:
    uri = data_uri("QUFB")
    extractor = FakeExtractor({uri: _form("Asha", "EHA-1")})
    controller = _controller(extractor)

    async def scenario():
        gate = extractor.gate(uri)
        (record,) = controller.ingest_files([UploadedFile("a.jpg", uri)])
        await asyncio.sleep(0)
        controller.remove_record(record.id)
        gate.set()
        await controller.wait_idle()

    asyncio.run(scenario())
    assert controller.store.list_all() == []


def test_ingest_requires_running_loop() -> None:
    with pytest.raises(RuntimeError):
        _controller().ingest_files([UploadedFile("a.jpg", data_uri("QUFB"))])


def test_manual_entry_computes_remaining_amount() -> None:
    controller = _controller()
    record = controller.submit_manual(
        {"name": "Asha", "initial_payment": "5000", "discount": "0", "utr": "", "date": "02/06/2024"}
    )
    assert record.status == STATUS_COMPLETED
    assert record.source == SOURCE_MANUAL
    assert record.sync_status == SYNC_IDLE
    assert record.file_name == "Manual Entry"
    assert record.data.remaining_amount == "15000"
    assert controller.store.list_all()[0] is record


def test_manual_entry_fills_missing_date() -> None:
    record = _controller().submit_manual({"name": "Ravi"})
    assert re.fullmatch(r"\d{2}/\d{2}/\d{4}", record.data.date)


@pytest.mark.parametrize(
    "fields, field",
    [
        ({"name": "   "}, "name"),
        ({"name": "Asha", "utr": "1234567"}, "utr"),
        ({"name": "Asha", "utr": "12345678901a"}, "utr"),
        ({"name": "Asha", "utr": "1234567890123"}, "utr"),
    ],
)
def test_manual_entry_rejects_invalid_input(fields, field) -> None:
    controller = _controller()
    with pytest.raises(ManualEntryError) as exc:
        controller.submit_manual(fields)
    assert exc.value.field == field
    assert len(controller.store) == 0


@pytest.mark.parametrize("utr", ["", "123456789012"])
def test_manual_entry_accepts_empty_or_twelve_digit_utr(utr) -> None:
    record = _controller().submit_manual({"name": "Asha", "utr": utr})
    assert record.data.utr == utr


@pytest.mark.parametrize(
    "paid, discount, expected",
    [
        ("5000", "0", "15000"),
        ("₹5,000/-", "1000", "14000"),
        ("25000", "", "0"),
        ("", "", "20000"),
        ("abc", "500.5", "19499.50"),
    ],
)
def test_compute_remaining(paid, discount, expected) -> None:
    assert compute_remaining(20000, paid, discount) == expected


def test_edit_without_changes_only_resets_sync() -> None:
    sheets = FakeSheets()
    controller = _controller(sheets=sheets)
    record = controller.submit_manual({"name": "Asha", "admission_id": "EHA-1"})
    synced = asyncio.run(controller.sync_record(record.id))
    assert synced.sync_status == SYNC_SYNCED and synced.synced_at

    edited = controller.edit_record(record.id, synced.data.to_dict())
    assert edited.status == STATUS_COMPLETED
    assert edited.data == synced.data
    assert edited.sync_status == SYNC_IDLE
    assert edited.synced_at is None


def test_edit_rejects_records_still_in_flight() -> None:
    controller = _controller()

    async def scenario():
        uri = data_uri("QUFB")
        controller.extractor.gate(uri)
        (record,) = controller.ingest_files([UploadedFile("a.jpg", uri)])
        with pytest.raises(RecordStateError):
            controller.edit_record(record.id, {"name": "x"})
        controller.clear_all()
        controller.extractor.gates[uri].set()
        await controller.wait_idle()

    asyncio.run(scenario())
    with pytest.raises(RecordNotFoundError):
        controller.edit_record("missing", {})


def test_sync_state_machine() -> None:
    sheets = FakeSheets(push_ok=False)
    controller = _controller(sheets=sheets)
    record = controller.submit_manual({"name": "Asha", "admission_id": "EHA-1"})

    failed = asyncio.run(controller.sync_record(record.id))
    assert failed.sync_status == SYNC_FAILED
    assert failed.synced_at is None

    sheets.push_ok = True
    synced = asyncio.run(controller.sync_record(record.id))
    assert synced.sync_status == SYNC_SYNCED
    assert len(sheets.pushed) == 2
    assert sheets.pushed[-1].name == "Asha"

    with pytest.raises(RecordStateError):
        asyncio.run(controller.sync_record(record.id))


def test_sync_requires_data() -> None:
    uri = data_uri("QUFB")
    controller = _controller(FakeExtractor({uri: ExtractionError()}))

    async def scenario():
        (record,) = controller.ingest_files([UploadedFile("a.jpg", uri)])
        await controller.wait_idle()
        return record.id

    record_id = asyncio.run(scenario())
    with pytest.raises(RecordStateError):
        asyncio.run(controller.sync_record(record_id))


def test_search_matches_file_name_and_fields() -> None:
    controller = _controller()
    controller.submit_manual({"name": "Asha Verma", "address": "MG Road, Indore"})
    controller.submit_manual({"name": "Ravi"})
    assert [r.data.name for r in controller.search("indore")] == ["Asha Verma"]
    assert len(controller.search("manual entry")) == 2
    assert len(controller.search("", status=STATUS_ERROR)) == 0


def test_edit_during_push_keeps_record_idle() -> None:
    sheets = FakeSheets()
    controller = _controller(sheets=sheets)
    record = controller.submit_manual({"name": "Asha", "admission_id": "EHA-1"})

    async def scenario():
        sheets.push_gate = asyncio.Event()
        sync = asyncio.ensure_future(controller.sync_record(record.id))
        await asyncio.sleep(0)
        edited = controller.edit_record(record.id, {**record.data.to_dict(), "name": "Asha Edited"})
        assert edited.sync_status == SYNC_IDLE
        sheets.push_gate.set()
        return await sync

    result = asyncio.run(scenario())
    assert [d.name for d in sheets.pushed] == ["Asha"]
    final = controller.store.get(record.id)
    assert result is final
    assert final.data.name == "Asha Edited"
    assert final.sync_status == SYNC_IDLE
    assert final.synced_at is None

    synced = asyncio.run(controller.sync_record(record.id))
    assert synced.sync_status == SYNC_SYNCED
    assert sheets.pushed[-1].name == "Asha Edited"


def test_record_removed_during_push_is_not_found() -> None:
    sheets = FakeSheets()
    controller = _controller(sheets=sheets)
    record = controller.submit_manual({"name": "Asha"})

    async def scenario():
        sheets.push_gate = asyncio.Event()
        sync = asyncio.ensure_future(controller.sync_record(record.id))
        await asyncio.sleep(0)
        controller.remove_record(record.id)
        sheets.push_gate.set()
        with pytest.raises(RecordNotFoundError):
            await sync

    asyncio.run(scenario())
    assert controller.store.list_all() == []
