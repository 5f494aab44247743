"""Turns uploads and manual entries into records and drives their lifecycle."""

from __future__ import annotations

import asyncio
import re
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from ..domain.constants import (
    SOURCE_MANUAL,
    SOURCE_OCR,
    STATUS_COMPLETED,
    STATUS_ERROR,
    STATUS_PENDING,
    STATUS_PROCESSING,
    SYNC_FAILED,
    SYNC_IDLE,
    SYNC_STARTABLE,
    SYNC_SYNCED,
    SYNC_SYNCING,
    TERMINAL_STATUSES,
)
from ..domain.models import ProcessingRecord, RegistrationData
from ..domain.normalize import format_amount, parse_amount, today_form_date
from ..logging import get_logger
from ..sheets.client import SheetSyncClient
from .extraction import ExtractionClient, ExtractionError
from .records import RecordNotFoundError, RecordStateError, RecordStore

LOG = get_logger("ingestion")

MANUAL_FILE_NAME = "Manual Entry"
_UTR = re.compile(r"\d{12}")


class ManualEntryError(ValueError):
    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


@dataclass
class UploadedFile:
    name: str
    data_uri: str


def _now_ms() -> int:
    return int(time.time() * 1000)


class ImageCache:
    """Holds source images for the life of the process only."""

    def __init__(self) -> None:
        self._images: Dict[str, str] = {}

    def put(self, record_id: str, data_uri: str) -> str:
        self._images[record_id] = data_uri
        return f"/api/images/{record_id}"

    def get(self, record_id: str) -> Optional[str]:
        return self._images.get(record_id)

    def release(self, record_id: str) -> None:
        self._images.pop(record_id, None)

    def clear(self) -> None:
        self._images.clear()


def validate_manual_entry(data: RegistrationData) -> None:
    if not data.name.strip():
        raise ManualEntryError("name", "Name is required")
    utr = data.utr.strip()
    if utr and not _UTR.fullmatch(utr):
        raise ManualEntryError("utr", "UTR must be exactly 12 digits")


def compute_remaining(total_fee: float, paid: Any, discount: Any) -> str:
    remaining = total_fee - parse_amount(paid) - parse_amount(discount)
    return format_amount(max(0.0, remaining))


class IngestionController:
    def __init__(
        self,
        store: RecordStore,
        extractor: ExtractionClient,
        sheets: SheetSyncClient,
        *,
        images: Optional[ImageCache] = None,
        total_fee: int = 20000,
    ) -> None:
        self.store = store
        self.extractor = extractor
        self.sheets = sheets
        self.images = images or ImageCache()
        self.total_fee = total_fee
        self._tasks: Set[asyncio.Task] = set()

    def _require(self, record_id: str) -> ProcessingRecord:
        record = self.store.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    # ---------- file ingestion ----------
    def ingest_files(self, files: List[UploadedFile]) -> List[ProcessingRecord]:
        """Create one pending record per file and start its extraction.

        Must be called with a running event loop; returns before any
        extraction finishes.
        """
        if not files:
            return []
        loop = asyncio.get_running_loop()
        created: List[ProcessingRecord] = []
        for f in files:
            record_id = uuid.uuid4().hex
            created.append(
                ProcessingRecord(
                    id=record_id,
                    timestamp=_now_ms(),
                    file_name=f.name,
                    image_url=self.images.put(record_id, f.data_uri),
                    source=SOURCE_OCR,
                    status=STATUS_PENDING,
                )
            )
        self.store.add_many(created)
        LOG.info(f"Queued {len(created)} file(s) for extraction")

        for record, f in zip(created, files):
            task = loop.create_task(self.process_record(record.id, f.data_uri))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return created

    async def process_record(self, record_id: str, data_uri: str) -> Optional[ProcessingRecord]:
        """Run one record through extraction; the record may vanish meanwhile."""
        if self.store.get(record_id) is None:
            return None
        self.store.update_by_id(record_id, status=STATUS_PROCESSING)
        try:
            data = await self.extractor.extract(data_uri)
        except ExtractionError as exc:
            LOG.warning(f"Extraction failed for {record_id}: {exc} ({exc.detail})")
            return self._settle(record_id, status=STATUS_ERROR, error=str(exc) or "An unknown error occurred")
        return self._settle(record_id, status=STATUS_COMPLETED, data=data, error=None)

    def _settle(self, record_id: str, **patch: Any) -> Optional[ProcessingRecord]:
        if self.store.get(record_id) is None:
            LOG.info(f"Record {record_id} was removed before extraction settled")
            return None
        record = self.store.update_by_id(record_id, **patch)
        LOG.info(f"Record {record_id} -> {record.status}")
        return record

    async def wait_idle(self) -> None:
        """Wait until every in-flight extraction has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # ---------- manual ingestion ----------
    def submit_manual(self, fields: Dict[str, Any]) -> ProcessingRecord:
        data = RegistrationData.from_dict(fields)
        validate_manual_entry(data)
        data.remaining_amount = compute_remaining(self.total_fee, data.initial_payment, data.discount)
        if not data.date.strip():
            data.date = today_form_date()
        record = ProcessingRecord(
            id=uuid.uuid4().hex,
            timestamp=_now_ms(),
            file_name=MANUAL_FILE_NAME,
            image_url="",
            source=SOURCE_MANUAL,
            data=data,
            status=STATUS_COMPLETED,
            sync_status=SYNC_IDLE,
        )
        self.store.add(record)
        LOG.info(f"Manual record {record.id} created for {data.name!r}")
        return record

    # ---------- review ----------
    def edit_record(self, record_id: str, fields: Dict[str, Any]) -> ProcessingRecord:
        """Replace a settled record's data; status is kept, sync starts over."""
        record = self._require(record_id)
        if record.status not in TERMINAL_STATUSES:
            raise RecordStateError(f"record {record_id} is still {record.status}")
        return self.store.update_by_id(
            record_id,
            data=RegistrationData.from_dict(fields),
            sync_status=SYNC_IDLE,
            synced_at=None,
        )

    def remove_record(self, record_id: str) -> ProcessingRecord:
        removed = self.store.remove_by_id(record_id)
        self.images.release(record_id)
        LOG.info(f"Removed record {record_id}")
        return removed

    def clear_all(self) -> int:
        removed = self.store.clear()
        self.images.clear()
        LOG.info(f"Cleared {len(removed)} record(s)")
        return len(removed)

    # ---------- sync ----------
    async def sync_record(self, record_id: str) -> ProcessingRecord:
        record = self._require(record_id)
        if record.data is None:
            raise RecordStateError("record has no data to sync")
        if record.sync_status not in SYNC_STARTABLE:
            raise RecordStateError(f"cannot sync a record that is {record.sync_status}")
        data = record.data
        self.store.update_by_id(record_id, sync_status=SYNC_SYNCING)
        ok = await self.sheets.push(data)
        current = self.store.get(record_id)
        if current is None:
            LOG.info(f"Record {record_id} was removed while syncing")
            raise RecordNotFoundError(record_id)
        if current.sync_status != SYNC_SYNCING or current.data is not data:
            # Edited mid-push: the pushed data is stale, leave the reset state alone.
            LOG.info(f"Record {record_id} changed while syncing; push result ignored")
            return current
        if ok:
            return self.store.update_by_id(record_id, sync_status=SYNC_SYNCED, synced_at=_now_ms())
        return self.store.update_by_id(record_id, sync_status=SYNC_FAILED)

    # ---------- list view ----------
    def search(self, query: Optional[str] = None, *, status: Optional[str] = None) -> List[ProcessingRecord]:
        needle = (query or "").strip().casefold()
        out: List[ProcessingRecord] = []
        for r in self.store.list_all():
            if status and r.status != status:
                continue
            if needle:
                haystack = [r.file_name] + (list(r.data.to_dict().values()) if r.data else [])
                if not any(needle in v.casefold() for v in haystack):
                    continue
            out.append(r)
        return out
