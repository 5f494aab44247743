"""In-memory record collection mirrored to local storage on every change."""

from __future__ import annotations

import dataclasses
from typing import Any, List, Optional

from ..domain.constants import KEY_RECORDS
from ..domain.models import ProcessingRecord
from ..logging import get_logger
from .storage import SessionStorage, read_json, write_json

LOG = get_logger("record-store")


class RecordNotFoundError(KeyError):
    pass


class RecordStateError(Exception):
    """A transition the record lifecycle does not allow."""


class RecordStore:
    def __init__(self, storage: SessionStorage) -> None:
        self.storage = storage
        self._records: List[ProcessingRecord] = self._load()
        LOG.info(f"Record store ready with {len(self._records)} record(s)")

    def _load(self) -> List[ProcessingRecord]:
        raw = read_json(self.storage, KEY_RECORDS, default=[])
        if not isinstance(raw, list):
            LOG.warning("Stored records are not a list; starting empty")
            return []
        try:
            return [ProcessingRecord.from_dict(item) for item in raw]
        except (TypeError, ValueError) as exc:
            LOG.warning(f"Stored records could not be decoded ({exc}); starting empty")
            return []

    def _persist(self) -> None:
        write_json(self.storage, KEY_RECORDS, [r.to_dict() for r in self._records])

    def _index(self, record_id: str) -> int:
        for i, r in enumerate(self._records):
            if r.id == record_id:
                return i
        raise RecordNotFoundError(record_id)

    # ---------- queries ----------
    def list_all(self) -> List[ProcessingRecord]:
        return list(self._records)

    def get(self, record_id: str) -> Optional[ProcessingRecord]:
        for r in self._records:
            if r.id == record_id:
                return r
        return None

    def __len__(self) -> int:
        return len(self._records)

    # ---------- mutations ----------
    def add(self, record: ProcessingRecord, *, at_head: bool = True) -> ProcessingRecord:
        if self.get(record.id) is not None:
            raise ValueError(f"duplicate record id: {record.id}")
        if at_head:
            self._records.insert(0, record)
        else:
            self._records.append(record)
        self._persist()
        return record

    def add_many(self, records: List[ProcessingRecord]) -> None:
        """Insert a batch at the head, keeping the batch's own order."""
        ids = {r.id for r in self._records}
        for r in records:
            if r.id in ids:
                raise ValueError(f"duplicate record id: {r.id}")
        self._records = list(records) + self._records
        self._persist()

    def update_by_id(self, record_id: str, **patch: Any) -> ProcessingRecord:
        """Replace the record with a patched copy and persist."""
        i = self._index(record_id)
        updated = dataclasses.replace(self._records[i], **patch)
        self._records[i] = updated
        self._persist()
        return updated

    def remove_by_id(self, record_id: str) -> ProcessingRecord:
        i = self._index(record_id)
        removed = self._records.pop(i)
        self._persist()
        return removed

    def clear(self) -> List[ProcessingRecord]:
        removed, self._records = self._records, []
        self._persist()
        return removed
