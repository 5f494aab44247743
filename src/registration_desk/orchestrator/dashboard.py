"""Reconcile local synced records with the remote sheet and summarise them."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..domain.constants import REGISTRATION_FIELDS, SYNC_SYNCED
from ..domain.models import ProcessingRecord, RegistrationData
from ..domain.normalize import city_from_address, normalize_header, parse_amount, parse_form_date
from ..logging import get_logger
from ..sheets.client import SheetReadError, SheetSyncClient
from .records import RecordStore

LOG = get_logger("dashboard")

ORIGIN_REMOTE = "remote"
ORIGIN_LOCAL = "local"
UNKNOWN_GENDER = "unknown"
OTHER_CITY = "other"
TOP_CITIES = 5

# Normalized header -> canonical field, for headers that are not already canonical.
HEADER_ALIASES: Dict[str, str] = {
    "id": "admission_id",
    "admission": "admission_id",
    "admission_no": "admission_id",
    "admission_number": "admission_id",
    "student_name": "name",
    "full_name": "name",
    "sex": "gender",
    "contact": "contact_no",
    "contact_number": "contact_no",
    "phone": "contact_no",
    "phone_no": "contact_no",
    "mobile": "contact_no",
    "mobile_no": "contact_no",
    "whatsapp": "whatsapp_no",
    "whatsapp_number": "whatsapp_no",
    "payment": "initial_payment",
    "amount_paid": "initial_payment",
    "paid": "initial_payment",
    "utr_no": "utr",
    "utr_txn_id": "utr",
    "txn_id": "utr",
    "transaction_id": "utr",
    "received_account": "received_ac",
    "received_a_c": "received_ac",
    "remaining": "remaining_amount",
    "due": "remaining_amount",
    "due_amount": "remaining_amount",
    "balance": "remaining_amount",
}


@dataclass
class MergedEntry:
    data: RegistrationData
    origin: str
    record_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self.data.to_dict())
        out["origin"] = self.origin
        out["record_id"] = self.record_id
        return out


@dataclass
class DashboardStats:
    total: int = 0
    revenue: float = 0.0
    genders: Dict[str, int] = field(default_factory=dict)
    cities: Dict[str, int] = field(default_factory=dict)

    def percentage(self, count: int) -> int:
        if self.total <= 0:
            return 0
        return round(count / self.total * 100)

    def top_cities(self, limit: int = TOP_CITIES) -> List[Tuple[str, int]]:
        return sorted(self.cities.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "revenue": self.revenue,
            "genders": [
                {"label": k, "count": v, "percent": self.percentage(v)} for k, v in sorted(self.genders.items())
            ],
            "cities": [
                {"label": k, "count": v, "percent": self.percentage(v)} for k, v in self.top_cities()
            ],
        }


@dataclass
class DashboardView:
    entries: List[MergedEntry]
    stats: DashboardStats
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "stats": self.stats.to_dict(),
            "error": self.error,
        }


def normalize_row(row: Any) -> RegistrationData:
    """Map a sheet row with arbitrary headers onto RegistrationData.

    Canonical headers beat aliases when both appear. Never raises.
    """
    if not isinstance(row, dict):
        return RegistrationData()
    canonical: Dict[str, Any] = {}
    aliased: Dict[str, Any] = {}
    for key, value in row.items():
        norm = normalize_header(key)
        if norm in REGISTRATION_FIELDS:
            canonical.setdefault(norm, value)
        elif norm in HEADER_ALIASES:
            aliased.setdefault(HEADER_ALIASES[norm], value)
    merged = {**aliased, **canonical}
    return RegistrationData.from_dict({k: ("" if v is None else str(v).strip()) for k, v in merged.items()})


def _date_sort_key(entry: MergedEntry) -> Tuple[int, date]:
    parsed = parse_form_date(entry.data.date)
    if parsed is None:
        return (0, date.min)
    return (1, parsed)


def sort_by_date_desc(entries: List[MergedEntry]) -> List[MergedEntry]:
    """Newest first; undated entries sink to the bottom in original order."""
    return sorted(entries, key=_date_sort_key, reverse=True) if entries else []


def merge_records(remote_rows: Iterable[Any], local_records: Iterable[ProcessingRecord]) -> List[MergedEntry]:
    """Remote rows win on admission_id collisions; local records fill gaps.

    Entries without an admission_id are kept as-is, never merged.
    """
    keyed: Dict[str, MergedEntry] = {}
    loose: List[MergedEntry] = []

    def _place(entry: MergedEntry) -> None:
        key = entry.data.admission_id.strip()
        if not key:
            loose.append(entry)
        elif key not in keyed:
            keyed[key] = entry

    for row in remote_rows:
        _place(MergedEntry(data=normalize_row(row), origin=ORIGIN_REMOTE))
    for record in local_records:
        if record.data is None:
            continue
        _place(MergedEntry(data=record.data, origin=ORIGIN_LOCAL, record_id=record.id))

    return sort_by_date_desc(list(keyed.values()) + loose)


def compute_stats(entries: Iterable[MergedEntry]) -> DashboardStats:
    genders: Counter = Counter()
    cities: Counter = Counter()
    revenue = 0.0
    total = 0
    for e in entries:
        total += 1
        genders[e.data.gender.strip().casefold() or UNKNOWN_GENDER] += 1
        cities[city_from_address(e.data.address) or OTHER_CITY] += 1
        revenue += parse_amount(e.data.initial_payment)
    return DashboardStats(total=total, revenue=revenue, genders=dict(genders), cities=dict(cities))


def local_synced(records: Iterable[ProcessingRecord]) -> List[ProcessingRecord]:
    return [r for r in records if r.sync_status == SYNC_SYNCED and r.data is not None]


class DashboardService:
    def __init__(self, store: RecordStore, sheets: SheetSyncClient) -> None:
        self.store = store
        self.sheets = sheets

    async def refresh(self) -> DashboardView:
        error: Optional[str] = None
        try:
            remote = await self.sheets.pull_all()
        except SheetReadError as exc:
            LOG.warning(f"Dashboard falling back to local data: {exc}")
            remote, error = [], str(exc)
        entries = merge_records(remote, local_synced(self.store.list_all()))
        stats = compute_stats(entries)
        LOG.info(f"Dashboard refreshed: {stats.total} entries, remote rows={len(remote)}")
        return DashboardView(entries=entries, stats=stats, error=error)
