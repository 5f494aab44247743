"""CSV export of completed records."""

from __future__ import annotations

import csv
import io
from typing import Iterable, List, Optional

from ..domain.constants import STATUS_COMPLETED
from ..domain.models import ProcessingRecord, RegistrationData
from ..logging import get_logger

LOG = get_logger("export")


def exportable(records: Iterable[ProcessingRecord]) -> List[ProcessingRecord]:
    return [r for r in records if r.status == STATUS_COMPLETED and r.data is not None]


def export_csv(records: Iterable[ProcessingRecord]) -> Optional[str]:
    """Return CSV text, or None when there is nothing to export.

    The header comes from the first completed record's fields; every data
    cell is quoted with embedded quotes doubled.
    """
    rows = exportable(records)
    if not rows:
        LOG.info("Nothing to export")
        return None
    header = list(rows[0].data.to_dict().keys())
    buf = io.StringIO()
    buf.write(",".join(header) + "\n")
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for r in rows:
        values = r.data.to_dict()
        writer.writerow([values.get(k, "") for k in header])
    LOG.info(f"Exported {len(rows)} record(s)")
    return buf.getvalue()


def parse_csv(text: str) -> List[RegistrationData]:
    """Read an export back into RegistrationData objects."""
    reader = csv.DictReader(io.StringIO(text or ""))
    return [RegistrationData.from_dict(row) for row in reader]
