import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from ..logging import get_logger
from .constants import CHECK_MANUALLY

_LOG = get_logger("normalize")

_NON_NUMERIC = re.compile(r"[^0-9.]")
_FORM_DATE = re.compile(r"(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2,4})")


def parse_amount(value: Any) -> float:
    """Parse a free-form money string; anything unusable counts as 0.

    Every character other than digits and '.' is dropped first, so
    "₹5,000/-" reads as 5000.0.
    """
    if value is None:
        return 0.0
    s = _NON_NUMERIC.sub("", str(value))
    if not s:
        return 0.0
    try:
        return float(s)
    except ValueError:
        _LOG.debug(f"Unparseable amount {value!r}; counting as 0")
        return 0.0


def format_amount(value: float) -> str:
    """Render whole amounts without decimals ("15000"), others with two."""
    try:
        d = Decimal(str(value))
    except InvalidOperation:
        return "0"
    if d == d.to_integral_value():
        return str(int(d))
    return f"{d:.2f}"


def parse_form_date(value: Any) -> Optional[date]:
    """Parse DD/MM/YYYY (also '-' or '.' separated); None when unusable.

    Two-digit years map to 20xx.
    """
    if not value:
        return None
    m = _FORM_DATE.fullmatch(str(value).strip())
    if not m:
        return None
    d, mth, y = m.groups()
    if len(y) == 2:
        y = "20" + y
    elif len(y) != 4:
        return None
    try:
        return date(int(y), int(mth), int(d))
    except ValueError:
        return None


def today_form_date(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime("%d/%m/%Y")


def clean_field_value(value: Any) -> str:
    """Strip whitespace and the form's ':'/'_' leader artifacts."""
    s = "" if value is None else str(value)
    s = s.strip()
    if s == CHECK_MANUALLY:
        return s
    return s.strip(":_ \t").strip()


def normalize_header(key: Any) -> str:
    """Case-fold a sheet header and collapse separators to '_'.

    "Admission ID" -> "admission_id", " Contact-No. " -> "contact_no".
    """
    s = str(key or "").casefold()
    s = re.sub(r"[^0-9a-z]+", "_", s)
    return s.strip("_")


def city_from_address(address: Any, *, min_length: int = 4) -> Optional[str]:
    """Return the last comma/space token of an address, case-folded.

    Tokens shorter than ``min_length`` (pin fragments, "Rd", "No") are noise.
    """
    parts = [p for p in re.split(r"[,\s]+", str(address or "")) if len(p) >= min_length]
    if not parts:
        return None
    return parts[-1].casefold()
