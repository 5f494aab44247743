from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, List, Optional

from .constants import (
    CHECK_MANUALLY,
    REGISTRATION_FIELDS,
    ROLE_CHOICES,
    ROLE_STAFF,
    SOURCE_CHOICES,
    SOURCE_OCR,
    STATUS_CHOICES,
    STATUS_PENDING,
    SYNC_CHOICES,
    SYNC_IDLE,
)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


@dataclass
class RegistrationData:
    admission_id: str = ""
    name: str = ""
    gender: str = ""
    age: str = ""
    qualification: str = ""
    medium: str = ""
    contact_no: str = ""
    whatsapp_no: str = ""
    address: str = ""
    initial_payment: str = ""
    date: str = ""
    utr: str = ""
    received_ac: str = ""
    discount: str = ""
    remaining_amount: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RegistrationData":
        """Build from any mapping; unknown keys are dropped, gaps become ""."""
        data = data if isinstance(data, dict) else {}
        return cls(**{name: _text(data.get(name)) for name in REGISTRATION_FIELDS})

    def to_dict(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in REGISTRATION_FIELDS}

    def needs_review(self) -> List[str]:
        """Return field names the extraction flagged as illegible."""
        return [name for name in REGISTRATION_FIELDS if getattr(self, name) == CHECK_MANUALLY]


@dataclass
class ProcessingRecord:
    id: str
    timestamp: int  # epoch milliseconds
    file_name: str
    image_url: str
    source: str
    data: Optional[RegistrationData] = None
    status: str = STATUS_PENDING
    sync_status: str = SYNC_IDLE
    error: Optional[str] = None
    synced_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["data"] = self.data.to_dict() if self.data is not None else None
        return out

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ProcessingRecord":
        """Inverse of to_dict; raises ValueError on unusable input."""
        if not isinstance(raw, dict) or not raw.get("id"):
            raise ValueError("record must be an object with an id")
        status = raw.get("status") or STATUS_PENDING
        if status not in STATUS_CHOICES:
            raise ValueError(f"unknown status: {status!r}")
        sync_status = raw.get("sync_status") or SYNC_IDLE
        if sync_status not in SYNC_CHOICES:
            raise ValueError(f"unknown sync status: {sync_status!r}")
        source = raw.get("source") or SOURCE_OCR
        if source not in SOURCE_CHOICES:
            raise ValueError(f"unknown source: {source!r}")
        data_raw = raw.get("data")
        synced_at = raw.get("synced_at")
        return cls(
            id=str(raw["id"]),
            timestamp=int(raw.get("timestamp") or 0),
            file_name=_text(raw.get("file_name")),
            image_url=_text(raw.get("image_url")),
            source=str(source),
            data=RegistrationData.from_dict(data_raw) if isinstance(data_raw, dict) else None,
            status=status,
            sync_status=sync_status,
            error=raw.get("error") or None,
            synced_at=int(synced_at) if isinstance(synced_at, (int, float)) else None,
        )


@dataclass
class AppConfig:
    app_name: str = "OCR Specialist"
    app_subtitle: str = "English House Academy"
    logo_url: str = ""

    @classmethod
    def from_dict(cls, raw: Any) -> "AppConfig":
        default = cls()
        if not isinstance(raw, dict):
            return default
        return cls(**{f.name: _text(raw.get(f.name, getattr(default, f.name))) for f in fields(cls)})

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class UserAccount:
    # Plaintext on purpose: local convenience gate, not access control.
    username: str
    password: str
    role: str = ROLE_STAFF

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> Optional["UserAccount"]:
        if not isinstance(raw, dict):
            return None
        username = _text(raw.get("username")).strip()
        if not username:
            return None
        role = _text(raw.get("role")) or ROLE_STAFF
        if role not in ROLE_CHOICES:
            role = ROLE_STAFF
        return cls(username=username, password=_text(raw.get("password")), role=role)

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)
