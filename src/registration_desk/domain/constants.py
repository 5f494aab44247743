from __future__ import annotations

from typing import Tuple

# Record lifecycle
STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_ERROR = "error"

STATUS_CHOICES: Tuple[str, ...] = (
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_COMPLETED,
    STATUS_ERROR,
)
TERMINAL_STATUSES: Tuple[str, ...] = (STATUS_COMPLETED, STATUS_ERROR)

# Spreadsheet sync lifecycle
SYNC_IDLE = "idle"
SYNC_SYNCING = "syncing"
SYNC_SYNCED = "synced"
SYNC_FAILED = "failed"

SYNC_CHOICES: Tuple[str, ...] = (SYNC_IDLE, SYNC_SYNCING, SYNC_SYNCED, SYNC_FAILED)
# States from which a push may be started; synced needs an edit first.
SYNC_STARTABLE: Tuple[str, ...] = (SYNC_IDLE, SYNC_FAILED)

SOURCE_OCR = "ocr"
SOURCE_MANUAL = "manual"
SOURCE_CHOICES: Tuple[str, ...] = (SOURCE_OCR, SOURCE_MANUAL)

ROLE_STAFF = "staff"
ROLE_SUPER_ADMIN = "super_admin"
ROLE_CHOICES: Tuple[str, ...] = (ROLE_STAFF, ROLE_SUPER_ADMIN)

# Written by the extraction service for fields that exist but are illegible.
CHECK_MANUALLY = "CHECK_MANUALLY"

REGISTRATION_FIELDS: Tuple[str, ...] = (
    "admission_id",
    "name",
    "gender",
    "age",
    "qualification",
    "medium",
    "contact_no",
    "whatsapp_no",
    "address",
    "initial_payment",
    "date",
    "utr",
    "received_ac",
    "discount",
    "remaining_amount",
)

# Storage keys
KEY_RECORDS = "records"
KEY_APP_CONFIG = "app_config"
KEY_USERS = "users"
KEY_SESSION_ROLE = "session_role"
