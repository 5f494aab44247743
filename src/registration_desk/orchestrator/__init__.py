"""Record lifecycle, reconciliation and the services behind the UI."""

from .access import AccessGate, InvalidCredentialsError
from .branding import BrandingStore
from .context import AppContext, build_context
from .dashboard import DashboardService, compute_stats, merge_records, normalize_row
from .export import export_csv, parse_csv
from .extraction import ExtractionClient, ExtractionError
from .ingestion import ImageCache, IngestionController, ManualEntryError, UploadedFile
from .records import RecordNotFoundError, RecordStateError, RecordStore
from .storage import LocalStorage, SessionStorage

__all__ = [
    "AccessGate",
    "InvalidCredentialsError",
    "BrandingStore",
    "AppContext",
    "build_context",
    "DashboardService",
    "compute_stats",
    "merge_records",
    "normalize_row",
    "export_csv",
    "parse_csv",
    "ExtractionClient",
    "ExtractionError",
    "ImageCache",
    "IngestionController",
    "ManualEntryError",
    "UploadedFile",
    "RecordNotFoundError",
    "RecordStateError",
    "RecordStore",
    "LocalStorage",
    "SessionStorage",
]
