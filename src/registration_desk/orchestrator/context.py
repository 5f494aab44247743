"""Explicit wiring of every service the UI surfaces need."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from ..config import DeskSettings, load_settings
from ..logging import get_logger
from ..paths import find_project_root, storage_path
from ..sheets.client import SheetSyncClient
from .access import AccessGate
from .branding import BrandingStore
from .dashboard import DashboardService
from .extraction import ExtractionClient
from .ingestion import ImageCache, IngestionController
from .records import RecordStore
from .storage import LocalStorage, SessionStorage

LOG = get_logger("context")


@dataclass
class AppContext:
    settings: DeskSettings
    local: SessionStorage
    session: SessionStorage
    branding: BrandingStore
    access: AccessGate
    store: RecordStore
    images: ImageCache
    extractor: ExtractionClient
    sheets: SheetSyncClient
    controller: IngestionController
    dashboard: DashboardService

    async def aclose(self) -> None:
        await self.extractor.aclose()
        await self.sheets.aclose()


def build_context(
    root_dir: Optional[str] = None,
    *,
    settings: Optional[DeskSettings] = None,
    local: Optional[SessionStorage] = None,
    extractor: Optional[ExtractionClient] = None,
    sheets: Optional[SheetSyncClient] = None,
) -> AppContext:
    """Create an AppContext; anything not passed is built from env/.env."""
    project_root = find_project_root(root_dir)
    if settings is None:
        settings = load_settings(project_root)
    if local is None:
        local = LocalStorage(storage_path(project_root))
        LOG.info(f"Local storage at {getattr(local, 'path', os.path.join(project_root, 'var'))}")

    extractor = extractor or ExtractionClient(
        api_key=settings.extraction_api_key,
        base_url=settings.extraction_base_url,
        model=settings.extraction_model,
    )
    sheets = sheets or SheetSyncClient(settings.sheet_url)
    session = SessionStorage()
    store = RecordStore(local)
    images = ImageCache()
    controller = IngestionController(store, extractor, sheets, images=images, total_fee=settings.total_fee)

    return AppContext(
        settings=settings,
        local=local,
        session=session,
        branding=BrandingStore(local),
        access=AccessGate(local, session),
        store=store,
        images=images,
        extractor=extractor,
        sheets=sheets,
        controller=controller,
        dashboard=DashboardService(store, sheets),
    )
