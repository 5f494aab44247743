from __future__ import annotations

from ..domain.constants import KEY_APP_CONFIG
from ..domain.models import AppConfig
from ..logging import get_logger
from .storage import SessionStorage, read_json, write_json

LOG = get_logger("branding")


class BrandingStore:
    """Loads the app branding once; saves replace it wholesale."""

    def __init__(self, local: SessionStorage) -> None:
        self.local = local
        self._current = self.load()

    def load(self) -> AppConfig:
        return AppConfig.from_dict(read_json(self.local, KEY_APP_CONFIG, default=None))

    @property
    def current(self) -> AppConfig:
        return self._current

    def save(self, config: AppConfig) -> AppConfig:
        write_json(self.local, KEY_APP_CONFIG, config.to_dict())
        self._current = config
        LOG.info(f"Branding updated: {config.app_name!r}")
        return config
