"""
Runtime-mutable conversion configuration.

Values are read on every call so an operator can switch conversion off, or
change the mesh output format, without restarting workers. A missing row
falls back to the process Settings.
"""

import logging
from typing import Optional

from fabquote.backoffice.models.runtime_setting import RuntimeSetting
from fabquote.config import get_settings
from fabquote.config.settings import Settings
from fabquote.database import SessionFactory, session_scope

logger = logging.getLogger(__name__)

CONVERSION_ENABLED_KEY = "mesh_conversion.enabled"
OUTPUT_FORMAT_KEY = "mesh_conversion.output_format"

_TRUTHY = {"1", "true", "yes", "on"}


class RuntimeConfigService:
    def __init__(self, session_factory: SessionFactory, settings: Optional[Settings] = None):
        self._session_factory = session_factory
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def _read(self, key: str) -> Optional[str]:
        with session_scope(self._session_factory) as session:
            row = session.get(RuntimeSetting, key)
            return row.value if row is not None else None

    def set(self, key: str, value: str, *, updated_by: Optional[str] = None) -> None:
        with session_scope(self._session_factory) as session:
            row = session.get(RuntimeSetting, key)
            if row is None:
                row = RuntimeSetting(key=key)
                session.add(row)
            row.value = value
            row.updated_by = updated_by
        logger.info("Runtime setting %s set to %r by %s", key, value, updated_by)

    def conversion_enabled(self) -> bool:
        if not self.settings.CONVERSION_API_URL:
            return False
        raw = self._read(CONVERSION_ENABLED_KEY)
        if raw is None:
            return self.settings.CONVERSION_ENABLED
        return raw.strip().lower() in _TRUTHY

    def output_format(self) -> str:
        raw = self._read(OUTPUT_FORMAT_KEY)
        return (raw or self.settings.CONVERSION_OUTPUT_FORMAT).strip().lower()
