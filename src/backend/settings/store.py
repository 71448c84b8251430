from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Mapping, Optional

from .models import AppSettings

logger = logging.getLogger(__name__)


class SettingsStore:
    """
    JSON settings file with environment overrides.

    Credential priority: environment variables, then the config file.
    """

    def __init__(self, *, path: Path) -> None:
        self._path = path
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AppSettings:
        with self._lock:
            if not self._path.exists():
                return AppSettings()

            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning("Ignoring unreadable settings file %s: %s", self._path, exc)
                return AppSettings()

            if not isinstance(raw, dict):
                return AppSettings()

            return AppSettings.from_persist_dict(raw)

    def load_effective(self, environ: Optional[Mapping[str, str]] = None) -> AppSettings:
        """File settings with environment overrides applied."""
        return self.load().with_env(os.environ if environ is None else environ)
