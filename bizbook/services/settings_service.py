from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from bizbook.config import SETTINGS_FILENAME, data_dir
from bizbook.models.settings import Settings

logger = logging.getLogger(__name__)


class SettingsService:
    """Paramètres de l'entreprise (data/settings.json), valeurs par défaut si absent."""

    def __init__(self, base_dir: Optional[Union[str, Path]] = None) -> None:
        self.path = Path(base_dir or data_dir()) / SETTINGS_FILENAME

    def _load_json(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Unreadable settings file %s, using defaults", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self) -> Settings:
        try:
            return Settings.model_validate(self._load_json())
        except ValidationError as e:
            logger.warning("Invalid settings in %s (%s), using defaults", self.path, e)
            return Settings()

    def update(self, **changes: Any) -> Settings:
        merged = Settings.model_validate({**self.get().model_dump(), **changes})
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(merged.model_dump(), ensure_ascii=False, indent=2), encoding="utf-8")
        return merged
