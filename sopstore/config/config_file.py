"""
Persistent JSON settings file.

Holds values the application learns at runtime and must reuse on the next
start, such as the Drive folder id created on first use.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)


class ConfigFile:
    """Small JSON key/value file, rewritten atomically on every update."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, ValueError) as e:
            logger.error(f"Error loading settings from {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.load().get(key, default)

    def update(self, **values: Any) -> None:
        data = self.load()
        data.update(values)
        self._atomic_write(data)
        logger.info(f"Saved settings to {self.path}: {', '.join(sorted(values))}")

    def save_folder_id(self, folder_id: str) -> None:
        self.update(folder_id=folder_id)

    def _atomic_write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        tmp_path.replace(self.path)
