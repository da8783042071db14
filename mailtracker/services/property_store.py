"""
Property store.

Small persistent key-value store for values that are not environment
settings: the extractor API key saved by scripts/set_api_key.py and
feature flags. Backed by a JSON file under settings.data_path.
"""
import json
import logging
from pathlib import Path
from typing import Optional

from config.settings import settings

logger = logging.getLogger(__name__)

GEMINI_API_KEY_PROPERTY = "GEMINI_API_KEY"
AI_EXTRACTION_FLAG = "AI_EXTRACTION_ENABLED"


class PropertyStore:
    """JSON-file key-value store."""

    def __init__(self, storage_path: Optional[Path] = None):
        self.storage_path = Path(storage_path or settings.property_store_path)
        self._properties: dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        """Load existing properties from disk."""
        if self.storage_path.exists():
            try:
                with open(self.storage_path, 'r') as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    self._properties = {str(k): str(v) for k, v in data.items()}
                else:
                    logger.error(f"Ignoring malformed property store {self.storage_path}")
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Failed to load property store: {e}")

    def _save(self) -> None:
        """Write properties to disk, replacing the file atomically."""
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.storage_path.with_suffix(".tmp")
        with open(tmp_path, 'w') as f:
            json.dump(self._properties, f, indent=2, sort_keys=True)
        tmp_path.replace(self.storage_path)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._properties.get(key, default)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._properties.get(key)
        if value is None:
            return default
        return value.strip().lower() in ("1", "true", "yes", "on")

    def set(self, key: str, value) -> None:
        self._properties[key] = str(value)
        self._save()
        logger.info(f"Saved property {key}")

    def delete(self, key: str) -> bool:
        """Remove a property; False if it was not set."""
        if key not in self._properties:
            return False
        del self._properties[key]
        self._save()
        logger.info(f"Deleted property {key}")
        return True

    def keys(self) -> list[str]:
        return sorted(self._properties)


# Singleton instance
_store: Optional[PropertyStore] = None


def get_property_store() -> PropertyStore:
    """Get or create the property store."""
    global _store
    if _store is None:
        _store = PropertyStore()
    return _store
