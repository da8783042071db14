"""
Tests for the JSON property store.
"""
import json

import pytest

from mailtracker.services.property_store import (
    AI_EXTRACTION_FLAG,
    GEMINI_API_KEY_PROPERTY,
    PropertyStore,
)

pytestmark = pytest.mark.unit


class TestPropertyStore:
    """Test PropertyStore persistence."""

    def test_set_and_reload(self, property_store):
        property_store.set(GEMINI_API_KEY_PROPERTY, "secret")

        reloaded = PropertyStore(property_store.storage_path)
        assert reloaded.get(GEMINI_API_KEY_PROPERTY) == "secret"
        assert reloaded.keys() == [GEMINI_API_KEY_PROPERTY]

    def test_missing_key_default(self, property_store):
        assert property_store.get("nope") is None
        assert property_store.get("nope", "fallback") == "fallback"

    def test_get_bool(self, property_store):
        property_store.set(AI_EXTRACTION_FLAG, False)
        assert property_store.get_bool(AI_EXTRACTION_FLAG, True) is False

        property_store.set(AI_EXTRACTION_FLAG, "yes")
        assert property_store.get_bool(AI_EXTRACTION_FLAG) is True

        assert property_store.get_bool("unset", True) is True

    def test_delete(self, property_store):
        property_store.set("k", "v")

        assert property_store.delete("k")
        assert not property_store.delete("k")
        assert PropertyStore(property_store.storage_path).get("k") is None

    def test_malformed_file_ignored(self, tmp_path):
        """A corrupt store loads empty instead of failing."""
        path = tmp_path / "properties.json"
        path.write_text("{not json")

        assert PropertyStore(path).keys() == []

    def test_file_contents(self, property_store):
        property_store.set("a", 1)
        assert json.loads(property_store.storage_path.read_text()) == {"a": "1"}
