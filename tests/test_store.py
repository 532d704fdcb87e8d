"""Tests for the DataStore module."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from algae_occurrences.store import DataStore


class TestDataStoreInit:
    """Test DataStore initialization."""

    def test_creates_tier_paths(self, tmp_path: Path) -> None:
        store = DataStore(tmp_path)
        assert store.base == tmp_path
        assert store.cache == tmp_path / "cache"
        assert store.live == tmp_path / "live"


class TestDataStoreWrite:
    """Test writing data with metadata envelopes."""

    def test_write_envelope_format(self, tmp_path: Path) -> None:
        store = DataStore(tmp_path)
        store.write(Path("cache/gbif.json"), {"taxon_keys": {}}, source="api.gbif.org", taxon_keys=0)

        data = json.loads((tmp_path / "cache" / "gbif.json").read_text())
        assert data["meta"]["source"] == "api.gbif.org"
        assert "fetched_at" in data["meta"]
        assert data["meta"]["taxon_keys"] == 0
        assert data["data"] == {"taxon_keys": {}}

    def test_write_creates_parent_dirs(self, tmp_path: Path) -> None:
        store = DataStore(tmp_path)
        store.write(Path("live/deep/nested.json"), {}, source="test")
        assert (tmp_path / "live" / "deep" / "nested.json").exists()

    def test_write_replaces_existing(self, tmp_path: Path) -> None:
        store = DataStore(tmp_path)
        store.write(Path("cache/a.json"), {"v": 1}, source="test")
        store.write(Path("cache/a.json"), {"v": 2}, source="test")
        assert store.read(Path("cache/a.json")) == {"v": 2}

    def test_failed_write_keeps_previous_file(self, tmp_path: Path) -> None:
        store = DataStore(tmp_path)
        store.write(Path("cache/a.json"), {"v": 1}, source="test")

        with (
            patch("algae_occurrences.store.json.dump", side_effect=OSError("disk full")),
            pytest.raises(OSError, match="disk full"),
        ):
            store.write(Path("cache/a.json"), {"v": 2}, source="test")

        assert store.read(Path("cache/a.json")) == {"v": 1}
        assert [p.name for p in (tmp_path / "cache").iterdir()] == ["a.json"]

    def test_rejects_paths_outside_base(self, tmp_path: Path) -> None:
        store = DataStore(tmp_path / "data")
        with pytest.raises(ValueError, match="escapes"):
            store.write(Path("../elsewhere.json"), {}, source="test")


class TestDataStoreRead:
    """Test reading data from the store."""

    def test_read_returns_data_payload(self, tmp_path: Path) -> None:
        store = DataStore(tmp_path)
        store.write(Path("live/test.json"), {"key": "value"}, source="test")
        assert store.read(Path("live/test.json")) == {"key": "value"}

    def test_read_missing_file(self, tmp_path: Path) -> None:
        assert DataStore(tmp_path).read(Path("nonexistent.json")) is None

    def test_read_raw_returns_envelope(self, tmp_path: Path) -> None:
        store = DataStore(tmp_path)
        store.write(Path("live/test.json"), [1, 2], source="test")
        raw = store.read_raw(Path("live/test.json"))
        assert raw["data"] == [1, 2]
        assert raw["meta"]["source"] == "test"

    def test_read_corrupt_file_raises(self, tmp_path: Path) -> None:
        (tmp_path / "cache").mkdir()
        (tmp_path / "cache" / "bad.json").write_text("{not json")
        with pytest.raises(json.JSONDecodeError):
            DataStore(tmp_path).read(Path("cache/bad.json"))


class TestDataStoreDelete:
    """Test removing stored files."""

    def test_delete_existing(self, tmp_path: Path) -> None:
        store = DataStore(tmp_path)
        store.write(Path("cache/a.json"), {}, source="test")
        assert store.delete(Path("cache/a.json")) is True
        assert not store.exists(Path("cache/a.json"))

    def test_delete_missing(self, tmp_path: Path) -> None:
        assert DataStore(tmp_path).delete(Path("cache/a.json")) is False
