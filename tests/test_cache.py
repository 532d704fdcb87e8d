"""Tests for the write-through GBIF cache."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

from algae_occurrences.cache import CACHE_PATH, MISSING, CacheStore, match_query
from algae_occurrences.schemas import MatchCandidate, OccurrenceRecord, TaxonDetail
from algae_occurrences.store import DataStore


def record(key: str = "1") -> OccurrenceRecord:
    return OccurrenceRecord(key=key, scientific_name="Ulva lactuca", latitude=50.0, longitude=-4.0)


class TestTaxonKeys:
    """Name -> key entries, including the confirmed-missing marker."""

    def test_unknown_name_is_missing(self, cache: CacheStore) -> None:
        assert cache.get_taxon_key("Ulva lactuca") is MISSING
        assert not cache.has_taxon_key("Ulva lactuca")

    def test_null_is_distinct_from_missing(self, cache: CacheStore) -> None:
        cache.set_taxon_key("Nonexistent species", None)
        assert cache.has_taxon_key("Nonexistent species")
        assert cache.get_taxon_key("Nonexistent species") is None

    def test_candidate_stored_alongside(self, cache: CacheStore) -> None:
        candidate = MatchCandidate(usage_key=7, scientific_name="Chondrus crispus", confidence=80)
        cache.set_taxon_key("Chondrus crispus Stackhouse", 7, candidate)

        assert cache.get_taxon_key("Chondrus crispus Stackhouse") == 7
        assert cache.get_match("Chondrus crispus Stackhouse") == candidate
        assert cache.get_fuzzy_matches(match_query("Chondrus crispus Stackhouse")) == [candidate]


class TestOccurrences:
    """Key -> record list entries."""

    def test_get_returns_copy(self, cache: CacheStore) -> None:
        cache.set_occurrences(5, [record()])
        first = cache.get_occurrences(5)
        assert first is not None
        first.append(record("2"))
        assert cache.get_occurrences(5) == [record()]

    def test_empty_list_is_a_hit(self, cache: CacheStore) -> None:
        cache.set_occurrences(5, [])
        assert cache.get_occurrences(5) == []
        assert cache.get_occurrences(6) is None


class TestPersistence:
    """Write-through to the durable blob and recovery from it."""

    def test_every_write_is_flushed(self, store: DataStore, cache: CacheStore) -> None:
        cache.set_taxon_key("Ulva compressa", 3)
        raw = store.read(CACHE_PATH)
        assert raw["taxon_keys"] == {"Ulva compressa": 3}

    def test_round_trip_through_fresh_instance(self, store: DataStore, cache: CacheStore) -> None:
        cache.set_taxon_key("Nonexistent species", None)
        cache.set_occurrences(3, [record()])
        cache.set_taxon_detail(3, TaxonDetail(key=3, scientific_name="Ulva compressa"))
        cache.set_fuzzy_matches("suggest:ulva:10", [MatchCandidate(usage_key=3, scientific_name="U")])

        reloaded = CacheStore(store)

        assert reloaded.get_taxon_key("Nonexistent species") is None
        assert reloaded.get_occurrences(3) == [record()]
        assert reloaded.get_taxon_detail(3).scientific_name == "Ulva compressa"
        assert reloaded.get_fuzzy_matches("suggest:ulva:10")[0].usage_key == 3
        assert reloaded.stats() == cache.stats()

    def test_records_serialized_with_gbif_names(self, store: DataStore, cache: CacheStore) -> None:
        cache.set_occurrences(3, [record()])
        stored = json.loads((store.base / CACHE_PATH).read_text())
        assert stored["data"]["occurrences"]["3"][0]["decimalLatitude"] == 50.0

    def test_corrupt_blob_is_discarded(self, tmp_path: Path) -> None:
        blob = tmp_path / CACHE_PATH
        blob.parent.mkdir(parents=True)
        blob.write_text("{truncated")

        cache = CacheStore(DataStore(tmp_path))

        assert cache.stats() == {
            "taxon_keys": 0,
            "occurrences": 0,
            "taxon_details": 0,
            "fuzzy_matches": 0,
        }
        assert not blob.exists()

    def test_invalid_shape_is_discarded(self, tmp_path: Path) -> None:
        store = DataStore(tmp_path)
        store.write(CACHE_PATH, {"taxon_keys": ["not", "a", "map"]}, source="test")

        cache = CacheStore(store)

        assert cache.get_taxon_key("anything") is MISSING
        assert not store.exists(CACHE_PATH)

    def test_write_failure_keeps_memory(self, store: DataStore, cache: CacheStore) -> None:
        with patch.object(store, "write", side_effect=OSError("read-only")):
            cache.set_taxon_key("Ulva compressa", 3)
        assert cache.get_taxon_key("Ulva compressa") == 3

    def test_clear_removes_blob(self, store: DataStore, cache: CacheStore) -> None:
        cache.set_taxon_key("Ulva compressa", 3)
        cache.clear()
        assert cache.get_taxon_key("Ulva compressa") is MISSING
        assert not store.exists(CACHE_PATH)

    def test_memory_only_cache(self) -> None:
        cache = CacheStore()
        cache.set_taxon_key("Ulva compressa", 3)
        assert cache.get_taxon_key("Ulva compressa") == 3
