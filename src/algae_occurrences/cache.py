"""Write-through cache for GBIF lookups.

Holds four maps in memory and mirrors the whole structure into one durable
blob (``cache/gbif_cache_v1.json``) on every mutation:

  - taxon_keys:     species name -> usage key, or None for "confirmed unresolvable"
  - occurrences:    usage key -> filtered occurrence records
  - taxon_details:  usage key -> species record with vernacular names/descriptions
  - fuzzy_matches:  query string -> match candidates

Build one ``CacheStore`` per process and hand it to the resolver, fetcher
and catalog; call ``close()`` at teardown.  Tests build a fresh one per case.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

from pydantic import ValidationError

from algae_occurrences.schemas import CacheSnapshot, MatchCandidate, OccurrenceRecord, TaxonDetail

if TYPE_CHECKING:
    from algae_occurrences.store import DataStore

logger = logging.getLogger(__name__)

CACHE_PATH = Path("cache/gbif_cache_v1.json")
CACHE_SOURCE = "api.gbif.org"

MATCH_PREFIX = "match:"


class _Missing(Enum):
    TOKEN = "MISSING"


#: Returned by ``get_taxon_key`` when a name has never been looked up.
#: Distinct from ``None``, which means "looked up, not in GBIF".
MISSING: Final = _Missing.TOKEN


def match_query(name: str) -> str:
    """Key under which a name's resolved match candidate is stored."""
    return f"{MATCH_PREFIX}{name}"


class CacheStore:
    """In-memory cache mirrored to a ``DataStore`` blob on every write."""

    def __init__(self, store: DataStore | None = None, path: Path = CACHE_PATH) -> None:
        self.store = store
        self.path = path
        self._data = self._load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> CacheSnapshot:
        if self.store is None:
            return CacheSnapshot()
        try:
            raw = self.store.read(self.path)
            if raw is None:
                return CacheSnapshot()
            snapshot = CacheSnapshot.model_validate(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            logger.warning("Discarding unreadable GBIF cache at %s: %s", self.path, e)
            self.store.delete(self.path)
            return CacheSnapshot()

        logger.debug("Loaded GBIF cache: %s", self.stats(snapshot))
        return snapshot

    def flush(self) -> None:
        """Serialize the whole cache to the durable store."""
        if self.store is None:
            return
        payload = self._data.model_dump(mode="json", by_alias=True)
        try:
            self.store.write(self.path, payload, source=CACHE_SOURCE, **self.stats())
        except OSError as e:
            # Memory stays authoritative; the next mutation tries again.
            logger.warning("Failed to persist GBIF cache to %s: %s", self.path, e)

    def close(self) -> None:
        self.flush()

    def clear(self) -> None:
        """Drop every entry and remove the durable blob."""
        self._data = CacheSnapshot()
        if self.store is not None:
            self.store.delete(self.path)

    def stats(self, snapshot: CacheSnapshot | None = None) -> dict[str, int]:
        data = snapshot or self._data
        return {
            "taxon_keys": len(data.taxon_keys),
            "occurrences": len(data.occurrences),
            "taxon_details": len(data.taxon_details),
            "fuzzy_matches": len(data.fuzzy_matches),
        }

    # ------------------------------------------------------------------
    # Taxon keys
    # ------------------------------------------------------------------

    def has_taxon_key(self, name: str) -> bool:
        return name in self._data.taxon_keys

    def get_taxon_key(self, name: str, default: Any = MISSING) -> Any:
        """Cached usage key for ``name``: an int, None (unresolvable) or ``default``."""
        return self._data.taxon_keys.get(name, default)

    def set_taxon_key(
        self, name: str, key: int | None, candidate: MatchCandidate | None = None
    ) -> None:
        """Record the resolution of ``name``; the candidate, if any, is kept alongside."""
        self._data.taxon_keys[name] = key
        if candidate is not None:
            self._data.fuzzy_matches[match_query(name)] = [candidate]
        self.flush()

    def get_match(self, name: str) -> MatchCandidate | None:
        candidates = self._data.fuzzy_matches.get(match_query(name))
        return candidates[0] if candidates else None

    # ------------------------------------------------------------------
    # Occurrences
    # ------------------------------------------------------------------

    def get_occurrences(self, key: int) -> list[OccurrenceRecord] | None:
        records = self._data.occurrences.get(key)
        return list(records) if records is not None else None

    def set_occurrences(self, key: int, records: list[OccurrenceRecord]) -> None:
        self._data.occurrences[key] = list(records)
        self.flush()

    # ------------------------------------------------------------------
    # Species details
    # ------------------------------------------------------------------

    def get_taxon_detail(self, key: int) -> TaxonDetail | None:
        return self._data.taxon_details.get(key)

    def set_taxon_detail(self, key: int, detail: TaxonDetail) -> None:
        self._data.taxon_details[key] = detail
        self.flush()

    # ------------------------------------------------------------------
    # Fuzzy / suggest matches
    # ------------------------------------------------------------------

    def get_fuzzy_matches(self, query: str) -> list[MatchCandidate] | None:
        matches = self._data.fuzzy_matches.get(query)
        return list(matches) if matches is not None else None

    def set_fuzzy_matches(self, query: str, candidates: list[MatchCandidate]) -> None:
        self._data.fuzzy_matches[query] = list(candidates)
        self.flush()
