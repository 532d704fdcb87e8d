"""Species name -> GBIF usage key resolution.

Dataset names are messy: outdated synonyms, ``sp.`` placeholders, rank
markers (``var.``, ``f.``, ``subsp.``) and author citations.  Resolution
tries, in order, first success wins:

1. Synonym substitution (results are always cached under the original name)
2. Curated fast-path table of common species (no network; only a synonym
   hit is written to the cache, under the original name)
3. Cache lookup; a cached None is final
4. Recursive resolution of the substituted synonym
5. GBIF exact match
6. Genus + epithet fuzzy match for names with 3+ tokens (confidence capped)
7. Cache None
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from algae_occurrences.cache import MISSING
from algae_occurrences.schemas import MatchCandidate
from algae_occurrences.services.inflight import InflightRequests

if TYPE_CHECKING:
    from algae_occurrences.cache import CacheStore
    from algae_occurrences.datasources.gbif.client import GBIFClient

logger = logging.getLogger(__name__)

#: Ceiling applied to genus + epithet matches so they never look exact.
FUZZY_CONFIDENCE_CAP = 80

BULK_BATCH_SIZE = 10
BULK_BATCH_DELAY = 0.3  # seconds between bulk groups

# =============================================================================
# Static tables
# =============================================================================

#: Common species with known backbone keys; answered without any lookup.
COMMON_TAXA: dict[str, dict[str, str | int]] = {
    "Fucus vesiculosus": {"usage_key": 2563239, "kingdom": "Plantae", "phylum": "Phaeophyta"},
    "Saccharina latissima": {"usage_key": 2397026, "kingdom": "Chromista", "phylum": "Ochrophyta"},
    "Laminaria digitata": {"usage_key": 2397025, "kingdom": "Chromista", "phylum": "Ochrophyta"},
    "Ulva lactuca": {"usage_key": 2399815, "kingdom": "Plantae", "phylum": "Chlorophyta"},
    "Porphyra umbilicalis": {"usage_key": 2667199, "kingdom": "Plantae", "phylum": "Rhodophyta"},
    "Alaria esculenta": {"usage_key": 2396889, "kingdom": "Chromista", "phylum": "Ochrophyta"},
    "Palmaria palmata": {"usage_key": 2664150, "kingdom": "Plantae", "phylum": "Rhodophyta"},
    "Himanthalia elongata": {"usage_key": 2397056, "kingdom": "Chromista", "phylum": "Ochrophyta"},
    "Undaria pinnatifida": {"usage_key": 2397034, "kingdom": "Chromista", "phylum": "Ochrophyta"},
    "Ascophyllum nodosum": {"usage_key": 2396916, "kingdom": "Chromista", "phylum": "Ochrophyta"},
}

#: Dataset name -> name GBIF knows it by.  Identity entries are omitted.
TAXONOMIC_SYNONYMS: dict[str, str] = {
    "Fucus sp.": "Fucus vesiculosus",
    "Laminaria sp.": "Laminaria digitata",
    "Ulva sp.": "Ulva lactuca",
    "Porphyra sp.": "Porphyra umbilicalis",
    "Enteromorpha sp.": "Ulva intestinalis",  # Enteromorpha was sunk into Ulva
    "Enteromorpha intestinalis": "Ulva intestinalis",
    "Enteromorpha compressa": "Ulva compressa",
    "Laminaria saccharina": "Saccharina latissima",
    "Gracilaria sp.": "Gracilaria gracilis",
    "Gelidium sp.": "Gelidium corneum",
    "Cystoseira sp.": "Cystoseira baccata",
    "Calliblepharis sp.": "Calliblepharis ciliata",
    "Cladophora sp.": "Cladophora rupestris",
    "Ectocarpus sp.": "Ectocarpus siliculosus",
    "Polysiphonia sp.": "Polysiphonia fucoides",
    "Asparagopsis sp.": "Asparagopsis armata",
    "Ceramium sp.": "Ceramium virgatum",
}


# =============================================================================
# Name helpers
# =============================================================================


def normalize_name(name: str) -> str:
    return name.strip()


def resolve_synonym(name: str) -> str:
    """Accepted name for ``name`` if it is a registered synonym, else ``name``."""
    normalized = normalize_name(name)
    return TAXONOMIC_SYNONYMS.get(normalized, normalized)


def simplify_name(name: str) -> str | None:
    """
    Genus + epithet for names with rank markers or author citations.

    ``"Ulva lactuca var. latissima"`` -> ``"Ulva lactuca"``.  Returns None for
    names with fewer than three tokens, which have nothing to strip.
    """
    tokens = name.split()
    if len(tokens) < 3:
        return None
    return " ".join(tokens[:2])


def common_taxon(name: str) -> MatchCandidate | None:
    """Fast-path candidate for a curated common species."""
    entry = COMMON_TAXA.get(name)
    if entry is None:
        return None
    return MatchCandidate(
        usage_key=int(entry["usage_key"]),
        scientific_name=name,
        canonical_name=name,
        kingdom=str(entry["kingdom"]),
        phylum=str(entry["phylum"]),
        rank="SPECIES",
        status="ACCEPTED",
        match_type="EXACT",
        confidence=100,
    )


# =============================================================================
# Resolver
# =============================================================================


class TaxonResolver:
    """Resolves species names to GBIF usage keys, caching every outcome."""

    def __init__(self, client: GBIFClient, cache: CacheStore) -> None:
        self.client = client
        self.cache = cache
        self._inflight: InflightRequests[str, MatchCandidate | None] = InflightRequests()

    async def resolve(self, name: str) -> int | None:
        """
        Usage key for ``name``, or None if GBIF does not know it.

        Raises:
            TransportError: GBIF could not be reached after retries and fallback.
        """
        candidate = await self.match(name)
        return candidate.usage_key if candidate is not None else None

    async def match(self, name: str) -> MatchCandidate | None:
        """Like ``resolve`` but returns the full candidate, confidence included."""
        original = normalize_name(name)
        if not original:
            return None

        substituted = resolve_synonym(original)
        fast = self._fast_path(original, substituted)
        if fast is not None:
            return fast

        cached = self.cache.get_taxon_key(original)
        if cached is None:
            return None
        if cached is not MISSING:
            return self.cache.get_match(original) or MatchCandidate(
                usage_key=cached, scientific_name=substituted
            )

        return await self._inflight.run(original, lambda: self._match_uncached(original, substituted))

    def _fast_path(self, original: str, substituted: str) -> MatchCandidate | None:
        fast = common_taxon(substituted)
        if fast is not None and substituted != original and not self.cache.has_taxon_key(original):
            self.cache.set_taxon_key(original, fast.usage_key, fast)
        return fast

    async def _match_uncached(self, original: str, substituted: str) -> MatchCandidate | None:
        if substituted != original:
            logger.debug("Resolving %r via synonym %r", original, substituted)
            candidate = await self.match(substituted)
            self.cache.set_taxon_key(
                original, candidate.usage_key if candidate else None, candidate
            )
            return candidate

        candidate = await self._match_remote(original, strict=True)
        if candidate is None:
            simplified = simplify_name(original)
            if simplified is not None:
                logger.debug("Trying genus + epithet match %r for %r", simplified, original)
                fuzzy = await self._match_remote(simplified, strict=False)
                if fuzzy is not None:
                    candidate = fuzzy.capped(FUZZY_CONFIDENCE_CAP)

        if candidate is None:
            logger.info("No GBIF match for %r", original)
            self.cache.set_taxon_key(original, None)
            return None

        self.cache.set_taxon_key(original, candidate.usage_key, candidate)
        return candidate

    async def _match_remote(self, name: str, *, strict: bool) -> MatchCandidate | None:
        result = await self.client.match_name(name, strict=strict)
        if result.error is not None:
            if result.error.not_found:
                return None
            raise result.error
        return MatchCandidate.from_api(result.data)

    async def bulk_match(
        self,
        names: list[str],
        *,
        batch_size: int = BULK_BATCH_SIZE,
        batch_delay: float = BULK_BATCH_DELAY,
    ) -> dict[str, MatchCandidate | None]:
        """
        Match many names, answering cached ones first and querying the rest in groups.

        A transport failure maps the affected name to None without caching it,
        so a later call tries again.
        """
        results: dict[str, MatchCandidate | None] = {}
        pending: list[str] = []
        for raw in names:
            name = normalize_name(raw)
            if not name or name in results or name in pending:
                continue
            fast = self._fast_path(name, resolve_synonym(name))
            if fast is not None:
                results[name] = fast
            elif self.cache.has_taxon_key(name):
                results[name] = await self.match(name)
            else:
                pending.append(name)

        for start in range(0, len(pending), batch_size):
            group = pending[start : start + batch_size]
            outcomes = await asyncio.gather(*(self.match(n) for n in group), return_exceptions=True)
            for name, outcome in zip(group, outcomes, strict=True):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    logger.warning("Bulk match failed for %r: %s", name, outcome)
                    results[name] = None
                else:
                    results[name] = outcome
            if batch_delay and start + batch_size < len(pending):
                await asyncio.sleep(batch_delay)

        return results
