"""Species enrichment: details, vernacular names, suggestions, related taxa."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from algae_occurrences.datasources.gbif.client import map_tile_url
from algae_occurrences.schemas import MatchCandidate, TaxonDescription, TaxonDetail, VernacularName

if TYPE_CHECKING:
    from pydantic import BaseModel

    from algae_occurrences.cache import CacheStore
    from algae_occurrences.datasources.gbif.client import GBIFClient
    from algae_occurrences.services.http import TransportResult

logger = logging.getLogger(__name__)

MIN_SUGGEST_LENGTH = 3


def suggest_query(query: str, limit: int) -> str:
    """Cache key for a suggest lookup."""
    return f"suggest:{query.strip().lower()}:{limit}"


def _results(result: TransportResult) -> list[dict[str, Any]]:
    """``results`` list of a paged response; empty if the request failed."""
    if result.error is not None or not isinstance(result.data, dict):
        return []
    items = result.data.get("results")
    return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []


def _parse_each(model: type[BaseModel], items: list[dict[str, Any]]) -> list[Any]:
    parsed = []
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except ValueError:
            continue
    return parsed


class SpeciesCatalog:
    """Cached access to GBIF species records."""

    def __init__(self, client: GBIFClient, cache: CacheStore) -> None:
        self.client = client
        self.cache = cache

    async def details(self, taxon_key: int) -> TaxonDetail | None:
        """
        Species record with vernacular names and descriptions.

        The two enrichment requests run concurrently and may fail on their
        own; a failure there just leaves the list empty.

        Raises:
            TransportError: the species record itself could not be fetched.
        """
        cached = self.cache.get_taxon_detail(taxon_key)
        if cached is not None:
            return cached

        result = await self.client.species(taxon_key)
        if result.error is not None:
            if result.error.not_found:
                return None
            raise result.error

        detail = TaxonDetail.from_api(result.data)
        if detail is None:
            return None

        vernacular, descriptions = await asyncio.gather(
            self.client.vernacular_names(taxon_key),
            self.client.descriptions(taxon_key),
        )
        detail = detail.model_copy(
            update={
                "vernacular_names": _parse_each(VernacularName, _results(vernacular)),
                "descriptions": _parse_each(TaxonDescription, _results(descriptions)),
            }
        )

        self.cache.set_taxon_detail(taxon_key, detail)
        return detail

    async def suggest(self, query: str, limit: int = 10) -> list[MatchCandidate]:
        """Autocomplete candidates for ``query``; short queries return nothing."""
        if len(query.strip()) < MIN_SUGGEST_LENGTH:
            return []

        key = suggest_query(query, limit)
        cached = self.cache.get_fuzzy_matches(key)
        if cached is not None:
            return cached

        data = (await self.client.suggest(query.strip(), limit)).unwrap()
        items = data if isinstance(data, list) else []
        candidates = [c for c in (MatchCandidate.from_api(item) for item in items) if c is not None]
        self.cache.set_fuzzy_matches(key, candidates)
        return candidates

    async def related(self, taxon_key: int, limit: int = 10) -> list[TaxonDetail]:
        """Accepted species in the same genus, or failing that the same family."""
        detail = await self.details(taxon_key)
        if detail is None:
            return []

        for field, parent_key in (("genusKey", detail.genus_key), ("familyKey", detail.family_key)):
            if parent_key is None:
                continue
            result = await self.client.search_species(
                {field: parent_key, "limit": limit, "status": "ACCEPTED", "rank": "SPECIES"}
            )
            if result.error is not None:
                logger.warning("Related species lookup failed for %s: %s", taxon_key, result.error)
                continue
            related = [
                d
                for d in (TaxonDetail.from_api(item) for item in _results(result))
                if d is not None and d.key != taxon_key
            ]
            if related:
                return related
        return []

    @staticmethod
    def map_tile_url(taxon_key: int, style: str = "classic") -> str:
        return map_tile_url(taxon_key, style)
