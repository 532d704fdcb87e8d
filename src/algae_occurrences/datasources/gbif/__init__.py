"""GBIF taxonomy and occurrence data source.

Resolves algae species names to GBIF backbone keys and fetches geo-tagged
occurrence records for them, caching everything in a ``CacheStore``.

Public API:
  - client: GBIFClient, API constants, map_tile_url
  - taxonomy: TaxonResolver, COMMON_TAXA, TAXONOMIC_SYNONYMS, name helpers
  - occurrences: OccurrenceFetcher
  - species: SpeciesCatalog (details, suggest, related)
"""

from algae_occurrences.datasources.gbif.client import (
    API_BASE,
    MAX_PAGE_SIZE,
    GBIFClient,
    map_tile_url,
)
from algae_occurrences.datasources.gbif.occurrences import OccurrenceFetcher
from algae_occurrences.datasources.gbif.species import SpeciesCatalog
from algae_occurrences.datasources.gbif.taxonomy import (
    COMMON_TAXA,
    FUZZY_CONFIDENCE_CAP,
    TAXONOMIC_SYNONYMS,
    TaxonResolver,
    normalize_name,
    resolve_synonym,
    simplify_name,
)

__all__ = [
    "API_BASE",
    "COMMON_TAXA",
    "FUZZY_CONFIDENCE_CAP",
    "MAX_PAGE_SIZE",
    "TAXONOMIC_SYNONYMS",
    "GBIFClient",
    "OccurrenceFetcher",
    "SpeciesCatalog",
    "TaxonResolver",
    "map_tile_url",
    "normalize_name",
    "resolve_synonym",
    "simplify_name",
]
