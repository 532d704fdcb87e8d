"""Geo-tagged occurrence records for a resolved taxon."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from algae_occurrences.datasources.gbif.client import MAX_PAGE_SIZE
from algae_occurrences.schemas import STILL_IMAGE, OccurrenceRecord
from algae_occurrences.services.inflight import InflightRequests

if TYPE_CHECKING:
    from algae_occurrences.cache import CacheStore
    from algae_occurrences.datasources.gbif.client import GBIFClient

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50

# =============================================================================
# Parsing
# =============================================================================


def parse_occurrences(
    results: list[dict[str, Any]], *, require_image: bool = False
) -> list[OccurrenceRecord]:
    """Parse one page of results, dropping records without usable coordinates."""
    records: list[OccurrenceRecord] = []
    for raw in results:
        if not isinstance(raw, dict):
            continue
        record = OccurrenceRecord.from_api(raw, require_image=require_image)
        if record is not None:
            records.append(record)
    return records


def page_offsets(limit: int, page_size: int) -> list[int]:
    """Offsets of every page needed to cover ``limit`` records."""
    return list(range(0, limit, page_size))


def select_records(
    records: list[OccurrenceRecord], limit: int, *, require_image: bool = False
) -> list[OccurrenceRecord]:
    """At most ``limit`` records, only those with images when ``require_image``."""
    if require_image:
        records = [r for r in records if r.has_image]
    return records[:limit]


# =============================================================================
# Fetcher
# =============================================================================


class OccurrenceFetcher:
    """Fetches, filters and caches occurrence records per usage key."""

    def __init__(self, client: GBIFClient, cache: CacheStore) -> None:
        self.client = client
        self.cache = cache
        self._inflight: InflightRequests[tuple[int, int, bool, bool], list[OccurrenceRecord]] = (
            InflightRequests()
        )

    async def fetch(
        self,
        taxon_key: int,
        limit: int = DEFAULT_LIMIT,
        *,
        require_coordinate: bool = True,
        require_image: bool = False,
    ) -> list[OccurrenceRecord]:
        """
        Occurrence records for ``taxon_key``, at most ``limit`` of them.

        Served from cache when possible, re-applying ``limit`` and
        ``require_image`` to the cached list.  Otherwise every page needed is
        requested at once and the filtered, truncated list is cached.  An
        empty list means GBIF has no qualifying records, not an error.

        Raises:
            TransportError: a page could not be fetched after retries.
        """
        if limit < 1:
            return []
        cached = self.cache.get_occurrences(taxon_key)
        if cached is not None:
            return select_records(cached, limit, require_image=require_image)

        records = await self._inflight.run(
            (taxon_key, limit, require_coordinate, require_image),
            lambda: self._fetch_uncached(taxon_key, limit, require_coordinate, require_image),
        )
        return select_records(records, limit, require_image=require_image)

    async def _fetch_uncached(
        self, taxon_key: int, limit: int, require_coordinate: bool, require_image: bool
    ) -> list[OccurrenceRecord]:
        page_size = min(limit, MAX_PAGE_SIZE)
        offsets = page_offsets(limit, page_size)
        pages = await asyncio.gather(
            *(
                self._fetch_page(taxon_key, offset, page_size, require_coordinate, require_image)
                for offset in offsets
            )
        )

        records: list[OccurrenceRecord] = []
        for page in pages:
            records.extend(parse_occurrences(page, require_image=require_image))
        records = records[:limit]

        logger.debug("Fetched %d occurrences for taxon %s", len(records), taxon_key)
        self.cache.set_occurrences(taxon_key, records)
        return records

    async def _fetch_page(
        self,
        taxon_key: int,
        offset: int,
        page_size: int,
        require_coordinate: bool,
        require_image: bool,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "taxonKey": taxon_key,
            "offset": offset,
            "limit": page_size,
            "hasCoordinate": require_coordinate,
            "hasGeospatialIssue": False,
            "occurrenceStatus": "PRESENT",
        }
        if require_image:
            params["mediaType"] = STILL_IMAGE

        data = (await self.client.search_occurrences(params)).unwrap()
        results = data.get("results") if isinstance(data, dict) else None
        return results if isinstance(results, list) else []
