"""
Shared fixtures: an in-process fake of the GBIF API.

``FakeGBIF`` answers the endpoints the engine uses from plain dicts and
records every request, so tests can assert on exactly which calls went out.
It plugs into ``httpx.AsyncClient`` through ``httpx.MockTransport``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from algae_occurrences.cache import CacheStore
from algae_occurrences.config import Settings
from algae_occurrences.datasources.gbif import (
    API_BASE,
    GBIFClient,
    OccurrenceFetcher,
    SpeciesCatalog,
    TaxonResolver,
)
from algae_occurrences.engine import Engine, build_engine
from algae_occurrences.services.http import RetryTransport
from algae_occurrences.store import DataStore

if TYPE_CHECKING:
    from pathlib import Path


def occurrence(key: int, lat: Any = 50.1, lon: Any = -4.2, **extra: Any) -> dict[str, Any]:
    """One raw ``occurrence/search`` result."""
    record: dict[str, Any] = {
        "key": key,
        "scientificName": extra.pop("scientificName", "Ulva lactuca Linnaeus, 1753"),
        "decimalLatitude": lat,
        "decimalLongitude": lon,
        "eventDate": extra.pop("eventDate", "2023-06-01"),
    }
    record.update(extra)
    return record


def match(usage_key: int, name: str, confidence: int = 98, match_type: str = "EXACT") -> dict:
    """A ``species/match`` hit."""
    return {
        "usageKey": usage_key,
        "scientificName": name,
        "canonicalName": name,
        "rank": "SPECIES",
        "status": "ACCEPTED",
        "confidence": confidence,
        "matchType": match_type,
        "kingdom": "Plantae",
        "phylum": "Chlorophyta",
        "synonym": False,
    }


class FakeGBIF:
    """Routes requests to canned GBIF responses and records them."""

    def __init__(self) -> None:
        self.matches: dict[str, dict[str, Any]] = {}
        self.fuzzy_matches: dict[str, dict[str, Any]] = {}
        self.occurrences: dict[int, list[dict[str, Any]]] = {}
        self.species: dict[int, dict[str, Any]] = {}
        self.vernacular_names: dict[int, list[dict[str, Any]]] = {}
        self.descriptions: dict[int, list[dict[str, Any]]] = {}
        self.suggestions: dict[str, list[dict[str, Any]]] = {}
        self.searches: dict[tuple[str, int], list[dict[str, Any]]] = {}
        self.unreachable: set[str] = set()
        self.calls: list[httpx.Request] = []

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.calls if r.url.path == f"/v1/{path}"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path.removeprefix("/v1/")
        params = request.url.params

        if any(path.startswith(prefix) for prefix in self.unreachable):
            raise httpx.ConnectError("connection refused", request=request)

        if path == "species/match":
            name = params["name"]
            table = self.matches if params.get("strict") == "true" else self.fuzzy_matches
            payload = table.get(name) or self.matches.get(name)
            return httpx.Response(200, json=payload or {"matchType": "NONE", "confidence": 100})

        if path == "occurrence/search":
            records = self.occurrences.get(int(params["taxonKey"]), [])
            offset = int(params["offset"])
            limit = int(params["limit"])
            page = records[offset : offset + limit]
            return httpx.Response(
                200,
                json={
                    "offset": offset,
                    "limit": limit,
                    "endOfRecords": offset + limit >= len(records),
                    "count": len(records),
                    "results": page,
                },
            )

        if path == "species/suggest":
            return httpx.Response(200, json=self.suggestions.get(params["q"], []))

        if path == "species/search":
            for field in ("genusKey", "familyKey"):
                if field in params:
                    results = self.searches.get((field, int(params[field])), [])
                    return httpx.Response(200, json={"results": results})
            return httpx.Response(200, json={"results": []})

        parts = path.split("/")
        if parts[0] == "species" and len(parts) >= 2:
            key = int(parts[1])
            if len(parts) == 2:
                if key not in self.species:
                    return httpx.Response(404, json={})
                return httpx.Response(200, json=self.species[key])
            if parts[2] == "vernacularNames":
                return httpx.Response(200, json={"results": self.vernacular_names.get(key, [])})
            if parts[2] == "descriptions":
                return httpx.Response(200, json={"results": self.descriptions.get(key, [])})

        return httpx.Response(404, json={})


@pytest.fixture
def gbif() -> FakeGBIF:
    return FakeGBIF()


@pytest.fixture
def transport(gbif: FakeGBIF) -> RetryTransport:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(gbif.handler))
    return RetryTransport(API_BASE, client=http_client, retries=1, backoff=0)


@pytest.fixture
def client(transport: RetryTransport) -> GBIFClient:
    return GBIFClient(transport)


@pytest.fixture
def store(tmp_path: Path) -> DataStore:
    return DataStore(tmp_path)


@pytest.fixture
def cache(store: DataStore) -> CacheStore:
    return CacheStore(store)


@pytest.fixture
def resolver(client: GBIFClient, cache: CacheStore) -> TaxonResolver:
    return TaxonResolver(client, cache)


@pytest.fixture
def fetcher(client: GBIFClient, cache: CacheStore) -> OccurrenceFetcher:
    return OccurrenceFetcher(client, cache)


@pytest.fixture
def catalog(client: GBIFClient, cache: CacheStore) -> SpeciesCatalog:
    return SpeciesCatalog(client, cache)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a temp data dir, with no fallback and no waiting."""
    return Settings(
        data_dir=tmp_path / "data",
        gbif_fallback_base=None,
        max_retries=0,
        retry_backoff=0,
        debounce_seconds=0,
    )


@pytest.fixture
def engine_factory(gbif: FakeGBIF, settings: Settings) -> Callable[..., Engine]:
    """Drop-in for ``build_engine`` whose HTTP calls go to ``gbif``."""

    def factory(engine_settings: Settings | None = None, **_kwargs: Any) -> Engine:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(gbif.handler))
        return build_engine(engine_settings or settings, http_client=http_client)

    return factory
