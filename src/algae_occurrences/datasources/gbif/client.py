"""
GBIF API client.

Thin async wrapper over the GBIF v1 endpoints used by the engine.  Every
method returns a ``TransportResult``; parsing and caching live in the
feature modules (taxonomy, occurrences, species).

API docs: https://techdocs.gbif.org/en/openapi/
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from algae_occurrences.services.http import RetryTransport, TransportResult

# ---------------------------------------------------------------------------
# API configuration
# ---------------------------------------------------------------------------
API_BASE = "https://api.gbif.org/v1"
MAP_TILE_BASE = "https://api.gbif.org/v2/map/occurrence/density"
MAX_PAGE_SIZE = 300  # API maximum for /occurrence/search
MAP_STYLES = ("classic", "purpleHeat", "greenHeat")


class GBIFClient:
    """One method per GBIF endpoint."""

    def __init__(self, transport: RetryTransport) -> None:
        self.transport = transport

    async def match_name(self, name: str, *, strict: bool = True) -> TransportResult:
        """GET /species/match: best backbone match for a free-text name."""
        return await self.transport.get(
            "species/match", {"name": name, "verbose": True, "strict": strict}
        )

    async def suggest(self, query: str, limit: int = 10) -> TransportResult:
        """GET /species/suggest: autocomplete candidates."""
        return await self.transport.get("species/suggest", {"q": query, "limit": limit})

    async def search_species(self, params: dict[str, Any]) -> TransportResult:
        """GET /species/search: full-text / filtered species search."""
        return await self.transport.get("species/search", params)

    async def species(self, key: int) -> TransportResult:
        """GET /species/{key}: one name usage."""
        return await self.transport.get(f"species/{key}")

    async def vernacular_names(self, key: int) -> TransportResult:
        """GET /species/{key}/vernacularNames"""
        return await self.transport.get(f"species/{key}/vernacularNames")

    async def descriptions(self, key: int) -> TransportResult:
        """GET /species/{key}/descriptions"""
        return await self.transport.get(f"species/{key}/descriptions")

    async def search_occurrences(self, params: dict[str, Any]) -> TransportResult:
        """GET /occurrence/search: one page of occurrence records."""
        return await self.transport.get("occurrence/search", params)


def map_tile_url(taxon_key: int, style: str = "classic") -> str:
    """Density tile URL template (``{z}/{x}/{y}``) for a taxon."""
    if style not in MAP_STYLES:
        msg = f"Unknown map style {style!r}; expected one of {', '.join(MAP_STYLES)}"
        raise ValueError(msg)
    return f"{MAP_TILE_BASE}/{{z}}/{{x}}/{{y}}@1x.png?taxonKey={taxon_key}&style={style}"
