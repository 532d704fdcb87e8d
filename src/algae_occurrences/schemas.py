"""
Domain models for the occurrence engine.

Pydantic models for data from the GBIF API and for the state published to
consumers.  Raw API payloads are turned into these through the ``from_api``
constructors, which drop malformed entries instead of passing them along.
"""

from __future__ import annotations

import math
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

STILL_IMAGE = "StillImage"
FUZZY_MATCH_TYPE = "FUZZY"

# =============================================================================
# Status enums
# =============================================================================


class NameStatus(StrEnum):
    """Per-name progress inside a batch run."""

    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


class RunState(StrEnum):
    """Lifecycle of the batch scheduler."""

    IDLE = "idle"
    DEBOUNCING = "debouncing"
    RUNNING = "running"
    COMPLETED = "completed"
    SUPERSEDED = "superseded"
    CLOSED = "closed"


class FailureReason(StrEnum):
    """Why a species name produced no map data."""

    NOT_FOUND = "Species not found in GBIF"
    NO_OCCURRENCES = "No occurrences found"
    FETCH_ERROR = "Error fetching data"


# =============================================================================
# Occurrences
# =============================================================================


def _is_coordinate(value: Any) -> bool:
    """True for real, finite numbers (bools and numeric strings are rejected)."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    return math.isfinite(value)


class MediaItem(BaseModel):
    """A media attachment on an occurrence record."""

    model_config = ConfigDict(frozen=True)

    type: str | None = None
    identifier: str
    title: str | None = None

    @property
    def is_still_image(self) -> bool:
        return self.type == STILL_IMAGE and bool(self.identifier.strip())


class OccurrenceRecord(BaseModel):
    """One geo-tagged observation, serialized with GBIF field names."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    key: str
    scientific_name: str = Field(alias="scientificName")
    latitude: float = Field(alias="decimalLatitude", ge=-90, le=90)
    longitude: float = Field(alias="decimalLongitude", ge=-180, le=180)
    event_date: str | None = Field(default=None, alias="eventDate")
    media: list[MediaItem] = Field(default_factory=list)

    @classmethod
    def from_api(cls, raw: dict[str, Any], *, require_image: bool = False) -> OccurrenceRecord | None:
        """
        Parse one ``occurrence/search`` result.

        Returns None when either coordinate is not a number, when the record
        is otherwise malformed, or when ``require_image`` is set and no
        still image with a URL survives media filtering.
        """
        lat = raw.get("decimalLatitude")
        lon = raw.get("decimalLongitude")
        if not (_is_coordinate(lat) and _is_coordinate(lon)):
            return None

        media: list[MediaItem] = []
        for item in raw.get("media") or []:
            if not isinstance(item, dict):
                continue
            identifier = item.get("identifier")
            if not isinstance(identifier, str):
                continue
            parsed = MediaItem(type=item.get("type"), identifier=identifier, title=item.get("title"))
            if parsed.is_still_image:
                media.append(parsed)

        if require_image and not media:
            return None

        try:
            return cls(
                key=str(raw.get("key", "")),
                scientific_name=raw.get("scientificName") or "Unknown",
                latitude=lat,
                longitude=lon,
                event_date=raw.get("eventDate"),
                media=media,
            )
        except ValidationError:
            return None

    @property
    def has_image(self) -> bool:
        return bool(self.media)


# =============================================================================
# Taxonomy
# =============================================================================


class MatchCandidate(BaseModel):
    """Best match returned by the GBIF name-match or suggest endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    usage_key: int = Field(alias="usageKey")
    scientific_name: str = Field(alias="scientificName")
    canonical_name: str | None = Field(default=None, alias="canonicalName")
    rank: str | None = None
    status: str | None = None
    confidence: int = 0
    match_type: str | None = Field(default=None, alias="matchType")
    kingdom: str | None = None
    phylum: str | None = None
    class_name: str | None = Field(default=None, alias="class")
    order: str | None = None
    family: str | None = None
    genus: str | None = None
    species: str | None = None
    synonym: bool = False
    accepted_usage_key: int | None = Field(default=None, alias="acceptedUsageKey")

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> MatchCandidate | None:
        """Parse a match/suggest payload. None for ``matchType: NONE`` or bad data."""
        if not isinstance(raw, dict) or raw.get("matchType") == "NONE":
            return None
        data = dict(raw)
        # suggest/search results carry ``key`` instead of ``usageKey``
        if data.get("usageKey") is None and data.get("key") is not None:
            data["usageKey"] = data["key"]
        if data.get("usageKey") is None:
            return None
        data.setdefault("scientificName", data.get("canonicalName") or "")
        try:
            return cls.model_validate(data)
        except ValidationError:
            return None

    def capped(self, limit: int) -> MatchCandidate:
        """Copy marked as a non-exact match with confidence at most ``limit``."""
        return self.model_copy(
            update={"confidence": min(self.confidence, limit), "match_type": FUZZY_MATCH_TYPE}
        )

    @property
    def is_exact(self) -> bool:
        return self.match_type == "EXACT"


class VernacularName(BaseModel):
    """A common name in some language."""

    model_config = ConfigDict(populate_by_name=True)

    vernacular_name: str = Field(alias="vernacularName")
    language: str | None = None


class TaxonDescription(BaseModel):
    """A free-text description attached to a taxon."""

    description: str
    language: str | None = None
    type: str | None = None


class TaxonDetail(BaseModel):
    """Full species record with optional enrichment."""

    model_config = ConfigDict(populate_by_name=True)

    key: int
    scientific_name: str = Field(alias="scientificName")
    canonical_name: str | None = Field(default=None, alias="canonicalName")
    rank: str | None = None
    taxonomic_status: str | None = Field(default=None, alias="taxonomicStatus")
    kingdom: str | None = None
    phylum: str | None = None
    class_name: str | None = Field(default=None, alias="class")
    order: str | None = None
    family: str | None = None
    genus: str | None = None
    species: str | None = None
    genus_key: int | None = Field(default=None, alias="genusKey")
    family_key: int | None = Field(default=None, alias="familyKey")
    vernacular_names: list[VernacularName] = Field(default_factory=list, alias="vernacularNames")
    descriptions: list[TaxonDescription] = Field(default_factory=list)
    synonyms: list[str] = Field(default_factory=list)

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> TaxonDetail | None:
        if not isinstance(raw, dict) or raw.get("key") is None:
            return None
        data = dict(raw)
        data.setdefault("scientificName", data.get("canonicalName") or "")
        try:
            return cls.model_validate(data)
        except ValidationError:
            return None

    def preferred_vernacular_name(self, language: str = "eng") -> str | None:
        """First common name in ``language``, else the first one at all."""
        for name in self.vernacular_names:
            if name.language == language:
                return name.vernacular_name
        return self.vernacular_names[0].vernacular_name if self.vernacular_names else None


# =============================================================================
# Published state
# =============================================================================


class SpeciesFailure(BaseModel):
    """A species name that produced no map data, and why."""

    model_config = ConfigDict(frozen=True)

    name: str
    reason: str


class OccurrenceView(BaseModel):
    """Read-only snapshot handed to consumers. Replaced whole on every publish."""

    model_config = ConfigDict(frozen=True)

    occurrences: list[OccurrenceRecord] = Field(default_factory=list)
    is_loading: bool = False
    error: str | None = None
    successful_names: list[str] = Field(default_factory=list)
    failures: list[SpeciesFailure] = Field(default_factory=list)
    run_id: int | None = None

    @property
    def species_with_data(self) -> int:
        return len(self.successful_names)

    @property
    def species_without_data(self) -> int:
        return len(self.failures)


# =============================================================================
# Persisted cache
# =============================================================================


class CacheSnapshot(BaseModel):
    """Everything the durable cache holds, serialized as one blob."""

    version: int = 1
    taxon_keys: dict[str, int | None] = Field(default_factory=dict)
    occurrences: dict[int, list[OccurrenceRecord]] = Field(default_factory=dict)
    taxon_details: dict[int, TaxonDetail] = Field(default_factory=dict)
    fuzzy_matches: dict[str, list[MatchCandidate]] = Field(default_factory=dict)
