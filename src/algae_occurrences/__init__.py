"""Algae Occurrences - GBIF name resolution and occurrence caching for the algae dashboard.

Architecture::

    datasources/   Algae CSV names, GBIF client (taxonomy, occurrences, species)
    services/      Async retry/backoff transport, blocking fallback, request coalescing
    store.py       Durable JSON store (atomic writes, metadata envelope)
    cache.py       Write-through cache of GBIF lookups over the store
    batch.py       Debounced, cancellable, concurrency-limited batch runs
    engine.py      Wiring of the above from settings
    flows/         Prefect orchestration (CSV -> occurrences on disk)

Data flow: dataset names → scheduler → (resolver → fetcher) per name →
cache → published OccurrenceView
"""

__version__ = "0.1.0"

from algae_occurrences.config import Settings
from algae_occurrences.schemas import MatchCandidate, OccurrenceRecord, OccurrenceView

__all__ = ["MatchCandidate", "OccurrenceRecord", "OccurrenceView", "Settings", "__version__"]
