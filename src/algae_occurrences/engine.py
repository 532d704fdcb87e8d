"""
Wiring of the occurrence engine.

``build_engine`` assembles one object graph per process::

    DataStore -> CacheStore ─┬─> TaxonResolver ──┐
    RetryTransport -> GBIFClient ─┤                  ├─> OccurrenceScheduler
    (FallbackTransport)       ├─> OccurrenceFetcher ┘
                              └─> SpeciesCatalog

Use it as an async context manager so the cache is flushed and the HTTP
clients are closed on the way out::

    async with build_engine() as engine:
        view = await engine.scheduler.run_once(["Ulva lactuca"])
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Self

from algae_occurrences.batch import OccurrenceScheduler
from algae_occurrences.cache import CacheStore
from algae_occurrences.config import Settings, get_settings
from algae_occurrences.datasources.gbif import (
    GBIFClient,
    OccurrenceFetcher,
    SpeciesCatalog,
    TaxonResolver,
)
from algae_occurrences.services.http import FallbackTransport, RetryTransport
from algae_occurrences.store import DataStore

if TYPE_CHECKING:
    from types import TracebackType

    import httpx


@dataclass
class Engine:
    """Everything needed to resolve names and fetch occurrences."""

    settings: Settings
    store: DataStore
    cache: CacheStore
    transport: RetryTransport
    client: GBIFClient
    resolver: TaxonResolver
    fetcher: OccurrenceFetcher
    catalog: SpeciesCatalog
    scheduler: OccurrenceScheduler

    async def aclose(self) -> None:
        """Tear down: stop the scheduler, flush the cache, close HTTP clients."""
        self.scheduler.close()
        self.cache.close()
        await self.transport.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def build_engine(
    settings: Settings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> Engine:
    """Build the engine from settings (defaults to ``get_settings()``)."""
    settings = settings or get_settings()

    store = DataStore(settings.data_dir)
    cache = CacheStore(store)

    fallback = (
        FallbackTransport(settings.gbif_fallback_base, timeout=settings.request_timeout)
        if settings.gbif_fallback_base
        else None
    )
    transport = RetryTransport(
        settings.gbif_api_base,
        client=http_client,
        timeout=settings.request_timeout,
        retries=settings.max_retries,
        backoff=settings.retry_backoff,
        fallback=fallback,
    )
    client = GBIFClient(transport)
    resolver = TaxonResolver(client, cache)
    fetcher = OccurrenceFetcher(client, cache)
    scheduler = OccurrenceScheduler(
        resolver,
        fetcher,
        concurrency=settings.concurrency,
        debounce=settings.debounce_seconds,
        batch_delay=settings.batch_delay,
        limit=settings.occurrence_limit,
        require_image=settings.require_image,
    )
    return Engine(
        settings=settings,
        store=store,
        cache=cache,
        transport=transport,
        client=client,
        resolver=resolver,
        fetcher=fetcher,
        catalog=SpeciesCatalog(client, cache),
        scheduler=scheduler,
    )
