"""
Batch scheduling of name resolution + occurrence fetching.

The dashboard hands over the distinct species names of whatever rows are
visible, every time the filters change.  ``OccurrenceScheduler`` turns that
stream of name sets into ``BatchRun``s:

    IDLE/COMPLETED --update()--> DEBOUNCING --timer--> RUNNING --> COMPLETED
                                      ^                   |
                                      +----update()-------+  (run SUPERSEDED)

- Debounce is trailing-edge: every change restarts the timer.
- A run processes names in groups of ``concurrency``; a group must settle
  before the next one starts.
- A change while running cancels the run's task (which cancels its HTTP
  requests) and its aggregate is never published.  Cache writes that already
  happened are kept.
- Results are published once per run, as one ``OccurrenceView``.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from algae_occurrences.datasources.dataset import distinct_names
from algae_occurrences.datasources.gbif.occurrences import DEFAULT_LIMIT
from algae_occurrences.schemas import (
    FailureReason,
    NameStatus,
    OccurrenceRecord,
    OccurrenceView,
    RunState,
    SpeciesFailure,
)
from algae_occurrences.services.http import TransportError

if TYPE_CHECKING:
    from algae_occurrences.datasources.gbif.occurrences import OccurrenceFetcher
    from algae_occurrences.datasources.gbif.taxonomy import TaxonResolver

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3
DEFAULT_DEBOUNCE = 1.0  # seconds
SYSTEMIC_ERROR = "Failed to load map data"

Subscriber = Callable[[OccurrenceView], None]


class BatchRun:
    """One pass of resolve + fetch over a snapshot of species names."""

    def __init__(
        self,
        run_id: int,
        names: list[str],
        resolver: TaxonResolver,
        fetcher: OccurrenceFetcher,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        batch_delay: float = 0.0,
        limit: int = DEFAULT_LIMIT,
        require_image: bool = False,
    ) -> None:
        if concurrency < 1:
            msg = f"concurrency must be at least 1, got {concurrency}"
            raise ValueError(msg)
        self.run_id = run_id
        self.names = names
        self.resolver = resolver
        self.fetcher = fetcher
        self.concurrency = concurrency
        self.batch_delay = batch_delay
        self.limit = limit
        self.require_image = require_image

        self.status: dict[str, NameStatus] = dict.fromkeys(names, NameStatus.PENDING)
        self.occurrences: list[OccurrenceRecord] = []
        self._record_keys: set[str] = set()
        self.successful_names: list[str] = []
        self.failures: list[SpeciesFailure] = []
        self.transport_failures = 0
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def groups(self) -> list[list[str]]:
        return [
            self.names[i : i + self.concurrency] for i in range(0, len(self.names), self.concurrency)
        ]

    @property
    def systemic_failure(self) -> bool:
        """Every name failed to reach GBIF: an outage, not a data problem."""
        return bool(self.names) and self.transport_failures == len(self.names)

    async def execute(self) -> None:
        groups = self.groups
        for index, group in enumerate(groups):
            if self.cancelled:
                return
            logger.debug("Run %d: group %d/%d %s", self.run_id, index + 1, len(groups), group)
            await asyncio.gather(*(self._process(name) for name in group))
            if self.batch_delay and index + 1 < len(groups):
                await asyncio.sleep(self.batch_delay)

    async def _process(self, name: str) -> None:
        try:
            taxon_key = await self.resolver.resolve(name)
            if taxon_key is None:
                self._fail(name, FailureReason.NOT_FOUND)
                return
            records = await self.fetcher.fetch(
                taxon_key, self.limit, require_image=self.require_image
            )
        except TransportError as e:
            logger.warning("Error fetching data for %r: %s", name, e)
            self.transport_failures += 1
            self._fail(name, FailureReason.FETCH_ERROR)
            return
        except Exception:
            logger.exception("Unexpected error processing %r", name)
            self._fail(name, FailureReason.FETCH_ERROR)
            return

        if not records:
            self._fail(name, FailureReason.NO_OCCURRENCES)
            return
        self._add_records(records)
        self.successful_names.append(name)
        self.status[name] = NameStatus.RESOLVED

    def _add_records(self, records: list[OccurrenceRecord]) -> None:
        # Names sharing a usage key (synonyms, author variants) return the same records.
        for record in records:
            if record.key and record.key in self._record_keys:
                continue
            self._record_keys.add(record.key)
            self.occurrences.append(record)

    def _fail(self, name: str, reason: FailureReason) -> None:
        self.status[name] = NameStatus.FAILED
        self.failures.append(SpeciesFailure(name=name, reason=reason.value))

    def to_view(self) -> OccurrenceView:
        return OccurrenceView(
            occurrences=list(self.occurrences),
            is_loading=False,
            error=SYSTEMIC_ERROR if self.systemic_failure else None,
            successful_names=list(self.successful_names),
            failures=list(self.failures),
            run_id=self.run_id,
        )


class OccurrenceScheduler:
    """Debounced, cancellable driver of ``BatchRun``s. Must be used inside an event loop."""

    def __init__(
        self,
        resolver: TaxonResolver,
        fetcher: OccurrenceFetcher,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        debounce: float = DEFAULT_DEBOUNCE,
        batch_delay: float = 0.0,
        limit: int = DEFAULT_LIMIT,
        require_image: bool = False,
    ) -> None:
        self.resolver = resolver
        self.fetcher = fetcher
        self.concurrency = concurrency
        self.debounce = debounce
        self.batch_delay = batch_delay
        self.limit = limit
        self.require_image = require_image

        self.state = RunState.IDLE
        self.view = OccurrenceView()
        self._names: tuple[str, ...] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._run: BatchRun | None = None
        self._task: asyncio.Task[None] | None = None
        self._run_ids = itertools.count(1)
        self._subscribers: list[Subscriber] = []
        self._idle = asyncio.Event()
        self._idle.set()

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Call ``callback`` with every published view. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def current_run(self) -> BatchRun | None:
        return self._run

    async def wait(self) -> OccurrenceView:
        """Wait until nothing is debouncing or running, then return the view."""
        await self._idle.wait()
        return self.view

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def update(self, names: Iterable[str | None]) -> bool:
        """
        Feed the current dataset's species names.

        Returns False (and does nothing) when the distinct name set is
        unchanged.  Otherwise supersedes any pending or running batch and
        restarts the debounce timer.
        """
        self._check_open()
        snapshot = tuple(distinct_names(names))
        if self._names is not None and frozenset(snapshot) == frozenset(self._names):
            return False

        self._names = snapshot
        self._supersede()
        self.state = RunState.DEBOUNCING
        self._idle.clear()
        self._publish(self.view.model_copy(update={"is_loading": True, "error": None}))
        self._timer = asyncio.get_running_loop().call_later(self.debounce, self._start)
        return True

    async def run_once(self, names: Iterable[str | None]) -> OccurrenceView:
        """Run one batch over ``names`` right away (no debounce) and return its view."""
        self._check_open()
        self._names = tuple(distinct_names(names))
        self._supersede()
        self._idle.clear()
        self._start()
        return await self.wait()

    def close(self) -> None:
        """Cancel timers and in-flight work; nothing is published afterwards."""
        if self.state == RunState.CLOSED:
            return
        self._supersede()
        self.state = RunState.CLOSED
        self._subscribers.clear()
        self._idle.set()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_open(self) -> None:
        if self.state == RunState.CLOSED:
            msg = "OccurrenceScheduler is closed"
            raise RuntimeError(msg)

    def _supersede(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._run is not None:
            logger.info("Superseding run %d", self._run.run_id)
            self._run.cancel()
            self.state = RunState.SUPERSEDED
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._run = None
        self._task = None

    def _start(self) -> None:
        self._timer = None
        names = list(self._names or ())
        if not names:
            self.state = RunState.COMPLETED
            self._publish(OccurrenceView())
            self._idle.set()
            return

        run = BatchRun(
            next(self._run_ids),
            names,
            self.resolver,
            self.fetcher,
            concurrency=self.concurrency,
            batch_delay=self.batch_delay,
            limit=self.limit,
            require_image=self.require_image,
        )
        logger.info("Starting run %d over %d species", run.run_id, len(names))
        self._run = run
        self.state = RunState.RUNNING
        self._task = asyncio.get_running_loop().create_task(self._execute(run))

    async def _execute(self, run: BatchRun) -> None:
        try:
            await run.execute()
            view = run.to_view()
        except Exception:
            logger.exception("Run %d failed", run.run_id)
            view = OccurrenceView(error=SYSTEMIC_ERROR, run_id=run.run_id)

        # Stale runs never publish; their cache writes are kept.
        if run is not self._run or run.cancelled:
            return

        logger.info(
            "Run %d complete: %d species with data, %d without, %d occurrences",
            run.run_id,
            view.species_with_data,
            view.species_without_data,
            len(view.occurrences),
        )
        self._run = None
        self._task = None
        self.state = RunState.COMPLETED
        self._publish(view)
        self._idle.set()

    def _publish(self, view: OccurrenceView) -> None:
        if self.state == RunState.CLOSED:
            return
        self.view = view
        for callback in list(self._subscribers):
            try:
                callback(view)
            except Exception:
                logger.exception("Occurrence subscriber %r failed", callback)
