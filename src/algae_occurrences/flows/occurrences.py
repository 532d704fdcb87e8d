"""
Prefect flow: species names from the algae CSV -> GBIF occurrences on disk.

Run locally:
    python -m algae_occurrences.flows.occurrences data/algae.csv

Run with Prefect dashboard:
    prefect server start &
    python -m algae_occurrences.flows.occurrences data/algae.csv
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any

from prefect import flow, task

from algae_occurrences.config import Settings, get_settings
from algae_occurrences.datasources.dataset import read_species_names
from algae_occurrences.engine import build_engine
from algae_occurrences.schemas import OccurrenceView
from algae_occurrences.store import DataStore

OCCURRENCES_PATH = Path("live/occurrences.json")


@task(name="read-species-names")
def read_names(csv_path: Path, column: str) -> list[str]:
    """Distinct species names from the dataset."""
    return read_species_names(csv_path, column)


async def _run_batch(names: list[str], settings: Settings) -> OccurrenceView:
    async with build_engine(settings) as engine:
        return await engine.scheduler.run_once(names)


@task(name="fetch-occurrences-batch")
def fetch_batch(names: list[str], settings: Settings) -> OccurrenceView:
    """Resolve every name and fetch its occurrences in one batch run."""
    return asyncio.run(_run_batch(names, settings))


@task(name="save-occurrences")
def save_occurrences(view: OccurrenceView, store: DataStore) -> Path:
    """Save the published view via store."""
    return store.write(
        OCCURRENCES_PATH,
        view.model_dump(mode="json", by_alias=True),
        source="api.gbif.org",
        species_with_data=view.species_with_data,
        species_without_data=view.species_without_data,
    )


@flow(name="fetch-occurrences", log_prints=True)
def fetch_occurrences(csv_path: Path, settings: Settings | None = None) -> dict[str, Any]:
    """
    Fetch GBIF occurrences for every species in the dataset.

    Resolution and occurrence results are cached under ``data_dir`` so
    re-runs only hit GBIF for names it has not seen yet.
    """
    settings = settings or get_settings()
    store = DataStore(settings.data_dir)

    names = read_names(csv_path, settings.species_column)
    print(f"Found {len(names)} distinct species in {csv_path}")

    view = fetch_batch(names, settings)
    output_path = save_occurrences(view, store)
    print(
        f"Saved {len(view.occurrences)} occurrences "
        f"({view.species_with_data} species with data, "
        f"{view.species_without_data} without) to {output_path}"
    )
    for failure in view.failures:
        print(f"  - {failure.name}: {failure.reason}")

    return {
        "species": len(names),
        "species_with_data": view.species_with_data,
        "species_without_data": view.species_without_data,
        "occurrences": len(view.occurrences),
        "error": view.error,
    }


if __name__ == "__main__":
    result = fetch_occurrences(Path(sys.argv[1]))
    print(f"Flow complete: {result}")
