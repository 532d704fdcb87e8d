"""Species names from the algae dataset.

The dashboard's CSV carries one row per product/producer, so the same
species shows up many times and sometimes with stray whitespace.  Only the
distinct, non-empty names matter to the occurrence engine.  Going the other
way, ``find_matching_row`` ties a GBIF scientific name (with authorship and
rank markers) back to the dataset row it came from.
"""

from __future__ import annotations

import csv
import re
from collections.abc import Iterable
from pathlib import Path  # noqa: TC003 - needed at runtime

DEFAULT_COLUMN = "Algae species"

#: Lowest score at which a GBIF name is tied back to a dataset row.
MIN_MATCH_SCORE = 50

_AUTHORITY = re.compile(r"\([^)]*\)")
_AFTER_COMMA = re.compile(r",.*$")
_RANK_MARKER = re.compile(r"\b(var|f|subsp|ssp|subspecies|forma|variety)\b\s*\.")
_WHITESPACE = re.compile(r"\s+")


def distinct_names(names: Iterable[str | None]) -> list[str]:
    """Trimmed, non-empty names in first-seen order, without duplicates."""
    seen: dict[str, None] = {}
    for name in names:
        if not name:
            continue
        cleaned = name.strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


def read_species_names(csv_path: Path, column: str = DEFAULT_COLUMN) -> list[str]:
    """
    Distinct species names from ``column`` of a CSV file.

    Raises:
        KeyError: the column is not in the header.
    """
    with csv_path.open(newline="", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None or column not in reader.fieldnames:
            msg = f"Column {column!r} not found in {csv_path}"
            raise KeyError(msg)
        return distinct_names(row.get(column) for row in reader)


def read_rows(csv_path: Path) -> list[dict[str, str]]:
    """Every row of the dataset CSV, keyed by header."""
    with csv_path.open(newline="", encoding="utf-8-sig") as f:
        return list(csv.DictReader(f))


# =============================================================================
# GBIF name -> dataset row
# =============================================================================


def canonical_name(name: str) -> str:
    """
    Lower-cased name without authorship, years or rank markers.

    ``"Fucus vesiculosus var. linearis (Huds.), 1813"`` -> ``"fucus vesiculosus linearis"``.
    """
    name = _AUTHORITY.sub("", name.lower().strip())
    name = _AFTER_COMMA.sub("", name)
    name = _RANK_MARKER.sub("", name)
    return _WHITESPACE.sub(" ", name).strip()


def genus_and_epithet(name: str) -> tuple[str, str | None]:
    parts = name.split(" ")
    return parts[0], parts[1] if len(parts) > 1 else None


def name_match_score(gbif_name: str, dataset_name: str) -> int:
    """
    How well a GBIF scientific name matches a dataset name, 0-100.

    100 identical, 90 same genus and epithet, 80 the GBIF name extends the
    dataset name (an infraspecific taxon), 70 the dataset name extends the
    GBIF name, 50 same genus only.
    """
    gbif = canonical_name(gbif_name)
    dataset = canonical_name(dataset_name)
    if not gbif or not dataset:
        return 0
    if gbif == dataset:
        return 100
    if genus_and_epithet(gbif) == genus_and_epithet(dataset):
        return 90
    if gbif.startswith(dataset + " "):
        return 80
    if dataset.startswith(gbif + " "):
        return 70
    if genus_and_epithet(gbif)[0] == genus_and_epithet(dataset)[0]:
        return 50
    return 0


def find_matching_row(
    gbif_name: str, rows: Iterable[dict[str, str]], column: str = DEFAULT_COLUMN
) -> dict[str, str] | None:
    """Dataset row whose species best matches ``gbif_name``; first row wins ties."""
    best: dict[str, str] | None = None
    best_score = 0
    for row in rows:
        score = name_match_score(gbif_name, row.get(column) or "")
        if score > best_score:
            best, best_score = row, score
            if score == 100:
                break
    return best if best_score >= MIN_MATCH_SCORE else None
