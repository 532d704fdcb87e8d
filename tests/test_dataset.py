"""Tests for reading species names from the algae CSV."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from algae_occurrences.datasources.dataset import (
    canonical_name,
    distinct_names,
    find_matching_row,
    genus_and_epithet,
    name_match_score,
    read_rows,
    read_species_names,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestDistinctNames:
    """Name clean-up."""

    def test_trims_and_deduplicates_in_order(self) -> None:
        names = ["Ulva lactuca", " Fucus vesiculosus", "Ulva lactuca ", "", None, "   "]
        assert distinct_names(names) == ["Ulva lactuca", "Fucus vesiculosus"]


class TestReadSpeciesNames:
    """CSV parsing."""

    def test_reads_column(self, tmp_path: Path) -> None:
        csv_path = tmp_path / "algae.csv"
        csv_path.write_text(
            "\ufeffProduct,Algae species,Country\n"
            "Kelp flakes,Saccharina latissima,NO\n"
            "Dulse,Palmaria palmata,IE\n"
            "Kombu,Saccharina latissima ,NO\n"
            "Mystery,,FR\n",
            encoding="utf-8",
        )
        assert read_species_names(csv_path) == ["Saccharina latissima", "Palmaria palmata"]

    def test_custom_column(self, tmp_path: Path) -> None:
        csv_path = tmp_path / "algae.csv"
        csv_path.write_text("species\nUlva lactuca\n", encoding="utf-8")
        assert read_species_names(csv_path, "species") == ["Ulva lactuca"]

    def test_missing_column(self, tmp_path: Path) -> None:
        csv_path = tmp_path / "algae.csv"
        csv_path.write_text("Product\nDulse\n", encoding="utf-8")
        with pytest.raises(KeyError, match="Algae species"):
            read_species_names(csv_path)


class TestCanonicalName:
    """Name normalisation for matching GBIF names to dataset rows."""

    def test_strips_authorship_and_rank_markers(self) -> None:
        assert canonical_name("Fucus vesiculosus var. linearis (Huds.), 1813") == (
            "fucus vesiculosus linearis"
        )
        assert canonical_name("Ulva lactuca Linnaeus, 1753") == "ulva lactuca linnaeus"
        assert canonical_name("Porphyra umbilicalis f. laciniata") == (
            "porphyra umbilicalis laciniata"
        )
        assert canonical_name("  Palmaria   palmata  ") == "palmaria palmata"

    def test_genus_and_epithet(self) -> None:
        assert genus_and_epithet("ulva lactuca") == ("ulva", "lactuca")
        assert genus_and_epithet("ulva") == ("ulva", None)


class TestNameMatchScore:
    """Scores from identical down to genus-only."""

    def test_scores(self) -> None:
        assert name_match_score("Ulva lactuca", "ulva lactuca ") == 100
        assert name_match_score("Ulva lactuca Linnaeus, 1753", "Ulva lactuca") == 90
        assert name_match_score("Fucus vesiculosus", "Fucus") == 80
        assert name_match_score("Fucus", "Fucus vesiculosus") == 70
        assert name_match_score("Ulva rigida", "Ulva lactuca") == 50
        assert name_match_score("Ulvaria obscura", "Ulva lactuca") == 0
        assert name_match_score("Ulva lactuca", "") == 0


class TestFindMatchingRow:
    """GBIF scientific name -> dataset row."""

    ROWS = [
        {"Product": "Sea lettuce flakes", "Algae species": "Ulva rigida"},
        {"Product": "Nori", "Algae species": "Porphyra umbilicalis"},
        {"Product": "Sea lettuce", "Algae species": "Ulva lactuca"},
    ]

    def test_best_match_wins(self) -> None:
        row = find_matching_row("Ulva lactuca Linnaeus, 1753", self.ROWS)
        assert row is not None
        assert row["Product"] == "Sea lettuce"

    def test_genus_only_match(self) -> None:
        row = find_matching_row("Porphyra dioica J.Brodie & L.M.Irvine", self.ROWS)
        assert row is not None
        assert row["Product"] == "Nori"

    def test_first_row_wins_ties(self) -> None:
        row = find_matching_row("Ulva compressa", self.ROWS)
        assert row is not None
        assert row["Product"] == "Sea lettuce flakes"

    def test_no_match(self) -> None:
        assert find_matching_row("Fucus vesiculosus", self.ROWS) is None

    def test_custom_column(self) -> None:
        rows = [{"species": "Fucus vesiculosus"}]
        assert find_matching_row("Fucus vesiculosus L.", rows, "species") == rows[0]

    def test_rows_from_csv(self, tmp_path: Path) -> None:
        csv_path = tmp_path / "algae.csv"
        csv_path.write_text(
            "Product,Algae species\nKombu,Saccharina latissima\nDulse,Palmaria palmata\n",
            encoding="utf-8",
        )
        gbif_name = "Palmaria palmata (Linnaeus) F.Weber & D.Mohr"
        row = find_matching_row(gbif_name, read_rows(csv_path))
        assert row == {"Product": "Dulse", "Algae species": "Palmaria palmata"}
