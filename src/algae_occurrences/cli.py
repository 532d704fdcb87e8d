"""
Command-line interface for the application.

This module provides the main entry point for the CLI.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from algae_occurrences import __version__
from algae_occurrences.cache import CacheStore
from algae_occurrences.config import get_settings
from algae_occurrences.datasources.dataset import read_species_names
from algae_occurrences.engine import build_engine
from algae_occurrences.services.http import TransportError
from algae_occurrences.store import DataStore


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="algae-occurrences",
        description="Resolve algae species names against GBIF and fetch their occurrences",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("info", help="Show application info")

    resolve_parser = subparsers.add_parser("resolve", help="Resolve species names to GBIF keys")
    resolve_parser.add_argument("names", nargs="+", help="Species names")

    occ_parser = subparsers.add_parser("occurrences", help="Fetch occurrences for species")
    occ_parser.add_argument("names", nargs="*", help="Species names (or use --csv)")
    occ_parser.add_argument("--csv", type=Path, default=None, help="Read names from a CSV")
    occ_parser.add_argument("--limit", type=int, default=None, help="Records per species")
    occ_parser.add_argument("--images", action="store_true", help="Only records with images")
    occ_parser.add_argument("--output", type=Path, default=None, help="Write the view as JSON")

    details_parser = subparsers.add_parser("details", help="Show species details for a GBIF key")
    details_parser.add_argument("key", type=int, help="GBIF usage key")

    suggest_parser = subparsers.add_parser("suggest", help="Suggest species for a query")
    suggest_parser.add_argument("query", help="Partial name (3+ characters)")
    suggest_parser.add_argument("--limit", type=int, default=10, help="Max suggestions")

    cache_parser = subparsers.add_parser("cache", help="Inspect or clear the GBIF cache")
    cache_parser.add_argument("action", choices=["info", "clear"], help="Cache action")

    return parser


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def cmd_info(_args: argparse.Namespace) -> int:
    """Handle the 'info' command."""
    settings = get_settings()
    print(f"Application: {settings.app_name}")
    print(f"Version: {__version__}")
    print(f"Environment: {settings.app_env}")
    print(f"Data dir: {settings.data_dir}")
    print(f"GBIF API: {settings.gbif_api_base}")
    print(f"Concurrency: {settings.concurrency}")
    return 0


async def _resolve(names: list[str]) -> int:
    async with build_engine(get_settings()) as engine:
        matches = await engine.resolver.bulk_match(names)
    exit_code = 0
    for name, match in matches.items():
        if match is None:
            print(f"{name}: not found")
            exit_code = 1
        else:
            print(
                f"{name}: {match.usage_key} ({match.scientific_name}, "
                f"confidence {match.confidence}, {match.match_type or 'unknown'})"
            )
    return exit_code


def cmd_resolve(args: argparse.Namespace) -> int:
    """Handle the 'resolve' command."""
    return asyncio.run(_resolve(args.names))


async def _occurrences(names: list[str], args: argparse.Namespace) -> int:
    settings = get_settings()
    overrides: dict[str, object] = {}
    if args.limit is not None:
        overrides["occurrence_limit"] = args.limit
    if args.images:
        overrides["require_image"] = True
    if overrides:
        settings = settings.model_copy(update=overrides)

    async with build_engine(settings) as engine:
        view = await engine.scheduler.run_once(names)

    print(f"Species with data: {view.species_with_data}")
    print(f"Species without data: {view.species_without_data}")
    print(f"Occurrences: {len(view.occurrences)}")
    for failure in view.failures:
        print(f"  - {failure.name}: {failure.reason}")

    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(json.dumps(view.model_dump(mode="json", by_alias=True), indent=2))
        print(f"Wrote {args.output}")

    if view.error:
        print(f"Error: {view.error}", file=sys.stderr)
        return 1
    return 0


def cmd_occurrences(args: argparse.Namespace) -> int:
    """Handle the 'occurrences' command."""
    names = list(args.names)
    if args.csv is not None:
        try:
            names.extend(read_species_names(args.csv, get_settings().species_column))
        except (OSError, KeyError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
    if not names:
        print("No species names given. Pass names or --csv.", file=sys.stderr)
        return 1
    return asyncio.run(_occurrences(names, args))


async def _details(key: int) -> int:
    async with build_engine(get_settings()) as engine:
        detail = await engine.catalog.details(key)
        if detail is None:
            print(f"No GBIF species with key {key}", file=sys.stderr)
            return 1
        print(f"{detail.scientific_name} [{detail.rank or '?'}]")
        hierarchy = [detail.kingdom, detail.phylum, detail.class_name, detail.order, detail.family]
        print(" > ".join(level for level in hierarchy if level))
        common = detail.preferred_vernacular_name()
        if common:
            print(f"Common name: {common}")
        print(f"Map tiles: {engine.catalog.map_tile_url(key)}")
    return 0


def cmd_details(args: argparse.Namespace) -> int:
    """Handle the 'details' command."""
    try:
        return asyncio.run(_details(args.key))
    except TransportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


async def _suggest(query: str, limit: int) -> int:
    async with build_engine(get_settings()) as engine:
        candidates = await engine.catalog.suggest(query, limit)
    if not candidates:
        print("No suggestions.")
        return 1
    for candidate in candidates:
        print(f"{candidate.usage_key}\t{candidate.scientific_name}\t{candidate.rank or ''}")
    return 0


def cmd_suggest(args: argparse.Namespace) -> int:
    """Handle the 'suggest' command."""
    try:
        return asyncio.run(_suggest(args.query, args.limit))
    except TransportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_cache(args: argparse.Namespace) -> int:
    """Handle the 'cache' command."""
    # Cache access needs no network, so skip the engine.
    cache = CacheStore(DataStore(get_settings().data_dir))
    if args.action == "clear":
        cache.clear()
        print("GBIF cache cleared.")
        return 0

    for name, count in cache.stats().items():
        print(f"{name}: {count}")
    return 0


def main() -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging(args.debug or get_settings().debug)

    commands = {
        "info": cmd_info,
        "resolve": cmd_resolve,
        "occurrences": cmd_occurrences,
        "details": cmd_details,
        "suggest": cmd_suggest,
        "cache": cmd_cache,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
