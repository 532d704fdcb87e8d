"""Durable JSON data store.

Every JSON file is wrapped in a metadata envelope::

    {"meta": {"source": "api.gbif.org", "fetched_at": "..."}, "data": {...}}

Writes go to a temporary sibling file first and are moved into place with
``os.replace``, so a crash mid-write leaves the previous file intact.

Layout under the base directory:
  - cache/: the GBIF response cache (one blob, rewritten on every mutation)
  - live/: batch outputs written by the flows (published occurrence views)
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path  # noqa: TC003 - needed at runtime
from typing import Any


class DataStore:
    """Manages read/write of enveloped JSON files under one base directory."""

    def __init__(self, base_dir: Path) -> None:
        self.base = base_dir
        self.cache = base_dir / "cache"
        self.live = base_dir / "live"

    def read(self, path: Path) -> Any | None:
        """Read data payload from a metadata-enveloped JSON file.

        Returns the ``data`` field, or None if the file doesn't exist.
        Raises ``json.JSONDecodeError`` if the file is not valid JSON.
        """
        envelope = self.read_raw(path)
        if envelope is None:
            return None
        if isinstance(envelope, dict) and "data" in envelope:
            return envelope["data"]
        return envelope

    def read_raw(self, path: Path) -> Any | None:
        """Read the full envelope (meta + data) from a JSON file."""
        full = self._resolve(path)
        if not full.exists():
            return None
        with full.open(encoding="utf-8") as f:
            return json.load(f)

    def write(self, path: Path, data: Any, source: str, **params: Any) -> Path:
        """Write data wrapped in a metadata envelope.

        Args:
            path: Relative path under base_dir (e.g. ``cache/gbif_cache_v1.json``).
            data: JSON-compatible payload stored under the ``data`` key.
            source: Data source identifier (e.g. ``"api.gbif.org"``).
            **params: Extra metadata fields (counts, query params, etc.).

        Returns:
            Absolute path of the written file.
        """
        full = self._resolve(path)
        full.parent.mkdir(parents=True, exist_ok=True)

        meta: dict[str, Any] = {
            "source": source,
            "fetched_at": datetime.now(UTC).isoformat(),
        }
        if params:
            meta.update(params)

        envelope = {"meta": meta, "data": data}
        fd, tmp_name = tempfile.mkstemp(dir=full.parent, prefix=f".{full.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(envelope, f)
            os.replace(tmp_name, full)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        return full

    def delete(self, path: Path) -> bool:
        """Remove a stored file. Returns False if it was not there."""
        full = self._resolve(path)
        if not full.exists():
            return False
        full.unlink()
        return True

    def exists(self, path: Path) -> bool:
        return self._resolve(path).exists()

    def _resolve(self, path: Path) -> Path:
        full = self.base / path if not path.is_absolute() else path
        try:
            full.resolve().relative_to(self.base.resolve())
        except ValueError:
            msg = f"Path escapes store base directory: {path}"
            raise ValueError(msg) from None
        return full
