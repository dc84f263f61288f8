"""Filesystem access for storage units (markdown files under a root directory).

Unit ids are POSIX paths relative to the root, e.g. ``work/20251104-work.md``.
Each unit has its own lock; a writer holds it across read, compute, write.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)


class Vault:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._unit_locks: dict[str, threading.Lock] = {}  # per-unit serialization
        self._registry_lock = threading.Lock()

    def path_for(self, unit_id: str) -> Path:
        """Resolve a unit id below the root; ids escaping the root are rejected."""
        rel = PurePosixPath(unit_id)
        if rel.is_absolute() or ".." in rel.parts or not rel.parts:
            raise ValueError(f"invalid storage unit id: {unit_id!r}")
        return self.root.joinpath(*rel.parts)

    # ── Locking ───────────────────────────────────────────────

    def _get_unit_lock(self, unit_id: str) -> threading.Lock:
        with self._registry_lock:
            if unit_id not in self._unit_locks:
                self._unit_locks[unit_id] = threading.Lock()
            return self._unit_locks[unit_id]

    @contextmanager
    def lock(self, unit_id: str) -> Iterator[None]:
        lock = self._get_unit_lock(unit_id)
        with lock:
            yield

    # ── I/O ───────────────────────────────────────────────────

    def exists(self, unit_id: str) -> bool:
        return self.path_for(unit_id).is_file()

    def read_buffer(self, unit_id: str) -> str:
        """Unit text, or "" when the unit does not exist yet."""
        path = self.path_for(unit_id)
        if not path.is_file():
            return ""
        return path.read_text(encoding="utf-8")

    def write_buffer(self, unit_id: str, text: str) -> None:
        """Write atomically: temp file in the same directory, then replace."""
        path = self.path_for(unit_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)
        logger.debug("Wrote %s (%d chars)", unit_id, len(text))

    def modification_time(self, unit_id: str) -> int | None:
        """mtime in nanoseconds, or None when the unit is missing."""
        try:
            return self.path_for(unit_id).stat().st_mtime_ns
        except FileNotFoundError:
            return None

    def list_units(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(p.relative_to(self.root).as_posix() for p in self.root.rglob("*.md") if p.is_file())
