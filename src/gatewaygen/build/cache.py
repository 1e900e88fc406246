"""Persistent incremental-build cache.

One JSON file under the generated-code root maps ``class/instance`` to the
fingerprint of its last successful build and the output files it produced.
A missing or unreadable cache is an empty cache.
"""

from __future__ import annotations

import contextlib
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from gatewaygen.build.fingerprint import GENERATOR_VERSION
from gatewaygen.core.errors import CacheError, OutputError
from gatewaygen.core.logging import get_logger
from gatewaygen.module.models import InstanceKey

log = get_logger("build.cache")

CACHE_FORMAT = 1


class CacheEntry(BaseModel):
    fingerprint: str
    outputs: list[str] = Field(default_factory=list)  # relative to the generated-code root


class CacheFile(BaseModel):
    format: int = CACHE_FORMAT
    generator_version: str = GENERATOR_VERSION
    entries: dict[str, CacheEntry] = Field(default_factory=dict)


class IncrementalCache:
    """In-memory snapshot of the cache file.

    Read once at the start of a build and written once at the end by the
    orchestrator; never shared with workers.
    """

    def __init__(self, path: Path, entries: dict[str, CacheEntry] | None = None) -> None:
        self.path = path
        self._entries: dict[str, CacheEntry] = dict(entries or {})

    @classmethod
    def load(cls, path: Path) -> IncrementalCache:
        """Load ``path``; absent or corrupt files give an empty cache."""
        if not path.exists():
            return cls(path)
        try:
            data = CacheFile.model_validate_json(path.read_bytes())
        except (OSError, ValidationError, ValueError) as e:
            err = CacheError.corrupt(str(path), str(e).splitlines()[0])
            log.warning("cache_corrupt", **err.to_dict())
            return cls(path)
        if data.format != CACHE_FORMAT:
            log.info("cache_format_changed", path=str(path), found=data.format, expected=CACHE_FORMAT)
            return cls(path)
        return cls(path, data.entries)

    def save(self) -> None:
        """Write the cache atomically."""
        payload = CacheFile(entries=dict(sorted(self._entries.items())))
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(payload.model_dump_json(indent=2) + "\n", encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise OutputError.write_failed(str(self.path), str(e)) from e
        log.debug("cache_saved", path=str(self.path), entries=len(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[InstanceKey]:
        return [InstanceKey.parse(k) for k in sorted(self._entries)]

    def entry(self, key: InstanceKey) -> CacheEntry | None:
        return self._entries.get(str(key))

    def fingerprint(self, key: InstanceKey) -> str | None:
        entry = self._entries.get(str(key))
        return entry.fingerprint if entry else None

    def record(self, key: InstanceKey, fingerprint: str, outputs: list[str]) -> None:
        self._entries[str(key)] = CacheEntry(fingerprint=fingerprint, outputs=sorted(outputs))

    def remove(self, key: InstanceKey) -> CacheEntry | None:
        return self._entries.pop(str(key), None)

    def prune_vanished(self, live: set[InstanceKey], root: Path) -> list[InstanceKey]:
        """Drop entries for instances no longer configured and delete their outputs.

        Returns the removed keys.
        """
        removed: list[InstanceKey] = []
        for key in self.keys():
            if key in live:
                continue
            entry = self.remove(key)
            removed.append(key)
            if entry is not None:
                _delete_outputs(root, entry.outputs)
            log.info("instance_pruned", class_name=key.class_name, instance_name=key.instance_name)
        return removed


def _delete_outputs(root: Path, outputs: list[str]) -> None:
    root = root.resolve()
    parents: set[Path] = set()
    for relative in outputs:
        path = (root / relative).resolve()
        if not path.is_relative_to(root) or path == root:
            log.warning("cache_output_outside_root", path=relative)
            continue
        with contextlib.suppress(FileNotFoundError):
            path.unlink()
        parents.update(p for p in path.parents if p.is_relative_to(root) and p != root)
    # Deepest first so emptied parents can go too.
    for parent in sorted(parents, key=lambda p: len(p.parts), reverse=True):
        with contextlib.suppress(OSError):
            parent.rmdir()
