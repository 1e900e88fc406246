"""Memoized IDL loader.

Each file is compiled once per loader. Lookups of compiled files take no
lock; compilation of a given path happens under that path's lock, with a
second cache check once the lock is held.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from pathlib import Path

from gatewaygen.core.errors import IDLError
from gatewaygen.core.logging import get_logger
from gatewaygen.idl.annotations import check_duplicates, validate_module
from gatewaygen.idl.models import IDLModule
from gatewaygen.idl.proto import link_proto, parse_proto
from gatewaygen.idl.thrift import link_thrift, parse_thrift

log = get_logger("idl")

IDL_SUFFIXES = (".thrift", ".proto")


class IDLLoader:
    """Load Thrift and proto files, following includes, with caching by path."""

    def __init__(self, idl_roots: Sequence[Path] = (), annotation_prefix: str = "zanzibar") -> None:
        self._roots = [Path(r).resolve() for r in idl_roots]
        self._prefix = annotation_prefix
        self._cache: dict[Path, IDLModule] = {}
        self._locks: dict[Path, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._local = threading.local()

    @property
    def annotation_prefix(self) -> str:
        return self._prefix

    def _lock_for(self, path: Path) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(path)
            if lock is None:
                lock = self._locks[path] = threading.RLock()
            return lock

    def cached(self, path: Path) -> IDLModule | None:
        return self._cache.get(Path(path).resolve())

    def load(self, path: Path) -> IDLModule:
        """Return the compiled module for ``path``, compiling it on first use."""
        path = Path(path).resolve()
        module = self._cache.get(path)
        if module is not None:
            return module

        stack: list[Path] = getattr(self._local, "stack", None) or []
        if path in stack:
            chain = " -> ".join(p.name for p in [*stack, path])
            raise IDLError.parse_error(str(path), 0, f"include cycle: {chain}")

        with self._lock_for(path):
            module = self._cache.get(path)
            if module is None:
                self._local.stack = [*stack, path]
                try:
                    module = self._compile(path)
                finally:
                    self._local.stack = stack
                self._cache[path] = module
                log.debug("idl_compiled", path=str(path), services=len(module.service_list))
        return module

    def _read(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise IDLError.parse_error(str(path), 0, "file not found") from e
        except (OSError, UnicodeDecodeError) as e:
            raise IDLError.parse_error(str(path), 0, str(e)) from e

    def _find_include(self, including: Path, target: str, *, roots_first: bool) -> Path:
        local = [including.parent / target]
        rooted = [root / target for root in self._roots]
        for candidate in (rooted + local) if roots_first else (local + rooted):
            if candidate.is_file():
                return candidate.resolve()
        raise IDLError.include_not_found(str(including), target)

    def _compile(self, path: Path) -> IDLModule:
        if path.suffix == ".thrift":
            doc = parse_thrift(path, self._read(path))
            check_duplicates(str(path), doc.annotation_lists)
            includes = {
                alias: self.load(self._find_include(path, target, roots_first=False))
                for alias, target, _line in doc.includes
            }
            module = link_thrift(doc, includes)
        elif path.suffix == ".proto":
            proto_doc = parse_proto(path, self._read(path))
            check_duplicates(str(path), proto_doc.annotation_lists)
            imports = {
                target: self.load(self._find_include(path, target, roots_first=True))
                for target in proto_doc.imports
            }
            module = link_proto(proto_doc, imports)
        else:
            raise IDLError.parse_error(str(path), 0, f"unsupported IDL file type {path.suffix!r}")
        validate_module(module, self._prefix)
        return module
