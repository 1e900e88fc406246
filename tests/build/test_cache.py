"""Tests for the incremental cache file."""

import json
from pathlib import Path

import pytest

from gatewaygen.build.cache import CACHE_FORMAT, IncrementalCache
from gatewaygen.core.errors import OutputError
from gatewaygen.module.models import InstanceKey

ECHO = InstanceKey("client", "echo")
BOUNCE = InstanceKey("endpoint", "bounce")


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    return tmp_path / "build" / ".gwgen-cache.json"


class TestLoad:
    """A cache that cannot be used is an empty cache."""

    def test_missing_file(self, cache_path: Path) -> None:
        cache = IncrementalCache.load(cache_path)

        assert len(cache) == 0
        assert cache.fingerprint(ECHO) is None

    @pytest.mark.parametrize("content", ["{not json", '{"entries": {"client/echo": 3}}', "[]"])
    def test_corrupt_file(self, cache_path: Path, content: str) -> None:
        cache_path.parent.mkdir(parents=True)
        cache_path.write_text(content)

        assert len(IncrementalCache.load(cache_path)) == 0

    def test_format_mismatch(self, cache_path: Path) -> None:
        cache_path.parent.mkdir(parents=True)
        cache_path.write_text(
            json.dumps({"format": CACHE_FORMAT + 1, "entries": {"client/echo": {"fingerprint": "aa"}}})
        )

        assert len(IncrementalCache.load(cache_path)) == 0


class TestRoundTrip:
    def test_save_and_load(self, cache_path: Path) -> None:
        cache = IncrementalCache.load(cache_path)
        cache.record(BOUNCE, "bb", ["endpoints/bounce/b.go", "endpoints/bounce/a.go"])
        cache.record(ECHO, "aa", ["clients/echo/echo.go"])
        cache.save()

        loaded = IncrementalCache.load(cache_path)

        assert loaded.keys() == [ECHO, BOUNCE]
        assert loaded.fingerprint(ECHO) == "aa"
        assert loaded.entry(BOUNCE).outputs == ["endpoints/bounce/a.go", "endpoints/bounce/b.go"]
        assert not cache_path.with_name(cache_path.name + ".tmp").exists()

    def test_record_replaces_entry(self, cache_path: Path) -> None:
        cache = IncrementalCache(cache_path)
        cache.record(ECHO, "aa", ["a.go"])
        cache.record(ECHO, "bb", ["b.go"])

        assert cache.entry(ECHO).fingerprint == "bb"
        assert cache.entry(ECHO).outputs == ["b.go"]

    def test_remove(self, cache_path: Path) -> None:
        cache = IncrementalCache(cache_path)
        cache.record(ECHO, "aa", [])

        assert cache.remove(ECHO) is not None
        assert cache.remove(ECHO) is None

    def test_save_failure(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        cache = IncrementalCache(blocker / "cache.json")

        with pytest.raises(OutputError):
            cache.save()


class TestPruneVanished:
    """Instances no longer configured lose their entry and their files."""

    def _write(self, root: Path, relative: str) -> Path:
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("package x\n")
        return path

    def test_deletes_outputs_and_empty_parents(self, tmp_path: Path) -> None:
        root = tmp_path / "build"
        echo_go = self._write(root, "clients/echo/echo.go")
        init_go = self._write(root, "clients/echo/module/init.go")
        kept = self._write(root, "endpoints/bounce/bounce.go")
        cache = IncrementalCache(root / ".gwgen-cache.json")
        cache.record(ECHO, "aa", ["clients/echo/echo.go", "clients/echo/module/init.go"])
        cache.record(BOUNCE, "bb", ["endpoints/bounce/bounce.go"])

        removed = cache.prune_vanished({BOUNCE}, root)

        assert removed == [ECHO]
        assert cache.keys() == [BOUNCE]
        assert not echo_go.exists()
        assert not init_go.exists()
        assert not (root / "clients").exists()
        assert kept.exists()

    def test_keeps_non_empty_parents(self, tmp_path: Path) -> None:
        root = tmp_path / "build"
        self._write(root, "clients/echo/echo.go")
        handwritten = self._write(root, "clients/echo/notes.txt")
        cache = IncrementalCache(root / ".gwgen-cache.json")
        cache.record(ECHO, "aa", ["clients/echo/echo.go"])

        cache.prune_vanished(set(), root)

        assert handwritten.exists()

    def test_skips_paths_outside_root(self, tmp_path: Path) -> None:
        root = tmp_path / "build"
        root.mkdir()
        outside = tmp_path / "precious.go"
        outside.write_text("package main\n")
        cache = IncrementalCache(root / ".gwgen-cache.json")
        cache.record(ECHO, "aa", ["../precious.go"])

        assert cache.prune_vanished(set(), root) == [ECHO]
        assert outside.exists()

    def test_already_deleted_outputs(self, tmp_path: Path) -> None:
        root = tmp_path / "build"
        root.mkdir()
        cache = IncrementalCache(root / ".gwgen-cache.json")
        cache.record(ECHO, "aa", ["clients/echo/echo.go"])

        assert cache.prune_vanished(set(), root) == [ECHO]
