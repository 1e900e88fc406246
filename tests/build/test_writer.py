"""Tests for staged instance writes."""

import sys
from pathlib import Path

import pytest

from gatewaygen.build.formatters import FormatterPipeline
from gatewaygen.build.writer import STAGING_DIR, FileWriter, normalise_relative
from gatewaygen.core.errors import ErrorCode, OutputError


@pytest.fixture
def writer(tmp_path: Path) -> FileWriter:
    return FileWriter(tmp_path / "build")


@pytest.mark.parametrize(
    ("path", "expected"),
    [("a/b/../c.go", "a/c.go"), ("./x.go", "x.go"), ("a\\b.go", "a/b.go")],
)
def test_normalise_relative(path: str, expected: str) -> None:
    assert normalise_relative(path) == expected


@pytest.mark.parametrize("path", ["/etc/passwd", "..", "../x", "a/../../x"])
def test_normalise_relative_rejects_escape(path: str) -> None:
    with pytest.raises(OutputError) as exc_info:
        normalise_relative(path)

    assert exc_info.value.code == ErrorCode.PATH_ESCAPE


class TestWrite:
    def test_write_single_file(self, writer: FileWriter) -> None:
        path = writer.write("clients/echo/echo.go", b"package echo\n")

        assert path == writer.root / "clients" / "echo" / "echo.go"
        assert path.read_bytes() == b"package echo\n"

    def test_write_refuses_escape(self, writer: FileWriter, tmp_path: Path) -> None:
        with pytest.raises(OutputError):
            writer.write("../outside.go", b"")

        assert not (tmp_path / "outside.go").exists()


class TestStagedInstance:
    """Instance directories are replaced as a whole."""

    def test_commit_replaces_previous_output(self, writer: FileWriter) -> None:
        old = writer.root / "clients" / "echo" / "stale.go"
        old.parent.mkdir(parents=True)
        old.write_text("package echo\n")

        staged = writer.stage_instance(
            "clients/echo", {"echo.go": b"package echo\n", "module/init.go": b"package module\n"}
        )
        writer.commit(staged)
        writer.cleanup_staging()

        target = writer.root / "clients" / "echo"
        assert sorted(p.relative_to(target).as_posix() for p in target.rglob("*.go")) == [
            "echo.go",
            "module/init.go",
        ]
        assert staged.outputs == ["clients/echo/echo.go", "clients/echo/module/init.go"]
        assert not (writer.root / STAGING_DIR).exists()
        assert [p.name for p in (writer.root / "clients").iterdir()] == ["echo"]

    def test_files_may_not_escape_instance(self, writer: FileWriter) -> None:
        with pytest.raises(OutputError):
            writer.stage_instance("clients/echo", {"../mirror/x.go": b""})

        writer.cleanup_staging()
        assert not (writer.root / STAGING_DIR).exists()

    def test_formatter_failure_discards_staging(self, tmp_path: Path) -> None:
        failing = FormatterPipeline({".go": [[sys.executable, "-c", "import sys; sys.exit(1)"]]})
        writer = FileWriter(tmp_path / "build", failing)

        with pytest.raises(OutputError) as exc_info:
            writer.stage_instance("clients/echo", {"echo.go": b"package echo\n"})

        assert exc_info.value.code == ErrorCode.FORMATTER_FAILED
        writer.cleanup_staging()
        assert not (writer.root / "clients").exists()
        assert not (writer.root / STAGING_DIR).exists()

    def test_unformatted_staging(self, tmp_path: Path) -> None:
        failing = FormatterPipeline({".go": [[sys.executable, "-c", "import sys; sys.exit(1)"]]})
        writer = FileWriter(tmp_path / "build", failing)

        staged = writer.stage_instance("clients/echo", {"echo.go": b"package echo\n"}, format=False)

        assert (staged.staging_dir / "echo.go").read_bytes() == b"package echo\n"
        writer.discard(staged)
        assert not staged.staging_dir.exists()
