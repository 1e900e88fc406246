"""Writing generated files under the output root.

Single files go straight to their destination. Whole instance directories
are staged next to the output tree, formatted there, and swapped into place
with a rename so an instance is never left half-updated.
"""

from __future__ import annotations

import os
import posixpath
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from gatewaygen.build.formatters import FormatterPipeline
from gatewaygen.core.errors import OutputError
from gatewaygen.core.logging import get_logger

log = get_logger("build.writer")

STAGING_DIR = ".gwgen-staging"
FILE_MODE = 0o644


@dataclass
class StagedInstance:
    """An instance's output, complete and formatted, waiting to be committed."""

    relative_dir: str
    target_dir: Path
    staging_dir: Path
    files: list[str] = field(default_factory=list)  # relative to relative_dir

    @property
    def outputs(self) -> list[str]:
        """Written files relative to the output root."""
        return sorted(posixpath.join(self.relative_dir, f) for f in self.files)


def normalise_relative(path: str) -> str:
    """Normalise a relative output path; raise if it is absolute or escapes."""
    cleaned = posixpath.normpath(path.replace("\\", "/"))
    if posixpath.isabs(cleaned) or cleaned == ".." or cleaned.startswith("../"):
        raise OutputError.path_escape(path, ".")
    return cleaned


class FileWriter:
    """Writes under ``root``, refusing any path that would leave it."""

    def __init__(self, root: Path, formatters: FormatterPipeline | None = None) -> None:
        self.root = Path(root).resolve()
        self.formatters = formatters or FormatterPipeline.disabled()

    @property
    def staging_root(self) -> Path:
        return self.root / STAGING_DIR

    def resolve(self, relative: str, base: Path | None = None) -> Path:
        base = base or self.root
        try:
            cleaned = normalise_relative(relative)
        except OutputError:
            raise OutputError.path_escape(relative, str(base)) from None
        return base / cleaned

    def _write_bytes(self, path: Path, content: bytes) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(path, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, FILE_MODE)
            with os.fdopen(fd, "wb") as f:
                written = f.write(content)
        except OSError as e:
            raise OutputError.write_failed(str(path), str(e)) from e
        if written != len(content):
            raise OutputError.write_failed(str(path), f"wrote {written} of {len(content)} bytes")

    def write(self, relative: str, content: bytes, *, format: bool = True) -> Path:
        """Write one file under the root and run its formatters."""
        path = self.resolve(relative)
        self._write_bytes(path, content)
        if format:
            self.formatters.run([path])
        return path

    def stage_instance(
        self, relative_dir: str, files: dict[str, bytes], *, format: bool = True
    ) -> StagedInstance:
        """Write an instance's files in a fresh staging directory, formatting them unless told not to."""
        relative_dir = normalise_relative(relative_dir)
        target_dir = self.resolve(relative_dir)
        staging_dir = self.staging_root / uuid.uuid4().hex
        staged = StagedInstance(relative_dir, target_dir, staging_dir)
        try:
            for name in sorted(files):
                path = self.resolve(name, staging_dir)
                self._write_bytes(path, files[name])
                staged.files.append(path.relative_to(staging_dir).as_posix())
        except BaseException:
            self.discard(staged)
            raise
        if format:
            self.format_staged(staged)
        return staged

    def format_staged(self, staged: StagedInstance) -> None:
        """Run formatters over a staged instance; a failure discards it."""
        try:
            self.formatters.run([staged.staging_dir / name for name in staged.files])
        except BaseException:
            self.discard(staged)
            raise

    def commit(self, staged: StagedInstance) -> None:
        """Swap the staged directory into place."""
        target = staged.target_dir
        backup = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.old")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            had_previous = target.exists()
            if had_previous:
                os.rename(target, backup)
            try:
                os.rename(staged.staging_dir, target)
            except OSError:
                if had_previous:
                    os.rename(backup, target)
                raise
        except OSError as e:
            self.discard(staged)
            raise OutputError.write_failed(str(target), str(e)) from e
        if had_previous:
            shutil.rmtree(backup, ignore_errors=True)
        log.debug("instance_committed", directory=staged.relative_dir, files=len(staged.files))

    def discard(self, staged: StagedInstance) -> None:
        shutil.rmtree(staged.staging_dir, ignore_errors=True)

    def cleanup_staging(self) -> None:
        """Remove the staging area if nothing is left in it."""
        try:
            self.staging_root.rmdir()
        except FileNotFoundError:
            pass
        except OSError:
            log.debug("staging_not_empty", path=str(self.staging_root))
