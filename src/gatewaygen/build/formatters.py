"""Post-write source formatters keyed by output extension."""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

from gatewaygen.core.errors import OutputError
from gatewaygen.core.logging import get_logger

log = get_logger("build.formatters")


class FormatterPipeline:
    """Runs each extension's formatter commands, in order, over written files.

    A formatter that is not installed or exits non-zero fails the build.
    """

    def __init__(self, formatters: Mapping[str, Sequence[Sequence[str]]]) -> None:
        self._formatters = {ext: [list(cmd) for cmd in cmds if cmd] for ext, cmds in formatters.items()}

    @classmethod
    def disabled(cls) -> FormatterPipeline:
        return cls({})

    def commands_for(self, path: Path) -> list[list[str]]:
        return self._formatters.get(path.suffix, [])

    def run(self, paths: Iterable[Path]) -> None:
        """Format ``paths``; each command runs once per extension group."""
        groups: dict[str, list[Path]] = {}
        for path in paths:
            if self.commands_for(path):
                groups.setdefault(path.suffix, []).append(path)

        for ext in sorted(groups):
            files = sorted(groups[ext])
            for command in self._formatters[ext]:
                if shutil.which(command[0]) is None:
                    raise OutputError.formatter_failed(str(files[0]), command, "executable not found on PATH")
                try:
                    result = subprocess.run(
                        [*command, *(str(f) for f in files)],
                        capture_output=True,
                        text=True,
                    )
                except OSError as e:
                    raise OutputError.formatter_failed(str(files[0]), command, str(e)) from e
                if result.returncode != 0:
                    reason = (result.stderr or result.stdout).strip() or f"exit code {result.returncode}"
                    raise OutputError.formatter_failed(str(files[0]), command, reason)
                log.debug("formatted", command=command[0], files=len(files))
