"""Command execution for the external git binary."""

from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol, Sequence

LOGGER = logging.getLogger(__name__)

# Inherited variables that would point git at some other repository.
_REPOSITORY_ENV = frozenset(
    {
        "GIT_DIR",
        "GIT_WORK_TREE",
        "GIT_INDEX_FILE",
        "GIT_OBJECT_DIRECTORY",
        "GIT_ALTERNATE_OBJECT_DIRECTORIES",
        "GIT_COMMON_DIR",
        "GIT_NAMESPACE",
        "GIT_CEILING_DIRECTORIES",
        "GIT_AUTHOR_NAME",
        "GIT_AUTHOR_EMAIL",
        "GIT_AUTHOR_DATE",
        "GIT_COMMITTER_NAME",
        "GIT_COMMITTER_EMAIL",
        "GIT_COMMITTER_DATE",
    }
)


@dataclass(slots=True)
class CommandResult:
    """Captured outcome of one external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Return the most useful diagnostic text (stderr first)."""
        return self.stderr.strip() or self.stdout.strip()


class CommandRunner(Protocol):
    """Anything able to run an external command and capture its output."""

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        stdin: str | None = None,
    ) -> CommandResult:
        ...


class SubprocessRunner:
    """Run commands as child processes, never raising on non-zero exit."""

    def __init__(self, base_env: Mapping[str, str] | None = None) -> None:
        source = os.environ if base_env is None else base_env
        self._base_env = {key: value for key, value in source.items() if key not in _REPOSITORY_ENV}

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        stdin: str | None = None,
    ) -> CommandResult:
        command = tuple(str(arg) for arg in args)
        merged = dict(self._base_env)
        if env:
            merged.update(env)
        started = time.monotonic()
        try:
            process = subprocess.run(  # noqa: S603 - argv built by the pipeline, no shell
                command,
                cwd=cwd,
                env=merged,
                input=stdin.encode("utf-8") if stdin is not None else None,
                capture_output=True,
                check=False,
            )
        except OSError as error:
            LOGGER.debug("unable to spawn %s: %s", command, error)
            return CommandResult(command, 127, "", str(error), time.monotonic() - started)
        stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
        stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
        return CommandResult(command, process.returncode, stdout, stderr, time.monotonic() - started)


__all__ = ["CommandResult", "CommandRunner", "SubprocessRunner"]
