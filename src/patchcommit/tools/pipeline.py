"""Turn a base revision plus a unified diff into a commit inside a workspace.

The pipeline is a straight line of git invocations::

    init -> reset <base> -> apply --cached -> commit -> rev-parse

Each step runs against the workspace's own ``.git`` directory with the
canonical object store attached through ``GIT_ALTERNATE_OBJECT_DIRECTORIES``,
so canonical history is readable but never written.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Mapping, Sequence, Tuple

from ..errors import (
    BaseNotFound,
    Cancelled,
    CommitFailed,
    HashResolutionFailed,
    InitFailed,
    PatchApplyFailed,
    PatchCommitError,
)
from ..protocol import CommitMetadata
from ..utils.logging import emit_event
from .runner import CommandResult, CommandRunner
from .workspace import Workspace

LOGGER = logging.getLogger(__name__)

_COMMIT_ID_RE = re.compile(r"^[0-9a-f]{40}(?:[0-9a-f]{24})?$")
_PATCH_FAILED_RE = re.compile(r"error: patch failed: (?P<path>.+?)(?::(?P<line>\d+))?$")
_PATCH_DOES_NOT_APPLY_RE = re.compile(r"error: (?P<path>.+?): patch does not apply")
_DOES_NOT_EXIST_RE = re.compile(r"error: (?P<path>.+?): does not exist in index")
_ALREADY_EXISTS_RE = re.compile(r"error: (?P<path>.+?): already exists in index")


class PipelineStage(str, Enum):
    """States of the commit pipeline."""

    INIT = "init"
    BASED = "based"
    PATCHED = "patched"
    COMMITTED = "committed"
    RESOLVED_HASH = "resolved_hash"
    DONE = "done"
    FAILED = "failed"


class CancelSignal:
    """Cooperative cancellation checked between external commands.

    A signal trips when :meth:`cancel` is called or, if ``timeout`` is set,
    once that many seconds have elapsed since construction.
    """

    def __init__(
        self,
        timeout: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._event = threading.Event()
        self._clock = clock
        self._deadline = clock() + timeout if timeout else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and self._clock() >= self._deadline

    def check(self, next_step: str) -> None:
        """Raise :class:`Cancelled` if the request should stop before ``next_step``."""

        if self.cancelled:
            raise Cancelled(f"request cancelled before {next_step}", details={"next": next_step})


@dataclass(slots=True)
class PipelineResult:
    """Outcome of :meth:`PatchPipeline.execute`."""

    commit: str | None = None
    ref: str | None = None
    failure: PatchCommitError | None = None
    failed_at: PipelineStage | None = None
    history: Tuple[PipelineStage, ...] = ()

    @property
    def ok(self) -> bool:
        return self.failure is None

    def unwrap(self) -> str:
        """Return the commit id or raise the recorded failure."""

        if self.failure is not None:
            raise self.failure
        if not self.commit:
            raise HashResolutionFailed("pipeline finished without a commit id")
        return self.commit


def parse_apply_failures(output: str) -> Tuple[Mapping[str, Any], ...]:
    """Extract failing paths and lines from ``git apply`` diagnostics."""
    entries: list[dict[str, Any]] = []
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        match = _PATCH_FAILED_RE.match(line)
        if match:
            line_text = match.group("line")
            entries.append(
                {
                    "path": match.group("path"),
                    "line": int(line_text) if line_text is not None else None,
                    "reason": "patch_failed",
                }
            )
            continue
        match = _PATCH_DOES_NOT_APPLY_RE.match(line)
        if match:
            entries.append({"path": match.group("path"), "reason": "does_not_apply"})
            continue
        match = _DOES_NOT_EXIST_RE.match(line)
        if match:
            entries.append({"path": match.group("path"), "reason": "missing_in_base"})
            continue
        match = _ALREADY_EXISTS_RE.match(line)
        if match:
            entries.append({"path": match.group("path"), "reason": "exists_in_base"})
    return tuple(entries)


@dataclass(slots=True)
class PatchPipeline:
    """Drive one request through init, base, apply, commit and hash lookup.

    ``canonical_objects`` is the canonical repository's ``objects`` directory;
    it is only ever attached read-only as an alternate.
    """

    runner: CommandRunner
    canonical_objects: Path
    git_binary: str = "git"
    cancel: CancelSignal | None = None
    state: PipelineStage = field(default=PipelineStage.INIT, init=False)
    _history: List[PipelineStage] = field(default_factory=list, init=False)

    def execute(
        self,
        workspace: Workspace,
        *,
        base: str,
        patch: str,
        metadata: CommitMetadata,
        target_ref: str,
    ) -> PipelineResult:
        """Run every stage; failures are captured, not raised."""

        steps: Sequence[tuple[PipelineStage, Callable[[], str | None]]] = (
            (PipelineStage.INIT, lambda: self._init(workspace)),
            (PipelineStage.BASED, lambda: self._reset(workspace, base)),
            (PipelineStage.PATCHED, lambda: self._apply(workspace, patch)),
            (PipelineStage.COMMITTED, lambda: self._commit(workspace, metadata)),
            (PipelineStage.RESOLVED_HASH, lambda: self._resolve(workspace)),
        )
        self.state = PipelineStage.INIT
        self._history = []
        commit: str | None = None
        for stage, step in steps:
            try:
                if self.cancel is not None:
                    self.cancel.check(stage.value)
                commit = step()
            except PatchCommitError as error:
                self._history.append(PipelineStage.FAILED)
                self.state = PipelineStage.FAILED
                emit_event(
                    "pipeline_failed",
                    workspace=workspace.id,
                    repo=workspace.repo,
                    stage=stage.value,
                    error=type(error).__name__,
                    details=error.details,
                )
                return PipelineResult(
                    failure=error,
                    failed_at=stage,
                    history=tuple(self._history),
                )
            self.state = stage
            self._history.append(stage)

        self.state = PipelineStage.DONE
        self._history.append(PipelineStage.DONE)
        emit_event(
            "pipeline_succeeded",
            workspace=workspace.id,
            repo=workspace.repo,
            commit=commit,
            ref=target_ref,
        )
        return PipelineResult(commit=commit, ref=target_ref, history=tuple(self._history))

    # ------------------------------------------------------------- git steps
    def _env(self, workspace: Workspace, *, linked: bool = True) -> dict[str, str]:
        env = {"GIT_DIR": str(workspace.git_dir)}
        if linked:
            env["GIT_ALTERNATE_OBJECT_DIRECTORIES"] = str(self.canonical_objects)
        return env

    def _git(
        self,
        workspace: Workspace,
        args: Sequence[str],
        *,
        env: Mapping[str, str],
        stdin: str | None = None,
    ) -> CommandResult:
        result = self.runner.run(
            [self.git_binary, *args],
            cwd=workspace.path,
            env=env,
            stdin=stdin,
        )
        if result.ok:
            LOGGER.info(
                "%s ran successfully %s (%.3fs)\nOUT: %s",
                workspace.log_prefix,
                list(result.args),
                result.duration,
                result.stdout.strip(),
            )
        else:
            LOGGER.warning(
                "%s command %s failed (%.3fs): exit %s\nOUT: %s",
                workspace.log_prefix,
                list(result.args),
                result.duration,
                result.returncode,
                result.output,
            )
        return result

    def _init(self, workspace: Workspace) -> None:
        result = self._git(workspace, ["init", "-q"], env=self._env(workspace, linked=False))
        if not result.ok:
            raise InitFailed(result.output or "git init failed", details={"output": result.output})

    def _reset(self, workspace: Workspace, base: str) -> None:
        result = self._git(workspace, ["reset", "-q", base, "--"], env=self._env(workspace))
        if not result.ok:
            LOGGER.error(
                "Failed to base the temporary repo on the base revision. base=%s output=%s",
                base,
                result.output,
            )
            raise BaseNotFound(
                f"unknown base revision {base!r}: {result.output or 'git reset failed'}",
                details={"base": base, "output": result.output},
            )

    def _apply(self, workspace: Workspace, patch: str) -> None:
        if patch and not patch.endswith("\n"):
            patch += "\n"
        result = self._git(workspace, ["apply", "--cached"], env=self._env(workspace), stdin=patch)
        if not result.ok:
            LOGGER.error("Failed to apply patch. output=%s", result.output)
            raise PatchApplyFailed(
                result.output or "git apply failed",
                details={
                    "output": result.output,
                    "failures": parse_apply_failures(result.output),
                },
            )

    def _commit(self, workspace: Workspace, metadata: CommitMetadata) -> None:
        env = self._env(workspace)
        env.update(metadata.env())
        result = self._git(
            workspace,
            ["-c", "commit.gpgsign=false", "commit", "-q", "--no-verify", "-m", metadata.message],
            env=env,
        )
        if not result.ok:
            LOGGER.error("Failed to commit patch. output=%s", result.output)
            raise CommitFailed(result.output or "git commit failed", details={"output": result.output})

    def _resolve(self, workspace: Workspace) -> str:
        result = self._git(workspace, ["rev-parse", "--verify", "HEAD^{commit}"], env=self._env(workspace))
        commit = result.stdout.strip()
        if not result.ok or not _COMMIT_ID_RE.match(commit):
            raise HashResolutionFailed(
                result.output or f"unexpected commit id {commit!r}",
                details={"output": result.output},
            )
        return commit


__all__ = [
    "CancelSignal",
    "PatchPipeline",
    "PipelineResult",
    "PipelineStage",
    "parse_apply_failures",
]
