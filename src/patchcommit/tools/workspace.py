"""Ephemeral per-request workspaces next to the canonical repositories.

Workspaces live under the same root as the canonical repositories so the
canonical object store can be linked as an alternate and new objects can be
promoted with a same-volume rename.
"""

from __future__ import annotations

import itertools
import logging
import shutil
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from ..errors import WorkspaceError
from ..utils.logging import emit_event
from ..utils.slug import slugify

LOGGER = logging.getLogger(__name__)

WORKSPACE_PREFIX = "tmp-repo-"
_MAX_NAME_ATTEMPTS = 1000


class WorkspaceCounter:
    """Monotonic id source shared by every provisioner in the process."""

    def __init__(self, start: int = 1) -> None:
        self._ids = itertools.count(start)
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            return next(self._ids)


_PROCESS_COUNTER = WorkspaceCounter()


@dataclass(slots=True)
class Workspace:
    """A scratch repository owned by exactly one request."""

    id: int
    repo: str
    path: Path
    released: bool = field(default=False, compare=False)

    @property
    def git_dir(self) -> Path:
        return self.path / ".git"

    @property
    def objects_dir(self) -> Path:
        return self.git_dir / "objects"

    @property
    def log_prefix(self) -> str:
        return f"{self.id} {self.repo}"

    def release(self) -> None:
        """Delete the workspace directory. Safe to call more than once."""

        if self.released:
            return
        if self.path.exists():
            shutil.rmtree(self.path)
        self.released = True


class WorkspaceProvisioner:
    """Allocate uniquely named workspaces under ``root``."""

    def __init__(self, root: Path | str, *, counter: WorkspaceCounter | None = None) -> None:
        self.root = Path(root).resolve()
        self._counter = counter or _PROCESS_COUNTER

    def acquire(self, repo: str) -> Workspace:
        """Create a fresh workspace directory for ``repo``.

        Names left behind by an earlier process are skipped.  Any other
        filesystem failure raises :class:`WorkspaceError` and leaves nothing
        on disk.
        """

        slug = slugify(repo)
        for _ in range(_MAX_NAME_ATTEMPTS):
            workspace_id = self._counter.next()
            path = self.root / f"{WORKSPACE_PREFIX}{workspace_id}-{slug}"
            try:
                path.mkdir()
            except FileExistsError:
                LOGGER.debug("workspace %s already exists; taking the next id", path)
                continue
            except OSError as error:
                raise WorkspaceError(str(error), details={"path": path.as_posix()}) from error
            emit_event("workspace_acquired", workspace=workspace_id, repo=repo, path=path)
            return Workspace(id=workspace_id, repo=repo, path=path)
        raise WorkspaceError(f"no free workspace name under {self.root}")


@contextmanager
def scoped_workspace(provisioner: WorkspaceProvisioner, repo: str) -> Iterator[Workspace]:
    """Yield a workspace that is removed on every exit path.

    Removal failures are logged and never replace the block's own outcome.
    """

    workspace = provisioner.acquire(repo)
    try:
        yield workspace
    finally:
        try:
            workspace.release()
        except OSError as error:
            LOGGER.warning("unable to clean up tmp repo %s: %s", workspace.path, error)
        else:
            emit_event("workspace_released", workspace=workspace.id, repo=repo)


__all__ = [
    "WORKSPACE_PREFIX",
    "Workspace",
    "WorkspaceCounter",
    "WorkspaceProvisioner",
    "scoped_workspace",
]
