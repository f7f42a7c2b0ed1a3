"""Publish a promoted commit by moving a ref in the canonical repository."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import DefaultDict, Tuple

from ..errors import PublishFailed
from ..utils.logging import emit_event
from .vcs import CanonicalRepository, GitError

LOGGER = logging.getLogger(__name__)


class RefLocks:
    """One lock per ``(repository, ref)`` pair, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: DefaultDict[Tuple[str, str], threading.Lock] = defaultdict(threading.Lock)

    def lock_for(self, repo: str, ref: str) -> threading.Lock:
        with self._guard:
            return self._locks[(repo, ref)]


_PROCESS_REF_LOCKS = RefLocks()


class RefPublisher:
    """Serialize ref updates per ``(repository, ref)`` within this process.

    Concurrent requests for the same ref do not conflict: the last publish
    wins and the earlier commit stays in the object store unreferenced.
    """

    def __init__(self, locks: RefLocks | None = None) -> None:
        self._locks = locks or _PROCESS_REF_LOCKS

    def publish(self, repo: CanonicalRepository, target_ref: str, commit: str) -> None:
        with self._locks.lock_for(repo.name, target_ref):
            previous = repo.resolve_ref(target_ref)
            try:
                repo.update_ref(target_ref, commit)
            except GitError as error:
                LOGGER.error(
                    "Failed to create ref for commit. ref=%s commit=%s output=%s",
                    target_ref,
                    commit,
                    error.result.output if error.result else error,
                )
                raise PublishFailed(
                    str(error),
                    details={"ref": target_ref, "commit": commit},
                ) from error
        if previous and previous != commit:
            LOGGER.info("%s: %s moved %s -> %s", repo.name, target_ref, previous, commit)
        emit_event("ref_published", repo=repo.name, ref=target_ref, commit=commit, previous=previous)


__all__ = ["RefLocks", "RefPublisher"]
