"""Error taxonomy for commit synthesis.

Failures fall into two tiers.  :class:`ClientError` subclasses describe
requests that will keep failing until the caller changes the input (a
different base, a corrected patch).  :class:`ServerError` subclasses describe
tooling or storage problems; callers should replay the whole request.
"""

from __future__ import annotations

from typing import Any, Mapping


class PatchCommitError(RuntimeError):
    """Base class for every failure surfaced by the commit pipeline."""

    retryable: bool = False
    stage: str = "request"

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage
        self.details: dict[str, Any] = dict(details or {})

    @property
    def is_client_error(self) -> bool:
        return isinstance(self, ClientError)

    def describe(self) -> str:
        """Return the plain-text diagnostic sent back to callers."""

        return f"gitserver: {self.stage} - {self}"


class ClientError(PatchCommitError):
    """The request cannot succeed as submitted."""


class ServerError(PatchCommitError):
    """The request failed for reasons outside the caller's control."""

    retryable = True


class InvalidRequest(ClientError):
    stage = "validating request"


class RepoNotFound(ClientError):
    stage = "locating repository"


class BaseNotFound(ClientError):
    stage = "basing staging on base rev"


class PatchApplyFailed(ClientError):
    stage = "applying patch"


class WorkspaceError(ServerError):
    stage = "make tmp repo"


class InitFailed(ServerError):
    stage = "init tmp repo"


class CommitFailed(ServerError):
    stage = "committing patch"


class HashResolutionFailed(ServerError):
    stage = "retrieving new commit id"


class PromotionFailed(ServerError):
    stage = "copying git objects"


class PublishFailed(ServerError):
    stage = "creating ref"


class Cancelled(ServerError):
    stage = "cancelled"


__all__ = [
    "BaseNotFound",
    "Cancelled",
    "ClientError",
    "CommitFailed",
    "HashResolutionFailed",
    "InitFailed",
    "InvalidRequest",
    "PatchApplyFailed",
    "PatchCommitError",
    "PromotionFailed",
    "PublishFailed",
    "RepoNotFound",
    "ServerError",
    "WorkspaceError",
]
