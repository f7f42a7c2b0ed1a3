"""Wire contract for the create-commit-from-patch call."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from .config import ServerConfig

_GIT_SUFFIX = ".git"
_REF_FORBIDDEN = re.compile(r"[\x00-\x20\x7f~^:?*\[\\]")


def normalize_repo(name: str) -> str:
    """Return the canonical spelling of a repository name.

    Surrounding whitespace, trailing slashes and a trailing ``.git`` are
    dropped.  GitHub names are case-insensitive, so they are lowercased.
    """

    repo = name.strip().strip("/")
    if repo.endswith(_GIT_SUFFIX):
        repo = repo[: -len(_GIT_SUFFIX)].rstrip("/")
    if repo.lower().startswith("github.com/"):
        repo = repo.lower()
    return repo


def qualify_ref(ref: str) -> str:
    """Return ``ref`` as a fully-qualified ref path (``refs/...``)."""

    ref = ref.strip()
    if ref.startswith("refs/"):
        return ref
    return f"refs/{ref}"


def is_valid_ref(ref: str) -> bool:
    """Apply git's ref-name rules (``git check-ref-format``) to ``ref``."""

    if ref == "@" or _REF_FORBIDDEN.search(ref) or ".." in ref or "@{" in ref:
        return False
    components = ref.split("/")
    if len(components) < 2 or ref.endswith("."):
        return False
    for component in components:
        if not component or component.startswith(".") or component.endswith(".lock"):
            return False
    return True


def git_date(value: datetime) -> str:
    """Format ``value`` in git's internal ``<seconds> <offset>`` form.

    Naive timestamps are taken to be UTC.
    """

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    offset = value.utcoffset()
    minutes = int(offset.total_seconds() // 60) if offset else 0
    sign = "-" if minutes < 0 else "+"
    hours, mins = divmod(abs(minutes), 60)
    return f"{int(value.timestamp())} {sign}{hours:02d}{mins:02d}"


class WireModel(BaseModel):
    """Base model accepting both camelCase wire names and field names."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class CommitInfo(WireModel):
    message: str = ""
    author_name: str = Field(default="", alias="authorName")
    author_email: str = Field(default="", alias="authorEmail")
    date: datetime


class PatchRequest(WireModel):
    """Request body for ``POST /create-commit-from-patch``."""

    repo: str
    base_commit: str = Field(alias="baseCommit")
    target_ref: str = Field(alias="targetRef")
    patch: str
    commit_info: CommitInfo = Field(alias="commitInfo")

    @field_validator("repo")
    @classmethod
    def _normalise_repo(cls, value: str) -> str:
        repo = normalize_repo(value)
        if not repo:
            raise ValueError("repository name is empty")
        if repo.startswith("/") or any(part in {"", ".", ".."} for part in repo.split("/")):
            raise ValueError(f"invalid repository name: {value!r}")
        return repo

    @field_validator("base_commit")
    @classmethod
    def _check_base(cls, value: str) -> str:
        value = value.strip()
        if not value or value.startswith("-"):
            raise ValueError("baseCommit must be a revision identifier")
        return value

    @field_validator("target_ref")
    @classmethod
    def _check_ref(cls, value: str) -> str:
        ref = qualify_ref(value)
        if not is_valid_ref(ref):
            raise ValueError(f"invalid ref name: {value!r}")
        return ref


class PatchResponse(WireModel):
    rev: str


@dataclass(frozen=True, slots=True)
class CommitMetadata:
    """Commit metadata with configured fallbacks applied."""

    message: str
    author_name: str
    author_email: str
    committer_name: str
    committer_email: str
    date: str

    @classmethod
    def resolve(cls, info: CommitInfo, config: "ServerConfig") -> "CommitMetadata":
        return cls(
            message=info.message if info.message.strip() else config.default_message,
            author_name=info.author_name or config.default_author_name,
            author_email=info.author_email or config.default_author_email,
            committer_name=config.committer_name,
            committer_email=config.committer_email,
            date=git_date(info.date),
        )

    def env(self) -> dict[str, str]:
        """Return the git identity environment for ``git commit``."""

        return {
            "GIT_AUTHOR_NAME": self.author_name,
            "GIT_AUTHOR_EMAIL": self.author_email,
            "GIT_AUTHOR_DATE": self.date,
            "GIT_COMMITTER_NAME": self.committer_name,
            "GIT_COMMITTER_EMAIL": self.committer_email,
            "GIT_COMMITTER_DATE": self.date,
        }


__all__ = [
    "CommitInfo",
    "CommitMetadata",
    "PatchRequest",
    "PatchResponse",
    "git_date",
    "is_valid_ref",
    "normalize_repo",
    "qualify_ref",
]
