"""Access to canonical repositories stored under the repositories root."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from ..errors import RepoNotFound
from .runner import CommandResult, CommandRunner, SubprocessRunner


class GitError(RuntimeError):
    """Raised when a git command against a canonical repository fails."""

    def __init__(self, message: str, *, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result


def _is_git_dir(path: Path) -> bool:
    return (path / "objects").is_dir() and (path / "HEAD").is_file()


@dataclass(slots=True)
class CanonicalRepository:
    """A repository served from ``<root>/<name>``, bare or with a work tree."""

    name: str
    root: Path
    git_dir: Path
    runner: CommandRunner
    git_binary: str = "git"

    @classmethod
    def locate(
        cls,
        repos_dir: Path,
        name: str,
        *,
        runner: CommandRunner | None = None,
        git_binary: str = "git",
    ) -> "CanonicalRepository":
        """Find ``name`` under ``repos_dir`` or raise :class:`RepoNotFound`."""

        repos_dir = Path(repos_dir).resolve()
        root = repos_dir / name
        for candidate in (root / ".git", root, repos_dir / f"{name}.git"):
            if _is_git_dir(candidate):
                return cls(
                    name=name,
                    root=candidate.parent if candidate.name == ".git" else candidate,
                    git_dir=candidate,
                    runner=runner or SubprocessRunner(),
                    git_binary=git_binary,
                )
        raise RepoNotFound(f"repository not found: {name}", details={"repo": name})

    @property
    def objects_dir(self) -> Path:
        return self.git_dir / "objects"

    # ------------------------------------------------------------------ git IO
    def _run_git(self, args: Sequence[str], *, check: bool = True) -> CommandResult:
        command: List[str] = [self.git_binary, *args]
        result = self.runner.run(command, cwd=self.git_dir, env={"GIT_DIR": str(self.git_dir)})
        if check and not result.ok:
            message = result.output or "unknown git error"
            raise GitError(f"git {' '.join(args)} failed: {message}", result=result)
        return result

    def git(self, *args: str, check: bool = True) -> CommandResult:
        """Execute ``git`` with ``args`` against the canonical git directory."""

        return self._run_git(list(args), check=check)

    # -------------------------------------------------------------------- refs
    def resolve_ref(self, ref: str) -> str | None:
        """Return the commit ``ref`` points at, or ``None`` when it is absent."""

        result = self.git("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", check=False)
        if not result.ok:
            return None
        return result.stdout.strip() or None

    def update_ref(self, ref: str, commit: str) -> None:
        """Point ``ref`` at ``commit``."""

        self.git("update-ref", ref, commit)


__all__ = ["CanonicalRepository", "GitError"]
