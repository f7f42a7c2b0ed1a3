from __future__ import annotations

import os
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from patchcommit.config import ServerConfig  # noqa: E402
from patchcommit.tools.runner import CommandResult  # noqa: E402

FIXED_DATE = "2021-03-04T05:06:07+00:00"
FIXED_TIMESTAMP = 1614834367

HELLO_PATCH = """\
diff --git a/hello.txt b/hello.txt
new file mode 100644
--- /dev/null
+++ b/hello.txt
@@ -0,0 +1 @@
+hi
"""

GREETING_PATCH = """\
diff --git a/greeting.txt b/greeting.txt
--- a/greeting.txt
+++ b/greeting.txt
@@ -1 +1 @@
-hello
+hello, world
"""

MISMATCHED_PATCH = """\
diff --git a/greeting.txt b/greeting.txt
--- a/greeting.txt
+++ b/greeting.txt
@@ -1 +1 @@
-goodbye
+farewell
"""


def run_git(cwd: Path, *args: str, stdin: str | None = None) -> str:
    env = {key: value for key, value in os.environ.items() if not key.startswith("GIT_")}
    env.update(
        {
            "GIT_AUTHOR_NAME": "Fixture Author",
            "GIT_AUTHOR_EMAIL": "fixture@example.com",
            "GIT_COMMITTER_NAME": "Fixture Author",
            "GIT_COMMITTER_EMAIL": "fixture@example.com",
        }
    )
    process = subprocess.run(
        ["git", *args],
        cwd=cwd,
        env=env,
        input=stdin,
        capture_output=True,
        text=True,
        check=True,
    )
    return process.stdout.strip()


@dataclass(slots=True)
class CanonicalRepo:
    """A canonical repository under a repositories root, plus known commits."""

    repos_dir: Path
    name: str
    path: Path
    empty_base: str
    greeting_base: str

    def git(self, *args: str) -> str:
        return run_git(self.path, *args)

    def ref(self, ref: str) -> str | None:
        try:
            return self.git("rev-parse", "--verify", "--quiet", ref)
        except subprocess.CalledProcessError:
            return None

    def workspaces(self) -> List[Path]:
        return sorted(self.repos_dir.glob("tmp-repo-*"))


@pytest.fixture()
def canonical_repo(tmp_path: Path) -> CanonicalRepo:
    """Create ``<tmp>/repos/example`` with an empty commit and a greeting commit."""

    repos_dir = tmp_path / "repos"
    repo_path = repos_dir / "example"
    repo_path.mkdir(parents=True)

    run_git(repo_path, "init", "-q")
    run_git(repo_path, "commit", "-q", "--allow-empty", "-m", "empty root")
    empty_base = run_git(repo_path, "rev-parse", "HEAD")

    (repo_path / "greeting.txt").write_text("hello\n", encoding="utf-8")
    run_git(repo_path, "add", "greeting.txt")
    run_git(repo_path, "commit", "-q", "-m", "add greeting")
    greeting_base = run_git(repo_path, "rev-parse", "HEAD")

    return CanonicalRepo(
        repos_dir=repos_dir,
        name="example",
        path=repo_path,
        empty_base=empty_base,
        greeting_base=greeting_base,
    )


@pytest.fixture()
def server_config(canonical_repo: CanonicalRepo) -> ServerConfig:
    return ServerConfig(repos_dir=canonical_repo.repos_dir, request_timeout=0)


def patch_payload(**overrides: object) -> Dict[str, object]:
    """Return a camelCase request body; ``commitInfo`` keys may be overridden."""

    commit_info = {
        "message": "add hello",
        "authorName": "Ada",
        "authorEmail": "ada@example.com",
        "date": FIXED_DATE,
    }
    commit_info.update(overrides.pop("commitInfo", {}))  # type: ignore[arg-type]
    payload: Dict[str, object] = {
        "repo": "example",
        "baseCommit": "HEAD",
        "targetRef": "refs/heads/patch-1",
        "patch": HELLO_PATCH,
        "commitInfo": commit_info,
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------- runner double
@dataclass(slots=True)
class RecordedCall:
    args: tuple[str, ...]
    cwd: Path
    env: Dict[str, str]
    stdin: str | None

    @property
    def subcommand(self) -> str:
        return _subcommand(self.args)


def _subcommand(args: Sequence[str]) -> str:
    index = 1
    while index < len(args) and args[index] == "-c":
        index += 2
    return args[index] if index < len(args) else ""


@dataclass
class RecordingRunner:
    """In-memory command runner: records every call and replays canned results.

    ``git init`` creates the workspace ``objects`` directory so later stages
    see the layout a real init would leave behind.
    """

    commit_id: str = "0123456789abcdef0123456789abcdef01234567"
    calls: List[RecordedCall] = field(default_factory=list)
    responses: Dict[str, CommandResult] = field(default_factory=dict)

    def respond(self, subcommand: str, *, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.responses[subcommand] = CommandResult((), returncode, stdout, stderr)

    def subcommands(self) -> List[str]:
        return [call.subcommand for call in self.calls]

    def call(self, subcommand: str) -> RecordedCall:
        return next(call for call in self.calls if call.subcommand == subcommand)

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        stdin: str | None = None,
    ) -> CommandResult:
        call = RecordedCall(tuple(args), Path(cwd), dict(env or {}), stdin)
        self.calls.append(call)
        canned = self.responses.get(call.subcommand)
        if canned is not None:
            return CommandResult(call.args, canned.returncode, canned.stdout, canned.stderr)
        if call.subcommand == "init" and "GIT_DIR" in call.env:
            (Path(call.env["GIT_DIR"]) / "objects").mkdir(parents=True, exist_ok=True)
        if call.subcommand == "rev-parse":
            return CommandResult(call.args, 0, self.commit_id + "\n", "")
        return CommandResult(call.args, 0, "", "")


@pytest.fixture()
def recording_runner() -> RecordingRunner:
    return RecordingRunner()


def make_fake_git_dir(path: Path) -> Path:
    """Lay out just enough of a git directory for repository lookup."""

    (path / "objects").mkdir(parents=True)
    (path / "refs").mkdir()
    (path / "HEAD").write_text("ref: refs/heads/main\n", encoding="utf-8")
    return path
