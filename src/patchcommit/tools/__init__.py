"""Building blocks of the create-commit-from-patch pipeline."""

from .pipeline import CancelSignal, PatchPipeline, PipelineResult, PipelineStage, parse_apply_failures
from .promote import promote
from .publish import RefLocks, RefPublisher
from .runner import CommandResult, CommandRunner, SubprocessRunner
from .vcs import CanonicalRepository, GitError
from .workspace import Workspace, WorkspaceCounter, WorkspaceProvisioner, scoped_workspace

__all__ = [
    "CancelSignal",
    "CanonicalRepository",
    "CommandResult",
    "CommandRunner",
    "GitError",
    "PatchPipeline",
    "PipelineResult",
    "PipelineStage",
    "RefLocks",
    "RefPublisher",
    "SubprocessRunner",
    "Workspace",
    "WorkspaceCounter",
    "WorkspaceProvisioner",
    "parse_apply_failures",
    "promote",
    "scoped_workspace",
]
