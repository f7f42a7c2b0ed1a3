"""Request orchestration: workspace, pipeline, promotion and publish."""

from __future__ import annotations

import logging
import time

from .config import ServerConfig
from .errors import PatchCommitError
from .protocol import CommitMetadata, PatchRequest, PatchResponse, normalize_repo
from .tools.pipeline import CancelSignal, PatchPipeline
from .tools.promote import promote
from .tools.publish import RefPublisher
from .tools.runner import CommandRunner, SubprocessRunner
from .tools.vcs import CanonicalRepository
from .tools.workspace import WorkspaceProvisioner, scoped_workspace
from .utils.logging import emit_event

LOGGER = logging.getLogger(__name__)


class CommitService:
    """Create commits in canonical repositories from base revisions and patches.

    Canonical storage is touched only by the promote and publish steps, after
    the commit has been built and verified in a private workspace.
    """

    def __init__(
        self,
        config: ServerConfig,
        *,
        runner: CommandRunner | None = None,
        provisioner: WorkspaceProvisioner | None = None,
        publisher: RefPublisher | None = None,
    ) -> None:
        self.config = config
        self.runner = runner or SubprocessRunner()
        self.provisioner = provisioner or WorkspaceProvisioner(config.repos_dir)
        self.publisher = publisher or RefPublisher()

    def repository(self, name: str) -> CanonicalRepository:
        return CanonicalRepository.locate(
            self.config.repos_dir,
            normalize_repo(name),
            runner=self.runner,
            git_binary=self.config.git_binary,
        )

    def new_cancel_signal(self) -> CancelSignal:
        return CancelSignal(self.config.request_timeout or None)

    def create_commit_from_patch(
        self,
        request: PatchRequest,
        *,
        cancel: CancelSignal | None = None,
    ) -> PatchResponse:
        """Build, promote and publish a commit for ``request``.

        Raises a :class:`~patchcommit.errors.PatchCommitError` subclass on
        failure.  The workspace is removed before this method returns, however
        it returns.
        """

        started = time.monotonic()
        cancel = cancel or self.new_cancel_signal()
        metadata = CommitMetadata.resolve(request.commit_info, self.config)
        try:
            repo = self.repository(request.repo)
            with scoped_workspace(self.provisioner, repo.name) as workspace:
                pipeline = PatchPipeline(
                    runner=self.runner,
                    canonical_objects=repo.objects_dir,
                    git_binary=self.config.git_binary,
                    cancel=cancel,
                )
                result = pipeline.execute(
                    workspace,
                    base=request.base_commit,
                    patch=request.patch,
                    metadata=metadata,
                    target_ref=request.target_ref,
                )
                commit = result.unwrap()

                cancel.check("promoting objects")
                promote(workspace.objects_dir, repo.objects_dir)

                cancel.check("publishing ref")
                self.publisher.publish(repo, request.target_ref, commit)
        except PatchCommitError as error:
            emit_event(
                "create_commit_failed",
                repo=request.repo,
                ref=request.target_ref,
                stage=error.stage,
                error=type(error).__name__,
                retryable=error.retryable,
                elapsed=round(time.monotonic() - started, 3),
            )
            raise

        emit_event(
            "create_commit_succeeded",
            repo=request.repo,
            ref=request.target_ref,
            commit=commit,
            elapsed=round(time.monotonic() - started, 3),
        )
        return PatchResponse(rev=request.target_ref)

    def resolve_ref(self, repo: str, ref: str) -> str | None:
        """Return the commit ``ref`` currently points at in ``repo``."""

        return self.repository(repo).resolve_ref(ref)


__all__ = ["CommitService"]
