"""FastAPI surface for the commit service."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse

from .config import ServerConfig, load_config
from .errors import Cancelled, InvalidRequest, PatchCommitError, RepoNotFound
from .protocol import PatchRequest, PatchResponse
from .service import CommitService

LOGGER = logging.getLogger(__name__)


def status_for(error: PatchCommitError) -> int:
    """Map an error to an HTTP status; only the status class is contractual."""

    if isinstance(error, RepoNotFound):
        return 404
    if isinstance(error, Cancelled):
        return 503
    if error.is_client_error:
        return 400
    return 500


def create_app(config: ServerConfig | None = None, *, service: CommitService | None = None) -> FastAPI:
    """Build the application around ``service`` (or one built from ``config``)."""

    if service is None:
        service = CommitService(config or load_config())

    app = FastAPI(title="patchcommit", version="0.1.0")
    app.state.service = service

    @app.exception_handler(PatchCommitError)
    async def _handle_commit_error(_: Request, error: PatchCommitError) -> PlainTextResponse:
        status = status_for(error)
        if status >= 500:
            LOGGER.error("%s", error.describe())
        else:
            LOGGER.info("%s", error.describe())
        return PlainTextResponse(error.describe(), status_code=status)

    @app.exception_handler(RequestValidationError)
    async def _handle_invalid(_: Request, error: RequestValidationError) -> PlainTextResponse:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in item.get('loc', ()))}: {item.get('msg', 'invalid')}"
            for item in error.errors()
        )
        return PlainTextResponse(InvalidRequest(problems).describe(), status_code=400)

    @app.post("/create-commit-from-patch", response_model=PatchResponse)
    def create_commit_from_patch(body: PatchRequest) -> PatchResponse:
        return service.create_commit_from_patch(body)

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app


__all__ = ["create_app", "status_for"]
