"""CLI commands for running and exercising the patch commit server."""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
import uvicorn
import yaml
from pydantic import ValidationError

from .config import ConfigError, ServerConfig, load_config
from .errors import PatchCommitError
from .protocol import CommitInfo, PatchRequest
from .server import create_app
from .service import CommitService
from .utils.logging import setup_logging

APP_HELP = "Create commits in canonical git repositories from patches."

app = typer.Typer(help=APP_HELP)

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to the YAML configuration file (default: ./patchcommit.yaml if present).",
)


def _load(config: Optional[str]) -> ServerConfig:
    try:
        return load_config(Path(config) if config else None)
    except ConfigError as error:
        typer.echo(f"Failed to load config: {error}", err=True)
        raise typer.Exit(code=1) from error


def _read_patch(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    path = Path(source)
    if not path.exists():
        raise typer.BadParameter(f"Patch file not found: {path}")
    return path.read_text(encoding="utf-8")


@app.command()
def serve(
    config: Optional[str] = ConfigOption,
    host: Optional[str] = typer.Option(None, "--host", help="Override the bind address."),
    port: Optional[int] = typer.Option(None, "--port", help="Override the listen port."),
) -> None:
    """Run the HTTP server."""

    settings = _load(config)
    setup_logging(settings.log_level)
    if not settings.repos_dir.is_dir():
        typer.echo(f"Repositories root does not exist: {settings.repos_dir}", err=True)
        raise typer.Exit(code=1)
    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
        log_config=None,
    )


@app.command("create-commit")
def create_commit(
    repo: str = typer.Argument(..., help="Repository name under the repositories root."),
    base: str = typer.Option(..., "--base", help="Base commit the patch applies to."),
    ref: str = typer.Option(..., "--ref", help="Ref to publish, e.g. refs/heads/patch-1."),
    patch: str = typer.Option("-", "--patch", help="Patch file, or '-' for stdin."),
    message: str = typer.Option("", "--message", "-m"),
    author_name: str = typer.Option("", "--author-name"),
    author_email: str = typer.Option("", "--author-email"),
    date: Optional[datetime] = typer.Option(
        None,
        "--date",
        help="Author/committer date (ISO 8601). Defaults to now.",
    ),
    config: Optional[str] = ConfigOption,
) -> None:
    """Create a commit locally, without going through the HTTP server."""

    settings = _load(config)
    setup_logging(settings.log_level)
    try:
        request = PatchRequest(
            repo=repo,
            base_commit=base,
            target_ref=ref,
            patch=_read_patch(patch),
            commit_info=CommitInfo(
                message=message,
                author_name=author_name,
                author_email=author_email,
                date=date or datetime.now(timezone.utc),
            ),
        )
    except ValidationError as error:
        typer.echo(f"Invalid request: {error}", err=True)
        raise typer.Exit(code=2) from error

    service = CommitService(settings)
    try:
        response = service.create_commit_from_patch(request)
    except PatchCommitError as error:
        typer.echo(error.describe(), err=True)
        raise typer.Exit(code=2 if error.is_client_error else 1) from error

    commit = service.resolve_ref(request.repo, response.rev)
    typer.echo(json.dumps({"rev": response.rev, "commit": commit}))


@app.command("show-config")
def show_config(config: Optional[str] = ConfigOption) -> None:
    """Print the effective configuration as YAML."""

    settings = _load(config)
    typer.echo(yaml.safe_dump(settings.to_dict(), sort_keys=False).rstrip())


if __name__ == "__main__":
    app()
