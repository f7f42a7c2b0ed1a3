from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from patchcommit.config import ConfigError, ServerConfig, load_config


def _write(path: Path, text: str) -> Path:
    path.write_text(textwrap.dedent(text).lstrip(), encoding="utf-8")
    return path


def test_defaults_without_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_config(environ={})

    assert config == ServerConfig()


def test_yaml_sections_and_relative_repos_dir(tmp_path: Path) -> None:
    config_path = _write(
        tmp_path / "patchcommit.yaml",
        """
        server:
          repos_dir: data/repos
          port: 4000
          request_timeout: 12.5
        commit:
          default_author_name: Review Bot
          committer_email: bot@example.com
        logging:
          log_level: DEBUG
        """,
    )

    config = load_config(config_path, environ={})

    assert config.repos_dir == (tmp_path / "data" / "repos").resolve()
    assert config.port == 4000
    assert config.request_timeout == 12.5
    assert config.default_author_name == "Review Bot"
    assert config.committer_email == "bot@example.com"
    assert config.log_level == "DEBUG"
    assert config.default_message == ServerConfig().default_message


def test_environment_overrides_file(tmp_path: Path) -> None:
    config_path = _write(
        tmp_path / "patchcommit.yaml",
        """
        server:
          port: 4000
        """,
    )

    config = load_config(
        config_path,
        environ={"PATCHCOMMIT_PORT": "5000", "PATCHCOMMIT_DEFAULT_MESSAGE": "automated change"},
    )

    assert config.port == 5000
    assert config.default_message == "automated change"


def test_missing_explicit_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "absent.yaml", environ={})


@pytest.mark.parametrize(
    "body",
    [
        "server: [unclosed\n",
        "- just\n- a list\n",
        "server:\n  unknown_key: 1\n",
        "extras:\n  port: 1\n",
        "commit:\n  port: 1\n",
    ],
)
def test_invalid_files_raise_config_error(tmp_path: Path, body: str) -> None:
    config_path = tmp_path / "patchcommit.yaml"
    config_path.write_text(body, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(config_path, environ={})


@pytest.mark.parametrize(
    "environ",
    [{"PATCHCOMMIT_PORT": "eighty"}, {"PATCHCOMMIT_REQUEST_TIMEOUT": "-1"}],
)
def test_invalid_environment_value(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, environ: dict[str, str]
) -> None:
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ConfigError):
        load_config(environ=environ)
