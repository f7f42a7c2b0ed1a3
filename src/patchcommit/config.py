"""Server configuration loaded from YAML with environment overrides."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

DEFAULT_CONFIG_NAME = "patchcommit.yaml"
ENV_PREFIX = "PATCHCOMMIT_"

# YAML section each setting lives under.
_SECTIONS: Dict[str, tuple[str, ...]] = {
    "server": ("repos_dir", "git_binary", "request_timeout", "host", "port"),
    "commit": (
        "default_message",
        "default_author_name",
        "default_author_email",
        "committer_name",
        "committer_email",
    ),
    "logging": ("log_level",),
}


class ConfigError(ValueError):
    """Raised when the configuration file or environment is invalid."""


@dataclass(frozen=True, slots=True)
class ServerConfig:
    repos_dir: Path = Path("repos")
    git_binary: str = "git"
    request_timeout: float = 60.0
    host: str = "127.0.0.1"
    port: int = 3178
    default_message: str = "<patchcommit> Creating commit from patch"
    default_author_name: str = "patchcommit"
    default_author_email: str = "patchcommit@localhost"
    committer_name: str = "patchcommit-committer"
    committer_email: str = "patchcommit@localhost"
    log_level: str = "INFO"

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["repos_dir"] = self.repos_dir.as_posix()
        return payload


def _coerce(name: str, raw: Any) -> Any:
    if name == "repos_dir":
        return Path(str(raw)).expanduser()
    if name == "port":
        return int(raw)
    if name == "request_timeout":
        return float(raw)
    return str(raw)


def _flatten(data: Mapping[str, Any], source: str) -> dict[str, Any]:
    known = {field.name for field in fields(ServerConfig)}
    values: dict[str, Any] = {}
    for section, section_keys in _SECTIONS.items():
        block = data.get(section)
        if block is None:
            continue
        if not isinstance(block, Mapping):
            raise ConfigError(f"{source}: section '{section}' must be a mapping")
        for key, value in block.items():
            if key not in known or key not in section_keys:
                raise ConfigError(f"{source}: unknown setting '{section}.{key}'")
            values[key] = value
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ConfigError(f"{source}: unknown section(s): {', '.join(unknown)}")
    return values


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for field in fields(ServerConfig):
        raw = environ.get(ENV_PREFIX + field.name.upper())
        if raw is not None and raw.strip():
            values[field.name] = raw.strip()
    return values


def load_config(
    config_path: Path | str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> ServerConfig:
    """Build a :class:`ServerConfig` from ``config_path`` and the environment.

    A missing ``config_path`` is only an error when it was passed explicitly;
    otherwise ``patchcommit.yaml`` in the current directory is used if present.
    Environment variables named ``PATCHCOMMIT_<SETTING>`` win over the file.
    Relative ``repos_dir`` values resolve against the config file's directory.
    """

    env = os.environ if environ is None else environ
    explicit = config_path is not None
    path = Path(config_path) if config_path is not None else Path(DEFAULT_CONFIG_NAME)

    values: dict[str, Any] = {}
    if path.exists():
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as error:
            raise ConfigError(f"Failed to parse {path}: {error}") from error
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: configuration must be a mapping at the top level")
        values.update(_flatten(data, str(path)))
        repos_dir = values.get("repos_dir")
        if repos_dir is not None and not Path(str(repos_dir)).expanduser().is_absolute():
            values["repos_dir"] = (path.parent / str(repos_dir)).resolve()
    elif explicit:
        raise ConfigError(f"Config file not found: {path}")

    values.update(_env_overrides(env))

    try:
        coerced = {name: _coerce(name, raw) for name, raw in values.items()}
    except (TypeError, ValueError) as error:
        raise ConfigError(f"Invalid configuration value: {error}") from error

    config = replace(ServerConfig(), **coerced)
    if config.request_timeout < 0:
        raise ConfigError("request_timeout must not be negative")
    return config


__all__ = ["ConfigError", "DEFAULT_CONFIG_NAME", "ServerConfig", "load_config"]
