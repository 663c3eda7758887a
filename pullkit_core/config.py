"""Layered settings resolution for pullkit.

Settings are looked up in this order, first hit wins:

1. explicit CLI overrides,
2. environment variables (``PULLKIT_<KEY>``),
3. a project ``pullkit.toml`` in the start directory or one of its parents,
4. the user config file (``<user config dir>/config.toml``),
5. built-in defaults.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .errors import ConfigError
from .paths import UserDirs

PROJECT_CONFIG_NAME = "pullkit.toml"
USER_CONFIG_NAME = "config.toml"
ENV_PREFIX = "PULLKIT_"

_DEFAULTS: dict[str, str] = {
    "downloads_dir": "downloads",
    "npm_registry": "https://registry.npmjs.org",
    "docker_registry": "https://registry-1.docker.io",
    "docker_auth_url": "https://auth.docker.io/token",
    "docker_auth_service": "registry.docker.io",
    "timeout_seconds": "30",
    "chunk_size": "65536",
    "log_level": "WARNING",
}


def _load_config_from_file(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError):
        return {}
    section = data.get("pullkit")
    if isinstance(section, dict):
        data = {**data, **section}
    return {key: str(value) for key, value in data.items() if not isinstance(value, dict)}


@dataclass(frozen=True)
class PullSettings:
    downloads_dir: Path
    npm_registry: str
    docker_registry: str
    docker_auth_url: str | None
    docker_auth_service: str | None
    timeout_seconds: float
    chunk_size: int
    log_level: str

    @property
    def npm_packages_dir(self) -> Path:
        return self.downloads_dir / "npm-packages"

    @property
    def docker_images_dir(self) -> Path:
        return self.downloads_dir / "docker-images"


@dataclass
class SettingsResolver:
    """Resolve settings while honoring layered configuration."""

    user_dirs: UserDirs | None = None
    cli_overrides: Mapping[str, Any] | None = None
    env: Mapping[str, str] | None = None
    defaults: Mapping[str, str] | None = None

    def __post_init__(self) -> None:
        self.user_dirs = self.user_dirs or UserDirs()
        self.cli_overrides = {
            key: str(value) for key, value in (self.cli_overrides or {}).items() if value is not None
        }
        self.env = self.env if self.env is not None else os.environ
        base_defaults = dict(_DEFAULTS)
        if self.defaults:
            base_defaults.update(self.defaults)
        self.defaults = base_defaults

    # ---------- Public API ----------

    def find_project_config(self, start_dir: Path | None = None) -> Path | None:
        start = (Path(start_dir) if start_dir else Path.cwd()).resolve()
        for current in (start, *start.parents):
            candidate = current / PROJECT_CONFIG_NAME
            if candidate.is_file():
                return candidate
        return None

    def resolve_setting(self, key: str, start_dir: Path | None = None) -> str | None:
        """Return the value for `key` using CLI, env, project, user, defaults order."""
        if value := self.cli_overrides.get(key):
            return value
        if value := self.env.get(ENV_PREFIX + key.upper()):
            return value
        if value := self._project_layer(start_dir).get(key):
            return value
        if value := self._user_layer().get(key):
            return value
        return self.defaults.get(key)

    def load(self, start_dir: Path | None = None) -> PullSettings:
        def get(key: str) -> str:
            return self.resolve_setting(key, start_dir) or ""

        return PullSettings(
            downloads_dir=Path(get("downloads_dir")).expanduser(),
            npm_registry=get("npm_registry").rstrip("/"),
            docker_registry=get("docker_registry").rstrip("/"),
            docker_auth_url=get("docker_auth_url") or None,
            docker_auth_service=get("docker_auth_service") or None,
            timeout_seconds=_positive_float("timeout_seconds", get("timeout_seconds")),
            chunk_size=_positive_int("chunk_size", get("chunk_size")),
            log_level=get("log_level").upper() or "WARNING",
        )

    # ---------- Internal helpers ----------

    def _project_layer(self, start_dir: Path | None) -> dict[str, str]:
        path = self.find_project_config(start_dir)
        if path is None:
            return {}
        return _load_config_from_file(path)

    def _user_layer(self) -> dict[str, str]:
        return _load_config_from_file(self.user_dirs.config_dir() / USER_CONFIG_NAME)


def load_settings(
    overrides: Mapping[str, Any] | None = None,
    *,
    start_dir: Path | None = None,
    user_dirs: UserDirs | None = None,
    env: Mapping[str, str] | None = None,
) -> PullSettings:
    resolver = SettingsResolver(user_dirs=user_dirs, cli_overrides=overrides, env=env)
    return resolver.load(start_dir)


def _positive_float(key: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {raw!r}")
    return value


def _positive_int(key: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {raw!r}")
    return value
