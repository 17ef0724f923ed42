"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for cachedsession:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.cachedsession/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **User config** -- A single :class:`~cachedsession.models.SessionConfig`
  JSON file storing defaults (database path, TTL, cacheable methods).
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and user config into the
  final effective configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from cachedsession.exceptions import ConfigError
from cachedsession.models import SessionConfig

_APP_NAME = "cachedsession"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "cachedsession.json"
_DB_FILENAME = "cache.db"

ENV_DB = "CACHEDSESSION_DB"
ENV_EXPIRE_AFTER = "CACHEDSESSION_EXPIRE_AFTER"
ENV_STALE_IF_ERROR = "CACHEDSESSION_STALE_IF_ERROR"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/cachedsession/`` (default
    ``~/.config/cachedsession/``).  On macOS/Windows: ``~/.cachedsession/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds the default response database.  Its contents can be deleted at any
    time.

    On Linux/BSD: ``$XDG_CACHE_HOME/cachedsession/`` (default
    ``~/.cache/cachedsession/``).  On macOS/Windows: ``~/.cachedsession/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/cachedsession/`` (default
    ``~/.local/share/cachedsession/``).  On macOS/Windows: ``~/.cachedsession/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def default_db_path() -> Path:
    """Path of the response database used when none is configured."""
    return get_cache_dir() / _DB_FILENAME


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.  On any failure the
    temp file is cleaned up.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- User config ---


def _config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid {what} at {path}: {exc}") from exc


def load_config() -> SessionConfig:
    """Load the user configuration.

    Returns:
        The deserialised :class:`~cachedsession.models.SessionConfig`, or a
        default instance if the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = _config_path()
    if not path.is_file():
        return SessionConfig()
    data = _read_json(path, "config")
    try:
        return SessionConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: SessionConfig) -> None:
    """Persist the user configuration atomically."""
    data = config.model_dump(mode="json")
    _atomic_write(_config_path(), json.dumps(data, indent=2) + "\n")


def load_project_config() -> Optional[dict[str, Any]]:
    """Load ``./cachedsession.json`` if present.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file is not valid JSON or not an object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    data = _read_json(path, "project config")
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


# --- Precedence resolution ---


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"Environment variable {name} must be a boolean, got: {raw!r}")


def resolve_config(cli_db_path: Optional[str] = None) -> SessionConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. CLI flags (``cli_db_path``)
        2. Environment variables (``CACHEDSESSION_DB``,
           ``CACHEDSESSION_EXPIRE_AFTER``, ``CACHEDSESSION_STALE_IF_ERROR``)
        3. Project config (``./cachedsession.json``)
        4. User config (``~/.config/cachedsession/config.json``)
        5. Defaults

    The returned config always has ``db_path`` set.

    Raises:
        ConfigError: On invalid files or environment values.
    """
    data = load_config().model_dump()

    project = load_project_config()
    if project:
        data.update(project)

    env_db = os.environ.get(ENV_DB)
    if env_db:
        data["db_path"] = env_db

    env_ttl = os.environ.get(ENV_EXPIRE_AFTER)
    if env_ttl:
        try:
            data["expire_after"] = int(env_ttl)
        except ValueError:
            raise ConfigError(
                f"Environment variable {ENV_EXPIRE_AFTER} must be an integer, got: {env_ttl!r}"
            ) from None

    env_stale = os.environ.get(ENV_STALE_IF_ERROR)
    if env_stale:
        data["stale_if_error"] = _parse_bool(ENV_STALE_IF_ERROR, env_stale)

    if cli_db_path is not None:
        data["db_path"] = cli_db_path

    try:
        config = SessionConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc

    if not config.db_path:
        config.db_path = str(default_db_path())
    return config
