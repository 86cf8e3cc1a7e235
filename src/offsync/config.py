"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for offsync:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.offsync/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Engine config** -- A single :class:`~offsync.models.EngineConfig`
  JSON file storing the version tag, API origin, manifest and sync policy.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables and the config file into the effective
  configuration.

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

from offsync.exceptions import ConfigError
from offsync.models import EngineConfig

_APP_NAME = "offsync"
_CONFIG_FILENAME = "config.json"

ENV_VERSION = "OFFSYNC_VERSION"
ENV_BASE_URL = "OFFSYNC_BASE_URL"
ENV_CACHE_DIR = "OFFSYNC_CACHE_DIR"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory layout (Linux/FreeBSD)."""
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

    On Linux/BSD: ``$XDG_CONFIG_HOME/offsync/`` (default ``~/.config/offsync/``).
    On macOS/Windows: ``~/.offsync/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds the response buckets and the mutation queue. Unlike a plain HTTP
    cache this directory also contains unsent writes, so it should not be
    deleted while mutations are pending.

    On Linux/BSD: ``$XDG_CACHE_HOME/offsync/`` (default ``~/.cache/offsync/``).
    On macOS/Windows: ``~/.offsync/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (session, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/offsync/`` (default ``~/.local/share/offsync/``).
    On macOS/Windows: ``~/.offsync/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def resolve_cache_dir(config: EngineConfig) -> Path:
    """Return the effective cache directory for *config*."""
    if config.cache.directory:
        path = Path(config.cache.directory).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        return path
    return get_cache_dir()


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    When *mode* is given the permissions are applied before any content is
    written.
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
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
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


# --- Engine config ---


def config_path() -> Path:
    """Path to the engine config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_config(path: Optional[Path] = None) -> EngineConfig:
    """Load the engine configuration.

    Args:
        path: Explicit file to read. Defaults to :func:`config_path`.

    Returns:
        The deserialised :class:`~offsync.models.EngineConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = path or config_path()
    if not path.is_file():
        return EngineConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return EngineConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: EngineConfig, path: Optional[Path] = None) -> None:
    """Persist the engine configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(path or config_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    version = os.environ.get(ENV_VERSION)
    if version:
        overrides["version"] = version
    base_url = os.environ.get(ENV_BASE_URL)
    if base_url:
        overrides["base_url"] = base_url
    cache_dir = os.environ.get(ENV_CACHE_DIR)
    if cache_dir:
        overrides["cache"] = {"directory": cache_dir}
    return overrides


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def resolve_config(
    cli_overrides: Optional[dict[str, Any]] = None,
    path: Optional[Path] = None,
) -> EngineConfig:
    """Build the effective configuration.

    Precedence, highest first: *cli_overrides*, environment variables
    (``OFFSYNC_VERSION``, ``OFFSYNC_BASE_URL``, ``OFFSYNC_CACHE_DIR``), the
    config file, built-in defaults. ``None`` values in *cli_overrides* are
    ignored so unset CLI flags never mask lower layers.

    Raises:
        ConfigError: If the merged data fails validation.
    """
    data = load_config(path).model_dump(mode="json")
    data = _deep_merge(data, _env_overrides())
    if cli_overrides:
        data = _deep_merge(
            data, {k: v for k, v in cli_overrides.items() if v is not None}
        )
    try:
        return EngineConfig.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
