"""Configuration management with XDG paths, atomic writes, and environment overrides.

This module handles everything cloudcli reads from its surroundings:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.cloudcli/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Atomic writes** -- :func:`_atomic_write` writes through a temp file and
  renames it into place, so a crash never leaves a torn file behind.
* **Environment overrides** -- :func:`load_settings` reads the development
  overrides for the API base URL, the web base URL and the callback port
  once, at the CLI edge, into a :class:`~cloudcli.models.CloudSettings`.
  Nothing below the CLI layer looks at ``os.environ``.
"""

from __future__ import annotations

import os
import platform
import tempfile
from pathlib import Path
from typing import Mapping, Optional

from pydantic import ValidationError

from cloudcli.exceptions import ConfigError
from cloudcli.models import (
    DEFAULT_API_BASE_URL,
    DEFAULT_WEB_BASE_URL,
    CloudSettings,
)

_APP_NAME = "cloudcli"

API_BASE_URL_ENV = "CLOUDCLI_DEV_API_BASE_URL"
"""Overrides the cloud API base URL (development only)."""

WEB_BASE_URL_ENV = "CLOUDCLI_DEV_WEB_BASE_URL"
"""Overrides the web dashboard base URL (development only)."""

SIGNIN_PORT_ENV = "CLOUDCLI_DEV_SIGNIN_PORT"
"""Pins the sign-in callback listener to a fixed port (development only)."""


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
    """Return the configuration directory.

    On Linux/BSD: ``$XDG_CONFIG_HOME/cloudcli/`` (default ``~/.config/cloudcli/``).
    On macOS/Windows: ``~/.cloudcli/``.

    The directory is not created here; the session store creates it with
    owner-only permissions on first write.

    Returns:
        Absolute path to the configuration directory.
    """
    if _is_xdg_platform():
        return _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    return _fallback_base_dir()


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/cloudcli/`` (default ``~/.local/share/cloudcli/``).
    On macOS/Windows: ``~/.cloudcli/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str, mode: int = 0o644) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    Permissions are set to *mode* before any content is written. On any
    failure the temp file is cleaned up and the exception re-raised.
    """
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
        os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Environment overrides ---


def _parse_port(raw: str) -> int:
    """Parse a port override, rejecting anything that is not a TCP port number."""
    try:
        port = int(raw)
    except ValueError:
        raise ConfigError(
            f"{SIGNIN_PORT_ENV} must be a port number, got {raw!r}"
        ) from None
    if not 0 <= port <= 65535:
        raise ConfigError(f"{SIGNIN_PORT_ENV} must be between 0 and 65535, got {port}")
    return port


def load_settings(environ: Optional[Mapping[str, str]] = None) -> CloudSettings:
    """Resolve the sign-in settings from environment overrides.

    Empty variables are treated as unset, so ``FOO= cloudcli signin`` falls
    back to the production endpoints.

    Args:
        environ: Mapping to read from. Defaults to ``os.environ``.

    Returns:
        The resolved :class:`~cloudcli.models.CloudSettings`.

    Raises:
        ConfigError: If the port override is not a valid port number.
    """
    env = os.environ if environ is None else environ

    port_raw = env.get(SIGNIN_PORT_ENV, "")
    try:
        return CloudSettings(
            api_base_url=env.get(API_BASE_URL_ENV) or DEFAULT_API_BASE_URL,
            web_base_url=env.get(WEB_BASE_URL_ENV) or DEFAULT_WEB_BASE_URL,
            signin_port=_parse_port(port_raw) if port_raw else None,
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid cloud settings: {exc}") from exc
