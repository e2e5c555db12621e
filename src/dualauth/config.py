"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for dualauth:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.dualauth/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **User config** -- a single ``config.json`` holding
  :class:`~dualauth.models.AuthOptions`. Managed via :func:`load_options`
  and :func:`save_options`.
* **Precedence resolution** -- :func:`resolve_options` merges environment
  variables, project-local config and user config into the effective
  options.
* **Credential store location** -- :func:`get_store_path` is where the CLI
  keeps its :class:`~dualauth.store.file.FileStore`.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from dualauth.exceptions import ConfigError
from dualauth.models import AuthOptions

_APP_NAME = "dualauth"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "dualauth.json"
_STORE_FILENAME = "store.json"

ENV_PREFIX = "DUALAUTH_"

# Environment variable suffix -> AuthOptions field
_ENV_FIELDS = {
    "AUTH_URL": "auth_url",
    "REALM": "realm",
    "APP_CLIENT_ID": "app_client_id",
    "API_CLIENT_ID": "api_client_id",
    "GUEST_CLIENT_ID": "guest_client_id",
    "GUEST_ROLES": "guest_roles",
    "REDIRECT_URI": "redirect_uri",
}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _xdg_dir(env_var: str, default_segments: tuple[str, ...], fallback: str) -> Path:
    """Resolve ``$<env_var>/dualauth`` on XDG platforms, ``~/.dualauth/<fallback>`` elsewhere."""
    if not _is_xdg_platform():
        path = Path.home() / f".{_APP_NAME}"
        return path / fallback if fallback else path

    env_value = os.environ.get(env_var, "")
    base = Path(env_value) if env_value else Path.home().joinpath(*default_segments)
    return base / _APP_NAME


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/dualauth/`` (default ``~/.config/dualauth/``).
    On macOS/Windows: ``~/.dualauth/``.
    """
    path = _xdg_dir("XDG_CONFIG_HOME", (".config",), "")
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (credential store, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/dualauth/`` (default ``~/.local/share/dualauth/``).
    On macOS/Windows: ``~/.dualauth/data/``.
    """
    path = _xdg_dir("XDG_DATA_HOME", (".local", "share"), "data")
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_path() -> Path:
    """Path to the user config file."""
    return get_config_dir() / _CONFIG_FILENAME


def get_store_path() -> Path:
    """Path to the CLI's persistent credential store."""
    return get_data_dir() / _STORE_FILENAME


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write *data* to *path* atomically using a temp file and ``os.replace``.

    The temporary file lives in the same directory as *path* so the rename
    is atomic on POSIX. On any failure the temp file is removed.

    Args:
        path: Destination file.
        data: Text to write.
        mode: Permission bits applied to the temp file before *data* is
            written, e.g. ``0o600`` for secrets.
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
        fd = None
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


def _read_json(path: Path, label: str) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid {label} at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid {label} at {path}: expected a JSON object")
    return data


def load_options_data() -> dict[str, Any]:
    """Return the raw user config, or ``{}`` when the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON.
    """
    path = get_config_path()
    if not path.is_file():
        return {}
    return _read_json(path, "user config")


def load_options() -> AuthOptions:
    """Load the user config from the XDG config directory.

    Returns:
        The validated :class:`~dualauth.models.AuthOptions`; defaults when
        the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    return _validate(load_options_data(), f"user config at {get_config_path()}")


def save_options(options: AuthOptions) -> None:
    """Persist *options* atomically as the user config.

    Unset fields are left out of the file.
    """
    data = options.model_dump(mode="json", exclude_none=True)
    atomic_write(get_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./dualauth.json``.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a valid JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    return _read_json(path, "project config")


# --- Environment ---


def load_env_overrides() -> dict[str, Any]:
    """Collect ``DUALAUTH_*`` environment variables as option overrides.

    ``DUALAUTH_GUEST_ROLES`` is a comma-separated list; an empty value
    means "no roles".
    """
    overrides: dict[str, Any] = {}
    for suffix, field_name in _ENV_FIELDS.items():
        value = os.environ.get(ENV_PREFIX + suffix)
        if value is None:
            continue
        if field_name == "guest_roles":
            overrides[field_name] = [role.strip() for role in value.split(",") if role.strip()]
        elif value:
            overrides[field_name] = value
    return overrides


# --- Precedence resolution ---


def resolve_options() -> AuthOptions:
    """Resolve the effective options with the full precedence chain.

    Precedence (high to low):
        1. Environment variables (``DUALAUTH_AUTH_URL``, ...)
        2. Project config (``./dualauth.json``)
        3. User config (``~/.config/dualauth/config.json``)
        4. Defaults

    Raises:
        ConfigError: If any layer is invalid.
    """
    data = load_options_data()

    project = load_project_config()
    if project is not None:
        data.update(project)

    data.update(load_env_overrides())

    return _validate(data, "resolved configuration")


def _validate(data: dict[str, Any], label: str) -> AuthOptions:
    try:
        return AuthOptions.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid {label}: {exc}") from exc
