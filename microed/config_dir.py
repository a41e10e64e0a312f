"""Locating and creating the editor's configuration directory."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional


class ConfigDirError(Exception):
    """The configuration directory could not be set up as asked.

    ``config_dir`` holds the directory that is in use anyway, or None when
    there is none.
    """

    def __init__(self, message: str, config_dir: Optional[str] = None) -> None:
        super().__init__(message)
        self.config_dir = config_dir


def _default_config_dir() -> str:
    micro_home = os.environ.get("MICRO_CONFIG_HOME", "")
    if micro_home:
        return micro_home
    xdg_home = os.environ.get("XDG_CONFIG_HOME", "")
    if not xdg_home:
        try:
            home = Path.home()
        except RuntimeError as exc:
            raise ConfigDirError(
                "Error finding your home directory\nCan't load config files: " + str(exc)
            ) from exc
        xdg_home = os.path.join(home, ".config")
    return os.path.join(xdg_home, "micro")


def init_config_dir(flag_config_dir: Optional[str] = None) -> str:
    """Find the configuration directory following the XDG convention and return it.

    An existing ``flag_config_dir`` is used as is. Otherwise the default
    directory is created if needed; when ``flag_config_dir`` was given but does
    not exist, ConfigDirError is raised after the default has been set up,
    carrying that default in ``config_dir``.
    """
    config_dir = _default_config_dir()
    warning: Optional[str] = None

    if flag_config_dir:
        if os.path.exists(flag_config_dir):
            return flag_config_dir
        warning = f"Error: {flag_config_dir} does not exist. Defaulting to {config_dir}."

    try:
        os.makedirs(config_dir, exist_ok=True)
    except OSError as exc:
        raise ConfigDirError("Error creating configuration directory: " + str(exc)) from exc

    if warning:
        raise ConfigDirError(warning, config_dir)
    return config_dir