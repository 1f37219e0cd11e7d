from __future__ import annotations

import os
from pathlib import Path

APP_NAME = "camfleet"
CONFIG_FILENAME = "config.toml"

# Fallbacks under $HOME when the XDG variable is unset
_XDG_FALLBACKS = {
    "XDG_CONFIG_HOME": (".config",),
    "XDG_DATA_HOME": (".local", "share"),
}


def xdg_home(variable: str) -> Path:
    """Base directory named by an XDG variable.

    Empty and relative values are ignored, as the XDG base directory rules
    require.
    """
    value = os.environ.get(variable, "")
    if value and os.path.isabs(value):
        return Path(value)
    return Path.home().joinpath(*_XDG_FALLBACKS[variable])


def default_config_path() -> Path:
    return xdg_home("XDG_CONFIG_HOME") / APP_NAME / CONFIG_FILENAME


def default_data_dir() -> Path:
    """Where ``cameras.toml`` lives unless ``[database] path`` says otherwise."""
    return xdg_home("XDG_DATA_HOME") / APP_NAME


def expand_path(value: str) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(value)))
