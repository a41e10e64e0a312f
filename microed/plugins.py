"""Discovery and lookup of plugins in the configuration directory."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from microed.rtfiles import RealFile, RuntimeFile, RuntimeFiles
from microed.settings import Settings

log = logging.getLogger(__name__)

_IS_ID = re.compile(r"[_A-Za-z0-9]+")


class PluginError(Exception):
    """A plugin is missing or its description cannot be read."""


@dataclass
class PluginInfo:
    """The human-readable description of a plugin."""

    name: str = ""
    description: str = ""
    website: str = ""


_INFO_FIELDS = {"name": "name", "description": "description", "website": "website"}


def parse_plugin_info(data: Union[bytes, str]) -> PluginInfo:
    """Parse the first entry of a plugin's JSON info file."""
    text = data.decode("utf-8") if isinstance(data, bytes) else data
    try:
        value, _ = json.JSONDecoder().raw_decode(text.lstrip())
    except (ValueError, UnicodeDecodeError) as exc:
        raise PluginError(str(exc)) from exc
    if not isinstance(value, list):
        raise PluginError("plugin info must be a JSON array")
    if not value:
        raise PluginError("plugin info array is empty")
    entry = value[0]
    if entry is None:
        return PluginInfo()
    if not isinstance(entry, dict):
        raise PluginError("plugin info entry must be an object")
    fields: dict[str, Any] = {}
    for key, item in entry.items():
        attr = _INFO_FIELDS.get(key.lower())
        if attr is None:
            continue
        if item is None:
            continue
        if not isinstance(item, str):
            raise PluginError(f"field {key!r} must be a string")
        fields[attr] = item
    return PluginInfo(**fields)


@dataclass
class Plugin:
    """A plugin's location, description and source files."""

    name: str
    dir_name: str
    info: Optional[PluginInfo] = None
    srcs: list[RuntimeFile] = field(default_factory=list)
    loaded: bool = False
    default: bool = False

    def is_loaded(self, settings: Settings) -> bool:
        """Tell whether the plugin is enabled.

        A plugin with no option of its own counts as enabled.
        """
        if self.name in settings.global_settings:
            return bool(settings.global_settings[self.name]) and self.loaded
        return True


class PluginRegistry:
    """All plugins found in the configuration directory, enabled or not."""

    def __init__(self, settings: Settings, runtime_files: RuntimeFiles) -> None:
        self.settings = settings
        self.runtime_files = runtime_files
        self.config_dir = settings.config_dir
        self.plugins: list[Plugin] = []

    def discover(self, config_dir: Union[str, os.PathLike[str]]) -> list[Plugin]:
        """Find init.lua and every plugin directory under ``<config_dir>/plug``."""
        self.config_dir = os.fspath(config_dir)
        self.plugins = []

        init_lua = os.path.join(self.config_dir, "init.lua")
        if os.path.exists(init_lua):
            self.plugins.append(
                Plugin(name="initlua", dir_name="initlua", srcs=[RealFile(init_lua)])
            )

        plug_dir = os.path.join(self.config_dir, "plug")
        try:
            entries = sorted(os.listdir(plug_dir))
        except OSError:
            entries = []

        for dir_name in entries:
            plug_path = os.path.join(plug_dir, dir_name)
            if not os.path.isdir(plug_path):
                continue
            plugin = self._scan(plug_path, dir_name)
            if not _IS_ID.fullmatch(plugin.name) or not plugin.srcs:
                log.info("%s is not a plugin", plugin.name)
                continue
            self.plugins.append(plugin)
        return list(self.plugins)

    @staticmethod
    def _scan(plug_path: str, dir_name: str) -> Plugin:
        plugin = Plugin(name=dir_name, dir_name=dir_name)
        try:
            names = sorted(os.listdir(plug_path))
        except OSError:
            names = []
        for filename in names:
            full = os.path.join(plug_path, filename)
            if filename.endswith(".lua"):
                plugin.srcs.append(RealFile(full))
            elif filename.endswith(".json"):
                try:
                    with open(full, "rb") as handle:
                        info = parse_plugin_info(handle.read())
                except (OSError, PluginError):
                    continue
                plugin.info = info
                plugin.name = info.name
        return plugin

    def find(self, name: str) -> Optional[Plugin]:
        """Return the enabled plugin called ``name``, or None."""
        return next(
            (p for p in self.plugins if p.is_loaded(self.settings) and p.name == name),
            None,
        )

    def find_any(self, name: str) -> Optional[Plugin]:
        """Return the plugin called ``name`` whether enabled or not, or None."""
        return next((p for p in self.plugins if p.name == name), None)

    def _require(self, name: str) -> Plugin:
        plugin = self.find(name)
        if plugin is None:
            raise PluginError("Plugin " + name + " does not exist")
        return plugin

    def add_runtime_file(self, plugin: str, filetype: int, file_path: str) -> None:
        """Register a file from a plugin's directory as a runtime file."""
        found = self._require(plugin)
        full_path = os.path.join(self.config_dir, "plug", found.dir_name, file_path)
        if not os.path.exists(full_path):
            raise PluginError(f"{full_path} does not exist")
        self.runtime_files.add_real_file(filetype, RealFile(full_path))

    def add_runtime_files_from_directory(
        self, plugin: str, filetype: int, directory: str, pattern: str
    ) -> None:
        """Register the matching files of a directory inside a plugin's directory."""
        found = self._require(plugin)
        full_path = os.path.join(self.config_dir, "plug", found.dir_name, directory)
        if os.path.exists(full_path):
            self.runtime_files.add_directory(filetype, full_path, pattern)