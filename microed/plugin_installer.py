"""Finding plugins in channels and repositories, resolving their dependencies and installing them."""

from __future__ import annotations

import io
import json
import os
import shutil
import sys
import urllib.request
import zipfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, TextIO, Union

from microed.plugins import PluginError, parse_plugin_info
from microed.settings import _loads_lenient
from microed.versions import (
    Version,
    VersionError,
    VersionRange,
    any_version,
    parse_range,
    parse_tolerant,
    parse_version,
)

CORE_PLUGIN_NAME = "micro"


class ResolveError(Exception):
    """No set of plugin versions satisfies the requirements."""


def _unresolvable(name: str) -> ResolveError:
    return ResolveError(f'unable to find a matching version for "{name}"')


@dataclass
class PluginDependency:
    """A requirement on a plugin, or on the editor itself, in a version range."""

    name: str
    range: VersionRange


@dataclass(eq=False)
class PluginVersion:
    """One downloadable version of a plugin package."""

    package: "PluginPackage" = field(repr=False)
    version: Version
    url: str = ""
    require: list[PluginDependency] = field(default_factory=list)

    def download_and_install(self, target_root: Union[str, os.PathLike[str]], out: TextIO) -> None:
        """Download this version's zip archive and unpack it into ``<target_root>/<name>``.

        An archive whose entries all sit in one top directory is unpacked
        without that directory.
        """
        name = self.package.name
        print(f'Downloading "{name}" ({self.version}) from "{self.url}"', file=out)
        with urllib.request.urlopen(self.url) as response:
            data = response.read()
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            target_dir = Path(target_root) / name
            target_dir.mkdir(parents=True, exist_ok=True)
            root = target_dir.resolve()
            infos = archive.infolist()
            strip = _all_prefixed(infos)
            for info in infos:
                parts = info.filename.split("/")
                if strip:
                    parts = parts[1:]
                target = target_dir.joinpath(*[p for p in parts if p])
                if not target.resolve().is_relative_to(root):
                    raise ValueError(f"archive entry {info.filename!r} leaves the plugin directory")
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(info) as source, open(target, "wb") as dest:
                    shutil.copyfileobj(source, dest)


def _all_prefixed(infos: list[zipfile.ZipInfo]) -> bool:
    prefixed = False
    prefix = None
    for index, info in enumerate(infos):
        first = info.filename.split("/")[0]
        if index == 0:
            prefix = first
        elif first != prefix:
            return False
        else:
            prefixed = True
    return prefixed


@dataclass(eq=False)
class PluginPackage:
    """A plugin's metadata and all of its available versions."""

    name: str
    description: str = ""
    author: str = ""
    tags: list[str] = field(default_factory=list)
    versions: list[PluginVersion] = field(default_factory=list)

    def match(self, text: str) -> bool:
        """Tell whether a search text equals a tag or occurs in the name or description."""
        text = text.lower()
        if any(tag.lower() == text for tag in self.tags):
            return True
        return text in self.name.lower() or text in self.description.lower()

    def __str__(self) -> str:
        text = "Plugin: " + self.name + "\n"
        if self.author:
            text += "Author: " + self.author + "\n"
        if self.description:
            text += "\n" + self.description
        return text


def _field(obj: Mapping[str, Any], name: str) -> Any:
    if name in obj:
        return obj[name]
    lowered = name.lower()
    return next((v for k, v in obj.items() if k.lower() == lowered), None)


def _string(value: Any, what: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{what} must be a string")
    return value


def _parse_version_entry(
    obj: Any, package: PluginPackage, core_version_known: bool
) -> PluginVersion:
    if not isinstance(obj, dict):
        raise ValueError("plugin version must be an object")
    raw_version = _field(obj, "Version")
    version = Version(0, 0, 0) if raw_version is None else parse_version(_string(raw_version, "Version"))
    require_map = _field(obj, "Require") or {}
    if not isinstance(require_map, dict):
        raise ValueError("Require must be an object")
    require: list[PluginDependency] = []
    for dep_name, dep_range in require_map.items():
        range_text = _string(dep_range, "requirement")
        if dep_name == CORE_PLUGIN_NAME and not core_version_known:
            continue
        try:
            require.append(PluginDependency(dep_name, parse_range(range_text)))
        except VersionError:
            continue
    return PluginVersion(package, version, _string(_field(obj, "Url"), "Url"), require)


def _parse_package(obj: Any, core_version_known: bool) -> PluginPackage:
    if not isinstance(obj, dict):
        raise ValueError("plugin package must be an object")
    tags = _field(obj, "Tags") or []
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        raise ValueError("Tags must be a list of strings")
    package = PluginPackage(
        name=_string(_field(obj, "Name"), "Name"),
        description=_string(_field(obj, "Description"), "Description"),
        author=_string(_field(obj, "Author"), "Author"),
        tags=list(tags),
    )
    versions = _field(obj, "Versions") or []
    if not isinstance(versions, list):
        raise ValueError("Versions must be a list")
    package.versions = [_parse_version_entry(v, package, core_version_known) for v in versions]
    return package


def parse_packages(text: str, core_version_known: bool = True) -> list[PluginPackage]:
    """Parse the JSON list of plugin packages held by a repository.

    Requirements on the editor itself are dropped when its version is not
    known; requirements with malformed ranges are dropped too.
    """
    data = _loads_lenient(text)
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError("plugin repository data must be a list")
    return [_parse_package(item, core_version_known) for item in data]


def join_dependencies(
    first: Iterable[PluginDependency], second: Iterable[PluginDependency]
) -> list[PluginDependency]:
    """Merge two requirement lists, intersecting the ranges of repeated names."""
    merged: dict[str, PluginDependency] = {dep.name: dep for dep in first}
    for dep in second:
        current = merged.get(dep.name)
        if current is None:
            merged[dep.name] = dep
        else:
            merged[dep.name] = PluginDependency(dep.name, dep.range.and_(current.range))
    return list(merged.values())


def static_version(name: str, version: str) -> PluginVersion:
    """Describe an already present plugin (or the editor) as a one-version package."""
    try:
        parsed = parse_tolerant(version)
    except VersionError:
        try:
            parsed = parse_tolerant("0.0.0-" + version)
        except VersionError:
            parsed = parse_version("0.0.0-unknown")
    package = PluginPackage(name=name)
    plugin_version = PluginVersion(package, parsed)
    package.versions = [plugin_version]
    return plugin_version


def _get(url: str) -> bytes:
    with urllib.request.urlopen(url, timeout=30) as response:
        return response.read()


def _gather(fetchers: list[Callable[[], list[PluginPackage]]]) -> list[PluginPackage]:
    if not fetchers:
        return []
    with ThreadPoolExecutor(max_workers=min(8, len(fetchers))) as pool:
        results = list(pool.map(lambda fetch: fetch(), fetchers))
    return [package for result in results for package in result]


def _fetch_repository(url: str, out: TextIO, core_version_known: bool) -> list[PluginPackage]:
    try:
        data = _get(url)
    except (OSError, ValueError) as exc:
        print("Failed to query plugin repository:\n", exc, file=out)
        return []
    try:
        plugins = parse_packages(data.decode("utf-8"), core_version_known)
    except ValueError as exc:
        print("Failed to decode repository data:\n", exc, file=out)
        return []
    return plugins[:1]


def _fetch_channel(url: str, out: TextIO, core_version_known: bool) -> list[PluginPackage]:
    try:
        data = _get(url)
    except (OSError, ValueError) as exc:
        print("Failed to query plugin channel:\n", exc, file=out)
        return []
    try:
        repositories = _loads_lenient(data.decode("utf-8")) or []
        if not isinstance(repositories, list) or not all(isinstance(r, str) for r in repositories):
            raise ValueError("channel data must be a list of URLs")
    except ValueError as exc:
        print("Failed to decode channel data:\n", exc, file=out)
        return []
    return _gather(
        [partial(_fetch_repository, repo, out, core_version_known) for repo in repositories]
    )


def fetch_repository(url: str, out: TextIO) -> list[PluginPackage]:
    """Fetch a repository's packages; failures are reported to ``out``."""
    return _fetch_repository(url, out, True)


def fetch_channel(url: str, out: TextIO) -> list[PluginPackage]:
    """Fetch the packages of every repository a channel lists."""
    return _fetch_channel(url, out, True)


def _find(versions: Iterable[PluginVersion], name: str) -> Optional[PluginVersion]:
    return next((v for v in versions if v.package.name == name), None)


class PluginCatalog:
    """All plugin packages that may be installed."""

    def __init__(self, packages: Iterable[PluginPackage] = ()) -> None:
        self.packages = list(packages)

    def __iter__(self):
        return iter(self.packages)

    def __len__(self) -> int:
        return len(self.packages)

    def get(self, name: str) -> Optional[PluginPackage]:
        """Return the package called ``name``, or None."""
        return next((p for p in self.packages if p.name == name), None)

    def all_versions(self, name: str) -> list[PluginVersion]:
        """Return every version of the package called ``name``."""
        package = self.get(name)
        return list(package.versions) if package is not None else []

    def resolve(
        self,
        selected: Iterable[PluginVersion],
        open_deps: Iterable[Optional[PluginDependency]],
    ) -> list[PluginVersion]:
        """Choose versions that satisfy all open requirements, newest first.

        Raises ResolveError when no choice works.
        """
        selected = list(selected)
        open_deps = list(open_deps)
        if not open_deps:
            return selected
        current, still_open = open_deps[0], open_deps[1:]
        if current is None:
            return selected
        chosen = _find(selected, current.name)
        if chosen is not None:
            if current.range(chosen.version):
                return self.resolve(selected, still_open)
            raise _unresolvable(current.name)
        candidates = sorted(
            self.all_versions(current.name), key=lambda v: v.version, reverse=True
        )
        for candidate in candidates:
            if not current.range(candidate.version):
                continue
            try:
                return self.resolve(
                    selected + [candidate], join_dependencies(still_open, candidate.require)
                )
            except ResolveError:
                continue
        raise _unresolvable(current.name)


class PluginManager:
    """Installs, updates, removes and lists plugins in ``<config_dir>/plug``.

    ``installed`` maps the names of enabled plugins to their version strings.
    """

    def __init__(
        self,
        config_dir: Union[str, os.PathLike[str]],
        core_version: str = "",
        installed: Optional[Mapping[str, str]] = None,
        channels: Iterable[str] = (),
        repos: Iterable[str] = (),
        out: Optional[TextIO] = None,
    ) -> None:
        self.config_dir = os.fspath(config_dir)
        self.core_version = core_version
        self.installed: dict[str, str] = dict(installed or {})
        self.channels = list(channels)
        self.repos = list(repos)
        self._out = out
        self._catalog: Optional[PluginCatalog] = None

    @property
    def out(self) -> TextIO:
        return self._out if self._out is not None else sys.stdout

    @property
    def plug_dir(self) -> str:
        return os.path.join(self.config_dir, "plug")

    @property
    def core_version_known(self) -> bool:
        try:
            parse_tolerant(self.core_version)
        except VersionError:
            return False
        return True

    def _print(self, *args: Any) -> None:
        print(*args, file=self.out)

    def packages(self) -> PluginCatalog:
        """Return every package the channels and repositories offer, fetched once."""
        if self._catalog is None:
            known = self.core_version_known
            fetchers: list[Callable[[], list[PluginPackage]]] = [
                lambda: _gather(
                    [partial(_fetch_channel, url, self.out, known) for url in self.channels]
                )
            ]
            fetchers += [partial(_fetch_repository, url, self.out, known) for url in self.repos]
            self._catalog = PluginCatalog(_gather(fetchers))
        return self._catalog

    def installed_versions(self, with_core: bool) -> list[PluginVersion]:
        """Describe the installed plugins, and the editor if ``with_core``, as versions."""
        result = [static_version(CORE_PLUGIN_NAME, self.core_version)] if with_core else []
        result += [static_version(name, version) for name, version in self.installed.items()]
        return result

    def _resolve_package(self, package: PluginPackage) -> list[PluginVersion]:
        return self.packages().resolve(
            self.installed_versions(True), [PluginDependency(package.name, any_version())]
        )

    def is_installable(self, package: PluginPackage) -> bool:
        """Tell whether some version of ``package`` fits with what is installed."""
        try:
            self._resolve_package(package)
        except ResolveError:
            return False
        return True

    def search(self, texts: Iterable[str]) -> list[PluginPackage]:
        """Return the installable packages that match every search text."""
        texts = list(texts)
        return [
            p
            for p in self.packages()
            if all(p.match(text) for text in texts) and self.is_installable(p)
        ]

    def install(self, package: PluginPackage) -> None:
        """Install ``package`` with whatever it requires."""
        try:
            selected = self._resolve_package(package)
        except ResolveError as exc:
            self._print(exc)
            return
        self._install_selected(selected)

    def _install_selected(self, selected: list[PluginVersion]) -> None:
        any_installed = False
        current = self.installed_versions(True)
        for sel in selected:
            name = sel.package.name
            if name == CORE_PLUGIN_NAME:
                continue
            present = _find(current, name)
            if present is not None:
                if present.version == sel.version:
                    continue
                self._print("Uninstalling", name)
                self.uninstall(name)
            try:
                sel.download_and_install(self.plug_dir, self.out)
            except (OSError, zipfile.BadZipFile, ValueError) as exc:
                self._print(exc)
                return
            self.installed[name] = str(sel.version)
            any_installed = True
        if any_installed:
            self._print("One or more plugins installed.")
        else:
            self._print("Nothing to install / update")

    def _plugin_dir(self, name: str) -> Optional[str]:
        direct = os.path.join(self.plug_dir, name)
        if os.path.isdir(direct):
            return direct
        try:
            entries = sorted(os.listdir(self.plug_dir))
        except OSError:
            return None
        for entry in entries:
            path = os.path.join(self.plug_dir, entry)
            if not os.path.isdir(path):
                continue
            for filename in sorted(os.listdir(path)):
                if not filename.endswith(".json"):
                    continue
                try:
                    with open(os.path.join(path, filename), "rb") as handle:
                        if parse_plugin_info(handle.read()).name == name:
                            return path
                except (OSError, PluginError):
                    continue
        return None

    def uninstall(self, name: str) -> None:
        """Delete the directory of the installed plugin called ``name``."""
        if name not in self.installed:
            return
        del self.installed[name]
        directory = self._plugin_dir(name)
        if directory is None:
            return
        try:
            shutil.rmtree(directory)
        except OSError as exc:
            self._print(exc)

    def update(self, names: Iterable[str]) -> None:
        """Update the named plugins, or every installed one if none are named."""
        names = list(names) or list(self.installed)
        self._print("Checking for plugin updates")
        core = [static_version(CORE_PLUGIN_NAME, self.core_version)]
        updates: list[Optional[PluginDependency]] = []
        for name in names:
            try:
                wanted = parse_range(">=" + self.installed.get(name, ""))
            except VersionError:
                continue
            updates.append(PluginDependency(name, wanted))
        try:
            selected = self.packages().resolve(core, updates)
        except ResolveError as exc:
            self._print(exc)
            return
        self._install_selected(selected)

    def command(self, cmd: str, args: Iterable[str]) -> None:
        """Run a plugin command: install, remove, update, list, search or available."""
        args = list(args)
        if cmd == "install":
            installed = self.installed_versions(False)
            for name in args:
                package = self.packages().get(name)
                if package is None:
                    self._print(f'Unknown plugin "{name}"')
                    continue
                try:
                    self._resolve_package(package)
                except ResolveError as exc:
                    self._print("Error installing ", name, ": ", exc)
                    continue
                for present in installed:
                    if present.package.name != package.name:
                        continue
                    if package.versions and package.versions[0].version.compare(present.version) == 1:
                        self._print(
                            package.name,
                            " is already installed but out-of-date: use 'plugin update ",
                            package.name,
                            "' to update",
                        )
                    else:
                        self._print(package.name, " is already installed")
                self.install(package)
        elif cmd == "remove":
            removed = ""
            for name in args:
                if name in self.installed:
                    self.uninstall(name)
                    removed += name + " "
            if removed:
                self._print("Removed ", removed)
            else:
                self._print("No plugins removed")
        elif cmd == "update":
            self.update(args)
        elif cmd == "list":
            self._print("The following plugins are currently installed:")
            for version in self.installed_versions(False):
                self._print(f"{version.package.name} ({version.version})")
        elif cmd == "search":
            found = self.search(args)
            self._print(len(found), " plugins found")
            for package in found:
                self._print("----------------")
                self._print(str(package))
            self._print("----------------")
        elif cmd == "available":
            self._print("Available Plugins:")
            for package in self.packages():
                self._print(package.name)
        else:
            self._print("Invalid plugin command")