"""Registry of runtime files: colorschemes, syntax files, help pages and plugins."""

from __future__ import annotations

import enum
import fnmatch
import os
from abc import ABC, abstractmethod
from typing import Optional, Union


class RuntimeType(enum.IntEnum):
    """The built-in kinds of runtime file."""

    COLORSCHEME = 0
    SYNTAX = 1
    HELP = 2
    PLUGIN = 3
    SYNTAX_HEADER = 4


def _stem(path: str) -> str:
    """Return the base name of ``path`` without its last extension."""
    base = os.path.basename(path.rstrip("/\\")) or path
    dot = base.rfind(".")
    return base[:dot] if dot >= 0 else base


class RuntimeFile(ABC):
    """A named piece of runtime data."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The file's name without directories or extension."""

    @abstractmethod
    def data(self) -> bytes:
        """Return the content of the file."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class RealFile(RuntimeFile):
    """A file on disk, named after its base name without extension."""

    def __init__(self, path: Union[str, os.PathLike[str]]) -> None:
        self.path = os.fspath(path)

    @property
    def name(self) -> str:
        return _stem(self.path)

    def data(self) -> bytes:
        with open(self.path, "rb") as handle:
            return handle.read()

    def __eq__(self, other: object) -> bool:
        return (
            type(other) is type(self)
            and other.path == self.path  # type: ignore[attr-defined]
            and other.name == self.name  # type: ignore[attr-defined]
        )

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.path, self.name))


class NamedFile(RealFile):
    """A file on disk registered under a name of its own."""

    def __init__(self, path: Union[str, os.PathLike[str]], name: str) -> None:
        super().__init__(path)
        self._name = name

    @property
    def name(self) -> str:
        return self._name


class MemoryFile(RuntimeFile):
    """A runtime file whose content is held in memory."""

    def __init__(self, name: str, data: bytes) -> None:
        self._name = name
        self._data = bytes(data)

    @property
    def name(self) -> str:
        return self._name

    def data(self) -> bytes:
        return self._data

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, MemoryFile)
            and other._name == self._name
            and other._data == self._data
        )

    def __hash__(self) -> int:
        return hash((self._name, self._data))


class RuntimeFiles:
    """All known runtime files, grouped by kind.

    Files that live on disk (or were added from memory by plugins) are also
    tracked separately as "real" files.
    """

    def __init__(self) -> None:
        self._count = len(RuntimeType)
        self._reset()

    def _reset(self) -> None:
        self._all: dict[int, list[RuntimeFile]] = {t: [] for t in range(self._count)}
        self._real: dict[int, list[RuntimeFile]] = {t: [] for t in range(self._count)}

    def _check(self, filetype: int) -> int:
        filetype = int(filetype)
        if filetype not in self._all:
            raise KeyError(f"unknown runtime file type: {filetype}")
        return filetype

    def new_filetype(self) -> int:
        """Create a new kind of runtime file and return its number."""
        filetype = self._count
        self._count += 1
        self._all[filetype] = []
        self._real[filetype] = []
        return filetype

    def add_file(self, filetype: int, file: RuntimeFile) -> None:
        """Register a file for the given kind."""
        self._all[self._check(filetype)].append(file)

    def add_real_file(self, filetype: int, file: RuntimeFile) -> None:
        """Register a file that was provided by the user."""
        filetype = self._check(filetype)
        self._all[filetype].append(file)
        self._real[filetype].append(file)

    def add_directory(
        self, filetype: int, directory: Union[str, os.PathLike[str]], pattern: str
    ) -> None:
        """Register every regular file in ``directory`` whose name matches ``pattern``."""
        directory = os.fspath(directory)
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError:
            return
        for entry in entries:
            if entry.is_dir() or not fnmatch.fnmatchcase(entry.name, pattern):
                continue
            self.add_real_file(filetype, RealFile(os.path.join(directory, entry.name)))

    def find(self, filetype: int, name: str) -> Optional[RuntimeFile]:
        """Return the first file of the given kind called ``name``, or None."""
        return next((f for f in self._all[self._check(filetype)] if f.name == name), None)

    def list(self, filetype: int) -> list[RuntimeFile]:
        """Return all known files of the given kind."""
        return list(self._all[self._check(filetype)])

    def list_real(self, filetype: int) -> list[RuntimeFile]:
        """Return the user-provided files of the given kind."""
        return list(self._real[self._check(filetype)])

    def init_from_config(self, config_dir: Union[str, os.PathLike[str]]) -> None:
        """Forget all files and register those found in the configuration directory."""
        self._reset()
        config_dir = os.fspath(config_dir)
        for filetype, subdir, pattern in (
            (RuntimeType.COLORSCHEME, "colorschemes", "*.micro"),
            (RuntimeType.SYNTAX, "syntax", "*.yaml"),
            (RuntimeType.SYNTAX_HEADER, "syntax", "*.hdr"),
            (RuntimeType.HELP, "help", "*.md"),
        ):
            self.add_directory(filetype, os.path.join(config_dir, subdir), pattern)

    def read(self, filetype: int, name: str) -> str:
        """Return the text of a runtime file, or "" if it is missing or unreadable."""
        file = self.find(filetype, name)
        if file is None:
            return ""
        try:
            return file.data().decode("utf-8", errors="replace")
        except OSError:
            return ""

    def names(self, filetype: int) -> list[str]:
        """Return the names of all files of the given kind."""
        return [f.name for f in self._all[self._check(filetype)]]

    def add_from_memory(self, filetype: int, filename: str, data: str) -> None:
        """Register a file whose content is the given string."""
        self.add_real_file(filetype, MemoryFile(filename, data.encode("utf-8")))