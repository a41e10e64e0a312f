"""Editor options: defaults, validation and the settings.json file."""

from __future__ import annotations

import codecs
import copy
import json
import os
import re
import sys
from typing import Any, Callable, Optional

DOUBLE_CLICK_THRESHOLD = 400  # milliseconds before a second click is not a double click

OPTION_CHOICES: dict[str, list[str]] = {
    "clipboard": ["internal", "external", "terminal"],
    "fileformat": ["unix", "dos"],
    "matchbracestyle": ["underline", "highlight"],
    "multiopen": ["tab", "hsplit", "vsplit"],
    "reload": ["prompt", "auto", "disabled"],
}

# Settings that should never be modified globally.
LOCAL_SETTINGS = ("filetype", "readonly")


def _default_file_format() -> str:
    return "dos" if sys.platform == "win32" else "unix"


_DEFAULT_COMMON: dict[str, Any] = {
    "autoindent": True,
    "autosu": False,
    "backup": True,
    "backupdir": "",
    "basename": False,
    "colorcolumn": 0.0,
    "cursorline": True,
    "detectlimit": 100.0,
    "diffgutter": False,
    "encoding": "utf-8",
    "eofnewline": True,
    "fastdirty": False,
    "fileformat": _default_file_format(),
    "filetype": "unknown",
    "hlsearch": False,
    "hltaberrors": False,
    "hltrailingws": False,
    "incsearch": True,
    "ignorecase": True,
    "indentchar": " ",
    "keepautoindent": False,
    "matchbrace": True,
    "matchbracestyle": "underline",
    "mkparents": False,
    "permbackup": False,
    "readonly": False,
    "reload": "prompt",
    "rmtrailingws": False,
    "ruler": True,
    "relativeruler": False,
    "savecursor": False,
    "saveundo": False,
    "scrollbar": False,
    "scrollmargin": 3.0,
    "scrollspeed": 2.0,
    "smartpaste": True,
    "softwrap": False,
    "splitbottom": True,
    "splitright": True,
    "statusformatl": "$(filename) $(modified)($(line),$(col)) $(status.paste)| "
    "ft:$(opt:filetype) | $(opt:fileformat) | $(opt:encoding)",
    "statusformatr": "$(bind:ToggleKeyMenu): bindings, $(bind:ToggleHelp): help",
    "statusline": True,
    "syntax": True,
    "tabmovement": False,
    "tabsize": 4.0,
    "tabstospaces": False,
    "useprimary": True,
    "wordwrap": False,
}

_DEFAULT_GLOBAL_ONLY: dict[str, Any] = {
    "autosave": 0.0,
    "clipboard": "external",
    "colorscheme": "default",
    "divchars": "|-",
    "divreverse": True,
    "fakecursor": False,
    "infobar": True,
    "keymenu": False,
    "mouse": True,
    "multiopen": "tab",
    "parsecursor": False,
    "paste": False,
    "pluginchannels": [
        "https://raw.githubusercontent.com/micro-editor/plugin-channel/master/channel.json"
    ],
    "pluginrepos": [],
    "savehistory": True,
    "scrollbarchar": "|",
    "sucmd": "sudo",
    "tabhighlight": False,
    "tabreverse": True,
    "xterm": False,
}

_TRUE_WORDS = {"1", "t", "T", "TRUE", "true", "True", "on"}
_FALSE_WORDS = {"0", "f", "F", "FALSE", "false", "False", "off"}
_INT_RE = re.compile(r"[+-]?[0-9]+")


class SettingsError(Exception):
    """A settings file or option value is not acceptable."""


class InvalidValueError(SettingsError):
    """A value cannot be converted to the type of its option."""

    def __init__(self, message: str = "Invalid value") -> None:
        super().__init__(message)


def parse_bool(value: str) -> bool:
    """Parse a boolean option value, accepting "on" and "off" too."""
    if value in _TRUE_WORDS:
        return True
    if value in _FALSE_WORDS:
        return False
    raise ValueError(f"invalid boolean: {value!r}")


def default_bindings() -> dict[str, dict[str, str]]:
    """Return the empty binding tables for each pane kind."""
    return {"command": {}, "buffer": {}, "terminal": {}}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _kind(value: Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if _is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "list"
    if isinstance(value, dict):
        return "map"
    if value is None:
        return "null"
    return type(value).__name__


def _deep_equal(a: Any, b: Any) -> bool:
    if _kind(a) != _kind(b):
        return False
    if isinstance(a, (list, tuple)):
        return len(a) == len(b) and all(_deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, dict):
        return a.keys() == b.keys() and all(_deep_equal(a[k], b[k]) for k in a)
    return a == b


def _verify_setting(option: str, value: Any, default: Any) -> bool:
    if option in ("pluginrepos", "pluginchannels"):
        return isinstance(value, list)
    return _kind(value) == _kind(default)


def _strip_comments(text: str) -> str:
    out: list[str] = []
    i, n = 0, len(text)
    quote: Optional[str] = None
    while i < n:
        c = text[i]
        if quote:
            out.append(c)
            if c == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if c == quote:
                quote = None
            i += 1
            continue
        if c == '"':
            quote = c
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end < 0 else end
            continue
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end < 0:
                raise ValueError("unterminated comment")
            out.append(" ")
            i = end + 2
            continue
        out.append(c)
        i += 1
    return "".join(out)


def _strip_trailing_commas(text: str) -> str:
    out: list[str] = []
    i, n = 0, len(text)
    in_string = False
    while i < n:
        c = text[i]
        if in_string:
            out.append(c)
            if c == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if c == '"':
                in_string = False
            i += 1
            continue
        if c == '"':
            in_string = True
        elif c == ",":
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j < n and text[j] in "}]":
                i += 1
                continue
        out.append(c)
        i += 1
    return "".join(out)


def _loads_lenient(text: str) -> Any:
    """Parse JSON that may carry comments and trailing commas; numbers become floats."""
    return json.loads(_strip_trailing_commas(_strip_comments(text)), parse_int=float)


def _jsonable(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a glob with *, ?, [...] and {a,b} into a regular expression."""
    parts: list[str] = []
    depth = 0
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "\\":
            if i + 1 >= n:
                raise ValueError("unexpected end of pattern")
            parts.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if c == "*":
            parts.append(".*")
            while i < n and pattern[i] == "*":
                i += 1
            continue
        if c == "[":
            end = pattern.find("]", i + 1)
            if end < 0:
                raise ValueError("unclosed character class")
            body = pattern[i + 1:end]
            negate = body.startswith("!")
            if negate:
                body = body[1:]
            if not body:
                raise ValueError("empty character class")
            members = "".join(ch if ch == "-" else re.escape(ch) for ch in body)
            parts.append("[" + ("^" if negate else "") + members + "]")
            i = end + 1
            continue
        if c == "?":
            parts.append(".")
        elif c == "{":
            depth += 1
            parts.append("(?:")
        elif c == "}" and depth:
            depth -= 1
            parts.append(")")
        elif c == "," and depth:
            parts.append("|")
        else:
            parts.append(re.escape(c))
        i += 1
    if depth:
        raise ValueError("unclosed alternation")
    try:
        return re.compile("".join(parts), re.DOTALL)
    except re.error as exc:
        raise ValueError(str(exc)) from exc


def _validate_positive(option: str, value: Any) -> None:
    if not _is_number(value):
        raise SettingsError("Expected numeric type for " + option)
    if value < 1:
        raise SettingsError(option + " must be greater than 0")


def _validate_non_negative(option: str, value: Any) -> None:
    if not _is_number(value):
        raise SettingsError("Expected numeric type for " + option)
    if value < 0:
        raise SettingsError(option + " must be non-negative")


def _validate_choice(option: str, value: Any) -> None:
    choices = OPTION_CHOICES.get(option)
    if choices is None:
        raise SettingsError("Option has no pre-defined choices")
    if not isinstance(value, str):
        raise SettingsError("Expected string type for " + option)
    if value not in choices:
        raise SettingsError(option + " must be one of: " + ", ".join(choices))


def _validate_encoding(option: str, value: Any) -> None:
    if not isinstance(value, str):
        raise SettingsError("Expected string type for " + option)
    try:
        codecs.lookup(value)
    except LookupError as exc:
        raise SettingsError("htmlindex: invalid encoding name") from exc


class Settings:
    """The option defaults, the global option values and the parsed settings file."""

    def __init__(
        self,
        config_dir: str | os.PathLike[str],
        colorscheme_exists: Optional[Callable[[str], bool]] = None,
    ) -> None:
        self.config_dir = os.fspath(config_dir)
        self._colorscheme_exists = colorscheme_exists or (lambda name: True)
        self._common = copy.deepcopy(_DEFAULT_COMMON)
        self._global_only = copy.deepcopy(_DEFAULT_GLOBAL_ONLY)
        self.global_settings: dict[str, Any] = self.default_global_settings()
        self.parsed: dict[str, Any] = {}
        self.parse_error = False
        # Options changed by the user this session and to be written to disk.
        self.modified: set[str] = set()
        # Options set for this session only, never written to disk.
        self.volatile: set[str] = set()
        self._validators: dict[str, Callable[[str, Any], None]] = {
            "autosave": _validate_non_negative,
            "clipboard": _validate_choice,
            "colorcolumn": _validate_non_negative,
            "colorscheme": self._validate_colorscheme,
            "detectlimit": _validate_non_negative,
            "encoding": _validate_encoding,
            "fileformat": _validate_choice,
            "matchbracestyle": _validate_choice,
            "multiopen": _validate_choice,
            "reload": _validate_choice,
            "scrollmargin": _validate_non_negative,
            "scrollspeed": _validate_non_negative,
            "tabsize": _validate_positive,
        }

    def read(self) -> None:
        """Read settings.json from the configuration directory, if there is one."""
        filename = os.path.join(self.config_dir, "settings.json")
        if not os.path.exists(filename):
            return
        try:
            with open(filename, encoding="utf-8") as handle:
                text = handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            self.parse_error = True
            raise SettingsError("Error reading settings.json file: " + str(exc)) from exc
        if text.startswith("null"):
            return
        try:
            data = _loads_lenient(text)
            if not isinstance(data, dict):
                raise ValueError("top-level value is not an object")
        except ValueError as exc:
            self.parse_error = True
            raise SettingsError("Error reading settings.json: " + str(exc)) from exc
        self.parsed.update(data)

        autosave = self.parsed.get("autosave")
        if isinstance(autosave, bool):
            self.parsed["autosave"] = 8.0 if autosave else 0.0

    def init_global(self) -> None:
        """Set global options to their defaults, then apply the parsed file.

        Wrongly typed values keep their default; the last such problem is raised
        after every other value has been applied.
        """
        self.global_settings = self.default_global_settings()
        error: Optional[str] = None
        for key, value in self.parsed.items():
            if isinstance(value, dict):
                continue
            if key in self.global_settings and not _verify_setting(
                key, value, self.global_settings[key]
            ):
                default = self.global_settings[key]
                error = (
                    f"Global Error: setting '{key}' has incorrect type "
                    f"({type(value).__name__}), using default value: {default} "
                    f"({type(default).__name__})"
                )
                continue
            self.global_settings[key] = value
        if error:
            raise SettingsError(error)

    def init_local(self, settings: dict[str, Any], path: str) -> None:
        """Apply "ft:<type>" and glob sections of the parsed file to a buffer's settings."""
        error: Optional[str] = None
        for key, section in self.parsed.items():
            if not isinstance(section, dict):
                continue
            if key.startswith("ft:"):
                if settings.get("filetype") != key[3:]:
                    continue
            else:
                try:
                    pattern = _compile_glob(key)
                except ValueError as exc:
                    error = "Error with glob setting " + key + ": " + str(exc)
                    continue
                if not pattern.fullmatch(path):
                    continue
            for name, value in section.items():
                if name in settings and not _verify_setting(name, value, settings[name]):
                    current = settings[name]
                    error = (
                        f"Error: setting '{name}' has incorrect type "
                        f"({type(value).__name__}), using default value: {current} "
                        f"({type(current).__name__})"
                    )
                    continue
                settings[name] = value
        if error:
            raise SettingsError(error)

    def write(self, filename: str | os.PathLike[str]) -> None:
        """Write the parsed file with this session's changes merged in.

        Nothing is written if the settings file could not be parsed, so a
        broken file is left for the user to fix.
        """
        if self.parse_error or not os.path.exists(self.config_dir):
            return
        defaults = self.default_global_settings()
        for key, value in list(self.parsed.items()):
            if isinstance(value, dict):
                continue
            if (
                key in defaults
                and key in self.global_settings
                and key not in self.volatile
                and _deep_equal(self.global_settings[key], defaults[key])
            ):
                del self.parsed[key]
        self.parsed.update(self._modified_non_defaults(defaults))
        self._dump(filename, self.parsed)

    def overwrite(self, filename: str | os.PathLike[str]) -> None:
        """Write only this session's non-default changes, dropping local sections."""
        if not os.path.exists(self.config_dir):
            return
        self._dump(filename, self._modified_non_defaults(self.default_global_settings()))

    def _modified_non_defaults(self, defaults: dict[str, Any]) -> dict[str, Any]:
        return {
            key: value
            for key, value in self.global_settings.items()
            if key in self.modified
            and (key not in defaults or not _deep_equal(value, defaults[key]))
        }

    @staticmethod
    def _dump(filename: str | os.PathLike[str], data: dict[str, Any]) -> None:
        text = json.dumps(_jsonable(data), indent=4, sort_keys=True, ensure_ascii=False)
        with open(filename, "w", encoding="utf-8") as handle:
            handle.write(text + "\n")

    def register_common_option(self, name: str, default: Any) -> None:
        """Create an option that can be set globally and per buffer."""
        self.global_settings.setdefault(name, default)
        self._common[name] = default

    def register_global_option(self, name: str, default: Any) -> None:
        """Create a global-only option."""
        self.global_settings.setdefault(name, default)
        self._global_only[name] = default

    def register_common_option_plug(self, plugin: str, name: str, default: Any) -> None:
        """Create a common option named "<plugin>.<name>"."""
        self.register_common_option(plugin + "." + name, default)

    def register_global_option_plug(self, plugin: str, name: str, default: Any) -> None:
        """Create a global-only option named "<plugin>.<name>"."""
        self.register_global_option(plugin + "." + name, default)

    def get_global_option(self, name: str) -> Any:
        """Return the global value of an option, or None if it does not exist."""
        return self.global_settings.get(name)

    def info_bar_offset(self) -> int:
        """Return how many screen rows the info bar and key menu take."""
        offset = 0
        if self.get_global_option("infobar"):
            offset += 1
        if self.get_global_option("keymenu"):
            offset += 2
        return offset

    def default_common_settings(self) -> dict[str, Any]:
        """Return a copy of the defaults of the options settable per buffer."""
        return copy.deepcopy(self._common)

    def default_global_settings(self) -> dict[str, Any]:
        """Return a copy of the defaults of every global option."""
        result = copy.deepcopy(self._common)
        result.update(copy.deepcopy(self._global_only))
        return result

    def default_all_settings(self) -> dict[str, Any]:
        """Return a copy of the defaults of all options, common and global."""
        return self.default_global_settings()

    def native_value(self, option: str, real_value: Any, value: str) -> Any:
        """Convert a typed-in string to the type of ``real_value`` and validate it."""
        if isinstance(real_value, bool):
            try:
                native: Any = parse_bool(value)
            except ValueError as exc:
                raise InvalidValueError() from exc
        elif isinstance(real_value, str):
            native = value
        elif _is_number(real_value):
            if not _INT_RE.fullmatch(value):
                raise InvalidValueError()
            native = float(int(value))
        else:
            raise InvalidValueError()
        self.validate(option, native)
        return native

    def validate(self, option: str, value: Any) -> None:
        """Raise SettingsError if ``value`` is not allowed for ``option``."""
        validator = self._validators.get(option)
        if validator is not None:
            validator(option, value)

    def _validate_colorscheme(self, option: str, value: Any) -> None:
        if not isinstance(value, str):
            raise SettingsError("Expected string type for colorscheme")
        if not self._colorscheme_exists(value):
            raise SettingsError(value + " is not a valid colorscheme")