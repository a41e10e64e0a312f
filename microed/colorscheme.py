"""Colors, styles and colorscheme files made of color-link statements."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, replace
from typing import Optional

from microed.rtfiles import RuntimeFiles, RuntimeType


class ColorKind(enum.Enum):
    """How a color is specified."""

    DEFAULT = "default"
    PALETTE = "palette"
    RGB = "rgb"


@dataclass(frozen=True)
class Color:
    """A terminal color: the terminal default, a palette entry or a true color."""

    kind: ColorKind = ColorKind.DEFAULT
    value: int = 0

    @classmethod
    def palette(cls, index: int) -> "Color":
        """Return the palette color with the given index."""
        return cls(ColorKind.PALETTE, index)

    @classmethod
    def rgb(cls, red: int, green: int, blue: int) -> "Color":
        """Return the true color with the given components."""
        for component in (red, green, blue):
            if not 0 <= component <= 255:
                raise ValueError(f"color component out of range: {component}")
        return cls(ColorKind.RGB, (red << 16) | (green << 8) | blue)

    @classmethod
    def from_hex(cls, text: str) -> "Color":
        """Parse a color written as "#rrggbb"."""
        if len(text) != 7 or text[0] != "#" or not _HEX_RE.fullmatch(text[1:]):
            raise ValueError(f"invalid hex color: {text!r}")
        value = int(text[1:], 16)
        return cls.rgb((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF)


_HEX_RE = re.compile(r"[0-9A-Fa-f]{6}")
_INT_RE = re.compile(r"[+-]?[0-9]+")

DEFAULT_COLOR = Color()

_NAMED_COLORS: dict[str, Color] = {
    "black": Color.palette(0),
    "red": Color.palette(1),
    "green": Color.palette(2),
    "yellow": Color.palette(3),
    "blue": Color.palette(4),
    "magenta": Color.palette(5),
    "cyan": Color.palette(6),
    "white": Color.palette(7),
    "default": DEFAULT_COLOR,
}
for _offset, _base in enumerate(
    ("black", "red", "green", "yellow", "blue", "magenta", "cyan", "white")
):
    _NAMED_COLORS["bright" + _base] = Color.palette(8 + _offset)
    _NAMED_COLORS["light" + _base] = Color.palette(8 + _offset)


@dataclass(frozen=True)
class Style:
    """Foreground, background and text attributes of a screen cell."""

    fg: Color = DEFAULT_COLOR
    bg: Color = DEFAULT_COLOR
    bold: bool = False
    italic: bool = False
    reverse: bool = False
    underline: bool = False

    def foreground(self, color: Color) -> "Style":
        """Return this style with another foreground color."""
        return replace(self, fg=color)

    def background(self, color: Color) -> "Style":
        """Return this style with another background color."""
        return replace(self, bg=color)

    def with_attrs(
        self,
        bold: Optional[bool] = None,
        italic: Optional[bool] = None,
        reverse: Optional[bool] = None,
        underline: Optional[bool] = None,
    ) -> "Style":
        """Return this style with the given attributes changed; None keeps one as is."""
        return replace(
            self,
            bold=self.bold if bold is None else bold,
            italic=self.italic if italic is None else italic,
            reverse=self.reverse if reverse is None else reverse,
            underline=self.underline if underline is None else underline,
        )


DEFAULT_STYLE = Style()


def get_color256(number: int) -> Color:
    """Return the color for a number of the 256-color palette; 0 is the default."""
    if number == 0:
        return DEFAULT_COLOR
    return Color.palette(number)


def string_to_color(text: str) -> Optional[Color]:
    """Return the color named by ``text``, or None if it names none.

    Accepts the eight color names, their "bright" or "light" variants,
    "default", a palette number and a "#rrggbb" hex value.
    """
    named = _NAMED_COLORS.get(text)
    if named is not None:
        return named
    if _INT_RE.fullmatch(text):
        return get_color256(int(text))
    if len(text) == 7 and text[0] == "#":
        try:
            return Color.from_hex(text)
        except ValueError:
            return DEFAULT_COLOR
    return None


def string_to_style(text: str, default: Style = DEFAULT_STYLE) -> Style:
    """Build a style from "attrs... foreground,background".

    Missing or unknown colors fall back to those of ``default``.
    """
    words = text.split(" ")
    parts = words[-1].split(",")
    fg_name = parts[0].strip()
    bg_name = parts[1].strip() if len(parts) > 1 else ""

    fg = default.fg
    if fg_name and fg_name != "default":
        fg = string_to_color(fg_name) or default.fg
    bg = default.bg
    if bg_name and bg_name != "default":
        bg = string_to_color(bg_name) or default.bg

    style = default.foreground(fg).background(bg)
    return style.with_attrs(
        bold=True if "bold" in text else None,
        italic=True if "italic" in text else None,
        reverse=True if "reverse" in text else None,
        underline=True if "underline" in text else None,
    )


class ColorschemeError(Exception):
    """A colorscheme is missing or holds an invalid statement.

    ``styles`` holds what could be parsed anyway.
    """

    def __init__(self, message: str, styles: Optional[dict[str, Style]] = None) -> None:
        super().__init__(message)
        self.styles = styles if styles is not None else {}


_COLOR_LINK_RE = re.compile(r'color-link\s+(\S*)\s+"(.*)"')
_INCLUDE_RE = re.compile(r'include\s+"(.*)"')


class Colorscheme:
    """The current colorscheme: styles per syntax group and the default style."""

    def __init__(self, runtime_files: Optional[RuntimeFiles] = None) -> None:
        self.runtime_files = runtime_files if runtime_files is not None else RuntimeFiles()
        self.styles: dict[str, Style] = {}
        self.default_style = DEFAULT_STYLE

    def parse(
        self, name: str, text: str, parsed: Optional[list[str]] = None
    ) -> dict[str, Style]:
        """Parse the text of a colorscheme and return its styles.

        Includes are followed only when ``parsed`` is given; it collects the
        names already read so that circular includes are skipped. A
        "default" link also becomes this scheme's default style.
        """
        styles: dict[str, Style] = {}
        error: Optional[str] = None
        if parsed is not None:
            parsed.append(name)

        for line in text.split("\n"):
            stripped = line.strip()
            if not stripped or stripped[0] == "#":
                continue

            include = _INCLUDE_RE.search(line)
            if include:
                if parsed is not None:
                    target = include.group(1)
                    if target in parsed:
                        continue
                    styles.update(self.load(target, parsed))
                continue

            link = _COLOR_LINK_RE.search(line)
            if link:
                group, colors = link.group(1), link.group(2)
                style = string_to_style(colors, self.default_style)
                styles[group] = style
                if group == "default":
                    self.default_style = style
            else:
                error = "Color-link statement is not valid: " + line

        if error is not None:
            raise ColorschemeError(error, styles)
        return styles

    def load(self, name: str, parsed: Optional[list[str]] = None) -> dict[str, Style]:
        """Find the colorscheme called ``name`` among the runtime files and parse it."""
        file = self.runtime_files.find(RuntimeType.COLORSCHEME, name)
        if file is None:
            raise ColorschemeError(name + " is not a valid colorscheme")
        try:
            data = file.data()
        except OSError as exc:
            raise ColorschemeError("Error loading colorscheme: " + str(exc)) from exc
        return self.parse(file.name, data.decode("utf-8", errors="replace"), parsed)

    def load_default(self, name: str) -> dict[str, Style]:
        """Reset, then make the colorscheme called ``name`` the current one.

        On failure the error is raised and no styles are left.
        """
        self.styles = {}
        self.default_style = DEFAULT_STYLE
        self.styles = self.load(name, [])
        return self.styles

    def get_color(self, group: str) -> Style:
        """Return the style for a syntax group such as "constant.string".

        Dotted groups take the most specific style defined; an unknown plain
        group is read as a style string.
        """
        style = self.default_style
        if not group:
            return style
        groups = group.split(".")
        if len(groups) > 1:
            current = ""
            for index, part in enumerate(groups):
                current = part if index == 0 else current + "." + part
                if current in self.styles:
                    style = self.styles[current]
            return style
        if group in self.styles:
            return self.styles[group]
        return string_to_style(group, self.default_style)

    def exists(self, name: str) -> bool:
        """Tell whether a colorscheme called ``name`` is known."""
        return self.runtime_files.find(RuntimeType.COLORSCHEME, name) is not None