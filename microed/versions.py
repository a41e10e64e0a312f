"""Semantic versions and version ranges such as ">=1.0.0 <2.0.0 || 3.x"."""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Callable, Optional, Union

_DIGITS = re.compile(r"[0-9]+")
_IDENT = re.compile(r"[0-9A-Za-z-]+")
_WILDCARDS = frozenset({"x", "X", "*"})
_OP_CHARS = frozenset("<>=!")
_OPS = ("<=", ">=", "!=", "==", "<", ">", "=", "!")

PreIdent = Union[int, str]


class VersionError(ValueError):
    """A version or version range string is malformed."""


def _compare_idents(a: PreIdent, b: PreIdent) -> int:
    if isinstance(a, int) and isinstance(b, int):
        return (a > b) - (a < b)
    if isinstance(a, int):
        return -1
    if isinstance(b, int):
        return 1
    return (a > b) - (a < b)


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A semantic version; build metadata does not take part in comparisons."""

    major: int
    minor: int
    patch: int
    pre: tuple[PreIdent, ...] = ()
    build: tuple[str, ...] = ()

    def compare(self, other: "Version") -> int:
        """Return -1, 0 or 1 as this version is lower, equal or higher than ``other``."""
        for mine, theirs in (
            (self.major, other.major),
            (self.minor, other.minor),
            (self.patch, other.patch),
        ):
            if mine != theirs:
                return 1 if mine > theirs else -1
        if not self.pre and not other.pre:
            return 0
        if not self.pre:
            return 1
        if not other.pre:
            return -1
        for mine_id, theirs_id in zip(self.pre, other.pre):
            result = _compare_idents(mine_id, theirs_id)
            if result:
                return result
        return (len(self.pre) > len(other.pre)) - (len(self.pre) < len(other.pre))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) < 0

    def __hash__(self) -> int:
        return hash((self.major, self.minor, self.patch, self.pre))

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            text += "-" + ".".join(str(p) for p in self.pre)
        if self.build:
            text += "+" + ".".join(self.build)
        return text


def _number(part: str, text: str) -> int:
    if not _DIGITS.fullmatch(part):
        raise VersionError(f"invalid number {part!r} in version {text!r}")
    if len(part) > 1 and part.startswith("0"):
        raise VersionError(f"number {part!r} in version {text!r} has leading zeroes")
    return int(part)


def _pre_ident(part: str, text: str) -> PreIdent:
    if not _IDENT.fullmatch(part):
        raise VersionError(f"invalid pre-release identifier {part!r} in {text!r}")
    if part.isdigit():
        if len(part) > 1 and part.startswith("0"):
            raise VersionError(f"pre-release number {part!r} in {text!r} has leading zeroes")
        return int(part)
    return part


def _build_ident(part: str, text: str) -> str:
    if not _IDENT.fullmatch(part):
        raise VersionError(f"invalid build identifier {part!r} in {text!r}")
    return part


def parse_version(text: str) -> Version:
    """Parse a strict "major.minor.patch[-pre][+build]" version."""
    if not text:
        raise VersionError("version string empty")
    main, plus, build_text = text.partition("+")
    core, dash, pre_text = main.partition("-")
    numbers = core.split(".")
    if len(numbers) != 3:
        raise VersionError(f"no major, minor and patch number in {text!r}")
    major, minor, patch = (_number(n, text) for n in numbers)
    pre = tuple(_pre_ident(p, text) for p in pre_text.split(".")) if dash else ()
    build = tuple(_build_ident(b, text) for b in build_text.split(".")) if plus else ()
    return Version(major, minor, patch, pre, build)


def parse_tolerant(text: str) -> Version:
    """Parse a version, allowing spaces, a leading "v" and missing minor or patch."""
    s = text.strip()
    if s.startswith("v"):
        s = s[1:]
    parts = s.split(".", 2)
    if len(parts) < 3:
        if any(c in parts[-1] for c in "+-"):
            raise VersionError("short version cannot contain pre-release or build metadata")
        parts += ["0"] * (3 - len(parts))
        s = ".".join(parts)
    return parse_version(s)


Predicate = Callable[[Version], bool]

_TESTS: dict[str, Callable[[int], bool]] = {
    "": lambda c: c == 0,
    "=": lambda c: c == 0,
    "==": lambda c: c == 0,
    "!=": lambda c: c != 0,
    "!": lambda c: c != 0,
    ">": lambda c: c > 0,
    ">=": lambda c: c >= 0,
    "<": lambda c: c < 0,
    "<=": lambda c: c <= 0,
}


class VersionRange:
    """A test that tells whether a version lies in a range."""

    def __init__(self, predicate: Predicate, text: Optional[str] = None) -> None:
        self._predicate = predicate
        self.text = text

    def __call__(self, version: Version) -> bool:
        return bool(self._predicate(version))

    def and_(self, other: "VersionRange") -> "VersionRange":
        """Return the range of versions in both this range and ``other``."""
        return VersionRange(lambda v: self(v) and other(v))

    def or_(self, other: "VersionRange") -> "VersionRange":
        """Return the range of versions in this range or ``other``."""
        return VersionRange(lambda v: self(v) or other(v))

    __and__ = and_
    __or__ = or_

    def __repr__(self) -> str:
        return f"VersionRange({self.text!r})" if self.text is not None else "VersionRange(...)"


def _wildcard(op: str, parts: list[str], token: str) -> Predicate:
    index = next(i for i, p in enumerate(parts) if p in _WILDCARDS)
    if len(parts) > 3 or not all(p in _WILDCARDS for p in parts[index:]):
        raise VersionError(f"invalid wildcard version {token!r}")
    if index == 0:
        if op in ("", "=", "=="):
            return lambda v: True
        raise VersionError(f"invalid wildcard version {token!r}")
    fixed = [_number(p, token) for p in parts[:index]]
    padding = [0] * (3 - index)
    lower = Version(*(fixed + padding))
    upper = Version(*(fixed[:-1] + [fixed[-1] + 1] + padding))
    predicates: dict[str, Predicate] = {
        ">": lambda v: v >= upper,
        ">=": lambda v: v >= lower,
        "<": lambda v: v < lower,
        "<=": lambda v: v < upper,
        "": lambda v: lower <= v < upper,
        "=": lambda v: lower <= v < upper,
        "==": lambda v: lower <= v < upper,
        "!=": lambda v: not lower <= v < upper,
        "!": lambda v: not lower <= v < upper,
    }
    return predicates[op]


def _comparator(token: str) -> Predicate:
    op = next((o for o in _OPS if token.startswith(o)), "")
    body = token[len(op):]
    if not body:
        raise VersionError(f"missing version in {token!r}")
    parts = body.split(".")
    if any(p in _WILDCARDS for p in parts):
        return _wildcard(op, parts, token)
    target = parse_version(body)
    test = _TESTS[op]
    return lambda v: test(v.compare(target))


def _tokens(alternative: str) -> list[str]:
    tokens: list[str] = []
    pending = ""
    for word in alternative.split():
        if pending:
            tokens.append(pending + word)
            pending = ""
        elif set(word) <= _OP_CHARS:
            pending = word
        else:
            tokens.append(word)
    if pending:
        raise VersionError(f"operator {pending!r} has no version")
    if not tokens:
        raise VersionError("empty version range")
    return tokens


def parse_range(text: str) -> VersionRange:
    """Parse a range: space-separated comparators that all hold, "||" between choices."""
    alternatives: list[list[Predicate]] = [
        [_comparator(token) for token in _tokens(alternative)]
        for alternative in text.split("||")
    ]
    return VersionRange(
        lambda v: any(all(p(v) for p in preds) for preds in alternatives), text
    )


def any_version() -> VersionRange:
    """Return the range that holds every version."""
    return VersionRange(lambda v: True, "*")