"""Semantic version parsing and npm-style range matching.

The range grammar is the one npm uses:

* ``||`` joins alternative comparator sets,
* whitespace joins comparators that must all hold,
* ``a - b`` is an inclusive hyphen range,
* ``^``, ``~`` (and ``~>``) and x-ranges (``*``, ``1.x``, ``1.2.*``) desugar
  into primitive ``<``/``<=``/``>``/``>=``/``=`` comparators.

A prerelease version only satisfies a comparator set when one of the set's
comparators carries a prerelease on the same ``major.minor.patch``.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple, Union

from pullkit_core.errors import InvalidRangeError, VersionNotFoundError

__all__ = [
    "Comparator",
    "Range",
    "SemVer",
    "max_satisfying",
    "parse_range",
    "parse_version",
    "resolve_version",
    "satisfies",
    "sort_versions",
]

Identifier = Union[int, str]

_IDENT = r"[0-9A-Za-z-]+"
_PRERELEASE = rf"{_IDENT}(?:\.{_IDENT})*"
_VERSION_RE = re.compile(
    rf"^\s*[v=\s]*(\d+)\.(\d+)\.(\d+)(?:-({_PRERELEASE}))?(?:\+({_PRERELEASE}))?\s*$"
)
_XR = r"\d+|[xX*]"
_PARTIAL_RE = re.compile(
    rf"^[v=\s]*({_XR})(?:\.({_XR})(?:\.({_XR})(?:-({_PRERELEASE}))?(?:\+{_PRERELEASE})?)?)?$"
)
_HYPHEN_RE = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")
_OPERATOR_GAP_RE = re.compile(r"(<=|>=|<|>|=|\^|~>?)\s+")
_TOKEN_RE = re.compile(r"^(<=|>=|<|>|=|\^|~>|~)?(.*)$")


def _parse_identifiers(text: Optional[str]) -> Tuple[Identifier, ...]:
    if not text:
        return ()
    out: list[Identifier] = []
    for part in text.split("."):
        out.append(int(part) if part.isdigit() else part)
    return tuple(out)


def _prerelease_key(pre: Tuple[Identifier, ...]) -> tuple:
    # no prerelease sorts above any prerelease of the same triple
    if not pre:
        return (1,)
    return (0, tuple((0, p, "") if isinstance(p, int) else (1, 0, p) for p in pre))


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: Tuple[Identifier, ...] = ()
    build: Tuple[Identifier, ...] = ()

    @property
    def triple(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def key(self) -> tuple:
        return (self.major, self.minor, self.patch, _prerelease_key(self.prerelease))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self.key() == other.key()

    def __lt__(self, other: "SemVer") -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self.key() < other.key()

    def __hash__(self) -> int:
        return hash(self.key())

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(str(p) for p in self.prerelease)
        return text


def parse_version(text: str) -> SemVer:
    match = _VERSION_RE.match(text or "")
    if not match:
        raise ValueError(f"invalid version: {text!r}")
    major, minor, patch, pre, build = match.groups()
    return SemVer(
        int(major),
        int(minor),
        int(patch),
        _parse_identifiers(pre),
        _parse_identifiers(build),
    )


def _try_parse(text: str) -> Optional[SemVer]:
    try:
        return parse_version(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class Comparator:
    operator: str
    version: SemVer

    def test(self, candidate: SemVer) -> bool:
        op = self.operator
        if op == "<":
            return candidate < self.version
        if op == "<=":
            return candidate <= self.version
        if op == ">":
            return candidate > self.version
        if op == ">=":
            return candidate >= self.version
        return candidate == self.version

    def __str__(self) -> str:
        return f"{'' if self.operator == '=' else self.operator}{self.version}"


_ZERO = SemVer(0, 0, 0)
_ANY = Comparator(">=", _ZERO)
_NOTHING = Comparator("<", SemVer(0, 0, 0, (0,)))

ComparatorSet = Tuple[Comparator, ...]


@dataclass(frozen=True)
class Range:
    raw: str
    sets: Tuple[ComparatorSet, ...]

    def test(self, version: SemVer | str) -> bool:
        candidate = parse_version(version) if isinstance(version, str) else version
        return any(_test_set(comparators, candidate) for comparators in self.sets)

    def __str__(self) -> str:
        return " || ".join(" ".join(str(c) for c in comparators) for comparators in self.sets)


def _test_set(comparators: ComparatorSet, candidate: SemVer) -> bool:
    if not all(c.test(candidate) for c in comparators):
        return False
    if not candidate.prerelease:
        return True
    for comparator in comparators:
        if comparator.version.prerelease and comparator.version.triple == candidate.triple:
            return True
    return False


# ------------------------- range parsing -------------------------

_Partial = Tuple[Optional[int], Optional[int], Optional[int], Tuple[Identifier, ...]]


def _parse_partial(text: str, raw: str) -> _Partial:
    if text in ("", "*", "x", "X"):
        return (None, None, None, ())
    match = _PARTIAL_RE.match(text)
    if not match:
        raise InvalidRangeError(f"invalid range {raw!r}: cannot parse {text!r}")
    values: list[Optional[int]] = []
    for group in match.groups()[:3]:
        if group is None or group in ("x", "X", "*"):
            values.append(None)
        else:
            values.append(int(group))
    major, minor, patch = values
    # anything after a wildcard is a wildcard too
    if major is None:
        minor = patch = None
    elif minor is None:
        patch = None
    pre = _parse_identifiers(match.group(4)) if patch is not None else ()
    return (major, minor, patch, pre)


def _lower(major: int, minor: int = 0, patch: int = 0, pre: Tuple[Identifier, ...] = ()) -> Comparator:
    return Comparator(">=", SemVer(major, minor, patch, pre))


def _upper_exclusive(major: int, minor: int = 0, patch: int = 0) -> Comparator:
    return Comparator("<", SemVer(major, minor, patch, (0,)))


def _desugar_tilde(partial: _Partial) -> list[Comparator]:
    major, minor, patch, pre = partial
    if major is None:
        return [_ANY]
    if minor is None:
        return [_lower(major), _upper_exclusive(major + 1)]
    if patch is None:
        return [_lower(major, minor), _upper_exclusive(major, minor + 1)]
    return [_lower(major, minor, patch, pre), _upper_exclusive(major, minor + 1)]


def _desugar_caret(partial: _Partial) -> list[Comparator]:
    major, minor, patch, pre = partial
    if major is None:
        return [_ANY]
    if minor is None:
        return [_lower(major), _upper_exclusive(major + 1)]
    if patch is None:
        if major == 0:
            return [_lower(0, minor), _upper_exclusive(0, minor + 1)]
        return [_lower(major, minor), _upper_exclusive(major + 1)]
    low = _lower(major, minor, patch, pre)
    if major == 0:
        if minor == 0:
            return [low, _upper_exclusive(0, 0, patch + 1)]
        return [low, _upper_exclusive(0, minor + 1)]
    return [low, _upper_exclusive(major + 1)]


def _desugar_primitive(operator: str, partial: _Partial) -> list[Comparator]:
    major, minor, patch, pre = partial
    if major is None:
        if operator in ("<", ">"):
            return [_NOTHING]
        return [_ANY]
    if patch is not None:
        return [Comparator(operator or "=", SemVer(major, minor, patch, pre))]
    # partial version: minor and/or patch are wildcards
    if operator in ("", "="):
        if minor is None:
            return [_lower(major), _upper_exclusive(major + 1)]
        return [_lower(major, minor), _upper_exclusive(major, minor + 1)]
    if operator == ">":
        if minor is None:
            return [_lower(major + 1)]
        return [_lower(major, minor + 1)]
    if operator == ">=":
        return [_lower(major, minor or 0)]
    if operator == "<=":
        if minor is None:
            return [_upper_exclusive(major + 1)]
        return [_upper_exclusive(major, minor + 1)]
    return [_upper_exclusive(major, minor or 0)]


def _parse_hyphen(low_text: str, high_text: str, raw: str) -> list[Comparator]:
    out: list[Comparator] = []
    major, minor, patch, pre = _parse_partial(low_text, raw)
    if major is not None:
        out.append(_lower(major, minor or 0, patch or 0, pre if patch is not None else ()))
    major, minor, patch, pre = _parse_partial(high_text, raw)
    if major is not None:
        if minor is None:
            out.append(_upper_exclusive(major + 1))
        elif patch is None:
            out.append(_upper_exclusive(major, minor + 1))
        else:
            out.append(Comparator("<=", SemVer(major, minor, patch, pre)))
    return out or [_ANY]


def _parse_set(text: str, raw: str) -> ComparatorSet:
    hyphen = _HYPHEN_RE.match(text)
    if hyphen:
        return tuple(_parse_hyphen(hyphen.group(1), hyphen.group(2), raw))
    normalized = _OPERATOR_GAP_RE.sub(r"\1", text.strip())
    if not normalized:
        return (_ANY,)
    comparators: list[Comparator] = []
    for token in normalized.split():
        match = _TOKEN_RE.match(token)
        operator, rest = match.group(1) or "", match.group(2)
        partial = _parse_partial(rest, raw)
        if operator in ("~", "~>"):
            comparators.extend(_desugar_tilde(partial))
        elif operator == "^":
            comparators.extend(_desugar_caret(partial))
        else:
            comparators.extend(_desugar_primitive(operator, partial))
    return tuple(comparators)


@functools.lru_cache(maxsize=512)
def parse_range(text: str) -> Range:
    raw = (text or "").strip()
    sets = tuple(_parse_set(part, raw) for part in re.split(r"\s*\|\|\s*", raw))
    return Range(raw=raw, sets=sets)


# ------------------------- resolution -------------------------


def satisfies(version: str, range_text: str) -> bool:
    candidate = _try_parse(version)
    if candidate is None:
        return False
    try:
        return parse_range(range_text).test(candidate)
    except InvalidRangeError:
        return False


def max_satisfying(versions: Iterable[str], range_text: str) -> Optional[str]:
    """Return the highest of ``versions`` inside ``range_text`` or ``None``."""

    try:
        wanted = parse_range(range_text)
    except InvalidRangeError:
        return None
    best: Optional[Tuple[SemVer, str]] = None
    for text in versions:
        candidate = _try_parse(text)
        if candidate is None or not wanted.test(candidate):
            continue
        # ties (same precedence, different build metadata) go to the lexically smaller string
        if best is None or candidate > best[0] or (candidate == best[0] and text < best[1]):
            best = (candidate, text)
    return best[1] if best else None


def resolve_version(versions: Iterable[str], range_text: str, *, name: str = "") -> str:
    found = max_satisfying(versions, range_text)
    if found is None:
        raise VersionNotFoundError(name or "<package>", range_text)
    return found


def sort_versions(versions: Iterable[str]) -> list[str]:
    """Order versions by semver precedence; unparsable strings go first, lexically."""

    valid: list[Tuple[SemVer, str]] = []
    invalid: list[str] = []
    for text in versions:
        parsed = _try_parse(text)
        if parsed is None:
            invalid.append(text)
        else:
            valid.append((parsed, text))
    valid.sort(key=lambda item: (item[0].key(), item[1]))
    return sorted(invalid) + [text for _, text in valid]
