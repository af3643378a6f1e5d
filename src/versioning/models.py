"""Data models for semantic versions and version constraints."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple, Union

from common.errors import ParseError


@dataclass(frozen=True)
class SemVer:
    """An immutable semantic version.

    ``minor`` and ``patch`` are None when the text omitted them (or used an
    ``x`` placeholder); a missing component compares equal to anything but
    displays as 0. ``build`` holds the numeric ``-N`` suffix npm appends.
    """

    major: int
    minor: Optional[int] = None
    patch: Optional[int] = None
    special: str = ""
    build: Optional[int] = None

    def format(self) -> str:
        """Return the normalized display form, e.g. ``1.2.0beta1-4``."""
        text = f"{self.major}.{self.minor or 0}.{self.patch or 0}{self.special}"
        if self.build:
            text += f"-{self.build}"
        return text

    def compare(self, other: "SemVer") -> int:
        """Three-way comparison; see ``cmp``."""
        return cmp(self, other)

    def __str__(self) -> str:
        return self.format()

    def __repr__(self) -> str:
        return f"<SemVer {self.format()}>"


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def _cmp_component(a: Optional[int], b: Optional[int]) -> int:
    if a is None or b is None:
        return 0
    return _sign(a - b)


def cmp(a: SemVer, b: SemVer) -> int:
    """Compare two versions, returning -1, 0 or 1.

    Order: major, minor, patch (missing components are wildcards), build
    (missing is 0), then special. A release without a special tag sorts
    after any tagged prerelease of the same version.
    """
    diff = (
        _sign(a.major - b.major)
        or _cmp_component(a.minor, b.minor)
        or _cmp_component(a.patch, b.patch)
        or _sign((a.build or 0) - (b.build or 0))
    )
    if diff:
        return diff
    if a.special and b.special:
        return (a.special > b.special) - (a.special < b.special)
    if a.special:
        return -1
    if b.special:
        return 1
    return 0


OPERATORS: Dict[str, Callable[[int], bool]] = {
    "=": lambda c: c == 0,
    ">": lambda c: c > 0,
    "<": lambda c: c < 0,
    ">=": lambda c: c >= 0,
    "<=": lambda c: c <= 0,
}


@dataclass(frozen=True)
class AnyVersion:
    """Matches every version."""

    def match(self, semver: SemVer) -> bool:
        return True

    def __str__(self) -> str:
        return "<Any *>"


@dataclass(frozen=True)
class Cmp:
    """Matches versions standing in ``op`` relation to ``version``."""

    op: str
    version: SemVer

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise ParseError(f"Unrecognized operator: `{self.op}`.")

    def match(self, semver: SemVer) -> bool:
        return OPERATORS[self.op](cmp(semver, self.version))

    def __str__(self) -> str:
        return f"#(Cmp `{self.op}` {self.version.format()})"


@dataclass(frozen=True)
class And:
    """Matches when every member matches."""

    items: Tuple["Constraint", ...]

    def match(self, semver: SemVer) -> bool:
        return all(item.match(semver) for item in self.items)

    def __str__(self) -> str:
        return "#(And " + " ".join(str(item) for item in self.items) + ")"


@dataclass(frozen=True)
class Or:
    """Matches when at least one member matches."""

    items: Tuple["Constraint", ...]

    def match(self, semver: SemVer) -> bool:
        return any(item.match(semver) for item in self.items)

    def __str__(self) -> str:
        return "#(Or " + " ".join(str(item) for item in self.items) + ")"


Constraint = Union[AnyVersion, Cmp, And, Or]


def all_of(items: Sequence[Constraint]) -> Constraint:
    """Conjunction of ``items``; an empty list matches anything."""
    if not items:
        return AnyVersion()
    if len(items) == 1:
        return items[0]
    return And(tuple(items))


def any_of(items: Sequence[Constraint]) -> Constraint:
    """Disjunction of ``items``, flattening nested alternatives."""
    flat = []
    for item in items:
        flat.extend(item.items if isinstance(item, Or) else (item,))
    if not flat:
        return AnyVersion()
    if len(flat) == 1:
        return flat[0]
    return Or(tuple(flat))
