"""Parsing of version strings and constraint expressions.

Two version parsers are exposed on purpose: ``parse_exact`` demands all
three components, ``parse_loose`` leaves missing ones as wildcards.

Constraint grammar (lowest precedence first)::

    alternatives := constraints ('||' constraints)*
    constraints  := constraint (' ' constraint)*
    constraint   := '*' | version '-' version | [op] version
    op           := '=' | '<' | '>' | '<=' | '>='
"""

import re
from typing import List, Optional, Tuple

from common.errors import ParseError

from .models import AnyVersion, Cmp, Constraint, SemVer, all_of, any_of

_SPECIAL = r"([A-Za-z\-][0-9A-Za-z\-.]*)?(?:\+[0-9A-Za-z\-.]+)?"
_LOOSE = re.compile(
    r"^\s*v?(\d+)(?:\.(\d+|[xX*])(?:\.(\d+|[xX*])" + _SPECIAL + r")?)?\s*$"
)
_EXACT = re.compile(r"^\s*v?(\d+)\.(\d+)\.(\d+)" + _SPECIAL + r"\s*$")
_BUILD = re.compile(r"^-(\d+)$")
_ANY = re.compile(r"^\s*\*?\s*$")

_WILDCARDS = ("x", "X", "*")


def is_semver(text: str) -> bool:
    """True when ``text`` is a (possibly partial) version."""
    return bool(_LOOSE.match(text or ""))


def is_exact(text: str) -> bool:
    """True when ``text`` names exactly one version (major.minor.patch)."""
    return bool(_EXACT.match(text or ""))


def is_any(text: str) -> bool:
    """True for the empty constraint and ``*``."""
    return bool(_ANY.match(text or ""))


def _component(value: Optional[str]) -> Optional[int]:
    if value is None or value in _WILDCARDS:
        return None
    return int(value)


def _build(major: str, minor: Optional[str], patch: Optional[str], special: Optional[str]) -> SemVer:
    build = None
    probe = _BUILD.match(special or "")
    if probe:
        special, build = "", int(probe.group(1))
    return SemVer(
        major=int(major),
        minor=_component(minor),
        patch=_component(patch),
        special=special or "",
        build=build,
    )


def parse_exact(text: str) -> SemVer:
    """Parse a full ``major.minor.patch`` version.

    Raises:
        ParseError: if any component is missing or the text is malformed.
    """
    probe = _EXACT.match(text or "")
    if not probe:
        raise ParseError(f"Invalid exact SemVer: `{text}`.")
    return _build(*probe.groups())


def parse_loose(text: str) -> SemVer:
    """Parse a version whose minor and patch may be absent or ``x``.

    Raises:
        ParseError: if the text is not a version at all.
    """
    probe = _LOOSE.match(text or "")
    if not probe:
        raise ParseError(f"Invalid SemVer: `{text}`.")
    return _build(*probe.groups())


def format_version(semver: SemVer) -> str:
    """Display form of ``semver``."""
    return semver.format()


# ---------- Constraints ----------

_TOKEN = re.compile(
    r"\s*(?:(?P<or>\|\|)|(?P<op>>=|<=|>|<|=)|(?P<version>[0-9A-Za-z_*][0-9A-Za-z_.\-*+]*)|(?P<hyphen>-))"
)

Token = Tuple[str, str]


def _tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    pos, end = 0, len(text.rstrip())
    while pos < end:
        probe = _TOKEN.match(text, pos)
        if not probe or probe.end() == pos:
            raise ParseError(f"Invalid constraint `{text}` at column {pos}.")
        kind = probe.lastgroup or ""
        tokens.append((kind, probe.group(kind)))
        pos = probe.end()
    return tokens


class _ConstraintParser:
    """Recursive-descent parser over the token list."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def parse(self) -> Constraint:
        result = self._alternatives()
        if self.pos != len(self.tokens):
            raise ParseError(f"Unexpected `{self.tokens[self.pos][1]}` in constraint `{self.text}`.")
        return result

    def _peek(self) -> Optional[str]:
        return self.tokens[self.pos][0] if self.pos < len(self.tokens) else None

    def _take(self, kind: str) -> str:
        if self._peek() != kind:
            raise ParseError(f"Expected {kind} in constraint `{self.text}`.")
        value = self.tokens[self.pos][1]
        self.pos += 1
        return value

    def _alternatives(self) -> Constraint:
        parts = [self._constraints()]
        while self._peek() == "or":
            self._take("or")
            parts.append(self._constraints())
        return any_of(parts)

    def _constraints(self) -> Constraint:
        items = []
        while self._peek() in ("op", "version"):
            items.append(self._constraint())
        return all_of(items)

    def _constraint(self) -> Constraint:
        if self._peek() == "op":
            op = self._take("op")
            return Cmp(op, parse_loose(self._take("version")))

        text = self._take("version")
        if text == "*":
            return AnyVersion()
        low = parse_loose(text)
        if self._peek() == "hyphen":
            self._take("hyphen")
            high = parse_loose(self._take("version"))
            return all_of([Cmp(">=", low), Cmp("<=", high)])
        return Cmp("=", low)


def parse_constraint(text: str) -> Constraint:
    """Parse a constraint expression into its AST.

    Raises:
        ParseError: for malformed expressions or versions.
    """
    if text is None:
        raise ParseError("Constraint text is required.")
    return _ConstraintParser(text).parse()
