"""Selecting the best version that satisfies a constraint."""
from __future__ import annotations

from functools import cmp_to_key
from typing import Iterable, List, Optional, Union

from .models import Constraint, SemVer, cmp
from .parser import parse_constraint, parse_loose


def sort_versions(versions: Iterable[Union[str, SemVer]]) -> List[SemVer]:
    """Parse (loosely) and sort versions ascending."""
    parsed = [v if isinstance(v, SemVer) else parse_loose(v) for v in versions]
    return sorted(parsed, key=cmp_to_key(cmp))


def satisfy(
    constraint: Union[str, Constraint],
    versions: Iterable[Union[str, SemVer]],
    otherwise: Optional[SemVer] = None,
) -> Optional[SemVer]:
    """Return the highest version matching ``constraint``.

    Args:
        constraint: Constraint text or an already-parsed AST.
        versions: Candidate version strings (or SemVer values).
        otherwise: Value returned when nothing matches.

    Returns:
        The best matching SemVer, or ``otherwise``.

    Raises:
        ParseError: if the constraint or any candidate is malformed.
    """
    if isinstance(constraint, str):
        constraint = parse_constraint(constraint)
    for candidate in reversed(sort_versions(versions)):
        if constraint.match(candidate):
            return candidate
    return otherwise
