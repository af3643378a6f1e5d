"""Semantic versions, constraint expressions and satisfaction."""

from .models import AnyVersion, And, Cmp, Constraint, Or, SemVer, cmp
from .parser import (
    format_version,
    is_any,
    is_exact,
    is_semver,
    parse_constraint,
    parse_exact,
    parse_loose,
)
from .version_match import satisfy, sort_versions

__all__ = [
    "AnyVersion",
    "And",
    "Cmp",
    "Constraint",
    "Or",
    "SemVer",
    "cmp",
    "format_version",
    "is_any",
    "is_exact",
    "is_semver",
    "parse_constraint",
    "parse_exact",
    "parse_loose",
    "satisfy",
    "sort_versions",
]
