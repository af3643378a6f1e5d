"""Qualified names: a namespace (package URI) plus a local module path.

Module names come in four shapes::

    foo/bar                    top-level, mapped through a package
    /foo/bar, http://x/foo     absolute, used as-is
    ./foo/bar, ../foo          relative to a library root or module
    jar:ns!local, npm:/x!lib/y jar-style, an entry inside a package

A name moves through several QNames while it is resolved, e.g.
``{http://foo.com/package}some/module`` becomes
``{/cache/1f3e...}some/module`` once the package is fetched, and
``{/cache/1f3e...}lib/some/module`` with extension ``.js`` once found.
"""
from __future__ import annotations

import os
import posixpath
import re
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from resources.uri import resolve_local

_ABSOLUTE = re.compile(r"^(?:[A-Za-z][\w+.\-]*:|/)")
_JAR = re.compile(r"^jar:([^!]+)!(.*)$")
_SCHEME_JAR = re.compile(r"^([A-Za-z][\w+.\-]*:[^!]+)!(.*)$")
_NAME = re.compile(r"^([^/]+)/*(.*)$")


def is_relative(name: str) -> bool:
    return name.startswith(".")


def is_absolute(name: str) -> bool:
    return bool(_ABSOLUTE.match(name))


def is_top_level(name: str) -> bool:
    return not (is_relative(name) or is_absolute(name))


def is_jar(name: str) -> bool:
    return split_jar(name) is not None


def split_jar(name: str) -> Optional[Tuple[str, str]]:
    """(namespace, local) for ``jar:ns!local`` or ``scheme:path!local``."""
    probe = _JAR.match(name) or _SCHEME_JAR.match(name)
    return (probe.group(1), probe.group(2)) if probe else None


def split_name(name: str) -> Optional[Tuple[str, str]]:
    """(package, rest) for a top-level name like ``pkg/some/module``."""
    probe = _NAME.match(name)
    return (probe.group(1), probe.group(2)) if probe else None


def relative_name(name: str) -> str:
    """``some/module`` -> ``./some/module``; an empty name stays empty."""
    name = name.lstrip("/")
    return "./" + name if name else ""


def folder_name(name: str) -> str:
    return name.rstrip("/") + "/"


def simple_join(folder: str, name: str) -> str:
    """Join keeping a leading ``./`` on ``folder``."""
    return folder_name(folder) + name.lstrip("/")


def without_ext(name: Optional[str]) -> Optional[str]:
    """Strip the extension people add to names like ``main: "foo.js"``."""
    if not name:
        return name
    stem, ext = posixpath.splitext(name)
    return stem if ext else name


@dataclass(frozen=True)
class QName:
    """A namespace URI and a local name, plus the extension once found."""

    ns: str
    lname: str = ""
    ext: str = ""

    @classmethod
    def make(cls, name: str) -> Optional["QName"]:
        """Build a QName from a jar, absolute or top-level name."""
        jar = split_jar(name)
        if jar:
            return cls(jar[0], jar[1])
        if is_absolute(name):
            return cls(name, "")
        probe = split_name(name)
        return cls(probe[0], probe[1]) if probe else None

    def resolve(self, name: str) -> "QName":
        """Resolve ``name`` against the local part, URL style."""
        return QName(self.ns, resolve_local(self.lname, name))

    def join(self, name: str) -> "QName":
        return QName(self.ns, posixpath.join(self.lname, name) if self.lname else name)

    def with_ext(self, ext: str) -> "QName":
        return replace(self, ext=ext)

    def uri(self) -> str:
        """Location text: namespace joined with the local name, plus extension."""
        base = os.path.join(self.ns, self.lname) if self.lname else self.ns
        return base + self.ext

    def absolute(self) -> "QName":
        """The package itself (namespace only)."""
        return QName(self.ns)

    def __str__(self) -> str:
        return "{" + self.ns + "}" + self.lname + self.ext
