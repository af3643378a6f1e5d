"""URI parsing, canonical forms and hashed on-disk names."""
from __future__ import annotations

import hashlib
import os
import posixpath
import re
import tempfile
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union
from urllib.parse import parse_qsl, unquote, urlsplit, urlunsplit

from versioning.parser import is_semver

from .mimetype import split_ext

LOCAL_SCHEMES = ("", "file")
GITHUB_HOST = "github.com"
GITHUB_DEFAULT_ARCHIVE = "zipball/master"

_GITHUB_REPO = re.compile(r"^/[^/]+/[^/]+/*$")


@dataclass(frozen=True)
class ParsedURI:
    """A split URI; local paths carry an empty scheme."""

    scheme: str
    netloc: str
    path: str
    query: str = ""
    fragment: str = ""

    @property
    def is_local(self) -> bool:
        return self.scheme in LOCAL_SCHEMES

    def local_path(self) -> str:
        """Filesystem path for ``file:`` and bare-path URIs."""
        return unquote(self.path) if self.scheme == "file" else self.path

    def query_items(self) -> List[Tuple[str, str]]:
        """Query parameters in their original order."""
        return parse_qsl(self.query, keep_blank_values=True)

    def format(self) -> str:
        if not self.scheme:
            return self.path
        return urlunsplit((self.scheme, self.netloc, self.path, self.query, self.fragment))

    def canonical(self) -> str:
        """Normalized text used as cache key and hash seed."""
        if self.is_local:
            return os.path.abspath(self.local_path())
        return urlunsplit((self.scheme, self.netloc.lower(), self.path or "/", self.query, ""))

    def __str__(self) -> str:
        return self.format()


def parse_uri(uri: Union[str, ParsedURI]) -> ParsedURI:
    """Split ``uri``; plain filesystem paths become scheme-less URIs."""
    if isinstance(uri, ParsedURI):
        return uri
    has_scheme = "://" in uri or ":" in uri.split("/", 1)[0]
    if uri.startswith(("/", ".")) or not has_scheme:
        return ParsedURI(scheme="", netloc="", path=uri)
    parts = urlsplit(uri)
    return ParsedURI(
        scheme=parts.scheme.lower(),
        netloc=parts.netloc,
        path=parts.path,
        query=parts.query,
        fragment=parts.fragment,
    )


def canonical(uri: Union[str, ParsedURI]) -> str:
    return parse_uri(uri).canonical()


def complete_name(name: str) -> str:
    """Expand shorthand package URIs.

    A bare GitHub repository (``https://github.com/<user>/<repo>``)
    becomes its default-branch zipball. Anything else is returned as is.
    """
    parsed = parse_uri(name)
    if parsed.scheme not in ("http", "https"):
        return name
    host = parsed.netloc.rsplit("@", 1)[-1].split(":", 1)[0].lower()
    if host != GITHUB_HOST or not _GITHUB_REPO.match(parsed.path):
        return name
    path = parsed.path.rstrip("/") + "/" + GITHUB_DEFAULT_ARCHIVE
    return urlunsplit((parsed.scheme, parsed.netloc, path, parsed.query, parsed.fragment))


def md5_hex(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def hashname(name: str, prefix: str = "") -> str:
    """Prefixed md5 of ``name``."""
    return prefix + md5_hex(name)


def derive_name(uri: Union[str, ParsedURI], base: Optional[str] = None, prefix: str = "") -> str:
    """Deterministic path under ``base`` for ``uri``."""
    return os.path.join(base or tempfile.gettempdir(), hashname(canonical(uri), prefix))


def uri_prefix(uri: Union[str, ParsedURI]) -> str:
    """Short, human-readable stem for a URI.

    Examples:
        /path/to/archive.zip                          -> archive
        /path/to/module/v1.2.3                        -> module-v1.2.3
        https://github.com/weaver/DefineJS/tarball/v0.2.5 -> DefineJS-v0.2.5
        http://nodejs.org/dist/node-v0.2.6.tar.gz     -> node-v0.2.6
        npm:/name/1.2.3                               -> name-1.2.3
        npm:/?name=1.x                                -> name
    """
    parsed = parse_uri(uri)
    parts = [part for part in parsed.path.split("/") if part]

    if parsed.scheme == "npm":
        if parsed.query:
            return "-".join(key for key, _ in parsed.query_items())
        return "-".join(parts).replace("@", "")

    if len(parts) <= 1:
        return split_ext(parts[0])[0] if parts else "resource"

    if parsed.is_local:
        name = parts.pop()
        if is_semver(name):
            return split_ext(parts.pop())[0] + "-" + name
        return split_ext(name)[0]

    # The leading segment is usually "dist" or a user name.
    parts.pop(0)
    name = split_ext(parts.pop(0))[0]
    for part in parts:
        if is_semver(part):
            return name + "-" + part
    return name


def uri_temp_name(uri: Union[str, ParsedURI], base: Optional[str] = None, hint: Optional[str] = None) -> str:
    """Readable, deterministic install location for ``uri``."""
    return derive_name(uri, base, (hint or uri_prefix(uri)) + "-")


def resolve_local(base: str, name: str) -> str:
    """Resolve a local name against ``base`` using URL path rules.

    ``base`` ending in "/" is a folder; otherwise its last segment is
    replaced. A trailing "/" on ``name`` is preserved.
    """
    if not name:
        return base
    if name.startswith("/"):
        joined = name
    else:
        folder = base.rsplit("/", 1)[0] + "/" if "/" in base else ""
        joined = folder + name
    normalized = posixpath.normpath(joined)
    if normalized == ".":
        normalized = ""
    if joined.endswith("/") and normalized:
        normalized += "/"
    return normalized
