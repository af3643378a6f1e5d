"""Mimetype detection: a known-extension table first, then content sniffing."""
from __future__ import annotations

import mimetypes
import os
import tarfile
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from common.errors import TransportError


class MimeType(str, Enum):
    """Mimetypes the engine knows how to handle."""

    ZIP = "application/zip"
    TAR = "application/x-tar"
    TAR_GZ = "application/x-tar-gz"
    GZIP = "application/x-gzip"
    GZIP_ALT = "application/gzip"
    OCTET_STREAM = "application/octet-stream"
    DIRECTORY = "application/x-directory"
    TEXT = "text/plain"


BUILTIN_EXTENSIONS: Mapping[str, str] = MappingProxyType({
    ".zip": MimeType.ZIP.value,
    ".tgz": MimeType.TAR_GZ.value,
    ".tar.gz": MimeType.TAR_GZ.value,
    ".tar": MimeType.TAR.value,
    ".gz": MimeType.GZIP.value,
})

_DOUBLE_SUFFIXES = (".gz",)
_SNIFF_BYTES = 512


def extname(path: str) -> str:
    """Extension of ``path``, keeping compound ones like ``.tar.gz`` whole."""
    stem, ext = os.path.splitext(path)
    if ext in _DOUBLE_SUFFIXES:
        inner = os.path.splitext(stem)[1]
        if inner and inner[1:].isalpha():
            ext = inner + ext
    return ext


def split_ext(name: str) -> Tuple[str, str]:
    """Split ``name`` into (stem, extension) using ``extname``."""
    if name in (".", ".."):
        return name, ""
    ext = extname(name)
    return (name[: -len(ext)], ext) if ext else (name, "")


class ExtensionTable:
    """Known extensions mapped to mimetypes.

    Starts from ``BUILTIN_EXTENSIONS``; ``register`` only changes this
    table, so extractors with different tables do not see each other's
    additions.
    """

    def __init__(self, items: Optional[Mapping[str, str]] = None):
        self._types: Dict[str, str] = dict(BUILTIN_EXTENSIONS)
        if items:
            self.register(items)

    def register(self, items: Mapping[str, str]) -> "ExtensionTable":
        """Add ``{".ext": "mime/type"}`` pairs."""
        self._types.update({ext.lower(): mimetype for ext, mimetype in items.items()})
        return self

    def lookup(self, path: str) -> Optional[str]:
        return self._types.get(extname(path).lower())

    def probe(self, path: str) -> str:
        return self.lookup(path) or sniff(path)

    def __contains__(self, ext: object) -> bool:
        return isinstance(ext, str) and ext.lower() in self._types


def by_extension(path: str) -> Optional[str]:
    return BUILTIN_EXTENSIONS.get(extname(path).lower())


def sniff(path: str) -> str:
    """Determine a mimetype from the file's content.

    Raises:
        TransportError: if the path cannot be read.
    """
    if os.path.isdir(path):
        return MimeType.DIRECTORY.value
    try:
        with open(path, "rb") as handle:
            head = handle.read(_SNIFF_BYTES)
    except OSError as exc:
        raise TransportError(f"Cannot determine mimetype of {path}: {exc}") from exc

    if head[:4] in (b"PK\x03\x04", b"PK\x05\x06"):
        return MimeType.ZIP.value
    if head[:2] == b"\x1f\x8b":
        return MimeType.GZIP.value
    if head[257:262] == b"ustar":
        return MimeType.TAR.value
    if len(head) == _SNIFF_BYTES and tarfile.is_tarfile(path):
        return MimeType.TAR.value

    guessed, _ = mimetypes.guess_type(path)
    if guessed:
        return guessed
    if b"\x00" in head:
        return MimeType.OCTET_STREAM.value
    return MimeType.TEXT.value


def probe(path: str, extensions: Optional[ExtensionTable] = None) -> str:
    """Mimetype of ``path``: known extension, else sniffed content."""
    if extensions is not None:
        return extensions.probe(path)
    return by_extension(path) or sniff(path)
