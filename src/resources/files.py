"""Filesystem resources, temporary ownership and scratch storage.

A ``Resource`` is a path plus a lazily probed mimetype. A
``TemporaryResource`` is owned by whoever created it: it must be either
released (deleted) or promoted (renamed into permanent storage), and
both happen at most once.
"""
from __future__ import annotations

import hashlib
import logging
import os
import secrets
import shutil
import time
from typing import List, Optional

from common.errors import InstallError, StructuralError
from common.logging_utils import extra_context

from .mimetype import ExtensionTable, MimeType, probe

logger = logging.getLogger(__name__)

TEMP_PREFIX = "depload-"


def tempname(prefix: Optional[str] = None, suffix: str = "") -> str:
    """Collision-resistant file name from random entropy and the process id."""
    seed = f"{os.getpid()}:{time.time_ns()}:{secrets.token_hex(8)}"
    digest = hashlib.md5(seed.encode("ascii")).hexdigest()
    return (TEMP_PREFIX if prefix is None else prefix) + digest + suffix


def promote_path(source: str, dest: str) -> None:
    """Atomically rename ``source`` to ``dest``, creating parent folders.

    Raises:
        InstallError: if the rename fails, e.g. across filesystems.
    """
    try:
        parent = os.path.dirname(dest)
        if parent:
            os.makedirs(parent, exist_ok=True)
        os.rename(source, dest)
    except OSError as exc:
        raise InstallError(f"Cannot move {source} to {dest}: {exc}") from exc


class Resource:
    """A file or folder the engine did not create and never deletes."""

    is_temporary = False

    def __init__(self, path: str, mimetype: Optional[str] = None):
        self.path = path
        self._mimetype = mimetype

    @property
    def mimetype(self) -> str:
        """Mimetype, probed with the built-in extensions on first access."""
        return self.detect_mimetype()

    def detect_mimetype(self, extensions: Optional[ExtensionTable] = None) -> str:
        """Mimetype, probed against ``extensions`` unless already known."""
        if self._mimetype is None:
            self._mimetype = probe(self.path, extensions)
        return self._mimetype

    def set_mimetype(self, value: Optional[str]) -> "Resource":
        """Override the mimetype; None forces a fresh probe."""
        self._mimetype = value
        return self

    def is_folder(self) -> bool:
        return os.path.isdir(self.path)

    def is_file(self) -> bool:
        return os.path.isfile(self.path)

    def join(self, name: str) -> "Resource":
        return Resource(os.path.join(self.path, name))

    def listdir(self) -> List["Resource"]:
        return [self.join(name) for name in sorted(os.listdir(self.path))]

    def only(self) -> "Resource":
        """The single entry inside this folder.

        Raises:
            StructuralError: if the folder holds zero or several entries.
        """
        if not self.is_folder():
            raise StructuralError(f"Expected folder: {self.path}")
        entries = self.listdir()
        if len(entries) != 1:
            raise StructuralError(f"Expected one item in {self.path}, not {len(entries)}.")
        return entries[0]

    def only_folder(self) -> "Resource":
        """The single folder inside this folder (StructuralError otherwise)."""
        entry = self.only()
        if not entry.is_folder():
            raise StructuralError(f"Expected folder: {entry.path}")
        return entry

    def release(self) -> None:
        """Permanent resources are never deleted."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.path}>"


class TemporaryResource(Resource):
    """A scratch file or folder owned by its creating operation."""

    is_temporary = True

    def __init__(self, path: str, mimetype: Optional[str] = None):
        super().__init__(path, mimetype)
        self._state = "live"

    @property
    def is_live(self) -> bool:
        return self._state == "live"

    def release(self) -> None:
        """Delete the scratch artifact; later calls do nothing."""
        if not self.is_live:
            return
        self._state = "released"
        if os.path.isdir(self.path) and not os.path.islink(self.path):
            shutil.rmtree(self.path)
        elif os.path.lexists(self.path):
            os.remove(self.path)
        logger.debug(
            "Released temporary resource",
            extra=extra_context(event="release", component="files", target=self.path),
        )

    def promote(self, dest: str) -> Resource:
        """Rename into permanent storage at ``dest``.

        Raises:
            StructuralError: if the resource was already released or promoted.
            InstallError: if the rename fails; the resource stays live.
        """
        if not self.is_live:
            raise StructuralError(f"Cannot promote {self.path}: already {self._state}.")
        promote_path(self.path, dest)
        self._state = "promoted"
        logger.debug(
            "Promoted temporary resource",
            extra=extra_context(event="promote", component="files", target=dest),
        )
        return Resource(dest, self._mimetype)

    def __enter__(self) -> "TemporaryResource":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()


class Scratch:
    """Factory for temporary resources under one base folder."""

    def __init__(self, base: str):
        self.base = base

    def temp_name(self, prefix: Optional[str] = None, suffix: str = "") -> str:
        os.makedirs(self.base, exist_ok=True)
        return os.path.join(self.base, tempname(prefix, suffix))

    def temp_file(self, suffix: str = "") -> TemporaryResource:
        """Create an empty scratch file."""
        path = self.temp_name(suffix=suffix)
        with open(path, "wb"):
            pass
        return TemporaryResource(path)

    def temp_folder(self) -> TemporaryResource:
        """Create an empty scratch folder."""
        path = self.temp_name()
        os.makedirs(path)
        return TemporaryResource(path, MimeType.DIRECTORY.value)

    def prune(self) -> None:
        """Remove the base folder when nothing is left in it."""
        if os.path.isdir(self.base) and not os.listdir(self.base):
            os.rmdir(self.base)

    def __repr__(self) -> str:
        return f"<Scratch {self.base}>"
