"""Mimetype dispatch: unpack an archive Resource into a scratch folder.

Compressed single files (``.gz``, and ``.tar.gz`` which is just a gzipped
tar) are decompressed first; when the payload is itself an archive it is
extracted in turn and the intermediate file is released.
"""
from __future__ import annotations

import asyncio
import gzip
import logging
import os
import shutil
import tarfile
import tempfile
import zipfile
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

from common.aio import run_sync
from common.errors import ProtocolError, StructuralError
from common.logging_utils import Timer, extra_context

from .files import Resource, Scratch, TemporaryResource
from .mimetype import ExtensionTable, MimeType

logger = logging.getLogger(__name__)

Handler = Callable[[Resource, Scratch, "Extractor"], Awaitable[TemporaryResource]]


def _key(mimetype: Union[str, MimeType]) -> str:
    return mimetype.value if isinstance(mimetype, MimeType) else mimetype


class ExtractRegistry:
    """Mimetype to handler table."""

    def __init__(self) -> None:
        self._handlers: Dict[str, Handler] = {}

    def register(self, mimetypes: Iterable[Union[str, MimeType]], handler: Handler) -> Handler:
        for mimetype in mimetypes:
            self._handlers[_key(mimetype)] = handler
        return handler

    def get(self, mimetype: Union[str, MimeType]) -> Handler:
        try:
            return self._handlers[_key(mimetype)]
        except KeyError:
            raise ProtocolError(f'Unrecognized mimetype "{_key(mimetype)}".') from None

    def mimetypes(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, mimetype: object) -> bool:
        return isinstance(mimetype, str) and _key(mimetype) in self._handlers


class Extractor:
    """Dispatches ``extract(resource)`` on the resource's mimetype."""

    def __init__(
        self,
        registry: Optional[ExtractRegistry] = None,
        scratch: Optional[Scratch] = None,
        extensions: Optional[ExtensionTable] = None,
    ):
        self.registry = registry if registry is not None else default_extract_registry()
        self.scratch = scratch or Scratch(tempfile.gettempdir())
        self.extensions = extensions if extensions is not None else ExtensionTable()

    def mimetype_of(self, resource: Resource) -> str:
        """The resource's mimetype, probed against this extractor's extensions."""
        return resource.detect_mimetype(self.extensions)

    def is_archive(self, resource: Resource) -> bool:
        """True when a handler exists for the resource's mimetype."""
        return self.mimetype_of(resource) in self.registry

    async def extract(self, resource: Resource, scratch: Optional[Scratch] = None) -> TemporaryResource:
        """Unpack ``resource`` into a fresh temporary folder (or file).

        Raises:
            ProtocolError: for unregistered or too generic mimetypes.
            StructuralError: for corrupt archives or unsafe member paths.
        """
        mimetype = self.mimetype_of(resource)
        if mimetype not in self.registry:
            raise ProtocolError(f'Unrecognized mimetype "{mimetype}" for {resource.path}.')
        logger.debug(
            "Extracting",
            extra=extra_context(event="extract", component="extract", action=mimetype, target=resource.path),
        )
        return await self.registry.get(mimetype)(resource, scratch or self.scratch, self)

    def extract_sync(self, resource: Resource, scratch: Optional[Scratch] = None) -> TemporaryResource:
        return run_sync(self.extract(resource, scratch))


# ---------- Member checks ----------


def _inside(root: str, name: str) -> str:
    """Absolute target of archive member ``name``, which must stay under ``root``."""
    root = os.path.realpath(root)
    target = os.path.realpath(os.path.join(root, name))
    if target != root and not target.startswith(root + os.sep):
        raise StructuralError(f"Archive member escapes extraction folder: {name}")
    return target


def _unzip(path: str, into: str) -> None:
    try:
        with zipfile.ZipFile(path) as archive:
            for name in archive.namelist():
                _inside(into, name)
            archive.extractall(into)
    except zipfile.BadZipFile as exc:
        raise StructuralError(f"Corrupt zip archive {path}: {exc}") from exc


def _untar(path: str, into: str) -> None:
    try:
        with tarfile.open(path, "r:*") as archive:
            for member in archive.getmembers():
                _inside(into, member.name)
                if member.issym():
                    _inside(into, os.path.join(os.path.dirname(member.name), member.linkname))
                elif member.islnk():
                    _inside(into, member.linkname)
            if hasattr(tarfile, "data_filter"):
                archive.extractall(into, filter="data")
            else:
                archive.extractall(into)
    except tarfile.TarError as exc:
        raise StructuralError(f"Corrupt tar archive {path}: {exc}") from exc


def _gunzip(path: str, into: str) -> None:
    try:
        with gzip.open(path, "rb") as source, open(into, "wb") as target:
            shutil.copyfileobj(source, target)
    except (OSError, EOFError) as exc:
        raise StructuralError(f"Corrupt gzip file {path}: {exc}") from exc


# ---------- Built-in handlers ----------


async def _extract_with(unpack: Callable[[str, str], None], resource: Resource, scratch: Scratch) -> TemporaryResource:
    into = scratch.temp_folder()
    try:
        with Timer() as timer:
            await asyncio.to_thread(unpack, resource.path, into.path)
    except BaseException:
        into.release()
        raise
    logger.debug(
        "Extracted archive",
        extra=extra_context(
            event="extract", component="extract", outcome="success", target=into.path, duration_ms=timer.duration_ms()
        ),
    )
    return into


async def extract_zip(resource: Resource, scratch: Scratch, extractor: Extractor) -> TemporaryResource:
    return await _extract_with(_unzip, resource, scratch)


async def extract_tar(resource: Resource, scratch: Scratch, extractor: Extractor) -> TemporaryResource:
    return await _extract_with(_untar, resource, scratch)


async def extract_gzip(resource: Resource, scratch: Scratch, extractor: Extractor) -> TemporaryResource:
    """Decompress, then extract again when the payload is an archive."""
    payload = scratch.temp_file()
    try:
        await asyncio.to_thread(_gunzip, resource.path, payload.path)
    except BaseException:
        payload.release()
        raise

    payload.set_mimetype(None)
    if extractor.mimetype_of(payload) == MimeType.OCTET_STREAM.value or not extractor.is_archive(payload):
        return payload
    try:
        return await extractor.extract(payload, scratch)
    finally:
        payload.release()


async def extract_octet_stream(resource: Resource, scratch: Scratch, extractor: Extractor) -> TemporaryResource:
    """Servers often answer with a generic type; look at the content instead."""
    resource.set_mimetype(None)
    if extractor.mimetype_of(resource) == MimeType.OCTET_STREAM.value:
        raise ProtocolError(f'"{MimeType.OCTET_STREAM.value}" is too generic: {resource.path}')
    return await extractor.extract(resource, scratch)


def default_extract_registry() -> ExtractRegistry:
    """A fresh registry with every built-in archive type."""
    registry = ExtractRegistry()
    registry.register([MimeType.ZIP], extract_zip)
    registry.register([MimeType.TAR], extract_tar)
    registry.register([MimeType.TAR_GZ, MimeType.GZIP, MimeType.GZIP_ALT], extract_gzip)
    registry.register([MimeType.OCTET_STREAM], extract_octet_stream)
    return registry
