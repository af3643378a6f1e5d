"""Installing packages: fetch, extract, preinstall, promote.

Supported sources: a local folder, a local archive, a remote archive, a
git repository, or an ``npm:`` specifier. Nothing is promoted into the
destination unless every step succeeded, and every temporary is released
before an error propagates.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
from typing import List, Optional, Union

from common.aio import run_sync
from common.http_client import HttpClient
from common.logging_utils import Timer, extra_context, safe_url
from constants import Constants
from registry.npm.client import NpmClient
from resources.extract import Extractor, default_extract_registry
from resources.fetch import Fetcher, default_fetch_registry
from resources.files import Resource, Scratch, TemporaryResource, promote_path
from resources.mimetype import ExtensionTable
from resources.uri import ParsedURI, uri_temp_name

from .lifecycle import Lifecycle

logger = logging.getLogger(__name__)

PREINSTALL = "preinstall"


class Installer:
    """Coordinates a Fetcher, an Extractor and an optional Lifecycle."""

    def __init__(
        self,
        fetcher: Fetcher,
        extractor: Extractor,
        lifecycle: Optional[Lifecycle] = None,
        scratch: Optional[Scratch] = None,
    ):
        self.fetcher = fetcher
        self.extractor = extractor
        self.lifecycle = lifecycle
        self.scratch = scratch

    @classmethod
    def default(
        cls,
        scratch: Optional[Scratch] = None,
        http: Optional[HttpClient] = None,
        npm: Optional[NpmClient] = None,
        lifecycle: Optional[Lifecycle] = None,
        extensions: Optional[ExtensionTable] = None,
    ) -> "Installer":
        """An installer wired with the built-in protocols and archive types.

        Without ``scratch``, temporaries are created next to each
        destination so promotion stays a same-filesystem rename.
        """
        fetcher = Fetcher(default_fetch_registry(), scratch, http=http, npm=npm)
        extractor = Extractor(default_extract_registry(), scratch, extensions)
        return cls(fetcher, extractor, lifecycle if lifecycle is not None else Lifecycle(), scratch)

    def scratch_for(self, dest: str) -> Scratch:
        """Scratch storage for one install: the configured one, else beside ``dest``."""
        if self.scratch is not None:
            return self.scratch
        parent = os.path.dirname(os.path.abspath(dest))
        return Scratch(os.path.join(parent, Constants.INSTALL_SCRATCH_DIR_NAME))

    async def install(self, uri: Union[str, ParsedURI], dest: str) -> str:
        """Install ``uri`` into ``dest`` and return the installed folder.

        A local folder is used in place (its path is returned and ``dest``
        is left alone). Installing into an existing ``dest`` does nothing.

        Raises:
            StructuralError: if an archive does not hold exactly one folder.
            TransportError: if fetching or the preinstall script fails.
            InstallError: if the result cannot be moved into ``dest``.
        """
        if os.path.exists(dest):
            logger.debug(
                "Already installed",
                extra=extra_context(event="install", component="installer", outcome="exists", target=dest),
            )
            return dest

        logger.info("+ installing <%s>", safe_url(str(uri)))
        scratch = self.scratch_for(dest)
        owned: List[Resource] = []
        with Timer() as timer:
            try:
                fetched = await self.fetcher.fetch(uri, scratch)
                owned.append(fetched)
                if fetched.is_folder():
                    work, from_scratch = fetched, fetched.is_temporary
                else:
                    extracted = await self.extractor.extract(fetched, scratch)
                    owned.append(extracted)
                    work, from_scratch = extracted.only_folder(), True

                if self.lifecycle is not None:
                    await self.lifecycle.maybe_run(PREINSTALL, work.path)

                if not from_scratch:
                    return work.path
                if isinstance(work, TemporaryResource):
                    work.promote(dest)
                else:
                    promote_path(work.path, dest)
            finally:
                for item in reversed(owned):
                    item.release()
                if scratch is not self.scratch:
                    scratch.prune()

        logger.info(
            "Installed %s",
            dest,
            extra=extra_context(
                event="install",
                component="installer",
                outcome="success",
                target=dest,
                duration_ms=timer.duration_ms(),
            ),
        )
        return dest

    def install_sync(self, uri: Union[str, ParsedURI], dest: str) -> str:
        return run_sync(self.install(uri, dest))

    async def get(self, uri: Union[str, ParsedURI], base: Optional[str] = None) -> str:
        """Install into the readable hashed location derived from ``uri``."""
        return await self.install(uri, uri_temp_name(uri, base))

    def get_sync(self, uri: Union[str, ParsedURI], base: Optional[str] = None) -> str:
        return run_sync(self.get(uri, base))

    async def destroy(self, path: str) -> None:
        """Remove an installed folder."""
        if os.path.isdir(path):
            await asyncio.to_thread(shutil.rmtree, path)
        elif os.path.lexists(path):
            os.remove(path)

    def destroy_sync(self, path: str) -> None:
        run_sync(self.destroy(path))
