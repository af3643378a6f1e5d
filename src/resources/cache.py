"""Content-addressed cache of installed resources.

A URI is canonicalized and installed once into ``<root>/<md5>``; later
resolutions in the same process hit the in-memory memo, later processes
find the folder on disk and trust it as-is.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
from typing import Dict, Optional, Union

from common.aio import run_sync
from common.http_client import HttpClient
from common.logging_utils import extra_context, safe_url
from constants import Constants
from install.lifecycle import Lifecycle
from install.orchestrator import Installer
from registry.npm.client import NpmClient

from .files import Scratch
from .uri import ParsedURI, canonical, md5_hex, parse_uri

logger = logging.getLogger(__name__)


class ResourceCache:
    """Resolves URIs to canonical folders, fetching remote ones once."""

    def __init__(
        self,
        root: str,
        installer: Optional[Installer] = None,
        http: Optional[HttpClient] = None,
        npm: Optional[NpmClient] = None,
        lifecycle: Optional[Lifecycle] = None,
    ):
        self.root = os.path.abspath(root)
        self.scratch = Scratch(os.path.join(self.root, Constants.SCRATCH_DIR_NAME))
        self.installer = installer or Installer.default(self.scratch, http=http, npm=npm, lifecycle=lifecycle)
        self._memo: Dict[str, str] = {}

    def destination(self, uri: Union[str, ParsedURI]) -> str:
        """On-disk location for ``uri`` inside the cache."""
        return os.path.join(self.root, md5_hex(canonical(uri)))

    async def resolve(self, uri: Union[str, ParsedURI]) -> str:
        """Canonical filesystem path for ``uri``, installing it on first use.

        A local folder resolves to itself. The result for a canonical URI
        never changes during the lifetime of this cache.
        """
        key = canonical(uri)
        cached = self._memo.get(key)
        if cached is not None:
            return cached

        parsed = parse_uri(uri)
        if parsed.is_local and os.path.isdir(parsed.local_path()):
            path = parsed.local_path()
        else:
            dest = self.destination(parsed)
            path = dest if os.path.exists(dest) else await self.installer.install(parsed, dest)

        result = os.path.realpath(path)
        self._memo[key] = result
        logger.debug(
            "Resolved %s",
            safe_url(key),
            extra=extra_context(event="cache_resolve", component="cache", target=result),
        )
        return result

    def resolve_sync(self, uri: Union[str, ParsedURI]) -> str:
        return run_sync(self.resolve(uri))

    async def destroy(self) -> None:
        """Forget every entry and delete the cache folder."""
        logger.info("Destroying cache %s", self.root)
        self._memo.clear()
        if os.path.isdir(self.root):
            await asyncio.to_thread(shutil.rmtree, self.root)

    def destroy_sync(self) -> None:
        run_sync(self.destroy())

    def __contains__(self, uri: object) -> bool:
        return isinstance(uri, (str, ParsedURI)) and canonical(uri) in self._memo

    def __repr__(self) -> str:
        return f"<ResourceCache {self.root}>"
