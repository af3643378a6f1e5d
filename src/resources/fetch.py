"""Protocol dispatch: turn a URI into a local Resource.

Handlers are registered per URI scheme on a ``FetchRegistry``. Each
handler is a coroutine ``handler(uri, scratch, fetcher)``; ``fetcher`` is
the dispatcher itself so a handler can re-enter it (the npm handler
resolves a tarball URL and fetches that over HTTP).
"""
from __future__ import annotations

import logging
import os
import tempfile
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

from common.aio import run_sync
from common.errors import ProtocolError, TransportError
from common.http_client import HttpClient
from common.logging_utils import extra_context, safe_url
from common.process import run_command
from registry.npm.client import NpmClient

from .files import Resource, Scratch, TemporaryResource
from .mimetype import MimeType
from .uri import ParsedURI, parse_uri

logger = logging.getLogger(__name__)


class Protocol(str, Enum):
    """URI schemes with built-in fetch handlers."""

    LOCAL = ""
    FILE = "file"
    HTTP = "http"
    HTTPS = "https"
    GIT = "git"
    GIT_HTTP = "git+http"
    GIT_HTTPS = "git+https"
    GIT_SSH = "git+ssh"
    NPM = "npm"


Handler = Callable[[ParsedURI, Scratch, "Fetcher"], Awaitable[Resource]]


def _key(scheme: Union[str, Protocol]) -> str:
    return (scheme.value if isinstance(scheme, Protocol) else scheme).lower()


class FetchRegistry:
    """Scheme to handler table, owned by whoever builds the Fetcher."""

    def __init__(self) -> None:
        self._handlers: Dict[str, Handler] = {}

    def register(self, schemes: Iterable[Union[str, Protocol]], handler: Handler) -> Handler:
        for scheme in schemes:
            self._handlers[_key(scheme)] = handler
        return handler

    def get(self, scheme: Union[str, Protocol]) -> Handler:
        try:
            return self._handlers[_key(scheme)]
        except KeyError:
            raise ProtocolError(f'No "{_key(scheme)}" protocol registered.') from None

    def schemes(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, scheme: object) -> bool:
        return isinstance(scheme, str) and _key(scheme) in self._handlers


class Fetcher:
    """Dispatches ``fetch(uri)`` to the handler for the URI's scheme."""

    def __init__(
        self,
        registry: Optional[FetchRegistry] = None,
        scratch: Optional[Scratch] = None,
        http: Optional[HttpClient] = None,
        npm: Optional[NpmClient] = None,
    ):
        self.registry = registry if registry is not None else default_fetch_registry()
        self.scratch = scratch or Scratch(tempfile.gettempdir())
        self.http = http or HttpClient()
        self.npm = npm or NpmClient(http=self.http)

    async def fetch(self, uri: Union[str, ParsedURI], scratch: Optional[Scratch] = None) -> Resource:
        """Fetch ``uri`` into a Resource (temporary unless it was local).

        Raises:
            ProtocolError: if no handler is registered for the scheme.
            TransportError: if the transfer fails.
        """
        parsed = parse_uri(uri)
        if parsed.scheme not in self.registry:
            raise ProtocolError(
                f'No "{parsed.scheme}" protocol registered for "{safe_url(parsed.format())}".'
            )
        handler = self.registry.get(parsed.scheme)
        logger.debug(
            "Fetching",
            extra=extra_context(
                event="fetch", component="fetch", action=parsed.scheme or "file", target=safe_url(str(parsed))
            ),
        )
        return await handler(parsed, scratch or self.scratch, self)

    def fetch_sync(self, uri: Union[str, ParsedURI], scratch: Optional[Scratch] = None) -> Resource:
        return run_sync(self.fetch(uri, scratch))


# ---------- Built-in handlers ----------


async def fetch_file(uri: ParsedURI, scratch: Scratch, fetcher: Fetcher) -> Resource:
    """Local paths are used in place."""
    path = uri.local_path()
    if not os.path.exists(path):
        raise TransportError(f"No such file or folder: {path}")
    return Resource(path)


async def fetch_http(uri: ParsedURI, scratch: Scratch, fetcher: Fetcher) -> Resource:
    return await fetcher.http.save(uri.format(), scratch)


async def fetch_git(uri: ParsedURI, scratch: Scratch, fetcher: Fetcher) -> Resource:
    """Clone into a fresh scratch folder; a ``#ref`` fragment is checked out."""
    scheme = uri.scheme[len("git+"):] if uri.scheme.startswith("git+") else uri.scheme
    remote = ParsedURI(scheme, uri.netloc, uri.path, uri.query).format()
    into = TemporaryResource(scratch.temp_name(), MimeType.DIRECTORY.value)
    try:
        await run_command("git", ["clone", "-q", remote, into.path])
        if uri.fragment:
            await run_command("git", ["checkout", "-q", uri.fragment], cwd=into.path)
    except BaseException:
        into.release()
        raise
    return into


async def fetch_npm(uri: ParsedURI, scratch: Scratch, fetcher: Fetcher) -> Resource:
    tarball = await fetcher.npm.resolve_tarball(uri)
    return await fetcher.fetch(tarball, scratch)


def default_fetch_registry() -> FetchRegistry:
    """A fresh registry with every built-in protocol."""
    registry = FetchRegistry()
    registry.register([Protocol.LOCAL, Protocol.FILE], fetch_file)
    registry.register([Protocol.HTTP, Protocol.HTTPS], fetch_http)
    registry.register([Protocol.GIT, Protocol.GIT_HTTP, Protocol.GIT_HTTPS, Protocol.GIT_SSH], fetch_git)
    registry.register([Protocol.NPM], fetch_npm)
    return registry
