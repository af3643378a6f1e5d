"""NPM registry client: turns ``npm:`` URIs into tarball URLs.

Two URI forms are understood:

    npm:/name/version            exact (or ``latest`` when no version)
    npm:/?name=constraint&...    constrained, alternatives tried in order
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional, Tuple, Union
from urllib.parse import unquote

from common.errors import DeploadError, ResolutionError
from common.http_client import HttpClient
from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from constants import Constants
from resources.uri import ParsedURI, parse_uri
from versioning import is_any, is_exact, parse_exact, parse_loose, satisfy

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


def encode_name(name: str) -> str:
    """Registry path segment for ``name``; scoped names escape their slash."""
    if name.startswith("@"):
        return name.replace("/", "%2f")
    return name


def split_path(path: str) -> Tuple[str, Optional[str]]:
    """Split an ``npm:`` path into (package name, version or None)."""
    parts = [part for part in unquote(path).split("/") if part]
    if not parts:
        raise ResolutionError(f"Missing package name in npm path `{path}`.")
    size = 2 if parts[0].startswith("@") else 1
    name = "/".join(parts[:size])
    rest = parts[size:]
    return name, (rest[0] if rest else None)


class NpmClient:
    """Looks packages up in an npm-compatible registry."""

    def __init__(self, registry_url: str = Constants.REGISTRY_URL_NPM, http: Optional[HttpClient] = None):
        self.registry_url = registry_url.rstrip("/") + "/"
        self.http = http or HttpClient()

    def registry_uri(self, name: str, constraint: Optional[str] = None) -> str:
        """Registry URL for ``name`` narrowed by ``constraint``.

        An exact constraint addresses that version, an "any" constraint
        addresses ``latest`` and anything else (or None) the full document.
        """
        base = self.registry_url + encode_name(name)
        if constraint is None:
            return base
        if is_any(constraint):
            return base + "/latest"
        if is_exact(constraint):
            return base + "/" + parse_exact(constraint).format()
        return base

    async def _get(self, url: str) -> Record:
        with Timer() as timer:
            record = await self.http.get_json(url)
        if is_debug_enabled(logger):
            logger.debug(
                "Registry response",
                extra=extra_context(
                    event="registry_lookup",
                    component="npm_client",
                    duration_ms=timer.duration_ms(),
                    target=safe_url(url),
                    package_manager="npm",
                ),
            )
        if not isinstance(record, dict):
            raise ResolutionError(f"Unexpected registry document from {safe_url(url)}.")
        if "error" in record:
            raise ResolutionError(f"Registry error for {safe_url(url)}: {record['error']}")
        return record

    async def lookup_exact(self, path: str) -> Record:
        """Look up ``name[/version]``; a missing version means ``latest``.

        Raises:
            ResolutionError: if the registry reports an error or no tarball.
            TransportError: if the registry cannot be reached.
        """
        name, version = split_path(path)
        url = self.registry_url + encode_name(name) + "/" + (version or "latest")
        record = await self._get(url)
        self.tarball_url(record, path)
        return record

    async def _lookup_one(self, name: str, constraint: str) -> Record:
        url = self.registry_uri(name, constraint)
        document = await self._get(url)
        versions = document.get("versions")
        if not isinstance(versions, dict):
            self.tarball_url(document, name)
            return document

        # Keep the registry's own keys; the parsed values only drive selection.
        parsed = {key: parse_loose(key) for key in versions}
        best = satisfy(constraint, parsed.values())
        if best is None:
            raise ResolutionError(f"No version of {name} satisfies `{constraint}`.")
        key = next(key for key, value in parsed.items() if value is best)
        record = versions[key]
        self.tarball_url(record, name)
        return record

    async def lookup_constrained(
        self, requests: Union[Dict[str, str], Iterable[Tuple[str, str]]]
    ) -> Record:
        """Try each (name, constraint) pair in order; the first success wins.

        Raises:
            The last lookup error when every alternative fails, or
            ResolutionError when no alternatives were given.
        """
        items = list(requests.items() if isinstance(requests, dict) else requests)
        last_error: Optional[DeploadError] = None
        for name, constraint in items:
            try:
                return await self._lookup_one(name, constraint)
            except DeploadError as exc:
                logger.warning(
                    "npm lookup of %s@%s failed: %s",
                    name,
                    constraint or "*",
                    exc,
                    extra=extra_context(
                        event="registry_lookup",
                        component="npm_client",
                        outcome="failure",
                        package_manager="npm",
                    ),
                )
                last_error = exc
        if last_error is not None:
            raise last_error
        raise ResolutionError("No npm packages requested.")

    async def lookup(self, uri: Union[str, ParsedURI]) -> Record:
        """Dispatch on the URI form: query means constrained, path means exact."""
        parsed = parse_uri(uri)
        if parsed.query:
            return await self.lookup_constrained(parsed.query_items())
        return await self.lookup_exact(parsed.path)

    @staticmethod
    def tarball_url(record: Record, uri: Any = "") -> str:
        """The ``dist.tarball`` of a version record.

        Raises:
            ResolutionError: if the record carries no tarball.
        """
        dist = record.get("dist") if isinstance(record, dict) else None
        tarball = dist.get("tarball") if isinstance(dist, dict) else None
        if not tarball:
            raise ResolutionError(f"Registry record for {uri} has no dist.tarball.")
        return tarball

    async def resolve_tarball(self, uri: Union[str, ParsedURI]) -> str:
        """Tarball URL for an ``npm:`` URI."""
        record = await self.lookup(uri)
        url = self.tarball_url(record, uri)
        logger.info(
            "Resolved %s to %s",
            uri,
            safe_url(url),
            extra=extra_context(
                event="registry_lookup",
                component="npm_client",
                outcome="success",
                package_manager="npm",
            ),
        )
        return url
