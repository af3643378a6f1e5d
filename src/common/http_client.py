"""Shared HTTP helpers used by the fetch handlers and the npm client.

Redirects are followed by hand so every hop is checked: a revisited URL
raises ``RedirectLoopError`` and more than ``max_redirects`` hops raise
``TooManyRedirectsError``. Any status of 400 or above is a
``TransportError``.
"""
from __future__ import annotations

import asyncio
import json
import logging
import urllib.parse
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp

from common.errors import (
    ParseError,
    RedirectLoopError,
    TooManyRedirectsError,
    TransportError,
)
from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from constants import Constants
from resources.files import Scratch, TemporaryResource
from resources.mimetype import extname

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


class HttpClient:
    """Small aiohttp wrapper with explicit redirect handling."""

    def __init__(
        self,
        timeout: int = Constants.REQUEST_TIMEOUT,
        max_redirects: int = Constants.MAX_REDIRECTS,
        headers: Optional[Dict[str, str]] = None,
    ):
        """Initialize the client.

        Args:
            timeout: Total request timeout in seconds.
            max_redirects: Maximum number of redirect hops to follow.
            headers: Extra headers sent with every request.
        """
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self.max_redirects = max_redirects
        self._headers = {"User-Agent": Constants.USER_AGENT}
        if headers:
            self._headers.update(headers)

    @asynccontextmanager
    async def open_response(
        self, url: str, headers: Optional[Dict[str, str]] = None
    ) -> AsyncIterator[aiohttp.ClientResponse]:
        """GET ``url`` and yield the final, successful response.

        A session is opened per call so the client works from any event
        loop, including the short-lived ones behind the sync wrappers.

        Raises:
            TransportError: for network failures, timeouts and error statuses.
        """
        request_headers = {**self._headers, **(headers or {})}
        async with aiohttp.ClientSession(timeout=self._timeout, headers=request_headers) as session:
            try:
                response = await self._follow(session, url)
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                logger.error(
                    "HTTP request failed: %s",
                    exc,
                    extra=extra_context(
                        event="http_error",
                        component="http_client",
                        action="GET",
                        outcome="failure",
                        target=safe_url(url),
                    ),
                )
                raise TransportError(f"Request to {safe_url(url)} failed: {exc}") from exc
            try:
                yield response
            finally:
                response.release()

    async def _follow(self, session: aiohttp.ClientSession, url: str) -> aiohttp.ClientResponse:
        """Request ``url`` hop by hop until a non-redirect response arrives."""
        visited = set()
        current = url
        for _ in range(self.max_redirects + 1):
            if current in visited:
                raise RedirectLoopError(f"Redirect loop at {safe_url(current)}")
            visited.add(current)

            with Timer() as timer:
                response = await session.get(current, allow_redirects=False)
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP response",
                    extra=extra_context(
                        event="http_response",
                        component="http_client",
                        action="GET",
                        status_code=response.status,
                        duration_ms=timer.duration_ms(),
                        target=safe_url(current),
                    ),
                )

            if response.status >= 400:
                response.release()
                raise TransportError(f"Got {response.status} {safe_url(current)}", response.status)

            if 300 <= response.status < 400:
                location = response.headers.get("Location")
                response.release()
                if not location:
                    raise TransportError(
                        f"Got {response.status} without Location from {safe_url(current)}",
                        response.status,
                    )
                current = urllib.parse.urljoin(current, location)
                continue

            return response

        raise TooManyRedirectsError(
            f"Too many redirects ({self.max_redirects}) starting from {safe_url(url)}"
        )

    async def get_json(self, url: str) -> Any:
        """GET ``url`` and decode the body as JSON.

        Raises:
            TransportError: if the request fails.
            ParseError: if the body is not valid JSON.
        """
        async with self.open_response(url, {"Accept": "application/json"}) as response:
            text = await response.text()
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Invalid JSON from {safe_url(url)}: {exc}") from exc

    async def save(self, url: str, scratch: Scratch) -> TemporaryResource:
        """Stream the body of ``url`` into a new scratch file.

        The file suffix comes from the URL path and the mimetype from the
        response's Content-Type. The partial file is released on failure.
        """
        suffix = extname(urllib.parse.urlsplit(url).path)
        temp = scratch.temp_file(suffix)
        try:
            async with self.open_response(url) as response:
                with open(temp.path, "wb") as handle:
                    async for chunk in response.content.iter_chunked(_CHUNK_SIZE):
                        handle.write(chunk)
                content_type = response.headers.get("Content-Type", "")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            temp.release()
            raise TransportError(f"Download of {safe_url(url)} failed: {exc}") from exc
        except BaseException:
            temp.release()
            raise

        mimetype = content_type.split(";", 1)[0].strip().lower()
        temp.set_mimetype(mimetype or None)
        logger.info(
            "Downloaded %s",
            safe_url(url),
            extra=extra_context(
                event="http_save", component="http_client", outcome="success", target=temp.path
            ),
        )
        return temp
