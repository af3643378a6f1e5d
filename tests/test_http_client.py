"""Tests for the redirect-checking HTTP client."""

import asyncio
import os

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from common.errors import ParseError, RedirectLoopError, TooManyRedirectsError, TransportError
from common.http_client import HttpClient


def _make_app():
    async def loop_a(request):
        raise web.HTTPFound("/loop/b")

    async def loop_b(request):
        raise web.HTTPFound("/loop/a")

    async def chain(request):
        hops = int(request.match_info["hops"])
        if hops == 0:
            return web.json_response({"ok": True})
        raise web.HTTPFound(f"/chain/{hops - 1}")

    async def no_location(request):
        return web.Response(status=302)

    async def bad_json(request):
        return web.Response(text="not json")

    async def archive(request):
        return web.Response(body=b"PK\x03\x04data", content_type="application/zip")

    async def plain(request):
        return web.Response(body=b"\x00\x01", headers={"Content-Type": "application/octet-stream; charset=binary"})

    app = web.Application()
    app.router.add_get("/loop/a", loop_a)
    app.router.add_get("/loop/b", loop_b)
    app.router.add_get("/chain/{hops}", chain)
    app.router.add_get("/no-location", no_location)
    app.router.add_get("/bad.json", bad_json)
    app.router.add_get("/files/pkg.tar.gz", archive)
    app.router.add_get("/files/blob", plain)
    return app


def _serve(action):
    """Run ``action(base_url)`` against a fresh test server."""
    async def _run():
        async with TestServer(_make_app()) as ts:
            return await action(f"http://{ts.host}:{ts.port}")
    return asyncio.run(_run())


class TestRedirects:
    """Every hop is checked."""

    def test_follows_redirects_within_cap(self):
        """Exactly max_redirects hops succeed."""
        client = HttpClient(max_redirects=3)
        assert _serve(lambda base: client.get_json(f"{base}/chain/3")) == {"ok": True}

    def test_too_many_redirects(self):
        """One hop over the cap raises TooManyRedirectsError."""
        client = HttpClient(max_redirects=3)
        with pytest.raises(TooManyRedirectsError):
            _serve(lambda base: client.get_json(f"{base}/chain/4"))

    def test_redirect_loop(self):
        """Revisiting a URL raises RedirectLoopError."""
        with pytest.raises(RedirectLoopError):
            _serve(lambda base: HttpClient().get_json(f"{base}/loop/a"))

    def test_redirect_without_location(self):
        """A 3xx with no Location is a transport failure."""
        with pytest.raises(TransportError) as excinfo:
            _serve(lambda base: HttpClient().get_json(f"{base}/no-location"))
        assert excinfo.value.status == 302


class TestErrors:
    """Error statuses and bodies."""

    def test_not_found(self):
        """404 surfaces as TransportError with the status."""
        with pytest.raises(TransportError) as excinfo:
            _serve(lambda base: HttpClient().get_json(f"{base}/missing"))
        assert excinfo.value.status == 404
        assert str(excinfo.value).startswith("Got 404")

    def test_invalid_json(self):
        """Undecodable bodies raise ParseError."""
        with pytest.raises(ParseError):
            _serve(lambda base: HttpClient().get_json(f"{base}/bad.json"))

    def test_connection_refused(self):
        """Network failures become TransportError."""
        with pytest.raises(TransportError):
            asyncio.run(HttpClient(timeout=5).get_json("http://127.0.0.1:1/"))


class TestSave:
    """Downloading into scratch storage."""

    def test_save_sets_suffix_and_mimetype(self, scratch):
        """The URL path picks the suffix and Content-Type the mimetype."""
        temp = _serve(lambda base: HttpClient().save(f"{base}/files/pkg.tar.gz", scratch))
        try:
            assert temp.path.endswith(".tar.gz")
            assert temp.mimetype == "application/zip"
            with open(temp.path, "rb") as handle:
                assert handle.read() == b"PK\x03\x04data"
        finally:
            temp.release()

    def test_save_strips_content_type_parameters(self, scratch):
        temp = _serve(lambda base: HttpClient().save(f"{base}/files/blob", scratch))
        assert temp.mimetype == "application/octet-stream"
        temp.release()

    def test_failed_save_leaves_nothing(self, scratch):
        """The partial scratch file is released on failure."""
        with pytest.raises(TransportError):
            _serve(lambda base: HttpClient().save(f"{base}/files/missing.zip", scratch))
        assert os.listdir(scratch.base) == []
