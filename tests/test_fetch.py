"""Tests for protocol dispatch and the built-in fetch handlers."""

import asyncio
import os
from unittest.mock import patch

import pytest

from common.errors import ProtocolError, TransportError
from resources.fetch import Fetcher, FetchRegistry, Protocol, default_fetch_registry
from resources.files import Resource
from resources.mimetype import MimeType


class _FakeNpm:
    """Resolves every npm URI to one local tarball."""

    def __init__(self, tarball):
        self.tarball = tarball
        self.seen = []

    async def resolve_tarball(self, uri):
        self.seen.append(str(uri))
        return self.tarball


class TestRegistry:
    """Scheme registration."""

    def test_default_schemes(self):
        registry = default_fetch_registry()
        for scheme in ("", "file", "http", "https", "git", "git+https", "git+ssh", "npm"):
            assert scheme in registry
        assert "ftp" not in registry
        assert Protocol.GIT_HTTP.value in registry.schemes()

    def test_unknown_scheme(self, scratch):
        """An unregistered scheme raises ProtocolError naming it."""
        fetcher = Fetcher(scratch=scratch)
        with pytest.raises(ProtocolError, match='No "ftp" protocol registered'):
            fetcher.fetch_sync("ftp://example.com/pkg.zip")

    def test_registry_get_unknown(self):
        with pytest.raises(ProtocolError):
            FetchRegistry().get("http")

    def test_custom_handler(self, scratch, tmp_path):
        """Handlers receive the parsed URI, the scratch and the dispatcher."""
        calls = []

        async def handler(uri, handler_scratch, fetcher):
            calls.append((uri.scheme, uri.path, handler_scratch, fetcher))
            return Resource(str(tmp_path))

        registry = FetchRegistry()
        registry.register(["mem"], handler)
        fetcher = Fetcher(registry=registry, scratch=scratch)
        result = fetcher.fetch_sync("mem://host/thing")

        assert result.path == str(tmp_path)
        assert calls == [("mem", "/thing", scratch, fetcher)]


class TestLocal:
    """Local paths are used in place."""

    def test_local_file(self, scratch, tmp_path):
        path = tmp_path / "pkg.zip"
        path.write_bytes(b"PK\x03\x04")
        result = Fetcher(scratch=scratch).fetch_sync(str(path))
        assert result.path == str(path)
        assert not result.is_temporary

    def test_file_scheme(self, scratch, tmp_path):
        result = Fetcher(scratch=scratch).fetch_sync(f"file://{tmp_path}")
        assert result.path == str(tmp_path)
        assert result.mimetype == MimeType.DIRECTORY.value

    def test_missing_path(self, scratch, tmp_path):
        with pytest.raises(TransportError):
            Fetcher(scratch=scratch).fetch_sync(str(tmp_path / "missing.zip"))


class TestNpm:
    """npm URIs resolve to a tarball, then re-enter the dispatcher."""

    def test_npm_reenters_fetch(self, scratch, make_zip):
        tarball = make_zip("pkg.zip", {"package/package.json": b"{}"})
        npm = _FakeNpm(tarball)
        result = Fetcher(scratch=scratch, npm=npm).fetch_sync("npm:/pkg/1.0.0")
        assert result.path == tarball
        assert npm.seen == ["npm:/pkg/1.0.0"]


class TestGit:
    """git clones into scratch and checks out the fragment."""

    def test_clone_and_checkout(self, scratch):
        calls = []

        async def fake_run(program, args, cwd=None, env=None):
            calls.append((program, list(args), cwd))
            if args[0] == "clone":
                os.makedirs(args[-1])
            return ""

        with patch("resources.fetch.run_command", side_effect=fake_run):
            result = Fetcher(scratch=scratch).fetch_sync("git+https://example.com/repo.git#v1.0.0")

        assert result.is_temporary
        assert result.mimetype == MimeType.DIRECTORY.value
        assert calls == [
            ("git", ["clone", "-q", "https://example.com/repo.git", result.path], None),
            ("git", ["checkout", "-q", "v1.0.0"], result.path),
        ]
        result.release()

    def test_no_fragment_skips_checkout(self, scratch):
        calls = []

        async def fake_run(program, args, cwd=None, env=None):
            calls.append(args[0])
            os.makedirs(args[-1])
            return ""

        with patch("resources.fetch.run_command", side_effect=fake_run):
            Fetcher(scratch=scratch).fetch_sync("git://example.com/repo.git").release()
        assert calls == ["clone"]

    def test_failed_clone_releases_folder(self, scratch):
        """A failing git leaves nothing behind in scratch."""
        async def fake_run(program, args, cwd=None, env=None):
            os.makedirs(args[-1])
            raise TransportError("git failed (exit code: 128).", 128)

        with patch("resources.fetch.run_command", side_effect=fake_run):
            with pytest.raises(TransportError):
                asyncio.run(Fetcher(scratch=scratch).fetch("git+ssh://git@example.com/repo.git"))
        assert os.listdir(scratch.base) == []
