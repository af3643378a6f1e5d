"""Tests for URI parsing, canonical forms and derived names."""

import os

import pytest

from resources.uri import (
    canonical,
    complete_name,
    derive_name,
    hashname,
    md5_hex,
    parse_uri,
    resolve_local,
    uri_prefix,
    uri_temp_name,
)


class TestParseUri:
    """Scheme detection and splitting."""

    @pytest.mark.parametrize("text", ["/tmp/x", "./pkg", "../pkg", "lib/foo", "archive.zip"])
    def test_plain_paths_are_local(self, text):
        """Paths without a scheme keep an empty scheme."""
        parsed = parse_uri(text)
        assert parsed.scheme == ""
        assert parsed.is_local
        assert parsed.path == text
        assert str(parsed) == text

    def test_npm_query(self):
        """npm queries keep their parameters in order."""
        parsed = parse_uri("npm:/?bar=1.x&baz=%3E%3D2.0.0")
        assert parsed.scheme == "npm"
        assert parsed.path == "/"
        assert parsed.query_items() == [("bar", "1.x"), ("baz", ">=2.0.0")]

    def test_git_fragment(self):
        """The fragment names a ref."""
        parsed = parse_uri("git+https://example.com/repo.git#v1.0.0")
        assert parsed.scheme == "git+https"
        assert parsed.fragment == "v1.0.0"
        assert not parsed.is_local

    def test_file_scheme_unquotes(self):
        """file: URIs are local and percent-decoded."""
        parsed = parse_uri("file:///tmp/a%20b")
        assert parsed.is_local
        assert parsed.local_path() == "/tmp/a b"

    def test_parsed_passthrough(self):
        """An already-parsed URI is returned as is."""
        parsed = parse_uri("http://example.com/a")
        assert parse_uri(parsed) is parsed


class TestCanonical:
    """Canonical text is the cache key."""

    def test_remote_lowercases_host_and_drops_fragment(self):
        assert canonical("HTTP://Example.COM/a/B#frag") == "http://example.com/a/B"

    def test_local_is_absolute(self):
        assert canonical("./x") == os.path.abspath("./x")
        assert canonical("file:///tmp/a%20b") == "/tmp/a b"

    def test_equivalent_spellings_share_a_key(self):
        """Equivalent URIs hash to the same name."""
        assert md5_hex(canonical("http://EXAMPLE.com/p")) == md5_hex(canonical("http://example.com/p#x"))


class TestCompleteName:
    """Shorthand package URIs."""

    @pytest.mark.parametrize("name, expected", [
        ("https://github.com/user/repo", "https://github.com/user/repo/zipball/master"),
        ("http://github.com/user/repo/", "http://github.com/user/repo/zipball/master"),
        ("https://GitHub.com/user/repo//", "https://GitHub.com/user/repo/zipball/master"),
        ("https://github.com/user/repo/zipball/v1.0", "https://github.com/user/repo/zipball/v1.0"),
        ("https://github.com/user", "https://github.com/user"),
        ("https://example.com/user/repo", "https://example.com/user/repo"),
        ("git://github.com/user/repo", "git://github.com/user/repo"),
        ("npm:/foo/1.0.0", "npm:/foo/1.0.0"),
        ("./local/pkg", "./local/pkg"),
    ])
    def test_complete(self, name, expected):
        assert complete_name(name) == expected


class TestDerivedNames:
    """Readable stems and hashed names."""

    @pytest.mark.parametrize("uri, expected", [
        ("/path/to/archive.zip", "archive"),
        ("/path/to/module/v1.2.3", "module-v1.2.3"),
        ("https://github.com/weaver/DefineJS/tarball/v0.2.5", "DefineJS-v0.2.5"),
        ("http://nodejs.org/dist/node-v0.2.6.tar.gz", "node-v0.2.6"),
        ("npm:/name/1.2.3", "name-1.2.3"),
        ("npm:/?name=1.x", "name"),
    ])
    def test_uri_prefix(self, uri, expected):
        assert uri_prefix(uri) == expected

    def test_hashname(self):
        assert hashname("abc", "p-") == "p-" + md5_hex("abc")
        assert len(md5_hex("abc")) == 32

    def test_derive_name_is_deterministic(self, tmp_path):
        """The same URI always maps to the same path."""
        first = derive_name("http://example.com/a.zip", str(tmp_path))
        assert first == derive_name("http://example.com/a.zip", str(tmp_path))
        assert os.path.dirname(first) == str(tmp_path)

    def test_uri_temp_name(self, tmp_path):
        """Temp names combine the readable stem and the hash."""
        uri = "npm:/name/1.2.3"
        path = uri_temp_name(uri, str(tmp_path))
        assert path == os.path.join(str(tmp_path), "name-1.2.3-" + md5_hex(canonical(uri)))
        assert uri_temp_name(uri, str(tmp_path), hint="x").startswith(os.path.join(str(tmp_path), "x-"))


class TestResolveLocal:
    """URL-style resolution of local names."""

    @pytest.mark.parametrize("base, name, expected", [
        ("lib/", "./foo", "lib/foo"),
        ("lib/a", "./b", "lib/b"),
        ("lib/a/b", "../c", "lib/c"),
        ("", "./lib/", "lib/"),
        ("", "lib/index", "lib/index"),
        ("lib/a", "", "lib/a"),
        ("", ".", ""),
        ("lib/", "/abs/x", "/abs/x"),
    ])
    def test_resolution(self, base, name, expected):
        assert resolve_local(base, name) == expected
