"""Shared fixtures: archive builders and scratch folders."""

import gzip
import io
import json
import tarfile
import zipfile

import pytest

from resources.files import Scratch


@pytest.fixture
def scratch(tmp_path):
    """Scratch storage under the test's temp folder."""
    return Scratch(str(tmp_path / "scratch"))


@pytest.fixture
def make_zip(tmp_path):
    """Build a zip archive from {member: bytes}."""
    def _make(name, files):
        path = tmp_path / name
        with zipfile.ZipFile(path, "w") as archive:
            for member, data in files.items():
                archive.writestr(member, data)
        return str(path)
    return _make


@pytest.fixture
def make_tar(tmp_path):
    """Build a tar archive from {member: bytes}; ``mode`` picks compression."""
    def _make(name, files, mode="w"):
        path = tmp_path / name
        with tarfile.open(path, mode) as archive:
            for member, data in files.items():
                info = tarfile.TarInfo(member)
                info.size = len(data)
                archive.addfile(info, io.BytesIO(data))
        return str(path)
    return _make


@pytest.fixture
def gzip_bytes():
    return gzip.compress


@pytest.fixture
def package_files():
    """Members of a minimal npm-style package archive."""
    def _files(name="pkg", top="package", **descriptor):
        meta = {"name": name, "version": "1.0.0", **descriptor}
        return {
            f"{top}/package.json": json.dumps(meta).encode("utf-8"),
            f"{top}/lib/index.js": b"module.exports = 1;\n",
        }
    return _files
