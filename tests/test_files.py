"""Tests for mimetype detection and temporary resource ownership."""

import errno
import gzip
import os
from unittest.mock import patch

import pytest

from common.errors import InstallError, StructuralError, TransportError
from resources.files import Resource, Scratch, TemporaryResource, promote_path, tempname
from resources.mimetype import ExtensionTable, MimeType, by_extension, extname, probe, sniff, split_ext


class TestExtensions:
    """Extension table lookups."""

    @pytest.mark.parametrize("path, expected", [
        ("a.zip", MimeType.ZIP.value),
        ("a.tar.gz", MimeType.TAR_GZ.value),
        ("A.TGZ", MimeType.TAR_GZ.value),
        ("a.tar", MimeType.TAR.value),
        ("a.gz", MimeType.GZIP.value),
        ("a.txt", None),
        ("noext", None),
    ])
    def test_by_extension(self, path, expected):
        assert by_extension(path) == expected

    def test_compound_extensions(self):
        """Only alphabetic inner suffixes join a .gz."""
        assert extname("node-v0.2.6.tar.gz") == ".tar.gz"
        assert extname("foo.1.gz") == ".gz"
        assert split_ext("pkg.tar.gz") == ("pkg", ".tar.gz")
        assert split_ext("README") == ("README", "")

    def test_table_registration_is_local(self):
        """Registering on one table leaves the built-ins and other tables alone."""
        table = ExtensionTable().register({".WGT": MimeType.ZIP.value})
        assert table.lookup("widget.wgt") == MimeType.ZIP.value
        assert ".wgt" in table
        assert ExtensionTable().lookup("widget.wgt") is None
        assert by_extension("widget.wgt") is None

    def test_table_starts_from_builtins(self):
        table = ExtensionTable({".crx": MimeType.ZIP.value})
        assert table.lookup("a.tar.gz") == MimeType.TAR_GZ.value
        assert table.lookup("a.crx") == MimeType.ZIP.value

    def test_probe_with_table(self, tmp_path):
        path = tmp_path / "widget.dlbundle"
        path.write_text("not really")
        assert probe(str(path)) == MimeType.TEXT.value
        table = ExtensionTable({".dlbundle": MimeType.ZIP.value})
        assert probe(str(path), table) == MimeType.ZIP.value
        assert Resource(str(path)).detect_mimetype(table) == MimeType.ZIP.value


class TestSniff:
    """Content sniffing for files without a known extension."""

    def test_zip(self, make_zip, tmp_path):
        path = make_zip("download", {"a.txt": b"a"})
        assert sniff(path) == MimeType.ZIP.value

    def test_gzip(self, tmp_path):
        path = tmp_path / "blob"
        path.write_bytes(gzip.compress(b"payload"))
        assert sniff(str(path)) == MimeType.GZIP.value

    def test_tar(self, make_tar):
        path = make_tar("bundle", {"a.txt": b"a"})
        assert sniff(path) == MimeType.TAR.value

    def test_directory(self, tmp_path):
        assert sniff(str(tmp_path)) == MimeType.DIRECTORY.value

    def test_text_and_binary(self, tmp_path):
        text = tmp_path / "notes"
        text.write_text("hello\n")
        binary = tmp_path / "blob"
        binary.write_bytes(b"\x00\x01" * 50)
        assert sniff(str(text)) == MimeType.TEXT.value
        assert sniff(str(binary)) == MimeType.OCTET_STREAM.value

    def test_missing_path(self, tmp_path):
        with pytest.raises(TransportError):
            sniff(str(tmp_path / "missing"))

    def test_probe_prefers_extension(self, tmp_path):
        """A .zip extension wins even over text content."""
        path = tmp_path / "fake.zip"
        path.write_text("not really")
        assert probe(str(path)) == MimeType.ZIP.value


class TestResource:
    """Permanent resources and folder helpers."""

    def test_lazy_mimetype_and_override(self, tmp_path):
        resource = Resource(str(tmp_path))
        assert resource.mimetype == MimeType.DIRECTORY.value
        resource.set_mimetype("application/zip")
        assert resource.mimetype == "application/zip"
        resource.set_mimetype(None)
        assert resource.mimetype == MimeType.DIRECTORY.value

    def test_only(self, tmp_path):
        (tmp_path / "pkg").mkdir()
        assert Resource(str(tmp_path)).only_folder().path == str(tmp_path / "pkg")

    def test_only_with_several_entries(self, tmp_path):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        with pytest.raises(StructuralError, match="Expected one item"):
            Resource(str(tmp_path)).only()

    def test_only_folder_with_file(self, tmp_path):
        (tmp_path / "a.txt").write_text("a")
        with pytest.raises(StructuralError, match="Expected folder"):
            Resource(str(tmp_path)).only_folder()

    def test_release_is_noop(self, tmp_path):
        Resource(str(tmp_path)).release()
        assert tmp_path.exists()


class TestTemporaryResource:
    """Release and promotion happen at most once."""

    def test_release_idempotent(self, scratch):
        resource = scratch.temp_file(".zip")
        assert resource.path.endswith(".zip")
        assert os.path.exists(resource.path)
        resource.release()
        resource.release()
        assert not os.path.exists(resource.path)
        assert not resource.is_live

    def test_release_folder(self, scratch):
        folder = scratch.temp_folder()
        with open(os.path.join(folder.path, "x"), "w") as handle:
            handle.write("x")
        assert folder.mimetype == MimeType.DIRECTORY.value
        with folder:
            pass
        assert not os.path.exists(folder.path)

    def test_promote(self, scratch, tmp_path):
        folder = scratch.temp_folder()
        dest = str(tmp_path / "store" / "pkg")
        promoted = folder.promote(dest)
        assert os.path.isdir(dest)
        assert not promoted.is_temporary
        folder.release()
        assert os.path.isdir(dest)

    def test_promote_after_release(self, scratch, tmp_path):
        folder = scratch.temp_folder()
        folder.release()
        with pytest.raises(StructuralError):
            folder.promote(str(tmp_path / "dest"))

    def test_temp_names_differ(self, scratch):
        assert scratch.temp_name() != scratch.temp_name()
        assert tempname("x-", ".tmp").startswith("x-")
        assert tempname("x-", ".tmp").endswith(".tmp")

    def test_promote_path(self, tmp_path):
        source = tmp_path / "a"
        source.write_text("a")
        promote_path(str(source), str(tmp_path / "deep" / "b"))
        assert (tmp_path / "deep" / "b").read_text() == "a"

    def test_wrap_existing_path(self, tmp_path):
        path = tmp_path / "x"
        path.write_text("x")
        TemporaryResource(str(path)).release()
        assert not path.exists()

    def test_failed_rename_raises_install_error(self, tmp_path):
        """A cross-device rename surfaces as InstallError and leaves the source."""
        source = tmp_path / "a"
        source.write_text("a")
        failure = OSError(errno.EXDEV, "Invalid cross-device link")
        with patch("resources.files.os.rename", side_effect=failure):
            with pytest.raises(InstallError, match="Cannot move"):
                promote_path(str(source), str(tmp_path / "b"))
        assert source.exists()

    def test_failed_promote_stays_live(self, scratch, tmp_path):
        folder = scratch.temp_folder()
        with patch("resources.files.os.rename", side_effect=OSError(errno.EXDEV, "cross-device")):
            with pytest.raises(InstallError):
                folder.promote(str(tmp_path / "dest"))
        assert folder.is_live
        folder.release()
        assert not os.path.exists(folder.path)


class TestScratch:
    """Scratch base folders."""

    def test_prune_removes_empty_base(self, tmp_path):
        scratch = Scratch(str(tmp_path / "work"))
        scratch.temp_file().release()
        scratch.prune()
        assert not (tmp_path / "work").exists()
        scratch.prune()

    def test_prune_keeps_busy_base(self, tmp_path):
        scratch = Scratch(str(tmp_path / "work"))
        scratch.temp_file()
        scratch.prune()
        assert (tmp_path / "work").is_dir()
