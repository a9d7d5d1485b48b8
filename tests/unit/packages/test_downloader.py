"""Tests for package downloading and archive extraction."""

import io
import os
import stat
import tarfile
import zipfile
from unittest.mock import MagicMock, patch

import pytest
import requests

from rrfbuild.packages import downloader
from rrfbuild.packages.downloader import DownloadError, ExtractionError, PackageDownloader, move_tree


def _response(chunks, status_error=None):
    response = MagicMock()
    response.headers = {"content-length": str(sum(len(c) for c in chunks))}
    response.iter_content.return_value = iter(chunks)
    if status_error is not None:
        response.raise_for_status.side_effect = status_error
    return response


class TestDownload:
    """Test streaming downloads."""

    def test_download_writes_file(self, tmp_path):
        """The body is written to the destination and the temp file removed."""
        dest = tmp_path / "arduino-1.5.4-linux64.tgz"

        with patch("rrfbuild.packages.downloader.requests.get", return_value=_response([b"abc", b"def"])) as get:
            PackageDownloader().download("https://example.invalid/a.tgz", dest, show_progress=False)

        assert dest.read_bytes() == b"abcdef"
        assert not (tmp_path / "arduino-1.5.4-linux64.tgz.download").exists()
        assert get.call_args.kwargs["stream"] is True

    def test_http_error(self, tmp_path):
        """HTTP errors become DownloadError and leave no file behind."""
        dest = tmp_path / "a.tgz"
        error = requests.HTTPError("404 Client Error: Not Found")

        with patch("rrfbuild.packages.downloader.requests.get", return_value=_response([], error)):
            with pytest.raises(DownloadError, match="404"):
                PackageDownloader().download("https://example.invalid/a.tgz", dest, show_progress=False)

        assert not dest.exists()
        assert not (tmp_path / "a.tgz.download").exists()

    def test_connection_error(self, tmp_path):
        """Network failures become DownloadError."""
        with patch("rrfbuild.packages.downloader.requests.get", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(DownloadError, match="refused"):
                PackageDownloader().download("https://example.invalid/a.tgz", tmp_path / "a.tgz", show_progress=False)

    def test_interrupted_download_cleans_up(self, tmp_path):
        """Ctrl-C mid-transfer removes the partial file and propagates."""
        dest = tmp_path / "a.tgz"
        response = _response([b"abc"])

        def interrupted(chunk_size):
            yield b"abc"
            raise KeyboardInterrupt

        response.iter_content.side_effect = interrupted

        with patch("rrfbuild.packages.downloader.requests.get", return_value=response):
            with pytest.raises(KeyboardInterrupt):
                PackageDownloader().download("https://example.invalid/a.tgz", dest, show_progress=False)

        assert not dest.exists()
        assert not (tmp_path / "a.tgz.download").exists()


class TestExtract:
    """Test archive extraction."""

    def test_extract_tgz(self, tmp_path):
        """Test extracting a gzip tarball."""
        archive = tmp_path / "pkg.tgz"
        with tarfile.open(archive, "w:gz") as tar:
            info = tarfile.TarInfo("pkg/readme.txt")
            info.size = 5
            tar.addfile(info, io.BytesIO(b"hello"))

        PackageDownloader().extract_archive(archive, tmp_path / "out", show_progress=False)

        assert (tmp_path / "out" / "pkg" / "readme.txt").read_bytes() == b"hello"

    def test_extract_zip_keeps_exec_bits(self, tmp_path):
        """Unix permissions stored in a zip are restored."""
        archive = tmp_path / "pkg.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            info = zipfile.ZipInfo("bin/tool")
            info.external_attr = 0o755 << 16
            zf.writestr(info, "#!/bin/sh\n")

        PackageDownloader().extract_archive(archive, tmp_path / "out", show_progress=False)

        assert (tmp_path / "out" / "bin" / "tool").stat().st_mode & 0o777 == 0o755

    def test_extract_zip_recreates_symlinks(self, tmp_path):
        """Symlink entries become links, not regular files holding the target."""
        archive = tmp_path / "pkg.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            tool = zipfile.ZipInfo("bin/tool")
            tool.external_attr = 0o755 << 16
            zf.writestr(tool, "#!/bin/sh\n")
            link = zipfile.ZipInfo("bin/tool-link")
            link.external_attr = (stat.S_IFLNK | 0o777) << 16
            zf.writestr(link, "tool")

        PackageDownloader().extract_archive(archive, tmp_path / "out", show_progress=False)

        extracted = tmp_path / "out" / "bin" / "tool-link"
        assert extracted.is_symlink()
        assert os.readlink(extracted) == "tool"
        assert extracted.read_text() == "#!/bin/sh\n"

    def test_extract_zip_rejects_escaping_symlink(self, tmp_path):
        """A link pointing outside the destination is refused."""
        archive = tmp_path / "pkg.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            link = zipfile.ZipInfo("bin/escape")
            link.external_attr = (stat.S_IFLNK | 0o777) << 16
            zf.writestr(link, "../../../etc")

        with pytest.raises(ExtractionError, match="outside"):
            PackageDownloader().extract_archive(archive, tmp_path / "out", show_progress=False)

        assert not (tmp_path / "out" / "bin" / "escape").exists()

    def test_tar_without_extraction_filters(self, tmp_path, monkeypatch):
        """Interpreters lacking tarfile filters extract without one."""
        tar = MagicMock()
        member = tarfile.TarInfo("pkg/readme.txt")
        monkeypatch.delattr(downloader.tarfile, "data_filter", raising=False)

        downloader._extract_tar_member(tar, member, tmp_path)

        tar.extract.assert_called_once_with(member, tmp_path)

    def test_tar_with_extraction_filters(self, tmp_path, monkeypatch):
        """The data filter is applied when the interpreter supports it."""
        tar = MagicMock()
        member = tarfile.TarInfo("pkg/readme.txt")
        monkeypatch.setattr(downloader.tarfile, "data_filter", object(), raising=False)

        downloader._extract_tar_member(tar, member, tmp_path)

        tar.extract.assert_called_once_with(member, tmp_path, filter="data")

    def test_unsupported_format(self, tmp_path):
        """Unknown archive types are rejected."""
        archive = tmp_path / "pkg.rar"
        archive.write_bytes(b"")

        with pytest.raises(ExtractionError, match="Unsupported"):
            PackageDownloader().extract_archive(archive, tmp_path / "out", show_progress=False)

    def test_corrupt_zip(self, tmp_path):
        """A corrupt zip raises ExtractionError."""
        archive = tmp_path / "pkg.zip"
        archive.write_bytes(b"not a zip")

        with pytest.raises(ExtractionError):
            PackageDownloader().extract_archive(archive, tmp_path / "out", show_progress=False)


def test_move_tree_refuses_existing_destination(tmp_path):
    """move_tree never merges into an existing directory."""
    (tmp_path / "src").mkdir()
    (tmp_path / "dest").mkdir()

    with pytest.raises(ExtractionError, match="already exists"):
        move_tree(tmp_path / "src", tmp_path / "dest")
