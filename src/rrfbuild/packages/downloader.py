"""Package downloading and archive extraction.

Downloads stream into a ``.download`` temp file next to the destination and
are renamed into place only after the transfer completes, so an interrupted
download never leaves a file that looks like a cached archive.
"""

import logging
import os
import shutil
import stat
import tarfile
import zipfile
from pathlib import Path

import requests
from tqdm import tqdm

from .package import PackageError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 8192
_TIMEOUT = 30  # seconds, per socket operation


class DownloadError(PackageError):
    """Raised when a download fails."""

    pass


class ExtractionError(PackageError):
    """Raised when archive extraction fails."""

    pass


def _cleanup_temp_file(temp_file: Path) -> None:
    try:
        temp_file.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove partial download %s: %s", temp_file, e)


class PackageDownloader:
    """Downloads and extracts toolchain archives."""

    def download(self, url: str, dest_path: Path, show_progress: bool = True) -> Path:
        """Download a file.

        Args:
            url: URL to fetch
            dest_path: Final path of the downloaded file
            show_progress: Whether to show a progress bar

        Returns:
            Path to the downloaded file

        Raises:
            DownloadError: On HTTP or network failure
        """
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = Path(str(dest_path) + ".download")

        try:
            response = requests.get(url, stream=True, timeout=_TIMEOUT)
            response.raise_for_status()

            total_size = int(response.headers.get("content-length", 0))
            with open(temp_file, "wb") as f, tqdm(
                total=total_size or None,
                desc=f"Downloading {dest_path.name}",
                unit="B",
                unit_scale=True,
                unit_divisor=1024,
                ncols=80,
                disable=not show_progress,
            ) as pbar:
                for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        pbar.update(len(chunk))

            os.replace(temp_file, dest_path)
            return dest_path

        except requests.RequestException as e:
            _cleanup_temp_file(temp_file)
            raise DownloadError(f"Failed to download {url}: {e}") from e
        except OSError as e:
            _cleanup_temp_file(temp_file)
            raise DownloadError(f"Failed to write {dest_path}: {e}") from e
        except KeyboardInterrupt:
            _cleanup_temp_file(temp_file)
            raise

    def extract_archive(self, archive_path: Path, dest_dir: Path, show_progress: bool = True) -> Path:
        """Extract a .tgz/.tar.gz/.tar.xz or .zip archive.

        Args:
            archive_path: Archive to extract
            dest_dir: Directory to extract into (created if missing)
            show_progress: Whether to show a progress bar

        Returns:
            The destination directory

        Raises:
            ExtractionError: If the archive is unsupported or corrupt
        """
        dest_dir.mkdir(parents=True, exist_ok=True)
        name = archive_path.name.lower()

        try:
            if name.endswith((".tgz", ".tar.gz")):
                self._extract_tar(archive_path, dest_dir, "r:gz", show_progress)
            elif name.endswith((".txz", ".tar.xz")):
                self._extract_tar(archive_path, dest_dir, "r:xz", show_progress)
            elif name.endswith(".zip"):
                self._extract_zip(archive_path, dest_dir, show_progress)
            else:
                raise ExtractionError(f"Unsupported archive format: {archive_path.name}")
        except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
            raise ExtractionError(f"Failed to extract {archive_path.name}: {e}") from e

        return dest_dir

    def _extract_tar(self, archive_path: Path, dest: Path, mode: str, show_progress: bool) -> None:
        with tarfile.open(archive_path, mode) as tar:  # type: ignore[call-overload]
            members = tar.getmembers()
            for member in tqdm(members, desc=f"Extracting {archive_path.name}", unit="file", ncols=80, disable=not show_progress):
                _extract_tar_member(tar, member, dest)

    def _extract_zip(self, archive_path: Path, dest: Path, show_progress: bool) -> None:
        with zipfile.ZipFile(archive_path, "r") as zf:
            for info in tqdm(zf.infolist(), desc=f"Extracting {archive_path.name}", unit="file", ncols=80, disable=not show_progress):
                unix_mode = info.external_attr >> 16
                if stat.S_ISLNK(unix_mode):
                    _extract_zip_symlink(zf, info, dest)
                    continue
                extracted = Path(zf.extract(info, dest))
                # zipfile drops Unix permission bits; compiler binaries need +x
                mode = unix_mode & 0o777
                if mode and not info.is_dir():
                    os.chmod(extracted, mode)


def _extract_zip_symlink(zf: zipfile.ZipFile, info: zipfile.ZipInfo, dest: Path) -> None:
    # The entry body holds the link target
    target = zf.read(info).decode("utf-8")
    link = dest / info.filename
    if not (link.parent / target).resolve().is_relative_to(dest.resolve()):
        raise ExtractionError(f"Symlink {info.filename} points outside the archive: {target}")
    link.parent.mkdir(parents=True, exist_ok=True)
    if link.is_symlink() or link.exists():
        link.unlink()
    os.symlink(target, link)


def _extract_tar_member(tar: tarfile.TarFile, member: tarfile.TarInfo, dest: Path) -> None:
    # Extraction filters only exist on 3.10.12+, 3.11.4+ and 3.12+
    if hasattr(tarfile, "data_filter"):
        tar.extract(member, dest, filter="data")
    else:
        tar.extract(member, dest)


def move_tree(source: Path, dest: Path) -> None:
    """Move a directory tree into place, replacing nothing.

    Raises:
        ExtractionError: If dest already exists or the move fails
    """
    if dest.exists():
        raise ExtractionError(f"Destination already exists: {dest}")
    try:
        shutil.move(str(source), str(dest))
    except OSError as e:
        raise ExtractionError(f"Failed to move {source} to {dest}: {e}") from e
