"""Build utility helpers."""

import os
import shutil
import stat
import sys
from pathlib import Path


def _make_writable_and_retry(func, path, _exc) -> None:
    # Read-only files (git objects on Windows) block deletion until made writable
    os.chmod(path, stat.S_IWRITE)
    func(path)


def safe_rmtree(path: Path) -> bool:
    """Remove a directory tree, clearing read-only flags as needed.

    Args:
        path: Directory to remove

    Returns:
        True if the directory existed and was removed
    """
    if not path.exists():
        return False
    if not path.is_dir():
        raise NotADirectoryError(f"Not a directory: {path}")
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_make_writable_and_retry)
    else:
        shutil.rmtree(path, onerror=_make_writable_and_retry)
    return True
