"""Core Patch Overlay.

Some firmware variants ship fixes for the toolchain's SAM core sources in a
``ArduinoCorePatches/sam`` subtree. This module overlays that subtree onto the
toolchain's ``hardware/arduino/sam`` directory on every build, since a
``git pull`` of the firmware may have changed the patches.

Each copied file keeps the modification time of its patch original, so
reapplying an unchanged patch never makes the patched core file look newer
than its object file and never triggers recompilation on its own.
"""

import shutil
from pathlib import Path
from typing import Optional

from ..output import log_detail
from .package import PackageError


class CorePatchError(PackageError):
    """Raised when overlaying core patches fails."""

    pass


def apply_core_patches(patches_dir: Optional[Path], target_dir: Path, show_progress: bool = True) -> int:
    """Overlay a patch subtree onto the toolchain, preserving timestamps.

    Args:
        patches_dir: Patch subtree inside the firmware tree (None or missing = no patches)
        target_dir: Toolchain subtree receiving the patched files
        show_progress: Whether to log each overlaid file

    Returns:
        Number of files overlaid (0 if there are no patches)

    Raises:
        CorePatchError: If a patch file cannot be copied
    """
    if patches_dir is None or not patches_dir.is_dir():
        return 0

    applied_count = 0

    for patch_file in sorted(patches_dir.rglob("*")):
        if not patch_file.is_file():
            continue

        relative = patch_file.relative_to(patches_dir)
        dest = target_dir / relative

        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            # copy2 carries the source mtime over
            shutil.copy2(patch_file, dest)
        except OSError as e:
            raise CorePatchError(f"Failed to apply core patch {relative}: {e}") from e

        applied_count += 1
        if show_progress:
            log_detail(f"Patched {relative.as_posix()}", verbose_only=True)

    return applied_count
