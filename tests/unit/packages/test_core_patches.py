"""Tests for the core patch overlay."""

import os

import pytest

from rrfbuild.packages.core_patches import CorePatchError, apply_core_patches


@pytest.fixture
def dirs(tmp_path):
    patches = tmp_path / "RepRapFirmware" / "ArduinoCorePatches" / "sam"
    target = tmp_path / "arduino-1.5.4" / "hardware" / "arduino" / "sam"
    (patches / "cores" / "arduino").mkdir(parents=True)
    (target / "cores" / "arduino").mkdir(parents=True)
    return patches, target


def test_overlay_preserves_timestamps(dirs):
    """Overlaid files keep the modification time of their patch originals."""
    patches, target = dirs
    patch_file = patches / "cores" / "arduino" / "USB.cpp"
    patch_file.write_text("patched\n")
    os.utime(patch_file, ns=(1_500_000_000_000_000_000, 1_500_000_000_000_000_000))

    count = apply_core_patches(patches, target, show_progress=False)

    dest = target / "cores" / "arduino" / "USB.cpp"
    assert count == 1
    assert dest.read_text() == "patched\n"
    assert dest.stat().st_mtime_ns == patch_file.stat().st_mtime_ns


def test_overlay_replaces_existing_files(dirs):
    """Existing toolchain files are overwritten by their patches."""
    patches, target = dirs
    (patches / "cores" / "arduino" / "wiring.c").write_text("new\n")
    (target / "cores" / "arduino" / "wiring.c").write_text("old\n")

    apply_core_patches(patches, target, show_progress=False)

    assert (target / "cores" / "arduino" / "wiring.c").read_text() == "new\n"


def test_overlay_creates_missing_directories(dirs):
    """Patch files in new subdirectories are placed at the same relative path."""
    patches, target = dirs
    (patches / "system" / "libsam").mkdir(parents=True)
    (patches / "system" / "libsam" / "uart.c").write_text("uart\n")

    apply_core_patches(patches, target, show_progress=False)

    assert (target / "system" / "libsam" / "uart.c").read_text() == "uart\n"


def test_reapplying_is_idempotent(dirs):
    """A second overlay of unchanged patches changes no timestamps."""
    patches, target = dirs
    (patches / "cores" / "arduino" / "USB.cpp").write_text("patched\n")
    apply_core_patches(patches, target, show_progress=False)
    dest = target / "cores" / "arduino" / "USB.cpp"
    first = dest.stat().st_mtime_ns

    apply_core_patches(patches, target, show_progress=False)

    assert dest.stat().st_mtime_ns == first


def test_absent_patch_tree_is_not_an_error(tmp_path):
    """Without a patch subtree nothing happens."""
    assert apply_core_patches(tmp_path / "missing", tmp_path / "target") == 0
    assert apply_core_patches(None, tmp_path / "target") == 0
    assert not (tmp_path / "target").exists()


def test_copy_failure_raises(dirs):
    """A target that cannot be written is a patch failure."""
    patches, target = dirs
    (patches / "cores" / "arduino" / "USB.cpp").write_text("patched\n")
    # A file where a directory is expected blocks the copy
    (target / "cores" / "arduino").rmdir()
    (target / "cores" / "arduino").write_text("")

    with pytest.raises(CorePatchError):
        apply_core_patches(patches, target, show_progress=False)
