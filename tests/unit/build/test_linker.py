"""Tests for firmware linking and image packaging."""

import subprocess
from unittest.mock import patch

import pytest

from rrfbuild.build.linker import FirmwareLinker, LinkerError, SizeInfo
from rrfbuild.build.option_set import END_GROUP, START_GROUP, OptionSet


def _linker(config):
    bin_dir = config.toolchain_dir / "bin"
    return FirmwareLinker(
        config,
        OptionSet.from_config(config),
        bin_dir / "arm-none-eabi-g++",
        bin_dir / "arm-none-eabi-objcopy",
        bin_dir / "arm-none-eabi-size",
    )


def _objects(config, names):
    config.build_dir.mkdir(parents=True, exist_ok=True)
    paths = []
    for name in names:
        path = config.build_dir / name
        path.write_bytes(f"OBJ {name}\n".encode())
        paths.append(path)
    return paths


class TestLink:
    """Test linking."""

    def test_objects_and_archive_share_one_group(self, project, fake_toolchain):
        """All three objects and the system archive appear inside one start/end group."""
        objects = _objects(project, ["z.c.o", "a.c.o", "m.cpp.o"])

        elf = _linker(project).link(objects, project.system_archive)

        cmd = fake_toolchain.commands[-1]
        group = cmd[cmd.index(START_GROUP) + 1 : cmd.index(END_GROUP)]
        assert group == [str(p) for p in sorted(objects)] + [str(project.system_archive)]
        assert cmd[-2:] == ["-o", str(project.elf_path)]
        assert elf == project.elf_path
        assert elf.exists()

    def test_link_flags_precede_group(self, project, fake_toolchain):
        """Configured link flags come before the group, in order."""
        objects = _objects(project, ["a.c.o"])

        _linker(project).link(objects, project.system_archive)

        cmd = fake_toolchain.commands[-1]
        assert cmd[0].endswith("arm-none-eabi-g++")
        assert cmd[1:cmd.index(START_GROUP)] == list(OptionSet.from_config(project).link)
        assert project.map_file.exists()

    def test_empty_object_list(self, project, fake_toolchain):
        """Test that linking nothing is an error."""
        with pytest.raises(LinkerError, match="No object files"):
            _linker(project).link([], project.system_archive)

    def test_missing_system_archive(self, project, fake_toolchain):
        """Test that a missing system archive is an error."""
        objects = _objects(project, ["a.c.o"])
        project.system_archive.unlink()

        with pytest.raises(LinkerError, match="System archive not found"):
            _linker(project).link(objects, project.system_archive)
        assert fake_toolchain.commands == []

    def test_missing_linker_script(self, project, fake_toolchain):
        """Test that a missing linker script is an error."""
        objects = _objects(project, ["a.c.o"])
        project.linker_script.unlink()

        with pytest.raises(LinkerError, match="Linker script not found"):
            _linker(project).link(objects)

    def test_link_failure_carries_diagnostics(self, project):
        """The linker's stderr is surfaced."""
        objects = _objects(project, ["a.c.o"])
        failed = subprocess.CompletedProcess([], 1, "", "undefined reference to `main'")

        with patch("rrfbuild.build.linker.safe_run", return_value=failed):
            with pytest.raises(LinkerError, match="undefined reference"):
                _linker(project).link(objects)


class TestGenerateBin:
    """Test raw binary conversion."""

    def test_generates_binary(self, project, fake_toolchain):
        """objcopy output lands at the release binary path."""
        objects = _objects(project, ["a.c.o"])
        linker = _linker(project)
        elf = linker.link(objects)

        bin_path = linker.generate_bin(elf)

        assert bin_path == project.bin_path
        assert bin_path.read_bytes() == b"OBJ a.c.o\n!<arch>\n"
        cmd = fake_toolchain.commands[-1]
        assert cmd[1:3] == ["-O", "binary"]
        assert not list(project.release_dir.glob("*.tmp"))

    def test_failure_keeps_previous_binary(self, project):
        """A failed conversion leaves the previous binary untouched."""
        project.release_dir.mkdir(parents=True, exist_ok=True)
        project.bin_path.write_bytes(b"previous")
        failed = subprocess.CompletedProcess([], 1, "", "objcopy: error")

        with patch("rrfbuild.build.linker.safe_run", return_value=failed):
            with pytest.raises(LinkerError):
                _linker(project).generate_bin(project.elf_path)

        assert project.bin_path.read_bytes() == b"previous"
        assert not list(project.release_dir.glob("*.tmp"))


class TestSizeInfo:
    """Test the section size report."""

    def test_parse_size_output(self, project, fake_toolchain):
        """Test parsing System V size output."""
        info = _linker(project).get_size_info(project.elf_path)

        assert info is not None
        assert info.sections[".text"] == 104200
        assert info.total_flash == 104200 + 1352
        assert info.total_ram == 1352 + 30120 + 1024

    def test_size_failure_only_warns(self, project):
        """A failing size tool does not fail the build."""
        failed = subprocess.CompletedProcess([], 1, "", "size: bad file")

        with patch("rrfbuild.build.linker.safe_run", return_value=failed):
            assert _linker(project).get_size_info(project.elf_path) is None

    def test_parse_ignores_headers(self):
        """Header and total lines are not sections."""
        info = SizeInfo.parse("x.elf  :\nsection size addr\n.data 4 536870912\nTotal 4\n")

        assert info.sections == {".data": 4}
