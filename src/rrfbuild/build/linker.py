"""Firmware linker and image packaging.

Links every object file of the build together with the toolchain's prebuilt
system library into a single executable image, then converts the image into
the raw binary that gets flashed:

    arm-none-eabi-g++ <link flags> -Wl,--start-group <objects> <libsam.a> -Wl,--end-group -o RepRapFirmware.elf
    arm-none-eabi-objcopy -O binary RepRapFirmware.elf RepRapFirmware.bin

All objects and the archive share one resolution group, so symbol references
between them resolve regardless of order.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Sequence

from ..output import log_warning
from ..subprocess_utils import safe_run
from .build_context import BuildConfig
from .option_set import OptionSet

logger = logging.getLogger(__name__)

# Sections counted towards flash and RAM usage on the SAM3X8E
_FLASH_SECTIONS = (".text", ".ARM.exidx", ".relocate", ".data")
_RAM_SECTIONS = (".relocate", ".data", ".bss", ".stack")
_SIZE_LINE = re.compile(r"^(\.\S+)\s+(\d+)\s+(\d+)\s*$")


class LinkerError(Exception):
    """Raised when linking or image conversion fails."""

    pass


@dataclass
class SizeInfo:
    """Section sizes of a linked image, as reported by ``size -A``."""

    sections: Dict[str, int] = field(default_factory=dict)

    @property
    def total_flash(self) -> int:
        return sum(self.sections.get(name, 0) for name in _FLASH_SECTIONS)

    @property
    def total_ram(self) -> int:
        return sum(self.sections.get(name, 0) for name in _RAM_SECTIONS)

    @classmethod
    def parse(cls, text: str) -> "SizeInfo":
        """Parse System V style (``-A``) size output."""
        sections = {}
        for line in text.splitlines():
            match = _SIZE_LINE.match(line.strip())
            if match:
                sections[match.group(1)] = int(match.group(2))
        return cls(sections=sections)


class FirmwareLinker:
    """Links object files into the firmware image."""

    def __init__(
        self,
        config: BuildConfig,
        options: OptionSet,
        gxx: Path,
        objcopy: Path,
        size: Optional[Path] = None,
    ):
        """Initialize the linker.

        Args:
            config: Build configuration
            options: Option set holding the link flags
            gxx: C++ compiler binary used as link driver
            objcopy: objcopy binary for image conversion
            size: size binary for the section report (optional)
        """
        self.config = config
        self.options = options
        self.gxx = gxx
        self.objcopy = objcopy
        self.size = size

    def link(self, objects: Sequence[Path], system_archive: Optional[Path] = None) -> Path:
        """Link objects and the system archive into the executable image.

        Args:
            objects: Object files to link
            system_archive: Prebuilt system library (default: from config)

        Returns:
            Path to the linked image

        Raises:
            LinkerError: If inputs are missing or the link fails
        """
        if system_archive is None:
            system_archive = self.config.system_archive
        if not objects:
            raise LinkerError("No object files to link")
        if not self.config.linker_script.exists():
            raise LinkerError(f"Linker script not found: {self.config.linker_script}")
        if not system_archive.exists():
            raise LinkerError(f"System archive not found: {system_archive}")

        elf_path = self.config.elf_path
        elf_path.parent.mkdir(parents=True, exist_ok=True)
        self.config.map_file.parent.mkdir(parents=True, exist_ok=True)

        cmd = [str(self.gxx)]
        cmd.extend(self.options.link_flags(sorted(objects), system_archive))
        cmd.extend(["-o", str(elf_path)])

        try:
            result = safe_run(cmd, capture_output=True, text=True, cwd=str(self.config.project_dir))
        except OSError as e:
            raise LinkerError(f"Failed to run linker {self.gxx}: {e}") from e

        if result.returncode != 0:
            error_msg = "Linking failed\n"
            error_msg += f"stderr: {result.stderr}\n"
            error_msg += f"stdout: {result.stdout}"
            raise LinkerError(error_msg)

        if not elf_path.exists():
            raise LinkerError(f"Linked image was not created: {elf_path}")

        if result.stderr:
            logger.debug("Linker output:\n%s", result.stderr)

        return elf_path

    def generate_bin(self, elf_path: Path, bin_path: Optional[Path] = None) -> Path:
        """Convert the image to a raw binary.

        The binary is written next to its destination first and moved into
        place, so a failed conversion never leaves a truncated binary behind.

        Args:
            elf_path: Linked image
            bin_path: Output path (default: from config)

        Returns:
            Path to the binary

        Raises:
            LinkerError: If objcopy fails
        """
        if bin_path is None:
            bin_path = self.config.bin_path
        bin_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = bin_path.with_name(bin_path.name + ".tmp")

        cmd = [str(self.objcopy), "-O", "binary", str(elf_path), str(tmp_path)]

        try:
            result = safe_run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise LinkerError(f"Failed to run objcopy {self.objcopy}: {e}") from e

        try:
            if result.returncode != 0 or not tmp_path.exists():
                raise LinkerError(f"Failed to generate binary: {result.stderr}")
            os.replace(tmp_path, bin_path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        return bin_path

    def get_size_info(self, elf_path: Path) -> Optional[SizeInfo]:
        """Report section sizes of the image.

        Returns:
            SizeInfo, or None if size is unavailable or fails
        """
        if self.size is None:
            return None

        try:
            result = safe_run([str(self.size), "-A", str(elf_path)], capture_output=True, text=True)
        except OSError as e:
            log_warning(f"Could not run size: {e}")
            return None

        if result.returncode != 0:
            log_warning(f"Could not read section sizes: {result.stderr.strip()}")
            return None

        return SizeInfo.parse(result.stdout)

