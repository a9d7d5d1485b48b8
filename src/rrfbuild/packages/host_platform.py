"""Host platform detection and per-host toolchain archive handling.

The toolchain distribution ships one archive per host:

    arduino-1.5.4-linux32.tgz   32-bit Linux, extracts to arduino-1.5.4/
    arduino-1.5.4-linux64.tgz   64-bit Linux, extracts to arduino-1.5.4/
    arduino-1.5.4-macosx.zip    macOS, extracts to an application bundle:
                                Arduino.app/Contents/Resources/Java/

Each HostPlatform member knows its archive name and how to locate the
canonical toolchain tree inside the extracted archive, so downstream code sees
one directory shape regardless of host OS.
"""

import platform
from enum import Enum
from pathlib import Path
from typing import Optional

from .package import PackageError

# Location of the toolchain tree inside the macOS application bundle
MACOS_BUNDLE_ROOT = Path("Arduino.app") / "Contents" / "Resources" / "Java"
_X86_64_MACHINES = ("x86_64", "amd64")


class UnsupportedHostError(PackageError):
    """Raised when no toolchain archive exists for the host OS."""

    pass


class HostPlatform(Enum):
    """Closed set of hosts a toolchain archive exists for."""

    LINUX32 = "linux32"
    LINUX64 = "linux64"
    MACOS = "macosx"

    @classmethod
    def detect(cls, system: Optional[str] = None, machine: Optional[str] = None) -> "HostPlatform":
        """Detect the host platform.

        Args:
            system: OS family override (default: platform.system())
            machine: Machine architecture override (default: platform.machine())

        Returns:
            The matching HostPlatform

        Raises:
            UnsupportedHostError: If the OS family has no toolchain archive
        """
        system = system if system is not None else platform.system()
        machine = machine if machine is not None else platform.machine()

        if system == "Darwin":
            return cls.MACOS
        if system == "Linux":
            # Only x86_64 hosts get the 64-bit archive
            if machine.lower() in _X86_64_MACHINES:
                return cls.LINUX64
            return cls.LINUX32
        raise UnsupportedHostError(f"No toolchain archive available for host OS '{system}'")

    @property
    def archive_extension(self) -> str:
        return ".zip" if self is HostPlatform.MACOS else ".tgz"

    def archive_name(self, dir_name: str) -> str:
        """Archive file name for a toolchain directory name (e.g., 'arduino-1.5.4')."""
        return f"{dir_name}-{self.value}{self.archive_extension}"

    def locate_toolchain_root(self, extract_dir: Path) -> Path:
        """Find the canonical toolchain tree inside a freshly extracted archive.

        Args:
            extract_dir: Staging directory the archive was extracted into

        Returns:
            Directory whose contents form the canonical toolchain layout

        Raises:
            PackageError: If the archive does not have the expected shape
        """
        if self is HostPlatform.MACOS:
            bundle_root = extract_dir / MACOS_BUNDLE_ROOT
            if not bundle_root.is_dir():
                raise PackageError(f"Application bundle layout not found in archive: {MACOS_BUNDLE_ROOT}")
            return bundle_root

        items = list(extract_dir.iterdir())
        if len(items) == 1 and items[0].is_dir():
            return items[0]
        return extract_dir
