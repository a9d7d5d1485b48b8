"""Package management for rrfbuild.

This module provisions the external inputs of a build: the ARM toolchain
distribution, the firmware source tree and its support libraries, and the
vendor core patches overlaid onto the toolchain.
"""

from .core_patches import CorePatchError, apply_core_patches
from .downloader import DownloadError, ExtractionError, PackageDownloader
from .firmware import FirmwareSource, FirmwareSourceError, FirmwareVariant
from .host_platform import HostPlatform, UnsupportedHostError
from .package import PackageError
from .toolchain import Toolchain, ToolchainDescriptor, ToolchainError

__all__ = [
    "CorePatchError",
    "DownloadError",
    "ExtractionError",
    "FirmwareSource",
    "FirmwareSourceError",
    "FirmwareVariant",
    "HostPlatform",
    "PackageDownloader",
    "PackageError",
    "Toolchain",
    "ToolchainDescriptor",
    "ToolchainError",
    "UnsupportedHostError",
    "apply_core_patches",
]
