"""ARM Toolchain Management.

This module provisions the Arduino IDE distribution that bundles the ARM GCC
cross compiler (arm-none-eabi-gcc) and the SAM core sources, and gives access
to its binaries.

Toolchain Structure (after extraction and normalization):
    arduino-1.5.4/
    ├── hardware/
    │   ├── arduino/sam/
    │   │   ├── cores/arduino/          (core C/C++ sources)
    │   │   ├── system/                 (libsam, CMSIS headers)
    │   │   └── variants/arduino_due_x/ (linker scripts, libsam_sam3x8e_gcc_rel.a)
    │   └── tools/g++_arm_none_eabi/bin/
    │       ├── arm-none-eabi-gcc
    │       ├── arm-none-eabi-g++
    │       ├── arm-none-eabi-objcopy
    │       └── arm-none-eabi-size
    └── ...

Provisioning is idempotent: once the toolchain directory exists it is returned
unchanged and no network access happens.
"""

import logging
import shutil
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Optional

from ..build.build_context import BuildConfig
from ..output import log_detail
from ..platform_configs.platform_config_model import ToolchainSettings
from .downloader import DownloadError, ExtractionError, PackageDownloader, move_tree
from .host_platform import HostPlatform
from .package import PackageError
from .toolchain_binaries import ToolchainBinaryFinder

logger = logging.getLogger(__name__)


class ToolchainError(PackageError):
    """Raised when toolchain operations fail."""

    pass


@dataclass(frozen=True)
class ToolchainDescriptor:
    """Identifies the toolchain archive for one host.

    Attributes:
        version: Version tag (e.g., "1.5.4")
        abi: Numeric ABI identifier (e.g., 154)
        host: Host platform the archive targets
        dir_name: Directory the archive extracts to (e.g., "arduino-1.5.4")
        archive_name: Host-specific archive file name
        url: Download URL of the archive
    """

    version: str
    abi: int
    host: HostPlatform
    dir_name: str
    archive_name: str
    url: str

    @classmethod
    def resolve(cls, settings: ToolchainSettings, host: HostPlatform) -> "ToolchainDescriptor":
        archive_name = host.archive_name(settings.dir_name)
        return cls(
            version=settings.version,
            abi=settings.abi,
            host=host,
            dir_name=settings.dir_name,
            archive_name=archive_name,
            url=f"{settings.download_url}/{archive_name}",
        )


class Toolchain:
    """Manages toolchain download, extraction, and binary access."""

    def __init__(
        self,
        config: BuildConfig,
        downloader: Optional[PackageDownloader] = None,
        host: Optional[HostPlatform] = None,
        show_progress: bool = True,
    ):
        """Initialize toolchain manager.

        Args:
            config: Build configuration
            downloader: Downloader to use (default: PackageDownloader())
            host: Host platform override (default: detected on first use)
            show_progress: Whether to show download/extraction progress
        """
        self.config = config
        self.settings = config.platform.toolchain
        self.toolchain_path = config.toolchain_dir
        self.downloader = downloader or PackageDownloader()
        self.show_progress = show_progress
        self._host = host
        self.binaries = ToolchainBinaryFinder(self.toolchain_path / self.settings.bin_dir, self.settings.prefix)

    @cached_property
    def descriptor(self) -> ToolchainDescriptor:
        """Toolchain descriptor for this host, resolved once."""
        host = self._host if self._host is not None else HostPlatform.detect()
        return ToolchainDescriptor.resolve(self.settings, host)

    def is_installed(self) -> bool:
        return self.toolchain_path.is_dir()

    def ensure_toolchain(self) -> Path:
        """Ensure the toolchain is downloaded and extracted.

        Returns:
            Path to the toolchain root

        Raises:
            ToolchainError: If the host is unsupported, or download or extraction fails
        """
        if self.is_installed():
            return self.toolchain_path

        try:
            descriptor = self.descriptor
            archive_path = self.config.project_dir / descriptor.archive_name

            if archive_path.exists():
                log_detail(f"Using cached archive {archive_path.name}")
            else:
                log_detail(f"Downloading {descriptor.url}")
                self.downloader.download(descriptor.url, archive_path, show_progress=self.show_progress)

            self._install_from_archive(archive_path, descriptor.host)
            return self.toolchain_path

        except (DownloadError, ExtractionError) as e:
            raise ToolchainError(f"Failed to set up toolchain: {e}") from e
        except ToolchainError:
            raise
        except PackageError as e:
            raise ToolchainError(f"Failed to set up toolchain: {e}") from e
        except OSError as e:
            raise ToolchainError(f"Failed to install toolchain into {self.toolchain_path}: {e}") from e

    def _install_from_archive(self, archive_path: Path, host: HostPlatform) -> None:
        """Extract into a staging directory, then move the canonical tree into place.

        The toolchain directory only appears once extraction fully succeeded.
        """
        staging = self.config.project_dir / f".{self.settings.dir_name}.extract"
        if staging.exists():
            shutil.rmtree(staging)

        try:
            log_detail(f"Extracting {archive_path.name}")
            self.downloader.extract_archive(archive_path, staging, show_progress=self.show_progress)
            toolchain_root = host.locate_toolchain_root(staging)
            move_tree(toolchain_root, self.toolchain_path)
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

        logger.debug("Installed toolchain %s into %s", self.settings.dir_name, self.toolchain_path)

    def get_size_path(self) -> Optional[Path]:
        return self.binaries.find_binary("size")
