"""Build Context - Aggregated build configuration.

This module defines BuildConfig, the single configuration struct constructed
once at startup from the CLI arguments and the platform configuration, then
passed to every component (toolchain, firmware source, patcher, scanner,
compiler, linker). Core logic never reads the working directory or environment
variables implicitly; all locations come from here.

Layout (relative to the project root):
    arduino-1.5.4/                  toolchain root
    RepRapFirmware/                 firmware root
    RepRapFirmware/Build/           object files, dependency records, link map
    RepRapFirmware/Release/         linked image and raw binary
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..platform_configs import PlatformConfig, load_platform_config


@dataclass(frozen=True)
class BuildConfig:
    """Full build configuration shared by all pipeline components.

    Attributes:
        project_dir: Project root holding the toolchain and firmware directories
        toolchain_dir: Extracted toolchain root
        firmware_dir: Firmware source tree root
        build_dir: Flat directory of object files and dependency records
        release_dir: Directory of the linked image and raw binary
        platform: Parsed platform configuration
        verbose: Whether to echo external tool invocations
        jobs: Maximum number of concurrent compiler processes
    """

    project_dir: Path
    toolchain_dir: Path
    firmware_dir: Path
    build_dir: Path
    release_dir: Path
    platform: PlatformConfig
    verbose: bool = False
    jobs: int = 1

    @classmethod
    def create(
        cls,
        project_dir: Path,
        platform: Optional[PlatformConfig] = None,
        verbose: bool = False,
        jobs: int = 1,
    ) -> "BuildConfig":
        """Create a BuildConfig with all paths resolved against the project root.

        Args:
            project_dir: Project root directory
            platform: Platform configuration (default: the bundled SAM3X8E config)
            verbose: Whether to echo external tool invocations
            jobs: Maximum number of concurrent compiler processes

        Returns:
            Fully resolved BuildConfig
        """
        if platform is None:
            platform = load_platform_config()
        project_dir = project_dir.resolve()
        firmware_dir = project_dir / platform.firmware.name
        return cls(
            project_dir=project_dir,
            toolchain_dir=project_dir / platform.toolchain.dir_name,
            firmware_dir=firmware_dir,
            build_dir=firmware_dir / platform.firmware.build_dir,
            release_dir=firmware_dir / platform.firmware.release_dir,
            platform=platform,
            verbose=verbose,
            jobs=max(1, jobs),
        )

    @property
    def product_name(self) -> str:
        """Name of the firmware product, used for the release artifacts."""
        return self.platform.firmware.name

    @property
    def map_file(self) -> Path:
        return self.build_dir / f"{self.product_name}.map"

    @property
    def elf_path(self) -> Path:
        return self.release_dir / f"{self.product_name}.elf"

    @property
    def bin_path(self) -> Path:
        return self.release_dir / f"{self.product_name}.bin"

    @property
    def linker_script(self) -> Path:
        return self.toolchain_dir / self.platform.linker.script

    @property
    def system_archive(self) -> Path:
        return self.toolchain_dir / self.platform.linker.system_archive

    @property
    def patches_source_dir(self) -> Optional[Path]:
        """Firmware subtree holding vendor core patches, if configured."""
        if not self.platform.patches.source:
            return None
        return self.firmware_dir / self.platform.patches.source

    @property
    def patches_target_dir(self) -> Path:
        return self.toolchain_dir / self.platform.patches.target

    @property
    def libraries_dir(self) -> Path:
        return self.firmware_dir / self.platform.firmware.libraries_dir
