"""
Type-safe platform configuration models.

This module provides dataclass-based configuration structures for the JSON
platform configuration files, so the rest of the build system works with typed
attributes instead of dict.get() patterns.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class ToolchainSettings:
    """Cross-compilation toolchain distribution.

    Attributes:
        name: Distribution name, also the archive/directory stem (e.g., "arduino")
        version: Version tag (e.g., "1.5.4")
        abi: Numeric ABI identifier passed to the compiler (e.g., 154)
        download_url: Base URL the host-specific archive is fetched from
        bin_dir: Directory of the compiler binaries, relative to the toolchain root
        prefix: Binary name prefix (e.g., "arm-none-eabi")
    """

    name: str
    version: str
    abi: int
    download_url: str
    bin_dir: str
    prefix: str

    @property
    def dir_name(self) -> str:
        """Directory name produced by extracting the toolchain archive."""
        return f"{self.name}-{self.version}"


@dataclass(frozen=True)
class FirmwareSettings:
    """Firmware source tree settings."""

    name: str
    branch: str
    variants: Dict[str, str] = field(default_factory=dict)
    libraries_dir: str = "Libraries"
    libraries_repo: str = ""
    build_dir: str = "Build"
    release_dir: str = "Release"


@dataclass(frozen=True)
class PatchSettings:
    """Vendor core patch overlay (firmware subtree -> toolchain subtree)."""

    source: str = ""
    target: str = ""


@dataclass(frozen=True)
class SourceSettings:
    """Toolchain directories scanned for sources, and firmware directories skipped."""

    c_dirs: List[str] = field(default_factory=list)
    cxx_dirs: List[str] = field(default_factory=list)
    exclude_dirs: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class CompilerFlags:
    """Compiler flag configuration."""

    platform: List[str] = field(default_factory=list)
    usb: List[str] = field(default_factory=list)
    c: List[str] = field(default_factory=list)
    cxx: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class IncludeSettings:
    """Include directories, relative to the firmware and toolchain roots."""

    firmware: List[str] = field(default_factory=list)
    toolchain: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class LinkerSettings:
    """Linker configuration.

    Attributes:
        script: Linker script path relative to the toolchain root
        system_archive: Precompiled system library relative to the toolchain root
        flags: Ordered link flags; may reference {linker_script}, {map_file}, {build_dir}
    """

    script: str
    system_archive: str
    flags: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PlatformConfig:
    """
    Type-safe platform configuration model.

    Attributes:
        name: Human-readable board name
        mcu: MCU identifier (lowercase, e.g., "sam3x8e")
        variant: Board variant directory name (e.g., "arduino_due_x")
        toolchain: Toolchain distribution settings
        firmware: Firmware tree settings
        patches: Core patch overlay settings
        sources: Source scan settings
        compiler_flags: Compiler flags by category
        includes: Include directories
        linker: Linker settings
    """

    name: str
    mcu: str
    toolchain: ToolchainSettings
    firmware: FirmwareSettings
    linker: LinkerSettings
    variant: str = ""
    patches: PatchSettings = field(default_factory=PatchSettings)
    sources: SourceSettings = field(default_factory=SourceSettings)
    compiler_flags: CompilerFlags = field(default_factory=CompilerFlags)
    includes: IncludeSettings = field(default_factory=IncludeSettings)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlatformConfig":
        """
        Parse platform configuration from dictionary.

        Args:
            data: Raw configuration dictionary from JSON

        Returns:
            Type-safe PlatformConfig instance

        Raises:
            ValueError: If required fields are missing or invalid
        """
        try:
            name = data["name"]
            mcu = data["mcu"]
            toolchain_data = data["toolchain"]
            firmware_data = data["firmware"]
            linker_data = data["linker"]
            toolchain = ToolchainSettings(
                name=toolchain_data["name"],
                version=toolchain_data["version"],
                abi=int(toolchain_data["abi"]),
                download_url=toolchain_data["download_url"].rstrip("/"),
                bin_dir=toolchain_data["bin_dir"],
                prefix=toolchain_data["prefix"],
            )
            firmware = FirmwareSettings(
                name=firmware_data["name"],
                branch=firmware_data["branch"],
                variants=dict(firmware_data.get("variants", {})),
                libraries_dir=firmware_data.get("libraries_dir", "Libraries"),
                libraries_repo=firmware_data.get("libraries_repo", ""),
                build_dir=firmware_data.get("build_dir", "Build"),
                release_dir=firmware_data.get("release_dir", "Release"),
            )
            linker = LinkerSettings(
                script=linker_data["script"],
                system_archive=linker_data["system_archive"],
                flags=list(linker_data.get("flags", [])),
            )
        except KeyError as e:
            raise ValueError(f"Missing required field in platform config: {e}")

        patches_data = data.get("patches", {})
        sources_data = data.get("sources", {})
        flags_data = data.get("compiler_flags", {})
        includes_data = data.get("includes", {})

        return cls(
            name=name,
            mcu=mcu,
            variant=data.get("variant", ""),
            toolchain=toolchain,
            firmware=firmware,
            linker=linker,
            patches=PatchSettings(
                source=patches_data.get("source", ""),
                target=patches_data.get("target", ""),
            ),
            sources=SourceSettings(
                c_dirs=list(sources_data.get("c_dirs", [])),
                cxx_dirs=list(sources_data.get("cxx_dirs", [])),
                exclude_dirs=list(sources_data.get("exclude_dirs", [])),
            ),
            compiler_flags=CompilerFlags(
                platform=list(flags_data.get("platform", [])),
                usb=list(flags_data.get("usb", [])),
                c=list(flags_data.get("c", [])),
                cxx=list(flags_data.get("cxx", [])),
            ),
            includes=IncludeSettings(
                firmware=list(includes_data.get("firmware", [])),
                toolchain=list(includes_data.get("toolchain", [])),
            ),
        )
