"""Compiler and linker option sets.

An OptionSet holds every flag the pipeline passes to the toolchain, grouped by
purpose and kept in exactly the order the platform configuration lists them.
Order matters: the linker resolves symbols left to right, and the object
files and system archive must sit inside a single start/end group.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from .build_context import BuildConfig
from .source_scanner import SourceKind

START_GROUP = "-Wl,--start-group"
END_GROUP = "-Wl,--end-group"


@dataclass(frozen=True)
class OptionSet:
    """Ordered compiler/linker flags.

    Attributes:
        platform: CPU/board flags shared by both source kinds
        usb: USB and feature defines shared by both source kinds
        c_compile: C compile flags
        cxx_compile: C++ compile flags (adds -fno-rtti -fno-exceptions -x c++)
        includes: -I flags shared identically by both source kinds
        link: Link flags placed before the object group
    """

    platform: tuple[str, ...]
    usb: tuple[str, ...]
    c_compile: tuple[str, ...]
    cxx_compile: tuple[str, ...]
    includes: tuple[str, ...]
    link: tuple[str, ...]

    @classmethod
    def from_config(cls, config: BuildConfig) -> "OptionSet":
        """Build the option set for a build configuration.

        Placeholders in the configured flags are expanded here:
        {arduino_version}, {linker_script}, {map_file}, {build_dir}.
        """
        platform = config.platform
        values = {
            "arduino_version": str(platform.toolchain.abi),
            "linker_script": _gcc_path(config.linker_script),
            "map_file": _gcc_path(config.map_file),
            "build_dir": _gcc_path(config.build_dir),
        }

        includes = [config.firmware_dir / rel for rel in platform.includes.firmware]
        includes += [config.toolchain_dir / rel for rel in platform.includes.toolchain]

        return cls(
            platform=_expand(platform.compiler_flags.platform, values),
            usb=_expand(platform.compiler_flags.usb, values),
            c_compile=_expand(platform.compiler_flags.c, values),
            cxx_compile=_expand(platform.compiler_flags.cxx, values),
            includes=tuple(f"-I{_gcc_path(path)}" for path in includes),
            link=_expand(platform.linker.flags, values),
        )

    def compile_flags(self, kind: SourceKind) -> List[str]:
        """Flags for compiling one source of the given kind, in invocation order."""
        kind_flags = self.cxx_compile if kind is SourceKind.CPP_SOURCE else self.c_compile
        return [*kind_flags, *self.platform, *self.usb, *self.includes]

    def link_flags(self, objects: Sequence[Path], system_archive: Path) -> List[str]:
        """Link flags followed by one resolution group of all objects and the system archive."""
        group = [_gcc_path(obj) for obj in objects]
        group.append(_gcc_path(system_archive))
        return [*self.link, START_GROUP, *group, END_GROUP]


def _expand(flags: Sequence[str], values: dict[str, str]) -> tuple[str, ...]:
    return tuple(flag.format(**values) if "{" in flag else flag for flag in flags)


def _gcc_path(path: Path) -> str:
    # GCC accepts forward slashes on every host
    return str(path).replace("\\", "/")
