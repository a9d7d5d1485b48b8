"""
Firmware build orchestration.

This module drives the whole pipeline for one invocation:

    1. Provision the ARM toolchain (download + extract on first run)
    2. Provision the firmware source tree and its support libraries (git clone)
    3. Overlay the vendor core patches onto the toolchain
    4. Enumerate the C and C++ sources
    5. Compile every stale source
    6. Link, convert to a raw binary, and report section sizes

Every step is fatal on failure and nothing is retried. A second run over an
unchanged tree performs no compilations and relinks to a byte-identical
binary.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from ..output import TimedLogger, log_detail, log_phase, log_warning, set_verbose
from ..packages.core_patches import apply_core_patches
from ..packages.downloader import PackageDownloader
from ..packages.firmware import FirmwareSource, FirmwareVariant
from ..packages.toolchain import Toolchain, ToolchainError
from ..packages.toolchain_binaries import BinaryNotFoundError
from .build_context import BuildConfig
from .build_utils import safe_rmtree
from .compiler import CompileSummary, IncrementalCompiler
from .linker import FirmwareLinker, SizeInfo
from .option_set import OptionSet
from .source_scanner import SourceFile, SourceScanner

logger = logging.getLogger(__name__)

TOTAL_PHASES = 6


@dataclass
class BuildResult:
    """Result of a build operation."""

    success: bool
    elf_path: Optional[Path]
    bin_path: Optional[Path]
    size_info: Optional[SizeInfo]
    build_time: float
    message: str
    compiled: List[Path] = field(default_factory=list)


class BuildOrchestrator:
    """
    Orchestrates the complete firmware build.

    Handles provisioning, patching, incremental compilation, linking and
    packaging for one project root.
    """

    def __init__(
        self,
        config: BuildConfig,
        prompt: Callable[[str], str] = input,
        downloader: Optional[PackageDownloader] = None,
        variant: Optional[FirmwareVariant] = None,
        on_compile: Optional[Callable[[SourceFile], None]] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Build configuration
            prompt: Callable asking the operator for the firmware variant
            downloader: Downloader for the toolchain archive
            variant: Firmware variant to clone if missing (default: ask)
            on_compile: Notification sent before each compilation
        """
        self.config = config
        self.prompt = prompt
        self.downloader = downloader
        self.variant = variant
        self.on_compile = on_compile

    def build(self) -> BuildResult:
        """Execute the complete build.

        Returns:
            BuildResult with build status and output paths
        """
        start_time = time.time()
        set_verbose(self.config.verbose)

        try:
            return self._build(start_time)
        except KeyboardInterrupt:
            raise
        except Exception as e:
            logger.debug("Build failed", exc_info=True)
            return BuildResult(
                success=False,
                elf_path=None,
                bin_path=None,
                size_info=None,
                build_time=time.time() - start_time,
                message=str(e),
            )

    def _build(self, start_time: float) -> BuildResult:
        config = self.config

        log_phase(1, TOTAL_PHASES, "Provisioning toolchain...")
        toolchain = Toolchain(config, downloader=self.downloader)
        toolchain.ensure_toolchain()
        log_detail(f"Toolchain: {config.toolchain_dir.name}", verbose_only=True)

        log_phase(2, TOTAL_PHASES, "Provisioning firmware sources...")
        firmware = FirmwareSource(config, prompt=self.prompt)
        firmware.ensure_firmware_source(self.variant)
        firmware.ensure_libraries()

        log_phase(3, TOTAL_PHASES, "Applying core patches...")
        patched = apply_core_patches(config.patches_source_dir, config.patches_target_dir)
        log_detail(f"Patched {patched} files", verbose_only=True)

        log_phase(4, TOTAL_PHASES, "Scanning sources...")
        sources = SourceScanner(config).scan()
        log_detail(f"Found {len(sources)} source files", verbose_only=True)

        config.build_dir.mkdir(parents=True, exist_ok=True)
        config.release_dir.mkdir(parents=True, exist_ok=True)

        try:
            gcc = toolchain.binaries.require_binary("gcc")
            gxx = toolchain.binaries.require_binary("g++")
            objcopy = toolchain.binaries.require_binary("objcopy")
        except BinaryNotFoundError as e:
            raise ToolchainError(str(e)) from e
        size = toolchain.get_size_path()

        options = OptionSet.from_config(config)

        with TimedLogger("Compiling sources", phase=(5, TOTAL_PHASES)):
            compiler = IncrementalCompiler(config, options, gcc, gxx, on_compile=self.on_compile)
            summary = compiler.compile_all(sources)
            self._log_compile_summary(summary)

        with TimedLogger("Linking firmware", phase=(6, TOTAL_PHASES)) as timed:
            linker = FirmwareLinker(config, options, gxx, objcopy, size)
            elf_path = linker.link(summary.object_files, config.system_archive)
            bin_path = linker.generate_bin(elf_path)
            size_info = linker.get_size_info(elf_path)
            timed.detail(f"Linked {len(summary.object_files)} object files")

        return BuildResult(
            success=True,
            elf_path=elf_path,
            bin_path=bin_path,
            size_info=size_info,
            build_time=time.time() - start_time,
            message="Build successful",
            compiled=[source.path for source in summary.compiled],
        )

    def _log_compile_summary(self, summary: CompileSummary) -> None:
        if summary.compiled:
            log_detail(f"Compiled {len(summary.compiled)} files, {len(summary.skipped)} up to date")
        else:
            log_detail("All objects up to date")


def clean(config: BuildConfig) -> List[Path]:
    """Delete the build and release directories, and nothing else.

    Returns:
        The directories that were removed
    """
    removed = []
    for directory in (config.build_dir, config.release_dir):
        try:
            if safe_rmtree(directory):
                removed.append(directory)
        except NotADirectoryError:
            log_warning(f"Not removing {directory}: not a directory")
    return removed
