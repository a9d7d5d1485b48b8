"""
Command-line interface for rrfbuild.

This module provides the `rrfbuild` CLI tool for building RepRapFirmware for
the Duet (SAM3X8E) board.

Examples:
    rrfbuild                      # Provision and build incrementally
    rrfbuild verbose              # Same, echoing every tool invocation
    rrfbuild clean                # Delete build and release directories
    rrfbuild --jobs 0             # Compile on all logical cores
"""

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import psutil
from rich.console import Console
from rich.table import Table

from rrfbuild import __version__
from rrfbuild.build.build_context import BuildConfig
from rrfbuild.build.linker import SizeInfo
from rrfbuild.build.orchestrator import BuildOrchestrator, clean
from rrfbuild.output import init_timer, log_build_complete, log_detail, log_error, log_header, set_verbose


@dataclass
class BuildArgs:
    """Arguments for a build invocation."""

    project_dir: Path
    directive: Optional[str] = None
    jobs: int = 1

    @property
    def verbose(self) -> bool:
        return self.directive == "verbose"


def resolve_jobs(jobs: int) -> int:
    """Translate the --jobs value; 0 means one job per logical core."""
    if jobs == 0:
        return psutil.cpu_count(logical=True) or 1
    return jobs


def print_size_report(size_info: SizeInfo, console: Optional[Console] = None) -> None:
    """Print the section size table of the linked image."""
    console = console or Console()
    table = Table(title="Firmware Size")
    table.add_column("Section")
    table.add_column("Bytes", justify="right")
    for name, size in sorted(size_info.sections.items()):
        table.add_row(name, f"{size:,}")
    table.add_section()
    table.add_row("Flash", f"{size_info.total_flash:,}")
    table.add_row("RAM", f"{size_info.total_ram:,}")
    console.print(table)


def clean_command(args: BuildArgs) -> None:
    """Delete the build and release directories, and nothing else."""
    config = BuildConfig.create(args.project_dir)
    removed = clean(config)
    for directory in removed:
        log_detail(f"Removed {directory}")
    print("\033[1;32m✓ Clean complete\033[0m")
    sys.exit(0)


def build_command(args: BuildArgs) -> None:
    """Provision, compile, link and package the firmware."""
    log_header("rrfbuild", __version__)

    try:
        config = BuildConfig.create(args.project_dir, verbose=args.verbose, jobs=args.jobs)
        orchestrator = BuildOrchestrator(config)
        result = orchestrator.build()

        if result.success:
            print()
            print("\033[1;32m✓ Build successful!\033[0m")
            print()
            print(f"Firmware: {result.bin_path}")
            if result.size_info and result.size_info.sections:
                print()
                print_size_report(result.size_info)
            log_build_complete(result.build_time)
            sys.exit(0)
        else:
            print()
            print("\033[1;31m✗ Build failed!\033[0m")
            print()
            print(result.message)
            sys.exit(1)

    except KeyboardInterrupt:
        print()
        print("\033[1;33m✗ Build interrupted\033[0m")
        sys.exit(130)  # Standard exit code for SIGINT

    except Exception as e:
        print()
        print("\033[1;31m✗ Unexpected error\033[0m")
        print()
        log_error(f"{type(e).__name__}: {e}")

        if args.verbose:
            import traceback

            print()
            print("Traceback:")
            print(traceback.format_exc())

        sys.exit(1)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rrfbuild",
        description="Build RepRapFirmware for the Duet board",
    )
    parser.add_argument(
        "directive",
        nargs="?",
        choices=["clean", "verbose"],
        default=None,
        help="'clean' deletes build outputs, 'verbose' echoes every tool invocation",
    )
    parser.add_argument(
        "--project-dir",
        type=Path,
        default=Path.cwd(),
        help="Project root holding the toolchain and firmware (default: current directory)",
    )
    parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=1,
        help="Number of parallel compiler processes, 0 for one per core (default: 1)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"rrfbuild {__version__}",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the CLI."""
    parser = create_parser()
    parsed_args = parser.parse_args(argv)

    if parsed_args.jobs < 0:
        parser.error("--jobs must be 0 or a positive number")

    if not parsed_args.project_dir.is_dir():
        print(f"\033[1;31m✗ Error: Path is not a directory: {parsed_args.project_dir}\033[0m")
        sys.exit(2)

    args = BuildArgs(
        project_dir=parsed_args.project_dir,
        directive=parsed_args.directive,
        jobs=resolve_jobs(parsed_args.jobs),
    )

    init_timer()
    set_verbose(args.verbose)

    if args.directive == "clean":
        clean_command(args)
    else:
        build_command(args)


if __name__ == "__main__":
    main()
