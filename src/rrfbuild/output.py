"""
Centralized logging and output module for rrfbuild.

All user-facing output is prefixed with the elapsed time since program launch
in MM:SS.cc format (minutes:seconds.centiseconds), which makes it easy to see
where a build spends its time.

Example output:
    00:00.01 rrfbuild v0.1.0
    00:00.02 [1/6] Provisioning toolchain...
    00:00.02       Toolchain: arduino-1.5.4 (present)
    00:00.40 [5/6] Compiling sources...
    00:00.41       [cpp] RepRapFirmware/Platform.cpp

Usage:
    from rrfbuild.output import log, log_phase, log_detail

    log_phase(1, 6, "Provisioning toolchain...")
    log_detail("Toolchain: arduino-1.5.4")
"""

import shlex
import sys
import threading
import time
from types import TracebackType
from typing import Optional, Sequence, TextIO

# Global state for the timer
_start_time: Optional[float] = None
_output_stream: Optional[TextIO] = None  # None follows sys.stdout
_verbose: bool = False

# Compiler worker threads log concurrently
_print_lock = threading.Lock()


def init_timer(output_stream: Optional[TextIO] = None) -> None:
    """
    Initialize the program timer.

    Call this at program startup to set the reference time for all timestamps.
    If not called explicitly, it will be called automatically on first log.

    Args:
        output_stream: Optional output stream (defaults to sys.stdout)
    """
    global _start_time, _output_stream
    _start_time = time.time()
    if output_stream is not None:
        _output_stream = output_stream


def set_verbose(verbose: bool) -> None:
    """
    Set verbose mode for logging.

    Args:
        verbose: If True, verbose-only messages and tool command lines are printed.
    """
    global _verbose
    _verbose = verbose


def get_elapsed() -> float:
    """
    Get elapsed time since timer initialization.

    Returns:
        Elapsed time in seconds
    """
    global _start_time
    if _start_time is None:
        init_timer()
    return time.time() - _start_time  # type: ignore


def format_timestamp() -> str:
    """
    Format the current elapsed time as MM:SS.cc.

    Returns:
        Formatted timestamp string
    """
    elapsed = get_elapsed()
    minutes = int(elapsed // 60)
    seconds = elapsed % 60
    return f"{minutes:02d}:{seconds:05.2f}"


def _print(message: str, end: str = "\n") -> None:
    """
    Internal print function with timestamp.

    Args:
        message: Message to print
        end: End character (default newline)
    """
    timestamp = format_timestamp()
    line = f"{timestamp} {message}{end}"
    stream = _output_stream if _output_stream is not None else sys.stdout
    with _print_lock:
        stream.write(line)
        stream.flush()


def log(message: str, verbose_only: bool = False) -> None:
    """
    Log a message with timestamp.

    Args:
        message: Message to log
        verbose_only: If True, only print if verbose mode is enabled
    """
    if verbose_only and not _verbose:
        return
    _print(message)


def log_phase(phase: int, total: int, message: str, verbose_only: bool = False) -> None:
    """
    Log a build phase message.

    Format: [N/M] message

    Args:
        phase: Current phase number
        total: Total number of phases
        message: Phase description
        verbose_only: If True, only print if verbose mode is enabled
    """
    if verbose_only and not _verbose:
        return
    _print(f"[{phase}/{total}] {message}")


def log_detail(message: str, indent: int = 6, verbose_only: bool = False) -> None:
    """
    Log a detail message (indented).

    Args:
        message: Detail message
        indent: Number of spaces to indent (default 6)
        verbose_only: If True, only print if verbose mode is enabled
    """
    if verbose_only and not _verbose:
        return
    _print(f"{' ' * indent}{message}")


def log_file(source_type: str, filename: str, verbose_only: bool = False) -> None:
    """
    Log a file compilation message.

    Format: [source_type] filename

    Args:
        source_type: Type of source (e.g., 'c', 'cpp')
        filename: Name of the file
        verbose_only: If True, only print if verbose mode is enabled
    """
    if verbose_only and not _verbose:
        return
    _print(f"      [{source_type}] {filename}")


def log_command(cmd: Sequence[str]) -> None:
    """
    Echo an external tool invocation (verbose mode only).

    Format: + tool arg1 arg2 ...

    Args:
        cmd: Command line about to be executed
    """
    if not _verbose:
        return
    _print(f"+ {shlex.join(str(part) for part in cmd)}")


def log_header(title: str, version: str) -> None:
    """
    Log a header message (e.g., program startup).

    Args:
        title: Program title
        version: Version string
    """
    _print(f"{title} v{version}")
    _print("")


def log_build_complete(build_time: float, verbose_only: bool = False) -> None:
    """
    Log build completion message.

    Args:
        build_time: Total build time in seconds
        verbose_only: If True, only print if verbose mode is enabled
    """
    if verbose_only and not _verbose:
        return
    _print("")
    _print(f"Build time: {build_time:.2f}s")


def log_error(message: str) -> None:
    """Log an error message."""
    _print(f"ERROR: {message}")


def log_warning(message: str) -> None:
    """Log a warning message."""
    _print(f"WARNING: {message}")


class TimedLogger:
    """
    Context manager for logging with elapsed time tracking.

    Usage:
        with TimedLogger("Linking firmware", phase=(6, 6)) as logger:
            logger.detail("12 object files")
        # Automatically logs completion time
    """

    def __init__(self, operation: str, phase: Optional[tuple[int, int]] = None, verbose_only: bool = False):
        """
        Initialize timed logger.

        Args:
            operation: Description of the operation
            phase: Optional (current, total) phase numbers
            verbose_only: If True, only print if verbose mode is enabled
        """
        self.operation = operation
        self.phase = phase
        self.verbose_only = verbose_only
        self.start_time = 0.0

    def __enter__(self) -> "TimedLogger":
        self.start_time = time.time()
        if self.phase:
            log_phase(self.phase[0], self.phase[1], f"{self.operation}...", self.verbose_only)
        else:
            log(f"{self.operation}...", self.verbose_only)
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        del exc_val, exc_tb  # Unused
        elapsed = time.time() - self.start_time
        if exc_type is None:
            log_detail(f"Done ({elapsed:.2f}s)", verbose_only=self.verbose_only)
        return None

    def detail(self, message: str) -> None:
        """Log a detail message within this operation."""
        log_detail(message, verbose_only=self.verbose_only)

    def log(self, message: str) -> None:
        """Log a message within this operation."""
        log(message, self.verbose_only)
