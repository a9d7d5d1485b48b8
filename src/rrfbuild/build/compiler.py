"""Incremental compiler.

This module compiles firmware sources into object files, skipping every source
whose object file is still current.

Staleness Rule:
    A compile unit is current when its object file exists and is not older than
    the source file nor than any prerequisite listed in its dependency record
    (the headers it includes). A missing or unreadable dependency record makes
    the unit stale. Only a successful compilation turns a stale unit current.

Compilation:
    C sources use arm-none-eabi-gcc, C++ sources arm-none-eabi-g++:

        <compiler> <kind flags> <platform flags> <usb flags> <includes>
                   <source> -MF<dep> -MT<obj> -o <obj>

    The first nonzero compiler exit aborts the whole batch. With jobs > 1 the
    sources are compiled on a thread pool; the first failure cancels queued
    units and terminates compiler processes still running.
"""

import logging
import subprocess
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from ..output import log_file
from ..subprocess_utils import safe_popen
from .build_context import BuildConfig
from .dependency_file import DependencyFileError, read_dependency_file
from .option_set import OptionSet
from .source_scanner import SourceFile, SourceKind

logger = logging.getLogger(__name__)


class CompilerError(Exception):
    """Raised when compiling a source fails."""

    pass


class CompilationCancelled(CompilerError):
    """Raised for units abandoned after another unit failed."""

    pass


@dataclass
class CompileResult:
    """Result of compiling (or skipping) one source."""

    source: SourceFile
    compiled: bool
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""

    @property
    def object_file(self) -> Path:
        return self.source.object_path


@dataclass
class CompileSummary:
    """Outcome of compiling a whole source collection."""

    compiled: List[SourceFile] = field(default_factory=list)
    skipped: List[SourceFile] = field(default_factory=list)

    @property
    def object_files(self) -> List[Path]:
        return sorted(source.object_path for source in self.compiled + self.skipped)


class IncrementalCompiler:
    """Compiles stale sources with the per-kind option set."""

    def __init__(
        self,
        config: BuildConfig,
        options: OptionSet,
        gcc: Path,
        gxx: Path,
        on_compile: Optional[Callable[[SourceFile], None]] = None,
    ):
        """Initialize the compiler.

        Args:
            config: Build configuration
            options: Option set used for every compilation
            gcc: C compiler binary
            gxx: C++ compiler binary
            on_compile: Notification sent before each actual compilation
                (default: a progress line per file)
        """
        self.config = config
        self.options = options
        self.gcc = gcc
        self.gxx = gxx
        self.on_compile = on_compile or self._log_progress

        self._lock = threading.Lock()
        self._cancelled = False
        self._active: set[subprocess.Popen] = set()

    def needs_rebuild(self, source: SourceFile) -> bool:
        """Check whether a source must be recompiled.

        Args:
            source: Source to check

        Returns:
            True if the object file is missing or older than the source or
            any prerequisite listed in the dependency record
        """
        try:
            object_mtime = source.object_path.stat().st_mtime_ns
        except FileNotFoundError:
            return True

        if source.path.stat().st_mtime_ns > object_mtime:
            return True

        try:
            prerequisites = read_dependency_file(source.dep_path)
        except (OSError, DependencyFileError) as e:
            logger.debug("Dependency record unusable for %s: %s", source.name, e)
            return True

        for prerequisite in prerequisites:
            if not prerequisite.is_absolute():
                prerequisite = self.config.project_dir / prerequisite
            try:
                if prerequisite.stat().st_mtime_ns > object_mtime:
                    return True
            except OSError:
                # Listed header vanished; recompiling refreshes the record
                return True

        return False

    def build_command(self, source: SourceFile) -> List[str]:
        """Full compiler command line for a source."""
        compiler = self.gxx if source.kind is SourceKind.CPP_SOURCE else self.gcc
        cmd = [str(compiler)]
        cmd.extend(self.options.compile_flags(source.kind))
        cmd.append(str(source.path))
        cmd.append(f"-MF{source.dep_path}")
        cmd.append(f"-MT{source.object_path}")
        cmd.extend(["-o", str(source.object_path)])
        return cmd

    def compile(self, source: SourceFile) -> CompileResult:
        """Compile a source if it is stale.

        Returns:
            CompileResult with compiled=False when the object was current

        Raises:
            CompilerError: If compilation fails
        """
        if self._cancelled:
            raise CompilationCancelled(f"Compilation of {source.name} cancelled")
        if not self.needs_rebuild(source):
            return CompileResult(source=source, compiled=False)

        self.on_compile(source)
        return self.compile_source(source)

    def compile_source(self, source: SourceFile) -> CompileResult:
        """Compile a source unconditionally.

        Raises:
            CompilerError: If the compiler cannot run, exits nonzero, or
                produces no object file or dependency record
        """
        cmd = self.build_command(source)
        returncode, stdout, stderr = self._run(cmd, source)

        if returncode != 0:
            if self._cancelled:
                raise CompilationCancelled(f"Compilation of {source.name} cancelled")
            error_msg = f"Compilation failed for {source.path}\n"
            error_msg += f"Command: {' '.join(cmd)}\n"
            error_msg += f"stderr: {stderr}\n"
            error_msg += f"stdout: {stdout}"
            raise CompilerError(error_msg)

        if not source.object_path.exists():
            raise CompilerError(f"Object file was not created: {source.object_path}")
        if not source.dep_path.exists():
            raise CompilerError(f"Dependency record was not created: {source.dep_path}")

        if stderr:
            logger.debug("Compiler output for %s:\n%s", source.name, stderr)

        return CompileResult(source=source, compiled=True, returncode=returncode, stdout=stdout, stderr=stderr)

    def compile_all(self, sources: Iterable[SourceFile]) -> CompileSummary:
        """Bring every source's object file up to date.

        Args:
            sources: Sources to compile

        Returns:
            CompileSummary of compiled and skipped units

        Raises:
            CompilerError: The first compilation failure (any other error
                raised while compiling a unit aborts the batch the same way)
        """
        sources = list(sources)
        self.config.build_dir.mkdir(parents=True, exist_ok=True)

        if self.config.jobs <= 1 or len(sources) <= 1:
            summary = CompileSummary()
            for source in sources:
                self._record(summary, self.compile(source))
            return summary

        return self._compile_parallel(sources)

    def cancel(self) -> None:
        """Stop queued units and terminate running compiler processes."""
        with self._lock:
            self._cancelled = True
            active = list(self._active)
        for proc in active:
            if proc.poll() is None:
                proc.terminate()

    def _compile_parallel(self, sources: List[SourceFile]) -> CompileSummary:
        summary = CompileSummary()
        first_error: Optional[Exception] = None

        with ThreadPoolExecutor(max_workers=self.config.jobs, thread_name_prefix="compile") as executor:
            futures = [executor.submit(self.compile, source) for source in sources]
            try:
                for future in as_completed(futures):
                    try:
                        result = future.result()
                    except (CancelledError, CompilationCancelled):
                        continue
                    except Exception as e:
                        if first_error is None:
                            first_error = e
                            self._abort(futures)
                        continue
                    self._record(summary, result)
            except BaseException:
                # Ctrl-C while waiting must not leave compilers running
                self._abort(futures)
                raise

        if first_error is not None:
            raise first_error
        return summary

    def _abort(self, futures: List[Future]) -> None:
        self.cancel()
        for pending in futures:
            pending.cancel()

    def _run(self, cmd: List[str], source: SourceFile) -> tuple[int, str, str]:
        with self._lock:
            if self._cancelled:
                raise CompilationCancelled(f"Compilation of {source.name} cancelled")
            try:
                proc = safe_popen(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    cwd=str(self.config.project_dir),
                )
            except OSError as e:
                raise CompilerError(f"Failed to run compiler {cmd[0]}: {e}") from e
            self._active.add(proc)

        try:
            stdout, stderr = proc.communicate()
        finally:
            with self._lock:
                self._active.discard(proc)

        return proc.returncode, stdout or "", stderr or ""

    @staticmethod
    def _record(summary: CompileSummary, result: CompileResult) -> None:
        if result.compiled:
            summary.compiled.append(result.source)
        else:
            summary.skipped.append(result.source)

    def _log_progress(self, source: SourceFile) -> None:
        try:
            display = source.path.relative_to(self.config.project_dir).as_posix()
        except ValueError:
            display = str(source.path)
        log_file(source.kind.label, display)
