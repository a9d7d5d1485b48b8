"""Build system components for rrfbuild.

This module provides the source scanner, compiler, and linker for the
firmware build. The pipeline driver lives in ``rrfbuild.build.orchestrator``.
"""

from .build_context import BuildConfig
from .compiler import CompilerError, CompileResult, CompileSummary, IncrementalCompiler
from .dependency_file import DependencyFileError, parse_dependency_text, read_dependency_file
from .linker import FirmwareLinker, LinkerError, SizeInfo
from .option_set import OptionSet
from .source_scanner import SourceCollection, SourceFile, SourceKind, SourceScanner

__all__ = [
    "BuildConfig",
    "CompileResult",
    "CompileSummary",
    "CompilerError",
    "DependencyFileError",
    "FirmwareLinker",
    "IncrementalCompiler",
    "LinkerError",
    "OptionSet",
    "SizeInfo",
    "SourceCollection",
    "SourceFile",
    "SourceKind",
    "SourceScanner",
    "parse_dependency_text",
    "read_dependency_file",
]
