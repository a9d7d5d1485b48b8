"""Source file discovery.

Finds every compilable source of the firmware build:

    C sources   (*.c)   firmware tree + toolchain core sources (hardware/arduino/sam/cores)
    C++ sources (*.cpp) firmware tree + whole toolchain platform tree (hardware/arduino/sam)

The C++ scope is broader because C++ language support files live deeper in
the toolchain tree. The firmware walk skips the core patch subtree (those
files are compiled from their overlaid copies in the toolchain), the build
outputs, and VCS metadata.

Artifacts live in one flat directory named after the source's base name
(``Platform.cpp`` -> ``Platform.cpp.o`` / ``Platform.cpp.d``). When several
sources share a base name, each of them gets a suffix derived from its path
relative to the project root, so no two sources ever write the same artifact.
"""

import hashlib
import os
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence

from .build_context import BuildConfig

# Skipped at any depth, e.g. the Libraries clone inside the firmware tree
_VCS_DIRS = frozenset({".git"})


class SourceKind(Enum):
    """Kind of a compilable source, valued by its file suffix."""

    C_SOURCE = ".c"
    CPP_SOURCE = ".cpp"

    @property
    def suffix(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        """Short label used in progress output."""
        return "c" if self is SourceKind.C_SOURCE else "cpp"


@dataclass(frozen=True)
class SourceFile:
    """A located source file and the artifact paths derived from it."""

    kind: SourceKind
    path: Path
    object_path: Path
    dep_path: Path

    @property
    def name(self) -> str:
        return self.path.name


class SourceCollection:
    """Ordered, immutable set of sources for one build.

    Sorted C first, then C++, each by path, so repeated scans of an unchanged
    tree yield identical sequences.
    """

    def __init__(self, sources: Sequence[SourceFile]):
        self._sources = tuple(sources)

    def __iter__(self) -> Iterator[SourceFile]:
        return iter(self._sources)

    def __len__(self) -> int:
        return len(self._sources)

    def __getitem__(self, index: int) -> SourceFile:
        return self._sources[index]


class SourceScanner:
    """Discovers sources in the firmware and toolchain trees."""

    def __init__(self, config: BuildConfig):
        self.config = config
        settings = config.platform.sources
        self.c_roots = [config.firmware_dir] + [config.toolchain_dir / rel for rel in settings.c_dirs]
        self.cxx_roots = [config.firmware_dir] + [config.toolchain_dir / rel for rel in settings.cxx_dirs]
        self.exclude_dirs = frozenset(settings.exclude_dirs)

    def iter_sources(self) -> Iterator[tuple[SourceKind, Path]]:
        """Lazily walk the source trees.

        Each call starts a fresh walk, so the sequence can be restarted.

        Yields:
            (kind, absolute path) for every source found
        """
        for kind, roots in ((SourceKind.C_SOURCE, self.c_roots), (SourceKind.CPP_SOURCE, self.cxx_roots)):
            for root in roots:
                for path in self._walk(root, kind.suffix):
                    yield kind, path

    def scan(self) -> SourceCollection:
        """Collect all sources and assign their artifact paths."""
        seen = set()
        found: List[tuple[SourceKind, Path]] = []
        for kind, path in self.iter_sources():
            resolved = path.resolve()
            if resolved in seen:
                continue
            seen.add(resolved)
            found.append((kind, resolved))

        found.sort(key=lambda item: (item[0] is SourceKind.CPP_SOURCE, item[1].as_posix()))
        return SourceCollection(self._assign_artifacts(found))

    def _walk(self, root: Path, suffix: str) -> Iterator[Path]:
        if not root.is_dir():
            return
        prune = root == self.config.firmware_dir
        for dirpath, dirnames, filenames in os.walk(root):
            if prune:
                current = Path(dirpath)
                dirnames[:] = [d for d in dirnames if not self._is_excluded(current / d)]
            dirnames.sort()
            for filename in sorted(filenames):
                if filename.endswith(suffix):
                    path = Path(dirpath) / filename
                    if path.is_file():
                        yield path

    def _is_excluded(self, directory: Path) -> bool:
        if directory.name in _VCS_DIRS:
            return True
        # Configured exclusions are paths relative to the firmware root
        relative = directory.relative_to(self.config.firmware_dir).as_posix()
        return relative in self.exclude_dirs

    def _assign_artifacts(self, found: Iterable[tuple[SourceKind, Path]]) -> List[SourceFile]:
        found = list(found)
        name_counts = Counter(path.name for _, path in found)
        build_dir = self.config.build_dir

        sources = []
        for kind, path in found:
            stem = path.name
            if name_counts[path.name] > 1:
                stem = f"{path.name}.{self._path_digest(path)}"
            sources.append(
                SourceFile(
                    kind=kind,
                    path=path,
                    object_path=build_dir / f"{stem}.o",
                    dep_path=build_dir / f"{stem}.d",
                )
            )
        return sources

    def _path_digest(self, path: Path) -> str:
        try:
            key = path.relative_to(self.config.project_dir).as_posix()
        except ValueError:
            key = path.as_posix()
        return hashlib.sha1(key.encode("utf-8")).hexdigest()[:8]
