"""Make-style dependency record parsing.

The compiler writes one record per source (``-MMD -MP -MF <file>.d``):

    /build/Platform.cpp.o: /src/Platform.cpp /src/Platform.h \
     /src/Configuration.h
    /src/Platform.h:
    /src/Configuration.h:

The first rule lists every prerequisite of the object; the ``-MP`` phony
rules that follow have none. Spaces inside paths are escaped as ``\\ ``.
"""

import re
from pathlib import Path
from typing import List

# A rule separator is a colon followed by whitespace or end of line, which
# leaves Windows drive letters (C:/...) intact.
_RULE_SEPARATOR = re.compile(r":(?=\s|$)")
_TOKEN = re.compile(r"(?:\\ |[^\s])+")


class DependencyFileError(Exception):
    """Raised when a dependency record cannot be parsed."""

    pass


def parse_dependency_text(text: str) -> List[Path]:
    """Extract the prerequisites listed in make-style dependency text.

    Args:
        text: Contents of a dependency record

    Returns:
        Prerequisite paths in the order listed, without duplicates

    Raises:
        DependencyFileError: If a non-empty line is not a make rule
    """
    joined = re.sub(r"\\\r?\n", " ", text)

    prerequisites: List[Path] = []
    seen = set()
    for line in joined.splitlines():
        if not line.strip():
            continue
        parts = _RULE_SEPARATOR.split(line, maxsplit=1)
        if len(parts) != 2:
            raise DependencyFileError(f"Malformed dependency line: {line.strip()}")
        for token in _TOKEN.findall(parts[1]):
            dep = token.replace("\\ ", " ")
            if dep not in seen:
                seen.add(dep)
                prerequisites.append(Path(dep))
    return prerequisites


def read_dependency_file(dep_path: Path) -> List[Path]:
    """Read and parse a dependency record.

    Raises:
        OSError: If the file cannot be read
        DependencyFileError: If the file is malformed
    """
    return parse_dependency_text(dep_path.read_text(encoding="utf-8", errors="replace"))
