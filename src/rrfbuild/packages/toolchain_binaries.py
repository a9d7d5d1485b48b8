"""Toolchain Binary Finder Utilities.

This module provides utilities for locating toolchain binaries in the
toolchain installation directory.

Binary Naming Convention:
    arm-none-eabi-gcc, arm-none-eabi-g++, arm-none-eabi-objcopy, arm-none-eabi-size

Directory Structure:
    The Arduino distribution keeps the ARM compiler in
    toolchain_root/hardware/tools/g++_arm_none_eabi/bin/
"""

from pathlib import Path
from typing import Optional


class BinaryNotFoundError(Exception):
    """Raised when a required toolchain binary is not found."""

    pass


class ToolchainBinaryFinder:
    """Finds toolchain binaries in the installation directory."""

    def __init__(self, bin_dir: Path, binary_prefix: str):
        """Initialize the binary finder.

        Args:
            bin_dir: Directory containing the prefixed compiler binaries
            binary_prefix: Binary name prefix (e.g., "arm-none-eabi")
        """
        self.bin_dir = bin_dir
        self.binary_prefix = binary_prefix

    def find_binary(self, binary_name: str) -> Optional[Path]:
        """Find a specific binary in the toolchain bin directory.

        Args:
            binary_name: Name of the binary without prefix (e.g., "gcc", "g++")

        Returns:
            Path to the binary, or None if not found
        """
        if not self.bin_dir.is_dir():
            return None

        binary_with_prefix = f"{self.binary_prefix}-{binary_name}"

        # Check both with and without .exe extension (Windows compatibility)
        for ext in [".exe", ""]:
            candidate = self.bin_dir / f"{binary_with_prefix}{ext}"
            if candidate.exists():
                return candidate

        return None

    def require_binary(self, binary_name: str) -> Path:
        """Find a binary or raise.

        Raises:
            BinaryNotFoundError: If the binary is not present
        """
        path = self.find_binary(binary_name)
        if path is None:
            raise BinaryNotFoundError(f"{self.binary_prefix}-{binary_name} not found in {self.bin_dir}. Ensure toolchain is installed.")
        return path

