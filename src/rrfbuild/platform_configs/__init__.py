"""Platform configuration loader for MCU-specific toolchain, compiler and linker settings.

This module provides access to JSON configuration files shipped as package data.
Uses importlib.resources for proper package data access when installed as a wheel.

Configs are organized by vendor:
    sam/      - Atmel SAM (SAM3X8E as found on the Duet and Arduino Due)
"""

from __future__ import annotations

import json
from importlib import resources
from typing import Any

from .platform_config_model import PlatformConfig

# Vendor directories to search
VENDOR_DIRS = ["sam"]

DEFAULT_MCU = "sam3x8e"


def load_config(mcu: str) -> dict[str, Any] | None:
    """Load raw platform configuration for the specified MCU.

    Searches all vendor subdirectories for the matching config file.

    Args:
        mcu: The MCU identifier (e.g., 'sam3x8e')

    Returns:
        The configuration dictionary if found, None otherwise.
    """
    config_name = f"{mcu}.json"

    try:
        pkg_files = resources.files(__package__)

        for vendor in VENDOR_DIRS:
            vendor_dir = pkg_files.joinpath(vendor)
            try:
                config_file = vendor_dir.joinpath(config_name)
                if config_file.is_file():
                    with config_file.open("r", encoding="utf-8") as f:
                        return json.load(f)
            except (FileNotFoundError, TypeError, AttributeError):
                continue

    except (FileNotFoundError, TypeError):
        pass

    return None


def load_platform_config(mcu: str = DEFAULT_MCU) -> PlatformConfig:
    """Load and parse the platform configuration for the specified MCU.

    Args:
        mcu: The MCU identifier

    Returns:
        Parsed PlatformConfig

    Raises:
        ValueError: If no configuration exists for the MCU or it is malformed
    """
    data = load_config(mcu)
    if data is None:
        raise ValueError(f"No platform configuration found for {mcu}. Available: {list_available_configs()}")
    return PlatformConfig.from_dict(data)


def list_available_configs() -> list[str]:
    """List all available platform configuration MCU names.

    Returns:
        Sorted list of MCU identifiers that have a configuration file.
    """
    configs: list[str] = []
    try:
        pkg_files = resources.files(__package__)
        for vendor in VENDOR_DIRS:
            vendor_dir = pkg_files.joinpath(vendor)
            try:
                for item in vendor_dir.iterdir():
                    if item.name.endswith(".json"):
                        configs.append(item.name[: -len(".json")])
            except (FileNotFoundError, TypeError, AttributeError):
                continue
    except (FileNotFoundError, TypeError):
        pass
    return sorted(configs)


__all__ = [
    "DEFAULT_MCU",
    "PlatformConfig",
    "list_available_configs",
    "load_config",
    "load_platform_config",
]
