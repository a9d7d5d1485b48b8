"""Base exception for package provisioning.

Every provisioning failure (download, extraction, toolchain layout, firmware
clone) derives from PackageError so the orchestrator can report them as one
family before any compilation starts.
"""


class PackageError(Exception):
    """Base exception for package management errors."""

    pass
