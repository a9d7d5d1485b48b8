"""Firmware Source Management.

This module provisions the RepRapFirmware source tree. When the firmware
directory is missing, the operator picks one of the upstream variants and the
selected repository is cloned at the shared branch. The RepRapPro variant does
not ship the support libraries, so those are cloned separately when absent.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from ..build.build_context import BuildConfig
from ..output import log_detail, log_warning
from ..subprocess_utils import safe_run
from .package import PackageError

logger = logging.getLogger(__name__)

VARIANT_MENU = (
    "Which firmware version do you want to use?\n"
    "\n"
    "[R] = RepRapPro original\n"
    "[D] = dc42's fork\n"
    "\n"
    "Please answer R or D: "
)


class FirmwareSourceError(PackageError):
    """Raised when firmware source operations fail."""

    pass


class FirmwareVariant(Enum):
    """Upstream firmware variants; values are keys into the platform config."""

    REPRAPPRO = "reprappro"
    DC42 = "dc42"

    @property
    def key(self) -> str:
        """Single-letter answer that selects this variant."""
        return "R" if self is FirmwareVariant.REPRAPPRO else "D"

    @classmethod
    def from_answer(cls, answer: str) -> Optional["FirmwareVariant"]:
        """Parse an operator answer; only the first character counts.

        Returns:
            The selected variant, or None if the answer is not valid
        """
        answer = answer.strip()
        if not answer:
            return None
        first = answer[0].upper()
        for variant in cls:
            if variant.key == first:
                return variant
        return None


class FirmwareSource:
    """Manages the firmware source tree checkout."""

    def __init__(self, config: BuildConfig, prompt: Callable[[str], str] = input):
        """Initialize firmware source manager.

        Args:
            config: Build configuration
            prompt: Callable asking the operator a question and returning the answer
        """
        self.config = config
        self.settings = config.platform.firmware
        self.firmware_path = config.firmware_dir
        self.prompt = prompt

    def is_installed(self) -> bool:
        return self.firmware_path.is_dir()

    def select_variant(self) -> FirmwareVariant:
        """Ask the operator for a variant until a valid answer is given.

        Raises:
            FirmwareSourceError: If input ends before a valid answer
        """
        while True:
            try:
                answer = self.prompt(VARIANT_MENU)
            except EOFError as e:
                raise FirmwareSourceError("No firmware variant selected (input closed)") from e
            variant = FirmwareVariant.from_answer(answer)
            if variant is not None:
                return variant
            log_warning("Please answer R or D.")

    def repository_url(self, variant: FirmwareVariant) -> str:
        try:
            return self.settings.variants[variant.value]
        except KeyError:
            raise FirmwareSourceError(f"No repository configured for firmware variant '{variant.value}'")

    def ensure_firmware_source(self, variant: Optional[FirmwareVariant] = None) -> Path:
        """Ensure the firmware source tree is present.

        Args:
            variant: Variant to clone if missing (default: ask the operator)

        Returns:
            Path to the firmware root

        Raises:
            FirmwareSourceError: If cloning fails
        """
        if self.is_installed():
            return self.firmware_path

        if variant is None:
            variant = self.select_variant()

        url = self.repository_url(variant)
        log_detail(f"Cloning {url} ({self.settings.branch})")
        self._git_clone(url, self.firmware_path, branch=self.settings.branch)
        return self.firmware_path

    def ensure_libraries(self) -> Optional[Path]:
        """Ensure the firmware support libraries are present.

        Returns:
            Path to the libraries directory, or None if no library repository is configured

        Raises:
            FirmwareSourceError: If cloning fails
        """
        libraries_path = self.config.libraries_dir
        if libraries_path.is_dir():
            return libraries_path
        if not self.settings.libraries_repo:
            return None

        log_detail(f"Cloning {self.settings.libraries_repo}")
        self._git_clone(self.settings.libraries_repo, libraries_path)
        return libraries_path

    def _git_clone(self, url: str, dest: Path, branch: Optional[str] = None) -> None:
        cmd = ["git", "clone"]
        if branch:
            cmd.extend(["-b", branch])
        cmd.extend([url, str(dest)])

        try:
            result = safe_run(cmd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise FirmwareSourceError("git executable not found; install git to fetch firmware sources") from e

        if result.returncode != 0:
            error_msg = f"git clone failed for {url}\n"
            error_msg += f"stderr: {result.stderr}\n"
            error_msg += f"stdout: {result.stdout}"
            raise FirmwareSourceError(error_msg)

        logger.debug("Cloned %s into %s", url, dest)
