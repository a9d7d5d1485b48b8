"""
rrfbuild - Incremental build orchestrator for RepRapFirmware on the Duet (SAM3X8E).

Provisions the Arduino ARM toolchain and the firmware sources on demand, then
compiles only what changed and links a flashable binary.
"""

__version__ = "0.1.0"
