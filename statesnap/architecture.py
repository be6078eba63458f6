"""
Target architecture identifiers for statesnap.

Snapshots embed the architecture they were written on in the envelope
magic; a snapshot only loads on a runtime reporting the same one.

Invariants:
    - Tags are fixed-width (u16) and never reassigned
    - The running architecture can be overridden by configuration
"""

from __future__ import annotations

import logging
import platform
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class Architecture(Enum):
    """Known target architectures and their magic tags."""

    X86_64 = 0x8664
    AARCH64 = 0xAA64
    RISCV64 = 0x5264

    @property
    def tag(self) -> int:
        return self.value

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_tag(cls, tag: int) -> Optional[Architecture]:
        """Architecture for a magic tag, or None if unknown."""
        for arch in cls:
            if arch.value == tag:
                return arch
        return None

    @classmethod
    def from_name(cls, name: str) -> Architecture:
        """Parse an architecture name, accepting common machine aliases.

        Raises:
            ValueError: If the name is not a known architecture
        """
        normalized = _ALIASES.get(name.strip().lower(), name.strip().lower())
        for arch in cls:
            if arch.label == normalized:
                return arch
        valid = sorted(a.label for a in cls)
        raise ValueError(f"Unknown architecture '{name}'. Valid architectures: {valid}")


_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "armv8": "aarch64",
}


def current_architecture(override: Optional[str] = None) -> Architecture:
    """Architecture of the running process.

    Args:
        override: Architecture name taking precedence over detection

    Raises:
        ValueError: If the architecture is not supported
    """
    if override:
        return Architecture.from_name(override)
    machine = platform.machine()
    arch = Architecture.from_name(machine)
    logger.debug(f"Detected architecture {arch.label} (machine={machine})")
    return arch
