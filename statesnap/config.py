"""
Configuration management for statesnap.

Configuration comes from environment variables, with defaults suitable
for local development. This module provides typed configuration
classes with validation.

Invariants:
    - All settings have sensible defaults
    - The architecture override is only for tooling and tests; production
      processes should rely on detection

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Never change the default format version of an existing release
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from .architecture import Architecture, current_architecture
from .translate.primitives import LATEST_FORMAT_VERSION, SUPPORTED_FORMAT_VERSIONS
from .translate.structural import DEFAULT_MAX_EMPTY_LIST_ITEMS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotConfig:
    """Snapshot encoding configuration.

    Attributes:
        architecture: Architecture name overriding detection (None = detect)
        format_version: Primitive encoding version used when saving
        max_payload_bytes: Largest payload accepted on load (0 = unlimited)
        max_empty_list_items: Largest list of zero-size elements accepted
    """

    architecture: Optional[str] = None
    format_version: int = LATEST_FORMAT_VERSION
    max_payload_bytes: int = 1024 * 1024 * 1024  # 1GB
    max_empty_list_items: int = DEFAULT_MAX_EMPTY_LIST_ITEMS

    @classmethod
    def from_env(cls) -> SnapshotConfig:
        """Load configuration from environment variables."""
        return cls(
            architecture=os.getenv("STATESNAP_ARCH") or None,
            format_version=int(
                os.getenv("STATESNAP_FORMAT_VERSION", str(LATEST_FORMAT_VERSION))
            ),
            max_payload_bytes=int(
                os.getenv("STATESNAP_MAX_PAYLOAD_BYTES", str(1024 * 1024 * 1024))
            ),
            max_empty_list_items=int(
                os.getenv("STATESNAP_MAX_EMPTY_LIST_ITEMS", str(DEFAULT_MAX_EMPTY_LIST_ITEMS))
            ),
        )

    def resolve_architecture(self) -> Architecture:
        """Running architecture, honoring the override."""
        return current_architecture(self.architecture)

    @property
    def payload_limit(self) -> Optional[int]:
        return self.max_payload_bytes or None


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class CodecConfig:
    """Complete codec configuration.

    Attributes:
        snapshot: Snapshot encoding configuration
        observability: Logging configuration
    """

    snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> CodecConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            snapshot=SnapshotConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.snapshot.format_version not in SUPPORTED_FORMAT_VERSIONS:
            raise ValueError(
                f"STATESNAP_FORMAT_VERSION {self.snapshot.format_version} is not supported; "
                f"must be one of {list(SUPPORTED_FORMAT_VERSIONS)}"
            )
        if self.snapshot.max_payload_bytes < 0:
            raise ValueError("STATESNAP_MAX_PAYLOAD_BYTES must be >= 0")
        if self.snapshot.max_empty_list_items < 0:
            raise ValueError("STATESNAP_MAX_EMPTY_LIST_ITEMS must be >= 0")
        # Raises ValueError for unknown names.
        self.snapshot.resolve_architecture()
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Codec configuration loaded",
            extra={
                "architecture": self.snapshot.resolve_architecture().label,
                "format_version": self.snapshot.format_version,
                "max_payload_bytes": self.snapshot.max_payload_bytes,
                "max_empty_list_items": self.snapshot.max_empty_list_items,
                "log_level": self.observability.log_level,
            },
        )
