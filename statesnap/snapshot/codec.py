"""
Snapshot codec for statesnap.

SnapshotCodec is the surface exposed to the application: it turns a
live structure tree into a snapshot blob for a given application
version, and a blob written by a given application version back into a
live structure at the current version.

Save:
    live value -> UnionValue -> semantic downgrade (on a clone)
    -> value validation -> structural encode -> envelope (header last)

Load:
    blob -> envelope validation -> structural decode (defaults for
    absent fields) -> semantic upgrade -> live value

Invariants:
    - The registry and version map are frozen before the codec exists
    - Failures are all-or-nothing: no partial blob, caller's value untouched
    - Application versions are resolved here and nowhere else

Example:
    >>> codec = SnapshotCodec(registry, version_map, root="Vm")
    >>> blob = codec.save(vm_state, application_version=1)
    >>> restored = codec.load(blob, application_version=1)
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

from ..errors import SchemaError
from ..schema.registry import SchemaRegistry
from ..config import SnapshotConfig
from ..translate.primitives import SUPPORTED_FORMAT_VERSIONS, get_codec
from ..translate.semantic import SemanticTranslator
from ..translate.structural import StructuralTranslator
from ..translate.union import UnionValue, from_live, to_live
from .envelope import Blob, SnapshotHeader, read_envelope, write_envelope
from .versions import VersionMap

logger = logging.getLogger(__name__)


class SnapshotCodec:
    """Saves and loads snapshots of one root structure.

    Attributes:
        registry: Frozen schema registry
        version_map: Frozen application version map
        root_schema: Schema of the snapshotted root structure
        config: Snapshot configuration
        architecture: Architecture embedded in and required of snapshots

    Thread-safety:
        A codec holds no per-call state and may be shared between threads.
        Concurrent saves of the same mutable live value need external locking.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        version_map: VersionMap,
        root: str,
        config: Optional[SnapshotConfig] = None,
    ) -> None:
        """Initialize the codec.

        Args:
            registry: Frozen schema registry
            version_map: Frozen version map
            root: Name of the root structure
            config: Snapshot configuration (loaded from env if not provided)

        Raises:
            SchemaError: If the registry or map is not frozen or inconsistent
        """
        if not registry.frozen:
            raise SchemaError("Schema registry must be frozen before creating a codec")
        if not version_map.frozen:
            raise SchemaError("Version map must be frozen before creating a codec")
        errors = version_map.validate_against(registry)
        if errors:
            raise SchemaError(
                f"Version map validation failed with {len(errors)} error(s):\n"
                + "\n".join(f"  - {e}" for e in errors),
                errors=errors,
            )

        self.registry = registry
        self.version_map = version_map
        self.root_schema = registry.require(root)
        self.config = config or SnapshotConfig.from_env()
        if self.config.format_version not in SUPPORTED_FORMAT_VERSIONS:
            raise ValueError(f"Unsupported format version {self.config.format_version}")
        self.architecture = self.config.resolve_architecture()
        self._semantic = SemanticTranslator(registry)

    def save(self, value: Any, application_version: int) -> bytes:
        """Snapshot a live value as written by ``application_version``.

        Args:
            value: Live root structure (mapping, factory instance or UnionValue)
            application_version: Release whose structure versions to write

        Returns:
            Snapshot blob (header + payload)

        Raises:
            UnknownApplicationVersion: If the release was never published
            UnrepresentableDowngrade: If a hook rejects the downgrade
            InvalidFieldValue: If a value cannot be encoded
        """
        started = time.monotonic()
        versions = self.version_map.resolve(application_version)
        union = from_live(self.root_schema, value, self.registry)
        translated = self._semantic.downgrade(union, versions)

        translator = StructuralTranslator(
            self.registry,
            get_codec(self.config.format_version),
            self.config.max_empty_list_items,
        )
        translator.validate(translated, versions)
        blob = write_envelope(
            lambda writer: translator.encode(translated, versions, writer),
            self.architecture,
            self.config.format_version,
        )

        logger.info(
            "Saved snapshot",
            extra={
                "root": self.root_schema.name,
                "application_version": application_version,
                "format_version": self.config.format_version,
                "size_bytes": len(blob),
                "duration_ms": round((time.monotonic() - started) * 1000, 3),
            },
        )
        return blob

    def load(self, blob: Blob, application_version: int) -> Any:
        """Restore a live value from a blob written by ``application_version``.

        Returns:
            Live root structure at the current version

        Raises:
            UnknownApplicationVersion: If the release was never published
            EnvelopeError: If the blob is foreign, corrupt or unsupported
            TranslationError: If the payload cannot be decoded or upgraded
        """
        return to_live(self.load_union(blob, application_version), self.registry)

    def load_union(self, blob: Blob, application_version: int) -> UnionValue:
        """Like load(), but return the upgraded union before projection."""
        started = time.monotonic()
        versions = self.version_map.resolve(application_version)
        header, payload = read_envelope(
            blob,
            self.architecture,
            SUPPORTED_FORMAT_VERSIONS,
            self.config.payload_limit,
        )

        translator = StructuralTranslator(
            self.registry, get_codec(header.format_version), self.config.max_empty_list_items
        )
        union = translator.decode(payload, self.root_schema.name, versions)
        self._semantic.upgrade(union, versions)

        logger.info(
            "Loaded snapshot",
            extra={
                "root": self.root_schema.name,
                "application_version": application_version,
                "format_version": header.format_version,
                "size_bytes": len(blob),
                "duration_ms": round((time.monotonic() - started) * 1000, 3),
            },
        )
        return union

    def inspect(self, blob: Blob) -> SnapshotHeader:
        """Validate a blob's envelope and return its header."""
        header, _ = read_envelope(
            blob,
            self.architecture,
            SUPPORTED_FORMAT_VERSIONS,
            self.config.payload_limit,
        )
        return header
