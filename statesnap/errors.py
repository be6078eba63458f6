"""
Error types for statesnap.

This module defines every exception raised by the codec:
- StateSnapError: Base exception
- SchemaError: Malformed schema, detected at startup validation
- EnvelopeError: Snapshot header rejected (magic, checksum, format)
- TranslationError: Structural or semantic translation failed
- UnknownApplicationVersion: Version map lookup for an unpublished release

Invariants:
    - All errors inherit from StateSnapError
    - Errors carry the struct/field/version/offset they concern in ``details``
    - Nothing is retried: translation is deterministic
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class StateSnapError(Exception):
    """Base exception for all statesnap errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "STATESNAP_ERROR"
        self.details = details or {}


# ---------------------------------------------------------------------------
# Schema errors
# ---------------------------------------------------------------------------


class SchemaError(StateSnapError):
    """Schema is malformed.

    Raised at startup validation when:
    - Two fields share a declared index or a name
    - A version range is empty or outside the structure's versions
    - A field has neither a default nor a primitive-zero fallback
    - A nested struct reference cannot be resolved
    """

    def __init__(
        self,
        message: str,
        struct_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="SCHEMA_ERROR",
            details={"struct": struct_name, "errors": errors or []},
        )
        self.struct_name = struct_name
        self.errors = errors or []


class RegistryFrozenError(SchemaError):
    """Raised when attempting to modify a frozen registry or version map."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.code = "REGISTRY_FROZEN"


class DuplicateRegistrationError(SchemaError):
    """Raised when a struct name is registered twice."""

    def __init__(self, message: str, struct_name: Optional[str] = None) -> None:
        super().__init__(message, struct_name=struct_name)
        self.code = "DUPLICATE_REGISTRATION"


# ---------------------------------------------------------------------------
# Envelope errors
# ---------------------------------------------------------------------------


class EnvelopeError(StateSnapError):
    """Snapshot envelope was rejected.

    Envelope errors are fatal per load attempt; corrupted or foreign
    snapshots are never partially accepted.
    """

    def __init__(
        self,
        message: str,
        code: str = "ENVELOPE_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, details=details)


class InvalidMagic(EnvelopeError):
    """Blob does not start with the statesnap format family."""

    def __init__(self, found: bytes) -> None:
        super().__init__(
            f"Not a statesnap snapshot: bad magic {found.hex()}",
            code="INVALID_MAGIC",
            details={"magic": found.hex()},
        )
        self.found = found


class ArchitectureMismatch(EnvelopeError):
    """Snapshot was written for a different target architecture."""

    def __init__(self, expected: str, found: str) -> None:
        super().__init__(
            f"Snapshot architecture '{found}' does not match runtime architecture '{expected}'",
            code="ARCHITECTURE_MISMATCH",
            details={"expected": expected, "found": found},
        )
        self.expected = expected
        self.found = found


class ChecksumMismatch(EnvelopeError):
    """Checksum over header and payload does not match."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Snapshot checksum mismatch: header says {expected:#018x}, "
            f"computed {actual:#018x}",
            code="CHECKSUM_MISMATCH",
            details={"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class UnsupportedFormatVersion(EnvelopeError):
    """Primitive encoding version is not understood by this build."""

    def __init__(self, format_version: int, supported: tuple[int, ...]) -> None:
        super().__init__(
            f"Unsupported snapshot format version {format_version}; "
            f"this build reads {list(supported)}",
            code="UNSUPPORTED_FORMAT",
            details={"format_version": format_version, "supported": list(supported)},
        )
        self.format_version = format_version
        self.supported = supported


class TruncatedSnapshot(EnvelopeError):
    """Blob is shorter than its header and declared payload (half-written file)."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Snapshot truncated: expected {expected} bytes, got {actual}",
            code="TRUNCATED_SNAPSHOT",
            details={"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class TrailingSnapshotBytes(EnvelopeError):
    """Blob carries bytes past its declared payload."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Snapshot has {actual - expected} unexpected trailing bytes: "
            f"expected {expected} bytes, got {actual}",
            code="TRAILING_SNAPSHOT_BYTES",
            details={"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class PayloadTooLarge(EnvelopeError):
    """Declared payload length exceeds the configured limit."""

    def __init__(self, payload_length: int, limit: int) -> None:
        super().__init__(
            f"Snapshot payload of {payload_length} bytes exceeds limit of {limit} bytes",
            code="PAYLOAD_TOO_LARGE",
            details={"payload_length": payload_length, "limit": limit},
        )
        self.payload_length = payload_length
        self.limit = limit


# ---------------------------------------------------------------------------
# Translation errors
# ---------------------------------------------------------------------------


class TranslationError(StateSnapError):
    """Structural or semantic translation failed.

    Translation errors abort the whole save or load; the caller's
    structure is left unmodified.
    """

    def __init__(
        self,
        message: str,
        code: str = "TRANSLATION_ERROR",
        struct_name: Optional[str] = None,
        field_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        merged = {"struct": struct_name, "field": field_name}
        merged.update(details or {})
        super().__init__(message, code=code, details=merged)
        self.struct_name = struct_name
        self.field_name = field_name


class MalformedField(TranslationError):
    """A primitive value on the wire is not a valid encoding."""

    def __init__(self, struct_name: str, field_name: str, offset: int, reason: str) -> None:
        super().__init__(
            f"Malformed field '{struct_name}.{field_name}' at byte offset {offset}: {reason}",
            code="MALFORMED_FIELD",
            struct_name=struct_name,
            field_name=field_name,
            details={"offset": offset, "reason": reason},
        )
        self.offset = offset
        self.reason = reason


class TruncatedPayload(TranslationError):
    """Payload ended before the structure was fully decoded."""

    def __init__(
        self,
        struct_name: str,
        field_name: str,
        offset: int,
        needed: int,
        available: int,
    ) -> None:
        super().__init__(
            f"Payload truncated while reading '{struct_name}.{field_name}' at byte offset "
            f"{offset}: needed {needed} bytes, {available} available",
            code="TRUNCATED_PAYLOAD",
            struct_name=struct_name,
            field_name=field_name,
            details={"offset": offset, "needed": needed, "available": available},
        )
        self.offset = offset
        self.needed = needed
        self.available = available


class TrailingData(TranslationError):
    """Bytes remain after the root structure was decoded."""

    def __init__(self, struct_name: str, offset: int, remaining: int) -> None:
        super().__init__(
            f"{remaining} unexpected trailing bytes after '{struct_name}' at byte offset {offset}",
            code="TRAILING_DATA",
            struct_name=struct_name,
            details={"offset": offset, "remaining": remaining},
        )
        self.offset = offset
        self.remaining = remaining


class UnrepresentableDowngrade(TranslationError):
    """A value cannot be expressed in the target version's semantics."""

    def __init__(
        self,
        struct_name: str,
        field_name: str,
        version: int,
        target_version: int,
        reason: str,
    ) -> None:
        super().__init__(
            f"Cannot downgrade '{struct_name}.{field_name}' across version {version} "
            f"(target {target_version}): {reason}",
            code="UNREPRESENTABLE_DOWNGRADE",
            struct_name=struct_name,
            field_name=field_name,
            details={"version": version, "target_version": target_version, "reason": reason},
        )
        self.version = version
        self.target_version = target_version
        self.reason = reason


class SemanticHookError(TranslationError):
    """A semantic hook raised an unexpected exception."""

    def __init__(self, struct_name: str, field_name: str, version: int, error: Exception) -> None:
        super().__init__(
            f"Semantic hook for '{struct_name}.{field_name}' at version {version} failed: "
            f"{type(error).__name__}: {error}",
            code="SEMANTIC_HOOK_ERROR",
            struct_name=struct_name,
            field_name=field_name,
            details={"version": version},
        )
        self.version = version


class InvalidFieldValue(TranslationError):
    """A value cannot be encoded with its field's kind."""

    def __init__(self, struct_name: str, field_name: str, reason: str) -> None:
        super().__init__(
            f"Invalid value for '{struct_name}.{field_name}': {reason}",
            code="INVALID_FIELD_VALUE",
            struct_name=struct_name,
            field_name=field_name,
            details={"reason": reason},
        )
        self.reason = reason


class UnknownStructVersion(TranslationError):
    """Requested version is outside the versions a structure knows."""

    def __init__(self, struct_name: str, version: int, current_version: int) -> None:
        super().__init__(
            f"Struct '{struct_name}' has no version {version} "
            f"(known versions 1..{current_version})",
            code="UNKNOWN_STRUCT_VERSION",
            struct_name=struct_name,
            details={"version": version, "current_version": current_version},
        )
        self.version = version
        self.current_version = current_version


# ---------------------------------------------------------------------------
# Version map errors
# ---------------------------------------------------------------------------


class UnknownApplicationVersion(StateSnapError):
    """Application version was never published in the version map."""

    def __init__(self, application_version: int, latest_version: int) -> None:
        super().__init__(
            f"Unknown application version {application_version} "
            f"(published versions 1..{latest_version})",
            code="UNKNOWN_APPLICATION_VERSION",
            details={
                "application_version": application_version,
                "latest_version": latest_version,
            },
        )
        self.application_version = application_version
        self.latest_version = latest_version


# ---------------------------------------------------------------------------
# Raised by semantic hooks
# ---------------------------------------------------------------------------


class SemanticRejection(Exception):
    """Raised by a serialize hook to refuse a downgrade.

    The translator converts it into UnrepresentableDowngrade with the
    struct, field and version boundary filled in.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def reject(reason: str) -> None:
    """Refuse the current downgrade from inside a serialize hook."""
    raise SemanticRejection(reason)
