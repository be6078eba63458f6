"""
Snapshot envelope for statesnap.

Every snapshot is a fixed-width header followed by the payload:

    offset  size  field
    0       8     magic (6-byte format family + u16 architecture tag)
    8       4     format_version (primitive encoding, u32)
    12      8     payload_length (u64)
    20      8     checksum (u64, BLAKE2b-64 over bytes 0..20 + payload)
    28      -     payload

All integers are little-endian.

Reading moves through UNVALIDATED -> ARCHITECTURE_CHECKED ->
INTEGRITY_CHECKED -> READY, or to REJECTED at any step. The payload is
only handed out in READY.

Invariants:
    - The header is written last, once payload length and checksum are known
    - A checksum mismatch is corruption and is never repaired
    - format_version is checked independently of structure versions
"""

from __future__ import annotations

import hashlib
import logging
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from ..architecture import Architecture
from ..errors import (
    ArchitectureMismatch,
    ChecksumMismatch,
    EnvelopeError,
    InvalidMagic,
    PayloadTooLarge,
    TrailingSnapshotBytes,
    TruncatedSnapshot,
    UnsupportedFormatVersion,
)
from ..translate.primitives import SUPPORTED_FORMAT_VERSIONS, ByteWriter

logger = logging.getLogger(__name__)

FORMAT_FAMILY = b"VSNAP\x00"
MAGIC_SIZE = 8
HEADER_SIZE = 28
CHECKSUM_OFFSET = 20

_HEADER = struct.Struct("<6sHIQQ")
_CHECKSUMMED_PREFIX = struct.Struct("<6sHIQ")

Blob = Union[bytes, bytearray, memoryview]


def make_magic(architecture: Architecture) -> bytes:
    """Magic identity for snapshots written on ``architecture``."""
    return FORMAT_FAMILY + struct.pack("<H", architecture.tag)


def compute_checksum(header_prefix: Blob, payload: Blob) -> int:
    """64-bit checksum over the header (minus the checksum field) and payload."""
    digest = hashlib.blake2b(digest_size=8)
    digest.update(header_prefix)
    digest.update(payload)
    return int.from_bytes(digest.digest(), "little")


@dataclass(frozen=True)
class SnapshotHeader:
    """Parsed snapshot header.

    Attributes:
        magic: Format family + architecture tag (8 bytes)
        format_version: Primitive encoding version
        payload_length: Byte length of the payload
        checksum: 64-bit checksum over header prefix + payload
    """

    magic: bytes
    format_version: int
    payload_length: int
    checksum: int

    @property
    def family(self) -> bytes:
        return self.magic[: len(FORMAT_FAMILY)]

    @property
    def architecture_tag(self) -> int:
        (tag,) = struct.unpack_from("<H", self.magic, len(FORMAT_FAMILY))
        return int(tag)

    @property
    def architecture(self) -> Optional[Architecture]:
        return Architecture.from_tag(self.architecture_tag)

    def prefix_bytes(self) -> bytes:
        """Header bytes covered by the checksum."""
        return _CHECKSUMMED_PREFIX.pack(
            self.family, self.architecture_tag, self.format_version, self.payload_length
        )

    def pack(self) -> bytes:
        return _HEADER.pack(
            self.family,
            self.architecture_tag,
            self.format_version,
            self.payload_length,
            self.checksum,
        )

    @classmethod
    def unpack(cls, data: Blob) -> SnapshotHeader:
        """Parse the first HEADER_SIZE bytes of ``data``.

        Raises:
            TruncatedSnapshot: If fewer than HEADER_SIZE bytes are given
        """
        if len(data) < HEADER_SIZE:
            raise TruncatedSnapshot(HEADER_SIZE, len(data))
        family, tag, format_version, payload_length, checksum = _HEADER.unpack_from(data, 0)
        return cls(
            magic=family + struct.pack("<H", tag),
            format_version=format_version,
            payload_length=payload_length,
            checksum=checksum,
        )

    def to_dict(self) -> dict[str, Any]:
        arch = self.architecture
        return {
            "magic": self.magic.hex(),
            "architecture": arch.label if arch else f"unknown({self.architecture_tag:#06x})",
            "format_version": self.format_version,
            "payload_length": self.payload_length,
            "checksum": f"{self.checksum:#018x}",
        }


def write_envelope(
    write_payload: Callable[[ByteWriter], None],
    architecture: Architecture,
    format_version: int,
) -> bytes:
    """Write a complete snapshot.

    The header space is reserved, the payload is written after it, and
    the header is filled in last so that a partially written buffer never
    carries a valid header.

    Args:
        write_payload: Writes the encoded payload into the given writer
        architecture: Architecture tag to embed in the magic
        format_version: Primitive encoding version of the payload

    Returns:
        Header + payload bytes
    """
    buffer = bytearray(HEADER_SIZE)
    write_payload(ByteWriter(buffer))
    payload_length = len(buffer) - HEADER_SIZE

    prefix = _CHECKSUMMED_PREFIX.pack(
        FORMAT_FAMILY, architecture.tag, format_version, payload_length
    )
    with memoryview(buffer) as view:
        checksum = compute_checksum(prefix, view[HEADER_SIZE:])
    _HEADER.pack_into(
        buffer, 0, FORMAT_FAMILY, architecture.tag, format_version, payload_length, checksum
    )
    logger.debug(
        f"Wrote envelope: arch={architecture.label}, format_version={format_version}, "
        f"payload_length={payload_length}"
    )
    return bytes(buffer)


class EnvelopeState(Enum):
    """Validation progress of a snapshot being loaded."""

    UNVALIDATED = "unvalidated"
    ARCHITECTURE_CHECKED = "architecture_checked"
    INTEGRITY_CHECKED = "integrity_checked"
    READY = "ready"
    REJECTED = "rejected"


class EnvelopeReader:
    """Validates a snapshot blob before its payload is decoded.

    Attributes:
        state: Current validation state
        header: Parsed header (None until the magic is checked)

    Example:
        >>> reader = EnvelopeReader(blob, Architecture.X86_64)
        >>> payload = reader.validate()
        >>> reader.state
        <EnvelopeState.READY: 'ready'>
    """

    def __init__(
        self,
        blob: Blob,
        architecture: Architecture,
        supported_formats: tuple[int, ...] = SUPPORTED_FORMAT_VERSIONS,
        max_payload_bytes: Optional[int] = None,
    ) -> None:
        self._blob = memoryview(blob)
        self.architecture = architecture
        self.supported_formats = supported_formats
        self.max_payload_bytes = max_payload_bytes
        self.state = EnvelopeState.UNVALIDATED
        self.header: Optional[SnapshotHeader] = None

    def validate(self) -> memoryview:
        """Run every check and return the payload.

        Raises:
            EnvelopeError: On the first failed check (state becomes REJECTED)
        """
        if self.state == EnvelopeState.READY:
            return self.payload
        try:
            self._check_architecture()
            self._check_integrity()
            self._check_format()
        except EnvelopeError as e:
            self.state = EnvelopeState.REJECTED
            logger.warning(f"Snapshot rejected: {e.message}", extra={"code": e.code})
            raise
        return self.payload

    @property
    def payload(self) -> memoryview:
        """Payload bytes (only available in READY)."""
        if self.state != EnvelopeState.READY or self.header is None:
            raise RuntimeError(f"Snapshot payload not available in state {self.state.value}")
        return self._blob[HEADER_SIZE:HEADER_SIZE + self.header.payload_length]

    def _check_architecture(self) -> None:
        if len(self._blob) < MAGIC_SIZE:
            raise TruncatedSnapshot(HEADER_SIZE, len(self._blob))
        family = bytes(self._blob[: len(FORMAT_FAMILY)])
        if family != FORMAT_FAMILY:
            raise InvalidMagic(bytes(self._blob[:MAGIC_SIZE]))

        self.header = SnapshotHeader.unpack(self._blob)
        if self.header.architecture_tag != self.architecture.tag:
            found = self.header.architecture
            raise ArchitectureMismatch(
                expected=self.architecture.label,
                found=found.label if found else f"unknown({self.header.architecture_tag:#06x})",
            )
        self.state = EnvelopeState.ARCHITECTURE_CHECKED

    def _check_integrity(self) -> None:
        assert self.header is not None
        length = self.header.payload_length
        if self.max_payload_bytes is not None and length > self.max_payload_bytes:
            raise PayloadTooLarge(length, self.max_payload_bytes)
        expected_size = HEADER_SIZE + length
        if len(self._blob) < expected_size:
            raise TruncatedSnapshot(expected_size, len(self._blob))
        if len(self._blob) > expected_size:
            raise TrailingSnapshotBytes(expected_size, len(self._blob))

        actual = compute_checksum(self._blob[:CHECKSUM_OFFSET], self._blob[HEADER_SIZE:])
        if actual != self.header.checksum:
            raise ChecksumMismatch(self.header.checksum, actual)
        self.state = EnvelopeState.INTEGRITY_CHECKED

    def _check_format(self) -> None:
        assert self.header is not None
        if self.header.format_version not in self.supported_formats:
            raise UnsupportedFormatVersion(self.header.format_version, self.supported_formats)
        self.state = EnvelopeState.READY


def read_envelope(
    blob: Blob,
    architecture: Architecture,
    supported_formats: tuple[int, ...] = SUPPORTED_FORMAT_VERSIONS,
    max_payload_bytes: Optional[int] = None,
) -> tuple[SnapshotHeader, memoryview]:
    """Validate a blob and return its header and payload."""
    reader = EnvelopeReader(blob, architecture, supported_formats, max_payload_bytes)
    payload = reader.validate()
    assert reader.header is not None
    return reader.header, payload
