"""
Snapshot layer for statesnap.

This module turns translated payloads into self-describing blobs:
- Envelope writer/reader (magic, architecture, checksum, format version)
- Version map from application releases to structure versions
- SnapshotCodec orchestrating save and load

Invariants:
    - The header is written after the payload and covers it with a checksum
    - A blob is rejected before decoding if any envelope check fails
"""

from .codec import SnapshotCodec
from .envelope import (
    FORMAT_FAMILY,
    HEADER_SIZE,
    EnvelopeReader,
    EnvelopeState,
    SnapshotHeader,
    compute_checksum,
    make_magic,
    read_envelope,
    write_envelope,
)
from .versions import VersionMap

__all__ = [
    # Codec
    "SnapshotCodec",
    # Envelope
    "EnvelopeReader",
    "EnvelopeState",
    "SnapshotHeader",
    "FORMAT_FAMILY",
    "HEADER_SIZE",
    "compute_checksum",
    "make_magic",
    "read_envelope",
    "write_envelope",
    # Versions
    "VersionMap",
]
