"""
Primitive codecs for statesnap payloads.

The snapshot header's format_version selects how primitives themselves
are encoded, independently of any structure version:

    1: little-endian fixed-width integers and IEEE floats, bool as one
       byte (0/1), str/bytes/list lengths and enum discriminants as u64/u32
    2: as 1, but lengths and enum discriminants as unsigned LEB128 varints

Invariants:
    - Decoding never reads past the end of the buffer (ShortRead instead)
    - Encoding is total for values accepted by check_scalar()
    - A published format version never changes meaning

How to change safely:
    - Add a new codec class with a new format_version
    - Keep reading every format version already in SUPPORTED_FORMAT_VERSIONS
"""

from __future__ import annotations

import math
import struct
from typing import Any, Optional, Union

from ..errors import UnsupportedFormatVersion
from ..schema.types import INTEGER_BOUNDS, FieldDescriptor, FieldKind

_F32_MAX = 3.4028234663852886e38

_SCALAR_STRUCTS: dict[FieldKind, struct.Struct] = {
    FieldKind.U8: struct.Struct("<B"),
    FieldKind.U16: struct.Struct("<H"),
    FieldKind.U32: struct.Struct("<I"),
    FieldKind.U64: struct.Struct("<Q"),
    FieldKind.I8: struct.Struct("<b"),
    FieldKind.I16: struct.Struct("<h"),
    FieldKind.I32: struct.Struct("<i"),
    FieldKind.I64: struct.Struct("<q"),
    FieldKind.F32: struct.Struct("<f"),
    FieldKind.F64: struct.Struct("<d"),
}
_U32 = _SCALAR_STRUCTS[FieldKind.U32]
_U64 = _SCALAR_STRUCTS[FieldKind.U64]


class ShortRead(Exception):
    """Reader ran out of bytes."""

    def __init__(self, needed: int, available: int) -> None:
        super().__init__(f"needed {needed} bytes, {available} available")
        self.needed = needed
        self.available = available


class BadEncoding(Exception):
    """Bytes are not a valid encoding of the expected primitive."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ByteWriter:
    """Append-only byte sink for the structural encoder."""

    def __init__(self, buffer: Optional[bytearray] = None) -> None:
        self._buffer = buffer if buffer is not None else bytearray()

    def write(self, data: Union[bytes, bytearray, memoryview]) -> None:
        self._buffer += data

    def pack(self, packer: struct.Struct, value: Any) -> None:
        self._buffer += packer.pack(value)

    @property
    def buffer(self) -> bytearray:
        return self._buffer

    def __len__(self) -> int:
        return len(self._buffer)


class ByteReader:
    """Bounds-checked cursor over a payload."""

    def __init__(self, data: Union[bytes, bytearray, memoryview], offset: int = 0) -> None:
        self._data = memoryview(data)
        self._offset = offset

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def read(self, size: int) -> bytes:
        if size > self.remaining:
            raise ShortRead(size, self.remaining)
        start = self._offset
        self._offset += size
        return bytes(self._data[start:self._offset])

    def unpack(self, packer: struct.Struct) -> Any:
        if packer.size > self.remaining:
            raise ShortRead(packer.size, self.remaining)
        (value,) = packer.unpack_from(self._data, self._offset)
        self._offset += packer.size
        return value


class PrimitiveCodec:
    """Format version 1: fixed-width primitives, u64 length prefixes."""

    format_version = 1

    # -- lengths and discriminants -------------------------------------

    def write_length(self, writer: ByteWriter, length: int) -> None:
        writer.pack(_U64, length)

    def read_length(self, reader: ByteReader) -> int:
        return int(reader.unpack(_U64))

    def write_discriminant(self, writer: ByteWriter, value: int) -> None:
        writer.pack(_U32, value)

    def read_discriminant(self, reader: ByteReader) -> int:
        return int(reader.unpack(_U32))

    # -- scalars ---------------------------------------------------------

    def write_scalar(self, writer: ByteWriter, kind: FieldKind, value: Any) -> None:
        """Write a primitive (non-composite) value."""
        if kind == FieldKind.BOOL:
            writer.write(b"\x01" if value else b"\x00")
        elif kind == FieldKind.STRING:
            data = value.encode("utf-8")
            self.write_length(writer, len(data))
            writer.write(data)
        elif kind == FieldKind.BYTES:
            self.write_length(writer, len(value))
            writer.write(bytes(value))
        else:
            writer.pack(_SCALAR_STRUCTS[kind], value)

    def read_scalar(self, reader: ByteReader, kind: FieldKind) -> Any:
        """Read a primitive (non-composite) value.

        Raises:
            ShortRead: If the payload ends early
            BadEncoding: If the bytes are not a valid encoding
        """
        if kind == FieldKind.BOOL:
            raw = reader.read(1)[0]
            if raw > 1:
                raise BadEncoding(f"invalid bool byte {raw:#04x}")
            return raw == 1
        if kind in (FieldKind.STRING, FieldKind.BYTES):
            length = self.read_length(reader)
            if length > reader.remaining:
                raise ShortRead(length, reader.remaining)
            data = reader.read(length)
            if kind == FieldKind.BYTES:
                return data
            try:
                return data.decode("utf-8")
            except UnicodeDecodeError as e:
                raise BadEncoding(f"invalid utf-8 at string byte {e.start}") from e
        return reader.unpack(_SCALAR_STRUCTS[kind])


class VarintCodec(PrimitiveCodec):
    """Format version 2: LEB128 varint lengths and discriminants."""

    format_version = 2

    _MAX_VARINT_BYTES = 10

    def write_length(self, writer: ByteWriter, length: int) -> None:
        writer.write(encode_varint(length))

    def read_length(self, reader: ByteReader) -> int:
        return self._read_varint(reader)

    def write_discriminant(self, writer: ByteWriter, value: int) -> None:
        writer.write(encode_varint(value))

    def read_discriminant(self, reader: ByteReader) -> int:
        value = self._read_varint(reader)
        if value > 2**32 - 1:
            raise BadEncoding(f"enum discriminant {value} exceeds u32")
        return value

    def _read_varint(self, reader: ByteReader) -> int:
        result = 0
        for shift in range(0, 7 * self._MAX_VARINT_BYTES, 7):
            byte = reader.read(1)[0]
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                if result > 2**64 - 1:
                    raise BadEncoding("varint exceeds u64")
                return result
        raise BadEncoding(f"varint longer than {self._MAX_VARINT_BYTES} bytes")


def encode_varint(value: int) -> bytes:
    """Unsigned LEB128 encoding."""
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


_CODECS: dict[int, PrimitiveCodec] = {
    codec.format_version: codec for codec in (PrimitiveCodec(), VarintCodec())
}

SUPPORTED_FORMAT_VERSIONS: tuple[int, ...] = tuple(sorted(_CODECS))
LATEST_FORMAT_VERSION = SUPPORTED_FORMAT_VERSIONS[-1]


def get_codec(format_version: int) -> PrimitiveCodec:
    """Primitive codec for a format version.

    Raises:
        UnsupportedFormatVersion: If this build cannot read the version
    """
    codec = _CODECS.get(format_version)
    if codec is None:
        raise UnsupportedFormatVersion(format_version, SUPPORTED_FORMAT_VERSIONS)
    return codec


def check_scalar(kind: FieldKind, value: Any) -> Optional[str]:
    """Validate a primitive value for its kind.

    Returns:
        None if the value is encodable, otherwise the reason it is not
    """
    if kind == FieldKind.BOOL:
        if not isinstance(value, bool):
            return f"expected bool, got {type(value).__name__}"
        return None
    if kind.is_integer:
        if not isinstance(value, int) or isinstance(value, bool):
            return f"expected int for {kind.value}, got {type(value).__name__}"
        low, high = INTEGER_BOUNDS[kind]
        if not low <= value <= high:
            return f"{value} out of range for {kind.value} [{low}, {high}]"
        return None
    if kind.is_float:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return f"expected float for {kind.value}, got {type(value).__name__}"
        if kind == FieldKind.F32 and math.isfinite(value) and abs(value) > _F32_MAX:
            return f"{value} out of range for f32"
        return None
    if kind == FieldKind.STRING:
        if not isinstance(value, str):
            return f"expected str, got {type(value).__name__}"
        try:
            value.encode("utf-8")
        except UnicodeEncodeError as e:
            return f"not encodable as utf-8 at character {e.start}: {e.reason}"
        return None
    if kind == FieldKind.BYTES:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            return f"expected bytes, got {type(value).__name__}"
        return None
    return f"kind '{kind.value}' is not a primitive"


def check_enum(field: FieldDescriptor, value: Any) -> Optional[str]:
    """Validate an enum member for a field's enum type."""
    assert field.enum_type is not None
    if isinstance(value, bool) or not isinstance(value, int):
        return f"expected {field.enum_type.__name__}, got {type(value).__name__}"
    try:
        field.enum_type(value)
    except ValueError:
        return f"{value!r} is not a member of {field.enum_type.__name__}"
    if not 0 <= int(value) <= 2**32 - 1:
        return f"enum discriminant {int(value)} out of range for u32"
    return None
