"""
Structural translator for statesnap.

Moves field values between a UnionValue and the wire form for an
arbitrary structure version, without any knowledge of field meaning.
The same generic code serves every version pair; the version only
decides which fields are on the wire.

Decode (bytes, source version S), in declared-index order:
    - field present at S: read it with its primitive codec
    - field absent at S (or skipped): default provider, static default,
      or primitive zero

Encode (union, target version T), in declared-index order:
    - field present at T: write its value
    - field absent at T (or skipped): omitted, no placeholder bytes

Invariants:
    - Wire order is declared-index order and never depends on version
    - Nested structures are encoded at their own resolved version
    - Encoding is total for unions that passed validate()
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional, Union

from ..errors import (
    InvalidFieldValue,
    MalformedField,
    TrailingData,
    TruncatedPayload,
    UnknownStructVersion,
)
from ..schema.registry import SchemaRegistry
from ..schema.types import FieldDescriptor, FieldKind, StructSchema
from .primitives import (
    BadEncoding,
    ByteReader,
    ByteWriter,
    PrimitiveCodec,
    ShortRead,
    check_enum,
    check_scalar,
)
from .union import UnionValue, default_for

logger = logging.getLogger(__name__)

StructVersions = Mapping[str, int]

DEFAULT_MAX_EMPTY_LIST_ITEMS = 65536


def version_of(schema: StructSchema, versions: StructVersions) -> int:
    """Resolved version of a structure; structures not listed are at version 1.

    Raises:
        UnknownStructVersion: If the version is outside 1..V
    """
    version = versions.get(schema.name, 1)
    if not 1 <= version <= schema.version:
        raise UnknownStructVersion(schema.name, version, schema.version)
    return version


class StructuralTranslator:
    """Generic encoder/decoder parameterized by structure versions.

    Attributes:
        registry: Frozen schema registry used to resolve nested structs
        codec: Primitive codec for the snapshot's format version
        max_empty_list_items: Cap on list counts whose elements take no
            bytes on the wire, where the payload length bounds nothing

    Example:
        >>> translator = StructuralTranslator(registry, get_codec(1))
        >>> payload = translator.encode(union, {"Queue": 1})
        >>> translator.decode(payload, "Queue", {"Queue": 1})
        UnionValue<Queue>(...)
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        codec: PrimitiveCodec,
        max_empty_list_items: int = DEFAULT_MAX_EMPTY_LIST_ITEMS,
    ) -> None:
        self.registry = registry
        self.codec = codec
        self.max_empty_list_items = max_empty_list_items

    # ------------------------------------------------------------------
    # Encode
    # ------------------------------------------------------------------

    def encode(
        self,
        union: UnionValue,
        versions: StructVersions,
        writer: Optional[ByteWriter] = None,
    ) -> bytes:
        """Encode a union at the versions given for each structure.

        Args:
            union: Root union value (already validated)
            versions: Struct name -> target version
            writer: Optional writer to append to

        Returns:
            The bytes written by this call
        """
        writer = writer if writer is not None else ByteWriter()
        start = len(writer)
        self._encode_struct(writer, union, versions)
        return bytes(writer.buffer[start:])

    def _encode_struct(
        self, writer: ByteWriter, union: UnionValue, versions: StructVersions
    ) -> None:
        schema = union.schema
        version = version_of(schema, versions)
        for f, value in union.items():
            if f.is_active(version):
                self._write(writer, f, f.kind, value, versions)

    def _write(
        self,
        writer: ByteWriter,
        f: FieldDescriptor,
        kind: FieldKind,
        value: Any,
        versions: StructVersions,
    ) -> None:
        if kind == FieldKind.STRUCT:
            self._encode_struct(writer, value, versions)
        elif kind == FieldKind.LIST:
            assert f.element_kind is not None
            self.codec.write_length(writer, len(value))
            for item in value:
                self._write(writer, f, f.element_kind, item, versions)
        elif kind == FieldKind.ENUM:
            self.codec.write_discriminant(writer, int(value))
        else:
            self.codec.write_scalar(writer, kind, value)

    # ------------------------------------------------------------------
    # Validate
    # ------------------------------------------------------------------

    def validate(self, union: UnionValue, versions: StructVersions) -> None:
        """Check that every value on the wire at the target versions is encodable.

        Raises:
            InvalidFieldValue: On the first value that cannot be encoded
            UnknownStructVersion: If a target version is outside 1..V
        """
        schema = union.schema
        version = version_of(schema, versions)
        for f, value in union.items():
            if f.is_active(version):
                self._check(schema, f, f.kind, value, versions)

    def _check(
        self,
        schema: StructSchema,
        f: FieldDescriptor,
        kind: FieldKind,
        value: Any,
        versions: StructVersions,
    ) -> None:
        if kind == FieldKind.STRUCT:
            if not isinstance(value, UnionValue) or value.schema.name != f.struct_name:
                raise InvalidFieldValue(
                    schema.name, f.name, f"expected structure '{f.struct_name}'"
                )
            self.validate(value, versions)
            return
        if kind == FieldKind.LIST:
            if not isinstance(value, (list, tuple)):
                raise InvalidFieldValue(
                    schema.name, f.name, f"expected list, got {type(value).__name__}"
                )
            assert f.element_kind is not None
            if len(value) > self.max_empty_list_items and not self._has_wire_size(f, versions):
                raise InvalidFieldValue(
                    schema.name,
                    f.name,
                    f"{len(value)} elements of zero wire size exceed the limit of "
                    f"{self.max_empty_list_items}",
                )
            for item in value:
                self._check(schema, f, f.element_kind, item, versions)
            return
        reason = check_enum(f, value) if kind == FieldKind.ENUM else check_scalar(kind, value)
        if reason is not None:
            raise InvalidFieldValue(schema.name, f.name, reason)

    # ------------------------------------------------------------------
    # Decode
    # ------------------------------------------------------------------

    def decode(
        self,
        data: Union[bytes, bytearray, memoryview],
        root: str,
        versions: StructVersions,
    ) -> UnionValue:
        """Decode a whole payload holding one root structure.

        Args:
            data: Payload bytes
            root: Name of the root structure
            versions: Struct name -> source version

        Returns:
            Union of the root structure, absent fields defaulted

        Raises:
            MalformedField: Invalid primitive encoding
            TruncatedPayload: Payload ended early
            TrailingData: Bytes left after the root structure
        """
        reader = ByteReader(data)
        union = self.decode_from(reader, self.registry.require(root), versions)
        if reader.remaining:
            raise TrailingData(root, reader.offset, reader.remaining)
        return union

    def decode_from(
        self, reader: ByteReader, schema: StructSchema, versions: StructVersions
    ) -> UnionValue:
        """Decode one structure starting at the reader's offset."""
        version = version_of(schema, versions)
        slots: list[Any] = []
        for f in schema.ordered_fields:
            if f.is_active(version):
                slots.append(self._read(reader, schema, f, f.kind, versions))
            else:
                slots.append(default_for(f, version, self.registry))
        return UnionValue(schema, slots)

    def _read(
        self,
        reader: ByteReader,
        schema: StructSchema,
        f: FieldDescriptor,
        kind: FieldKind,
        versions: StructVersions,
    ) -> Any:
        if kind == FieldKind.STRUCT:
            assert f.struct_name is not None
            return self.decode_from(reader, self.registry.require(f.struct_name), versions)

        if kind == FieldKind.LIST:
            assert f.element_kind is not None
            offset = reader.offset
            count = self._guarded(reader, schema, f, self.codec.read_length)
            if self._has_wire_size(f, versions):
                if count > reader.remaining:
                    raise TruncatedPayload(schema.name, f.name, offset, count, reader.remaining)
            elif count > self.max_empty_list_items:
                raise MalformedField(
                    schema.name,
                    f.name,
                    offset,
                    f"{count} elements of zero wire size exceed the limit of "
                    f"{self.max_empty_list_items}",
                )
            return [self._read(reader, schema, f, f.element_kind, versions) for _ in range(count)]

        if kind == FieldKind.ENUM:
            assert f.enum_type is not None
            offset = reader.offset
            raw = self._guarded(reader, schema, f, self.codec.read_discriminant)
            try:
                return f.enum_type(raw)
            except ValueError:
                raise MalformedField(
                    schema.name,
                    f.name,
                    offset,
                    f"unknown {f.enum_type.__name__} discriminant {raw}",
                ) from None

        return self._guarded(reader, schema, f, lambda r: self.codec.read_scalar(r, kind))

    def _has_wire_size(self, f: FieldDescriptor, versions: StructVersions) -> bool:
        """Whether every list element takes at least one byte."""
        if f.element_kind != FieldKind.STRUCT:
            return True
        assert f.struct_name is not None
        return self._struct_has_bytes(self.registry.require(f.struct_name), versions)

    def _struct_has_bytes(self, schema: StructSchema, versions: StructVersions) -> bool:
        for f in schema.active_fields(version_of(schema, versions)):
            if f.kind != FieldKind.STRUCT:
                return True
            assert f.struct_name is not None
            if self._struct_has_bytes(self.registry.require(f.struct_name), versions):
                return True
        return False

    @staticmethod
    def _guarded(
        reader: ByteReader,
        schema: StructSchema,
        f: FieldDescriptor,
        read: Callable[[ByteReader], Any],
    ) -> Any:
        offset = reader.offset
        try:
            return read(reader)
        except ShortRead as e:
            raise TruncatedPayload(schema.name, f.name, offset, e.needed, e.available) from e
        except BadEncoding as e:
            raise MalformedField(schema.name, f.name, offset, e.reason) from e
