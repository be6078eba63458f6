"""
Union representation for statesnap.

A UnionValue holds one slot for every field ever declared for a
structure, including fields whose end version has passed. It is the
working value during translation: the structural decoder fills it, the
semantic hooks read and correct it, and it is finally projected down to
the live application structure (exactly the fields present at the
current version V).

Invariants:
    - Slots are positioned by declared index; every slot is always filled
    - The live structure is a strict field subset of the union
    - UnionValues are transient: created per save/load call, then discarded
    - clone() deep-copies values but shares the (immutable) schema

Example:
    >>> union = from_live(schema, {"size": 4, "ready": True}, registry)
    >>> union["size"]
    4
    >>> to_live(union, registry)
    {'size': 4, 'ready': True}
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any, Iterator, Optional, Union

from ..errors import InvalidFieldValue
from ..schema.registry import SchemaRegistry
from ..schema.types import _MISSING, FieldDescriptor, FieldKind, StructSchema

logger = logging.getLogger(__name__)

FieldKey = Union[str, int]


class UnionValue:
    """Fixed-slot container for every field ever declared by a structure.

    Slots are addressable by field name or declared index. Struct fields
    hold nested UnionValues; struct lists hold lists of UnionValues.

    Attributes:
        schema: The structure's schema
    """

    __slots__ = ("schema", "_slots")

    def __init__(self, schema: StructSchema, slots: Optional[list[Any]] = None) -> None:
        self.schema = schema
        if slots is None:
            slots = [None] * len(schema.ordered_fields)
        elif len(slots) != len(schema.ordered_fields):
            raise ValueError(
                f"Union for '{schema.name}' needs {len(schema.ordered_fields)} slots, "
                f"got {len(slots)}"
            )
        self._slots = slots

    def __getitem__(self, key: FieldKey) -> Any:
        return self._slots[self.schema.slot_of(key)]

    def __setitem__(self, key: FieldKey, value: Any) -> None:
        self._slots[self.schema.slot_of(key)] = value

    def __contains__(self, key: object) -> bool:
        try:
            self.schema.slot_of(key)  # type: ignore[arg-type]
        except KeyError:
            return False
        return True

    def get(self, key: FieldKey, default: Any = None) -> Any:
        if key not in self:
            return default
        return self[key]

    def items(self) -> Iterator[tuple[FieldDescriptor, Any]]:
        """Iterate (descriptor, value) pairs in wire order."""
        return zip(self.schema.ordered_fields, self._slots)

    def clone(self) -> UnionValue:
        """Deep copy of every slot; the schema is shared."""
        return UnionValue(self.schema, copy.deepcopy(self._slots))

    def __deepcopy__(self, memo: dict[int, Any]) -> UnionValue:
        return UnionValue(self.schema, copy.deepcopy(self._slots, memo))

    def view(self) -> UnionView:
        """Read-only view for deserialize hooks."""
        return UnionView(self)

    def to_dict(self) -> dict[str, Any]:
        """Name -> value mapping of every slot, nested unions included."""
        return {f.name: _plain(value) for f, value in self.items()}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UnionValue):
            return NotImplemented
        return self.schema.name == other.schema.name and self._slots == other._slots

    def __repr__(self) -> str:
        body = ", ".join(f"{f.name}={value!r}" for f, value in self.items())
        return f"UnionValue<{self.schema.name}>({body})"


class UnionView(Mapping):  # type: ignore[type-arg]
    """Read-only, name-keyed view over a UnionValue.

    Nested structures are exposed as views and lists as tuples so that
    a deserialize hook can consult siblings but not modify them.
    """

    __slots__ = ("_union",)

    def __init__(self, union: UnionValue) -> None:
        self._union = union

    @property
    def struct_name(self) -> str:
        return self._union.schema.name

    def __getitem__(self, key: FieldKey) -> Any:
        return _readonly(self._union[key])

    def __iter__(self) -> Iterator[str]:
        return (f.name for f in self._union.schema.ordered_fields)

    def __len__(self) -> int:
        return len(self._union.schema.ordered_fields)

    def __repr__(self) -> str:
        return f"UnionView<{self.struct_name}>({dict(self)!r})"


def _readonly(value: Any) -> Any:
    if isinstance(value, UnionValue):
        return value.view()
    if isinstance(value, list):
        return tuple(_readonly(v) for v in value)
    return value


def _plain(value: Any) -> Any:
    if isinstance(value, UnionValue):
        return value.to_dict()
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def default_for(field: FieldDescriptor, version: int, registry: SchemaRegistry) -> Any:
    """Value for a field that is absent at ``version``.

    Uses the default provider, then the static default, then the kind's
    primitive zero (a zero-filled union for nested structs).
    """
    value = field.static_default(version)
    if value is not _MISSING:
        return value
    if field.kind == FieldKind.STRUCT:
        assert field.struct_name is not None
        return empty_union(registry.require(field.struct_name), registry)
    return field.zero_value()


def empty_union(schema: StructSchema, registry: SchemaRegistry) -> UnionValue:
    """Union with every slot set to its default at the current version."""
    return UnionValue(
        schema, [default_for(f, schema.version, registry) for f in schema.ordered_fields]
    )


def from_live(schema: StructSchema, live: Any, registry: SchemaRegistry) -> UnionValue:
    """Project a live structure (mapping or object) into its union.

    Fields present at V are read from ``live``; fields removed before V
    are filled with their defaults.

    Raises:
        InvalidFieldValue: If a field present at V is missing from ``live``
    """
    if isinstance(live, UnionValue):
        if live.schema.name != schema.name:
            raise InvalidFieldValue(
                schema.name, "<root>", f"expected union of '{schema.name}', got '{live.schema.name}'"
            )
        return live

    slots: list[Any] = []
    for f in schema.ordered_fields:
        if not f.range.contains(schema.version):
            slots.append(default_for(f, schema.version, registry))
            continue
        slots.append(_live_to_slot(schema, f, _read_live(schema, f, live), registry))
    return UnionValue(schema, slots)


def _read_live(schema: StructSchema, f: FieldDescriptor, live: Any) -> Any:
    if isinstance(live, Mapping):
        if f.name in live:
            return live[f.name]
    elif hasattr(live, f.name):
        return getattr(live, f.name)
    if f.skip:
        # Skipped fields are optional on the live side.
        return None
    raise InvalidFieldValue(schema.name, f.name, "missing from live value")


def _live_to_slot(
    schema: StructSchema, f: FieldDescriptor, value: Any, registry: SchemaRegistry
) -> Any:
    if f.skip and value is None:
        return default_for(f, schema.version, registry)
    if f.struct_name is None:
        return _own_bytes(f, value)
    nested = registry.require(f.struct_name)
    if f.kind == FieldKind.STRUCT:
        return from_live(nested, value, registry)
    if value is None or isinstance(value, (str, bytes)) or not hasattr(value, "__iter__"):
        raise InvalidFieldValue(schema.name, f.name, "expected a sequence of structures")
    return [from_live(nested, item, registry) for item in value]


def _own_bytes(f: FieldDescriptor, value: Any) -> Any:
    """Copy bytes-like live values into immutable ``bytes``.

    Memoryviews cannot be cloned, and bytearrays would stay shared
    with the caller.
    """
    if f.kind == FieldKind.BYTES and isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if f.element_kind == FieldKind.BYTES and isinstance(value, (list, tuple)):
        return [bytes(v) if isinstance(v, (bytearray, memoryview)) else v for v in value]
    return value


def to_live(union: UnionValue, registry: SchemaRegistry) -> Any:
    """Project a union down to the live structure at the current version.

    Builds ``schema.factory(**fields)`` when the schema has a factory,
    a plain dict otherwise.
    """
    schema = union.schema
    values: dict[str, Any] = {}
    for f in schema.live_fields():
        values[f.name] = _slot_to_live(union[f.index], registry)
    if schema.factory is not None:
        return schema.factory(**values)
    return values


def _slot_to_live(value: Any, registry: SchemaRegistry) -> Any:
    if isinstance(value, UnionValue):
        return to_live(value, registry)
    if isinstance(value, list):
        return [_slot_to_live(v, registry) for v in value]
    return value
