"""
Core type definitions for the statesnap schema model.

This module defines the static description of a snapshotted structure:
- VersionRange: Lifetime of a field across structure versions
- FieldKind: Wire kinds a field can have
- SemanticHook: A meaning-aware correction bound to a version
- FieldDescriptor: A single field within a structure
- StructSchema: Ordered fields of one structure type plus its current version

Invariants:
    - Declared index fixes wire order and never changes once published
    - Names identify fields for lookup only; they never reach the wire
    - A field's end version, once set, is never unset (removal is permanent)
    - Every field is fillable when absent (default, provider or zero value)

How to change safely:
    - Add new fields with a new declared index and start = new version
    - Remove a field by setting end = the version it disappears in
    - Never reuse a declared index or re-add a removed field name
    - Attach semantic hooks when a value must be corrected across versions

Example:
    >>> from statesnap.schema.types import StructSchema, field
    >>> Queue = StructSchema(
    ...     name="Queue",
    ...     version=2,
    ...     fields=(
    ...         field(0, "size", "u16"),
    ...         field(1, "ready", "bool"),
    ...         field(2, "event_idx", "bool", start=2),
    ...     ),
    ... )
"""

from __future__ import annotations

import copy
import dataclasses
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum, IntEnum
from typing import Any, Callable, Optional, Union

# Sentinel for "no static default configured".
_MISSING: Any = object()

SerializeFn = Callable[[Any, int], None]
DeserializeFn = Callable[[Any, int], Any]
DefaultProvider = Callable[[int], Any]


class FieldKind(Enum):
    """Supported field kinds.

    Primitive kinds map directly to a fixed encoding; composite kinds
    (enum, struct, list) are built from primitives.

    F32 values are Python floats narrowed to IEEE single precision on the
    wire: 0.1 reads back as 0.10000000149011612. Only values exactly
    representable as f32 round-trip unchanged; use F64 otherwise.
    """

    U8 = "u8"
    U16 = "u16"
    U32 = "u32"
    U64 = "u64"
    I8 = "i8"
    I16 = "i16"
    I32 = "i32"
    I64 = "i64"
    F32 = "f32"
    F64 = "f64"
    BOOL = "bool"
    STRING = "str"
    BYTES = "bytes"
    ENUM = "enum"  # IntEnum stored as u32 discriminant
    STRUCT = "struct"  # Nested registered structure
    LIST = "list"  # Homogeneous sequence

    @classmethod
    def from_str(cls, value: str) -> FieldKind:
        """Convert string representation to FieldKind.

        Raises:
            ValueError: If value is not a valid field kind
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid field kind '{value}'. Valid kinds: {valid}")

    @property
    def is_integer(self) -> bool:
        return self in INTEGER_BOUNDS

    @property
    def is_float(self) -> bool:
        return self in (FieldKind.F32, FieldKind.F64)

    @property
    def is_composite(self) -> bool:
        return self in (FieldKind.ENUM, FieldKind.STRUCT, FieldKind.LIST)


INTEGER_BOUNDS: dict[FieldKind, tuple[int, int]] = {
    FieldKind.U8: (0, 2**8 - 1),
    FieldKind.U16: (0, 2**16 - 1),
    FieldKind.U32: (0, 2**32 - 1),
    FieldKind.U64: (0, 2**64 - 1),
    FieldKind.I8: (-(2**7), 2**7 - 1),
    FieldKind.I16: (-(2**15), 2**15 - 1),
    FieldKind.I32: (-(2**31), 2**31 - 1),
    FieldKind.I64: (-(2**63), 2**63 - 1),
}

_PRIMITIVE_ZERO: dict[FieldKind, Any] = {
    **{kind: 0 for kind in INTEGER_BOUNDS},
    FieldKind.F32: 0.0,
    FieldKind.F64: 0.0,
    FieldKind.BOOL: False,
    FieldKind.STRING: "",
    FieldKind.BYTES: b"",
}


@dataclass(frozen=True)
class VersionRange:
    """Inclusive-start, exclusive-end span of structure versions.

    A range with no end is present in every version >= start,
    including the current one.

    Attributes:
        start: First version the field is present in (>= 1)
        end: First version the field is absent from again, or None
    """

    start: int = 1
    end: Optional[int] = None

    def contains(self, version: int) -> bool:
        """Whether the field is present at ``version``."""
        if version < self.start:
            return False
        return self.end is None or version < self.end

    @property
    def is_open(self) -> bool:
        return self.end is None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"start": self.start}
        if self.end is not None:
            result["end"] = self.end
        return result

    def __str__(self) -> str:
        end = "" if self.end is None else str(self.end)
        return f"[{self.start}, {end})"


@dataclass(frozen=True, order=True)
class SemanticHook:
    """A semantic translation function bound to the version it applies at.

    For a translation over the interval (low, high], the hook runs when
    low < version <= high.

    Attributes:
        version: Structure version the hook is declared for
        fn: Serialize hook ``fn(union, target_version) -> None`` or
            deserialize hook ``fn(view, source_version) -> value``
    """

    version: int
    fn: Callable[..., Any] = dataclass_field(compare=False)

    def applies(self, low: int, high: int) -> bool:
        """Whether the hook falls in the open-closed interval (low, high]."""
        return low < self.version <= high


@dataclass(frozen=True)
class FieldDescriptor:
    """Definition of a single field within a structure.

    Attributes:
        index: Declared index; fixes wire order
        name: Field name, used for lookup and by semantic hooks
        kind: Wire kind of the field
        range: Versions the field is present in
        default: Static default (deep-copied on use) when absent
        default_provider: ``fn(version) -> value`` used when absent
        serialize_hooks: Hooks run on the downgrade path
        deserialize_hooks: Hooks run on the upgrade path
        skip: Field never reaches the wire
        struct_name: Nested struct for STRUCT fields and struct lists
        element_kind: Element kind for LIST fields
        enum_type: IntEnum type for ENUM fields and enum lists
        description: Human-readable description

    Invariants:
        - index must be unique within the containing structure
        - kind cannot change after the field is published
        - range.end, once set, stays set
    """

    index: int
    name: str
    kind: FieldKind
    range: VersionRange = dataclass_field(default_factory=VersionRange)
    default: Any = _MISSING
    default_provider: Optional[DefaultProvider] = None
    serialize_hooks: tuple[SemanticHook, ...] = ()
    deserialize_hooks: tuple[SemanticHook, ...] = ()
    skip: bool = False
    struct_name: Optional[str] = None
    element_kind: Optional[FieldKind] = None
    enum_type: Optional[type[IntEnum]] = None
    description: str = ""

    def __post_init__(self) -> None:
        """Validate what can be checked without the containing structure."""
        if self.index < 0:
            raise ValueError(f"index must be non-negative, got {self.index}")
        if not self.name:
            raise ValueError("Field name cannot be empty")
        if self.kind == FieldKind.LIST:
            if self.element_kind is None:
                raise ValueError(f"element_kind required for list field '{self.name}'")
            if self.element_kind == FieldKind.LIST:
                raise ValueError(f"Nested lists are not supported (field '{self.name}')")
        if FieldKind.STRUCT in (self.kind, self.element_kind) and not self.struct_name:
            raise ValueError(f"struct_name required for struct field '{self.name}'")
        if FieldKind.ENUM in (self.kind, self.element_kind) and self.enum_type is None:
            raise ValueError(f"enum_type required for enum field '{self.name}'")

    @property
    def has_default(self) -> bool:
        """Whether a default or default provider is configured."""
        return self.default is not _MISSING or self.default_provider is not None

    @property
    def has_zero(self) -> bool:
        """Whether the kind has a primitive-zero fallback.

        Enums only have one when a member's value is 0; structs are
        zero-filled field by field.
        """
        if self.kind == FieldKind.ENUM:
            assert self.enum_type is not None
            return any(member.value == 0 for member in self.enum_type)
        return True

    def zero_value(self) -> Any:
        """Primitive-zero value for non-struct kinds.

        Raises:
            ValueError: If the kind has no zero (see ``has_zero``)
        """
        if self.kind == FieldKind.LIST:
            return []
        if self.kind == FieldKind.ENUM:
            assert self.enum_type is not None
            if not self.has_zero:
                raise ValueError(f"Enum field '{self.name}' has no zero member")
            return self.enum_type(0)
        if self.kind == FieldKind.STRUCT:
            raise ValueError("Struct zero values are built by the union layer")
        return _PRIMITIVE_ZERO[self.kind]

    def static_default(self, version: int) -> Any:
        """Configured default for ``version``, or _MISSING if none."""
        if self.default_provider is not None:
            return self.default_provider(version)
        if self.default is not _MISSING:
            return copy.deepcopy(self.default)
        return _MISSING

    def is_active(self, version: int) -> bool:
        """Whether the field is on the wire at ``version``."""
        return not self.skip and self.range.contains(version)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary for fingerprints and lock files.

        Hook functions are represented by their versions only.
        """
        result: dict[str, Any] = {
            "index": self.index,
            "name": self.name,
            "kind": self.kind.value,
            "range": self.range.to_dict(),
        }
        if self.skip:
            result["skip"] = True
        if self.struct_name:
            result["struct"] = self.struct_name
        if self.element_kind is not None:
            result["element"] = self.element_kind.value
        if self.enum_type is not None:
            result["enum"] = {m.name: m.value for m in self.enum_type}
        if self.has_default:
            result["has_default"] = True
        if self.serialize_hooks:
            result["serialize_hooks"] = [h.version for h in self.serialize_hooks]
        if self.deserialize_hooks:
            result["deserialize_hooks"] = [h.version for h in self.deserialize_hooks]
        if self.description:
            result["description"] = self.description
        return result


def field(
    index: int,
    name: str,
    kind: Union[str, FieldKind],
    *,
    start: int = 1,
    end: Optional[int] = None,
    default: Any = _MISSING,
    default_provider: Optional[DefaultProvider] = None,
    ser_fn: Optional[SerializeFn] = None,
    de_fn: Optional[DeserializeFn] = None,
    skip: bool = False,
    struct: Optional[str] = None,
    element: Union[str, FieldKind, None] = None,
    enum_type: Optional[type[IntEnum]] = None,
    description: str = "",
) -> FieldDescriptor:
    """Convenience function to create a FieldDescriptor.

    This is the preferred way to declare fields. ``ser_fn`` is bound to
    the version the field disappears in (its ``end``, or ``start`` for
    open-ended fields) and ``de_fn`` to the version it appeared in.
    Hooks at other versions are attached through the registry.

    Args:
        index: Declared index (wire order)
        name: Field name
        kind: Field kind (string or FieldKind)
        start: First version the field exists in
        end: Version the field was removed in
        default: Static default when absent
        default_provider: Callable producing the default for a version
        ser_fn: Serialize hook bound at end (or start)
        de_fn: Deserialize hook bound at start
        skip: Exclude from the wire entirely
        struct: Nested struct name for struct fields and struct lists
        element: Element kind for list fields
        enum_type: IntEnum type for enum fields and enum lists
        description: Human-readable description

    Returns:
        FieldDescriptor instance

    Example:
        >>> size = field(0, "size", "u16")
        >>> regs = field(1, "regs", "list", element="u64", start=2)
        >>> dev = field(2, "device", "struct", struct="Device")
    """
    if isinstance(kind, str):
        kind = FieldKind.from_str(kind)
    if isinstance(element, str):
        element = FieldKind.from_str(element)

    serialize_hooks: tuple[SemanticHook, ...] = ()
    if ser_fn is not None:
        serialize_hooks = (SemanticHook(end if end is not None else start, ser_fn),)
    deserialize_hooks: tuple[SemanticHook, ...] = ()
    if de_fn is not None:
        deserialize_hooks = (SemanticHook(start, de_fn),)

    return FieldDescriptor(
        index=index,
        name=name,
        kind=kind,
        range=VersionRange(start, end),
        default=default,
        default_provider=default_provider,
        serialize_hooks=serialize_hooks,
        deserialize_hooks=deserialize_hooks,
        skip=skip,
        struct_name=struct,
        element_kind=element,
        enum_type=enum_type,
        description=description,
    )


@dataclass(frozen=True)
class StructSchema:
    """Definition of one snapshotted structure type.

    Attributes:
        name: Structure name (key in the version map)
        version: Current (latest) version V
        fields: Field descriptors in declaration order
        factory: Class built from keyword arguments when projecting to a
            live value; live values are dicts when None
        description: Human-readable description

    Invariants:
        - Wire order is declared-index order, independent of version
        - The live structure holds exactly the fields active at V

    Example:
        >>> Device = StructSchema(
        ...     name="Device",
        ...     version=1,
        ...     fields=(field(0, "irq", "u32"),),
        ... )
    """

    name: str
    version: int
    fields: tuple[FieldDescriptor, ...] = ()
    factory: Optional[Callable[..., Any]] = None
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Struct name cannot be empty")
        if self.version < 1:
            raise ValueError(f"Struct '{self.name}' version must be >= 1, got {self.version}")
        # Wire order and slot positions, computed once.
        ordered = tuple(sorted(self.fields, key=lambda f: f.index))
        slots: dict[Union[str, int], int] = {}
        for position, f in enumerate(ordered):
            slots.setdefault(f.name, position)
            slots.setdefault(f.index, position)
        object.__setattr__(self, "_ordered", ordered)
        object.__setattr__(self, "_slots", slots)

    @property
    def ordered_fields(self) -> tuple[FieldDescriptor, ...]:
        """Fields in declared-index (wire) order."""
        return self._ordered  # type: ignore[attr-defined, no-any-return]

    def slot_of(self, name_or_index: Union[str, int]) -> int:
        """Slot position of a field in the union representation.

        Raises:
            KeyError: If the struct has no such field
        """
        try:
            return self._slots[name_or_index]  # type: ignore[attr-defined, no-any-return]
        except KeyError:
            raise KeyError(f"Struct '{self.name}' has no field {name_or_index!r}") from None

    def get_field(self, name_or_index: Union[str, int]) -> Optional[FieldDescriptor]:
        """Get a field by name or declared index."""
        for f in self.fields:
            if isinstance(name_or_index, int):
                if f.index == name_or_index:
                    return f
            elif f.name == name_or_index:
                return f
        return None

    def active_fields(self, version: int) -> list[FieldDescriptor]:
        """Fields on the wire at ``version``, in wire order."""
        return [f for f in self.ordered_fields if f.is_active(version)]

    def live_fields(self) -> list[FieldDescriptor]:
        """Fields of the live structure (present at V, skipped ones included)."""
        return [f for f in self.ordered_fields if f.range.contains(self.version)]

    def nested_struct_names(self) -> set[str]:
        """Names of structures referenced by struct fields and struct lists."""
        return {f.struct_name for f in self.fields if f.struct_name}

    def with_field(self, updated: FieldDescriptor) -> StructSchema:
        """Return a copy with the field of the same index replaced."""
        fields = tuple(updated if f.index == updated.index else f for f in self.fields)
        return dataclasses.replace(self, fields=fields)

    def validate(self) -> list[str]:
        """Check structure-local rules.

        Cross-structure rules (nested references, cycles) are checked by
        the registry.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []
        seen_index: dict[int, str] = {}
        seen_name: dict[str, FieldDescriptor] = {}

        for f in self.fields:
            where = f"'{self.name}.{f.name}'"

            if f.index in seen_index:
                errors.append(
                    f"Field {where} reuses declared index {f.index} "
                    f"of field '{seen_index[f.index]}'"
                )
            else:
                seen_index[f.index] = f.name

            previous = seen_name.get(f.name)
            if previous is not None:
                if previous.range.end is not None and f.range.start >= previous.range.end:
                    errors.append(
                        f"Field {where} was removed in version {previous.range.end} "
                        f"and cannot be re-added in version {f.range.start}"
                    )
                else:
                    errors.append(f"Duplicate field name {where}")
            else:
                seen_name[f.name] = f

            if f.range.start < 1:
                errors.append(f"Field {where} start version must be >= 1, got {f.range.start}")
            if f.range.start > self.version:
                errors.append(
                    f"Field {where} starts at version {f.range.start} "
                    f"after current version {self.version}"
                )
            if f.range.end is not None:
                if f.range.end <= f.range.start:
                    errors.append(
                        f"Field {where} end version {f.range.end} must be greater than "
                        f"start version {f.range.start}"
                    )
                elif f.range.end > self.version:
                    errors.append(
                        f"Field {where} end version {f.range.end} is after "
                        f"current version {self.version}"
                    )

            if not f.has_default and not f.has_zero:
                errors.append(
                    f"Field {where} has no default provider and kind "
                    f"'{f.kind.value}' has no zero value"
                )

            for hook in f.serialize_hooks + f.deserialize_hooks:
                if not 1 <= hook.version <= self.version:
                    errors.append(
                        f"Semantic hook on {where} at version {hook.version} is outside "
                        f"versions 1..{self.version}"
                    )

        return errors

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        result: dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "fields": [f.to_dict() for f in self.ordered_fields],
        }
        if self.description:
            result["description"] = self.description
        return result
