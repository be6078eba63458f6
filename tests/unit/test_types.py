"""
Unit tests for schema types.

Tests cover:
- FieldDescriptor creation and validation
- VersionRange membership
- StructSchema ordering, slots and validation
- Type serialization for lock files
"""

from enum import IntEnum

import pytest

from statesnap.schema.types import (
    FieldKind,
    SemanticHook,
    StructSchema,
    VersionRange,
    field,
)


class Mode(IntEnum):
    OFF = 0
    ON = 1


class Level(IntEnum):
    LOW = 1
    HIGH = 2


class TestVersionRange:
    """Tests for VersionRange."""

    def test_open_range_contains_all_later_versions(self):
        """A range without end covers every version from start."""
        r = VersionRange(2)
        assert not r.contains(1)
        assert r.contains(2)
        assert r.contains(100)
        assert r.is_open

    def test_end_is_exclusive(self):
        """The end version is the first version the field is absent from."""
        r = VersionRange(1, 5)
        assert r.contains(4)
        assert not r.contains(5)
        assert not r.contains(6)

    def test_str(self):
        """Ranges print as half-open intervals."""
        assert str(VersionRange(1, 3)) == "[1, 3)"
        assert str(VersionRange(2)) == "[2, )"


class TestSemanticHook:
    """Tests for SemanticHook."""

    def test_applies_to_open_closed_interval(self):
        """A hook applies when low < version <= high."""
        hook = SemanticHook(3, lambda v, s: None)
        assert hook.applies(2, 3)
        assert hook.applies(1, 5)
        assert not hook.applies(3, 5)
        assert not hook.applies(1, 2)


class TestFieldDescriptor:
    """Tests for FieldDescriptor."""

    def test_create_scalar_field(self):
        """Scalar field can be created from a kind string."""
        f = field(0, "size", "u16")
        assert f.index == 0
        assert f.name == "size"
        assert f.kind == FieldKind.U16
        assert f.range == VersionRange(1, None)

    def test_invalid_kind_raises(self):
        """Unknown kind strings are rejected."""
        with pytest.raises(ValueError, match="Invalid field kind"):
            field(0, "size", "u128")

    def test_negative_index_raises(self):
        """Declared index must be non-negative."""
        with pytest.raises(ValueError, match="index must be non-negative"):
            field(-1, "size", "u16")

    def test_list_requires_element(self):
        """List field without element kind raises."""
        with pytest.raises(ValueError, match="element_kind required"):
            field(0, "regs", "list")

    def test_nested_list_rejected(self):
        """Lists of lists are not supported."""
        with pytest.raises(ValueError, match="Nested lists"):
            field(0, "regs", "list", element="list")

    def test_struct_requires_struct_name(self):
        """Struct fields need the nested struct name."""
        with pytest.raises(ValueError, match="struct_name required"):
            field(0, "device", "struct")

    def test_enum_requires_enum_type(self):
        """Enum fields need an IntEnum type."""
        with pytest.raises(ValueError, match="enum_type required"):
            field(0, "mode", "enum")

    def test_ser_fn_binds_at_end(self):
        """ser_fn is bound to the version the field disappears in."""
        f = field(0, "legacy", "u8", start=1, end=3, ser_fn=lambda u, t: None)
        assert [h.version for h in f.serialize_hooks] == [3]

    def test_ser_fn_binds_at_start_for_open_field(self):
        """ser_fn on an open-ended field is bound at its start version."""
        f = field(0, "irq", "u32", start=2, ser_fn=lambda u, t: None)
        assert [h.version for h in f.serialize_hooks] == [2]

    def test_de_fn_binds_at_start(self):
        """de_fn is bound to the version the field appeared in."""
        f = field(0, "irq", "u32", start=4, de_fn=lambda v, s: 0)
        assert [h.version for h in f.deserialize_hooks] == [4]

    def test_static_default_is_copied(self):
        """Mutable static defaults are never shared between uses."""
        f = field(0, "regs", "list", element="u64", default=[1, 2])
        first = f.static_default(1)
        first.append(3)
        assert f.static_default(1) == [1, 2]

    def test_default_provider_receives_version(self):
        """Default providers are called with the version being filled."""
        f = field(0, "queue_size", "u16", default_provider=lambda v: v * 100)
        assert f.static_default(3) == 300

    def test_zero_values(self):
        """Each primitive kind has a zero value."""
        assert field(0, "a", "u64").zero_value() == 0
        assert field(0, "a", "f32").zero_value() == 0.0
        assert field(0, "a", "bool").zero_value() is False
        assert field(0, "a", "str").zero_value() == ""
        assert field(0, "a", "bytes").zero_value() == b""
        assert field(0, "a", "list", element="u8").zero_value() == []

    def test_enum_zero_requires_zero_member(self):
        """Enums have a zero only when a member has value 0."""
        assert field(0, "mode", "enum", enum_type=Mode).zero_value() is Mode.OFF
        level = field(0, "level", "enum", enum_type=Level)
        assert not level.has_zero
        with pytest.raises(ValueError, match="no zero member"):
            level.zero_value()

    def test_skipped_field_is_never_active(self):
        """Skipped fields never reach the wire."""
        f = field(0, "cache", "u64", skip=True)
        assert not f.is_active(1)

    def test_field_to_dict(self):
        """Field can be serialized to dict with hook versions only."""
        f = field(
            2, "mode", "enum", enum_type=Mode, start=2, de_fn=lambda v, s: Mode.ON
        )
        d = f.to_dict()
        assert d["index"] == 2
        assert d["kind"] == "enum"
        assert d["range"] == {"start": 2}
        assert d["enum"] == {"OFF": 0, "ON": 1}
        assert d["deserialize_hooks"] == [2]


class TestStructSchema:
    """Tests for StructSchema."""

    def test_wire_order_follows_declared_index(self):
        """Fields are ordered by declared index, not declaration order."""
        schema = StructSchema(
            "Queue",
            1,
            (field(2, "c", "u8"), field(0, "a", "u8"), field(1, "b", "u8")),
        )
        assert [f.name for f in schema.ordered_fields] == ["a", "b", "c"]
        assert schema.slot_of("c") == 2
        assert schema.slot_of(0) == 0

    def test_slot_of_unknown_raises(self):
        """Unknown field lookup raises KeyError."""
        schema = StructSchema("Queue", 1, (field(0, "a", "u8"),))
        with pytest.raises(KeyError, match="has no field"):
            schema.slot_of("missing")

    def test_active_and_live_fields(self):
        """Active fields depend on version; live fields are those present at V."""
        schema = StructSchema(
            "Queue",
            3,
            (
                field(0, "size", "u16"),
                field(1, "legacy", "u8", end=2),
                field(2, "event_idx", "bool", start=3),
                field(3, "cache", "u64", skip=True),
            ),
        )
        assert [f.name for f in schema.active_fields(1)] == ["size", "legacy"]
        assert [f.name for f in schema.active_fields(3)] == ["size", "event_idx"]
        assert [f.name for f in schema.live_fields()] == ["size", "event_idx", "cache"]

    def test_version_must_be_positive(self):
        """Struct version starts at 1."""
        with pytest.raises(ValueError, match="version must be >= 1"):
            StructSchema("Queue", 0)

    def test_validate_duplicate_index(self):
        """Two fields sharing a declared index are rejected."""
        schema = StructSchema("Queue", 1, (field(0, "a", "u8"), field(0, "b", "u8")))
        errors = schema.validate()
        assert any("reuses declared index 0" in e for e in errors)

    def test_validate_readded_field(self):
        """A removed field name cannot come back."""
        schema = StructSchema(
            "Queue",
            4,
            (field(0, "mode", "u8", end=2), field(1, "mode", "u8", start=3)),
        )
        errors = schema.validate()
        assert any("cannot be re-added" in e for e in errors)

    def test_validate_ranges(self):
        """Empty ranges and ranges beyond V are rejected."""
        schema = StructSchema(
            "Queue",
            2,
            (
                field(0, "a", "u8", start=2, end=2),
                field(1, "b", "u8", start=3),
                field(2, "c", "u8", end=4),
            ),
        )
        errors = schema.validate()
        assert any("must be greater than start" in e for e in errors)
        assert any("after current version 2" in e for e in errors)
        assert any("end version 4 is after" in e for e in errors)

    def test_validate_enum_without_default(self):
        """An enum without a zero member needs a default."""
        schema = StructSchema("Dev", 1, (field(0, "level", "enum", enum_type=Level),))
        assert any("no zero value" in e for e in schema.validate())

        fixed = StructSchema(
            "Dev", 1, (field(0, "level", "enum", enum_type=Level, default=Level.LOW),)
        )
        assert fixed.validate() == []

    def test_validate_hook_version_out_of_range(self):
        """Hooks must be bound to a version the struct has."""
        schema = StructSchema(
            "Dev", 2, (field(0, "irq", "u32", start=1, de_fn=lambda v, s: 0),)
        )
        assert schema.validate() == []
        bad = StructSchema("Dev", 2, (field(0, "irq", "u32", end=3, ser_fn=lambda u, t: None),))
        assert any("outside versions 1..2" in e for e in bad.validate())

    def test_with_field_replaces_by_index(self):
        """with_field returns a copy with one field replaced."""
        schema = StructSchema("Dev", 1, (field(0, "irq", "u32"),))
        updated = schema.with_field(field(0, "irq", "u32", default=5))
        assert updated.get_field("irq").default == 5
        assert not schema.get_field("irq").has_default

    def test_schema_to_dict(self):
        """Schema dict lists fields in wire order."""
        schema = StructSchema("Dev", 1, (field(1, "b", "u8"), field(0, "a", "u8")))
        d = schema.to_dict()
        assert d["name"] == "Dev"
        assert [f["name"] for f in d["fields"]] == ["a", "b"]
