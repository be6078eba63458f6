"""
Unit tests for schema compatibility checking.

Tests cover:
- Non-breaking evolution (new versions, new fields, removals)
- Breaking changes (renames, kind changes, reopened fields, deletions)
- Lock file input and fingerprints
"""

from enum import IntEnum

import pytest

from statesnap.schema.compat import (
    ChangeKind,
    CompatibilityError,
    check_compatibility,
    generate_fingerprint,
    validate_breaking_changes,
)
from statesnap.schema.registry import SchemaRegistry
from statesnap.schema.types import StructSchema, field


class StateV1(IntEnum):
    IDLE = 0
    RUNNING = 1


class StateV2(IntEnum):
    IDLE = 0
    RUNNING = 1
    PAUSED = 2


def _registry(*schemas: StructSchema) -> SchemaRegistry:
    registry = SchemaRegistry()
    for schema in schemas:
        registry.register(schema)
    return registry


def _kinds(changes):
    return {c.kind for c in changes}


BASE = StructSchema(
    "Queue",
    2,
    (
        field(0, "size", "u16"),
        field(1, "ready", "bool"),
        field(2, "legacy", "u8", end=2),
    ),
)


class TestNonBreakingChanges:
    """Changes every existing snapshot survives."""

    def test_identical_schema_has_no_changes(self):
        """Same schema produces no changes."""
        assert check_compatibility(_registry(BASE), _registry(BASE)) == []

    def test_new_version_with_new_field(self):
        """Adding a field in a new version is allowed."""
        new = StructSchema("Queue", 3, BASE.fields + (field(3, "event_idx", "bool", start=3),))
        changes = check_compatibility(_registry(BASE), _registry(new))

        assert _kinds(changes) == {ChangeKind.VERSION_BUMPED, ChangeKind.FIELD_ADDED}
        assert not any(c.is_breaking for c in changes)

    def test_ending_field_in_new_version(self):
        """Setting an end version after the published one is a removal."""
        new = StructSchema(
            "Queue",
            3,
            (field(0, "size", "u16"), field(1, "ready", "bool", end=3), BASE.fields[2]),
        )
        changes = check_compatibility(_registry(BASE), _registry(new))

        assert ChangeKind.FIELD_REMOVED in _kinds(changes)
        assert not any(c.is_breaking for c in changes)

    def test_struct_added(self):
        """New structs are allowed."""
        other = StructSchema("Device", 1, (field(0, "irq", "u32"),))
        changes = check_compatibility(_registry(BASE), _registry(BASE, other))

        assert _kinds(changes) == {ChangeKind.STRUCT_ADDED}

    def test_hook_and_default_added(self):
        """Adding hooks and defaults is allowed."""
        new = StructSchema(
            "Queue",
            2,
            (
                field(0, "size", "u16", default=256),
                field(1, "ready", "bool", start=1, de_fn=lambda v, s: True),
                BASE.fields[2],
            ),
        )
        changes = check_compatibility(_registry(BASE), _registry(new))

        assert _kinds(changes) == {ChangeKind.HOOK_ADDED, ChangeKind.DEFAULT_ADDED}

    def test_enum_member_added(self):
        """New enum members are allowed."""
        old = StructSchema("Vcpu", 1, (field(0, "state", "enum", enum_type=StateV1),))
        new = StructSchema("Vcpu", 1, (field(0, "state", "enum", enum_type=StateV2),))
        changes = check_compatibility(_registry(old), _registry(new))

        assert _kinds(changes) == {ChangeKind.ENUM_VALUE_ADDED}


class TestBreakingChanges:
    """Changes that would misread existing snapshots."""

    def test_field_renamed(self):
        """Renaming a field is breaking."""
        new = StructSchema(
            "Queue", 2, (field(0, "length", "u16"),) + BASE.fields[1:]
        )
        changes = check_compatibility(_registry(BASE), _registry(new))

        assert ChangeKind.FIELD_RENAMED in _kinds(changes)

    def test_kind_changed(self):
        """Changing a field's kind is breaking."""
        new = StructSchema("Queue", 2, (field(0, "size", "u32"),) + BASE.fields[1:])
        changes = check_compatibility(_registry(BASE), _registry(new))

        assert ChangeKind.FIELD_KIND_CHANGED in _kinds(changes)

    def test_index_changed(self):
        """Moving a field to another index drops the old one."""
        new = StructSchema(
            "Queue", 2, (field(5, "size", "u16"),) + BASE.fields[1:]
        )
        changes = check_compatibility(_registry(BASE), _registry(new))

        assert ChangeKind.FIELD_DROPPED in _kinds(changes)
        assert ChangeKind.FIELD_ADDED_TO_PUBLISHED_VERSION in _kinds(changes)

    def test_reopened_field(self):
        """Unsetting an end version is breaking."""
        new = StructSchema(
            "Queue", 2, BASE.fields[:2] + (field(2, "legacy", "u8"),)
        )
        changes = check_compatibility(_registry(BASE), _registry(new))

        assert ChangeKind.FIELD_REOPENED in _kinds(changes)

    def test_deleted_field(self):
        """Deleting a field instead of ending it is breaking."""
        new = StructSchema("Queue", 2, BASE.fields[:2])
        changes = check_compatibility(_registry(BASE), _registry(new))

        dropped = [c for c in changes if c.kind == ChangeKind.FIELD_DROPPED]
        assert len(dropped) == 1
        assert dropped[0].path == "Struct:Queue.field:legacy"

    def test_ending_field_in_published_version(self):
        """An end version at or before the published version is breaking."""
        new = StructSchema(
            "Queue", 2, (field(0, "size", "u16"), field(1, "ready", "bool", end=2), BASE.fields[2])
        )
        changes = check_compatibility(_registry(BASE), _registry(new))

        assert ChangeKind.FIELD_END_CHANGED in _kinds(changes)

    def test_version_decreased(self):
        """Struct versions never go backwards."""
        new = StructSchema("Queue", 1, BASE.fields)
        changes = check_compatibility(_registry(BASE), _registry(new))

        assert ChangeKind.VERSION_DECREASED in _kinds(changes)

    def test_struct_removed(self):
        """Removing a struct is breaking."""
        other = StructSchema("Device", 1, (field(0, "irq", "u32"),))
        changes = check_compatibility(_registry(BASE, other), _registry(BASE))

        assert _kinds(changes) == {ChangeKind.STRUCT_REMOVED}

    def test_enum_member_removed(self):
        """Removing an enum member is breaking."""
        old = StructSchema("Vcpu", 1, (field(0, "state", "enum", enum_type=StateV2),))
        new = StructSchema("Vcpu", 1, (field(0, "state", "enum", enum_type=StateV1),))
        changes = check_compatibility(_registry(old), _registry(new))

        assert ChangeKind.ENUM_VALUE_REMOVED in _kinds(changes)

    def test_validate_breaking_changes_raises(self):
        """validate_breaking_changes raises CompatibilityError with the changes."""
        new = StructSchema("Queue", 2, (field(0, "size", "u32"),) + BASE.fields[1:])

        with pytest.raises(CompatibilityError, match="1 breaking change") as exc_info:
            validate_breaking_changes(_registry(BASE), _registry(new))

        assert exc_info.value.code == "COMPATIBILITY_ERROR"
        assert exc_info.value.changes[0].kind == ChangeKind.FIELD_KIND_CHANGED


class TestLockFiles:
    """Tests for dict and lock file inputs."""

    def test_accepts_lock_file_dict(self):
        """A CLI lock file can be used as the baseline."""
        lock = {"version": 1, "schema": _registry(BASE).to_dict()}
        assert check_compatibility(lock, _registry(BASE)) == []

    def test_fingerprint_matches_registry(self):
        """generate_fingerprint agrees with the registry's own fingerprint."""
        registry = _registry(BASE)
        fingerprint = registry.freeze()

        assert generate_fingerprint(registry) == fingerprint
        assert generate_fingerprint(registry.to_dict()) == fingerprint
