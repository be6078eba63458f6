"""
Unit tests for schema registry.

Tests cover:
- Struct registration
- Hook points and default providers
- Startup validation (nested references, cycles)
- Registry freezing and fingerprints
"""

import pytest

from statesnap.errors import DuplicateRegistrationError, RegistryFrozenError, SchemaError
from statesnap.schema.registry import (
    SchemaRegistry,
    freeze_registry,
    get_registry,
    reset_registry,
)
from statesnap.schema.types import StructSchema, field


def _device() -> StructSchema:
    return StructSchema("Device", 2, (field(0, "irq", "u32"), field(1, "vector", "u16", start=2)))


class TestSchemaRegistry:
    """Tests for SchemaRegistry."""

    def test_register_struct(self):
        """Can register and look up a struct."""
        registry = SchemaRegistry()
        device = registry.register(_device())

        assert registry.get("Device") == device
        assert registry.require("Device") == device
        assert "Device" in registry
        assert "Missing" not in registry

    def test_require_unknown_raises(self):
        """require() raises SchemaError for unknown structs."""
        registry = SchemaRegistry()
        with pytest.raises(SchemaError, match="Unknown struct 'Missing'"):
            registry.require("Missing")

    def test_duplicate_name_raises(self):
        """Registering the same struct name twice raises."""
        registry = SchemaRegistry()
        registry.register(_device())

        with pytest.raises(DuplicateRegistrationError, match="'Device' already registered"):
            registry.register(_device())

    def test_add_deserialize_hook(self):
        """Hooks attached through the registry land on the field."""
        registry = SchemaRegistry()
        registry.register(_device())

        def fill_vector(view, source_version):
            return view["irq"] + 32

        registry.add_deserialize_hook("Device", "vector", 2, fill_vector)

        vector = registry.require("Device").get_field("vector")
        assert [(h.version, h.fn) for h in vector.deserialize_hooks] == [(2, fill_vector)]

    def test_hook_decorators(self):
        """serializer/deserializer decorators register and return the function."""
        registry = SchemaRegistry()
        registry.register(_device())

        @registry.serializer("Device", "vector", version=2)
        def drop_vector(union, target_version):
            union["vector"] = 0

        @registry.deserializer("Device", "irq", version=2)
        def keep_irq(view, source_version):
            return view["irq"]

        device = registry.require("Device")
        assert device.get_field("vector").serialize_hooks[0].fn is drop_vector
        assert device.get_field("irq").deserialize_hooks[0].version == 2

    def test_set_default_provider(self):
        """Default providers can be set after registration."""
        registry = SchemaRegistry()
        registry.register(_device())
        registry.set_default_provider("Device", "vector", lambda version: 64)

        assert registry.require("Device").get_field("vector").static_default(1) == 64

    def test_hook_on_unknown_field_raises(self):
        """Attaching to a missing field raises SchemaError."""
        registry = SchemaRegistry()
        registry.register(_device())

        with pytest.raises(SchemaError, match="has no field 'missing'"):
            registry.add_deserialize_hook("Device", "missing", 1, lambda v, s: 0)
        with pytest.raises(SchemaError, match="Unknown struct 'Nope'"):
            registry.set_default_provider("Nope", "irq", lambda v: 0)

    def test_unknown_nested_struct(self):
        """Nested references must resolve to registered structs."""
        registry = SchemaRegistry()
        registry.register(StructSchema("Vm", 1, (field(0, "dev", "struct", struct="Device"),)))

        errors = registry.validate_all()
        assert any("references unknown struct 'Device'" in e for e in errors)

    def test_reference_cycle(self):
        """A struct cannot contain itself, directly or indirectly."""
        registry = SchemaRegistry()
        registry.register(StructSchema("A", 1, (field(0, "b", "struct", struct="B"),)))
        registry.register(
            StructSchema("B", 1, (field(0, "a", "list", element="struct", struct="A"),))
        )

        errors = registry.validate_all()
        assert any("Struct reference cycle: A -> B -> A" in e for e in errors)


class TestRegistryFreeze:
    """Tests for registry freezing."""

    def test_freeze_returns_fingerprint(self):
        """Freezing returns a sha256 fingerprint."""
        registry = SchemaRegistry()
        registry.register(_device())

        fingerprint = registry.freeze()

        assert fingerprint.startswith("sha256:")
        assert registry.frozen
        assert registry.fingerprint == fingerprint

    def test_register_after_freeze_raises(self):
        """Cannot register after freeze."""
        registry = SchemaRegistry()
        registry.freeze()

        with pytest.raises(RegistryFrozenError, match="registry is frozen"):
            registry.register(_device())

    def test_hook_after_freeze_raises(self):
        """Cannot attach hooks after freeze."""
        registry = SchemaRegistry()
        registry.register(_device())
        registry.freeze()

        with pytest.raises(RegistryFrozenError):
            registry.add_serialize_hook("Device", "vector", 2, lambda u, t: None)

    def test_double_freeze_raises(self):
        """Freezing twice raises."""
        registry = SchemaRegistry()
        registry.freeze()

        with pytest.raises(RegistryFrozenError, match="already frozen"):
            registry.freeze()

    def test_freeze_rejects_malformed_schema(self):
        """A malformed schema never freezes."""
        registry = SchemaRegistry()
        registry.register(StructSchema("Dev", 1, (field(0, "a", "u8"), field(0, "b", "u8"))))

        with pytest.raises(SchemaError, match="validation failed") as exc_info:
            registry.freeze()

        assert not registry.frozen
        assert len(exc_info.value.errors) == 1

    def test_fingerprint_is_deterministic(self):
        """Same schemas, in any registration order, give the same fingerprint."""
        r1 = SchemaRegistry()
        r1.register(_device())
        r1.register(StructSchema("Queue", 1, (field(0, "size", "u16"),)))

        r2 = SchemaRegistry()
        r2.register(StructSchema("Queue", 1, (field(0, "size", "u16"),)))
        r2.register(_device())

        assert r1.freeze() == r2.freeze()

    def test_fingerprint_changes_with_schema(self):
        """Adding a field changes the fingerprint."""
        r1 = SchemaRegistry()
        r1.register(StructSchema("Queue", 1, (field(0, "size", "u16"),)))

        r2 = SchemaRegistry()
        r2.register(
            StructSchema("Queue", 2, (field(0, "size", "u16"), field(1, "ready", "bool", start=2)))
        )

        assert r1.freeze() != r2.freeze()


class TestGlobalRegistry:
    """Tests for the process-wide registry."""

    def setup_method(self):
        reset_registry()

    def teardown_method(self):
        reset_registry()

    def test_get_registry_is_singleton(self):
        """get_registry returns the same instance until reset."""
        assert get_registry() is get_registry()

    def test_freeze_registry(self):
        """freeze_registry freezes the global registry."""
        get_registry().register(_device())
        fingerprint = freeze_registry()

        assert get_registry().frozen
        assert get_registry().fingerprint == fingerprint
