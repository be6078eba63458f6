"""
Schema Registry for statesnap.

The SchemaRegistry is the central authority for all structure schemas.
It provides:
- Registration of structure schemas
- Hook points for semantic functions and default providers
- Startup validation of every schema (precondition for save/load)
- Schema fingerprinting for consistency checks
- Freeze mechanism to prevent runtime modifications

Invariants:
    - Registry is mutable during startup, frozen before any save/load
    - Freezing validates all schemas; a malformed schema never freezes
    - Struct names are globally unique
    - Fingerprint changes when the schema changes

How to change safely:
    - Register all schemas and hooks before calling freeze()
    - Run ``statesnap schema check`` against the lock file before release
    - Never modify registered schemas after freeze

Example:
    >>> from statesnap.schema import SchemaRegistry, StructSchema, field
    >>> registry = SchemaRegistry()
    >>> registry.register(StructSchema("Device", 1, (field(0, "irq", "u32"),)))
    >>> @registry.deserializer("Device", "irq", version=1)
    ... def fix_irq(view, source_version):
    ...     return view["irq"]
    >>> registry.freeze()
    'sha256:...'
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
import threading
from typing import Any, Callable, Dict, Iterator, Optional

from ..errors import DuplicateRegistrationError, RegistryFrozenError, SchemaError
from .types import (
    DefaultProvider,
    DeserializeFn,
    FieldDescriptor,
    SemanticHook,
    SerializeFn,
    StructSchema,
)

logger = logging.getLogger(__name__)

# Global registry instance
_global_registry: Optional[SchemaRegistry] = None
_registry_lock = threading.Lock()


class SchemaRegistry:
    """Central registry for all structure schemas.

    Thread-safety:
        - Registration is thread-safe (uses internal lock)
        - Lookups after freeze are lock-free
        - Freeze is atomic and irreversible

    Attributes:
        frozen: Whether the registry is frozen (immutable)
        fingerprint: SHA-256 hash of the schema (computed on freeze)
    """

    def __init__(self) -> None:
        """Initialize an empty, mutable registry."""
        self._schemas: Dict[str, StructSchema] = {}
        self._frozen = False
        self._fingerprint: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        """Whether the registry is frozen."""
        return self._frozen

    @property
    def fingerprint(self) -> Optional[str]:
        """Schema fingerprint (available after freeze)."""
        return self._fingerprint

    def register(self, schema: StructSchema) -> StructSchema:
        """Register a structure schema.

        Args:
            schema: The schema to register

        Returns:
            The registered schema

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateRegistrationError: If the name is already registered
        """
        with self._lock:
            self._check_mutable(f"register struct '{schema.name}'")
            if schema.name in self._schemas:
                raise DuplicateRegistrationError(
                    f"Struct name '{schema.name}' already registered",
                    struct_name=schema.name,
                )
            self._schemas[schema.name] = schema
            logger.debug(
                f"Registered struct: {schema.name} (version={schema.version}, "
                f"fields={len(schema.fields)})"
            )
            return schema

    def add_serialize_hook(
        self, struct_name: str, field_name: str, version: int, fn: SerializeFn
    ) -> None:
        """Attach a downgrade hook to a field at ``version``.

        The hook runs when saving to a target version T with
        T < version <= V.
        """
        self._update_field(
            struct_name,
            field_name,
            lambda f: dataclasses.replace(
                f, serialize_hooks=f.serialize_hooks + (SemanticHook(version, fn),)
            ),
        )

    def add_deserialize_hook(
        self, struct_name: str, field_name: str, version: int, fn: DeserializeFn
    ) -> None:
        """Attach an upgrade hook to a field at ``version``.

        The hook runs when loading from a source version S with
        S < version <= V.
        """
        self._update_field(
            struct_name,
            field_name,
            lambda f: dataclasses.replace(
                f, deserialize_hooks=f.deserialize_hooks + (SemanticHook(version, fn),)
            ),
        )

    def set_default_provider(
        self, struct_name: str, field_name: str, provider: DefaultProvider
    ) -> None:
        """Set the ``fn(version) -> value`` used when a field is absent."""
        self._update_field(
            struct_name,
            field_name,
            lambda f: dataclasses.replace(f, default_provider=provider),
        )

    def serializer(
        self, struct_name: str, field_name: str, version: int
    ) -> Callable[[SerializeFn], SerializeFn]:
        """Decorator form of ``add_serialize_hook``."""

        def decorator(fn: SerializeFn) -> SerializeFn:
            self.add_serialize_hook(struct_name, field_name, version, fn)
            return fn

        return decorator

    def deserializer(
        self, struct_name: str, field_name: str, version: int
    ) -> Callable[[DeserializeFn], DeserializeFn]:
        """Decorator form of ``add_deserialize_hook``."""

        def decorator(fn: DeserializeFn) -> DeserializeFn:
            self.add_deserialize_hook(struct_name, field_name, version, fn)
            return fn

        return decorator

    def _update_field(
        self,
        struct_name: str,
        field_name: str,
        update: Callable[[FieldDescriptor], FieldDescriptor],
    ) -> None:
        with self._lock:
            self._check_mutable(f"modify '{struct_name}.{field_name}'")
            schema = self._schemas.get(struct_name)
            if schema is None:
                raise SchemaError(f"Unknown struct '{struct_name}'", struct_name=struct_name)
            target = schema.get_field(field_name)
            if target is None:
                raise SchemaError(
                    f"Struct '{struct_name}' has no field '{field_name}'",
                    struct_name=struct_name,
                )
            self._schemas[struct_name] = schema.with_field(update(target))
            logger.debug(f"Updated field {struct_name}.{field_name}")

    def _check_mutable(self, action: str) -> None:
        if self._frozen:
            raise RegistryFrozenError(f"Cannot {action}: registry is frozen")

    def get(self, name: str) -> Optional[StructSchema]:
        """Get a schema by struct name."""
        return self._schemas.get(name)

    def require(self, name: str) -> StructSchema:
        """Get a schema by struct name.

        Raises:
            SchemaError: If the struct is not registered
        """
        schema = self._schemas.get(name)
        if schema is None:
            raise SchemaError(f"Unknown struct '{name}'", struct_name=name)
        return schema

    def __contains__(self, name: object) -> bool:
        return name in self._schemas

    def schemas(self) -> Iterator[StructSchema]:
        """Iterate over all registered schemas."""
        yield from self._schemas.values()

    def validate_all(self) -> list[str]:
        """Validate all registered schemas for consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        for schema in self._schemas.values():
            errors.extend(schema.validate())
            for f in schema.fields:
                if f.struct_name and f.struct_name not in self._schemas:
                    errors.append(
                        f"Field '{schema.name}.{f.name}' references unknown "
                        f"struct '{f.struct_name}'"
                    )

        errors.extend(self._find_cycles())
        return errors

    def _find_cycles(self) -> list[str]:
        """Report nested-struct reference cycles (a struct cannot contain itself)."""
        errors: list[str] = []
        visiting: set[str] = set()
        done: set[str] = set()

        def visit(name: str, path: list[str]) -> None:
            if name in done or name not in self._schemas:
                return
            if name in visiting:
                cycle = path[path.index(name):] + [name]
                errors.append(f"Struct reference cycle: {' -> '.join(cycle)}")
                return
            visiting.add(name)
            for child in sorted(self._schemas[name].nested_struct_names()):
                visit(child, path + [name])
            visiting.discard(name)
            done.add(name)

        for name in sorted(self._schemas):
            visit(name, [])
        return errors

    def freeze(self) -> str:
        """Validate, freeze the registry and compute the fingerprint.

        Returns:
            Schema fingerprint string

        Raises:
            RegistryFrozenError: If already frozen
            SchemaError: If any schema is malformed
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")

            errors = self.validate_all()
            if errors:
                raise SchemaError(
                    f"Schema validation failed with {len(errors)} error(s):\n"
                    + "\n".join(f"  - {e}" for e in errors),
                    errors=errors,
                )

            self._fingerprint = self._compute_fingerprint()
            self._frozen = True
            logger.info(
                f"Schema registry frozen with {len(self._schemas)} structs, "
                f"fingerprint={self._fingerprint}"
            )
            return self._fingerprint

    def _compute_fingerprint(self) -> str:
        """Compute SHA-256 fingerprint from the canonical JSON form."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        hash_bytes = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        return f"sha256:{hash_bytes}"

    def to_dict(self) -> dict[str, Any]:
        """Convert registry to dictionary representation, sorted by name."""
        return {
            "structs": [self._schemas[name].to_dict() for name in sorted(self._schemas)]
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        """Convert registry to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)


def get_registry() -> SchemaRegistry:
    """Get the global schema registry, creating it if none exists."""
    global _global_registry
    with _registry_lock:
        if _global_registry is None:
            _global_registry = SchemaRegistry()
        return _global_registry


def freeze_registry() -> str:
    """Freeze the global registry.

    This should be called after all schemas and hooks are registered
    and before the first save or load.

    Returns:
        Schema fingerprint
    """
    return get_registry().freeze()


def reset_registry() -> None:
    """Reset the global registry (for testing only)."""
    global _global_registry
    with _registry_lock:
        _global_registry = None
