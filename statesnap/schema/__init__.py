"""
Schema module for statesnap.

This module provides the static description of snapshotted structures:
- Type definitions (StructSchema, FieldDescriptor, VersionRange, FieldKind)
- Schema registry with startup validation and semantic hook points
- Compatibility checking between released schemas

Invariants:
    - Declared indices are immutable once published
    - Field lifetimes are monotonic (a removed field never returns)
    - All schemas must be registered and validated before the first save/load

How to change safely:
    - Bump the struct version, add fields with start = new version
    - End fields instead of deleting them
    - Use ``statesnap schema check`` before every release
"""

from .compat import (
    ChangeKind,
    CompatibilityError,
    SchemaChange,
    check_compatibility,
    generate_fingerprint,
    validate_breaking_changes,
)
from .registry import SchemaRegistry, freeze_registry, get_registry, reset_registry
from .types import (
    FieldDescriptor,
    FieldKind,
    SemanticHook,
    StructSchema,
    VersionRange,
    field,
)

__all__ = [
    # Types
    "FieldDescriptor",
    "FieldKind",
    "SemanticHook",
    "StructSchema",
    "VersionRange",
    "field",
    # Registry
    "SchemaRegistry",
    "get_registry",
    "freeze_registry",
    "reset_registry",
    # Compatibility
    "SchemaChange",
    "ChangeKind",
    "CompatibilityError",
    "check_compatibility",
    "generate_fingerprint",
    "validate_breaking_changes",
]
