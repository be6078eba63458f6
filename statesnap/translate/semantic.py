"""
Semantic translator chain for statesnap.

Structural translation only copies or defaults fields. Corrections that
depend on what a field means (a value that used to be an implicit
constant, a field derived from siblings) are expressed as semantic
hooks attached to fields at a version. For a translation spanning the
interval (low, high], exactly the hooks whose version falls inside it
run.

Upgrade (load, source S -> current V):
    deserialize hooks in ascending (version, declared index) order; each
    gets a read-only view of the whole union and returns the value for
    its own slot. Nested structures are upgraded before their parent.

Downgrade (save, current V -> target T):
    the union is cloned first; serialize hooks run in descending
    (version, declared index) order on the clone and update their own
    slot in place. A hook refuses an unrepresentable value with
    ``reject(reason)``. Parents are downgraded before nested structures.

Invariants:
    - The caller's union is never modified by a downgrade
    - A rejected downgrade aborts the whole save (no partial snapshot)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator

from ..errors import (
    SemanticHookError,
    SemanticRejection,
    TranslationError,
    UnrepresentableDowngrade,
)
from ..schema.registry import SchemaRegistry
from ..schema.types import FieldDescriptor, SemanticHook, StructSchema
from .structural import StructVersions, version_of
from .union import UnionValue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannedHook:
    """One hook scheduled for a translation."""

    version: int
    field: FieldDescriptor
    hook: SemanticHook


def plan_upgrade(schema: StructSchema, source_version: int) -> list[PlannedHook]:
    """Deserialize hooks for (S, V], ascending by (version, declared index)."""
    planned = [
        PlannedHook(hook.version, f, hook)
        for f in schema.ordered_fields
        for hook in f.deserialize_hooks
        if hook.applies(source_version, schema.version)
    ]
    planned.sort(key=lambda p: (p.version, p.field.index))
    return planned


def plan_downgrade(schema: StructSchema, target_version: int) -> list[PlannedHook]:
    """Serialize hooks for (T, V], descending by (version, declared index)."""
    planned = [
        PlannedHook(hook.version, f, hook)
        for f in schema.ordered_fields
        for hook in f.serialize_hooks
        if hook.applies(target_version, schema.version)
    ]
    planned.sort(key=lambda p: (p.version, p.field.index), reverse=True)
    return planned


def _nested_unions(union: UnionValue) -> Iterator[UnionValue]:
    for _, value in union.items():
        if isinstance(value, UnionValue):
            yield value
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, UnionValue):
                    yield item


class SemanticTranslator:
    """Applies semantic hooks around structural translation.

    Example:
        >>> chain = SemanticTranslator(registry)
        >>> upgraded = chain.upgrade(decoded, {"Queue": 1})
        >>> for_wire = chain.downgrade(current, {"Queue": 1})
    """

    def __init__(self, registry: SchemaRegistry) -> None:
        self.registry = registry

    def upgrade(self, union: UnionValue, versions: StructVersions) -> UnionValue:
        """Run deserialize hooks over a freshly decoded union, in place.

        Args:
            union: Union produced by the structural decoder (owned by the call)
            versions: Struct name -> source version

        Returns:
            The same union, corrected to current-version semantics
        """
        for nested in _nested_unions(union):
            self.upgrade(nested, versions)

        schema = union.schema
        source_version = version_of(schema, versions)
        for planned in plan_upgrade(schema, source_version):
            logger.debug(
                f"Upgrade hook {schema.name}.{planned.field.name}@{planned.version} "
                f"(source version {source_version})"
            )
            value = self._call(schema, planned, source_version, False, union.view())
            union[planned.field.index] = value
        return union

    def downgrade(self, union: UnionValue, versions: StructVersions) -> UnionValue:
        """Clone the union and run serialize hooks over the clone.

        Args:
            union: Current-version union (left unmodified)
            versions: Struct name -> target version

        Returns:
            A corrected clone ready for structural encoding

        Raises:
            UnrepresentableDowngrade: If a hook rejects the downgrade
            SemanticHookError: If a hook fails unexpectedly
        """
        clone = union.clone()
        self._downgrade_in_place(clone, versions)
        return clone

    def _downgrade_in_place(self, union: UnionValue, versions: StructVersions) -> None:
        schema = union.schema
        target_version = version_of(schema, versions)
        for planned in plan_downgrade(schema, target_version):
            logger.debug(
                f"Downgrade hook {schema.name}.{planned.field.name}@{planned.version} "
                f"(target version {target_version})"
            )
            self._call(schema, planned, target_version, True, union)

        for nested in _nested_unions(union):
            self._downgrade_in_place(nested, versions)

    @staticmethod
    def _call(
        schema: StructSchema,
        planned: PlannedHook,
        boundary_version: int,
        downgrade: bool,
        target: Any,
    ) -> Any:
        try:
            return planned.hook.fn(target, boundary_version)
        except SemanticRejection as e:
            if not downgrade:
                raise SemanticHookError(
                    schema.name, planned.field.name, planned.version, e
                ) from e
            raise UnrepresentableDowngrade(
                schema.name, planned.field.name, planned.version, boundary_version, e.reason
            ) from e
        except TranslationError:
            raise
        except Exception as e:
            raise SemanticHookError(schema.name, planned.field.name, planned.version, e) from e
