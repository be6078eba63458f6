"""
Schema evolution checking for statesnap.

A published schema is a contract with every snapshot already written.
This module compares a baseline (previously released) schema set with
a new one and reports every change:
- Declared indices, kinds and names are immutable
- Field lifetimes are monotonic: an end version is never unset or moved
- New fields only appear in versions newer than the baseline's current
- Structure versions never decrease

Invariants:
    - Breaking changes are NEVER allowed
    - Compatibility is checked before release (``statesnap schema check``)

Example:
    >>> from statesnap.schema.compat import check_compatibility
    >>> changes = check_compatibility(baseline_registry, registry)
    >>> breaking = [c for c in changes if c.is_breaking]
    >>> if breaking:
    ...     raise CompatibilityError(breaking)
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Union

from ..errors import SchemaError
from .registry import SchemaRegistry

logger = logging.getLogger(__name__)

SchemaSource = Union[SchemaRegistry, Dict[str, Any]]


class ChangeKind(Enum):
    """Types of schema changes."""

    # Non-breaking changes (allowed)
    STRUCT_ADDED = auto()
    VERSION_BUMPED = auto()
    FIELD_ADDED = auto()
    FIELD_REMOVED = auto()  # end version set
    HOOK_ADDED = auto()
    DEFAULT_ADDED = auto()
    DESCRIPTION_CHANGED = auto()
    ENUM_VALUE_ADDED = auto()

    # Breaking changes (forbidden)
    STRUCT_REMOVED = auto()
    VERSION_DECREASED = auto()
    FIELD_DROPPED = auto()  # field deleted from the schema instead of ended
    FIELD_RENAMED = auto()
    FIELD_KIND_CHANGED = auto()
    FIELD_START_CHANGED = auto()
    FIELD_END_CHANGED = auto()
    FIELD_REOPENED = auto()
    FIELD_ADDED_TO_PUBLISHED_VERSION = auto()
    SKIP_CHANGED = auto()
    NESTED_TYPE_CHANGED = auto()
    ENUM_VALUE_REMOVED = auto()
    ENUM_VALUE_CHANGED = auto()

    @property
    def is_breaking(self) -> bool:
        """Whether this change kind is a breaking change."""
        return self not in _NON_BREAKING


_NON_BREAKING = {
    ChangeKind.STRUCT_ADDED,
    ChangeKind.VERSION_BUMPED,
    ChangeKind.FIELD_ADDED,
    ChangeKind.FIELD_REMOVED,
    ChangeKind.HOOK_ADDED,
    ChangeKind.DEFAULT_ADDED,
    ChangeKind.DESCRIPTION_CHANGED,
    ChangeKind.ENUM_VALUE_ADDED,
}


@dataclass
class SchemaChange:
    """A single schema change between two releases.

    Attributes:
        kind: The type of change
        path: Path to the changed element (e.g. "Struct:Queue.field:size")
        old_value: Previous value (if applicable)
        new_value: New value (if applicable)
        message: Human-readable description of the change
    """

    kind: ChangeKind
    path: str
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None
    message: str = ""

    @property
    def is_breaking(self) -> bool:
        return self.kind.is_breaking

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.name,
            "path": self.path,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "message": self.message,
            "is_breaking": self.is_breaking,
        }

    def __str__(self) -> str:
        status = "BREAKING" if self.is_breaking else "OK"
        return f"[{status}] {self.kind.name}: {self.path} - {self.message}"


class CompatibilityError(SchemaError):
    """Raised when breaking schema changes are detected.

    Attributes:
        changes: List of breaking changes detected
    """

    def __init__(self, changes: List[SchemaChange]):
        self.changes = changes
        messages = [str(c) for c in changes]
        super().__init__(
            f"Schema compatibility check failed with {len(changes)} breaking change(s):\n"
            + "\n".join(messages),
            errors=messages,
        )
        self.code = "COMPATIBILITY_ERROR"


def _as_dict(source: SchemaSource) -> Dict[str, dict]:
    data = source.to_dict() if isinstance(source, SchemaRegistry) else source
    # Accept both raw registry dicts and CLI lock files.
    data = data.get("schema", data)
    return {s["name"]: s for s in data.get("structs", [])}


def check_compatibility(old: SchemaSource, new: SchemaSource) -> List[SchemaChange]:
    """Check compatibility between two schema releases.

    Args:
        old: The baseline (released) schema, registry or dict form
        new: The schema about to be released

    Returns:
        List of SchemaChange objects describing all differences
    """
    changes: List[SchemaChange] = []
    old_structs = _as_dict(old)
    new_structs = _as_dict(new)

    for name, old_struct in old_structs.items():
        if name not in new_structs:
            changes.append(SchemaChange(
                kind=ChangeKind.STRUCT_REMOVED,
                path=f"Struct:{name}",
                message=f"Struct '{name}' was removed",
            ))

    for name, new_struct in new_structs.items():
        if name not in old_structs:
            changes.append(SchemaChange(
                kind=ChangeKind.STRUCT_ADDED,
                path=f"Struct:{name}",
                new_value=new_struct["version"],
                message=f"Struct '{name}' added at version {new_struct['version']}",
            ))
        else:
            changes.extend(_check_struct_diff(old_structs[name], new_struct))

    return changes


def _check_struct_diff(old_struct: dict, new_struct: dict) -> List[SchemaChange]:
    """Check differences between two releases of a structure."""
    changes: List[SchemaChange] = []
    path_prefix = f"Struct:{old_struct['name']}"
    old_version = old_struct["version"]
    new_version = new_struct["version"]

    if new_version < old_version:
        changes.append(SchemaChange(
            kind=ChangeKind.VERSION_DECREASED,
            path=path_prefix,
            old_value=old_version,
            new_value=new_version,
            message=f"Version decreased from {old_version} to {new_version}",
        ))
    elif new_version > old_version:
        changes.append(SchemaChange(
            kind=ChangeKind.VERSION_BUMPED,
            path=path_prefix,
            old_value=old_version,
            new_value=new_version,
            message=f"Version bumped from {old_version} to {new_version}",
        ))

    if old_struct.get("description", "") != new_struct.get("description", ""):
        changes.append(SchemaChange(
            kind=ChangeKind.DESCRIPTION_CHANGED,
            path=path_prefix,
            message="Description changed",
        ))

    old_fields = {f["index"]: f for f in old_struct.get("fields", [])}
    new_fields = {f["index"]: f for f in new_struct.get("fields", [])}

    for index, old_field in old_fields.items():
        if index not in new_fields:
            changes.append(SchemaChange(
                kind=ChangeKind.FIELD_DROPPED,
                path=f"{path_prefix}.field:{old_field['name']}",
                old_value=index,
                message=(
                    f"Field '{old_field['name']}' (index={index}) was deleted; "
                    "set its end version instead"
                ),
            ))

    for index, new_field in new_fields.items():
        path = f"{path_prefix}.field:{new_field['name']}"
        if index not in old_fields:
            start = new_field["range"]["start"]
            if start <= old_version:
                changes.append(SchemaChange(
                    kind=ChangeKind.FIELD_ADDED_TO_PUBLISHED_VERSION,
                    path=path,
                    new_value=start,
                    message=(
                        f"Field '{new_field['name']}' added with start version {start}, "
                        f"but version {old_version} is already published"
                    ),
                ))
            else:
                changes.append(SchemaChange(
                    kind=ChangeKind.FIELD_ADDED,
                    path=path,
                    new_value=index,
                    message=f"Field '{new_field['name']}' (index={index}) added at version {start}",
                ))
        else:
            changes.extend(_check_field_diff(old_fields[index], new_field, path, old_version))

    return changes


def _check_field_diff(
    old_field: dict,
    new_field: dict,
    path: str,
    old_version: int,
) -> List[SchemaChange]:
    """Check differences between two releases of a field."""
    changes: List[SchemaChange] = []

    if old_field["name"] != new_field["name"]:
        changes.append(SchemaChange(
            kind=ChangeKind.FIELD_RENAMED,
            path=path,
            old_value=old_field["name"],
            new_value=new_field["name"],
            message=f"Field renamed from '{old_field['name']}' to '{new_field['name']}'",
        ))

    if old_field["kind"] != new_field["kind"] or old_field.get("element") != new_field.get(
        "element"
    ):
        changes.append(SchemaChange(
            kind=ChangeKind.FIELD_KIND_CHANGED,
            path=path,
            old_value=old_field["kind"],
            new_value=new_field["kind"],
            message=f"Field kind changed from '{old_field['kind']}' to '{new_field['kind']}'",
        ))

    if old_field.get("struct") != new_field.get("struct"):
        changes.append(SchemaChange(
            kind=ChangeKind.NESTED_TYPE_CHANGED,
            path=path,
            old_value=old_field.get("struct"),
            new_value=new_field.get("struct"),
            message="Nested struct type changed",
        ))

    if bool(old_field.get("skip")) != bool(new_field.get("skip")):
        changes.append(SchemaChange(
            kind=ChangeKind.SKIP_CHANGED,
            path=path,
            message="Skip flag changed",
        ))

    old_range = old_field["range"]
    new_range = new_field["range"]
    if old_range["start"] != new_range["start"]:
        changes.append(SchemaChange(
            kind=ChangeKind.FIELD_START_CHANGED,
            path=path,
            old_value=old_range["start"],
            new_value=new_range["start"],
            message=f"Start version changed from {old_range['start']} to {new_range['start']}",
        ))

    old_end = old_range.get("end")
    new_end = new_range.get("end")
    if old_end is not None and new_end is None:
        changes.append(SchemaChange(
            kind=ChangeKind.FIELD_REOPENED,
            path=path,
            old_value=old_end,
            message=f"Field removed in version {old_end} was re-opened",
        ))
    elif old_end is not None and old_end != new_end:
        changes.append(SchemaChange(
            kind=ChangeKind.FIELD_END_CHANGED,
            path=path,
            old_value=old_end,
            new_value=new_end,
            message=f"End version changed from {old_end} to {new_end}",
        ))
    elif old_end is None and new_end is not None:
        if new_end <= old_version:
            changes.append(SchemaChange(
                kind=ChangeKind.FIELD_END_CHANGED,
                path=path,
                new_value=new_end,
                message=(
                    f"Field removed in version {new_end}, but version {old_version} "
                    "is already published"
                ),
            ))
        else:
            changes.append(SchemaChange(
                kind=ChangeKind.FIELD_REMOVED,
                path=path,
                new_value=new_end,
                message=f"Field removed in version {new_end}",
            ))

    if _hook_versions(new_field) - _hook_versions(old_field):
        changes.append(SchemaChange(
            kind=ChangeKind.HOOK_ADDED,
            path=path,
            message="Semantic hook added",
        ))

    if not old_field.get("has_default") and new_field.get("has_default"):
        changes.append(SchemaChange(
            kind=ChangeKind.DEFAULT_ADDED,
            path=path,
            message="Default provider added",
        ))

    old_enum = old_field.get("enum")
    new_enum = new_field.get("enum")
    if old_enum or new_enum:
        changes.extend(_check_enum_values(old_enum or {}, new_enum or {}, path))

    return changes


def _hook_versions(field_dict: dict) -> set[tuple[str, int]]:
    return {("ser", v) for v in field_dict.get("serialize_hooks", [])} | {
        ("de", v) for v in field_dict.get("deserialize_hooks", [])
    }


def _check_enum_values(
    old_values: Dict[str, int],
    new_values: Dict[str, int],
    path: str,
) -> List[SchemaChange]:
    """Check enum member changes; discriminants are on the wire."""
    changes: List[SchemaChange] = []

    for name, value in old_values.items():
        if name not in new_values:
            changes.append(SchemaChange(
                kind=ChangeKind.ENUM_VALUE_REMOVED,
                path=path,
                old_value=name,
                message=f"Enum member '{name}' was removed",
            ))
        elif new_values[name] != value:
            changes.append(SchemaChange(
                kind=ChangeKind.ENUM_VALUE_CHANGED,
                path=path,
                old_value=value,
                new_value=new_values[name],
                message=f"Enum member '{name}' changed from {value} to {new_values[name]}",
            ))

    for name in new_values.keys() - old_values.keys():
        changes.append(SchemaChange(
            kind=ChangeKind.ENUM_VALUE_ADDED,
            path=path,
            new_value=name,
            message=f"Enum member '{name}' was added",
        ))

    return changes


def generate_fingerprint(source: SchemaSource) -> str:
    """Generate a schema fingerprint from a registry or its dict form.

    Returns:
        Fingerprint string in format 'sha256:<hash>'
    """
    schema_dict = source.to_dict() if isinstance(source, SchemaRegistry) else source
    canonical = json.dumps(schema_dict, sort_keys=True, separators=(",", ":"))
    hash_bytes = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"sha256:{hash_bytes}"


def validate_breaking_changes(old: SchemaSource, new: SchemaSource) -> None:
    """Validate that there are no breaking changes.

    Raises:
        CompatibilityError: If breaking changes are detected
    """
    changes = check_compatibility(old, new)
    breaking = [c for c in changes if c.is_breaking]
    if breaking:
        raise CompatibilityError(breaking)
    logger.info(f"Schema compatibility check passed with {len(changes)} non-breaking changes")
