"""
Version map for statesnap.

The version map ties an application release to the version each
structure had in that release. It is the only place application
versions appear: the translators only ever see resolved per-structure
versions.

    app version 1: {Vm: 1, Queue: 1}
    app version 2: {Vm: 1, Queue: 2}   <- Queue gained a field
    app version 3: {Vm: 2, Queue: 2}

Invariants:
    - Application versions are 1, 2, 3, ... (append-only, contiguous)
    - A published application version never changes its structure versions
    - A structure not set in a release keeps its previous version (1 initially)
    - Structure versions never decrease from one release to the next

Example:
    >>> versions = VersionMap()
    >>> versions.new_version().set_type_version("Queue", 2)
    >>> versions.resolve(2)["Queue"]
    2
"""

from __future__ import annotations

import logging
import threading
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping

from ..errors import RegistryFrozenError, UnknownApplicationVersion
from ..schema.registry import SchemaRegistry

logger = logging.getLogger(__name__)


class VersionMap:
    """Ordered table from application version to structure versions.

    Thread-safety:
        - Mutation is guarded by an internal lock
        - resolve() after freeze is lock-free and side-effect free
    """

    def __init__(self) -> None:
        """Create a map with application version 1 and no explicit entries."""
        self._releases: list[Dict[str, int]] = [{}]
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def latest_version(self) -> int:
        """Newest published application version."""
        return len(self._releases)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def new_version(self) -> VersionMap:
        """Publish the next application version (inheriting all struct versions).

        Returns:
            self, so that ``set_type_version`` calls can be chained
        """
        with self._lock:
            self._check_mutable("add an application version")
            self._releases.append(dict(self._releases[-1]))
            logger.debug(f"Added application version {len(self._releases)}")
        return self

    def set_type_version(self, struct_name: str, version: int) -> VersionMap:
        """Set a structure's version in the latest application version.

        Raises:
            RegistryFrozenError: If the map is frozen
            ValueError: If version < 1
        """
        if version < 1:
            raise ValueError(f"Struct version must be >= 1, got {version}")
        with self._lock:
            self._check_mutable(f"set version of '{struct_name}'")
            self._releases[-1][struct_name] = version
        return self

    def _check_mutable(self, action: str) -> None:
        if self._frozen:
            raise RegistryFrozenError(f"Cannot {action}: version map is frozen")

    def resolve(self, application_version: int) -> Mapping[str, int]:
        """Structure versions used by an application release.

        Structures absent from the returned mapping are at version 1.

        Raises:
            UnknownApplicationVersion: If the release was never published
        """
        if not 1 <= application_version <= len(self._releases):
            raise UnknownApplicationVersion(application_version, len(self._releases))
        return MappingProxyType(self._releases[application_version - 1])

    def type_version(self, application_version: int, struct_name: str) -> int:
        """Version of one structure in an application release."""
        return self.resolve(application_version).get(struct_name, 1)

    def __iter__(self) -> Iterator[tuple[int, Mapping[str, int]]]:
        for index, release in enumerate(self._releases, start=1):
            yield index, MappingProxyType(release)

    def __len__(self) -> int:
        return len(self._releases)

    def validate_against(self, registry: SchemaRegistry) -> list[str]:
        """Check the map against registered schemas.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []
        previous: Dict[str, int] = {}

        for app_version, release in enumerate(self._releases, start=1):
            for name, version in sorted(release.items()):
                schema = registry.get(name)
                if schema is None:
                    errors.append(
                        f"Application version {app_version} references unknown struct '{name}'"
                    )
                elif version > schema.version:
                    errors.append(
                        f"Application version {app_version} maps '{name}' to version "
                        f"{version}, but its current version is {schema.version}"
                    )
                if version < previous.get(name, 1):
                    errors.append(
                        f"Application version {app_version} maps '{name}' to version "
                        f"{version}, lower than {previous[name]} in the previous release"
                    )
            previous = release

        latest = self._releases[-1]
        for schema in registry.schemas():
            if latest.get(schema.name, 1) != schema.version:
                logger.warning(
                    f"Latest application version {len(self._releases)} maps "
                    f"'{schema.name}' to version {latest.get(schema.name, 1)}, "
                    f"current version is {schema.version}"
                )
        return errors

    def freeze(self) -> None:
        """Make the map immutable."""
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Version map is already frozen")
            self._frozen = True
            logger.info(f"Version map frozen with {len(self._releases)} application versions")

    def to_dict(self) -> dict[str, Any]:
        """Dictionary representation keyed by application version."""
        return {
            "versions": [
                {"application_version": index, "structs": dict(sorted(release.items()))}
                for index, release in enumerate(self._releases, start=1)
            ]
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VersionMap:
        """Create a map (not frozen) from its dictionary representation."""
        version_map = cls()
        entries = sorted(data.get("versions", []), key=lambda e: e["application_version"])
        for expected, entry in enumerate(entries, start=1):
            if entry["application_version"] != expected:
                raise ValueError(
                    f"Application versions must be contiguous from 1; "
                    f"expected {expected}, got {entry['application_version']}"
                )
            if expected > 1:
                version_map.new_version()
            for name, version in entry.get("structs", {}).items():
                version_map.set_type_version(name, version)
        return version_map
