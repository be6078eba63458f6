"""
Snapshot CLI tool for statesnap.

This tool inspects snapshots and manages schema lock files:
- inspect: Validate a snapshot envelope and print its header
- versions: Print the application version map of a schema module
- schema snapshot: Export the registered schemas to a JSON lock file
- schema check: Verify the registered schemas against a baseline lock

Usage:
    statesnap inspect vm.snap
    statesnap versions --module myapp.snapshot_schema
    statesnap schema snapshot --module myapp.snapshot_schema > schema.lock.json
    statesnap schema check --module myapp.snapshot_schema --baseline schema.lock.json

Schema modules expose ``registry`` (or ``get_registry()``) and, for the
versions command, ``version_map`` (or ``get_version_map()``).

Invariants:
    - Breaking changes and rejected snapshots cause a non-zero exit code
    - Lock files are deterministic (sorted JSON)

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for CI parsing
"""

from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys
from typing import Any, Optional

from ..architecture import Architecture, current_architecture
from ..config import CodecConfig
from ..errors import EnvelopeError
from ..logging_setup import setup_logging
from ..schema import SchemaRegistry, check_compatibility
from ..snapshot.envelope import SnapshotHeader, read_envelope
from ..snapshot.versions import VersionMap

logger = logging.getLogger(__name__)


class SnapshotCLI:
    """CLI tool for snapshot and schema management.

    Example:
        >>> cli = SnapshotCLI()
        >>> header = cli.inspect("vm.snap")
        >>> cli.check(registry, "schema.lock.json")
    """

    def inspect(self, path: str, architecture: Optional[Architecture] = None) -> SnapshotHeader:
        """Validate a snapshot file's envelope.

        Args:
            path: Snapshot file
            architecture: Expected architecture (running one if not provided)

        Returns:
            Validated header

        Raises:
            EnvelopeError: If the envelope is rejected
        """
        with open(path, "rb") as f:
            blob = f.read()
        header, _ = read_envelope(blob, architecture or current_architecture())
        return header

    def versions(self, version_map: VersionMap) -> list[dict[str, Any]]:
        """Version table rows, one per application version."""
        return version_map.to_dict()["versions"]

    def snapshot(self, registry: SchemaRegistry) -> str:
        """Export schema to a JSON lock.

        Args:
            registry: Schema registry to export

        Returns:
            JSON string representation
        """
        output = {
            "version": 1,
            "fingerprint": registry.fingerprint or "unfrozen",
            "schema": registry.to_dict(),
        }
        return json.dumps(output, indent=2, sort_keys=True)

    def check(
        self,
        registry: SchemaRegistry,
        baseline_path: str,
    ) -> tuple[bool, list[str]]:
        """Check compatibility with a baseline lock.

        Args:
            registry: Current schema registry
            baseline_path: Path to baseline schema JSON

        Returns:
            Tuple of (is_compatible, list_of_issues)
        """
        with open(baseline_path) as f:
            baseline_data = json.load(f)

        changes = check_compatibility(baseline_data, registry)
        issues = [str(change) for change in changes if change.is_breaking]
        return len(issues) == 0, issues


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="statesnap", description="statesnap snapshot and schema tool"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # inspect command
    inspect_parser = subparsers.add_parser("inspect", help="Validate and print a snapshot header")
    inspect_parser.add_argument("file", help="Snapshot file")
    inspect_parser.add_argument(
        "--arch", help="Expected architecture (default: STATESNAP_ARCH or detected)"
    )
    inspect_parser.add_argument(
        "--format", choices=["text", "json"], default="text", help="Output format"
    )

    # versions command
    versions_parser = subparsers.add_parser("versions", help="Print the application version map")
    versions_parser.add_argument(
        "--module", required=True, help="Python module containing the version map"
    )

    # schema commands
    schema_parser = subparsers.add_parser("schema", help="Schema lock management")
    schema_subparsers = schema_parser.add_subparsers(dest="schema_command", required=True)

    snapshot_parser = schema_subparsers.add_parser("snapshot", help="Export schema to JSON")
    snapshot_parser.add_argument("--module", help="Python module containing schema definitions")
    snapshot_parser.add_argument("--output", "-o", help="Output file (default: stdout)")

    check_parser = schema_subparsers.add_parser("check", help="Check compatibility with baseline")
    check_parser.add_argument(
        "--baseline", "-b", required=True, help="Path to baseline schema JSON"
    )
    check_parser.add_argument("--module", help="Python module containing schema definitions")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point for the statesnap tool."""
    args = build_parser().parse_args(argv)
    config = CodecConfig.from_env()
    setup_logging(config)
    cli = SnapshotCLI()

    if args.command == "inspect":
        arch_name = args.arch or config.snapshot.architecture
        try:
            header = cli.inspect(args.file, current_architecture(arch_name))
        except EnvelopeError as e:
            print(f"Snapshot rejected: [{e.code}] {e.message}", file=sys.stderr)
            return 1

        if args.format == "json":
            print(json.dumps(header.to_dict(), indent=2, sort_keys=True))
        else:
            for key, value in header.to_dict().items():
                print(f"{key:>16}: {value}")
        return 0

    if args.command == "versions":
        version_map = _load_version_map(args.module)
        for row in cli.versions(version_map):
            structs = ", ".join(f"{name}={v}" for name, v in row["structs"].items())
            print(f"  {row['application_version']:>4}: {structs or '(all at version 1)'}")
        return 0

    registry = _load_registry(args.module)
    if not registry.frozen:
        registry.freeze()

    if args.schema_command == "snapshot":
        output = cli.snapshot(registry)
        if args.output:
            with open(args.output, "w") as f:
                f.write(output)
            print(f"Schema exported to {args.output}", file=sys.stderr)
        else:
            print(output)
        return 0

    is_compatible, issues = cli.check(registry, args.baseline)
    if is_compatible:
        print("Schema is compatible with baseline")
        return 0
    print(f"Schema compatibility check FAILED with {len(issues)} breaking change(s):")
    for issue in issues:
        print(f"  - {issue}")
    return 1


def _load_registry(module_path: Optional[str] = None) -> SchemaRegistry:
    """Load schema registry from a module, or the global one."""
    if module_path:
        module = importlib.import_module(module_path)
        if hasattr(module, "registry"):
            return module.registry
        if hasattr(module, "get_registry"):
            return module.get_registry()
        raise ValueError(f"Module {module_path} has no 'registry' or 'get_registry()'")

    from ..schema import get_registry

    return get_registry()


def _load_version_map(module_path: str) -> VersionMap:
    module = importlib.import_module(module_path)
    if hasattr(module, "version_map"):
        return module.version_map
    if hasattr(module, "get_version_map"):
        return module.get_version_map()
    raise ValueError(f"Module {module_path} has no 'version_map' or 'get_version_map()'")


if __name__ == "__main__":
    sys.exit(main())
