"""
Command-line tools for statesnap.

This module provides:
- inspect: Validate a snapshot envelope and print its header
- versions: Print the application version map
- schema: Export and check schema lock files

Invariants:
    - Tools never modify snapshot files
    - Breaking schema changes produce a non-zero exit code
"""

from .snapshot_cli import SnapshotCLI

__all__ = ["SnapshotCLI"]
