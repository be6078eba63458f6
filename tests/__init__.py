"""
statesnap test suite.

This package contains:
- unit/: Unit tests per module (no I/O beyond temporary files)
- integration/: Save/load across application releases through SnapshotCodec
"""
