"""
statesnap - version-aware binary snapshots of in-memory state.

This package saves a tree of in-memory structures to a compact binary
snapshot and restores it later, possibly in a different release of the
same application:

    live state ──▶ UnionValue ──▶ downgrade hooks ──▶ structural encode ──▶ envelope
                                                                              │
                                                                              ▼
    live state ◀── projection ◀── upgrade hooks ◀── structural decode ◀── snapshot bytes

Architecture:
    - schema: data-driven description of every structure and its fields
    - translate: one generic structural translator plus the semantic hook chain
    - snapshot: envelope (magic, checksum, format version), version map, codec

Invariants:
    - A snapshot is only ever restored on the architecture that wrote it
    - Integrity is verified before any payload byte is interpreted
    - Declared indices and field lifetimes never change once published
    - Schemas and version maps are frozen before the first save or load

How to change safely:
    - Bump a struct's version to add or end fields; never edit a published one
    - Publish a new application version in the version map for every release
    - Run ``statesnap schema check`` against the previous lock file

Version: see statesnap/_version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
