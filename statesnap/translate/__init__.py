"""
Translation engine for statesnap.

This module moves structure values across versions:
- UnionValue: superset working value holding every field ever declared
- StructuralTranslator: meaning-agnostic encode/decode at a version
- SemanticTranslator: user hooks correcting or rejecting values
- Primitive codecs selected by the snapshot format version

Invariants:
    - Wire order is declared-index order for every version
    - Downgrades work on a clone; the caller's value is never modified
"""

from .primitives import (
    LATEST_FORMAT_VERSION,
    SUPPORTED_FORMAT_VERSIONS,
    ByteReader,
    ByteWriter,
    PrimitiveCodec,
    VarintCodec,
    get_codec,
)
from .semantic import PlannedHook, SemanticTranslator, plan_downgrade, plan_upgrade
from .structural import StructuralTranslator, version_of
from .union import UnionValue, UnionView, default_for, empty_union, from_live, to_live

__all__ = [
    # Union
    "UnionValue",
    "UnionView",
    "default_for",
    "empty_union",
    "from_live",
    "to_live",
    # Primitives
    "ByteReader",
    "ByteWriter",
    "PrimitiveCodec",
    "VarintCodec",
    "get_codec",
    "SUPPORTED_FORMAT_VERSIONS",
    "LATEST_FORMAT_VERSION",
    # Structural
    "StructuralTranslator",
    "version_of",
    # Semantic
    "SemanticTranslator",
    "PlannedHook",
    "plan_upgrade",
    "plan_downgrade",
]
