"""Domain Types: rich types that replace bare primitives across the mapper.

Invariants:
    - FieldName and QualifiedName wrap str: never pass bare strings between modules
    - A ProfileKey is derived from module-qualified class names only
    - All valid states and codes encoded as Enums: no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: diagnostics serialize to JSON without custom encoders
    - Module-qualified names in ProfileKey: two classes named `Source` in different
      modules never share a profile
"""

from dataclasses import dataclass
from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

FieldName = NewType("FieldName", str)
QualifiedName = NewType("QualifiedName", str)


def qualified_name(tp: type) -> QualifiedName:
    """`module.QualName` for a class; falls back to repr() for non-classes."""
    module = getattr(tp, "__module__", None)
    qualname = getattr(tp, "__qualname__", None)
    if module is None or qualname is None:
        return QualifiedName(repr(tp))
    return QualifiedName(f"{module}.{qualname}")


@dataclass(frozen=True)
class ProfileKey:
    """Unique key of a registered (source, destination) type pair."""
    source: QualifiedName
    destination: QualifiedName

    @classmethod
    def of(cls, source_type: type, destination_type: type) -> "ProfileKey":
        return cls(qualified_name(source_type), qualified_name(destination_type))

    def __str__(self) -> str:
        return f"{self.source}_{self.destination}"


# ─── Limits ──────────────────────────────────────────────────────

DEFAULT_TAG_NAME = "mapper"
DEFAULT_MAX_DEPTH = 64
# Each nesting level costs a few interpreter frames; stay well under the
# default recursion limit of 1000
MAX_DEPTH_CEILING = 200


# ─── Enums ───────────────────────────────────────────────────────

class ShapeKind(str, Enum):
    """Structural category of a declared type. Closed: OPAQUE is the fallback."""
    RECORD = "record"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    OPTIONAL = "optional"
    SCALAR = "scalar"
    OPAQUE = "opaque"


class RecordFlavor(str, Enum):
    """How a record type declares its fields."""
    DATACLASS = "dataclass"
    PYDANTIC = "pydantic"


class MapperState(str, Enum):
    """Mapper lifecycle: registrations accepted, then profiles frozen."""
    UNBUILT = "unbuilt"
    BUILT = "built"


class DiagnosticCode(str, Enum):
    """Every non-fatal condition the mapper can report."""
    # Usage
    MAPPER_NOT_BUILT = "MAPPER_NOT_BUILT"
    INVALID_DESTINATION = "INVALID_DESTINATION"
    # Build
    NOT_A_RECORD = "NOT_A_RECORD"
    UNMATCHED_FIELD = "UNMATCHED_FIELD"
    DUPLICATE_ALIAS = "DUPLICATE_ALIAS"
    DUPLICATE_TARGET = "DUPLICATE_TARGET"
    # Transfer
    KIND_MISMATCH = "KIND_MISMATCH"
    SCALAR_TYPE_MISMATCH = "SCALAR_TYPE_MISMATCH"
    MISSING_PROFILE = "MISSING_PROFILE"
    UNSUPPORTED_SHAPE = "UNSUPPORTED_SHAPE"
    VALUE_SHAPE_MISMATCH = "VALUE_SHAPE_MISMATCH"
    ALLOCATION_FAILED = "ALLOCATION_FAILED"
    KEY_COLLISION = "KEY_COLLISION"
    UNHASHABLE_KEY = "UNHASHABLE_KEY"
    # Limits
    RECURSION_LIMIT = "RECURSION_LIMIT"
    CYCLE_DETECTED = "CYCLE_DETECTED"
