"""Shapes: classify declared type annotations into a closed set of shape kinds.

Invariants:
    - shape_of() is total: every annotation maps to exactly one ShapeKind,
      OPAQUE when nothing else applies
    - Shapes are immutable and compare by declared annotation, so two shapes are
      "identical" exactly when their declarations are
    - Annotated[...] metadata is stripped here; aliases are read by descriptors

Design Decisions:
    - Record shapes reference their class, not an expanded field tree: recursive
      types (a Node holding `Node | None`) never recurse at classification time
    - Any concrete class that is not a record or container is SCALAR; sets, fixed
      tuples, callables, Any and multi-member unions are OPAQUE
"""

import collections.abc
import dataclasses
import types
from dataclasses import dataclass
from typing import Annotated, Any, Union, get_args, get_origin

from pydantic import BaseModel

from structmap.core.domain_types import RecordFlavor, ShapeKind


_SEQUENCE_ORIGINS = frozenset({
    list, collections.abc.Sequence, collections.abc.MutableSequence,
})
_MAPPING_ORIGINS = frozenset({
    dict, collections.abc.Mapping, collections.abc.MutableMapping,
})
_OPAQUE_CLASSES = (set, frozenset, tuple, type(None))
_TEXT_LIKE = (str, bytes, bytearray)


@dataclass(frozen=True)
class Shape:
    """Declared structure of one slot: a field, an element, a key or a referent."""
    kind: ShapeKind
    annotation: Any
    element: "Shape | None" = None   # sequence element, mapping value, optional referent
    key: "Shape | None" = None       # mapping key
    container: type | None = None    # concrete type allocated for sequences/mappings

    def describe(self) -> str:
        if isinstance(self.annotation, type) and not get_args(self.annotation):
            return self.annotation.__qualname__
        return repr(self.annotation).replace("typing.", "")


ANY_SHAPE = Shape(ShapeKind.OPAQUE, Any)


def record_flavor(tp: Any) -> RecordFlavor | None:
    """DATACLASS / PYDANTIC for record classes, None for everything else."""
    if not isinstance(tp, type):
        return None
    if issubclass(tp, BaseModel) and tp is not BaseModel:
        return RecordFlavor.PYDANTIC
    if dataclasses.is_dataclass(tp):
        return RecordFlavor.DATACLASS
    return None


def is_record_type(tp: Any) -> bool:
    return record_flavor(tp) is not None


def shape_of(annotation: Any) -> Shape:
    """Classify a declared annotation."""
    origin = get_origin(annotation)
    args = get_args(annotation)

    if origin is Annotated:
        return shape_of(args[0])
    if origin is Union or origin is types.UnionType:
        return _union_shape(annotation, args)
    if origin in _SEQUENCE_ORIGINS:
        element = shape_of(args[0]) if args else ANY_SHAPE
        return Shape(ShapeKind.SEQUENCE, annotation, element=element, container=list)
    if origin is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            return Shape(
                ShapeKind.SEQUENCE, annotation,
                element=shape_of(args[0]), container=tuple,
            )
        return Shape(ShapeKind.OPAQUE, annotation)
    if origin in _MAPPING_ORIGINS:
        key = shape_of(args[0]) if args else ANY_SHAPE
        value = shape_of(args[1]) if len(args) > 1 else ANY_SHAPE
        return Shape(ShapeKind.MAPPING, annotation, element=value, key=key, container=dict)
    if origin is not None:
        return Shape(ShapeKind.OPAQUE, annotation)
    return _class_shape(annotation)


def _union_shape(annotation: Any, args: tuple) -> Shape:
    members = [a for a in args if a is not type(None)]
    if len(members) == 1 and len(members) < len(args):
        return Shape(ShapeKind.OPTIONAL, annotation, element=shape_of(members[0]))
    return Shape(ShapeKind.OPAQUE, annotation)


def _class_shape(annotation: Any) -> Shape:
    if annotation is Any or not isinstance(annotation, type):
        # TypeVar, NewType, unresolved forward references
        return Shape(ShapeKind.OPAQUE, annotation)
    if is_record_type(annotation):
        return Shape(ShapeKind.RECORD, annotation)
    if annotation in (list, dict):
        return shape_of(annotation[Any, Any] if annotation is dict else annotation[Any])
    if issubclass(annotation, _OPAQUE_CLASSES):
        return Shape(ShapeKind.OPAQUE, annotation)
    if issubclass(annotation, type) or annotation is types.FunctionType:
        return Shape(ShapeKind.OPAQUE, annotation)
    return Shape(ShapeKind.SCALAR, annotation)


def shape_of_value(value: Any) -> Shape:
    """Shape of a live value whose declaration is unknown (top-level arguments)."""
    return shape_of(type(value))


def conforms(value: Any, shape: Shape) -> bool:
    """Whether a live value can be walked as the given declared shape."""
    if shape.kind == ShapeKind.RECORD:
        return isinstance(value, shape.annotation)
    if shape.kind == ShapeKind.SEQUENCE:
        return (
            isinstance(value, collections.abc.Sequence)
            and not isinstance(value, _TEXT_LIKE)
        )
    if shape.kind == ShapeKind.MAPPING:
        return isinstance(value, collections.abc.Mapping)
    return True
