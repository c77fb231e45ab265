"""Type Descriptors: static field layout of record types, discovered without live values.

Invariants:
    - A TypeDescriptor is immutable and cached per (class, tag name)
    - Field order is declaration order (dataclasses.fields / model_fields)
    - Alias tags come from declarations only: Annotated[T, Alias("x")], dataclass
      field metadata, or pydantic json_schema_extra under the tag name
    - new_instance() and construct() never run pydantic validation; a dataclass
      constructor that raises surfaces as AllocationFailedError, nothing else

Design Decisions:
    - Dataclasses and pydantic models are the two record flavours: both expose an
      ordered, typed field set at class level
    - Zero values stand in for required fields when the engine allocates fresh
      destination records; unmapped fields keep them, like an untouched slot
"""

import dataclasses
import decimal
import enum
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Annotated, get_args, get_origin, get_type_hints

from structmap.core.domain_types import (
    DEFAULT_TAG_NAME, FieldName, ProfileKey, QualifiedName, RecordFlavor,
    ShapeKind, qualified_name,
)
from structmap.core.errors import AllocationFailedError
from structmap.core.shapes import Shape, record_flavor, shape_of


@dataclass(frozen=True)
class Alias:
    """Annotated marker naming a field's counterpart on the other side of a mapping.

        Id: Annotated[int, Alias("ID")]
    """
    name: str


def alias_field(alias: str, *, tag_name: str = DEFAULT_TAG_NAME, **kwargs: Any) -> Any:
    """dataclasses.field() carrying the alias in its metadata."""
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[tag_name] = alias
    return dataclasses.field(metadata=metadata, **kwargs)


@dataclass(frozen=True)
class FieldDescriptor:
    """One declared field of a record."""
    name: FieldName
    shape: Shape
    alias: str | None = None
    required: bool = False


@dataclass(frozen=True)
class TypeDescriptor:
    """Field layout of one record type."""
    type: type
    flavor: RecordFlavor
    fields: tuple[FieldDescriptor, ...]
    mutable: bool = True
    tag_name: str = DEFAULT_TAG_NAME

    @property
    def name(self) -> QualifiedName:
        return qualified_name(self.type)

    @property
    def field_names(self) -> tuple[FieldName, ...]:
        return tuple(f.name for f in self.fields)

    def field(self, name: str) -> FieldDescriptor | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def profile_key(self, destination: "TypeDescriptor") -> ProfileKey:
        return ProfileKey(self.name, destination.name)

    def new_instance(self, _seen: frozenset = frozenset()) -> Any:
        """Allocate an instance with zero values in every required field."""
        return self.construct({}, _seen)

    def construct(self, values: dict[str, Any], _seen: frozenset = frozenset()) -> Any:
        """Build an instance from mapped field values through its constructor.

        Required fields missing from `values` get zero values. Works for frozen
        types, which can only be populated at construction time. Raises
        AllocationFailedError when the constructor or __post_init__ rejects the
        arguments (a required InitVar, a validating hook).
        """
        seen = _seen | {self.type}
        kwargs = {
            f.name: zero_value(f.shape, self.tag_name, seen)
            for f in self.fields if f.required and f.name not in values
        }
        kwargs.update(values)
        try:
            if self.flavor == RecordFlavor.PYDANTIC:
                return self.type.model_construct(**kwargs)
            init_kwargs = {
                name: value for name, value in kwargs.items()
                if _dataclass_field(self.type, name).init
            }
            instance = self.type(**init_kwargs)
            for name, value in kwargs.items():
                if name not in init_kwargs:
                    object.__setattr__(instance, name, value)
            return instance
        except RecursionError:
            raise
        except Exception as exc:
            raise AllocationFailedError(self.name, exc) from exc


def describe(tp: type, tag_name: str = DEFAULT_TAG_NAME) -> TypeDescriptor | None:
    """Descriptor for a record class, None when `tp` is not a record."""
    if record_flavor(tp) is None:
        return None
    return _describe(tp, tag_name)


@lru_cache(maxsize=None)
def _describe(tp: type, tag_name: str) -> TypeDescriptor:
    flavor = record_flavor(tp)
    if flavor == RecordFlavor.PYDANTIC:
        fields = _pydantic_fields(tp, tag_name)
        mutable = not tp.model_config.get("frozen", False)
    else:
        fields = _dataclass_fields(tp, tag_name)
        mutable = not tp.__dataclass_params__.frozen
    return TypeDescriptor(
        type=tp, flavor=flavor, fields=fields, mutable=mutable, tag_name=tag_name,
    )


def _dataclass_field(tp: type, name: str) -> dataclasses.Field:
    return next(f for f in dataclasses.fields(tp) if f.name == name)


def _dataclass_fields(tp: type, tag_name: str) -> tuple[FieldDescriptor, ...]:
    hints = _type_hints(tp)
    result = []
    for f in dataclasses.fields(tp):
        annotation = hints.get(f.name, f.type)
        alias = _annotated_alias(annotation) or f.metadata.get(tag_name)
        required = (
            f.default is dataclasses.MISSING
            and f.default_factory is dataclasses.MISSING
        )
        result.append(FieldDescriptor(
            name=FieldName(f.name), shape=shape_of(annotation),
            alias=alias or None, required=required,
        ))
    return tuple(result)


def _pydantic_fields(tp: type, tag_name: str) -> tuple[FieldDescriptor, ...]:
    hints = _type_hints(tp)
    result = []
    for name, info in tp.model_fields.items():
        annotation = hints.get(name, info.annotation)
        alias = (
            _annotated_alias(annotation)
            or _metadata_alias(info.metadata)
            or _schema_extra_alias(info.json_schema_extra, tag_name)
        )
        result.append(FieldDescriptor(
            name=FieldName(name), shape=shape_of(annotation),
            alias=alias or None, required=info.is_required(),
        ))
    return tuple(result)


def _type_hints(tp: type) -> dict[str, Any]:
    try:
        return get_type_hints(tp, include_extras=True)
    except (NameError, TypeError):
        # Unresolvable forward references: fall back to raw declarations
        return {}


def _annotated_alias(annotation: Any) -> str | None:
    if get_origin(annotation) is not Annotated:
        return None
    return _metadata_alias(get_args(annotation)[1:])


def _metadata_alias(metadata: Any) -> str | None:
    for item in metadata or ():
        if isinstance(item, Alias):
            return item.name
    return None


def _schema_extra_alias(extra: Any, tag_name: str) -> str | None:
    if isinstance(extra, dict):
        value = extra.get(tag_name)
        return value if isinstance(value, str) else None
    return None


# ─── Zero Values ─────────────────────────────────────────────────

_ZERO_CONSTRUCTIBLE = (bool, int, float, complex, str, bytes, decimal.Decimal)


def zero_value(shape: Shape, tag_name: str = DEFAULT_TAG_NAME,
               _seen: frozenset = frozenset()) -> Any:
    """The value an untouched slot of this shape holds."""
    if shape.kind == ShapeKind.SCALAR:
        return _scalar_zero(shape.annotation)
    if shape.kind in (ShapeKind.SEQUENCE, ShapeKind.MAPPING):
        return shape.container()
    if shape.kind == ShapeKind.RECORD:
        if shape.annotation in _seen:
            return None
        return _describe(shape.annotation, tag_name).new_instance(_seen)
    return None


def _scalar_zero(tp: type) -> Any:
    if issubclass(tp, enum.Enum):
        return next(iter(tp), None)
    if issubclass(tp, _ZERO_CONSTRUCTIBLE):
        return tp()
    return None
