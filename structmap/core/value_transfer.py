"""Value Transfer: recursive copy of a live source value into a destination slot.

Invariants:
    - transfer() returns the new slot value, or SKIP to leave the slot untouched
    - Dispatch order at every step:
        1. identical kind and declared type -> copy by value (deep copy)
        2. kinds differ                       -> KIND_MISMATCH, SKIP
        3. RECORD    -> per profile pair, mutating the current instance if any;
                        frozen types are constructed from the mapped values
        4. SEQUENCE  -> fresh container, element by element
        5. MAPPING   -> fresh dict, fresh key and value per entry
        6. OPTIONAL  -> None stays None, otherwise fresh referent storage
      SCALAR with different types and OPAQUE fall through to a diagnostic
    - Nothing from the source is aliased into the destination: identical-type
      values are deep-copied, containers are always newly allocated
    - A failure only skips its own branch; siblings keep mapping. This includes
      constructors that raise (ALLOCATION_FAILED) and interpreter stack
      exhaustion (RECURSION_LIMIT)

Design Decisions:
    - One ValueTransfer per map() call: the cycle guard is the only mutable state,
      so concurrent calls never share anything but the frozen profile store
    - Records are mutated in place when the slot already holds an instance of the
      destination type, mirroring how a nested struct field is written in place
"""

import copy
from collections.abc import Mapping
from typing import Any

from structmap.core.descriptors import TypeDescriptor, describe, zero_value
from structmap.core.diagnostics import Diagnostic, DiagnosticSink
from structmap.core.domain_types import (
    DEFAULT_MAX_DEPTH, DEFAULT_TAG_NAME, DiagnosticCode, ProfileKey, ShapeKind,
)
from structmap.core.errors import AllocationFailedError
from structmap.core.profile_builder import Profile
from structmap.core.shapes import Shape, conforms, shape_of_value


class _Skip:
    def __repr__(self) -> str:
        return "SKIP"


SKIP: Any = _Skip()

_CONTAINER_KINDS = frozenset({ShapeKind.RECORD, ShapeKind.SEQUENCE, ShapeKind.MAPPING})


class ValueTransfer:
    """Walks one source value against one destination shape."""

    def __init__(
        self,
        profiles: Mapping[ProfileKey, Profile],
        sink: DiagnosticSink,
        *,
        tag_name: str = DEFAULT_TAG_NAME,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self._profiles = profiles
        self._sink = sink
        self._tag_name = tag_name
        self._max_depth = max_depth
        self._active: set[int] = set()

    def map_into(self, source: Any, destination: Any) -> None:
        """Top-level entry: write `source` into the record instance `destination`."""
        try:
            self.transfer(
                source, shape_of_value(source), shape_of_value(destination),
                current=destination,
            )
        except RecursionError:
            # max_depth above what the interpreter stack allows; branches already
            # written stay in place
            self._active.clear()
            self._emit(
                DiagnosticCode.RECURSION_LIMIT,
                f"interpreter recursion limit reached before max_depth={self._max_depth}",
                "",
            )

    def transfer(
        self, value: Any, src: Shape, dest: Shape,
        current: Any = None, path: str = "", depth: int = 0,
    ) -> Any:
        if depth > self._max_depth:
            return self._skip(
                DiagnosticCode.RECURSION_LIMIT,
                f"nesting deeper than {self._max_depth} levels", path,
            )
        if _identical(value, src, dest):
            return self._copy(value, dest, current, path)
        if src.kind != dest.kind:
            return self._skip(
                DiagnosticCode.KIND_MISMATCH,
                f"cannot map {src.kind.value} {src.describe()} "
                f"into {dest.kind.value} {dest.describe()}", path,
            )
        if not conforms(value, src):
            return self._skip(
                DiagnosticCode.VALUE_SHAPE_MISMATCH,
                f"value of type {type(value).__qualname__} is not a {src.describe()}",
                path,
            )
        if src.kind not in _CONTAINER_KINDS:
            return self._dispatch(value, src, dest, current, path, depth)

        if id(value) in self._active:
            return self._skip(
                DiagnosticCode.CYCLE_DETECTED,
                f"{type(value).__qualname__} already being mapped on this path", path,
            )
        self._active.add(id(value))
        try:
            return self._dispatch(value, src, dest, current, path, depth)
        finally:
            self._active.discard(id(value))

    def _dispatch(
        self, value: Any, src: Shape, dest: Shape,
        current: Any, path: str, depth: int,
    ) -> Any:
        match src.kind:
            case ShapeKind.RECORD:
                return self._record(value, dest, current, path, depth)
            case ShapeKind.SEQUENCE:
                return self._sequence(value, src, dest, path, depth)
            case ShapeKind.MAPPING:
                return self._mapping(value, src, dest, path, depth)
            case ShapeKind.OPTIONAL:
                if value is None:
                    return None
                return self.transfer(value, src.element, dest.element, None, path, depth + 1)
            case ShapeKind.SCALAR:
                return self._skip(
                    DiagnosticCode.SCALAR_TYPE_MISMATCH,
                    f"no conversion from {src.describe()} to {dest.describe()}", path,
                )
            case _:
                return self._skip(
                    DiagnosticCode.UNSUPPORTED_SHAPE,
                    f"{src.describe()} -> {dest.describe()} is not a supported shape",
                    path,
                )

    def _record(self, value: Any, dest: Shape, current: Any, path: str, depth: int) -> Any:
        key = ProfileKey.of(type(value), dest.annotation)
        profile = self._profiles.get(key)
        if profile is None:
            return self._skip(
                DiagnosticCode.MISSING_PROFILE,
                f"no profile registered for {key.source} -> {key.destination}", path,
                profile_key=str(key),
            )
        src_desc = describe(type(value), self._tag_name)
        dest_desc = describe(dest.annotation, self._tag_name)
        if not dest_desc.mutable:
            return self._construct(value, profile, src_desc, dest_desc, path, depth)

        if isinstance(current, dest.annotation):
            target = current
        else:
            try:
                target = dest_desc.new_instance()
            except AllocationFailedError as exc:
                return self._skip(DiagnosticCode.ALLOCATION_FAILED, exc.message, path)

        for pair in profile:
            src_field = src_desc.field(pair.source)
            dest_field = dest_desc.field(pair.destination)
            result = self.transfer(
                getattr(value, src_field.name), src_field.shape, dest_field.shape,
                getattr(target, dest_field.name, None),
                _join(path, dest_field.name), depth + 1,
            )
            if result is not SKIP:
                setattr(target, dest_field.name, result)
        return target

    def _construct(
        self, value: Any, profile: Profile, src_desc: TypeDescriptor,
        dest_desc: TypeDescriptor, path: str, depth: int,
    ) -> Any:
        """Frozen destinations: map every field first, then call the constructor once."""
        values: dict[str, Any] = {}
        for pair in profile:
            src_field = src_desc.field(pair.source)
            dest_field = dest_desc.field(pair.destination)
            result = self.transfer(
                getattr(value, src_field.name), src_field.shape, dest_field.shape,
                None, _join(path, dest_field.name), depth + 1,
            )
            if result is not SKIP:
                values[dest_field.name] = result
        try:
            return dest_desc.construct(values)
        except AllocationFailedError as exc:
            return self._skip(DiagnosticCode.ALLOCATION_FAILED, exc.message, path)

    def _sequence(self, value: Any, src: Shape, dest: Shape, path: str, depth: int) -> Any:
        items = []
        for i, item in enumerate(value):
            result = self.transfer(
                item, src.element, dest.element, None, f"{path}[{i}]", depth + 1,
            )
            items.append(
                self._zero(dest.element, f"{path}[{i}]") if result is SKIP else result
            )
        return dest.container(items)

    def _mapping(self, value: Any, src: Shape, dest: Shape, path: str, depth: int) -> Any:
        result: dict = {}
        for k, v in value.items():
            entry_path = f"{path}{{{k!r}}}"
            dest_key = self.transfer(k, src.key, dest.key, None, entry_path, depth + 1)
            if dest_key is SKIP:
                continue
            dest_value = self.transfer(v, src.element, dest.element, None, entry_path, depth + 1)
            if dest_value is SKIP:
                dest_value = self._zero(dest.element, entry_path)
            try:
                if dest_key in result:
                    self._emit(
                        DiagnosticCode.KEY_COLLISION,
                        f"mapped key {dest_key!r} already present; last entry wins",
                        entry_path,
                    )
                result[dest_key] = dest_value
            except TypeError:
                self._emit(
                    DiagnosticCode.UNHASHABLE_KEY,
                    f"mapped key of type {type(dest_key).__qualname__} is unhashable",
                    entry_path,
                )
        return dest.container(result)

    def _copy(self, value: Any, dest: Shape, current: Any, path: str) -> Any:
        try:
            if dest.kind == ShapeKind.RECORD and isinstance(current, dest.annotation):
                descriptor = describe(dest.annotation, self._tag_name)
                if descriptor.mutable and current is not value:
                    for f in descriptor.fields:
                        setattr(current, f.name, copy.deepcopy(getattr(value, f.name)))
                    return current
            return copy.deepcopy(value)
        except (TypeError, copy.Error) as exc:
            return self._skip(
                DiagnosticCode.UNSUPPORTED_SHAPE,
                f"{dest.describe()} value cannot be copied: {exc}", path,
            )

    def _zero(self, shape: Shape, path: str) -> Any:
        """Zero value for a failed element or entry; None when it cannot be allocated."""
        try:
            return zero_value(shape, self._tag_name)
        except AllocationFailedError as exc:
            self._emit(DiagnosticCode.ALLOCATION_FAILED, exc.message, path)
            return None

    def _skip(self, code: DiagnosticCode, message: str, path: str,
              profile_key: str | None = None) -> Any:
        self._emit(code, message, path, profile_key)
        return SKIP

    def _emit(self, code: DiagnosticCode, message: str, path: str,
              profile_key: str | None = None) -> None:
        self._sink.emit(Diagnostic.create(
            code, message, path=path, profile_key=profile_key,
        ))


def _identical(value: Any, src: Shape, dest: Shape) -> bool:
    if src.kind != dest.kind:
        return False
    if src.kind == ShapeKind.RECORD:
        return type(value) is dest.annotation
    return src.annotation == dest.annotation


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name
