"""Profile Builder: field correspondence between two record types.

Invariants:
    - Derived purely from static descriptors: never inspects live values
    - Profile order is the source's field declaration order
    - Per source field, first matching rule wins:
        1. source name  == destination name
        2. source name  == destination alias
        3. source alias == destination name
        4. source alias == destination alias
    - Non-record pairs yield None plus a diagnostic, never an exception
    - Frozen destination types are profiled like any other: whether a record is
      written in place or constructed is decided at transfer time

Design Decisions:
    - Names and aliases are two overlapping namespaces per side; the name-to-name
      match is tried first because it is unambiguous
    - Duplicate destination aliases resolve to the first declared field
      (DUPLICATE_ALIAS warning) so lookups stay deterministic
"""

from dataclasses import dataclass
from typing import Iterator

from structmap.core.descriptors import FieldDescriptor, TypeDescriptor, describe
from structmap.core.diagnostics import Diagnostic, DiagnosticSink
from structmap.core.domain_types import (
    DEFAULT_TAG_NAME, DiagnosticCode, FieldName, ProfileKey, qualified_name,
)


@dataclass(frozen=True)
class FieldPair:
    """A (source field, destination field) correspondence."""
    source: FieldName
    destination: FieldName


@dataclass(frozen=True)
class Profile:
    """Frozen correspondence profile for one registered type pair."""
    key: ProfileKey
    pairs: tuple[FieldPair, ...]

    def __iter__(self) -> Iterator[FieldPair]:
        return iter(self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    def as_tuples(self) -> list[tuple[str, str]]:
        return [(p.source, p.destination) for p in self.pairs]


def build_profile(
    source_type: type, destination_type: type, sink: DiagnosticSink,
    tag_name: str = DEFAULT_TAG_NAME,
) -> Profile | None:
    """Build the profile for a registered pair, or report why it cannot be built."""
    key = ProfileKey.of(source_type, destination_type)
    source = describe(source_type, tag_name)
    destination = describe(destination_type, tag_name)

    for tp, descriptor in ((source_type, source), (destination_type, destination)):
        if descriptor is None:
            sink.emit(Diagnostic.create(
                DiagnosticCode.NOT_A_RECORD,
                f"expected a record type (dataclass or pydantic model), "
                f"got {qualified_name(tp)}",
                profile_key=str(key),
            ))
            return None

    return correspond(source, destination, sink)


def correspond(
    source: TypeDescriptor, destination: TypeDescriptor, sink: DiagnosticSink,
) -> Profile:
    """Resolve every source field against the destination field set."""
    key = source.profile_key(destination)
    dest_names = set(destination.field_names)
    dest_aliases = _alias_index(destination, sink, key)

    pairs: list[FieldPair] = []
    claimed: dict[FieldName, FieldName] = {}
    for src_field in source.fields:
        target = resolve_field(src_field, dest_names, dest_aliases)
        if target is None:
            sink.emit(Diagnostic.create(
                DiagnosticCode.UNMATCHED_FIELD,
                f"source field '{src_field.name}' has no counterpart in {destination.name}",
                path=src_field.name, profile_key=str(key),
            ))
            continue
        if target in claimed:
            sink.emit(Diagnostic.create(
                DiagnosticCode.DUPLICATE_TARGET,
                f"source fields '{claimed[target]}' and '{src_field.name}' "
                f"both map to '{target}'; the later one wins",
                path=target, profile_key=str(key),
            ))
        claimed[target] = src_field.name
        pairs.append(FieldPair(src_field.name, target))

    return Profile(key=key, pairs=tuple(pairs))


def resolve_field(
    src_field: FieldDescriptor,
    dest_names: set[FieldName],
    dest_aliases: dict[str, FieldName],
) -> FieldName | None:
    """Apply the four precedence rules to one source field."""
    if src_field.name in dest_names:
        return src_field.name
    if src_field.name in dest_aliases:
        return dest_aliases[src_field.name]
    alias = src_field.alias
    if alias is None:
        return None
    if alias in dest_names:
        return FieldName(alias)
    return dest_aliases.get(alias)


def _alias_index(
    destination: TypeDescriptor, sink: DiagnosticSink, key: ProfileKey,
) -> dict[str, FieldName]:
    index: dict[str, FieldName] = {}
    for f in destination.fields:
        if f.alias is None:
            continue
        if f.alias in index:
            sink.emit(Diagnostic.create(
                DiagnosticCode.DUPLICATE_ALIAS,
                f"alias '{f.alias}' declared on both '{index[f.alias]}' and "
                f"'{f.name}' of {destination.name}; using '{index[f.alias]}'",
                path=f.name, profile_key=str(key),
            ))
            continue
        index[f.alias] = f.name
    return index
