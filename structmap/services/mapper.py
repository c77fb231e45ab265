"""Mapper: registrations, one-time profile build, and best-effort map calls.

Invariants:
    - Lifecycle is UNBUILT -> BUILT, never back
    - register() after build() raises RegistrationClosedError
    - Re-registering the same (source, destination) pair overwrites: one profile per key
    - The profile store is published as a read-only mapping before the state flips
      to BUILT; map() reads it without locking
    - map() never raises for localized failures; it returns a MappingReport
      (strict mode raises MappingFailedError after the partial mapping is written)

Design Decisions:
    - Explicit builder object: register() returns self for chaining, reversal is a
      keyword argument rather than a chained mutator
    - Every call tees diagnostics to a per-call collector (the returned report), the
      Mapper's sink (LoggingSink by default) and an optional per-call sink
    - A second build() is a no-op: registrations are frozen, so re-deriving would
      produce the same profiles
"""

import logging
import threading
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from structmap.config import Settings, get_settings
from structmap.core.descriptors import describe
from structmap.core.diagnostics import (
    CollectingSink, Diagnostic, DiagnosticSink, MappingReport, TeeSink,
)
from structmap.core.domain_types import (
    DiagnosticCode, MapperState, ProfileKey, qualified_name,
)
from structmap.core.errors import MappingFailedError, RegistrationClosedError
from structmap.core.profile_builder import Profile, build_profile
from structmap.core.value_transfer import ValueTransfer
from structmap.infrastructure.observability import LoggingSink

logger = logging.getLogger(__name__)


class Mapper:
    """Maps values between registered pairs of record types."""

    def __init__(
        self,
        *,
        sink: DiagnosticSink | None = None,
        settings: Settings | None = None,
        strict: bool | None = None,
        tag_name: str | None = None,
        max_depth: int | None = None,
    ):
        settings = settings or get_settings()
        self._sink = sink if sink is not None else LoggingSink()
        self._strict = settings.strict if strict is None else strict
        self._tag_name = settings.tag_name if tag_name is None else tag_name
        self._max_depth = settings.max_depth if max_depth is None else max_depth

        self._lock = threading.Lock()
        self._registrations: dict[ProfileKey, tuple[type, type]] = {}
        self._profiles: Mapping[ProfileKey, Profile] = MappingProxyType({})
        self._state = MapperState.UNBUILT

    # --- Lifecycle ---------------------------------------------------------------

    @property
    def state(self) -> MapperState:
        return self._state

    @property
    def is_built(self) -> bool:
        return self._state == MapperState.BUILT

    @property
    def registrations(self) -> list[tuple[type, type]]:
        """Registered pairs in first-registration order."""
        return list(self._registrations.values())

    def register(
        self, source_type: type, destination_type: type, *, reverse: bool = False,
    ) -> "Mapper":
        """Record a type pair for profiling. Chainable; only before build()."""
        with self._lock:
            if self._state == MapperState.BUILT:
                raise RegistrationClosedError(source_type, destination_type)
            self._add(source_type, destination_type)
            if reverse:
                self._add(destination_type, source_type)
        return self

    def build(self, sink: DiagnosticSink | None = None) -> MappingReport:
        """Freeze registrations and compute every correspondence profile."""
        collector = CollectingSink()
        out = TeeSink(collector, self._sink, sink)
        with self._lock:
            if self._state == MapperState.BUILT:
                logger.debug("build() called on a built mapper; ignoring")
                return MappingReport()
            profiles: dict[ProfileKey, Profile] = {}
            for key, (source_type, destination_type) in self._registrations.items():
                profile = build_profile(source_type, destination_type, out, self._tag_name)
                if profile is not None:
                    profiles[key] = profile
            self._profiles = MappingProxyType(profiles)
            self._state = MapperState.BUILT
        logger.info(
            "Built %d profile(s) from %d registration(s)",
            len(profiles), len(self._registrations),
        )
        return self._finish(collector)

    # --- Mapping -----------------------------------------------------------------

    def profile(self, source_type: type, destination_type: type) -> Profile | None:
        """The built profile for a pair, None when unbuilt or skipped."""
        return self._profiles.get(ProfileKey.of(source_type, destination_type))

    def map(
        self, source: Any, destination: Any, sink: DiagnosticSink | None = None,
    ) -> MappingReport:
        """Copy `source` into the caller-owned record instance `destination`."""
        collector = CollectingSink()
        out = TeeSink(collector, self._sink, sink)
        if self._state != MapperState.BUILT:
            out.emit(Diagnostic.create(
                DiagnosticCode.MAPPER_NOT_BUILT,
                "mapper used before build(); call build() before map()",
            ))
            return self._finish(collector)
        problem = _destination_problem(destination)
        if problem is not None:
            out.emit(Diagnostic.create(DiagnosticCode.INVALID_DESTINATION, problem))
            return self._finish(collector)

        transfer = ValueTransfer(
            self._profiles, out, tag_name=self._tag_name, max_depth=self._max_depth,
        )
        transfer.map_into(source, destination)
        logger.debug(
            "Mapped %s into %s with %d diagnostic(s)",
            qualified_name(type(source)), qualified_name(type(destination)),
            len(collector.diagnostics),
        )
        return self._finish(collector)

    # --- Internals ---------------------------------------------------------------

    def _add(self, source_type: type, destination_type: type) -> None:
        key = ProfileKey.of(source_type, destination_type)
        if key in self._registrations:
            logger.debug("Re-registered %s; keeping a single entry", key)
        self._registrations[key] = (source_type, destination_type)

    def _finish(self, collector: CollectingSink) -> MappingReport:
        report = MappingReport(list(collector.diagnostics))
        if self._strict and report.errors:
            raise MappingFailedError(report.errors)
        return report


def _destination_problem(destination: Any) -> str | None:
    """Why `destination` cannot be written in place, or None if it can."""
    descriptor = describe(type(destination))
    if descriptor is None:
        return (
            f"destination must be a mutable record instance, "
            f"got {qualified_name(type(destination))}"
        )
    if not descriptor.mutable:
        return f"destination {descriptor.name} is frozen"
    return None
