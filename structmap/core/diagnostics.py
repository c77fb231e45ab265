"""Diagnostics: structured non-fatal conditions and the sink contract.

Invariants:
    - A Diagnostic is immutable and JSON-serializable via to_dict()
    - Category and severity always come from the classification tables in errors.py
    - Core code only emits to a DiagnosticSink; it never logs or raises for
      localized failures

Design Decisions:
    - Protocol over ABC: any object with emit() is a sink, no inheritance needed
    - MappingReport is what build() and map() return: a Result-style view of the
      same diagnostics the sink received
"""

from dataclasses import dataclass, field
from typing import Protocol

from structmap.core.domain_types import DiagnosticCode
from structmap.core.errors import (
    CODE_CATEGORY, CODE_SEVERITY, ErrorCategory, ErrorSeverity,
)


@dataclass(frozen=True)
class Diagnostic:
    """One reported condition, addressed by its path in the destination tree."""
    code: DiagnosticCode
    message: str
    severity: ErrorSeverity
    category: ErrorCategory
    path: str = ""
    profile_key: str | None = None

    @classmethod
    def create(
        cls, code: DiagnosticCode, message: str, *,
        path: str = "", profile_key: str | None = None,
    ) -> "Diagnostic":
        return cls(
            code=code, message=message,
            severity=CODE_SEVERITY[code], category=CODE_CATEGORY[code],
            path=path, profile_key=profile_key,
        )

    @property
    def is_error(self) -> bool:
        return self.severity == ErrorSeverity.ERROR

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "path": self.path,
            "profile_key": self.profile_key,
        }


class DiagnosticSink(Protocol):
    """Contract for anything that receives diagnostics: collector, logger, test spy."""
    def emit(self, diagnostic: Diagnostic) -> None: ...


class CollectingSink:
    """In-memory sink. Keeps diagnostics in emission order."""

    def __init__(self) -> None:
        self.diagnostics: list[Diagnostic] = []

    def emit(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)


class TeeSink:
    """Forwards every diagnostic to each wrapped sink, in order."""

    def __init__(self, *sinks: DiagnosticSink) -> None:
        self._sinks = [s for s in sinks if s is not None]

    def emit(self, diagnostic: Diagnostic) -> None:
        for sink in self._sinks:
            sink.emit(diagnostic)


@dataclass
class MappingReport:
    """Outcome of one build() or map() call."""
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when nothing at ERROR severity was reported."""
        return not self.errors

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.is_error]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == ErrorSeverity.WARNING]

    @property
    def codes(self) -> list[DiagnosticCode]:
        return [d.code for d in self.diagnostics]

    def at(self, path: str) -> list[Diagnostic]:
        """Diagnostics reported for exactly this path."""
        return [d for d in self.diagnostics if d.path == path]

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }
