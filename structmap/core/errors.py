"""Error Hierarchy: typed, categorized failure modes for registration, build and map.

Invariants:
    - Every error has a code (DiagnosticCode or str), category (ErrorCategory),
      severity (ErrorSeverity)
    - Every DiagnosticCode has exactly one category and one default severity
    - Only two conditions reach the caller: registration after build, and
      strict-mode failures. AllocationFailedError is raised by descriptors and
      always caught by the transfer engine, which reports it as a Diagnostic
    - to_dict() produces a JSON-safe envelope

Design Decisions:
    - Single hierarchy with StructMapError base: callers catch one type
    - Classification tables live here so Diagnostic and StructMapError agree on
      category and severity for the same code
    - ErrorContext as dataclass: rich observability without coupling to logging
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from structmap.core.domain_types import DiagnosticCode, MapperState


class ErrorSeverity(str, Enum):
    """Severity for observability and strict-mode decisions."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ErrorCategory(str, Enum):
    """High-level categories for routing and filtering."""
    USAGE = "usage"
    SHAPE = "shape"
    PROFILE = "profile"
    LIMIT = "limit"


CODE_CATEGORY: dict[DiagnosticCode, ErrorCategory] = {
    DiagnosticCode.MAPPER_NOT_BUILT: ErrorCategory.USAGE,
    DiagnosticCode.INVALID_DESTINATION: ErrorCategory.USAGE,
    DiagnosticCode.NOT_A_RECORD: ErrorCategory.PROFILE,
    DiagnosticCode.UNMATCHED_FIELD: ErrorCategory.PROFILE,
    DiagnosticCode.DUPLICATE_ALIAS: ErrorCategory.PROFILE,
    DiagnosticCode.DUPLICATE_TARGET: ErrorCategory.PROFILE,
    DiagnosticCode.KIND_MISMATCH: ErrorCategory.SHAPE,
    DiagnosticCode.SCALAR_TYPE_MISMATCH: ErrorCategory.SHAPE,
    DiagnosticCode.MISSING_PROFILE: ErrorCategory.PROFILE,
    DiagnosticCode.UNSUPPORTED_SHAPE: ErrorCategory.SHAPE,
    DiagnosticCode.VALUE_SHAPE_MISMATCH: ErrorCategory.SHAPE,
    DiagnosticCode.ALLOCATION_FAILED: ErrorCategory.SHAPE,
    DiagnosticCode.KEY_COLLISION: ErrorCategory.SHAPE,
    DiagnosticCode.UNHASHABLE_KEY: ErrorCategory.SHAPE,
    DiagnosticCode.RECURSION_LIMIT: ErrorCategory.LIMIT,
    DiagnosticCode.CYCLE_DETECTED: ErrorCategory.LIMIT,
}

CODE_SEVERITY: dict[DiagnosticCode, ErrorSeverity] = {
    code: ErrorSeverity.ERROR for code in DiagnosticCode
}
CODE_SEVERITY.update({
    DiagnosticCode.UNMATCHED_FIELD: ErrorSeverity.INFO,
    DiagnosticCode.DUPLICATE_ALIAS: ErrorSeverity.WARNING,
    DiagnosticCode.DUPLICATE_TARGET: ErrorSeverity.WARNING,
    DiagnosticCode.KEY_COLLISION: ErrorSeverity.WARNING,
})


@dataclass
class ErrorContext:
    """Where in the mapping an error happened."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    path: str | None = None
    profile_key: str | None = None


class StructMapError(Exception):
    """Base exception for all structmap errors."""

    def __init__(
        self,
        message: str,
        code: DiagnosticCode | str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()

    def to_dict(self) -> dict:
        """Convert to a JSON-safe error envelope."""
        code = self.code.value if isinstance(self.code, Enum) else self.code
        return {
            "error": {
                "code": code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "path": self.context.path,
                    "profile_key": self.context.profile_key,
                },
            }
        }


# ─── Usage Errors ───────────────────────────────────────────────

class RegistrationClosedError(StructMapError):
    """register() called after build() froze the registrations."""
    def __init__(self, source_type: type, destination_type: type,
                 context: ErrorContext | None = None):
        super().__init__(
            f"Cannot register {source_type!r} -> {destination_type!r}: "
            f"mapper is already {MapperState.BUILT.value}",
            "REGISTRATION_CLOSED", ErrorCategory.USAGE,
            ErrorSeverity.ERROR, context,
        )
        self.source_type = source_type
        self.destination_type = destination_type


# ─── Allocation ─────────────────────────────────────────────────

class AllocationFailedError(StructMapError):
    """A destination record could not be instantiated (constructor or __post_init__ raised)."""
    def __init__(self, type_name: str, cause: Exception,
                 context: ErrorContext | None = None):
        super().__init__(
            f"cannot allocate {type_name}: {type(cause).__name__}: {cause}",
            DiagnosticCode.ALLOCATION_FAILED, ErrorCategory.SHAPE,
            ErrorSeverity.ERROR, context,
        )
        self.type_name = type_name
        self.cause = cause


# ─── Strict Mode ────────────────────────────────────────────────

class MappingFailedError(StructMapError):
    """Strict mode: the call produced error diagnostics.

    Raised after the best-effort pass finishes, so the destination still holds
    every branch that could be mapped.
    """
    def __init__(self, diagnostics: list, context: ErrorContext | None = None):
        codes = sorted({d.code.value for d in diagnostics})
        category = CODE_CATEGORY[diagnostics[0].code] if diagnostics else ErrorCategory.SHAPE
        super().__init__(
            f"Mapping failed with {len(diagnostics)} error(s): {', '.join(codes)}",
            "MAPPING_FAILED", category,
            ErrorSeverity.ERROR, context,
        )
        self.diagnostics = diagnostics

    def to_dict(self) -> dict:
        envelope = super().to_dict()
        envelope["error"]["diagnostics"] = [d.to_dict() for d in self.diagnostics]
        return envelope
