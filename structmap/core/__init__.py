"""Core Layer: pure mapping logic, no IO, no logging handlers, no global state.

Invariants:
    - No module in core/ imports from services/ or infrastructure/
    - Diagnostics are returned or emitted to an injected sink, never printed

Design Decisions:
    - Functional core separated from the stateful Mapper shell
"""
