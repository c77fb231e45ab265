"""Services Layer: the stateful Mapper that owns registrations and built profiles.

Invariants:
    - The Mapper is the only holder of mutable state (registrations, lifecycle)
    - Profiles are frozen once build() completes

Design Decisions:
    - Imperative shell around the pure core: locking, logging and sinks live here
"""
