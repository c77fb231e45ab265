"""Infrastructure Layer: logging setup and the logging-backed diagnostic sink.

Invariants:
    - Infrastructure depends on core types only, never on services/
    - Nothing here runs at import time; setup_logging is called explicitly
"""
