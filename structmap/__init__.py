"""structmap: structural object-to-object mapper for dataclasses and pydantic models.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)

Design Decisions:
    - Docstring-only __init__.py: explicit imports from submodules, no star exports
"""
