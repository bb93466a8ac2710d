"""
Store module for PM Server - the persistent side of every operation.

This module handles:
- Entity create/read/update primitives
- Membership delta application (project roles, work assignments)
- Credential lookup
- JSON-aggregated list queries relayed verbatim by the API

Invariants:
    - Foreign keys are always enforced
    - Each primitive is its own transaction
    - SQLite uses WAL mode for concurrent reads during writes
"""

from .project_store import ProjectStore

__all__ = ["ProjectStore"]
