"""
PM Server - Project management API over a relational store.

This package implements the request layer of a hierarchical
project-management service:
- Projects own Backlogs, Backlogs own Work items
- Users hold Roles on Projects and are assigned to Work items
- SQLite holds every entity and membership relation

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │ Web client  │────▶│   FastAPI   │────▶│ ProjectService  │
    └─────────────┘     └─────────────┘     └────────┬────────┘
                                                     │
                  ┌──────────────────────────────────┼──────────┐
                  │                   │                         │
                  ▼                   ▼                         ▼
            ┌──────────┐        ┌──────────┐            ┌────────────┐
            │Reconciler│        │ Updater  │            │Orchestrator│
            └────┬─────┘        └────┬─────┘            └─────┬──────┘
                 │                   │                        │
                 ▼                   ▼                        ▼
            ┌─────────────────────────────────────────────────────┐
            │                ProjectStore (SQLite)                │
            └─────────────────────────────────────────────────────┘

Invariants:
    - The store is the authority for referential integrity
    - A membership delta never lists the same user as added and removed
    - Partial updates only write the attributes the caller supplied
    - A composite creation never rolls back its parent project

How to change safely:
    - New entity attributes need a column, a payload field and a mask entry
    - Keep list responses as store-built JSON so the wire format is stable
    - Never wrap the orchestrator in a store transaction without revisiting
      the partial-failure reporting contract

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
