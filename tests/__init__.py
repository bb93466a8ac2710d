"""
PM Server Test Suite.

This package contains:
- unit/: Unit tests (no database; store and engines mocked)
- integration/: Store, service and HTTP tests against temporary SQLite files
"""
