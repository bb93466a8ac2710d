"""
Integration test fixtures for PM Server.

Every test gets its own SQLite file in a temporary directory. Password
hashing uses few iterations to keep the suite fast.
"""

import os
import tempfile
from datetime import date

import pytest

from backend.pm_server.model import NewBacklog, NewProject, NewWork
from backend.pm_server.store import ProjectStore


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def store(data_dir):
    """Create an uninitialized store."""
    return ProjectStore(
        os.path.join(data_dir, "project_manager.db"),
        wal_mode=False,
        hash_iterations=1000,
    )


@pytest.fixture
def make_project():
    def _make(created_by, pic_id=None, **overrides):
        values = {
            "name": "Apollo",
            "description": "Moon shot",
            "created_by": created_by,
            "start_date": date(2024, 1, 1),
            "target_date": date(2024, 6, 30),
            "pic_id": pic_id or created_by,
        }
        values.update(overrides)
        return NewProject(**values)

    return _make


@pytest.fixture
def make_backlog():
    def _make(project_id, created_by, **overrides):
        values = {
            "project_id": project_id,
            "name": "Sprint 1",
            "start_date": date(2024, 1, 1),
            "target_date": date(2024, 1, 14),
            "created_by": created_by,
            "pic_id": created_by,
            "priority_id": 2,
        }
        values.update(overrides)
        return NewBacklog(**values)

    return _make


@pytest.fixture
def make_work():
    def _make(backlog_id, created_by, **overrides):
        values = {
            "backlog_id": backlog_id,
            "name": "Login form",
            "start_date": date(2024, 1, 2),
            "target_date": date(2024, 1, 5),
            "created_by": created_by,
            "priority_id": 2,
            "tracker_id": 2,
            "activity_id": 2,
        }
        values.update(overrides)
        return NewWork(**values)

    return _make
