"""
Integration tests for ProjectStore.

Tests cover:
- Schema creation and reference data
- Credentials
- Entity create/read/update
- Membership deltas
- JSON list queries
- Locked or unreadable databases
"""

import json
import os
import sqlite3
from datetime import date

import pytest

from backend.pm_server.errors import ConstraintError, NotFoundError, StoreError
from backend.pm_server.model import EntityKind
from backend.pm_server.store import ProjectStore


class TestProjectStore:
    """Tests for ProjectStore."""

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, store):
        await store.initialize()
        await store.initialize()

        data = json.loads(await store.reference_data_json())
        assert [t["name"] for t in data["trackers"]] == ["Bug", "Feature", "Support"]
        assert data["states"][-1] == {"id": 4, "name": "Closed", "isClosed": True}
        assert await store.ping() is True

    @pytest.mark.asyncio
    async def test_credentials(self, store):
        await store.initialize()
        user_id = await store.create_user("alice", "s3cret")

        assert await store.get_user_id_by_credentials("alice", "s3cret") == user_id
        assert await store.get_user_id_by_credentials("alice", "wrong") is None
        assert await store.get_user_id_by_credentials("nobody", "s3cret") is None

    @pytest.mark.asyncio
    async def test_duplicate_username(self, store):
        await store.initialize()
        await store.create_user("alice", "one")

        with pytest.raises(ConstraintError) as exc_info:
            await store.create_user("alice", "two")

        assert "UNIQUE" not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_create_and_get_project(self, store, make_project):
        await store.initialize()
        alice = await store.create_user("alice", "pw")

        project_id = await store.create_project(make_project(alice).column_values())
        project = await store.get_project(project_id)

        assert project.name == "Apollo"
        assert project.start_date == date(2024, 1, 1)
        assert project.pic_id == alice

    @pytest.mark.asyncio
    async def test_create_project_unknown_user(self, store, make_project):
        await store.initialize()

        with pytest.raises(ConstraintError):
            await store.create_project(make_project(999).column_values())

        assert json.loads(await store.projects_json()) == []

    @pytest.mark.asyncio
    async def test_update_touches_only_given_columns(self, store, make_project):
        await store.initialize()
        alice = await store.create_user("alice", "pw")
        project_id = await store.create_project(make_project(alice).column_values())

        found = await store.update_entity(EntityKind.PROJECT, project_id, {"name": "Artemis"})

        assert found is True
        project = await store.get_project(project_id)
        assert project.name == "Artemis"
        assert project.description == "Moon shot"
        assert project.target_date == date(2024, 6, 30)

    @pytest.mark.asyncio
    async def test_update_missing_entity(self, store):
        await store.initialize()

        assert await store.update_entity(EntityKind.WORK, 42, {"name": "x"}) is False
        assert await store.update_entity(EntityKind.WORK, 42, {}) is False

    @pytest.mark.asyncio
    async def test_update_rejects_parent_column(self, store):
        await store.initialize()

        with pytest.raises(ValueError):
            await store.update_entity(EntityKind.BACKLOG, 1, {"project_id": 2})

    @pytest.mark.asyncio
    async def test_role_delta(self, store, make_project):
        """Result is (prior ∪ added) minus removed."""
        await store.initialize()
        ids = [await store.create_user(name, "pw") for name in ("a", "b", "c", "d")]
        project_id = await store.create_project(make_project(ids[0]).column_values())

        await store.apply_role_delta(project_id, 2, {ids[0], ids[1]}, set())
        await store.apply_role_delta(project_id, 2, {ids[2], ids[1]}, {ids[0], ids[3]})

        assert await store.get_role_members(project_id, 2) == {ids[1], ids[2]}

    @pytest.mark.asyncio
    async def test_role_delta_missing_project(self, store):
        await store.initialize()
        alice = await store.create_user("alice", "pw")

        with pytest.raises(NotFoundError):
            await store.apply_role_delta(77, 1, {alice}, set())

    @pytest.mark.asyncio
    async def test_role_delta_unknown_user_rolls_back(self, store, make_project):
        """A failing delta leaves the relation untouched."""
        await store.initialize()
        alice = await store.create_user("alice", "pw")
        project_id = await store.create_project(make_project(alice).column_values())
        await store.apply_role_delta(project_id, 1, {alice}, set())

        with pytest.raises(ConstraintError):
            await store.apply_role_delta(project_id, 1, {999}, {alice})

        assert await store.get_role_members(project_id, 1) == {alice}

    @pytest.mark.asyncio
    async def test_work_delta(self, store, make_project, make_backlog, make_work):
        await store.initialize()
        alice = await store.create_user("alice", "pw")
        bob = await store.create_user("bob", "pw")
        project_id = await store.create_project(make_project(alice).column_values())
        backlog_id = await store.create_backlog(make_backlog(project_id, alice).column_values())
        work_id = await store.create_work(make_work(backlog_id, alice).column_values())

        await store.apply_work_delta(work_id, {alice, bob}, set())
        await store.apply_work_delta(work_id, set(), {alice})

        assert await store.get_work_assignees(work_id) == {bob}
        assignees = json.loads(await store.work_assignees_json(work_id))
        assert assignees == [{"userId": bob, "userName": "bob"}]

    @pytest.mark.asyncio
    async def test_work_defaults_to_new_state(self, store, make_project, make_backlog, make_work):
        await store.initialize()
        alice = await store.create_user("alice", "pw")
        project_id = await store.create_project(make_project(alice).column_values())
        backlog_id = await store.create_backlog(make_backlog(project_id, alice).column_values())

        work_id = await store.create_work(make_work(backlog_id, alice).column_values())

        work = await store.get_work(work_id)
        assert work.current_state == 1
        assert work.pic_id is None
        works = json.loads(await store.works_json(backlog_id))
        assert works[0]["stateName"] == "New"
        assert works[0]["picName"] is None

    @pytest.mark.asyncio
    async def test_user_roles_json(self, store, make_project):
        await store.initialize()
        alice = await store.create_user("alice", "pw")
        project_id = await store.create_project(make_project(alice).column_values())
        await store.apply_role_delta(project_id, 1, {alice}, set())

        roles = json.loads(await store.user_roles_json(project_id))

        assert [r["roleId"] for r in roles] == [1, 2, 3, 4]
        assert roles[0]["users"] == [{"userId": alice, "userName": "alice"}]
        assert roles[1]["users"] == []

    @pytest.mark.asyncio
    async def test_project_assignees_json(self, store, make_project):
        await store.initialize()
        alice = await store.create_user("alice", "pw")
        bob = await store.create_user("bob", "pw")
        project_id = await store.create_project(make_project(alice).column_values())
        await store.apply_role_delta(project_id, 1, {alice}, set())
        await store.apply_role_delta(project_id, 2, {alice, bob}, set())

        assert json.loads(await store.project_assignees_json(project_id)) == ["alice", "bob"]
        assert json.loads(await store.project_assignees_json(project_id, 1)) == ["alice"]

    @pytest.mark.asyncio
    async def test_user_todos_excludes_closed(self, store, make_project, make_backlog, make_work):
        await store.initialize()
        alice = await store.create_user("alice", "pw")
        bob = await store.create_user("bob", "pw")
        project_id = await store.create_project(make_project(alice).column_values())
        backlog_id = await store.create_backlog(make_backlog(project_id, alice).column_values())
        owned = await store.create_work(make_work(backlog_id, alice, pic_id=bob).column_values())
        assigned = await store.create_work(make_work(backlog_id, alice, name="Assigned").column_values())
        closed = await store.create_work(
            make_work(backlog_id, alice, name="Done", pic_id=bob, current_state=4).column_values()
        )
        await store.apply_work_delta(assigned, {bob}, set())

        todos = json.loads(await store.user_todos_json(bob))

        assert sorted(t["id"] for t in todos) == sorted([owned, assigned])
        assert closed not in [t["id"] for t in todos]
        assert todos[0]["projectId"] == project_id
        assert todos[0]["backlogName"] == "Sprint 1"

    @pytest.mark.asyncio
    async def test_empty_lists(self, store):
        await store.initialize()

        assert await store.projects_json() == "[]"
        assert await store.backlogs_json(1) == "[]"
        assert await store.usernames_json() == "[]"

    @pytest.mark.asyncio
    async def test_locked_database_is_store_error(self, data_dir):
        """A lock held past the busy timeout surfaces as StoreError."""
        path = os.path.join(data_dir, "locked.db")
        store = ProjectStore(path, wal_mode=False, busy_timeout_ms=50, hash_iterations=1000)
        await store.initialize()

        holder = sqlite3.connect(path, isolation_level=None)
        holder.execute("BEGIN EXCLUSIVE")
        try:
            with pytest.raises(StoreError) as exc_info:
                await store.create_user("alice", "pw")
        finally:
            holder.execute("ROLLBACK")
            holder.close()

        assert exc_info.value.code == "STORE_UNAVAILABLE"
        assert exc_info.value.operation == "create_user"
        assert "locked" not in exc_info.value.message
        assert await store.create_user("alice", "pw") > 0

    @pytest.mark.asyncio
    async def test_unreadable_file_is_store_error(self, data_dir):
        path = os.path.join(data_dir, "garbage.db")
        with open(path, "wb") as f:
            f.write(b"not a database" * 100)
        store = ProjectStore(path, wal_mode=False)

        with pytest.raises(StoreError) as exc_info:
            await store.projects_json()

        assert exc_info.value.operation == "list_projects"
