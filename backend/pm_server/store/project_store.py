"""
SQLite store for PM Server.

This module manages the single SQLite database that stores:
- Users (salted password hashes) and Roles
- Projects, Backlogs and Work items
- Project↔User↔Role memberships and Work↔User assignments
- Reference data (trackers, activities, priorities, states)

The store is the authority for referential integrity: every parent and
user reference is a foreign key, and violations surface as
ConstraintError. List queries are aggregated to JSON inside SQLite and
returned as text, so the API relays them unchanged.

Invariants:
    - Every write runs in its own transaction (BEGIN IMMEDIATE)
    - A membership delta is applied in one transaction: removals, then additions
    - Raw SQLite error text is logged, never put in an error message
    - Integrity failures surface as ConstraintError, every other sqlite3
      failure as StoreError
    - Blocking work (SQLite, PBKDF2) runs in the default executor
    - Schema creation and seeding are idempotent

How to change safely:
    - Schema changes must be additive (new nullable columns, new tables)
    - Keep JSON key names stable; clients read them directly
    - Add new writable columns to UPDATABLE_COLUMNS, not just here

Table schema:
    users(id, username UNIQUE, password_hash, salt)
    roles / trackers / activities / priorities(id, name)
    states(id, name, is_closed)
    projects(id, name, description, created_by→users, start_date,
             target_date, pic_id→users, created_at)
    backlogs(id, project_id→projects, name, description, start_date,
             target_date, created_by→users, pic_id→users,
             priority_id→priorities, created_at)
    works(id, backlog_id→backlogs, name, description, start_date,
          target_date, pic_id→users NULL, current_state→states,
          created_by→users, priority_id→priorities, estimated_hours NULL,
          tracker_id→trackers, activity_id→activities, created_at)
    project_user_roles(project_id, role_id, user_id) PRIMARY KEY all three
    work_users(work_id, user_id) PRIMARY KEY both
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import secrets
import sqlite3
import time
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Any, TypeVar

from ..errors import ConstraintError, NotFoundError, StoreError
from ..model.entities import UPDATABLE_COLUMNS, Backlog, EntityKind, Project, Work

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

# Columns accepted on insert, per entity
_CREATE_COLUMNS: dict[EntityKind, frozenset[str]] = {
    EntityKind.PROJECT: frozenset(
        {"name", "description", "created_by", "start_date", "target_date", "pic_id"}
    ),
    EntityKind.BACKLOG: frozenset(
        {
            "project_id",
            "name",
            "description",
            "start_date",
            "target_date",
            "created_by",
            "pic_id",
            "priority_id",
        }
    ),
    EntityKind.WORK: frozenset(
        {
            "backlog_id",
            "name",
            "description",
            "start_date",
            "target_date",
            "pic_id",
            "current_state",
            "created_by",
            "priority_id",
            "estimated_hours",
            "tracker_id",
            "activity_id",
        }
    ),
}

_ROW_TYPES = {
    EntityKind.PROJECT: Project,
    EntityKind.BACKLOG: Backlog,
    EntityKind.WORK: Work,
}

_SEED_ROLES = ((1, "Project Manager"), (2, "Developer"), (3, "Tester"), (4, "Viewer"))
_SEED_TRACKERS = ((1, "Bug"), (2, "Feature"), (3, "Support"))
_SEED_ACTIVITIES = ((1, "Design"), (2, "Development"), (3, "Testing"), (4, "Documentation"))
_SEED_PRIORITIES = ((1, "Low"), (2, "Normal"), (3, "High"), (4, "Urgent"))
_SEED_STATES = ((1, "New", 0), (2, "In Progress", 0), (3, "Resolved", 0), (4, "Closed", 1))


def _to_db(value: Any) -> Any:
    """Convert a Python value to its SQLite representation."""
    if isinstance(value, date):
        return value.isoformat()
    return value


class ProjectStore:
    """SQLite store for projects, backlogs, works and memberships.

    This class provides:
    - Entity create/read/update primitives
    - Membership delta application
    - Credential lookup
    - JSON-aggregated list queries

    Thread safety:
        Each operation opens its own connection inside an executor thread,
        so hashing and busy waits never block the event loop.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> store = ProjectStore("/var/lib/pm/project_manager.db")
        >>> await store.initialize()
        >>> project_id = await store.create_project({...})
    """

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        hash_iterations: int = 100_000,
    ) -> None:
        """Initialize the store.

        Args:
            db_path: SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            hash_iterations: PBKDF2 iterations for password hashes
        """
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.hash_iterations = hash_iterations
        self._init_lock = asyncio.Lock()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection for one operation.

        Yields:
            SQLite connection
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")

            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                salt TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS roles (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL UNIQUE
            );

            CREATE TABLE IF NOT EXISTS trackers (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL UNIQUE
            );

            CREATE TABLE IF NOT EXISTS activities (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL UNIQUE
            );

            CREATE TABLE IF NOT EXISTS priorities (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL UNIQUE
            );

            CREATE TABLE IF NOT EXISTS states (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL UNIQUE,
                is_closed INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS projects (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                description TEXT,
                created_by INTEGER NOT NULL REFERENCES users(id),
                start_date TEXT NOT NULL,
                target_date TEXT NOT NULL,
                pic_id INTEGER NOT NULL REFERENCES users(id),
                created_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS backlogs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id INTEGER NOT NULL REFERENCES projects(id),
                name TEXT NOT NULL,
                description TEXT,
                start_date TEXT NOT NULL,
                target_date TEXT NOT NULL,
                created_by INTEGER NOT NULL REFERENCES users(id),
                pic_id INTEGER NOT NULL REFERENCES users(id),
                priority_id INTEGER NOT NULL REFERENCES priorities(id),
                created_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_backlogs_project ON backlogs(project_id);

            CREATE TABLE IF NOT EXISTS works (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                backlog_id INTEGER NOT NULL REFERENCES backlogs(id),
                name TEXT NOT NULL,
                description TEXT,
                start_date TEXT NOT NULL,
                target_date TEXT NOT NULL,
                pic_id INTEGER REFERENCES users(id),
                current_state INTEGER NOT NULL DEFAULT 1 REFERENCES states(id),
                created_by INTEGER NOT NULL REFERENCES users(id),
                priority_id INTEGER NOT NULL REFERENCES priorities(id),
                estimated_hours REAL,
                tracker_id INTEGER NOT NULL REFERENCES trackers(id),
                activity_id INTEGER NOT NULL REFERENCES activities(id),
                created_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_works_backlog ON works(backlog_id);
            CREATE INDEX IF NOT EXISTS idx_works_pic ON works(pic_id);

            CREATE TABLE IF NOT EXISTS project_user_roles (
                project_id INTEGER NOT NULL REFERENCES projects(id),
                role_id INTEGER NOT NULL REFERENCES roles(id),
                user_id INTEGER NOT NULL REFERENCES users(id),
                PRIMARY KEY (project_id, role_id, user_id)
            );

            CREATE INDEX IF NOT EXISTS idx_project_user_roles_user
                ON project_user_roles(user_id);

            CREATE TABLE IF NOT EXISTS work_users (
                work_id INTEGER NOT NULL REFERENCES works(id),
                user_id INTEGER NOT NULL REFERENCES users(id),
                PRIMARY KEY (work_id, user_id)
            );

            CREATE INDEX IF NOT EXISTS idx_work_users_user ON work_users(user_id);

            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES (1, strftime('%s', 'now') * 1000);
        """)

        conn.executemany("INSERT OR IGNORE INTO roles (id, name) VALUES (?, ?)", _SEED_ROLES)
        conn.executemany(
            "INSERT OR IGNORE INTO trackers (id, name) VALUES (?, ?)", _SEED_TRACKERS
        )
        conn.executemany(
            "INSERT OR IGNORE INTO activities (id, name) VALUES (?, ?)", _SEED_ACTIVITIES
        )
        conn.executemany(
            "INSERT OR IGNORE INTO priorities (id, name) VALUES (?, ?)", _SEED_PRIORITIES
        )
        conn.executemany(
            "INSERT OR IGNORE INTO states (id, name, is_closed) VALUES (?, ?, ?)", _SEED_STATES
        )

    def _initialize(self) -> None:
        with self._get_connection() as conn:
            self._create_schema(conn)

    async def _run(self, operation: str, func: Callable[..., _T], *args: Any) -> _T:
        """Run a blocking store call in the default executor.

        IntegrityError is mapped by ``func`` itself; any other sqlite3
        error reaching this point becomes StoreError.
        """
        try:
            return await asyncio.get_event_loop().run_in_executor(None, func, *args)
        except sqlite3.Error as e:
            logger.error(
                f"Store failure during {operation}: {e}",
                extra={"operation": operation},
            )
            raise StoreError(f"Store unavailable during {operation}", operation=operation) from e

    async def initialize(self) -> None:
        """Create the database file, schema and reference data if missing."""
        async with self._init_lock:
            await self._run("initialize", self._initialize)
        logger.info(f"Initialized project database: {self.db_path}")

    def _ping(self) -> bool:
        with self._get_connection() as conn:
            return conn.execute("SELECT 1").fetchone()[0] == 1

    async def ping(self) -> bool:
        """Check that the database answers a trivial query."""
        return await self._run("ping", self._ping)

    def _constraint_error(
        self, exc: sqlite3.IntegrityError, operation: str, message: str
    ) -> ConstraintError:
        logger.error(
            f"Store rejected {operation}: {exc}",
            extra={"operation": operation},
        )
        return ConstraintError(message, operation=operation)

    # --- Users -----------------------------------------------------------

    def _hash_password(self, password: str, salt: str) -> str:
        digest = hashlib.pbkdf2_hmac(
            "sha256", password.encode("utf-8"), bytes.fromhex(salt), self.hash_iterations
        )
        return digest.hex()

    def _create_user(self, username: str, password: str) -> int:
        salt = secrets.token_hex(16)
        password_hash = self._hash_password(password, salt)

        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO users (username, password_hash, salt) VALUES (?, ?, ?)",
                    (username, password_hash, salt),
                )
                return cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise self._constraint_error(e, "create_user", "Username already exists") from e

    async def create_user(self, username: str, password: str) -> int:
        """Create a user with a salted password hash.

        Args:
            username: Unique login name
            password: Plain-text password (only its hash is stored)

        Returns:
            New user id

        Raises:
            ConstraintError: If the username is taken
        """
        user_id = await self._run("create_user", self._create_user, username, password)
        logger.debug("Created user", extra={"user_id": user_id})
        return user_id

    def _check_credentials(self, username: str, password: str) -> int | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT id, password_hash, salt FROM users WHERE username = ?",
                (username,),
            ).fetchone()

        if row is None:
            return None
        candidate = self._hash_password(password, row["salt"])
        if not hmac.compare_digest(candidate, row["password_hash"]):
            return None
        return row["id"]

    async def get_user_id_by_credentials(self, username: str, password: str) -> int | None:
        """Resolve a username/password pair to a user id.

        Returns:
            User id, or None if the user is unknown or the password is wrong
        """
        return await self._run("login", self._check_credentials, username, password)

    # --- Entities --------------------------------------------------------

    def _insert_row(self, kind: EntityKind, values: Mapping[str, Any]) -> int:
        columns = list(values) + ["created_at"]
        params = [_to_db(values[c]) for c in values] + [int(time.time() * 1000)]
        placeholders = ", ".join("?" for _ in columns)

        try:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    cursor = conn.execute(
                        f"INSERT INTO {kind.table} ({', '.join(columns)}) VALUES ({placeholders})",
                        params,
                    )
                    entity_id = cursor.lastrowid
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
        except sqlite3.IntegrityError as e:
            raise self._constraint_error(
                e, f"create_{kind.value}", f"Failed to create {kind.value}"
            ) from e
        return entity_id

    async def _insert(self, kind: EntityKind, values: Mapping[str, Any]) -> int:
        unknown = set(values) - _CREATE_COLUMNS[kind]
        if unknown:
            raise ValueError(f"Unknown {kind.value} columns: {sorted(unknown)}")

        entity_id = await self._run(f"create_{kind.value}", self._insert_row, kind, values)
        logger.debug(f"Created {kind.value}", extra={"entity_id": entity_id})
        return entity_id

    async def create_project(self, values: Mapping[str, Any]) -> int:
        """Insert a project row and return its id.

        Raises:
            ConstraintError: If creator or PIC is not an existing user
            StoreError: If the database is locked or unreadable
        """
        return await self._insert(EntityKind.PROJECT, values)

    async def create_backlog(self, values: Mapping[str, Any]) -> int:
        """Insert a backlog row and return its id.

        Raises:
            ConstraintError: If the project, a user or the priority is missing
        """
        return await self._insert(EntityKind.BACKLOG, values)

    async def create_work(self, values: Mapping[str, Any]) -> int:
        """Insert a work row and return its id.

        Raises:
            ConstraintError: If the backlog or any reference id is missing
        """
        return await self._insert(EntityKind.WORK, values)

    def _fetch_entity(self, kind: EntityKind, entity_id: int) -> Project | Backlog | Work | None:
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT * FROM {kind.table} WHERE id = ?", (entity_id,)
            ).fetchone()
        if row is None:
            return None
        return _ROW_TYPES[kind].from_row(row)

    async def get_entity(self, kind: EntityKind, entity_id: int) -> Project | Backlog | Work | None:
        """Get an entity by id.

        Returns:
            Row dataclass or None if not found
        """
        return await self._run(f"get_{kind.value}", self._fetch_entity, kind, entity_id)

    async def get_project(self, project_id: int) -> Project | None:
        return await self.get_entity(EntityKind.PROJECT, project_id)

    async def get_backlog(self, backlog_id: int) -> Backlog | None:
        return await self.get_entity(EntityKind.BACKLOG, backlog_id)

    async def get_work(self, work_id: int) -> Work | None:
        return await self.get_entity(EntityKind.WORK, work_id)

    def _update_row(self, kind: EntityKind, entity_id: int, changes: Mapping[str, Any]) -> bool:
        try:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    found = conn.execute(
                        f"SELECT 1 FROM {kind.table} WHERE id = ?", (entity_id,)
                    ).fetchone()
                    if not found:
                        conn.execute("ROLLBACK")
                        return False

                    if changes:
                        assignments = ", ".join(f"{column} = ?" for column in changes)
                        conn.execute(
                            f"UPDATE {kind.table} SET {assignments} WHERE id = ?",
                            [_to_db(v) for v in changes.values()] + [entity_id],
                        )

                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
        except sqlite3.IntegrityError as e:
            raise self._constraint_error(
                e, f"update_{kind.value}", f"Failed to update {kind.value}"
            ) from e
        return True

    async def update_entity(
        self,
        kind: EntityKind,
        entity_id: int,
        changes: Mapping[str, Any],
    ) -> bool:
        """Write only the given columns of an entity.

        Uses PATCH semantics - columns not in ``changes`` are untouched.

        Args:
            kind: Entity kind
            entity_id: Entity identifier
            changes: Column name to new value (None clears the column)

        Returns:
            True if the entity exists, False if not found

        Raises:
            ConstraintError: If a written reference does not exist
            StoreError: If the database is locked or unreadable
        """
        unknown = set(changes) - UPDATABLE_COLUMNS[kind]
        if unknown:
            raise ValueError(f"Columns not updatable on {kind.value}: {sorted(unknown)}")

        found = await self._run(
            f"update_{kind.value}", self._update_row, kind, entity_id, dict(changes)
        )
        if found:
            logger.debug(
                f"Updated {kind.value}",
                extra={"entity_id": entity_id, "columns": sorted(changes)},
            )
        return found

    # --- Memberships -----------------------------------------------------

    def _write_delta(
        self,
        parent: EntityKind,
        parent_id: int,
        delete_sql: str,
        insert_sql: str,
        removed_rows: list[tuple],
        added_rows: list[tuple],
        operation: str,
    ) -> None:
        try:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    found = conn.execute(
                        f"SELECT 1 FROM {parent.table} WHERE id = ?", (parent_id,)
                    ).fetchone()
                    if not found:
                        raise NotFoundError(
                            f"{parent.value.capitalize()} {parent_id} not found",
                            resource_type=parent.value,
                            resource_id=parent_id,
                        )

                    if removed_rows:
                        conn.executemany(delete_sql, removed_rows)
                    if added_rows:
                        conn.executemany(insert_sql, added_rows)

                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
        except sqlite3.IntegrityError as e:
            raise self._constraint_error(
                e, operation, "Membership change references a missing user or role"
            ) from e

    async def apply_role_delta(
        self,
        project_id: int,
        role_id: int,
        users_added: Iterable[int],
        users_removed: Iterable[int],
    ) -> None:
        """Remove then add users for one (project, role) in one transaction.

        Raises:
            NotFoundError: If the project does not exist
            ConstraintError: If a user or the role does not exist
            StoreError: If the database is locked or unreadable
        """
        await self._run(
            "set_user_role",
            self._write_delta,
            EntityKind.PROJECT,
            project_id,
            "DELETE FROM project_user_roles WHERE project_id = ? AND role_id = ? AND user_id = ?",
            "INSERT OR IGNORE INTO project_user_roles (project_id, role_id, user_id) VALUES (?, ?, ?)",
            [(project_id, role_id, u) for u in sorted(users_removed)],
            [(project_id, role_id, u) for u in sorted(users_added)],
            "set_user_role",
        )

    async def apply_work_delta(
        self,
        work_id: int,
        users_added: Iterable[int],
        users_removed: Iterable[int],
    ) -> None:
        """Remove then add assignees for one work item in one transaction.

        Raises:
            NotFoundError: If the work item does not exist
            ConstraintError: If a user does not exist
            StoreError: If the database is locked or unreadable
        """
        await self._run(
            "set_work_assignment",
            self._write_delta,
            EntityKind.WORK,
            work_id,
            "DELETE FROM work_users WHERE work_id = ? AND user_id = ?",
            "INSERT OR IGNORE INTO work_users (work_id, user_id) VALUES (?, ?)",
            [(work_id, u) for u in sorted(users_removed)],
            [(work_id, u) for u in sorted(users_added)],
            "set_work_assignment",
        )

    def _fetch_ids(self, query: str, params: tuple) -> set[int]:
        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return {row[0] for row in rows}

    async def get_role_members(self, project_id: int, role_id: int) -> set[int]:
        return await self._run(
            "get_role_members",
            self._fetch_ids,
            "SELECT user_id FROM project_user_roles WHERE project_id = ? AND role_id = ?",
            (project_id, role_id),
        )

    async def get_work_assignees(self, work_id: int) -> set[int]:
        return await self._run(
            "get_work_assignees",
            self._fetch_ids,
            "SELECT user_id FROM work_users WHERE work_id = ?",
            (work_id,),
        )

    # --- JSON list queries -----------------------------------------------

    def _fetch_json(self, query: str, params: tuple) -> str:
        with self._get_connection() as conn:
            row = conn.execute(query, params).fetchone()
        return row[0] if row and row[0] is not None else "[]"

    async def _query_json(self, operation: str, query: str, params: tuple = ()) -> str:
        return await self._run(operation, self._fetch_json, query, params)

    async def projects_json(self) -> str:
        """All projects with creator and PIC names, oldest first."""
        return await self._query_json("list_projects", """
            SELECT json_group_array(json(obj)) FROM (
                SELECT json_object(
                    'id', p.id,
                    'name', p.name,
                    'description', p.description,
                    'createdBy', p.created_by,
                    'creatorName', creator.username,
                    'startDate', p.start_date,
                    'targetDate', p.target_date,
                    'picId', p.pic_id,
                    'picName', pic.username
                ) AS obj
                FROM projects p
                JOIN users creator ON creator.id = p.created_by
                JOIN users pic ON pic.id = p.pic_id
                ORDER BY p.id
            )
        """)

    async def user_roles_json(self, project_id: int) -> str:
        """Every role with the users holding it on the project."""
        return await self._query_json(
            "list_user_roles",
            """
            SELECT json_group_array(json(obj)) FROM (
                SELECT json_object(
                    'roleId', r.id,
                    'roleName', r.name,
                    'users', json((
                        SELECT json_group_array(
                            json_object('userId', u.id, 'userName', u.username)
                        )
                        FROM project_user_roles pur
                        JOIN users u ON u.id = pur.user_id
                        WHERE pur.project_id = ?1 AND pur.role_id = r.id
                    ))
                ) AS obj
                FROM roles r
                ORDER BY r.id
            )
            """,
            (project_id,),
        )

    async def backlogs_json(self, project_id: int) -> str:
        return await self._query_json(
            "list_backlogs",
            """
            SELECT json_group_array(json(obj)) FROM (
                SELECT json_object(
                    'id', b.id,
                    'projectId', b.project_id,
                    'name', b.name,
                    'description', b.description,
                    'startDate', b.start_date,
                    'targetDate', b.target_date,
                    'createdBy', b.created_by,
                    'picId', b.pic_id,
                    'picName', pic.username,
                    'priorityId', b.priority_id,
                    'priorityName', pr.name
                ) AS obj
                FROM backlogs b
                JOIN users pic ON pic.id = b.pic_id
                JOIN priorities pr ON pr.id = b.priority_id
                WHERE b.project_id = ?1
                ORDER BY b.id
            )
            """,
            (project_id,),
        )

    _WORK_OBJECT = """
        json_object(
            'id', w.id,
            'backlogId', w.backlog_id,
            'name', w.name,
            'description', w.description,
            'startDate', w.start_date,
            'targetDate', w.target_date,
            'picId', w.pic_id,
            'picName', pic.username,
            'currentState', w.current_state,
            'stateName', st.name,
            'createdBy', w.created_by,
            'priorityId', w.priority_id,
            'priorityName', pr.name,
            'estimatedHours', w.estimated_hours,
            'trackerId', w.tracker_id,
            'trackerName', tr.name,
            'activityId', w.activity_id,
            'activityName', ac.name
        )
    """

    _WORK_JOINS = """
        LEFT JOIN users pic ON pic.id = w.pic_id
        JOIN states st ON st.id = w.current_state
        JOIN priorities pr ON pr.id = w.priority_id
        JOIN trackers tr ON tr.id = w.tracker_id
        JOIN activities ac ON ac.id = w.activity_id
    """

    async def works_json(self, backlog_id: int) -> str:
        return await self._query_json(
            "list_works",
            f"""
            SELECT json_group_array(json(obj)) FROM (
                SELECT {self._WORK_OBJECT} AS obj
                FROM works w
                {self._WORK_JOINS}
                WHERE w.backlog_id = ?1
                ORDER BY w.id
            )
            """,
            (backlog_id,),
        )

    async def user_todos_json(self, user_id: int) -> str:
        """Open works the user is in charge of or assigned to."""
        return await self._query_json(
            "list_user_todos",
            f"""
            SELECT json_group_array(json(obj)) FROM (
                SELECT json_set(
                    {self._WORK_OBJECT},
                    '$.projectId', b.project_id,
                    '$.backlogName', b.name
                ) AS obj
                FROM works w
                {self._WORK_JOINS}
                JOIN backlogs b ON b.id = w.backlog_id
                WHERE st.is_closed = 0
                AND (
                    w.pic_id = ?1
                    OR w.id IN (SELECT work_id FROM work_users WHERE user_id = ?1)
                )
                ORDER BY w.target_date, w.id
            )
            """,
            (user_id,),
        )

    async def work_assignees_json(self, work_id: int) -> str:
        return await self._query_json(
            "list_work_assignees",
            """
            SELECT json_group_array(json(obj)) FROM (
                SELECT json_object('userId', u.id, 'userName', u.username) AS obj
                FROM work_users wu
                JOIN users u ON u.id = wu.user_id
                WHERE wu.work_id = ?1
                ORDER BY u.username
            )
            """,
            (work_id,),
        )

    async def usernames_json(self) -> str:
        return await self._query_json(
            "list_usernames",
            "SELECT json_group_array(username) FROM (SELECT username FROM users ORDER BY username)"
        )

    async def project_assignees_json(self, project_id: int, role_id: int | None = None) -> str:
        """Usernames holding any role (or the given role) on the project."""
        return await self._query_json(
            "list_project_assignees",
            """
            SELECT json_group_array(username) FROM (
                SELECT DISTINCT u.username AS username
                FROM project_user_roles pur
                JOIN users u ON u.id = pur.user_id
                WHERE pur.project_id = ?1
                AND (?2 IS NULL OR pur.role_id = ?2)
                ORDER BY u.username
            )
            """,
            (project_id, role_id),
        )

    async def reference_data_json(self) -> str:
        """Trackers, activities, priorities and states in one object."""
        return await self._query_json("list_reference_data", """
            SELECT json_object(
                'trackers', json((
                    SELECT json_group_array(json_object('id', id, 'name', name))
                    FROM trackers
                )),
                'activities', json((
                    SELECT json_group_array(json_object('id', id, 'name', name))
                    FROM activities
                )),
                'priorities', json((
                    SELECT json_group_array(json_object('id', id, 'name', name))
                    FROM priorities
                )),
                'states', json((
                    SELECT json_group_array(
                        json_object('id', id, 'name', name, 'isClosed', json(CASE WHEN is_closed THEN 'true' ELSE 'false' END))
                    )
                    FROM states
                ))
            )
        """)

    def get_db_path(self) -> Path:
        """Get the database file path."""
        return self.db_path
