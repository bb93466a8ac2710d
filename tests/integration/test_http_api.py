"""
Integration tests for the HTTP API.

Uses FastAPI's TestClient over a real store in a temporary directory.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from backend.pm_server.api import create_app
from backend.pm_server.config import Settings
from backend.pm_server.service import ProjectService

PROJECT = {
    "name": "Apollo",
    "description": "Moon shot",
    "startDate": "2024-01-01",
    "targetDate": "2024-06-30",
}


class TestHttpApi:
    """Tests for the /api routes."""

    @pytest.fixture
    def users(self, store):
        asyncio.run(store.initialize())
        return {
            name: asyncio.run(store.create_user(name, "pw"))
            for name in ("alice", "bob")
        }

    @pytest.fixture
    def client(self, store, users):
        settings = Settings(database_path=store.db_path.as_posix(), log_format="text")
        app = create_app(settings, service=ProjectService(store))
        with TestClient(app, raise_server_exceptions=False) as client:
            yield client

    def _create_project(self, client, users, **extra):
        body = dict(PROJECT, createdBy=users["alice"], picId=users["alice"], **extra)
        return client.post("/api/postNewProject", json=body)

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["healthy"] is True

    def test_login(self, client, users):
        response = client.post("/api/login", json={"userName": "alice", "password": "pw"})

        assert response.status_code == 200
        assert response.json() == {"userId": users["alice"]}

    def test_login_wrong_password(self, client):
        response = client.post("/api/login", json={"userName": "alice", "password": "bad"})

        assert response.status_code == 401
        assert response.json()["error_code"] == "AUTHENTICATION_FAILED"

    def test_create_and_list_projects(self, client, users):
        response = self._create_project(
            client, users, userRoles=[{"roleId": 2, "usersAdded": [users["bob"]]}]
        )

        assert response.status_code == 200
        project_id = response.json()["projectId"]

        projects = client.get("/api/getProjects").json()
        assert projects[0]["id"] == project_id
        assert projects[0]["picName"] == "alice"

        roles = client.get("/api/getUserRoles", params={"projectId": project_id}).json()
        developers = next(r for r in roles if r["roleId"] == 2)
        assert developers["users"] == [{"userId": users["bob"], "userName": "bob"}]

    def test_list_is_relayed_as_json(self, client):
        response = client.get("/api/getReferenceData")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        assert len(response.json()["states"]) == 4

    def test_partial_creation_is_207(self, client, users):
        response = self._create_project(
            client, users, userRoles=[{"roleId": 2, "usersAdded": [999]}]
        )

        assert response.status_code == 207
        body = response.json()
        assert body["error_code"] == "PARTIAL_CREATION"
        assert body["details"]["failed_role_id"] == 2
        assert client.get("/api/getProjects").json()[0]["id"] == body["details"]["project_id"]

    def test_missing_field_is_400(self, client, users):
        response = client.post("/api/postNewProject", json={"name": "No dates"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_missing_query_parameter_is_400(self, client):
        response = client.get("/api/getBacklogs")

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "projectId"

    def test_creation_with_unknown_user_is_409(self, client):
        response = client.post(
            "/api/postNewProject", json=dict(PROJECT, createdBy=999, picId=999)
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "CREATION_FAILED"
        assert response.json()["details"]["cause_code"] == "CONSTRAINT_VIOLATION"

    def test_alter_project(self, client, users):
        project_id = self._create_project(client, users).json()["projectId"]

        response = client.put(
            "/api/putAlterProject", json={"id": project_id, "targetDate": "2024-09-30"}
        )

        assert response.status_code == 200
        project = client.get("/api/getProjects").json()[0]
        assert project["targetDate"] == "2024-09-30"
        assert project["name"] == "Apollo"

    def test_alter_missing_project_is_404(self, client):
        response = client.put("/api/putAlterProject", json={"id": 404, "name": "x"})

        assert response.status_code == 404
        assert response.json()["error_code"] == "UPDATE_FAILED"

    def test_null_on_required_field_is_400(self, client, users):
        project_id = self._create_project(client, users).json()["projectId"]

        response = client.put("/api/putAlterProject", json={"id": project_id, "name": None})

        assert response.status_code == 400

    def test_put_user_role_overlap_is_400(self, client, users):
        project_id = self._create_project(client, users).json()["projectId"]

        response = client.put(
            "/api/putUserRole",
            json={
                "projectId": project_id,
                "roleId": 2,
                "usersAdded": [users["bob"]],
                "usersRemoved": [users["bob"]],
            },
        )

        assert response.status_code == 400

    def test_backlog_and_work_routes(self, client, users):
        alice, bob = users["alice"], users["bob"]
        project_id = self._create_project(client, users).json()["projectId"]

        backlog = client.post(
            "/api/postNewBacklog",
            json={
                "projectId": project_id,
                "name": "Sprint 1",
                "startDate": "2024-01-01",
                "targetDate": "2024-01-14",
                "createdBy": alice,
                "picId": alice,
                "priorityId": 2,
            },
        )
        assert backlog.status_code == 200
        backlog_id = backlog.json()["backlogId"]

        work = client.post(
            "/api/postNewWork",
            json={
                "backlogId": backlog_id,
                "name": "Login form",
                "startDate": "2024-01-02",
                "targetDate": "2024-01-05",
                "createdBy": alice,
                "priorityId": 2,
                "trackerId": 2,
                "activityId": 2,
            },
        )
        assert work.status_code == 200
        work_id = work.json()["workId"]

        assert client.put("/api/putAlterBacklog", json={"id": backlog_id, "name": "S1"}).status_code == 200
        assert client.put("/api/putAlterWork", json={"id": work_id, "picId": bob}).status_code == 200
        assert client.put(
            "/api/putUserWork", json={"workId": work_id, "usersAdded": [alice]}
        ).status_code == 200

        assert client.get("/api/getBacklogs", params={"projectId": project_id}).json()[0]["name"] == "S1"
        assert client.get("/api/getWorks", params={"backlogId": backlog_id}).json()[0]["picName"] == "bob"
        assert [t["id"] for t in client.get("/api/getUserTodos", params={"userId": bob}).json()] == [work_id]
        assert client.get("/api/getWorkUsers", params={"workId": work_id}).json() == [
            {"userId": alice, "userName": "alice"}
        ]

    def test_usernames_and_assignees(self, client, users):
        project_id = self._create_project(
            client, users, userRoles=[{"roleId": 1, "usersAdded": [users["alice"]]}]
        ).json()["projectId"]
        client.put(
            "/api/putUserRole",
            json={"projectId": project_id, "roleId": 2, "usersAdded": [users["bob"]]},
        )

        assert client.get("/api/getUsernames").json() == ["alice", "bob"]
        assignees = client.get(
            "/api/getProjectAssignees", params={"projectId": project_id, "roleId": 2}
        )
        assert assignees.json() == ["bob"]

    def test_cors_preflight(self, client):
        response = client.options(
            "/api/getProjects",
            headers={
                "Origin": "http://localhost:4200",
                "Access-Control-Request-Method": "GET",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:4200"
