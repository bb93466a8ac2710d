"""
API routes for PM Server.

Route names follow the web client's existing contract (``/getProjects``,
``/putAlterWork`` and so on). List routes relay the store's JSON text as
the response body; creation routes return the new id; update and
membership routes return ``"ok"``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request, Response

from ..model.payloads import (
    AlterBacklog,
    AlterProject,
    AlterWork,
    Credentials,
    NewBacklog,
    NewProject,
    NewWork,
    UserRoleChange,
    UserWorkChange,
)
from ..service import ProjectService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["PM Server"])


# --- Dependencies ---


def get_service(request: Request) -> ProjectService:
    """Get the service from app state."""
    return request.app.state.service


def _json(text: str) -> Response:
    return Response(content=text, media_type="application/json")


# --- Authentication ---


@router.post("/login")
async def login(credentials: Credentials, service: ProjectService = Depends(get_service)):
    user_id = await service.login(credentials)
    return {"userId": user_id}


# --- Projects ---


@router.post("/postNewProject")
async def post_new_project(spec: NewProject, service: ProjectService = Depends(get_service)):
    """
    Create a project and grant its initial roles.

    Role entries that remove users are skipped for a new project. If a
    grant fails after the project is stored, the response is 207 and
    names the project and the failed role.
    """
    result = await service.create_project(spec)
    return {"projectId": result.project_id}


@router.get("/getProjects")
async def get_projects(service: ProjectService = Depends(get_service)):
    return _json(await service.list_projects())


@router.put("/putAlterProject")
async def put_alter_project(alter: AlterProject, service: ProjectService = Depends(get_service)):
    await service.update_project(alter)
    return "ok"


@router.get("/getUserRoles")
async def get_user_roles(
    project_id: int = Query(..., alias="projectId"),
    service: ProjectService = Depends(get_service),
):
    return _json(await service.list_user_roles(project_id))


@router.put("/putUserRole")
async def put_user_role(delta: UserRoleChange, service: ProjectService = Depends(get_service)):
    await service.set_user_role(delta)
    return "ok"


@router.get("/getProjectAssignees")
async def get_project_assignees(
    project_id: int = Query(..., alias="projectId"),
    role_id: int | None = Query(None, alias="roleId"),
    service: ProjectService = Depends(get_service),
):
    return _json(await service.list_project_assignees(project_id, role_id))


# --- Backlogs ---


@router.get("/getBacklogs")
async def get_backlogs(
    project_id: int = Query(..., alias="projectId"),
    service: ProjectService = Depends(get_service),
):
    return _json(await service.list_backlogs(project_id))


@router.post("/postNewBacklog")
async def post_new_backlog(spec: NewBacklog, service: ProjectService = Depends(get_service)):
    backlog_id = await service.create_backlog(spec)
    return {"backlogId": backlog_id}


@router.put("/putAlterBacklog")
async def put_alter_backlog(alter: AlterBacklog, service: ProjectService = Depends(get_service)):
    await service.update_backlog(alter)
    return "ok"


# --- Works ---


@router.post("/postNewWork")
async def post_new_work(spec: NewWork, service: ProjectService = Depends(get_service)):
    work_id = await service.create_work(spec)
    return {"workId": work_id}


@router.get("/getWorks")
async def get_works(
    backlog_id: int = Query(..., alias="backlogId"),
    service: ProjectService = Depends(get_service),
):
    return _json(await service.list_works(backlog_id))


@router.put("/putAlterWork")
async def put_alter_work(alter: AlterWork, service: ProjectService = Depends(get_service)):
    await service.update_work(alter)
    return "ok"


@router.get("/getUserTodos")
async def get_user_todos(
    user_id: int = Query(..., alias="userId"),
    service: ProjectService = Depends(get_service),
):
    """Open work items the user is in charge of or assigned to."""
    return _json(await service.list_user_todos(user_id))


@router.get("/getWorkUsers")
async def get_work_users(
    work_id: int = Query(..., alias="workId"),
    service: ProjectService = Depends(get_service),
):
    return _json(await service.list_work_assignees(work_id))


@router.put("/putUserWork")
async def put_user_work(delta: UserWorkChange, service: ProjectService = Depends(get_service)):
    await service.set_work_assignment(delta)
    return "ok"


# --- Users & reference data ---


@router.get("/getUsernames")
async def get_usernames(service: ProjectService = Depends(get_service)):
    return _json(await service.list_usernames())


@router.get("/getReferenceData")
async def get_reference_data(service: ProjectService = Depends(get_service)):
    """Trackers, activities, priorities and work states."""
    return _json(await service.list_reference_data())
