"""Task hierarchy API endpoints.

This module provides a FastAPI router for creating, editing, moving and
deleting tasks, re-anchoring projects and instantiating templates.  It is
mounted under ``/api/tasks`` by the ``create_app`` factory.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..engine.model import TaskOrigin
from ..service import TaskService

# Failure kind -> HTTP status.
STATUS_BY_KIND = {
    "NotFound": 404,
    "InvalidOrder": 400,
    "InvalidDate": 400,
    "InvalidHierarchy": 400,
    "InvalidTask": 400,
    "QuotaExceeded": 409,
    "PersistenceFailure": 502,
}


# ---------------------------------------------------------------------------
# Pydantic request / response models
# ---------------------------------------------------------------------------

class CreateTaskRequest(BaseModel):
    title: str
    parent_task_id: Optional[str] = None
    origin: Optional[str] = None
    description: str = ""
    purpose: str = ""
    actions: list[str] = Field(default_factory=list)
    resources: list[str] = Field(default_factory=list)
    default_duration: Optional[int] = None
    duration_days: Optional[int] = None
    start_date: Optional[str] = None
    position: Optional[int] = None
    index: Optional[int] = None
    license_id: Optional[str] = None


class UpdateTaskRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    purpose: Optional[str] = None
    actions: Optional[list[str]] = None
    resources: Optional[list[str]] = None
    is_complete: Optional[bool] = None
    default_duration: Optional[int] = None
    duration_days: Optional[int] = None


class MoveTaskRequest(BaseModel):
    parent_task_id: Optional[str] = None
    index: Optional[int] = None


class StartDateRequest(BaseModel):
    start_date: str


class CloneTemplateRequest(BaseModel):
    start_date: Optional[str] = None
    title: Optional[str] = None
    license_id: Optional[str] = None


class TaskResponse(BaseModel):
    task: dict[str, Any]
    children: list[dict[str, Any]]


class TaskListResponse(BaseModel):
    tasks: list[dict[str, Any]]
    total: int


class CheckResponse(BaseModel):
    ok: bool
    problems: list[str]


def _reply(result: dict[str, Any], status_code: int = 200) -> JSONResponse:
    if not result.get("success"):
        return JSONResponse(status_code=STATUS_BY_KIND.get(result.get("kind"), 400), content=result)
    return JSONResponse(status_code=status_code, content=result)


# ---------------------------------------------------------------------------
# Router factory
# ---------------------------------------------------------------------------

def create_task_router(get_service: Callable[[Optional[str]], TaskService]) -> APIRouter:
    """Create the task API router.

    Parameters
    ----------
    get_service:
        A callable ``(project_dir_param: str | None) -> TaskService`` that
        resolves the service for the current request's project directory.
    """
    router = APIRouter(prefix="/api/tasks", tags=["tasks"])

    @router.get("", response_model=TaskListResponse)
    async def list_tasks(
        project_dir: Optional[str] = Query(None),
        origin: Optional[str] = Query(None),
        parent_id: Optional[str] = Query(None),
    ) -> TaskListResponse:
        service = get_service(project_dir)
        try:
            parsed = TaskOrigin(origin) if origin else None
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown origin {origin!r}")
        data = [t.to_dict() for t in service.list_tasks(parsed, parent_id)]
        return TaskListResponse(tasks=data, total=len(data))

    @router.post("")
    async def create_task(
        body: CreateTaskRequest,
        project_dir: Optional[str] = Query(None),
    ) -> JSONResponse:
        service = get_service(project_dir)
        fields = body.model_dump(exclude={"index", "license_id"}, exclude_none=True)
        result = service.create_task(fields, license_id=body.license_id, index=body.index)
        return _reply(result, status_code=201)

    @router.post("/refresh")
    async def refresh(project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        tree = get_service(project_dir).refresh()
        return {"success": True, "total": len(tree)}

    @router.get("/check", response_model=CheckResponse)
    async def check(project_dir: Optional[str] = Query(None)) -> CheckResponse:
        problems = get_service(project_dir).check()
        return CheckResponse(ok=not problems, problems=problems)

    @router.post("/templates/{template_id}/clone")
    async def clone_template(
        template_id: str,
        body: CloneTemplateRequest,
        project_dir: Optional[str] = Query(None),
    ) -> JSONResponse:
        service = get_service(project_dir)
        result = service.clone_template(
            template_id,
            body.start_date,
            title=body.title,
            license_id=body.license_id,
        )
        return _reply(result, status_code=201)

    @router.get("/{task_id}", response_model=TaskResponse)
    async def get_task(
        task_id: str,
        project_dir: Optional[str] = Query(None),
    ) -> TaskResponse:
        service = get_service(project_dir)
        task = service.get_task(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
        children = [c.to_dict() for c in service.tree.children(task_id)]
        return TaskResponse(task=task.to_dict(), children=children)

    @router.patch("/{task_id}")
    async def update_task(
        task_id: str,
        body: UpdateTaskRequest,
        project_dir: Optional[str] = Query(None),
    ) -> JSONResponse:
        changes = body.model_dump(exclude_none=True)
        return _reply(get_service(project_dir).update_task(task_id, changes))

    @router.delete("/{task_id}")
    async def delete_task(
        task_id: str,
        project_dir: Optional[str] = Query(None),
    ) -> JSONResponse:
        return _reply(get_service(project_dir).delete_task(task_id))

    @router.post("/{task_id}/move")
    async def move_task(
        task_id: str,
        body: MoveTaskRequest,
        project_dir: Optional[str] = Query(None),
    ) -> JSONResponse:
        return _reply(get_service(project_dir).move_task(task_id, body.parent_task_id, body.index))

    @router.post("/{task_id}/start-date")
    async def set_start_date(
        task_id: str,
        body: StartDateRequest,
        project_dir: Optional[str] = Query(None),
    ) -> JSONResponse:
        return _reply(get_service(project_dir).set_start_date(task_id, body.start_date))

    return router
