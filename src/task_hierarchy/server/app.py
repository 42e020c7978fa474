"""FastAPI application factory for the task hierarchy API."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from ..service import TaskService
from .task_api import create_task_router


def create_app(
    project_dir: Optional[Path] = None,
    enable_cors: bool = True,
    *,
    user_id: Optional[str] = "local",
    white_label_id: Optional[str] = None,
    service: Optional[TaskService] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        project_dir: Default project directory.
        enable_cors: Whether to enable CORS.
        user_id: Identity stamped on tasks created through the API.
        white_label_id: Organization scope for fetched tasks.
        service: Pre-built service used for the default project.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(
        title="Task Hierarchy",
        description="Hierarchical task templates and scheduled projects",
        version="1.0.0",
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.state.default_project_dir = project_dir
    services: dict[Path, TaskService] = {}
    services_lock = threading.Lock()

    def _get_project_dir(project_dir_param: Optional[str] = None) -> Path:
        if project_dir_param:
            return Path(project_dir_param)
        if app.state.default_project_dir:
            return app.state.default_project_dir
        return Path.cwd()

    def get_service(project_dir_param: Optional[str] = None) -> TaskService:
        """Resolve (and cache) the service for a project directory."""
        if service is not None and not project_dir_param:
            return service
        resolved = _get_project_dir(project_dir_param).resolve()
        with services_lock:
            existing = services.get(resolved)
            if existing is None:
                logger.info("Opening task store in {}", resolved)
                existing = TaskService.for_project(resolved, user_id=user_id, white_label_id=white_label_id)
                services[resolved] = existing
            return existing

    app.include_router(create_task_router(get_service))

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Task Hierarchy",
            "version": "1.0.0",
            "status": "running",
        }

    return app
