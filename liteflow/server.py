"""HTTP API over a Liteflow tracker."""

from __future__ import annotations

import logging
import os
import secrets
from contextlib import asynccontextmanager
from typing import Any, Literal, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel

from .store import Liteflow, LiteflowError

logger = logging.getLogger(__name__)

security = HTTPBasic(realm="Liteflow API")
router = APIRouter()


class CreateWorkflowBody(BaseModel):
    name: Optional[str] = None
    identifiers: Optional[list[dict[str, Any]]] = None


class AddStepBody(BaseModel):
    step: Optional[str] = None
    data: Any = None


class FailBody(BaseModel):
    reason: Optional[str] = None


def require_auth(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    """Check credentials against LITEFLOW_AUTH_USERNAME / LITEFLOW_AUTH_PASSWORD."""
    username = os.getenv("LITEFLOW_AUTH_USERNAME")
    password = os.getenv("LITEFLOW_AUTH_PASSWORD")
    valid = (
        username is not None
        and password is not None
        and secrets.compare_digest(credentials.username.encode(), username.encode())
        and secrets.compare_digest(credentials.password.encode(), password.encode())
    )
    if not valid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": 'Basic realm="Liteflow API"'},
        )
    return credentials.username


def get_tracker(request: Request) -> Liteflow:
    return request.app.state.tracker


@router.get("/workflows")
async def list_workflows(
    status_filter: Optional[Literal["pending", "completed", "failed"]] = Query(
        None, alias="status"
    ),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, alias="pageSize"),
    order_by: Literal["started_at", "ended_at"] = Query("started_at", alias="orderBy"),
    order: Literal["asc", "desc"] = Query("desc"),
    tracker: Liteflow = Depends(get_tracker),
    user: str = Depends(require_auth),
):
    result = await tracker.get_workflows(
        status=status_filter,
        page=page,
        page_size=page_size,
        order_by=order_by,
        order=order,
    )
    return result.model_dump(mode="json")


@router.post("/workflows", status_code=status.HTTP_201_CREATED)
async def create_workflow(
    body: CreateWorkflowBody,
    tracker: Liteflow = Depends(get_tracker),
    user: str = Depends(require_auth),
):
    if not body.name or body.identifiers is None:
        raise HTTPException(status_code=400, detail="Name and identifiers are required")
    try:
        handle = await tracker.start_workflow(body.name, body.identifiers)
    except LiteflowError:
        raise HTTPException(status_code=500, detail="Internal server error")
    return {"id": handle.id}


@router.post("/workflows/{workflow_id}/steps", status_code=status.HTTP_201_CREATED)
async def add_step(
    workflow_id: str,
    body: AddStepBody,
    tracker: Liteflow = Depends(get_tracker),
    user: str = Depends(require_auth),
):
    if not body.step:
        raise HTTPException(status_code=400, detail="Step name is required")
    await tracker.add_step(workflow_id, body.step, body.data)
    return {"message": "Step added successfully"}


@router.put("/workflows/{workflow_id}/complete")
async def complete_workflow(
    workflow_id: str,
    tracker: Liteflow = Depends(get_tracker),
    user: str = Depends(require_auth),
):
    await tracker.complete_workflow(workflow_id)
    return {"message": "Workflow completed successfully"}


@router.put("/workflows/{workflow_id}/fail")
async def fail_workflow(
    workflow_id: str,
    body: Optional[FailBody] = None,
    tracker: Liteflow = Depends(get_tracker),
    user: str = Depends(require_auth),
):
    await tracker.fail_workflow(workflow_id, body.reason if body else None)
    return {"message": "Workflow marked as failed"}


@router.delete("/workflows/{workflow_id}")
async def delete_workflow(
    workflow_id: str,
    tracker: Liteflow = Depends(get_tracker),
    user: str = Depends(require_auth),
):
    if not await tracker.delete_workflow(workflow_id):
        raise HTTPException(status_code=404, detail="Workflow not found")
    return {"message": "Workflow deleted successfully"}


@router.get("/stats")
async def get_stats(
    tracker: Liteflow = Depends(get_tracker),
    user: str = Depends(require_auth),
):
    stats = await tracker.get_workflow_stats()
    return {**stats.model_dump(), "failed": stats.failed}


def create_app(tracker: Optional[Liteflow] = None) -> FastAPI:
    """Build the API around ``tracker`` (default: ``Liteflow.from_config()``).

    The tracker's schema is created on startup and its buffer flushed on
    shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.tracker = tracker or Liteflow.from_config()
        await app.state.tracker.init()
        logger.info("Liteflow API started")
        try:
            yield
        finally:
            await app.state.tracker.destroy()

    app = FastAPI(title="Liteflow API", lifespan=lifespan)
    app.include_router(router)
    return app


def run() -> None:
    """Serve the API with uvicorn on $PORT (default 3000)."""
    uvicorn.run(create_app(), host="0.0.0.0", port=int(os.getenv("PORT", "3000")))
