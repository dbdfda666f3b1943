"""Projects router -- project creation, lookup and the chat endpoint."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from finbuild.api.deps import get_current_user_id, get_engine
from finbuild.services.chat_service import (
    MAX_MESSAGE_LENGTH,
    create_project,
    get_project,
    list_projects,
    send_chat_message,
)
from finbuild.services.engine import Engine

router = APIRouter(prefix="/projects", tags=["projects"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CreateProjectRequest(BaseModel):
    """Request body for creating a project.  Both fields may be filled in later by chat."""

    name: str | None = Field(None, max_length=255, description="Project name")
    description: str | None = Field(None, max_length=2000, description="Project description")


class ChatMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH, description="User message")


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@router.post("", status_code=201)
async def create_project_endpoint(
    body: CreateProjectRequest,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    """Create a new project in status ``created``."""
    return await create_project(engine, user_id, name=body.name, description=body.description)


@router.get("")
async def list_projects_endpoint(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    """List the user's projects, newest first."""
    projects = await list_projects(engine, user_id)
    return {"items": projects[offset : offset + limit], "total": len(projects)}


@router.get("/{project_id}")
async def get_project_endpoint(
    project_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    return await get_project(engine, user_id, project_id)


@router.post("/{project_id}/chat")
async def chat(
    project_id: UUID,
    body: ChatMessageRequest,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    """Send one chat message.  The reply carries metadata and any phase change."""
    return await send_chat_message(engine, user_id, project_id, body.message)
