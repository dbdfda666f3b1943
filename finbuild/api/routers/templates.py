"""Templates router -- versioned prompt templates and project overrides."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from finbuild.api.deps import get_current_user_id, get_engine
from finbuild.errors import TemplateNotFoundError
from finbuild.services.engine import Engine
from finbuild.services.prompt.models import PromptTemplate, TemplateCategory
from finbuild.services.prompt.renderer import placeholders, render_template

router = APIRouter(tags=["templates"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class VariableModel(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    type: str = "string"
    required: bool = False


class CreateTemplateRequest(BaseModel):
    """A new template version.  The version number is assigned by the server."""

    name: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    category: TemplateCategory = TemplateCategory.GENERAL
    description: str = ""
    variables: list[VariableModel] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    active: bool = True


class CreateOverrideRequest(CreateTemplateRequest):
    based_on: UUID | None = None


class UpdateTemplateRequest(BaseModel):
    content: str | None = Field(None, min_length=1)
    description: str | None = None
    tags: list[str] | None = None


class ReviseTemplateRequest(BaseModel):
    content: str | None = Field(None, min_length=1)
    description: str | None = None
    category: TemplateCategory | None = None
    variables: list[VariableModel] | None = None
    tags: list[str] | None = None


class CreateComponentRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1, max_length=100)
    description: str = ""


class RenderRequest(BaseModel):
    variables: dict[str, Any] = Field(default_factory=dict)
    version: int | None = Field(None, ge=1)
    project_id: UUID | None = None


def _payload(body: BaseModel) -> dict:
    data = body.model_dump(exclude_none=True)
    if "category" in data:
        data["category"] = TemplateCategory(data["category"]).value
    return data


def _found(template: PromptTemplate | None, name: str, version: int | None = None) -> dict:
    if template is None:
        raise TemplateNotFoundError(name, version)
    return template.to_dict()


# ---------------------------------------------------------------------------
# Global templates
# ---------------------------------------------------------------------------


@router.get("/templates")
async def list_templates(
    category: TemplateCategory | None = Query(None),
    _user: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    """Latest version of every template name."""
    templates = await engine.store.list_templates(category)
    return {"items": [t.to_dict() for t in templates]}


@router.post("/templates", status_code=201)
async def create_template(
    body: CreateTemplateRequest,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    data = _payload(body)
    data["created_by"] = str(user_id)
    template = await engine.store.create_template(data)
    return template.to_dict()


# ---------------------------------------------------------------------------
# Prompt components (must precede /templates/{name})
# ---------------------------------------------------------------------------


@router.get("/templates/components")
async def list_components(
    category: str | None = Query(None),
    _user: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    components = await engine.store.list_components(category)
    return {"items": [c.to_dict() for c in components]}


@router.post("/templates/components", status_code=201)
async def create_component(
    body: CreateComponentRequest,
    _user: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    component = await engine.store.create_component(body.model_dump())
    return component.to_dict()


@router.get("/templates/{name}")
async def get_template(
    name: str,
    version: int | None = Query(None, ge=1),
    _user: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    """Explicit version, or the newest active version (newest of any state if none active)."""
    return _found(await engine.store.get_template(name, version), name, version)


@router.get("/templates/{name}/versions")
async def list_template_versions(
    name: str,
    _user: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    versions = await engine.store.list_versions(name)
    if not versions:
        raise TemplateNotFoundError(name)
    return {"items": [t.to_dict() for t in versions]}


@router.patch("/templates/{name}/versions/{version}")
async def update_template(
    name: str,
    version: int,
    body: UpdateTemplateRequest,
    _user: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    """Edit content, description or tags of one version in place."""
    return _found(await engine.store.update_template(name, version, _payload(body)), name, version)


@router.post("/templates/{name}/revisions", status_code=201)
async def revise_template(
    name: str,
    body: ReviseTemplateRequest,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    """Create the next version from the latest one plus the given changes."""
    template = await engine.store.revise_template(name, _payload(body), created_by=str(user_id))
    return template.to_dict()


@router.post("/templates/{name}/versions/{version}/activate")
async def activate_template(
    name: str,
    version: int,
    _user: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    return _found(await engine.store.set_active(name, version, True), name, version)


@router.post("/templates/{name}/versions/{version}/deactivate")
async def deactivate_template(
    name: str,
    version: int,
    _user: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    return _found(await engine.store.set_active(name, version, False), name, version)


@router.post("/templates/{name}/render")
async def render_preview(
    name: str,
    body: RenderRequest,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    """Render a stored template with sample variables.  No completion is made."""
    if body.project_id is not None:
        await engine.controller.load_project(body.project_id, user_id)
        template = await engine.store.get_project_template(body.project_id, name, body.version)
    else:
        template = await engine.store.get_template(name, body.version)
    if template is None:
        raise TemplateNotFoundError(name, body.version)

    prompt = render_template(template, body.variables)
    return {
        "template": template.to_dict(),
        "prompt": prompt,
        "unfilled": placeholders(prompt),
    }


# ---------------------------------------------------------------------------
# Project overrides
# ---------------------------------------------------------------------------


@router.post("/projects/{project_id}/templates", status_code=201)
async def create_project_template(
    project_id: UUID,
    body: CreateOverrideRequest,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    await engine.controller.load_project(project_id, user_id)
    data = _payload(body)
    data["created_by"] = str(user_id)
    template = await engine.store.create_project_template(project_id, data)
    return template.to_dict()


@router.get("/projects/{project_id}/templates/{name}")
async def get_project_template(
    project_id: UUID,
    name: str,
    version: int | None = Query(None, ge=1),
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    """Resolve *name* for the project: active override first, then the global template."""
    await engine.controller.load_project(project_id, user_id)
    template = await engine.store.get_project_template(project_id, name, version)
    return _found(template, name, version)


@router.get("/projects/{project_id}/templates/{name}/versions")
async def list_project_template_versions(
    project_id: UUID,
    name: str,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    await engine.controller.load_project(project_id, user_id)
    versions = await engine.store.list_project_versions(project_id, name)
    return {"items": [t.to_dict() for t in versions]}


@router.patch("/projects/{project_id}/templates/{name}/versions/{version}")
async def update_project_template(
    project_id: UUID,
    name: str,
    version: int,
    body: UpdateTemplateRequest,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    await engine.controller.load_project(project_id, user_id)
    template = await engine.store.update_project_template(project_id, name, version, _payload(body))
    return _found(template, name, version)


@router.post("/projects/{project_id}/templates/{name}/versions/{version}/{action}")
async def set_project_template_active(
    project_id: UUID,
    name: str,
    version: int,
    action: str,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    """``action`` is ``activate`` or ``deactivate``."""
    if action not in ("activate", "deactivate"):
        raise HTTPException(status_code=404, detail="Not Found")
    await engine.controller.load_project(project_id, user_id)
    template = await engine.store.set_project_template_active(
        project_id, name, version, action == "activate",
    )
    return _found(template, name, version)
