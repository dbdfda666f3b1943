"""Chat service -- run one message through the engine and persist the result."""

import logging
from uuid import UUID

from finbuild.errors import BadRequestError, ProjectNotFoundError
from finbuild.services.chat.models import ProjectSnapshot
from finbuild.services.engine import Engine

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 20_000


async def send_chat_message(engine: Engine, user_id: UUID, project_id: UUID, message: str) -> dict:
    """Process *message* for the user's project and return the reply dict.

    Raises ProjectNotFoundError if the project does not exist or is not
    owned by *user_id*.
    """
    message = (message or "").strip()
    if not message:
        raise BadRequestError("Message cannot be empty")
    if len(message) > MAX_MESSAGE_LENGTH:
        raise BadRequestError(f"Message exceeds {MAX_MESSAGE_LENGTH} characters")

    response = await engine.controller.process_message(project_id, message, user_id)

    if response.update_project and response.project_data is not None:
        saved = await engine.projects.save(_storable(response.project_data))
        if saved is None:
            raise ProjectNotFoundError()
        response.project_data = ProjectSnapshot.from_row(saved)
        logger.info("Saved project %s (status=%s)", project_id, saved.get("status"))

    return response.to_dict()


async def create_project(
    engine: Engine, user_id: UUID, name: str | None = None, description: str | None = None,
) -> dict:
    row = await engine.projects.create(user_id, name=name, description=description)
    return ProjectSnapshot.from_row(row).to_dict()


async def get_project(engine: Engine, user_id: UUID, project_id: UUID) -> dict:
    project = await engine.controller.load_project(project_id, user_id)
    return project.to_dict()


async def list_projects(engine: Engine, user_id: UUID) -> list[dict]:
    rows = await engine.projects.list_for_user(user_id)
    return [ProjectSnapshot.from_row(r).to_dict() for r in rows]


def _storable(project: ProjectSnapshot) -> dict:
    data = project.to_dict()
    data["id"] = project.id
    data["user_id"] = project.user_id
    return data
