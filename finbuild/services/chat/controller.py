"""Phase controller -- the conversation state machine.

Each message is handled statelessly: the project is loaded, its phase is
derived from ``status``, and the phase handler returns a
:class:`ChatResponse` plus any mutations to persist.  Only a missing
project and a missing template variable escape as exceptions; every other
failure becomes a conversational error reply.
"""

import json
import logging
import re
from typing import Awaitable, Callable
from uuid import UUID

from finbuild.errors import GenerationFailedError, MissingVariableError, ProjectNotFoundError
from finbuild.repos.project_repo import ProjectRepo
from finbuild.services.chat.generators import (
    BlueprintGenerator,
    ComponentGenerator,
    components_from_blueprint,
    next_eligible_component,
)
from finbuild.services.chat.intent import Intent, IntentClassifier
from finbuild.services.chat.models import ChatResponse, ComponentStatus, Phase, ProjectSnapshot
from finbuild.services.chat.phases import (
    STATUS_BLUEPRINT_APPROVED,
    STATUS_BLUEPRINT_GENERATED,
    STATUS_COMPLETED,
    STATUS_COMPONENT_GENERATION,
    STATUS_REQUIREMENTS_COMPLETED,
    determine_phase,
)
from finbuild.services.chat.requirements import RequirementsExtractor
from finbuild.services.prompt.pipeline import PromptInvoker

logger = logging.getLogger(__name__)

_AFFIRMATIVE = re.compile(r"\b(yes|yep|yeah|approve[sd]?|approving|lgtm|looks good)\b", re.IGNORECASE)

GENERAL_QUERY_FALLBACK = "I'm sorry, I couldn't process your question. Could you try rephrasing it?"

Handler = Callable[[ProjectSnapshot, str], Awaitable[ChatResponse]]


def is_affirmative(message: str) -> bool:
    return bool(_AFFIRMATIVE.search(message))


def requirements_reply(project: ProjectSnapshot) -> str:
    """Ask for whatever required fields are still missing."""
    missing = project.missing_fields
    if not missing:
        return (
            "Great! I have all the information needed for your project. "
            "Shall I proceed with generating the architecture blueprint?"
        )
    if len(missing) > 2:
        return (
            "Thanks for the information. I still need several details to get started: "
            f"{', '.join(missing)}. Could you tell me more about your project?"
        )
    return (
        "I need a bit more information before we can proceed. "
        f"Could you provide the {' and '.join(missing)}?"
    )


class PhaseController:
    """Route a chat message to the handler for the project's phase."""

    def __init__(
        self,
        projects: ProjectRepo,
        invoker: PromptInvoker,
        classifier: IntentClassifier,
        extractor: RequirementsExtractor,
        blueprint_generator: BlueprintGenerator,
        component_generator: ComponentGenerator,
    ) -> None:
        self._projects = projects
        self._invoker = invoker
        self._classifier = classifier
        self._extractor = extractor
        self._blueprints = blueprint_generator
        self._components = component_generator
        self._handlers: dict[Phase, Handler] = {
            Phase.REQUIREMENTS: self._handle_requirements,
            Phase.BLUEPRINT: self._handle_blueprint,
            Phase.COMPONENT: self._handle_component,
            Phase.SUPPORT: self._handle_support,
        }

    async def load_project(self, project_id: UUID, user_id: UUID | None = None) -> ProjectSnapshot:
        """Load a snapshot, treating another user's project as missing."""
        row = await self._projects.get(project_id)
        if row is None or (user_id is not None and row.get("user_id") != user_id):
            raise ProjectNotFoundError()
        return ProjectSnapshot.from_row(row)

    async def process_message(
        self, project_id: UUID, message: str, user_id: UUID | None = None,
    ) -> ChatResponse:
        project = await self.load_project(project_id, user_id)
        phase = determine_phase(project.status)
        logger.info("Processing message for project %s in phase %s", project_id, phase.value)
        try:
            return await self._handlers[phase](project, message)
        except (ProjectNotFoundError, MissingVariableError):
            raise
        except Exception as exc:
            logger.exception("Error processing message for project %s", project_id)
            return ChatResponse(
                message=(
                    "I encountered an error processing your message. "
                    f"Please try again or contact support. Error: {exc}"
                ),
                metadata={"type": "error", "error": str(exc)},
            )

    # ------------------------------------------------------------------
    # Phase handlers
    # ------------------------------------------------------------------

    async def _handle_requirements(self, project: ProjectSnapshot, message: str) -> ChatResponse:
        intent = await self._classify(project, message)
        if intent is Intent.QUERY:
            return await self._general_query(project, message)

        extracted = await self._extractor.extract(
            message, conversation_id=_conversation_id(project), project_id=project.id,
        )
        changed = extracted.merge_into(project)
        complete = project.requirements_complete
        if complete and project.status != STATUS_REQUIREMENTS_COMPLETED:
            project.status = STATUS_REQUIREMENTS_COMPLETED
            changed.append("status")
        if changed:
            logger.info("Project %s requirements updated: %s", project.id, ", ".join(changed))

        return ChatResponse(
            message=requirements_reply(project),
            metadata={
                "type": "requirements_update",
                "requirementsComplete": complete,
                "missing": project.missing_fields,
            },
            update_project=bool(changed),
            project_data=project if changed else None,
            next_phase=Phase.BLUEPRINT if complete else None,
        )

    async def _handle_blueprint(self, project: ProjectSnapshot, message: str) -> ChatResponse:
        intent = await self._classify(project, message)

        if intent is Intent.GENERATE and not project.blueprint:
            return await self._generate_blueprint(project)
        if intent is Intent.APPROVE or is_affirmative(message):
            # Saying yes to "Shall I proceed?" before any blueprint exists
            # is a request to generate one.
            if not project.blueprint:
                return await self._generate_blueprint(project)
            return self._approve_blueprint(project)
        if intent is Intent.MODIFY:
            return await self._answer(
                project, "blueprint_modify", self._blueprint_variables(project, message),
                "blueprint_modification_suggestion",
            )
        if intent is Intent.QUERY:
            return await self._answer(
                project, "blueprint_query", self._blueprint_variables(project, message),
                "blueprint_query_response",
            )
        if intent is Intent.GENERATE and project.status == STATUS_BLUEPRINT_APPROVED:
            project.status = STATUS_COMPONENT_GENERATION
            return await self._generate_next_component(project)
        return await self._general_query(project, message)

    async def _handle_component(self, project: ProjectSnapshot, message: str) -> ChatResponse:
        intent = await self._classify(project, message)
        if intent is Intent.GENERATE:
            return await self._generate_next_component(project)
        if intent is Intent.QUERY:
            return await self._answer(
                project,
                "component_query",
                {
                    "message": message,
                    "blueprint": json.dumps(project.blueprint or {}),
                    "components": json.dumps([c.to_dict() for c in project.components]),
                },
                "component_query_response",
            )
        return await self._general_query(project, message)

    async def _handle_support(self, project: ProjectSnapshot, message: str) -> ChatResponse:
        return await self._general_query(project, message)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def _generate_blueprint(self, project: ProjectSnapshot) -> ChatResponse:
        try:
            blueprint = await self._blueprints.generate(
                project, conversation_id=_conversation_id(project),
            )
        except GenerationFailedError as exc:
            logger.error("Blueprint generation failed for project %s: %s", project.id, exc)
            return ChatResponse(
                message=(
                    "I wasn't able to generate the architecture blueprint just now. "
                    "Would you like me to try again?"
                ),
                metadata={"type": "blueprint_error", "error": str(exc)},
            )

        project.blueprint = blueprint
        project.components = components_from_blueprint(blueprint)
        project.status = STATUS_BLUEPRINT_GENERATED
        return ChatResponse(
            message=(
                f"I've generated the architecture blueprint for your "
                f"{project.financial_domain or 'trading'} application. Here's what I've designed "
                "based on your requirements. Let me know if you'd like any changes to this architecture."
            ),
            metadata={"type": "blueprint_generated", "blueprint": blueprint},
            update_project=True,
            project_data=project,
        )

    def _approve_blueprint(self, project: ProjectSnapshot) -> ChatResponse:
        project.status = STATUS_BLUEPRINT_APPROVED
        return ChatResponse(
            message=(
                "Great! The blueprint is approved. I'll now proceed with component generation. "
                "Which component would you like me to work on first?"
            ),
            metadata={"type": "phase_transition"},
            update_project=True,
            project_data=project,
            next_phase=Phase.COMPONENT,
        )

    async def _generate_next_component(self, project: ProjectSnapshot) -> ChatResponse:
        component = next_eligible_component(project)
        if component is None:
            project.status = STATUS_COMPLETED
            return ChatResponse(
                message=(
                    "All components have been generated! Your trading application is ready. "
                    "Is there anything specific you'd like to know about the components?"
                ),
                metadata={"type": "generation_complete"},
                update_project=True,
                project_data=project,
                next_phase=Phase.SUPPORT,
            )

        try:
            result = await self._components.generate(
                project, component, conversation_id=_conversation_id(project),
            )
        except GenerationFailedError as exc:
            logger.error("Component %s generation failed: %s", component.name, exc)
            return ChatResponse(
                message=(
                    f"I tried to generate the {component.name} component, but encountered an issue. "
                    "Would you like me to try a different component?"
                ),
                metadata={
                    "type": "component_error",
                    "componentName": component.name,
                    "error": str(exc),
                },
            )

        component.status = ComponentStatus.COMPLETED
        component.files = result["files"]
        component.summary = result["summary"]
        project.status = STATUS_COMPONENT_GENERATION
        return ChatResponse(
            message=f"I've generated the {component.name} component. Here's what was created:",
            metadata={
                "type": "component_generated",
                "component": component.to_dict(),
                "files": result["files"],
            },
            update_project=True,
            project_data=project,
        )

    async def _general_query(self, project: ProjectSnapshot, message: str) -> ChatResponse:
        variables = {
            "message": message,
            "projectName": project.name or "your project",
            "projectDescription": project.description or "",
            "projectRequirements": project.requirements or "",
            "projectTechStack": ", ".join(project.tech_stack),
            "projectStatus": project.status or "in progress",
        }
        try:
            completion = await self._invoker.run(
                "general_query", variables,
                conversation_id=_conversation_id(project), project_id=project.id,
            )
        except MissingVariableError:
            raise
        except Exception as exc:
            logger.error("General query failed for project %s: %s", project.id, exc)
            return ChatResponse(
                message=GENERAL_QUERY_FALLBACK,
                metadata={"type": "error", "error": str(exc)},
            )
        return ChatResponse(
            message=completion.content.strip(),
            metadata={"type": "general_response"},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _classify(self, project: ProjectSnapshot, message: str) -> Intent:
        return await self._classifier.classify(
            message, conversation_id=_conversation_id(project), project_id=project.id,
        )

    async def _answer(
        self, project: ProjectSnapshot, template: str, variables: dict, response_type: str,
    ) -> ChatResponse:
        completion = await self._invoker.run(
            template, variables,
            conversation_id=_conversation_id(project), project_id=project.id,
        )
        return ChatResponse(message=completion.content.strip(), metadata={"type": response_type})

    @staticmethod
    def _blueprint_variables(project: ProjectSnapshot, message: str) -> dict:
        return {
            "message": message,
            "requirements": project.requirements or "",
            "blueprint": json.dumps(project.blueprint or {}),
        }


def _conversation_id(project: ProjectSnapshot) -> str:
    return str(project.id)
