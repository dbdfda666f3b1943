"""Blueprint and component generators backed by the prompt invoker.

Both raise :class:`GenerationFailedError` for anything the conversation can
recover from: provider errors, a missing template, or output that is not
the expected JSON.
"""

import json
import logging
import uuid

from finbuild.errors import CompletionError, GenerationFailedError, TemplateNotFoundError
from finbuild.services.chat.models import ComponentSpec, ComponentStatus, ProjectSnapshot
from finbuild.services.prompt.pipeline import PromptInvoker
from finbuild.services.structured_output import decode_json_object

logger = logging.getLogger(__name__)

BLUEPRINT_TEMPLATE = "generate_blueprint"
COMPONENT_TEMPLATE = "generate_component"


def components_from_blueprint(blueprint: dict) -> list[ComponentSpec]:
    """Build pending components from ``blueprint["components"]``.

    Dependencies may name another component or give its id; both resolve
    to the id.  Unknown dependencies are dropped so they cannot block the
    component forever.
    """
    entries = [c for c in blueprint.get("components") or [] if isinstance(c, dict) and c.get("name")]
    specs = []
    by_name: dict[str, str] = {}
    for entry in entries:
        component_id = str(entry.get("id") or uuid.uuid4())
        by_name[str(entry["name"]).strip().lower()] = component_id
        specs.append(ComponentSpec(
            id=component_id,
            name=str(entry["name"]).strip(),
            description=str(entry.get("description") or ""),
            priority=entry.get("priority"),
        ))

    ids = {s.id for s in specs}
    for spec, entry in zip(specs, entries):
        for dep in entry.get("dependencies") or []:
            dep = str(dep).strip()
            dep_id = dep if dep in ids else by_name.get(dep.lower())
            if dep_id is None or dep_id == spec.id:
                logger.warning("Dropping unknown dependency %r of component %s", dep, spec.name)
                continue
            if dep_id not in spec.dependencies:
                spec.dependencies.append(dep_id)
    return specs


def next_eligible_component(project: ProjectSnapshot) -> ComponentSpec | None:
    """First pending component whose dependencies are all completed."""
    completed = {c.id for c in project.components if c.status is ComponentStatus.COMPLETED}
    for component in project.components:
        if component.status is not ComponentStatus.PENDING:
            continue
        if all(dep in completed for dep in component.dependencies):
            return component
    return None


class BlueprintGenerator:
    def __init__(self, invoker: PromptInvoker) -> None:
        self._invoker = invoker

    async def generate(self, project: ProjectSnapshot, *, conversation_id: str) -> dict:
        variables = {
            "projectName": project.name or "",
            "projectDescription": project.description or "",
            "requirements": project.requirements or "",
            "techStack": ", ".join(project.tech_stack),
            "financialDomain": project.financial_domain or "not specified",
            "tradingVenue": project.trading_venue or "not specified",
        }
        try:
            completion = await self._invoker.run(
                BLUEPRINT_TEMPLATE, variables,
                conversation_id=conversation_id, project_id=project.id,
            )
        except (CompletionError, TemplateNotFoundError) as exc:
            raise GenerationFailedError(f"Blueprint generation failed: {exc}") from exc

        result = decode_json_object(completion.content)
        if not result.ok:
            logger.error("Blueprint output was not usable JSON: %s", result.error)
            raise GenerationFailedError(f"Failed to parse blueprint JSON: {result.error}")

        blueprint = result.value
        if not isinstance(blueprint.get("components"), list):
            blueprint["components"] = []
        logger.info(
            "Generated blueprint for project %s with %d components",
            project.id, len(blueprint["components"]),
        )
        return blueprint


class ComponentGenerator:
    def __init__(self, invoker: PromptInvoker) -> None:
        self._invoker = invoker

    async def generate(
        self, project: ProjectSnapshot, component: ComponentSpec, *, conversation_id: str,
    ) -> dict:
        """Return ``{"summary": str, "files": [{"path", "content"}, ...]}``."""
        dependency_names = [
            dep.name for dep in (project.component_by_id(d) for d in component.dependencies) if dep
        ]
        variables = {
            "componentName": component.name,
            "componentDescription": component.description or "",
            "dependencies": ", ".join(dependency_names) or "none",
            "blueprint": json.dumps(project.blueprint or {}),
            "techStack": ", ".join(project.tech_stack),
        }
        try:
            completion = await self._invoker.run(
                COMPONENT_TEMPLATE, variables,
                conversation_id=conversation_id, project_id=project.id,
            )
        except (CompletionError, TemplateNotFoundError) as exc:
            raise GenerationFailedError(f"Component generation failed: {exc}") from exc

        result = decode_json_object(completion.content)
        if not result.ok:
            raise GenerationFailedError(f"Failed to parse component JSON: {result.error}")

        files = []
        for entry in result.value.get("files") or []:
            if not isinstance(entry, dict) or not entry.get("path"):
                continue
            files.append({"path": str(entry["path"]), "content": str(entry.get("content") or "")})
        if not files:
            raise GenerationFailedError(f"No files generated for component {component.name}")

        logger.info("Generated component %s (%d files)", component.name, len(files))
        return {
            "summary": str(result.value.get("summary") or ""),
            "files": files,
        }
