"""Template store -- versioned prompt templates and project overrides.

Version numbers are assigned here, never by clients: a new template gets
``max(version) + 1`` for its name (1 for the first).  Versions are never
deleted; deactivation removes a version from "latest" resolution but
keeps it addressable by number.  Prompt components, the reusable
fragments template authors draw on, live here too but are keyed by name
alone.
"""

import logging
from uuid import UUID

from finbuild.errors import BadRequestError, NotFoundError, VersionConflictError
from finbuild.repos.component_repo import PromptComponentRepo
from finbuild.repos.template_repo import TemplateRepo
from finbuild.services.prompt.models import PromptComponent, PromptTemplate, TemplateCategory

logger = logging.getLogger(__name__)

# Fields ``update_template`` may patch in place.
UPDATABLE_FIELDS = frozenset({"content", "description", "tags"})

# Fields a client may supply on create.  ``version`` is always store-assigned.
_CREATE_FIELDS = frozenset({
    "name", "content", "description", "category", "variables", "tags",
    "active", "created_by", "based_on",
})

_MAX_CREATE_ATTEMPTS = 3


class TemplateStore:
    """Create, version and resolve prompt templates."""

    def __init__(self, repo: TemplateRepo, components: PromptComponentRepo | None = None) -> None:
        self._repo = repo
        self._components = components or PromptComponentRepo()

    # ------------------------------------------------------------------
    # Global templates
    # ------------------------------------------------------------------

    async def create_template(self, data: dict) -> PromptTemplate:
        """Store a new version of ``data["name"]`` and return it."""
        return await self._create(data, project_id=None)

    async def get_template(self, name: str, version: int | None = None) -> PromptTemplate | None:
        """Resolve a global template.

        With *version*, return exactly that version (active or not).
        Without, return the highest active version, falling back to the
        highest version of any state.  None when the name is unknown.
        """
        return await self._resolve(name, version, project_id=None, any_state_fallback=True)

    async def update_template(self, name: str, version: int, patch: dict) -> PromptTemplate | None:
        """Patch content/description/tags of one version in place."""
        return await self._update(name, version, patch, project_id=None)

    async def revise_template(self, name: str, patch: dict, *, created_by: str | None = None) -> PromptTemplate:
        """Create the next version of *name* from its latest version plus *patch*."""
        latest = await self._repo.fetch_latest(name)
        if latest is None:
            raise NotFoundError(f"Prompt template not found: {name}")
        base = PromptTemplate.from_row(latest)
        data = _template_data(base)
        data.update({k: v for k, v in patch.items() if k in _CREATE_FIELDS - {"name"}})
        data["created_by"] = created_by or base.created_by
        return await self.create_template(data)

    async def set_active(self, name: str, version: int, active: bool) -> PromptTemplate | None:
        """Activate or deactivate one global version."""
        row = await self._repo.update_version(name, version, {"active": active})
        if row is not None:
            logger.info("Template %s v%d active=%s", name, version, active)
        return PromptTemplate.from_row(row) if row else None

    async def list_versions(self, name: str) -> list[PromptTemplate]:
        return [PromptTemplate.from_row(r) for r in await self._repo.list_versions(name)]

    async def list_templates(self, category: TemplateCategory | str | None = None) -> list[PromptTemplate]:
        """Latest version of every global template, optionally by category."""
        cat = TemplateCategory(category).value if category else None
        return [PromptTemplate.from_row(r) for r in await self._repo.list_latest(category=cat)]

    # ------------------------------------------------------------------
    # Project overrides
    # ------------------------------------------------------------------

    async def create_project_template(self, project_id: UUID, data: dict) -> PromptTemplate:
        """Store a new override version for (*project_id*, ``data["name"]``).

        ``based_on`` defaults to the id of the newest global template with
        the same name, when one exists.
        """
        data = dict(data)
        if not data.get("based_on"):
            base = await self._repo.fetch_latest(data.get("name", ""))
            if base is not None:
                data["based_on"] = base["id"]
        return await self._create(data, project_id=project_id)

    async def get_project_template(
        self, project_id: UUID, name: str, version: int | None = None,
    ) -> PromptTemplate | None:
        """Resolve *name* for a project: override first, then global.

        Without *version* only an *active* override counts, so deactivating
        every override version falls back to the global template.
        """
        override = await self._resolve(name, version, project_id=project_id, any_state_fallback=False)
        if override is not None:
            return override
        return await self.get_template(name, version)

    async def update_project_template(
        self, project_id: UUID, name: str, version: int, patch: dict,
    ) -> PromptTemplate | None:
        return await self._update(name, version, patch, project_id=project_id)

    async def set_project_template_active(
        self, project_id: UUID, name: str, version: int, active: bool,
    ) -> PromptTemplate | None:
        row = await self._repo.update_version(name, version, {"active": active}, project_id=project_id)
        return PromptTemplate.from_row(row) if row else None

    async def list_project_versions(self, project_id: UUID, name: str) -> list[PromptTemplate]:
        rows = await self._repo.list_versions(name, project_id=project_id)
        return [PromptTemplate.from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Prompt components
    # ------------------------------------------------------------------

    async def create_component(self, data: dict) -> PromptComponent:
        """Store a named prompt fragment.  Names are unique; there are no versions."""
        name = str(data.get("name") or "").strip()
        content = str(data.get("content") or "")
        category = str(data.get("category") or "").strip()
        if not name or not content.strip() or not category:
            raise BadRequestError("Name, content, and category are required")
        row = await self._components.insert(
            name, content, category, str(data.get("description") or "").strip(),
        )
        logger.info("Created prompt component %s (%s)", name, category)
        return PromptComponent.from_row(row)

    async def list_components(self, category: str | None = None) -> list[PromptComponent]:
        """Every component, by name, optionally limited to one category."""
        category = category.strip() if category else None
        rows = await self._components.list(category=category or None)
        return [PromptComponent.from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _create(self, data: dict, *, project_id: UUID | None) -> PromptTemplate:
        record = _validate_create(data)
        # Two writers can compute the same next version; the unique
        # (name, version) constraint rejects the loser, which recomputes.
        for attempt in range(_MAX_CREATE_ATTEMPTS):
            current = await self._repo.max_version(record["name"], project_id=project_id)
            record["version"] = (current or 0) + 1
            try:
                row = await self._repo.insert(record, project_id=project_id)
            except VersionConflictError:
                if attempt == _MAX_CREATE_ATTEMPTS - 1:
                    raise
                logger.warning(
                    "Version race on template %s v%d, retrying",
                    record["name"], record["version"],
                )
                continue
            template = PromptTemplate.from_row(row)
            logger.info(
                "Created %s %s v%d",
                "override" if project_id else "template", template.name, template.version,
            )
            return template
        raise VersionConflictError()  # pragma: no cover

    async def _resolve(
        self,
        name: str,
        version: int | None,
        *,
        project_id: UUID | None,
        any_state_fallback: bool,
    ) -> PromptTemplate | None:
        if version is not None:
            row = await self._repo.fetch_version(name, version, project_id=project_id)
        else:
            row = await self._repo.fetch_latest(name, project_id=project_id, active_only=True)
            if row is None and any_state_fallback:
                row = await self._repo.fetch_latest(name, project_id=project_id)
        return PromptTemplate.from_row(row) if row else None

    async def _update(
        self, name: str, version: int, patch: dict, *, project_id: UUID | None,
    ) -> PromptTemplate | None:
        changes = {k: v for k, v in patch.items() if k in UPDATABLE_FIELDS}
        if "content" in changes and not str(changes["content"]).strip():
            raise BadRequestError("Template content cannot be empty")
        row = await self._repo.update_version(name, version, changes, project_id=project_id)
        return PromptTemplate.from_row(row) if row else None


def _validate_create(data: dict) -> dict:
    """Return the storable subset of *data*, validating name/content/category."""
    name = str(data.get("name") or "").strip()
    if not name:
        raise BadRequestError("Template name is required")
    content = data.get("content")
    if not content or not str(content).strip():
        raise BadRequestError("Template content is required")
    try:
        category = TemplateCategory(data.get("category") or TemplateCategory.GENERAL.value)
    except ValueError as exc:
        raise BadRequestError(f"Unknown template category: {data.get('category')}") from exc

    record = {k: v for k, v in data.items() if k in _CREATE_FIELDS}
    record["name"] = name
    record["category"] = category.value
    record["variables"] = [
        v if isinstance(v, dict) else v.to_dict() for v in data.get("variables") or []
    ]
    record["tags"] = list(data.get("tags") or [])
    record.setdefault("active", True)
    return record


def _template_data(template: PromptTemplate) -> dict:
    """Storable fields of an existing template, for copying into a new version."""
    return {
        "name": template.name,
        "content": template.content,
        "description": template.description,
        "category": template.category.value,
        "variables": [v.to_dict() for v in template.variables],
        "tags": list(template.tags),
        "active": True,
        "created_by": template.created_by,
    }
