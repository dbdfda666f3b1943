"""Template repository -- reads and writes for prompt_templates and project_prompt_templates.

Both tables share one column layout; the project table adds ``project_id``
and ``based_on``.  Every method takes an optional ``project_id``: when set,
the project override table is queried, scoped to that project.
"""

import json
from uuid import UUID

import asyncpg

from finbuild.errors import VersionConflictError
from finbuild.repos.db import PoolFactory, get_pool

_GLOBAL_COLUMNS = (
    "id, name, version, content, description, category, variables, tags, "
    "active, created_by, created_at, updated_at"
)
_PROJECT_COLUMNS = _GLOBAL_COLUMNS + ", project_id, based_on"

# Columns an in-place update may touch.  name/version are never rewritten.
_UPDATABLE = ("content", "description", "tags", "active")


def _scope(project_id: UUID | None) -> tuple[str, str, list]:
    """Return (table, columns, leading args) for the global or project scope."""
    if project_id is None:
        return "prompt_templates", _GLOBAL_COLUMNS, []
    return "project_prompt_templates", _PROJECT_COLUMNS, [project_id]


def _where(project_id: UUID | None, *clauses: str) -> str:
    """Build a WHERE clause, numbering placeholders after the scope arg.

    Each clause takes at most one parameter, written as ``{0}``.
    """
    index = 0 if project_id is None else 1
    parts = ["project_id = $1"] if project_id is not None else []
    for clause in clauses:
        if "{0}" in clause:
            index += 1
            clause = clause.format(f"${index}")
        parts.append(clause)
    return " AND ".join(parts) if parts else "TRUE"


class TemplateRepo:
    """asyncpg-backed template persistence."""

    def __init__(self, pool_factory: PoolFactory = get_pool) -> None:
        self._get_pool = pool_factory

    async def max_version(self, name: str, *, project_id: UUID | None = None) -> int | None:
        """Highest stored version for *name*, or None when none exists."""
        table, _, args = _scope(project_id)
        pool = await self._get_pool()
        return await pool.fetchval(
            f"SELECT max(version) FROM {table} WHERE {_where(project_id, 'name = {0}')}",
            *args, name,
        )

    async def insert(self, data: dict, *, project_id: UUID | None = None) -> dict:
        """Insert one template version.

        Raises :class:`VersionConflictError` when (name, version) is taken.
        """
        pool = await self._get_pool()
        values = [
            data["name"],
            data["version"],
            data["content"],
            data.get("description") or "",
            data.get("category") or "general",
            json.dumps(data.get("variables") or []),
            json.dumps(data.get("tags") or []),
            bool(data.get("active", True)),
            data.get("created_by"),
        ]
        try:
            if project_id is None:
                row = await pool.fetchrow(
                    f"""
                    INSERT INTO prompt_templates
                        (name, version, content, description, category,
                         variables, tags, active, created_by)
                    VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7::jsonb, $8, $9)
                    RETURNING {_GLOBAL_COLUMNS}
                    """,
                    *values,
                )
            else:
                row = await pool.fetchrow(
                    f"""
                    INSERT INTO project_prompt_templates
                        (name, version, content, description, category,
                         variables, tags, active, created_by, project_id, based_on)
                    VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7::jsonb, $8, $9, $10, $11)
                    RETURNING {_PROJECT_COLUMNS}
                    """,
                    *values, project_id, data.get("based_on"),
                )
        except asyncpg.UniqueViolationError as exc:
            raise VersionConflictError(
                f"Template '{data['name']}' v{data['version']} already exists"
            ) from exc
        return _template_to_dict(row)

    async def fetch_version(
        self, name: str, version: int, *, project_id: UUID | None = None,
    ) -> dict | None:
        """Fetch one exact version, active or not."""
        table, columns, args = _scope(project_id)
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"SELECT {columns} FROM {table} "
            f"WHERE {_where(project_id, 'name = {0}', 'version = {0}')}",
            *args, name, version,
        )
        return _template_to_dict(row) if row else None

    async def fetch_latest(
        self, name: str, *, project_id: UUID | None = None, active_only: bool = False,
    ) -> dict | None:
        """Fetch the highest version of *name*, optionally among active ones."""
        table, columns, args = _scope(project_id)
        clauses = ["name = {0}"]
        if active_only:
            clauses.append("active")
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"SELECT {columns} FROM {table} WHERE {_where(project_id, *clauses)} "
            f"ORDER BY version DESC LIMIT 1",
            *args, name,
        )
        return _template_to_dict(row) if row else None

    async def list_versions(self, name: str, *, project_id: UUID | None = None) -> list[dict]:
        """Every version of *name*, newest first."""
        table, columns, args = _scope(project_id)
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"SELECT {columns} FROM {table} WHERE {_where(project_id, 'name = {0}')} "
            f"ORDER BY version DESC",
            *args, name,
        )
        return [_template_to_dict(r) for r in rows]

    async def list_latest(self, *, category: str | None = None) -> list[dict]:
        """Highest version of every global template name, sorted by name."""
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            SELECT DISTINCT ON (name) {_GLOBAL_COLUMNS}
            FROM prompt_templates
            WHERE ($1::text IS NULL OR category = $1)
            ORDER BY name, version DESC
            """,
            category,
        )
        return [_template_to_dict(r) for r in rows]

    async def update_version(
        self, name: str, version: int, fields: dict, *, project_id: UUID | None = None,
    ) -> dict | None:
        """Patch the updatable columns of one version.  Returns None if absent."""
        changes = {k: v for k, v in fields.items() if k in _UPDATABLE}
        if not changes:
            return await self.fetch_version(name, version, project_id=project_id)

        table, columns, args = _scope(project_id)
        base = len(args) + 2  # scope args, then name, version
        assignments = []
        values: list = []
        for i, (column, value) in enumerate(changes.items()):
            cast = "::jsonb" if column == "tags" else ""
            assignments.append(f"{column} = ${base + i + 1}{cast}")
            values.append(json.dumps(value) if column == "tags" else value)

        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            UPDATE {table}
               SET {', '.join(assignments)}, updated_at = now()
             WHERE {_where(project_id, 'name = {0}', 'version = {0}')}
            RETURNING {columns}
            """,
            *args, name, version, *values,
        )
        return _template_to_dict(row) if row else None


def _template_to_dict(row) -> dict:
    """Convert a template row to a dict, parsing JSONB columns."""
    d = dict(row)
    for key in ("variables", "tags"):
        raw = d.get(key)
        if isinstance(raw, str):
            d[key] = json.loads(raw)
        elif raw is None:
            d[key] = []
    return d
