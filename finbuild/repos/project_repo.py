"""Project repository -- database reads and writes for the projects table."""

import json
from uuid import UUID

from finbuild.repos.db import PoolFactory, get_pool

_COLUMNS = (
    "id, user_id, name, description, requirements, tech_stack, financial_domain, "
    "trading_venue, status, blueprint, components, created_at, updated_at"
)


class ProjectRepo:
    """asyncpg-backed project persistence.  Rows come back as dicts."""

    def __init__(self, pool_factory: PoolFactory = get_pool) -> None:
        self._get_pool = pool_factory

    async def create(
        self,
        user_id: UUID,
        name: str | None = None,
        description: str | None = None,
    ) -> dict:
        """Insert a new project in status ``created``."""
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            INSERT INTO projects (user_id, name, description)
            VALUES ($1, $2, $3)
            RETURNING {_COLUMNS}
            """,
            user_id,
            name,
            description,
        )
        return _project_to_dict(row)

    async def get(self, project_id: UUID) -> dict | None:
        """Fetch a project by primary key.  Returns None if not found."""
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"SELECT {_COLUMNS} FROM projects WHERE id = $1",
            project_id,
        )
        return _project_to_dict(row) if row else None

    async def list_for_user(self, user_id: UUID) -> list[dict]:
        """All projects of a user, newest first."""
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"SELECT {_COLUMNS} FROM projects WHERE user_id = $1 ORDER BY created_at DESC",
            user_id,
        )
        return [_project_to_dict(r) for r in rows]

    async def save(self, project: dict) -> dict | None:
        """Write every mutable column of *project*.  Returns None if the row is gone."""
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            UPDATE projects
               SET name = $2, description = $3, requirements = $4,
                   tech_stack = $5::jsonb, financial_domain = $6, trading_venue = $7,
                   status = $8, blueprint = $9::jsonb, components = $10::jsonb,
                   updated_at = now()
             WHERE id = $1
            RETURNING {_COLUMNS}
            """,
            project["id"],
            project.get("name"),
            project.get("description"),
            project.get("requirements"),
            json.dumps(project.get("tech_stack") or []),
            project.get("financial_domain"),
            project.get("trading_venue"),
            project.get("status") or "created",
            json.dumps(project["blueprint"]) if project.get("blueprint") is not None else None,
            json.dumps(project.get("components") or []),
        )
        return _project_to_dict(row) if row else None


def _project_to_dict(row) -> dict:
    """Convert a project row to a dict, parsing JSONB columns."""
    d = dict(row)
    for key, empty in (("tech_stack", []), ("components", []), ("blueprint", None)):
        raw = d.get(key)
        if isinstance(raw, str):
            d[key] = json.loads(raw)
        elif raw is None:
            d[key] = empty
    return d
