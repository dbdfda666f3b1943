"""Project snapshot and chat response types."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping
from uuid import UUID


class Phase(str, enum.Enum):
    """Conceptual stage of a project's conversation."""

    REQUIREMENTS = "requirements"
    BLUEPRINT = "blueprint"
    COMPONENT = "component"
    SUPPORT = "support"


class ComponentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


@dataclass
class ComponentSpec:
    """One buildable unit of a blueprint.

    ``dependencies`` holds ids of other components in the same project.
    """

    id: str
    name: str
    description: str = ""
    dependencies: list[str] = field(default_factory=list)
    status: ComponentStatus = ComponentStatus.PENDING
    priority: str | None = None
    summary: str | None = None
    files: list[dict] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ComponentSpec":
        try:
            status = ComponentStatus(data.get("status") or ComponentStatus.PENDING.value)
        except ValueError:
            status = ComponentStatus.PENDING
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            dependencies=[str(d) for d in data.get("dependencies") or []],
            status=status,
            priority=data.get("priority"),
            summary=data.get("summary"),
            files=list(data.get("files") or []),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "dependencies": list(self.dependencies),
            "status": self.status.value,
            "priority": self.priority,
            "summary": self.summary,
            "files": list(self.files),
        }


# The four fields that must be present before a blueprint can be generated,
# with the label used when asking the user for them.
REQUIRED_FIELD_LABELS = (
    ("name", "project name"),
    ("description", "description"),
    ("requirements", "detailed requirements"),
    ("tech_stack", "technology stack"),
)


@dataclass
class ProjectSnapshot:
    """The slice of a project the conversation engine reads and writes."""

    id: UUID
    user_id: UUID | None = None
    name: str | None = None
    description: str | None = None
    requirements: str | None = None
    tech_stack: list[str] = field(default_factory=list)
    financial_domain: str | None = None
    trading_venue: str | None = None
    status: str | None = "created"
    blueprint: dict | None = None
    components: list[ComponentSpec] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def missing_fields(self) -> list[str]:
        """Labels of the required fields that are still empty, in fixed order."""
        return [label for attr, label in REQUIRED_FIELD_LABELS if not getattr(self, attr)]

    @property
    def requirements_complete(self) -> bool:
        return not self.missing_fields

    def component_by_id(self, component_id: str) -> ComponentSpec | None:
        for component in self.components:
            if component.id == component_id:
                return component
        return None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ProjectSnapshot":
        return cls(
            id=row["id"],
            user_id=row.get("user_id"),
            name=row.get("name"),
            description=row.get("description"),
            requirements=row.get("requirements"),
            tech_stack=list(row.get("tech_stack") or []),
            financial_domain=row.get("financial_domain"),
            trading_venue=row.get("trading_venue"),
            status=row.get("status"),
            blueprint=row.get("blueprint"),
            components=[ComponentSpec.from_dict(c) for c in row.get("components") or []],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id) if self.user_id else None,
            "name": self.name,
            "description": self.description,
            "requirements": self.requirements,
            "tech_stack": list(self.tech_stack),
            "financial_domain": self.financial_domain,
            "trading_venue": self.trading_venue,
            "status": self.status,
            "blueprint": self.blueprint,
            "components": [c.to_dict() for c in self.components],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class ChatResponse:
    """Reply to one chat message.

    ``update_project`` tells the caller to persist ``project_data``.
    """

    message: str
    metadata: dict = field(default_factory=dict)
    update_project: bool = False
    project_data: ProjectSnapshot | None = None
    next_phase: Phase | None = None

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "metadata": self.metadata,
            "update_project": self.update_project,
            "project_data": self.project_data.to_dict() if self.project_data else None,
            "next_phase": self.next_phase.value if self.next_phase else None,
        }
