"""Prompt template and telemetry records."""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Mapping
from uuid import UUID


class TemplateCategory(str, enum.Enum):
    """Closed set of template categories."""

    GENERAL = "general"
    REQUIREMENTS = "requirements"
    BLUEPRINT = "blueprint"
    COMPONENT = "component"
    SUPPORT = "support"
    CHAT = "chat"


@dataclass
class TemplateVariable:
    """A declared placeholder of a template."""

    name: str
    description: str = ""
    type: str = "string"
    required: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TemplateVariable":
        return cls(
            name=str(data["name"]),
            description=str(data.get("description") or ""),
            type=str(data.get("type") or "string"),
            required=bool(data.get("required", False)),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PromptTemplate:
    """One stored version of a named prompt.

    A template with ``project_id`` set is a project override; ``based_on``
    then points at the global template it was derived from.
    """

    name: str
    version: int
    content: str
    category: TemplateCategory = TemplateCategory.GENERAL
    description: str = ""
    variables: list[TemplateVariable] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    active: bool = True
    id: UUID | None = None
    project_id: UUID | None = None
    based_on: UUID | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_override(self) -> bool:
        return self.project_id is not None

    @property
    def required_variables(self) -> list[str]:
        return [v.name for v in self.variables if v.required]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PromptTemplate":
        """Build from a repository row dict."""
        return cls(
            id=row.get("id"),
            name=row["name"],
            version=int(row["version"]),
            content=row["content"],
            category=TemplateCategory(row.get("category") or TemplateCategory.GENERAL.value),
            description=row.get("description") or "",
            variables=[TemplateVariable.from_dict(v) for v in row.get("variables") or []],
            tags=list(row.get("tags") or []),
            active=bool(row.get("active", True)),
            project_id=row.get("project_id"),
            based_on=row.get("based_on"),
            created_by=row.get("created_by"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id) if self.id else None,
            "name": self.name,
            "version": self.version,
            "content": self.content,
            "category": self.category.value,
            "description": self.description,
            "variables": [v.to_dict() for v in self.variables],
            "tags": list(self.tags),
            "active": self.active,
            "project_id": str(self.project_id) if self.project_id else None,
            "based_on": str(self.based_on) if self.based_on else None,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class TokenUsage:
    input: int = 0
    output: int = 0
    total: int = 0

    @classmethod
    def of(cls, input: int = 0, output: int = 0, total: int | None = None) -> "TokenUsage":
        """Build a usage triple; ``total`` defaults to input + output."""
        input = int(input or 0)
        output = int(output or 0)
        return cls(input=input, output=output, total=int(total) if total else input + output)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class PerformanceRecord:
    """Telemetry for a single template invocation.  Never mutated."""

    template_id: UUID
    conversation_id: str
    token_usage: TokenUsage
    latency_ms: float
    success: bool
    error_details: str | None = None
    id: UUID | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PerformanceRecord":
        return cls(
            id=row.get("id"),
            template_id=row["template_id"],
            conversation_id=row["conversation_id"],
            token_usage=TokenUsage.of(
                row.get("input_tokens", 0),
                row.get("output_tokens", 0),
                row.get("total_tokens"),
            ),
            latency_ms=float(row.get("latency_ms") or 0),
            success=bool(row.get("success", True)),
            error_details=row.get("error_details"),
            created_at=row.get("created_at"),
        )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id) if self.id else None,
            "template_id": str(self.template_id),
            "conversation_id": self.conversation_id,
            "token_usage": self.token_usage.to_dict(),
            "latency_ms": self.latency_ms,
            "success": self.success,
            "error_details": self.error_details,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class PerformanceStats:
    record_count: int = 0
    average_latency_ms: float = 0.0
    average_input_tokens: float = 0.0
    average_output_tokens: float = 0.0
    success_rate: float = 0.0
    records: list[PerformanceRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "record_count": self.record_count,
            "average_latency_ms": self.average_latency_ms,
            "average_input_tokens": self.average_input_tokens,
            "average_output_tokens": self.average_output_tokens,
            "success_rate": self.success_rate,
            "records": [r.to_dict() for r in self.records],
        }


@dataclass
class PromptComponent:
    """A reusable prompt fragment, addressed by its unique name.

    Components are not versioned and are never substituted automatically;
    template authors copy them into template content.
    """

    name: str
    content: str
    category: str
    description: str = ""
    id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> PromptComponent:
        return cls(
            id=row.get("id"),
            name=row["name"],
            content=row["content"],
            category=row["category"],
            description=row.get("description") or "",
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id) if self.id else None,
            "name": self.name,
            "content": self.content,
            "category": self.category,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
