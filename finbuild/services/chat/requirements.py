"""Requirements extraction -- free text to a partially-null requirements record.

Extraction degrades to "nothing extracted" instead of failing: malformed
model output, or a missing ``extract_requirements`` template, yields the
all-null record.  Provider errors still propagate.
"""

import logging
from dataclasses import dataclass, fields
from typing import Any
from uuid import UUID

from finbuild.errors import TemplateNotFoundError
from finbuild.services.chat.models import ProjectSnapshot
from finbuild.services.prompt.pipeline import PromptInvoker
from finbuild.services.structured_output import decode_json_object

logger = logging.getLogger(__name__)

EXTRACT_TEMPLATE = "extract_requirements"

_NULL_WORDS = frozenset({"", "null", "none", "n/a", "unknown"})

# Width of the VARCHAR project columns these fields are saved to.
LABEL_MAX_LENGTH = 255

# JSON key -> attribute
_JSON_KEYS = {
    "name": "name",
    "description": "description",
    "requirements": "requirements",
    "techStack": "tech_stack",
    "financialDomain": "financial_domain",
    "tradingVenue": "trading_venue",
}


@dataclass
class ExtractedRequirements:
    """Every field is independently nullable."""

    name: str | None = None
    description: str | None = None
    requirements: str | None = None
    tech_stack: list[str] | None = None
    financial_domain: str | None = None
    trading_venue: str | None = None

    @classmethod
    def from_json(cls, data: dict) -> "ExtractedRequirements":
        """Overlay the known keys of *data* on an all-null record."""
        values = {attr: data.get(key) for key, attr in _JSON_KEYS.items()}
        return cls(
            name=_label(values["name"]),
            description=_text(values["description"]),
            requirements=_requirements_text(values["requirements"]),
            tech_stack=_tech_stack(values["tech_stack"]),
            financial_domain=_label(values["financial_domain"]),
            trading_venue=_label(values["trading_venue"]),
        )

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_dict(self) -> dict:
        return {key: getattr(self, attr) for key, attr in _JSON_KEYS.items()}

    def merge_into(self, project: ProjectSnapshot) -> list[str]:
        """Copy every non-null field onto *project*.  Returns the attributes changed."""
        changed = []
        for attr in _JSON_KEYS.values():
            value = getattr(self, attr)
            if value is None or getattr(project, attr) == value:
                continue
            setattr(project, attr, list(value) if isinstance(value, list) else value)
            changed.append(attr)
        return changed


def _text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return None if text.lower() in _NULL_WORDS else text


def _label(value: Any) -> str | None:
    text = _text(value)
    if text is not None and len(text) > LABEL_MAX_LENGTH:
        logger.warning("Truncating extracted value of %d characters", len(text))
        text = text[:LABEL_MAX_LENGTH].rstrip()
    return text


def _requirements_text(value: Any) -> str | None:
    if isinstance(value, list):
        items = [t for t in (_text(v) for v in value) if t]
        return "; ".join(items) if items else None
    return _text(value)


def _tech_stack(value: Any) -> list[str] | None:
    """Wrap a scalar in a list; drop empty entries; empty result is None."""
    if value is None:
        return None
    if not isinstance(value, list):
        value = [value]
    items = [t for t in (_text(v) for v in value) if t]
    return items or None


class RequirementsExtractor:
    def __init__(self, invoker: PromptInvoker) -> None:
        self._invoker = invoker

    async def extract(
        self, message: str, *, conversation_id: str, project_id: UUID | None = None,
    ) -> ExtractedRequirements:
        try:
            completion = await self._invoker.run(
                EXTRACT_TEMPLATE,
                {"message": message},
                conversation_id=conversation_id,
                project_id=project_id,
            )
        except TemplateNotFoundError as exc:
            logger.error("Requirements extraction skipped: %s", exc)
            return ExtractedRequirements()

        result = decode_json_object(completion.content)
        if not result.ok:
            logger.error(
                "Failed to parse extracted requirements (%s); raw: %s",
                result.error, completion.content[:200],
            )
            return ExtractedRequirements()

        extracted = ExtractedRequirements.from_json(result.value)
        logger.info("Extracted requirements: %s", extracted.to_dict())
        return extracted
