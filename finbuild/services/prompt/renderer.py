"""Placeholder substitution for prompt templates.

Placeholders use the literal ``{{variableName}}`` syntax.  Supplied keys
are substituted; placeholders with no supplied key stay verbatim, since a
template may carry contextual slots a given call path does not fill.
"""

import re
from typing import Any, Mapping

from finbuild.errors import MissingVariableError
from finbuild.services.prompt.models import PromptTemplate

_PLACEHOLDER = re.compile(r"\{\{([^{}]+)\}\}")


def missing_variables(template: PromptTemplate, variables: Mapping[str, Any]) -> list[str]:
    """Required declared variables absent from *variables*, in declaration order."""
    return [name for name in template.required_variables if name not in variables]


def substitute(content: str, variables: Mapping[str, Any]) -> str:
    """Replace every ``{{key}}`` in *content* with ``str(variables[key])``.

    Single pass: substituted values are never re-scanned for placeholders.
    """

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_replace, content)


def placeholders(content: str) -> list[str]:
    """Distinct placeholder names in *content*, in order of first use."""
    return list(dict.fromkeys(_PLACEHOLDER.findall(content)))


def render_template(template: PromptTemplate, variables: Mapping[str, Any]) -> str:
    """Validate and substitute.

    Raises :class:`MissingVariableError` naming every missing required key.
    """
    missing = missing_variables(template, variables)
    if missing:
        raise MissingVariableError(template.name, missing)
    return substitute(template.content, variables)
