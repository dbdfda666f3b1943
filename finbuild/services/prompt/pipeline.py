"""Prompt invoker -- resolve, render, complete, record.

Every model call in the engine goes through :meth:`PromptInvoker.run`, so
each one yields exactly one performance record, success or failure.
"""

import logging
import time
from typing import Any, Mapping
from uuid import UUID

from finbuild.clients.llm_client import Completion, CompletionGateway
from finbuild.errors import TemplateNotFoundError
from finbuild.services.prompt.models import PromptTemplate, TokenUsage
from finbuild.services.prompt.performance import PerformanceRecorder
from finbuild.services.prompt.renderer import render_template
from finbuild.services.prompt.template_store import TemplateStore

logger = logging.getLogger(__name__)


class PromptInvoker:
    def __init__(
        self,
        store: TemplateStore,
        gateway: CompletionGateway,
        recorder: PerformanceRecorder,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.recorder = recorder

    async def resolve(self, name: str, project_id: UUID | None = None) -> PromptTemplate:
        """Project override first (when *project_id* is given), then global."""
        if project_id is not None:
            template = await self.store.get_project_template(project_id, name)
        else:
            template = await self.store.get_template(name)
        if template is None:
            raise TemplateNotFoundError(name)
        return template

    async def run(
        self,
        name: str,
        variables: Mapping[str, Any],
        *,
        conversation_id: str,
        project_id: UUID | None = None,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
    ) -> Completion:
        """Render template *name* with *variables* and complete it.

        Raises ``TemplateNotFoundError`` and ``MissingVariableError`` before
        any call is made; gateway errors are recorded, then re-raised.
        """
        template = await self.resolve(name, project_id)
        prompt = render_template(template, variables)

        started = time.monotonic()
        try:
            completion = await self.gateway.complete(
                prompt, system_prompt=system_prompt, max_tokens=max_tokens,
            )
        except Exception as exc:
            latency_ms = (time.monotonic() - started) * 1000.0
            logger.warning("Template %s v%d failed: %s", template.name, template.version, exc)
            self.recorder.submit(
                template.id, conversation_id, TokenUsage(), latency_ms,
                success=False, error_details=str(exc),
            )
            raise

        self.recorder.submit(
            template.id, conversation_id, completion.usage, completion.latency_ms, success=True,
        )
        logger.debug(
            "Template %s v%d completed in %.0fms",
            template.name, template.version, completion.latency_ms,
        )
        return completion
