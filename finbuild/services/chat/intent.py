"""Intent classification of user messages."""

import enum
import logging
from uuid import UUID

from finbuild.errors import MissingVariableError
from finbuild.services.prompt.pipeline import PromptInvoker

logger = logging.getLogger(__name__)

INTENT_TEMPLATE = "determine_intent"


class Intent(str, enum.Enum):
    QUERY = "query"
    GENERATE = "generate"
    MODIFY = "modify"
    APPROVE = "approve"
    REJECT = "reject"
    # Model output that is none of the above.  Handlers treat it as their
    # fall-through case.
    UNRECOGNIZED = "unrecognized"


def parse_intent(raw: str | None) -> Intent:
    """Map raw completion text to an :class:`Intent`.

    The text is trimmed and lower-cased; surrounding quotes and a trailing
    full stop are tolerated.  Anything else is ``UNRECOGNIZED``.
    """
    label = (raw or "").strip().lower().strip("\"'`").rstrip(".").strip()
    try:
        return Intent(label)
    except ValueError:
        return Intent.UNRECOGNIZED


class IntentClassifier:
    def __init__(self, invoker: PromptInvoker) -> None:
        self._invoker = invoker

    async def classify(
        self, message: str, *, conversation_id: str, project_id: UUID | None = None,
    ) -> Intent:
        """Label *message*.  Any failure other than a missing variable yields QUERY."""
        try:
            completion = await self._invoker.run(
                INTENT_TEMPLATE,
                {"message": message},
                conversation_id=conversation_id,
                project_id=project_id,
                max_tokens=16,
            )
        except MissingVariableError:
            raise
        except Exception as exc:
            logger.error("Intent classification failed, defaulting to query: %s", exc)
            return Intent.QUERY

        intent = parse_intent(completion.content)
        if intent is Intent.UNRECOGNIZED:
            logger.warning("Unrecognized intent label %r", completion.content[:50])
        else:
            logger.info("Intent %s for conversation %s", intent.value, conversation_id)
        return intent
