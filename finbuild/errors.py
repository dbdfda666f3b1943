"""Domain exception hierarchy for FinBuild.

Services raise these instead of bare ``ValueError`` so that the global
exception handler in ``main.py`` can map them to the correct HTTP status
code without fragile string matching.
"""


class FinBuildError(Exception):
    """Base for all domain exceptions."""

    def __init__(self, message: str = "An unexpected error occurred", *, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(FinBuildError):
    """Resource not found (404)."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)


class ProjectNotFoundError(NotFoundError):
    """The project does not exist or belongs to another user."""

    def __init__(self, message: str = "Project not found"):
        super().__init__(message)


class TemplateNotFoundError(NotFoundError):
    """No prompt template (global or override) resolves for a name."""

    def __init__(self, name: str, version: int | None = None):
        label = f"{name} v{version}" if version is not None else name
        super().__init__(f"Prompt template not found: {label}")
        self.name = name
        self.version = version


class BadRequestError(FinBuildError):
    """Client sent an invalid request (400)."""

    def __init__(self, message: str = "Bad request"):
        super().__init__(message, status_code=400)


class VersionConflictError(FinBuildError):
    """Another writer claimed the same template version first (409)."""

    def __init__(self, message: str = "Template version already exists"):
        super().__init__(message, status_code=409)


class MissingVariableError(FinBuildError):
    """Required template variables were not supplied (422).

    ``missing`` lists every absent key, in the template's declaration order.
    """

    def __init__(self, template_name: str, missing: list[str]):
        super().__init__(
            f"Missing required variables for template '{template_name}': "
            f"{', '.join(missing)}",
            status_code=422,
        )
        self.template_name = template_name
        self.missing = list(missing)


class CompletionError(FinBuildError):
    """Base for completion-provider failures."""

    def __init__(self, message: str = "Completion failed", *, status_code: int = 502):
        super().__init__(message, status_code=status_code)


class RateLimitedError(CompletionError):
    """Provider kept rate-limiting after every retry was spent (503)."""

    def __init__(self, message: str = "Completion provider rate limit exceeded", *, attempts: int = 0):
        super().__init__(message, status_code=503)
        self.attempts = attempts


class CompletionFailedError(CompletionError):
    """Non-rate-limit provider failure (502)."""

    def __init__(self, message: str = "Completion failed", *, provider_status: int | None = None):
        super().__init__(message)
        self.provider_status = provider_status


class GenerationFailedError(FinBuildError):
    """Blueprint or component generation did not produce a usable result."""

    def __init__(self, message: str = "Generation failed"):
        super().__init__(message, status_code=502)


class ComponentExistsError(FinBuildError):
    """A prompt component with that name is already stored (409)."""

    def __init__(self, name: str):
        super().__init__(f"Prompt component already exists: {name}", status_code=409)
        self.name = name


def format_error_response(
    *,
    error: str,
    detail: object = None,
    request_id: str = "",
) -> dict:
    """Build a structured error response dict.

    Parameters
    ----------
    error : str
        Short error title (e.g. ``"Internal Server Error"``).
    detail : object
        Human-readable detail string or validation error list.
    request_id : str
        The request ID for tracing.

    Returns
    -------
    dict
        ``{"error": ..., "detail": ..., "request_id": ...}``
    """
    return {
        "error": error,
        "detail": detail if detail is not None else error,
        "request_id": request_id,
    }
