"""LLM client -- completion gateway over the Anthropic or OpenAI HTTP APIs.

One prompt in, one :class:`Completion` out.  A rate-limit response (HTTP
429) is retried after ``base_delay * 2 ** attempt`` seconds, up to
``max_retries`` times, then surfaces as :class:`RateLimitedError`.  Every
other failure surfaces immediately as :class:`CompletionFailedError`.
Telemetry is the caller's job.
"""

import asyncio
import logging
import time
from dataclasses import dataclass

import httpx

from finbuild.config import resolve_provider, settings
from finbuild.errors import CompletionFailedError, RateLimitedError
from finbuild.services.prompt.models import TokenUsage

logger = logging.getLogger(__name__)

# ── Shared HTTP client (connection pooling) ─────────────────────────────────

_client: httpx.AsyncClient | None = None


def _get_client() -> httpx.AsyncClient:
    """Return (or create) the shared httpx client for LLM API calls."""
    global _client
    if _client is None:
        _client = httpx.AsyncClient(timeout=settings.LLM_TIMEOUT_SECONDS)
    return _client


async def close_client() -> None:
    """Close the shared LLM HTTP client.  Called during app shutdown."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


# ---------------------------------------------------------------------------
# Provider endpoints
# ---------------------------------------------------------------------------

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_API_VERSION = "2023-06-01"
OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"

RATE_LIMIT_STATUS = 429


@dataclass
class Completion:
    """Result of one completion call."""

    content: str
    usage: TokenUsage
    latency_seconds: float
    model: str = ""
    stop_reason: str | None = None

    @property
    def latency_ms(self) -> float:
        return self.latency_seconds * 1000.0


class _RateLimited(Exception):
    """Internal signal: the provider answered 429."""


def _error_message(response: httpx.Response) -> str:
    """Best-effort error text from a provider error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message") or response.text
    if isinstance(error, str):
        return error
    return response.text


class CompletionGateway:
    """Send a fully rendered prompt to the configured provider."""

    def __init__(
        self,
        *,
        provider: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        max_retries: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.provider = provider or resolve_provider()
        if api_key is None:
            api_key = settings.OPENAI_API_KEY if self.provider == "openai" else settings.ANTHROPIC_API_KEY
        if model is None:
            model = settings.OPENAI_MODEL if self.provider == "openai" else settings.LLM_MODEL
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens or settings.LLM_MAX_TOKENS
        self.temperature = settings.LLM_TEMPERATURE if temperature is None else temperature
        self.max_retries = settings.LLM_MAX_RETRIES if max_retries is None else max_retries
        self.base_delay = base_delay or settings.LLM_RETRY_BASE_DELAY
        self.max_delay = max_delay or settings.LLM_RETRY_MAX_DELAY
        self._http = http_client

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after the rate-limited *attempt* (0-based)."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    async def complete(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> Completion:
        """Run one completion, retrying only on rate limits.

        ``latency_seconds`` covers the whole call, backoff included.
        """
        started = time.monotonic()
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                content, usage, model, stop_reason = await self._send(
                    prompt,
                    system_prompt=system_prompt,
                    max_tokens=max_tokens or self.max_tokens,
                    temperature=self.temperature if temperature is None else temperature,
                )
            except _RateLimited as exc:
                if attempt + 1 >= attempts:
                    logger.error(
                        "%s rate limit persisted after %d attempts: %s",
                        self.provider, attempts, exc,
                    )
                    raise RateLimitedError(
                        f"{self.provider} rate limit persisted after {attempts} attempts: {exc}",
                        attempts=attempts,
                    ) from None
                wait = self.backoff_delay(attempt)
                logger.warning(
                    "%s rate limited (attempt %d/%d), retrying in %.1fs",
                    self.provider, attempt + 1, attempts, wait,
                )
                await asyncio.sleep(wait)
                continue

            latency = time.monotonic() - started
            logger.info(
                "%s completion: model=%s in=%d out=%d latency=%.2fs",
                self.provider, model, usage.input, usage.output, latency,
            )
            return Completion(
                content=content,
                usage=usage,
                latency_seconds=latency,
                model=model,
                stop_reason=stop_reason,
            )
        raise AssertionError("unreachable")  # pragma: no cover

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(
        self, prompt: str, *, system_prompt: str | None, max_tokens: int, temperature: float,
    ) -> tuple[str, TokenUsage, str, str | None]:
        if self.provider == "openai":
            return await self._send_openai(prompt, system_prompt, max_tokens, temperature)
        return await self._send_anthropic(prompt, system_prompt, max_tokens, temperature)

    async def _post(self, url: str, headers: dict, body: dict) -> dict:
        client = self._http or _get_client()
        try:
            response = await client.post(url, headers=headers, json=body)
        except httpx.HTTPError as exc:
            raise CompletionFailedError(
                f"{self.provider} request failed: {type(exc).__name__}: {exc}"
            ) from exc

        if response.status_code == RATE_LIMIT_STATUS:
            raise _RateLimited(_error_message(response))
        if response.status_code >= 400:
            raise CompletionFailedError(
                f"{self.provider} API {response.status_code}: {_error_message(response)}",
                provider_status=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise CompletionFailedError(f"{self.provider} returned a non-JSON body") from exc

    async def _send_anthropic(
        self, prompt: str, system_prompt: str | None, max_tokens: int, temperature: float,
    ) -> tuple[str, TokenUsage, str, str | None]:
        body: dict = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            body["system"] = system_prompt
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
            "Content-Type": "application/json",
        }
        data = await self._post(ANTHROPIC_MESSAGES_URL, headers, body)

        blocks = data.get("content") or []
        text_parts = [b.get("text", "") for b in blocks if b.get("type") == "text"]
        if not text_parts:
            raise CompletionFailedError("No text block in Anthropic API response")
        usage = data.get("usage") or {}
        return (
            "\n".join(text_parts),
            TokenUsage.of(usage.get("input_tokens", 0), usage.get("output_tokens", 0)),
            data.get("model", self.model),
            data.get("stop_reason"),
        )

    async def _send_openai(
        self, prompt: str, system_prompt: str | None, max_tokens: int, temperature: float,
    ) -> tuple[str, TokenUsage, str, str | None]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        body = {
            "model": self.model,
            "messages": messages,
            "max_completion_tokens": max_tokens,
            "temperature": temperature,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        data = await self._post(OPENAI_CHAT_URL, headers, body)

        choices = data.get("choices") or []
        if not choices:
            raise CompletionFailedError("Empty response from OpenAI API")
        content = (choices[0].get("message") or {}).get("content")
        if not content:
            raise CompletionFailedError("No content in OpenAI API response")
        usage = data.get("usage") or {}
        return (
            content,
            TokenUsage.of(
                usage.get("prompt_tokens", 0),
                usage.get("completion_tokens", 0),
                usage.get("total_tokens"),
            ),
            data.get("model", self.model),
            choices[0].get("finish_reason"),
        )
