"""
OpenRouter LLM Client.

Async chat-completion client used by LLM-backed specialists. Talks to
OpenRouter (or any OpenAI-compatible endpoint) through the OpenAI SDK.

Specialist calls run under the dispatcher's per-call deadline, so retries
are short and only cover transient failures: a rejected request is never
retried.
"""

import logging
import os
from collections import defaultdict
from typing import Optional

from openai import (
    APIConnectionError,
    APITimeoutError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from consilium.models.llm import LLMResponse


logger = logging.getLogger(__name__)


TRANSIENT_ERRORS = (APIConnectionError, APITimeoutError, InternalServerError, RateLimitError)


class UsageLedger:
    """Token usage per model across the lifetime of a client."""

    def __init__(self):
        self._by_model: dict[str, dict[str, int]] = defaultdict(
            lambda: {"input_tokens": 0, "output_tokens": 0, "calls": 0}
        )

    def record(self, model: str, input_tokens: int, output_tokens: int) -> None:
        entry = self._by_model[model]
        entry["input_tokens"] += input_tokens
        entry["output_tokens"] += output_tokens
        entry["calls"] += 1

    def summary(self) -> dict:
        return {model: dict(entry) for model, entry in self._by_model.items()}


class LLMClient:
    """
    Async client for OpenRouter API.

    Uses the OpenAI SDK with OpenRouter's base URL for compatibility.
    """

    OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        request_timeout: float = 30.0,
    ):
        """
        Initialize the LLM client.

        Args:
            api_key: OpenRouter API key. If not provided, reads from OPENROUTER_API_KEY env var.
            base_url: Any OpenAI-compatible endpoint. Defaults to OPENROUTER_BASE_URL
                or OpenRouter itself.
            request_timeout: Seconds before a single HTTP request is abandoned.
        """
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        if not self.api_key:
            raise ValueError(
                "OpenRouter API key required. Set OPENROUTER_API_KEY environment variable "
                "or pass api_key parameter."
            )

        self.client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=base_url or os.getenv("OPENROUTER_BASE_URL", self.OPENROUTER_BASE_URL),
            timeout=request_timeout,
            max_retries=0,  # tenacity owns retries
            default_headers={
                "HTTP-Referer": os.getenv("OPENROUTER_SITE_URL", "http://localhost:8000"),
                "X-Title": os.getenv("OPENROUTER_SITE_NAME", "Consilium"),
            },
        )
        self.usage = UsageLedger()

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def complete(
        self,
        model: str,
        messages: list[dict],
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Generate a completion from the specified model.

        Args:
            model: Model identifier (e.g., "anthropic/claude-sonnet-4")
            messages: List of message dicts with "role" and "content" keys
            temperature: Sampling temperature (0.0 to 2.0)
            max_tokens: Maximum tokens to generate (optional)
            json_mode: Ask the provider for a JSON object response

        Returns:
            LLMResponse with content and token usage
        """
        kwargs = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self.client.chat.completions.create(**kwargs)
        choice = response.choices[0]
        usage = response.usage

        result = LLMResponse(
            content=choice.message.content or "",
            model=model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            finish_reason=choice.finish_reason or "stop",
        )
        self.usage.record(model, result.input_tokens, result.output_tokens)
        return result

    def get_session_usage(self) -> dict:
        """Token usage and call counts by model."""
        return self.usage.summary()


class MockLLMClient:
    """
    Mock LLM client for testing and offline demos.

    Picks a canned reply by looking for a marker (e.g. ``"specialist id:
    triage"``) in the system prompt, so one client can stand in for every
    specialist at once.
    """

    def __init__(self, responses: Optional[dict[str, str]] = None, default: Optional[str] = None):
        self.responses = responses or {}
        self.default = default
        self.calls: list[dict] = []

    async def complete(
        self,
        model: str,
        messages: list[dict],
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        self.calls.append({
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "json_mode": json_mode,
        })

        system = next((m["content"] for m in messages if m.get("role") == "system"), "")
        content = next(
            (reply for marker, reply in self.responses.items() if marker in system),
            self.default if self.default is not None else f"Mock response from {model}",
        )
        return LLMResponse(content=content, model=model, finish_reason="stop")

    def get_session_usage(self) -> dict:
        return {"mock": {"calls": len(self.calls)}}
