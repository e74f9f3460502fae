"""
Claude LLM provider implementation.

Uses the Anthropic Python SDK (``anthropic.AsyncAnthropic``) to interact with
the Claude API. The client is constructed on first use so the service can
boot without ``CLAUDE_API_KEY``; transient transport errors are retried.
"""

import logging

from anthropic import (
    APIConnectionError,
    APITimeoutError,
    AsyncAnthropic,
    RateLimitError,
)
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import get_settings
from src.core.exceptions import MissingCredentialsError
from src.services.llm.base import BaseLLM

logger = logging.getLogger(__name__)


class ClaudeLLM(BaseLLM):
    """Claude API LLM provider with lazy client and retry logic."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float = 0.2,
    ) -> None:
        settings = get_settings()
        self._api_key = api_key or settings.claude_api_key
        self._model = model or settings.claude_model
        self._max_tokens = max_tokens or settings.analysis_max_tokens
        self._temperature = temperature
        self._client: AsyncAnthropic | None = None

    def _get_client(self) -> AsyncAnthropic:
        """Return the cached client, creating it on first use."""
        if self._client is None:
            if not self._api_key:
                raise MissingCredentialsError("CLAUDE_API_KEY", "analysis")
            self._client = AsyncAnthropic(api_key=self._api_key)
        return self._client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=16),
        retry=retry_if_exception_type((ConnectionError, TimeoutError)),
        reraise=True,
    )
    async def _call_api(
        self,
        user_prompt: str,
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Send a request to Claude and return the first text block.

        SDK transport exceptions are translated to ``ConnectionError`` /
        ``TimeoutError`` so the retry policy can recognise them.
        """
        client = self._get_client()
        kwargs: dict = {
            "model": self._model,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": temperature if temperature is not None else self._temperature,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        if system:
            kwargs["system"] = system

        try:
            response = await client.messages.create(**kwargs)
        except APITimeoutError as exc:
            logger.warning("Claude API timeout: %s", exc)
            raise TimeoutError(f"Claude API request timed out: {exc}") from exc
        except APIConnectionError as exc:
            logger.warning("Claude API connection error: %s", exc)
            raise ConnectionError(f"Failed to connect to Claude API: {exc}") from exc
        except RateLimitError as exc:
            logger.warning("Claude API rate limit hit: %s", exc)
            raise ConnectionError(f"Claude API rate limit exceeded: {exc}") from exc

        block = response.content[0] if response.content else None
        if block is None or getattr(block, "type", "text") != "text":
            raise RuntimeError("Unexpected response type from Claude")
        return block.text

    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate a free-form text response."""
        return await self._call_api(
            user_prompt=prompt,
            system=kwargs.pop("system", None),
            temperature=kwargs.pop("temperature", None),
            max_tokens=kwargs.pop("max_tokens", None),
        )
