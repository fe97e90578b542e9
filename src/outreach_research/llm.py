"""Language-model client with a fallback chain and tenacity retry.

Uses litellm for provider-agnostic access. Each model in the chain is
retried with exponential backoff before falling through to the next one.
"""

from __future__ import annotations

import json
import re
from typing import Any

import structlog
from tenacity import (
    RetryError,
    retry,
    stop_after_attempt,
    wait_exponential,
)

from outreach_research.exceptions import ConfigurationError, TransientExternalError

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_BACKOFF_MIN_SECONDS = 1
_BACKOFF_MAX_SECONDS = 10

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)
_JSON_BRACE_RE = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(text: str) -> dict[str, Any]:
    """Extract a JSON object from LLM response text.

    Handles cases where JSON is wrapped in markdown code fences or
    surrounded by explanation text.

    Args:
        text: Raw LLM response content.

    Returns:
        Parsed JSON dictionary.

    Raises:
        ValueError: If no valid JSON object can be extracted.
    """
    text = text.strip()

    try:
        result = json.loads(text)
        if isinstance(result, dict):
            return result
    except json.JSONDecodeError:
        pass

    fence_match = _JSON_FENCE_RE.search(text)
    if fence_match:
        try:
            result = json.loads(fence_match.group(1).strip())
            if isinstance(result, dict):
                return result
        except json.JSONDecodeError:
            pass

    brace_match = _JSON_BRACE_RE.search(text)
    if brace_match:
        try:
            result = json.loads(brace_match.group(0))
            if isinstance(result, dict):
                return result
        except json.JSONDecodeError:
            pass

    raise ValueError(f"Could not extract JSON from response: {text[:200]}")


class LLMClient:
    """Text completion over an ordered chain of litellm models.

    Attributes:
        models: litellm model identifiers, primary first.
    """

    def __init__(
        self,
        model: str,
        fallback_models: list[str] | None = None,
        timeout: float = 60.0,
        retries: int = 3,
    ) -> None:
        if not model:
            raise ConfigurationError("No language model configured (llm.model).")
        self.models = [model, *(fallback_models or [])]
        self._timeout = timeout
        self._retries = retries

    async def _call_with_retry(
        self,
        model_id: str,
        messages: list[dict[str, Any]],
        **kwargs: Any,
    ) -> Any:
        """Call litellm.acompletion with tenacity retry.

        Raises:
            RetryError: If all retry attempts fail.
        """
        import litellm

        @retry(
            stop=stop_after_attempt(self._retries),
            wait=wait_exponential(min=_BACKOFF_MIN_SECONDS, max=_BACKOFF_MAX_SECONDS),
            reraise=False,
        )
        async def _do_call() -> Any:
            return await litellm.acompletion(
                model=model_id,
                messages=messages,
                timeout=self._timeout,
                **kwargs,
            )

        return await _do_call()

    async def complete(
        self,
        prompt: str,
        max_tokens: int = 1500,
        temperature: float = 0.3,
        system: str | None = None,
    ) -> str:
        """Return the completion text for ``prompt``.

        Args:
            prompt: User message content.
            max_tokens: Completion token cap.
            temperature: Sampling temperature.
            system: Optional system message.

        Returns:
            The assistant message content.

        Raises:
            TransientExternalError: If every model in the chain fails.
        """
        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        errors: list[str] = []
        for model_id in self.models:
            try:
                response = await self._call_with_retry(
                    model_id,
                    messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                )
            except RetryError as exc:
                last_err = exc.last_attempt.exception() if exc.last_attempt else exc
                logger.warning(
                    "model_retries_exhausted",
                    model_id=model_id,
                    error=str(last_err),
                )
                errors.append(model_id)
                continue

            content = response.choices[0].message.content or ""
            logger.debug("model_invoke_success", model_id=model_id, chars=len(content))
            return str(content)

        raise TransientExternalError(
            f"All models in chain failed: [{', '.join(errors)}]"
        )
