from __future__ import annotations

import logging
import re
from typing import AsyncIterator, Dict, List, Optional

from openai import (
    APIConnectionError,
    APIStatusError,
    AsyncOpenAI,
    AuthenticationError,
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

from heftcoder.utils.logging import get_logger

from .adapter import BaseLLMAdapter, LLMError

LOGGER = get_logger(__name__)

_BEARER_PREFIX = re.compile(r"^Bearer\s+", re.IGNORECASE)


def normalize_api_key(raw: Optional[str]) -> Optional[str]:
    """Strip whitespace and a pasted "Bearer " header prefix from a key."""
    if raw is None:
        return None
    key = _BEARER_PREFIX.sub("", raw.strip())
    return key or None


_retry_upstream = retry(
    retry=retry_if_exception_type((APIConnectionError, InternalServerError)),
    wait=wait_exponential(multiplier=1, min=2, max=20),
    stop=stop_after_attempt(3),
    before_sleep=before_sleep_log(LOGGER, logging.INFO),
    reraise=True,
)


def _friendly_error(exc: APIStatusError) -> LLMError:
    status = exc.status_code
    if status == 429:
        return LLMError("Langdock rate limit exceeded. Please try again in a moment.")
    if status == 401:
        return LLMError("Langdock API key is invalid.")
    if status == 402:
        return LLMError("Langdock payment required. Please check your account.")
    return LLMError(f"Langdock call failed: {status} - {str(exc.message)[:200]}")


class LangdockAdapter(BaseLLMAdapter):

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.langdock.com/v1",
        default_model: str = "claude-sonnet-4",
        timeout: float = 120.0,
    ):
        self.api_key = normalize_api_key(api_key)
        if not self.api_key:
            LOGGER.warning("LANGDOCK_API_KEY not found. Langdock adapter will fail.")
        self.default_model = default_model
        self.client = AsyncOpenAI(
            base_url=base_url,
            api_key=self.api_key or "missing",
            timeout=timeout,
            max_retries=0,
        )

    def _require_key(self) -> None:
        if not self.api_key:
            raise LLMError("LANGDOCK_API_KEY is not configured")

    @staticmethod
    def _messages(prompt: str, system_prompt: str) -> List[Dict[str, str]]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    async def acomplete(
        self,
        prompt: str,
        system_prompt: str = "",
        model: Optional[str] = None,
        json_mode: bool = False,
    ) -> str:
        self._require_key()
        try:
            return await self._invoke(prompt, system_prompt, model or self.default_model, json_mode)
        except (RateLimitError, AuthenticationError) as exc:
            raise _friendly_error(exc) from exc
        except APIStatusError as exc:
            LOGGER.error("Langdock error %s: %s", exc.status_code, exc.message)
            raise _friendly_error(exc) from exc
        except APIConnectionError as exc:
            LOGGER.error("Langdock unreachable: %s", exc)
            raise LLMError("Could not reach Langdock. Please try again.") from exc

    @_retry_upstream
    async def _invoke(self, prompt: str, system_prompt: str, model: str, json_mode: bool) -> str:
        LOGGER.info("Calling Langdock with model '%s' (json_mode=%s)", model, json_mode)
        kwargs = {
            "model": model,
            "messages": self._messages(prompt, system_prompt),
            "stream": False,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self.client.chat.completions.create(**kwargs)
        if not response.choices:
            return ""
        choice = response.choices[0]
        if getattr(choice, "finish_reason", None) == "length":
            LOGGER.error("Langdock response truncated due to token limit")
            raise LLMError("Model response was truncated (finish_reason=length)")

        content = choice.message.content or ""
        LOGGER.info("Langdock response received (length=%d)", len(content))
        return content

    async def astream(
        self,
        prompt: str,
        system_prompt: str = "",
        model: Optional[str] = None,
    ) -> AsyncIterator[str]:
        self._require_key()
        model = model or self.default_model
        LOGGER.info("Streaming from Langdock with model '%s'", model)
        try:
            stream = await self._open_stream(prompt, system_prompt, model)
            total = 0
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    total += len(delta)
                    yield delta
            LOGGER.info("Langdock stream finished (length=%d)", total)
        except (RateLimitError, AuthenticationError) as exc:
            raise _friendly_error(exc) from exc
        except APIStatusError as exc:
            LOGGER.error("Langdock error %s: %s", exc.status_code, exc.message)
            raise _friendly_error(exc) from exc
        except APIConnectionError as exc:
            LOGGER.error("Langdock unreachable: %s", exc)
            raise LLMError("Could not reach Langdock. Please try again.") from exc

    @_retry_upstream
    async def _open_stream(self, prompt: str, system_prompt: str, model: str):
        # Only the request that opens the stream is retried.
        return await self.client.chat.completions.create(
            model=model,
            messages=self._messages(prompt, system_prompt),
            stream=True,
        )
