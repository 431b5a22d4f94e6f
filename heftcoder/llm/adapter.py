from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from heftcoder.settings import get_settings


class LLMError(RuntimeError):
    """Upstream model call failed with a message fit for end users."""


class BaseLLMAdapter(ABC):
    @abstractmethod
    async def acomplete(
        self,
        prompt: str,
        system_prompt: str = "",
        model: Optional[str] = None,
        json_mode: bool = False,
    ) -> str:
        """Return the full completion for ``prompt``."""

    async def astream(
        self,
        prompt: str,
        system_prompt: str = "",
        model: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """Yield completion deltas. Adapters without streaming yield one chunk."""
        yield await self.acomplete(prompt, system_prompt=system_prompt, model=model)


_cached_adapter: Optional[BaseLLMAdapter] = None


def get_llm_adapter() -> BaseLLMAdapter:
    global _cached_adapter
    if _cached_adapter:
        return _cached_adapter

    settings = get_settings()
    if settings.llm_mode == "mock":
        from .mock_adapter import MockLLMAdapter
        _cached_adapter = MockLLMAdapter()
    else:
        from .langdock_adapter import LangdockAdapter
        _cached_adapter = LangdockAdapter(
            api_key=settings.langdock_api_key,
            base_url=settings.langdock_api_url,
            default_model=settings.default_model,
            timeout=settings.llm_timeout_seconds,
        )

    return _cached_adapter


def reset_llm_adapter() -> None:
    global _cached_adapter
    _cached_adapter = None
