from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional

from heftcoder.llm.adapter import BaseLLMAdapter, get_llm_adapter
from heftcoder.llm.concurrency import get_llm_semaphore
from heftcoder.utils.logging import get_logger

from .registry import AgentProfile

LOGGER = get_logger(__name__)


class BaseAgent:
    """One upstream role. Calls go through the shared LLM semaphore."""

    def __init__(
        self,
        profile: AgentProfile,
        adapter: Optional[BaseLLMAdapter] = None,
        semaphore: Optional[asyncio.Semaphore] = None,
    ) -> None:
        self.profile = profile
        self._adapter = adapter
        self._semaphore = semaphore

    @property
    def adapter(self) -> BaseLLMAdapter:
        if self._adapter is None:
            self._adapter = get_llm_adapter()
        return self._adapter

    @property
    def semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = get_llm_semaphore()
        return self._semaphore

    async def complete(self, prompt: str, system_prompt: Optional[str] = None, json_mode: bool = False) -> str:
        async with self.semaphore:
            LOGGER.info("Agent %s calling model %s", self.profile.key, self.profile.model)
            return await self.adapter.acomplete(
                prompt,
                system_prompt=self.profile.system_prompt if system_prompt is None else system_prompt,
                model=self.profile.model,
                json_mode=json_mode,
            )

    async def stream(self, prompt: str, system_prompt: Optional[str] = None) -> AsyncIterator[str]:
        """Yield the cumulative output after every upstream delta."""
        output = ""
        async with self.semaphore:
            LOGGER.info("Agent %s streaming from model %s", self.profile.key, self.profile.model)
            async for delta in self.adapter.astream(
                prompt,
                system_prompt=self.profile.system_prompt if system_prompt is None else system_prompt,
                model=self.profile.model,
            ):
                output += delta
                yield output
