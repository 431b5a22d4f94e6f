from __future__ import annotations

from typing import Awaitable, Callable, Optional

from heftcoder.utils.schemas import ProjectPlan

from .base import BaseAgent
from .prompts import PromptBuilder


class BackendAgent(BaseAgent):
    """Produces free-text backend notes; no files are extracted from its reply."""

    async def generate(
        self,
        plan: ProjectPlan,
        message: str,
        on_output: Optional[Callable[[str], Awaitable[None]]] = None,
    ) -> str:
        prompt = PromptBuilder.build_backend_prompt(plan, message)
        output = ""
        async for output in self.stream(prompt):
            if on_output is not None:
                await on_output(output)
        return output.strip()
