from __future__ import annotations

import asyncio
from typing import List

from heftcoder.utils.logging import get_logger
from heftcoder.utils.schemas import GeneratedFile

from .registry import AgentProfile

LOGGER = get_logger(__name__)


class QAAgent:
    """Simulated QA pass: waits a fixed delay and reports success.

    No tests are executed and no model is called.
    """

    def __init__(self, profile: AgentProfile, delay_seconds: float = 1.0) -> None:
        self.profile = profile
        self.delay_seconds = delay_seconds

    async def review(self, files: List[GeneratedFile]) -> str:
        LOGGER.info("QA reviewing %d files", len(files))
        await asyncio.sleep(self.delay_seconds)
        return f"All tests passed ({len(files)} files checked)"
