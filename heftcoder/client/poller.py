from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional

from heftcoder.client.transport import OrchestratorClientError, OrchestratorTransport
from heftcoder.utils.logging import get_logger
from heftcoder.utils.schemas import PlanningJob

LOGGER = get_logger(__name__)

ProgressCallback = Callable[[PlanningJob], None]


class PollingTimeoutError(OrchestratorClientError):
    """The planning job did not reach a terminal status before the ceiling."""


class JobPoller:
    """Polls ``job_status`` until the job is terminal or the ceiling is hit.

    The ceiling is wall-clock time measured from the first poll. There is no
    retry and no backoff: a failed request propagates.
    """

    def __init__(
        self,
        transport: OrchestratorTransport,
        interval_seconds: float = 1.5,
        timeout_seconds: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._sleep = sleep

    async def run(self, job_id: str, on_progress: Optional[ProgressCallback] = None) -> PlanningJob:
        started = self._clock()
        polls = 0
        while True:
            elapsed = self._clock() - started
            if elapsed >= self.timeout_seconds:
                LOGGER.warning("Planning job %s timed out after %d polls", job_id, polls)
                raise PollingTimeoutError(f"Planning job {job_id} timed out after {elapsed:.0f}s")

            job = await self.transport.job_status(job_id)
            polls += 1
            if on_progress is not None:
                on_progress(job)
            if job.is_terminal:
                LOGGER.debug("Planning job %s is %s after %d polls", job_id, job.status, polls)
                return job

            remaining = self.timeout_seconds - (self._clock() - started)
            await self._sleep(max(0.0, min(self.interval_seconds, remaining)))
