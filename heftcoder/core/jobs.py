from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Dict, Optional
from uuid import uuid4

from heftcoder.agents.architect import PlanningOutcome
from heftcoder.utils.logging import get_logger
from heftcoder.utils.schemas import PlanningJob

LOGGER = get_logger(__name__)

Planner = Callable[[str, Callable[[str], Awaitable[None]]], Awaitable[PlanningOutcome]]

# Streamed characters per progress point while the architect is writing
_CHARS_PER_POINT = 40


class PlanningJobManager:
    """In-memory queue behind the ``plan_async`` / ``job_status`` actions."""

    def __init__(
        self,
        planner: Planner,
        ttl_seconds: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._planner = planner
        self._ttl = ttl_seconds
        self._clock = clock
        self._jobs: Dict[str, PlanningJob] = {}
        self._finished_at: Dict[str, float] = {}
        self._tasks: Dict[str, asyncio.Task[None]] = {}

    def submit(self, prompt: str) -> PlanningJob:
        self._prune()
        job = PlanningJob(id=uuid4().hex, prompt=prompt)
        self._jobs[job.id] = job

        task = asyncio.create_task(self._run(job.id))
        self._tasks[job.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.id, None))
        LOGGER.info("Planning job %s submitted", job.id)
        return job.model_copy(deep=True)

    def get(self, job_id: str) -> Optional[PlanningJob]:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def _run(self, job_id: str) -> None:
        job = self._jobs[job_id]
        job.status = "processing"
        job.progress = 10

        async def _on_output(text: str) -> None:
            job.progress = max(job.progress, min(90, 10 + len(text) // _CHARS_PER_POINT))

        try:
            outcome = await self._planner(job.prompt, _on_output)
        except asyncio.CancelledError:
            self._finish(job, "failed", error="Planning was cancelled")
            raise
        except Exception as exc:
            LOGGER.exception("Planning job %s failed: %s", job_id, exc)
            self._finish(job, "failed", error=str(exc) or "Planning failed")
            return

        if outcome.needs_clarification:
            job.clarifying_questions = outcome.questions
            self._finish(job, "clarifying")
        else:
            job.plan = outcome.plan
            self._finish(job, "awaiting_approval")

    def _finish(self, job: PlanningJob, status: str, error: Optional[str] = None) -> None:
        job.status = status
        job.progress = 100
        job.error = error
        self._finished_at[job.id] = self._clock()
        LOGGER.info("Planning job %s finished with status %s", job.id, status)

    def _prune(self) -> None:
        now = self._clock()
        expired = [job_id for job_id, at in self._finished_at.items() if now - at > self._ttl]
        for job_id in expired:
            self._jobs.pop(job_id, None)
            self._finished_at.pop(job_id, None)
        if expired:
            LOGGER.debug("Pruned %d expired planning jobs", len(expired))

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
