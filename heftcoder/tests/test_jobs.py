import asyncio

from heftcoder.agents.architect import PlanningOutcome
from heftcoder.agents.heuristics import fallback_plan
from heftcoder.core.jobs import PlanningJobManager
from heftcoder.utils.schemas import ClarifyingQuestion


async def _settle(manager, job_id):
    for _ in range(100):
        job = manager.get(job_id)
        if job.is_terminal:
            return job
        await asyncio.sleep(0)
    raise AssertionError("job did not finish")


def test_job_moves_to_awaiting_approval_with_progress():
    async def inner():
        release = asyncio.Event()
        progress_seen = []

        async def planner(prompt, on_output):
            await on_output("x" * 400)
            await release.wait()
            return PlanningOutcome(plan=fallback_plan(prompt))

        manager = PlanningJobManager(planner)
        job = manager.submit("Build a landing page for a florist")
        assert job.status == "pending"

        await asyncio.sleep(0)
        await asyncio.sleep(0)
        running = manager.get(job.id)
        progress_seen.append(running.progress)
        assert running.status == "processing"

        release.set()
        done = await _settle(manager, job.id)
        assert done.status == "awaiting_approval"
        assert done.progress == 100
        assert done.plan.project_type == "landing"
        assert 10 < progress_seen[0] <= 90

    asyncio.run(inner())


def test_job_reports_clarifying_questions():
    async def inner():
        async def planner(prompt, on_output):
            return PlanningOutcome(questions=[ClarifyingQuestion(id="q1", question="For whom?")])

        manager = PlanningJobManager(planner)
        job = manager.submit("app")
        done = await _settle(manager, job.id)
        assert done.status == "clarifying"
        assert done.plan is None
        assert done.to_wire()["clarifying_questions"][0]["question"] == "For whom?"

    asyncio.run(inner())


def test_job_failure_is_recorded():
    async def inner():
        async def planner(prompt, on_output):
            raise RuntimeError("upstream unavailable")

        manager = PlanningJobManager(planner)
        job = manager.submit("Build a shop")
        done = await _settle(manager, job.id)
        assert done.status == "failed"
        assert done.error == "upstream unavailable"

    asyncio.run(inner())


def test_finished_jobs_expire_after_ttl():
    async def inner():
        now = [0.0]

        async def planner(prompt, on_output):
            return PlanningOutcome(plan=fallback_plan(prompt))

        manager = PlanningJobManager(planner, ttl_seconds=60, clock=lambda: now[0])
        first = manager.submit("Build a blog")
        await _settle(manager, first.id)

        now[0] = 61.0
        second = manager.submit("Build a wiki")
        assert manager.get(first.id) is None
        assert manager.get(second.id) is not None
        await manager.shutdown()

    asyncio.run(inner())


def test_snapshots_are_copies():
    async def inner():
        async def planner(prompt, on_output):
            return PlanningOutcome(plan=fallback_plan(prompt))

        manager = PlanningJobManager(planner)
        job = manager.submit("Build a blog")
        job.status = "failed"
        done = await _settle(manager, job.id)
        assert done.status == "awaiting_approval"

    asyncio.run(inner())
