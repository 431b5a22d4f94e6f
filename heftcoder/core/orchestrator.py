from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from heftcoder.agents.architect import ArchitectAgent, PlanningOutcome
from heftcoder.agents.frontend import split_code_blob
from heftcoder.agents.registry import STAGE_ORDER, AgentProfile, build_registry, profile_for
from heftcoder.core.events import (
    AgentMessageEvent,
    AgentsInitEvent,
    AgentStatusEvent,
    AgentStreamEvent,
    ClarifyingQuestionsEvent,
    ErrorEvent,
    PlanReadyEvent,
)
from heftcoder.core.graph import BuildContext, create_build_graph
from heftcoder.core.jobs import PlanningJobManager
from heftcoder.core.state import BuildState
from heftcoder.llm.adapter import BaseLLMAdapter
from heftcoder.llm.langdock_adapter import normalize_api_key
from heftcoder.settings import Settings, get_settings
from heftcoder.utils.logging import get_logger
from heftcoder.utils.schemas import PlanningJob, ProjectPlan, WireModel

LOGGER = get_logger(__name__)

Emit = Callable[[WireModel], None]

_STREAM_END = object()


class Orchestrator:
    """Runs the plan / execute / question / refine actions and the planning job queue.

    Every streaming action returns an async iterator of events; the HTTP layer
    turns them into SSE frames.
    """

    def __init__(self, settings: Optional[Settings] = None, adapter: Optional[BaseLLMAdapter] = None) -> None:
        self._settings = settings
        self._adapter = adapter
        self._compiled_graph = None
        self._jobs: Optional[PlanningJobManager] = None

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    @property
    def registry(self) -> Dict[str, AgentProfile]:
        return build_registry(self.settings)

    @property
    def jobs(self) -> PlanningJobManager:
        if self._jobs is None:
            self._jobs = PlanningJobManager(self.create_plan, ttl_seconds=self.settings.job_ttl_seconds)
        return self._jobs

    def _get_graph(self):
        if self._compiled_graph is None:
            self._compiled_graph = create_build_graph()
        return self._compiled_graph

    def _architect(self) -> ArchitectAgent:
        return ArchitectAgent(self.registry["architect"], adapter=self._adapter)

    # --- planning ---

    async def create_plan(
        self, message: str, on_output: Optional[Callable[[str], Awaitable[None]]] = None
    ) -> PlanningOutcome:
        return await self._architect().plan(message, on_output=on_output)

    def submit_plan_job(self, message: str) -> PlanningJob:
        return self.jobs.submit(message)

    def job_status(self, job_id: str) -> Optional[PlanningJob]:
        return self.jobs.get(job_id)

    def stream_plan(self, message: str) -> AsyncIterator[WireModel]:
        return self._drain(lambda emit: self._plan(message, emit))

    async def _plan(self, message: str, emit: Emit) -> None:
        architect = self.registry["architect"]
        label = "Analyzing requirements..."
        emit(AgentsInitEvent(agents={"architect": architect.info("thinking", label)}))
        emit(AgentStatusEvent(agent="architect", status="thinking", status_label=label))

        async def _on_output(text: str) -> None:
            emit(AgentStreamEvent(agent="architect", output=text))

        try:
            outcome = await self.create_plan(message, on_output=_on_output)
        except Exception as exc:
            LOGGER.exception("Planning failed: %s", exc)
            reason = str(exc) or "Planning failed"
            emit(AgentStatusEvent(agent="architect", status="error", status_label=reason))
            emit(ErrorEvent(message=reason))
            return

        if outcome.needs_clarification:
            emit(AgentStatusEvent(agent="architect", status="complete", status_label="Needs more details", output=outcome.raw))
            emit(ClarifyingQuestionsEvent(questions=outcome.questions))
            return

        if outcome.used_fallback:
            LOGGER.info("Serving heuristic %s plan", outcome.plan.project_type)
        emit(AgentStatusEvent(agent="architect", status="complete", status_label="Plan ready", output=outcome.raw))
        emit(PlanReadyEvent(plan=outcome.plan))

    def stream_question(self, message: str, plan: ProjectPlan, question: str) -> AsyncIterator[WireModel]:
        return self._drain(lambda emit: self._question(message, plan, question, emit))

    async def _question(self, message: str, plan: ProjectPlan, question: str, emit: Emit) -> None:
        try:
            answer = await self._architect().answer(plan, message, question)
        except Exception as exc:
            LOGGER.exception("Plan question failed: %s", exc)
            emit(ErrorEvent(message=str(exc) or "Could not answer the question"))
            return
        emit(AgentMessageEvent(agent="architect", content=answer))

    # --- building ---

    def stream_execute(self, message: str, plan: ProjectPlan) -> AsyncIterator[WireModel]:
        return self._drain(lambda emit: self._build("execute", message, plan, emit))

    def stream_refine(
        self, message: str, plan: ProjectPlan, feedback: str, current_code: str
    ) -> AsyncIterator[WireModel]:
        return self._drain(
            lambda emit: self._build(
                "refine", message, plan, emit, feedback=feedback, current_code=current_code
            )
        )

    @staticmethod
    def build_roles(mode: str, plan: ProjectPlan) -> List[str]:
        if mode == "refine":
            return ["frontend"]
        roles = plan.roles()
        if "qa" not in roles:
            roles.append("qa")
        return roles

    async def _build(
        self,
        mode: str,
        message: str,
        plan: ProjectPlan,
        emit: Emit,
        feedback: Optional[str] = None,
        current_code: Optional[str] = None,
    ) -> None:
        registry = self.registry
        roles = self.build_roles(mode, plan)
        agents = {role: profile_for(role, registry).info() for role in roles}
        emit(AgentsInitEvent(agents=agents))

        stages = [stage for stage in STAGE_ORDER if stage in roles]
        LOGGER.info("Starting %s for %s (stages=%s)", mode, plan.project_name, stages)

        state: BuildState = {
            "mode": mode,
            "message": message,
            "plan": plan,
            "feedback": feedback,
            "current_code": current_code,
            "stages": stages,
            "agents": agents,
            "files": split_code_blob(current_code or "") if mode == "refine" else [],
            "backend_output": None,
            "preview_html": None,
        }
        context = BuildContext(emit=emit, registry=registry, settings=self.settings, adapter=self._adapter)
        await self._get_graph().ainvoke(state, config={"configurable": {"build_context": context}})

    # --- plumbing ---

    async def _drain(self, runner: Callable[[Emit], Awaitable[None]]) -> AsyncIterator[WireModel]:
        """Run ``runner`` in a task and yield everything it emits, in order."""
        queue: asyncio.Queue = asyncio.Queue()

        async def _run() -> None:
            try:
                await runner(queue.put_nowait)
            except Exception as exc:
                LOGGER.exception("Orchestrator run failed: %s", exc)
                queue.put_nowait(ErrorEvent(message=str(exc)[:200] or "Orchestration failed"))
            finally:
                queue.put_nowait(_STREAM_END)

        task = asyncio.create_task(_run())
        try:
            while True:
                item = await queue.get()
                if item is _STREAM_END:
                    break
                yield item
        finally:
            if not task.done():
                LOGGER.info("Stream consumer went away; cancelling run")
                task.cancel()

    def diagnostics(self) -> Dict[str, Any]:
        settings = self.settings
        return {
            "build": settings.build_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "executionLayer": "langdock-chat-completions",
            "apiUrl": settings.langdock_api_url,
            "llmMode": settings.llm_mode,
            "secrets": {
                "LANGDOCK_API_KEY": bool(normalize_api_key(settings.langdock_api_key)),
            },
        }

    async def shutdown(self) -> None:
        if self._jobs is not None:
            await self._jobs.shutdown()


orchestrator = Orchestrator()
