from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional

from heftcoder.agents.prompts import PromptBuilder
from heftcoder.core.events import (
    AgentStatusEvent,
    ClarifyingQuestionsEvent,
    ErrorEvent,
    OrchestratorEvent,
    PlanReadyEvent,
)
from heftcoder.settings import ClientSettings, get_client_settings
from heftcoder.utils.logging import get_logger
from heftcoder.utils.schemas import AgentInfo, GeneratedProject, PlanningJob, ProjectPlan

from .poller import JobPoller, PollingTimeoutError
from .reducer import apply_event, current_code_blob
from .state import AgentChatMessage, ChatMessage, OrchestratorState
from .transport import OrchestratorClientError, OrchestratorTransport

LOGGER = get_logger(__name__)

Listener = Callable[[OrchestratorState], None]

PLANNING_TIMEOUT_MESSAGE = "Planning took too long. Please try again."
NO_PLAN_MESSAGE = "Planning finished without a plan"
BUILD_INCOMPLETE_MESSAGE = "Build ended before completion"


class OrchestratorClient:
    """Conversation state machine driven by the orchestrator endpoint.

    Every mutation notifies subscribers with the current state. ``reset()`` starts
    a new epoch; requests started in an older epoch can no longer touch the state.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        transport: Optional[OrchestratorTransport] = None,
        poller: Optional[JobPoller] = None,
    ) -> None:
        self.settings = settings or get_client_settings()
        self.transport = transport or OrchestratorTransport(self.settings)
        self.poller = poller or JobPoller(
            self.transport,
            interval_seconds=self.settings.poll_interval_seconds,
            timeout_seconds=self.settings.poll_timeout_seconds,
        )
        self.state = OrchestratorState()
        self._listeners: List[Listener] = []
        self._epoch = 0
        self._poll_task: Optional[asyncio.Task] = None

    # --- subscription ---

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.state)
            except Exception:
                LOGGER.exception("Orchestrator listener failed")

    def _stale(self, epoch: int) -> bool:
        return epoch != self._epoch

    # --- user actions ---

    async def request_plan(self, message: str) -> None:
        self.reset()
        epoch = self._epoch
        state = self.state
        state.original_message = message
        state.messages = [ChatMessage(role="user", content=message)]
        self._start_planning()
        await self._submit_planning(message, epoch)

    async def answer_questions(self, answers: Dict[str, str]) -> None:
        epoch = self._epoch
        state = self.state
        questions = {q.id: q.question for q in state.clarifying_questions}
        block = PromptBuilder.build_answers_block(questions, answers)
        state.original_message = f"{state.original_message}\n\n{block}"
        state.messages = state.messages + [ChatMessage(role="user", content=block)]
        state.clarifying_questions = []
        self._start_planning()
        await self._submit_planning(state.original_message, epoch)

    async def reject_plan(self, feedback: str) -> bool:
        if self.state.plan is None:
            return False
        epoch = self._epoch
        state = self.state
        state.original_message = f"{state.original_message}\n\nRevision feedback: {feedback}"
        state.messages = state.messages + [ChatMessage(role="user", content=feedback)]
        state.plan = None
        self._start_planning()
        await self._submit_planning(state.original_message, epoch)
        return True

    async def ask_question(self, question: str) -> bool:
        """Ask the architect about the live plan. Never changes the phase."""
        state = self.state
        if state.plan is None:
            return False
        epoch = self._epoch
        state.agent_messages = state.agent_messages + [AgentChatMessage(agent="user", content=question)]
        self._notify()

        payload = {
            "action": "question",
            "message": state.original_message,
            "plan": state.plan.to_wire(),
            "question": question,
        }
        try:
            async for event in self.transport.stream(payload):
                if self._stale(epoch):
                    return True
                if isinstance(event, ErrorEvent):
                    self._question_failed(event.message)
                    continue
                apply_event(self.state, event)
                self._notify()
        except OrchestratorClientError as exc:
            if not self._stale(epoch):
                self._question_failed(str(exc))
        return True

    async def approve_plan(self) -> bool:
        state = self.state
        if state.plan is None or not state.original_message:
            LOGGER.debug("approve_plan ignored: no plan or message")
            return False
        epoch = self._epoch
        state.phase = "building"
        state.error = None
        state.summary = None
        state.streaming_output = {}
        self._notify()

        payload = {"action": "execute", "message": state.original_message, "plan": state.plan.to_wire()}
        if await self._run_stream(payload, epoch):
            self._check_build_finished(epoch)
        return True

    async def refine_project(self, feedback: str) -> bool:
        state = self.state
        if state.generated_project is None or state.plan is None:
            return False
        epoch = self._epoch
        state.messages = state.messages + [ChatMessage(role="user", content=feedback)]
        state.phase = "refining"
        state.error = None
        state.streaming_output = {}
        self._notify()

        payload = {
            "action": "refine",
            "message": state.original_message,
            "plan": state.plan.to_wire(),
            "feedback": feedback,
            "currentCode": current_code_blob(state.generated_project.files),
        }
        if await self._run_stream(payload, epoch):
            self._check_build_finished(epoch)
        return True

    def reset(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None
        self._epoch += 1
        self.state = OrchestratorState()
        self._notify()

    def load_project(self, project: GeneratedProject, plan: Optional[ProjectPlan] = None) -> None:
        state = self.state
        state.generated_project = project
        if plan is not None:
            state.plan = plan
        state.error = None
        state.phase = "complete"
        self._notify()

    async def aclose(self) -> None:
        self.reset()
        await self.transport.aclose()

    # --- planning transport ---

    def _start_planning(self) -> None:
        state = self.state
        state.phase = "planning"
        state.error = None
        state.agents = {
            "architect": AgentInfo(
                agent_id="architect",
                agent_name="Planner",
                role="System design and project structure",
                status="thinking",
                status_label="Analyzing requirements...",
            )
        }
        self._notify()

    async def _submit_planning(self, prompt: str, epoch: int) -> None:
        if self.settings.planning_transport == "stream":
            if await self._run_stream({"action": "plan", "message": prompt}, epoch):
                if not self._stale(epoch) and self.state.phase == "planning":
                    self._fail(epoch, NO_PLAN_MESSAGE)
            return
        await self._poll_planning(prompt, epoch)

    async def _poll_planning(self, prompt: str, epoch: int) -> None:
        try:
            job_id = await self.transport.submit_plan_job(prompt)
        except OrchestratorClientError as exc:
            self._fail(epoch, str(exc))
            return
        if self._stale(epoch):
            return
        self.state.job_id = job_id
        self._notify()

        task = asyncio.create_task(self.poller.run(job_id, on_progress=lambda job: self._on_job_progress(epoch, job)))
        self._poll_task = task
        await asyncio.wait({task})
        if self._poll_task is task:
            self._poll_task = None
        if self._stale(epoch) or task.cancelled():
            return

        try:
            job = task.result()
        except PollingTimeoutError:
            self._fail(epoch, PLANNING_TIMEOUT_MESSAGE)
            return
        except OrchestratorClientError as exc:
            self._fail(epoch, str(exc))
            return
        self._apply_job(job)

    def _on_job_progress(self, epoch: int, job: PlanningJob) -> None:
        if self._stale(epoch) or job.is_terminal:
            return
        apply_event(
            self.state,
            AgentStatusEvent(
                agent="architect",
                status="thinking",
                status_label=f"Planning... {job.progress}%",
                progress=job.progress,
            ),
        )
        self._notify()

    def _apply_job(self, job: PlanningJob) -> None:
        events: List[OrchestratorEvent] = []
        if job.status == "clarifying":
            events.append(AgentStatusEvent(agent="architect", status="complete", status_label="Needs more details"))
            events.append(ClarifyingQuestionsEvent(questions=job.clarifying_questions or []))
        elif job.plan is not None and job.status in ("awaiting_approval", "complete"):
            events.append(AgentStatusEvent(agent="architect", status="complete", status_label="Plan ready"))
            events.append(PlanReadyEvent(plan=job.plan))
        else:
            reason = job.error or NO_PLAN_MESSAGE
            events.append(AgentStatusEvent(agent="architect", status="error", status_label=reason))
            events.append(ErrorEvent(message=reason))
        for event in events:
            apply_event(self.state, event)
        self._notify()

    # --- streaming ---

    async def _run_stream(self, payload: Dict[str, Any], epoch: int) -> bool:
        """Fold a streamed action into the state. False when the request failed."""
        try:
            async for event in self.transport.stream(payload):
                if self._stale(epoch):
                    LOGGER.debug("Dropping %s event from a previous session", payload["action"])
                    return False
                if apply_event(self.state, event):
                    self._notify()
        except OrchestratorClientError as exc:
            LOGGER.warning("Orchestrator %s request failed: %s", payload["action"], exc)
            self._fail(epoch, str(exc))
            return False
        return not self._stale(epoch)

    def _check_build_finished(self, epoch: int) -> None:
        if not self._stale(epoch) and self.state.phase in ("building", "refining"):
            self._fail(epoch, BUILD_INCOMPLETE_MESSAGE)

    def _fail(self, epoch: int, message: str) -> None:
        if self._stale(epoch):
            return
        LOGGER.info("Orchestrator client error: %s", message)
        apply_event(self.state, ErrorEvent(message=message))
        self._notify()

    def _question_failed(self, message: str) -> None:
        state = self.state
        state.error = message
        state.agent_messages = state.agent_messages + [
            AgentChatMessage(agent="architect", content=message, is_error=True)
        ]
        self._notify()
