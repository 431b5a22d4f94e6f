"""Fold orchestrator events into an OrchestratorState."""
from __future__ import annotations

from typing import Callable, Dict, List, Optional, Type

from heftcoder.core.events import (
    AgentMessageEvent,
    AgentsInitEvent,
    AgentStatusEvent,
    AgentStreamEvent,
    AgentsUpdateEvent,
    BuildResult,
    ClarifyingQuestionsEvent,
    CodeGeneratedEvent,
    CompleteEvent,
    EdgeFunctionGeneratedEvent,
    ErrorEvent,
    FileGeneratedEvent,
    MigrationGeneratedEvent,
    OrchestratorEvent,
    PlanReadyEvent,
    PreviewReadyEvent,
    ProjectCompleteEvent,
    SecretsRequiredEvent,
    to_build_result,
)
from heftcoder.core.preview import build_preview_html
from heftcoder.utils.logging import get_logger
from heftcoder.utils.schemas import AgentInfo, BackendArtifact, GeneratedFile, GeneratedProject

from .state import AgentChatMessage, ChatMessage, OrchestratorState

LOGGER = get_logger(__name__)


def _project_shell(state: OrchestratorState) -> GeneratedProject:
    if state.generated_project is None:
        state.generated_project = GeneratedProject.from_plan(state.plan)
    return state.generated_project


def upsert_file(state: OrchestratorState, file: GeneratedFile) -> None:
    """Append ``file``; a file already at the same path is replaced in place."""
    project = _project_shell(state)
    files = list(project.files)
    for index, existing in enumerate(files):
        if existing.path == file.path:
            files[index] = file
            break
    else:
        files.append(file)
    state.generated_project = project.model_copy(update={"files": files})


def _agents_replaced(state: OrchestratorState, event) -> None:
    state.agents = dict(event.agents)


def _agent_status(state: OrchestratorState, event: AgentStatusEvent) -> None:
    update = event.model_dump(include={"status", "status_label", "output", "code"}, exclude_none=True)
    current = state.agents.get(event.agent)
    if current is None:
        current = AgentInfo(agent_id=event.agent, agent_name=event.agent.capitalize(), role=event.agent)
    agents = dict(state.agents)
    agents[event.agent] = current.model_copy(update=update)
    state.agents = agents


def _agent_stream(state: OrchestratorState, event: AgentStreamEvent) -> None:
    state.streaming_output = {**state.streaming_output, event.agent: event.output}


def _agent_message(state: OrchestratorState, event: AgentMessageEvent) -> None:
    state.agent_messages = state.agent_messages + [AgentChatMessage(agent=event.agent, content=event.content)]


def _plan_ready(state: OrchestratorState, event: PlanReadyEvent) -> None:
    plan = event.plan
    state.plan = plan
    state.clarifying_questions = []
    state.messages = state.messages + [
        ChatMessage(
            role="assistant",
            content=f"I've drafted a plan for **{plan.project_name}** ({len(plan.steps)} steps). "
            "Review it and approve to start building.",
        )
    ]
    state.phase = "awaiting_approval"


def _clarifying(state: OrchestratorState, event: ClarifyingQuestionsEvent) -> None:
    state.clarifying_questions = list(event.questions)
    state.phase = "clarifying"


def _file_generated(state: OrchestratorState, event: FileGeneratedEvent) -> None:
    upsert_file(state, event.file)


def _migration(state: OrchestratorState, event: MigrationGeneratedEvent) -> None:
    state.backend_artifacts = state.backend_artifacts + [
        BackendArtifact(kind="migration", name=event.name, content=event.content)
    ]
    upsert_file(
        state,
        GeneratedFile(path=f"supabase/migrations/{event.name}", content=event.content, language="sql"),
    )


def _edge_function(state: OrchestratorState, event: EdgeFunctionGeneratedEvent) -> None:
    state.backend_artifacts = state.backend_artifacts + [
        BackendArtifact(kind="edge_function", name=event.name, content=event.content)
    ]
    upsert_file(
        state,
        GeneratedFile(
            path=f"supabase/functions/{event.name}/index.ts", content=event.content, language="typescript"
        ),
    )


def _secrets_required(state: OrchestratorState, event: SecretsRequiredEvent) -> None:
    new = [name for name in event.secrets if name not in state.required_secrets]
    if not new:
        return
    state.required_secrets = state.required_secrets + new
    reason = f" {event.reason}" if event.reason else ""
    state.messages = state.messages + [
        ChatMessage(role="assistant", content=f"This project needs secrets: {', '.join(new)}.{reason}")
    ]


def _preview_ready(state: OrchestratorState, event: PreviewReadyEvent) -> None:
    project = _project_shell(state)
    state.generated_project = project.model_copy(update={"preview_html": event.html})


def _refine_failure(state: OrchestratorState, result: BuildResult) -> Optional[str]:
    if state.phase != "refining" or not result.agents:
        return None
    frontend = result.agents.get("frontend")
    if frontend is None or frontend.status != "error":
        return None
    return frontend.status_label or "Frontend generation failed"


def apply_build_result(state: OrchestratorState, result: BuildResult) -> None:
    """Fold any of the three "build finished" shapes into the state.

    A refine whose frontend stage failed keeps the current project and records the error.
    """
    refine_error = _refine_failure(state, result)
    if refine_error is not None and state.generated_project is not None:
        project = state.generated_project
    elif result.project is not None:
        project = result.project
    else:
        project = state.generated_project or GeneratedProject.from_plan(result.plan or state.plan)
        if result.files is not None:
            project = project.model_copy(update={"files": list(result.files)})
    if result.preview_html:
        project = project.model_copy(update={"preview_html": result.preview_html})
    if not project.preview_html and project.files:
        project = project.model_copy(update={"preview_html": build_preview_html(project.files, project.name)})

    state.generated_project = project
    if result.plan is not None and state.plan is None:
        state.plan = result.plan
    if result.summary:
        state.summary = result.summary
        state.messages = state.messages + [ChatMessage(role="assistant", content=result.summary)]
    if result.agents:
        state.agents = dict(result.agents)
    if refine_error is not None:
        state.error = f"Refinement failed: {refine_error}"
        state.messages = state.messages + [
            ChatMessage(role="assistant", content=f"{state.error}. The previous version was kept.")
        ]
    state.phase = "complete"


def _build_result(state: OrchestratorState, event) -> None:
    apply_build_result(state, to_build_result(event))


def _error(state: OrchestratorState, event: ErrorEvent) -> None:
    state.error = event.message
    state.phase = "error"


_HANDLERS: Dict[Type, Callable[[OrchestratorState, OrchestratorEvent], None]] = {
    AgentsInitEvent: _agents_replaced,
    AgentsUpdateEvent: _agents_replaced,
    AgentStatusEvent: _agent_status,
    AgentStreamEvent: _agent_stream,
    AgentMessageEvent: _agent_message,
    PlanReadyEvent: _plan_ready,
    ClarifyingQuestionsEvent: _clarifying,
    FileGeneratedEvent: _file_generated,
    MigrationGeneratedEvent: _migration,
    EdgeFunctionGeneratedEvent: _edge_function,
    SecretsRequiredEvent: _secrets_required,
    PreviewReadyEvent: _preview_ready,
    CodeGeneratedEvent: _build_result,
    ProjectCompleteEvent: _build_result,
    CompleteEvent: _build_result,
    ErrorEvent: _error,
}


def apply_event(state: OrchestratorState, event: Optional[OrchestratorEvent]) -> bool:
    """Mutate ``state`` for one event. Returns False for events with no effect."""
    handler = _HANDLERS.get(type(event))
    if handler is None:
        LOGGER.debug("No handler for event %r", event)
        return False
    handler(state, event)
    return True


def current_code_blob(files: List[GeneratedFile]) -> str:
    return "\n\n".join(f"// File: {file.path}\n{file.content}" for file in files)
