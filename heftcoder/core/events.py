"""Server-sent event types exchanged between the orchestrator and its clients.

Every frame on the wire is ``data: <json>\\n\\n`` where the JSON object carries a
``type`` discriminator. A stream ends with the literal frame ``data: [DONE]``.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Mapping, Optional, Type, Union

from pydantic import Field, ValidationError

from heftcoder.utils.logging import get_logger
from heftcoder.utils.schemas import (
    AgentInfo,
    AgentStatus,
    ClarifyingQuestion,
    GeneratedFile,
    GeneratedProject,
    ProjectPlan,
    WireModel,
)

LOGGER = get_logger(__name__)

DONE_SENTINEL = "[DONE]"
DONE_FRAME = f"data: {DONE_SENTINEL}\n\n"


class AgentsInitEvent(WireModel):
    type: Literal["agents_init"] = "agents_init"
    agents: Dict[str, AgentInfo]


class AgentsUpdateEvent(WireModel):
    type: Literal["agents_update"] = "agents_update"
    agents: Dict[str, AgentInfo]


class AgentStatusEvent(WireModel):
    type: Literal["agent_status"] = "agent_status"
    agent: str
    status: AgentStatus
    status_label: Optional[str] = None
    output: Optional[str] = None
    code: Optional[str] = None
    progress: Optional[int] = None


class AgentStreamEvent(WireModel):
    """Live agent output. ``output`` is always the cumulative text so far."""

    type: Literal["agent_stream"] = "agent_stream"
    agent: str
    output: str


class AgentMessageEvent(WireModel):
    type: Literal["agent_message"] = "agent_message"
    agent: str
    content: str


class PlanReadyEvent(WireModel):
    type: Literal["plan_ready"] = "plan_ready"
    plan: ProjectPlan


class ClarifyingQuestionsEvent(WireModel):
    type: Literal["clarifying_questions"] = "clarifying_questions"
    questions: List[ClarifyingQuestion]


class FileGeneratedEvent(WireModel):
    type: Literal["file_generated"] = "file_generated"
    agent: Optional[str] = None
    file: GeneratedFile


class MigrationGeneratedEvent(WireModel):
    type: Literal["migration_generated"] = "migration_generated"
    name: str
    content: str


class EdgeFunctionGeneratedEvent(WireModel):
    type: Literal["edge_function_generated"] = "edge_function_generated"
    name: str
    content: str


class SecretsRequiredEvent(WireModel):
    type: Literal["secrets_required"] = "secrets_required"
    secrets: List[str]
    reason: Optional[str] = None


class PreviewReadyEvent(WireModel):
    type: Literal["preview_ready"] = "preview_ready"
    html: str


class CodeGeneratedEvent(WireModel):
    type: Literal["code_generated"] = "code_generated"
    files: List[GeneratedFile] = Field(default_factory=list)
    preview_html: Optional[str] = None


class ProjectCompleteEvent(WireModel):
    type: Literal["project_complete"] = "project_complete"
    files: List[GeneratedFile] = Field(default_factory=list)
    plan: Optional[ProjectPlan] = None


class CompleteEvent(WireModel):
    type: Literal["complete"] = "complete"
    agents: Optional[Dict[str, AgentInfo]] = None
    summary: Optional[str] = None
    project: Optional[GeneratedProject] = None


class ErrorEvent(WireModel):
    type: Literal["error"] = "error"
    message: str


OrchestratorEvent = Union[
    AgentsInitEvent,
    AgentsUpdateEvent,
    AgentStatusEvent,
    AgentStreamEvent,
    AgentMessageEvent,
    PlanReadyEvent,
    ClarifyingQuestionsEvent,
    FileGeneratedEvent,
    MigrationGeneratedEvent,
    EdgeFunctionGeneratedEvent,
    SecretsRequiredEvent,
    PreviewReadyEvent,
    CodeGeneratedEvent,
    ProjectCompleteEvent,
    CompleteEvent,
    ErrorEvent,
]

EVENT_TYPES: Dict[str, Type[WireModel]] = {
    "agents_init": AgentsInitEvent,
    "agents_update": AgentsUpdateEvent,
    "agent_status": AgentStatusEvent,
    "agent_stream": AgentStreamEvent,
    "agent_message": AgentMessageEvent,
    "plan_ready": PlanReadyEvent,
    # legacy producer name
    "plan_created": PlanReadyEvent,
    "clarifying_questions": ClarifyingQuestionsEvent,
    "file_generated": FileGeneratedEvent,
    "migration_generated": MigrationGeneratedEvent,
    "edge_function_generated": EdgeFunctionGeneratedEvent,
    "secrets_required": SecretsRequiredEvent,
    "preview_ready": PreviewReadyEvent,
    "code_generated": CodeGeneratedEvent,
    "project_complete": ProjectCompleteEvent,
    "complete": CompleteEvent,
    "error": ErrorEvent,
}


class MalformedEventError(ValueError):
    """A frame with a known ``type`` whose fields do not validate."""


def parse_event(payload: Mapping[str, Any]) -> Optional[OrchestratorEvent]:
    """Build a typed event from a decoded frame; unknown types yield None."""
    event_type = payload.get("type")
    model = EVENT_TYPES.get(event_type) if isinstance(event_type, str) else None
    if model is None:
        LOGGER.debug("Ignoring event of unknown type %r", event_type)
        return None
    data = dict(payload)
    data["type"] = model.model_fields["type"].default
    try:
        return model.model_validate(data)  # type: ignore[return-value]
    except ValidationError as exc:
        raise MalformedEventError(f"Invalid {event_type} event: {exc}") from exc


def encode_sse(event: WireModel) -> str:
    return f"data: {json.dumps(event.to_wire())}\n\n"


@dataclass
class BuildResult:
    """The single internal shape of the three "build finished" events."""

    project: Optional[GeneratedProject] = None
    files: Optional[List[GeneratedFile]] = None
    preview_html: Optional[str] = None
    summary: Optional[str] = None
    agents: Optional[Dict[str, AgentInfo]] = None
    plan: Optional[ProjectPlan] = None


def to_build_result(
    event: Union[CodeGeneratedEvent, ProjectCompleteEvent, CompleteEvent]
) -> BuildResult:
    if isinstance(event, CodeGeneratedEvent):
        return BuildResult(files=list(event.files), preview_html=event.preview_html)
    if isinstance(event, ProjectCompleteEvent):
        return BuildResult(files=list(event.files), plan=event.plan)
    return BuildResult(project=event.project, summary=event.summary, agents=event.agents)
