from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

from heftcoder.utils.schemas import (
    AgentInfo,
    BackendArtifact,
    ClarifyingQuestion,
    GeneratedProject,
    ProjectPlan,
)

OrchestratorPhase = Literal[
    "idle", "planning", "clarifying", "awaiting_approval", "building", "refining", "complete", "error"
]


@dataclass
class ChatMessage:
    role: Literal["user", "assistant"]
    content: str


@dataclass
class AgentChatMessage:
    agent: str
    content: str
    is_error: bool = False


@dataclass
class OrchestratorState:
    """Everything the presentation layer renders for one conversation."""

    phase: OrchestratorPhase = "idle"
    agents: Dict[str, AgentInfo] = field(default_factory=dict)
    plan: Optional[ProjectPlan] = None
    error: Optional[str] = None
    summary: Optional[str] = None
    generated_project: Optional[GeneratedProject] = None
    clarifying_questions: List[ClarifyingQuestion] = field(default_factory=list)
    original_message: str = ""
    messages: List[ChatMessage] = field(default_factory=list)
    agent_messages: List[AgentChatMessage] = field(default_factory=list)
    backend_artifacts: List[BackendArtifact] = field(default_factory=list)
    required_secrets: List[str] = field(default_factory=list)
    streaming_output: Dict[str, str] = field(default_factory=dict)
    job_id: Optional[str] = None

    @property
    def preview_html(self) -> Optional[str]:
        return self.generated_project.preview_html if self.generated_project else None

    @property
    def is_busy(self) -> bool:
        return self.phase in ("planning", "building", "refining")
