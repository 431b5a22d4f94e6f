"""Pydantic schemas shared by the orchestrator endpoint and its client."""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ProjectType = Literal["landing", "webapp", "native"]
PROJECT_TYPES = ("landing", "webapp", "native")

AgentStatus = Literal[
    "idle", "thinking", "installing", "creating", "testing", "deploying", "complete", "error"
]
ACTIVE_AGENT_STATUSES = frozenset({"thinking", "installing", "creating", "testing", "deploying"})

JobStatus = Literal["pending", "processing", "clarifying", "awaiting_approval", "complete", "failed"]
TERMINAL_JOB_STATUSES = frozenset({"clarifying", "awaiting_approval", "complete", "failed"})

OrchestratorAction = Literal[
    "plan", "plan_async", "job_status", "execute", "question", "refine", "diag"
]


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class AgentInfo(WireModel):
    agent_id: str
    agent_name: str
    role: str = ""
    status: AgentStatus = "idle"
    status_label: Optional[str] = None
    output: Optional[str] = None
    code: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_AGENT_STATUSES


class PlanStep(WireModel):
    id: str
    agent: str
    task: str
    # Informational only: the pipeline runs stages in a fixed order
    dependencies: List[str] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("agent", mode="before")
    @classmethod
    def _normalize_agent(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("dependencies", mode="before")
    @classmethod
    def _stringify_dependencies(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(v) for v in value]
        return value


class TechStack(WireModel):
    frontend: List[str] = Field(default_factory=list)
    backend: List[str] = Field(default_factory=list)
    database: str = "None"


class ProjectPlan(WireModel):
    project_name: str
    project_type: ProjectType = "webapp"
    description: str = ""
    tech_stack: TechStack = Field(default_factory=TechStack)
    steps: List[PlanStep] = Field(default_factory=list)
    estimated_time: str = ""

    @field_validator("project_type", mode="before")
    @classmethod
    def _coerce_project_type(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip().lower() in PROJECT_TYPES:
            return value.strip().lower()
        return "webapp"

    def roles(self) -> List[str]:
        """Distinct step agents in first-seen order."""
        seen: List[str] = []
        for step in self.steps:
            if step.agent not in seen:
                seen.append(step.agent)
        return seen

    def has_role(self, role: str) -> bool:
        return any(step.agent == role for step in self.steps)


class GeneratedFile(WireModel):
    path: str
    content: str
    language: str = "text"


class GeneratedProject(WireModel):
    type: ProjectType = "webapp"
    name: str = "Untitled Project"
    files: List[GeneratedFile] = Field(default_factory=list)
    preview_html: Optional[str] = None

    @classmethod
    def from_plan(cls, plan: Optional[ProjectPlan]) -> "GeneratedProject":
        if plan is None:
            return cls()
        return cls(type=plan.project_type, name=plan.project_name)


class ClarifyingQuestion(WireModel):
    id: str
    question: str
    type: Literal["text", "choice", "multi_choice"] = "text"
    options: Optional[List[str]] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class BackendArtifact(WireModel):
    kind: Literal["migration", "edge_function"]
    name: str
    content: str


class PlanningJob(WireModel):
    id: str
    prompt: str
    status: JobStatus = "pending"
    progress: int = 0
    plan: Optional[ProjectPlan] = None
    clarifying_questions: Optional[List[ClarifyingQuestion]] = Field(
        default=None, alias="clarifying_questions"
    )
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


class OrchestratorRequest(WireModel):
    """Body of POST /functions/v1/orchestrator."""

    action: OrchestratorAction
    message: str = ""
    plan: Optional[ProjectPlan] = None
    job_id: Optional[str] = None
    question: Optional[str] = None
    feedback: Optional[str] = None
    current_code: Optional[str] = None
