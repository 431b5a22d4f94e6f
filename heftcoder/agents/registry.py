from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from heftcoder.settings import Settings, get_settings
from heftcoder.utils.schemas import AgentInfo

from .prompts import (
    ARCHITECT_SYSTEM_PROMPT,
    BACKEND_SYSTEM_PROMPT,
    FRONTEND_SYSTEM_PROMPT,
    QA_SYSTEM_PROMPT,
)

# Execution order of the build stages. Plan step dependencies are not consulted.
STAGE_ORDER = ("frontend", "backend", "qa")


@dataclass(frozen=True)
class AgentProfile:
    key: str
    name: str
    role: str
    model: str
    system_prompt: str = ""

    def info(self, status: str = "idle", status_label: Optional[str] = None) -> AgentInfo:
        return AgentInfo(
            agent_id=self.key,
            agent_name=self.name,
            role=self.role,
            status=status,
            status_label=status_label,
        )


_PROFILES = (
    ("architect", "Planner", "System design and project structure", ARCHITECT_SYSTEM_PROMPT),
    ("frontend", "Frontend", "UI components and styling", FRONTEND_SYSTEM_PROMPT),
    ("backend", "Backend", "API and database implementation", BACKEND_SYSTEM_PROMPT),
    ("integrator", "Integrator", "Connect frontend to backend", ""),
    ("qa", "QA", "Testing and quality assurance", QA_SYSTEM_PROMPT),
    ("devops", "DevOps", "Deployment and infrastructure", ""),
)


def build_registry(settings: Optional[Settings] = None) -> Dict[str, AgentProfile]:
    settings = settings or get_settings()
    return {
        key: AgentProfile(
            key=key,
            name=name,
            role=role,
            model=settings.model_for(key),
            system_prompt=prompt,
        )
        for key, name, role, prompt in _PROFILES
    }


def profile_for(key: str, registry: Dict[str, AgentProfile]) -> AgentProfile:
    """Profiles for roles the registry does not know get a generic entry."""
    if key in registry:
        return registry[key]
    return AgentProfile(key=key, name=key.capitalize(), role=key, model=get_settings().default_model)
