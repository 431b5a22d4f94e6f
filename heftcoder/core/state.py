from typing import Dict, List, Optional, TypedDict

from heftcoder.utils.schemas import AgentInfo, GeneratedFile, ProjectPlan


class BuildState(TypedDict):
    mode: str  # execute, refine
    message: str
    plan: ProjectPlan
    feedback: Optional[str]
    current_code: Optional[str]
    stages: List[str]  # subset of STAGE_ORDER, in run order
    agents: Dict[str, AgentInfo]
    files: List[GeneratedFile]
    backend_output: Optional[str]
    preview_html: Optional[str]
