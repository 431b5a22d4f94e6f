from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph

from heftcoder.agents.backend import BackendAgent
from heftcoder.agents.frontend import FrontendAgent, merge_files
from heftcoder.agents.qa import QAAgent
from heftcoder.agents.registry import STAGE_ORDER, AgentProfile, profile_for
from heftcoder.core.events import (
    AgentStatusEvent,
    AgentStreamEvent,
    CompleteEvent,
    FileGeneratedEvent,
    PreviewReadyEvent,
)
from heftcoder.core.preview import build_preview_html
from heftcoder.core.state import BuildState
from heftcoder.llm.adapter import BaseLLMAdapter
from heftcoder.settings import Settings
from heftcoder.utils.logging import get_logger
from heftcoder.utils.schemas import AgentInfo, GeneratedFile, GeneratedProject, ProjectPlan, WireModel

LOGGER = get_logger(__name__)


@dataclass
class BuildContext:
    """Per-run collaborators handed to the graph nodes through the run config."""

    emit: Callable[[WireModel], None]
    registry: Dict[str, AgentProfile]
    settings: Settings
    adapter: Optional[BaseLLMAdapter] = None

    def profile(self, key: str) -> AgentProfile:
        return profile_for(key, self.registry)

    def set_status(
        self,
        agents: Dict[str, AgentInfo],
        key: str,
        status: str,
        label: Optional[str] = None,
        output: Optional[str] = None,
        code: Optional[str] = None,
    ) -> None:
        current = agents.get(key) or self.profile(key).info()
        update: Dict[str, Any] = {"status": status, "status_label": label}
        if output is not None:
            update["output"] = output
        if code is not None:
            update["code"] = code
        agents[key] = current.model_copy(update=update)
        self.emit(
            AgentStatusEvent(agent=key, status=status, status_label=label, output=output, code=code)
        )

    def stream_callback(self, key: str):
        async def _on_output(text: str) -> None:
            self.emit(AgentStreamEvent(agent=key, output=text))
        return _on_output


def _context(config: RunnableConfig) -> BuildContext:
    return config["configurable"]["build_context"]


async def frontend_node(state: BuildState, config: RunnableConfig) -> Dict[str, Any]:
    ctx = _context(config)
    plan: ProjectPlan = state["plan"]
    agents = dict(state["agents"])
    profile = ctx.profile("frontend")
    ctx.set_status(agents, "frontend", "thinking", f"{profile.name} working...")

    agent = FrontendAgent(profile, adapter=ctx.adapter)
    try:
        if state["mode"] == "refine":
            files, output = await agent.refine(
                plan,
                state["message"],
                state.get("feedback") or "",
                state.get("current_code") or "",
                on_output=ctx.stream_callback("frontend"),
            )
        else:
            files, output = await agent.generate(
                plan, state["message"], on_output=ctx.stream_callback("frontend")
            )
    except Exception as exc:
        LOGGER.exception("Frontend stage failed: %s", exc)
        ctx.set_status(agents, "frontend", "error", str(exc) or "Frontend generation failed")
        return {"agents": agents}

    ctx.set_status(agents, "frontend", "creating", f"Writing {len(files)} files...")
    for file in files:
        ctx.emit(FileGeneratedEvent(agent="frontend", file=file))

    merged = merge_files(state["files"], files)
    preview = build_preview_html(merged, title=plan.project_name)
    if preview:
        ctx.emit(PreviewReadyEvent(html=preview))

    ctx.set_status(
        agents,
        "frontend",
        "complete",
        "Complete",
        output=output[:500],
        code=files[0].content if files else None,
    )
    LOGGER.info("Frontend stage produced %d files", len(files))
    return {"agents": agents, "files": merged, "preview_html": preview}


async def backend_node(state: BuildState, config: RunnableConfig) -> Dict[str, Any]:
    ctx = _context(config)
    agents = dict(state["agents"])
    profile = ctx.profile("backend")
    ctx.set_status(agents, "backend", "thinking", f"{profile.name} working...")

    agent = BackendAgent(profile, adapter=ctx.adapter)
    try:
        ctx.set_status(agents, "backend", "installing", "Setting up backend...")
        output = await agent.generate(
            state["plan"], state["message"], on_output=ctx.stream_callback("backend")
        )
    except Exception as exc:
        LOGGER.exception("Backend stage failed: %s", exc)
        ctx.set_status(agents, "backend", "error", str(exc) or "Backend generation failed")
        return {"agents": agents}

    ctx.set_status(agents, "backend", "complete", "Complete", output=output)
    return {"agents": agents, "backend_output": output}


async def qa_node(state: BuildState, config: RunnableConfig) -> Dict[str, Any]:
    ctx = _context(config)
    agents = dict(state["agents"])
    ctx.set_status(agents, "qa", "testing", "Running checks...")

    agent = QAAgent(ctx.profile("qa"), delay_seconds=ctx.settings.qa_delay_seconds)
    try:
        result = await agent.review(state["files"])
    except Exception as exc:
        LOGGER.exception("QA stage failed: %s", exc)
        ctx.set_status(agents, "qa", "error", str(exc) or "QA failed")
        return {"agents": agents}

    ctx.set_status(agents, "qa", "complete", result, output=result)
    return {"agents": agents}


def build_summary(
    plan: ProjectPlan, files: List[GeneratedFile], agents: Dict[str, AgentInfo], refine_failed: bool = False
) -> str:
    if refine_failed:
        lines = [f"Refinement of **{plan.project_name}** failed. The previous version is unchanged."]
    else:
        lines = [f"**{plan.project_name}** has been generated. {len(files)} files created."]
    if files and not refine_failed:
        lines.append("")
        lines.append("### Files")
        lines.extend(f"- `{file.path}`" for file in files)
    failed = [info for info in agents.values() if info.status == "error"]
    if failed:
        lines.append("")
        lines.append("### Issues")
        lines.extend(f"- {info.agent_name}: {info.status_label or 'failed'}" for info in failed)
    return "\n".join(lines)


async def finalize_node(state: BuildState, config: RunnableConfig) -> Dict[str, Any]:
    ctx = _context(config)
    plan: ProjectPlan = state["plan"]
    agents = dict(state["agents"])
    for key, info in agents.items():
        if info.status == "idle":
            agents[key] = info.model_copy(update={"status": "complete", "status_label": "No changes needed"})

    files = list(state["files"])
    preview = build_preview_html(files, title=plan.project_name) if files else None
    project: Optional[GeneratedProject] = GeneratedProject(
        type=plan.project_type,
        name=plan.project_name,
        files=files,
        preview_html=preview,
    )
    refine_failed = state["mode"] == "refine" and agents["frontend"].status == "error"
    if refine_failed:
        # The caller keeps its current project.
        LOGGER.warning("Refine failed for %s; returning no project", plan.project_name)
        project = None
    summary = build_summary(plan, files, agents, refine_failed=refine_failed)
    ctx.emit(CompleteEvent(agents=agents, summary=summary, project=project))
    LOGGER.info("Build finished for %s (%d files)", plan.project_name, len(files))
    return {"agents": agents, "preview_html": preview}


def _router(after: Optional[str]):
    def route(state: BuildState) -> str:
        stages = state["stages"]
        remaining = stages if after is None else stages[stages.index(after) + 1:]
        return f"{remaining[0]}_node" if remaining else "finalize_node"
    return route


def create_build_graph():
    workflow = StateGraph(BuildState)

    workflow.add_node("frontend_node", frontend_node)
    workflow.add_node("backend_node", backend_node)
    workflow.add_node("qa_node", qa_node)
    workflow.add_node("finalize_node", finalize_node)

    targets = [f"{stage}_node" for stage in STAGE_ORDER] + ["finalize_node"]
    workflow.add_conditional_edges(START, _router(None), targets)
    for stage in STAGE_ORDER:
        workflow.add_conditional_edges(f"{stage}_node", _router(stage), targets)
    workflow.add_edge("finalize_node", END)

    return workflow.compile()
