import asyncio
import json

import httpx

from heftcoder.agents.heuristics import fallback_plan
from heftcoder.client.orchestrator import OrchestratorClient
from heftcoder.client.poller import JobPoller
from heftcoder.client.reducer import apply_event
from heftcoder.client.state import OrchestratorState
from heftcoder.client.transport import OrchestratorTransport
from heftcoder.core.events import (
    AgentsInitEvent,
    AgentStatusEvent,
    CodeGeneratedEvent,
    CompleteEvent,
    EdgeFunctionGeneratedEvent,
    ErrorEvent,
    FileGeneratedEvent,
    MigrationGeneratedEvent,
    PreviewReadyEvent,
    ProjectCompleteEvent,
    SecretsRequiredEvent,
    encode_sse,
)
from heftcoder.settings import ClientSettings
from heftcoder.utils.schemas import AgentInfo, GeneratedFile, GeneratedProject

URL = "http://orchestrator.test/functions/v1/orchestrator"


def _file(path, content="<p>content</p>"):
    return GeneratedFile(path=path, content=content, language="html")


def _sse(*events) -> bytes:
    return ("".join(encode_sse(event) for event in events) + "data: [DONE]\n\n").encode("utf-8")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.now += seconds


def _client(handler, transport_mode="poll", clock=None):
    settings = ClientSettings(orchestrator_url=URL, planning_transport=transport_mode)
    transport = OrchestratorTransport(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    clock = clock or FakeClock()
    poller = JobPoller(transport, interval_seconds=1.5, timeout_seconds=120, clock=clock, sleep=clock.sleep)
    return OrchestratorClient(settings, transport=transport, poller=poller)


def test_agent_status_is_last_write_wins():
    state = OrchestratorState()
    apply_event(state, AgentsInitEvent(agents={"frontend": AgentInfo(agent_id="frontend", agent_name="Frontend")}))
    apply_event(state, AgentStatusEvent(agent="frontend", status="creating", status_label="Writing", output="abc"))
    apply_event(state, AgentStatusEvent(agent="frontend", status="complete"))

    agent = state.agents["frontend"]
    assert agent.status == "complete"
    assert agent.status_label == "Writing"
    assert agent.output == "abc"
    assert agent.agent_name == "Frontend"


def test_agent_status_for_unknown_agent_creates_record():
    state = OrchestratorState()
    apply_event(state, AgentStatusEvent(agent="devops", status="deploying"))
    assert state.agents["devops"].status == "deploying"
    assert state.agents["devops"].is_active


def test_file_events_upsert_by_path_and_create_shell_from_plan():
    state = OrchestratorState(plan=fallback_plan("Build a landing page for my bakery"))
    apply_event(state, FileGeneratedEvent(file=_file("index.html", "<p>one</p>")))
    apply_event(state, FileGeneratedEvent(file=_file("styles.css", "p {}")))
    apply_event(state, FileGeneratedEvent(file=_file("index.html", "<p>two</p>")))

    project = state.generated_project
    assert project.type == "landing"
    assert project.name == state.plan.project_name
    assert [f.path for f in project.files] == ["index.html", "styles.css"]
    assert project.files[0].content == "<p>two</p>"


def test_backend_artifacts_are_mirrored_into_files():
    state = OrchestratorState()
    apply_event(state, MigrationGeneratedEvent(name="001_init.sql", content="create table t (id int);"))
    apply_event(state, EdgeFunctionGeneratedEvent(name="list-items", content="export default () => {}"))

    assert [a.kind for a in state.backend_artifacts] == ["migration", "edge_function"]
    assert [f.path for f in state.generated_project.files] == [
        "supabase/migrations/001_init.sql",
        "supabase/functions/list-items/index.ts",
    ]
    assert state.generated_project.name == "Untitled Project"


def test_secrets_required_accumulates_unique_names():
    state = OrchestratorState()
    apply_event(state, SecretsRequiredEvent(secrets=["STRIPE_KEY"], reason="Payments"))
    apply_event(state, SecretsRequiredEvent(secrets=["STRIPE_KEY", "MAPS_KEY"]))
    apply_event(state, SecretsRequiredEvent(secrets=["MAPS_KEY"]))

    assert state.required_secrets == ["STRIPE_KEY", "MAPS_KEY"]
    assert len(state.messages) == 2
    assert "Payments" in state.messages[0].content


def test_code_generated_builds_missing_preview():
    state = OrchestratorState(phase="building")
    apply_event(
        state,
        CodeGeneratedEvent(files=[GeneratedFile(path="styles.css", content="body { color: red; }", language="css")]),
    )
    assert state.phase == "complete"
    assert "cdn.tailwindcss.com" in state.generated_project.preview_html
    assert "body { color: red; }" in state.generated_project.preview_html


def test_project_complete_replaces_files_and_keeps_preview():
    state = OrchestratorState(phase="building")
    apply_event(state, FileGeneratedEvent(file=_file("old.html")))
    apply_event(state, PreviewReadyEvent(html="<html>streamed</html>"))
    apply_event(state, ProjectCompleteEvent(files=[_file("index.html")], plan=fallback_plan("a landing page")))

    assert state.phase == "complete"
    assert [f.path for f in state.generated_project.files] == ["index.html"]
    assert state.generated_project.preview_html == "<html>streamed</html>"
    assert state.plan.project_type == "landing"


def test_complete_replaces_project_wholesale():
    state = OrchestratorState(phase="refining")
    apply_event(state, FileGeneratedEvent(file=_file("index.html")))
    project = GeneratedProject(name="Shop", files=[_file("shop.html")], preview_html="<html>shop</html>")
    apply_event(state, CompleteEvent(project=project, summary="Done", agents={}))

    assert state.phase == "complete"
    assert state.generated_project == project
    assert state.summary == "Done"
    assert state.messages[-1].content == "Done"


def test_failed_refine_keeps_current_project():
    state = OrchestratorState(plan=fallback_plan("a landing page"), phase="refining")
    state.generated_project = GeneratedProject(files=[_file("index.html")], preview_html="<html>old</html>")
    failed = AgentInfo(agent_id="frontend", agent_name="Frontend", status="error", status_label="frontend exploded")
    apply_event(state, CompleteEvent(agents={"frontend": failed}, summary="Refinement failed", project=None))

    assert [f.path for f in state.generated_project.files] == ["index.html"]
    assert state.generated_project.preview_html == "<html>old</html>"
    assert state.phase == "complete"
    assert state.agents["frontend"].status == "error"
    assert state.error == "Refinement failed: frontend exploded"
    assert state.messages[-1].content == "Refinement failed: frontend exploded. The previous version was kept."


def test_failed_refine_ignores_an_emptied_project():
    state = OrchestratorState(plan=fallback_plan("a landing page"), phase="refining")
    state.generated_project = GeneratedProject(files=[_file("index.html"), _file("about.html")])
    failed = AgentInfo(agent_id="frontend", agent_name="Frontend", status="error", status_label="timeout")
    apply_event(state, CompleteEvent(agents={"frontend": failed}, project=GeneratedProject(files=[])))

    assert [f.path for f in state.generated_project.files] == ["index.html", "about.html"]
    assert state.error == "Refinement failed: timeout"


def test_error_event_moves_to_error_phase():
    state = OrchestratorState(phase="building")
    apply_event(state, ErrorEvent(message="Langdock API key is invalid."))
    assert state.phase == "error"
    assert state.error == "Langdock API key is invalid."


def test_approve_plan_is_noop_without_plan():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    client = _client(handler)
    client.state.original_message = "Build a shop"
    assert asyncio.run(client.approve_plan()) is False
    assert calls == []
    assert client.state.phase == "idle"


def test_reset_restores_initial_state():
    client = _client(lambda request: httpx.Response(500))
    state = client.state
    state.phase = "complete"
    state.plan = fallback_plan("a landing page")
    state.agents = {"qa": AgentInfo(agent_id="qa", agent_name="QA", status="complete")}
    state.generated_project = GeneratedProject(files=[_file("index.html")])
    state.error = "old"

    notified = []
    client.subscribe(notified.append)
    client.reset()

    assert client.state == OrchestratorState()
    assert client.state.phase == "idle"
    assert client.state.agents == {}
    assert client.state.plan is None
    assert client.state.generated_project is None
    assert len(notified) == 1


def test_request_plan_polls_until_plan_is_ready():
    plan = fallback_plan("Create a modern portfolio website with dark theme")
    snapshots = [
        {"id": "job-1", "prompt": "p", "status": "processing", "progress": 40},
        {"id": "job-1", "prompt": "p", "status": "awaiting_approval", "progress": 100, "plan": plan.to_wire()},
    ]

    def handler(request):
        body = json.loads(request.content)
        if body["action"] == "plan_async":
            assert body["message"] == "Create a modern portfolio website with dark theme"
            return httpx.Response(200, json={"jobId": "job-1"})
        assert body == {"action": "job_status", "jobId": "job-1"}
        return httpx.Response(200, json=snapshots.pop(0))

    client = _client(handler)
    labels = []
    client.subscribe(
        lambda state: labels.append(state.agents["architect"].status_label) if "architect" in state.agents else None
    )
    asyncio.run(client.request_plan("Create a modern portfolio website with dark theme"))

    state = client.state
    assert state.phase == "awaiting_approval"
    assert state.job_id == "job-1"
    assert state.plan.project_name == "Modern Portfolio Website"
    assert state.agents["architect"].status == "complete"
    assert "Planning... 40%" in labels
    assert state.messages[0].role == "user"


def test_request_plan_times_out():
    def handler(request):
        body = json.loads(request.content)
        if body["action"] == "plan_async":
            return httpx.Response(200, json={"jobId": "slow"})
        return httpx.Response(200, json={"id": "slow", "prompt": "p", "status": "processing", "progress": 50})

    client = _client(handler)
    asyncio.run(client.request_plan("Build a slow thing"))
    assert client.state.phase == "error"
    assert client.state.error == "Planning took too long. Please try again."


def test_failed_job_surfaces_error():
    def handler(request):
        body = json.loads(request.content)
        if body["action"] == "plan_async":
            return httpx.Response(200, json={"jobId": "bad"})
        return httpx.Response(
            200, json={"id": "bad", "prompt": "p", "status": "failed", "progress": 100, "error": "LLM down"}
        )

    client = _client(handler)
    asyncio.run(client.request_plan("Build a thing"))
    assert client.state.phase == "error"
    assert client.state.error == "LLM down"
    assert client.state.agents["architect"].status == "error"


def test_http_error_on_submit_sets_error_phase():
    client = _client(lambda request: httpx.Response(503))
    asyncio.run(client.request_plan("Build a thing"))
    assert client.state.phase == "error"
    assert client.state.error == "Orchestrator error: 503"


def test_stream_planning_transport_without_plan_is_an_error():
    def handler(request):
        assert json.loads(request.content)["action"] == "plan"
        return httpx.Response(200, content=_sse(AgentStatusEvent(agent="architect", status="thinking")))

    client = _client(handler, transport_mode="stream")
    asyncio.run(client.request_plan("Build a thing"))
    assert client.state.phase == "error"
    assert client.state.error == "Planning finished without a plan"


def test_build_stream_ending_early_is_an_error():
    def handler(request):
        return httpx.Response(200, content=_sse(FileGeneratedEvent(file=_file("index.html"))))

    client = _client(handler)
    client.state.plan = fallback_plan("a landing page")
    client.state.original_message = "a landing page"
    assert asyncio.run(client.approve_plan()) is True
    assert client.state.phase == "error"
    assert client.state.error == "Build ended before completion"
    assert [f.path for f in client.state.generated_project.files] == ["index.html"]


def test_ask_question_error_does_not_change_phase():
    def handler(request):
        assert json.loads(request.content)["question"] == "Why React?"
        return httpx.Response(200, content=_sse(ErrorEvent(message="Langdock API key is invalid.")))

    client = _client(handler)
    client.state.plan = fallback_plan("Build a recipe site")
    client.state.original_message = "Build a recipe site"
    client.state.phase = "awaiting_approval"

    assert asyncio.run(client.ask_question("Why React?")) is True
    assert client.state.phase == "awaiting_approval"
    assert client.state.error == "Langdock API key is invalid."
    assert client.state.agent_messages[-1].is_error


def test_events_after_reset_are_ignored():
    plan = fallback_plan("a landing page")

    def handler(request):
        return httpx.Response(
            200,
            content=_sse(
                AgentsInitEvent(agents={"frontend": AgentInfo(agent_id="frontend", agent_name="Frontend")}),
                CompleteEvent(project=GeneratedProject(files=[_file("index.html")]), summary="Done"),
            ),
        )

    client = _client(handler)
    client.state.plan = plan
    client.state.original_message = "a landing page"

    def reset_on_first_agents(state):
        if state.agents and state.phase == "building":
            client.reset()

    client.subscribe(reset_on_first_agents)
    asyncio.run(client.approve_plan())

    assert client.state.phase == "idle"
    assert client.state.generated_project is None
    assert client.state.summary is None


def test_load_project_sets_complete():
    client = _client(lambda request: httpx.Response(500))
    project = GeneratedProject(name="Saved", files=[_file("index.html")])
    client.load_project(project)
    assert client.state.phase == "complete"
    assert client.state.generated_project is project


def test_subscribe_returns_unsubscribe():
    client = _client(lambda request: httpx.Response(500))
    seen = []
    unsubscribe = client.subscribe(seen.append)
    client.reset()
    unsubscribe()
    client.reset()
    assert len(seen) == 1
