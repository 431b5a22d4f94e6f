import asyncio
import json

import httpx
import pytest

from heftcoder.client.transport import (
    OrchestratorHTTPError,
    OrchestratorProtocolError,
    OrchestratorTransport,
    SSEFrameDecoder,
)
from heftcoder.core.events import AgentStreamEvent, PlanReadyEvent
from heftcoder.settings import ClientSettings

URL = "http://orchestrator.test/functions/v1/orchestrator"


def _frame(payload) -> bytes:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


def _transport(handler) -> OrchestratorTransport:
    settings = ClientSettings(orchestrator_url=URL, api_key="anon-key")
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OrchestratorTransport(settings, client=client)


def test_decoder_handles_multibyte_split_across_chunks():
    raw = _frame({"type": "agent_stream", "agent": "frontend", "output": "héllo ✓"})
    cut = raw.index("✓".encode("utf-8")) + 1
    decoder = SSEFrameDecoder()
    assert decoder.feed(raw[:cut]) == []
    payloads = decoder.feed(raw[cut:])
    assert payloads == [{"type": "agent_stream", "agent": "frontend", "output": "héllo ✓"}]


def test_decoder_stops_at_done_sentinel():
    decoder = SSEFrameDecoder()
    payloads = decoder.feed(_frame({"type": "error", "message": "x"}) + b"data: [DONE]\n\n" + _frame({"type": "late"}))
    assert [p["type"] for p in payloads] == ["error"]
    assert decoder.done
    assert decoder.feed(_frame({"type": "error", "message": "y"})) == []


def test_decoder_accepts_legacy_done_object():
    decoder = SSEFrameDecoder()
    assert decoder.feed(_frame({"type": "[DONE]"})) == []
    assert decoder.done


def test_decoder_counts_malformed_frames_and_ignores_comments():
    decoder = SSEFrameDecoder()
    payloads = decoder.feed(b": keepalive\n\ndata: {not json}\n\nevent: ping\ndata: [1, 2]\n\n" + _frame({"type": "x"}))
    assert payloads == [{"type": "x"}]
    assert decoder.malformed_frames == 2


def test_decoder_flush_reads_unterminated_last_line():
    decoder = SSEFrameDecoder()
    assert decoder.feed(b'data: {"type": "error", "message": "tail"}') == []
    assert decoder.flush() == [{"type": "error", "message": "tail"}]


def test_stream_yields_typed_events_and_skips_unknown_and_invalid():
    plan = {"projectName": "Site", "projectType": "landing", "steps": []}
    body = (
        _frame({"type": "agent_stream", "agent": "architect", "output": "{"})
        + _frame({"type": "telemetry", "value": 1})
        + _frame({"type": "agent_status", "agent": "architect", "status": "sleeping"})
        + _frame({"type": "plan_created", "plan": plan})
        + b"data: [DONE]\n\n"
    )
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})

    async def inner():
        transport = _transport(handler)
        events = [event async for event in transport.stream({"action": "plan", "message": "site"})]
        await transport.client.aclose()
        return transport, events

    transport, events = asyncio.run(inner())
    assert [type(e) for e in events] == [AgentStreamEvent, PlanReadyEvent]
    assert events[1].type == "plan_ready"
    assert transport.malformed_frames == 1
    assert seen["body"] == {"action": "plan", "message": "site"}
    assert seen["headers"]["Authorization"] == "Bearer anon-key"
    assert seen["headers"]["Accept"] == "text/event-stream"


def test_stream_raises_on_http_error():
    def handler(request):
        return httpx.Response(502, text="bad gateway")

    async def inner():
        transport = _transport(handler)
        with pytest.raises(OrchestratorHTTPError) as excinfo:
            async for _ in transport.stream({"action": "execute"}):
                pass
        return excinfo.value

    error = asyncio.run(inner())
    assert error.status_code == 502
    assert str(error) == "Orchestrator error: 502"


def test_post_json_rejects_non_json_body():
    def handler(request):
        return httpx.Response(200, text="<html>oops</html>")

    async def inner():
        with pytest.raises(OrchestratorProtocolError):
            await _transport(handler).post_json({"action": "plan_async", "message": "x"})

    asyncio.run(inner())


def test_job_status_parses_snapshot():
    def handler(request):
        assert json.loads(request.content) == {"action": "job_status", "jobId": "job-7"}
        return httpx.Response(
            200,
            json={
                "id": "job-7",
                "prompt": "quiz app",
                "status": "clarifying",
                "progress": 100,
                "clarifying_questions": [{"id": "q1", "question": "Who plays?"}],
            },
        )

    async def inner():
        return await _transport(handler).job_status("job-7")

    job = asyncio.run(inner())
    assert job.is_terminal
    assert job.clarifying_questions[0].question == "Who plays?"
