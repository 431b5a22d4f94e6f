from __future__ import annotations

from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Query, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from heftcoder.core.events import DONE_FRAME, encode_sse
from heftcoder.core.orchestrator import orchestrator
from heftcoder.utils.logging import get_logger
from heftcoder.utils.schemas import OrchestratorRequest, WireModel

router = APIRouter(prefix="/functions/v1", tags=["orchestrator"])
LOGGER = get_logger(__name__)

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_STREAMING_ACTIONS = ("plan", "execute", "question", "refine")
_PLAN_ACTIONS = ("execute", "question", "refine")


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


def _sse_response(events: AsyncIterator[WireModel]) -> StreamingResponse:
    async def _frames() -> AsyncIterator[str]:
        async for event in events:
            yield encode_sse(event)
        yield DONE_FRAME

    return StreamingResponse(_frames(), media_type="text/event-stream", headers=_SSE_HEADERS)


def _validate(request: OrchestratorRequest) -> Optional[str]:
    action = request.action
    if action == "job_status":
        return None if request.job_id else "jobId is required"
    if action == "diag":
        return None
    if not request.message.strip():
        return "Message is required"
    if action in _PLAN_ACTIONS and request.plan is None:
        return "Plan is required"
    if action == "question" and not (request.question or "").strip():
        return "Question is required"
    if action == "refine" and not (request.feedback or "").strip():
        return "Feedback is required"
    return None


@router.post("/orchestrator")
async def run_action(request: Request):
    try:
        body: Dict[str, Any] = await request.json()
    except ValueError:
        return _bad_request("Request body must be JSON")
    if not isinstance(body, dict):
        return _bad_request("Request body must be a JSON object")

    try:
        payload = OrchestratorRequest.model_validate(body)
    except ValidationError as exc:
        errors = exc.errors()
        if any(err["loc"][:1] == ("action",) for err in errors):
            LOGGER.warning("Rejected unknown action %r", body.get("action"))
            return _bad_request("Unknown action")
        LOGGER.warning("Rejected malformed orchestrator request: %s", exc)
        return _bad_request("Invalid request")

    problem = _validate(payload)
    if problem:
        return _bad_request(problem)

    action = payload.action
    LOGGER.info("Orchestrator action %s", action)

    if action == "diag":
        return orchestrator.diagnostics()
    if action == "plan_async":
        job = orchestrator.submit_plan_job(payload.message)
        return {"jobId": job.id}
    if action == "job_status":
        job = orchestrator.job_status(payload.job_id)
        if job is None:
            return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Job not found"})
        return job.to_wire()

    if action == "plan":
        events = orchestrator.stream_plan(payload.message)
    elif action == "execute":
        events = orchestrator.stream_execute(payload.message, payload.plan)
    elif action == "question":
        events = orchestrator.stream_question(payload.message, payload.plan, payload.question)
    else:
        events = orchestrator.stream_refine(
            payload.message, payload.plan, payload.feedback, payload.current_code or ""
        )
    return _sse_response(events)


@router.get("/orchestrator")
async def describe(action: Optional[str] = Query(default=None)) -> dict:
    if action == "diag":
        return orchestrator.diagnostics()
    return {
        "name": "orchestrator",
        "build": orchestrator.settings.build_id,
        "actions": list(_STREAMING_ACTIONS) + ["plan_async", "job_status", "diag"],
    }
