"""HTTP side of the orchestrator client: JSON calls and the SSE event stream."""
from __future__ import annotations

import codecs
import json
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from heftcoder.core.events import DONE_SENTINEL, MalformedEventError, OrchestratorEvent, parse_event
from heftcoder.settings import ClientSettings, get_client_settings
from heftcoder.utils.logging import get_logger
from heftcoder.utils.schemas import PlanningJob

LOGGER = get_logger(__name__)

_DATA_PREFIX = "data: "


class OrchestratorClientError(Exception):
    """Base class for failures talking to the orchestrator endpoint."""


class OrchestratorHTTPError(OrchestratorClientError):
    def __init__(self, status_code: int, detail: Optional[str] = None) -> None:
        super().__init__(f"Orchestrator error: {status_code}")
        self.status_code = status_code
        self.detail = detail


class OrchestratorProtocolError(OrchestratorClientError):
    """The endpoint answered, but not with something we can read."""


class SSEFrameDecoder:
    """Incremental ``data:`` line decoder.

    Bytes may arrive split anywhere, including inside a multi-byte character.
    ``feed`` returns the JSON payloads completed by the chunk; once the ``[DONE]``
    sentinel is seen, ``done`` is set and later input is ignored.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False
        self.malformed_frames = 0

    def feed(self, chunk: bytes) -> List[Dict[str, Any]]:
        if self.done:
            return []
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return self._consume(lines)

    def flush(self) -> List[Dict[str, Any]]:
        if self.done:
            return []
        self._buffer += self._decoder.decode(b"", final=True)
        lines, self._buffer = [self._buffer], ""
        return self._consume(lines)

    def _consume(self, lines: List[str]) -> List[Dict[str, Any]]:
        payloads: List[Dict[str, Any]] = []
        for raw in lines:
            line = raw.rstrip("\r")
            if not line.startswith(_DATA_PREFIX):
                continue
            data = line[len(_DATA_PREFIX):].strip()
            if data == DONE_SENTINEL:
                self.done = True
                break
            try:
                payload = json.loads(data)
            except json.JSONDecodeError:
                self._malformed(data, "not JSON")
                continue
            if not isinstance(payload, dict):
                self._malformed(data, "not an object")
                continue
            if payload.get("type") == DONE_SENTINEL:
                self.done = True
                break
            payloads.append(payload)
        return payloads

    def _malformed(self, data: str, reason: str) -> None:
        self.malformed_frames += 1
        LOGGER.warning("Dropping malformed SSE frame (%s): %.120s", reason, data)


class OrchestratorTransport:
    """Talks to ``/functions/v1/orchestrator`` over an ``httpx.AsyncClient``."""

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or get_client_settings()
        self._client = client
        self._owns_client = client is None
        self.malformed_frames = 0

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.request_timeout_seconds)
        return self._client

    def _headers(self, accept: str = "application/json") -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": accept}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
            headers["X-API-Key"] = self.settings.api_key
        return headers

    async def post_json(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self.client.post(
                self.settings.orchestrator_url, json=payload, headers=self._headers()
            )
        except httpx.HTTPError as exc:
            raise OrchestratorClientError(f"Could not reach orchestrator: {exc}") from exc

        if response.status_code >= 400:
            raise OrchestratorHTTPError(response.status_code, response.text)
        try:
            body = response.json()
        except ValueError as exc:
            raise OrchestratorProtocolError("Orchestrator returned a non-JSON body") from exc
        if not isinstance(body, dict):
            raise OrchestratorProtocolError("Orchestrator returned an unexpected body")
        return body

    async def submit_plan_job(self, message: str) -> str:
        body = await self.post_json({"action": "plan_async", "message": message})
        job_id = body.get("jobId")
        if not job_id:
            raise OrchestratorProtocolError("Orchestrator did not return a jobId")
        return str(job_id)

    async def job_status(self, job_id: str) -> PlanningJob:
        body = await self.post_json({"action": "job_status", "jobId": job_id})
        try:
            return PlanningJob.model_validate(body)
        except ValueError as exc:
            raise OrchestratorProtocolError(f"Invalid job snapshot: {exc}") from exc

    async def stream(self, payload: Dict[str, Any]) -> AsyncIterator[OrchestratorEvent]:
        """POST ``payload`` and yield typed events until ``[DONE]`` or EOF."""
        decoder = SSEFrameDecoder()
        try:
            async with self.client.stream(
                "POST",
                self.settings.orchestrator_url,
                json=payload,
                headers=self._headers("text/event-stream"),
                timeout=httpx.Timeout(self.settings.request_timeout_seconds, read=None),
            ) as response:
                if response.status_code >= 400:
                    detail = (await response.aread()).decode("utf-8", errors="replace")
                    raise OrchestratorHTTPError(response.status_code, detail)

                async for chunk in response.aiter_bytes():
                    for event in self._events(decoder, decoder.feed(chunk)):
                        yield event
                    if decoder.done:
                        break
                else:
                    for event in self._events(decoder, decoder.flush()):
                        yield event
        except httpx.HTTPError as exc:
            raise OrchestratorClientError(f"Orchestrator stream failed: {exc}") from exc
        finally:
            self.malformed_frames += decoder.malformed_frames

    @staticmethod
    def _events(decoder: SSEFrameDecoder, payloads: List[Dict[str, Any]]) -> List[OrchestratorEvent]:
        events: List[OrchestratorEvent] = []
        for payload in payloads:
            try:
                event = parse_event(payload)
            except MalformedEventError as exc:
                decoder.malformed_frames += 1
                LOGGER.warning("Dropping malformed %s event: %s", payload.get("type"), exc)
                continue
            if event is not None:
                events.append(event)
        return events

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
