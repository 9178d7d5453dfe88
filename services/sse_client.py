import asyncio
import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Optional

import httpx
from pydantic import ValidationError

from db.logs import logger
from schemas.generation import (
    CompleteEvent,
    ErrorEvent,
    GenerationRequest,
    ProgressEvent,
    StartEvent,
    error_event,
    parse_event,
)


class GenerationRejected(Exception):
    """The server refused the request (4xx other than 429); retrying will not help."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class GenerationFailed(Exception):
    """The stream could not be opened (5xx, 429 or a non event-stream response)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class SSEMessage:
    data: str
    event: Optional[str] = None
    id: Optional[str] = None


@dataclass
class SSECallbacks:
    on_start: Optional[Callable[[StartEvent], Any]] = None
    on_progress: Optional[Callable[[ProgressEvent], Any]] = None
    on_complete: Optional[Callable[[CompleteEvent], Any]] = None
    on_error: Optional[Callable[[ErrorEvent], Any]] = None
    on_close: Optional[Callable[[], Any]] = None


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[SSEMessage]:
    """Group ``text/event-stream`` lines into messages (dispatch on blank line)."""
    data: list[str] = []
    event: Optional[str] = None
    event_id: Optional[str] = None

    async for line in lines:
        line = line.rstrip("\r\n")
        if not line:
            if data:
                yield SSEMessage(data="\n".join(data), event=event, id=event_id)
            data, event = [], None
            continue
        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data.append(value)
        elif name == "event":
            event = value or None
        elif name == "id":
            event_id = value

    if data:
        yield SSEMessage(data="\n".join(data), event=event, id=event_id)


class SSEClient:
    """Submit a generation to the web tier and dispatch its events to callbacks."""

    def __init__(self, client: httpx.AsyncClient, base_url: str, *, api_key: str) -> None:
        self.client = client
        self.url = f"{base_url.rstrip('/')}/api/generate"
        self.api_key = api_key

    async def generate(
        self,
        request: GenerationRequest,
        callbacks: SSECallbacks,
        *,
        cancel: Optional[asyncio.Event] = None,
    ) -> None:
        headers = {"X-API-Key": self.api_key, "Accept": "text/event-stream"}
        try:
            async with self.client.stream(
                "POST", self.url, json=request.to_payload(), headers=headers, timeout=httpx.Timeout(30.0, read=None)
            ) as resp:
                await self._check_open(resp, callbacks)
                async for msg in iter_sse(resp.aiter_lines()):
                    if cancel is not None and cancel.is_set():
                        logger.info("Generation stream cancelled by caller")
                        break
                    self._dispatch(msg, callbacks)
        finally:
            if callbacks.on_close:
                callbacks.on_close()

    async def _check_open(self, resp: httpx.Response, callbacks: SSECallbacks) -> None:
        content_type = resp.headers.get("content-type", "")
        if resp.is_success and "text/event-stream" in content_type:
            return

        raw = await resp.aread()
        try:
            body = json.loads(raw or b"{}")
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("error") or body.get("message") or "Request failed"

        if 400 <= resp.status_code < 500 and resp.status_code != 429:
            if callbacks.on_error:
                callbacks.on_error(error_event(message, code=resp.status_code))
            raise GenerationRejected(message, resp.status_code)
        raise GenerationFailed(f"Server error: {resp.status_code}", resp.status_code)

    @staticmethod
    def _dispatch(msg: SSEMessage, callbacks: SSECallbacks) -> None:
        try:
            payload = json.loads(msg.data)
            event = parse_event(payload, msg.event)
        except (ValueError, ValidationError) as e:
            logger.error("Failed to parse SSE message: %s", e)
            return

        handler = {
            "start": callbacks.on_start,
            "progress": callbacks.on_progress,
            "complete": callbacks.on_complete,
            "error": callbacks.on_error,
        }.get(event.type)
        if handler:
            handler(event)
