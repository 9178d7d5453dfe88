import json
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

AspectRatio = Literal["16:9", "9:16", "1:1", "4:3", "3:4"]
Resolution = Literal["720p", "1080p", "4K"]
Fps = Literal[24, 30, 60]

ASPECT_RATIOS: tuple[str, ...] = ("16:9", "9:16", "1:1", "4:3", "3:4")


class GenerationRequest(BaseModel):
    """Parameters of one user submission, as sent by a client."""

    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(..., min_length=10, max_length=500)
    negativePrompt: Optional[str] = Field(default=None, max_length=500)
    duration: int = Field(default=10, ge=1, le=20)
    resolution: Resolution = "1080p"
    aspectRatio: AspectRatio = "16:9"
    fps: Fps = 24
    model: str = Field(default="sora-2-hd", min_length=1, max_length=64)
    image: Optional[str] = None

    def to_payload(self) -> dict:
        return self.model_dump(exclude_none=True)


class RelayRequest(BaseModel):
    """A request that passed the relay's boundary checks, ready for the backend."""

    prompt: str
    aspectRatio: str
    duration: int
    model: str
    image: Optional[str] = None
    negativePrompt: Optional[str] = None
    resolution: Optional[str] = None
    fps: Optional[int] = None

    def to_payload(self) -> dict:
        return self.model_dump(exclude_none=True)


class _Event(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str = ""


class StartEvent(_Event):
    type: Literal["start"] = "start"


class ProgressEvent(_Event):
    type: Literal["progress"] = "progress"
    percent: int = Field(default=0, ge=0, le=100)


class CompleteEvent(_Event):
    type: Literal["complete"] = "complete"
    videoId: Optional[str] = None
    videoUrl: Optional[str] = None
    thumbnailUrl: Optional[str] = None
    credits: Optional[int] = None


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    error: Optional[str] = None
    code: Optional[int] = None

    @property
    def text(self) -> str:
        return self.message or self.error or "Generation failed"


GenerationEvent = Annotated[
    Union[StartEvent, ProgressEvent, CompleteEvent, ErrorEvent],
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(GenerationEvent)


def error_event(text: str, code: int | None = None) -> ErrorEvent:
    return ErrorEvent(message=text, error=text, code=code)


def encode_event(event: _Event) -> bytes:
    """Frame an event as a single SSE ``data:`` message."""
    body = json.dumps(event.model_dump(exclude_none=True), ensure_ascii=False)
    return f"data: {body}\n\n".encode("utf-8")


def parse_event(data: dict, event_name: str | None = None):
    """Build a GenerationEvent from a decoded payload.

    The ``event:`` field of the SSE frame wins over the payload ``type`` when
    both are present.
    """
    payload = dict(data)
    if event_name:
        payload["type"] = event_name
    if payload.get("type") == "progress":
        raw = payload.get("percent", payload.get("progress", 0))
        try:
            percent = int(round(float(raw)))
        except (TypeError, ValueError):
            percent = 0
        payload["percent"] = max(0, min(100, percent))
    return _event_adapter.validate_python(payload)
