import asyncio
import enum
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

from db.logs import logger
from schemas.generation import CompleteEvent, ErrorEvent, GenerationRequest, ProgressEvent, StartEvent
from services.sse_client import SSECallbacks, SSEClient


class GenerationPhase(str, enum.Enum):
    idle = "idle"
    generating = "generating"
    succeeded = "succeeded"
    failed = "failed"


@dataclass
class Video:
    id: str
    prompt: str
    status: str = "pending"
    file_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: int = 10
    resolution: str = "1080p"
    aspect_ratio: str = "16:9"
    cost_credits: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class VideoFilter:
    status: Optional[str] = None
    resolution: Optional[str] = None
    sort_by: str = "newest"


@dataclass
class GenerationState:
    phase: GenerationPhase = GenerationPhase.idle
    is_generating: bool = False
    progress: int = 0
    message: str = ""
    error: Optional[str] = None
    credits: Optional[int] = None
    videos: List[Video] = field(default_factory=list)
    current_video: Optional[Video] = None
    filter: VideoFilter = field(default_factory=VideoFilter)


Listener = Callable[[GenerationState], None]


class GenerationStore:
    """Client-side mirror of one generation's event sequence.

    ``idle -> generating -> succeeded|failed -> idle``. Success returns to idle
    after ``reset_delay`` seconds, failure immediately. A second ``start``
    while generating is accepted; callers disable their submit control.
    """

    def __init__(self, *, reset_delay: float = 2.0, credits: Optional[int] = None) -> None:
        self.reset_delay = reset_delay
        self._state = GenerationState(credits=credits)
        self._listeners: List[Listener] = []
        self._request: Optional[GenerationRequest] = None
        self._run_id = 0
        self._reset_handle: Optional[asyncio.TimerHandle] = None

    @property
    def state(self) -> GenerationState:
        return self._state

    @property
    def is_generating(self) -> bool:
        return self._state.is_generating

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, **changes) -> None:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            listener(self._state)

    # generation events

    def begin(self, request: GenerationRequest) -> None:
        self._request = request

    def on_start(self, event: StartEvent) -> None:
        self._cancel_reset()
        self._run_id += 1
        self._set(phase=GenerationPhase.generating, is_generating=True, progress=0,
                  message=event.message, error=None)

    def on_progress(self, event: ProgressEvent) -> None:
        if not self._state.is_generating:
            return
        percent = max(self._state.progress, min(100, max(0, event.percent)))
        self._set(progress=percent, message=event.message or self._state.message)

    def on_complete(self, event: CompleteEvent) -> None:
        videos = self._state.videos
        if event.videoId or event.videoUrl:
            req = self._request
            video = Video(
                id=event.videoId or uuid.uuid4().hex,
                prompt=req.prompt if req else "",
                status="completed",
                file_url=event.videoUrl,
                thumbnail_url=event.thumbnailUrl,
                duration=req.duration if req else 10,
                resolution=req.resolution if req else "1080p",
                aspect_ratio=req.aspectRatio if req else "16:9",
            )
            videos = [video, *videos]

        credits = event.credits if event.credits is not None else self._state.credits
        self._set(phase=GenerationPhase.succeeded, is_generating=False, progress=100,
                  message=event.message or "Generation complete", credits=credits, videos=videos)
        self._schedule_reset(self._run_id)

    def on_error(self, event: ErrorEvent) -> None:
        self._cancel_reset()
        text = event.text
        logger.warning("Generation failed: %s", text)
        self._set(phase=GenerationPhase.failed, is_generating=False, message=text, error=text)
        self._set(phase=GenerationPhase.idle, progress=0)

    def callbacks(self) -> SSECallbacks:
        return SSECallbacks(
            on_start=self.on_start,
            on_progress=self.on_progress,
            on_complete=self.on_complete,
            on_error=self.on_error,
        )

    async def run(self, client: SSEClient, request: GenerationRequest,
                  *, cancel: Optional[asyncio.Event] = None) -> GenerationState:
        self.begin(request)
        await client.generate(request, self.callbacks(), cancel=cancel)
        return self._state

    # auto reset

    def _schedule_reset(self, run_id: int) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._reset_handle = loop.call_later(self.reset_delay, self._auto_reset, run_id)

    def _cancel_reset(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None

    def _auto_reset(self, run_id: int) -> None:
        self._reset_handle = None
        if run_id == self._run_id and self._state.phase == GenerationPhase.succeeded:
            self.reset_generation_state()

    # list actions

    def reset_generation_state(self) -> None:
        self._cancel_reset()
        self._set(phase=GenerationPhase.idle, is_generating=False, progress=0, message="", error=None)

    def set_videos(self, videos: List[Video]) -> None:
        self._set(videos=list(videos))

    def add_video(self, video: Video) -> None:
        self._set(videos=[video, *self._state.videos])

    def update_video(self, video_id: str, **updates) -> None:
        videos = [replace(v, **updates) if v.id == video_id else v for v in self._state.videos]
        current = self._state.current_video
        if current is not None and current.id == video_id:
            current = replace(current, **updates)
        self._set(videos=videos, current_video=current)

    def delete_video(self, video_id: str) -> None:
        current = self._state.current_video
        self._set(
            videos=[v for v in self._state.videos if v.id != video_id],
            current_video=None if current is not None and current.id == video_id else current,
        )

    def set_current_video(self, video: Optional[Video]) -> None:
        self._set(current_video=video)

    def set_filter(self, **changes) -> None:
        self._set(filter=replace(self._state.filter, **changes))

    def reset_filter(self) -> None:
        self._set(filter=VideoFilter())

    def set_credits(self, credits: int) -> None:
        self._set(credits=credits)
