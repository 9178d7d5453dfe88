import asyncio

from schemas.generation import CompleteEvent, GenerationRequest, ProgressEvent, StartEvent, error_event
from services.generation_store import GenerationPhase, GenerationStore, Video


def request() -> GenerationRequest:
    return GenerationRequest(prompt="A lighthouse in a storm, cinematic", duration=5, aspectRatio="9:16")


def test_start_progress_complete_sequence():
    store = GenerationStore(credits=100)
    seen = []
    store.subscribe(lambda s: seen.append((s.phase, s.progress)))
    store.begin(request())

    store.on_start(StartEvent(message="started"))
    assert store.is_generating
    assert store.state.phase == GenerationPhase.generating

    store.on_progress(ProgressEvent(percent=40, message="rendering"))
    store.on_progress(ProgressEvent(percent=25))
    assert store.state.progress == 40

    store.on_complete(CompleteEvent(videoId="vid-1", videoUrl="https://cdn.test/v.mp4", credits=90))

    state = store.state
    assert state.phase == GenerationPhase.succeeded
    assert not state.is_generating
    assert state.progress == 100
    assert state.credits == 90
    assert state.videos[0].id == "vid-1"
    assert state.videos[0].aspect_ratio == "9:16"
    assert state.videos[0].duration == 5

    progress = [p for _, p in seen]
    assert progress == sorted(progress)


def test_progress_ignored_when_not_generating():
    store = GenerationStore()

    store.on_progress(ProgressEvent(percent=70))

    assert store.state.progress == 0
    assert store.state.phase == GenerationPhase.idle


def test_error_returns_to_idle_and_keeps_message():
    store = GenerationStore()
    phases = []
    store.subscribe(lambda s: phases.append(s.phase))

    store.on_start(StartEvent())
    store.on_error(error_event("Insufficient credits", code=402))

    assert phases[-2:] == [GenerationPhase.failed, GenerationPhase.idle]
    assert not store.is_generating
    assert store.state.error == "Insufficient credits"


def test_complete_without_video_keeps_list():
    store = GenerationStore(credits=50)
    store.on_start(StartEvent())

    store.on_complete(CompleteEvent(message="done"))

    assert store.state.videos == []
    assert store.state.credits == 50


async def test_success_resets_to_idle_after_delay():
    store = GenerationStore(reset_delay=0.01)
    store.on_start(StartEvent())
    store.on_complete(CompleteEvent(videoId="v"))

    await asyncio.sleep(0.05)

    assert store.state.phase == GenerationPhase.idle
    assert store.state.progress == 0
    assert store.state.videos[0].id == "v"


async def test_new_start_cancels_pending_reset():
    store = GenerationStore(reset_delay=0.01)
    store.on_start(StartEvent())
    store.on_complete(CompleteEvent(videoId="v"))
    store.on_start(StartEvent())
    store.on_progress(ProgressEvent(percent=30))

    await asyncio.sleep(0.05)

    assert store.state.phase == GenerationPhase.generating
    assert store.state.progress == 30


def test_unsubscribe_stops_notifications():
    store = GenerationStore()
    seen = []
    unsubscribe = store.subscribe(seen.append)

    store.set_credits(10)
    unsubscribe()
    store.set_credits(20)

    assert len(seen) == 1


def test_list_actions():
    store = GenerationStore()
    a, b = Video(id="a", prompt="first prompt"), Video(id="b", prompt="second prompt")

    store.set_videos([a])
    store.add_video(b)
    assert [v.id for v in store.state.videos] == ["b", "a"]

    store.set_current_video(a)
    store.update_video("a", status="completed")
    assert store.state.current_video.status == "completed"
    assert store.state.videos[1].status == "completed"

    store.delete_video("a")
    assert [v.id for v in store.state.videos] == ["b"]
    assert store.state.current_video is None

    store.set_filter(status="completed", sort_by="oldest")
    assert store.state.filter.sort_by == "oldest"
    store.reset_filter()
    assert store.state.filter.status is None
