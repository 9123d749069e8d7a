import asyncio
from pathlib import Path

import pytest

from dialogue_loop.assets import AssetLibrary, AudioClip
from dialogue_loop.config import TimingSettings
from dialogue_loop.demo import write_silence
from dialogue_loop.lifecycle import pick_next_scene
from dialogue_loop.pipeline import ScenarioController
from dialogue_loop.stage import SpeakerSlot
from dialogue_loop.store import MemoryQueueStore

CLIP_SECONDS = 0.25


# ---------------------------------------------------------------------------
# Virtual time
# ---------------------------------------------------------------------------

class FakeClock:
    """Sleeping advances virtual time instantly and yields to the loop."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Recording collaborators
# ---------------------------------------------------------------------------

class RecordingText:
    def __init__(self, name: str, events: list) -> None:
        self.name = name
        self.events = events

    async def reveal(self, text: str) -> None:
        self.events.append(("reveal", self.name, text))

    def clear(self) -> None:
        pass


class RecordingAudio:
    def __init__(self, name: str, clock: FakeClock, events: list) -> None:
        self.name = name
        self.clock = clock
        self.events = events

    async def play(self, clip: AudioClip) -> None:
        self.events.append(("audio_start", self.name, clip.path.name))
        await self.clock.sleep(clip.duration)
        self.events.append(("audio_end", self.name, clip.path.name))


class RecordingStage:
    def __init__(self, clock: FakeClock, speakers: tuple[str, ...] = ("Anna", "Boris")) -> None:
        self.events: list[tuple] = []
        self.outro_hook = None
        self._slots = {
            name: SpeakerSlot(
                text=RecordingText(name, self.events),
                audio=RecordingAudio(name, clock, self.events),
                camera_target=f"{name.lower()}_seat",
            )
            for name in speakers
        }

    def slot(self, speaker: str) -> SpeakerSlot | None:
        return self._slots.get(speaker)

    def show_info(self, text: str) -> None:
        self.events.append(("info", text))

    def set_mode(self, mode: str) -> None:
        self.events.append(("mode", mode))

    def focus_camera(self, target: str) -> None:
        self.events.append(("camera", target))

    def clear_dialogue(self) -> None:
        self.events.append(("clear",))

    async def play_outro(self) -> None:
        self.events.append(("outro",))
        if self.outro_hook is not None:
            await self.outro_hook()

    def of(self, kind: str) -> list[tuple]:
        return [e for e in self.events if e[0] == kind]


class RecordingLifecycle:
    def __init__(self, seed: int = 0) -> None:
        import random
        self._rng = random.Random(seed)
        self.transitions: list[tuple[list[str], str, str | None]] = []
        self.restarts = 0

    def request_scene_transition(self, candidates: list[str], current: str) -> str | None:
        chosen = pick_next_scene(candidates, current, self._rng)
        self.transitions.append((list(candidates), current, chosen))
        return chosen

    def request_restart(self) -> None:
        self.restarts += 1


# ---------------------------------------------------------------------------
# Scenario documents
# ---------------------------------------------------------------------------

def scenario_doc(
    scenario_id: str,
    generation_time: str = "2024-01-01T00:00:00Z",
    lines: list[tuple[str, str, str]] | None = None,
    **extra,
) -> dict:
    if lines is None:
        lines = [
            ("Anna", "Hello.", f"{scenario_id}/01.wav"),
            ("Boris", "Hi.", f"{scenario_id}/02.wav"),
        ]
    doc = {
        "_id": scenario_id,
        "topic": f"Topic {scenario_id}",
        "username": "tester",
        "processed": False,
        "unload": True,
        "generation_time": generation_time,
        "scenario": [
            {"character": c, "line": t, "audio_path": a} for c, t, a in lines
        ],
    }
    doc.update(extra)
    return doc


def write_doc_assets(root: Path, doc: dict, skip: set[str] | None = None) -> None:
    for line in doc["scenario"]:
        ref = line.get("audio_path", "")
        if not ref or (skip and ref in skip):
            continue
        write_silence(root.joinpath(*ref.replace("\\", "/").split("/")), CLIP_SECONDS)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stage(clock: FakeClock) -> RecordingStage:
    return RecordingStage(clock)


@pytest.fixture
def lifecycle() -> RecordingLifecycle:
    return RecordingLifecycle()


@pytest.fixture
def asset_root(tmp_path: Path) -> Path:
    root = tmp_path / "audio"
    root.mkdir()
    return root


@pytest.fixture
def assets(asset_root: Path) -> AssetLibrary:
    return AssetLibrary(asset_root)


@pytest.fixture
def make_controller(clock, stage, lifecycle, assets):
    """Build a controller around a store, sharing the recording fakes."""

    def _make(store: MemoryQueueStore, **kwargs) -> ScenarioController:
        kwargs.setdefault("timing", TimingSettings())
        kwargs.setdefault("scenes", ["lounge", "kitchen", "garden"])
        kwargs.setdefault("current_scene", "lounge")
        return ScenarioController(
            store=store,
            assets=assets,
            stage=stage,
            lifecycle=lifecycle,
            clock=clock,
            **kwargs,
        )

    return _make
