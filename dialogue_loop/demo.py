"""Demo data for running the loop without a remote store or real recordings."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import numpy as np
import soundfile

from dialogue_loop.store import MemoryQueueStore

SAMPLE_RATE = 16000

DEMO_SPEAKERS: dict[str, str | None] = {
    "Anna": "anna_seat",
    "Boris": "boris_seat",
}

_BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

DEMO_SCENARIOS = [
    {
        "_id": "demo-weather",
        "topic": "The weather",
        "username": "demo",
        "processed": False,
        "unload": True,
        "generation_time": (_BASE_TIME + timedelta(minutes=1)).isoformat(),
        "scenario": [
            {"character": "Anna", "line": "Looks like rain again.", "audio_path": "demo/weather/01.wav"},
            {"character": "Boris", "line": "It always looks like rain.", "audio_path": "demo/weather/02.wav"},
        ],
    },
    {
        "_id": "demo-coffee",
        "topic": "Coffee",
        "processed": False,
        "unload": True,
        "generation_time": _BASE_TIME.isoformat(),
        "scenario": [
            {"character": "Boris", "line": "Second cup already?", "audio_path": "demo\\coffee\\01.wav"},
            {"character": "Anna", "line": "Third. Don't count.", "audio_path": "demo\\coffee\\02.wav"},
        ],
    },
]


def write_silence(path: Path, seconds: float) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    soundfile.write(str(path), np.zeros(int(SAMPLE_RATE * seconds), dtype="float32"), SAMPLE_RATE)


def create_demo_assets(asset_root: Path, seconds: float = 1.5) -> None:
    """Write a silent clip for every cue in the demo scenarios."""
    for doc in DEMO_SCENARIOS:
        for line in doc["scenario"]:
            parts = line["audio_path"].replace("\\", "/").split("/")
            write_silence(asset_root.joinpath(*parts), seconds)
    write_silence(asset_root / "demo" / "outro.wav", seconds)


def create_demo_store() -> MemoryQueueStore:
    return MemoryQueueStore(DEMO_SCENARIOS, read_lag=2)
