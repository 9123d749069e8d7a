"""Stage collaborators: where dialogue is shown and heard.

The controller and cue player only see the Stage protocol. Speakers map by
exact name to a SpeakerSlot bundling a text sink, an audio sink and a camera
target; a name with no slot is silently ignored.

ConsoleStage is a headless implementation: text is typed out to a stream,
audio "plays" for the clip's duration on the injected clock, and camera and
mode changes are logged. It is enough to run the loop unattended without a
renderer attached.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Literal, Protocol, TextIO

from dialogue_loop.assets import AssetError, AssetLibrary, AudioClip
from dialogue_loop.clock import Clock

logger = logging.getLogger(__name__)

# idle:    between scenarios, background ambience running
# playing: a scenario is on, background paused
# waiting: polling for work, "searching" ambience and pose
StageMode = Literal["idle", "playing", "waiting"]


class TextSink(Protocol):
    async def reveal(self, text: str) -> None: ...

    def clear(self) -> None: ...


class AudioSink(Protocol):
    async def play(self, clip: AudioClip) -> None: ...


@dataclass(frozen=True)
class SpeakerSlot:
    text: TextSink
    audio: AudioSink
    camera_target: str | None = None


class Stage(Protocol):
    def slot(self, speaker: str) -> SpeakerSlot | None: ...

    def show_info(self, text: str) -> None: ...

    def set_mode(self, mode: StageMode) -> None: ...

    def focus_camera(self, target: str) -> None: ...

    def clear_dialogue(self) -> None: ...

    async def play_outro(self) -> None: ...


# ---------------------------------------------------------------------------
# Headless implementations
# ---------------------------------------------------------------------------

class TypewriterText:
    """Types text one character at a time inside a sliding window.

    Once more than `max_visible` characters have been typed, the oldest
    character scrolls off the front.
    """

    def __init__(
        self,
        name: str,
        clock: Clock,
        scroll_speed: float = 0.05,
        max_visible: int = 50,
        stream: TextIO | None = None,
    ) -> None:
        self.name = name
        self.visible = ""
        self._clock = clock
        self._scroll_speed = scroll_speed
        self._max_visible = max_visible
        self._stream = stream

    def _render(self) -> None:
        if self._stream is not None:
            self._stream.write(f"\r{self.name}: {self.visible}")
            self._stream.flush()

    async def reveal(self, text: str) -> None:
        self.visible = ""
        for letter in text:
            self.visible += letter
            if len(self.visible) > self._max_visible:
                self.visible = self.visible[1:]
            self._render()
            await self._clock.sleep(self._scroll_speed)
        if self._stream is not None:
            self._stream.write("\n")

    def clear(self) -> None:
        self.visible = ""


class TimedAudio:
    """Holds the caller for as long as the clip lasts."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self.playing: AudioClip | None = None

    async def play(self, clip: AudioClip) -> None:
        self.playing = clip
        try:
            await self._clock.sleep(clip.duration)
        finally:
            self.playing = None


class ConsoleStage:
    def __init__(
        self,
        speakers: dict[str, str | None],
        clock: Clock,
        assets: AssetLibrary,
        outro_clips: list[str] | None = None,
        scroll_speed: float = 0.05,
        max_visible: int = 50,
        stream: TextIO | None = sys.stdout,
    ) -> None:
        self._clock = clock
        self._assets = assets
        self._outro_clips = list(outro_clips or [])
        self._slots = {
            name: SpeakerSlot(
                text=TypewriterText(name, clock, scroll_speed, max_visible, stream),
                audio=TimedAudio(clock),
                camera_target=target or name,
            )
            for name, target in speakers.items()
        }
        self.info = ""
        self.mode: StageMode = "idle"
        self.camera: str | None = None

    def slot(self, speaker: str) -> SpeakerSlot | None:
        return self._slots.get(speaker)

    def show_info(self, text: str) -> None:
        self.info = text
        if text:
            logger.info("info: %s", text)

    def set_mode(self, mode: StageMode) -> None:
        if mode != self.mode:
            logger.info("stage mode %s -> %s", self.mode, mode)
        self.mode = mode

    def focus_camera(self, target: str) -> None:
        self.camera = target
        logger.debug("camera follows %s", target)

    def clear_dialogue(self) -> None:
        for slot in self._slots.values():
            slot.text.clear()

    async def play_outro(self) -> None:
        """Play every outro clip at once and wait for the longest."""
        clips: list[AudioClip] = []
        for ref in self._outro_clips:
            try:
                clips.append(await self._assets.load(self._assets.resolve(ref)))
            except AssetError as e:
                logger.error("Skipping outro clip: %s", e)
        await asyncio.gather(*(TimedAudio(self._clock).play(c) for c in clips))
