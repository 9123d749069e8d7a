"""Cue player: presents one line of dialogue end-to-end."""

from __future__ import annotations

import asyncio
import logging

from dialogue_loop.assets import AssetError, AssetLibrary
from dialogue_loop.models import Cue
from dialogue_loop.stage import Stage

logger = logging.getLogger(__name__)


class CuePlayer:
    """Plays cues on a stage.

    Text reveal runs as a background task alongside the audio, so a long
    line can still be typing when the clip ends. Only one reveal is live at
    a time; starting a cue cancels the previous one.
    """

    def __init__(self, stage: Stage, assets: AssetLibrary) -> None:
        self._stage = stage
        self._assets = assets
        self._reveals: set[asyncio.Task] = set()

    def _start_reveal(self, coro) -> None:
        self.cancel_all()
        task = asyncio.create_task(coro)
        self._reveals.add(task)
        task.add_done_callback(self._reveal_done)

    def _reveal_done(self, task: asyncio.Task) -> None:
        self._reveals.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Text reveal failed: %r", task.exception())

    async def play(self, cue: Cue) -> bool:
        """Show, focus and voice a cue; return once its audio has finished.

        Returns False when the cue's audio could not be played. Missing audio
        skips the cue, it does not abort the scenario.
        """
        self._stage.clear_dialogue()
        slot = self._stage.slot(cue.speaker)
        if slot is None:
            logger.debug("No stage slot for speaker %r", cue.speaker)
        else:
            self._start_reveal(slot.text.reveal(cue.text))
            if slot.camera_target:
                self._stage.focus_camera(slot.camera_target)

        path = self._assets.resolve(cue.audio)
        try:
            clip = await self._assets.load(path)
        except AssetError as e:
            logger.error("Audio load failed: %s", e)
            return False

        if slot is None:
            return False
        await slot.audio.play(clip)
        return True

    def cancel_all(self) -> None:
        for task in list(self._reveals):
            task.cancel()
