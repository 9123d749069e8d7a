"""Audio asset lookup.

Scenario cues reference audio by a path relative to a configured asset
root. References are written by other machines, so both "/" and "\\" are
accepted as separators and re-joined with the local platform's.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

import soundfile
from pydantic import BaseModel, ConfigDict

from dialogue_loop.models import Scenario

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[\\/]+")


class AudioClip(BaseModel):
    """A playable audio file and its length in seconds."""

    model_config = ConfigDict(frozen=True)

    path: Path
    duration: float


class AssetLibrary:
    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, reference: str) -> Path:
        """Join a scenario-relative reference onto the asset root.

        "voices\\anna/01.wav" → {root}/voices/anna/01.wav
        """
        parts = [p for p in _SEPARATORS.split(reference) if p]
        return self._root.joinpath(*parts)

    def exists(self, path: Path) -> bool:
        return path.is_file()

    async def load(self, path: Path) -> AudioClip:
        """Open an audio file and read its duration.

        Raises AssetError if the file is missing or not decodable.
        """
        if not self.exists(path):
            raise AssetError(f"Audio file not found: {path}")
        try:
            info = await asyncio.to_thread(soundfile.info, str(path))
        except RuntimeError as e:
            raise AssetError(f"Cannot decode audio file {path}: {e}") from e
        return AudioClip(path=path, duration=float(info.duration))

    def missing_audio(self, scenario: Scenario) -> list[Path]:
        """Return the resolved path of every cue audio file that is absent."""
        missing: list[Path] = []
        for cue in scenario.cues:
            path = self.resolve(cue.audio)
            if not cue.audio or not self.exists(path):
                logger.error("Missing audio file: %s", path)
                missing.append(path)
        return missing


class AssetError(RuntimeError):
    """Raised when an audio asset cannot be found or loaded."""
