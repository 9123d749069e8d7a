"""Lifecycle notifier: scene changes and process restarts.

The controller reports two things to its host:

    request_scene_transition(candidates, current) -> str | None
    request_restart() -> None

SceneDirector is the production implementation. A scene transition picks
uniformly at random among the candidates other than the current scene and
counts it; a restart re-executes the current process in place.
"""

from __future__ import annotations

import logging
import os
import random
import sys
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class LifecycleNotifier(Protocol):
    def request_scene_transition(self, candidates: list[str], current: str) -> str | None: ...

    def request_restart(self) -> None: ...


def pick_next_scene(candidates: list[str], current: str, rng: random.Random) -> str | None:
    """Choose a scene other than `current`, or None if there is none."""
    if not candidates:
        logger.error("Scene list is empty")
        return None
    others = [name for name in candidates if name != current]
    if not others:
        logger.error("No scene to move to besides the current one (%r)", current)
        return None
    return rng.choice(others)


def reexec_process() -> None:
    """Replace the running process with a fresh copy of itself."""
    logging.shutdown()
    os.execv(sys.executable, [sys.executable, *sys.argv])


class SceneDirector:
    """Args:
        rng:     Random source for scene selection. Defaults to a fresh Random.
        restart: Called by request_restart(). Defaults to reexec_process.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        restart: Callable[[], None] = reexec_process,
    ) -> None:
        self._rng = rng or random.Random()
        self._restart = restart
        self.scenes_loaded = 0
        self.restart_requested = False

    def request_scene_transition(self, candidates: list[str], current: str) -> str | None:
        next_scene = pick_next_scene(candidates, current, self._rng)
        if next_scene is not None:
            self.scenes_loaded += 1
            logger.info("Loading scene %r (scene #%d)", next_scene, self.scenes_loaded)
        return next_scene

    def request_restart(self) -> None:
        logger.info("Restarting application")
        self.restart_requested = True
        self._restart()
