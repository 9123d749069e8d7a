"""Supervisor: runs one controller per scene.

A scene transition ends the current controller; the supervisor moves to
the chosen scene and starts a fresh controller there, which fetches the
queue again on start. A restart request ends the supervisor.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from dialogue_loop.assets import AssetLibrary
from dialogue_loop.clock import Clock
from dialogue_loop.config import Settings
from dialogue_loop.lifecycle import LifecycleNotifier
from dialogue_loop.stage import Stage
from dialogue_loop.store import QueueStore

from .controller import ControllerState, LoopExit, ScenarioController

logger = logging.getLogger(__name__)


class LoopStatus(BaseModel):
    state: ControllerState
    scene: str
    cache_size: int
    scenes_loaded: int
    played: int
    skipped: int


class Supervisor:
    def __init__(
        self,
        *,
        settings: Settings,
        store: QueueStore,
        assets: AssetLibrary,
        stage: Stage,
        lifecycle: LifecycleNotifier,
        clock: Clock,
    ) -> None:
        self._settings = settings
        self._store = store
        self._assets = assets
        self._stage = stage
        self._lifecycle = lifecycle
        self._clock = clock

        scenes = settings.scenes
        self.current_scene = settings.initial_scene or (scenes[0] if scenes else "")
        self.controller: ScenarioController | None = None
        self.scenes_loaded = 0
        self.played = 0
        self.skipped = 0

    def _new_controller(self) -> ScenarioController:
        return ScenarioController(
            store=self._store,
            assets=self._assets,
            stage=self._stage,
            lifecycle=self._lifecycle,
            clock=self._clock,
            timing=self._settings.timing,
            scenes=self._settings.scenes,
            current_scene=self.current_scene,
            info_template=self._settings.info_template,
        )

    async def run(self) -> LoopExit:
        while True:
            self.controller = self._new_controller()
            logger.info("Scene %r started", self.current_scene)
            outcome = await self.controller.run()
            if outcome is LoopExit.RESTART:
                logger.info("Supervisor stopping for restart")
                return outcome
            self.played += len(self.controller.played)
            self.skipped += len(self.controller.skipped)
            assert self.controller.next_scene is not None
            self.current_scene = self.controller.next_scene
            self.scenes_loaded += 1

    def status(self) -> LoopStatus:
        controller = self.controller
        return LoopStatus(
            state=controller.state if controller else ControllerState.IDLE,
            scene=self.current_scene,
            cache_size=controller.cache_size if controller else 0,
            scenes_loaded=self.scenes_loaded,
            played=self.played + (len(controller.played) if controller else 0),
            skipped=self.skipped + (len(controller.skipped) if controller else 0),
        )
