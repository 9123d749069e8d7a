"""Scenario controller: the single-flight loop that consumes the queue.

States:
  IDLE        nothing in hand, not polling
  PROCESSING  one scenario is being played
  POLLING     cache empty, re-querying the store on a timer
  STOPPED     a scene transition or restart has been requested; terminal

Each tick from IDLE either dequeues the head of the cache and plays it, or,
with an empty cache, enters the polling phase. The tick awaits that work to
completion, and a tick outside IDLE does nothing, so two scenarios can never
overlap.

Scenario flow:
  1. settle delay, then show the info line for the scenario
  2. verify delay, then check every cue's audio exists (abort if not)
  3. play cues in order, with a short gap after each
  4. mark processed, then read back until the store confirms it
  5. outro, then request the next scene
"""

from __future__ import annotations

import logging
from enum import Enum

from dialogue_loop.assets import AssetLibrary
from dialogue_loop.clock import Clock
from dialogue_loop.config import DEFAULT_INFO_TEMPLATE, TimingSettings
from dialogue_loop.lifecycle import LifecycleNotifier
from dialogue_loop.models import Scenario, order_scenarios
from dialogue_loop.player import CuePlayer
from dialogue_loop.stage import Stage
from dialogue_loop.store import QueueStore, StoreError
from dialogue_loop.templates import TemplateError, render_template, scenario_context

logger = logging.getLogger(__name__)

WAITING_MESSAGE = "Waiting for scenario..."


class ControllerState(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    POLLING = "polling"
    STOPPED = "stopped"


class LoopExit(str, Enum):
    TRANSITION = "transition"
    RESTART = "restart"


_ALLOWED: dict[ControllerState, set[ControllerState]] = {
    ControllerState.IDLE: {ControllerState.PROCESSING, ControllerState.POLLING},
    ControllerState.PROCESSING: {ControllerState.IDLE, ControllerState.STOPPED},
    ControllerState.POLLING: {ControllerState.IDLE, ControllerState.STOPPED},
    ControllerState.STOPPED: set(),
}


class ScenarioController:
    def __init__(
        self,
        *,
        store: QueueStore,
        assets: AssetLibrary,
        stage: Stage,
        lifecycle: LifecycleNotifier,
        clock: Clock,
        timing: TimingSettings | None = None,
        scenes: list[str] | None = None,
        current_scene: str = "",
        info_template: str = DEFAULT_INFO_TEMPLATE,
    ) -> None:
        self._store = store
        self._assets = assets
        self._stage = stage
        self._lifecycle = lifecycle
        self._clock = clock
        self._timing = timing or TimingSettings()
        self._scenes = list(scenes or [])
        self._info_template = info_template
        self._player = CuePlayer(stage, assets)
        self._cache: list[Scenario] = []
        self._state = ControllerState.IDLE

        self.current_scene = current_scene
        self.next_scene: str | None = None
        self.exit: LoopExit | None = None
        self.played: list[str] = []
        self.skipped: list[str] = []

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def _enter(self, state: ControllerState) -> None:
        if state not in _ALLOWED[self._state]:
            raise RuntimeError(
                f"Illegal controller transition {self._state.value} -> {state.value}"
            )
        logger.debug("controller %s -> %s", self._state.value, state.value)
        self._state = state

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run(self) -> LoopExit:
        """Fetch once, then tick until a transition or restart is requested."""
        await self.fetch()
        while self._state is not ControllerState.STOPPED:
            await self.tick()
            if self._state is not ControllerState.STOPPED:
                await self._clock.sleep(self._timing.tick)
        assert self.exit is not None
        return self.exit

    async def tick(self) -> None:
        if self._state is not ControllerState.IDLE:
            return
        if self._cache:
            await self._process_next()
        else:
            await self._poll()

    async def fetch(self) -> list[Scenario]:
        """Replace the cache with the store's current pending scenarios."""
        try:
            scenarios = await self._store.fetch_pending()
        except StoreError as e:
            logger.error("Failed to load scenarios from queue store: %s", e)
            scenarios = []
        self._cache = order_scenarios(list(scenarios))
        return self._cache

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def _process_next(self) -> None:
        self._enter(ControllerState.PROCESSING)
        scenario = self._cache.pop(0)
        logger.info("Processing scenario id=%s topic=%r", scenario.id, scenario.topic)

        await self._play_scenario(scenario)

        if self._state is ControllerState.PROCESSING:
            self._enter(ControllerState.IDLE)

    async def _play_scenario(self, scenario: Scenario) -> None:
        await self._clock.sleep(self._timing.settle)
        self._stage.clear_dialogue()
        self._stage.show_info(self._info_line(scenario))

        await self._clock.sleep(self._timing.verify)
        if self._assets.missing_audio(scenario):
            logger.error(
                "One or more audio files for scenario with topic %r are missing",
                scenario.topic,
            )
            self.skipped.append(scenario.id)
            return

        await self._play_cues(scenario)

        if not await self._mark_and_confirm(scenario.id):
            return
        self.played.append(scenario.id)

        await self._stage.play_outro()
        self._request_transition()

    def _info_line(self, scenario: Scenario) -> str:
        try:
            return render_template(self._info_template, scenario_context(scenario))
        except TemplateError as e:
            logger.warning("Info template failed, using plain format: %s", e)
            return f"User: {scenario.username} | Topic: {scenario.topic}"

    async def _play_cues(self, scenario: Scenario) -> None:
        self._stage.set_mode("playing")
        for cue in scenario.cues:
            await self._player.play(cue)
            await self._clock.sleep(self._timing.cue_gap)
        self._stage.clear_dialogue()
        self._stage.set_mode("idle")

    async def _mark_and_confirm(self, scenario_id: str) -> bool:
        """Write processed=true, then read it back until the store agrees.

        A failed write or read is retried on the next interval. Returns False
        only when confirm_timeout is set and runs out, in which case a
        restart has been requested.
        """
        timeout = self._timing.confirm_timeout
        started = self._clock.monotonic()
        marked = False
        while True:
            if not marked:
                try:
                    await self._store.mark_processed(scenario_id)
                    marked = True
                except StoreError as e:
                    logger.warning("Marking %s processed failed, will retry: %s", scenario_id, e)
            if marked:
                try:
                    if await self._store.is_processed(scenario_id):
                        logger.info("Scenario %s confirmed processed", scenario_id)
                        return True
                except StoreError as e:
                    logger.warning("Reading back %s failed, will retry: %s", scenario_id, e)

            if timeout is not None and self._clock.monotonic() - started >= timeout:
                logger.error(
                    "Store did not confirm scenario %s as processed within %ss",
                    scenario_id, timeout,
                )
                self._restart()
                return False
            await self._clock.sleep(self._timing.confirm_interval)

    def _request_transition(self) -> None:
        next_scene = self._lifecycle.request_scene_transition(self._scenes, self.current_scene)
        if next_scene is None:
            logger.error("No scene to transition to, staying in %r", self.current_scene)
            return
        self._player.cancel_all()
        self.next_scene = next_scene
        self.exit = LoopExit.TRANSITION
        self._enter(ControllerState.STOPPED)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _poll(self) -> None:
        self._enter(ControllerState.POLLING)
        logger.info("Checking for new scenarios...")
        self._stage.show_info(WAITING_MESSAGE)
        self._stage.set_mode("waiting")

        started = self._clock.monotonic()
        while self._clock.monotonic() - started < self._timing.poll_window:
            await self._clock.sleep(self._timing.poll_interval)
            if await self.fetch():
                logger.info("New scenarios found (%d), resuming", len(self._cache))
                self._stage.set_mode("idle")
                self._stage.show_info("")
                self._enter(ControllerState.IDLE)
                return

        logger.info("Wait time elapsed after %ss. Restarting...", self._timing.poll_window)
        self._restart()

    def _restart(self) -> None:
        self._player.cancel_all()
        self.exit = LoopExit.RESTART
        self._enter(ControllerState.STOPPED)
        self._lifecycle.request_restart()
