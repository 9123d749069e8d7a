"""Scenario lifecycle pipeline.

One controller runs per scene:
  1. Fetch pending scenarios (processed=false, unload=true) oldest first.
  2. Tick: IDLE with a non-empty cache → play the head scenario.
           IDLE with an empty cache  → poll every 10s for up to 300s.
  3. A played scenario is marked processed, confirmed by read-back, followed
     by the outro and a transition to a random other scene.
  4. A scenario with missing audio is dropped without being marked.
  5. Polling that finds nothing asks the host for a restart.

The supervisor starts a fresh controller in each new scene and stops when a
restart is requested.
"""

from .controller import (  # noqa: F401
    WAITING_MESSAGE,
    ControllerState,
    LoopExit,
    ScenarioController,
)
from .supervisor import LoopStatus, Supervisor  # noqa: F401
