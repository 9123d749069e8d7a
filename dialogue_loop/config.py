"""Loop configuration.

Settings are layered: built-in defaults, then an optional JSON config file,
then environment variables (a .env file next to the project is loaded by the
launcher). Nested groups in the JSON file are merged key-by-key; lists and
scalars are replaced wholesale.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_INFO_TEMPLATE = "User: {{{username}}} | Topic: {{{topic}}}"


class StoreSettings(BaseModel):
    url: str = ""
    api_key: str = ""
    data_source: str = ""
    database: str = "SCENARIO"
    collection: str = "generated_scenario"
    timeout: float = 30.0


class TimingSettings(BaseModel):
    """Every delay the controller waits on, in seconds."""

    tick: float = 0.1
    settle: float = 0.5
    verify: float = 2.0
    cue_gap: float = 0.2
    confirm_interval: float = 0.2
    # None keeps confirming forever; a number escalates to a restart
    confirm_timeout: float | None = None
    poll_interval: float = 10.0
    poll_window: float = 300.0


class Settings(BaseModel):
    store: StoreSettings = Field(default_factory=StoreSettings)
    timing: TimingSettings = Field(default_factory=TimingSettings)
    asset_root: Path = Path("audio")
    scenes: list[str] = Field(default_factory=list)
    initial_scene: str = ""
    speakers: dict[str, str | None] = Field(default_factory=dict)
    outro_clips: list[str] = Field(default_factory=list)
    info_template: str = DEFAULT_INFO_TEMPLATE
    scroll_speed: float = 0.05
    max_visible_characters: int = 50
    status_port: int | None = None
    log_level: str = "INFO"


_CONFIG_DEFAULTS: dict[str, Any] = Settings().model_dump(mode="json")

# env var → (group or None, field)
_ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "STORE_URL": ("store", "url"),
    "STORE_API_KEY": ("store", "api_key"),
    "STORE_DATA_SOURCE": ("store", "data_source"),
    "STORE_DATABASE": ("store", "database"),
    "STORE_COLLECTION": ("store", "collection"),
    "ASSET_ROOT": (None, "asset_root"),
    "INITIAL_SCENE": (None, "initial_scene"),
    "STATUS_PORT": (None, "status_port"),
    "LOG_LEVEL": (None, "log_level"),
}


def _merge(config: dict[str, Any], stored: dict[str, Any]) -> None:
    for key, value in stored.items():
        if key not in config:
            logger.warning("Ignoring unknown config key %r", key)
            continue
        if isinstance(config[key], dict) and isinstance(value, dict) and key != "speakers":
            config[key].update(value)
        else:
            config[key] = value


def load_settings(path: Path | None = None) -> Settings:
    """Read settings, returning defaults merged with file and env values.

    `path` falls back to the CONFIG_FILE environment variable. A missing
    file is not an error; a malformed one is.
    """
    config: dict[str, Any] = json.loads(json.dumps(_CONFIG_DEFAULTS))

    if path is None and os.getenv("CONFIG_FILE"):
        path = Path(os.environ["CONFIG_FILE"])
    if path is not None:
        if path.is_file():
            _merge(config, json.loads(path.read_text()))
        else:
            logger.warning("Config file %s not found, using defaults", path)

    for env_name, (group, field) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is None:
            continue
        target = config[group] if group else config
        target[field] = value

    scenes = os.getenv("SCENES")
    if scenes is not None:
        config["scenes"] = [s.strip() for s in scenes.split(",") if s.strip()]

    return Settings.model_validate(config)
