"""Core domain models.

Scenario documents arrive from the remote queue as loosely-typed JSON.
Pydantic validates them at the store boundary; absent or wrong-typed fields
are replaced with defaults instead of rejecting the document, so one sloppy
scenario never blocks the queue.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

logger = logging.getLogger(__name__)

UNKNOWN_TOPIC = "Unknown Topic"
ANONYMOUS = "Anonymous"
UNKNOWN_CHARACTER = "Unknown Character"

_CUE_DEFAULTS = {"speaker": UNKNOWN_CHARACTER, "text": "", "audio": ""}
_SCENARIO_DEFAULTS = {"topic": UNKNOWN_TOPIC, "username": ANONYMOUS}

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


class Cue(BaseModel):
    """One line of dialogue: who speaks, what is shown, what is heard."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    speaker: str = Field(default=UNKNOWN_CHARACTER, alias="character")
    text: str = Field(default="", alias="line")
    audio: str = Field(default="", alias="audio_path")

    @field_validator("speaker", "text", "audio", mode="before")
    @classmethod
    def _string_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        return value if isinstance(value, str) else _CUE_DEFAULTS[info.field_name]


class Scenario(BaseModel):
    """A queued dialogue sequence plus its processing metadata.

    Two scenarios are equal when their ids match; the rest of the document
    is ignored for equality and hashing.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="_id")
    topic: str = UNKNOWN_TOPIC
    username: str = ANONYMOUS
    processed: bool = False
    unload: bool = False
    generation_time: datetime | None = None
    cues: tuple[Cue, ...] = Field(default=(), alias="scenario")

    @field_validator("id", mode="before")
    @classmethod
    def _extended_json_id(cls, value: Any) -> Any:
        # {"$oid": "..."} is how ObjectIds come back from a JSON data API
        if isinstance(value, dict) and "$oid" in value:
            return str(value["$oid"])
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("topic", "username", mode="before")
    @classmethod
    def _string_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        return value if isinstance(value, str) else _SCENARIO_DEFAULTS[info.field_name]

    @field_validator("processed", "unload", mode="before")
    @classmethod
    def _strict_flag(cls, value: Any) -> bool:
        return value if isinstance(value, bool) else False

    @field_validator("generation_time", mode="before")
    @classmethod
    def _parse_generation_time(cls, value: Any) -> datetime | None:
        if isinstance(value, dict) and "$date" in value:
            value = value["$date"]
            if isinstance(value, dict) and "$numberLong" in value:
                try:
                    value = int(value["$numberLong"]) / 1000
                except (TypeError, ValueError, OverflowError):
                    logger.warning("Unparseable generation_time %r, sorting first", value)
                    return None
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            try:
                return datetime.fromtimestamp(value, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                logger.warning("Out-of-range generation_time %r, sorting first", value)
                return None
        if isinstance(value, datetime):
            return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        if isinstance(value, str):
            try:
                parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                logger.warning("Unparseable generation_time %r, sorting first", value)
                return None
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        return None

    @field_validator("cues", mode="before")
    @classmethod
    def _dialogue_lines(cls, value: Any) -> tuple:
        if not isinstance(value, (list, tuple)):
            logger.error("Scenario document does not contain a valid 'scenario' array")
            return ()
        return tuple(line for line in value if isinstance(line, (dict, Cue)))

    @property
    def sort_key(self) -> datetime:
        return self.generation_time or _EARLIEST

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Scenario):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


def order_scenarios(scenarios: list[Scenario]) -> list[Scenario]:
    """Sort ascending by generation time and drop repeated ids (first wins)."""
    seen: set[str] = set()
    unique: list[Scenario] = []
    for s in scenarios:
        if s.id in seen:
            continue
        seen.add(s.id)
        unique.append(s)
    return sorted(unique, key=lambda s: s.sort_key)
