"""All Pydantic models and enums for NoDoze."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator, model_validator


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class KeepModeKind(str, Enum):
    OFF = "off"
    UNTIL = "until"
    INDEFINITELY = "indefinitely"


class KeepMode(_Frozen):
    """What the user asked for: off, awake until a deadline, or awake indefinitely."""

    kind: KeepModeKind = KeepModeKind.OFF
    deadline: AwareDatetime | None = None

    @model_validator(mode="after")
    def check_deadline(self) -> KeepMode:
        if (self.kind == KeepModeKind.UNTIL) != (self.deadline is not None):
            raise ValueError("deadline is required for 'until' and forbidden otherwise")
        return self

    @classmethod
    def off(cls) -> KeepMode:
        return cls(kind=KeepModeKind.OFF)

    @classmethod
    def until(cls, deadline: datetime) -> KeepMode:
        return cls(kind=KeepModeKind.UNTIL, deadline=deadline)

    @classmethod
    def indefinitely(cls) -> KeepMode:
        return cls(kind=KeepModeKind.INDEFINITELY)

    @property
    def is_off(self) -> bool:
        return self.kind == KeepModeKind.OFF


# --- Events ---


class UserSelected(_Frozen):
    kind: Literal["user-selected"] = "user-selected"
    mode: KeepMode


class SmartModeToggled(_Frozen):
    kind: Literal["smart-mode-toggled"] = "smart-mode-toggled"
    enabled: bool


class ScreensSlept(_Frozen):
    kind: Literal["screens-slept"] = "screens-slept"


class ScreensWoke(_Frozen):
    kind: Literal["screens-woke"] = "screens-woke"


class TimerFired(_Frozen):
    kind: Literal["timer-fired"] = "timer-fired"


Event = Annotated[
    Union[UserSelected, SmartModeToggled, ScreensSlept, ScreensWoke, TimerFired],
    Field(discriminator="kind"),
]


# --- Commands ---


class AcquireAssertion(_Frozen):
    kind: Literal["acquire-assertion"] = "acquire-assertion"
    until: AwareDatetime | None = None


class ReleaseAssertion(_Frozen):
    kind: Literal["release-assertion"] = "release-assertion"


class ScheduleTimer(_Frozen):
    kind: Literal["schedule-timer"] = "schedule-timer"
    at: AwareDatetime


class CancelTimer(_Frozen):
    kind: Literal["cancel-timer"] = "cancel-timer"


Command = Annotated[
    Union[AcquireAssertion, ReleaseAssertion, ScheduleTimer, CancelTimer],
    Field(discriminator="kind"),
]


class ModelState(_Frozen):
    """State owned by the coordinator and replaced on every step."""

    mode: KeepMode = Field(default_factory=KeepMode.off)
    smart_enabled: bool = True
    deadline: AwareDatetime | None = None

    @model_validator(mode="after")
    def check_deadline_mirrors_mode(self) -> ModelState:
        if self.deadline != self.mode.deadline:
            raise ValueError("deadline must mirror the 'until' payload of mode")
        return self


class Snapshot(_Frozen):
    """Externally observable subset of coordinator state, used for rendering."""

    mode: KeepMode
    deadline: datetime | None = None
    is_active: bool = False
    active_since: datetime | None = None
    smart_enabled: bool = True


class DurationOption(_Frozen):
    name: str
    minutes: int  # 0 = indefinitely, -1 = until end of day
    menu_name: str = ""
    is_default: bool = False

    @property
    def label(self) -> str:
        return self.menu_name or f"For {self.name}"


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _default_store_path() -> Path:
    return Path.home() / ".config" / "nodoze" / "preferences.json"


class NodozeConfig(BaseModel):
    poll_interval: float = Field(default=5.0, gt=0)
    store_path: Path = Field(default_factory=_default_store_path)
    reason: str = "NoDoze KeepAwake"
    log_level: str = "WARNING"
    prevent_display_sleep: bool = True

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {value!r}")
        return level
