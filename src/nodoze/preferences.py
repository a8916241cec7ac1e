"""Named preferences, duration options and launch activation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Generic, TypeVar

from nodoze.models import DurationOption, KeepMode

T = TypeVar("T")

END_OF_DAY = -1
INDEFINITE = 0


@dataclass(frozen=True)
class Pref(Generic[T]):
    """A preference key together with its declared default."""

    key: str
    default: T


SMART_MODE: Pref[bool] = Pref("smartMode", True)
DEFAULT_ACTIVATION_DURATION: Pref[int] = Pref("defaultActivationDuration", 60)
ACTIVATE_ON_LAUNCH: Pref[bool] = Pref("activateOnLaunch", False)

ALL_PREFS: list[Pref[object]] = [SMART_MODE, DEFAULT_ACTIVATION_DURATION, ACTIVATE_ON_LAUNCH]  # type: ignore[list-item]

DURATION_OPTIONS: list[DurationOption] = [
    DurationOption(name="1 Hour", minutes=60, is_default=True),
    DurationOption(name="2 Hours", minutes=120),
    DurationOption(name="5 Hours", minutes=300),
    DurationOption(name="Until End of Day", menu_name="Until End of Day", minutes=END_OF_DAY),
]


def default_option(options: list[DurationOption] | None = None) -> DurationOption:
    """Return the option flagged default, else the one-hour option, else the first."""
    options = DURATION_OPTIONS if options is None else options
    for option in options:
        if option.is_default:
            return option
    for option in options:
        if option.minutes == 60:
            return option
    return options[0]


def end_of_day(now: datetime) -> datetime:
    """Today at 23:59:00 in ``now``'s timezone."""
    return now.replace(hour=23, minute=59, second=0, microsecond=0)


def mode_for_duration(minutes: int, now: datetime) -> KeepMode:
    """Map a duration in minutes to a keep mode.

    ``0`` (or any other non-positive value) is indefinite, except ``-1``
    which means until the end of the day.
    """
    if minutes == END_OF_DAY:
        return KeepMode.until(end_of_day(now))
    if minutes <= INDEFINITE:
        return KeepMode.indefinitely()
    return KeepMode.until(now + timedelta(minutes=minutes))


def describe_duration(minutes: int) -> str:
    if minutes == END_OF_DAY:
        return "until end of day"
    if minutes <= INDEFINITE:
        return "indefinitely"
    return f"{minutes} min"


def resolve_launch_duration(
    default_duration: int,
    activate_on_launch: bool,
    minutes: int | None = None,
    until_eod: bool = False,
    indefinitely: bool = False,
) -> int:
    """Pick the duration for a new session.

    An explicit choice wins; otherwise ``activateOnLaunch`` means indefinitely,
    and failing that the stored default duration is used.
    """
    if minutes is not None:
        return minutes
    if until_eod:
        return END_OF_DAY
    if indefinitely or activate_on_launch:
        return INDEFINITE
    return default_duration
