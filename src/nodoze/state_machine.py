"""Pure keep-awake state machine: (state, event) -> (next state, commands)."""

from __future__ import annotations

from datetime import datetime

from nodoze.models import (
    AcquireAssertion,
    CancelTimer,
    Command,
    Event,
    KeepModeKind,
    ModelState,
    ReleaseAssertion,
    ScheduleTimer,
    ScreensSlept,
    ScreensWoke,
    SmartModeToggled,
    TimerFired,
    UserSelected,
)


def step(
    state: ModelState,
    event: Event,
    *,
    displays_all_asleep: bool,
    now: datetime,
) -> tuple[ModelState, list[Command]]:
    """Compute the next state and the ordered commands for one event.

    Has no side effects. Release/cancel commands are emitted even when the
    state is already off; collaborators treat redundant calls as no-ops.
    """
    if isinstance(event, UserSelected):
        mode = event.mode
        next_state = ModelState(
            mode=mode,
            smart_enabled=state.smart_enabled,
            deadline=mode.deadline,
        )
        if mode.kind == KeepModeKind.OFF:
            return next_state, [ReleaseAssertion(), CancelTimer()]
        if mode.kind == KeepModeKind.UNTIL:
            assert mode.deadline is not None
            return next_state, [
                AcquireAssertion(until=mode.deadline),
                ScheduleTimer(at=mode.deadline),
            ]
        return next_state, [AcquireAssertion(until=None), CancelTimer()]

    if isinstance(event, SmartModeToggled):
        next_state = ModelState(
            mode=state.mode,
            smart_enabled=event.enabled,
            deadline=state.deadline,
        )
        return next_state, []

    if isinstance(event, ScreensSlept):
        # The timer keeps running while asleep.
        if state.smart_enabled and displays_all_asleep and not state.mode.is_off:
            return state, [ReleaseAssertion()]
        return state, []

    if isinstance(event, ScreensWoke):
        # A deadline that passed during sleep is left for TimerFired to clean up.
        if state.mode.kind == KeepModeKind.UNTIL:
            deadline = state.mode.deadline
            assert deadline is not None
            if now < deadline:
                return state, [AcquireAssertion(until=deadline)]
            return state, []
        if state.mode.kind == KeepModeKind.INDEFINITELY:
            return state, [AcquireAssertion(until=None)]
        return state, []

    if isinstance(event, TimerFired):
        next_state = ModelState(smart_enabled=state.smart_enabled)
        return next_state, [ReleaseAssertion(), CancelTimer()]

    raise TypeError(f"Unknown event: {event!r}")
