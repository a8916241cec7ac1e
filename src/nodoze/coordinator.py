"""Serialized owner of the keep-awake state.

Every event, whether it comes from the UI, the display observer or the timer,
goes through one queue drained by one task on the event loop, so ``step``
calls never interleave and the commands of one step run before the next
event is looked at.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import AsyncIterator, Callable

from nodoze.adapters.base import AcquisitionError, Cancellable, Clock, PowerAssertion, ScreenObserver, Store
from nodoze.models import (
    AcquireAssertion,
    CancelTimer,
    Command,
    Event,
    KeepMode,
    ModelState,
    ReleaseAssertion,
    ScheduleTimer,
    ScreensSlept,
    ScreensWoke,
    SmartModeToggled,
    Snapshot,
    TimerFired,
)
from nodoze.preferences import SMART_MODE
from nodoze.state_machine import step

logger = logging.getLogger(__name__)

DEFAULT_REASON = "NoDoze KeepAwake"

Observer = Callable[["KeepAwakeCoordinator"], None]

# (event, timer generation); generation is None for events not raised by the timer.
_QueueItem = tuple[Event, int | None]


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class KeepAwakeCoordinator:
    def __init__(
        self,
        assertion: PowerAssertion,
        screens: ScreenObserver,
        clock: Clock,
        store: Store,
        reason: str = DEFAULT_REASON,
    ) -> None:
        self.assertion = assertion
        self.screens = screens
        self.clock = clock
        self.store = store
        self.reason = reason
        self._state = ModelState(smart_enabled=store.get(SMART_MODE))
        self._queue: asyncio.Queue[_QueueItem] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._observers: list[Observer] = []
        self._timer: Cancellable | None = None
        self._timer_generation = 0
        self._active_since: datetime | None = None

    # --- Read-only views ---

    @property
    def mode(self) -> KeepMode:
        return self._state.mode

    @property
    def deadline(self) -> datetime | None:
        return self._state.deadline

    @property
    def is_smart_mode_enabled(self) -> bool:
        return self._state.smart_enabled

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def snapshot(self) -> Snapshot:
        is_active = self.assertion.is_active
        return Snapshot(
            mode=self._state.mode,
            deadline=self._state.deadline,
            is_active=is_active,
            active_since=self._active_since if is_active else None,
            smart_enabled=self._state.smart_enabled,
        )

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Call ``observer`` after every processed event. Returns an unsubscribe function."""
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    # --- Lifecycle ---

    def start(self) -> None:
        """Start processing events. Must be called from the running event loop."""
        if self._tasks:
            return
        self._loop = asyncio.get_running_loop()
        self._tasks = [
            self._loop.create_task(self._consume()),
            self._loop.create_task(self._forward(self.screens.screens_did_sleep(), ScreensSlept())),
            self._loop.create_task(self._forward(self.screens.screens_did_wake(), ScreensWoke())),
        ]

    async def stop(self) -> None:
        """Stop processing, drop any pending timer and release the assertion."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._cancel_timer()
        self.assertion.release()
        self._active_since = None

    async def join(self) -> None:
        """Wait until every event sent so far has been processed."""
        await self._queue.join()

    # --- Events ---

    def send(self, event: Event) -> None:
        """Queue an event for processing. Safe to call from any thread."""
        self._enqueue((event, None))

    def set_smart_mode(self, enabled: bool) -> None:
        """Persist the smart mode preference, then apply it."""
        self.store.set(SMART_MODE, enabled)
        self.send(SmartModeToggled(enabled=enabled))

    def _enqueue(self, item: _QueueItem) -> None:
        loop = self._loop
        if loop is None or _running_loop() is loop:
            self._queue.put_nowait(item)
        else:
            loop.call_soon_threadsafe(self._queue.put_nowait, item)

    async def _forward(self, stream: AsyncIterator[None], event: Event) -> None:
        async for _ in stream:
            self.send(event)

    async def _consume(self) -> None:
        while True:
            event, generation = await self._queue.get()
            try:
                self._process(event, generation)
            except Exception:
                logger.exception("Failed to process %s", event.kind)
            finally:
                self._queue.task_done()

    def _process(self, event: Event, generation: int | None) -> None:
        if generation is not None and generation != self._timer_generation:
            logger.debug("Dropping expiry of a cancelled timer")
            return
        now = self.clock.now()
        self._state, commands = step(
            self._state,
            event,
            displays_all_asleep=self.screens.all_displays_asleep(),
            now=now,
        )
        logger.debug("%s -> %s %s", event.kind, self._state.mode.kind.value, [c.kind for c in commands])
        self._execute(commands, now)
        self._notify()

    # --- Commands ---

    def _execute(self, commands: list[Command], now: datetime) -> None:
        for command in commands:
            if isinstance(command, AcquireAssertion):
                self._acquire(command.until, now)
            elif isinstance(command, ReleaseAssertion):
                self.assertion.release()
                self._active_since = None
            elif isinstance(command, ScheduleTimer):
                self._schedule_timer(command.at, now)
            elif isinstance(command, CancelTimer):
                self._cancel_timer()

    def _acquire(self, until: datetime | None, now: datetime) -> None:
        was_active = self.assertion.is_active
        try:
            self.assertion.acquire(self.reason, until)
        except AcquisitionError as exc:
            logger.warning("Failed to acquire assertion: %s", exc)
            return
        if not was_active and self.assertion.is_active:
            self._active_since = now

    def _schedule_timer(self, at: datetime, now: datetime) -> None:
        self._cancel_timer()
        delay = max(0.0, (at - now).total_seconds())
        generation = self._timer_generation

        def _fire() -> None:
            self._enqueue((TimerFired(), generation))

        self._timer = self.clock.schedule(delay, _fire)

    def _cancel_timer(self) -> None:
        self._timer_generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self) -> None:
        for observer in list(self._observers):
            try:
                observer(self)
            except Exception:
                logger.exception("State observer %r failed", observer)
