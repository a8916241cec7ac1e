"""Deterministic fakes for the coordinator's collaborators."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, AsyncGenerator, Awaitable, Callable, TypeVar

import pytest
import pytest_asyncio

from nodoze.adapters.base import AcquisitionError, Clock, PowerAssertion, ScreenObserver, Store
from nodoze.coordinator import KeepAwakeCoordinator
from nodoze.preferences import Pref

T = TypeVar("T")

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeTimer:
    def __init__(self, due: datetime, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock(Clock):
    """Manual clock; time only moves when ``advance`` is called."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start
        self.timers: list[FakeTimer] = []

    def now(self) -> datetime:
        return self.current

    def schedule(self, after: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.current + timedelta(seconds=after), callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
        for timer in self.pending:
            if timer.due <= self.current:
                timer.fired = True
                timer.callback()


class FakeAssertion(PowerAssertion):
    def __init__(self) -> None:
        self.active = False
        self.fail = False
        self.calls: list[tuple[str, datetime | None]] = []

    def acquire(self, reason: str, until: datetime | None = None) -> None:
        self.calls.append(("acquire", until))
        if self.fail:
            raise AcquisitionError("denied by platform")
        self.active = True

    def release(self) -> None:
        self.calls.append(("release", None))
        self.active = False

    @property
    def is_active(self) -> bool:
        return self.active


class FakeScreens(ScreenObserver):
    def __init__(self) -> None:
        self.asleep = False
        self._sleep: asyncio.Queue[bool] = asyncio.Queue()
        self._wake: asyncio.Queue[bool] = asyncio.Queue()

    async def _stream(self, queue: asyncio.Queue[bool]) -> AsyncIterator[None]:
        while await queue.get():
            yield

    def screens_did_sleep(self) -> AsyncIterator[None]:
        return self._stream(self._sleep)

    def screens_did_wake(self) -> AsyncIterator[None]:
        return self._stream(self._wake)

    def all_displays_asleep(self) -> bool:
        return self.asleep

    def sleep(self) -> None:
        self.asleep = True
        self._sleep.put_nowait(True)

    def wake(self) -> None:
        self.asleep = False
        self._wake.put_nowait(True)

    def close(self) -> None:
        self._sleep.put_nowait(False)
        self._wake.put_nowait(False)


class MemoryStore(Store):
    def __init__(self, values: dict[str, object] | None = None) -> None:
        self.values: dict[str, object] = dict(values or {})

    def get(self, pref: Pref[T]) -> T:
        return self.values.get(pref.key, pref.default)  # type: ignore[return-value]

    def set(self, pref: Pref[T], value: T) -> None:
        self.values[pref.key] = value


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def assertion() -> FakeAssertion:
    return FakeAssertion()


@pytest.fixture
def screens() -> FakeScreens:
    return FakeScreens()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest_asyncio.fixture
async def coordinator(
    assertion: FakeAssertion,
    screens: FakeScreens,
    clock: FakeClock,
    store: MemoryStore,
) -> AsyncGenerator[KeepAwakeCoordinator, None]:
    coord = KeepAwakeCoordinator(assertion=assertion, screens=screens, clock=clock, store=store)
    coord.start()
    yield coord
    await coord.stop()
    screens.close()


@pytest.fixture
def settle() -> Callable[[KeepAwakeCoordinator], Awaitable[None]]:
    """Let forwarded and cross-thread events reach the queue, then drain it."""

    async def _settle(coord: KeepAwakeCoordinator) -> None:
        for _ in range(5):
            await asyncio.sleep(0)
        await coord.join()

    return _settle
