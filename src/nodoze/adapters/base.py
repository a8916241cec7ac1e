"""Abstract base classes for the collaborators the coordinator drives."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncIterator, Callable, Protocol, TypeVar

from nodoze.preferences import Pref

T = TypeVar("T")


class AcquisitionError(Exception):
    """The platform refused or failed to grant the power assertion."""


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class PowerAssertion(ABC):
    """The OS-level "stay awake" lock."""

    @abstractmethod
    def acquire(self, reason: str, until: datetime | None = None) -> None:
        """Take the assertion. A no-op when already held.

        Raises AcquisitionError when the platform rejects the request.
        """

    @abstractmethod
    def release(self) -> None:
        """Drop the assertion. A no-op when not held."""

    @property
    @abstractmethod
    def is_active(self) -> bool: ...


class ScreenObserver(ABC):
    """Source of display sleep/wake occurrences."""

    @abstractmethod
    def screens_did_sleep(self) -> AsyncIterator[None]:
        """Yield once every time the displays go to sleep, until closed."""

    @abstractmethod
    def screens_did_wake(self) -> AsyncIterator[None]:
        """Yield once every time the displays wake, until closed."""

    @abstractmethod
    def all_displays_asleep(self) -> bool: ...

    def close(self) -> None:
        """End every open stream."""


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current timezone-aware time."""

    @abstractmethod
    def schedule(self, after: float, callback: Callable[[], None]) -> Cancellable:
        """Run ``callback`` once on the event loop after ``after`` seconds."""


class Store(ABC):
    """Durable typed preference storage."""

    @abstractmethod
    def get(self, pref: Pref[T]) -> T: ...

    @abstractmethod
    def set(self, pref: Pref[T], value: T) -> None: ...
