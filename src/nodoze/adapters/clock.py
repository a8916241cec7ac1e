"""Wall clock backed by the running asyncio loop."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable

from nodoze.adapters.base import Cancellable, Clock


class LoopClock(Clock):
    def now(self) -> datetime:
        return datetime.now().astimezone()

    def schedule(self, after: float, callback: Callable[[], None]) -> Cancellable:
        loop = asyncio.get_running_loop()
        return loop.call_later(max(0.0, after), callback)
