"""Display sleep/wake detection by polling the I/O Registry."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import AsyncIterator

from nodoze.adapters.base import ScreenObserver

logger = logging.getLogger(__name__)

_POWER_STATE_RE = re.compile(r'"CurrentPowerState"\s*=\s*(\d+)')
_DISPLAY_SLEEP_STATE = 1  # IODisplayWrangler: 4 = on, 3 = dimmed, 1 or 0 = asleep


def parse_power_state(output: str) -> int | None:
    """Extract CurrentPowerState from ``ioreg`` output, or None if absent."""
    match = _POWER_STATE_RE.search(output)
    return int(match.group(1)) if match else None


async def _read_power_state() -> int | None:
    try:
        proc = await asyncio.create_subprocess_exec(
            "ioreg", "-n", "IODisplayWrangler", "-r", "-d", "1",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        return None
    stdout, _ = await proc.communicate()
    if proc.returncode != 0:
        return None
    return parse_power_state(stdout.decode())


class IORegDisplayObserver(ScreenObserver):
    """Polls the display power state and fans transitions out to open streams.

    An unknown power state (no ``ioreg``, no IODisplayWrangler) counts as
    awake, so on unsupported hosts the streams stay silent.
    """

    def __init__(self, poll_interval: float = 5.0) -> None:
        self._poll_interval = poll_interval
        self._asleep = False
        self._closed = False
        self._sleep_queues: list[asyncio.Queue[bool]] = []
        self._wake_queues: list[asyncio.Queue[bool]] = []
        self._poll_task: asyncio.Task[None] | None = None

    def screens_did_sleep(self) -> AsyncIterator[None]:
        return self._stream(self._sleep_queues)

    def screens_did_wake(self) -> AsyncIterator[None]:
        return self._stream(self._wake_queues)

    def all_displays_asleep(self) -> bool:
        return self._asleep

    async def refresh(self) -> None:
        """Sample the power state once and publish a transition if it changed."""
        state = await _read_power_state()
        asleep = state is not None and state <= _DISPLAY_SLEEP_STATE
        if asleep == self._asleep:
            return
        self._asleep = asleep
        logger.debug("Displays %s (power state %s)", "asleep" if asleep else "awake", state)
        for queue in self._sleep_queues if asleep else self._wake_queues:
            queue.put_nowait(True)

    def close(self) -> None:
        self._closed = True
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        for queue in [*self._sleep_queues, *self._wake_queues]:
            queue.put_nowait(False)

    async def _stream(self, queues: list[asyncio.Queue[bool]]) -> AsyncIterator[None]:
        if self._closed:
            return
        queue: asyncio.Queue[bool] = asyncio.Queue()
        queues.append(queue)
        self._ensure_polling()
        try:
            while await queue.get():
                yield
        finally:
            queues.remove(queue)

    def _ensure_polling(self) -> None:
        if self._poll_task is None:
            self._poll_task = asyncio.get_running_loop().create_task(self._poll())

    async def _poll(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(self._poll_interval)
