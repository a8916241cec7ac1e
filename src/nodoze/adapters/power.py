"""Keep macOS awake by holding a caffeinate child process."""

from __future__ import annotations

import logging
import os
import platform
import shutil
import subprocess
from datetime import datetime

from nodoze.adapters.base import AcquisitionError, PowerAssertion

logger = logging.getLogger(__name__)

_TERMINATE_TIMEOUT = 2.0


class CaffeinateAssertion(PowerAssertion):
    """Power assertion backed by ``caffeinate``.

    The child is started with ``-w <pid>`` so it exits on its own if this
    process dies without releasing. The ``until`` deadline is not passed to
    caffeinate; the coordinator's timer owns expiry.
    """

    def __init__(self, prevent_display_sleep: bool = True) -> None:
        self._flags = ["-i"]  # -i: prevent idle system sleep
        if prevent_display_sleep:
            self._flags.append("-d")  # -d: prevent display sleep
        self._proc: subprocess.Popen[bytes] | None = None

    def acquire(self, reason: str, until: datetime | None = None) -> None:
        if self.is_active:
            return
        if platform.system() != "Darwin" or shutil.which("caffeinate") is None:
            raise AcquisitionError("caffeinate is not available on this host")

        args = ["caffeinate", *self._flags, "-w", str(os.getpid())]
        try:
            self._proc = subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            raise AcquisitionError(f"could not start caffeinate: {exc}") from exc
        logger.info("Assertion acquired (%s), until=%s, pid=%s", reason, until, self._proc.pid)

    def release(self) -> None:
        proc, self._proc = self._proc, None
        if proc is None or proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=_TERMINATE_TIMEOUT)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
        logger.info("Assertion released")

    @property
    def is_active(self) -> bool:
        return self._proc is not None and self._proc.poll() is None
