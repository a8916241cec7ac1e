"""Tests for the platform adapters (mocked subprocess and platform)."""

from __future__ import annotations

import asyncio
import json
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from nodoze.adapters.base import AcquisitionError
from nodoze.adapters.clock import LoopClock
from nodoze.adapters.display import IORegDisplayObserver, parse_power_state
from nodoze.adapters.power import CaffeinateAssertion
from nodoze.adapters.store import JsonFileStore
from nodoze.preferences import ACTIVATE_ON_LAUNCH, DEFAULT_ACTIVATION_DURATION, SMART_MODE

_IOREG_AWAKE = '''+-o IODisplayWrangler  <class IODisplayWrangler, id 0x1000002a1>
    {
      "IOPowerManagement" = {"CapabilityFlags"=32768,"MaxPowerState"=4,"CurrentPowerState"=4}
      "CurrentPowerState" = 4
    }
'''


# --- JsonFileStore ---


def test_store_returns_defaults_when_missing(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path / "prefs.json")
    assert store.get(SMART_MODE) is True
    assert store.get(DEFAULT_ACTIVATION_DURATION) == 60
    assert store.get(ACTIVATE_ON_LAUNCH) is False


def test_store_persists_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "prefs.json"
    JsonFileStore(path).set(SMART_MODE, False)
    JsonFileStore(path).set(DEFAULT_ACTIVATION_DURATION, 120)

    reopened = JsonFileStore(path)
    assert reopened.get(SMART_MODE) is False
    assert reopened.get(DEFAULT_ACTIVATION_DURATION) == 120
    assert json.loads(path.read_text()) == {"defaultActivationDuration": 120, "smartMode": False}


def test_store_ignores_wrong_types(tmp_path: Path) -> None:
    path = tmp_path / "prefs.json"
    path.write_text(json.dumps({"smartMode": 1, "defaultActivationDuration": True}))
    store = JsonFileStore(path)
    assert store.get(SMART_MODE) is True
    assert store.get(DEFAULT_ACTIVATION_DURATION) == 60


def test_store_survives_corrupt_file(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = tmp_path / "prefs.json"
    path.write_text("{not json")
    store = JsonFileStore(path)
    assert store.get(SMART_MODE) is True
    assert "Could not read preferences" in caplog.text

    store.set(SMART_MODE, False)
    assert store.get(SMART_MODE) is False


# --- CaffeinateAssertion ---


def test_caffeinate_unavailable_off_macos() -> None:
    assertion = CaffeinateAssertion()
    with patch("nodoze.adapters.power.platform.system", return_value="Linux"):
        with pytest.raises(AcquisitionError, match="not available"):
            assertion.acquire("test")
    assert not assertion.is_active


def test_caffeinate_missing_binary() -> None:
    assertion = CaffeinateAssertion()
    with (
        patch("nodoze.adapters.power.platform.system", return_value="Darwin"),
        patch("nodoze.adapters.power.shutil.which", return_value=None),
    ):
        with pytest.raises(AcquisitionError):
            assertion.acquire("test")


def _patched_darwin(proc: MagicMock):
    return (
        patch("nodoze.adapters.power.platform.system", return_value="Darwin"),
        patch("nodoze.adapters.power.shutil.which", return_value="/usr/bin/caffeinate"),
        patch("nodoze.adapters.power.subprocess.Popen", return_value=proc),
    )


def test_caffeinate_acquire_and_release() -> None:
    proc = MagicMock()
    proc.poll.return_value = None
    system, which, popen = _patched_darwin(proc)

    assertion = CaffeinateAssertion()
    with system, which, popen as mock_popen:
        assertion.acquire("test")
        assertion.acquire("again")  # already held

    assert mock_popen.call_count == 1
    args = mock_popen.call_args.args[0]
    assert args[:3] == ["caffeinate", "-i", "-d"]
    assert "-w" in args
    assert assertion.is_active

    assertion.release()
    proc.terminate.assert_called_once()
    assert not assertion.is_active

    assertion.release()  # no-op
    proc.terminate.assert_called_once()


def test_caffeinate_system_sleep_only() -> None:
    proc = MagicMock()
    proc.poll.return_value = None
    system, which, popen = _patched_darwin(proc)

    with system, which, popen as mock_popen:
        CaffeinateAssertion(prevent_display_sleep=False).acquire("test")

    assert "-d" not in mock_popen.call_args.args[0]


def test_caffeinate_kills_stuck_child() -> None:
    proc = MagicMock()
    proc.poll.return_value = None
    proc.wait.side_effect = [subprocess.TimeoutExpired("caffeinate", 2.0), 0]
    system, which, popen = _patched_darwin(proc)

    assertion = CaffeinateAssertion()
    with system, which, popen:
        assertion.acquire("test")
    assertion.release()
    proc.kill.assert_called_once()


def test_caffeinate_spawn_failure() -> None:
    system, which, _ = _patched_darwin(MagicMock())
    with system, which, patch("nodoze.adapters.power.subprocess.Popen", side_effect=OSError("denied")):
        with pytest.raises(AcquisitionError, match="denied"):
            CaffeinateAssertion().acquire("test")


def test_caffeinate_child_exit_reports_inactive() -> None:
    proc = MagicMock()
    proc.poll.return_value = None
    system, which, popen = _patched_darwin(proc)

    assertion = CaffeinateAssertion()
    with system, which, popen:
        assertion.acquire("test")
    proc.poll.return_value = 0
    assert not assertion.is_active


# --- IORegDisplayObserver ---


def test_parse_power_state() -> None:
    assert parse_power_state(_IOREG_AWAKE) == 4
    assert parse_power_state('"CurrentPowerState" = 1') == 1
    assert parse_power_state("") is None


@pytest.mark.asyncio
async def test_display_observer_publishes_transitions() -> None:
    observer = IORegDisplayObserver(poll_interval=3600)
    states = iter([1, 1, 4])
    slept: list[None] = []
    woke: list[None] = []

    async def _collect(stream, into: list[None]) -> None:
        async for item in stream:
            into.append(item)

    async def _fake_read() -> int | None:
        return next(states)

    with patch("nodoze.adapters.display._read_power_state", _fake_read):
        sleep_task = asyncio.create_task(_collect(observer.screens_did_sleep(), slept))
        wake_task = asyncio.create_task(_collect(observer.screens_did_wake(), woke))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        # The first poll (started by the streams) already saw state 1.
        assert observer.all_displays_asleep()
        await observer.refresh()  # still asleep, no new occurrence
        await observer.refresh()  # awake
        await asyncio.sleep(0)

    assert not observer.all_displays_asleep()
    assert len(slept) == 1
    assert len(woke) == 1

    observer.close()
    await asyncio.wait_for(asyncio.gather(sleep_task, wake_task), timeout=1)


@pytest.mark.asyncio
async def test_display_observer_unknown_state_is_awake() -> None:
    observer = IORegDisplayObserver()

    async def _unknown() -> int | None:
        return None

    with patch("nodoze.adapters.display._read_power_state", _unknown):
        await observer.refresh()
    assert not observer.all_displays_asleep()


@pytest.mark.asyncio
async def test_display_observer_dimmed_is_awake() -> None:
    observer = IORegDisplayObserver()
    states = iter([3, 1, 3])

    async def _fake_read() -> int | None:
        return next(states)

    with patch("nodoze.adapters.display._read_power_state", _fake_read):
        await observer.refresh()
        assert not observer.all_displays_asleep()
        await observer.refresh()
        assert observer.all_displays_asleep()
        await observer.refresh()
        assert not observer.all_displays_asleep()


@pytest.mark.asyncio
async def test_display_stream_after_close_ends_immediately() -> None:
    observer = IORegDisplayObserver()
    observer.close()
    items = [item async for item in observer.screens_did_sleep()]
    assert items == []


# --- LoopClock ---


@pytest.mark.asyncio
async def test_loop_clock_schedule_and_cancel() -> None:
    clock = LoopClock()
    assert clock.now().tzinfo is not None

    fired = asyncio.Event()
    cancelled: list[str] = []
    clock.schedule(0, fired.set)
    handle = clock.schedule(0, lambda: cancelled.append("fired"))
    handle.cancel()

    await asyncio.wait_for(fired.wait(), timeout=1)
    await asyncio.sleep(0)
    assert cancelled == []


@pytest.mark.asyncio
async def test_loop_clock_clamps_negative_delay() -> None:
    fired = asyncio.Event()
    LoopClock().schedule(-5, fired.set)
    await asyncio.wait_for(fired.wait(), timeout=1)
