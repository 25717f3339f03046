"""Unit tests for audio.mode – serialized, settled, failure-tolerant mode transitions."""

import asyncio
import time

import pytest
from audio.mode import AudioMode, AudioModeController
from conftest import RecordingBackend


@pytest.mark.unit
@pytest.mark.asyncio
async def test_starts_idle_and_enters_capture(controller, backend):
    assert controller.mode is AudioMode.IDLE
    assert await controller.enter_capture() is AudioMode.CAPTURING
    assert backend.names() == [("apply", "capture")]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_enter_capture_is_idempotent(controller, backend):
    await controller.enter_capture()
    await controller.enter_capture()
    assert backend.names() == [("apply", "capture")]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_enter_playback_is_idempotent(controller, backend):
    await controller.enter_playback()
    await controller.enter_playback()
    assert controller.mode is AudioMode.PLAYING
    assert backend.names() == [("apply", "playback")]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_settle_delay_before_commit():
    backend = RecordingBackend()
    ctl = AudioModeController(backend, capture_settle=0.01, playback_settle=0.1, reset_pause=0.0)
    t0 = time.monotonic()
    await ctl.enter_playback()
    assert time.monotonic() - t0 >= 0.09
    assert ctl.mode is AudioMode.PLAYING


@pytest.mark.unit
@pytest.mark.asyncio
async def test_transitions_serialize():
    """A second transition does not start before the first one's settle delay elapsed."""
    backend = RecordingBackend()
    ctl = AudioModeController(backend, capture_settle=0.1, playback_settle=0.05, reset_pause=0.0)
    observed = []

    async def watch():
        while len(observed) < 200:
            observed.append(ctl.mode)
            await asyncio.sleep(0.002)

    watcher = asyncio.create_task(watch())
    await asyncio.gather(ctl.enter_playback(), ctl.enter_capture(), ctl.reset_hardware())
    watcher.cancel()

    assert backend.names() == [("apply", "playback"), ("apply", "capture"), ("enabled", False), ("enabled", True)]
    stamps = [ts for _, _, ts in backend.calls]
    assert stamps[1] - stamps[0] >= 0.05 * 0.9
    assert stamps[2] - stamps[1] >= 0.1 * 0.9
    assert all(mode in (AudioMode.IDLE, AudioMode.CAPTURING, AudioMode.PLAYING) for mode in observed)
    assert ctl.mode is AudioMode.IDLE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_playback_waits_for_capture_release(controller, backend):
    await controller.enter_capture()
    assert controller.capture_held

    playback = asyncio.create_task(controller.enter_playback())
    await asyncio.sleep(0.1)
    assert not playback.done()
    assert controller.mode is AudioMode.CAPTURING
    assert backend.names() == [("apply", "capture")]

    assert await controller.reset_hardware() is True
    assert not controller.capture_held
    assert await playback is AudioMode.PLAYING
    assert backend.names()[-1] == ("apply", "playback")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_reset_still_releases_capture(controller, backend):
    await controller.enter_capture()
    backend.fail_enable = True
    assert await controller.reset_hardware() is False
    assert not controller.capture_held
    assert await asyncio.wait_for(controller.enter_playback(), 1) is AudioMode.PLAYING


@pytest.mark.unit
@pytest.mark.asyncio
async def test_busy_while_transitioning(controller):
    task = asyncio.create_task(controller.enter_playback())
    await asyncio.sleep(0)
    assert controller.busy
    await task
    assert not controller.busy


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_apply_keeps_last_committed_mode(controller, backend):
    await controller.enter_playback()
    backend.fail_apply = True
    # Non-fatal: no exception, mode unchanged
    assert await controller.enter_capture() is AudioMode.PLAYING
    assert controller.mode is AudioMode.PLAYING
    backend.fail_apply = False
    assert await controller.enter_capture() is AudioMode.CAPTURING


@pytest.mark.unit
@pytest.mark.asyncio
async def test_reset_hardware_then_playback_reapplies(controller, backend):
    await controller.enter_playback()
    await controller.enter_capture()
    assert await controller.reset_hardware() is True
    assert controller.mode is AudioMode.IDLE
    await controller.enter_playback()
    assert backend.names() == [
        ("apply", "playback"),
        ("apply", "capture"),
        ("enabled", False),
        ("enabled", True),
        ("apply", "playback"),
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_reset_hardware_pause_between_disable_and_enable():
    backend = RecordingBackend()
    ctl = AudioModeController(backend, capture_settle=0.0, playback_settle=0.0, reset_pause=0.05)
    await ctl.reset_hardware()
    off, on = backend.calls
    assert on[2] - off[2] >= 0.05 * 0.9


@pytest.mark.unit
@pytest.mark.asyncio
async def test_reset_hardware_failure_is_contained(controller, backend):
    await controller.enter_capture()
    backend.fail_enable = True
    assert await controller.reset_hardware() is False
    assert controller.mode is AudioMode.CAPTURING


@pytest.mark.unit
@pytest.mark.asyncio
async def test_capture_runs_playback_interrupt_first(controller, backend):
    order = []

    async def interrupt():
        order.append(("interrupt", len(backend.calls)))

    controller.set_playback_interrupt(interrupt)
    await controller.enter_playback()
    await controller.enter_capture()
    # Interrupt ran after the playback apply but before the capture apply
    assert order == [("interrupt", 1)]
    assert backend.names()[-1] == ("apply", "capture")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sync_playback_interrupt_supported(controller):
    calls = []
    controller.set_playback_interrupt(lambda: calls.append(1))
    await controller.enter_capture()
    assert calls == [1]
