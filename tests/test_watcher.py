"""Tests for the Watcher state machine and wait_for_change()."""
import os
import threading
import time
from pathlib import Path

import pytest

from infeed.detectors import PollingDetector
from infeed.watcher import Watcher, WatcherState


def _bump_mtime(path: Path) -> None:
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))


class _ManualDetector:
    """Detector whose changes are fired by the test."""

    def __init__(self, start_result=True):
        self.start_result = start_result
        self.on_change = None
        self.started_with = None
        self.stopped = False

    def supports_native(self):
        return True

    def start(self, path, on_change):
        self.started_with = path
        self.on_change = on_change
        return self.start_result

    def stop(self):
        self.stopped = True

    def fire(self):
        self.on_change()


def _manual_watcher(detector=None, **kwargs):
    detector = detector or _ManualDetector()
    watcher = Watcher(native_factory=lambda: detector, quiet=True, **kwargs)
    return watcher, detector


def test_new_watcher_is_idle():
    watcher = Watcher()
    assert watcher.state is WatcherState.IDLE
    assert watcher.is_running is False


def test_stop_from_idle_is_noop():
    watcher = Watcher()
    watcher.stop()
    watcher.stop()
    assert watcher.state is WatcherState.IDLE


def test_wait_on_idle_watcher_returns_false_immediately():
    watcher = Watcher()
    started = time.monotonic()
    assert watcher.wait_for_change() is False
    assert time.monotonic() - started < 0.5


def test_start_uses_native_detector(tmp_path):
    watcher, detector = _manual_watcher()
    watcher.start(tmp_path / "in.txt")
    try:
        assert watcher.state is WatcherState.RUNNING
        assert watcher.mode == "native"
        assert detector.started_with == tmp_path / "in.txt"
    finally:
        watcher.stop()
    assert detector.stopped is True
    assert watcher.state is WatcherState.IDLE
    assert watcher.mode is None


def test_change_is_consumed_once(tmp_path):
    watcher, detector = _manual_watcher()
    watcher.start(tmp_path / "in.txt")
    try:
        detector.fire()
        detector.fire()  # coalesces with the first
        assert watcher.wait_for_change(0.5) is True
        assert watcher.wait_for_change(0.05) is False
    finally:
        watcher.stop()


def test_wait_times_out_without_change(tmp_path):
    watcher, _ = _manual_watcher()
    watcher.start(tmp_path / "in.txt")
    try:
        started = time.monotonic()
        assert watcher.wait_for_change(0.2) is False
        elapsed = time.monotonic() - started
        assert 0.2 <= elapsed < 1.0
    finally:
        watcher.stop()


def test_callback_runs_for_each_change(tmp_path):
    calls = []
    watcher, detector = _manual_watcher()
    watcher.start(tmp_path / "in.txt", callback=lambda: calls.append(True))
    try:
        detector.fire()
        detector.fire()
    finally:
        watcher.stop()
    assert calls == [True, True]


def test_callback_error_does_not_break_notification(tmp_path, capsys):
    def boom():
        raise RuntimeError("bad callback")

    watcher, detector = _manual_watcher()
    watcher.start(tmp_path / "in.txt", callback=boom)
    try:
        detector.fire()
        assert watcher.wait_for_change(0.5) is True
    finally:
        watcher.stop()
    assert "[WARN] Change callback failed: bad callback" in capsys.readouterr().out


def test_stop_wakes_blocked_waiter(tmp_path):
    watcher, _ = _manual_watcher()
    watcher.start(tmp_path / "in.txt")
    result = {}

    def waiter():
        result["value"] = watcher.wait_for_change()

    thread = threading.Thread(target=waiter)
    thread.start()
    time.sleep(0.1)
    watcher.stop()
    thread.join(2.0)

    assert not thread.is_alive()
    assert result["value"] is False


def test_restart_stops_previous_detector(tmp_path):
    detectors = [_ManualDetector(), _ManualDetector()]
    watcher = Watcher(native_factory=lambda: detectors.pop(0), quiet=True)
    first = detectors[0]
    watcher.start(tmp_path / "a.txt")
    watcher.start(tmp_path / "b.txt")
    try:
        assert first.stopped is True
        assert watcher.path == tmp_path / "b.txt"
        assert watcher.is_running
    finally:
        watcher.stop()


def test_falls_back_to_polling_when_native_fails(tmp_path, capsys):
    target = tmp_path / "in.txt"
    target.write_text("", encoding="utf-8")
    watcher = Watcher(native_factory=lambda: _ManualDetector(start_result=False))
    watcher.start(target)
    try:
        assert watcher.mode == "polling"
        target.write_text("3\n", encoding="utf-8")
        _bump_mtime(target)
        assert watcher.wait_for_change(2.0) is True
    finally:
        watcher.stop()
    assert "polling instead" in capsys.readouterr().out


def test_prefer_native_false_goes_straight_to_polling(tmp_path):
    native_calls = []
    watcher = Watcher(
        prefer_native=False,
        native_factory=lambda: native_calls.append(True),
        quiet=True,
    )
    watcher.start(tmp_path / "in.txt")
    try:
        assert watcher.mode == "polling"
        assert native_calls == []
    finally:
        watcher.stop()


@pytest.mark.parametrize("prefer_native", [True, False])
def test_stop_returns_promptly_with_real_detectors(tmp_path, prefer_native):
    target = tmp_path / "in.txt"
    target.write_text("", encoding="utf-8")
    # A long polling interval must not delay stop().
    watcher = Watcher(
        prefer_native=prefer_native,
        polling_factory=lambda: PollingDetector(initial_s=5.0, ceiling_s=5.0),
        quiet=True,
    )
    watcher.start(target)
    waiter = threading.Thread(target=watcher.wait_for_change)
    waiter.start()
    time.sleep(0.1)

    started = time.monotonic()
    watcher.stop()
    assert time.monotonic() - started < 2.0
    waiter.join(2.0)
    assert not waiter.is_alive()


def test_context_manager_stops_watcher(tmp_path):
    watcher, detector = _manual_watcher()
    with watcher:
        watcher.start(tmp_path / "in.txt")
    assert detector.stopped is True
    assert watcher.state is WatcherState.IDLE
