"""Background file watcher with a blocking wait-for-change operation."""
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from .detectors import ChangeDetector, NativeDetector, PollingDetector


class WatcherState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class Watcher:
    """Watches one file and wakes threads blocked in wait_for_change().

    Native OS notification is tried first; if it cannot be set up the watcher
    silently switches to adaptive polling. Events are at-least-once: several
    writes may collapse into one wake-up, so callers must re-read the file.
    """

    def __init__(
        self,
        prefer_native: bool = True,
        native_factory: Callable[[], ChangeDetector] = NativeDetector,
        polling_factory: Callable[[], ChangeDetector] = PollingDetector,
        quiet: bool = False,
    ):
        self.prefer_native = prefer_native
        self._native_factory = native_factory
        self._polling_factory = polling_factory
        self.quiet = quiet
        self._cond = threading.Condition()
        self._lifecycle_lock = threading.Lock()  # serializes start/stop
        self._state = WatcherState.IDLE
        self._pending = False
        self._detector: Optional[ChangeDetector] = None
        self._callback: Optional[Callable[[], None]] = None
        self.path: Optional[Path] = None
        self.mode: Optional[str] = None

    @property
    def state(self) -> WatcherState:
        with self._cond:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state is WatcherState.RUNNING

    def start(self, path, callback: Optional[Callable[[], None]] = None) -> None:
        """Start watching path, stopping any watch already in progress first."""
        with self._lifecycle_lock:
            self._stop_locked()
            with self._cond:
                self._state = WatcherState.STARTING
                self._pending = False
            self.path = Path(path)
            self._callback = callback

            detector, mode = self._open_detector(self.path)
            with self._cond:
                self._detector = detector
                self.mode = mode
                self._state = WatcherState.RUNNING
                self._cond.notify_all()

    def _open_detector(self, path: Path):
        if self.prefer_native:
            native = self._native_factory()
            if native.start(path, self._on_detected):
                return native, "native"
            if not self.quiet:
                print(f"[INFO] Native change notification unavailable for {path}, polling instead")

        polling = self._polling_factory()
        polling.start(path, self._on_detected)
        return polling, "polling"

    def _on_detected(self) -> None:
        """Runs on the detector's thread for every change it reports."""
        callback = self._callback
        if callback is not None:
            try:
                callback()
            except Exception as e:
                print(f"[WARN] Change callback failed: {e}")

        with self._cond:
            if self._state in (WatcherState.STARTING, WatcherState.RUNNING):
                self._pending = True
                self._cond.notify_all()

    def stop(self) -> None:
        """Stop watching; returns after the background loop has exited."""
        with self._lifecycle_lock:
            self._stop_locked()

    def _stop_locked(self) -> None:
        with self._cond:
            if self._state is WatcherState.IDLE:
                return
            self._state = WatcherState.STOPPING
            self._pending = False
            detector = self._detector
            self._detector = None
            self._cond.notify_all()

        if detector is not None:
            detector.stop()

        with self._cond:
            self._state = WatcherState.IDLE
            self._pending = False
            self.mode = None
            self._cond.notify_all()

    def wait_for_change(self, timeout: Optional[float] = None) -> bool:
        """Block until a change is pending (True), or timeout/stop (False).

        A pending change is consumed by the call that returns True.
        """
        deadline = None if timeout is None else time.monotonic() + max(0.0, timeout)
        with self._cond:
            while not self._pending and self._state in (WatcherState.STARTING, WatcherState.RUNNING):
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._cond.wait(remaining)

            if self._pending:
                self._pending = False
                return True
            return False

    def __enter__(self) -> "Watcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.stop()
        return False
