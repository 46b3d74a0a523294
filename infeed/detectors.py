"""Change detection backends: native OS notification and adaptive polling."""
import functools
import importlib
import os
import sys
import threading
from pathlib import Path
from typing import Callable, Optional, Protocol, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler

# Adaptive polling bounds (seconds)
POLL_INITIAL_S = 0.050
POLL_FLOOR_S = 0.010
POLL_CEILING_S = 0.500
IDLE_SAMPLES_BEFORE_BACKOFF = 10

# Upper bound on how long a native observer takes to notice stop()
OBSERVER_TIMEOUT_S = 0.5

# Native observer per platform prefix, resolved once per process.
NATIVE_OBSERVERS = {
    "linux": ("watchdog.observers.inotify", "InotifyObserver"),
    "darwin": ("watchdog.observers.fsevents", "FSEventsObserver"),
    "win32": ("watchdog.observers.read_directory_changes", "WindowsApiObserver"),
}

# Event types that can mean new content in the watched file.
# "closed" is close-after-write; "closed_no_write" and "opened" are ignored.
CONTENT_EVENT_TYPES = frozenset({"modified", "created", "moved", "closed"})

FileSignature = Tuple[int, int]


class ChangeDetector(Protocol):
    """Protocol for "has this file changed" backends.

    start() must return False instead of raising when the backend cannot be
    set up, so the caller can fall back to another detector.
    """

    def supports_native(self) -> bool:
        ...

    def start(self, path: Path, on_change: Callable[[], None]) -> bool:
        ...

    def stop(self) -> None:
        ...


def file_signature(path) -> Optional[FileSignature]:
    """Return (mtime_ns, size) for path, or None when it cannot be stat'ed."""
    try:
        stat = os.stat(path)
    except OSError:
        return None
    return stat.st_mtime_ns, stat.st_size


def _platform_key(platform: str) -> Optional[str]:
    for key in NATIVE_OBSERVERS:
        if platform.startswith(key):
            return key
    return None


def load_native_observer_class(platform: Optional[str] = None):
    """Import the watchdog observer class for platform, or return None."""
    key = _platform_key(platform or sys.platform)
    if key is None:
        return None

    module_name, class_name = NATIVE_OBSERVERS[key]
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        # e.g. FSEvents C extension missing from the installed wheel
        return None
    return getattr(module, class_name, None)


@functools.lru_cache(maxsize=None)
def native_observer_class():
    return load_native_observer_class()


class _FileEventHandler(FileSystemEventHandler):
    """Forward parent-directory events that concern one file name."""

    def __init__(self, path: Path, on_change: Callable[[], None]):
        super().__init__()
        self._name = os.path.normcase(path.name)
        self._on_change = on_change

    def _matches(self, raw_path) -> bool:
        if not raw_path:
            return False
        name = os.path.basename(os.fsdecode(raw_path))
        return os.path.normcase(name) == self._name

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in CONTENT_EVENT_TYPES:
            return
        # Moves are matched on both ends so rename-into-place saves count.
        if self._matches(event.src_path) or self._matches(getattr(event, "dest_path", "")):
            self._on_change()


class NativeDetector:
    """OS notification on the file's parent directory, filtered by file name."""

    def __init__(self, observer_class=None, timeout: float = OBSERVER_TIMEOUT_S):
        self._observer_class = observer_class
        self._timeout = timeout
        self._observer = None

    def _resolve_observer_class(self):
        if self._observer_class is not None:
            return self._observer_class
        return native_observer_class()

    def supports_native(self) -> bool:
        return self._resolve_observer_class() is not None

    def start(self, path: Path, on_change: Callable[[], None]) -> bool:
        observer_class = self._resolve_observer_class()
        if observer_class is None:
            return False

        path = Path(path)
        parent = path.parent
        if not parent.is_dir():
            return False

        try:
            observer = observer_class(timeout=self._timeout)
            observer.schedule(_FileEventHandler(path, on_change), str(parent), recursive=False)
            observer.start()
        except Exception:
            # Watch limits, permissions, unsupported filesystems: caller polls instead.
            return False

        self._observer = observer
        return True

    def stop(self) -> None:
        observer = self._observer
        self._observer = None
        if observer is None:
            return
        observer.stop()
        # stop() may be reached from a change callback on the observer thread.
        if observer is not threading.current_thread():
            observer.join()


class PollingDetector:
    """Samples modification time and size with an adaptive interval.

    The interval starts at POLL_INITIAL_S, doubles after every
    IDLE_SAMPLES_BEFORE_BACKOFF consecutive unchanged samples up to
    POLL_CEILING_S, and drops to POLL_FLOOR_S after any change.
    """

    def __init__(
        self,
        initial_s: float = POLL_INITIAL_S,
        floor_s: float = POLL_FLOOR_S,
        ceiling_s: float = POLL_CEILING_S,
        idle_samples: int = IDLE_SAMPLES_BEFORE_BACKOFF,
        on_interval: Optional[Callable[[float], None]] = None,
        signature: Callable[[Path], Optional[FileSignature]] = file_signature,
    ):
        self.initial_s = initial_s
        self.floor_s = floor_s
        self.ceiling_s = ceiling_s
        self.idle_samples = idle_samples
        self.on_interval = on_interval
        self._signature = signature
        self.interval = initial_s
        self._idle_count = 0
        self._path: Optional[Path] = None
        self._last: Optional[FileSignature] = None
        self._on_change: Optional[Callable[[], None]] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def supports_native(self) -> bool:
        return False

    def prime(self, path: Path) -> None:
        """Capture the current file state and reset the interval."""
        self._path = Path(path)
        self._last = self._signature(self._path)
        self._idle_count = 0
        self._set_interval(self.initial_s)

    def _set_interval(self, interval: float) -> None:
        if interval == self.interval:
            return
        self.interval = interval
        if self.on_interval:
            self.on_interval(interval)

    def sample(self) -> bool:
        """Take one sample; return True when the file changed since the last one."""
        current = self._signature(self._path)
        if current != self._last:
            self._last = current
            self._idle_count = 0
            self._set_interval(self.floor_s)
            return True

        self._idle_count += 1
        if self._idle_count >= self.idle_samples:
            self._idle_count = 0
            self._set_interval(min(self.interval * 2, self.ceiling_s))
        return False

    def start(self, path: Path, on_change: Callable[[], None]) -> bool:
        self.prime(path)
        self._on_change = on_change
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, daemon=True, name="infeed-poll"
        )
        self._thread.start()
        return True

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _run(self) -> None:
        """Polling loop; stop() interrupts the wait immediately."""
        while not self._stop_event.wait(self.interval):
            if self.sample() and self._on_change:
                self._on_change()
