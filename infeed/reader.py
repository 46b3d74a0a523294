"""Reading typed values from a watched input file."""
import os
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TextIO, Tuple, Union

from .detectors import file_signature
from .output import OutputCache, format_parts, get_output_cache
from .parser import ValueKind, parse_lines
from .watcher import Watcher

DEFAULT_INPUT_PATH = "in.txt"
DEFAULT_LOG_PATH = "log.txt"
INPUT_HEADER = "# Enter input values here (one per line)\n"

# Repeated try_read() calls within this window skip reopening an unchanged file.
CACHE_DURATION_S = 0.010
# Longest single wait on a watcher before re-checking the file anyway.
WATCH_WAKE_S = 1.0
# Sleep between attempts when event-driven mode is off.
POLL_TICK_S = 0.1

Kind = Union[str, ValueKind]
ReadResult = Tuple[bool, Optional[Any]]


class ReadCancelledError(RuntimeError):
    """A blocking read was interrupted by Reader.stop()."""


def _open_input(path: Path) -> TextIO:
    return open(path, "r", encoding="utf-8", errors="replace")


def modify_time(path) -> Optional[int]:
    try:
        return os.stat(path).st_mtime_ns
    except OSError:
        return None


@dataclass
class CacheEntry:
    last_modify_time: Optional[int] = None
    last_access_time: float = 0.0
    file_exists: bool = False


class ResultCache:
    """Short-lived memo of the last try_read() attempt.

    Shares the owning Reader's lock; the lock is never held across file I/O.
    """

    def __init__(
        self,
        lock: threading.Lock,
        clock: Callable[[], float] = time.monotonic,
        duration_s: float = CACHE_DURATION_S,
    ):
        self._lock = lock
        self._clock = clock
        self.duration_s = duration_s
        self.entry = CacheEntry()

    def reset(self) -> None:
        with self._lock:
            self.entry = CacheEntry()

    def try_read(
        self,
        path: Path,
        kind: ValueKind,
        opener: Callable[[Path], TextIO] = _open_input,
    ) -> ReadResult:
        now = self._clock()
        current_mtime = modify_time(path)

        with self._lock:
            entry = self.entry
            if (
                entry.file_exists
                and now - entry.last_access_time < self.duration_s
                and current_mtime == entry.last_modify_time
            ):
                return False, None

        try:
            with opener(path) as handle:
                found, value = parse_lines(handle, kind)
        except OSError:
            with self._lock:
                self.entry = CacheEntry(entry.last_modify_time, now, False)
            return False, None

        with self._lock:
            self.entry = CacheEntry(current_mtime, now, True)
        return found, value


class Reader:
    """Delivers typed values read from an input file someone else edits.

    Four delivery contracts share one input path: read() blocks, try_read()
    returns immediately, read_timeout() gives up at a deadline and
    read_async() runs read() on its own thread. Each Reader has its own
    path, cache and watcher, so several can run side by side.
    """

    def __init__(
        self,
        input_path: Union[str, Path] = DEFAULT_INPUT_PATH,
        log_path: Union[str, Path] = DEFAULT_LOG_PATH,
        *,
        silent_mode: bool = True,
        event_driven: bool = True,
        echo: Callable[[str], None] = print,
        clock: Callable[[], float] = time.monotonic,
        opener: Callable[[Path], TextIO] = _open_input,
        watcher_factory: Optional[Callable[[], Watcher]] = None,
        output: Optional[OutputCache] = None,
    ):
        self._lock = threading.Lock()  # guards paths, flags, cache entry, _watcher
        self._input_path = Path(input_path)
        self._log_path = Path(log_path)
        self._silent_mode = silent_mode
        self._event_driven = event_driven
        self._echo = echo
        self._clock = clock
        self._opener = opener
        self._watcher_factory = watcher_factory or (lambda: Watcher(quiet=True))
        self._output = output or get_output_cache()
        self._cache = ResultCache(self._lock, clock=clock)
        self._watcher: Optional[Watcher] = None
        # One event per stop generation: stop() sets the current one and
        # installs a fresh event, so reads begun before it see the stop and
        # reads begun after it do not.
        self._stop_generation = 0
        self._stop_event = threading.Event()

    @classmethod
    def from_config(cls, config: Dict[str, Any], **kwargs) -> "Reader":
        paths = config.get("paths", {})
        options = config.get("reader", {})
        return cls(
            input_path=paths.get("input", DEFAULT_INPUT_PATH),
            log_path=paths.get("log", DEFAULT_LOG_PATH),
            silent_mode=bool(options.get("silent_mode", True)),
            event_driven=bool(options.get("event_driven", True)),
            **kwargs,
        )

    # --- configuration -------------------------------------------------

    @property
    def input_path(self) -> Path:
        with self._lock:
            return self._input_path

    @property
    def log_path(self) -> Path:
        with self._lock:
            return self._log_path

    @property
    def silent_mode(self) -> bool:
        with self._lock:
            return self._silent_mode

    @silent_mode.setter
    def silent_mode(self, value: bool) -> None:
        with self._lock:
            self._silent_mode = bool(value)

    @property
    def event_driven(self) -> bool:
        with self._lock:
            return self._event_driven

    @event_driven.setter
    def event_driven(self, value: bool) -> None:
        with self._lock:
            self._event_driven = bool(value)

    @property
    def stop_generation(self) -> int:
        with self._lock:
            return self._stop_generation

    @property
    def cache_entry(self) -> CacheEntry:
        with self._lock:
            return self._cache.entry

    def set_input_path(self, path: Union[str, Path]) -> None:
        """Point at a new input file; a running watch on the old one is stopped."""
        with self._lock:
            self._input_path = Path(path)
            watcher = self._watcher
            self._watcher = None
        if watcher is not None:
            watcher.stop()
        self._cache.reset()

    def set_log_path(self, path: Union[str, Path]) -> None:
        with self._lock:
            self._log_path = Path(path)

    # --- output --------------------------------------------------------

    def log(self, *parts: Any) -> bool:
        """Append the concatenated parts to this reader's log file."""
        return self._output.write(self.log_path, format_parts(parts), silent=self.silent_mode)

    # --- input helpers -------------------------------------------------

    def ensure_input_file(self) -> Path:
        """Create the input file with a comment header when it is missing."""
        path = self.input_path
        if path.exists():
            return path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "x", encoding="utf-8") as f:
                f.write(INPUT_HEADER)
        except FileExistsError:
            pass
        except OSError as e:
            print(f"[WARN] Could not create input file {path}: {e}")
        return path

    def _read_file(self, path: Path, kind: ValueKind) -> ReadResult:
        # Missing or half-written files just mean "no value yet".
        try:
            with self._opener(path) as handle:
                return parse_lines(handle, kind)
        except OSError:
            return False, None

    def _start_watcher(self, path: Path) -> Watcher:
        watcher = self._watcher_factory()
        with self._lock:
            previous = self._watcher
            self._watcher = watcher
        if previous is not None:
            previous.stop()
        watcher.start(path)
        return watcher

    def _release_watcher(self, watcher: Watcher) -> None:
        with self._lock:
            if self._watcher is watcher:
                self._watcher = None
        watcher.stop()

    def _current_stop_event(self) -> threading.Event:
        with self._lock:
            return self._stop_event

    def _wait_for_value(
        self,
        path: Path,
        kind: ValueKind,
        deadline: Optional[float],
        stop_event: threading.Event,
    ) -> ReadResult:
        """Read now, then again after every change until a value or the deadline."""
        if stop_event.is_set():
            raise ReadCancelledError(f"Read from {path} was cancelled")
        if deadline is not None and self._clock() >= deadline:
            return False, None

        found, value = self._read_file(path, kind)
        if found:
            return True, value

        watcher = self._start_watcher(path) if self.event_driven else None
        last_signature = file_signature(path)
        try:
            while True:
                wait_s = WATCH_WAKE_S if watcher is not None else POLL_TICK_S
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        return False, None
                    wait_s = min(wait_s, remaining)

                if watcher is not None and watcher.is_running:
                    changed = watcher.wait_for_change(wait_s)
                else:
                    # Event-driven mode off, or our watcher was replaced by another read.
                    stop_event.wait(wait_s)
                    signature = file_signature(path)
                    changed = signature != last_signature
                    last_signature = signature

                if stop_event.is_set():
                    raise ReadCancelledError(f"Read from {path} was cancelled")

                if changed:
                    self._echo("[File updated, reading...]")
                found, value = self._read_file(path, kind)
                if found:
                    return True, value
        finally:
            if watcher is not None:
                self._release_watcher(watcher)

    # --- delivery contracts --------------------------------------------

    def read(self, kind: Kind = ValueKind.INT) -> Any:
        """Block until the input file holds a value of kind and return it."""
        return self._read(ValueKind.from_name(kind), self._current_stop_event())

    def _read(self, kind: ValueKind, stop_event: threading.Event) -> Any:
        path = self.ensure_input_file()
        self._echo(f"[Waiting for input in {path}...]")
        _, value = self._wait_for_value(path, kind, None, stop_event)
        self._echo(f"[Read value: {value}]")
        return value

    def try_read(self, kind: Kind = ValueKind.INT) -> ReadResult:
        """Check the input file once without blocking; returns (found, value)."""
        kind = ValueKind.from_name(kind)
        path = self.ensure_input_file()
        return self._cache.try_read(path, kind, self._opener)

    def read_timeout(self, kind: Kind, timeout: Union[float, timedelta]) -> ReadResult:
        """Like read(), but return (False, None) once timeout has elapsed."""
        kind = ValueKind.from_name(kind)
        seconds = timeout.total_seconds() if isinstance(timeout, timedelta) else float(timeout)
        if seconds < 0:
            raise ValueError(f"timeout must be non-negative, got {seconds}")

        stop_event = self._current_stop_event()
        path = self.ensure_input_file()
        self._echo(f"[Waiting for input in {path} (timeout: {int(seconds * 1000)}ms)...]")
        found, value = self._wait_for_value(path, kind, self._clock() + seconds, stop_event)
        if found:
            self._echo(f"[Read value: {value}]")
            return True, value
        self._echo("[Timeout reached]")
        return False, None

    def read_async(
        self,
        kind: Kind = ValueKind.INT,
        callback: Optional[Callable[[Any], None]] = None,
    ) -> "Future[Any]":
        """Run read() on a new thread; returns a future for the value.

        When callback is given it is called with the value on that thread.
        """
        kind = ValueKind.from_name(kind)
        future: Future = Future()
        # Taken here, not on the worker, so a stop() right after this returns still applies.
        stop_event = self._current_stop_event()

        def _run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                value = self._read(kind, stop_event)
            except BaseException as e:
                future.set_exception(e)
                return
            future.set_result(value)
            if callback is not None:
                try:
                    callback(value)
                except Exception as e:
                    print(f"[ERR] Async read callback failed: {e}")

        worker = threading.Thread(target=_run, daemon=True, name="infeed-read-async")
        worker.start()
        return future

    def stop(self) -> None:
        """Cancel reads already started and stop the active watcher.

        Reads started after stop() returns are unaffected.
        """
        with self._lock:
            self._stop_generation += 1
            stop_event = self._stop_event
            self._stop_event = threading.Event()
            watcher = self._watcher
            self._watcher = None
        stop_event.set()
        if watcher is not None:
            watcher.stop()


# --- process-wide default reader -------------------------------------------

_default_reader: Optional[Reader] = None
_default_lock = threading.Lock()


def get_default_reader() -> Reader:
    """Return the shared Reader, creating it with defaults on first use."""
    global _default_reader
    with _default_lock:
        if _default_reader is None:
            _default_reader = Reader()
        return _default_reader


def reset_default_reader() -> None:
    """Stop and discard the shared Reader; the next use starts from defaults."""
    global _default_reader
    with _default_lock:
        reader = _default_reader
        _default_reader = None
    if reader is not None:
        reader.stop()


def init_input(path: Union[str, Path]) -> None:
    get_default_reader().set_input_path(path)


def init_log(path: Union[str, Path]) -> None:
    get_default_reader().set_log_path(path)


def log(*parts: Any) -> bool:
    return get_default_reader().log(*parts)


def read_int() -> int:
    return get_default_reader().read(ValueKind.INT)


def read_float():
    return get_default_reader().read(ValueKind.FLOAT)


def read_double() -> float:
    return get_default_reader().read(ValueKind.DOUBLE)


def try_read_int() -> ReadResult:
    return get_default_reader().try_read(ValueKind.INT)


def try_read_float() -> ReadResult:
    return get_default_reader().try_read(ValueKind.FLOAT)


def try_read_double() -> ReadResult:
    return get_default_reader().try_read(ValueKind.DOUBLE)


def read_int_timeout(timeout: Union[float, timedelta]) -> ReadResult:
    return get_default_reader().read_timeout(ValueKind.INT, timeout)


def read_float_timeout(timeout: Union[float, timedelta]) -> ReadResult:
    return get_default_reader().read_timeout(ValueKind.FLOAT, timeout)


def read_double_timeout(timeout: Union[float, timedelta]) -> ReadResult:
    return get_default_reader().read_timeout(ValueKind.DOUBLE, timeout)


def read_int_async(callback: Optional[Callable[[int], None]] = None) -> "Future[int]":
    return get_default_reader().read_async(ValueKind.INT, callback)


def read_float_async(callback: Optional[Callable[[Any], None]] = None) -> "Future[Any]":
    return get_default_reader().read_async(ValueKind.FLOAT, callback)


def read_double_async(callback: Optional[Callable[[float], None]] = None) -> "Future[float]":
    return get_default_reader().read_async(ValueKind.DOUBLE, callback)
