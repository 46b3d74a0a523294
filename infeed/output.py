"""Append-only output files and console echo helpers."""
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Optional, TextIO, Union

from .parser import ValueKind, parse_line

PathLike = Union[str, Path]


class OutputOpenError(OSError):
    """Raised when an output file cannot be opened and silent mode is off."""


def format_parts(parts) -> str:
    return "".join(str(part) for part in parts)


class OutputCache:
    """Keeps one append handle per path.

    One lock guards handle lookup/creation and each write, and every write is
    flushed before the lock is released, so a path has at most one writer at a
    time.
    """

    def __init__(self, silent_mode: bool = True):
        self._handles: Dict[str, TextIO] = {}
        self._lock = threading.Lock()
        self._silent_mode = silent_mode

    @property
    def silent_mode(self) -> bool:
        with self._lock:
            return self._silent_mode

    @silent_mode.setter
    def silent_mode(self, value: bool) -> None:
        with self._lock:
            self._silent_mode = bool(value)

    def _get_or_open(self, key: str, silent: bool) -> Optional[TextIO]:
        handle = self._handles.get(key)
        if handle is not None and not handle.closed:
            return handle

        try:
            handle = open(key, "a", encoding="utf-8")
        except OSError as e:
            if silent:
                print(f"[WARN] Failed to open file: {key}", file=sys.stderr)
                return None
            raise OutputOpenError(f"Failed to open file: {key}") from e

        self._handles[key] = handle
        return handle

    def write(self, path: PathLike, content: str, *, silent: Optional[bool] = None) -> bool:
        """Append content to path; return False when it was discarded."""
        with self._lock:
            if silent is None:
                silent = self._silent_mode
            handle = self._get_or_open(str(path), silent)
            if handle is None:
                return False
            handle.write(content)
            handle.flush()
            return True

    def flush(self, path: Optional[PathLike] = None) -> None:
        with self._lock:
            if path:
                handle = self._handles.get(str(path))
                handles = [handle] if handle is not None else []
            else:
                handles = list(self._handles.values())
            for handle in handles:
                if not handle.closed:
                    handle.flush()

    def close_all(self) -> None:
        with self._lock:
            for handle in self._handles.values():
                handle.close()
            self._handles.clear()

    def is_open(self, path: PathLike) -> bool:
        with self._lock:
            handle = self._handles.get(str(path))
            return handle is not None and not handle.closed


_output_cache = OutputCache()
_console_lock = threading.Lock()


def get_output_cache() -> OutputCache:
    return _output_cache


def log_to(path: PathLike, *parts: Any) -> bool:
    """Append the concatenated parts to path."""
    return _output_cache.write(path, format_parts(parts))


def log_flush(path: Optional[PathLike] = None) -> None:
    _output_cache.flush(path)


def log_close_all() -> None:
    _output_cache.close_all()


def set_silent_mode(silent: bool) -> None:
    _output_cache.silent_mode = silent


def is_silent_mode() -> bool:
    return _output_cache.silent_mode


def echo(*parts: Any) -> None:
    """Write the concatenated parts to stdout, no newline added."""
    sys.stdout.write(format_parts(parts))
    sys.stdout.flush()


def echo_safe(*parts: Any) -> None:
    """Like echo(), but whole messages never interleave across threads."""
    text = format_parts(parts)
    with _console_lock:
        sys.stdout.write(text)
        sys.stdout.flush()


def read_console(kind: Union[str, ValueKind] = ValueKind.INT, stream: Optional[TextIO] = None):
    """Read one line from stdin and parse its first token, or return None."""
    line = (stream or sys.stdin).readline()
    if not line:
        return None
    return parse_line(line.strip(), ValueKind.from_name(kind))
