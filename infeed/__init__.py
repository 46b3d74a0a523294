"""Read typed values from a text file that a person or another process edits."""
from .output import (
    OutputCache,
    OutputOpenError,
    echo,
    echo_safe,
    is_silent_mode,
    log_close_all,
    log_flush,
    log_to,
    read_console,
    set_silent_mode,
)
from .parser import ValueKind, parse_value
from .reader import (
    Reader,
    ReadCancelledError,
    get_default_reader,
    init_input,
    init_log,
    log,
    read_double,
    read_double_async,
    read_double_timeout,
    read_float,
    read_float_async,
    read_float_timeout,
    read_int,
    read_int_async,
    read_int_timeout,
    reset_default_reader,
    try_read_double,
    try_read_float,
    try_read_int,
)
from .watcher import Watcher, WatcherState

__all__ = [
    "OutputCache",
    "OutputOpenError",
    "ReadCancelledError",
    "Reader",
    "ValueKind",
    "Watcher",
    "WatcherState",
    "echo",
    "echo_safe",
    "get_default_reader",
    "init_input",
    "init_log",
    "is_silent_mode",
    "log",
    "log_close_all",
    "log_flush",
    "log_to",
    "parse_value",
    "read_console",
    "read_double",
    "read_double_async",
    "read_double_timeout",
    "read_float",
    "read_float_async",
    "read_float_timeout",
    "read_int",
    "read_int_async",
    "read_int_timeout",
    "reset_default_reader",
    "set_silent_mode",
    "try_read_double",
    "try_read_float",
    "try_read_int",
]
