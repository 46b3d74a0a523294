"""Typed value extraction from line-oriented input files."""
import math
import re
from enum import Enum
from typing import Any, Iterable, Optional, Tuple, Union

import numpy as np

COMMENT_PREFIX = "#"
_STRIP_CHARS = " \t\r\n"

# ASCII digits only; other Unicode digits do not count.
_INT_PREFIX = re.compile(r"[+-]?[0-9]+")
_FLOAT_PREFIX = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?P<exp>[eE][+-]?[0-9]+)?")

_INT32 = np.iinfo(np.int32)


class ValueKind(Enum):
    """Numeric types an input file value can be read as."""

    INT = "int"
    FLOAT = "float"
    DOUBLE = "double"

    @classmethod
    def from_name(cls, name: Union[str, "ValueKind"]) -> "ValueKind":
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            valid = ", ".join(repr(kind.value) for kind in cls)
            raise ValueError(f"Unknown value type: {name!r}. Valid options: {valid}") from None

    def parse_token(self, token: str) -> Optional[Any]:
        """Parse the leading numeric part of token, or return None.

        Trailing garbage after a valid number is ignored ("42abc" -> 42), and
        an integer read stops at the decimal point ("3.7" -> 3).
        """
        if self is ValueKind.INT:
            match = _INT_PREFIX.match(token)
            if match is None:
                return None
            value = int(match.group(0))
            # Values outside a 32-bit int are rejected, not wrapped.
            if value < _INT32.min or value > _INT32.max:
                return None
            return value

        match = _FLOAT_PREFIX.match(token)
        if match is None:
            return None
        # "1e" or "1e+" starts an exponent with no digits: the token is malformed.
        if match.group("exp") is None and token[match.end():match.end() + 1] in ("e", "E"):
            return None
        value = float(match.group(0))
        if self is ValueKind.FLOAT:
            if not math.isfinite(value) or abs(value) > float(np.finfo(np.float32).max):
                return None
            return np.float32(value)
        if not math.isfinite(value):
            return None
        return value


def iter_candidate_lines(lines: Iterable[str]) -> Iterable[str]:
    """Yield trimmed lines that are neither blank nor comments."""
    for raw in lines:
        line = raw.strip(_STRIP_CHARS)
        if not line or line.startswith(COMMENT_PREFIX):
            continue
        yield line


def parse_line(line: str, kind: ValueKind) -> Optional[Any]:
    tokens = line.split()
    if not tokens:
        return None
    return kind.parse_token(tokens[0])


def parse_lines(lines: Iterable[str], kind: Union[str, ValueKind]) -> Tuple[bool, Optional[Any]]:
    """Return (True, value) for the first line that parses as kind.

    Lines that fail to parse are skipped; scanning continues with the next.
    """
    kind = ValueKind.from_name(kind)
    for line in iter_candidate_lines(lines):
        value = parse_line(line, kind)
        if value is not None:
            return True, value
    return False, None


def parse_value(text: str, kind: Union[str, ValueKind]) -> Tuple[bool, Optional[Any]]:
    """Parse the first typed value out of the full text of an input file."""
    return parse_lines(text.splitlines(), kind)
