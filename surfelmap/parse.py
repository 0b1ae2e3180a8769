"""Command-line option lookup and install-directory discovery."""

from __future__ import annotations

import os
import re
import sys
from typing import Optional, Sequence

_FLOAT_PREFIX = re.compile(
    r"\s*[+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)"
)
_INT_PREFIX = re.compile(r"\s*[+-]?\d+")


def _leading_float(text: str) -> float:
    match = _FLOAT_PREFIX.match(text)
    return float(match.group()) if match else 0.0


def _leading_int(text: str) -> int:
    match = _INT_PREFIX.match(text)
    return int(match.group()) if match else 0


def find_arg(argv: Sequence[str], name: str) -> int:
    """Index of ``name`` in ``argv`` after the program name, or -1."""
    for index, value in enumerate(argv[1:], start=1):
        if value == name:
            return index
    return -1


def _value_after(argv: Sequence[str], name: str) -> Optional[str]:
    index = find_arg(argv, name) + 1
    if 0 < index < len(argv):
        return argv[index]
    return None


def arg_string(argv: Sequence[str], name: str, default: Optional[str] = None) -> Optional[str]:
    """The word following ``name``, or ``default`` when there is none."""
    value = _value_after(argv, name)
    return default if value is None else value


def arg_float(argv: Sequence[str], name: str, default: Optional[float] = None) -> Optional[float]:
    """The number following ``name``, read leniently from its leading digits."""
    value = _value_after(argv, name)
    return default if value is None else _leading_float(value)


def arg_int(argv: Sequence[str], name: str, default: Optional[int] = None) -> Optional[int]:
    """The integer following ``name``, read leniently from its leading digits."""
    value = _value_after(argv, name)
    return default if value is None else _leading_int(value)


def base_dir(executable: Optional[str] = None) -> str:
    """The part of the executable's path before its last ``build`` directory."""
    path = executable if executable is not None else os.path.realpath(sys.argv[0])
    cut = path.rfind(f"{os.sep}build{os.sep}")
    return path if cut < 0 else path[:cut]