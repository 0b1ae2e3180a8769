"""Named timings with optional UDP reporting to a local monitor."""

from __future__ import annotations

import socket
import struct
import time
from contextlib import contextmanager
from typing import ClassVar, Iterator, Optional

DEFAULT_ADDRESS = ("127.0.0.1", 45454)
SEND_INTERVAL_US = 10000

_HEADER = struct.Struct("<iQ")
_VALUE = struct.Struct("<f")
_MAX_SIGNATURE = 2**64 - 1


class Stopwatch:
    """Collects the latest duration, in milliseconds, for each named section.

    Durations are handed in as microseconds. :meth:`send_all` ships the
    collected timings as a UDP datagram to ``address``.
    """

    _instance: ClassVar[Optional["Stopwatch"]] = None

    def __init__(self, address: tuple = DEFAULT_ADDRESS) -> None:
        self._address = address
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        now = self.current_system_time()
        self.signature = now
        self._last_send = now
        self._timings: dict[str, float] = {}
        self._tick_timings: dict[str, int] = {}

    @classmethod
    def get_instance(cls) -> "Stopwatch":
        """Return the process-wide stopwatch."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @staticmethod
    def current_system_time() -> int:
        """Wall-clock time in microseconds."""
        return time.time_ns() // 1000

    @property
    def timings(self) -> dict[str, float]:
        """A copy of the recorded timings, ordered by name."""
        return dict(sorted(self._timings.items()))

    def add_timing(self, name: str, duration: int) -> None:
        """Record ``duration`` microseconds for ``name`` if it is positive."""
        if duration > 0:
            self._timings[name] = duration / 1000.0

    def set_custom_signature(self, signature: int) -> None:
        """Replace the signature sent with every packet."""
        if not 0 <= signature <= _MAX_SIGNATURE:
            raise ValueError("signature must fit in an unsigned 64-bit integer")
        self.signature = signature

    def pulse(self, name: str) -> None:
        """Mark ``name`` as having happened."""
        self._timings[name] = 1.0

    def tick(self, name: str, start: int) -> None:
        """Remember the start time, in microseconds, of section ``name``."""
        self._tick_timings[name] = start

    def tock(self, name: str, end: int) -> None:
        """Close section ``name`` at ``end`` microseconds and record it."""
        start = self._tick_timings.setdefault(name, 0)
        duration = (end - start) / 1000.0
        if duration > 0:
            self._timings[name] = duration

    @contextmanager
    def measure(self, name: str) -> Iterator[None]:
        """Time the body of a ``with`` block under ``name``."""
        start = self.current_system_time()
        try:
            yield
        finally:
            self.add_timing(name, self.current_system_time() - start)

    def format_all(self) -> str:
        """Render every timing as ``name: valuems`` lines plus a blank line."""
        lines = "".join(f"{name}: {value:g}ms\n" for name, value in self.timings.items())
        return lines + "\n"

    def print_all(self) -> None:
        """Write :meth:`format_all` to standard output."""
        print(self.format_all(), end="")

    def serialise_timings(self) -> bytes:
        """Encode the packet: size, signature, then NUL-terminated names and floats."""
        body = b"".join(
            name.encode("utf-8") + b"\0" + _VALUE.pack(value)
            for name, value in self.timings.items()
        )
        size = _HEADER.size + len(body)
        return _HEADER.pack(size, self.signature) + body

    def send_all(self) -> bool:
        """Send the timings if the send interval has passed; report whether it did."""
        now = self.current_system_time()
        if now - self._last_send <= SEND_INTERVAL_US:
            return False
        self._socket.sendto(self.serialise_timings(), self._address)
        self._last_send = now
        return True

    def close(self) -> None:
        """Release the reporting socket."""
        self._socket.close()

    def __enter__(self) -> "Stopwatch":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()