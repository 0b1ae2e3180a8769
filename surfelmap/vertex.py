"""Binary layout of a surfel as stored in vertex buffers.

Each surfel is three vec4s of 32-bit floats:
position + confidence; color, unused, init time, timestamp; normal + radius.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import ClassVar

_LAYOUT = struct.Struct("<12f")

SIZE = _LAYOUT.size


@dataclass
class Surfel:
    """One surfel; ``color`` holds the 24-bit packed colour as a float."""

    position: tuple = (0.0, 0.0, 0.0)
    confidence: float = 0.0
    color: float = 0.0
    init_time: float = 0.0
    timestamp: float = 0.0
    normal: tuple = (0.0, 0.0, 0.0)
    radius: float = 0.0

    SIZE: ClassVar[int] = SIZE

    def pack(self) -> bytes:
        """Encode the surfel into its 48-byte buffer form."""
        if len(self.position) != 3 or len(self.normal) != 3:
            raise ValueError("position and normal must have three components")
        return _LAYOUT.pack(
            *self.position,
            self.confidence,
            self.color,
            0.0,
            self.init_time,
            self.timestamp,
            *self.normal,
            self.radius,
        )

    @classmethod
    def _from_fields(cls, fields: tuple) -> "Surfel":
        return cls(
            position=tuple(fields[0:3]),
            confidence=fields[3],
            color=fields[4],
            init_time=fields[6],
            timestamp=fields[7],
            normal=tuple(fields[8:11]),
            radius=fields[11],
        )

    @classmethod
    def unpack(cls, data) -> "Surfel":
        """Decode exactly one surfel from ``data``."""
        if memoryview(data).nbytes != SIZE:
            raise ValueError(f"a surfel takes exactly {SIZE} bytes")
        return cls._from_fields(_LAYOUT.unpack(data))


def unpack_many(data) -> list[Surfel]:
    """Decode a buffer of consecutive surfels."""
    if memoryview(data).nbytes % SIZE:
        raise ValueError(f"buffer length is not a multiple of {SIZE}")
    return [Surfel._from_fields(fields) for fields in _LAYOUT.iter_unpack(data)]