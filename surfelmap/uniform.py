"""Typed shader uniform values."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np


class UniformType(Enum):
    """Kind of value a uniform carries."""

    INT = 0
    FLOAT = 1
    VEC2 = 2
    VEC3 = 3
    VEC4 = 4
    MAT4 = 5
    NONE = 6


_VECTOR_TYPES = {2: UniformType.VEC2, 3: UniformType.VEC3, 4: UniformType.VEC4}


def _classify(value: Any) -> tuple[UniformType, Any]:
    if isinstance(value, (bool, int, np.integer)):
        return UniformType.INT, int(value)
    if isinstance(value, (float, np.floating)):
        return UniformType.FLOAT, float(value)
    if isinstance(value, (str, bytes)):
        raise TypeError(f"unsupported uniform value: {value!r}")
    try:
        array = np.array(value, dtype=np.float32)
    except (TypeError, ValueError) as exc:
        raise TypeError(f"unsupported uniform value: {value!r}") from exc
    if array.ndim == 1 and array.shape[0] in _VECTOR_TYPES:
        return _VECTOR_TYPES[array.shape[0]], array
    if array.shape == (4, 4):
        return UniformType.MAT4, array
    raise TypeError(f"unsupported uniform shape: {array.shape}")


@dataclass(frozen=True, eq=False)
class Uniform:
    """A named value to upload to a shader program; the type is inferred."""

    name: str
    value: Any
    type: UniformType = field(init=False)

    def __post_init__(self) -> None:
        kind, normalised = _classify(self.value)
        object.__setattr__(self, "type", kind)
        object.__setattr__(self, "value", normalised)

    def components(self) -> tuple:
        """Return the scalars in upload order; matrices are column-major."""
        if self.type is UniformType.INT:
            return (self.value,)
        if self.type is UniformType.FLOAT:
            return (self.value,)
        if self.type is UniformType.MAT4:
            return tuple(float(x) for x in self.value.flatten(order="F"))
        return tuple(float(x) for x in self.value)