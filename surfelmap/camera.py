"""Process-wide camera intrinsics and image resolution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional


@dataclass(frozen=True)
class Intrinsics:
    """Pinhole camera parameters shared by the whole pipeline.

    The first call to :meth:`get_instance` fixes the values; later calls
    return the same object whatever arguments they pass.
    """

    fx: float
    fy: float
    cx: float
    cy: float

    _instance: ClassVar[Optional["Intrinsics"]] = None

    def __post_init__(self) -> None:
        if self.fx == 0 or self.fy == 0:
            raise ValueError(
                "intrinsics have not been initialised: fx and fy must be non-zero"
            )

    @classmethod
    def get_instance(
        cls, fx: float = 0.0, fy: float = 0.0, cx: float = 0.0, cy: float = 0.0
    ) -> "Intrinsics":
        """Return the shared intrinsics, creating them on first use."""
        if cls._instance is None:
            cls._instance = cls(float(fx), float(fy), float(cx), float(cy))
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Forget the shared instance so it can be set up again."""
        cls._instance = None


@dataclass(frozen=True)
class Resolution:
    """Image size shared by the whole pipeline.

    The first call to :meth:`get_instance` fixes the size; later calls
    return the same object whatever arguments they pass.
    """

    width: int
    height: int

    _instance: ClassVar[Optional["Resolution"]] = None

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                "resolution has not been initialised: width and height must be positive"
            )

    @classmethod
    def get_instance(cls, width: int = 0, height: int = 0) -> "Resolution":
        """Return the shared resolution, creating it on first use."""
        if cls._instance is None:
            cls._instance = cls(int(width), int(height))
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Forget the shared instance so it can be set up again."""
        cls._instance = None

    @property
    def cols(self) -> int:
        """Number of image columns (the width)."""
        return self.width

    @property
    def rows(self) -> int:
        """Number of image rows (the height)."""
        return self.height

    @property
    def num_pixels(self) -> int:
        """Total number of pixels."""
        return self.width * self.height