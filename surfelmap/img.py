"""A two-dimensional image of fixed-size elements backed by numpy."""

from __future__ import annotations

import math
from typing import Any

import numpy as np


class Img:
    """A rows x cols image whose elements may themselves be small vectors.

    Without ``data`` the image owns freshly zeroed storage; with ``data``
    it is a view onto the caller's buffer wherever numpy allows.
    """

    def __init__(
        self,
        rows: int,
        cols: int,
        dtype=np.uint8,
        element_shape: tuple = (),
        data: Any = None,
    ) -> None:
        self.rows = int(rows)
        self.cols = int(cols)
        self.element_shape = tuple(element_shape)
        shape = (self.rows, self.cols, *self.element_shape)
        self.owned = data is None
        if data is None:
            self.data = np.zeros(shape, dtype=dtype)
        else:
            array = np.asarray(data, dtype=dtype)
            if array.size != math.prod(shape):
                raise ValueError(
                    f"buffer holds {array.size} values, image needs {math.prod(shape)}"
                )
            self.data = array.reshape(shape)

    def _check(self, row: int, col: int) -> None:
        if not (0 <= row < self.rows and 0 <= col < self.cols):
            raise IndexError(f"pixel ({row}, {col}) outside {self.rows}x{self.cols} image")

    def at(self, row: int, col: int):
        """Return the element at ``(row, col)``; vector elements are views."""
        self._check(row, col)
        return self.data[row, col]

    def flat(self, index: int):
        """Return the element at a row-major linear ``index``."""
        if not 0 <= index < self.rows * self.cols:
            raise IndexError(f"index {index} outside image of {self.rows * self.cols} pixels")
        row, col = divmod(index, self.cols)
        return self.data[row, col]

    def __getitem__(self, key: tuple):
        row, col = key
        return self.at(row, col)

    def __setitem__(self, key: tuple, value) -> None:
        row, col = key
        self._check(row, col)
        self.data[row, col] = value

    def __repr__(self) -> str:
        return f"Img(rows={self.rows}, cols={self.cols}, dtype={self.data.dtype})"