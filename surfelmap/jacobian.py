"""Sparse Jacobians assembled row by row with strictly increasing columns."""

from __future__ import annotations

from typing import Iterable

import numpy as np
from scipy import sparse


class OrderedJacobianRow:
    """One sparse row with room for a fixed number of entries."""

    def __init__(self, capacity: int) -> None:
        self.capacity = int(capacity)
        self.indices: list[int] = []
        self.values: list[float] = []
        self._slots: dict[int, int] = {}

    def append(self, index: int, value: float) -> None:
        """Add an entry; columns must be appended in increasing order."""
        if self.indices and index <= self.indices[-1]:
            raise ValueError(
                f"column {index} does not follow column {self.indices[-1]}"
            )
        if len(self.indices) >= self.capacity:
            raise IndexError(f"row is full ({self.capacity} entries)")
        self._slots[index] = len(self.indices)
        self.indices.append(int(index))
        self.values.append(float(value))

    def add_to(self, index: int, value: float, weight: float) -> None:
        """Add ``value`` to an entry that is already multiplied by ``weight``."""
        try:
            slot = self._slots[index]
        except KeyError:
            raise KeyError(f"column {index} has no entry in this row") from None
        self.values[slot] = (self.values[slot] / weight + value) * weight

    def non_zeros(self) -> int:
        """Number of entries stored."""
        return len(self.indices)


class Jacobian:
    """A stack of :class:`OrderedJacobianRow` with a known column count."""

    def __init__(self) -> None:
        self.rows: list[OrderedJacobianRow] = []
        self._columns = 0

    def assign(self, rows: Iterable[OrderedJacobianRow], columns: int) -> None:
        """Replace the contents with ``rows`` spanning ``columns`` columns."""
        self.rows = list(rows)
        self._columns = int(columns)

    def cols(self) -> int:
        """Number of columns."""
        return self._columns

    def non_zero(self) -> int:
        """Total number of stored entries."""
        return sum(row.non_zeros() for row in self.rows)

    def to_sparse(self) -> sparse.csr_matrix:
        """The Jacobian as a compressed sparse row matrix."""
        indptr = np.zeros(len(self.rows) + 1, dtype=np.int64)
        indptr[1:] = np.cumsum([row.non_zeros() for row in self.rows])
        indices = np.fromiter(
            (i for row in self.rows for i in row.indices), dtype=np.int64, count=indptr[-1]
        )
        data = np.fromiter(
            (v for row in self.rows for v in row.values), dtype=np.float64, count=indptr[-1]
        )
        if indices.size and (indices.min() < 0 or indices.max() >= self._columns):
            raise ValueError(f"column index outside 0..{self._columns - 1}")
        return sparse.csr_matrix(
            (data, indices, indptr), shape=(len(self.rows), self._columns)
        )