"""Sparse least-squares solves through the normal equations."""

from __future__ import annotations

from typing import Optional

import numpy as np
from scipy.sparse.csgraph import reverse_cuthill_mckee
from scipy.sparse.linalg import splu

from .jacobian import Jacobian


class CholeskyDecomp:
    """Solves ``JᵀJ δ = Jᵀr`` reusing one fill-reducing ordering across calls.

    The ordering is worked out on the first run and kept until
    :meth:`free_factor` is called, as the sparsity pattern stays the same
    between iterations of one optimisation.
    """

    def __init__(self) -> None:
        self._permutation: Optional[np.ndarray] = None

    @property
    def has_factor(self) -> bool:
        """Whether an analysed ordering is being held."""
        return self._permutation is not None

    def solve(self, jacobian: Jacobian, residual, first_run: bool) -> np.ndarray:
        """Return the least-squares step for ``jacobian`` and ``residual``."""
        rhs_vector = np.asarray(residual, dtype=np.float64).reshape(-1)
        if rhs_vector.shape[0] != len(jacobian.rows):
            raise ValueError(
                f"residual has {rhs_vector.shape[0]} entries, Jacobian has "
                f"{len(jacobian.rows)} rows"
            )
        j = jacobian.to_sparse()
        normal = (j.T @ j).tocsr()

        if first_run:
            if self._permutation is not None:
                raise RuntimeError("a factor is already held; free it first")
            self._permutation = np.asarray(
                reverse_cuthill_mckee(normal, symmetric_mode=True), dtype=np.int64
            )
        elif self._permutation is None:
            raise RuntimeError("no factor held; solve with first_run=True first")

        perm = self._permutation
        if perm.shape[0] != normal.shape[0]:
            raise ValueError("Jacobian columns differ from the analysed pattern")
        if perm.shape[0] == 0:
            return np.zeros(0)

        permuted = normal[perm][:, perm].tocsc()
        rhs = (j.T @ rhs_vector)[perm]
        try:
            factor = splu(permuted, permc_spec="NATURAL", diag_pivot_thresh=0.0)
        except RuntimeError as exc:
            raise np.linalg.LinAlgError(str(exc)) from exc
        solved = factor.solve(rhs)
        if not np.all(np.isfinite(solved)):
            raise np.linalg.LinAlgError("normal equations are singular")

        delta = np.empty_like(solved)
        delta[perm] = solved
        return delta

    def free_factor(self) -> None:
        """Drop the held ordering."""
        if self._permutation is None:
            raise RuntimeError("no factor to free")
        self._permutation = None