"""Embedded deformation graph optimised against vertex constraints."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import MutableSequence, Optional, Sequence

import numpy as np

from .cholesky import CholeskyDecomp
from .graph import (
    Constraint,
    GraphNode,
    VertexWeight,
    connect_sequential,
    nearest_node_weights,
    sort_weights,
)
from .jacobian import Jacobian, OrderedJacobianRow
from .stopwatch import Stopwatch

NUM_VARIABLES = 12
E_ROT_ROWS = 6
E_REG_ROWS = 3
E_CON_ROWS = 3

MAX_ITERATIONS = 3
FERN_SKIP_ERROR = 0.06


@dataclass(frozen=True)
class OptimisationResult:
    """Outcome of :meth:`DeformationGraph.optimise_graph_sparse`.

    ``error`` is the final squared residual norm, or ``None`` when the
    optimisation was skipped.
    """

    optimised: bool
    error: Optional[float]
    mean_constraint_error: float


def _row(capacity: int, entries) -> OrderedJacobianRow:
    row = OrderedJacobianRow(capacity)
    for index, value in entries:
        row.append(index, value)
    return row


def _block(column: int, vector) -> list:
    return [(column + axis, float(value)) for axis, value in enumerate(vector)]


class DeformationGraph:
    """A graph of affine nodes that smoothly deforms a set of source vertices.

    ``source_vertices`` is held by reference: vertices may be appended to it
    between calls, and :meth:`apply_graph_to_vertices` writes back into it.
    """

    W_ROT = 1.0
    W_REG = 10.0
    W_CON = 100.0

    def __init__(self, k: int, source_vertices: MutableSequence) -> None:
        self.k = int(k)
        self._source = source_vertices
        self._initialised = False
        self._nodes: list[GraphNode] = []
        self._graph_cloud: list[np.ndarray] = []
        self._times: list[int] = []
        self._vertex_map: list[list[VertexWeight]] = []
        self._pose_map: list[list[VertexWeight]] = []
        self._constraints: list[Constraint] = []
        self._last_point_count = 0
        self._cholesky = CholeskyDecomp()

    @property
    def graph(self) -> list[GraphNode]:
        """The graph nodes, in id order."""
        return self._nodes

    @property
    def graph_times(self) -> list[int]:
        """The timestamp of each graph node."""
        return self._times

    def is_init(self) -> bool:
        """Whether :meth:`initialise_graph` has been called."""
        return self._initialised

    def _require_init(self) -> None:
        if not self._initialised:
            raise RuntimeError("deformation graph has not been initialised")

    def initialise_graph(self, custom_graph: Sequence, graph_time_map: Sequence[int]) -> None:
        """Create one node per point of ``custom_graph`` and link them in sequence."""
        cloud = [np.asarray(p, dtype=np.float64).reshape(3).copy() for p in custom_graph]
        times = [int(t) for t in graph_time_map]
        if len(cloud) != len(times):
            raise ValueError("every graph node needs exactly one timestamp")
        self._graph_cloud = cloud
        self._times = times
        self._nodes = [GraphNode(i, position.copy()) for i, position in enumerate(cloud)]
        connect_sequential(self._nodes, self.k)
        self._initialised = True

    def _weights_for(self, position, time: int) -> list[VertexWeight]:
        return nearest_node_weights(
            position, time, self._times, self._graph_cloud, self._nodes, self.k
        )

    def append_vertices(self, vertex_time_map: Sequence[int], original_point_end: int) -> None:
        """Weight the source vertices added since the last call against the graph."""
        start = self._last_point_count
        if len(self._vertex_map) > start:
            del self._vertex_map[start:]
        else:
            self._vertex_map.extend([] for _ in range(start - len(self._vertex_map)))

        for i in range(start, len(self._source)):
            self._vertex_map.append(self._weights_for(self._source[i], vertex_time_map[i]))

        self._last_point_count = int(original_point_end)

    def set_poses_seq(self, pose_time_map: Sequence[int], poses: Sequence) -> None:
        """Weight each 4x4 pose against the graph, replacing any earlier poses."""
        self._pose_map = []
        for i, pose in enumerate(poses):
            translation = np.asarray(pose, dtype=np.float64)[:3, 3]
            self._pose_map.append(self._weights_for(translation, pose_time_map[i]))

    def apply_graph_to_poses(self, poses: Sequence[np.ndarray]) -> None:
        """Deform the 4x4 pose arrays in place; rotations are re-orthonormalised."""
        self._require_init()
        if len(poses) != len(self._pose_map):
            raise ValueError(
                f"expected {len(self._pose_map)} poses, got {len(poses)}"
            )
        for pose, weights in zip(poses, self._pose_map):
            translation = np.asarray(pose[:3, 3], dtype=np.float64)
            new_position = np.zeros(3)
            rotation = np.zeros((3, 3))
            for w in weights:
                node = self._nodes[w.node]
                new_position += w.weight * (
                    node.rotation @ (translation - node.position)
                    + node.position
                    + node.translation
                )
                rotation += w.weight * node.rotation
            u, _, vt = np.linalg.svd(rotation @ np.asarray(pose[:3, :3], dtype=np.float64))
            pose[:3, 3] = new_position
            pose[:3, :3] = u @ vt

    def compute_vertex_position(self, vertex_id: int) -> np.ndarray:
        """The deformed position of source vertex ``vertex_id``."""
        self._require_init()
        if not 0 <= vertex_id < len(self._vertex_map):
            raise IndexError(f"vertex {vertex_id} has not been weighted")
        source = np.asarray(self._source[vertex_id], dtype=np.float64).reshape(3)
        position = np.zeros(3)
        for w in self._vertex_map[vertex_id]:
            node = self._nodes[w.node]
            position += w.weight * (
                node.rotation @ (source - node.position) + node.position + node.translation
            )
        return position

    def apply_graph_to_vertices(self) -> None:
        """Replace every source vertex with its deformed position."""
        for i in range(len(self._source)):
            self._source[i] = self.compute_vertex_position(i)

    def _set_constraint(self, constraint: Constraint) -> None:
        for i, existing in enumerate(self._constraints):
            if existing.vertex_id == constraint.vertex_id:
                self._constraints[i] = constraint
                return
        self._constraints.append(constraint)

    def add_constraint(self, vertex_id: int, target) -> None:
        """Pull ``vertex_id`` towards ``target``, replacing its earlier constraint."""
        self._require_init()
        self._set_constraint(Constraint.absolute(vertex_id, target))

    def add_relative_constraint(self, vertex_id: int, target_id: int) -> None:
        """Pull ``vertex_id`` towards vertex ``target_id``, replacing its earlier constraint."""
        self._require_init()
        self._set_constraint(Constraint.relative_to(vertex_id, target_id))

    def clear_constraints(self) -> None:
        """Drop all constraints."""
        self._constraints.clear()

    def reset_graph(self) -> None:
        """Set every rotation to identity and every translation to the unit x vector."""
        for node in self._nodes:
            node.rotation = np.eye(3)
            node.translation = np.array([1.0, 0.0, 0.0])

    def _non_relative_constraint_error(self) -> float:
        if not self._constraints:
            return math.nan
        total = sum(
            float(np.linalg.norm(self.compute_vertex_position(c.vertex_id) - c.target_position))
            for c in self._constraints
            if not c.relative
        )
        return total / len(self._constraints)

    def _node_influences(self, constraint: Constraint) -> bool:
        if any(self._nodes[w.node].enabled for w in self._vertex_map[constraint.vertex_id]):
            return True
        if constraint.relative:
            return any(
                self._nodes[w.node].enabled for w in self._vertex_map[constraint.target_id]
            )
        return False

    def _residual(self) -> np.ndarray:
        values: list[float] = []
        for node in self._nodes:
            if node.enabled:
                c0, c1, c2 = node.rotation.T
                values.extend(
                    (c0 @ c1, c0 @ c2, c1 @ c2, c0 @ c0 - 1.0, c1 @ c1 - 1.0, c2 @ c2 - 1.0)
                )

        sqrt_reg = math.sqrt(self.W_REG)
        for node in self._nodes:
            for n in node.neighbours:
                neighbour = self._nodes[n]
                if neighbour.enabled or node.enabled:
                    term = (
                        node.rotation @ (neighbour.position - node.position)
                        + node.position
                        + node.translation
                        - (neighbour.position + neighbour.translation)
                    )
                    values.extend(term * sqrt_reg)

        sqrt_con = math.sqrt(self.W_CON)
        for constraint in self._constraints:
            if self._node_influences(constraint):
                source = self.compute_vertex_position(constraint.vertex_id)
                if constraint.relative:
                    diff = source - self.compute_vertex_position(constraint.target_id)
                else:
                    diff = source - constraint.target_position
                values.extend(diff * sqrt_con)

        return np.array(values, dtype=np.float64)

    def _jacobian(self, num_cols: int, back_set: int) -> Jacobian:
        rows: list[OrderedJacobianRow] = []

        for node in self._nodes:
            if not node.enabled:
                continue
            col = node.id * NUM_VARIABLES - back_set
            c0, c1, c2 = node.rotation.T
            rows.append(_row(6, _block(col, c1) + _block(col + 3, c0)))
            rows.append(_row(6, _block(col, c2) + _block(col + 6, c0)))
            rows.append(_row(6, _block(col + 3, c2) + _block(col + 6, c1)))
            rows.append(_row(3, _block(col, 2 * c0)))
            rows.append(_row(3, _block(col + 3, 2 * c1)))
            rows.append(_row(3, _block(col + 6, 2 * c2)))

        sqrt_reg = math.sqrt(self.W_REG)
        for node in self._nodes:
            col = node.id * NUM_VARIABLES - back_set
            for n in node.neighbours:
                neighbour = self._nodes[n]
                if not (neighbour.enabled or node.enabled):
                    continue
                delta = neighbour.position - node.position
                col_n = neighbour.id * NUM_VARIABLES - back_set
                for axis in range(3):
                    entries = []
                    if col_n < col and neighbour.enabled:
                        entries.append((col_n + 9 + axis, -sqrt_reg))
                    if node.enabled:
                        entries.extend(
                            [
                                (col + axis, delta[0] * sqrt_reg),
                                (col + 3 + axis, delta[1] * sqrt_reg),
                                (col + 6 + axis, delta[2] * sqrt_reg),
                                (col + 9 + axis, sqrt_reg),
                            ]
                        )
                    if col_n > col and neighbour.enabled:
                        entries.append((col_n + 9 + axis, -sqrt_reg))
                    rows.append(_row(5, entries))

        sqrt_con = math.sqrt(self.W_CON)
        for constraint in self._constraints:
            if not self._node_influences(constraint):
                continue
            source = np.asarray(self._source[constraint.vertex_id], dtype=np.float64).reshape(3)
            block_rows = [OrderedJacobianRow(4 * self.k * 2) for _ in range(E_CON_ROWS)]
            weights = self._vertex_map[constraint.vertex_id]

            if constraint.relative:
                target = np.asarray(
                    self._source[constraint.target_id], dtype=np.float64
                ).reshape(3)
                relative_weights = self._vertex_map[constraint.target_id]
                for w in relative_weights:
                    w.relative = True
                mixed = sort_weights(list(weights) + list(relative_weights), self._nodes)
            else:
                target = None
                mixed = weights

            seen: set[int] = set()
            for w in mixed:
                node = self._nodes[w.node]
                if not node.enabled:
                    continue
                col = node.id * NUM_VARIABLES - back_set
                if constraint.relative and w.relative:
                    delta = (node.position - target) * w.weight
                    coefficient = -w.weight
                else:
                    delta = (source - node.position) * w.weight
                    coefficient = w.weight
                for axis, row in enumerate(block_rows):
                    entries = (
                        (col + axis, delta[0]),
                        (col + 3 + axis, delta[1]),
                        (col + 6 + axis, delta[2]),
                        (col + 9 + axis, coefficient),
                    )
                    for index, value in entries:
                        if node.id in seen:
                            row.add_to(index, value, sqrt_con)
                        else:
                            row.append(index, value * sqrt_con)
                seen.add(node.id)

            rows.extend(block_rows)

        jacobian = Jacobian()
        jacobian.assign(rows, num_cols)
        return jacobian

    def _apply_delta(self, delta: np.ndarray) -> None:
        z = 0
        for node in self._nodes:
            if node.enabled:
                node.rotation = node.rotation + delta[z : z + 9].reshape(3, 3, order="F")
                node.translation = node.translation + delta[z + 9 : z + 12]
                z += NUM_VARIABLES

    def optimise_graph_sparse(self, fern_match: bool, last_deform_time: int) -> OptimisationResult:
        """Gauss-Newton optimise nodes newer than ``last_deform_time`` against the constraints.

        A place-recognition match (``fern_match``) whose constraints are
        already nearly met is left alone.
        """
        self._require_init()

        with Stopwatch.get_instance().measure("opt"):
            mean_error = self._non_relative_constraint_error()
            if fern_match and mean_error < FERN_SKIP_ERROR:
                return OptimisationResult(False, None, mean_error)

            for node, time in zip(self._nodes, self._times):
                node.enabled = time > last_deform_time
            num_cols = NUM_VARIABLES * sum(node.enabled for node in self._nodes)
            back_set = NUM_VARIABLES * len(self._nodes) - num_cols

            residual = self._residual()
            jacobian = self._jacobian(num_cols, back_set)
            error = float(residual @ residual)
            last_error = error

            try:
                for iteration in range(1, MAX_ITERATIONS + 1):
                    delta = self._cholesky.solve(jacobian, -residual, iteration == 1)
                    self._apply_delta(delta)

                    residual = self._residual()
                    error = float(residual @ residual)
                    error_diff = error - last_error

                    if (
                        error > last_error
                        or np.linalg.norm(delta) < 1e-2
                        or error < 1e-3
                        or abs(error_diff) < 1e-5 * error
                        or (iteration == 1 and fern_match and error > 10.0)
                    ):
                        break

                    last_error = error
                    jacobian = self._jacobian(num_cols, back_set)
            finally:
                if self._cholesky.has_factor:
                    self._cholesky.free_factor()

            mean_error = self._non_relative_constraint_error()

        return OptimisationResult(True, error, mean_error)