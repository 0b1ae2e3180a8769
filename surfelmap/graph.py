"""Deformation graph building blocks: nodes, vertex weights and constraints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

LOOK_BACK = 20


def _identity() -> np.ndarray:
    return np.eye(3)


def _zeros() -> np.ndarray:
    return np.zeros(3)


@dataclass(eq=False)
class GraphNode:
    """A node of the deformation graph with its local affine transform."""

    id: int
    position: np.ndarray = field(default_factory=_zeros)
    rotation: np.ndarray = field(default_factory=_identity)
    translation: np.ndarray = field(default_factory=_zeros)
    neighbours: list = field(default_factory=list)
    enabled: bool = True

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=np.float64).reshape(3)
        self.rotation = np.asarray(self.rotation, dtype=np.float64).reshape(3, 3)
        self.translation = np.asarray(self.translation, dtype=np.float64).reshape(3)


@dataclass
class VertexWeight:
    """The influence of one graph node on a vertex or pose."""

    weight: float
    node: int
    relative: bool = False


@dataclass(eq=False)
class Constraint:
    """Pulls a vertex towards a fixed position or towards another vertex."""

    vertex_id: int
    target_position: np.ndarray = field(default_factory=_zeros)
    relative: bool = False
    target_id: int = -1

    def __post_init__(self) -> None:
        self.target_position = np.asarray(self.target_position, dtype=np.float64).reshape(3)

    @classmethod
    def absolute(cls, vertex_id: int, target) -> "Constraint":
        """A constraint towards a fixed point in space."""
        return cls(vertex_id, np.asarray(target, dtype=np.float64), False, -1)

    @classmethod
    def relative_to(cls, vertex_id: int, target_id: int) -> "Constraint":
        """A constraint towards the deformed position of another vertex."""
        return cls(vertex_id, _zeros(), True, target_id)


def sort_weights(weights: list, graph: Sequence[GraphNode]) -> list:
    """Stably sort ``weights`` in place by the id of the node each refers to."""
    weights.sort(key=lambda w: graph[w.node].id)
    return weights


def connect_sequential(nodes: Sequence[GraphNode], k: int) -> None:
    """Link each node to ``k`` neighbours chosen by sequence position.

    Nodes near either end are linked to the first or last ``k + 1`` nodes;
    the rest to the ``k // 2`` nodes on each side, nearest first.
    """
    size = len(nodes)
    half = k // 2
    if k < 1 or size < k + 1:
        raise ValueError(f"need at least {k + 1} nodes to connect with k={k}")

    for i in range(half):
        nodes[i].neighbours.extend(n for n in range(k + 1) if n != i)

    for i in range(half, size - half):
        for n in range(half):
            nodes[i].neighbours.append(i - (n + 1))
            nodes[i].neighbours.append(i + (n + 1))

    for i in range(size - half, size):
        nodes[i].neighbours.extend(n for n in range(size - (k + 1), size) if n != i)


def closest_time_index(times: Sequence[int], time: int) -> int:
    """Index of the entry of the sorted ``times`` closest to ``time``."""
    if not times:
        raise ValueError("no times to search")
    imin = 0
    imax = len(times) - 1
    imid = (imin + imax) // 2

    while imax >= imin:
        imid = (imin + imax) // 2
        if times[imid] < time:
            imin = imid + 1
        elif times[imid] > time:
            imax = imid - 1
        else:
            break

    imin = min(imin, len(times) - 1)
    imax = max(imax, 0)

    d_min = abs(int(times[imin]) - int(time))
    d_mid = abs(int(times[imid]) - int(time))
    d_max = abs(int(times[imax]) - int(time))

    if d_min <= d_mid and d_min <= d_max:
        return imin
    if d_mid <= d_min and d_mid <= d_max:
        return imid
    return imax


def nearest_node_weights(
    position,
    time: int,
    times: Sequence[int],
    positions: Sequence,
    nodes: Sequence[GraphNode],
    k: int,
) -> list:
    """Weights of the ``k`` nodes nearest ``position`` among those close in time.

    Candidates are up to twenty nodes walking back in time from the closest
    timestamp, then forward if fewer were found. Weights fall off with
    distance relative to the ``(k + 1)``-th nearest candidate and sum to one;
    the result is sorted by node id.
    """
    point = np.asarray(position, dtype=np.float64).reshape(3)
    found = closest_time_index(times, time)
    if found == len(positions):
        found = len(positions) - 1

    def distance(index: int) -> float:
        return float(np.linalg.norm(np.asarray(positions[index], dtype=np.float64) - point))

    near: list[tuple[float, int]] = []
    for j in range(found, -1, -1):
        near.append((distance(j), j))
        if len(near) == LOOK_BACK:
            break

    if len(near) != LOOK_BACK:
        for j in range(found + 1, len(times)):
            near.append((distance(j), j))
            if len(near) == LOOK_BACK:
                break

    near.sort(key=lambda item: item[0])

    if len(near) <= k:
        raise ValueError(f"need more than {k} candidate nodes, found {len(near)}")

    d_max = near[k][0]
    if d_max == 0:
        raise ValueError("candidate nodes coincide with the query position")

    weights = [
        VertexWeight(
            (1.0 - float(np.linalg.norm(point - nodes[index].position)) / d_max) ** 2,
            index,
        )
        for _, index in near[:k]
    ]
    total = sum(w.weight for w in weights)
    for w in weights:
        w.weight /= total

    return sort_weights(weights, nodes)