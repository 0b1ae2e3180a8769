"""Rotation-vector and SE(3) update helpers used by the odometry solvers."""

from __future__ import annotations

import numpy as np

_EPS = np.finfo(np.float64).eps


def rodrigues(src) -> np.ndarray:
    """Convert an axis-angle vector into a 3x3 rotation matrix."""
    vec = np.asarray(src, dtype=np.float64).reshape(-1)
    if vec.shape != (3,):
        raise ValueError("rotation vector must have three components")
    theta = float(np.linalg.norm(vec))
    if theta < _EPS:
        return np.eye(3)
    rx, ry, rz = vec / theta
    c = np.cos(theta)
    s = np.sin(theta)
    rrt = np.outer((rx, ry, rz), (rx, ry, rz))
    skew = np.array([[0.0, -rz, ry], [rz, 0.0, -rx], [-ry, rx, 0.0]])
    return c * np.eye(3) + (1.0 - c) * rrt + s * skew


def compute_update_se3(result_rt, result) -> tuple[np.ndarray, np.ndarray]:
    """Left-compose a 6-vector twist onto ``result_rt``.

    ``result`` holds the translation in its first three entries and a
    rotation vector in the last three. Returns the new accumulated 4x4
    transform and the same transform as a single-precision isometry.
    """
    accumulated = np.asarray(result_rt, dtype=np.float64)
    twist = np.asarray(result, dtype=np.float64).reshape(-1)
    if accumulated.shape != (4, 4):
        raise ValueError("accumulated transform must be 4x4")
    if twist.shape != (6,):
        raise ValueError("update must have six components")

    step = np.eye(4)
    step[:3, :3] = rodrigues(twist[3:])
    step[:3, 3] = twist[:3]
    updated = step @ accumulated

    odometry = np.eye(4, dtype=np.float32)
    odometry[:3, :3] = updated[:3, :3].astype(np.float32)
    odometry[:3, 3] = updated[:3, 3].astype(np.float32)
    return updated, odometry