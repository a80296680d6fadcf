"""Conversions between pose representations, matrices, vectors and quaternions."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


def _quaternion_from_matrix(m: np.ndarray) -> np.ndarray:
    """Return the quaternion (x, y, z, w) of a 3x3 rotation matrix, unnormalised."""
    m = np.asarray(m, dtype=np.float64)
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    q = np.zeros(4)
    if trace > 0.0:
        t = np.sqrt(trace + 1.0)
        q[3] = 0.5 * t
        t = 0.5 / t
        q[0] = (m[2, 1] - m[1, 2]) * t
        q[1] = (m[0, 2] - m[2, 0]) * t
        q[2] = (m[1, 0] - m[0, 1]) * t
    else:
        i = 0
        if m[1, 1] > m[0, 0]:
            i = 1
        if m[2, 2] > m[i, i]:
            i = 2
        j = (i + 1) % 3
        k = (j + 1) % 3
        t = np.sqrt(m[i, i] - m[j, j] - m[k, k] + 1.0)
        q[i] = 0.5 * t
        t = 0.5 / t
        q[3] = (m[k, j] - m[j, k]) * t
        q[j] = (m[j, i] + m[i, j]) * t
        q[k] = (m[k, i] + m[i, k]) * t
    return q


def _matrix_from_quaternion(q: np.ndarray) -> np.ndarray:
    """Return the rotation matrix of a unit quaternion (x, y, z, w)."""
    x, y, z, w = q
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
            [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
            [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
        ],
        dtype=np.float64,
    )


@dataclass(eq=False)
class SE3Quat:
    """Rigid transformation stored as a unit quaternion and a translation."""

    rotation: np.ndarray
    translation: np.ndarray
    quaternion: np.ndarray = field(init=False)

    def __post_init__(self) -> None:
        q = _quaternion_from_matrix(self.rotation)
        self.quaternion = q / np.linalg.norm(q)
        self.rotation = _matrix_from_quaternion(self.quaternion)
        self.translation = np.asarray(self.translation, dtype=np.float64).reshape(3)

    def to_homogeneous_matrix(self) -> np.ndarray:
        """Return the 4x4 homogeneous matrix in double precision."""
        T = np.eye(4)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T


@dataclass(eq=False)
class Sim3:
    """Similarity transformation: rotation matrix, translation and scale."""

    rotation: np.ndarray
    translation: np.ndarray
    scale: float = 1.0

    def __post_init__(self) -> None:
        self.rotation = np.asarray(self.rotation, dtype=np.float64).reshape(3, 3)
        self.translation = np.asarray(self.translation, dtype=np.float64).reshape(3)
        self.scale = float(self.scale)


def to_descriptor_vector(descriptors) -> list[np.ndarray]:
    """Split a descriptor matrix into a list of its rows."""
    return list(np.atleast_2d(np.asarray(descriptors)))


def to_se3_quat(T) -> SE3Quat:
    """Build an SE3Quat from a 4x4 (or 3x4) single precision pose matrix."""
    m = np.asarray(T, dtype=np.float32).astype(np.float64)
    return SE3Quat(m[:3, :3], m[:3, 3])


def se3_to_matrix(se3: SE3Quat) -> np.ndarray:
    """Return the 4x4 single precision matrix of an SE3Quat."""
    return se3.to_homogeneous_matrix().astype(np.float32)


def sim3_to_matrix(sim3: Sim3) -> np.ndarray:
    """Return the 4x4 single precision matrix [sR | t] of a Sim3."""
    return to_se3_matrix(sim3.scale * sim3.rotation, sim3.translation)


def to_se3_matrix(R, t) -> np.ndarray:
    """Assemble a 4x4 single precision pose matrix from R and t."""
    T = np.eye(4, dtype=np.float32)
    T[:3, :3] = np.asarray(R, dtype=np.float64).reshape(3, 3)
    T[:3, 3] = np.asarray(t, dtype=np.float64).reshape(3)
    return T


def to_vector3d(v) -> np.ndarray:
    """Return a double precision 3-vector from a matrix or a point with x, y, z."""
    if all(hasattr(v, name) for name in ("x", "y", "z")):
        values = [v.x, v.y, v.z]
    else:
        values = np.asarray(v, dtype=np.float32).reshape(-1)[:3]
    if len(values) < 3:
        raise ValueError("a 3-vector needs at least three elements")
    return np.asarray(values, dtype=np.float64)


def to_matrix3d(m) -> np.ndarray:
    """Return the top-left 3x3 block of a single precision matrix in double precision."""
    a = np.asarray(m, dtype=np.float32)
    if a.ndim != 2 or a.shape[0] < 3 or a.shape[1] < 3:
        raise ValueError("matrix must be at least 3x3")
    return a[:3, :3].astype(np.float64)


def to_quaternion(m) -> list[float]:
    """Return the quaternion [x, y, z, w] of a rotation matrix as single precision values."""
    q = _quaternion_from_matrix(to_matrix3d(m))
    return [float(value) for value in q.astype(np.float32)]