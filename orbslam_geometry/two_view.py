"""Two-view geometry: normalisation, homography and fundamental estimation,
triangulation, essential matrix decomposition and motion hypothesis checks."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

PARALLAX_COS_LIMIT = 0.99998


@dataclass(frozen=True)
class KeyPoint:
    """Image keypoint: pixel position and pyramid level."""

    x: float
    y: float
    octave: int = 0


@dataclass
class RTCheck:
    """Outcome of testing one motion hypothesis against the matches."""

    n_good: int
    points: np.ndarray
    good: list[bool]
    parallax: float


def _xy(points) -> np.ndarray:
    if isinstance(points, np.ndarray):
        return np.asarray(points, dtype=np.float64).reshape(-1, 2)
    return np.array([[p.x, p.y] for p in points], dtype=np.float64).reshape(-1, 2)


def normalize(points) -> tuple[np.ndarray, np.ndarray]:
    """Centre points and scale them to unit mean absolute deviation.

    Returns the normalised points (N x 2) and the 3x3 transform T that maps
    homogeneous original points onto them.
    """
    pts = _xy(points)
    if len(pts) == 0:
        raise ValueError("cannot normalise an empty point set")
    mean = pts.mean(axis=0)
    centred = pts - mean
    deviation = np.abs(centred).mean(axis=0)
    with np.errstate(divide="ignore", invalid="ignore"):
        scale = 1.0 / deviation
        normalized = centred * scale
    T = np.eye(3)
    T[0, 0], T[1, 1] = scale
    T[0, 2] = -mean[0] * scale[0]
    T[1, 2] = -mean[1] * scale[1]
    return normalized, T


def _pairs(p1, p2) -> tuple[np.ndarray, np.ndarray]:
    a, b = _xy(p1), _xy(p2)
    if len(a) != len(b):
        raise ValueError("point sets must have the same length")
    return a, b


def compute_h21(p1, p2) -> np.ndarray:
    """Direct linear estimate of the homography mapping points of view 1 onto view 2."""
    a, b = _pairs(p1, p2)
    rows = []
    for (u1, v1), (u2, v2) in zip(a, b):
        rows.append([0.0, 0.0, 0.0, -u1, -v1, -1.0, v2 * u1, v2 * v1, v2])
        rows.append([u1, v1, 1.0, 0.0, 0.0, 0.0, -u2 * u1, -u2 * v1, -u2])
    _, _, vt = np.linalg.svd(np.array(rows), full_matrices=True)
    return vt[8].reshape(3, 3)


def compute_f21(p1, p2) -> np.ndarray:
    """Eight-point estimate of the fundamental matrix with rank 2 enforced."""
    a, b = _pairs(p1, p2)
    rows = [
        [u2 * u1, u2 * v1, u2, v2 * u1, v2 * v1, v2, u1, v1, 1.0]
        for (u1, v1), (u2, v2) in zip(a, b)
    ]
    _, _, vt = np.linalg.svd(np.array(rows), full_matrices=True)
    f_pre = vt[8].reshape(3, 3)
    u, w, vt = np.linalg.svd(f_pre)
    w[2] = 0.0
    return u @ np.diag(w) @ vt


def triangulate(kp1, kp2, P1, P2) -> np.ndarray:
    """Linear triangulation of a match from two 3x4 projection matrices."""
    P1 = np.asarray(P1, dtype=np.float64)
    P2 = np.asarray(P2, dtype=np.float64)
    A = np.vstack(
        [
            kp1.x * P1[2] - P1[0],
            kp1.y * P1[2] - P1[1],
            kp2.x * P2[2] - P2[0],
            kp2.y * P2[2] - P2[1],
        ]
    )
    _, _, vt = np.linalg.svd(A)
    x = vt[3]
    with np.errstate(divide="ignore", invalid="ignore"):
        return x[:3] / x[3]


def decompose_e(E) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split an essential matrix into its two rotations and unit translation."""
    u, _, vt = np.linalg.svd(np.asarray(E, dtype=np.float64))
    t = u[:, 2] / np.linalg.norm(u[:, 2])
    W = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    R1 = u @ W @ vt
    if np.linalg.det(R1) < 0:
        R1 = -R1
    R2 = u @ W.T @ vt
    if np.linalg.det(R2) < 0:
        R2 = -R2
    return R1, R2, t


def _reprojection_error(K, p, kp) -> float:
    fx, fy, cx, cy = K[0, 0], K[1, 1], K[0, 2], K[1, 2]
    with np.errstate(divide="ignore", invalid="ignore"):
        inv_z = 1.0 / p[2]
        ix = fx * p[0] * inv_z + cx
        iy = fy * p[1] * inv_z + cy
        return float((ix - kp.x) ** 2 + (iy - kp.y) ** 2)


def check_rt(R, t, keys1, keys2, matches, inliers, K, th2) -> RTCheck:
    """Triangulate inlier matches under motion (R, t) and count the consistent ones.

    ``matches`` holds (index in keys1, index in keys2) pairs and ``inliers``
    one flag per match.  Points are indexed like ``keys1``.
    """
    K = np.asarray(K, dtype=np.float64)
    R = np.asarray(R, dtype=np.float64).reshape(3, 3)
    t = np.asarray(t, dtype=np.float64).reshape(3)

    good = [False] * len(keys1)
    points = np.zeros((len(keys1), 3))
    cos_parallaxes: list[float] = []

    P1 = np.zeros((3, 4))
    P1[:, :3] = K
    P2 = K @ np.hstack([R, t[:, None]])
    O2 = -R.T @ t

    n_good = 0
    for (i1, i2), inlier in zip(matches, inliers):
        if not inlier:
            continue
        kp1, kp2 = keys1[i1], keys2[i2]
        p3d = triangulate(kp1, kp2, P1, P2)
        if not np.all(np.isfinite(p3d)):
            good[i1] = False
            continue

        normal2 = p3d - O2
        with np.errstate(divide="ignore", invalid="ignore"):
            cos_parallax = float(
                np.dot(p3d, normal2) / (np.linalg.norm(p3d) * np.linalg.norm(normal2))
            )

        if p3d[2] <= 0 and cos_parallax < PARALLAX_COS_LIMIT:
            continue
        p3d_c2 = R @ p3d + t
        if p3d_c2[2] <= 0 and cos_parallax < PARALLAX_COS_LIMIT:
            continue
        if _reprojection_error(K, p3d, kp1) > th2:
            continue
        if _reprojection_error(K, p3d_c2, kp2) > th2:
            continue

        cos_parallaxes.append(cos_parallax)
        points[i1] = p3d
        n_good += 1
        if cos_parallax < PARALLAX_COS_LIMIT:
            good[i1] = True

    if n_good > 0:
        cos_parallaxes.sort()
        chosen = cos_parallaxes[min(50, len(cos_parallaxes) - 1)]
        parallax = math.degrees(math.acos(max(-1.0, min(1.0, chosen))))
    else:
        parallax = 0.0
    return RTCheck(n_good, points, good, parallax)