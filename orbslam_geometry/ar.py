"""Plane detection and plane anchoring for placing virtual objects in a tracked map."""

from __future__ import annotations

import math
import random
import threading
from dataclasses import dataclass, field

import numpy as np

from orbslam_geometry.frame_drawer import TrackingState

EPS = 1e-4
MIN_PLANE_POINTS = 50
MIN_OBSERVATIONS = 5
RED = (255, 0, 0)
GREEN = (0, 255, 0)
UP = np.array([0.0, 1.0, 0.0])


def exp_so3(x, y, z) -> np.ndarray:
    """Rotation matrix of the rotation vector (x, y, z)."""
    identity = np.eye(3)
    d2 = x * x + y * y + z * z
    d = math.sqrt(d2)
    W = np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])
    if d < EPS:
        return identity + W + 0.5 * (W @ W)
    return identity + W * math.sin(d) / d + (W @ W) * (1.0 - math.cos(d)) / d2


def _random_angle(rng=None) -> float:
    source = rng if rng is not None else random.Random()
    return -3.14 / 2 + source.random() * 3.14


def _plane_pose(n: np.ndarray, o: np.ndarray, rang: float) -> np.ndarray:
    """Pose whose y axis is the normal ``n``, turned by ``rang`` about it, placed at ``o``."""
    v = np.cross(UP, n)
    sa = float(np.linalg.norm(v))
    ca = float(np.dot(UP, n))
    angle = math.atan2(sa, ca)
    if sa > 0.0:
        axis = v * angle / sa
    elif ca >= 0.0:
        axis = np.zeros(3)
    else:
        axis = np.array([math.pi, 0.0, 0.0])
    Tpw = np.eye(4)
    Tpw[:3, :3] = exp_so3(*axis) @ exp_so3(*(UP * rang))
    Tpw[:3, 3] = o
    return Tpw


class Plane:
    """A plane fitted to world points, with a pose that places objects on it.

    ``points`` holds 3D world positions; entries that are None count as
    discarded points and are ignored.  ``Tcw`` is the camera pose when the
    plane was first seen; the normal is oriented towards that camera's side.
    """

    def __init__(self, points, Tcw, rang=None):
        self.points = [None if p is None else np.asarray(p, dtype=np.float64).reshape(3)
                       for p in points]
        self.Tcw = np.array(Tcw, dtype=np.float64).reshape(4, 4)
        self.rang = _random_angle() if rang is None else float(rang)
        self.XC: np.ndarray | None = None
        self.n = np.zeros(3)
        self.o = np.zeros(3)
        self.Tpw = np.eye(4)
        self.recompute()

    @classmethod
    def from_normal(cls, normal, origin, rang=None) -> Plane:
        """Plane given directly by its normal and origin."""
        plane = cls.__new__(cls)
        plane.points = []
        plane.Tcw = None
        plane.XC = None
        plane.rang = _random_angle() if rang is None else float(rang)
        plane.n = np.asarray(normal, dtype=np.float64).reshape(3).copy()
        plane.o = np.asarray(origin, dtype=np.float64).reshape(3).copy()
        plane.Tpw = _plane_pose(plane.n, plane.o, plane.rang)
        return plane

    @property
    def gl_matrix(self) -> np.ndarray:
        """The plane pose as 16 values in column-major order."""
        return self.Tpw.flatten(order="F")

    def recompute(self) -> None:
        """Refit the plane to the current positions of its points."""
        valid = [p for p in self.points if p is not None]
        if len(valid) < 3:
            raise ValueError("a plane needs at least three points")
        if self.Tcw is None:
            raise ValueError("plane has no reference camera pose")
        X = np.array(valid, dtype=np.float64)
        A = np.hstack([X, np.ones((len(X), 1))])
        _, _, vt = np.linalg.svd(A, full_matrices=True)
        a, b, c = vt[3, :3]

        self.o = X.mean(axis=0)
        f = 1.0 / math.sqrt(a * a + b * b + c * c)

        if self.XC is None:
            R = self.Tcw[:3, :3]
            t = self.Tcw[:3, 3]
            camera_centre = -R.T @ t
            self.XC = camera_centre - self.o

        if self.XC[0] * a + self.XC[1] * b + self.XC[2] * c > 0:
            a, b, c = -a, -b, -c

        self.n = np.array([a * f, b * f, c * f])
        self.Tpw = _plane_pose(self.n, self.o, self.rang)


def detect_plane(Tcw, points, observations, iterations=50, rng=None) -> Plane | None:
    """Find the dominant plane among well observed map points by RANSAC.

    ``points`` holds world positions (None where there is no map point) and
    ``observations`` the number of observations of each.  Returns None when
    fewer than 50 points are observed more than five times.
    """
    points = list(points)
    observations = list(observations)
    if len(points) != len(observations):
        raise ValueError("points and observations must have the same length")
    rng = rng if rng is not None else random.Random()

    selected = [
        np.asarray(p, dtype=np.float64).reshape(3)
        for p, count in zip(points, observations)
        if p is not None and count > MIN_OBSERVATIONS
    ]
    n = len(selected)
    if n < MIN_PLANE_POINTS:
        return None
    X = np.array(selected)

    best_dist = 1e10
    best_distances = None
    nth = max(int(0.2 * n), 20)
    for _ in range(iterations):
        sample = rng.sample(range(n), 3)
        A = np.hstack([X[sample], np.ones((3, 1))])
        _, _, vt = np.linalg.svd(A, full_matrices=True)
        a, b, c, d = vt[3]
        f = 1.0 / math.sqrt(a * a + b * b + c * c + d * d)
        distances = np.abs(X @ np.array([a, b, c]) + d) * f
        median = float(np.sort(distances)[nth])
        if median < best_dist:
            best_dist = median
            best_distances = distances

    if best_distances is None:
        return None
    threshold = 1.4 * best_dist
    inliers = [p for p, dist in zip(selected, best_distances) if dist < threshold]
    return Plane(inliers, Tcw, _random_angle(rng))


def status_text(status, localization_mode=False) -> tuple[str, tuple[int, int, int]] | None:
    """Overlay text and its colour for a tracking status, or None for other states."""
    try:
        state = TrackingState(status)
    except ValueError:
        return None
    mode = "LOCALIZATION" if localization_mode else "SLAM"
    if state == TrackingState.NOT_INITIALIZED:
        return "SLAM NOT INITIALIZED", RED
    if state == TrackingState.OK:
        return f"{mode} ON", GREEN
    if state == TrackingState.LOST:
        return f"{mode} LOST", RED
    return None


@dataclass
class PoseImage:
    """A snapshot of the last processed image and the pose tracked for it."""

    image: np.ndarray | None = None
    Tcw: np.ndarray | None = None
    status: int = 0
    keys: list = field(default_factory=list)
    map_points: list = field(default_factory=list)


def _copy(array):
    return None if array is None else np.array(array, copy=True)


class PoseImageBuffer:
    """Thread-safe hand-over of the latest image, pose and tracked points."""

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot = PoseImage()

    def set(self, image, Tcw, status, keys, map_points) -> None:
        """Store copies of the latest image, pose, status, keypoints and map points."""
        snapshot = PoseImage(_copy(image), _copy(Tcw), int(status), list(keys), list(map_points))
        with self._lock:
            self._snapshot = snapshot

    def get(self) -> PoseImage:
        """Return a copy of the stored snapshot."""
        with self._lock:
            s = self._snapshot
            return PoseImage(_copy(s.image), _copy(s.Tcw), s.status, list(s.keys),
                             list(s.map_points))