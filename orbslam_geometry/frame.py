"""A camera frame: keypoints, calibration, the feature grid, depth and pose."""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass, replace

import numpy as np

from orbslam_geometry.two_view import KeyPoint

GRID_COLS = 64
GRID_ROWS = 48

_UNDISTORT_ITERATIONS = 5


@dataclass(frozen=True)
class ImageBounds:
    """Extent of the undistorted image in pixels."""

    min_x: float
    max_x: float
    min_y: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


def _round_half_away(value: float) -> int:
    magnitude = int(math.floor(abs(value) + 0.5))
    return magnitude if value >= 0 else -magnitude


def _distortion(dist_coef) -> np.ndarray:
    d = np.asarray(dist_coef, dtype=np.float64).reshape(-1)
    if d.size not in (4, 5, 8):
        raise ValueError("distortion needs 4, 5 or 8 coefficients")
    k = np.zeros(8)
    k[: d.size] = d
    return k


def undistort_points(points, K, dist_coef) -> np.ndarray:
    """Remove lens distortion from pixel points and reproject them with K.

    ``points`` is N x 2; the result is N x 2 in double precision.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    K = np.asarray(K, dtype=np.float64).reshape(3, 3)
    k1, k2, p1, p2, k3, k4, k5, k6 = _distortion(dist_coef)
    fx, fy, cx, cy = K[0, 0], K[1, 1], K[0, 2], K[1, 2]

    x0 = (pts[:, 0] - cx) / fx
    y0 = (pts[:, 1] - cy) / fy
    x, y = x0.copy(), y0.copy()
    for _ in range(_UNDISTORT_ITERATIONS):
        r2 = x * x + y * y
        icdist = (1 + ((k6 * r2 + k5) * r2 + k4) * r2) / (1 + ((k3 * r2 + k2) * r2 + k1) * r2)
        dx = 2 * p1 * x * y + p2 * (r2 + 2 * x * x)
        dy = p1 * (r2 + 2 * y * y) + 2 * p2 * x * y
        x = (x0 - dx) * icdist
        y = (y0 - dy) * icdist
    return np.column_stack([x * fx + cx, y * fy + cy])


def compute_image_bounds(width, height, K, dist_coef) -> ImageBounds:
    """Bounds of the image once its corners are undistorted."""
    k = _distortion(dist_coef)
    if k[0] != 0.0:
        corners = np.array(
            [[0.0, 0.0], [width, 0.0], [0.0, height], [width, height]], dtype=np.float64
        )
        c = undistort_points(corners, K, dist_coef).astype(np.float32)
        return ImageBounds(
            float(min(c[0, 0], c[2, 0])),
            float(max(c[1, 0], c[3, 0])),
            float(min(c[0, 1], c[1, 1])),
            float(max(c[2, 1], c[3, 1])),
        )
    return ImageBounds(0.0, float(width), 0.0, float(height))


class Frame:
    """Keypoints of one image with calibration, feature grid, stereo depth and pose.

    ``image_size`` is ``(width, height)``.  When ``depth`` (a depth image in
    the same units as the baseline) is given, keypoints get depths and
    virtual right coordinates from it; otherwise both are -1.
    """

    _ids = itertools.count()

    def __init__(
        self,
        keypoints,
        descriptors,
        timestamp,
        K,
        dist_coef,
        bf,
        th_depth,
        image_size,
        depth=None,
    ):
        self.id = next(Frame._ids)
        self.timestamp = float(timestamp)
        self.K = np.asarray(K, dtype=np.float32).reshape(3, 3).copy()
        self.dist_coef = np.asarray(dist_coef, dtype=np.float32).reshape(-1).copy()
        self.bf = float(bf)
        self.th_depth = float(th_depth)
        self.keys: list[KeyPoint] = list(keypoints)
        self.descriptors = None if descriptors is None else np.array(descriptors, copy=True)
        self.n = len(self.keys)

        self.fx = float(self.K[0, 0])
        self.fy = float(self.K[1, 1])
        self.cx = float(self.K[0, 2])
        self.cy = float(self.K[1, 2])
        self.invfx = 1.0 / self.fx
        self.invfy = 1.0 / self.fy
        self.b = self.bf / self.fx

        width, height = image_size
        self.bounds = compute_image_bounds(width, height, self.K, self.dist_coef)
        self.grid_element_width_inv = GRID_COLS / self.bounds.width
        self.grid_element_height_inv = GRID_ROWS / self.bounds.height

        self.keys_un = self._undistort_keypoints()
        self.map_points: list = [None] * self.n
        self.outliers: list[bool] = [False] * self.n

        if depth is not None:
            self.compute_stereo_from_rgbd(depth)
        else:
            self.u_right = [-1.0] * self.n
            self.depths = [-1.0] * self.n

        self.grid: list[list[list[int]]] = []
        self.assign_features_to_grid()

        self.Tcw: np.ndarray | None = None
        self.Rcw: np.ndarray | None = None
        self.Rwc: np.ndarray | None = None
        self.tcw: np.ndarray | None = None
        self.Ow: np.ndarray | None = None

    def _undistort_keypoints(self) -> list[KeyPoint]:
        if self.dist_coef[0] == 0.0 or not self.keys:
            return list(self.keys)
        pts = np.array([[kp.x, kp.y] for kp in self.keys], dtype=np.float32)
        undistorted = undistort_points(pts, self.K, self.dist_coef).astype(np.float32)
        return [
            replace(kp, x=float(u), y=float(v))
            for kp, (u, v) in zip(self.keys, undistorted)
        ]

    def assign_features_to_grid(self) -> None:
        """Distribute undistorted keypoint indices over the grid cells."""
        self.grid = [[[] for _ in range(GRID_ROWS)] for _ in range(GRID_COLS)]
        for i, kp in enumerate(self.keys_un):
            cell = self.pos_in_grid(kp)
            if cell is not None:
                self.grid[cell[0]][cell[1]].append(i)

    def pos_in_grid(self, kp) -> tuple[int, int] | None:
        """Grid cell of a keypoint, or None when it falls outside the image."""
        pos_x = _round_half_away((kp.x - self.bounds.min_x) * self.grid_element_width_inv)
        pos_y = _round_half_away((kp.y - self.bounds.min_y) * self.grid_element_height_inv)
        if pos_x < 0 or pos_x >= GRID_COLS or pos_y < 0 or pos_y >= GRID_ROWS:
            return None
        return pos_x, pos_y

    def get_features_in_area(self, x, y, r, min_level=-1, max_level=-1) -> list[int]:
        """Indices of keypoints within a square of half-side ``r`` around (x, y).

        Keypoints may be restricted to pyramid levels ``min_level`` to
        ``max_level``; a negative ``max_level`` sets no upper bound.
        """
        b = self.bounds
        min_cell_x = max(0, math.floor((x - b.min_x - r) * self.grid_element_width_inv))
        if min_cell_x >= GRID_COLS:
            return []
        max_cell_x = min(GRID_COLS - 1, math.ceil((x - b.min_x + r) * self.grid_element_width_inv))
        if max_cell_x < 0:
            return []
        min_cell_y = max(0, math.floor((y - b.min_y - r) * self.grid_element_height_inv))
        if min_cell_y >= GRID_ROWS:
            return []
        max_cell_y = min(GRID_ROWS - 1, math.ceil((y - b.min_y + r) * self.grid_element_height_inv))
        if max_cell_y < 0:
            return []

        check_levels = min_level > 0 or max_level >= 0
        found: list[int] = []
        for ix in range(min_cell_x, max_cell_x + 1):
            for iy in range(min_cell_y, max_cell_y + 1):
                for index in self.grid[ix][iy]:
                    kp = self.keys_un[index]
                    if check_levels:
                        if kp.octave < min_level:
                            continue
                        if max_level >= 0 and kp.octave > max_level:
                            continue
                    if abs(kp.x - x) < r and abs(kp.y - y) < r:
                        found.append(index)
        return found

    def set_pose(self, Tcw) -> None:
        """Set the world-to-camera pose and derive rotation, translation and centre."""
        self.Tcw = np.array(Tcw, dtype=np.float32).reshape(4, 4)
        self.Rcw = self.Tcw[:3, :3].copy()
        self.Rwc = self.Rcw.T.copy()
        self.tcw = self.Tcw[:3, 3].copy()
        self.Ow = -self.Rcw.T @ self.tcw

    def unproject_stereo(self, i) -> np.ndarray | None:
        """World position of keypoint ``i`` from its depth, or None without depth."""
        z = self.depths[i]
        if not z > 0:
            return None
        if self.Tcw is None:
            raise RuntimeError("frame pose is not set")
        kp = self.keys_un[i]
        x = (kp.x - self.cx) * z * self.invfx
        y = (kp.y - self.cy) * z * self.invfy
        point_c = np.array([x, y, z], dtype=np.float32)
        return self.Rwc @ point_c + self.Ow

    def compute_stereo_from_rgbd(self, depth) -> None:
        """Read each keypoint's depth and derive a virtual right-image coordinate."""
        image = np.asarray(depth, dtype=np.float32)
        self.u_right = [-1.0] * self.n
        self.depths = [-1.0] * self.n
        for i, (kp, kp_un) in enumerate(zip(self.keys, self.keys_un)):
            d = float(image[int(kp.y), int(kp.x)])
            if d > 0:
                self.depths[i] = d
                self.u_right[i] = kp_un.x - self.bf / d

    def copy(self) -> Frame:
        """Independent copy sharing the id, keypoints and calibration."""
        other = object.__new__(Frame)
        other.__dict__.update(self.__dict__)
        other.K = self.K.copy()
        other.dist_coef = self.dist_coef.copy()
        other.descriptors = None if self.descriptors is None else self.descriptors.copy()
        other.keys = list(self.keys)
        other.keys_un = list(self.keys_un)
        other.map_points = list(self.map_points)
        other.outliers = list(self.outliers)
        other.u_right = list(self.u_right)
        other.depths = list(self.depths)
        other.grid = [[list(cell) for cell in column] for column in self.grid]
        other.Tcw = other.Rcw = other.Rwc = other.tcw = other.Ow = None
        if self.Tcw is not None:
            other.set_pose(self.Tcw)
        return other