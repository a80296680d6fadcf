"""Monocular map initialisation from two views.

A fundamental matrix (or a homography) is estimated by RANSAC over the
matches between a reference frame and the current frame, the relative
motion is recovered from it and the inlier matches are triangulated.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

import numpy as np

from orbslam_geometry.two_view import (
    check_rt,
    compute_f21,
    compute_h21,
    decompose_e,
    normalize,
)

HOMOGRAPHY_THRESHOLD = 5.991
FUNDAMENTAL_THRESHOLD = 3.841
FUNDAMENTAL_SCORE_THRESHOLD = 5.991
SET_SIZE = 8


@dataclass
class Reconstruction:
    """Motion from the reference to the current view and the triangulated points.

    ``points`` and ``triangulated`` are indexed like the reference keypoints.
    """

    R21: np.ndarray
    t21: np.ndarray
    points: np.ndarray
    triangulated: list[bool]


def _homogeneous(keys, indices) -> np.ndarray:
    if not indices:
        return np.zeros((0, 3))
    return np.array([[keys[i].x, keys[i].y, 1.0] for i in indices], dtype=np.float64)


class Initializer:
    """Two-view initialiser bound to a reference frame's undistorted keypoints."""

    def __init__(self, reference_keys, K, sigma=1.0, iterations=200):
        self.K = np.asarray(K, dtype=np.float64).reshape(3, 3).copy()
        self.keys1 = list(reference_keys)
        self.sigma = float(sigma)
        self.sigma2 = self.sigma * self.sigma
        self.max_iterations = int(iterations)
        self.keys2: list = []
        self.matches: list[tuple[int, int]] = []
        self.matched1: list[bool] = [False] * len(self.keys1)
        self.sets: list[list[int]] = []
        self._rng = random.Random(0)

    def _prepare(self, current_keys, matches12) -> None:
        self.keys2 = list(current_keys)
        matches12 = [int(m) for m in matches12]
        self.matches = [(i, m) for i, m in enumerate(matches12) if m >= 0]
        self.matched1 = [False] * len(self.keys1)
        for i, m in enumerate(matches12[: len(self.keys1)]):
            self.matched1[i] = m >= 0

        n = len(self.matches)
        if n < SET_SIZE:
            raise ValueError(f"at least {SET_SIZE} matches are needed, got {n}")
        self.sets = [self._rng.sample(range(n), SET_SIZE) for _ in range(self.max_iterations)]

    def initialize(self, current_keys, matches12) -> Reconstruction | None:
        """Recover motion and structure; ``matches12[i]`` is the current keypoint
        matched to reference keypoint ``i``, or negative for none.

        Returns None when the views do not allow a reliable initialisation.
        """
        self._prepare(current_keys, matches12)
        inliers, _score, F21 = self.find_fundamental()
        return self.reconstruct_f(inliers, F21, self.K, 1.0, 50)

    def _subset_points(self, subset, pn1, pn2) -> tuple[np.ndarray, np.ndarray]:
        idx1 = [self.matches[k][0] for k in subset]
        idx2 = [self.matches[k][1] for k in subset]
        return pn1[idx1], pn2[idx2]

    def find_homography(self):
        """RANSAC homography; returns (inliers, score, H21 or None)."""
        n = len(self.matches)
        pn1, T1 = normalize(self.keys1)
        pn2, T2 = normalize(self.keys2)
        T2inv = np.linalg.inv(T2)

        score = 0.0
        best_inliers = [False] * n
        H21 = None
        for subset in self.sets:
            p1, p2 = self._subset_points(subset, pn1, pn2)
            candidate = T2inv @ compute_h21(p1, p2) @ T1
            try:
                inverse = np.linalg.inv(candidate)
            except np.linalg.LinAlgError:
                continue
            current, inliers = self.check_homography(candidate, inverse, self.sigma)
            if current > score:
                H21 = candidate.copy()
                best_inliers = inliers
                score = current
        return best_inliers, score, H21

    def find_fundamental(self):
        """RANSAC fundamental matrix; returns (inliers, score, F21 or None)."""
        n = len(self.matches)
        pn1, T1 = normalize(self.keys1)
        pn2, T2 = normalize(self.keys2)
        T2t = T2.T

        score = 0.0
        best_inliers = [False] * n
        F21 = None
        for subset in self.sets:
            p1, p2 = self._subset_points(subset, pn1, pn2)
            candidate = T2t @ compute_f21(p1, p2) @ T1
            current, inliers = self.check_fundamental(candidate, self.sigma)
            if current > score:
                F21 = candidate.copy()
                best_inliers = inliers
                score = current
        return best_inliers, score, F21

    def _matched_points(self) -> tuple[np.ndarray, np.ndarray]:
        x1 = _homogeneous(self.keys1, [i for i, _ in self.matches])
        x2 = _homogeneous(self.keys2, [j for _, j in self.matches])
        return x1, x2

    def check_homography(self, H21, H12, sigma):
        """Symmetric transfer error score of a homography; returns (score, inliers)."""
        H21 = np.asarray(H21, dtype=np.float64)
        H12 = np.asarray(H12, dtype=np.float64)
        x1, x2 = self._matched_points()
        inv_sigma2 = 1.0 / (sigma * sigma)
        th = HOMOGRAPHY_THRESHOLD

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            x2in1 = x2 @ H12.T
            err1 = ((x1[:, :2] - x2in1[:, :2] / x2in1[:, 2:3]) ** 2).sum(axis=1)
            chi1 = err1 * inv_sigma2
            x1in2 = x1 @ H21.T
            err2 = ((x2[:, :2] - x1in2[:, :2] / x1in2[:, 2:3]) ** 2).sum(axis=1)
            chi2 = err2 * inv_sigma2

            ok1 = ~(chi1 > th)
            ok2 = ~(chi2 > th)
            score = float(np.sum(th - chi1[ok1]) + np.sum(th - chi2[ok2]))
        return score, [bool(v) for v in ok1 & ok2]

    def check_fundamental(self, F21, sigma):
        """Symmetric epipolar distance score of a fundamental matrix; returns (score, inliers)."""
        F21 = np.asarray(F21, dtype=np.float64)
        x1, x2 = self._matched_points()
        inv_sigma2 = 1.0 / (sigma * sigma)
        th = FUNDAMENTAL_THRESHOLD
        th_score = FUNDAMENTAL_SCORE_THRESHOLD

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            l2 = x1 @ F21.T
            num2 = (l2 * x2).sum(axis=1)
            chi1 = num2 * num2 / (l2[:, 0] ** 2 + l2[:, 1] ** 2) * inv_sigma2
            l1 = x2 @ F21
            num1 = (l1 * x1).sum(axis=1)
            chi2 = num1 * num1 / (l1[:, 0] ** 2 + l1[:, 1] ** 2) * inv_sigma2

            ok1 = ~(chi1 > th)
            ok2 = ~(chi2 > th)
            score = float(np.sum(th_score - chi1[ok1]) + np.sum(th_score - chi2[ok2]))
        return score, [bool(v) for v in ok1 & ok2]

    def reconstruct_f(self, inliers, F21, K, min_parallax=1.0, min_triangulated=50):
        """Recover motion from a fundamental matrix; None if no hypothesis clearly wins."""
        if F21 is None:
            return None
        n_inliers = sum(bool(v) for v in inliers)
        K = np.asarray(K, dtype=np.float64)
        E21 = K.T @ np.asarray(F21, dtype=np.float64) @ K
        R1, R2, t = decompose_e(E21)
        t1, t2 = t, -t

        th2 = 4.0 * self.sigma2
        hypotheses = [(R1, t1), (R2, t1), (R1, t2), (R2, t2)]
        checks = [
            check_rt(R, tt, self.keys1, self.keys2, self.matches, inliers, K, th2)
            for R, tt in hypotheses
        ]
        max_good = max(c.n_good for c in checks)
        min_good = max(int(0.9 * n_inliers), min_triangulated)
        n_similar = sum(1 for c in checks if c.n_good > 0.7 * max_good)

        if max_good < min_good or n_similar > 1:
            return None

        for (R, tt), check in zip(hypotheses, checks):
            if check.n_good == max_good:
                if check.parallax > min_parallax:
                    return Reconstruction(R.copy(), tt.copy(), check.points, check.good)
                return None
        return None

    def reconstruct_h(self, inliers, H21, K, min_parallax=1.0, min_triangulated=50):
        """Recover motion from a homography by testing its eight decompositions."""
        if H21 is None:
            return None
        n_inliers = sum(bool(v) for v in inliers)
        K = np.asarray(K, dtype=np.float64)
        A = np.linalg.inv(K) @ np.asarray(H21, dtype=np.float64) @ K

        U, w, Vt = np.linalg.svd(A)
        s = np.linalg.det(U) * np.linalg.det(Vt)
        d1, d2, d3 = (float(v) for v in w)

        with np.errstate(divide="ignore", invalid="ignore"):
            if d1 / d2 < 1.00001 or d2 / d3 < 1.00001:
                return None

        dd = d1 * d1 - d3 * d3
        aux1 = np.sqrt((d1 * d1 - d2 * d2) / dd)
        aux3 = np.sqrt((d2 * d2 - d3 * d3) / dd)
        x1 = [aux1, aux1, -aux1, -aux1]
        x3 = [aux3, -aux3, aux3, -aux3]
        root = np.sqrt((d1 * d1 - d2 * d2) * (d2 * d2 - d3 * d3))

        rotations: list[np.ndarray] = []
        translations: list[np.ndarray] = []

        # Case d' = d2.
        aux_stheta = root / ((d1 + d3) * d2)
        ctheta = (d2 * d2 + d1 * d3) / ((d1 + d3) * d2)
        stheta = [aux_stheta, -aux_stheta, -aux_stheta, aux_stheta]
        for a, b, st in zip(x1, x3, stheta):
            Rp = np.eye(3)
            Rp[0, 0] = ctheta
            Rp[0, 2] = -st
            Rp[2, 0] = st
            Rp[2, 2] = ctheta
            rotations.append(s * U @ Rp @ Vt)
            t = U @ (np.array([a, 0.0, -b]) * (d1 - d3))
            translations.append(t / np.linalg.norm(t))

        # Case d' = -d2.
        aux_sphi = root / ((d1 - d3) * d2)
        cphi = (d1 * d3 - d2 * d2) / ((d1 - d3) * d2)
        sphi = [aux_sphi, -aux_sphi, -aux_sphi, aux_sphi]
        for a, b, sp in zip(x1, x3, sphi):
            Rp = np.eye(3)
            Rp[0, 0] = cphi
            Rp[0, 2] = sp
            Rp[1, 1] = -1.0
            Rp[2, 0] = sp
            Rp[2, 2] = -cphi
            rotations.append(s * U @ Rp @ Vt)
            t = U @ (np.array([a, 0.0, b]) * (d1 + d3))
            translations.append(t / np.linalg.norm(t))

        th2 = 4.0 * self.sigma2
        best_good = 0
        second_best_good = 0
        best_index = -1
        best_check = None
        for index, (R, t) in enumerate(zip(rotations, translations)):
            check = check_rt(R, t, self.keys1, self.keys2, self.matches, inliers, K, th2)
            if check.n_good > best_good:
                second_best_good = best_good
                best_good = check.n_good
                best_index = index
                best_check = check
            elif check.n_good > second_best_good:
                second_best_good = check.n_good

        if (
            best_check is not None
            and second_best_good < 0.75 * best_good
            and best_check.parallax >= min_parallax
            and best_good > min_triangulated
            and best_good > 0.9 * n_inliers
        ):
            return Reconstruction(
                rotations[best_index].copy(),
                translations[best_index].copy(),
                best_check.points,
                best_check.good,
            )
        return None