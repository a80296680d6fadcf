import numpy as np
import pytest

from orbslam_geometry.frame import (
    GRID_COLS,
    GRID_ROWS,
    Frame,
    ImageBounds,
    compute_image_bounds,
    undistort_points,
)
from orbslam_geometry.two_view import KeyPoint

K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]], dtype=np.float32)
NO_DIST = [0.0, 0.0, 0.0, 0.0]
SIZE = (640, 480)


def make_frame(keys, depth=None, bf=40.0, dist=NO_DIST):
    desc = np.zeros((len(keys), 32), dtype=np.uint8)
    return Frame(keys, desc, 1.5, K, dist, bf, 35.0, SIZE, depth)


def distort(points, dist):
    k1, k2, p1, p2 = dist
    x = (points[:, 0] - 320.0) / 500.0
    y = (points[:, 1] - 240.0) / 500.0
    r2 = x * x + y * y
    radial = 1 + k1 * r2 + k2 * r2 * r2
    xd = x * radial + 2 * p1 * x * y + p2 * (r2 + 2 * x * x)
    yd = y * radial + p1 * (r2 + 2 * y * y) + 2 * p2 * x * y
    return np.column_stack([xd * 500.0 + 320.0, yd * 500.0 + 240.0])


def test_undistort_without_distortion_is_identity():
    pts = np.array([[10.0, 20.0], [320.0, 240.0], [600.0, 400.0]])
    np.testing.assert_allclose(undistort_points(pts, K, NO_DIST), pts, atol=1e-9)


def test_undistort_inverts_distortion():
    dist = [-0.05, 0.01, 0.001, -0.001]
    pts = np.array([[100.0, 80.0], [500.0, 300.0], [320.0, 240.0]])
    recovered = undistort_points(distort(pts, dist), K, dist)
    np.testing.assert_allclose(recovered, pts, atol=0.05)


def test_undistort_rejects_bad_coefficient_count():
    with pytest.raises(ValueError):
        undistort_points([[1.0, 2.0]], K, [0.1, 0.2])


def test_bounds_without_distortion_match_image():
    assert compute_image_bounds(640, 480, K, NO_DIST) == ImageBounds(0.0, 640.0, 0.0, 480.0)


def test_bounds_with_barrel_distortion_grow():
    bounds = compute_image_bounds(640, 480, K, [-0.2, 0.0, 0.0, 0.0])
    assert bounds.min_x < 0 and bounds.max_x > 640
    assert bounds.min_y < 0 and bounds.max_y > 480


def test_every_visible_keypoint_is_in_its_grid_cell():
    keys = [KeyPoint(100.0, 50.0), KeyPoint(3.0, 470.0), KeyPoint(630.0, 10.0)]
    frame = make_frame(keys)
    cells = [i for column in frame.grid for cell in column for i in cell]
    assert sorted(cells) == [0, 1, 2]
    for i, kp in enumerate(keys):
        cx, cy = frame.pos_in_grid(kp)
        assert 0 <= cx < GRID_COLS and 0 <= cy < GRID_ROWS
        assert i in frame.grid[cx][cy]


def test_pos_in_grid_outside_image():
    frame = make_frame([KeyPoint(10.0, 10.0)])
    assert frame.pos_in_grid(KeyPoint(-50.0, 10.0)) is None
    assert frame.pos_in_grid(KeyPoint(10.0, 900.0)) is None


def test_features_in_area_with_levels():
    keys = [KeyPoint(100.0, 100.0, 0), KeyPoint(103.0, 100.0, 1), KeyPoint(200.0, 200.0, 0)]
    frame = make_frame(keys)
    assert sorted(frame.get_features_in_area(101.0, 100.0, 5.0)) == [0, 1]
    assert frame.get_features_in_area(101.0, 100.0, 5.0, 1) == [1]
    assert frame.get_features_in_area(101.0, 100.0, 5.0, 0, 0) == [0]
    assert frame.get_features_in_area(1000.0, 1000.0, 5.0) == []


def test_features_in_area_radius_is_strict():
    frame = make_frame([KeyPoint(100.0, 100.0)])
    assert frame.get_features_in_area(105.0, 100.0, 5.0) == []


def test_monocular_frame_has_no_depth():
    frame = make_frame([KeyPoint(10.0, 10.0), KeyPoint(20.0, 30.0)])
    assert frame.depths == [-1.0, -1.0]
    assert frame.u_right == [-1.0, -1.0]
    assert frame.unproject_stereo(0) is None
    assert frame.map_points == [None, None]
    assert frame.outliers == [False, False]


def test_rgbd_depth_and_right_coordinate():
    depth = np.zeros((480, 640), dtype=np.float32)
    depth[240, 330] = 2.0
    frame = make_frame([KeyPoint(330.0, 240.0), KeyPoint(10.0, 10.0)], depth=depth, bf=40.0)
    assert frame.depths[0] == pytest.approx(2.0)
    assert frame.u_right[0] == pytest.approx(310.0)
    assert frame.depths[1] == -1.0 and frame.u_right[1] == -1.0


def test_set_pose_camera_centre():
    frame = make_frame([KeyPoint(10.0, 10.0)])
    T = np.eye(4, dtype=np.float32)
    T[:3, 3] = [1.0, 2.0, 3.0]
    frame.set_pose(T)
    np.testing.assert_allclose(frame.Ow, [-1.0, -2.0, -3.0])
    np.testing.assert_allclose(frame.Rwc @ frame.Rcw, np.eye(3), atol=1e-6)


def test_unproject_then_project_round_trip():
    depth = np.zeros((480, 640), dtype=np.float32)
    depth[200, 400] = 3.0
    frame = make_frame([KeyPoint(400.0, 200.0)], depth=depth)
    angle = 0.3
    T = np.eye(4, dtype=np.float32)
    T[:3, :3] = [[np.cos(angle), 0, np.sin(angle)], [0, 1, 0], [-np.sin(angle), 0, np.cos(angle)]]
    T[:3, 3] = [0.5, -0.2, 0.1]
    frame.set_pose(T)
    world = frame.unproject_stereo(0)
    camera = T[:3, :3] @ world + T[:3, 3]
    assert camera[2] == pytest.approx(3.0, abs=1e-4)
    pixel = K @ camera
    assert pixel[0] / pixel[2] == pytest.approx(400.0, abs=1e-3)
    assert pixel[1] / pixel[2] == pytest.approx(200.0, abs=1e-3)


def test_unproject_without_pose_raises():
    depth = np.full((480, 640), 1.0, dtype=np.float32)
    frame = make_frame([KeyPoint(100.0, 100.0)], depth=depth)
    with pytest.raises(RuntimeError):
        frame.unproject_stereo(0)


def test_ids_increase():
    a = make_frame([KeyPoint(1.0, 1.0)])
    b = make_frame([KeyPoint(1.0, 1.0)])
    assert b.id > a.id


def test_copy_is_independent():
    frame = make_frame([KeyPoint(100.0, 100.0)])
    frame.set_pose(np.eye(4))
    clone = frame.copy()
    assert clone.id == frame.id
    T = np.eye(4)
    T[0, 3] = 5.0
    clone.set_pose(T)
    clone.grid[0][0].append(99)
    np.testing.assert_allclose(frame.Ow, [0.0, 0.0, 0.0])
    assert 99 not in frame.grid[0][0]
    np.testing.assert_allclose(clone.Ow, [-5.0, 0.0, 0.0])


def test_empty_frame():
    frame = make_frame([])
    assert frame.n == 0
    assert frame.get_features_in_area(100.0, 100.0, 50.0) == []


def test_distorted_keypoints_are_undistorted():
    dist = [-0.05, 0.01, 0.0, 0.0]
    original = np.array([[500.0, 300.0]])
    observed = distort(original, dist)[0]
    frame = make_frame([KeyPoint(float(observed[0]), float(observed[1]), 2)], dist=dist)
    kp = frame.keys_un[0]
    assert kp.x == pytest.approx(500.0, abs=0.05)
    assert kp.y == pytest.approx(300.0, abs=0.05)
    assert kp.octave == 2