# orbslam_geometry

Geometry and bookkeeping for a feature-based visual SLAM front end
(monocular, stereo and RGB-D), written with NumPy and Pillow.

## Modules

- `orbslam_geometry.converter` — `SE3Quat` (rotation kept as a unit
  quaternion, plus translation) and `Sim3` (rotation, translation, scale);
  `to_se3_quat`, `se3_to_matrix`, `sim3_to_matrix`, `to_se3_matrix`,
  `to_vector3d`, `to_matrix3d`, `to_quaternion` (returns `[x, y, z, w]`) and
  `to_descriptor_vector` (splits a descriptor matrix into its rows).
- `orbslam_geometry.two_view` — `KeyPoint`, `normalize`, `compute_h21`
  (DLT homography), `compute_f21` (eight-point fundamental matrix with rank 2
  enforced), `triangulate`, `decompose_e` and `check_rt`, which triangulates
  inlier matches under one motion hypothesis and returns an `RTCheck`
  (count of good points, the points, per-keypoint flags, parallax in degrees).
- `orbslam_geometry.initializer` — `Initializer`, a two-view initializer.
  `initialize(current_keys, matches12)` draws RANSAC sets of eight matches
  (seeded, so results are repeatable), scores fundamental matrices and
  reconstructs the motion from the best one, returning a `Reconstruction`
  (`R21`, `t21`, `points`, `triangulated`) or `None`.
  `find_homography`, `check_homography` and `reconstruct_h` are available
  for the homography route; `initialize` itself uses the fundamental matrix.
- `orbslam_geometry.frame` — `undistort_points`, `compute_image_bounds`
  (returns `ImageBounds`) and `Frame`, built from keypoints already
  detected. A frame undistorts its keypoints, sorts them into a 64×48 grid
  for `get_features_in_area`, reads depths from an optional depth image
  (`compute_stereo_from_rgbd`), holds a pose (`set_pose`) and back-projects
  keypoints with depth into world coordinates (`unproject_stereo`).
- `orbslam_geometry.frame_drawer` — `TrackingState` and `FrameDrawer`,
  which stores the last tracked image (`update`) and returns it with match
  lines or tracked-keypoint boxes and a status band below (`draw_frame`);
  `status_text` gives the status line. Overlay colours are in BGR order.
- `orbslam_geometry.datasets_mono` — `load_euroc_mono`, `load_kitti_mono`,
  `load_tum_mono` returning an `ImageSequence`, plus `tracking_statistics`
  (median and mean, as `TrackingStats`) and `frame_delay` (time to wait
  before the next frame when replaying in real time).
- `orbslam_geometry.datasets_depth` — `load_tum_rgbd` (`RGBDSequence`),
  `load_euroc_stereo` and `load_kitti_stereo` (`StereoSequence`), with
  `validate_rgbd` and `validate_stereo`.
- `orbslam_geometry.ar` — `exp_so3`, `Plane` (fitted to world points, or
  made with `Plane.from_normal`), `detect_plane` (RANSAC over map points
  observed more than five times), `status_text` for an AR overlay, and
  `PoseImageBuffer`, a thread-safe hand-over of the latest image and pose.

## Examples

```python
import numpy as np
from orbslam_geometry.converter import to_se3_matrix, to_quaternion

T = to_se3_matrix(np.eye(3), np.array([1.0, 2.0, 3.0]))
q = to_quaternion(T[:3, :3])          # [0.0, 0.0, 0.0, 1.0]
```

```python
from orbslam_geometry.datasets_mono import load_tum_mono, tracking_statistics

sequence = load_tum_mono("/data/rgbd_dataset_freiburg1_xyz")
for filename, timestamp in sequence:
    ...
stats = tracking_statistics([0.031, 0.028, 0.035])
```

```python
from orbslam_geometry.ar import exp_so3

R = exp_so3(0.0, 0.5, 0.0)
```

## Conventions

- Poses are 4×4 arrays mapping world to camera coordinates (`Tcw`).
- A depth or right-image coordinate of `-1` marks a keypoint without depth.
- Failure to initialize or to find a plane is reported by returning `None`;
  malformed input, such as fewer than eight matches, raises `ValueError`.

## What this package does not do

It does not detect or describe features, read image files, match stereo
images, run a tracker, local mapping or loop closing, keep a map, or show a
viewer window. Dataset loaders return file names and timestamps only, and
there is no command-line program.