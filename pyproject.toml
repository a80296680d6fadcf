[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "orbslam_geometry"
version = "0.1.0"
description = "Geometry for feature-based visual SLAM: two-view initialization, frames, pose conversions, dataset loaders and AR plane fitting"
requires-python = ">=3.10"
dependencies = [
    "numpy",
    "pillow",
]
keywords = [
    "slam",
    "visual-odometry",
    "computer-vision",
    "homography",
    "fundamental-matrix",
    "triangulation",
    "stereo",
    "rgbd",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
    "Topic :: Scientific/Engineering :: Mathematics",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["orbslam_geometry"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
