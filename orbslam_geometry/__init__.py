"""Geometry and bookkeeping for feature-based visual SLAM: pose conversions,
two-view initialization, frames, drawing, dataset loaders and AR planes."""

__version__ = "0.1.0"