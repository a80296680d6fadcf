"""RGB-D (TUM) and stereo (EuRoC, KITTI) dataset loaders."""

from __future__ import annotations

from dataclasses import dataclass, field

from orbslam_geometry.datasets_mono import _leading_float, _lines


@dataclass
class RGBDSequence:
    """Colour and depth image file names with their timestamps in seconds."""

    rgb_filenames: list[str] = field(default_factory=list)
    depth_filenames: list[str] = field(default_factory=list)
    timestamps: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rgb_filenames)

    def __iter__(self):
        return iter(zip(self.rgb_filenames, self.depth_filenames, self.timestamps))


@dataclass
class StereoSequence:
    """Left and right image file names with their timestamps in seconds."""

    left_filenames: list[str] = field(default_factory=list)
    right_filenames: list[str] = field(default_factory=list)
    timestamps: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.left_filenames)

    def __iter__(self):
        return iter(zip(self.left_filenames, self.right_filenames, self.timestamps))


def load_tum_rgbd(association_path) -> RGBDSequence:
    """Read a TUM association file: ``t_rgb rgb_file t_depth depth_file`` per line.

    File names are kept as written, relative to the sequence directory; the
    timestamp of each entry is the colour image's.
    """
    sequence = RGBDSequence()
    for line in _lines(association_path):
        if not line:
            continue
        tokens = line.split()
        sequence.timestamps.append(_leading_float(line))
        sequence.rgb_filenames.append(tokens[1] if len(tokens) > 1 else "")
        sequence.depth_filenames.append(tokens[3] if len(tokens) > 3 else "")
    return sequence


def load_euroc_stereo(left_path, right_path, times_path) -> StereoSequence:
    """Read a EuRoC times file; each line names a left/right image pair and holds nanoseconds."""
    sequence = StereoSequence()
    for line in _lines(times_path):
        if not line:
            continue
        sequence.left_filenames.append(f"{left_path}/{line}.png")
        sequence.right_filenames.append(f"{right_path}/{line}.png")
        sequence.timestamps.append(_leading_float(line) / 1e9)
    return sequence


def load_kitti_stereo(sequence_path) -> StereoSequence:
    """Read KITTI times.txt; images are image_0/NNNNNN.png and image_1/NNNNNN.png in order."""
    timestamps = [
        _leading_float(line) for line in _lines(f"{sequence_path}/times.txt") if line
    ]
    names = [f"{i:06d}.png" for i in range(len(timestamps))]
    return StereoSequence(
        [f"{sequence_path}/image_0/{name}" for name in names],
        [f"{sequence_path}/image_1/{name}" for name in names],
        timestamps,
    )


def validate_rgbd(sequence: RGBDSequence) -> int:
    """Check that there are images and as many depth maps as colour images; return the count."""
    if not sequence.rgb_filenames:
        raise ValueError("No images found in provided path.")
    if len(sequence.depth_filenames) != len(sequence.rgb_filenames):
        raise ValueError("Different number of images for rgb and depth.")
    return len(sequence.rgb_filenames)


def validate_stereo(sequence: StereoSequence) -> int:
    """Check that there are left and right images in equal numbers; return the count."""
    if not sequence.left_filenames or not sequence.right_filenames:
        raise ValueError("No images in provided path.")
    if len(sequence.left_filenames) != len(sequence.right_filenames):
        raise ValueError("Different number of left and right images.")
    return len(sequence.left_filenames)