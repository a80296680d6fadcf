"""Monocular dataset loaders (EuRoC, KITTI, TUM) and tracking time statistics."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class ImageSequence:
    """Image file names and their timestamps in seconds."""

    filenames: list[str] = field(default_factory=list)
    timestamps: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.filenames)

    def __iter__(self):
        return iter(zip(self.filenames, self.timestamps))


@dataclass(frozen=True)
class TrackingStats:
    """Median and mean of per-frame tracking times."""

    median: float
    mean: float


def _lines(path) -> list[str]:
    return Path(path).read_text().splitlines()


def _leading_float(line: str) -> float:
    tokens = line.split()
    if not tokens:
        raise ValueError(f"no number in line {line!r}")
    return float(tokens[0])


def load_euroc_mono(image_path, times_path) -> ImageSequence:
    """Read a EuRoC times file; each line names an image and holds nanoseconds."""
    sequence = ImageSequence()
    for line in _lines(times_path):
        if not line:
            continue
        sequence.filenames.append(f"{image_path}/{line}.png")
        sequence.timestamps.append(_leading_float(line) / 1e9)
    return sequence


def load_kitti_mono(sequence_path) -> ImageSequence:
    """Read KITTI times.txt; images are image_0/NNNNNN.png in order."""
    timestamps = [
        _leading_float(line) for line in _lines(f"{sequence_path}/times.txt") if line
    ]
    filenames = [f"{sequence_path}/image_0/{i:06d}.png" for i in range(len(timestamps))]
    return ImageSequence(filenames, timestamps)


def load_tum_mono(sequence_path) -> ImageSequence:
    """Read TUM rgb.txt (three header lines skipped); file names are joined to the sequence path."""
    sequence = ImageSequence()
    for line in _lines(f"{sequence_path}/rgb.txt")[3:]:
        if not line:
            continue
        tokens = line.split()
        sequence.timestamps.append(_leading_float(line))
        rgb = tokens[1] if len(tokens) > 1 else ""
        sequence.filenames.append(f"{sequence_path}/{rgb}")
    return sequence


def tracking_statistics(times) -> TrackingStats:
    """Median (upper middle of the sorted times) and mean of tracking times."""
    ordered = sorted(times)
    if not ordered:
        raise ValueError("no tracking times")
    return TrackingStats(ordered[len(ordered) // 2], sum(ordered) / len(ordered))


def frame_delay(timestamps, index, elapsed) -> float:
    """Seconds to wait after frame ``index`` took ``elapsed`` seconds to track."""
    count = len(timestamps)
    gap = 0.0
    if index < count - 1:
        gap = timestamps[index + 1] - timestamps[index]
    elif index > 0:
        gap = timestamps[index] - timestamps[index - 1]
    return gap - elapsed if elapsed < gap else 0.0