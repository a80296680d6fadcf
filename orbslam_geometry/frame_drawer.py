"""Renders the current camera image with tracking overlays and a status line."""

from __future__ import annotations

import threading
from enum import IntEnum

import numpy as np
from PIL import Image, ImageDraw, ImageFont

# Colours are given in the image's channel order (blue, green, red).
GREEN = (0, 255, 0)
BLUE = (255, 0, 0)
WHITE = (255, 255, 255)


class TrackingState(IntEnum):
    """States of the tracker as seen by the drawer."""

    SYSTEM_NOT_READY = -1
    NO_IMAGES_YET = 0
    NOT_INITIALIZED = 1
    OK = 2
    LOST = 3


class FrameDrawer:
    """Keeps the last tracked frame and draws it with keypoints and status text.

    ``map_stats`` is a callable returning ``(keyframes_in_map, map_points_in_map)``.
    """

    def __init__(self, map_stats):
        self._map_stats = map_stats
        self._lock = threading.Lock()
        self._state = TrackingState.SYSTEM_NOT_READY
        self._image = np.zeros((480, 640, 3), dtype=np.uint8)
        self._current_keys: list = []
        self._initial_keys: list = []
        self._initial_matches: list[int] = []
        self._vo: list[bool] = []
        self._map: list[bool] = []
        self.only_tracking = False
        self.tracked = 0
        self.tracked_vo = 0

    @property
    def state(self) -> TrackingState:
        with self._lock:
            return self._state

    def update(
        self,
        image,
        keypoints,
        state,
        only_tracking=False,
        initial_keys=(),
        initial_matches=(),
        map_point_flags=(),
    ) -> None:
        """Store a newly tracked frame.

        ``map_point_flags`` holds, per keypoint, the number of observations of
        its map point, or None where there is no map point or it is an outlier.
        """
        state = TrackingState(state)
        with self._lock:
            self._image = np.array(image, copy=True)
            self._current_keys = list(keypoints)
            n = len(self._current_keys)
            self._vo = [False] * n
            self._map = [False] * n
            self.only_tracking = bool(only_tracking)
            if state == TrackingState.NOT_INITIALIZED:
                self._initial_keys = list(initial_keys)
                self._initial_matches = list(initial_matches)
            elif state == TrackingState.OK:
                for i, observations in enumerate(list(map_point_flags)[:n]):
                    if observations is None:
                        continue
                    if observations > 0:
                        self._map[i] = True
                    else:
                        self._vo[i] = True
            self._state = state

    def draw_frame(self) -> np.ndarray:
        """Return the annotated image with a status band below it."""
        current, initial, matches, vo, on_map = [], [], [], [], []
        with self._lock:
            state = self._state
            if self._state == TrackingState.SYSTEM_NOT_READY:
                self._state = TrackingState.NO_IMAGES_YET
            im = self._image.copy()
            if self._state == TrackingState.NOT_INITIALIZED:
                current = list(self._current_keys)
                initial = list(self._initial_keys)
                matches = list(self._initial_matches)
            elif self._state == TrackingState.OK:
                current = list(self._current_keys)
                vo = list(self._vo)
                on_map = list(self._map)
            elif self._state == TrackingState.LOST:
                current = list(self._current_keys)

        im = np.asarray(im).astype(np.uint8)
        if im.ndim == 2:
            im = np.stack([im] * 3, axis=-1)
        elif im.shape[2] == 1:
            im = np.repeat(im, 3, axis=2)

        canvas = Image.fromarray(np.ascontiguousarray(im))
        draw = ImageDraw.Draw(canvas)

        if state == TrackingState.NOT_INITIALIZED:
            for i, match in enumerate(matches):
                if match >= 0:
                    a, b = initial[i], current[match]
                    draw.line([(a.x, a.y), (b.x, b.y)], fill=GREEN)
        elif state == TrackingState.OK:
            self.tracked = 0
            self.tracked_vo = 0
            r = 5
            for kp, is_vo, is_map in zip(current, vo, on_map):
                if not (is_vo or is_map):
                    continue
                colour = GREEN if is_map else BLUE
                box = [round(kp.x - r), round(kp.y - r), round(kp.x + r), round(kp.y + r)]
                draw.rectangle(box, outline=colour)
                cx, cy = round(kp.x), round(kp.y)
                draw.ellipse([cx - 2, cy - 2, cx + 2, cy + 2], fill=colour)
                if is_map:
                    self.tracked += 1
                else:
                    self.tracked_vo += 1

        return self._draw_text_info(np.asarray(canvas), state)

    def status_text(self, state) -> str:
        """Status line for a tracking state."""
        state = TrackingState(state)
        if state == TrackingState.NO_IMAGES_YET:
            return " WAITING FOR IMAGES"
        if state == TrackingState.NOT_INITIALIZED:
            return " TRYING TO INITIALIZE "
        if state == TrackingState.OK:
            prefix = "LOCALIZATION | " if self.only_tracking else "SLAM MODE |  "
            n_keyframes, n_map_points = self._map_stats()
            text = f"{prefix}KFs: {n_keyframes}, MPs: {n_map_points}, Matches: {self.tracked}"
            if self.tracked_vo > 0:
                text += f", + VO matches: {self.tracked_vo}"
            return text
        if state == TrackingState.LOST:
            return " TRACK LOST. TRYING TO RELOCALIZE "
        return " LOADING ORB VOCABULARY. PLEASE WAIT..."

    def _draw_text_info(self, im: np.ndarray, state) -> np.ndarray:
        text = self.status_text(state)
        font = ImageFont.load_default()
        probe = ImageDraw.Draw(Image.new("RGB", (1, 1)))
        height = probe.textbbox((0, 0), text, font=font)[3]
        rows, cols = im.shape[:2]
        out = np.zeros((rows + height + 10, cols, 3), dtype=np.uint8)
        out[:rows] = im
        canvas = Image.fromarray(out)
        ImageDraw.Draw(canvas).text((5, out.shape[0] - 5 - height), text, fill=WHITE, font=font)
        return np.array(canvas)