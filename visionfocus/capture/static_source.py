"""
Frame source that replays fixed frames.

Use for running the pipeline without a camera, e.g. on still images.
"""

from __future__ import annotations

import itertools
import threading
from pathlib import Path
from typing import Iterable, Optional

import cv2
from loguru import logger

from visionfocus.core.contracts import Frame
from visionfocus.core.errors import CaptureError, RecognitionCancelled
from .frame_source import FrameSource


class StaticFrameSource(FrameSource):
    """Cycles through a fixed list of frames, one per next_frame() call."""

    def __init__(self, frames: Iterable[Frame]):
        self._frames = list(frames)
        if not self._frames:
            raise ValueError("StaticFrameSource needs at least one frame")
        self._cycle = itertools.cycle(self._frames)
        self._running = False

        self.start_count = 0
        self.stop_count = 0

    @classmethod
    def from_image(cls, path: str | Path) -> StaticFrameSource:
        """Load an image file and replay it as a planar frame."""
        bgr = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if bgr is None:
            raise CaptureError(f"Could not read image: {path}")

        h, w = bgr.shape[:2]
        rgb = cv2.cvtColor(bgr[: h - (h % 2), : w - (w % 2)], cv2.COLOR_BGR2RGB)
        logger.info(f"Loaded still image {path} ({rgb.shape[1]}x{rgb.shape[0]})")
        return cls([Frame.from_rgb(rgb)])

    def start(self) -> None:
        self._running = True
        self.start_count += 1

    def stop(self) -> None:
        if self._running:
            self.stop_count += 1
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def next_frame(
        self,
        timeout_s: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> Frame:
        if cancel_event is not None and cancel_event.is_set():
            raise RecognitionCancelled("Cancelled before frame acquisition")
        if not self._running:
            raise CaptureError("Source not started")
        return next(self._cycle)
