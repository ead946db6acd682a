"""
Camera frame source backed by OpenCV.

Handles:
- Camera device acquisition and release
- A dedicated capture thread (single producer)
- BGR -> planar I420 conversion
- Keep-only-latest backpressure
"""

from __future__ import annotations

import time
import threading
from typing import Optional
import numpy as np
import cv2
from loguru import logger

from visionfocus.core.contracts import Frame
from visionfocus.core.errors import CaptureError
from .frame_source import FrameSource
from .latest_frame import LatestFrameSlot


class CameraFrameSource(FrameSource):
    """
    Frame source for a local camera (exposed through OpenCV).

    Guarantees:
    - Frames are delivered as planar YUV 4:2:0
    - Only the most recent frame is ever waiting
    - The device is released by the capture thread when it exits
    """

    # Seconds stop() waits for the capture thread
    STOP_TIMEOUT_S = 2.0

    def __init__(
        self,
        device_index: int = 0,
        width: int = 640,
        height: int = 480,
        fps: int = 30,
    ):
        """
        Initialize camera source.

        Args:
            device_index: Camera device index
            width: Requested capture width
            height: Requested capture height
            fps: Requested frames per second
        """
        self.device_index = device_index
        self.width = width
        self.height = height
        self.fps = fps

        # State
        self._capture: Optional[cv2.VideoCapture] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._slot = LatestFrameSlot()

        self._frame_count: int = 0

    def start(self) -> None:
        """Open the camera and start the capture thread."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return

            capture = cv2.VideoCapture(self.device_index)
            if not capture.isOpened():
                capture.release()
                raise CaptureError(f"Failed to open camera {self.device_index}")

            # Keep the driver buffer small so frames are fresh
            capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            capture.set(cv2.CAP_PROP_FPS, self.fps)

            actual_width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
            actual_height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
            actual_fps = capture.get(cv2.CAP_PROP_FPS)

            self._capture = capture
            # One stop event per capture thread
            self._stop_event = threading.Event()
            self._slot.open()
            self._thread = threading.Thread(
                target=self._capture_loop,
                args=(capture, self._stop_event),
                name="frame-capture",
                daemon=True,
            )
            self._thread.start()

        logger.info(
            f"Camera started: {actual_width}x{actual_height} @ {actual_fps}fps"
        )

    def stop(self) -> None:
        """Stop the capture thread and release the camera."""
        with self._lock:
            self._stop_event.set()
            self._slot.close()

            thread, self._thread = self._thread, None
            self._capture = None
            if thread is None:
                return

            thread.join(timeout=self.STOP_TIMEOUT_S)
            if thread.is_alive():
                # The capture thread releases the device once read() returns
                logger.warning(
                    f"Capture thread still in read() after {self.STOP_TIMEOUT_S}s; "
                    f"camera {self.device_index} will be released when it returns"
                )
                return

        logger.info("Camera stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def next_frame(
        self,
        timeout_s: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> Frame:
        if not self.is_running:
            raise CaptureError("Camera not started")
        return self._slot.take(timeout_s, cancel_event)

    def _capture_loop(self, capture: cv2.VideoCapture, stop_event: threading.Event):
        """Producer: read, convert, publish. Runs on the capture thread."""
        try:
            while not stop_event.is_set():
                ret, bgr = capture.read()

                if stop_event.is_set():
                    break

                if not ret or bgr is None:
                    # Device hiccup, back off briefly
                    time.sleep(0.01)
                    continue

                try:
                    frame = self._to_frame(bgr)
                except cv2.error as e:
                    logger.error(f"Frame conversion failed: {e}")
                    continue

                self._slot.publish(frame)
        finally:
            capture.release()

        logger.debug(
            f"Capture loop exited: {self._slot.published_count} published, "
            f"{self._slot.dropped_count} dropped"
        )

    def _to_frame(self, bgr: np.ndarray) -> Frame:
        # I420 needs even dimensions
        h, w = bgr.shape[:2]
        bgr = bgr[: h - (h % 2), : w - (w % 2)]
        h, w = bgr.shape[:2]

        i420 = cv2.cvtColor(bgr, cv2.COLOR_BGR2YUV_I420)

        self._frame_count += 1
        return Frame.from_i420(
            i420,
            width=w,
            height=h,
            timestamp_ms=time.time() * 1000,
            frame_id=self._frame_count,
        )

    @property
    def frame_drops(self) -> int:
        """Frames replaced before the consumer took them."""
        return self._slot.dropped_count
