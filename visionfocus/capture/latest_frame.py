"""
Keep-only-latest frame hand-off.

The capture thread publishes into the slot; the recognition worker takes
from it. A slower consumer never sees a backlog: each publish replaces
the frame that was waiting, so memory stays bounded and stale frames are
never processed.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from visionfocus.core.contracts import Frame
from visionfocus.core.errors import CaptureError, RecognitionCancelled


class LatestFrameSlot:
    """Single-slot, single-consumer frame mailbox."""

    # Wake interval while waiting, so cancellation is observed promptly
    POLL_INTERVAL_S = 0.02

    def __init__(self):
        self._frame: Optional[Frame] = None
        self._condition = threading.Condition()
        self._closed = False

        # Statistics
        self.published_count = 0
        self.dropped_count = 0

    def publish(self, frame: Frame) -> None:
        """Replace any waiting frame with this one."""
        with self._condition:
            if self._frame is not None:
                self.dropped_count += 1
            self._frame = frame
            self.published_count += 1
            self._condition.notify()

    def take(
        self,
        timeout_s: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> Frame:
        """Remove and return the waiting frame, blocking up to timeout_s."""
        deadline = time.monotonic() + timeout_s

        with self._condition:
            while self._frame is None:
                if cancel_event is not None and cancel_event.is_set():
                    raise RecognitionCancelled("Cancelled while waiting for a frame")
                if self._closed:
                    raise CaptureError("Capture stopped")

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise CaptureError(f"No frame within {timeout_s:.2f}s")
                self._condition.wait(min(remaining, self.POLL_INTERVAL_S))

            frame, self._frame = self._frame, None
            return frame

    def clear(self) -> None:
        with self._condition:
            self._frame = None

    def open(self) -> None:
        with self._condition:
            self._closed = False

    def close(self) -> None:
        """Wake any waiting consumer; it will see CaptureError."""
        with self._condition:
            self._closed = True
            self._frame = None
            self._condition.notify_all()

    @property
    def has_frame(self) -> bool:
        with self._condition:
            return self._frame is not None
