"""
Base class for frame sources.

To add a new frame source:
1. Create a new file in the capture/ directory
2. Inherit from FrameSource
3. Implement start(), stop(), is_running and next_frame()

A source owns its own capture thread (if any). Frames are handed to the
recognition worker by transfer of ownership: once next_frame() returns a
Frame the source keeps no reference to it.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Optional

from loguru import logger

from visionfocus.core.contracts import Frame


class FrameSource(ABC):
    """Abstract base class for camera frame sources."""

    @abstractmethod
    def start(self) -> None:
        """Bind the capture subsystem and begin producing frames.

        Raises:
            CaptureError: If the capture subsystem is unavailable
        """

    @abstractmethod
    def stop(self) -> None:
        """Release the capture subsystem. Safe to call more than once."""

    @property
    @abstractmethod
    def is_running(self) -> bool:
        """Whether the source is currently bound and producing frames."""

    @abstractmethod
    def next_frame(
        self,
        timeout_s: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> Frame:
        """Take ownership of the next available frame.

        Args:
            timeout_s: Maximum seconds to wait for a frame
            cancel_event: Set to abandon the wait

        Raises:
            CaptureError: No frame within timeout_s, or source not running
            RecognitionCancelled: cancel_event was set while waiting
        """

    @contextmanager
    def binding(self) -> Iterator[FrameSource]:
        """
        Scoped acquisition of the capture subsystem.

        Starts the source if it is not already running and guarantees it
        is stopped again on exit, whatever the outcome. A source that was
        already running is left running.
        """
        started_here = not self.is_running
        if started_here:
            self.start()
        try:
            yield self
        finally:
            if started_here:
                self.stop()
                logger.debug("Capture binding released")
