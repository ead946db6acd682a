"""
Frame Preprocessor.

Converts one planar YUV 4:2:0 camera frame into the detector's input
tensor: 300 x 300 x 3 float32, row-major, R, G, B per pixel.

The detector expects UNNORMALIZED channel values in [0, 255]. Do not
rescale to [0, 1] or [-1, 1]; accuracy silently degrades if you do.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import List
import numpy as np
from numpy.typing import NDArray
import cv2
from loguru import logger

from visionfocus.core.contracts import (
    Frame,
    FrameEncoding,
    PreprocessedTensor,
    MODEL_INPUT_SIZE,
)
from visionfocus.core.errors import PreprocessError


class ConversionPath(Enum):
    """How planar YUV becomes RGB."""
    DIRECT = "direct"  # color-space conversion
    JPEG = "jpeg"      # compress then decode, quality 100


class FramePreprocessor:
    """
    Frame -> PreprocessedTensor.

    Each call allocates a fresh tensor that belongs to the caller until
    it is handed to the inference engine.
    """

    JPEG_QUALITY = 100

    def __init__(
        self,
        conversion: ConversionPath = ConversionPath.DIRECT,
    ):
        """
        Initialize preprocessor.

        Args:
            conversion: YUV -> RGB strategy
        """
        self.conversion = conversion

        # Performance tracking
        self._process_times: List[float] = []

    def process(self, frame: Frame) -> PreprocessedTensor:
        """
        Convert a frame into the model input tensor.

        Raises:
            PreprocessError: If the frame is malformed or conversion fails
        """
        start_time = time.perf_counter()

        self._validate(frame)

        try:
            rgb = self._to_rgb(frame)
            resized = cv2.resize(
                rgb,
                (MODEL_INPUT_SIZE, MODEL_INPUT_SIZE),
                interpolation=cv2.INTER_LINEAR,
            )
        except cv2.error as e:
            raise PreprocessError(f"Color conversion failed: {e}") from e

        # Integer -> float widening only, values stay in [0, 255]
        data = np.ascontiguousarray(resized, dtype=np.float32)
        tensor = PreprocessedTensor(data=data)

        elapsed = (time.perf_counter() - start_time) * 1000
        self._process_times.append(elapsed)
        if len(self._process_times) > 100:
            self._process_times.pop(0)

        logger.debug(
            f"Preprocessed frame {frame.frame_id} ({frame.width}x{frame.height}) "
            f"in {elapsed:.1f}ms"
        )
        return tensor

    def _validate(self, frame: Frame):
        if frame.encoding is not FrameEncoding.YUV_I420:
            raise PreprocessError(f"Unsupported frame encoding: {frame.encoding}")

        w, h = frame.width, frame.height
        if w <= 0 or h <= 0:
            raise PreprocessError(f"Invalid frame size {w}x{h}")
        if w % 2 or h % 2:
            raise PreprocessError(f"Frame dimensions must be even, got {w}x{h}")

        chroma_shape = (h // 2, w // 2)
        if frame.y_plane.shape != (h, w):
            raise PreprocessError(
                f"Luma plane shape {frame.y_plane.shape} != {(h, w)}"
            )
        for name, plane in (("U", frame.u_plane), ("V", frame.v_plane)):
            if plane.shape != chroma_shape:
                raise PreprocessError(
                    f"{name} plane shape {plane.shape} != {chroma_shape}"
                )
            if plane.dtype != np.uint8:
                raise PreprocessError(f"{name} plane dtype {plane.dtype} != uint8")
        if frame.y_plane.dtype != np.uint8:
            raise PreprocessError(f"Luma plane dtype {frame.y_plane.dtype} != uint8")

    def _to_rgb(self, frame: Frame) -> NDArray[np.uint8]:
        i420 = frame.to_i420()

        if self.conversion is ConversionPath.JPEG:
            bgr = cv2.cvtColor(i420, cv2.COLOR_YUV2BGR_I420)
            ok, encoded = cv2.imencode(
                ".jpg", bgr, [int(cv2.IMWRITE_JPEG_QUALITY), self.JPEG_QUALITY]
            )
            if not ok:
                raise PreprocessError("JPEG encode failed")
            decoded = cv2.imdecode(encoded, cv2.IMREAD_COLOR)
            if decoded is None:
                raise PreprocessError("JPEG decode failed")
            return cv2.cvtColor(decoded, cv2.COLOR_BGR2RGB)

        return cv2.cvtColor(i420, cv2.COLOR_YUV2RGB_I420)

    @property
    def average_process_time_ms(self) -> float:
        if not self._process_times:
            return 0.0
        return sum(self._process_times) / len(self._process_times)
