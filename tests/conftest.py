"""Pytest configuration and shared fixtures for the recognition pipeline.

Provides a fake TFLite interpreter (so tests never need TensorFlow),
model and label assets on disk, and synthetic camera frames.
"""

from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import pytest

from visionfocus.core.contracts import Frame, MAX_DETECTIONS
from visionfocus.inference import DEFAULT_LABELS_PATH, InferenceEngine


# Class ids in the bundled COCO vocabulary
PERSON = 0
BOTTLE = 39
CUP = 41
CHAIR = 56
DINING_TABLE = 60


# ============================================================
# FAKE INTERPRETER
# ============================================================

class FakeInterpreter:
    """Stands in for tf.lite.Interpreter with canned outputs."""

    def __init__(
        self,
        input_dtype=np.float32,
        input_shape=(1, 300, 300, 3),
        num_outputs: int = 4,
    ):
        self.input_dtype = input_dtype
        self.input_shape = input_shape
        self.num_outputs = num_outputs

        self.inputs: List[np.ndarray] = []
        self.invoke_count = 0
        self.allocated = False
        self.fail_on_invoke = False
        self.set_detections([])

    def set_detections(self, slots: Sequence[tuple], count: Optional[float] = None):
        """slots: (class_id, score, (ymin, xmin, ymax, xmax)) per detection."""
        boxes = np.zeros((1, MAX_DETECTIONS, 4), dtype=np.float32)
        classes = np.zeros((1, MAX_DETECTIONS), dtype=np.float32)
        scores = np.zeros((1, MAX_DETECTIONS), dtype=np.float32)
        for i, (class_id, score, box) in enumerate(slots):
            classes[0, i] = class_id
            scores[0, i] = score
            boxes[0, i] = box
        declared = len(slots) if count is None else count
        self._outputs = {
            1: boxes,
            2: classes,
            3: scores,
            4: np.array([declared], dtype=np.float32),
        }

    # tf.lite.Interpreter surface

    def allocate_tensors(self):
        self.allocated = True

    def get_input_details(self):
        return [{"index": 0, "shape": np.array(self.input_shape), "dtype": self.input_dtype}]

    def get_output_details(self):
        return [{"index": i} for i in range(1, self.num_outputs + 1)]

    def set_tensor(self, index, value):
        self.inputs.append(np.array(value))

    def invoke(self):
        self.invoke_count += 1
        if self.fail_on_invoke:
            raise RuntimeError("delegate execution failed")

    def get_tensor(self, index):
        return self._outputs[index]


class InterpreterFactory:
    """Records factory calls and hands out one FakeInterpreter."""

    def __init__(self, interpreter: FakeInterpreter):
        self.interpreter = interpreter
        self.calls: List[tuple] = []
        self.fail_with_delegates = False

    def __call__(self, model_path, num_threads, delegates):
        self.calls.append((model_path, num_threads, list(delegates)))
        if delegates and self.fail_with_delegates:
            raise RuntimeError("Failed to apply delegate")
        return self.interpreter


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def model_file(tmp_path) -> Path:
    """Minimal file carrying the TFLite flatbuffer identifier."""
    path = tmp_path / "detect.tflite"
    path.write_bytes(b"\x1c\x00\x00\x00TFL3" + bytes(64))
    return path


@pytest.fixture
def labels_file() -> Path:
    return DEFAULT_LABELS_PATH


@pytest.fixture
def fake_interpreter() -> FakeInterpreter:
    return FakeInterpreter()


@pytest.fixture
def interpreter_factory(fake_interpreter) -> InterpreterFactory:
    return InterpreterFactory(fake_interpreter)


@pytest.fixture
def engine(model_file, labels_file, interpreter_factory) -> InferenceEngine:
    """Engine wired to the fake interpreter, not yet initialized."""
    return InferenceEngine(
        model_path=model_file,
        labels_path=labels_file,
        use_acceleration=False,
        interpreter_factory=interpreter_factory,
    )


def make_frame(width: int = 640, height: int = 480, rgb=(128, 64, 32), frame_id: int = 0) -> Frame:
    """Uniformly colored planar frame."""
    raster = np.empty((height, width, 3), dtype=np.uint8)
    raster[:] = rgb
    return Frame.from_rgb(raster, frame_id=frame_id)


@pytest.fixture
def frame() -> Frame:
    return make_frame()
