"""
Core data contracts for the recognition pipeline.

All components must adhere to these contracts for:
- Binary layout correctness of model inputs
- Fixed-shape model outputs
- Clear separation of "nothing detected" from "could not look"
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Tuple
import numpy as np
from numpy.typing import NDArray

from .errors import DecodeError, PreprocessError


# ============================================================
# CONSTANTS
# ============================================================

MODEL_INPUT_SIZE = 300
CHANNELS = 3
BYTES_PER_FLOAT = 4
TENSOR_BYTE_SIZE = BYTES_PER_FLOAT * MODEL_INPUT_SIZE * MODEL_INPUT_SIZE * CHANNELS

# Maximum detections per forward pass
MAX_DETECTIONS = 10


# ============================================================
# ENUMERATIONS
# ============================================================

class FrameEncoding(Enum):
    """Pixel encodings accepted from the capture subsystem."""
    YUV_I420 = "yuv_i420"  # planar Y, then U, then V at half resolution


class ConfidenceLevel(Enum):
    """Coarse confidence bucket used to choose announcement phrasing."""
    HIGH = "high"        # >= 0.85, assertive
    MEDIUM = "medium"    # 0.70 - 0.85, qualified
    LOW = "low"          # 0.60 - 0.70, hedged


class VerbosityMode(Enum):
    """How much the announcement says about each detection."""
    CONVERSATIONAL = "conversational"  # "I see a chair", "Possibly a cup"
    BRIEF = "brief"                    # "Chair"
    STANDARD = "standard"              # "Chair with high confidence"
    DETAILED = "detailed"              # "High confidence: chair, close by in center of view"

    @classmethod
    def parse(cls, value) -> VerbosityMode:
        """Mode from its name or value (case-insensitive); unknown -> CONVERSATIONAL."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for mode in cls:
            if text in (mode.value, mode.name.lower()):
                return mode
        return cls.CONVERSATIONAL


class PipelineState(Enum):
    """Lifecycle of the pipeline orchestrator."""
    UNINITIALIZED = auto()
    READY = auto()
    RUNNING = auto()
    FAILED = auto()


class RecognitionStage(Enum):
    """Progress of the current recognition cycle, for UI collaborators."""
    IDLE = "idle"
    CAPTURING = "capturing"
    ANALYZING = "analyzing"
    SUCCESS = "success"
    ERROR = "error"


class Position(Enum):
    """Screen zone of a detection's box center (3x3 grid)."""
    TOP_LEFT = "top_left"
    TOP_CENTER = "top_center"
    TOP_RIGHT = "top_right"
    CENTER_LEFT = "center_left"
    CENTER_CENTER = "center_center"
    CENTER_RIGHT = "center_right"
    BOTTOM_LEFT = "bottom_left"
    BOTTOM_CENTER = "bottom_center"
    BOTTOM_RIGHT = "bottom_right"

    @property
    def phrase(self) -> str:
        """Natural-language phrase, horizontal position first."""
        return _POSITION_PHRASES[self]

    @property
    def is_left(self) -> bool:
        return self in (Position.TOP_LEFT, Position.CENTER_LEFT, Position.BOTTOM_LEFT)

    @property
    def is_right(self) -> bool:
        return self in (Position.TOP_RIGHT, Position.CENTER_RIGHT, Position.BOTTOM_RIGHT)


_POSITION_PHRASES = {
    Position.CENTER_LEFT: "on the left",
    Position.CENTER_CENTER: "in center of view",
    Position.CENTER_RIGHT: "on the right",
    Position.TOP_LEFT: "on the left side, near the top",
    Position.TOP_CENTER: "in the center, near the top",
    Position.TOP_RIGHT: "on the right side, near the top",
    Position.BOTTOM_LEFT: "on the left side, near the bottom",
    Position.BOTTOM_CENTER: "in the center, near the bottom",
    Position.BOTTOM_RIGHT: "on the right side, near the bottom",
}


class Distance(Enum):
    """Relative distance estimated from bounding box area."""
    CLOSE = "close"      # box area > 40% of view
    MEDIUM = "medium"    # box area 20-40% of view
    FAR = "far"          # box area < 20% of view

    def phrase(self, with_preposition: bool = False) -> str:
        if self is Distance.CLOSE:
            return "close by" if with_preposition else "close"
        if self is Distance.MEDIUM:
            return "at medium distance" if with_preposition else "medium distance"
        return "far away" if with_preposition else "far"


# ============================================================
# CORE DATA STRUCTURES
# ============================================================

@dataclass
class Frame:
    """
    One raw camera frame in planar YUV 4:2:0.

    Owned exclusively by the preprocessing stage once handed off.
    """
    y_plane: NDArray[np.uint8]  # H x W
    u_plane: NDArray[np.uint8]  # H/2 x W/2
    v_plane: NDArray[np.uint8]  # H/2 x W/2
    width: int
    height: int
    encoding: FrameEncoding = FrameEncoding.YUV_I420

    # Capture metadata
    timestamp_ms: float = 0.0
    frame_id: int = 0

    @classmethod
    def from_rgb(
        cls,
        rgb: NDArray[np.uint8],
        timestamp_ms: float = 0.0,
        frame_id: int = 0,
    ) -> Frame:
        """Build a planar frame from an H x W x 3 RGB raster (even dimensions)."""
        import cv2

        height, width = rgb.shape[:2]
        i420 = cv2.cvtColor(np.ascontiguousarray(rgb), cv2.COLOR_RGB2YUV_I420)
        return cls.from_i420(i420, width, height, timestamp_ms, frame_id)

    @classmethod
    def from_i420(
        cls,
        i420: NDArray[np.uint8],
        width: int,
        height: int,
        timestamp_ms: float = 0.0,
        frame_id: int = 0,
    ) -> Frame:
        """Split a packed I420 buffer of shape (H * 3/2, W) into its planes."""
        flat = i420.reshape(-1)
        luma = width * height
        chroma = luma // 4
        return cls(
            y_plane=flat[:luma].reshape(height, width),
            u_plane=flat[luma:luma + chroma].reshape(height // 2, width // 2),
            v_plane=flat[luma + chroma:luma + 2 * chroma].reshape(height // 2, width // 2),
            width=width,
            height=height,
            timestamp_ms=timestamp_ms,
            frame_id=frame_id,
        )

    def to_i420(self) -> NDArray[np.uint8]:
        """Pack the three planes into one contiguous (H * 3/2, W) buffer."""
        packed = np.concatenate(
            [self.y_plane.ravel(), self.u_plane.ravel(), self.v_plane.ravel()]
        )
        return packed.reshape(self.height * 3 // 2, self.width)


@dataclass
class PreprocessedTensor:
    """
    Model input: 300 x 300 x 3 float32, RGB channel values in [0, 255].

    Row-major, three floats per pixel, native byte order.
    Size is always 4 * 300 * 300 * 3 bytes.
    """
    data: NDArray[np.float32]

    def __post_init__(self):
        expected = (MODEL_INPUT_SIZE, MODEL_INPUT_SIZE, CHANNELS)
        if self.data.shape != expected:
            raise PreprocessError(f"Tensor shape {self.data.shape} != {expected}")
        if self.data.dtype != np.float32:
            raise PreprocessError(f"Tensor dtype {self.data.dtype} != float32")
        if not self.data.flags["C_CONTIGUOUS"]:
            self.data = np.ascontiguousarray(self.data)

    @property
    def nbytes(self) -> int:
        return self.data.nbytes

    def batched(self) -> NDArray[np.float32]:
        """View with a leading batch axis (1 x 300 x 300 x 3), no copy."""
        return self.data[np.newaxis, ...]

    def pixel(self, row: int, col: int) -> Tuple[float, float, float]:
        r, g, b = self.data[row, col]
        return (float(r), float(g), float(b))


@dataclass
class RawInferenceOutput:
    """
    The four fixed-shape outputs of one forward pass.

    boxes: [N, 4] (ymin, xmin, ymax, xmax) normalized
    class_ids: [N]
    scores: [N]
    count: declared number of valid slots
    """
    boxes: NDArray[np.float32]
    class_ids: NDArray[np.float32]
    scores: NDArray[np.float32]
    count: float = 0.0

    @classmethod
    def from_arrays(cls, boxes, class_ids, scores, count) -> RawInferenceOutput:
        """Build from interpreter outputs, dropping any leading batch axis."""
        boxes = np.asarray(boxes, dtype=np.float32).reshape(-1, 4)
        class_ids = np.asarray(class_ids, dtype=np.float32).reshape(-1)
        scores = np.asarray(scores, dtype=np.float32).reshape(-1)
        count_arr = np.asarray(count, dtype=np.float32).reshape(-1)

        if not (len(boxes) == len(class_ids) == len(scores) == MAX_DETECTIONS):
            raise DecodeError(
                f"Output slot mismatch: boxes={len(boxes)}, classes={len(class_ids)}, "
                f"scores={len(scores)}, expected {MAX_DETECTIONS}"
            )
        if count_arr.size != 1:
            raise DecodeError(f"Detection count must be scalar, got {count_arr.size} values")

        return cls(boxes=boxes, class_ids=class_ids, scores=scores, count=float(count_arr[0]))

    @classmethod
    def empty(cls) -> RawInferenceOutput:
        """Zero detections, used when a forward pass fails."""
        return cls(
            boxes=np.zeros((MAX_DETECTIONS, 4), dtype=np.float32),
            class_ids=np.zeros(MAX_DETECTIONS, dtype=np.float32),
            scores=np.zeros(MAX_DETECTIONS, dtype=np.float32),
            count=0.0,
        )


@dataclass(frozen=True)
class BoundingBox:
    """Normalized bounding box, all coordinates in [0, 1]."""
    y_min: float
    x_min: float
    y_max: float
    x_max: float

    @property
    def width(self) -> float:
        return self.x_max - self.x_min

    @property
    def height(self) -> float:
        return self.y_max - self.y_min

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    @property
    def center(self) -> Tuple[float, float]:
        """(x, y) center point."""
        return ((self.x_min + self.x_max) / 2.0, (self.y_min + self.y_max) / 2.0)

    @property
    def is_valid(self) -> bool:
        coords = (self.y_min, self.x_min, self.y_max, self.x_max)
        return (
            all(0.0 <= c <= 1.0 for c in coords)
            and self.y_max > self.y_min
            and self.x_max > self.x_min
        )

    def iou(self, other: BoundingBox) -> float:
        """Calculate Intersection over Union with another box."""
        y_top = max(self.y_min, other.y_min)
        x_left = max(self.x_min, other.x_min)
        y_bottom = min(self.y_max, other.y_max)
        x_right = min(self.x_max, other.x_max)

        if x_right < x_left or y_bottom < y_top:
            return 0.0

        intersection = (x_right - x_left) * (y_bottom - y_top)
        union = self.area + other.area - intersection

        return intersection / union if union > 0 else 0.0


@dataclass(frozen=True)
class Detection:
    """One recognized object instance."""
    label: str
    confidence: float  # [0, 1]
    bounding_box: BoundingBox


@dataclass(frozen=True)
class SpatialInfo:
    """Where a detection sits in view and roughly how far away it is."""
    position: Position
    distance: Distance

    def to_natural_language(self) -> str:
        # "close by in center of view", "far away on the right side, near the top"
        return f"{self.distance.phrase(with_preposition=True)} {self.position.phrase}"


@dataclass(frozen=True)
class FilteredDetection:
    """A detection that survived the confidence floor, with its bucket."""
    detection: Detection
    level: ConfidenceLevel
    spatial: Optional[SpatialInfo] = None

    @property
    def label(self) -> str:
        return self.detection.label

    @property
    def confidence(self) -> float:
        return self.detection.confidence


# ============================================================
# RESULT TYPES
# ============================================================

@dataclass(frozen=True)
class RecognitionResult:
    """
    Outcome of one pipeline run, consumed by history and UI collaborators.

    An empty detections tuple with a measured latency means
    "looked and saw nothing".
    """
    detections: Tuple[Detection, ...]
    timestamp_ms: int
    latency_ms: int


@dataclass(frozen=True)
class RecognitionOutcome:
    """Result of run_once(): the recognition result plus the spoken text."""
    result: RecognitionResult
    announcement: str
    filtered: Tuple[FilteredDetection, ...] = field(default_factory=tuple)
