"""
Core data contracts for the recognition pipeline.

Pipeline execution order (NEVER REORDER):
1. Acquire one camera frame
2. Convert planar YUV to a 300x300x3 float tensor
3. Run one forward pass of the quantized detector
4. Decode raw output arrays into labelled detections
5. Suppress duplicates and classify by confidence
6. Compose the spoken announcement
"""

from .contracts import (
    Frame,
    PreprocessedTensor,
    RawInferenceOutput,
    BoundingBox,
    Detection,
    ConfidenceLevel,
    FilteredDetection,
    RecognitionResult,
    RecognitionOutcome,
    PipelineState,
    RecognitionStage,
    VerbosityMode,
    Position,
    Distance,
    SpatialInfo,
)
from .errors import (
    RecognitionError,
    InitializationError,
    NotInitializedError,
    CaptureError,
    PreprocessError,
    InferenceError,
    DecodeError,
    PipelineBusyError,
    RecognitionCancelled,
    ConfigurationError,
)
