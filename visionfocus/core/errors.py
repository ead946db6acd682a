"""
Error taxonomy for the recognition pipeline.

"Could not look" (initialization, capture, preprocessing failures) is
always raised to the caller. "Looked and saw nothing" is an empty
detection list, never an exception.
"""

from __future__ import annotations


class RecognitionError(Exception):
    """Base class for all pipeline errors."""


class InitializationError(RecognitionError):
    """Model or vocabulary asset missing/corrupt, or engine construction failed.

    Fatal until the caller re-initializes.
    """


class NotInitializedError(InitializationError):
    """A component was used before a successful initialize()."""


class CaptureError(RecognitionError):
    """The capture subsystem could not deliver a frame for this cycle."""


class PreprocessError(RecognitionError):
    """A frame could not be converted into a model input tensor."""


class InferenceError(RecognitionError):
    """The forward pass failed.

    Recovered inside the inference engine: the cycle continues with
    zero detections.
    """


class DecodeError(RecognitionError):
    """Raw model outputs do not match the fixed output contract."""


class PipelineBusyError(RecognitionError):
    """A recognition cycle is already in flight."""


class RecognitionCancelled(RecognitionError):
    """The in-flight cycle observed a cancellation request."""


class ConfigurationError(RecognitionError):
    """The configuration document could not be used."""
