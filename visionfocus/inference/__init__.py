"""
Inference Module.

Responsibilities:
- Loading the quantized SSD detection model and its label vocabulary
- Single forward passes with fixed-shape outputs
- Hardware-acceleration delegate with CPU fallback
"""

from .vocabulary import Vocabulary, SENTINEL_LABEL
from .engine import InferenceEngine, DEFAULT_LABELS_PATH
