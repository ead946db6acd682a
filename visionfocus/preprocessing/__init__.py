"""
Frame Preprocessing Module.

Responsibilities:
- Planar YUV -> interleaved RGB conversion
- Bilinear resize to the model input size
- Packing into a float32 tensor with unnormalized [0, 255] values
"""

from .frame_preprocessor import FramePreprocessor, ConversionPath
