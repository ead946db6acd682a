"""
Frame Capture Module.

Responsibilities:
- Frame acquisition from the camera on a dedicated capture thread
- Keep-only-latest hand-off to the recognition worker
- Planar YUV output
"""

from .frame_source import FrameSource
from .latest_frame import LatestFrameSlot
from .camera_source import CameraFrameSource
from .static_source import StaticFrameSource
