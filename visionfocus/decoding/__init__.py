"""
Detection Decoding Module.

Turns the detector's raw output arrays into labelled detections.
"""

from .decoder import DetectionDecoder
