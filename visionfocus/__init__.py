"""
On-device Object Recognition Pipeline

Turns a live camera feed into short spoken descriptions of nearby
objects for users with low or no vision.

Top Priorities (strict order):
1. Never conflate "could not look" with "looked and saw nothing"
2. Honest confidence in every announcement
3. Latency budget: 320ms target, 500ms hard cap
4. Zero network dependency
"""

__version__ = "0.1.0"
__author__ = "VisionFocus Team"
