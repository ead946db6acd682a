"""
Spatial Analyzer.

Position: the box center is placed on a 3x3 grid of the view. Zone
boundaries sit at 0.33 and 0.66; a 0.05 tolerance widens the center band
so objects near a boundary do not flip between zones.

Distance: from the box area as a fraction of the view.
    > 0.40   CLOSE   (within arm's reach)
    > 0.20   MEDIUM  (a few steps away)
    else     FAR     (across the room)
"""

from __future__ import annotations

from typing import List

from loguru import logger

from visionfocus.core.contracts import (
    BoundingBox,
    Distance,
    FilteredDetection,
    Position,
    SpatialInfo,
)


LEFT_BOUNDARY = 0.33
RIGHT_BOUNDARY = 0.66
TOP_BOUNDARY = 0.33
BOTTOM_BOUNDARY = 0.66
TOLERANCE = 0.05

CLOSE_AREA = 0.40
MEDIUM_AREA = 0.20

_GRID = {
    ("left", "top"): Position.TOP_LEFT,
    ("center", "top"): Position.TOP_CENTER,
    ("right", "top"): Position.TOP_RIGHT,
    ("left", "center"): Position.CENTER_LEFT,
    ("center", "center"): Position.CENTER_CENTER,
    ("right", "center"): Position.CENTER_RIGHT,
    ("left", "bottom"): Position.BOTTOM_LEFT,
    ("center", "bottom"): Position.BOTTOM_CENTER,
    ("right", "bottom"): Position.BOTTOM_RIGHT,
}


class SpatialAnalyzer:
    """Derives SpatialInfo from normalized bounding boxes."""

    def analyze(self, box: BoundingBox) -> SpatialInfo:
        return SpatialInfo(position=self.position(box), distance=self.distance(box))

    def annotate(self, detections: List[FilteredDetection]) -> List[FilteredDetection]:
        """Attach SpatialInfo to each detection, preserving order."""
        return [
            FilteredDetection(
                detection=f.detection,
                level=f.level,
                spatial=self.analyze(f.detection.bounding_box),
            )
            for f in detections
        ]

    @staticmethod
    def position(box: BoundingBox) -> Position:
        center_x, center_y = box.center

        if center_x < LEFT_BOUNDARY - TOLERANCE:
            horizontal = "left"
        elif center_x > RIGHT_BOUNDARY + TOLERANCE:
            horizontal = "right"
        else:
            horizontal = "center"

        if center_y < TOP_BOUNDARY - TOLERANCE:
            vertical = "top"
        elif center_y > BOTTOM_BOUNDARY + TOLERANCE:
            vertical = "bottom"
        else:
            vertical = "center"

        return _GRID[(horizontal, vertical)]

    @staticmethod
    def distance(box: BoundingBox) -> Distance:
        if box.width <= 0 or box.height <= 0:
            logger.warning(f"Invalid bounding box for distance: {box}")
            return Distance.FAR

        area = box.width * box.height
        if area > CLOSE_AREA:
            return Distance.CLOSE
        if area > MEDIUM_AREA:
            return Distance.MEDIUM
        return Distance.FAR
