"""
Non-Maximum Suppression for duplicate detections.

When two detections share a label and their boxes overlap with
IoU > threshold, only the higher-confidence one is kept.
"""

from __future__ import annotations

from typing import List, Set

from loguru import logger

from visionfocus.core.contracts import Detection


class NonMaximumSuppression:
    """Greedy per-label NMS."""

    IOU_THRESHOLD = 0.5

    # Caps the O(n^2) comparison on pathological inputs
    MAX_DETECTIONS = 200

    def __init__(self, iou_threshold: float = IOU_THRESHOLD):
        self.iou_threshold = iou_threshold

    def apply(self, detections: List[Detection]) -> List[Detection]:
        """Return de-duplicated detections, highest confidence first."""
        if len(detections) <= 1:
            return list(detections)

        ranked = sorted(detections, key=lambda d: d.confidence, reverse=True)
        ranked = ranked[: self.MAX_DETECTIONS]

        keep: List[Detection] = []
        discarded: Set[int] = set()

        for i, detection in enumerate(ranked):
            if i in discarded:
                continue
            keep.append(detection)

            for j in range(i + 1, len(ranked)):
                if j in discarded:
                    continue
                other = ranked[j]
                if other.label != detection.label:
                    continue
                if detection.bounding_box.iou(other.bounding_box) > self.iou_threshold:
                    discarded.add(j)

        if discarded:
            logger.debug(f"NMS suppressed {len(discarded)} duplicate detection(s)")
        return keep
