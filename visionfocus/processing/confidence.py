"""
Confidence Classifier.

Fixed thresholds (not user-configurable):
    >= 0.85        HIGH
    [0.70, 0.85)   MEDIUM
    [0.60, 0.70)   LOW
    < 0.60         discarded, never surfaced
"""

from __future__ import annotations

from typing import List, Optional

import numpy as np
from loguru import logger

from visionfocus.core.contracts import ConfidenceLevel, Detection, FilteredDetection


HIGH_THRESHOLD = 0.85
MEDIUM_THRESHOLD = 0.70
MINIMUM_CONFIDENCE = 0.60


class ConfidenceClassifier:
    """Buckets detections by confidence and drops those below the floor."""

    @staticmethod
    def categorize(confidence: float) -> Optional[ConfidenceLevel]:
        """Confidence level for a score, or None below the floor."""
        # Model scores are float32; compare at that precision so 0.7f is MEDIUM
        value = np.float32(confidence)
        if value >= np.float32(HIGH_THRESHOLD):
            return ConfidenceLevel.HIGH
        if value >= np.float32(MEDIUM_THRESHOLD):
            return ConfidenceLevel.MEDIUM
        if value >= np.float32(MINIMUM_CONFIDENCE):
            return ConfidenceLevel.LOW
        return None

    def classify(self, detections: List[Detection]) -> List[FilteredDetection]:
        """
        Filter and bucket detections.

        Returns:
            FilteredDetections sorted by descending confidence
        """
        if not detections:
            return []

        filtered: List[FilteredDetection] = []
        for detection in detections:
            level = self.categorize(detection.confidence)
            if level is None:
                logger.debug(
                    f"Below confidence floor: {detection.label} ({detection.confidence:.2f})"
                )
                continue
            filtered.append(FilteredDetection(detection=detection, level=level))

        # Stable sort keeps decoder order for equal scores
        filtered.sort(key=lambda f: f.confidence, reverse=True)
        return filtered
