"""
Detection Decoder.

Raw output arrays -> list of Detection.

Out-of-range counts are clamped and out-of-range class ids resolve to the
sentinel label; neither is an error. Slots whose label is the sentinel or
an "unlabeled" marker are dropped.
"""

from __future__ import annotations

import math
from typing import List

from loguru import logger

from visionfocus.core.contracts import (
    BoundingBox,
    Detection,
    RawInferenceOutput,
    MAX_DETECTIONS,
)
from visionfocus.inference.vocabulary import Vocabulary


def _clip_unit(value: float) -> float:
    return min(1.0, max(0.0, value))


class DetectionDecoder:
    """Decodes RawInferenceOutput against a fixed vocabulary."""

    def __init__(self, vocabulary: Vocabulary, max_detections: int = MAX_DETECTIONS):
        """
        Args:
            vocabulary: Label vocabulary owned by the inference engine
            max_detections: Output slots per forward pass
        """
        self.vocabulary = vocabulary
        self.max_detections = max_detections

    def decode(self, raw: RawInferenceOutput) -> List[Detection]:
        count = self._clamp_count(raw.count)
        detections: List[Detection] = []

        for i in range(count):
            raw_id = float(raw.class_ids[i])
            if not math.isfinite(raw_id):
                logger.debug(f"Dropping slot {i}: non-finite class id")
                continue

            class_id = int(raw_id)
            label = self.vocabulary.label_for(class_id)

            if Vocabulary.is_unlabeled(label):
                logger.debug(f"Dropping slot {i}: class id {class_id} -> '{label}'")
                continue

            score = float(raw.scores[i])
            if math.isnan(score):
                logger.debug(f"Dropping slot {i} ({label}): NaN score")
                continue

            # Boxes are already normalized; clip float overshoot only
            y_min, x_min, y_max, x_max = (_clip_unit(float(v)) for v in raw.boxes[i])
            box = BoundingBox(y_min=y_min, x_min=x_min, y_max=y_max, x_max=x_max)
            if not box.is_valid:
                logger.debug(f"Dropping slot {i} ({label}): degenerate box {box}")
                continue

            detections.append(
                Detection(label=label, confidence=_clip_unit(score), bounding_box=box)
            )

        return detections

    def _clamp_count(self, declared: float) -> int:
        if math.isnan(declared):
            return 0
        return int(min(self.max_detections, max(0.0, declared)))
