"""
Detection Post-processing Module.

Responsibilities:
- Duplicate suppression (same label, overlapping boxes)
- Confidence bucketing and the minimum-confidence floor
- Spatial position and distance estimation
"""

from .nms import NonMaximumSuppression
from .confidence import ConfidenceClassifier
from .spatial import SpatialAnalyzer
