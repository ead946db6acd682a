"""
Confidence-aware announcement composer.

Strategy:
- HIGH: assertive phrasing ("I see a chair")
- MEDIUM: qualified phrasing ("Possibly a bottle")
- LOW: hedged phrasing ("Not sure, possibly a cup")
- Template choice is delegated to a TemplateSelector so production can
  vary the wording while tests stay deterministic
- "a {object}" takes "an" before a vowel ("I see an apple")

Verbosity (CONVERSATIONAL uses the templates above):
- BRIEF:    "Chair"
- STANDARD: "Chair with high confidence"
- DETAILED: "High confidence: chair, close by in center of view"; with
            spatial info for several objects, nearest first:
            "I see a chair close by in center of view, and a table far away on the left"

Joining:
- 0 detections: "No objects detected"
- 1 detection:  "I see a chair"
- 2 detections: "I see a chair, and possibly a table"
- 3+:           "I see a chair, possibly a table, and might be a cup"
"""

from __future__ import annotations

import random
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Sequence

from loguru import logger

from visionfocus.core.contracts import (
    BoundingBox,
    ConfidenceLevel,
    Distance,
    FilteredDetection,
    VerbosityMode,
)


NO_OBJECTS_ANNOUNCEMENT = "No objects detected"
OBJECT_PLACEHOLDER = "{object}"

# "a {object}" / "A {object}" in a template
_ARTICLE_SLOT = re.compile(r"\b([Aa]) \{object\}")

VOWELS = frozenset("aeiou")

DEFAULT_PHRASES: Dict[ConfidenceLevel, Sequence[str]] = {
    ConfidenceLevel.HIGH: (
        "I see a {object}",
        "{object} with high confidence",
        "I'm quite certain that's a {object}",
        "That looks like a {object}",
    ),
    ConfidenceLevel.MEDIUM: (
        "Possibly a {object}",
        "I think that's a {object}",
        "Looks like it might be a {object}",
        "Could be a {object}",
    ),
    ConfidenceLevel.LOW: (
        "Not sure, possibly a {object}",
        "Might be a {object}",
        "I'm not certain, but it could be a {object}",
        "Hard to tell, but possibly a {object}",
    ),
}


# ============================================================
# TEMPLATE SELECTION
# ============================================================

class TemplateSelector(ABC):
    """Chooses one template from a confidence level's pool."""

    @abstractmethod
    def select(self, level: ConfidenceLevel, templates: Sequence[str]) -> str:
        pass


class RandomTemplateSelector(TemplateSelector):
    """Random choice, to avoid robotic repetition. Seed it for reproducibility."""

    def __init__(self, seed: Optional[int] = None):
        self._random = random.Random(seed)

    def select(self, level: ConfidenceLevel, templates: Sequence[str]) -> str:
        return self._random.choice(templates)


class FixedTemplateSelector(TemplateSelector):
    """Always the template at `index` (wrapped to the pool size)."""

    def __init__(self, index: int = 0):
        self.index = index

    def select(self, level: ConfidenceLevel, templates: Sequence[str]) -> str:
        return templates[self.index % len(templates)]


def article_for(label: str) -> str:
    """The article "a" or "an", chosen from the label's first letter."""
    return "an" if label[:1].lower() in VOWELS else "a"


def _horizontal_position(box: BoundingBox) -> str:
    """Left/center/right from the box center alone, for boxes without SpatialInfo."""
    center_x, _ = box.center
    if center_x < 0.33:
        return "on the left"
    if center_x > 0.66:
        return "on the right"
    return "in center of view"


# ============================================================
# COMPOSER
# ============================================================

class AnnouncementComposer:
    """
    FilteredDetections (sorted, filtered) -> announcement string.

    Never receives raw Detections: filtering and ordering happen upstream.
    """

    def __init__(
        self,
        selector: Optional[TemplateSelector] = None,
        phrases: Optional[Mapping[ConfidenceLevel, Sequence[str]]] = None,
        include_spatial: bool = False,
        verbosity: VerbosityMode = VerbosityMode.CONVERSATIONAL,
    ):
        """
        Initialize composer.

        Args:
            selector: Template selection strategy (random by default)
            phrases: Template pools per confidence level
            include_spatial: Append position/distance to each phrase when known
            verbosity: Per-detection phrasing
        """
        self.selector = selector or RandomTemplateSelector()
        self.phrases = dict(phrases or DEFAULT_PHRASES)
        self.include_spatial = include_spatial
        self.verbosity = VerbosityMode.parse(verbosity)

        for level in ConfidenceLevel:
            pool = self.phrases.get(level)
            if not pool:
                raise ValueError(f"No phrase templates for {level.name}")
            for template in pool:
                if template.count(OBJECT_PLACEHOLDER) != 1:
                    raise ValueError(
                        f"Template must contain exactly one {OBJECT_PLACEHOLDER}: {template!r}"
                    )

    @property
    def needs_spatial(self) -> bool:
        """Whether detections should carry SpatialInfo before compose()."""
        return self.include_spatial or self.verbosity is VerbosityMode.DETAILED

    def phrase(self, detection: FilteredDetection) -> str:
        """Phrase for a single detection."""
        if self.verbosity is VerbosityMode.DETAILED:
            return self._detailed_phrase(detection)

        label = detection.label
        if self.verbosity is VerbosityMode.BRIEF:
            text = label[:1].upper() + label[1:]
        elif self.verbosity is VerbosityMode.STANDARD:
            text = f"{label[:1].upper() + label[1:]} with {detection.level.value} confidence"
        else:
            template = self.selector.select(detection.level, self.phrases[detection.level])
            text = self._fill(template, label)

        if self.include_spatial and detection.spatial is not None:
            text = f"{text} {detection.spatial.to_natural_language()}"
        return text

    def compose(self, detections: List[FilteredDetection]) -> str:
        if not detections:
            return NO_OBJECTS_ANNOUNCEMENT

        if self.verbosity is VerbosityMode.DETAILED and len(detections) > 1 and all(
            d.spatial is not None for d in detections
        ):
            phrases = self._spatial_phrases(detections)
        else:
            phrases = [self.phrase(d) for d in detections]

        if len(phrases) == 1:
            announcement = phrases[0]
        else:
            announcement = f"{', '.join(phrases[:-1])}, and {phrases[-1]}"

        logger.debug(f"Announcement: {announcement}")
        return announcement

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    @staticmethod
    def _fill(template: str, label: str) -> str:
        def article(match: re.Match) -> str:
            word = article_for(label)
            if match.group(1) == "A":
                word = word.capitalize()
            return f"{word} {label}"

        text = _ARTICLE_SLOT.sub(article, template)
        return text.replace(OBJECT_PLACEHOLDER, label)

    @staticmethod
    def _detailed_phrase(detection: FilteredDetection) -> str:
        if detection.spatial is not None:
            where = detection.spatial.to_natural_language()
        else:
            where = _horizontal_position(detection.detection.bounding_box)
        return f"{detection.level.value.capitalize()} confidence: {detection.label}, {where}"

    @staticmethod
    def _spatial_phrases(detections: List[FilteredDetection]) -> List[str]:
        # Nearest first, then most confident; sort is stable
        distance_rank = {distance: i for i, distance in enumerate(Distance)}
        ordered = sorted(
            detections,
            key=lambda d: (distance_rank[d.spatial.distance], -d.confidence),
        )
        phrases = [
            f"{article_for(d.label)} {d.label} {d.spatial.to_natural_language()}"
            for d in ordered
        ]
        phrases[0] = f"I see {phrases[0]}"
        return phrases
