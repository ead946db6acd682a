"""
Label vocabulary for the detection model.

One category label per line, ordered by class index.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

from loguru import logger

from visionfocus.core.errors import InitializationError


# Returned for class ids outside the vocabulary
SENTINEL_LABEL = "unknown"

# Labels that mark an unused class slot
UNLABELED_MARKERS = frozenset({"???", SENTINEL_LABEL, ""})


class Vocabulary:
    """Fixed, ordered list of category names indexed by class id."""

    def __init__(self, labels: Sequence[str]):
        self._labels: List[str] = [label.strip() for label in labels]

    @classmethod
    def load(cls, path: str | Path, min_entries: int = 80) -> Vocabulary:
        """
        Load a vocabulary file.

        Raises:
            InitializationError: File missing/unreadable or too few entries
        """
        path = Path(path)
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise InitializationError(f"Failed to load labels from {path}: {e}") from e

        vocabulary = cls(lines)
        if len(vocabulary) < min_entries:
            raise InitializationError(
                f"Vocabulary {path} has {len(vocabulary)} entries, "
                f"need at least {min_entries}"
            )

        logger.info(f"Loaded {len(vocabulary)} labels from {path.name}")
        return vocabulary

    def label_for(self, class_id: int) -> str:
        """Label for a class id, or SENTINEL_LABEL when out of range."""
        if 0 <= class_id < len(self._labels):
            return self._labels[class_id]
        return SENTINEL_LABEL

    @staticmethod
    def is_unlabeled(label: str) -> bool:
        return label in UNLABELED_MARKERS

    @property
    def labels(self) -> List[str]:
        return list(self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __contains__(self, label: object) -> bool:
        return label in self._labels
