# tests/test_spatial.py
import pytest

from visionfocus.core.contracts import (
    BoundingBox,
    ConfidenceLevel,
    Detection,
    Distance,
    FilteredDetection,
    Position,
)
from visionfocus.processing import SpatialAnalyzer


def centered_box(cx, cy, half=0.05):
    return BoundingBox(y_min=cy - half, x_min=cx - half, y_max=cy + half, x_max=cx + half)


@pytest.mark.parametrize(
    "cx, cy, position",
    [
        (0.1, 0.1, Position.TOP_LEFT),
        (0.5, 0.1, Position.TOP_CENTER),
        (0.9, 0.1, Position.TOP_RIGHT),
        (0.1, 0.5, Position.CENTER_LEFT),
        (0.5, 0.5, Position.CENTER_CENTER),
        (0.9, 0.5, Position.CENTER_RIGHT),
        (0.1, 0.9, Position.BOTTOM_LEFT),
        (0.5, 0.9, Position.BOTTOM_CENTER),
        (0.9, 0.9, Position.BOTTOM_RIGHT),
    ],
)
def test_position_grid(cx, cy, position):
    assert SpatialAnalyzer.position(centered_box(cx, cy)) is position


def test_tolerance_widens_center_band():
    # Just left of the 0.33 boundary, but within tolerance
    assert SpatialAnalyzer.position(centered_box(0.30, 0.5)) is Position.CENTER_CENTER
    assert SpatialAnalyzer.position(centered_box(0.25, 0.5)) is Position.CENTER_LEFT


@pytest.mark.parametrize(
    "box, distance",
    [
        (BoundingBox(0.0, 0.0, 0.8, 0.8), Distance.CLOSE),
        (BoundingBox(0.0, 0.0, 0.5, 0.5), Distance.MEDIUM),
        (BoundingBox(0.0, 0.0, 0.3, 0.3), Distance.FAR),
        (BoundingBox(0.5, 0.5, 0.5, 0.9), Distance.FAR),
    ],
)
def test_distance_from_area(box, distance):
    assert SpatialAnalyzer.distance(box) is distance


def test_natural_language():
    info = SpatialAnalyzer().analyze(BoundingBox(0.1, 0.1, 0.9, 0.9))
    assert info.to_natural_language() == "close by in center of view"


def test_annotate_preserves_order_and_levels():
    filtered = [
        FilteredDetection(
            Detection("chair", 0.9, centered_box(0.9, 0.1)), ConfidenceLevel.HIGH
        ),
        FilteredDetection(
            Detection("cup", 0.65, centered_box(0.1, 0.5)), ConfidenceLevel.LOW
        ),
    ]
    annotated = SpatialAnalyzer().annotate(filtered)

    assert [f.label for f in annotated] == ["chair", "cup"]
    assert [f.level for f in annotated] == [ConfidenceLevel.HIGH, ConfidenceLevel.LOW]
    assert annotated[0].spatial.position is Position.TOP_RIGHT
    assert annotated[1].spatial.to_natural_language() == "far away on the left"
    assert filtered[0].spatial is None
