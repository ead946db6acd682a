# tests/test_preprocessor.py
import numpy as np
import pytest

from visionfocus.core.contracts import Frame, TENSOR_BYTE_SIZE
from visionfocus.core.errors import PreprocessError
from visionfocus.preprocessing import ConversionPath, FramePreprocessor

from conftest import make_frame


def test_tensor_layout(frame):
    tensor = FramePreprocessor().process(frame)
    assert tensor.data.shape == (300, 300, 3)
    assert tensor.data.dtype == np.float32
    assert tensor.nbytes == TENSOR_BYTE_SIZE == 1_080_000
    assert tensor.data.flags["C_CONTIGUOUS"]


def test_values_are_not_normalized():
    tensor = FramePreprocessor().process(make_frame(rgb=(200, 200, 200)))
    assert tensor.data.min() >= 0.0
    assert tensor.data.max() <= 255.0
    assert tensor.data.mean() > 150.0


def test_uniform_color_survives_conversion():
    tensor = FramePreprocessor().process(make_frame(rgb=(128, 64, 32)))
    r, g, b = tensor.pixel(150, 150)
    assert r == pytest.approx(128, abs=4)
    assert g == pytest.approx(64, abs=4)
    assert b == pytest.approx(32, abs=4)


def test_channel_order_is_rgb():
    tensor = FramePreprocessor().process(make_frame(rgb=(230, 20, 20)))
    r, g, b = tensor.pixel(10, 10)
    assert r > 180
    assert b < 70


def test_resize_preserves_horizontal_layout():
    raster = np.zeros((480, 640, 3), dtype=np.uint8)
    raster[:, :320] = (220, 30, 30)
    raster[:, 320:] = (30, 30, 220)
    tensor = FramePreprocessor().process(Frame.from_rgb(raster))

    left = tensor.pixel(150, 20)
    right = tensor.pixel(150, 280)
    assert left[0] > left[2]
    assert right[2] > right[0]


def test_jpeg_path_matches_direct_path():
    frame = make_frame(rgb=(90, 160, 40))
    direct = FramePreprocessor().process(frame)
    jpeg = FramePreprocessor(ConversionPath.JPEG).process(frame)
    assert jpeg.data.shape == direct.data.shape
    assert np.abs(jpeg.data - direct.data).mean() < 4.0


def test_each_call_allocates_a_fresh_tensor(frame):
    preprocessor = FramePreprocessor()
    first = preprocessor.process(frame)
    second = preprocessor.process(frame)
    assert first.data is not second.data
    assert preprocessor.average_process_time_ms > 0.0


def test_odd_dimensions_rejected():
    frame = make_frame()
    frame.width = 639
    with pytest.raises(PreprocessError):
        FramePreprocessor().process(frame)


def test_zero_dimensions_rejected():
    empty = np.zeros((0, 0), dtype=np.uint8)
    frame = Frame(y_plane=empty, u_plane=empty, v_plane=empty, width=0, height=0)
    with pytest.raises(PreprocessError):
        FramePreprocessor().process(frame)


def test_mismatched_chroma_plane_rejected():
    frame = make_frame(width=64, height=48)
    frame.u_plane = np.zeros((10, 10), dtype=np.uint8)
    with pytest.raises(PreprocessError):
        FramePreprocessor().process(frame)


def test_wrong_plane_dtype_rejected():
    frame = make_frame(width=64, height=48)
    frame.y_plane = frame.y_plane.astype(np.float32)
    with pytest.raises(PreprocessError):
        FramePreprocessor().process(frame)


def test_tensor_contract_enforced():
    from visionfocus.core.contracts import PreprocessedTensor

    with pytest.raises(PreprocessError):
        PreprocessedTensor(data=np.zeros((224, 224, 3), dtype=np.float32))
    with pytest.raises(PreprocessError):
        PreprocessedTensor(data=np.zeros((300, 300, 3), dtype=np.float64))
