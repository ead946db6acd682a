# tests/test_orchestrator.py
import threading

import pytest

from visionfocus.announcement import AnnouncementComposer, FixedTemplateSelector
from visionfocus.capture import FrameSource, StaticFrameSource
from visionfocus.core.contracts import PipelineState, RecognitionStage, VerbosityMode
from visionfocus.core.errors import (
    CaptureError,
    InitializationError,
    NotInitializedError,
    PipelineBusyError,
    PreprocessError,
    RecognitionCancelled,
)
from visionfocus.inference import InferenceEngine
from visionfocus.pipeline import PipelineConfig, PipelineOrchestrator

from conftest import CHAIR, CUP, DINING_TABLE, PERSON, make_frame


class GatedFrameSource(FrameSource):
    """Blocks in next_frame() until released or cancelled."""

    def __init__(self, frame):
        self.frame = frame
        self.entered = threading.Event()
        self.release = threading.Event()
        self.stop_count = 0
        self._running = False

    def start(self):
        self._running = True

    def stop(self):
        if self._running:
            self.stop_count += 1
        self._running = False

    @property
    def is_running(self):
        return self._running

    def next_frame(self, timeout_s, cancel_event=None):
        self.entered.set()
        while not self.release.wait(0.01):
            if cancel_event is not None and cancel_event.is_set():
                raise RecognitionCancelled("cancelled while waiting")
        return self.frame


class FailingFrameSource(StaticFrameSource):
    def next_frame(self, timeout_s, cancel_event=None):
        raise CaptureError("camera disconnected")


def build(engine, source, config=None, **kwargs):
    return PipelineOrchestrator(
        engine,
        source,
        config=config,
        composer=kwargs.pop(
            "composer",
            AnnouncementComposer(
                selector=FixedTemplateSelector(0),
                include_spatial=bool(config and config.announce_spatial),
            ),
        ),
        **kwargs,
    )


@pytest.fixture
def source():
    return StaticFrameSource([make_frame()])


@pytest.fixture
def pipeline(engine, source):
    orchestrator = build(engine, source)
    yield orchestrator
    orchestrator.shutdown()


# ============================================================
# Lifecycle
# ============================================================

def test_run_before_initialize_raises(pipeline):
    assert pipeline.state is PipelineState.UNINITIALIZED
    with pytest.raises(NotInitializedError):
        pipeline.run_once()


def test_initialize_failure_marks_failed(tmp_path, labels_file, interpreter_factory, source):
    engine = InferenceEngine(
        tmp_path / "missing.tflite", labels_file, interpreter_factory=interpreter_factory
    )
    orchestrator = build(engine, source)
    try:
        with pytest.raises(InitializationError):
            orchestrator.initialize()
        assert orchestrator.state is PipelineState.FAILED
        with pytest.raises(NotInitializedError):
            orchestrator.run_once()
    finally:
        orchestrator.shutdown()


def test_initialize_makes_ready(pipeline):
    pipeline.initialize()
    assert pipeline.state is PipelineState.READY
    assert pipeline.stage is RecognitionStage.IDLE


def test_reinitialize_after_shutdown(pipeline, fake_interpreter):
    fake_interpreter.set_detections([(CHAIR, 0.92, (0.1, 0.1, 0.5, 0.5))])
    pipeline.initialize()
    assert pipeline.run_once().announcement == "I see a chair"

    pipeline.shutdown()
    assert pipeline.state is PipelineState.UNINITIALIZED
    with pytest.raises(NotInitializedError):
        pipeline.run_once()

    pipeline.initialize()
    assert pipeline.state is PipelineState.READY
    assert pipeline.run_once().announcement == "I see a chair"


def test_shutdown_is_repeatable(pipeline):
    pipeline.initialize()
    pipeline.shutdown()
    pipeline.shutdown()
    assert pipeline.state is PipelineState.UNINITIALIZED


# ============================================================
# Recognition cycle
# ============================================================

def test_full_cycle(pipeline, fake_interpreter, source):
    fake_interpreter.set_detections(
        [
            (CUP, 0.65, (0.6, 0.6, 0.8, 0.8)),
            (CHAIR, 0.92, (0.1, 0.1, 0.5, 0.5)),
            (PERSON, 0.40, (0.0, 0.0, 1.0, 1.0)),
        ]
    )
    pipeline.initialize()

    outcome = pipeline.run_once()

    assert outcome.announcement == "I see a chair, and Not sure, possibly a cup"
    assert [d.label for d in outcome.result.detections] == ["chair", "cup"]
    assert outcome.result.latency_ms >= 0
    assert outcome.result.timestamp_ms > 0
    assert pipeline.state is PipelineState.READY
    assert pipeline.stage is RecognitionStage.SUCCESS
    assert (source.start_count, source.stop_count) == (1, 1)


def test_nothing_detected_is_not_an_error(pipeline):
    pipeline.initialize()
    outcome = pipeline.run_once()
    assert outcome.result.detections == ()
    assert outcome.result.latency_ms >= 0
    assert outcome.announcement == "No objects detected"


def test_inference_failure_degrades_to_empty_result(pipeline, fake_interpreter):
    fake_interpreter.set_detections([(CHAIR, 0.92, (0.1, 0.1, 0.5, 0.5))])
    fake_interpreter.fail_on_invoke = True
    pipeline.initialize()

    outcome = pipeline.run_once()

    assert outcome.result.detections == ()
    assert outcome.announcement == "No objects detected"


def test_duplicate_boxes_suppressed(pipeline, fake_interpreter):
    fake_interpreter.set_detections(
        [
            (CHAIR, 0.88, (0.1, 0.1, 0.5, 0.5)),
            (CHAIR, 0.91, (0.11, 0.1, 0.51, 0.5)),
        ]
    )
    pipeline.initialize()
    outcome = pipeline.run_once()
    assert len(outcome.result.detections) == 1
    assert outcome.result.detections[0].confidence == pytest.approx(0.91)


def test_nms_can_be_disabled(engine, source, fake_interpreter):
    fake_interpreter.set_detections(
        [
            (CHAIR, 0.88, (0.1, 0.1, 0.5, 0.5)),
            (CHAIR, 0.91, (0.11, 0.1, 0.51, 0.5)),
        ]
    )
    orchestrator = build(engine, source, PipelineConfig(enable_nms=False))
    try:
        orchestrator.initialize()
        assert len(orchestrator.run_once().result.detections) == 2
    finally:
        orchestrator.shutdown()


def test_spatial_announcement(engine, source, fake_interpreter):
    fake_interpreter.set_detections([(DINING_TABLE, 0.9, (0.1, 0.1, 0.9, 0.9))])
    orchestrator = build(engine, source, PipelineConfig(announce_spatial=True))
    try:
        orchestrator.initialize()
        outcome = orchestrator.run_once()
    finally:
        orchestrator.shutdown()

    assert outcome.announcement == "I see a dining table close by in center of view"
    assert outcome.filtered[0].spatial is not None


def test_detailed_verbosity_annotates_spatial(engine, source, fake_interpreter):
    fake_interpreter.set_detections(
        [
            (CUP, 0.75, (0.8, 0.7, 0.9, 0.8)),
            (DINING_TABLE, 0.9, (0.1, 0.1, 0.9, 0.9)),
        ]
    )
    composer = AnnouncementComposer(verbosity=VerbosityMode.DETAILED)
    orchestrator = build(engine, source, composer=composer)
    try:
        orchestrator.initialize()
        outcome = orchestrator.run_once()
    finally:
        orchestrator.shutdown()

    assert all(d.spatial is not None for d in outcome.filtered)
    assert outcome.announcement == (
        "I see a dining table close by in center of view, "
        "and a cup far away on the right side, near the bottom"
    )


def test_verbosity_from_config(engine, source):
    orchestrator = PipelineOrchestrator(engine, source, config=PipelineConfig(verbosity="brief"))
    assert orchestrator.composer.verbosity is VerbosityMode.BRIEF


def test_on_result_callback(engine, source):
    received = []
    orchestrator = build(engine, source, on_result=received.append)
    try:
        orchestrator.initialize()
        outcome = orchestrator.run_once()
    finally:
        orchestrator.shutdown()
    assert received == [outcome]


def test_latency_statistics(pipeline):
    pipeline.initialize()
    for _ in range(3):
        pipeline.run_once()
    assert pipeline.cycles_completed == 3
    assert pipeline.average_latency_ms >= 0.0


def test_latency_over_budget_still_returns(engine, source):
    config = PipelineConfig(target_latency_ms=-1, max_latency_ms=-1)
    orchestrator = build(engine, source, config)
    try:
        orchestrator.initialize()
        outcome = orchestrator.run_once()
    finally:
        orchestrator.shutdown()
    assert outcome.announcement == "No objects detected"


# ============================================================
# Failures
# ============================================================

def test_capture_failure_propagates_and_releases(engine):
    source = FailingFrameSource([make_frame()])
    orchestrator = build(engine, source)
    try:
        orchestrator.initialize()
        with pytest.raises(CaptureError):
            orchestrator.run_once()
        assert orchestrator.stage is RecognitionStage.ERROR
        assert orchestrator.state is PipelineState.READY
        assert not source.is_running
        assert source.stop_count == 1
    finally:
        orchestrator.shutdown()


def test_malformed_frame_propagates(engine):
    frame = make_frame()
    frame.width = 641
    source = StaticFrameSource([frame])
    orchestrator = build(engine, source)
    try:
        orchestrator.initialize()
        with pytest.raises(PreprocessError):
            orchestrator.run_once()
        assert not source.is_running
    finally:
        orchestrator.shutdown()


# ============================================================
# Concurrency
# ============================================================

def test_overlapping_trigger_rejected(engine):
    source = GatedFrameSource(make_frame())
    orchestrator = build(engine, source)
    try:
        orchestrator.initialize()
        future = orchestrator.submit()
        assert source.entered.wait(2.0)

        assert orchestrator.is_busy
        with pytest.raises(PipelineBusyError):
            orchestrator.submit()

        source.release.set()
        assert future.result(timeout=5.0).announcement == "No objects detected"
        assert not orchestrator.is_busy

        # Accepted again once the cycle finished
        source.release.set()
        orchestrator.run_once()
    finally:
        source.release.set()
        orchestrator.shutdown()


def test_cycle_runs_off_caller_thread(engine, source):
    threads = []
    orchestrator = build(
        engine, source, on_result=lambda outcome: threads.append(threading.current_thread())
    )
    try:
        orchestrator.initialize()
        orchestrator.run_once()
    finally:
        orchestrator.shutdown()
    assert threads[0] is not threading.current_thread()


def test_cancel_releases_capture(engine):
    source = GatedFrameSource(make_frame())
    orchestrator = build(engine, source)
    try:
        orchestrator.initialize()
        future = orchestrator.submit()
        assert source.entered.wait(2.0)

        orchestrator.cancel()

        with pytest.raises(RecognitionCancelled):
            future.result(timeout=5.0)
        assert not source.is_running
        assert source.stop_count == 1
        assert not orchestrator.is_busy
    finally:
        source.release.set()
        orchestrator.shutdown()


def test_cancel_event_before_start(pipeline, source):
    pipeline.initialize()
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(RecognitionCancelled):
        pipeline.run_once(cancel)
    assert source.start_count == 0
