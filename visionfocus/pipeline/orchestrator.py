"""
Pipeline Orchestrator.

Executes one recognition cycle in strict order:

1. Acquire the latest camera frame
2. Convert it into the model input tensor
3. Run the detector
4. Decode raw outputs into detections
5. Suppress duplicate boxes
6. Classify by confidence (drop below the floor)
7. Attach spatial information (optional)
8. Compose the announcement

Cycles run on a single compute worker, never on the caller's thread.
At most one cycle is in flight; overlapping triggers are rejected.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from loguru import logger

from visionfocus.core.contracts import (
    PipelineState,
    RecognitionOutcome,
    RecognitionResult,
    RecognitionStage,
    VerbosityMode,
)
from visionfocus.core.errors import (
    InitializationError,
    NotInitializedError,
    PipelineBusyError,
    RecognitionCancelled,
)
from visionfocus.capture import CameraFrameSource, FrameSource
from visionfocus.preprocessing import FramePreprocessor
from visionfocus.inference import InferenceEngine, DEFAULT_LABELS_PATH
from visionfocus.inference.engine import DEFAULT_MODEL_PATH
from visionfocus.decoding import DetectionDecoder
from visionfocus.processing import (
    ConfidenceClassifier,
    NonMaximumSuppression,
    SpatialAnalyzer,
)
from visionfocus.announcement import AnnouncementComposer


@dataclass
class PipelineConfig:
    """Configuration for the pipeline."""
    # Model
    model_path: str = DEFAULT_MODEL_PATH
    labels_path: str = str(DEFAULT_LABELS_PATH)
    num_threads: int = 4
    use_acceleration: bool = True
    delegate_library: Optional[str] = None
    min_vocabulary_size: int = 80

    # Latency budgets (observed, never enforced)
    target_latency_ms: float = 320.0
    max_latency_ms: float = 500.0

    # Capture
    capture_timeout_s: float = 2.0
    camera_device: int = 0
    camera_width: int = 640
    camera_height: int = 480
    camera_fps: int = 30

    # Processing
    enable_nms: bool = True
    nms_iou_threshold: float = 0.5

    # Announcement
    announce_spatial: bool = False
    verbosity: str = VerbosityMode.CONVERSATIONAL.value

    # YAML section -> {yaml key: field name}
    _SECTIONS = {
        "model": {
            "path": "model_path",
            "labels_path": "labels_path",
            "num_threads": "num_threads",
            "use_acceleration": "use_acceleration",
            "delegate_library": "delegate_library",
            "min_vocabulary_size": "min_vocabulary_size",
        },
        "camera": {
            "device": "camera_device",
            "width": "camera_width",
            "height": "camera_height",
            "fps": "camera_fps",
            "timeout_s": "capture_timeout_s",
        },
        "latency": {
            "target_ms": "target_latency_ms",
            "max_ms": "max_latency_ms",
        },
        "processing": {
            "enable_nms": "enable_nms",
            "nms_iou_threshold": "nms_iou_threshold",
        },
        "announcement": {
            "spatial": "announce_spatial",
            "verbosity": "verbosity",
        },
    }

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> PipelineConfig:
        """
        Build from a nested configuration document.

        Unknown keys are ignored; missing keys keep their defaults.
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}

        for section, keys in cls._SECTIONS.items():
            section_values = config.get(section) or {}
            for key, field_name in keys.items():
                if key in section_values and field_name in known:
                    values[field_name] = section_values[key]

        return cls(**values)


# Receives each completed outcome
ResultCallback = Callable[[RecognitionOutcome], None]


class PipelineOrchestrator:
    """
    Main pipeline orchestrator.

    State machine: UNINITIALIZED -> READY -> (RUNNING -> READY)*,
    UNINITIALIZED -> FAILED when initialization fails.

    Guarantees:
    - Pipeline order is NEVER reordered
    - At most one cycle in flight; extra triggers raise PipelineBusyError
    - Latency budget breaches are logged, never enforced
    - Capture bindings made by a cycle are released whatever the outcome
    """

    LATENCY_WINDOW = 100

    def __init__(
        self,
        engine: InferenceEngine,
        frame_source: FrameSource,
        config: Optional[PipelineConfig] = None,
        preprocessor: Optional[FramePreprocessor] = None,
        decoder: Optional[DetectionDecoder] = None,
        nms: Optional[NonMaximumSuppression] = None,
        classifier: Optional[ConfidenceClassifier] = None,
        spatial: Optional[SpatialAnalyzer] = None,
        composer: Optional[AnnouncementComposer] = None,
        on_result: Optional[ResultCallback] = None,
    ):
        """
        Initialize pipeline orchestrator.

        Args:
            engine: Inference engine (not reentrant; owned by this orchestrator)
            frame_source: Camera frame source
            config: Pipeline configuration
            preprocessor: Frame -> tensor stage
            decoder: Raw output decoder (built from the engine vocabulary if omitted)
            nms: Duplicate box suppression
            classifier: Confidence classifier
            spatial: Spatial analyzer
            composer: Announcement composer
            on_result: Called with every completed outcome
        """
        self.config = config or PipelineConfig()
        self.engine = engine
        self.frame_source = frame_source

        self.preprocessor = preprocessor or FramePreprocessor()
        self.decoder = decoder
        self._injected_decoder = decoder
        self.nms = nms or NonMaximumSuppression(self.config.nms_iou_threshold)
        self.classifier = classifier or ConfidenceClassifier()
        self.spatial = spatial or SpatialAnalyzer()
        self.composer = composer or AnnouncementComposer(
            include_spatial=self.config.announce_spatial,
            verbosity=VerbosityMode.parse(self.config.verbosity),
        )
        self.on_result = on_result

        # Pipeline state
        self._state = PipelineState.UNINITIALIZED
        self._stage = RecognitionStage.IDLE
        self._state_lock = threading.Lock()

        # Compute worker, one cycle at a time (created by initialize())
        self._executor: Optional[ThreadPoolExecutor] = None
        self._busy = threading.Lock()
        self._active_cancel: Optional[threading.Event] = None

        # Performance tracking
        self._latencies: List[int] = []
        self.cycles_completed = 0

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        frame_source: Optional[FrameSource] = None,
        **kwargs,
    ) -> PipelineOrchestrator:
        """Build the engine and (by default) a camera source from configuration."""
        engine = InferenceEngine(
            model_path=Path(config.model_path),
            labels_path=Path(config.labels_path),
            num_threads=config.num_threads,
            use_acceleration=config.use_acceleration,
            delegate_library=config.delegate_library,
            min_vocabulary_size=config.min_vocabulary_size,
        )
        if frame_source is None:
            frame_source = CameraFrameSource(
                device_index=config.camera_device,
                width=config.camera_width,
                height=config.camera_height,
                fps=config.camera_fps,
            )
        return cls(engine, frame_source, config=config, **kwargs)

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    def initialize(self) -> None:
        """
        Prepare the inference engine and vocabulary.

        Raises:
            InitializationError: The pipeline is left FAILED
        """
        try:
            self.engine.initialize()
        except InitializationError as e:
            self._set_state(PipelineState.FAILED)
            self._stage = RecognitionStage.ERROR
            logger.error(f"Pipeline initialization failed: {e}")
            raise

        # The engine reloads its vocabulary on every initialize()
        self.decoder = self._injected_decoder or DetectionDecoder(self.engine.vocabulary)

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="recognition")

        self._set_state(PipelineState.READY)
        self._stage = RecognitionStage.IDLE
        logger.info("Pipeline ready")

    def shutdown(self) -> None:
        """Cancel any in-flight cycle, stop the worker and release the engine."""
        self.cancel()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        if self.frame_source.is_running:
            self.frame_source.stop()
        self.engine.close()
        self._set_state(PipelineState.UNINITIALIZED)
        logger.info("Pipeline shut down")

    def __enter__(self) -> PipelineOrchestrator:
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    # ------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------

    def submit(self, cancel_event: Optional[threading.Event] = None) -> Future:
        """
        Schedule one recognition cycle on the compute worker.

        Returns:
            Future resolving to a RecognitionOutcome

        Raises:
            NotInitializedError: Pipeline is UNINITIALIZED or FAILED
            PipelineBusyError: A cycle is already in flight
        """
        self._require_ready()

        if not self._busy.acquire(blocking=False):
            logger.warning("Recognition already in progress, ignoring trigger")
            raise PipelineBusyError("A recognition cycle is already in flight")

        cancel_event = cancel_event or threading.Event()
        self._active_cancel = cancel_event
        try:
            return self._executor.submit(self._run_cycle, cancel_event)
        except RuntimeError:
            self._active_cancel = None
            self._busy.release()
            raise

    def run_once(self, cancel_event: Optional[threading.Event] = None) -> RecognitionOutcome:
        """Run one full cycle on the compute worker and wait for it."""
        return self.submit(cancel_event).result()

    def cancel(self) -> None:
        """Request cooperative cancellation of the in-flight cycle, if any."""
        event = self._active_cancel
        if event is not None and not event.is_set():
            event.set()
            logger.info("Cancellation requested")

    # ------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------

    def _run_cycle(self, cancel_event: threading.Event) -> RecognitionOutcome:
        self._set_state(PipelineState.RUNNING)
        try:
            outcome = self._execute(cancel_event)
        except RecognitionCancelled:
            self._stage = RecognitionStage.IDLE
            logger.info("Recognition cancelled")
            raise
        except Exception as e:
            self._stage = RecognitionStage.ERROR
            logger.error(f"Recognition failed: {e}")
            raise
        finally:
            self._active_cancel = None
            self._set_state(PipelineState.READY)
            self._busy.release()

        if self.on_result is not None:
            try:
                self.on_result(outcome)
            except Exception as e:
                logger.error(f"Result callback failed: {e}")
        return outcome

    def _execute(self, cancel_event: threading.Event) -> RecognitionOutcome:
        cycle_start = time.perf_counter()

        # ============================================================
        # STEP 1: Acquire the latest frame
        # ============================================================
        self._stage = RecognitionStage.CAPTURING
        self._check_cancelled(cancel_event)
        with self.frame_source.binding():
            frame = self.frame_source.next_frame(
                self.config.capture_timeout_s, cancel_event
            )
        capture_done = time.perf_counter()

        # ============================================================
        # STEP 2: Frame -> tensor
        # ============================================================
        self._stage = RecognitionStage.ANALYZING
        self._check_cancelled(cancel_event)
        tensor = self.preprocessor.process(frame)
        del frame

        # ============================================================
        # STEP 3: Forward pass (failures degrade to zero detections)
        # ============================================================
        self._check_cancelled(cancel_event)
        raw = self.engine.infer(tensor)
        del tensor
        inference_done = time.perf_counter()

        # ============================================================
        # STEP 4-7: Decode, suppress, classify, locate
        # ============================================================
        self._check_cancelled(cancel_event)
        detections = self.decoder.decode(raw)
        del raw

        if self.config.enable_nms:
            detections = self.nms.apply(detections)

        filtered = self.classifier.classify(detections)
        if self.composer.needs_spatial:
            filtered = self.spatial.annotate(filtered)

        # ============================================================
        # STEP 8: Compose the announcement
        # ============================================================
        announcement = self.composer.compose(filtered)

        cycle_end = time.perf_counter()
        latency_ms = max(0, int(round((cycle_end - cycle_start) * 1000)))

        logger.debug(
            f"Cycle stages: capture {(capture_done - cycle_start) * 1000:.1f}ms, "
            f"analysis {(inference_done - capture_done) * 1000:.1f}ms, "
            f"post {(cycle_end - inference_done) * 1000:.1f}ms"
        )
        self._record_latency(latency_ms)

        result = RecognitionResult(
            detections=tuple(f.detection for f in filtered),
            timestamp_ms=int(time.time() * 1000),
            latency_ms=latency_ms,
        )
        self._stage = RecognitionStage.SUCCESS
        self.cycles_completed += 1

        logger.info(f"{len(filtered)} object(s) in {latency_ms}ms: {announcement}")
        return RecognitionOutcome(
            result=result,
            announcement=announcement,
            filtered=tuple(filtered),
        )

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    def _require_ready(self):
        state = self._state
        if state in (PipelineState.UNINITIALIZED, PipelineState.FAILED):
            raise NotInitializedError(
                f"Pipeline is {state.name}. Call initialize() first."
            )

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event):
        if cancel_event.is_set():
            raise RecognitionCancelled("Recognition cycle cancelled")

    def _record_latency(self, latency_ms: int):
        self._latencies.append(latency_ms)
        if len(self._latencies) > self.LATENCY_WINDOW:
            self._latencies.pop(0)

        if latency_ms > self.config.max_latency_ms:
            logger.warning(
                f"Latency EXCEEDS MAX: {latency_ms}ms > {self.config.max_latency_ms:.0f}ms"
            )
        elif latency_ms > self.config.target_latency_ms:
            logger.warning(
                f"Latency ACCEPTABLE: {latency_ms}ms > target "
                f"{self.config.target_latency_ms:.0f}ms"
            )
        else:
            logger.debug(f"Latency EXCELLENT: {latency_ms}ms")

    def _set_state(self, state: PipelineState):
        with self._state_lock:
            self._state = state

    # ------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def stage(self) -> RecognitionStage:
        """Current recognition stage, for UI collaborators."""
        return self._stage

    @property
    def is_busy(self) -> bool:
        return self._busy.locked()

    @property
    def average_latency_ms(self) -> float:
        """Average cycle latency over the last 100 cycles."""
        if not self._latencies:
            return 0.0
        return sum(self._latencies) / len(self._latencies)
