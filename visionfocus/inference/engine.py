"""
TensorFlow Lite inference engine for SSD MobileNet object detection.

Model: ssd_mobilenet_v1_quantized.tflite (~4MB, 8-bit quantized)
Input: 1 x 300 x 300 x 3 RGB, values in [0, 255]
Outputs (positional):
    0: boxes [1, 10, 4] (ymin, xmin, ymax, xmax) normalized
    1: class ids [1, 10]
    2: scores [1, 10]
    3: detection count [1]

The engine owns both the interpreter and the label vocabulary for the
lifetime of the session. It is NOT reentrant: one forward pass at a time.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence
import numpy as np
from numpy.typing import NDArray
from loguru import logger

from visionfocus.core.contracts import (
    PreprocessedTensor,
    RawInferenceOutput,
    MODEL_INPUT_SIZE,
    CHANNELS,
)
from visionfocus.core.errors import (
    DecodeError,
    InferenceError,
    InitializationError,
    NotInitializedError,
)
from .vocabulary import Vocabulary


DEFAULT_MODEL_PATH = "models/ssd_mobilenet_v1_quantized.tflite"
DEFAULT_LABELS_PATH = Path(__file__).resolve().parent.parent / "assets" / "coco_labels.txt"

# FlatBuffer file identifier of a TFLite model, at byte offset 4
TFLITE_FILE_IDENTIFIER = b"TFL3"

# (model_path, num_threads, delegates) -> interpreter
InterpreterFactory = Callable[[str, int, Sequence[Any]], Any]
# delegate library path -> delegate
DelegateLoader = Callable[[str], Any]


def _tflite_interpreter(model_path: str, num_threads: int, delegates: Sequence[Any]):
    """Build a tf.lite.Interpreter."""
    try:
        import tensorflow as tf
    except ImportError as e:
        raise InitializationError(
            "TensorFlow Lite runtime not available (pip install visionfocus[tflite])"
        ) from e

    return tf.lite.Interpreter(
        model_path=model_path,
        num_threads=num_threads,
        experimental_delegates=list(delegates) or None,
    )


def _tflite_delegate(library: str):
    """Load a hardware-acceleration delegate from a shared library."""
    import tensorflow as tf

    return tf.lite.experimental.load_delegate(library)


class InferenceEngine:
    """
    Quantized SSD detector wrapped around a TFLite interpreter.

    Guarantees:
    - infer() before initialize() raises NotInitializedError
    - initialize() twice without close() is a no-op
    - A failing forward pass yields zero detections, never an exception
    - A delegate that fails to attach falls back to the CPU path
    """

    MAX_DETECTIONS = 10
    NUM_THREADS = 4

    def __init__(
        self,
        model_path: str | Path = DEFAULT_MODEL_PATH,
        labels_path: str | Path = DEFAULT_LABELS_PATH,
        num_threads: int = NUM_THREADS,
        use_acceleration: bool = True,
        delegate_library: Optional[str] = None,
        min_vocabulary_size: int = 80,
        interpreter_factory: Optional[InterpreterFactory] = None,
        delegate_loader: Optional[DelegateLoader] = None,
    ):
        """
        Initialize inference engine.

        Args:
            model_path: Path to the .tflite model asset
            labels_path: Path to the label vocabulary, one label per line
            num_threads: Interpreter worker threads
            use_acceleration: Attempt to attach a hardware delegate
            delegate_library: Shared library of the delegate (e.g. an NPU/GPU delegate)
            min_vocabulary_size: Minimum number of labels the vocabulary must have
            interpreter_factory: Builds the interpreter (defaults to tf.lite)
            delegate_loader: Loads a delegate (defaults to tf.lite.experimental)
        """
        self.model_path = Path(model_path)
        self.labels_path = Path(labels_path)
        self.num_threads = num_threads
        self.use_acceleration = use_acceleration
        self.delegate_library = delegate_library
        self.min_vocabulary_size = min_vocabulary_size

        self._interpreter_factory = interpreter_factory or _tflite_interpreter
        self._delegate_loader = delegate_loader or _tflite_delegate

        # Model state
        self._interpreter = None
        self._vocabulary: Optional[Vocabulary] = None
        self._input_detail: Optional[Dict[str, Any]] = None
        self._output_details: List[Dict[str, Any]] = []
        self._acceleration_active = False

        # One forward pass at a time
        self._lock = threading.Lock()

        # Performance tracking
        self._inference_times: List[float] = []
        self.failure_count = 0

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    def initialize(self) -> None:
        """
        Load the model and vocabulary. Idempotent until close().

        Raises:
            InitializationError: Asset missing/corrupt or interpreter construction failed
        """
        with self._lock:
            if self._interpreter is not None:
                logger.debug("Interpreter already initialized")
                return

            start_time = time.perf_counter()

            self._validate_model_asset()
            vocabulary = Vocabulary.load(self.labels_path, self.min_vocabulary_size)

            # Delegate failures are retried on every initialize()
            delegates = self._load_delegates()
            try:
                interpreter = self._build_interpreter(delegates)
                self._acceleration_active = bool(delegates)
            except InitializationError:
                raise
            except Exception as e:
                if not delegates:
                    raise InitializationError(f"TFLite initialization failed: {e}") from e

                logger.warning(f"Delegate failed to attach, using CPU: {e}")
                try:
                    interpreter = self._build_interpreter([])
                except Exception as cpu_error:
                    raise InitializationError(
                        f"TFLite initialization failed: {cpu_error}"
                    ) from cpu_error
                self._acceleration_active = False

            input_details = interpreter.get_input_details()
            output_details = interpreter.get_output_details()
            if not input_details or len(output_details) < 4:
                raise InitializationError(
                    f"Unexpected model signature: {len(input_details)} inputs, "
                    f"{len(output_details)} outputs (need 1 and 4)"
                )

            self._interpreter = interpreter
            self._vocabulary = vocabulary
            self._input_detail = input_details[0]
            self._output_details = list(output_details[:4])

            duration = (time.perf_counter() - start_time) * 1000
            logger.info(
                f"TFLite interpreter initialized in {duration:.0f}ms "
                f"({self.num_threads} threads, "
                f"{'accelerated' if self._acceleration_active else 'CPU'}, "
                f"input dtype {np.dtype(self._input_detail['dtype']).name})"
            )

    def close(self) -> None:
        """Release interpreter resources. initialize() may be called again."""
        with self._lock:
            if self._interpreter is None:
                return
            self._interpreter = None
            self._vocabulary = None
            self._input_detail = None
            self._output_details = []
            self._acceleration_active = False
        logger.info("TFLite interpreter closed")

    # ------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------

    def infer(self, tensor: PreprocessedTensor) -> RawInferenceOutput:
        """
        Run one forward pass.

        Returns:
            RawInferenceOutput; zero detections if the forward pass failed

        Raises:
            NotInitializedError: If called before initialize()
        """
        with self._lock:
            if self._interpreter is None:
                raise NotInitializedError(
                    "Interpreter not initialized. Call initialize() first."
                )

            start_time = time.perf_counter()
            try:
                output = self._run_forward_pass(tensor)
            except (InferenceError, DecodeError) as e:
                self.failure_count += 1
                logger.error(f"Inference failed, reporting no detections: {e}")
                return RawInferenceOutput.empty()

            inference_time = (time.perf_counter() - start_time) * 1000
            self._inference_times.append(inference_time)
            if len(self._inference_times) > 100:
                self._inference_times.pop(0)

            logger.debug(
                f"Inference took {inference_time:.1f}ms, "
                f"declared count {output.count:.0f}"
            )
            return output

    def _run_forward_pass(self, tensor: PreprocessedTensor) -> RawInferenceOutput:
        interpreter = self._interpreter
        try:
            interpreter.set_tensor(self._input_detail["index"], self._prepare_input(tensor))
            interpreter.invoke()
            boxes, class_ids, scores, count = (
                interpreter.get_tensor(detail["index"]) for detail in self._output_details
            )
        except Exception as e:
            raise InferenceError(str(e)) from e

        return RawInferenceOutput.from_arrays(boxes, class_ids, scores, count)

    def _prepare_input(self, tensor: PreprocessedTensor) -> NDArray:
        """Match the model's declared input dtype."""
        batched = tensor.batched()
        dtype = np.dtype(self._input_detail["dtype"])

        if dtype == np.float32:
            return batched
        if dtype == np.uint8:
            # Values are already in [0, 255], so narrowing is lossless
            return np.clip(batched, 0, 255).astype(np.uint8)
        raise InferenceError(f"Unsupported model input dtype: {dtype.name}")

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    def _validate_model_asset(self):
        if not self.model_path.is_file():
            raise InitializationError(f"Model asset not found: {self.model_path}")

        try:
            with self.model_path.open("rb") as f:
                header = f.read(8)
        except OSError as e:
            raise InitializationError(f"Cannot read model asset: {e}") from e

        if len(header) < 8 or header[4:8] != TFLITE_FILE_IDENTIFIER:
            raise InitializationError(
                f"Model asset is not a TFLite flatbuffer: {self.model_path}"
            )

    def _load_delegates(self) -> List[Any]:
        if not self.use_acceleration or not self.delegate_library:
            return []

        try:
            delegate = self._delegate_loader(self.delegate_library)
        except Exception as e:
            logger.warning(
                f"Acceleration delegate {self.delegate_library} unavailable, using CPU: {e}"
            )
            return []

        logger.info(f"Acceleration delegate loaded: {self.delegate_library}")
        return [delegate]

    def _build_interpreter(self, delegates: Sequence[Any]):
        interpreter = self._interpreter_factory(
            str(self.model_path), self.num_threads, delegates
        )
        interpreter.allocate_tensors()

        shape = tuple(interpreter.get_input_details()[0]["shape"])
        expected = (1, MODEL_INPUT_SIZE, MODEL_INPUT_SIZE, CHANNELS)
        if shape != expected:
            raise InitializationError(f"Model input shape {shape} != {expected}")
        return interpreter

    # ------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._interpreter is not None

    @property
    def vocabulary(self) -> Vocabulary:
        """The loaded vocabulary. Raises NotInitializedError before initialize()."""
        if self._vocabulary is None:
            raise NotInitializedError("Vocabulary not loaded. Call initialize() first.")
        return self._vocabulary

    @property
    def acceleration_active(self) -> bool:
        return self._acceleration_active

    @property
    def average_inference_time_ms(self) -> float:
        if not self._inference_times:
            return 0.0
        return sum(self._inference_times) / len(self._inference_times)
