#!/usr/bin/env python3
"""
VisionFocus on-device object recognition

Main entry point for the recognition pipeline. Each cycle captures one
camera frame, detects objects with a quantized SSD model and logs a short
spoken-style description ("I see a chair, and possibly a table").

Usage:
    python main.py [--config CONFIG_PATH] [--device DEVICE_INDEX]

Examples:
    python main.py --once                   # one recognition, then exit
    python main.py --image photo.jpg        # recognize a still image
    python main.py --interval 3             # recognize every 3 seconds
"""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from loguru import logger

from visionfocus.capture import StaticFrameSource
from visionfocus.core.contracts import RecognitionOutcome
from visionfocus.core.errors import (
    CaptureError,
    ConfigurationError,
    InitializationError,
    PipelineBusyError,
    PreprocessError,
    RecognitionCancelled,
)
from visionfocus.pipeline import PipelineConfig, PipelineOrchestrator
from visionfocus.settings import load_config


# ============================================================
# LOGGING CONFIGURATION
# ============================================================

def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Configure logging."""
    logger.remove()  # Remove default handler

    # Console output with colors
    logger.add(
        sys.stderr,
        level=log_level,
        format="<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{module}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>",
        colorize=True,
    )

    # File output
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level="DEBUG",
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {module}:{line} | {message}",
            rotation="10 MB",
            retention="7 days",
        )


# ============================================================
# MAIN APPLICATION
# ============================================================

class RecognitionApp:
    """Main application class."""

    def __init__(
        self,
        config_path: Optional[str] = None,
        device: Optional[int] = None,
        image_path: Optional[str] = None,
    ):
        self.config = PipelineConfig.from_dict(load_config(config_path))
        if device is not None:
            self.config.camera_device = device

        frame_source = StaticFrameSource.from_image(image_path) if image_path else None
        self.pipeline = PipelineOrchestrator.from_config(
            self.config,
            frame_source=frame_source,
            on_result=self._announce,
        )

        self._stop_event = threading.Event()

    def _announce(self, outcome: RecognitionOutcome):
        """Hand the announcement to speech output (logged here)."""
        logger.info(f'Announcement: "{outcome.announcement}"')

    def stop(self, *_):
        """Stop after the current cycle."""
        self._stop_event.set()
        self.pipeline.cancel()

    def run_once(self) -> bool:
        """Run a single recognition. Returns False if the camera could not look."""
        try:
            self.pipeline.run_once()
        except (CaptureError, PreprocessError) as e:
            logger.error(f"Could not look: {e}")
            return False
        except RecognitionCancelled:
            return False
        return True

    def run(self, interval_s: float, once: bool = False) -> int:
        """Run the recognition loop. Returns a process exit code."""
        logger.info("Starting VisionFocus recognition")

        try:
            self.pipeline.initialize()
        except InitializationError as e:
            logger.error(f"Failed to start pipeline: {e}")
            return 1

        try:
            if once:
                return 0 if self.run_once() else 2

            # Keep the camera bound between cycles
            try:
                self.pipeline.frame_source.start()
            except CaptureError as e:
                logger.error(f"Failed to start camera: {e}")
                return 2
            logger.info(f"Recognizing every {interval_s:.1f}s, Ctrl+C to quit")

            while not self._stop_event.is_set():
                try:
                    self.run_once()
                except PipelineBusyError:
                    pass
                self._stop_event.wait(interval_s)

        except KeyboardInterrupt:
            logger.info("Interrupted by user")
        finally:
            self.pipeline.shutdown()
            if self.pipeline.average_latency_ms:
                logger.info(
                    f"{self.pipeline.cycles_completed} cycle(s), "
                    f"average latency {self.pipeline.average_latency_ms:.0f}ms"
                )
            logger.info("Recognition stopped")

        return 0


# ============================================================
# ENTRY POINT
# ============================================================

def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="VisionFocus on-device object recognition",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to configuration file",
    )

    parser.add_argument(
        "--device", "-d",
        type=int,
        default=None,
        help="Camera device index (default: from config, else 0)",
    )

    parser.add_argument(
        "--image", "-i",
        type=str,
        default=None,
        help="Recognize a still image instead of the camera",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single recognition and exit",
    )

    parser.add_argument(
        "--interval",
        type=float,
        default=2.0,
        help="Seconds between recognitions in continuous mode (default: 2.0)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--log-file",
        type=str,
        default="logs/visionfocus.log",
        help="Log file path (default: logs/visionfocus.log)",
    )

    args = parser.parse_args()

    # Setup logging
    setup_logging(args.log_level, args.log_file)

    # Create and run app
    try:
        app = RecognitionApp(args.config, device=args.device, image_path=args.image)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)
    except CaptureError as e:
        logger.error(str(e))
        sys.exit(2)

    signal.signal(signal.SIGTERM, app.stop)
    sys.exit(app.run(args.interval, once=args.once or args.image is not None))


if __name__ == "__main__":
    main()
