"""Frame sources feeding the detection pipeline."""

import threading
import time
from typing import Any, Dict, Optional, Union

import cv2
import numpy as np

from .interfaces import FrameSourceInterface
from .error_handler import global_error_handler, ErrorSeverity
from ..logging_config import get_logger
from ..models.detection import FeedDimensions

logger = get_logger("frame_source")


class StaticFrameSource(FrameSourceInterface):
    """Serves whatever frame was last handed to it."""

    def __init__(self, frame: Optional[np.ndarray] = None):
        self._frame = frame
        self._lock = threading.Lock()

    def set_frame(self, frame: Optional[np.ndarray]) -> None:
        with self._lock:
            self._frame = frame

    def get_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._frame.copy() if self._frame is not None else None

    def get_feed_dimensions(self) -> Optional[FeedDimensions]:
        with self._lock:
            return FeedDimensions.from_frame(self._frame) if self._frame is not None else None


class OpenCVFrameSource(FrameSourceInterface):
    """Captures frames from a webcam index, file or stream URL via cv2.VideoCapture.

    A background thread keeps the most recent frame; ``get_frame`` returns a
    copy of it and may return the same frame on consecutive calls.
    """

    def __init__(self, source: Union[int, str] = 0, framerate: float = 30.0,
                 max_consecutive_errors: int = 5):
        self.source = source
        self.framerate = framerate
        self.max_consecutive_errors = max_consecutive_errors
        self.capture: Optional[cv2.VideoCapture] = None
        self._latest_frame: Optional[np.ndarray] = None
        self._frame_lock = threading.Lock()
        self._capturing = False
        self._capture_thread: Optional[threading.Thread] = None
        self.consecutive_errors = 0
        self.frames_captured = 0

        global_error_handler.register_component("frame_source", max_recovery_attempts=5)
        logger.info(f"OpenCVFrameSource initialized - source: {source}, FPS: {framerate}")

    def start_capture(self) -> None:
        if self._capturing:
            return
        self.capture = cv2.VideoCapture(self.source)
        if not self.capture.isOpened():
            self.capture.release()
            self.capture = None
            raise RuntimeError(f"Could not open video source: {self.source}")

        self._capturing = True
        self._capture_thread = threading.Thread(target=self._capture_loop, daemon=True)
        self._capture_thread.start()
        logger.info(f"Capture started from {self.source}")

    def stop_capture(self) -> None:
        self._capturing = False
        if self._capture_thread and self._capture_thread.is_alive():
            self._capture_thread.join(timeout=5.0)
        if self.capture is not None:
            self.capture.release()
            self.capture = None
        logger.info("Capture stopped")

    def is_capturing(self) -> bool:
        return self._capturing

    def _capture_loop(self) -> None:
        frame_interval = 1.0 / self.framerate

        while self._capturing:
            start_time = time.time()
            ok, frame = self.capture.read()

            if ok:
                with self._frame_lock:
                    self._latest_frame = frame
                self.frames_captured += 1
                self.consecutive_errors = 0
            else:
                self.consecutive_errors += 1
                severity = ErrorSeverity.MEDIUM if self.consecutive_errors < 3 else ErrorSeverity.HIGH
                global_error_handler.handle_error(
                    "frame_source", RuntimeError(f"Frame read failed from {self.source}"), severity)
                if self.consecutive_errors >= self.max_consecutive_errors:
                    logger.error("Maximum consecutive read errors reached - stopping capture")
                    self._capturing = False
                    break

            sleep_time = frame_interval - (time.time() - start_time)
            if sleep_time > 0:
                time.sleep(sleep_time)

    def get_frame(self) -> Optional[np.ndarray]:
        with self._frame_lock:
            return self._latest_frame.copy() if self._latest_frame is not None else None

    def get_feed_dimensions(self) -> Optional[FeedDimensions]:
        with self._frame_lock:
            if self._latest_frame is None:
                return None
            return FeedDimensions.from_frame(self._latest_frame)

    def get_source_info(self) -> Dict[str, Any]:
        """Get capture source information."""
        feed = self.get_feed_dimensions()
        return {
            "source": self.source,
            "capturing": self._capturing,
            "framerate": self.framerate,
            "frames_captured": self.frames_captured,
            "consecutive_errors": self.consecutive_errors,
            "resolution": (feed.width, feed.height) if feed else None
        }
