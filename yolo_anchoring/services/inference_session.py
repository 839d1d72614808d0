"""Resumable inference sessions with explicit buffer ownership."""

from abc import ABC, abstractmethod
from concurrent.futures import Executor, Future
from enum import Enum
from typing import Any, Callable, Iterator, Optional, Tuple

import cv2
import numpy as np

from .interfaces import InferenceModelInterface
from ..exceptions import InferenceError
from ..logging_config import get_logger

logger = get_logger("inference_session")


class SessionState(Enum):
    """Lifecycle states shared by every inference mode."""
    IDLE = "idle"
    SCHEDULED = "scheduled"          # atomic: whole graph submitted
    RUNNING = "running"              # budgeted: layer cursor in progress
    READING_BACK = "reading_back"    # budgeted: host copy of output in flight
    UPLOADING = "uploading"          # remote: frame encoding in flight
    ANALYZING = "analyzing"          # remote: request in flight
    DONE = "done"


class InferenceSession(ABC):
    """State for one detection pass.

    The session owns its input buffer, any pending background work and the
    output once it lands. ``dispose`` releases all of it and is safe to call
    more than once.
    """

    def __init__(self, executor: Executor):
        self.executor = executor
        self.state = SessionState.IDLE
        self.input_buffer: Optional[Any] = None
        self.output: Optional[Any] = None
        self._pending: Optional[Future] = None
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def pending(self) -> Optional[Future]:
        return self._pending

    @abstractmethod
    def step(self, budget: int = 1) -> SessionState:
        """Advance the session by at most ``budget`` units of work."""
        pass

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the pending background work (if any) finishes."""
        if self._pending is not None:
            self._pending.exception(timeout=timeout)

    def take_output(self) -> Any:
        """Hand the output over to the caller; the session keeps no reference."""
        if self.state != SessionState.DONE:
            raise InferenceError(f"Session output not ready (state={self.state.value})")
        output, self.output = self.output, None
        return output

    def _submit(self, fn: Callable, *args) -> None:
        self._pending = self.executor.submit(fn, *args)

    def _collect(self) -> Tuple[bool, Optional[Any]]:
        """(finished, result) of the pending work, re-raising its failure."""
        if self._pending is None or not self._pending.done():
            return False, None
        future, self._pending = self._pending, None
        return True, future.result()

    def _release_resources(self) -> None:
        pass

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._release_resources()
        self.input_buffer = None
        self.output = None
        self.state = SessionState.IDLE
        logger.debug(f"{type(self).__name__} disposed")


class LocalInferenceSession(InferenceSession):
    """Runs a local model either atomically or sliced across ticks."""

    def __init__(self, model: InferenceModelInterface, input_tensor: np.ndarray, executor: Executor):
        super().__init__(executor)
        self.model = model
        self.input_buffer = input_tensor
        self.layers_run = 0
        self._cursor: Optional[Iterator[str]] = None
        self._device_output: Optional[np.ndarray] = None

    # Atomic mode

    def schedule(self) -> SessionState:
        """Submit the whole graph to a background worker."""
        if self.state != SessionState.IDLE:
            raise InferenceError(f"Session already started (state={self.state.value})")
        self._submit(self._run_whole, self.input_buffer)
        self.state = SessionState.SCHEDULED
        return self.state

    def _run_whole(self, input_tensor: np.ndarray) -> np.ndarray:
        return np.array(self.model.run(input_tensor), copy=True)

    def poll(self) -> SessionState:
        """Check whether the atomic run has completed."""
        if self.state == SessionState.SCHEDULED:
            finished, result = self._collect()
            if finished:
                self.output = result
                self.state = SessionState.DONE
        return self.state

    # Budgeted mode

    def step(self, budget: int = 1) -> SessionState:
        budget = max(1, int(budget))

        if self.state == SessionState.IDLE:
            self._cursor = self.model.schedule_iterable(self.input_buffer)
            self.state = SessionState.RUNNING

        if self.state == SessionState.RUNNING:
            steps = 0
            for _ in self._cursor:
                self.layers_run += 1
                steps += 1
                if steps % budget == 0:
                    return self.state
            self._begin_readback()

        if self.state == SessionState.READING_BACK:
            finished, result = self._collect()
            if finished:
                self.output = result
                self._device_output = None
                self.state = SessionState.DONE
        elif self.state == SessionState.SCHEDULED:
            return self.poll()

        return self.state

    def _begin_readback(self) -> None:
        self._cursor = None
        self._device_output = self.model.peek_output()
        if self._device_output is None:
            raise InferenceError("Model finished without producing an output")
        self._submit(np.copy, self._device_output)
        self.state = SessionState.READING_BACK

    def _release_resources(self) -> None:
        if self._cursor is not None:
            close = getattr(self._cursor, "close", None)
            if close is not None:
                close()
            self._cursor = None
        self._device_output = None
        self.model.release()


class RemoteInferenceSession(InferenceSession):
    """Encodes a frame off-thread, then posts it to the remote server."""

    def __init__(self, frame: np.ndarray, analyse: Callable[[bytes], Any],
                 executor: Executor, jpeg_quality: int = 75):
        super().__init__(executor)
        self.input_buffer = frame
        self.analyse = analyse
        self.jpeg_quality = jpeg_quality
        self.image_bytes: Optional[bytes] = None

    def step(self, budget: int = 1) -> SessionState:
        if self.state == SessionState.IDLE:
            self._submit(encode_jpeg, self.input_buffer, self.jpeg_quality)
            self.state = SessionState.UPLOADING

        if self.state == SessionState.UPLOADING:
            finished, encoded = self._collect()
            if finished:
                self.image_bytes = encoded
                self.input_buffer = None
                self._submit(self.analyse, encoded)
                self.state = SessionState.ANALYZING

        if self.state == SessionState.ANALYZING:
            finished, response = self._collect()
            if finished:
                self.output = response
                self.image_bytes = None
                self.state = SessionState.DONE

        return self.state

    def _release_resources(self) -> None:
        self.image_bytes = None


def encode_jpeg(frame: np.ndarray, quality: int = 75) -> bytes:
    """Encode a BGR frame as JPEG bytes."""
    ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise InferenceError("JPEG encoding failed")
    return buffer.tobytes()
