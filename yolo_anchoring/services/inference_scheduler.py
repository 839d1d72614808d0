"""Single-flight inference schedulers for atomic, frame-budgeted and remote execution."""

import time
from abc import ABC, abstractmethod
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional, Union

import numpy as np

from .inference_session import (
    InferenceSession, LocalInferenceSession, RemoteInferenceSession, SessionState
)
from .interfaces import InferenceModelInterface
from .layered_model import preprocess_frame
from .remote_client import RemoteYOLOClient
from ..exceptions import InferenceError, RemoteRequestError
from ..logging_config import get_logger
from ..models.detection import FeedDimensions
from ..models.remote import YOLOFormat, YOLOModelName

logger = get_logger("inference_scheduler")


@dataclass
class InferenceResult:
    """Detection-ready output of one completed session."""
    mode: str
    output: Any  # np.ndarray for local modes, AnalyseResponse for remote
    feed_dimensions: FeedDimensions
    input_size: Optional[int]
    elapsed_ms: float


class InferenceScheduler(ABC):
    """Owns at most one in-flight InferenceSession.

    ``start_session`` is rejected while a session is live; ``tick`` advances
    the live session and returns an InferenceResult once it completes. Any
    failure disposes the session, returns the scheduler to idle and is
    re-raised as InferenceError.
    """

    mode = "base"

    def __init__(self, executor: Optional[Executor] = None):
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{self.mode}-inference")
        self.session: Optional[InferenceSession] = None
        self._feed: Optional[FeedDimensions] = None
        self._started_at = 0.0
        self.completed_sessions = 0
        self.failed_sessions = 0
        self.cancelled_sessions = 0

    @property
    def state(self) -> SessionState:
        return self.session.state if self.session is not None else SessionState.IDLE

    @property
    def is_idle(self) -> bool:
        return self.session is None

    @property
    def input_size(self) -> Optional[int]:
        return None

    def start_session(self, frame: np.ndarray) -> bool:
        """Begin a pass over ``frame``. Returns False if a session is already live."""
        if self.session is not None:
            logger.debug(f"Session rejected: scheduler busy ({self.state.value})")
            return False
        if frame is None:
            return False

        try:
            self._feed = FeedDimensions.from_frame(frame)
            self.session = self._create_session(frame)
        except Exception as e:
            self._abort()
            raise InferenceError(f"Failed to start {self.mode} session: {e}") from e

        self._started_at = time.time()
        logger.debug(f"Started {self.mode} session for {self._feed.width}x{self._feed.height} frame")
        return True

    def tick(self) -> Optional[InferenceResult]:
        """Advance the live session by one scheduling cycle."""
        if self.session is None:
            return None

        try:
            state = self._advance(self.session)
            if state != SessionState.DONE:
                return None
            output = self.session.take_output()
        except Exception as e:
            self._abort()
            if isinstance(e, InferenceError):
                raise
            raise InferenceError(f"{self.mode} inference failed: {e}") from e

        result = InferenceResult(
            mode=self.mode,
            output=output,
            feed_dimensions=self._feed,
            input_size=self.input_size,
            elapsed_ms=(time.time() - self._started_at) * 1000
        )
        self._release_session()
        self.completed_sessions += 1
        return result

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the live session's background work finishes."""
        if self.session is not None:
            self.session.wait(timeout)

    def cancel(self) -> None:
        """Abort the live session, releasing every buffer it owns."""
        if self.session is not None:
            logger.info(f"Cancelling {self.mode} session in state {self.state.value}")
            self._release_session()
            self.cancelled_sessions += 1

    def shutdown(self) -> None:
        self.cancel()
        if self._owns_executor:
            self.executor.shutdown(wait=False)

    def _abort(self) -> None:
        self.failed_sessions += 1
        self._release_session()

    def _release_session(self) -> None:
        if self.session is not None:
            self.session.dispose()
        self.session = None
        self._feed = None

    @abstractmethod
    def _create_session(self, frame: np.ndarray) -> InferenceSession:
        pass

    @abstractmethod
    def _advance(self, session: InferenceSession) -> SessionState:
        pass


class _LocalInferenceScheduler(InferenceScheduler):
    """Shared setup for schedulers that run a local model."""

    def __init__(self, model: InferenceModelInterface, input_size: int = 640,
                 executor: Optional[Executor] = None):
        super().__init__(executor)
        self.model = model
        # A model with a baked-in input size overrides the configured one
        self._input_size = model.fixed_input_size or input_size

    @property
    def input_size(self) -> int:
        return self._input_size

    def _create_session(self, frame: np.ndarray) -> LocalInferenceSession:
        tensor = preprocess_frame(frame, self._input_size)
        return LocalInferenceSession(self.model, tensor, self.executor)


class AtomicInferenceScheduler(_LocalInferenceScheduler):
    """Submits the whole graph at once and polls for completion each tick."""

    mode = "atomic"

    def _create_session(self, frame: np.ndarray) -> LocalInferenceSession:
        session = super()._create_session(frame)
        session.schedule()
        return session

    def _advance(self, session: LocalInferenceSession) -> SessionState:
        return session.poll()


class BudgetedInferenceScheduler(_LocalInferenceScheduler):
    """Runs ``layers_per_frame`` model layers per tick, then reads the output back."""

    mode = "budgeted"

    def __init__(self, model: InferenceModelInterface, input_size: int = 640,
                 layers_per_frame: int = 10, executor: Optional[Executor] = None):
        super().__init__(model, input_size, executor)
        self.layers_per_frame = layers_per_frame

    @property
    def layers_per_frame(self) -> int:
        return self._layers_per_frame

    @layers_per_frame.setter
    def layers_per_frame(self, value: int) -> None:
        self._layers_per_frame = max(1, int(value))

    def _advance(self, session: LocalInferenceSession) -> SessionState:
        return session.step(self._layers_per_frame)


class RemoteInferenceScheduler(InferenceScheduler):
    """Delegates detection to a remote server through RemoteYOLOClient."""

    mode = "remote"

    def __init__(self, client: RemoteYOLOClient,
                 model_name: Union[str, YOLOModelName] = YOLOModelName.YOLO11N,
                 model_format: Union[str, YOLOFormat] = YOLOFormat.NCNN,
                 use_custom_model: bool = False, jpeg_quality: int = 75,
                 executor: Optional[Executor] = None):
        super().__init__(executor)
        self.client = client
        self.model_name = model_name
        self.model_format = model_format
        self.use_custom_model = use_custom_model
        self.jpeg_quality = jpeg_quality

    def _analyse(self, image_bytes: bytes):
        return self.client.analyse(image_bytes, self.model_name, self.model_format, self.use_custom_model)

    def _create_session(self, frame: np.ndarray) -> RemoteInferenceSession:
        return RemoteInferenceSession(frame, self._analyse, self.executor, self.jpeg_quality)

    def _advance(self, session: RemoteInferenceSession) -> SessionState:
        return session.step()

    def upload_custom_model(self, model_bytes: bytes) -> bool:
        """Upload a custom model and switch to it; falls back to the pretrained model on failure."""
        try:
            self.client.upload_custom_model(model_bytes)
        except RemoteRequestError as e:
            logger.error(f"Couldn't upload custom model: {e}")
            self.use_custom_model = False
            return False
        self.use_custom_model = True
        return True

    def upload_custom_model_async(self, model_bytes: bytes) -> Future:
        """Background upload; the custom model is switched on only once it lands."""
        future = self.client.upload_custom_model_async(model_bytes)

        def _on_done(done: Future) -> None:
            error = None if done.cancelled() else done.exception()
            if done.cancelled() or error is not None:
                logger.error(f"Couldn't upload custom model: {error or 'cancelled'}")
                self.use_custom_model = False
            else:
                self.use_custom_model = True

        future.add_done_callback(_on_done)
        return future
