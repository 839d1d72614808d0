"""Detection pipeline that ties inference, decoding and anchoring together."""

import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .config_manager import ConfigManager
from .exceptions import ConfigurationError, DecodeError, InferenceError, YoloAnchoringError
from .geometry import PinholeCamera
from .logging_config import get_logger, log_performance
from .models.config import PipelineConfig
from .models.detection import Detection, FeedDimensions
from .services.box_renderer import BoxModelRenderer
from .services.detection_decoder import decode_remote, decode_tensor
from .services.error_handler import ErrorSeverity, global_error_handler, with_error_handling
from .services.frame_source import OpenCVFrameSource
from .services.inference_scheduler import (
    AtomicInferenceScheduler, BudgetedInferenceScheduler, InferenceResult,
    InferenceScheduler, RemoteInferenceScheduler
)
from .services.interfaces import (
    CameraInterface, EnvironmentRaycasterInterface, FrameSourceInterface,
    InferenceModelInterface, ModelRendererInterface, RoomRaycasterInterface
)
from .services.layered_model import CustomizationParameters, customize_model, load_model
from .services.remote_client import RemoteYOLOClient
from .services.spatial_anchoring import SpatialAnchoringEngine
from .utils import get_file_size_mb, load_class_table, read_binary_file

logger = get_logger("detection_pipeline")

COMPONENT = "detection_pipeline"


class DetectionPipeline:
    """Runs one inference session at a time and feeds its detections to the anchoring engine.

    Nothing runs on a timer: the host calls ``tick()`` once per frame. Each
    tick starts a session when the scheduler is idle, advances the live
    session, and on completion decodes the output and places anchors.
    """

    def __init__(self, config_manager: Optional[ConfigManager] = None,
                 frame_source: Optional[FrameSourceInterface] = None,
                 renderer: Optional[ModelRendererInterface] = None,
                 camera: Optional[CameraInterface] = None,
                 environment_raycaster: Optional[EnvironmentRaycasterInterface] = None,
                 room_raycaster: Optional[RoomRaycasterInterface] = None,
                 model: Optional[InferenceModelInterface] = None,
                 remote_client: Optional[RemoteYOLOClient] = None,
                 on_detections: Optional[Callable[[List[Detection]], None]] = None):
        """Validate configuration and build the scheduler for the configured mode.

        Raises ConfigurationError for an invalid configuration and
        ModelSetupError when the class table or model cannot be prepared.
        """
        self.config_manager = config_manager or ConfigManager()
        self.config: PipelineConfig = self.config_manager.get_config()

        self.error_handler = global_error_handler
        self.error_handler.register_component(COMPONENT, max_recovery_attempts=3)

        if not self.config_manager.validate_config():
            errors = self.config_manager.get_validation_errors()
            raise ConfigurationError(f"Invalid pipeline configuration: {'; '.join(errors)}", errors)

        self.frame_source = frame_source or OpenCVFrameSource()
        self.renderer = renderer or BoxModelRenderer()
        self.camera = camera
        self.on_detections = on_detections

        try:
            self.classes: Dict[int, str] = {}
            if self.config.inference_mode != "remote":
                self.classes = load_class_table(self.config.class_json_path)
            self.remote_client = remote_client
            self.scheduler = self._create_scheduler(model)
        except YoloAnchoringError as e:
            self.error_handler.handle_error(COMPONENT, e, ErrorSeverity.CRITICAL)
            raise

        self.anchoring = SpatialAnchoringEngine.from_config(
            self.config, self.renderer, self.frame_source,
            environment_raycaster=environment_raycaster,
            room_raycaster=room_raycaster
        )

        # Pipeline state
        self.running = False
        self.start_time: Optional[datetime] = None
        self.tick_count = 0
        self.cycle_count = 0
        self.detection_count = 0
        self.error_count = 0
        self.last_cycle_ms = 0.0
        self.last_inference_ms = 0.0
        self.last_detections: List[Detection] = []
        self._session_camera: Optional[CameraInterface] = None

        self.error_handler.register_recovery_callback(COMPONENT, self._recover)

        logger.info(f"Detection pipeline initialized in {self.config.inference_mode} mode")
        log_performance("Pipeline initialization completed", {
            "mode": self.config.inference_mode,
            "input_size": self.scheduler.input_size,
            "classes": len(self.classes)
        })

    def _create_scheduler(self, model: Optional[InferenceModelInterface]) -> InferenceScheduler:
        config = self.config

        if config.inference_mode == "remote":
            if self.remote_client is None:
                self.remote_client = RemoteYOLOClient(config.remote_address,
                                                      timeout=config.request_timeout_seconds)
            return RemoteInferenceScheduler(
                self.remote_client,
                model_name=config.remote_model,
                model_format=config.remote_format,
                use_custom_model=config.use_custom_model,
                jpeg_quality=config.jpeg_quality
            )

        model = model or load_model(config.model_path, config.input_size)
        if config.customize_model:
            model = customize_model(model, CustomizationParameters(
                add_classification_head=config.add_classification_head,
                add_nms=config.add_nms,
                iou_threshold=config.iou_threshold,
                score_threshold=config.score_threshold
            ))

        if config.inference_mode == "atomic":
            return AtomicInferenceScheduler(model, config.input_size)
        return BudgetedInferenceScheduler(model, config.input_size, config.layers_per_frame)

    # Lifecycle

    def start(self) -> bool:
        """Start the pipeline. Returns False if it is already running."""
        if self.running:
            logger.warning("Pipeline is already running")
            return False

        if isinstance(self.frame_source, OpenCVFrameSource):
            try:
                self.frame_source.start_capture()
            except RuntimeError as e:
                self.error_handler.handle_error(COMPONENT, e, ErrorSeverity.HIGH)
                logger.error(f"Failed to start detection pipeline: {e}")
                return False

        if isinstance(self.scheduler, RemoteInferenceScheduler) and self.config.use_custom_model:
            self._upload_custom_model()

        self.running = True
        self.start_time = datetime.now()
        logger.info("Detection pipeline started")
        return True

    def stop(self) -> None:
        """Stop the pipeline, cancelling any outstanding inference session."""
        logger.info("Stopping detection pipeline...")
        self.running = False
        self.scheduler.cancel()
        self._session_camera = None

        if isinstance(self.frame_source, OpenCVFrameSource):
            self.frame_source.stop_capture()

        logger.info("Detection pipeline stopped")

    def shutdown(self) -> None:
        """Stop and release worker threads and network sessions."""
        self.error_handler.unregister_recovery_callback(COMPONENT, self._recover)
        self.stop()
        self.scheduler.shutdown()
        if self.remote_client is not None:
            self.remote_client.close()

    def _recover(self) -> None:
        """Drop the outstanding session so the next tick starts from a fresh frame."""
        self.scheduler.cancel()
        self._session_camera = None

    def _upload_custom_model(self) -> None:
        model_bytes = read_binary_file(self.config.custom_model_path)
        if model_bytes is None:
            logger.warning(f"Custom model not found at '{self.config.custom_model_path}'; "
                           f"using {self.config.remote_model}")
            self.scheduler.use_custom_model = False
            return

        # Stay on the pretrained model until the upload lands
        self.scheduler.use_custom_model = False
        self.scheduler.upload_custom_model_async(model_bytes)
        logger.info(f"Uploading custom model ({get_file_size_mb(self.config.custom_model_path):.1f} MB)")

    # Per-frame processing

    def tick(self) -> List[Detection]:
        """Run one scheduling cycle.

        Returns the detections decoded this cycle, or an empty list while a
        session is still in flight. Inference and decode failures are
        recorded and the cycle is skipped; anchors are left untouched.
        """
        if not self.running:
            return []

        tick_start = time.time()
        self.tick_count += 1

        try:
            if self.scheduler.is_idle and not self._start_session():
                return []
            result = self.scheduler.tick()
            if result is None:
                return []
            detections = self._decode(result)
        except (InferenceError, DecodeError) as e:
            self.error_count += 1
            self.error_handler.handle_error(COMPONENT, e, ErrorSeverity.MEDIUM)
            return []

        try:
            self._consume(detections, result)
        except Exception as e:
            self.error_count += 1
            self.error_handler.handle_error(COMPONENT, e, ErrorSeverity.MEDIUM)
            return []
        self.error_handler.mark_healthy(COMPONENT)

        self.cycle_count += 1
        self.last_cycle_ms = (time.time() - tick_start) * 1000
        self.last_inference_ms = result.elapsed_ms
        log_performance("Detection cycle completed", {
            "mode": result.mode,
            "inference_ms": f"{result.elapsed_ms:.1f}",
            "cycle_ms": f"{self.last_cycle_ms:.1f}",
            "detections": len(detections),
            "anchors": self.anchoring.anchor_count
        })
        return detections

    def _start_session(self) -> bool:
        frame = self._capture_frame()
        if frame is None:
            return False
        camera = self._reference_camera(FeedDimensions.from_frame(frame))
        if not self.scheduler.start_session(frame):
            return False
        # Placement uses the pose the frame was captured from
        self._session_camera = camera.copy()
        return True

    @with_error_handling("frame_source", ErrorSeverity.MEDIUM)
    def _capture_frame(self) -> Any:
        return self.frame_source.get_frame()

    def _decode(self, result: InferenceResult) -> List[Detection]:
        threshold = self.config.confidence_threshold
        if result.mode == "remote":
            return decode_remote(result.output, threshold)
        return decode_tensor(result.output, result.feed_dimensions, result.input_size,
                             self.classes, threshold)

    def _consume(self, detections: List[Detection], result: InferenceResult) -> None:
        camera, self._session_camera = self._session_camera, None
        self.last_detections = detections
        self.detection_count += len(detections)

        if self.on_detections is not None:
            try:
                self.on_detections(detections)
            except Exception as e:
                self.error_handler.handle_error("detection_callback", e, ErrorSeverity.LOW)

        if camera is None:
            camera = self._reference_camera(result.feed_dimensions)
        self.anchoring.place_detections(detections, camera, result.feed_dimensions)

    def _reference_camera(self, feed: FeedDimensions) -> CameraInterface:
        if self.camera is None:
            self.camera = PinholeCamera(feed.width, feed.height)
            logger.info(f"No camera supplied; using a {feed.width}x{feed.height} pinhole camera at the origin")
        return self.camera

    # Anchors

    def clear_anchors(self) -> None:
        """Destroy every placed anchor."""
        self.anchoring.clear_all()

    # Status and configuration

    def get_status(self) -> Dict[str, Any]:
        """Get current pipeline status and statistics."""
        uptime = None
        if self.start_time:
            uptime = (datetime.now() - self.start_time).total_seconds()

        return {
            "running": self.running,
            "mode": self.config.inference_mode,
            "uptime_seconds": uptime,
            "tick_count": self.tick_count,
            "cycle_count": self.cycle_count,
            "detection_count": self.detection_count,
            "error_count": self.error_count,
            "last_cycle_ms": self.last_cycle_ms,
            "last_inference_ms": self.last_inference_ms,
            "scheduler": {
                "state": self.scheduler.state.value,
                "input_size": self.scheduler.input_size,
                "completed_sessions": self.scheduler.completed_sessions,
                "failed_sessions": self.scheduler.failed_sessions,
                "cancelled_sessions": self.scheduler.cancelled_sessions
            },
            "anchoring": self.anchoring.get_population_stats(),
            "frame_source": (self.frame_source.get_source_info()
                             if isinstance(self.frame_source, OpenCVFrameSource) else None)
        }

    def update_configuration(self, **kwargs) -> None:
        """Update pipeline configuration and apply runtime-tunable values to live services."""
        self.config_manager.update_config(**kwargs)
        self.config = self.config_manager.get_config()

        if 'layers_per_frame' in kwargs and isinstance(self.scheduler, BudgetedInferenceScheduler):
            self.scheduler.layers_per_frame = self.config.layers_per_frame

        if 'moving_objects' in kwargs:
            self.anchoring.moving_objects = self.config.moving_objects

        if 'max_anchor_count' in kwargs:
            self.anchoring.max_anchor_count = self.config.max_anchor_count

        if 'distance_threshold' in kwargs:
            self.anchoring.distance_threshold = self.config.distance_threshold

        logger.info(f"Pipeline configuration updated: {list(kwargs)}")
