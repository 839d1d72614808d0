"""Configuration data models."""

from dataclasses import dataclass, field
from typing import Dict


@dataclass
class PipelineConfig:
    """Pipeline configuration settings."""
    # Inference settings
    inference_mode: str = "budgeted"  # budgeted, atomic, remote
    input_size: int = 640
    layers_per_frame: int = 10
    confidence_threshold: float = 0.5
    class_json_path: str = "models/classes.json"
    model_path: str = "models/yolo11n.onnx"

    # Model customization
    customize_model: bool = False
    add_classification_head: bool = False
    add_nms: bool = False
    iou_threshold: float = 0.5
    score_threshold: float = 0.5

    # Remote inference settings
    remote_address: str = "localhost:8000"
    remote_model: str = "yolo11n"
    remote_format: str = "ncnn"
    use_custom_model: bool = False
    custom_model_path: str = ""
    jpeg_quality: int = 75
    request_timeout_seconds: float = 10.0

    # Anchoring settings
    max_anchor_count: int = 10
    distance_threshold: float = 1.0
    moving_objects: bool = False
    scale_type: str = "AVERAGE"  # WIDTH, HEIGHT, AVERAGE, MIN, MAX
    scale_dampener: float = 0.0
    max_detections_per_class: int = 3
    spawn_depth: float = 1.5
    vertical_screen_offset: float = 200.0
    min_normal_confidence: float = 0.5
    room_raycast_max_distance: float = 500.0
    class_models: Dict[str, str] = field(default_factory=dict)  # class name -> model key

    # Anchor retention
    anchor_retention: str = "persistent"  # persistent, expire_unseen
    anchor_expiry_cycles: int = 30
