"""Default configuration values and constants."""

from typing import Dict, Any

# Default pipeline configuration
DEFAULT_CONFIG: Dict[str, Any] = {
    # Inference settings
    "inference_mode": "budgeted",
    "input_size": 640,
    "layers_per_frame": 10,
    "confidence_threshold": 0.5,
    "class_json_path": "models/classes.json",
    "model_path": "models/yolo11n.onnx",

    # Model customization
    "customize_model": False,
    "add_classification_head": False,
    "add_nms": False,
    "iou_threshold": 0.5,
    "score_threshold": 0.5,

    # Remote inference settings
    "remote_address": "localhost:8000",
    "remote_model": "yolo11n",
    "remote_format": "ncnn",
    "use_custom_model": False,
    "custom_model_path": "",
    "jpeg_quality": 75,
    "request_timeout_seconds": 10.0,

    # Anchoring settings
    "max_anchor_count": 10,
    "distance_threshold": 1.0,
    "moving_objects": False,
    "scale_type": "AVERAGE",
    "scale_dampener": 0.0,
    "max_detections_per_class": 3,
    "spawn_depth": 1.5,
    "vertical_screen_offset": 200.0,
    "min_normal_confidence": 0.5,
    "room_raycast_max_distance": 500.0,
    "class_models": {},

    # Anchor retention
    "anchor_retention": "persistent",
    "anchor_expiry_cycles": 30
}

INFERENCE_MODES = ("budgeted", "atomic", "remote")
SCALE_TYPES = ("WIDTH", "HEIGHT", "AVERAGE", "MIN", "MAX")
ANCHOR_RETENTION_POLICIES = ("persistent", "expire_unseen")

# Remote server endpoints and multipart field names
REMOTE_SETTINGS = {
    "custom_model_endpoint": "/api/custom-model",
    "analyse_endpoint": "/api/analyse",
    "custom_model_filename": "model.pt",
    "image_filename": "image.jpg",
    "custom_model_selector": "custom",
    "structured_error_statuses_upload": (400, 422),
    "structured_error_statuses_analyse": (400,),
    "worker_threads": 2
}

# File paths and directories
DEFAULT_PATHS = {
    "config_file": "config.json",
    "logs_dir": "logs",
    "models_dir": "models",
    "custom_models_dir": "models/custom"
}
