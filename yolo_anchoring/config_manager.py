"""Configuration management with JSON persistence and change callbacks."""

import json
import os
from dataclasses import asdict, fields
from typing import Optional, Dict, Any, Callable, List

from .models.config import PipelineConfig
from .config.defaults import (
    DEFAULT_PATHS, INFERENCE_MODES, SCALE_TYPES, ANCHOR_RETENTION_POLICIES
)
from .logging_config import get_logger
from .models.remote import YOLOFormat, YOLOModelName
from .utils import ensure_directory_exists

logger = get_logger("config_manager")


class ConfigManager:
    """Manages pipeline configuration with file persistence and change notification."""

    def __init__(self, config_path: Optional[str] = None, persist: bool = True):
        self.config_path = config_path or DEFAULT_PATHS["config_file"]
        self.persist = persist
        self._config: Optional[PipelineConfig] = None
        self._config_change_callbacks: List[Callable[[PipelineConfig], None]] = []

        self.load_config()

    def load_config(self) -> PipelineConfig:
        """Load configuration from file or create default."""
        if os.path.exists(self.config_path):
            try:
                with open(self.config_path, 'r') as f:
                    config_dict = json.load(f)
                self._config = PipelineConfig(**self._known_fields(config_dict))
            except (json.JSONDecodeError, TypeError) as e:
                logger.error(f"Error loading config: {e}. Using defaults.")
                self._config = PipelineConfig()
        else:
            self._config = PipelineConfig()
            self.save_config()

        return self._config

    @staticmethod
    def _known_fields(config_dict: Dict[str, Any]) -> Dict[str, Any]:
        known = {f.name for f in fields(PipelineConfig)}
        unknown = set(config_dict) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
        return {key: value for key, value in config_dict.items() if key in known}

    def save_config(self) -> None:
        """Save current configuration to file."""
        if self._config is None or not self.persist:
            return

        ensure_directory_exists(os.path.dirname(self.config_path))
        with open(self.config_path, 'w') as f:
            json.dump(asdict(self._config), f, indent=2)

    def get_config(self) -> PipelineConfig:
        """Get current configuration."""
        if self._config is None:
            return self.load_config()
        return self._config

    def update_config(self, **kwargs) -> None:
        """Update configuration with new values."""
        if self._config is None:
            self.load_config()

        for key, value in kwargs.items():
            if hasattr(self._config, key):
                setattr(self._config, key, value)
            else:
                logger.warning(f"Unknown config key ignored: {key}")

        self.save_config()
        self._notify_callbacks()

    def _notify_callbacks(self) -> None:
        for callback in self._config_change_callbacks:
            try:
                callback(self._config)
            except Exception as e:
                logger.error(f"Error in config change callback: {e}")

    def get_validation_errors(self) -> List[str]:
        """List every problem with the current configuration."""
        if self._config is None:
            return ["configuration not loaded"]

        config = self._config
        errors: List[str] = []

        if config.inference_mode not in INFERENCE_MODES:
            errors.append(f"inference_mode must be one of {INFERENCE_MODES}")
        if config.input_size < 1:
            errors.append("input_size must be positive")
        if not 0.0 <= config.confidence_threshold <= 1.0:
            errors.append("confidence_threshold must be between 0 and 1")
        if config.inference_mode != "remote":
            if not config.class_json_path:
                errors.append("class_json_path is required for local inference")
            if not config.model_path:
                errors.append("model_path is required for local inference")

        if not 0.0 <= config.iou_threshold <= 1.0:
            errors.append("iou_threshold must be between 0 and 1")
        if not 0.0 <= config.score_threshold <= 1.0:
            errors.append("score_threshold must be between 0 and 1")

        if config.inference_mode == "remote":
            if not config.remote_address:
                errors.append("remote_address is required for remote inference")
            if config.remote_model not in [m.value for m in YOLOModelName]:
                errors.append(f"remote_model must be one of {[m.value for m in YOLOModelName]}")
            if config.remote_format not in [f.value for f in YOLOFormat]:
                errors.append(f"remote_format must be one of {[f.value for f in YOLOFormat]}")
        if not 1 <= config.jpeg_quality <= 100:
            errors.append("jpeg_quality must be between 1 and 100")
        if config.request_timeout_seconds <= 0:
            errors.append("request_timeout_seconds must be positive")

        if config.max_anchor_count < 0:
            errors.append("max_anchor_count must not be negative")
        if config.max_detections_per_class < 0:
            errors.append("max_detections_per_class must not be negative")
        if config.distance_threshold < 0:
            errors.append("distance_threshold must not be negative")
        if config.scale_type not in SCALE_TYPES:
            errors.append(f"scale_type must be one of {SCALE_TYPES}")
        if not 0.0 <= config.scale_dampener <= 1.0:
            errors.append("scale_dampener must be between 0 and 1")
        if config.spawn_depth <= 0:
            errors.append("spawn_depth must be positive")
        if not 0.0 <= config.min_normal_confidence <= 1.0:
            errors.append("min_normal_confidence must be between 0 and 1")
        if config.room_raycast_max_distance <= 0:
            errors.append("room_raycast_max_distance must be positive")
        if not isinstance(config.class_models, dict):
            errors.append("class_models must map class names to model keys")

        if config.anchor_retention not in ANCHOR_RETENTION_POLICIES:
            errors.append(f"anchor_retention must be one of {ANCHOR_RETENTION_POLICIES}")
        if config.anchor_expiry_cycles < 1:
            errors.append("anchor_expiry_cycles must be at least 1")

        return errors

    def validate_config(self) -> bool:
        """Validate current configuration."""
        errors = self.get_validation_errors()
        for error in errors:
            logger.warning(f"Invalid configuration: {error}")
        return not errors

    def register_change_callback(self, callback: Callable[[PipelineConfig], None]) -> None:
        """Register a callback to be called when config changes."""
        if callback not in self._config_change_callbacks:
            self._config_change_callbacks.append(callback)

    def unregister_change_callback(self, callback: Callable[[PipelineConfig], None]) -> None:
        """Unregister a config change callback."""
        if callback in self._config_change_callbacks:
            self._config_change_callbacks.remove(callback)

    def reset_to_defaults(self) -> None:
        """Reset configuration to default values."""
        self._config = PipelineConfig()
        self.save_config()
        self._notify_callbacks()

    def export_config(self) -> Dict[str, Any]:
        """Export current configuration as a dictionary."""
        if not self._config:
            return {}
        return asdict(self._config)

    def import_config(self, config_dict: Dict[str, Any]) -> bool:
        """
        Import configuration from a dictionary.

        Args:
            config_dict: Dictionary containing configuration values

        Returns:
            True if import was successful, False otherwise
        """
        try:
            temp_config = PipelineConfig(**config_dict)
        except TypeError as e:
            logger.error(f"Error importing config: {e}")
            return False

        old_config = self._config
        self._config = temp_config

        if not self.validate_config():
            self._config = old_config
            return False

        self.save_config()
        self._notify_callbacks()
        return True
