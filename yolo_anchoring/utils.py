"""Utility functions for the detection and anchoring system."""

import json
import os
from typing import Dict, Optional

from .exceptions import ModelSetupError


def ensure_directory_exists(path: str) -> None:
    """Ensure a directory exists, create if it doesn't."""
    if path and not os.path.exists(path):
        os.makedirs(path, exist_ok=True)


def load_class_table(path: str) -> Dict[int, str]:
    """Load a ``{"class": {"0": "person", ...}}`` JSON file into an id -> name map."""
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ModelSetupError(f"Could not read class table {path}: {e}") from e

    return parse_class_table(data, source=path)


def parse_class_table(data: Dict, source: str = "class table") -> Dict[int, str]:
    """Convert the decoded class table JSON into an id -> name map."""
    if not isinstance(data, dict) or not isinstance(data.get("class"), dict):
        raise ModelSetupError(f"{source} must contain a 'class' object")

    classes: Dict[int, str] = {}
    for key, name in data["class"].items():
        try:
            classes[int(key)] = str(name)
        except (TypeError, ValueError) as e:
            raise ModelSetupError(f"Invalid class id '{key}' in {source}") from e

    return classes


def read_binary_file(path: str) -> Optional[bytes]:
    """Read a file's bytes, returning None when it doesn't exist."""
    if not path or not os.path.isfile(path):
        return None
    with open(path, 'rb') as f:
        return f.read()


def get_file_size_mb(file_path: str) -> float:
    """Get file size in megabytes."""
    if os.path.exists(file_path):
        return os.path.getsize(file_path) / (1024 * 1024)
    return 0.0
