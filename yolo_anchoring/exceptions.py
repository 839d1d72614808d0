"""Exception types raised by the detection and anchoring system."""

from typing import Optional


class YoloAnchoringError(Exception):
    """Base class for all errors raised by this package."""
    pass


class ConfigurationError(YoloAnchoringError):
    """Raised when the pipeline configuration is invalid."""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []


class ModelSetupError(YoloAnchoringError):
    """Raised when a model or its class table cannot be prepared at setup time."""
    pass


class InferenceError(YoloAnchoringError):
    """Raised when an inference session fails mid-flight."""
    pass


class DecodeError(YoloAnchoringError):
    """Raised when model output cannot be decoded into detections."""
    pass


class RemoteRequestError(YoloAnchoringError):
    """Raised when the remote inference server rejects or fails a request.

    ``status_code`` is None for transport failures where no response arrived.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body
