"""Response models for the remote inference server."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class YOLOModelName(Enum):
    """Pretrained models offered by the remote server."""
    YOLO11N = "yolo11n"
    YOLO11S = "yolo11s"
    YOLO11M = "yolo11m"
    YOLO11L = "yolo11l"


class YOLOFormat(Enum):
    """Runtime formats offered by the remote server."""
    NCNN = "ncnn"
    ONNX = "onnx"
    PYTORCH = "pytorch"


@dataclass
class RequestMetadata:
    time_ms: float = 0.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RequestMetadata":
        data = data or {}
        return cls(time_ms=float(data.get("time_ms", 0.0) or 0.0))


@dataclass
class SpeedMetadata:
    preprocess: float = 0.0
    inference: float = 0.0
    postprocess: float = 0.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SpeedMetadata":
        data = data or {}
        return cls(
            preprocess=float(data.get("preprocess", 0.0) or 0.0),
            inference=float(data.get("inference", 0.0) or 0.0),
            postprocess=float(data.get("postprocess", 0.0) or 0.0)
        )


@dataclass
class ResultBox:
    x1: float
    y1: float
    x2: float
    y2: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResultBox":
        return cls(
            x1=float(data["x1"]),
            y1=float(data["y1"]),
            x2=float(data["x2"]),
            y2=float(data["y2"])
        )


@dataclass
class PredictionResult:
    """One object reported by the remote server."""
    name: Optional[str]
    class_id: int
    confidence: float
    box: ResultBox

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PredictionResult":
        return cls(
            name=data.get("name"),
            class_id=int(data["class_id"]),
            confidence=float(data["confidence"]),
            box=ResultBox.from_dict(data["box"])
        )


@dataclass
class AnalyseMetadata:
    names: Dict[int, str] = field(default_factory=dict)
    speed: SpeedMetadata = field(default_factory=SpeedMetadata)
    request: RequestMetadata = field(default_factory=RequestMetadata)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AnalyseMetadata":
        data = data or {}
        names = {int(key): value for key, value in (data.get("names") or {}).items()}
        return cls(
            names=names,
            speed=SpeedMetadata.from_dict(data.get("speed")),
            request=RequestMetadata.from_dict(data.get("request"))
        )


@dataclass
class AnalyseResponse:
    """Parsed body of a successful ``/api/analyse`` call."""
    success: bool
    metadata: AnalyseMetadata
    result: List[PredictionResult]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalyseResponse":
        return cls(
            success=bool(data.get("success", True)),
            metadata=AnalyseMetadata.from_dict(data.get("metadata")),
            result=[PredictionResult.from_dict(item) for item in (data.get("result") or [])]
        )


@dataclass
class CustomModelResponse:
    """Parsed body of a successful ``/api/custom-model`` call."""
    success: bool
    result: Optional[str] = None
    error: Optional[str] = None
    request: RequestMetadata = field(default_factory=RequestMetadata)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomModelResponse":
        metadata = data.get("metadata") or {}
        return cls(
            success=bool(data.get("success", True)),
            result=data.get("result"),
            error=data.get("error"),
            request=RequestMetadata.from_dict(metadata.get("request"))
        )
