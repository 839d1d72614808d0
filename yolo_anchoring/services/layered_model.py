"""Model graphs that the inference scheduler can run whole or layer by layer."""

import os
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .interfaces import InferenceModelInterface
from ..exceptions import ModelSetupError
from ..logging_config import get_logger

logger = get_logger("layered_model")

Layer = Tuple[str, Callable[[np.ndarray], np.ndarray]]


def preprocess_frame(frame: np.ndarray, size: int) -> np.ndarray:
    """Convert a BGR frame into a (1, 3, size, size) float32 tensor in [0, 1]."""
    if frame.ndim == 2:
        frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
    elif frame.shape[2] == 4:
        frame = cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)

    return cv2.dnn.blobFromImage(frame, scalefactor=1.0 / 255.0, size=(size, size),
                                 swapRB=True, crop=False)


class LayeredModel(InferenceModelInterface):
    """An ordered list of named numpy layers.

    ``schedule_iterable`` runs one layer per iteration so that callers can
    spread a forward pass over several frames.
    """

    def __init__(self, layers: Sequence[Layer], input_size: Optional[int] = None, name: str = "model"):
        if not layers:
            raise ModelSetupError("A model needs at least one layer")
        self.layers: List[Layer] = list(layers)
        self.name = name
        self._input_size = input_size
        self._output: Optional[np.ndarray] = None
        self._intermediate: Optional[np.ndarray] = None

    @property
    def fixed_input_size(self) -> Optional[int]:
        return self._input_size

    @property
    def layer_count(self) -> int:
        return len(self.layers)

    def run(self, input_tensor: np.ndarray) -> np.ndarray:
        for _ in self.schedule_iterable(input_tensor):
            pass
        return self._output

    def schedule_iterable(self, input_tensor: np.ndarray) -> Iterator[str]:
        self._output = None
        self._intermediate = input_tensor
        for layer_name, layer in self.layers:
            self._intermediate = layer(self._intermediate)
            yield layer_name
        self._output = self._intermediate
        self._intermediate = None

    def peek_output(self) -> Optional[np.ndarray]:
        return self._output

    def release(self) -> None:
        self._output = None
        self._intermediate = None

    def with_layers(self, extra_layers: Sequence[Layer], name: Optional[str] = None) -> "LayeredModel":
        """New model with ``extra_layers`` appended after the existing graph."""
        return LayeredModel(self.layers + list(extra_layers), self._input_size, name or self.name)


class Cv2DnnModel(InferenceModelInterface):
    """YOLO export (ONNX and friends) executed through OpenCV's DNN module.

    OpenCV runs the network as one opaque forward pass, so the iterable
    form yields exactly once.
    """

    def __init__(self, model_path: str, input_size: Optional[int] = 640):
        if not os.path.exists(model_path):
            raise ModelSetupError(f"Model file not found: {model_path}")
        try:
            self.net = cv2.dnn.readNet(model_path)
        except cv2.error as e:
            raise ModelSetupError(f"Failed to load model from {model_path}: {e}") from e
        self.model_path = model_path
        self._input_size = input_size
        self._output: Optional[np.ndarray] = None
        logger.info(f"Loaded DNN model from {model_path}")

    @property
    def fixed_input_size(self) -> Optional[int]:
        return self._input_size

    def run(self, input_tensor: np.ndarray) -> np.ndarray:
        self.net.setInput(input_tensor)
        self._output = self.net.forward()
        return self._output

    def schedule_iterable(self, input_tensor: np.ndarray) -> Iterator[str]:
        self._output = None
        self.run(input_tensor)
        yield "forward"

    def peek_output(self) -> Optional[np.ndarray]:
        return self._output

    def release(self) -> None:
        self._output = None

    def as_layered(self) -> LayeredModel:
        return LayeredModel([("forward", self.run)], self._input_size, os.path.basename(self.model_path))


@dataclass
class CustomizationParameters:
    """Graph edits applied to a raw YOLO model at setup time."""
    add_classification_head: bool = True
    add_nms: bool = False
    iou_threshold: float = 0.5
    score_threshold: float = 0.5


def classification_head(output: np.ndarray) -> np.ndarray:
    """Collapse (1, 4 + C, N) class scores into (1, 6, N) rows of box, class id and confidence."""
    if output.ndim != 3 or output.shape[1] <= 4:
        raise ValueError(f"Expected (1, 4 + classes, N) output, got shape {output.shape}")

    positions = output[:, 0:4, :]
    class_scores = output[:, 4:, :]
    class_ids = np.argmax(class_scores, axis=1)[:, np.newaxis, :].astype(np.float32)
    scores = np.max(class_scores, axis=1)[:, np.newaxis, :].astype(np.float32)

    return np.concatenate([positions.astype(np.float32), class_ids, scores], axis=1)


def make_nms_layer(iou_threshold: float, score_threshold: float) -> Callable[[np.ndarray], np.ndarray]:
    """Layer that keeps only the columns surviving non-max suppression."""

    def nms(output: np.ndarray) -> np.ndarray:
        columns = output[0]
        if columns.shape[1] == 0:
            return output
        centers_x, centers_y, widths, heights = columns[0], columns[1], columns[2], columns[3]
        boxes = np.stack([centers_x - widths / 2, centers_y - heights / 2, widths, heights], axis=1)
        indices = cv2.dnn.NMSBoxes(boxes.tolist(), columns[5].tolist(), score_threshold, iou_threshold)
        indices = np.asarray(indices, dtype=np.int64).reshape(-1)
        return output[:, :, indices]

    return nms


def customize_model(model: InferenceModelInterface, parameters: CustomizationParameters) -> LayeredModel:
    """Append a classification head and optional NMS to ``model``.

    Raises ModelSetupError when the requested graph cannot be built.
    """
    try:
        if not (0.0 <= parameters.iou_threshold <= 1.0 and 0.0 <= parameters.score_threshold <= 1.0):
            raise ValueError("NMS thresholds must be within [0, 1]")

        if isinstance(model, LayeredModel):
            base = model
        elif isinstance(model, Cv2DnnModel):
            base = model.as_layered()
        else:
            base = LayeredModel([("forward", model.run)], model.fixed_input_size)

        extra_layers: List[Layer] = []
        if parameters.add_classification_head:
            extra_layers.append(("classification_head", classification_head))
            if parameters.add_nms:
                extra_layers.append(("nms", make_nms_layer(parameters.iou_threshold,
                                                           parameters.score_threshold)))
        elif parameters.add_nms:
            logger.warning("NMS requires a classification head; skipping NMS")

        customized = base.with_layers(extra_layers, name=f"{base.name}-custom")
    except Exception as e:
        logger.error(f"Model customization failed: {e}")
        raise ModelSetupError(f"Model could not be customized: {e}") from e

    logger.info(f"Model customized with layers: {[name for name, _ in extra_layers]}")
    return customized


def load_model(model_path: str, input_size: Optional[int] = 640) -> InferenceModelInterface:
    """Load a model file supported by OpenCV's DNN module."""
    supported = (".onnx", ".pb", ".tflite", ".caffemodel", ".weights")
    if not model_path.lower().endswith(supported):
        raise ModelSetupError(f"Unsupported model format: {model_path}")
    return Cv2DnnModel(model_path, input_size)
