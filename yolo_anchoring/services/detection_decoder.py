"""Turns raw model output or a remote response into ranked detections."""

from typing import Dict, List, Optional

import numpy as np

from ..exceptions import DecodeError
from ..models.detection import Detection, FeedDimensions
from ..models.remote import AnalyseResponse

# Row layout of a decoded YOLO output column
CENTER_X_ROW = 0
CENTER_Y_ROW = 1
WIDTH_ROW = 2
HEIGHT_ROW = 3
CLASS_ROW = 4
CONFIDENCE_ROW = 5


def _as_columns(output: np.ndarray) -> np.ndarray:
    """Normalise output to a (rows, N) matrix."""
    output = np.asarray(output)
    if output.ndim == 3:
        if output.shape[0] != 1:
            raise DecodeError(f"Expected a batch of one, got output shape {output.shape}")
        output = output[0]
    if output.ndim != 2:
        raise DecodeError(f"Expected a (1, rows, N) or (rows, N) output, got shape {output.shape}")
    if output.shape[1] > 0 and output.shape[0] <= CONFIDENCE_ROW:
        raise DecodeError(f"Output needs at least {CONFIDENCE_ROW + 1} rows per column, "
                          f"got {output.shape[0]}")
    return output


def decode_tensor(output: np.ndarray, feed: FeedDimensions, input_size: int,
                  classes: Dict[int, str], confidence_threshold: float) -> List[Detection]:
    """Decode a local model output into detections, most confident first.

    Columns with ``confidence < confidence_threshold`` are dropped; a
    confidence equal to the threshold is kept. Boxes are scaled from model
    input space to frame space with independent x and y factors. Ties in
    confidence have no guaranteed order.
    """
    if output is None:
        return []
    columns = _as_columns(output)
    if columns.shape[1] == 0:
        return []

    width_scale = feed.width / float(input_size)
    height_scale = feed.height / float(input_size)

    detections: List[Detection] = []
    for i in range(columns.shape[1]):
        confidence = float(columns[CONFIDENCE_ROW, i])
        if confidence < confidence_threshold:
            continue
        class_id = int(columns[CLASS_ROW, i])
        detections.append(Detection.from_center(
            center_x=float(columns[CENTER_X_ROW, i]) * width_scale,
            center_y=float(columns[CENTER_Y_ROW, i]) * height_scale,
            width=float(columns[WIDTH_ROW, i]) * width_scale,
            height=float(columns[HEIGHT_ROW, i]) * height_scale,
            class_id=class_id,
            class_name=classes.get(class_id),
            confidence=confidence
        ))

    detections.sort(key=lambda detection: detection.confidence, reverse=True)
    return detections


def decode_remote(response: Optional[AnalyseResponse], confidence_threshold: float) -> List[Detection]:
    """Decode a remote analyse response, keeping the server's ordering."""
    if response is None:
        return []

    detections: List[Detection] = []
    for prediction in response.result:
        if prediction.confidence < confidence_threshold:
            continue
        box = prediction.box
        detections.append(Detection.from_center(
            center_x=(box.x1 + box.x2) / 2,
            center_y=(box.y1 + box.y2) / 2,
            width=box.x2 - box.x1,
            height=box.y2 - box.y1,
            class_id=prediction.class_id,
            class_name=prediction.name,
            confidence=prediction.confidence
        ))

    return detections
