from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable

from PIL import Image

from faceblur.constants import (
    DETECTION_CONFIDENCE_WEIGHT,
    DETECTION_SIZE_GAIN,
    DETECTION_SIZE_WEIGHT,
    FACE_RADIUS_FROM_BOX,
    TARGET_TYPE_FACE,
)
from faceblur.geometry import Point, Rect, Size, clamp, normalized_to_pixel_rect
from faceblur.models import BlurTarget

LOGGER = logging.getLogger(__name__)

# MediaPipe's own cut-off; the detection score decides what survives.
_MEDIAPIPE_MIN_CONFIDENCE = 0.1
# 1 = full-range model, suited to photos rather than selfies.
_MEDIAPIPE_MODEL_SELECTION = 1
_FACE_DETECTOR_ERROR_MESSAGE = ""


class FaceDetectorError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class FaceObservation:
    """A raw detector hit: normalized box with a bottom-left origin."""

    bounding_box: Rect
    confidence: float


FaceDetector = Callable[[Image.Image], list[FaceObservation]]


def detection_score(observation: FaceObservation) -> float:
    box = observation.bounding_box
    area = box.width * box.height
    normalized_area = min(1.0, math.sqrt(max(area, 0.0)) * DETECTION_SIZE_GAIN)
    score = (observation.confidence * DETECTION_CONFIDENCE_WEIGHT) + (normalized_area * DETECTION_SIZE_WEIGHT)
    return min(1.0, score)


def target_from_pixel_rect(rect: Rect) -> BlurTarget:
    center = Point(rect.mid_x, rect.mid_y)
    base_radius = max(rect.width, rect.height) * FACE_RADIUS_FROM_BOX
    return BlurTarget(center=center, base_radius=base_radius, type=TARGET_TYPE_FACE)


def detect_faces(
    image: Image.Image | None,
    threshold: float,
    detector: FaceDetector | None = None,
) -> list[BlurTarget]:
    """Run ``detector`` and turn the surviving observations into face targets.

    A threshold of zero or less keeps every observation. Detector failures are
    raised as :class:`FaceDetectorError`; callers decide how to degrade.
    """
    if image is None or image.width <= 0 or image.height <= 0:
        return []
    run_detector = detector or detect_face_observations
    try:
        observations = run_detector(image)
    except FaceDetectorError:
        raise
    except Exception as exc:
        raise FaceDetectorError(f"face detection failed: {_short_error_text(exc)}") from exc

    normalized_threshold = clamp(float(threshold), 0.0, 1.0)
    if normalized_threshold <= 0:
        kept = list(observations)
    else:
        kept = [obs for obs in observations if detection_score(obs) >= normalized_threshold]
    LOGGER.debug(
        "detected %d face(s), kept %d at threshold %.2f",
        len(observations),
        len(kept),
        normalized_threshold,
    )

    size = Size(float(image.width), float(image.height))
    return [target_from_pixel_rect(normalized_to_pixel_rect(obs.bounding_box, size)) for obs in kept]


def _short_error_text(exc: Exception) -> str:
    text = str(exc).strip()
    if not text:
        return type(exc).__name__
    if len(text) > 120:
        return text[:117] + "..."
    return text


@lru_cache(maxsize=1)
def _load_mediapipe_face_detection() -> Any | None:
    global _FACE_DETECTOR_ERROR_MESSAGE
    try:
        import mediapipe as mp
    except Exception as exc:
        _FACE_DETECTOR_ERROR_MESSAGE = f"mediapipe not installed or failed: {_short_error_text(exc)}"
        return None
    solutions = getattr(mp, "solutions", None)
    face_detection = getattr(solutions, "face_detection", None)
    if face_detection is None:
        _FACE_DETECTOR_ERROR_MESSAGE = "mediapipe build has no face_detection solution"
        return None
    return face_detection


@lru_cache(maxsize=1)
def _load_numpy() -> Any | None:
    global _FACE_DETECTOR_ERROR_MESSAGE
    try:
        import numpy as np
    except Exception as exc:
        _FACE_DETECTOR_ERROR_MESSAGE = f"numpy not installed or failed: {_short_error_text(exc)}"
        return None
    return np


def get_face_detector_error_message() -> str:
    return _FACE_DETECTOR_ERROR_MESSAGE


def preload_face_detector() -> None:
    """Import the detector backend ahead of the first photo (for GUI)."""
    _load_mediapipe_face_detection()
    _load_numpy()


def _observation_from_relative_box(relative_box: Any, score: float) -> FaceObservation | None:
    try:
        xmin = float(relative_box.xmin)
        ymin = float(relative_box.ymin)
        width = float(relative_box.width)
        height = float(relative_box.height)
    except (AttributeError, TypeError, ValueError):
        return None
    if width <= 0 or height <= 0:
        return None
    # MediaPipe boxes are top-left based; flip into the bottom-left convention.
    bottom = 1.0 - (ymin + height)
    return FaceObservation(bounding_box=Rect(xmin, bottom, width, height), confidence=score)


def detect_face_observations(image: Image.Image) -> list[FaceObservation]:
    global _FACE_DETECTOR_ERROR_MESSAGE
    face_detection = _load_mediapipe_face_detection()
    np = _load_numpy()
    if face_detection is None or np is None:
        raise FaceDetectorError(_FACE_DETECTOR_ERROR_MESSAGE or "face detector is unavailable")

    source = image if image.mode == "RGB" else image.convert("RGB")
    try:
        with face_detection.FaceDetection(
            model_selection=_MEDIAPIPE_MODEL_SELECTION,
            min_detection_confidence=_MEDIAPIPE_MIN_CONFIDENCE,
        ) as detector:
            results = detector.process(np.asarray(source))
    except Exception as exc:
        _FACE_DETECTOR_ERROR_MESSAGE = f"Face detection inference failed: {_short_error_text(exc)}"
        raise FaceDetectorError(_FACE_DETECTOR_ERROR_MESSAGE) from exc
    _FACE_DETECTOR_ERROR_MESSAGE = ""

    observations: list[FaceObservation] = []
    for detection in getattr(results, "detections", None) or []:
        scores = getattr(detection, "score", None) or [0.0]
        location = getattr(detection, "location_data", None)
        relative_box = getattr(location, "relative_bounding_box", None)
        if relative_box is None:
            continue
        observation = _observation_from_relative_box(relative_box, float(scores[0]))
        if observation is not None:
            observations.append(observation)
    return observations
