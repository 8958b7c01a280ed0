import pytest
from PIL import Image

from faceblur.detection import (
    FaceDetectorError,
    FaceObservation,
    _observation_from_relative_box,
    detect_faces,
    detection_score,
)
from faceblur.geometry import Rect


def _observation(confidence: float, side: float = 0.1, x: float = 0.0, y: float = 0.0) -> FaceObservation:
    return FaceObservation(bounding_box=Rect(x, y, side, side), confidence=confidence)


def test_detection_score_mixes_confidence_and_size() -> None:
    # sqrt(0.01) * 4 = 0.4
    assert detection_score(_observation(0.5, side=0.1)) == pytest.approx(0.35 + 0.12)
    assert detection_score(_observation(1.0, side=0.5)) == pytest.approx(1.0)


def test_threshold_filters_weak_observations() -> None:
    image = Image.new("RGB", (200, 100))
    observations = [_observation(0.9, side=0.2), _observation(0.05, side=0.01)]

    kept = detect_faces(image, 0.5, lambda _: observations)
    everything = detect_faces(image, 0.0, lambda _: observations)

    assert len(kept) == 1
    assert len(everything) == 2


def test_faces_are_converted_to_top_left_pixels() -> None:
    image = Image.new("RGB", (200, 100))
    box = FaceObservation(bounding_box=Rect(0.5, 0.5, 0.25, 0.5), confidence=0.9)

    (target,) = detect_faces(image, 0.0, lambda _: [box])

    # pixel rect (100, 0, 50, 50) -> centre (125, 25), radius max(50, 50) * 0.6
    assert target.center.x == pytest.approx(125.0)
    assert target.center.y == pytest.approx(25.0)
    assert target.base_radius == pytest.approx(30.0)
    assert target.is_face and target.is_blurred


def test_missing_image_yields_no_faces() -> None:
    def _fail(_image):
        raise AssertionError("detector must not run")

    assert detect_faces(None, 0.2, _fail) == []


def test_detector_failures_are_wrapped() -> None:
    def _broken(_image):
        raise RuntimeError("model missing")

    with pytest.raises(FaceDetectorError, match="model missing"):
        detect_faces(Image.new("RGB", (10, 10)), 0.2, _broken)


def test_relative_box_is_flipped_to_bottom_left() -> None:
    class _Box:
        xmin = 0.1
        ymin = 0.2
        width = 0.3
        height = 0.4

    observation = _observation_from_relative_box(_Box(), 0.8)

    assert observation is not None
    assert observation.bounding_box.x == pytest.approx(0.1)
    assert observation.bounding_box.y == pytest.approx(0.4)
    assert observation.confidence == 0.8
