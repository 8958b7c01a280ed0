from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Any

from PIL import Image

from faceblur.constants import (
    BLUR_STYLE_GAUSSIAN,
    DEFAULT_JPEG_QUALITY,
    FACE_SCALE_MAX,
    FACE_SCALE_MIN,
    MANUAL_RADIUS_DEFAULT_RATIO,
    MANUAL_RADIUS_MAX_RATIO,
    MANUAL_RADIUS_MIN_RATIO,
    MIN_RENDER_RADIUS,
    TARGET_TYPE_FACE,
    TARGET_TYPE_MANUAL,
    VALID_BLUR_STYLES,
    VALID_TARGET_TYPES,
)
from faceblur.geometry import Point, Rect, Size, clamp, rect_from_center


def new_identifier() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class BlurTarget:
    center: Point
    base_radius: float
    type: str = TARGET_TYPE_FACE
    is_blurred: bool = True
    id: str = field(default_factory=new_identifier)

    def __post_init__(self) -> None:
        if self.type not in VALID_TARGET_TYPES:
            raise ValueError(f"unsupported target type: {self.type!r}")

    @property
    def is_face(self) -> bool:
        return self.type == TARGET_TYPE_FACE

    @property
    def is_manual(self) -> bool:
        return self.type == TARGET_TYPE_MANUAL

    def effective_radius(self, face_scale: float) -> float:
        # The scale slider only applies to detected faces; manual sizes are
        # chosen explicitly by the user.
        if self.type == TARGET_TYPE_FACE:
            return max(MIN_RENDER_RADIUS, self.base_radius * face_scale)
        return max(MIN_RENDER_RADIUS, self.base_radius)

    def circle_rect(self, face_scale: float) -> Rect:
        return rect_from_center(self.center, self.effective_radius(face_scale))

    def with_blurred(self, is_blurred: bool) -> BlurTarget:
        return replace(self, is_blurred=bool(is_blurred))

    def with_radius(self, base_radius: float) -> BlurTarget:
        return replace(self, base_radius=float(base_radius))


@dataclass(frozen=True, slots=True)
class EditablePhoto:
    original_image: Image.Image = field(compare=False, repr=False)
    original_metadata: dict[str, Any] | None = field(default=None, compare=False, repr=False)
    processed_image: Image.Image | None = field(default=None, compare=False, repr=False)
    targets: tuple[BlurTarget, ...] = ()
    id: str = field(default_factory=new_identifier)

    @property
    def image_size(self) -> Size:
        width, height = self.original_image.size
        return Size(float(width), float(height))

    @property
    def display_image(self) -> Image.Image:
        return self.processed_image if self.processed_image is not None else self.original_image

    @property
    def blurred_count(self) -> int:
        return sum(1 for target in self.targets if target.is_blurred)

    def target(self, target_id: str) -> BlurTarget | None:
        for target in self.targets:
            if target.id == target_id:
                return target
        return None

    def with_targets(self, targets: tuple[BlurTarget, ...] | list[BlurTarget]) -> EditablePhoto:
        # Any target change invalidates the cached render.
        return replace(self, targets=tuple(targets), processed_image=None)

    def with_processed_image(self, processed_image: Image.Image | None) -> EditablePhoto:
        return replace(self, processed_image=processed_image)


@dataclass(frozen=True, slots=True)
class BlurSettings:
    style: str = BLUR_STYLE_GAUSSIAN
    # 0.0 ... 1.0, 1.0 is the strongest blur
    intensity: float = 0.7
    # multiplier for detected face radii
    face_radius_scale: float = 1.0
    # 0.0 ... 1.0, higher is stricter
    face_detection_threshold: float = 0.2

    def normalized(self) -> BlurSettings:
        style = str(self.style).lower()
        if style not in VALID_BLUR_STYLES:
            style = BLUR_STYLE_GAUSSIAN
        return BlurSettings(
            style=style,
            intensity=clamp(float(self.intensity), 0.0, 1.0),
            face_radius_scale=clamp(float(self.face_radius_scale), FACE_SCALE_MIN, FACE_SCALE_MAX),
            face_detection_threshold=clamp(float(self.face_detection_threshold), 0.0, 1.0),
        )


@dataclass(frozen=True, slots=True)
class ExportOptions:
    remove_metadata: bool = True
    jpeg_quality: int = DEFAULT_JPEG_QUALITY


ALERT_INFO = "info"
ALERT_WARNING = "warning"
ALERT_ERROR = "error"


@dataclass(frozen=True, slots=True)
class Alert:
    title: str
    message: str
    kind: str = ALERT_INFO
    id: str = field(default_factory=new_identifier)


def manual_radius_range(image_size: Size) -> tuple[float, float]:
    min_dimension = min(image_size.width, image_size.height)
    return (min_dimension * MANUAL_RADIUS_MIN_RATIO, min_dimension * MANUAL_RADIUS_MAX_RATIO)


def default_manual_radius(image_size: Size) -> float:
    return min(image_size.width, image_size.height) * MANUAL_RADIUS_DEFAULT_RATIO
