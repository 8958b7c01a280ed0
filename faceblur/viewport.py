"""viewport.py – zoom/pan state, screen↔image mapping and hit-testing.

The zoom and pan values exist twice: the *live* values that follow an active
gesture and the *committed* ones (``last_zoom_scale`` / ``last_offset``) that a
new gesture starts from. Committed values change only when a gesture ends.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from faceblur.constants import PAN_OVERSCROLL, ZOOM_MAX, ZOOM_MIN
from faceblur.geometry import ZERO_POINT, Point, Rect, Size, clamp, distance, rect_contains
from faceblur.models import BlurTarget

PHASE_AT_REST = "at_rest"
PHASE_ZOOMING = "zooming"
PHASE_PANNING = "panning"


@dataclass(frozen=True, slots=True)
class ScreenCircle:
    center: Point
    diameter: float


class ViewportState:
    def __init__(self) -> None:
        self.zoom_scale = ZOOM_MIN
        self.last_zoom_scale = ZOOM_MIN
        self.offset = ZERO_POINT
        self.last_offset = ZERO_POINT
        self.phase = PHASE_AT_REST

    def reset(self) -> None:
        self.zoom_scale = ZOOM_MIN
        self.last_zoom_scale = ZOOM_MIN
        self.offset = ZERO_POINT
        self.last_offset = ZERO_POINT
        self.phase = PHASE_AT_REST

    @property
    def is_zoomed(self) -> bool:
        return self.zoom_scale > ZOOM_MIN

    # -- zoom gesture ----------------------------------------------------

    def begin_zoom(self) -> None:
        self.phase = PHASE_ZOOMING

    def update_zoom(self, magnification: float) -> None:
        """``magnification`` is relative to the committed zoom of this gesture."""
        if self.phase != PHASE_ZOOMING:
            self.begin_zoom()
        self.zoom_scale = clamp(self.last_zoom_scale * float(magnification), ZOOM_MIN, ZOOM_MAX)
        if self.zoom_scale == ZOOM_MIN:
            self.offset = ZERO_POINT
            self.last_offset = ZERO_POINT

    def end_zoom(self) -> None:
        self.last_zoom_scale = self.zoom_scale
        self.phase = PHASE_AT_REST

    # -- pan gesture -----------------------------------------------------

    def begin_pan(self) -> None:
        self.phase = PHASE_PANNING

    def update_pan(self, translation: Point, container_rect: Rect, base_rect: Rect) -> None:
        if not self.is_zoomed:
            return
        if self.phase != PHASE_PANNING:
            self.begin_pan()
        proposed = Point(self.last_offset.x + translation.x, self.last_offset.y + translation.y)
        self.offset = self.clamped_offset(proposed, container_rect, base_rect)

    def end_pan(self) -> None:
        if self.is_zoomed:
            self.last_offset = self.offset
        self.phase = PHASE_AT_REST

    # -- geometry ---------------------------------------------------------

    def clamped_offset(self, offset: Point, container_rect: Rect, base_rect: Rect) -> Point:
        scaled_w = base_rect.width * self.zoom_scale
        scaled_h = base_rect.height * self.zoom_scale
        limit_x = max(0.0, (scaled_w - container_rect.width) * 0.5) + PAN_OVERSCROLL
        limit_y = max(0.0, (scaled_h - container_rect.height) * 0.5) + PAN_OVERSCROLL
        return Point(clamp(offset.x, -limit_x, limit_x), clamp(offset.y, -limit_y, limit_y))

    def current_display_rect(self, base_rect: Rect, container_rect: Rect) -> Rect:
        scaled_w = base_rect.width * self.zoom_scale
        scaled_h = base_rect.height * self.zoom_scale
        return Rect(
            container_rect.mid_x - (scaled_w * 0.5) + self.offset.x,
            container_rect.mid_y - (scaled_h * 0.5) + self.offset.y,
            scaled_w,
            scaled_h,
        )


def convert_to_image_point(point: Point, display_rect: Rect, image_size: Size) -> Point | None:
    if not rect_contains(display_rect, point):
        return None
    relative_x = (point.x - display_rect.min_x) / display_rect.width
    relative_y = (point.y - display_rect.min_y) / display_rect.height
    return Point(relative_x * image_size.width, relative_y * image_size.height)


def hit_test(
    point: Point,
    display_rect: Rect,
    image_size: Size,
    targets: Iterable[BlurTarget],
    face_scale: float,
    target_type: str | None = None,
) -> BlurTarget | None:
    """Nearest target whose circle contains ``point``; None when nothing is hit."""
    image_point = convert_to_image_point(point, display_rect, image_size)
    if image_point is None:
        return None

    best: tuple[BlurTarget, float] | None = None
    for target in targets:
        if target_type is not None and target.type != target_type:
            continue
        delta = distance(image_point, target.center)
        if delta > target.effective_radius(face_scale):
            continue
        if best is None or delta < best[1]:
            best = (target, delta)
    return best[0] if best is not None else None


def target_circle(
    target: BlurTarget,
    display_rect: Rect,
    image_size: Size,
    face_scale: float,
) -> ScreenCircle | None:
    if image_size.width <= 0 or image_size.height <= 0:
        return None
    scale_factor = display_rect.width / image_size.width
    center_x = display_rect.min_x + (target.center.x / image_size.width) * display_rect.width
    center_y = display_rect.min_y + (target.center.y / image_size.height) * display_rect.height
    radius = target.effective_radius(face_scale) * scale_factor
    return ScreenCircle(center=Point(center_x, center_y), diameter=radius * 2.0)
