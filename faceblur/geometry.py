from __future__ import annotations

import math
from typing import NamedTuple


class Point(NamedTuple):
    x: float
    y: float


class Size(NamedTuple):
    width: float
    height: float


class Rect(NamedTuple):
    x: float
    y: float
    width: float
    height: float

    @property
    def min_x(self) -> float:
        return self.x

    @property
    def min_y(self) -> float:
        return self.y

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def mid_x(self) -> float:
        return self.x + (self.width * 0.5)

    @property
    def mid_y(self) -> float:
        return self.y + (self.height * 0.5)

    @property
    def size(self) -> Size:
        return Size(self.width, self.height)

    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


ZERO_POINT = Point(0.0, 0.0)


def clamp(value: float, lower: float, upper: float) -> float:
    return min(max(value, lower), upper)


def distance(first: Point, second: Point) -> float:
    return math.hypot(first.x - second.x, first.y - second.y)


def clamp_point(point: Point, size: Size) -> Point:
    return Point(
        clamp(point.x, 0.0, size.width),
        clamp(point.y, 0.0, size.height),
    )


def rect_center(rect: Rect) -> Point:
    return Point(rect.mid_x, rect.mid_y)


def rect_contains(rect: Rect, point: Point) -> bool:
    """Inclusive on every edge; an empty rect contains nothing."""
    if rect.is_empty():
        return False
    return rect.min_x <= point.x <= rect.max_x and rect.min_y <= point.y <= rect.max_y


def rect_from_center(center: Point, radius: float) -> Rect:
    return Rect(center.x - radius, center.y - radius, radius * 2.0, radius * 2.0)


def normalized_to_pixel_rect(box: Rect, size: Size) -> Rect:
    """Map a normalized, bottom-left-origin box onto top-left-origin pixels."""
    width = box.width * size.width
    height = box.height * size.height
    x = box.min_x * size.width
    y = (1.0 - box.max_y) * size.height
    return Rect(x, y, width, height)


def aspect_fit_rect(size: Size, container: Rect) -> Rect:
    """Largest rect with the aspect ratio of ``size`` centred inside ``container``."""
    if size.width <= 0 or size.height <= 0 or container.is_empty():
        return Rect(container.mid_x, container.mid_y, 0.0, 0.0)
    scale = min(container.width / float(size.width), container.height / float(size.height))
    fit_w = size.width * scale
    fit_h = size.height * scale
    return Rect(
        container.mid_x - (fit_w * 0.5),
        container.mid_y - (fit_h * 0.5),
        fit_w,
        fit_h,
    )
