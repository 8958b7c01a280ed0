"""editor_canvas.py – PreviewCanvas widget with zoom, pan and target overlays."""
from __future__ import annotations

import math
import time

from PIL import Image
from PyQt6.QtCore import QPointF, QRectF, Qt, pyqtSignal
from PyQt6.QtGui import QColor, QImage, QPainter, QPen, QPixmap
from PyQt6.QtWidgets import QWidget

from faceblur.geometry import Point, Rect, aspect_fit_rect
from faceblur.models import EditablePhoto
from faceblur.viewport import ViewportState, target_circle

_LONG_PRESS_SECONDS = 0.25
_DRAG_START_DISTANCE = 4.0
_WHEEL_ZOOM_BASE = 1.0015


def pil_to_qpixmap(image: Image.Image) -> QPixmap:
    rgba = image.convert("RGBA")
    data = rgba.tobytes("raw", "RGBA")
    q_image = QImage(data, rgba.width, rgba.height, QImage.Format.Format_RGBA8888)
    return QPixmap.fromImage(q_image.copy())


class PreviewCanvas(QWidget):
    # (screen point, display rect)
    tapped = pyqtSignal(object, object)
    longPressed = pyqtSignal(object, object)

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setMinimumSize(320, 240)
        self.setMouseTracking(False)
        self.viewport = ViewportState()
        self._photo: EditablePhoto | None = None
        self._pixmap: QPixmap | None = None
        self._pixmap_source: Image.Image | None = None
        self._face_scale = 1.0
        self._selected_target_id: str | None = None
        self._press_pos: QPointF | None = None
        self._press_time = 0.0
        self._panning = False

    def set_photo(self, photo: EditablePhoto | None, *, reset_view: bool = False) -> None:
        if reset_view or photo is None or (self._photo is not None and photo.id != self._photo.id):
            self.viewport.reset()
        self._photo = photo
        source = photo.display_image if photo is not None else None
        if source is not self._pixmap_source:
            self._pixmap_source = source
            self._pixmap = pil_to_qpixmap(source) if source is not None else None
        self.update()

    def set_face_scale(self, face_scale: float) -> None:
        self._face_scale = float(face_scale)
        self.update()

    def set_selected_target(self, target_id: str | None) -> None:
        self._selected_target_id = target_id
        self.update()

    def _container_rect(self) -> Rect:
        content = self.contentsRect()
        return Rect(float(content.x()), float(content.y()), float(content.width()), float(content.height()))

    def _base_rect(self) -> Rect | None:
        if self._photo is None:
            return None
        return aspect_fit_rect(self._photo.image_size, self._container_rect())

    def display_rect(self) -> Rect | None:
        base_rect = self._base_rect()
        if base_rect is None or base_rect.is_empty():
            return None
        return self.viewport.current_display_rect(base_rect, self._container_rect())

    def reset_view(self) -> None:
        self.viewport.reset()
        self.update()

    def wheelEvent(self, event) -> None:  # type: ignore[override]
        if self._photo is None:
            super().wheelEvent(event)
            return
        delta = event.angleDelta().y()
        if delta == 0:
            event.ignore()
            return
        self.viewport.begin_zoom()
        self.viewport.update_zoom(pow(_WHEEL_ZOOM_BASE, float(delta)))
        self.viewport.end_zoom()
        self.update()
        event.accept()

    def mousePressEvent(self, event) -> None:  # type: ignore[override]
        if event.button() == Qt.MouseButton.LeftButton and self._photo is not None:
            self._press_pos = event.position()
            self._press_time = time.monotonic()
            self._panning = False
            event.accept()
            return
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event) -> None:  # type: ignore[override]
        if self._press_pos is None:
            super().mouseMoveEvent(event)
            return
        delta = event.position() - self._press_pos
        if not self._panning:
            if math.hypot(delta.x(), delta.y()) < _DRAG_START_DISTANCE or not self.viewport.is_zoomed:
                return
            self._panning = True
            self.viewport.begin_pan()
            self.setCursor(Qt.CursorShape.ClosedHandCursor)
        base_rect = self._base_rect()
        if base_rect is not None:
            self.viewport.update_pan(Point(delta.x(), delta.y()), self._container_rect(), base_rect)
            self.update()
        event.accept()

    def mouseReleaseEvent(self, event) -> None:  # type: ignore[override]
        if event.button() != Qt.MouseButton.LeftButton or self._press_pos is None:
            super().mouseReleaseEvent(event)
            return
        self._press_pos = None
        if self._panning:
            self._panning = False
            self.viewport.end_pan()
            self.unsetCursor()
            event.accept()
            return

        display_rect = self.display_rect()
        if display_rect is not None:
            point = Point(event.position().x(), event.position().y())
            if time.monotonic() - self._press_time >= _LONG_PRESS_SECONDS:
                self.longPressed.emit(point, display_rect)
            else:
                self.tapped.emit(point, display_rect)
        event.accept()

    def mouseDoubleClickEvent(self, event) -> None:  # type: ignore[override]
        self.reset_view()
        event.accept()

    def _border_color(self, is_blurred: bool, is_face: bool, is_selected: bool) -> QColor:
        if is_selected:
            return QColor("#FFD60A")
        if not is_blurred:
            return QColor("#34C759")
        if is_face:
            return QColor(255, 255, 255, 230)
        return QColor(10, 132, 255, 230)

    def paintEvent(self, event) -> None:  # type: ignore[override]
        super().paintEvent(event)
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing, True)
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform, True)
        content = self.contentsRect()
        painter.setClipRect(content)

        display_rect = self.display_rect()
        if self._photo is None or self._pixmap is None or display_rect is None:
            painter.drawText(content, Qt.AlignmentFlag.AlignCenter, "No photo yet")
            painter.end()
            return

        target_rect = QRectF(display_rect.x, display_rect.y, display_rect.width, display_rect.height)
        painter.drawPixmap(target_rect, self._pixmap, QRectF(0, 0, self._pixmap.width(), self._pixmap.height()))

        for target in self._photo.targets:
            circle = target_circle(target, display_rect, self._photo.image_size, self._face_scale)
            if circle is None:
                continue
            is_selected = target.id == self._selected_target_id
            pen = QPen(self._border_color(target.is_blurred, target.is_face, is_selected))
            pen.setWidth(3 if is_selected else 2)
            painter.setPen(pen)
            if target.is_blurred:
                painter.setBrush(Qt.BrushStyle.NoBrush)
            else:
                fill = QColor("#34C759")
                fill.setAlpha(90)
                painter.setBrush(fill)
            radius = circle.diameter * 0.5
            painter.drawEllipse(QPointF(circle.center.x, circle.center.y), radius, radius)

        painter.end()
