from __future__ import annotations

import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

from PyQt6.QtCore import Qt, QTimer
from PyQt6.QtGui import QAction, QKeySequence
from PyQt6.QtWidgets import (
    QApplication,
    QCheckBox,
    QComboBox,
    QFileDialog,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QSlider,
    QVBoxLayout,
    QWidget,
)

from faceblur.config import export_options_from_config, load_config, settings_from_config
from faceblur.constants import SUPPORTED_EXTENSIONS, VALID_BLUR_STYLES
from faceblur.detection import get_face_detector_error_message, preload_face_detector
from faceblur.geometry import Point, Rect
from faceblur.gui.editor_canvas import PreviewCanvas
from faceblur.models import ALERT_ERROR, ALERT_WARNING
from faceblur.session import EditorSession

LOGGER = logging.getLogger(__name__)

_RESULT_POLL_MS = 40
_STYLE_LABELS = {"pixellate": "Mosaic", "gaussian": "Blur"}


def _percent_slider(minimum: int, maximum: int, value: float) -> QSlider:
    slider = QSlider(Qt.Orientation.Horizontal)
    slider.setRange(minimum, maximum)
    slider.setValue(int(round(value * 100)))
    # valueChanged fires on release only; every change may trigger a re-render.
    slider.setTracking(False)
    return slider


class FaceBlurEditorWindow(QMainWindow):
    def __init__(self, startup_files: list[Path] | None = None, config: dict[str, Any] | None = None) -> None:
        super().__init__()
        self.setWindowTitle("FaceBlur")
        self.resize(1280, 860)
        self.setMinimumSize(960, 640)

        cfg = config or load_config()
        self.session = EditorSession(
            settings_from_config(cfg),
            export_options_from_config(cfg),
            jobs=int(cfg.get("jobs") or 1),
        )
        self._selected_manual_id: str | None = None
        self._shown_photo_ids: tuple[str, ...] = ()

        self._setup_ui()
        self._setup_shortcuts()
        self._sync_controls_from_settings()
        self._set_status("Ready. Open photos to start.")

        self._poll_timer = QTimer(self)
        self._poll_timer.setInterval(_RESULT_POLL_MS)
        self._poll_timer.timeout.connect(self._poll_session)
        self._poll_timer.start()

        preload_face_detector()
        if startup_files:
            self.open_photos(startup_files)

    # -- layout ---------------------------------------------------------------

    def _setup_ui(self) -> None:
        root = QWidget()
        self.setCentralWidget(root)
        root_layout = QHBoxLayout(root)
        root_layout.setContentsMargins(10, 10, 10, 10)

        left_panel = QWidget()
        left_panel.setMaximumWidth(360)
        left_layout = QVBoxLayout(left_panel)
        left_layout.setSpacing(10)
        self._build_edit_group(left_layout)
        self._build_settings_group(left_layout)
        self._build_manual_group(left_layout)
        left_layout.addStretch(1)
        root_layout.addWidget(left_panel)

        right_layout = QVBoxLayout()
        action_row = QHBoxLayout()
        open_button = QPushButton("Open Photos")
        open_button.clicked.connect(self.pick_photos)
        action_row.addWidget(open_button)

        self.prev_button = QPushButton("◀")
        self.prev_button.clicked.connect(lambda: self._step_photo(-1))
        action_row.addWidget(self.prev_button)
        self.next_button = QPushButton("▶")
        self.next_button.clicked.connect(lambda: self._step_photo(1))
        action_row.addWidget(self.next_button)

        save_button = QPushButton("Save")
        save_button.clicked.connect(self.save_current)
        action_row.addWidget(save_button)

        done_button = QPushButton("Done")
        done_button.clicked.connect(self.reset_session)
        action_row.addWidget(done_button)
        action_row.addStretch(1)
        right_layout.addLayout(action_row)

        self.canvas = PreviewCanvas()
        self.canvas.tapped.connect(self._on_canvas_tap)
        self.canvas.longPressed.connect(self._on_canvas_long_press)
        right_layout.addWidget(self.canvas, 1)

        self.info_label = QLabel("")
        right_layout.addWidget(self.info_label)
        root_layout.addLayout(right_layout, 1)

    def _build_edit_group(self, parent_layout: QVBoxLayout) -> None:
        group = QGroupBox("Edit")
        layout = QVBoxLayout(group)

        self.add_manual_check = QCheckBox("Add manual blur (click the photo)")
        self.add_manual_check.toggled.connect(self._on_add_manual_toggled)
        layout.addWidget(self.add_manual_check)

        row = QHBoxLayout()
        hide_all = QPushButton("Blur all")
        hide_all.clicked.connect(lambda: self._set_all_blurred(True))
        row.addWidget(hide_all)
        show_all = QPushButton("Show all")
        show_all.clicked.connect(lambda: self._set_all_blurred(False))
        row.addWidget(show_all)
        layout.addLayout(row)

        redetect = QPushButton("Detect faces again")
        redetect.clicked.connect(self.session.request_face_redetection)
        layout.addWidget(redetect)
        parent_layout.addWidget(group)

    def _build_settings_group(self, parent_layout: QVBoxLayout) -> None:
        group = QGroupBox("Settings")
        form = QFormLayout(group)
        settings = self.session.settings

        self.style_combo = QComboBox()
        for style in VALID_BLUR_STYLES:
            self.style_combo.addItem(_STYLE_LABELS.get(style, style), style)
        self.style_combo.currentIndexChanged.connect(self._on_settings_changed)
        form.addRow("Style", self.style_combo)

        self.intensity_slider = _percent_slider(20, 100, settings.intensity)
        self.intensity_slider.valueChanged.connect(self._on_settings_changed)
        form.addRow("Intensity", self.intensity_slider)

        self.face_scale_slider = _percent_slider(50, 200, settings.face_radius_scale)
        self.face_scale_slider.valueChanged.connect(self._on_settings_changed)
        form.addRow("Face size", self.face_scale_slider)

        self.threshold_slider = _percent_slider(0, 80, settings.face_detection_threshold)
        self.threshold_slider.valueChanged.connect(self._on_settings_changed)
        form.addRow("Detection", self.threshold_slider)

        self.remove_metadata_check = QCheckBox("Remove location and metadata")
        self.remove_metadata_check.toggled.connect(self._on_export_option_changed)
        form.addRow(self.remove_metadata_check)
        parent_layout.addWidget(group)

    def _build_manual_group(self, parent_layout: QVBoxLayout) -> None:
        self.manual_group = QGroupBox("Manual blur size")
        layout = QVBoxLayout(self.manual_group)
        self.manual_radius_slider = QSlider(Qt.Orientation.Horizontal)
        self.manual_radius_slider.setTracking(False)
        self.manual_radius_slider.valueChanged.connect(self._on_manual_radius_changed)
        layout.addWidget(self.manual_radius_slider)

        row = QHBoxLayout()
        delete_button = QPushButton("Delete")
        delete_button.clicked.connect(self._delete_selected_manual)
        row.addWidget(delete_button)
        clear_button = QPushButton("Deselect")
        clear_button.clicked.connect(lambda: self._select_manual(None))
        row.addWidget(clear_button)
        layout.addLayout(row)
        self.manual_group.setVisible(False)
        parent_layout.addWidget(self.manual_group)

    def _setup_shortcuts(self) -> None:
        action_open = QAction(self)
        action_open.setShortcut(QKeySequence.StandardKey.Open)
        action_open.triggered.connect(self.pick_photos)
        self.addAction(action_open)

        action_save = QAction(self)
        action_save.setShortcut(QKeySequence.StandardKey.Save)
        action_save.triggered.connect(self.save_current)
        self.addAction(action_save)

    # -- state sync -----------------------------------------------------------

    def _set_status(self, message: str) -> None:
        self.statusBar().showMessage(message)

    def _sync_controls_from_settings(self) -> None:
        settings = self.session.settings
        widgets = (
            self.style_combo,
            self.intensity_slider,
            self.face_scale_slider,
            self.threshold_slider,
            self.remove_metadata_check,
        )
        for widget in widgets:
            widget.blockSignals(True)
        try:
            index = self.style_combo.findData(settings.style)
            self.style_combo.setCurrentIndex(max(0, index))
            self.intensity_slider.setValue(int(round(settings.intensity * 100)))
            self.face_scale_slider.setValue(int(round(settings.face_radius_scale * 100)))
            self.threshold_slider.setValue(int(round(settings.face_detection_threshold * 100)))
            self.remove_metadata_check.setChecked(self.session.export_options.remove_metadata)
        finally:
            for widget in widgets:
                widget.blockSignals(False)
        self.canvas.set_face_scale(settings.face_radius_scale)

    def _refresh(self) -> None:
        session = self.session
        photo = session.current_photo
        photo_ids = tuple(p.id for p in session.photos)
        reset_view = photo_ids != self._shown_photo_ids
        self._shown_photo_ids = photo_ids
        if self._selected_manual_id is not None and session.manual_target_radius(self._selected_manual_id) is None:
            self._selected_manual_id = None

        self.canvas.set_photo(photo, reset_view=reset_view)
        self.canvas.set_selected_target(self._selected_manual_id)
        self.prev_button.setEnabled(session.current_index > 0)
        self.next_button.setEnabled(session.current_index < len(photo_ids) - 1)

        if session.is_processing:
            self.info_label.setText("Detecting faces…")
        elif photo is None:
            self.info_label.setText("")
        elif len(photo_ids) > 1:
            self.info_label.setText(f"{session.current_index + 1} / {len(photo_ids)}  ·  blurred {photo.blurred_count}")
        else:
            self.info_label.setText(f"blurred {photo.blurred_count}")
        self._refresh_manual_group()

    def _refresh_manual_group(self) -> None:
        target_id = self._selected_manual_id
        radius = self.session.manual_target_radius(target_id) if target_id else None
        radius_range = self.session.manual_radius_range(self.session.current_photo)
        if radius is None or radius_range is None:
            self.manual_group.setVisible(False)
            return
        self.manual_radius_slider.blockSignals(True)
        try:
            self.manual_radius_slider.setRange(int(radius_range[0]), int(round(radius_range[1])))
            self.manual_radius_slider.setValue(int(round(radius)))
        finally:
            self.manual_radius_slider.blockSignals(False)
        self.manual_group.setVisible(True)

    def _poll_session(self) -> None:
        if not self.session.apply_pending_results():
            return
        self._refresh()
        alert = self.session.alert
        if alert is None:
            return
        self.session.dismiss_alert()
        if alert.kind == ALERT_ERROR:
            QMessageBox.critical(self, alert.title, alert.message)
        elif alert.kind == ALERT_WARNING:
            detector_error = get_face_detector_error_message()
            message = f"{alert.message}\n\n{detector_error}" if detector_error else alert.message
            QMessageBox.warning(self, alert.title, message)
        else:
            self._set_status(alert.message)

    # -- actions --------------------------------------------------------------

    def pick_photos(self) -> None:
        ext_pattern = " ".join(f"*{ext}" for ext in sorted(SUPPORTED_EXTENSIONS))
        file_paths, _ = QFileDialog.getOpenFileNames(
            self,
            "Open photos",
            "",
            f"Supported Images ({ext_pattern});;All Files (*.*)",
        )
        if file_paths:
            self.open_photos([Path(p) for p in file_paths])

    def open_photos(self, paths: list[Path]) -> None:
        LOGGER.info("open %d photo(s)", len(paths))
        self._select_manual(None)
        self.session.load_photos(paths)
        self._set_status(f"Loading {len(paths)} photo(s)…")
        self._refresh()

    def reset_session(self) -> None:
        self.session.reset_session()
        self._select_manual(None)
        self.add_manual_check.setChecked(False)
        self._refresh()

    def save_current(self) -> None:
        photo = self.session.current_photo
        if photo is None:
            self._set_status("There is no photo to save.")
            return
        file_path, _ = QFileDialog.getSaveFileName(
            self,
            "Save photo",
            "blurred.jpg",
            "JPEG (*.jpg *.jpeg);;PNG (*.png);;All Files (*.*)",
        )
        if not file_path:
            return
        saved = self.session.save_current_image(Path(file_path))
        alert = self.session.alert
        self.session.dismiss_alert()
        if saved is None and alert is not None:
            QMessageBox.critical(self, alert.title, alert.message)
            return
        self._set_status(f"Saved: {saved}")

    def _step_photo(self, step: int) -> None:
        self.session.set_current_index(self.session.current_index + step)
        self._select_manual(None)
        self._refresh()

    def _set_all_blurred(self, is_blurred: bool) -> None:
        self.session.set_all_targets_blurred(is_blurred)
        self._refresh()

    def _select_manual(self, target_id: str | None) -> None:
        self._selected_manual_id = target_id
        self.canvas.set_selected_target(target_id)
        self._refresh_manual_group()

    def _delete_selected_manual(self) -> None:
        if self._selected_manual_id is None:
            return
        self.session.remove_manual_target(self._selected_manual_id)
        self._select_manual(None)
        self._refresh()

    def _on_add_manual_toggled(self, checked: bool) -> None:
        self._set_status("Click where you want to blur." if checked else "")

    def _on_canvas_tap(self, point: Point, display_rect: Rect) -> None:
        adding_manual = self.add_manual_check.isChecked()
        selected = self.session.handle_tap(point, display_rect, adding_manual)
        if selected is not None:
            self._selected_manual_id = selected
        self._refresh()

    def _on_canvas_long_press(self, point: Point, display_rect: Rect) -> None:
        selected = self.session.handle_long_press(point, display_rect)
        if selected is not None:
            self._select_manual(selected)
            return
        self._on_canvas_tap(point, display_rect)

    def _on_manual_radius_changed(self, value: int) -> None:
        if self._selected_manual_id is None:
            return
        self.session.update_manual_target_radius(self._selected_manual_id, float(value))
        self._refresh()

    def _on_settings_changed(self, *_: Any) -> None:
        settings = replace(
            self.session.settings,
            style=str(self.style_combo.currentData()),
            intensity=self.intensity_slider.value() / 100.0,
            face_radius_scale=self.face_scale_slider.value() / 100.0,
            face_detection_threshold=self.threshold_slider.value() / 100.0,
        )
        self.session.update_settings(settings)
        self.canvas.set_face_scale(self.session.settings.face_radius_scale)

    def _on_export_option_changed(self, checked: bool) -> None:
        self.session.export_options = replace(self.session.export_options, remove_metadata=bool(checked))

    def closeEvent(self, event) -> None:  # type: ignore[override]
        self._poll_timer.stop()
        self.session.shutdown()
        super().closeEvent(event)


def launch_gui(startup_files: list[Path] | None = None, config: dict[str, Any] | None = None) -> None:
    app = QApplication.instance() or QApplication(sys.argv)
    window = FaceBlurEditorWindow(startup_files=startup_files, config=config)
    window.show()
    app.exec()
