"""session.py – EditorSession, the single owner of the editable photo state.

Detection, reconciliation and rendering run on a thread pool. Every task gets
an immutable snapshot (photos are frozen dataclasses) and returns a new
snapshot; results come back through a queue and are applied only by the owner
in :meth:`EditorSession.apply_pending_results`, so no lock guards the photos.
"""
from __future__ import annotations

import logging
import queue
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

from PIL import Image

from faceblur.constants import TARGET_TYPE_MANUAL
from faceblur.detection import FaceDetector, FaceDetectorError, detect_faces
from faceblur.exporter import ExportError, save_image
from faceblur.geometry import Point, Rect, clamp, clamp_point
from faceblur.loader import LoadedImage, PhotoLoadError, load_photo_source
from faceblur.models import (
    ALERT_ERROR,
    ALERT_INFO,
    ALERT_WARNING,
    Alert,
    BlurSettings,
    BlurTarget,
    EditablePhoto,
    ExportOptions,
    default_manual_radius,
    manual_radius_range,
)
from faceblur.reconcile import reconcile_targets, split_targets
from faceblur.render import BlurPrimitive, render_targets
from faceblur.viewport import convert_to_image_point, hit_test

LOGGER = logging.getLogger(__name__)

_KIND_LOAD = "load"
_KIND_PHOTOS = "photos"
_KIND_PHOTO = "photo"
_KIND_DETECT = "detect"

PhotoSource = Path | LoadedImage


@dataclass(frozen=True, slots=True)
class _TaskResult:
    kind: str
    generation: int
    future: Future


def _detect_or_empty(
    image: Image.Image,
    settings: BlurSettings,
    detector: FaceDetector | None,
) -> list[BlurTarget]:
    try:
        return detect_faces(image, settings.face_detection_threshold, detector)
    except FaceDetectorError as exc:
        LOGGER.warning("face detection unavailable: %s", exc)
        return []


def _load_job(
    sources: tuple[PhotoSource, ...],
    settings: BlurSettings,
    detector: FaceDetector | None,
    blur: BlurPrimitive | None,
) -> list[EditablePhoto]:
    loaded: list[EditablePhoto] = []
    for source in sources:
        if isinstance(source, LoadedImage):
            payload = source
        else:
            try:
                payload = load_photo_source(source)
            except PhotoLoadError as exc:
                LOGGER.warning("skip %s: %s", source, exc)
                continue
        targets = _detect_or_empty(payload.image, settings, detector)
        processed = render_targets(payload.image, targets, settings, blur)
        loaded.append(
            EditablePhoto(
                original_image=payload.image,
                original_metadata=payload.metadata,
                processed_image=processed,
                targets=tuple(targets),
            )
        )
    LOGGER.info("loaded %d of %d photo(s)", len(loaded), len(sources))
    return loaded


def _render_job(
    photo: EditablePhoto,
    settings: BlurSettings,
    blur: BlurPrimitive | None,
) -> EditablePhoto:
    processed = render_targets(photo.original_image, photo.targets, settings, blur)
    return photo.with_processed_image(processed)


def _render_all_job(
    photos: tuple[EditablePhoto, ...],
    settings: BlurSettings,
    blur: BlurPrimitive | None,
) -> list[EditablePhoto]:
    return [_render_job(photo, settings, blur) for photo in photos]


def _redetect_job(
    photos: tuple[EditablePhoto, ...],
    settings: BlurSettings,
    detector: FaceDetector | None,
    blur: BlurPrimitive | None,
) -> list[tuple[EditablePhoto, list[BlurTarget]]]:
    """Re-detect every photo; yields the reconciled render and the raw detections."""
    updated: list[tuple[EditablePhoto, list[BlurTarget]]] = []
    for photo in photos:
        previous_faces, _ = split_targets(photo.targets)
        try:
            detected = detect_faces(photo.original_image, settings.face_detection_threshold, detector)
        except FaceDetectorError as exc:
            # Keep the previous faces so a detector outage does not wipe edits.
            LOGGER.warning("re-detection failed, keeping previous faces: %s", exc)
            detected = previous_faces
        reconciled = photo.with_targets(reconcile_targets(detected, photo.targets))
        updated.append((_render_job(reconciled, settings, blur), detected))
    return updated


class EditorSession:
    def __init__(
        self,
        settings: BlurSettings | None = None,
        export_options: ExportOptions | None = None,
        *,
        detector: FaceDetector | None = None,
        blur: BlurPrimitive | None = None,
        executor: Executor | None = None,
        jobs: int = 1,
    ) -> None:
        self._photos: list[EditablePhoto] = []
        self._settings = (settings or BlurSettings()).normalized()
        self.export_options = export_options or ExportOptions()
        self.current_index = 0
        self.is_processing = False
        self.alert: Alert | None = None

        self._detector = detector
        self._blur = blur
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=max(1, int(jobs)), thread_name_prefix="faceblur")
        self._results: queue.Queue[_TaskResult] = queue.Queue()
        self._in_flight = 0
        self._generation = 0
        self._photo_generations: dict[str, int] = {}
        self._detection_generations: dict[str, int] = {}
        self._stale_before = 0

    # -- read access -------------------------------------------------------

    @property
    def photos(self) -> tuple[EditablePhoto, ...]:
        return tuple(self._photos)

    @property
    def settings(self) -> BlurSettings:
        return self._settings

    @property
    def has_loaded_photos(self) -> bool:
        return bool(self._photos)

    @property
    def has_pending_work(self) -> bool:
        return self._in_flight > 0

    def photo(self, index: int) -> EditablePhoto | None:
        if 0 <= index < len(self._photos):
            return self._photos[index]
        return None

    @property
    def current_photo(self) -> EditablePhoto | None:
        return self.photo(self.current_index)

    def set_current_index(self, index: int) -> None:
        if not self._photos:
            self.current_index = 0
            return
        self.current_index = int(clamp(index, 0, len(self._photos) - 1))

    def dismiss_alert(self) -> None:
        self.alert = None

    # -- session lifecycle ---------------------------------------------------

    def load_photos(self, sources: Sequence[PhotoSource]) -> None:
        if not sources:
            return
        self.is_processing = True
        self._photos = []
        self._photo_generations.clear()
        self._detection_generations.clear()
        self.current_index = 0
        # A new load supersedes everything still in flight.
        self._stale_before = self._generation
        self._dispatch(_KIND_LOAD, _load_job, tuple(sources), self._settings, self._detector, self._blur)

    def reset_session(self) -> None:
        self._photos = []
        self._photo_generations.clear()
        self._detection_generations.clear()
        self.current_index = 0
        self.is_processing = False
        # Anything still running belongs to the previous session.
        self._generation += 1
        self._stale_before = self._generation

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    # -- target editing ------------------------------------------------------

    def _find_photo_index(self, photo_id: str) -> int | None:
        for index, photo in enumerate(self._photos):
            if photo.id == photo_id:
                return index
        return None

    def _replace_targets(self, index: int, targets: Sequence[BlurTarget]) -> None:
        self._photos[index] = self._photos[index].with_targets(targets)
        self.regenerate_image(index)

    def toggle_target(self, target_id: str, photo_id: str) -> None:
        index = self._find_photo_index(photo_id)
        if index is None:
            return
        photo = self._photos[index]
        if photo.target(target_id) is None:
            return
        targets = [
            target.with_blurred(not target.is_blurred) if target.id == target_id else target
            for target in photo.targets
        ]
        self._replace_targets(index, targets)

    def set_all_targets_blurred(self, is_blurred: bool) -> None:
        photo = self.current_photo
        if photo is None:
            return
        self._replace_targets(self.current_index, [target.with_blurred(is_blurred) for target in photo.targets])

    def add_manual_blur_point(self, location: Point) -> str | None:
        photo = self.current_photo
        if photo is None:
            return None
        size = photo.image_size
        target = BlurTarget(
            center=clamp_point(location, size),
            base_radius=default_manual_radius(size),
            type=TARGET_TYPE_MANUAL,
            is_blurred=True,
        )
        self._replace_targets(self.current_index, [*photo.targets, target])
        return target.id

    def _manual_target(self, target_id: str) -> BlurTarget | None:
        photo = self.current_photo
        if photo is None:
            return None
        target = photo.target(target_id)
        if target is None or not target.is_manual:
            return None
        return target

    def manual_target_radius(self, target_id: str) -> float | None:
        target = self._manual_target(target_id)
        return target.base_radius if target is not None else None

    def manual_radius_range(self, photo: EditablePhoto | None) -> tuple[float, float] | None:
        if photo is None:
            return None
        return manual_radius_range(photo.image_size)

    def update_manual_target_radius(self, target_id: str, radius: float) -> None:
        photo = self.current_photo
        radius_range = self.manual_radius_range(photo)
        if photo is None or radius_range is None or self._manual_target(target_id) is None:
            return
        clamped = clamp(float(radius), radius_range[0], radius_range[1])
        targets = [
            target.with_radius(clamped) if target.id == target_id else target
            for target in photo.targets
        ]
        self._replace_targets(self.current_index, targets)

    def remove_manual_target(self, target_id: str) -> None:
        photo = self.current_photo
        if photo is None or self._manual_target(target_id) is None:
            return
        targets = [target for target in photo.targets if target.id != target_id]
        self._replace_targets(self.current_index, targets)

    # -- viewport input ------------------------------------------------------

    def handle_tap(self, location: Point, display_rect: Rect, adding_manual: bool) -> str | None:
        """Resolve a tap on the preview. Returns the selected manual target id."""
        photo = self.current_photo
        if photo is None:
            return None
        scale = self._settings.face_radius_scale
        if adding_manual:
            manual = hit_test(location, display_rect, photo.image_size, photo.targets, scale, TARGET_TYPE_MANUAL)
            if manual is not None:
                return manual.id
            image_point = convert_to_image_point(location, display_rect, photo.image_size)
            if image_point is None:
                return None
            return self.add_manual_blur_point(image_point)

        target = hit_test(location, display_rect, photo.image_size, photo.targets, scale)
        if target is not None:
            self.toggle_target(target.id, photo.id)
        return None

    def handle_long_press(self, location: Point, display_rect: Rect) -> str | None:
        photo = self.current_photo
        if photo is None:
            return None
        target = hit_test(
            location,
            display_rect,
            photo.image_size,
            photo.targets,
            self._settings.face_radius_scale,
            TARGET_TYPE_MANUAL,
        )
        return target.id if target is not None else None

    # -- settings --------------------------------------------------------------

    def update_settings(self, settings: BlurSettings) -> None:
        new_settings = settings.normalized()
        old_settings = self._settings
        if new_settings == old_settings:
            return
        self._settings = new_settings
        # Cached renders were made with the old settings.
        self._photos = [photo.with_processed_image(None) for photo in self._photos]
        if old_settings.face_detection_threshold != new_settings.face_detection_threshold:
            self._regenerate_detections()
        else:
            self._regenerate_images_for_settings()

    def request_face_redetection(self) -> None:
        self._regenerate_detections()

    # -- export ------------------------------------------------------------------

    def save_current_image(self, path: Path) -> Path | None:
        photo = self.current_photo
        if photo is None:
            return None
        image = photo.processed_image
        if image is None:
            # The background render has not landed yet; never export the sharp original.
            image = render_targets(photo.original_image, photo.targets, self._settings, self._blur)
        metadata = None if self.export_options.remove_metadata else photo.original_metadata
        try:
            saved = save_image(image, path, metadata, self.export_options)
        except ExportError as exc:
            LOGGER.error("save failed: %s", exc)
            self.alert = Alert("Save failed", str(exc), ALERT_ERROR)
            return None
        self.alert = Alert("Saved", f"Image saved to {saved}", ALERT_INFO)
        return saved

    # -- background work ---------------------------------------------------------

    def _dispatch(
        self,
        kind: str,
        fn: Callable[..., Any],
        *args: Any,
        photos: Sequence[EditablePhoto] = (),
    ) -> int:
        self._generation += 1
        generation = self._generation
        # The newest dispatch for a photo wins; older results for it are dropped.
        for photo in photos:
            self._photo_generations[photo.id] = generation
        future = self._executor.submit(fn, *args)
        self._in_flight += 1
        future.add_done_callback(lambda done: self._results.put(_TaskResult(kind, generation, done)))
        return generation

    def regenerate_image(self, index: int) -> None:
        photo = self.photo(index)
        if photo is None:
            return
        self._dispatch(_KIND_PHOTO, _render_job, photo, self._settings, self._blur, photos=(photo,))

    def _regenerate_images_for_settings(self) -> None:
        if not self._photos:
            return
        snapshot = tuple(self._photos)
        self._dispatch(_KIND_PHOTOS, _render_all_job, snapshot, self._settings, self._blur, photos=snapshot)

    def _regenerate_detections(self) -> None:
        if not self._photos:
            return
        snapshot = tuple(self._photos)
        generation = self._dispatch(
            _KIND_DETECT,
            _redetect_job,
            snapshot,
            self._settings,
            self._detector,
            self._blur,
            photos=snapshot,
        )
        for photo in snapshot:
            self._detection_generations[photo.id] = generation

    def apply_pending_results(self) -> int:
        """Apply every finished task without blocking; returns how many were applied."""
        applied = 0
        while True:
            try:
                result = self._results.get_nowait()
            except queue.Empty:
                return applied
            self._apply_result(result)
            applied += 1

    def wait_idle(self, timeout: float | None = None) -> None:
        """Block until all dispatched work has been applied."""
        while self._in_flight > 0:
            result = self._results.get(timeout=timeout)
            self._apply_result(result)

    def _apply_result(self, result: _TaskResult) -> None:
        self._in_flight -= 1
        exc = result.future.exception()
        if exc is not None:
            LOGGER.error("background %s task failed", result.kind, exc_info=exc)
            if result.kind == _KIND_LOAD:
                self.is_processing = False
            return
        if result.generation <= self._stale_before:
            LOGGER.debug("dropping %s result from a previous session", result.kind)
            return

        value = result.future.result()
        if result.kind == _KIND_LOAD:
            self._apply_loaded(result.generation, value)
        elif result.kind == _KIND_PHOTOS:
            self._apply_photos(result.generation, value)
        elif result.kind == _KIND_DETECT:
            self._apply_detections(result.generation, value)
        else:
            self._apply_photo(result.generation, value)

    def _apply_loaded(self, generation: int, loaded: list[EditablePhoto]) -> None:
        self._photos = list(loaded)
        self._photo_generations = {photo.id: generation for photo in loaded}
        self._detection_generations.clear()
        self.current_index = 0
        self.is_processing = False
        if not loaded:
            self.alert = Alert("Load error", "The photos could not be loaded.", ALERT_ERROR)
        elif any(not photo.targets for photo in loaded):
            self.alert = Alert(
                "No faces found",
                "Some photos had no detected faces. Add manual blur where needed.",
                ALERT_WARNING,
            )

    def _replace_all(self, generation: int, updated: list[EditablePhoto]) -> None:
        self._photos = list(updated)
        self._photo_generations = {photo.id: generation for photo in updated}
        self.set_current_index(self.current_index)

    def _apply_photos(self, generation: int, updated: list[EditablePhoto]) -> None:
        # Loads and resets drop in-flight work, so a count mismatch only appears
        # when the photo list was replaced behind the session's back.
        if len(updated) != len(self._photos):
            self._replace_all(generation, updated)
            return
        for photo in updated:
            self._apply_photo(generation, photo)

    def _apply_detections(
        self,
        generation: int,
        updated: list[tuple[EditablePhoto, list[BlurTarget]]],
    ) -> None:
        if len(updated) != len(self._photos):
            self._replace_all(generation, [photo for photo, _ in updated])
            return
        for photo, detected in updated:
            index = self._find_photo_index(photo.id)
            if index is None or self._detection_generations.get(photo.id, 0) > generation:
                continue
            if self._photo_generations.get(photo.id, 0) > generation:
                # Edited while detecting: merge the detections into the newer targets.
                current = self._photos[index]
                self._replace_targets(index, reconcile_targets(detected, current.targets))
                continue
            self._photos[index] = photo

    def _apply_photo(self, generation: int, photo: EditablePhoto) -> None:
        index = self._find_photo_index(photo.id)
        if index is None:
            return
        if self._photo_generations.get(photo.id, 0) > generation:
            LOGGER.debug("dropping outdated render for photo %s", photo.id)
            return
        self._photos[index] = photo
