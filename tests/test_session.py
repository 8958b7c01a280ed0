from concurrent.futures import Future
from dataclasses import replace
from pathlib import Path

import pytest
from PIL import Image

from faceblur.detection import FaceObservation
from faceblur.geometry import Point, Rect
from faceblur.loader import LoadedImage
from faceblur.models import ALERT_ERROR, ALERT_INFO, ALERT_WARNING, BlurSettings
from faceblur.session import EditorSession

LEFT_FACE = FaceObservation(bounding_box=Rect(0.1, 0.4, 0.2, 0.4), confidence=0.9)
LEFT_FACE_MOVED = FaceObservation(bounding_box=Rect(0.11, 0.4, 0.2, 0.4), confidence=0.9)
RIGHT_FACE = FaceObservation(bounding_box=Rect(0.6, 0.4, 0.2, 0.4), confidence=0.9)


class _Detector:
    def __init__(self, observations: list[FaceObservation] | Exception) -> None:
        self.observations = observations
        self.calls = 0

    def __call__(self, _image: Image.Image) -> list[FaceObservation]:
        self.calls += 1
        if isinstance(self.observations, Exception):
            raise self.observations
        return list(self.observations)


class _ManualExecutor:
    """Runs submitted work only when asked to."""

    def __init__(self) -> None:
        self.pending: list[tuple[Future, object, tuple]] = []

    def submit(self, fn, *args) -> Future:
        future: Future = Future()
        self.pending.append((future, fn, args))
        return future

    def run_all(self) -> None:
        pending, self.pending = self.pending, []
        for future, fn, args in pending:
            future.set_result(fn(*args))

    def shutdown(self, wait: bool = True) -> None:
        self.pending.clear()


def _black_blur(image: Image.Image, _style: str, _intensity: float) -> Image.Image:
    return Image.new(image.mode, image.size, (0, 0, 0))


def _white_photo() -> LoadedImage:
    return LoadedImage(image=Image.new("RGB", (200, 100), (255, 255, 255)))


@pytest.fixture
def detector() -> _Detector:
    return _Detector([LEFT_FACE])


@pytest.fixture
def session(detector: _Detector):
    editor = EditorSession(detector=detector, blur=_black_blur)
    yield editor
    editor.shutdown()


def _loaded(session: EditorSession, *sources) -> EditorSession:
    session.load_photos(list(sources) or [_white_photo()])
    session.wait_idle(timeout=10)
    return session


def test_load_detects_and_renders_faces(session: EditorSession) -> None:
    _loaded(session)

    photo = session.current_photo
    assert photo is not None
    assert not session.is_processing
    assert session.alert is None
    (face,) = photo.targets
    assert face.is_face and face.is_blurred
    assert face.center.x == pytest.approx(40.0)
    assert face.center.y == pytest.approx(40.0)
    assert photo.processed_image is not None
    assert photo.display_image.getpixel((40, 40)) == (0, 0, 0)
    assert photo.display_image.getpixel((150, 80)) == (255, 255, 255)


def test_load_without_faces_warns(detector: _Detector, session: EditorSession) -> None:
    detector.observations = []

    _loaded(session)

    assert session.has_loaded_photos
    assert session.alert is not None and session.alert.kind == ALERT_WARNING


def test_detector_failure_degrades_to_no_faces(detector: _Detector, session: EditorSession) -> None:
    detector.observations = RuntimeError("model missing")

    _loaded(session)

    assert session.current_photo is not None
    assert session.current_photo.targets == ()
    assert session.alert is not None and session.alert.kind == ALERT_WARNING


def test_unreadable_files_raise_a_load_error(session: EditorSession, tmp_path: Path) -> None:
    broken = tmp_path / "broken.jpg"
    broken.write_bytes(b"not-a-real-image")

    _loaded(session, broken, tmp_path / "missing.png")

    assert not session.has_loaded_photos
    assert session.alert is not None and session.alert.kind == ALERT_ERROR


def test_toggle_flips_flag_and_rerenders(session: EditorSession) -> None:
    _loaded(session)
    photo = session.current_photo
    face = photo.targets[0]

    session.toggle_target(face.id, photo.id)
    assert session.current_photo.processed_image is None
    session.wait_idle(timeout=10)

    updated = session.current_photo
    assert updated.target(face.id).is_blurred is False
    assert updated.display_image.getpixel((40, 40)) == (255, 255, 255)
    assert updated.blurred_count == 0


def test_toggle_with_unknown_ids_is_ignored(session: EditorSession) -> None:
    _loaded(session)
    before = session.current_photo

    session.toggle_target("nope", before.id)
    session.toggle_target(before.targets[0].id, "nope")

    assert session.current_photo is before
    assert not session.has_pending_work


def test_set_all_targets_blurred(session: EditorSession) -> None:
    _loaded(session)

    session.set_all_targets_blurred(False)
    session.wait_idle(timeout=10)

    assert session.current_photo.blurred_count == 0


def test_manual_target_round_trip(session: EditorSession) -> None:
    _loaded(session)
    before = session.current_photo.targets

    target_id = session.add_manual_blur_point(Point(300, 50))
    assert target_id is not None
    manual = session.current_photo.target(target_id)
    assert manual.is_manual and manual.is_blurred
    # clamped into the image and sized to 8% of the short side
    assert manual.center == Point(200.0, 50.0)
    assert session.manual_target_radius(target_id) == pytest.approx(8.0)

    session.update_manual_target_radius(target_id, 1000.0)
    assert session.manual_target_radius(target_id) == pytest.approx(25.0)
    session.update_manual_target_radius(target_id, 0.0)
    assert session.manual_target_radius(target_id) == pytest.approx(3.0)

    session.remove_manual_target(target_id)
    session.wait_idle(timeout=10)
    assert session.current_photo.target(target_id) is None
    assert session.manual_target_radius(target_id) is None
    assert session.current_photo.targets == before


def test_manual_edits_ignore_face_targets(session: EditorSession) -> None:
    _loaded(session)
    face = session.current_photo.targets[0]

    session.update_manual_target_radius(face.id, 50.0)
    session.remove_manual_target(face.id)

    assert session.current_photo.target(face.id).base_radius == face.base_radius


def test_tap_toggles_and_adds_manual_points(session: EditorSession) -> None:
    _loaded(session)
    display = Rect(0, 0, 200, 100)
    face = session.current_photo.targets[0]

    assert session.handle_tap(Point(40, 40), display, adding_manual=False) is None
    assert session.current_photo.target(face.id).is_blurred is False

    new_id = session.handle_tap(Point(150, 50), display, adding_manual=True)
    assert new_id is not None
    assert session.handle_tap(Point(151, 50), display, adding_manual=True) == new_id
    assert session.handle_long_press(Point(150, 52), display) == new_id
    assert session.handle_long_press(Point(40, 40), display) is None
    assert session.handle_tap(Point(300, 50), display, adding_manual=True) is None
    session.wait_idle(timeout=10)
    assert len(session.current_photo.targets) == 2


def test_threshold_change_redetects_and_keeps_edits(detector: _Detector, session: EditorSession) -> None:
    _loaded(session)
    photo = session.current_photo
    old_face = photo.targets[0]
    session.toggle_target(old_face.id, photo.id)
    manual_id = session.add_manual_blur_point(Point(100, 80))
    session.wait_idle(timeout=10)

    detector.observations = [LEFT_FACE_MOVED, RIGHT_FACE]
    session.update_settings(replace(session.settings, face_detection_threshold=0.3))
    session.wait_idle(timeout=10)

    targets = session.current_photo.targets
    assert len(targets) == 3
    moved, right, manual = targets
    assert moved.center.x == pytest.approx(42.0)
    assert moved.is_blurred is False
    assert right.is_blurred is True
    assert manual.id == manual_id
    assert detector.calls == 2


def test_style_change_rerenders_without_detection(detector: _Detector, session: EditorSession) -> None:
    _loaded(session)

    session.update_settings(replace(session.settings, style="pixellate"))
    session.wait_idle(timeout=10)

    assert session.settings.style == "pixellate"
    assert detector.calls == 1
    assert session.current_photo.processed_image is not None


def test_redetection_failure_keeps_previous_faces(detector: _Detector, session: EditorSession) -> None:
    _loaded(session)
    face = session.current_photo.targets[0]

    detector.observations = RuntimeError("offline")
    session.request_face_redetection()
    session.wait_idle(timeout=10)

    assert session.current_photo.targets == (face,)


def test_reset_drops_results_still_in_flight() -> None:
    executor = _ManualExecutor()
    session = EditorSession(detector=_Detector([LEFT_FACE]), blur=_black_blur, executor=executor)

    session.load_photos([_white_photo()])
    assert session.is_processing
    session.reset_session()
    executor.run_all()
    session.apply_pending_results()

    assert not session.has_loaded_photos
    assert not session.is_processing
    assert not session.has_pending_work


def test_newer_load_supersedes_older_one() -> None:
    executor = _ManualExecutor()
    session = EditorSession(detector=_Detector([]), blur=_black_blur, executor=executor)
    first = _white_photo()
    second = _white_photo()

    session.load_photos([first])
    session.load_photos([second, _white_photo()])
    executor.run_all()
    session.apply_pending_results()

    assert len(session.photos) == 2
    assert session.photos[0].original_image is second.image


def test_stale_render_does_not_overwrite_newer_edit(session: EditorSession) -> None:
    _loaded(session)
    executor = _ManualExecutor()
    session._executor = executor
    photo = session.current_photo
    face = photo.targets[0]

    session.toggle_target(face.id, photo.id)
    session.toggle_target(face.id, photo.id)
    first, second = executor.pending
    executor.pending = [second, first]
    executor.run_all()
    session.apply_pending_results()

    final = session.current_photo
    assert final.target(face.id).is_blurred is True
    assert final.display_image.getpixel((40, 40)) == (0, 0, 0)


def test_edit_during_redetection_keeps_new_detections(detector: _Detector, session: EditorSession) -> None:
    _loaded(session)
    executor = _ManualExecutor()
    session._executor = executor
    photo = session.current_photo
    face = photo.targets[0]

    detector.observations = [LEFT_FACE, RIGHT_FACE]
    session.update_settings(replace(session.settings, face_detection_threshold=0.3))
    session.toggle_target(face.id, photo.id)
    redetect, render = executor.pending
    executor.pending = [render, redetect]
    executor.run_all()
    session.apply_pending_results()
    executor.run_all()
    session.apply_pending_results()

    final = session.current_photo
    left, right = final.targets
    assert left.is_blurred is False
    assert right.is_blurred is True
    assert final.processed_image is not None
    assert final.display_image.getpixel((40, 40)) == (255, 255, 255)
    assert final.display_image.getpixel((140, 40)) == (0, 0, 0)
    assert not session.has_pending_work


def test_bulk_result_for_a_changed_photo_list_replaces_it(session: EditorSession) -> None:
    _loaded(session, _white_photo(), _white_photo())
    executor = _ManualExecutor()
    session._executor = executor

    session.update_settings(replace(session.settings, style="pixellate"))
    session._photos.pop()
    executor.run_all()
    session.apply_pending_results()

    assert len(session.photos) == 2
    assert all(photo.processed_image is not None for photo in session.photos)


def test_settings_change_drops_cached_renders(session: EditorSession) -> None:
    _loaded(session)
    session._executor = _ManualExecutor()

    session.update_settings(replace(session.settings, intensity=0.3))

    assert session.current_photo.processed_image is None


def test_save_before_render_lands_is_still_blurred(session: EditorSession, tmp_path: Path) -> None:
    _loaded(session)
    session._executor = _ManualExecutor()

    session.add_manual_blur_point(Point(150, 50))
    assert session.current_photo.processed_image is None
    saved = session.save_current_image(tmp_path / "out.png")

    assert saved is not None
    with Image.open(saved) as reopened:
        pixels = reopened.convert("RGB")
        assert pixels.getpixel((40, 40)) == (0, 0, 0)
        assert pixels.getpixel((150, 50)) == (0, 0, 0)
        assert pixels.getpixel((100, 90)) == (255, 255, 255)


def test_save_writes_file_and_reports(session: EditorSession, tmp_path: Path) -> None:
    _loaded(session)

    saved = session.save_current_image(tmp_path / "out.tiff")

    assert saved == tmp_path / "out.jpg"
    assert saved.exists()
    assert session.alert is not None and session.alert.kind == ALERT_INFO
    with Image.open(saved) as reopened:
        assert reopened.size == (200, 100)


def test_save_without_photo_does_nothing(session: EditorSession, tmp_path: Path) -> None:
    assert session.save_current_image(tmp_path / "out.jpg") is None
    assert session.alert is None


def test_denied_write_raises_an_alert(session: EditorSession, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _loaded(session)

    def _deny(self, data):
        raise PermissionError("read-only volume")

    monkeypatch.setattr(Path, "write_bytes", _deny)

    assert session.save_current_image(tmp_path / "out.png") is None
    assert session.alert is not None
    assert session.alert.kind == ALERT_ERROR
    assert "denied" in session.alert.message


def test_settings_are_normalized_on_update(session: EditorSession) -> None:
    session.update_settings(BlurSettings(intensity=5.0, face_radius_scale=0.1))

    assert session.settings.intensity == 1.0
    assert session.settings.face_radius_scale == 0.5
