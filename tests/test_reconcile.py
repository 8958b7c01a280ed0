from faceblur.geometry import Point
from faceblur.models import BlurTarget
from faceblur.reconcile import merge_face_targets, reconcile_targets


def test_nearby_face_inherits_the_previous_flag() -> None:
    previous = BlurTarget(center=Point(100, 100), base_radius=20.0, is_blurred=False)
    fresh = BlurTarget(center=Point(105, 103), base_radius=22.0)

    (merged,) = merge_face_targets([fresh], [previous])

    assert merged.id == fresh.id
    assert merged.is_blurred is False


def test_distant_face_keeps_its_default() -> None:
    previous = BlurTarget(center=Point(100, 100), base_radius=20.0, is_blurred=False)
    fresh = BlurTarget(center=Point(300, 300), base_radius=20.0)

    (merged,) = merge_face_targets([fresh], [previous])

    assert merged.is_blurred is True


def test_manual_targets_survive_after_the_faces() -> None:
    manual = BlurTarget(center=Point(10, 10), base_radius=15.0, type="manual", is_blurred=False)
    old_face = BlurTarget(center=Point(50, 50), base_radius=10.0)
    new_face = BlurTarget(center=Point(200, 200), base_radius=10.0)

    result = reconcile_targets([new_face], [old_face, manual])

    assert [target.id for target in result] == [new_face.id, manual.id]
    assert result[1] == manual


def test_reconcile_is_idempotent() -> None:
    current = [
        BlurTarget(center=Point(100, 100), base_radius=20.0, is_blurred=False),
        BlurTarget(center=Point(400, 100), base_radius=20.0),
        BlurTarget(center=Point(10, 10), base_radius=15.0, type="manual"),
    ]
    faces = current[:2]

    once = reconcile_targets(faces, current)
    twice = reconcile_targets(faces, once)

    assert once == current
    assert twice == once
