from __future__ import annotations

import logging
from typing import Iterable, Sequence

from faceblur.constants import RECONCILE_MATCH_RATIO
from faceblur.geometry import distance
from faceblur.models import BlurTarget

LOGGER = logging.getLogger(__name__)


def _nearest_target(target: BlurTarget, candidates: Sequence[BlurTarget]) -> tuple[BlurTarget, float] | None:
    best: tuple[BlurTarget, float] | None = None
    for candidate in candidates:
        delta = distance(candidate.center, target.center)
        if best is None or delta < best[1]:
            best = (candidate, delta)
    return best


def merge_face_targets(
    new_targets: Sequence[BlurTarget],
    previous_targets: Sequence[BlurTarget],
) -> list[BlurTarget]:
    """Carry the blurred flag from previous faces onto fresh detections.

    Matching is greedy per new target: two new faces may both inherit from the
    same previous face. Unmatched faces keep their own flag (blurred by default).
    """
    if not previous_targets:
        return list(new_targets)

    merged: list[BlurTarget] = []
    matched = 0
    for target in new_targets:
        nearest = _nearest_target(target, previous_targets)
        if nearest is not None:
            match, delta = nearest
            limit = max(match.base_radius, target.base_radius) * RECONCILE_MATCH_RATIO
            if delta <= limit:
                target = target.with_blurred(match.is_blurred)
                matched += 1
        merged.append(target)
    LOGGER.debug("reconciled %d face(s), %d matched previous edits", len(merged), matched)
    return merged


def split_targets(targets: Iterable[BlurTarget]) -> tuple[list[BlurTarget], list[BlurTarget]]:
    faces: list[BlurTarget] = []
    manual: list[BlurTarget] = []
    for target in targets:
        if target.is_manual:
            manual.append(target)
        else:
            faces.append(target)
    return (faces, manual)


def reconcile_targets(
    detected_faces: Sequence[BlurTarget],
    current_targets: Iterable[BlurTarget],
) -> list[BlurTarget]:
    previous_faces, manual_targets = split_targets(current_targets)
    return merge_face_targets(detected_faces, previous_faces) + manual_targets
