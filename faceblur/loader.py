from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from PIL import ExifTags, Image, ImageOps, UnidentifiedImageError

from faceblur.constants import HEIF_EXTENSIONS, STANDARD_EXTENSIONS

LOGGER = logging.getLogger(__name__)

EXIF_BYTES_KEY = "ExifBytes"

_HEIF_REGISTERED = False


class PhotoLoadError(RuntimeError):
    pass


@dataclass(slots=True)
class LoadedImage:
    image: Image.Image
    metadata: dict[str, Any] | None = field(default=None)


def _register_heif_opener() -> bool:
    global _HEIF_REGISTERED
    if _HEIF_REGISTERED:
        return True
    try:
        from pillow_heif import register_heif_opener
    except ImportError:
        return False
    register_heif_opener()
    _HEIF_REGISTERED = True
    return True


def _ratio_to_float(value: Any) -> float:
    if isinstance(value, tuple) and len(value) == 2:
        numerator, denominator = value
        if denominator == 0:
            return 0.0
        return float(numerator) / float(denominator)
    numerator = getattr(value, "numerator", None)
    denominator = getattr(value, "denominator", None)
    if numerator is not None and denominator not in (None, 0):
        return float(numerator) / float(denominator)
    return float(value)


def _dms_to_degree(values: Any, ref: str | None) -> float | None:
    if not isinstance(values, (list, tuple)) or len(values) != 3:
        return None
    try:
        d = _ratio_to_float(values[0])
        m = _ratio_to_float(values[1])
        s = _ratio_to_float(values[2])
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    degree = d + (m / 60.0) + (s / 3600.0)
    if ref and ref.upper() in {"S", "W"}:
        degree = -degree
    return degree


def extract_metadata(image: Image.Image, source: Path | None = None) -> dict[str, Any]:
    """Flatten the EXIF block of ``image`` into a tag-name keyed map.

    The raw EXIF payload is kept under ``ExifBytes`` so an export can write the
    metadata back unchanged.
    """
    metadata: dict[str, Any] = {}
    if source is not None:
        metadata["SourceFile"] = str(source)
    exif_bytes = image.info.get("exif")
    if isinstance(exif_bytes, bytes) and exif_bytes:
        metadata[EXIF_BYTES_KEY] = exif_bytes

    exif = image.getexif()
    if not exif:
        return metadata
    for tag_id, value in exif.items():
        tag = ExifTags.TAGS.get(tag_id, str(tag_id))
        if tag != "GPSInfo":
            metadata[tag] = value
    gps_ifd = exif.get_ifd(ExifTags.IFD.GPSInfo)
    if gps_ifd:
        gps_info = {ExifTags.GPSTAGS.get(k, str(k)): v for k, v in gps_ifd.items()}
        metadata["GPSInfo"] = gps_info
        lat = _dms_to_degree(gps_info.get("GPSLatitude"), gps_info.get("GPSLatitudeRef"))
        lon = _dms_to_degree(gps_info.get("GPSLongitude"), gps_info.get("GPSLongitudeRef"))
        if lat is not None:
            metadata["GPSLatitude"] = lat
        if lon is not None:
            metadata["GPSLongitude"] = lon
    return metadata


def _decode_standard(path: Path) -> LoadedImage:
    with Image.open(path) as raw:
        # exif_transpose drops the orientation tag from the payload it keeps.
        oriented = ImageOps.exif_transpose(raw)
        metadata = extract_metadata(oriented, source=path)
        image = oriented.convert("RGB")
    return LoadedImage(image=image, metadata=metadata or None)


def load_photo_source(path: Path) -> LoadedImage:
    ext = path.suffix.lower()
    if ext in HEIF_EXTENSIONS and not _register_heif_opener():
        raise PhotoLoadError("pillow-heif is required to decode HEIF/HEIC/HIF")
    if ext not in STANDARD_EXTENSIONS and ext not in HEIF_EXTENSIONS:
        raise PhotoLoadError(f"unsupported image format: {path.suffix}")
    try:
        return _decode_standard(path)
    except (OSError, UnidentifiedImageError, ValueError) as exc:
        raise PhotoLoadError(f"cannot decode {path.name}: {exc}") from exc
