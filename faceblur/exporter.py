from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any

from PIL import Image

from faceblur.loader import EXIF_BYTES_KEY
from faceblur.models import ExportOptions

LOGGER = logging.getLogger(__name__)


class ExportError(RuntimeError):
    pass


class NoImageError(ExportError):
    def __init__(self, message: str = "There is no image to save.") -> None:
        super().__init__(message)


class AuthorizationDeniedError(ExportError):
    def __init__(self, message: str = "Permission to write the image was denied.") -> None:
        super().__init__(message)


def resolve_export_path(path: Path) -> tuple[Path, str]:
    suffix = path.suffix.lower()
    if suffix == ".png":
        return (path, "PNG")
    if suffix not in {".jpg", ".jpeg"}:
        path = path.with_suffix(".jpg")
    return (path, "JPEG")


def _exif_payload(metadata: dict[str, Any] | None) -> bytes | None:
    if not metadata:
        return None
    payload = metadata.get(EXIF_BYTES_KEY)
    if isinstance(payload, bytes) and payload:
        return payload
    return None


def encode_image(
    image: Image.Image,
    pil_format: str,
    metadata: dict[str, Any] | None,
    options: ExportOptions,
) -> bytes:
    save_kwargs: dict[str, Any] = {}
    exif = None if options.remove_metadata else _exif_payload(metadata)
    if exif is not None:
        save_kwargs["exif"] = exif

    buffer = io.BytesIO()
    if pil_format == "PNG":
        image.save(buffer, format="PNG", optimize=True, **save_kwargs)
    else:
        source = image if image.mode == "RGB" else image.convert("RGB")
        quality = max(1, min(100, int(options.jpeg_quality)))
        source.save(buffer, format="JPEG", quality=quality, optimize=True, progressive=True, **save_kwargs)
    return buffer.getvalue()


def save_image(
    image: Image.Image | None,
    path: Path,
    metadata: dict[str, Any] | None,
    options: ExportOptions,
) -> Path:
    """Encode ``image`` in memory, then write it to ``path`` in one step.

    Returns the path actually written; the suffix is forced to .jpg unless the
    caller asked for PNG.
    """
    if image is None or image.width <= 0 or image.height <= 0:
        raise NoImageError()
    target, pil_format = resolve_export_path(path)
    try:
        data = encode_image(image, pil_format, metadata, options)
    except (OSError, ValueError) as exc:
        raise ExportError(f"Failed to encode image: {exc}") from exc

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    except PermissionError as exc:
        raise AuthorizationDeniedError() from exc
    except OSError as exc:
        raise ExportError(f"Failed to write {target}: {exc}") from exc
    LOGGER.info("saved %s (%d bytes, metadata %s)", target, len(data), "stripped" if options.remove_metadata else "kept")
    return target
