from __future__ import annotations

import logging
import math
from typing import Callable, Sequence

from PIL import Image, ImageDraw, ImageFilter

from faceblur.constants import (
    BLUR_STYLE_GAUSSIAN,
    BLUR_STYLE_PIXELLATE,
    GAUSSIAN_MIN_RADIUS,
    GAUSSIAN_WIDTH_RATIO,
    PIXELLATE_MIN_BLOCK,
    PIXELLATE_WIDTH_RATIO,
)
from faceblur.models import BlurSettings, BlurTarget

LOGGER = logging.getLogger(__name__)

BlurPrimitive = Callable[[Image.Image, str, float], Image.Image | None]


def blur_strength(style: str, width: float, intensity: float) -> float:
    """Filter parameter for ``style``; proportional to the image width."""
    if style == BLUR_STYLE_PIXELLATE:
        return max(PIXELLATE_MIN_BLOCK, width * intensity * PIXELLATE_WIDTH_RATIO)
    if style == BLUR_STYLE_GAUSSIAN:
        return max(GAUSSIAN_MIN_RADIUS, width * intensity * GAUSSIAN_WIDTH_RATIO)
    raise ValueError(f"unsupported blur style: {style}")


def _pixellate(image: Image.Image, block: float) -> Image.Image:
    width, height = image.size
    block_px = max(1, int(round(block)))
    small_w = max(1, math.ceil(width / block_px))
    small_h = max(1, math.ceil(height / block_px))
    small = image.resize((small_w, small_h), Image.Resampling.BOX)
    blocky = small.resize((small_w * block_px, small_h * block_px), Image.Resampling.NEAREST)
    return blocky.crop((0, 0, width, height))


def _gaussian(image: Image.Image, radius: float) -> Image.Image:
    return image.filter(ImageFilter.GaussianBlur(radius=radius))


def apply_blur(image: Image.Image, style: str, intensity: float) -> Image.Image | None:
    """Blur the whole image. Returns None when the filter cannot be applied."""
    if image.width <= 0 or image.height <= 0:
        return None
    try:
        strength = blur_strength(style, float(image.width), float(intensity))
        if style == BLUR_STYLE_PIXELLATE:
            return _pixellate(image, strength)
        return _gaussian(image, strength)
    except (ValueError, OSError, MemoryError) as exc:
        LOGGER.warning("blur filter %s failed: %s", style, exc)
        return None


def _circle_mask(size: tuple[int, int], targets: Sequence[BlurTarget], face_scale: float) -> Image.Image:
    mask = Image.new("L", size, 0)
    draw = ImageDraw.Draw(mask)
    for target in targets:
        rect = target.circle_rect(face_scale)
        draw.ellipse((rect.min_x, rect.min_y, rect.max_x, rect.max_y), fill=255)
    return mask


def render_targets(
    image: Image.Image,
    targets: Sequence[BlurTarget],
    settings: BlurSettings,
    blur: BlurPrimitive | None = None,
) -> Image.Image:
    """Composite blurred circles for every blurred target onto ``image``.

    With no targets the very same image object is returned. The input image is
    never modified; on a filter failure the original is shown unblurred.
    """
    if not targets:
        return image

    blurred_targets = [target for target in targets if target.is_blurred]
    if not blurred_targets:
        return image.copy()

    blur_fn = blur or apply_blur
    blurred = blur_fn(image, settings.style, settings.intensity)
    if blurred is None:
        LOGGER.warning("blur unavailable, showing the original image")
        return image
    if blurred.size != image.size:
        blurred = blurred.resize(image.size, Image.Resampling.BILINEAR)
    if blurred.mode != image.mode:
        blurred = blurred.convert(image.mode)

    output = image.copy()
    mask = _circle_mask(image.size, blurred_targets, settings.face_radius_scale)
    output.paste(blurred, (0, 0), mask)
    return output
