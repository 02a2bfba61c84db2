"""
Final portrait compositing (Qt-free).

The base image (the initial subject crop or its latest AI edit) is already
3:4-framed, so it is stretched full-bleed into the output size.  When a final
reframe crop exists it is replayed on top with the same centre/rotate/scale
placement as the interactive crop.  A faint frame is composited last.
"""

import logging

from PIL import Image, ImageDraw, ImageFilter

from portrait_studio.config import (
    FINAL_CROP_REFERENCE_H, FINAL_CROP_REFERENCE_W,
    FRAME_SHADOW_BLUR, FRAME_SHADOW_BLUR_HIGH_RES, FRAME_SHADOW_RGBA,
    FRAME_STROKE_RGBA, FRAME_STROKE_WIDTH, FRAME_STROKE_WIDTH_HIGH_RES,
)
from portrait_studio.models import CropConfig
from portrait_studio.rasterize import placement_affine, warp

logger = logging.getLogger(__name__)


def final_crop_offsets(config: CropConfig, out_w: int, out_h: int) -> tuple[float, float]:
    """Scale a final crop's offsets from the preview it was captured on.

    Each axis is scaled by its own ratio (``out_w / 800`` and ``out_h / 1066``);
    the preview is not exactly 3:4, so a single factor would drift vertically.
    """
    return (
        config.offset_x * (out_w / FINAL_CROP_REFERENCE_W),
        config.offset_y * (out_h / FINAL_CROP_REFERENCE_H),
    )


def _frame_overlay(size: tuple[int, int], high_res: bool) -> Image.Image:
    """Thin translucent border with a soft shadow, as an RGBA layer."""
    w, h = size
    stroke_w = FRAME_STROKE_WIDTH_HIGH_RES if high_res else FRAME_STROKE_WIDTH
    blur = FRAME_SHADOW_BLUR_HIGH_RES if high_res else FRAME_SHADOW_BLUR
    # The stroke is centred on the image edge; only the inner half is visible.
    inner = max(1, stroke_w // 2)
    box = [0, 0, w - 1, h - 1]

    shadow = Image.new("RGBA", size, (0, 0, 0, 0))
    ImageDraw.Draw(shadow).rectangle(box, outline=FRAME_SHADOW_RGBA, width=inner)
    shadow = shadow.filter(ImageFilter.GaussianBlur(blur / 2))

    stroke = Image.new("RGBA", size, (0, 0, 0, 0))
    ImageDraw.Draw(stroke).rectangle(box, outline=FRAME_STROKE_RGBA, width=inner)
    return Image.alpha_composite(shadow, stroke)


def render_composite(
    base: Image.Image,
    out_w: int,
    out_h: int,
    final_crop: CropConfig | None = None,
    high_res: bool = False,
) -> Image.Image:
    """Composite ``base`` into an RGBA image of ``out_w`` × ``out_h``.

    Without ``final_crop`` the stretched base is used as is.  With it, areas
    the reframed image no longer covers are left transparent.
    """
    buffer = base.convert("RGBA").resize((out_w, out_h), Image.Resampling.LANCZOS)

    if final_crop is not None:
        offset = final_crop_offsets(final_crop, out_w, out_h)
        draw_size = (out_w * final_crop.scale, out_h * final_crop.scale)
        coeffs = placement_affine((out_w, out_h), (out_w, out_h), draw_size, offset, final_crop.rotation)
        canvas = warp(buffer, (out_w, out_h), coeffs)
    else:
        canvas = buffer

    result = Image.alpha_composite(canvas, _frame_overlay((out_w, out_h), high_res))
    logger.debug(
        "Rendered composite %dx%d (final crop: %s, high res: %s)",
        out_w, out_h, final_crop is not None, high_res,
    )
    return result
