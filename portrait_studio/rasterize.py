"""
Render a TransformState + source image into a fixed-size output raster (Qt-free).

The on-screen crop is defined in screen pixels: the image at its laid-out size,
scaled, rotated about the aperture centre and shifted by the offsets.  Output
rasters reproduce that picture with every screen length multiplied by
``out_w / aperture_w``, so the same TransformState frames identically at any
output resolution.

``placement_affine`` and ``warp`` are shared with the composite renderer,
which replays a final crop with the same centre/rotate/scale placement.
"""

import logging
import math

from PIL import Image

from portrait_studio.models import TransformState, ViewportLayout

logger = logging.getLogger(__name__)

# Shrinking by this much or more is first done with an exact box reduce so the
# bicubic resample never skips source pixels.
_REDUCE_THRESHOLD = 2

Affine = tuple[float, float, float, float, float, float]


def placement_affine(
    out_size: tuple[int, int],
    source_size: tuple[int, int],
    draw_size: tuple[float, float],
    offset: tuple[float, float],
    rotation: float,
) -> Affine:
    """Return Pillow AFFINE coefficients for drawing a source into an output.

    The source is stretched to ``draw_size``, centred on the output centre
    shifted by ``offset`` in the rotated frame, and rotated by ``rotation``
    degrees (clockwise on screen).  Output point ``(u, v)`` samples source
    point ``(a*u + b*v + c, d*u + e*v + f)``.
    """
    out_w, out_h = out_size
    src_w, src_h = source_size
    draw_w, draw_h = draw_size
    left = offset[0] - draw_w / 2
    top = offset[1] - draw_h / 2

    cx, cy = out_w / 2, out_h / 2
    theta = math.radians(rotation)
    cos_t, sin_t = math.cos(theta), math.sin(theta)
    kx = src_w / draw_w
    ky = src_h / draw_h

    # Undo the translate-to-centre and the rotation, then map the draw
    # rectangle onto the source pixel grid.
    return (
        kx * cos_t,
        kx * sin_t,
        kx * (-cos_t * cx - sin_t * cy - left),
        -ky * sin_t,
        ky * cos_t,
        ky * (sin_t * cx - cos_t * cy - top),
    )


def crop_affine(
    layout: ViewportLayout,
    transform: TransformState,
    out_size: tuple[int, int],
    source_size: tuple[int, int],
) -> Affine:
    """Affine for an interactive crop: screen lengths times ``out_w / aperture_w``."""
    draw_scale = out_size[0] / layout.aperture_w
    draw_w = layout.image_w * transform.scale * draw_scale
    draw_h = layout.image_h * transform.scale * draw_scale
    offset = (transform.offset_x * draw_scale, transform.offset_y * draw_scale)
    return placement_affine(out_size, source_size, (draw_w, draw_h), offset, transform.rotation)


def _reduce_factor(coeffs: Affine) -> int:
    a, b, _, d, e, _ = coeffs
    # Source pixels stepped per output pixel along each source axis.
    step_x = math.hypot(a, b)
    step_y = math.hypot(d, e)
    factor = int(min(step_x, step_y))
    return factor if factor >= _REDUCE_THRESHOLD else 1


def warp(source: Image.Image, out_size: tuple[int, int], coeffs: Affine) -> Image.Image:
    """Resample ``source`` through ``coeffs``; uncovered pixels are transparent."""
    src = source.convert("RGBA")
    factor = _reduce_factor(coeffs)
    if factor > 1:
        src = src.reduce(factor)
        coeffs = tuple(c / factor for c in coeffs)

    return src.transform(
        out_size,
        Image.Transform.AFFINE,
        coeffs,
        resample=Image.Resampling.BICUBIC,
        fillcolor=(0, 0, 0, 0),
    )


def render_crop(
    source: Image.Image,
    layout: ViewportLayout,
    transform: TransformState,
    out_w: int,
    out_h: int,
) -> Image.Image | None:
    """Render the framed crop as an opaque RGB image of ``out_w`` × ``out_h``.

    Areas not covered by the source (zoomed out, rotated corners) are black.
    Returns None while the layout is unsettled; the caller retries once the
    viewport has been measured.
    """
    if not layout.settled:
        logger.debug("Crop skipped: viewport layout not settled (%s)", layout)
        return None

    coeffs = crop_affine(layout, transform, (out_w, out_h), source.size)
    warped = warp(source, (out_w, out_h), coeffs)

    out = Image.new("RGB", (out_w, out_h), (0, 0, 0))
    out.paste(warped, (0, 0), warped)

    logger.debug(
        "Rendered crop %dx%d (scale=%.3f offset=(%.1f, %.1f) rotation=%.1f)",
        out_w, out_h, transform.scale, transform.offset_x, transform.offset_y,
        transform.rotation,
    )
    return out
