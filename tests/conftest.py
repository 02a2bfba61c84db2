"""Pytest configuration.

Qt tests run on the offscreen platform so the suite works without a display.
Image fixtures build small synthetic rasters whose quadrants have distinct
colours, which makes framing easy to assert by sampling pixels.
"""

from __future__ import annotations

import os

import pytest
from PIL import Image

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)
WHITE = (255, 255, 255)


def _quadrants(w: int, h: int) -> Image.Image:
    img = Image.new("RGB", (w, h))
    half_w, half_h = w // 2, h // 2
    img.paste(RED, (0, 0, half_w, half_h))
    img.paste(GREEN, (half_w, 0, w, half_h))
    img.paste(BLUE, (0, half_h, half_w, h))
    img.paste(WHITE, (half_w, half_h, w, h))
    return img


@pytest.fixture
def quadrant_image():
    """Factory: ``quadrant_image(w, h)`` -> red/green over blue/white image."""
    return _quadrants


@pytest.fixture
def portrait_source():
    """A 300x400 quadrant image (3:4, like the aperture)."""
    return _quadrants(300, 400)
