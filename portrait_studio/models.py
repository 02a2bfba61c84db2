"""
Data models and layout-geometry utilities.

TransformState is the live pan/zoom/rotate value edited during a crop session;
CropConfig is its confirmed, immutable snapshot.  ViewportLayout captures the
measured on-screen sizes that the rasterizer needs to map screen pixels onto
output pixels.  EditBase makes the "edit the latest result, else the initial
crop" rule explicit.
"""

import math
from dataclasses import dataclass, replace
from enum import Enum

from PIL import Image

from portrait_studio.config import (
    APERTURE_HEIGHT_FRACTION, APERTURE_MAX_WIDTH_FRACTION,
    APERTURE_RATIO_H, APERTURE_RATIO_W,
    DEFAULT_ROTATION, DEFAULT_SCALE,
    HANDLE_OVERHANG, HANDLE_SIZE,
    ROTATION_MAX, ROTATION_MIN, SCALE_MAX, SCALE_MIN,
)


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(value, hi))


# =============================================================================
# Transform values
# =============================================================================
@dataclass(frozen=True)
class TransformState:
    """Live pan/zoom/rotate values, offsets in screen pixels."""
    scale: float = DEFAULT_SCALE
    offset_x: float = 0.0
    offset_y: float = 0.0
    rotation: float = DEFAULT_ROTATION

    def with_scale(self, scale: float, max_scale: float = SCALE_MAX) -> "TransformState":
        return replace(self, scale=clamp(scale, SCALE_MIN, max_scale))

    def with_offset(self, offset_x: float, offset_y: float) -> "TransformState":
        return replace(self, offset_x=offset_x, offset_y=offset_y)

    def with_rotation(self, rotation: float) -> "TransformState":
        return replace(self, rotation=clamp(rotation, ROTATION_MIN, ROTATION_MAX))

    def clamped(self) -> "TransformState":
        """Return a copy with scale and rotation forced into their ranges."""
        return TransformState(
            scale=clamp(self.scale, SCALE_MIN, SCALE_MAX),
            offset_x=self.offset_x,
            offset_y=self.offset_y,
            rotation=clamp(self.rotation, ROTATION_MIN, ROTATION_MAX),
        )


@dataclass(frozen=True)
class CropConfig:
    """Confirmed snapshot of a TransformState."""
    scale: float
    offset_x: float
    offset_y: float
    rotation: float

    @classmethod
    def from_transform(cls, transform: TransformState) -> "CropConfig":
        t = transform.clamped()
        return cls(t.scale, t.offset_x, t.offset_y, t.rotation)

    def to_transform(self) -> TransformState:
        return TransformState(self.scale, self.offset_x, self.offset_y, self.rotation)


# =============================================================================
# On-screen layout
# =============================================================================
@dataclass(frozen=True)
class ViewportLayout:
    """Measured sizes of the crop viewport, in screen pixels.

    ``image_w``/``image_h`` are the laid-out size of the source image (not its
    natural pixel size); ``aperture_w``/``aperture_h`` the 3:4 crop window,
    centred in the container.
    """
    container_w: float = 0.0
    container_h: float = 0.0
    image_w: float = 0.0
    image_h: float = 0.0
    aperture_w: float = 0.0
    aperture_h: float = 0.0

    @classmethod
    def measure(cls, container_size: tuple[float, float],
                natural_size: tuple[int, int]) -> "ViewportLayout":
        """Lay out an image of ``natural_size`` inside a container.

        The image fits the container height without upscaling and keeps its
        aspect.  The aperture is 80% of the container height, 3:4, and never
        wider than 90% of the container.
        """
        cw, ch = container_size
        nw, nh = natural_size
        if cw <= 0 or ch <= 0 or nw <= 0 or nh <= 0:
            return cls(container_w=max(cw, 0), container_h=max(ch, 0))

        image_h = min(float(nh), float(ch))
        image_w = nw * image_h / nh

        ap_h = ch * APERTURE_HEIGHT_FRACTION
        ap_w = ap_h * APERTURE_RATIO_W / APERTURE_RATIO_H
        max_w = cw * APERTURE_MAX_WIDTH_FRACTION
        if ap_w > max_w:
            ap_w = max_w
            ap_h = ap_w * APERTURE_RATIO_H / APERTURE_RATIO_W

        return cls(cw, ch, image_w, image_h, ap_w, ap_h)

    @property
    def settled(self) -> bool:
        """True once both the aperture and the image have a measurable size."""
        return self.aperture_w > 0 and self.aperture_h > 0 and self.image_w > 0 and self.image_h > 0

    def aperture_rect(self) -> tuple[float, float, float, float]:
        """Return the aperture as (left, top, width, height) in container coordinates."""
        left = (self.container_w - self.aperture_w) / 2
        top = (self.container_h - self.aperture_h) / 2
        return left, top, self.aperture_w, self.aperture_h

    def handle_center(self) -> tuple[float, float]:
        left, top, w, h = self.aperture_rect()
        inset = HANDLE_SIZE / 2 - HANDLE_OVERHANG
        return left + w - inset, top + h - inset

    def hits_handle(self, x: float, y: float) -> bool:
        if not self.settled:
            return False
        hx, hy = self.handle_center()
        return math.hypot(x - hx, y - hy) <= HANDLE_SIZE / 2


# =============================================================================
# Editing
# =============================================================================
class BackgroundOption(str, Enum):
    NONE = "none"
    SOFT_BLUE = "soft_blue"
    SOFT_PINK = "soft_pink"
    WISTERIA_PURPLE = "wisteria_purple"
    FRESH_GREEN = "fresh_green"
    WHITE_GREY = "white_grey"


class ClothingOption(str, Enum):
    NONE = "none"
    MENS_SUIT_BLACK = "mens_suit_black"
    MENS_KIMONO = "mens_kimono"
    MENS_SUIT_NAVY = "mens_suit_navy"
    WOMENS_SUIT_BLACK = "womens_suit_black"
    WOMENS_KIMONO_BLACK = "womens_kimono_black"
    WOMENS_KIMONO_COLOR = "womens_kimono_color"


@dataclass(frozen=True)
class EditBase:
    """The initial subject crop plus the latest AI-edited result, if any."""
    initial_crop: Image.Image
    current_edited: Image.Image | None = None

    @property
    def current(self) -> Image.Image:
        """Image the next edit (and the composite) starts from."""
        if self.current_edited is not None:
            return self.current_edited
        return self.initial_crop

    @property
    def is_edited(self) -> bool:
        return self.current_edited is not None

    def with_edit(self, image: Image.Image) -> "EditBase":
        return EditBase(self.initial_crop, image)

    def reset(self) -> "EditBase":
        return EditBase(self.initial_crop)
