"""
Application constants and configuration.

Geometry constants describe the fixed rasters the pipeline produces and the
on-screen crop aperture.  Gesture constants control how pointer, wheel and
pinch input maps onto the transform.  Environment lookups (API key, model
override, log level) are read lazily so tests can patch ``os.environ``.
"""

import os

# =============================================================================
# APP IDENTITY
# =============================================================================
APP_NAME = "portrait-studio"
APP_TITLE = "Portrait Studio"

# =============================================================================
# OUTPUT RASTERS — (width, height) in pixels
# =============================================================================
# On-screen preview and the composite used as input to the final reframe.
PREVIEW_SIZE = (800, 1066)
# Print-resolution export.
EXPORT_SIZE = (2700, 3600)
# Raster produced when the initial subject crop is confirmed.
INITIAL_CROP_SIZE = (1200, 1600)

# Reference resolution a final crop config was captured against.  Offsets are
# rescaled per axis from this size, never with a single uniform factor.
FINAL_CROP_REFERENCE_W = 800
FINAL_CROP_REFERENCE_H = 1066

# =============================================================================
# TRANSFORM LIMITS
# =============================================================================
DEFAULT_SCALE = 0.8
DEFAULT_ROTATION = 0.0

SCALE_MIN = 0.1
SCALE_MAX = 5.0          # gesture / wheel / handle path
SLIDER_SCALE_MAX = 3.0   # zoom slider path
SLIDER_SCALE_STEP = 0.01

ROTATION_MIN = -30.0
ROTATION_MAX = 30.0
ROTATION_STEP = 0.5

# Preset buttons ("show whole image" / "fill the frame")
FIT_SCALE = 0.7
FILL_SCALE = 1.1

# =============================================================================
# GESTURES
# =============================================================================
WHEEL_ZOOM_IN = 1.05
WHEEL_ZOOM_OUT = 0.95

# Scale change per pixel of averaged (dx + dy) handle travel.
RESIZE_SENSITIVITY = 0.005

# =============================================================================
# APERTURE LAYOUT — fractions of the container
# =============================================================================
APERTURE_RATIO_W = 3
APERTURE_RATIO_H = 4
APERTURE_HEIGHT_FRACTION = 0.8
APERTURE_MAX_WIDTH_FRACTION = 0.9

# Resize handle: circle diameter and how far it overhangs the aperture corner
# (screen pixels).
HANDLE_SIZE = 44
HANDLE_OVERHANG = 16

# =============================================================================
# COSMETIC FRAME
# =============================================================================
FRAME_STROKE_RGBA = (0, 0, 0, 13)     # rgba(0,0,0,0.05)
FRAME_SHADOW_RGBA = (0, 0, 0, 26)     # rgba(0,0,0,0.1)
FRAME_STROKE_WIDTH = 4
FRAME_STROKE_WIDTH_HIGH_RES = 20
FRAME_SHADOW_BLUR = 10
FRAME_SHADOW_BLUR_HIGH_RES = 60

# =============================================================================
# FILE HANDLING
# =============================================================================
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tiff", ".tif", ".webp", ".heic", ".heif", ".psd"}

# PNG compression level (0-9, 9 = maximum compression)
PNG_COMPRESS_LEVEL = 9

# JPEG export defaults
JPEG_QUALITY_DEFAULT = 95
JPEG_SUBSAMPLING_DEFAULT = 0  # 4:4:4

OUTPUT_FORMATS = ["PNG", "JPEG"]
OUTPUT_FORMAT_DEFAULT = "PNG"

EXPORT_BASENAME = "portrait"

# =============================================================================
# IMAGE SYNTHESIS SERVICE
# =============================================================================
DEFAULT_MODEL_NAME = "gemini-2.5-flash-image"
OUTPUT_ASPECT_RATIO = "3:4"
REQUEST_TIMEOUT_MS = 120_000


def api_key() -> str | None:
    """Return the Gemini API key from the environment, or None."""
    return os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")


def model_name() -> str:
    return os.environ.get("PORTRAIT_STUDIO_MODEL", DEFAULT_MODEL_NAME)


def log_level() -> str:
    return os.environ.get("PORTRAIT_STUDIO_LOG_LEVEL", "INFO").upper()
