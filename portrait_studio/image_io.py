"""
Qt-free image I/O utilities.

Provides helpers to open uploads (including PSD), move images to and from
encoded bytes for the synthesis service, and save exports without
overwriting existing files.
"""

import io
import logging
from pathlib import Path

from PIL import Image, ImageOps
from pillow_heif import register_heif_opener
from psd_tools import PSDImage

from portrait_studio.config import (
    IMAGE_EXTENSIONS, JPEG_QUALITY_DEFAULT, JPEG_SUBSAMPLING_DEFAULT, PNG_COMPRESS_LEVEL,
)

logger = logging.getLogger(__name__)

# Allow very large images (Pillow's default limit is ~178MP)
Image.MAX_IMAGE_PIXELS = None

# Phone uploads are usually HEIC; let Pillow open them.
register_heif_opener()


def is_supported(path: Path) -> bool:
    return path.suffix.lower() in IMAGE_EXTENSIONS


def open_image(path: Path) -> Image.Image:
    """Open an upload with psd-tools (PSD) or Pillow (everything else, HEIC included).

    Camera orientation tags are applied so the pixels match what the
    photographer saw.  The image is fully loaded before returning.
    """
    ext = path.suffix.lower()
    if ext == ".psd":
        psd = PSDImage.open(str(path))
        return psd.composite()
    with Image.open(path) as img:
        img = ImageOps.exif_transpose(img)
        img.load()
        return img


def decode_image(data: bytes) -> Image.Image:
    """Decode encoded image bytes (PNG, JPEG, WEBP...) into a loaded image."""
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def encode_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, "PNG")
    return buf.getvalue()


def _flatten(img: Image.Image, background=(255, 255, 255)) -> Image.Image:
    """Drop alpha by compositing onto a solid background."""
    if img.mode not in ("RGBA", "LA", "P"):
        return img.convert("RGB")
    rgba = img.convert("RGBA")
    base = Image.new("RGB", rgba.size, background)
    base.paste(rgba, (0, 0), rgba)
    return base


def _with_extension(path: Path, ext: str, *aliases: str) -> Path:
    if path.suffix.lower() in (ext, *aliases):
        return path
    return path.with_name(path.name + ext)


def save_image(
    img: Image.Image,
    out_path: Path,
    fmt: str = "PNG",
    jpeg_quality: int = JPEG_QUALITY_DEFAULT,
    jpeg_subsampling: int = JPEG_SUBSAMPLING_DEFAULT,
) -> Path:
    """Save ``img`` at ``out_path`` without overwriting; return the path used.

    The extension for ``fmt`` is appended unless already present.  JPEG output
    is flattened onto white.
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "JPEG":
        final = unique_path(_with_extension(out_path, ".jpg", ".jpeg"))
        _flatten(img).save(
            str(final), "JPEG",
            quality=jpeg_quality,
            optimize=True,
            subsampling=jpeg_subsampling,
        )
    elif fmt == "PNG":
        final = unique_path(_with_extension(out_path, ".png"))
        img.save(str(final), "PNG", compress_level=PNG_COMPRESS_LEVEL)
    else:
        raise ValueError(f"Unsupported export format: {fmt}")
    logger.info("Saved %s (%dx%d) to %s", fmt, img.width, img.height, final)
    return final


def unique_path(out_path: Path) -> Path:
    """Return a unique path by appending -01, -02, etc. if file already exists."""
    if not out_path.exists():
        return out_path
    stem = out_path.stem
    suffix = out_path.suffix
    parent = out_path.parent
    counter = 1
    while True:
        candidate = parent / f"{stem}-{counter:02d}{suffix}"
        if not candidate.exists():
            return candidate
        counter += 1
