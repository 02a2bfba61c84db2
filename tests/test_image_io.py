from pathlib import Path

import pytest
from PIL import Image
from psd_tools import PSDImage

from portrait_studio.image_io import decode_image, is_supported, open_image, save_image, unique_path


def test_unique_path_appends_counter(tmp_path):
    target = tmp_path / "portrait.png"
    assert unique_path(target) == target

    target.touch()
    assert unique_path(target) == tmp_path / "portrait-01.png"

    (tmp_path / "portrait-01.png").touch()
    assert unique_path(target) == tmp_path / "portrait-02.png"


def test_is_supported():
    assert is_supported(Path("a.JPG"))
    assert is_supported(Path("b.psd"))
    assert is_supported(Path("d.HEIC"))
    assert not is_supported(Path("c.txt"))


def test_save_png_appends_extension_and_keeps_alpha(tmp_path):
    img = Image.new("RGBA", (20, 30), (255, 0, 0, 128))
    path = save_image(img, tmp_path / "portrait_J. Doe", "PNG")

    assert path.name == "portrait_J. Doe.png"
    with Image.open(path) as saved:
        assert saved.mode == "RGBA"
        assert saved.size == (20, 30)


def test_save_jpeg_flattens_onto_white(tmp_path):
    img = Image.new("RGBA", (20, 30), (0, 0, 0, 0))
    path = save_image(img, tmp_path / "out", "JPEG")

    assert path.suffix == ".jpg"
    with Image.open(path) as saved:
        assert saved.mode == "RGB"
        r, g, b = saved.getpixel((10, 15))
        assert min(r, g, b) > 245


def test_save_keeps_existing_extension(tmp_path):
    path = save_image(Image.new("RGB", (4, 4)), tmp_path / "photo.jpeg", "JPEG")
    assert path.name == "photo.jpeg"


def test_save_creates_directory_and_never_overwrites(tmp_path):
    out_dir = tmp_path / "nested" / "exports"
    first = save_image(Image.new("RGB", (4, 4)), out_dir / "portrait")
    second = save_image(Image.new("RGB", (4, 4)), out_dir / "portrait")

    assert first.exists() and second.exists()
    assert first != second


def test_save_rejects_unknown_format(tmp_path):
    with pytest.raises(ValueError):
        save_image(Image.new("RGB", (4, 4)), tmp_path / "out", "GIF")


def test_open_image_applies_exif_orientation(tmp_path):
    path = tmp_path / "rotated.jpg"
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90 CW on display
    Image.new("RGB", (100, 50), (0, 128, 0)).save(path, exif=exif)

    img = open_image(path)
    assert img.size == (50, 100)


def test_decode_image_loads_bytes(tmp_path):
    path = tmp_path / "small.png"
    Image.new("RGB", (7, 9), (1, 2, 3)).save(path)

    img = decode_image(path.read_bytes())
    assert img.size == (7, 9)
    assert img.getpixel((0, 0)) == (1, 2, 3)


def test_heic_upload_is_supported_and_decoded(tmp_path):
    path = tmp_path / "phone.heic"
    Image.new("RGB", (64, 48), (200, 40, 40)).save(path, format="HEIF", quality=95)

    assert is_supported(path)
    img = open_image(path)

    assert img.size == (64, 48)
    r, g, b = img.convert("RGB").getpixel((32, 24))
    assert r > 170 and g < 80 and b < 80


def test_psd_upload_uses_composite(tmp_path):
    path = tmp_path / "layered.psd"
    PSDImage.frompil(Image.new("RGB", (20, 10), (0, 128, 255))).save(str(path))

    img = open_image(path)

    assert img.size == (20, 10)
    assert img.convert("RGB").getpixel((5, 5)) == (0, 128, 255)
