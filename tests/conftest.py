"""Shared fixtures for photo_datestamp tests."""

from datetime import datetime

import piexif
import pytest
from PIL import Image, ImageFont

from photo_datestamp.core import FontFace

RECENT = datetime(2020, 5, 1, 10, 30, 0)


def exif_bytes(timestamp=None, orientation=None):
    zeroth = {}
    exif = {}
    if orientation is not None:
        zeroth[piexif.ImageIFD.Orientation] = orientation
    if timestamp is not None:
        exif[piexif.ExifIFD.DateTimeOriginal] = timestamp.strftime("%Y:%m:%d %H:%M:%S").encode()
    return piexif.dump({"0th": zeroth, "Exif": exif})


@pytest.fixture
def make_jpeg(tmp_path):
    """Factory writing a JPEG with optional EXIF into tmp_path."""

    def _make(name="photo.jpg", size=(400, 300), timestamp=RECENT, orientation=None,
              color=(30, 60, 90), image=None):
        path = tmp_path / name
        if image is None:
            image = Image.new("RGB", size, color)
        kwargs = {}
        if timestamp is not None or orientation is not None:
            kwargs["exif"] = exif_bytes(timestamp, orientation)
        image.save(path, "JPEG", **kwargs)
        return path

    return _make


@pytest.fixture
def font_file(tmp_path):
    """Pillow's bundled default TrueType font written out as an asset file."""
    path = tmp_path / "fonts" / "stamp.ttf"
    path.parent.mkdir()
    path.write_bytes(ImageFont.load_default(10).font_bytes)
    return path


@pytest.fixture
def font_face(font_file):
    face = FontFace.load(font_file)
    assert face is not None
    return face
