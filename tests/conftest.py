"""
Pytest configuration and fixtures
"""
import io
import os
import shutil
import sys
import tempfile

import piexif
import pytest
from PIL import Image

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)


def jpeg_bytes(size, orientation=None, color=(100, 100, 100), make=None):
    """Encode a solid JPEG, optionally carrying an EXIF orientation tag"""
    img = Image.new("RGB", size, color=color)
    zeroth = {}
    if orientation is not None:
        zeroth[piexif.ImageIFD.Orientation] = int(orientation)
    if make is not None:
        zeroth[piexif.ImageIFD.Make] = make
    params = {"quality": 90}
    if zeroth:
        params["exif"] = piexif.dump({"0th": zeroth})
    buf = io.BytesIO()
    img.save(buf, "JPEG", **params)
    return buf.getvalue()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    temp_path = tempfile.mkdtemp(prefix="wmcam_test_")
    yield temp_path
    # Cleanup after test
    if os.path.exists(temp_path):
        shutil.rmtree(temp_path)


@pytest.fixture
def sample_image():
    """Create a sample test image"""
    return Image.new("RGB", (640, 480), color=(100, 100, 100))


@pytest.fixture
def make_jpeg():
    """Factory for JPEG capture bytes"""
    return jpeg_bytes


@pytest.fixture
def landscape_jpeg_bytes():
    """A 4000x3000 sensor frame tagged 'rotate 90 CW', as a portrait-held phone delivers it"""
    return jpeg_bytes((4000, 3000), orientation=6, make=b"TestCam")
