import io
import random
import pytest
from PIL import Image

from epubsmith.models import BuildConfig

BASE_URL = "https://learning.oreilly.com/"

def _image_bytes(fmt, color=(200, 30, 30), size=(32, 32)):
    out = io.BytesIO()
    Image.new("RGB", size, color).save(out, format=fmt)
    return out.getvalue()

@pytest.fixture
def png_bytes():
    return _image_bytes("PNG")

@pytest.fixture
def jpeg_bytes():
    return _image_bytes("JPEG", color=(20, 120, 200))

@pytest.fixture
def fast_config():
    return BuildConfig(image_base_url=BASE_URL, delay_min=0.0, delay_max=0.0,
                       fetch_timeout=5.0, show_progress=False)

@pytest.fixture
def rng():
    return random.Random(1234)
