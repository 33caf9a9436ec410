import base64
import io

import pytest
from PIL import Image

from qr_codes import qr_data_url, qr_image, qr_png_bytes


def test_qr_data_url_is_png():
    url = qr_data_url("https://fal.media/files/panda/generated.jpg")
    assert url.startswith("data:image/png;base64,")
    png = base64.b64decode(url.split(",", 1)[1])
    assert png[:8] == b"\x89PNG\r\n\x1a\n"


def test_qr_image_has_requested_size():
    img = Image.open(io.BytesIO(qr_png_bytes("hello", size=300)))
    assert img.size == (300, 300)


def test_qr_image_is_black_on_white():
    img = qr_image("https://example.com/image.jpg")
    colors = {color for _, color in img.getcolors()}
    assert colors == {(0, 0, 0), (255, 255, 255)}
    # quiet zone
    assert img.getpixel((0, 0)) == (255, 255, 255)


def test_different_urls_give_different_codes():
    assert qr_png_bytes("https://a.example/1.jpg") != qr_png_bytes("https://a.example/2.jpg")


def test_empty_text_rejected():
    with pytest.raises(ValueError):
        qr_data_url("")
