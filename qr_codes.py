import base64
import io

import qrcode
from PIL import Image


def qr_image(text, size=256, border=2):
    """Render ``text`` as a black-on-white QR code of ``size`` x ``size`` pixels."""
    if not text:
        raise ValueError("QR code text must not be empty")

    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=border,
    )
    qr.add_data(text)
    qr.make(fit=True)
    img = qr.make_image(fill_color="#000000", back_color="#FFFFFF").convert("RGB")
    return img.resize((size, size), Image.Resampling.NEAREST)


def qr_png_bytes(text, size=256, border=2):
    buf = io.BytesIO()
    qr_image(text, size=size, border=border).save(buf, format="PNG")
    return buf.getvalue()


def qr_data_url(text, size=256, border=2):
    encoded = base64.b64encode(qr_png_bytes(text, size=size, border=border)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
