"""
QR image rendering for record access links
"""
import base64
from io import BytesIO

import qrcode


def generate_qr_code_data_url(data, box_size=8, border=4):
    """Render data as a PNG QR code and return it as a data URL"""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format='PNG')
    img_base64 = base64.b64encode(buffer.getvalue()).decode()

    return f'data:image/png;base64,{img_base64}'
