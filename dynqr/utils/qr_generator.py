import io

import qrcode
from PIL import ImageColor
from qrcode.image.styledpil import StyledPilImage
from qrcode.image.styles.colormasks import SolidFillColorMask
from qrcode.image.styles.moduledrawers import (
    CircleModuleDrawer,
    GappedSquareModuleDrawer,
    RoundedModuleDrawer,
    SquareModuleDrawer,
)
from flask import current_app

from ..schemas.dynamic_url_schema import build_scan_url

DRAWERS = {
    "square": SquareModuleDrawer,
    "dots": GappedSquareModuleDrawer,
    "circle": CircleModuleDrawer,
    "rounded": RoundedModuleDrawer,
}


def generate_styled_qr(server_url, color_dark="#000000", style="square") -> io.BytesIO:
    """
    Render the QR code for a dynamic URL as PNG bytes.

    The code encodes the scan URL, never the target, so a printed code keeps
    working after the target changes.
    """
    qr_data = build_scan_url(server_url)

    # 1. Color
    try:
        fill_rgb = ImageColor.getrgb(color_dark or "#000000")
    except ValueError:
        current_app.logger.warning(f"Invalid QR colour {color_dark!r}, using black")
        fill_rgb = (0, 0, 0)
    back_rgb = (255, 255, 255)

    # 2. Style (Drawer)
    drawer = DRAWERS.get((style or "square").lower(), SquareModuleDrawer)()

    # 3. Generate QR Object
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(qr_data)
    qr.make(fit=True)

    # 4. Create Image
    qr_img = qr.make_image(
        image_factory=StyledPilImage,
        module_drawer=drawer,
        color_mask=SolidFillColorMask(back_color=back_rgb, front_color=fill_rgb)
    ).convert("RGB")

    # 5. Save
    buffer = io.BytesIO()
    qr_img.save(buffer, format="PNG")
    buffer.seek(0)
    return buffer
