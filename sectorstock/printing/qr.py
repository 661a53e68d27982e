"""QR images for the public signing URL.

The encoder prefers an inline PNG data URI produced locally with ReportLab's
QR widget and the ``rl_renderPM`` raster backend. Without that backend it falls back
to a remote QR service URL for the same payload and size; callers treat both
as an image reference.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from urllib.parse import urlencode

from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QrImage:
    src: str
    size: int

    @property
    def is_inline(self) -> bool:
        return self.src.startswith("data:")

    def inline_bytes(self) -> bytes:
        if not self.is_inline:
            raise ValueError("QR image is not inline.")
        return base64.b64decode(self.src.split(",", 1)[1])


def _qr_drawing(payload: str, size: int) -> Drawing:
    widget = QrCodeWidget(payload, barLevel="L")
    x1, y1, x2, y2 = widget.getBounds()
    width, height = x2 - x1, y2 - y1
    drawing = Drawing(size, size, transform=[size / width, 0, 0, size / height, 0, 0])
    drawing.add(widget)
    return drawing


def render_png(payload: str, size: int) -> bytes | None:
    """Return PNG bytes, or ``None`` when no renderPM backend is available."""

    try:
        from reportlab.graphics import renderPM
    except ImportError:
        return None

    try:
        return renderPM.drawToString(_qr_drawing(payload, size), fmt="PNG", backend="_renderPM")
    except (renderPM.RenderPMError, ImportError):
        logger.info("renderPM backend unavailable; QR codes use the remote service")
        return None


class QrEncoder:
    def __init__(
        self,
        *,
        mode: str = "auto",
        remote_endpoint: str = "https://quickchart.io/qr",
    ):
        self.mode = mode
        self.remote_endpoint = remote_endpoint

    def remote_url(self, payload: str, size: int) -> str:
        query = urlencode({"text": payload, "size": f"{size}x{size}", "light": "ffffff"})
        return f"{self.remote_endpoint}?{query}"

    def encode(self, payload: str, size: int = 180) -> QrImage | None:
        if not payload:
            return None

        if self.mode != "remote":
            png = render_png(payload, size)
            if png is not None:
                encoded = base64.b64encode(png).decode("ascii")
                return QrImage(src=f"data:image/png;base64,{encoded}", size=size)
            if self.mode == "inline":
                logger.warning("Inline QR rendering requested but renderPM is unavailable")

        return QrImage(src=self.remote_url(payload, size), size=size)
