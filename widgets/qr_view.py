from __future__ import annotations
from textual.widgets import Static

from qrcode.exceptions import DataOverflowError

from enrollment.delivery import render_qr
from logger import log


class QRView(Static):
    """Terminal rendering of a QR code for mobile clients to scan."""

    DEFAULT_CSS = """
    QRView {
        width: auto;
        height: auto;
        background: white;
        color: black;
        padding: 0 1;
    }
    """

    def __init__(self, data: str = "", **kwargs) -> None:
        super().__init__("", markup=False, **kwargs)
        self.data = data
        if data:
            self.show(data)

    def show(self, data: str) -> None:
        self.data = data
        try:
            self.update(render_qr(data))
        except DataOverflowError as e:
            log.warning("Cannot render QR code: %s", e)
            self.update("(QR code unavailable)")
