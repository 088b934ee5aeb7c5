# enrollment/delivery.py
"""Rendering of an issued enrollment for the three delivery channels.

Everything here is a pure function of the ``Enrollment`` value: the desktop
client consumes the deep link, the mobile client scans the QR payload, and
operators setting a client up by hand copy the display text.
"""
from __future__ import annotations
import base64
import binascii
import io
import json
from urllib.parse import quote

import qrcode

from state import Enrollment

DEFAULT_SCHEME = "defguard"


def deep_link(enrollment: Enrollment, scheme: str = DEFAULT_SCHEME) -> str:
    token = quote(enrollment.token, safe="")
    url = quote(enrollment.url, safe=":/")
    return f"{scheme}://addinstance?token={token}&url={url}"


def qr_payload(enrollment: Enrollment) -> str:
    envelope = json.dumps(
        {"url": enrollment.url, "token": enrollment.token}, separators=(",", ":")
    )
    return base64.b64encode(envelope.encode("utf-8")).decode("ascii")


def decode_qr_payload(payload: str) -> Enrollment:
    """Inverse of ``qr_payload``. Raises ValueError on anything malformed."""
    try:
        data = json.loads(base64.b64decode(payload, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Not an enrollment QR payload: {e}") from e
    if not isinstance(data, dict) or not {"url", "token"} <= set(data):
        raise ValueError("Enrollment QR payload must contain 'url' and 'token'")
    return Enrollment(token=str(data["token"]), url=str(data["url"]))


def display_text(enrollment: Enrollment) -> str:
    return f"URL:   {enrollment.url}\nToken: {enrollment.token}"


def render_qr(data: str) -> str:
    """Draw ``data`` as a QR code using block characters for the terminal."""
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        border=2,
    )
    qr.add_data(data)
    qr.make(fit=True)
    out = io.StringIO()
    qr.print_ascii(out=out, invert=True)
    return out.getvalue()


class DeliveryRenderer:
    """Binds the rendering functions to a configured deep-link scheme."""

    def __init__(self, scheme: str = DEFAULT_SCHEME) -> None:
        self.scheme = scheme

    def deep_link(self, enrollment: Enrollment) -> str:
        return deep_link(enrollment, self.scheme)

    def qr_payload(self, enrollment: Enrollment) -> str:
        return qr_payload(enrollment)

    def decode(self, payload: str) -> Enrollment:
        return decode_qr_payload(payload)

    def display_text(self, enrollment: Enrollment) -> str:
        return display_text(enrollment)
