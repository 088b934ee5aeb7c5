from __future__ import annotations
import base64
import binascii
import ipaddress
import re
from typing import Iterable, Optional, Tuple

WG_KEY_LENGTH = 44
WG_KEY_BYTES = 32
# 43 base64 chars carrying 256 bits; the last one can only hold 4 of them
_WG_KEY_RE = re.compile(r"^[A-Za-z0-9+/]{42}[AEIMQUYcgkosw480]=$")


def validate_device_name(
    name: str, reserved: Iterable[str], current: Optional[str] = None
) -> Tuple[bool, str]:
    """Device names must be non-empty and unique for the account.

    ``current`` is the device's own name in edit mode; keeping it is allowed.
    """
    name = name.strip()
    if not name:
        return False, "Device name is required."
    taken = {n.strip() for n in reserved}
    if current is not None:
        taken.discard(current.strip())
    if name in taken:
        return False, f"Device name '{name}' is already in use."
    return True, ""


def validate_public_key(key: str) -> Tuple[bool, str]:
    key = (key or "").strip()
    if not key:
        return False, "Public key is required."
    if len(key) != WG_KEY_LENGTH:
        return False, f"Public key must be exactly {WG_KEY_LENGTH} characters, got {len(key)}."
    if not _WG_KEY_RE.match(key):
        return False, "Public key is not a valid WireGuard key."
    try:
        raw = base64.b64decode(key, validate=True)
    except (binascii.Error, ValueError):
        return False, "Public key is not valid base64."
    if len(raw) != WG_KEY_BYTES:
        return False, f"Public key must decode to {WG_KEY_BYTES} bytes."
    return True, ""


def validate_modifiable_part(part: str) -> Tuple[bool, str]:
    if not part.strip():
        return False, "Address is required."
    return True, ""


def validate_address(address: str) -> Tuple[bool, str]:
    """Syntactic check only; availability is the server's call."""
    try:
        ipaddress.ip_address(address)
    except ValueError:
        return False, f"'{address}' is not a valid IP address."
    return True, ""
