# enrollment/keys.py
from __future__ import annotations
import base64

from cryptography.hazmat.primitives.asymmetric import x25519
from cryptography.hazmat.primitives.serialization import (
    Encoding, NoEncryption, PrivateFormat, PublicFormat,
)

from enrollment.errors import KeyGenerationError
from state import DeviceKeyMaterial
from logger import log


class KeyPairGenerator:
    """Creates WireGuard (X25519) key pairs for new devices."""

    def generate(self) -> DeviceKeyMaterial:
        try:
            priv_obj = x25519.X25519PrivateKey.generate()
            priv_bytes = priv_obj.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
            pub_bytes = priv_obj.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        except Exception as e:
            log.error("Key pair generation failed: %s", e)
            raise KeyGenerationError(f"Unable to generate a key pair: {e}") from e

        keys = DeviceKeyMaterial(
            public_key=base64.b64encode(pub_bytes).decode("ascii"),
            private_key=base64.b64encode(priv_bytes).decode("ascii"),
        )
        log.info("Generated key pair, public key %s", keys.public_key)
        return keys
