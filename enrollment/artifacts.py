# enrollment/artifacts.py
from __future__ import annotations
import os
import re
import zipfile
from pathlib import Path
from typing import Iterable, List

from state import DeviceConfig, DeviceKeyMaterial
from logger import log

PRIVATE_KEY_PLACEHOLDER = "YOUR_PRIVATE_KEY"
ARCHIVE_NAME = "locations.zip"


def materialize(config: DeviceConfig, keys: DeviceKeyMaterial) -> str:
    """Config text for copy/download: the private key is filled in only when we hold it."""
    if keys.private_key:
        return config.config.replace(PRIVATE_KEY_PLACEHOLDER, keys.private_key)
    return config.config


def qr_config(config: DeviceConfig, keys: DeviceKeyMaterial) -> str:
    return config.config.replace(
        PRIVATE_KEY_PLACEHOLDER, keys.private_key or keys.public_key
    )


def config_filename(config: DeviceConfig) -> str:
    slug = re.sub(r"\s+", "-", config.network_name.strip().lower())
    slug = re.sub(r"[^a-z0-9._-]", "", slug) or f"location-{config.network_id}"
    return f"{slug}.conf"


def _write_private(path: Path, data: bytes) -> None:
    # configs may carry a private key
    with open(path, "wb") as f:
        f.write(data)
    os.chmod(path, 0o600)


def save_config(directory: Path, config: DeviceConfig, keys: DeviceKeyMaterial) -> Path:
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / config_filename(config)
    _write_private(path, materialize(config, keys).encode("utf-8"))
    log.info("Saved config for %s to %s", config.network_name, path)
    return path


def save_all(
    directory: Path, configs: Iterable[DeviceConfig], keys: DeviceKeyMaterial
) -> Path:
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / ARCHIVE_NAME
    names: List[str] = []
    tmp = path.with_suffix(".zip.part")
    with zipfile.ZipFile(tmp, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for config in configs:
            name = config_filename(config)
            zf.writestr(name, materialize(config, keys))
            names.append(name)
    os.chmod(tmp, 0o600)
    tmp.replace(path)
    log.info("Saved %d configs to %s: %s", len(names), path, names)
    return path
