# tests/test_artifacts.py
import stat
import zipfile

from enrollment.artifacts import (
    ARCHIVE_NAME, PRIVATE_KEY_PLACEHOLDER, config_filename, materialize,
    qr_config, save_all, save_config,
)
from state import DeviceConfig, DeviceKeyMaterial

GENERATED = DeviceKeyMaterial(public_key="PUB" * 14 + "AB=", private_key="PRIV-SECRET")
OPERATOR = DeviceKeyMaterial(public_key="PUB" * 14 + "AB=")


def test_materialize_inserts_known_private_key(registration):
    text = materialize(registration.configs[0], GENERATED)
    assert "PrivateKey = PRIV-SECRET" in text
    assert PRIVATE_KEY_PLACEHOLDER not in text


def test_materialize_keeps_placeholder_for_operator_key(registration):
    text = materialize(registration.configs[0], OPERATOR)
    assert f"PrivateKey = {PRIVATE_KEY_PLACEHOLDER}" in text


def test_qr_config_falls_back_to_public_key(registration):
    text = qr_config(registration.configs[0], OPERATOR)
    assert f"PrivateKey = {OPERATOR.public_key}" in text


def test_config_filename():
    assert config_filename(DeviceConfig(2, "Lab Network", "")) == "lab-network.conf"
    assert config_filename(DeviceConfig(3, "  Büro / HQ ", "")) == "bro--hq.conf"
    assert config_filename(DeviceConfig(4, "???", "")) == "location-4.conf"


def test_save_config_is_private(tmp_path, registration):
    path = save_config(tmp_path / "out", registration.configs[0], GENERATED)
    assert path == tmp_path / "out" / "office.conf"
    assert "PRIV-SECRET" in path.read_text()
    assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_save_all_writes_zip(tmp_path, registration):
    path = save_all(tmp_path, registration.configs, GENERATED)
    assert path.name == ARCHIVE_NAME
    with zipfile.ZipFile(path) as zf:
        assert sorted(zf.namelist()) == ["lab-network.conf", "office.conf"]
        assert "10.2.0.9" in zf.read("lab-network.conf").decode()
    assert not list(tmp_path.glob("*.part"))
