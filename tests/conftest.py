# tests/conftest.py
import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from unittest.mock import AsyncMock, MagicMock

import pytest
from settings import WizardSettings
from state import (
    AddressCheck, DeviceConfig, Enrollment, ExistingDevice, Location,
    LocationIPRecommendation, RegistrationResult, User,
)

PEER_KEY = "xTIBA5rboUvnH4htodjb6e697QjLERt1NAB4mZqp8Dg="

CONFIG_TEXT = (
    "[Interface]\n"
    "PrivateKey = YOUR_PRIVATE_KEY\n"
    "Address = 10.1.1.2\n"
    "\n"
    "[Peer]\n"
    f"PublicKey = {PEER_KEY}\n"
    "AllowedIPs = 10.1.1.0/24\n"
    "Endpoint = vpn.example.com:51820\n"
)


@pytest.fixture
def settings(tmp_path):
    return WizardSettings(
        api_url="http://defguard.test/",
        api_token="secret-token",
        username="alice",
        download_dir=tmp_path,
    )


@pytest.fixture
def user():
    return User(username="alice")


@pytest.fixture
def enrollment():
    return Enrollment(token="tok-123", url="https://enroll.example.com")


@pytest.fixture
def locations():
    return [
        Location(id=1, name="Office", address="10.1.1.0/24"),
        Location(id=2, name="Lab Network", address="10.2.0.0/16"),
    ]


@pytest.fixture
def registration():
    return RegistrationResult(
        device={"id": 7, "name": "laptop"},
        configs=(
            DeviceConfig(network_id=1, network_name="Office", config=CONFIG_TEXT),
            DeviceConfig(network_id=2, network_name="Lab Network",
                         config=CONFIG_TEXT.replace("10.1.1.2", "10.2.0.9")),
        ),
    )


@pytest.fixture
def existing_device():
    return ExistingDevice(
        id=42,
        name="router",
        location_id=1,
        addresses=(LocationIPRecommendation("10.1.1.", 24, "5"),),
        description="rack 3",
    )


def _recommend(location_id):
    third = {1: "1.", 2: "0."}.get(location_id, "9.")
    return [LocationIPRecommendation(f"10.{location_id}.{third}", 24, "2")]


@pytest.fixture
def api(enrollment, locations, registration, existing_device):
    """An AdminApiClient stand-in: every endpoint succeeds by default."""
    api = MagicMock()
    api.start_client_activation = AsyncMock(return_value=enrollment)
    api.get_user_devices = AsyncMock(return_value=["phone", "desktop"])
    api.get_locations = AsyncMock(return_value=locations)
    api.get_network_device = AsyncMock(return_value=existing_device)
    api.available_ips = AsyncMock(side_effect=_recommend)
    api.validate_ips = AsyncMock(
        side_effect=lambda location_id, ips: [AddressCheck(available=True, valid=True) for _ in ips]
    )
    api.add_device = AsyncMock(return_value=registration)
    api.modify_network_device = AsyncMock(return_value={"id": 42})
    api.close = AsyncMock()
    return api
