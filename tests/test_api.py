# tests/test_api.py
"""
AdminApiClient against a real aiohttp server on localhost.

Each test registers only the routes it needs; requests the handlers see
are appended to ``seen`` so payloads and headers can be asserted on.
"""
from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from enrollment.errors import ApiError, DisabledAccountError
from network.api import AdminApiClient
from state import AddressCheck, LocationIPRecommendation


@pytest_asyncio.fixture
async def serve(settings):
    opened = []

    async def _serve(*routes, prefix=""):
        app = web.Application()
        app.add_routes(routes)
        server = TestServer(app)
        await server.start_server()
        opened.append(server)
        settings.api_url = str(server.make_url(prefix)).rstrip("/")
        client = AdminApiClient(settings)
        opened.append(client)
        return client

    yield _serve
    for obj in reversed(opened):
        await obj.close()


@pytest.fixture
def seen():
    return []


def _record(seen, response):
    async def handler(request):
        body = await request.json() if request.can_read_body else None
        seen.append({
            "method": request.method,
            "path": request.path,
            "headers": dict(request.headers),
            "body": body,
        })
        return response() if callable(response) else response
    return handler


# ---------------------------------------------------------------------------
# Enrollment issuance
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_start_client_activation(serve, seen):
    api = await serve(web.post(
        "/api/v1/user/{username}/start_desktop",
        _record(seen, lambda: web.json_response(
            {"enrollment_token": "tok-1", "enrollment_url": "https://enroll.example.com"}
        )),
    ))

    enrollment = await api.start_client_activation("alice")

    assert enrollment.token == "tok-1"
    assert enrollment.url == "https://enroll.example.com"
    req = seen[0]
    assert req["path"] == "/api/v1/user/alice/start_desktop"
    assert req["body"] == {"username": "alice", "send_enrollment_notification": False}
    assert req["headers"]["Authorization"] == "Bearer secret-token"
    assert req["headers"]["User-Agent"].startswith("Enrollment-Wizard/")


@pytest.mark.asyncio
@pytest.mark.parametrize("status, body", [
    (403, {"msg": "requires privileged access"}),
    (400, {"msg": "User is disabled"}),
])
async def test_disabled_account(serve, seen, status, body):
    api = await serve(web.post(
        "/api/v1/user/{username}/start_desktop",
        _record(seen, lambda: web.json_response(body, status=status)),
    ))
    with pytest.raises(DisabledAccountError) as exc:
        await api.start_client_activation("bob")
    assert exc.value.status == status


@pytest.mark.asyncio
async def test_server_error_is_plain_api_error(serve, seen):
    api = await serve(web.post(
        "/api/v1/user/{username}/start_desktop",
        _record(seen, lambda: web.json_response({"message": "database down"}, status=500)),
    ))
    with pytest.raises(ApiError) as exc:
        await api.start_client_activation("alice")
    assert not isinstance(exc.value, DisabledAccountError)
    assert exc.value.status == 500
    assert str(exc.value) == "HTTP 500: database down"


@pytest.mark.asyncio
async def test_non_json_error_body_uses_reason(serve, seen):
    api = await serve(web.post(
        "/api/v1/user/{username}/start_desktop",
        _record(seen, lambda: web.Response(status=502, text="<html>bad gateway</html>")),
    ))
    with pytest.raises(ApiError) as exc:
        await api.start_client_activation("alice")
    assert exc.value.message == "Bad Gateway"


@pytest.mark.asyncio
async def test_malformed_enrollment_response(serve, seen):
    api = await serve(web.post(
        "/api/v1/user/{username}/start_desktop",
        _record(seen, lambda: web.json_response({"token": "x"})),
    ))
    with pytest.raises(ApiError, match="Malformed"):
        await api.start_client_activation("alice")


@pytest.mark.asyncio
async def test_timeout_is_transport_error(serve, settings):
    async def slow(request):
        await asyncio.sleep(1)
        return web.json_response({})

    settings.issue_timeout = 0.1
    api = await serve(web.post("/api/v1/user/{username}/start_desktop", slow))
    with pytest.raises(ApiError) as exc:
        await api.start_client_activation("alice")
    assert exc.value.is_transport
    assert "timed out" in str(exc.value)


@pytest.mark.asyncio
async def test_connection_refused_is_transport_error(settings):
    settings.api_url = "http://127.0.0.1:1"
    async with AdminApiClient(settings) as api:
        with pytest.raises(ApiError) as exc:
            await api.get_locations()
    assert exc.value.is_transport


@pytest.mark.asyncio
async def test_api_url_with_path_prefix(serve, seen):
    api = await serve(
        web.get("/vpn/api/v1/network", _record(seen, lambda: web.json_response([]))),
        prefix="/vpn/",
    )
    assert await api.get_locations() == []
    assert seen[0]["path"] == "/vpn/api/v1/network"


# ---------------------------------------------------------------------------
# Account data
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_user_devices(serve, seen):
    api = await serve(web.get(
        "/api/v1/device/user/{username}",
        _record(seen, lambda: web.json_response([{"id": 1, "name": "phone"}, {"id": 2, "name": "desktop"}])),
    ))
    assert await api.get_user_devices("alice") == ["phone", "desktop"]


@pytest.mark.asyncio
async def test_get_locations(serve, seen):
    api = await serve(web.get("/api/v1/network", _record(seen, lambda: web.json_response([
        {"id": 1, "name": "Office", "address": ["10.1.1.1/24", "fd00::1/64"]},
        {"id": "2", "name": "Lab", "address": "10.2.0.1/16"},
    ]))))
    locations = await api.get_locations()
    assert [(l.id, l.name) for l in locations] == [(1, "Office"), (2, "Lab")]
    assert locations[0].address == "10.1.1.1/24, fd00::1/64"


@pytest.mark.asyncio
async def test_get_network_device(serve, seen):
    api = await serve(web.get("/api/v1/device/network/{id}", _record(seen, lambda: web.json_response({
        "id": 42,
        "name": "router",
        "description": None,
        "location": {"id": 1, "name": "Office"},
        "split_ips": [{"network_part": "10.1.1.", "network_prefix": 24, "modifiable_part": "5"}],
    }))))
    device = await api.get_network_device(42)
    assert device.name == "router"
    assert device.location_id == 1
    assert device.description == ""
    assert device.addresses == (LocationIPRecommendation("10.1.1.", 24, "5"),)


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"id": 42, "name": "router", "split_ips": []},
    {"id": 42, "name": "router", "location": None, "split_ip": {}},
    None,
])
async def test_get_network_device_malformed(serve, seen, body):
    api = await serve(web.get(
        "/api/v1/device/network/{id}", _record(seen, lambda: web.json_response(body))
    ))
    with pytest.raises(ApiError, match="Malformed"):
        await api.get_network_device(42)


# ---------------------------------------------------------------------------
# IP pool
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_available_ips_accepts_single_object(serve, seen):
    api = await serve(web.get("/api/v1/device/network/ip/{id}", _record(seen, lambda: web.json_response(
        {"network_part": "10.1.1.", "network_prefix": 24, "modifiable_part": "2"}
    ))))
    recs = await api.available_ips(1)
    assert [r.address for r in recs] == ["10.1.1.2"]
    assert seen[0]["path"] == "/api/v1/device/network/ip/1"


@pytest.mark.asyncio
async def test_available_ips_malformed(serve, seen):
    api = await serve(web.get("/api/v1/device/network/ip/{id}", _record(seen, lambda: web.json_response(
        [{"network_part": "10.1.1."}]
    ))))
    with pytest.raises(ApiError, match="Malformed"):
        await api.available_ips(1)


@pytest.mark.asyncio
async def test_validate_ips(serve, seen):
    api = await serve(web.post("/api/v1/device/network/ip/{id}", _record(seen, lambda: web.json_response([
        {"available": True, "valid": True},
        {"available": False, "valid": True},
    ]))))
    checks = await api.validate_ips(1, ["10.1.1.2", "10.1.1.3"])
    assert checks == [AddressCheck(True, True), AddressCheck(False, True)]
    assert seen[0]["body"] == {"ips": ["10.1.1.2", "10.1.1.3"]}


@pytest.mark.asyncio
async def test_validate_ips_single_verdict_applies_to_all(serve, seen):
    api = await serve(web.post("/api/v1/device/network/ip/{id}", _record(seen, lambda: web.json_response(
        {"available": True, "valid": True}
    ))))
    checks = await api.validate_ips(1, ["10.1.1.2", "10.1.1.3"])
    assert checks == [AddressCheck(True, True)] * 2


@pytest.mark.asyncio
async def test_validate_ips_count_mismatch(serve, seen):
    api = await serve(web.post("/api/v1/device/network/ip/{id}", _record(seen, lambda: web.json_response(
        [{"available": True, "valid": True}] * 2
    ))))
    with pytest.raises(ApiError):
        await api.validate_ips(1, ["10.1.1.2", "10.1.1.3", "10.1.1.4"])


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

REGISTERED = {
    "device": {"id": 7, "name": "laptop"},
    "configs": [
        {"network_id": 1, "network_name": "Office", "config": "[Interface]\nPrivateKey = YOUR_PRIVATE_KEY\n"},
    ],
}


@pytest.mark.asyncio
async def test_add_device_in_one_location(serve, seen):
    api = await serve(web.post(
        "/api/v1/device/{username}", _record(seen, lambda: web.json_response(REGISTERED, status=201))
    ))
    result = await api.add_device(
        "alice", name="laptop", public_key="PUB", location_id=1,
        addresses=["10.1.1.2"], description="work",
    )
    assert result.device["id"] == 7
    assert result.configs[0].network_name == "Office"
    assert seen[0]["body"] == {
        "name": "laptop",
        "wireguard_pubkey": "PUB",
        "location_id": 1,
        "assigned_ips": ["10.1.1.2"],
        "description": "work",
    }


@pytest.mark.asyncio
async def test_add_device_in_all_locations(serve, seen):
    api = await serve(web.post(
        "/api/v1/device/{username}", _record(seen, lambda: web.json_response({"device": {"id": 8}}))
    ))
    result = await api.add_device(
        "alice", name="laptop", public_key="PUB", location_id=None, addresses=[],
    )
    assert result.configs == ()
    assert seen[0]["body"] == {"name": "laptop", "wireguard_pubkey": "PUB"}


@pytest.mark.asyncio
async def test_modify_network_device(serve, seen):
    api = await serve(web.put(
        "/api/v1/device/network/{id}", _record(seen, lambda: web.json_response({"id": 42}))
    ))
    await api.modify_network_device(42, name="router", addresses=["10.1.1.9"])
    req = seen[0]
    assert req["method"] == "PUT"
    assert req["path"] == "/api/v1/device/network/42"
    assert req["body"] == {"name": "router", "description": None, "assigned_ips": ["10.1.1.9"]}
