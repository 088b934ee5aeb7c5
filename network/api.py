# network/api.py
from __future__ import annotations
import asyncio
from typing import Any, List, Optional, Sequence

import aiohttp

from enrollment.errors import ApiError, DisabledAccountError
from settings import WizardSettings
from state import (
    AddressCheck, DeviceConfig, Enrollment, ExistingDevice, Location,
    LocationIPRecommendation, RegistrationResult,
)
from logger import log

API_PREFIX = "/api/v1"
USER_AGENT = "Enrollment-Wizard/1.0"


class AdminApiClient:
    """Async client for the admin API endpoints the enrollment workflow uses.

    One ``aiohttp.ClientSession`` is shared for the client's lifetime; call
    ``close()`` (or use ``async with``) when done.
    """

    def __init__(self, settings: WizardSettings) -> None:
        self.settings = settings
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "AdminApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
            if self.settings.api_token:
                headers["Authorization"] = f"Bearer {self.settings.api_token}"
            self._session = aiohttp.ClientSession(headers=headers)
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(
        self, method: str, path: str, *, timeout: float, json: Any = None
    ) -> Any:
        url = f"{self.settings.api_url}{API_PREFIX}{path}"
        try:
            async with self._client().request(
                method, url, json=json,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = None
                if response.status >= 400:
                    message = _error_message(data, response.reason)
                    log.warning("%s %s -> HTTP %s: %s", method, url, response.status, message)
                    raise ApiError(message, status=response.status)
                log.debug("%s %s -> HTTP %s", method, url, response.status)
                return data
        except asyncio.TimeoutError as e:
            log.warning("%s %s timed out after %ss", method, url, timeout)
            raise ApiError(f"Request timed out after {timeout:g}s") from e
        except aiohttp.ClientError as e:
            log.warning("%s %s failed: %s", method, url, e)
            raise ApiError(f"Connection failed: {e}") from e

    # -- Enrollment issuance ----------------------------------------------

    async def start_client_activation(
        self, username: str, send_enrollment_notification: bool = False
    ) -> Enrollment:
        payload = {
            "username": username,
            "send_enrollment_notification": send_enrollment_notification,
        }
        try:
            data = await self._request(
                "POST", f"/user/{username}/start_desktop",
                json=payload, timeout=self.settings.issue_timeout,
            )
        except ApiError as e:
            if e.status == 403 or (e.status in (400, 401) and "disabled" in e.message.lower()):
                raise DisabledAccountError(e.message, status=e.status) from e
            raise
        try:
            return Enrollment(token=data["enrollment_token"], url=data["enrollment_url"])
        except (KeyError, TypeError) as e:
            raise ApiError(f"Malformed enrollment response: {data!r}") from e

    # -- Account data ------------------------------------------------------

    async def get_user_devices(self, username: str) -> List[str]:
        data = await self._request(
            "GET", f"/device/user/{username}", timeout=self.settings.lookup_timeout
        )
        return [d["name"] for d in data or []]

    async def get_locations(self) -> List[Location]:
        data = await self._request("GET", "/network", timeout=self.settings.lookup_timeout)
        return [
            Location(id=int(n["id"]), name=n["name"], address=_join_address(n.get("address")))
            for n in data or []
        ]

    async def get_network_device(self, device_id: int) -> ExistingDevice:
        data = await self._request(
            "GET", f"/device/network/{device_id}", timeout=self.settings.lookup_timeout
        )
        try:
            split = data.get("split_ips") or [data["split_ip"]]
            return ExistingDevice(
                id=int(data["id"]),
                name=data["name"],
                location_id=int(data["location"]["id"]),
                addresses=tuple(_parse_recommendation(s) for s in split),
                description=data.get("description") or "",
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ApiError(f"Malformed device response: {data!r}") from e

    # -- IP pool -----------------------------------------------------------

    async def available_ips(self, location_id: int) -> List[LocationIPRecommendation]:
        data = await self._request(
            "GET", f"/device/network/ip/{location_id}",
            timeout=self.settings.lookup_timeout,
        )
        return [_parse_recommendation(item) for item in _as_list(data)]

    async def validate_ips(self, location_id: int, ips: Sequence[str]) -> List[AddressCheck]:
        data = await self._request(
            "POST", f"/device/network/ip/{location_id}",
            json={"ips": list(ips)}, timeout=self.settings.lookup_timeout,
        )
        checks = [
            AddressCheck(available=bool(c["available"]), valid=bool(c["valid"]))
            for c in _as_list(data)
        ]
        # older servers answer with a single verdict for the whole list
        if len(checks) == 1 and len(ips) > 1:
            checks = checks * len(ips)
        if len(checks) != len(ips):
            raise ApiError(
                f"Address validation returned {len(checks)} results for {len(ips)} addresses"
            )
        return checks

    # -- Device registration -----------------------------------------------

    async def add_device(
        self,
        username: str,
        *,
        name: str,
        public_key: str,
        location_id: Optional[int],
        addresses: Sequence[str],
        description: Optional[str] = None,
    ) -> RegistrationResult:
        payload = {"name": name, "wireguard_pubkey": public_key}
        # no location means every location, each picking its own address
        if location_id is not None:
            payload["location_id"] = location_id
            payload["assigned_ips"] = list(addresses)
        if description:
            payload["description"] = description
        data = await self._request(
            "POST", f"/device/{username}", json=payload,
            timeout=self.settings.submit_timeout,
        )
        try:
            configs = tuple(
                DeviceConfig(
                    network_id=int(c["network_id"]),
                    network_name=c["network_name"],
                    config=c["config"],
                )
                for c in data.get("configs") or []
            )
            return RegistrationResult(device=data.get("device") or {}, configs=configs)
        except (KeyError, TypeError, AttributeError) as e:
            raise ApiError(f"Malformed registration response: {e}") from e

    async def modify_network_device(
        self,
        device_id: int,
        *,
        name: str,
        addresses: Sequence[str],
        description: Optional[str] = None,
    ) -> dict:
        payload = {
            "name": name,
            "description": description or None,
            "assigned_ips": list(addresses),
        }
        return await self._request(
            "PUT", f"/device/network/{device_id}", json=payload,
            timeout=self.settings.submit_timeout,
        ) or {}


def _error_message(data: Any, fallback: Optional[str]) -> str:
    if isinstance(data, dict):
        for key in ("msg", "message", "error"):
            if data.get(key):
                return str(data[key])
    return fallback or "Request failed"


def _as_list(data: Any) -> list:
    if data is None:
        return []
    return data if isinstance(data, list) else [data]


def _join_address(address: Any) -> str:
    if isinstance(address, list):
        return ", ".join(str(a) for a in address)
    return str(address or "")


def _parse_recommendation(item: dict) -> LocationIPRecommendation:
    try:
        return LocationIPRecommendation(
            network_part=item["network_part"],
            network_prefix=int(item["network_prefix"]),
            modifiable_part=item["modifiable_part"],
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ApiError(f"Malformed address recommendation: {item!r}") from e
