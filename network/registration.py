# network/registration.py
from __future__ import annotations
from typing import Optional, Sequence

from state import RegistrationResult
from logger import log


class DeviceRegistrationSubmitter:
    """Creates (or updates) the device record server-side.

    Each call is exactly one request. Failures are never retried here: a
    request that timed out may still have created the device, and a blind
    retry would create a duplicate.
    """

    def __init__(self, api, username: str) -> None:
        self._api = api
        self.username = username

    async def submit(
        self,
        name: str,
        location_id: Optional[int],
        public_key: str,
        addresses: Sequence[str],
        description: Optional[str] = None,
    ) -> RegistrationResult:
        log.info(
            "Registering device '%s' for %s in location %s with %s",
            name, self.username, location_id, list(addresses),
        )
        result = await self._api.add_device(
            self.username,
            name=name,
            public_key=public_key,
            location_id=location_id,
            addresses=list(addresses),
            description=description or None,
        )
        log.info(
            "Device '%s' registered, %d configuration(s) returned",
            name, len(result.configs),
        )
        return result

    async def modify(
        self,
        device_id: int,
        name: str,
        addresses: Sequence[str],
        description: Optional[str] = None,
    ) -> dict:
        log.info("Updating device %s: name='%s' addresses=%s", device_id, name, list(addresses))
        return await self._api.modify_network_device(
            device_id, name=name, addresses=list(addresses), description=description,
        )
