# network/addresses.py
from __future__ import annotations
from typing import Dict, List, Optional, Sequence

from state import AddressCheck, LocationIPRecommendation
from validators import validate_address
from logger import log

RESERVED_IP = "reservedIp"
INVALID_IP = "invalidIp"

ERROR_MESSAGES = {
    RESERVED_IP: "Address is already reserved in this location.",
    INVALID_IP: "Address is not valid for this location.",
}


class AddressNegotiator:
    """Asks the server-owned IP pool for addresses and checks operator edits.

    Nothing here mutates the pool: ``recommend`` and ``validate`` are reads,
    the reservation itself happens when the device is registered.
    """

    def __init__(self, api) -> None:
        self._api = api

    async def recommend(self, location_id: int) -> List[LocationIPRecommendation]:
        recs = await self._api.available_ips(location_id)
        log.info(
            "Recommended addresses for location %s: %s",
            location_id, [r.address for r in recs],
        )
        return recs

    async def validate(self, location_id: int, addresses: Sequence[str]) -> List[AddressCheck]:
        if not addresses:
            return []
        checks = await self._api.validate_ips(location_id, list(addresses))
        log.info(
            "Validated %d addresses for location %s: %s",
            len(addresses), location_id,
            ["ok" if c.ok else ("invalid" if not c.valid else "reserved") for c in checks],
        )
        return checks

    async def check_before_submit(
        self,
        location_id: int,
        candidates: Sequence[LocationIPRecommendation],
        reserved: Optional[Sequence[LocationIPRecommendation]] = None,
    ) -> Dict[int, str]:
        """Revalidate the final addresses; return field errors keyed by index.

        ``reserved`` holds the device's own current reservation in edit mode;
        an address equal to the one at the same index is skipped because the
        device itself holds it. Transport failures propagate as ``ApiError``
        so the caller blocks submission.
        """
        errors: Dict[int, str] = {}
        to_check: List[int] = []
        for idx, cand in enumerate(candidates):
            ok, _ = validate_address(cand.address)
            if not ok:
                errors[idx] = INVALID_IP
            elif _unchanged(idx, cand, reserved):
                log.debug("Address %s is the device's own reservation, skipping", cand.address)
            else:
                to_check.append(idx)

        if to_check:
            checks = await self.validate(
                location_id, [candidates[i].address for i in to_check]
            )
            for idx, check in zip(to_check, checks):
                if not check.valid:
                    errors[idx] = INVALID_IP
                elif not check.available:
                    errors[idx] = RESERVED_IP
        if errors:
            log.warning("Address revalidation failed for location %s: %s", location_id, errors)
        return errors


def _unchanged(
    idx: int,
    cand: LocationIPRecommendation,
    reserved: Optional[Sequence[LocationIPRecommendation]],
) -> bool:
    if not reserved or idx >= len(reserved):
        return False
    return reserved[idx].address == cand.address


def apply_modifiable_parts(
    recommendations: Sequence[LocationIPRecommendation], parts: Sequence[str]
) -> List[LocationIPRecommendation]:
    """Overlay operator-edited host parts on the recommended network parts."""
    if len(parts) != len(recommendations):
        raise ValueError(
            f"Expected {len(recommendations)} address fields, got {len(parts)}"
        )
    return [rec.with_modifiable(part.strip()) for rec, part in zip(recommendations, parts)]
