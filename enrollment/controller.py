# enrollment/controller.py
"""The enrollment wizard state machine.

StartChoice -> ClientSetup          (issue an enrollment token)
StartChoice -> ManualSetup          (no side effect)
ManualSetup -> ManualConfiguration  (register the device)
ManualSetup -> StartChoice          (back; drops the form)
any         -> closed

Every coroutine here catches collaborator failures and returns an
``ActionResult``; the screens only ever render results. A session generation
number ties each in-flight call to the session that started it, so results
arriving after ``close()``/``reset()`` are dropped instead of applied.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, Optional

from enrollment.errors import (
    ApiError, DisabledAccountError, KeyGenerationError, SessionStateError,
)
from enrollment.keys import KeyPairGenerator
from network.addresses import AddressNegotiator, apply_modifiable_parts
from network.registration import DeviceRegistrationSubmitter
from state import (
    ClientSetup, DeviceKeyMaterial, EnrollmentSession, ExistingDevice, KeyChoice,
    ManualConfiguration, ManualForm, ManualSetup, StartChoice, Step, User,
)
from validators import validate_device_name, validate_modifiable_part, validate_public_key
from logger import log


class ErrorKind(Enum):
    NONE = "none"
    VALIDATION = "validation"
    RETRYABLE = "retryable"
    DISABLED_ACCOUNT = "disabled_account"
    BUSY = "busy"
    STALE = "stale"


@dataclass
class ActionResult:
    ok: bool
    kind: ErrorKind = ErrorKind.NONE
    message: str = ""
    field_errors: Dict[str, str] = field(default_factory=dict)
    # the action finished the session (nothing left to show)
    closed: bool = False

    @classmethod
    def success(cls, closed: bool = False) -> "ActionResult":
        return cls(ok=True, closed=closed)

    @classmethod
    def failure(
        cls, kind: ErrorKind, message: str = "", field_errors: Optional[Dict[str, str]] = None
    ) -> "ActionResult":
        return cls(ok=False, kind=kind, message=message, field_errors=field_errors or {})

    @property
    def retryable(self) -> bool:
        return self.kind in (ErrorKind.RETRYABLE, ErrorKind.BUSY)


def _stale() -> ActionResult:
    return ActionResult.failure(ErrorKind.STALE, "Result no longer applies to the open session.")


def _busy() -> ActionResult:
    return ActionResult.failure(ErrorKind.BUSY, "Another request is still in progress.")


def address_field(idx: int) -> str:
    return f"address_{idx}"


class EnrollmentWizardController:
    """Owns at most one ``EnrollmentSession`` and sequences its steps."""

    def __init__(
        self,
        api,
        *,
        key_generator: Optional[KeyPairGenerator] = None,
        negotiator: Optional[AddressNegotiator] = None,
        submitter_factory: Callable[..., DeviceRegistrationSubmitter] = DeviceRegistrationSubmitter,
    ) -> None:
        self._api = api
        self._keys = key_generator or KeyPairGenerator()
        self._negotiator = negotiator or AddressNegotiator(api)
        self._submitter_factory = submitter_factory
        self._submitter: Optional[DeviceRegistrationSubmitter] = None
        self._session: Optional[EnrollmentSession] = None
        self._generation = 0
        self._in_flight = False
        self._location_request = 0

    # -- Lifecycle -----------------------------------------------------------

    @property
    def session(self) -> Optional[EnrollmentSession]:
        return self._session

    @property
    def step(self) -> Optional[Step]:
        return self._session.step if self._session else None

    @property
    def busy(self) -> bool:
        return self._in_flight

    def open(self, user: User, devices: Iterable[str]) -> EnrollmentSession:
        if self._session is not None:
            log.info("Discarding previous session for %s", self._session.user.username)
        self._generation += 1
        self._in_flight = False
        self._session = EnrollmentSession(
            user=user, devices=tuple(devices), generation=self._generation
        )
        self._submitter = self._submitter_factory(self._api, user.username)
        log.info(
            "Opened enrollment session %d for %s (%d existing devices)",
            self._generation, user.username, len(self._session.devices),
        )
        return self._session

    def open_edit(
        self, user: User, devices: Iterable[str], device: ExistingDevice
    ) -> EnrollmentSession:
        session = self.open(user, devices)
        session.state = ManualSetup(
            form=ManualForm(
                name=device.name,
                location_id=device.location_id,
                modifiable_parts=[a.modifiable_part for a in device.addresses],
                description=device.description,
            ),
            recommendations=list(device.addresses),
            recommended_location=device.location_id,
            editing=device,
        )
        log.info("Session %d edits device %s ('%s')", session.generation, device.id, device.name)
        return session

    def close(self) -> None:
        if self._session is None:
            return
        log.info("Closed enrollment session %d at %s", self._session.generation, self._session.step.value)
        self._session = None
        self._submitter = None
        self._generation += 1
        self._in_flight = False

    def reset(self) -> EnrollmentSession:
        session = self._require()
        user, devices = session.user, session.devices
        self.close()
        return self.open(user, devices)

    def _require(self) -> EnrollmentSession:
        if self._session is None:
            raise SessionStateError("No enrollment session is open")
        return self._session

    def _alive(self, generation: int) -> bool:
        return self._session is not None and self._session.generation == generation

    def _settle(self, generation: int) -> None:
        # a newer session owns the flag once ours is gone
        if self._alive(generation):
            self._in_flight = False

    # -- StartChoice ---------------------------------------------------------

    async def start_client_activation(self) -> ActionResult:
        session = self._require()
        session.expect(Step.START_CHOICE)
        if self._in_flight:
            return _busy()
        generation = session.generation
        username = session.user.username
        self._in_flight = True
        log.info("Requesting client activation for %s", username)
        try:
            enrollment = await self._api.start_client_activation(
                username, send_enrollment_notification=False
            )
        except DisabledAccountError as e:
            if not self._alive(generation):
                return _stale()
            log.warning("Client activation refused, account %s is disabled: %s", username, e)
            return ActionResult.failure(
                ErrorKind.DISABLED_ACCOUNT,
                f"Account '{username}' is disabled. An administrator must enable it first.",
            )
        except ApiError as e:
            if not self._alive(generation):
                return _stale()
            log.error("Client activation for %s failed: %s", username, e)
            return ActionResult.failure(ErrorKind.RETRYABLE, f"Could not start activation: {e}")
        finally:
            self._settle(generation)

        if not self._alive(generation):
            log.info("Discarding enrollment issued for closed session %d", generation)
            return _stale()
        session.enrollment = enrollment
        session.state = ClientSetup(enrollment=enrollment)
        log.info("Session %d -> %s", generation, Step.CLIENT_SETUP.value)
        return ActionResult.success()

    def choose_manual(self) -> ManualSetup:
        session = self._require()
        session.expect(Step.START_CHOICE)
        if self._in_flight:
            raise SessionStateError("Client activation is in progress")
        session.state = ManualSetup()
        log.info("Session %d -> %s", session.generation, Step.MANUAL_SETUP.value)
        return session.state

    # -- ManualSetup ---------------------------------------------------------

    def back_to_start(self) -> None:
        session = self._require()
        state = session.expect(Step.MANUAL_SETUP)
        if state.edit_mode:
            raise SessionStateError("Editing an existing device has no start step")
        if self._in_flight:
            raise SessionStateError("Submission is in progress")
        session.state = StartChoice()
        log.info("Session %d -> %s (manual form discarded)", session.generation, Step.START_CHOICE.value)

    async def change_location(self, location_id: int) -> ActionResult:
        session = self._require()
        state = session.expect(Step.MANUAL_SETUP)
        if self._in_flight:
            return _busy()
        if state.edit_mode:
            # the device's reservation is authoritative in edit mode
            log.debug("Edit mode: not replacing reserved addresses of device %s", state.editing.id)
            return ActionResult.success()

        state.form.location_id = location_id
        self._location_request += 1
        ticket = self._location_request
        generation = session.generation
        try:
            recs = await self._negotiator.recommend(location_id)
        except ApiError as e:
            if not self._is_current_location(generation, ticket, state):
                return _stale()
            log.error("Address recommendation for location %s failed: %s", location_id, e)
            state.recommendations = []
            state.recommended_location = None
            state.form.modifiable_parts = []
            return ActionResult.failure(
                ErrorKind.RETRYABLE, f"Could not get an address for this location: {e}",
                {"location": str(e)},
            )

        if not self._is_current_location(generation, ticket, state) or self._in_flight:
            log.info("Dropping stale address recommendation for location %s", location_id)
            return _stale()
        state.recommendations = list(recs)
        state.recommended_location = location_id
        state.form.modifiable_parts = [r.modifiable_part for r in recs]
        return ActionResult.success()

    def clear_location(self) -> None:
        """Register the device in every location; drops any pending recommendation."""
        session = self._require()
        state = session.expect(Step.MANUAL_SETUP)
        if state.edit_mode:
            return
        self._location_request += 1
        state.form.location_id = None
        state.form.modifiable_parts = []
        state.recommendations = []
        state.recommended_location = None

    def _is_current_location(self, generation: int, ticket: int, state: ManualSetup) -> bool:
        return (
            self._alive(generation)
            and self._session.state is state
            and ticket == self._location_request
        )

    def validate_form(self, form: ManualForm) -> Dict[str, str]:
        """Local checks only; nothing here touches the network."""
        session = self._require()
        state = session.expect(Step.MANUAL_SETUP)
        errors: Dict[str, str] = {}

        current = state.editing.name if state.edit_mode else None
        ok, msg = validate_device_name(form.name, session.devices, current=current)
        if not ok:
            errors["name"] = msg

        if not state.edit_mode and form.key_choice is KeyChoice.MANUAL:
            ok, msg = validate_public_key(form.public_key)
            if not ok:
                errors["public_key"] = msg

        if form.location_id is not None:
            if not state.recommendations or state.recommended_location != form.location_id:
                errors["location"] = "No address is available for this location yet."
            elif len(form.modifiable_parts) != len(state.recommendations):
                errors["location"] = "Address fields do not match the selected location."
            else:
                for idx, part in enumerate(form.modifiable_parts):
                    ok, msg = validate_modifiable_part(part)
                    if not ok:
                        errors[address_field(idx)] = msg
        return errors

    async def submit_manual(self, form: ManualForm) -> ActionResult:
        session = self._require()
        state = session.expect(Step.MANUAL_SETUP)
        if self._in_flight:
            log.warning("Ignoring submit for session %d: already submitting", session.generation)
            return _busy()

        state.form = form
        errors = self.validate_form(form)
        if errors:
            log.info("Manual setup validation failed: %s", sorted(errors))
            return ActionResult.failure(ErrorKind.VALIDATION, "Please correct the highlighted fields.", errors)

        generation = session.generation
        self._in_flight = True
        try:
            return await self._submit(session, state, form, generation)
        finally:
            self._settle(generation)

    async def _submit(
        self, session: EnrollmentSession, state: ManualSetup, form: ManualForm, generation: int
    ) -> ActionResult:
        name = form.name.strip()
        description = form.description.strip()

        keys = None
        if not state.edit_mode:
            if form.key_choice is KeyChoice.AUTO:
                try:
                    keys = self._keys.generate()
                except KeyGenerationError as e:
                    return ActionResult.failure(ErrorKind.RETRYABLE, str(e))
            else:
                keys = DeviceKeyMaterial(public_key=form.public_key.strip())

        candidates = []
        if form.location_id is not None:
            candidates = apply_modifiable_parts(state.recommendations, form.modifiable_parts)
            reserved = state.editing.addresses if state.edit_mode else None
            try:
                addr_errors = await self._negotiator.check_before_submit(
                    form.location_id, candidates, reserved=reserved
                )
            except ApiError as e:
                if not self._alive(generation):
                    return _stale()
                log.error("Address revalidation failed: %s", e)
                return ActionResult.failure(
                    ErrorKind.RETRYABLE, f"Could not verify the addresses: {e}"
                )
            if not self._alive(generation):
                return _stale()
            if addr_errors:
                return ActionResult.failure(
                    ErrorKind.VALIDATION,
                    "Some addresses cannot be assigned.",
                    {address_field(i): code for i, code in addr_errors.items()},
                )
        addresses = [c.address for c in candidates]

        if state.edit_mode:
            return await self._submit_edit(state, name, addresses, description, generation)

        try:
            result = await self._submitter.submit(
                name, form.location_id, keys.public_key, addresses, description or None
            )
        except ApiError as e:
            if not self._alive(generation):
                return _stale()
            log.error("Registering device '%s' failed: %s", name, e)
            kind = ErrorKind.DISABLED_ACCOUNT if isinstance(e, DisabledAccountError) else ErrorKind.RETRYABLE
            return ActionResult.failure(kind, f"Device registration failed: {e}")

        if not self._alive(generation):
            log.info("Session %d closed while registering '%s'; result dropped", generation, name)
            return _stale()
        if not result.configs:
            log.info("Device '%s' has no configurations to show; closing session", name)
            self.close()
            return ActionResult.success(closed=True)
        session.state = ManualConfiguration(manual_config=keys, registration=result)
        log.info("Session %d -> %s", generation, Step.MANUAL_CONFIGURATION.value)
        return ActionResult.success()

    async def _submit_edit(
        self, state: ManualSetup, name: str, addresses, description: str, generation: int
    ) -> ActionResult:
        try:
            await self._submitter.modify(state.editing.id, name, addresses, description or None)
        except ApiError as e:
            if not self._alive(generation):
                return _stale()
            log.error("Updating device %s failed: %s", state.editing.id, e)
            return ActionResult.failure(ErrorKind.RETRYABLE, f"Device update failed: {e}")
        if not self._alive(generation):
            return _stale()
        self.close()
        return ActionResult.success(closed=True)
