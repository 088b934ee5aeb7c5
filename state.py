# state.py
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Tuple, Union

from enrollment.errors import SessionStateError


class Step(Enum):
    START_CHOICE = "StartChoice"
    CLIENT_SETUP = "ClientSetup"
    MANUAL_SETUP = "ManualSetup"
    MANUAL_CONFIGURATION = "ManualConfiguration"


class KeyChoice(Enum):
    AUTO = "auto"
    MANUAL = "manual"


# -- Values returned by the admin API ------------------------------------------

@dataclass(frozen=True)
class Enrollment:
    token: str
    url: str


@dataclass(frozen=True)
class Location:
    id: int
    name: str
    address: str = ""


@dataclass(frozen=True)
class LocationIPRecommendation:
    network_part: str
    network_prefix: int
    modifiable_part: str

    @property
    def address(self) -> str:
        return self.network_part + self.modifiable_part

    def with_modifiable(self, part: str) -> "LocationIPRecommendation":
        return LocationIPRecommendation(self.network_part, self.network_prefix, part)


@dataclass(frozen=True)
class AddressCheck:
    available: bool
    valid: bool

    @property
    def ok(self) -> bool:
        return self.available and self.valid


@dataclass(frozen=True)
class DeviceKeyMaterial:
    public_key: str
    private_key: Optional[str] = None

    @property
    def operator_held(self) -> bool:
        return self.private_key is None

    def __repr__(self) -> str:
        # never let the private key end up in a log line
        held = "operator-held" if self.operator_held else "generated"
        return f"DeviceKeyMaterial(public_key={self.public_key!r}, {held})"


@dataclass(frozen=True)
class DeviceConfig:
    network_id: int
    network_name: str
    config: str


@dataclass(frozen=True)
class RegistrationResult:
    device: dict
    configs: Tuple[DeviceConfig, ...] = ()


@dataclass(frozen=True)
class ExistingDevice:
    id: int
    name: str
    location_id: int
    addresses: Tuple[LocationIPRecommendation, ...]
    description: str = ""


@dataclass(frozen=True)
class User:
    username: str


# -- Step states ----------------------------------------------------------------

@dataclass
class ManualForm:
    name: str = ""
    key_choice: KeyChoice = KeyChoice.AUTO
    public_key: str = ""
    location_id: Optional[int] = None
    modifiable_parts: List[str] = field(default_factory=list)
    description: str = ""


@dataclass(frozen=True)
class StartChoice:
    step = Step.START_CHOICE


@dataclass(frozen=True)
class ClientSetup:
    enrollment: Enrollment
    step = Step.CLIENT_SETUP


@dataclass
class ManualSetup:
    form: ManualForm = field(default_factory=ManualForm)
    recommendations: List[LocationIPRecommendation] = field(default_factory=list)
    # location the recommendations were issued for
    recommended_location: Optional[int] = None
    editing: Optional[ExistingDevice] = None
    step = Step.MANUAL_SETUP

    @property
    def edit_mode(self) -> bool:
        return self.editing is not None


@dataclass(frozen=True)
class ManualConfiguration:
    manual_config: DeviceKeyMaterial
    registration: RegistrationResult
    step = Step.MANUAL_CONFIGURATION


StepState = Union[StartChoice, ClientSetup, ManualSetup, ManualConfiguration]


@dataclass
class EnrollmentSession:
    """In-progress enrollment for one account. Owned by a single controller."""

    user: User
    devices: Tuple[str, ...]
    state: StepState = field(default_factory=StartChoice)
    generation: int = 0
    _enrollment: Optional[Enrollment] = field(default=None, repr=False)

    @property
    def step(self) -> Step:
        return self.state.step

    @property
    def enrollment(self) -> Optional[Enrollment]:
        return self._enrollment

    @enrollment.setter
    def enrollment(self, value: Enrollment) -> None:
        if self._enrollment is not None:
            raise SessionStateError("Enrollment token already issued for this session")
        self._enrollment = value

    def expect(self, *steps: Step) -> StepState:
        if self.state.step not in steps:
            wanted = " or ".join(s.value for s in steps)
            raise SessionStateError(
                f"Session is in {self.state.step.value}, expected {wanted}"
            )
        return self.state
