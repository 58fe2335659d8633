"""Domain models for rider stops and their validation state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

Coordinates = tuple[float, float]  # (lat, lng)


@dataclass(frozen=True, slots=True)
class Unvalidated:
    pass


@dataclass(frozen=True, slots=True)
class Valid:
    coordinates: Coordinates
    formatted_address: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Invalid:
    reason: str


ValidationState = Union[Unvalidated, Valid, Invalid]


@dataclass(frozen=True, slots=True)
class Address:
    """Postal address of a pickup point."""

    street: str
    city: str
    state: str
    zip: str

    @property
    def full_address(self) -> str:
        return f"{self.street}, {self.city}, {self.state} {self.zip}"


@dataclass(slots=True)
class Stop:
    """Represents one rider pickup point (or the depot when it is the origin)."""

    id: str
    name: str
    address: Address
    phone: str = ""
    notes: str = ""
    category: str = ""
    rider_count: int = 1
    validation: ValidationState = field(default_factory=Unvalidated)

    @property
    def full_address(self) -> str:
        return self.address.full_address

    @property
    def coordinates(self) -> Optional[Coordinates]:
        if isinstance(self.validation, Valid):
            return self.validation.coordinates
        return None

    @property
    def formatted_address(self) -> Optional[str]:
        if isinstance(self.validation, Valid):
            return self.validation.formatted_address
        return None

    @property
    def is_valid(self) -> bool:
        return isinstance(self.validation, Valid)

    @property
    def categories(self) -> list[str]:
        return self.category.split()

    @property
    def display_address(self) -> str:
        return self.formatted_address or self.full_address
