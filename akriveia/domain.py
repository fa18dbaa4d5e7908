"""Shared data types: hardware addresses, beacon and user state, tag readings."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from ipaddress import IPv4Address, IPv6Address
from typing import Optional, Union

IpAddress = Union[IPv4Address, IPv6Address]

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)

_OCTET = re.compile(r"[0-9a-fA-F]{2}")


class AddressParseError(ValueError):
    """Raised when text is not a valid hardware address."""


def _parse_octets(text: str, size: int, kind: str) -> bytes:
    separator = next((sep for sep in (":", "-") if sep in text), None)
    if separator is None:
        if len(text) != size * 2 or not all(_OCTET.fullmatch(text[i:i + 2]) for i in range(0, len(text), 2)):
            raise AddressParseError(f"invalid {kind}: {text!r}")
        return bytes.fromhex(text)
    parts = text.split(separator)
    if len(parts) != size or not all(_OCTET.fullmatch(part) for part in parts):
        raise AddressParseError(f"invalid {kind}: {text!r}")
    return bytes.fromhex("".join(parts))


@dataclass(frozen=True, order=True)
class MacAddress8:
    """An 8 byte (EUI-64) hardware address."""

    octets: bytes

    def __post_init__(self) -> None:
        if len(self.octets) != 8:
            raise AddressParseError("a MacAddress8 holds exactly 8 bytes")

    @staticmethod
    def parse(text: str) -> MacAddress8:
        return MacAddress8(_parse_octets(text, 8, "mac address"))

    def __str__(self) -> str:
        return self.octets.hex(":")


@dataclass(frozen=True, order=True)
class ShortAddress:
    """A 2 byte short address assigned to a tag."""

    octets: bytes

    def __post_init__(self) -> None:
        if len(self.octets) != 2:
            raise AddressParseError("a ShortAddress holds exactly 2 bytes")

    @staticmethod
    def parse(text: str) -> ShortAddress:
        return ShortAddress(_parse_octets(text, 2, "short address"))

    def __str__(self) -> str:
        return self.octets.hex(":")


class BeaconState(Enum):
    IDLE = "Idle"
    ACTIVE = "Active"
    REBOOTING = "Rebooting"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Point:
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class TagData:
    """One distance reading from a beacon to a tag."""

    beacon_mac: MacAddress8
    tag_mac: ShortAddress
    tag_distance: float
    timestamp: datetime


@dataclass
class BeaconInfo:
    """A beacon as it is stored."""

    mac_address: MacAddress8
    ip: IpAddress
    name: str = ""
    coordinates: Point = field(default_factory=Point)
    map_id: Optional[int] = None
    id: int = -1
    state: BeaconState = BeaconState.UNKNOWN
    last_active: datetime = EPOCH


@dataclass
class RealtimeBeacon:
    """The live status of a beacon."""

    mac_address: MacAddress8
    ip: IpAddress
    state: BeaconState = BeaconState.UNKNOWN
    last_active: datetime = EPOCH
    name: str = ""

    @classmethod
    def from_info(cls, info: BeaconInfo) -> RealtimeBeacon:
        return cls(
            mac_address=info.mac_address,
            ip=info.ip,
            state=info.state,
            last_active=info.last_active,
            name=info.name,
        )


@dataclass
class BeaconTOFToUser:
    """Distance from one beacon to a user's tag."""

    name: str
    location: Point
    distance_to_tag: float


@dataclass
class RealtimeUserData:
    """The live position of a tracked user."""

    addr: ShortAddress
    name: str = ""
    coordinates: Point = field(default_factory=Point)
    last_active: datetime = EPOCH
    map_id: Optional[int] = None
    beacon_tofs: list[BeaconTOFToUser] = field(default_factory=list)
    id: int = -1


@dataclass
class DiagnosticData:
    """Raw tag readings collected since the last diagnostics request."""

    tag_data: list[TagData] = field(default_factory=list)