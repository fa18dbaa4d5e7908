"""Text protocol spoken between the server and its beacons."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from ipaddress import IPv4Address, ip_address
from typing import Optional, Union

from .domain import AddressParseError, IpAddress, MacAddress8, ShortAddress, TagData

_DISTANCE_NOISE = re.compile(r"/[^$0-9]+/")
_FLOAT_TEXT = re.compile(r"[+-]?(\d+\.?\d*([eE][+-]?\d+)?|\.\d+([eE][+-]?\d+)?|inf|infinity|nan)", re.IGNORECASE)


class MessageError(ValueError):
    """A beacon message could not be understood."""

    PARSE_FORMAT = "parse_format"
    PARSE_FLOAT = "parse_float"
    PARSE_MAC = "parse_mac"

    _MESSAGES = {
        PARSE_FORMAT: "Invalid message format",
        PARSE_FLOAT: "Failed to parse float",
        PARSE_MAC: "Failed to parse mac address",
    }

    def __init__(self, kind: str) -> None:
        super().__init__(self._MESSAGES[kind])
        self.kind = kind


class ResponseKind(Enum):
    START = "start_ack"
    END = "end_ack"
    PING = "ping_ack"
    REBOOT = "reboot_ack"
    TAG_DATA = "range_ack"
    SET_IP = "setip_ack"


@dataclass(frozen=True)
class BeaconResponse:
    """A parsed reply from a beacon."""

    kind: ResponseKind
    ip: IpAddress
    mac: MacAddress8
    tag_data: Optional[TagData] = None


class CommandKind(Enum):
    START_EMERGENCY = "start"
    END_EMERGENCY = "end"
    PING = "ping"
    REBOOT = "reboot"
    SET_IP = "setip"


@dataclass(frozen=True)
class BeaconCommand:
    """A command for one beacon (``ip`` set) or all of them (``ip`` is None).

    For ``SET_IP`` the ``ip`` is the new address the beacons should report to.
    """

    kind: CommandKind
    ip: Optional[IpAddress] = None

    def __post_init__(self) -> None:
        if isinstance(self.ip, str):
            object.__setattr__(self, "ip", ip_address(self.ip))
        if self.kind is CommandKind.SET_IP and not isinstance(self.ip, IPv4Address):
            raise ValueError("SET_IP needs an IPv4 address")


def encode_command(command: BeaconCommand) -> str:
    """The wire text for a command."""
    if command.kind is CommandKind.SET_IP:
        return f"[setip|{command.ip}]"
    return f"[{command.kind.value}]"


def _parse_distance(text: str) -> float:
    stripped = _DISTANCE_NOISE.sub("", text)
    if not stripped:
        raise MessageError(MessageError.PARSE_FORMAT)
    # The beacons always terminate the distance with one trailing character.
    numeric = stripped[:-1]
    if not _FLOAT_TEXT.fullmatch(numeric):
        raise MessageError(MessageError.PARSE_FLOAT)
    return float(numeric)


_SIMPLE_ACKS = {
    kind.value: kind
    for kind in (ResponseKind.START, ResponseKind.END, ResponseKind.PING, ResponseKind.REBOOT)
}


def parse_message(message: str, source_ip: Union[str, IpAddress]) -> BeaconResponse:
    """Parse a bracketed beacon reply such as ``[<mac>|ping_ack]``."""
    ip = ip_address(source_ip) if isinstance(source_ip, str) else source_ip
    start, end = message.find("["), message.find("]")
    if start < 0 or end < 0 or end < start + 1:
        raise MessageError(MessageError.PARSE_FORMAT)

    fields = message[start + 1:end].split("|")
    if len(fields) < 2:
        raise MessageError(MessageError.PARSE_FORMAT)

    try:
        beacon_mac = MacAddress8.parse(fields[0])
    except AddressParseError:
        raise MessageError(MessageError.PARSE_MAC) from None

    command = fields[1]
    if command in _SIMPLE_ACKS:
        return BeaconResponse(_SIMPLE_ACKS[command], ip, beacon_mac)
    if command != ResponseKind.TAG_DATA.value:
        raise MessageError(MessageError.PARSE_FORMAT)

    if len(fields) < 4:
        raise MessageError(MessageError.PARSE_FORMAT)
    try:
        tag_mac = ShortAddress.parse(fields[2])
    except AddressParseError:
        raise MessageError(MessageError.PARSE_MAC) from None
    distance = _parse_distance(fields[3])

    tag_data = TagData(
        beacon_mac=beacon_mac,
        tag_mac=tag_mac,
        tag_distance=distance,
        timestamp=datetime.now(timezone.utc),
    )
    return BeaconResponse(ResponseKind.TAG_DATA, ip, beacon_mac, tag_data)