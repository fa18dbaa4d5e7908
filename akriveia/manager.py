"""Keeps track of every beacon's health and drives them into the system's state.

The manager holds the state all beacons should be in: idle or in an emergency.
It broadcasts that state and pings the beacons on a regular interval. Some time
after each request it checks which beacons have not answered. It retries them,
asks them to reboot after too many misses, and finally marks them as unknown.
"""

from __future__ import annotations

import copy
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum, auto
from ipaddress import IPv4Address, ip_address
from typing import Callable, Deque, Dict, Iterable, List, Optional, Protocol, Set

from .domain import (
    BeaconInfo,
    BeaconState,
    DiagnosticData,
    MacAddress8,
    RealtimeBeacon,
    TagData,
)
from .protocol import BeaconCommand, BeaconResponse, CommandKind, ResponseKind

PING_INTERVAL = timedelta(seconds=100)
EMERGENCY_PING_INTERVAL = timedelta(seconds=10)
RESPONSE_THRESHOLD = timedelta(seconds=2)
RETRIES_THRESHOLD = 4
MAX_TAG_DISTANCE = 50.0

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
BeaconLookup = Callable[[MacAddress8], Optional[BeaconInfo]]


class Transport(Protocol):
    def send(self, command: BeaconCommand) -> None: ...


class Processor(Protocol):
    def process(self, tag_data: TagData) -> object: ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Retries:
    """Outstanding request bookkeeping for one beacon."""

    expected_response: datetime
    retries: int = 0


@dataclass
class BeaconStatus:
    realtime: RealtimeBeacon
    retries: Optional[Retries] = None


class ManagerCommandKind(Enum):
    GET_EMERGENCY = auto()
    SCAN_BEACONS = auto()
    START_EMERGENCY = auto()
    END_EMERGENCY = auto()
    PING = auto()
    REBOOT = auto()
    SET_IP = auto()


@dataclass(frozen=True)
class ManagerCommand:
    """A request to the manager; ``mac`` targets one beacon, ``ip`` is for SET_IP."""

    kind: ManagerCommandKind
    mac: Optional[MacAddress8] = None
    ip: Optional[IPv4Address] = None

    def __post_init__(self) -> None:
        if isinstance(self.ip, str):
            object.__setattr__(self, "ip", ip_address(self.ip))
        if self.kind is ManagerCommandKind.SET_IP and not isinstance(self.ip, IPv4Address):
            raise ValueError("SET_IP needs an IPv4 address")


_TARGETED = {
    ManagerCommandKind.START_EMERGENCY: CommandKind.START_EMERGENCY,
    ManagerCommandKind.END_EMERGENCY: CommandKind.END_EMERGENCY,
    ManagerCommandKind.PING: CommandKind.PING,
    ManagerCommandKind.REBOOT: CommandKind.REBOOT,
}

_RESPONSE_STATE = {
    ResponseKind.START: BeaconState.ACTIVE,
    ResponseKind.END: BeaconState.IDLE,
    ResponseKind.REBOOT: BeaconState.REBOOTING,
}


class BeaconManager:
    """Health monitor and command fan-out for all known beacons."""

    def __init__(
        self,
        processor: Optional[Processor] = None,
        beacon_lookup: Optional[BeaconLookup] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._processor = processor
        self._beacon_lookup = beacon_lookup
        self._clock = clock or _utc_now
        self._state = BeaconState.IDLE
        self._diagnostics = DiagnosticData()
        self._transports: List[Transport] = []
        self._beacons: Dict[MacAddress8, BeaconStatus] = {}
        self._unknown_macs: Set[MacAddress8] = set()
        self._pending: Deque[ManagerCommand] = deque()
        self._health_due: Optional[datetime] = None
        self._next_ping = self._clock() + PING_INTERVAL

    # -- setup -------------------------------------------------------------

    def add_transport(self, transport: Transport) -> None:
        """Attach a channel that commands are broadcast over."""
        self._transports.append(transport)

    def load_beacons(self, beacons: Iterable[BeaconInfo]) -> None:
        """Register stored beacons and ping all of them."""
        for info in beacons:
            self._beacons[info.mac_address] = BeaconStatus(RealtimeBeacon.from_info(info))
        self.handle_command(ManagerCommand(ManagerCommandKind.PING))

    # -- queries -----------------------------------------------------------

    def is_emergency(self) -> bool:
        return self._state is BeaconState.ACTIVE

    def ping_interval(self) -> timedelta:
        return EMERGENCY_PING_INTERVAL if self.is_emergency() else PING_INTERVAL

    def take_diagnostics(self) -> DiagnosticData:
        """Return the collected readings and start a fresh collection."""
        result = copy.deepcopy(self._diagnostics)
        self._diagnostics.tag_data = []
        return result

    def beacon_data(self) -> List[RealtimeBeacon]:
        """Snapshots of every known beacon, in address order."""
        return [copy.deepcopy(self._beacons[mac].realtime) for mac in sorted(self._beacons)]

    def unknown_macs(self) -> List[MacAddress8]:
        """Addresses heard from that match no stored beacon, in address order."""
        return sorted(self._unknown_macs)

    # -- commands ----------------------------------------------------------

    def handle_command(self, command: ManagerCommand) -> bool:
        """Carry out a command; return whether the system is in an emergency."""
        result = self._dispatch(command)
        self._drain()
        return result

    def _drain(self) -> None:
        while self._pending:
            self._dispatch(self._pending.popleft())

    def _dispatch(self, command: ManagerCommand) -> bool:
        kind = command.kind
        if kind is ManagerCommandKind.START_EMERGENCY:
            self._switch_state(BeaconState.ACTIVE)
        elif kind is ManagerCommandKind.END_EMERGENCY:
            self._switch_state(BeaconState.IDLE)

        if kind in _TARGETED:
            self._send(_TARGETED[kind], command.mac)
        elif kind is ManagerCommandKind.SET_IP:
            self._mass_send(BeaconCommand(CommandKind.SET_IP, command.ip))
            self._expect_all()

        if self._health_due is None:
            self._health_due = self._clock() + RESPONSE_THRESHOLD
        return self.is_emergency()

    def _switch_state(self, state: BeaconState) -> None:
        if self._state is state:
            return
        self._state = state
        self._diagnostics = DiagnosticData()
        self._next_ping = self._clock() + self.ping_interval()

    def _send(self, kind: CommandKind, mac: Optional[MacAddress8]) -> None:
        if mac is None:
            self._mass_send(BeaconCommand(kind))
            self._expect_all()
            return
        status = self._beacons.get(mac)
        if status is None:
            return
        if status.retries is None:
            status.retries = self._new_retries()
        self._mass_send(BeaconCommand(kind, status.realtime.ip))

    def _expect_all(self) -> None:
        for status in self._beacons.values():
            if status.retries is None:
                status.retries = self._new_retries()

    def _new_retries(self) -> Retries:
        return Retries(expected_response=self._clock() - RESPONSE_THRESHOLD)

    def _mass_send(self, command: BeaconCommand) -> None:
        for transport in self._transports:
            transport.send(command)

    # -- responses ---------------------------------------------------------

    def handle_response(self, response: BeaconResponse) -> None:
        """Record a reply from a beacon."""
        if response.kind is ResponseKind.TAG_DATA:
            self._handle_tag_data(response)
            return

        status = self._beacons.get(response.mac)
        if status is None:
            self._find_beacon(response.mac)
        else:
            new_state = _RESPONSE_STATE.get(response.kind)
            if new_state is not None:
                status.realtime.state = new_state
            status.realtime.last_active = self._clock()
            status.realtime.ip = response.ip
        self._drain()

    def _handle_tag_data(self, response: BeaconResponse) -> None:
        tag_data = response.tag_data
        if tag_data is None:
            return
        status = self._beacons.get(tag_data.beacon_mac)
        if status is None:
            self._unknown_macs.add(tag_data.beacon_mac)
            return
        # Any distance beyond this is garbage from the radio.
        if tag_data.tag_distance >= MAX_TAG_DISTANCE:
            return
        self._diagnostics.tag_data.append(tag_data)
        if self._processor is not None:
            try:
                self._processor.process(tag_data)
            except Exception:
                logger.exception("processing tag data failed")
        status.realtime.ip = response.ip
        status.realtime.last_active = self._clock()

    def _find_beacon(self, mac: MacAddress8) -> None:
        if self._beacon_lookup is None:
            self._unknown_macs.add(mac)
            return
        try:
            info = self._beacon_lookup(mac)
        except Exception:
            logger.exception("beacon lookup failed for %s", mac)
            self._unknown_macs.add(mac)
            return
        if info is None:
            self._unknown_macs.add(mac)
            return
        self._beacons[info.mac_address] = BeaconStatus(RealtimeBeacon.from_info(info))
        self._pending.append(ManagerCommand(ManagerCommandKind.PING, mac))

    # -- timers ------------------------------------------------------------

    def _state_command(self, mac: MacAddress8) -> ManagerCommand:
        if self._state is BeaconState.IDLE:
            return ManagerCommand(ManagerCommandKind.END_EMERGENCY, mac)
        if self._state is BeaconState.ACTIVE:
            return ManagerCommand(ManagerCommandKind.START_EMERGENCY, mac)
        raise RuntimeError("the manager must always be idle or active")

    def check_health(self) -> bool:
        """Retry beacons that have not answered; return whether another check is needed."""
        any_retries = False
        for status in self._beacons.values():
            retries = status.retries
            if retries is None:
                continue
            retries.retries += 1
            realtime = status.realtime
            clear = False
            if realtime.last_active > retries.expected_response:
                if realtime.state is self._state:
                    clear = True
                else:
                    self._pending.append(self._state_command(realtime.mac_address))
            else:
                any_retries = True
                if retries.retries > RETRIES_THRESHOLD:
                    if realtime.state is BeaconState.REBOOTING:
                        realtime.state = BeaconState.UNKNOWN
                        clear = True
                    else:
                        realtime.state = BeaconState.REBOOTING
                        retries.retries = 0
                        self._pending.append(
                            ManagerCommand(ManagerCommandKind.REBOOT, realtime.mac_address)
                        )
                elif realtime.state is self._state:
                    self._pending.append(
                        ManagerCommand(ManagerCommandKind.PING, realtime.mac_address)
                    )
                elif realtime.state is not BeaconState.REBOOTING:
                    self._pending.append(self._state_command(realtime.mac_address))
            if clear:
                status.retries = None

        self._health_due = self._clock() + RESPONSE_THRESHOLD if any_retries else None
        self._drain()
        return any_retries

    def tick(self) -> None:
        """Run whatever periodic work is due at the current time."""
        now = self._clock()
        if now >= self._next_ping:
            self._next_ping = now + self.ping_interval()
            self.handle_command(ManagerCommand(ManagerCommandKind.PING))
        if self._health_due is not None and now >= self._health_due:
            self.check_health()