"""Channels that carry commands to beacons and hand their replies to the manager."""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timedelta, timezone
from ipaddress import IPv4Network, ip_address, ip_network
from typing import Iterable, List, Optional, Protocol, Tuple, Union

from .domain import BeaconInfo, IpAddress, RealtimeUserData, TagData
from .protocol import (
    BeaconCommand,
    BeaconResponse,
    CommandKind,
    MessageError,
    ResponseKind,
    encode_command,
    parse_message,
)

MESSAGE_INTERVAL = timedelta(seconds=1)
MIN_DISTANCE = 1.0
MAX_DISTANCE = 4.0
REBOOT_AWAKE_CHANCE = 0.05
REBOOT_CHANCE = 0.0

logger = logging.getLogger(__name__)

Destination = Tuple[str, int]


class ResponseSink(Protocol):
    def handle_response(self, response: BeaconResponse) -> object: ...


class BeaconUDP(asyncio.DatagramProtocol):
    """Talks to the beacons of one network over UDP broadcasts and unicasts."""

    def __init__(
        self,
        manager: ResponseSink,
        network: Union[str, IPv4Network],
        port: int,
    ) -> None:
        self.manager = manager
        self.network = ip_network(network, strict=False) if isinstance(network, str) else network
        self.port = port
        self._transport: Optional[asyncio.DatagramTransport] = None

    def build_request(self, command: BeaconCommand) -> Tuple[bytes, Destination]:
        """The datagram for a command and where it should be sent."""
        payload = encode_command(command).encode()
        if command.kind is not CommandKind.SET_IP and command.ip is not None:
            return payload, (str(command.ip), self.port)
        return payload, (str(self.network.broadcast_address), self.port)

    # -- asyncio.DatagramProtocol -------------------------------------------

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport  # type: ignore[assignment]

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._transport = None

    def error_received(self, exc: Exception) -> None:
        logger.error("beacon udp encountered an error: %s", exc)
        self.close()

    def datagram_received(self, data: bytes, addr: Tuple) -> None:
        """Parse a reply and forward it to the manager."""
        text = data.decode("utf-8", errors="replace")
        try:
            response = parse_message(text, ip_address(addr[0]))
        except (MessageError, ValueError) as exc:
            logger.warning("failed to parse message from udp beacon: %s, %r", exc, text)
            return
        self.manager.handle_response(response)

    # -- lifecycle -----------------------------------------------------------

    def send(self, command: BeaconCommand) -> None:
        """Send a command; the socket must be open."""
        if self._transport is None:
            raise RuntimeError("the beacon socket is not open")
        payload, destination = self.build_request(command)
        self._transport.sendto(payload, destination)

    async def open(self) -> None:
        """Bind the socket on all interfaces with broadcasting enabled."""
        if self._transport is not None:
            return
        loop = asyncio.get_running_loop()
        await loop.create_datagram_endpoint(
            lambda: self,
            local_addr=("0.0.0.0", self.port),
            allow_broadcast=True,
        )

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None

    @property
    def is_open(self) -> bool:
        return self._transport is not None

    async def __aenter__(self) -> BeaconUDP:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()


_REPLY_KIND = {
    CommandKind.START_EMERGENCY: ResponseKind.START,
    CommandKind.END_EMERGENCY: ResponseKind.END,
    CommandKind.PING: ResponseKind.PING,
    CommandKind.REBOOT: ResponseKind.REBOOT,
    CommandKind.SET_IP: ResponseKind.SET_IP,
}


class DummyBeacons:
    """Simulated beacons that acknowledge commands and invent tag readings.

    While an emergency is active, the owner is expected to call
    :meth:`generate_tag_data` every :data:`MESSAGE_INTERVAL`.
    """

    def __init__(
        self,
        manager: ResponseSink,
        beacons: Iterable[BeaconInfo],
        users: Iterable[RealtimeUserData] = (),
        rng: Optional[random.Random] = None,
    ) -> None:
        self.manager = manager
        self.beacons: List[BeaconInfo] = list(beacons)
        self.users: List[RealtimeUserData] = list(users)
        self.rng = rng or random.Random()
        self.rebooting_ip: Optional[IpAddress] = None
        self.active = False

    def send(self, command: BeaconCommand) -> None:
        """Act on a command as a set of beacons would."""
        if command.kind is CommandKind.START_EMERGENCY:
            self.active = True
        elif command.kind is CommandKind.END_EMERGENCY:
            self.active = False
        target = None if command.kind is CommandKind.SET_IP else command.ip
        self._reply(target, _REPLY_KIND[command.kind])

    def _reply(self, target: Optional[IpAddress], kind: ResponseKind) -> None:
        if target == self.rebooting_ip and self.rng.random() < REBOOT_AWAKE_CHANCE:
            self.rebooting_ip = None

        if target is None:
            beacons = list(self.beacons)
        else:
            beacons = [b for b in self.beacons if b.ip == target][:1]

        for beacon in beacons:
            if beacon.ip != self.rebooting_ip:
                self.manager.handle_response(BeaconResponse(kind, beacon.ip, beacon.mac_address))

    def generate_tag_data(self) -> List[TagData]:
        """Send one random reading per responsive beacon; return what was sent."""
        if not self.active or not self.users:
            return []
        user = self.rng.choice(self.users)
        now = datetime.now(timezone.utc)
        sent: List[TagData] = []
        for beacon in self.beacons:
            if self.rebooting_ip is not None:
                if self.rebooting_ip == beacon.ip:
                    # pretend to be unresponsive while "rebooting"
                    continue
            elif self.rng.random() < REBOOT_CHANCE:
                self.rebooting_ip = beacon.ip
                continue

            tag_data = TagData(
                beacon_mac=beacon.mac_address,
                tag_mac=user.addr,
                tag_distance=self.rng.uniform(MIN_DISTANCE, MAX_DISTANCE),
                timestamp=now,
            )
            self.manager.handle_response(
                BeaconResponse(ResponseKind.TAG_DATA, beacon.ip, beacon.mac_address, tag_data)
            )
            sent.append(tag_data)
        return sent