"""Turns tag distance readings into user positions by trilateration."""

from __future__ import annotations

import copy
import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Iterable, List, Optional, Sequence

from .domain import (
    EPOCH,
    BeaconInfo,
    BeaconTOFToUser,
    MacAddress8,
    Point,
    RealtimeUserData,
    ShortAddress,
    TagData,
)

LOCATION_HISTORY_SIZE = 5

logger = logging.getLogger(__name__)

UserLookup = Callable[[ShortAddress], Optional[RealtimeUserData]]
BeaconLookup = Callable[[List[MacAddress8]], Iterable[BeaconInfo]]
UpdateCallback = Callable[[RealtimeUserData], None]


def _ieee_div(numerator: float, denominator: float) -> float:
    """Divide the way floating point hardware does, without raising."""
    if denominator:
        return numerator / denominator
    if numerator == 0 or math.isnan(numerator):
        return math.nan
    return math.copysign(math.inf, numerator) * math.copysign(1.0, denominator)


def trilaterate(beacons: Sequence[BeaconInfo], data: Sequence[TagData]) -> Point:
    """Locate a tag from the first three beacons and their matching distances."""
    if len(data) < 3:
        raise ValueError("not enough data points to trilaterate")
    if len(beacons) < 3:
        raise ValueError("not enough beacons to trilaterate")
    for beacon, reading in zip(beacons[:3], data[:3]):
        if beacon.mac_address != reading.beacon_mac:
            raise ValueError("beacons and distance readings are not in the same order")

    b1, b2, b3 = (beacon.coordinates for beacon in beacons[:3])
    d1, d2, d3 = (reading.tag_distance for reading in data[:3])

    a = -2.0 * b1.x + 2.0 * b2.x
    b = -2.0 * b1.y + 2.0 * b2.y
    c = d1 * d1 - d2 * d2 - b1.x * b1.x + b2.x * b2.x - b1.y * b1.y + b2.y * b2.y
    d = -2.0 * b2.x + 2.0 * b3.x
    e = -2.0 * b2.y + 2.0 * b3.y
    f = d2 * d2 - d3 * d3 - b2.x * b2.x + b3.x * b3.x - b2.y * b2.y + b3.y * b3.y

    x = _ieee_div(c * e - f * b, e * a - b * d)
    y = _ieee_div(c * d - a * f, b * d - a * e)
    return Point(x, y)


@dataclass
class TagHistory:
    """A user together with the recent distances each beacon reported for their tag."""

    user: RealtimeUserData
    beacon_history: Dict[MacAddress8, Deque[float]] = field(default_factory=dict)

    def append(self, tag_data: TagData) -> None:
        history = self.beacon_history.get(tag_data.beacon_mac)
        if history is None:
            self.beacon_history[tag_data.beacon_mac] = deque(
                [tag_data.tag_distance], maxlen=LOCATION_HISTORY_SIZE
            )
        else:
            history.append(tag_data.tag_distance)
        self.user.last_active = tag_data.timestamp

    def averages(self) -> List[TagData]:
        """Mean distance per beacon, in beacon address order."""
        return [
            TagData(
                beacon_mac=mac,
                tag_mac=self.user.addr,
                tag_distance=sum(history) / len(history),
                timestamp=self.user.last_active,
            )
            for mac, history in sorted(self.beacon_history.items())
        ]


class DataProcessor:
    """Keeps per-tag distance history and updates user positions."""

    def __init__(
        self,
        user_lookup: UserLookup,
        beacon_lookup: BeaconLookup,
        on_update: Optional[UpdateCallback] = None,
    ) -> None:
        self._user_lookup = user_lookup
        self._beacon_lookup = beacon_lookup
        self._on_update = on_update
        self._users: Dict[ShortAddress, TagHistory] = {}

    def reset(self) -> None:
        """Forget every tracked user and their history."""
        self._users.clear()

    def user_data(self) -> List[RealtimeUserData]:
        """Snapshots of all tracked users, in tag address order."""
        return [copy.deepcopy(self._users[addr].user) for addr in sorted(self._users)]

    def process(self, tag_data: TagData) -> Optional[RealtimeUserData]:
        """Record a reading; return the user's new state when a position was computed."""
        entry = self._users.get(tag_data.tag_mac)
        if entry is None:
            self._start_tracking(tag_data)
            return None

        entry.append(tag_data)
        if len(entry.beacon_history) < 3:
            return None
        return self._locate(tag_data.tag_mac, entry.averages())

    def _start_tracking(self, tag_data: TagData) -> None:
        try:
            user = self._user_lookup(tag_data.tag_mac)
        except Exception:
            logger.exception("user lookup failed for tag %s", tag_data.tag_mac)
            return
        if user is None:
            logger.info("tag %s does not have an associated user", tag_data.tag_mac)
            return
        self._users[tag_data.tag_mac] = TagHistory(
            user=user,
            beacon_history={
                tag_data.beacon_mac: deque([tag_data.tag_distance], maxlen=LOCATION_HISTORY_SIZE)
            },
        )

    def _locate(self, tag_mac: ShortAddress, averages: List[TagData]) -> Optional[RealtimeUserData]:
        try:
            beacons = list(self._beacon_lookup([reading.beacon_mac for reading in averages]))
        except Exception:
            logger.exception("beacon lookup failed")
            return None

        if any(beacon.map_id is None for beacon in beacons):
            # A beacon not placed on a map makes the position meaningless.
            return None
        if len(beacons) < 3:
            logger.info("beacons length is too short")
            self._users.clear()
            return None
        if len(averages) < 3:
            logger.info("averages length is too short")
            self._users.clear()
            return None

        remaining = {reading.beacon_mac: reading for reading in averages}
        sorted_data: List[TagData] = []
        sources: List[BeaconTOFToUser] = []
        for beacon in beacons:
            reading = remaining.pop(beacon.mac_address, None)
            if reading is None:
                continue
            sorted_data.append(reading)
            sources.append(
                BeaconTOFToUser(
                    name=beacon.name,
                    location=beacon.coordinates,
                    distance_to_tag=reading.tag_distance,
                )
            )

        if len(beacons) != len(sorted_data):
            logger.info("detected stale data")
            self._users.clear()
            return None

        location = trilaterate(beacons, sorted_data)
        timestamp = max((reading.timestamp for reading in sorted_data), default=EPOCH)
        timestamp = max(timestamp, EPOCH)

        entry = self._users.get(tag_mac)
        if entry is None:
            return None
        entry.user.beacon_tofs = sources
        entry.user.coordinates = location
        entry.user.last_active = timestamp
        entry.user.map_id = beacons[0].map_id

        snapshot = copy.deepcopy(entry.user)
        if self._on_update is not None:
            self._on_update(copy.deepcopy(snapshot))
        return snapshot