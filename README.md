# akriveia

The core of an indoor location tracking service. Beacons measure their
distance to ID tags and report it. This package tracks the health of those
beacons, parses what they send, and turns the distances into tag positions.
It has no dependencies outside the standard library.

## Modules

- `akriveia.protocol` handles the bracketed text messages exchanged with
  beacons.
  - `encode_command(command)` turns a `BeaconCommand` into its wire text,
    such as `[ping]`, `[start]` or `[setip|192.0.2.1]`.
  - `parse_message(message, source_ip)` reads a reply and returns a
    `BeaconResponse`. It accepts `[<mac>|start_ack]`, `end_ack`, `ping_ack`,
    `reboot_ack` and `[<mac>|range_ack|<tag>|<distance>]`. A malformed message
    raises `MessageError`, whose `kind` is one of `PARSE_FORMAT`,
    `PARSE_FLOAT` or `PARSE_MAC`.
- `akriveia.domain` holds the shared data types. These are `MacAddress8`
  (8 bytes) and `ShortAddress` (2 bytes), each with a `parse` method. It also
  defines `BeaconState`, `Point`, `TagData`, `BeaconInfo`, `RealtimeBeacon`,
  `RealtimeUserData`, `BeaconTOFToUser` and `DiagnosticData`.
- `akriveia.manager.BeaconManager` keeps the state that every beacon should
  be in: idle, or active during an emergency.
  - `handle_command(ManagerCommand(...))` sends commands through every
    transport added with `add_transport`. It returns whether an emergency is
    on.
  - `handle_response` records replies.
  - `check_health` handles beacons that have not answered. It pings them
    again or resends the state. After more than four misses it asks the
    beacon to reboot. If the beacon still does not answer, it marks it as
    `UNKNOWN`.
  - `tick()` runs the periodic ping and the pending health check when they
    are due. Call it regularly.
  - `take_diagnostics()`, `beacon_data()` and `unknown_macs()` report what
    the manager has collected.
  - Tag readings of 50 metres or more are dropped. Readings below that are
    passed to the processor.
- `akriveia.processor.DataProcessor` keeps the last five distances per
  beacon for each tag.
  - You supply a `user_lookup` callable and a `beacon_lookup` callable.
    The optional `on_update` callback is called whenever a position is
    computed.
  - Once a tag has readings from three beacons, `process(tag_data)`
    averages the readings. It then locates the tag with
    `trilaterate(beacons, data)` and returns the user's updated
    `RealtimeUserData`.
- `akriveia.transport` offers two transports:
  - `BeaconUDP` is an asyncio datagram protocol. It sends commands to one
    beacon, or broadcasts them on a network. It also forwards parsed replies
    to the manager. Open it with `await udp.open()`, or use it as an
    `async with` context manager.
  - `DummyBeacons` simulates beacons that acknowledge commands. While an
    emergency is active, `generate_tag_data()` invents random readings.
- `akriveia.errors.AkError` is the service's exception. It carries an
  `AkErrorType`. `to_json()` gives its JSON form and `http_status()` gives
  the matching HTTP status.

## Installation

```
pip install .
pip install ".[test]"
```

The first command installs the package. The second also installs the test
tools.

## Example

```python
from akriveia.domain import BeaconInfo, MacAddress8
from akriveia.manager import BeaconManager, ManagerCommand, ManagerCommandKind
from akriveia.protocol import parse_message
from akriveia.transport import DummyBeacons

manager = BeaconManager()
beacon = BeaconInfo(MacAddress8.parse("00:00:00:00:00:00:00:01"), ip="192.0.2.10")
manager.add_transport(DummyBeacons(manager, [beacon]))
manager.load_beacons([beacon])

print(manager.handle_command(ManagerCommand(ManagerCommandKind.START_EMERGENCY)))  # True

response = parse_message("[00:00:00:00:00:00:00:01|ping_ack]", "192.0.2.10")
manager.handle_response(response)
```

## What it does not do

The package is a library. It has no command-line program, no HTTP server and
no database. Users and beacons come from lookup callables that you supply,
and computed positions are handed to `on_update`. Storing them, serving them
and running the timer loop that calls `BeaconManager.tick()` are up to the
application that uses the package.

## Running the tests

```
pytest
```