from datetime import datetime, timezone
from ipaddress import ip_address

import pytest

from akriveia.domain import MacAddress8, ShortAddress
from akriveia.protocol import (
    BeaconCommand,
    BeaconResponse,
    CommandKind,
    MessageError,
    ResponseKind,
    encode_command,
    parse_message,
)

MAC = "01:02:03:04:05:06:07:08"
SOURCE = "10.0.0.5"


@pytest.mark.parametrize(
    "command, kind",
    [
        ("start_ack", ResponseKind.START),
        ("end_ack", ResponseKind.END),
        ("ping_ack", ResponseKind.PING),
        ("reboot_ack", ResponseKind.REBOOT),
    ],
)
def test_simple_acks(command, kind):
    response = parse_message(f"noise[{MAC}|{command}]\n", SOURCE)
    assert response == BeaconResponse(kind, ip_address(SOURCE), MacAddress8.parse(MAC))


def test_accepts_ip_object():
    response = parse_message(f"[{MAC}|ping_ack]", ip_address("192.168.1.9"))
    assert response.ip == ip_address("192.168.1.9")
    assert response.tag_data is None


def test_range_ack_builds_tag_data():
    before = datetime.now(timezone.utc)
    response = parse_message(f"[{MAC}|range_ack|12:34|2.5\n]", SOURCE)
    after = datetime.now(timezone.utc)
    assert response.kind is ResponseKind.TAG_DATA
    data = response.tag_data
    assert data.beacon_mac == MacAddress8.parse(MAC)
    assert data.tag_mac == ShortAddress.parse("12:34")
    assert data.tag_distance == 2.5
    assert before <= data.timestamp <= after


def test_range_ack_drops_last_character():
    response = parse_message(f"[{MAC}|range_ack|12:34|3.75x]", SOURCE)
    assert response.tag_data.tag_distance == 3.75


@pytest.mark.parametrize(
    "message, kind",
    [
        ("no brackets", MessageError.PARSE_FORMAT),
        (f"[{MAC}|ping_ack", MessageError.PARSE_FORMAT),
        ("][", MessageError.PARSE_FORMAT),
        (f"[{MAC}]", MessageError.PARSE_FORMAT),
        (f"[{MAC}|bogus]", MessageError.PARSE_FORMAT),
        ("[zz|ping_ack]", MessageError.PARSE_MAC),
        (f"[{MAC}|range_ack|1234567|2.5\n]", MessageError.PARSE_MAC),
        (f"[{MAC}|range_ack|12:34]", MessageError.PARSE_FORMAT),
        (f"[{MAC}|range_ack|12:34|]", MessageError.PARSE_FORMAT),
        (f"[{MAC}|range_ack|12:34|abc\n]", MessageError.PARSE_FLOAT),
        (f"[{MAC}|range_ack|12:34|5]", MessageError.PARSE_FLOAT),
        (f"[{MAC}|range_ack|12:34| 5\n]", MessageError.PARSE_FLOAT),
    ],
)
def test_parse_errors(message, kind):
    with pytest.raises(MessageError) as info:
        parse_message(message, SOURCE)
    assert info.value.kind == kind


def test_message_error_text():
    assert str(MessageError(MessageError.PARSE_FORMAT)) == "Invalid message format"
    assert str(MessageError(MessageError.PARSE_FLOAT)) == "Failed to parse float"
    assert str(MessageError(MessageError.PARSE_MAC)) == "Failed to parse mac address"


@pytest.mark.parametrize(
    "kind, text",
    [
        (CommandKind.START_EMERGENCY, "[start]"),
        (CommandKind.END_EMERGENCY, "[end]"),
        (CommandKind.PING, "[ping]"),
        (CommandKind.REBOOT, "[reboot]"),
    ],
)
def test_encode_commands(kind, text):
    assert encode_command(BeaconCommand(kind)) == text
    assert encode_command(BeaconCommand(kind, ip_address("10.0.0.2"))) == text


def test_encode_set_ip():
    command = BeaconCommand(CommandKind.SET_IP, "10.1.2.3")
    assert command.ip == ip_address("10.1.2.3")
    assert encode_command(command) == "[setip|10.1.2.3]"


def test_set_ip_requires_ipv4():
    with pytest.raises(ValueError):
        BeaconCommand(CommandKind.SET_IP)
    with pytest.raises(ValueError):
        BeaconCommand(CommandKind.SET_IP, "::1")