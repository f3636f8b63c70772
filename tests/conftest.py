"""Pytest fixtures and a fake bulb for Horus tests."""

import struct

import pytest

from horus_device import Device
from horus_errors import ReadTimeoutError
from horus_products import ProductRegistry
from horus_protocol import (
    HSBK,
    Header,
    Message,
    MessageType,
    Power,
    encode_label,
)
from horus_transport import Client


def reply(message_type: MessageType, payload: bytes = b'') -> bytes:
    """Encode a device reply of the given type."""
    return Message(Header(message_type=message_type), payload).encode()


def light_state_payload(hsbk: HSBK, power: Power, label: str) -> bytes:
    level = 0xFFFF if power == Power.ON else 0
    return (hsbk.to_bytes() + b'\x00\x00' + struct.pack('<H', level)
            + encode_label(label) + b'\x00' * 8)


def group_payload(group_id: bytes, label: str) -> bytes:
    return group_id.ljust(16, b'\x00') + encode_label(label) + b'\x00' * 8


def info_payload(time: int, uptime: int, downtime: int) -> bytes:
    return struct.pack('<QQQ', time, uptime, downtime)


def version_payload(vendor: int, product: int, version: int) -> bytes:
    return struct.pack('<III', vendor, product, version)


class FakeBulb(Client):
    """
    In-memory device: decodes each request, records it and answers the way a
    bulb would. `fail` maps a message type to the error class raised for it.
    """

    def __init__(self, label="kitchen", power=Power.ON,
                 hsbk=HSBK(hue=100, saturation=200, brightness=20000, kelvin=3500),
                 group="Downstairs", location="Home", product=27, version=3):
        self.label = label
        self.power = power
        self.hsbk = hsbk
        self.group = group
        self.location = location
        self.product = product
        self.version = version
        self.fail = {}
        self.requests: list[Message] = []

    def sent(self, message_type: MessageType) -> list[Message]:
        return [m for m in self.requests if m.header.message_type == message_type]

    def _light_state(self) -> bytes:
        return reply(MessageType.LIGHT_STATE,
                     light_state_payload(self.hsbk, self.power, self.label))

    def send_with_deadline(self, address, port, packet, deadline):
        message = Message.decode(packet)
        self.requests.append(message)
        message_type = message.header.message_type

        if message_type in self.fail:
            raise self.fail[message_type](f"{message_type.name} failed")

        if message_type == MessageType.GET:
            return self._light_state()
        if message_type == MessageType.GET_GROUP:
            return reply(MessageType.STATE_GROUP, group_payload(b'\x01\x02', self.group))
        if message_type == MessageType.GET_INFO:
            return reply(MessageType.STATE_INFO, info_payload(10, 20, 30))
        if message_type == MessageType.GET_LOCATION:
            return reply(MessageType.STATE_LOCATION, group_payload(b'\x0a\x0b', self.location))
        if message_type == MessageType.GET_VERSION:
            return reply(MessageType.STATE_VERSION,
                         version_payload(1, self.product, self.version))
        if message_type == MessageType.SET_COLOR:
            self.hsbk = HSBK.from_bytes(message.payload[1:9])
            self.power = Power.ON if self.hsbk.brightness else Power.OFF
            return self._light_state()
        if message_type == MessageType.SET_POWER_DEVICE:
            level = struct.unpack('<H', message.payload)[0]
            self.power = Power.ON if level else Power.OFF
            return reply(MessageType.STATE_POWER, message.payload)
        if message_type == MessageType.SET_LABEL:
            self.label = message.payload.rstrip(b'\x00').decode('utf-8')
            return reply(MessageType.STATE_LABEL, message.payload)

        raise ReadTimeoutError(f"no reply to {message_type.name}")


def make_device(uuid: str, bulb: FakeBulb, **kwargs) -> Device:
    return Device(
        address="192.0.2.10",
        uuid=uuid,
        client=bulb,
        products=ProductRegistry.builtin(),
        **kwargs,
    )


@pytest.fixture
def kitchen_bulb():
    return FakeBulb(label="kitchen", group="Downstairs")


@pytest.fixture
def hall_bulb():
    return FakeBulb(label="hall", power=Power.OFF, group="Upstairs")


@pytest.fixture
def devices(kitchen_bulb, hall_bulb):
    return [make_device("u1", kitchen_bulb), make_device("u2", hall_bulb)]
