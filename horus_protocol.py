#!/usr/bin/env python3
"""
Horus LAN Protocol Library

Header and message codecs for LIFX device communication, plus the request
factories and reply decoders used by the device engine.

Message layout (all numeric fields little-endian):

    +------+-------+--------+--------+----------+------+-----+----------+------+----------+---------+
    | size | frame | source | target | reserved | ctrl | seq | reserved | type | reserved | payload |
    |  2   |   2   |   4    |   8    |    6     |  1   |  1  |    8     |  2   |    2     |   var   |
    +------+-------+--------+--------+----------+------+-----+----------+------+----------+---------+

The 34 bytes between the size prefix and the payload are the header.

Protocol documentation: https://lan.developer.lifx.com/docs/packet-contents
"""

import logging
import struct
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional

from horus_errors import MalformedMessageError, NotFoundError, ProtocolError

logger = logging.getLogger(__name__)


# =============================================================================
# Protocol Constants
# =============================================================================

LIFX_PORT = 56700
PROTOCOL_NUMBER = 1024

HEADER_SIZE = 34
SIZE_FIELD_SIZE = 2
MIN_MESSAGE_SIZE = SIZE_FIELD_SIZE + HEADER_SIZE

BROADCAST_TARGET = b'\x00' * 8

# Sequence marker used on every request this library builds
DEFAULT_SEQUENCE = 0x10

LABEL_SIZE = 32


# =============================================================================
# Message Types
# =============================================================================

class MessageType(IntEnum):
    """Closed set of message type codes understood by the codec."""
    GET_SERVICE = 2
    STATE_SERVICE = 3
    GET_HOST_INFO = 12
    STATE_HOST_INFO = 13
    GET_HOST_FIRMWARE = 14
    STATE_HOST_FIRMWARE = 15
    GET_WIFI_INFO = 16
    STATE_WIFI_INFO = 17
    GET_WIFI_FIRMWARE = 18
    STATE_WIFI_FIRMWARE = 19
    GET_POWER_DEVICE = 20
    SET_POWER_DEVICE = 21
    STATE_POWER = 22
    GET_LABEL = 23
    SET_LABEL = 24
    STATE_LABEL = 25
    GET_VERSION = 32
    STATE_VERSION = 33
    GET_INFO = 34
    STATE_INFO = 35
    ACKNOWLEDGEMENT = 45
    GET_LOCATION = 48
    SET_LOCATION = 49
    STATE_LOCATION = 50
    GET_GROUP = 51
    SET_GROUP = 52
    STATE_GROUP = 53
    ECHO_REQUEST = 58
    ECHO_RESPONSE = 59
    GET = 101
    SET_COLOR = 102
    SET_WAVEFORM = 103
    LIGHT_STATE = 107
    GET_POWER_LIGHT = 116
    SET_POWER_LIGHT = 117
    STATE_POWER_LIGHT = 118


# =============================================================================
# Frames
# =============================================================================

class Frame(IntEnum):
    """
    Frame settings: protocol number plus the addressable (bit 12) and
    tagged (bit 13) flags. Written little-endian, so TAGGED_ADDRESSABLE
    goes on the wire as 00 34.
    """
    NOT_TAGGED_NOT_ADDRESSABLE = PROTOCOL_NUMBER
    NOT_TAGGED_ADDRESSABLE = PROTOCOL_NUMBER | (1 << 12)
    TAGGED_NOT_ADDRESSABLE = PROTOCOL_NUMBER | (1 << 13)
    TAGGED_ADDRESSABLE = PROTOCOL_NUMBER | (1 << 12) | (1 << 13)

    @property
    def tagged(self) -> bool:
        return bool(self & (1 << 13))

    @property
    def addressable(self) -> bool:
        return bool(self & (1 << 12))


DEFAULT_FRAME = Frame.TAGGED_ADDRESSABLE


# =============================================================================
# Ack / Res control byte
# =============================================================================

_CONTROL_BYTES = {
    (False, False): 0x00,
    (False, True): 0x01,
    (True, False): 0x10,
    (True, True): 0x11,
}
_CONTROL_FLAGS = {byte: flags for flags, byte in _CONTROL_BYTES.items()}


def encode_control_byte(ack_required: bool, res_required: bool) -> int:
    """Pack the ack/res flags into their control byte."""
    return _CONTROL_BYTES[(bool(ack_required), bool(res_required))]


def decode_control_byte(value: int) -> tuple[bool, bool]:
    """
    Unpack a control byte into (ack_required, res_required).

    Raises:
        ProtocolError: if the byte is not one of 0x00, 0x01, 0x10, 0x11
    """
    try:
        return _CONTROL_FLAGS[value]
    except KeyError:
        raise ProtocolError(f"invalid ack/res control byte 0x{value:02X}") from None


# =============================================================================
# Header
# =============================================================================

@dataclass(frozen=True)
class Header:
    """Immutable 34-byte protocol header. Build one with HeaderBuilder."""
    frame: Frame = DEFAULT_FRAME
    source: int = 0
    target: bytes = BROADCAST_TARGET
    ack_required: bool = False
    res_required: bool = False
    sequence: int = 0
    message_type: MessageType = MessageType.GET

    def encode(self) -> bytes:
        """
        Encode the header to exactly 34 bytes.

        Offsets: frame[0:2] source[2:6] target[6:14] reserved[14:20]
        control[20] sequence[21] reserved[22:30] type[30:32] reserved[32:34]
        """
        return struct.pack(
            '<HI8s6xBB8xH2x',
            self.frame,
            self.source,
            self.target,
            encode_control_byte(self.ack_required, self.res_required),
            self.sequence,
            self.message_type,
        )

    @classmethod
    def decode(cls, data: bytes) -> 'Header':
        """
        Decode a 34-byte header.

        Raises:
            MalformedMessageError: if data is not exactly 34 bytes
            ProtocolError: on an invalid control byte
            NotFoundError: on a message type outside MessageType
        """
        if len(data) != HEADER_SIZE:
            raise MalformedMessageError(
                f"header requires {HEADER_SIZE} bytes, got {len(data)}"
            )

        frame, source, target, control, sequence, message_type = struct.unpack(
            '<HI8s6xBB8xH2x', data
        )
        ack_required, res_required = decode_control_byte(control)

        # Devices may set origin bits; keep the raw value then
        try:
            frame = Frame(frame)
        except ValueError:
            logger.debug("Unrecognized frame 0x%04X", frame)

        try:
            message_type = MessageType(message_type)
        except ValueError:
            raise NotFoundError(f"message type {message_type}") from None

        return cls(
            frame=frame,
            source=source,
            target=target,
            ack_required=ack_required,
            res_required=res_required,
            sequence=sequence,
            message_type=message_type,
        )


class HeaderBuilder:
    """
    Accumulates header fields through chained setters:

        header = (HeaderBuilder()
                  .set_message_type(MessageType.GET)
                  .res_required(True)
                  .set_sequence(DEFAULT_SEQUENCE)
                  .build())
    """

    def __init__(self):
        self._fields = {}

    def set_frame(self, frame: Frame) -> 'HeaderBuilder':
        self._fields['frame'] = Frame(frame)
        return self

    def set_source(self, source: int) -> 'HeaderBuilder':
        if not 0 <= source <= 0xFFFFFFFF:
            raise ValueError(f"source out of range: {source}")
        self._fields['source'] = source
        return self

    def set_target(self, target: bytes) -> 'HeaderBuilder':
        if len(target) != 8:
            raise ValueError(f"target must be 8 bytes, got {len(target)}")
        self._fields['target'] = bytes(target)
        return self

    def ack_required(self, required: bool) -> 'HeaderBuilder':
        self._fields['ack_required'] = bool(required)
        return self

    def res_required(self, required: bool) -> 'HeaderBuilder':
        self._fields['res_required'] = bool(required)
        return self

    def set_sequence(self, sequence: int) -> 'HeaderBuilder':
        """Only meaningful when an acknowledgement or a response is required."""
        if not 0 <= sequence <= 0xFF:
            raise ValueError(f"sequence out of range: {sequence}")
        self._fields['sequence'] = sequence
        return self

    def set_message_type(self, message_type: MessageType) -> 'HeaderBuilder':
        self._fields['message_type'] = MessageType(message_type)
        return self

    def build(self) -> Header:
        return Header(**self._fields)


# =============================================================================
# Message
# =============================================================================

@dataclass(frozen=True)
class Message:
    """A header and its payload. The size prefix is computed on encode."""
    header: Header
    payload: bytes = b''

    @property
    def size(self) -> int:
        return SIZE_FIELD_SIZE + HEADER_SIZE + len(self.payload)

    def encode(self) -> bytes:
        return struct.pack('<H', self.size) + self.header.encode() + self.payload

    @classmethod
    def decode(cls, data: bytes) -> 'Message':
        """
        Decode a full message (size prefix, header, payload).

        Raises:
            MalformedMessageError: if the buffer is shorter than 36 bytes or
                its declared size disagrees with its length
        """
        if len(data) < MIN_MESSAGE_SIZE:
            raise MalformedMessageError(
                f"message requires at least {MIN_MESSAGE_SIZE} bytes, got {len(data)}"
            )

        size = struct.unpack('<H', data[0:2])[0]
        if size != len(data):
            raise MalformedMessageError(
                f"declared size {size} does not match buffer length {len(data)}"
            )

        logger.debug("Decoding message: %s", data.hex(' '))
        header = Header.decode(data[SIZE_FIELD_SIZE:MIN_MESSAGE_SIZE])
        return cls(header=header, payload=bytes(data[MIN_MESSAGE_SIZE:]))


# =============================================================================
# Data Classes
# =============================================================================

class Power(str, Enum):
    ON = 'on'
    OFF = 'off'


@dataclass(frozen=True)
class HSBK:
    """HSBK color representation."""
    hue: int = 0           # 0-65535 (maps to 0-360 degrees)
    saturation: int = 0    # 0-65535 (maps to 0-100%)
    brightness: int = 0    # 0-65535 (maps to 0-100%)
    kelvin: int = 0        # 2500-9000 for real colors

    def to_bytes(self) -> bytes:
        """Pack HSBK to bytes."""
        return struct.pack('<HHHH', self.hue, self.saturation, self.brightness, self.kelvin)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'HSBK':
        if len(data) != 8:
            raise ProtocolError(f"decoding a HSBK requires 8 bytes, got {len(data)}")
        return cls(*struct.unpack('<HHHH', data))

    @classmethod
    def from_degrees(cls, hue: float, saturation: float, brightness: float, kelvin: int = 3500) -> 'HSBK':
        """Create HSBK from human-readable values (hue: 0-360, sat/bright: 0-1)."""
        return cls(
            hue=int(round(0x10000 * hue / 360)) % 0x10000,
            saturation=int(round(0xFFFF * saturation)),
            brightness=int(round(0xFFFF * brightness)),
            kelvin=kelvin,
        )

    def to_dict(self) -> dict:
        return {
            'hue': self.hue,
            'saturation': self.saturation,
            'brightness': self.brightness,
            'kelvin': self.kelvin,
        }


# Premade colors used by toggle
OFF = HSBK(hue=0, saturation=0, brightness=0, kelvin=0)
ON = HSBK(hue=65535, saturation=65535, brightness=32767, kelvin=65535)


@dataclass
class State:
    """Light state: what a LightState reply carries and what set_state applies."""
    hsbk: Optional[HSBK] = None
    power: Optional[Power] = None
    label: str = ""


@dataclass(frozen=True)
class Group:
    id: bytes
    label: str

    def to_dict(self) -> dict:
        return {'id': self.id.hex(), 'label': self.label}


@dataclass(frozen=True)
class Location:
    id: bytes
    label: str

    def to_dict(self) -> dict:
        return {'id': self.id.hex(), 'label': self.label}


@dataclass(frozen=True)
class Info:
    """Time stats of a device, in nanoseconds."""
    time: int
    uptime: int
    downtime: int

    def to_dict(self) -> dict:
        return {'time': self.time, 'upTime': self.uptime, 'downTime': self.downtime}


@dataclass(frozen=True)
class Version:
    vendor: int
    product: int
    version: int


# =============================================================================
# Utility Functions
# =============================================================================

def serial_to_target(serial: str) -> bytes:
    """Convert a serial (d0:73:d5:xx:xx:xx) to 8 target bytes."""
    parts = serial.split(':')
    if len(parts) != 6:
        raise ValueError(f"serial must have 6 hex octets: {serial!r}")
    return bytes(int(p, 16) for p in parts) + b'\x00\x00'


def encode_label(label: str) -> bytes:
    """UTF-8 label, zero-padded or truncated to 32 bytes."""
    return label.encode('utf-8')[:LABEL_SIZE].ljust(LABEL_SIZE, b'\x00')


def decode_label(data: bytes) -> str:
    return data.strip(b'\x00').decode('utf-8', errors='replace')


# =============================================================================
# Message Factories
# =============================================================================

def _request_header(message_type: MessageType, source: int,
                    target: Optional[bytes] = None) -> Header:
    builder = HeaderBuilder().set_message_type(message_type).set_source(source)
    if target is not None and target != BROADCAST_TARGET:
        builder.set_frame(Frame.NOT_TAGGED_ADDRESSABLE).set_target(target)
    else:
        builder.set_frame(Frame.TAGGED_ADDRESSABLE)
    return builder.res_required(True).set_sequence(DEFAULT_SEQUENCE).build()


def query_message(message_type: MessageType, source: int = 0,
                  target: Optional[bytes] = None) -> Message:
    """Payload-less request that asks the device for a response."""
    return Message(_request_header(message_type, source, target))


def set_color_message(hsbk: HSBK, duration: int, source: int = 0,
                      target: Optional[bytes] = None) -> Message:
    """
    Create SetColor (102).

    Args:
        hsbk: Target color
        duration: Transition time in milliseconds
    """
    payload = struct.pack('<B', 0) + hsbk.to_bytes() + struct.pack('<I', duration)
    return Message(_request_header(MessageType.SET_COLOR, source, target), payload)


def set_power_message(power: Power, source: int = 0,
                      target: Optional[bytes] = None) -> Message:
    """Create SetPower (21): level 65535 for on, 0 for off."""
    level = 0xFFFF if Power(power) is Power.ON else 0x0000
    return Message(_request_header(MessageType.SET_POWER_DEVICE, source, target),
                   struct.pack('<H', level))


def set_label_message(label: str, source: int = 0,
                      target: Optional[bytes] = None) -> Message:
    """Create SetLabel (24)."""
    return Message(_request_header(MessageType.SET_LABEL, source, target),
                   encode_label(label))


# =============================================================================
# Reply Decoders
# =============================================================================

LIGHT_STATE_SIZE = 52
STATE_GROUP_SIZE = 56
STATE_LOCATION_SIZE = 56
STATE_INFO_SIZE = 24
STATE_VERSION_SIZE = 12


def _reply_payload(data: bytes, expected: MessageType, min_size: int) -> bytes:
    message = Message.decode(data)
    if message.header.message_type != expected:
        raise ProtocolError(
            f"expected {expected.name} ({expected.value}) reply, "
            f"got {message.header.message_type.name} ({message.header.message_type.value})"
        )
    if len(message.payload) < min_size:
        raise ProtocolError(
            f"{expected.name} payload too short: {len(message.payload)} < {min_size} bytes"
        )
    return message.payload


def decode_light_state(data: bytes) -> State:
    """LightState (107): hsbk[0:8] reserved[8:10] power[10:12] label[12:44] reserved[44:52]"""
    payload = _reply_payload(data, MessageType.LIGHT_STATE, LIGHT_STATE_SIZE)
    level = struct.unpack('<H', payload[10:12])[0]
    return State(
        hsbk=HSBK.from_bytes(payload[0:8]),
        power=Power.ON if level == 0xFFFF else Power.OFF,
        label=decode_label(payload[12:44]),
    )


def decode_state_group(data: bytes) -> Group:
    """StateGroup (53): group[0:16] label[16:48] updated_at[48:56]"""
    payload = _reply_payload(data, MessageType.STATE_GROUP, STATE_GROUP_SIZE)
    return Group(id=payload[0:16], label=decode_label(payload[16:48]))


def decode_state_location(data: bytes) -> Location:
    """StateLocation (50): location[0:16] label[16:48] updated_at[48:56]"""
    payload = _reply_payload(data, MessageType.STATE_LOCATION, STATE_LOCATION_SIZE)
    return Location(id=payload[0:16], label=decode_label(payload[16:48]))


def decode_state_info(data: bytes) -> Info:
    """StateInfo (35): time[0:8] uptime[8:16] downtime[16:24]"""
    payload = _reply_payload(data, MessageType.STATE_INFO, STATE_INFO_SIZE)
    return Info(*struct.unpack('<QQQ', payload[0:24]))


def decode_state_version(data: bytes) -> Version:
    """StateVersion (33): vendor[0:4] product[4:8] version[8:12]"""
    payload = _reply_payload(data, MessageType.STATE_VERSION, STATE_VERSION_SIZE)
    return Version(*struct.unpack('<III', payload[0:12]))
