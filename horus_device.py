#!/usr/bin/env python3
"""
Horus Device

A LIFX device as known to the service: its addressing information plus the
last state read from it. Every operation is a synchronous request/reply
exchange through the device's transport client; each device serializes its
own operations with a lock so concurrent requests never interleave on it.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from horus_errors import HorusError, MalformedError
from horus_products import Product, ProductRegistry
from horus_protocol import (
    HSBK,
    LIFX_PORT,
    OFF,
    ON,
    Group,
    Info,
    Location,
    Message,
    MessageType,
    Power,
    State,
    decode_light_state,
    decode_state_group,
    decode_state_info,
    decode_state_location,
    decode_state_version,
    query_message,
    serial_to_target,
    set_color_message,
    set_label_message,
    set_power_message,
)
from horus_transport import UDP, Client, new_client

logger = logging.getLogger(__name__)


@dataclass
class Device:
    """Represents a configured LIFX device."""
    address: str = ""
    port: int = LIFX_PORT
    protocol: str = UDP
    uuid: str = ""
    label: str = ""
    serial: str = ""
    connected: bool = False
    power: Power = Power.OFF
    hsbk: Optional[HSBK] = None
    infrared: float = 0.0
    group: Optional[Group] = None
    product: Optional[Product] = None
    info: Optional[Info] = None
    location: Optional[Location] = None
    source: int = 0
    products: ProductRegistry = field(default_factory=ProductRegistry, repr=False, compare=False)
    client: Optional[Client] = field(default=None, repr=False, compare=False)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def __str__(self) -> str:
        name = self.label or self.uuid or self.serial
        return f"{name} ({self.address}:{self.port}) - {self.power.value.upper()}"

    @property
    def target(self) -> Optional[bytes]:
        """Target bytes when a serial is configured, None to broadcast."""
        if not self.serial:
            return None
        return serial_to_target(self.serial)

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def send(self, message: Message) -> bytes:
        """Send a message to the device and return its reply."""
        if not self.address:
            raise MalformedError("address of a lifx has not been initialized")
        if not self.port:
            raise MalformedError("port of a lifx has not been initialized")

        if self.client is None:
            self.client = new_client(self.protocol)

        return self.client.send(self.address, self.port, message.encode())

    def _query(self, message_type: MessageType) -> bytes:
        return self.send(query_message(message_type, self.source, self.target))

    def _apply_state(self, state: State):
        self.hsbk = state.hsbk
        self.label = state.label
        self.power = state.power

    # -------------------------------------------------------------------------
    # Refresh sequence
    # -------------------------------------------------------------------------

    def update(self):
        """
        Refresh the cached state with five exchanges, in order: light state,
        group, info, location, version.

        The device is marked connected only once all five succeed. The first
        failure stops the sequence and is raised; fields read before it keep
        their new values.
        """
        with self.lock:
            self.connected = False

            try:
                reply = self._query(MessageType.GET)
                self._apply_state(decode_light_state(reply))

                reply = self._query(MessageType.GET_GROUP)
                self.group = decode_state_group(reply)

                reply = self._query(MessageType.GET_INFO)
                self.info = decode_state_info(reply)

                reply = self._query(MessageType.GET_LOCATION)
                self.location = decode_state_location(reply)

                reply = self._query(MessageType.GET_VERSION)
                version = decode_state_version(reply)
                self.product = self.products.get(version.product, version.version)
            except HorusError as err:
                raise err.annotate(f"updating device {self.uuid or self.address}")

            self.connected = True
            logger.debug("Updated %s", self)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def set_state(self, state: State, duration: int = 0):
        """
        Apply label, power and color in that order, skipping empty fields.

        Each field is a separate exchange. A failure stops the remaining
        writes but does not undo the ones already applied.
        """
        with self.lock:
            try:
                if state.label:
                    self.set_label(state.label)
                if state.power:
                    self.set_power(state.power)
                if state.hsbk is not None:
                    self.set_hsbk(state.hsbk, duration)
            except HorusError as err:
                raise err.annotate("setting state")

    def set_label(self, label: str):
        with self.lock:
            try:
                self.send(set_label_message(label, self.source, self.target))
            except HorusError as err:
                raise err.annotate("setting new label")
            self.label = label

    def set_power(self, power: Power):
        with self.lock:
            power = Power(power)
            try:
                self.send(set_power_message(power, self.source, self.target))
            except HorusError as err:
                raise err.annotate("setting power")
            self.power = power

    def set_hsbk(self, hsbk: HSBK, duration: int = 0):
        """Send SetColor and apply the state the device answers with."""
        with self.lock:
            try:
                reply = self.send(set_color_message(hsbk, duration, self.source, self.target))
                self._apply_state(decode_light_state(reply))
            except HorusError as err:
                raise err.annotate("setting hsbk")

    def toggle(self, max_brightness: int, duration: int = 0):
        """
        Turn the light off when it is on with some brightness, otherwise turn
        it on with the ON preset at max_brightness.
        """
        with self.lock:
            if self.power == Power.ON and self.hsbk is not None and self.hsbk.brightness > 0:
                hsbk, action = OFF, "turning off a device"
            else:
                hsbk = HSBK(
                    hue=ON.hue,
                    saturation=ON.saturation,
                    brightness=max_brightness,
                    kelvin=ON.kelvin,
                )
                action = "turning on a device"

            try:
                reply = self.send(set_color_message(hsbk, duration, self.source, self.target))
                self._apply_state(decode_light_state(reply))
            except HorusError as err:
                raise err.annotate(action)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            'uuid': self.uuid,
            'label': self.label,
            'connected': self.connected,
            'power': self.power.value,
            'hsbk': self.hsbk.to_dict() if self.hsbk else None,
            'infrared': self.infrared,
            'group': self.group.to_dict() if self.group else None,
            'product': self.product.to_dict() if self.product else None,
            'info': self.info.to_dict() if self.info else None,
            'location': self.location.to_dict() if self.location else None,
            'address': self.address,
            'port': self.port,
            'protocol': self.protocol,
        }
