#!/usr/bin/env python3
"""
Horus Datagram Transport

A Client sends one encoded message to a device and waits for exactly one
reply. UDPClient is the only implementation; new transports register
themselves in CLIENTS under their protocol tag.

Known limitation: only the first reply datagram is read. A device asked for
both an acknowledgement and a response sends two datagrams, and the second
one is never consumed.
"""

import logging
import socket
import struct
from abc import ABC, abstractmethod

from horus_errors import (
    ConnectError,
    NotFoundError,
    ProtocolError,
    ReadTimeoutError,
    ResolutionError,
    TransportError,
    WriteError,
)

logger = logging.getLogger(__name__)

DEFAULT_DEADLINE = 2.0
MAX_DATAGRAM_SIZE = 2048

UDP = "udp"


class Client(ABC):
    """Sends a packet to a device and returns the device's reply."""

    def send(self, address: str, port: int, packet: bytes) -> bytes:
        return self.send_with_deadline(address, port, packet, DEFAULT_DEADLINE)

    @abstractmethod
    def send_with_deadline(self, address: str, port: int, packet: bytes,
                           deadline: float) -> bytes:
        """Send packet and block at most `deadline` seconds for one reply."""


class UDPClient(Client):
    """Connected UDP socket per exchange."""

    def send_with_deadline(self, address: str, port: int, packet: bytes,
                           deadline: float = DEFAULT_DEADLINE) -> bytes:
        try:
            infos = socket.getaddrinfo(address, port, socket.AF_INET, socket.SOCK_DGRAM)
        except (socket.gaierror, UnicodeError) as e:
            raise ResolutionError(f"cannot resolve {address}:{port}: {e}") from e
        family, socktype, proto, _, sockaddr = infos[0]

        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as e:
            raise ConnectError(f"cannot open udp socket: {e}") from e

        with sock:
            try:
                sock.connect(sockaddr)
            except OSError as e:
                raise ConnectError(f"cannot connect to {address}:{port}: {e}") from e

            logger.debug("Sending packet to %s:%d: %s", address, port, packet.hex(' '))
            try:
                sock.send(packet)
            except OSError as e:
                raise WriteError(f"cannot send udp packet to {address}:{port}: {e}") from e

            sock.settimeout(deadline)
            try:
                data = sock.recv(MAX_DATAGRAM_SIZE)
            except socket.timeout as e:
                raise ReadTimeoutError(
                    f"no reply from {address}:{port} within {deadline}s"
                ) from e
            except ConnectionRefusedError as e:
                # ICMP port unreachable surfaces on the connected socket's read
                raise ConnectError(f"connection refused by {address}:{port}: {e}") from e
            except OSError as e:
                raise TransportError(f"cannot read reply from {address}:{port}: {e}") from e

        if len(data) < 2:
            raise ProtocolError(f"reply from {address}:{port} too short: {len(data)} bytes")

        size = struct.unpack('<H', data[0:2])[0]
        logger.debug("Received %d bytes (declared %d) from %s:%d", len(data), size, address, port)
        return data[:size]


CLIENTS = {
    UDP: UDPClient,
}


def new_client(protocol: str) -> Client:
    """Create the client registered for a protocol tag."""
    try:
        return CLIENTS[protocol]()
    except KeyError:
        raise NotFoundError(f"protocol {protocol} not found") from None
