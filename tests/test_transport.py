"""Tests for the datagram transport against a loopback responder."""

import socket
import threading

import pytest

from horus_errors import (
    ConnectError,
    NotFoundError,
    ProtocolError,
    ReadTimeoutError,
    ResolutionError,
    TransportError,
    WriteError,
)
from horus_protocol import MessageType, query_message
from horus_transport import UDPClient, new_client

from conftest import info_payload, reply


@pytest.fixture
def responder():
    """UDP socket on loopback answering each datagram with `answer(packet)`."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(('127.0.0.1', 0))
    sock.settimeout(2.0)
    received = []

    def serve(answer):
        def run():
            try:
                packet, addr = sock.recvfrom(2048)
            except socket.timeout:
                return
            received.append(packet)
            data = answer(packet)
            if data is not None:
                sock.sendto(data, addr)

        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        return thread

    yield sock.getsockname()[1], serve, received
    sock.close()


def test_send_returns_reply(responder):
    port, serve, received = responder
    answer = reply(MessageType.STATE_INFO, info_payload(1, 2, 3))
    thread = serve(lambda packet: answer)

    packet = query_message(MessageType.GET_INFO).encode()
    data = UDPClient().send('127.0.0.1', port, packet)
    thread.join(timeout=2.0)

    assert data == answer
    assert received == [packet]


def test_reply_trimmed_to_declared_size(responder):
    port, serve, _ = responder
    answer = reply(MessageType.STATE_INFO, info_payload(1, 2, 3))
    serve(lambda packet: answer + b'\xEE' * 10)

    data = UDPClient().send('127.0.0.1', port, query_message(MessageType.GET_INFO).encode())
    assert data == answer


def test_read_timeout(responder):
    port, serve, _ = responder
    serve(lambda packet: None)

    with pytest.raises(ReadTimeoutError):
        UDPClient().send_with_deadline('127.0.0.1', port, b'\x24\x00', deadline=0.2)


def test_reply_too_short(responder):
    port, serve, _ = responder
    serve(lambda packet: b'\x01')

    with pytest.raises(ProtocolError):
        UDPClient().send('127.0.0.1', port, b'\x24\x00')


def test_resolution_failure(monkeypatch):
    def fail(*args, **kwargs):
        raise socket.gaierror("name or service not known")

    monkeypatch.setattr(socket, 'getaddrinfo', fail)
    with pytest.raises(ResolutionError):
        UDPClient().send('bulb.invalid', 56700, b'')


def test_new_client_udp():
    assert isinstance(new_client('udp'), UDPClient)


def test_new_client_unknown_protocol():
    with pytest.raises(NotFoundError, match="protocol tcp not found"):
        new_client('tcp')


class BrokenSocket:
    """Stand-in socket whose `fail` method raises the given OSError."""

    def __init__(self, fail, error):
        self.fail = fail
        self.error = error

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def _call(self, name):
        if name == self.fail:
            raise self.error

    def connect(self, sockaddr):
        self._call('connect')

    def send(self, packet):
        self._call('send')
        return len(packet)

    def settimeout(self, timeout):
        pass

    def recv(self, size):
        self._call('recv')
        return reply(MessageType.STATE_INFO, info_payload(1, 2, 3))


def patch_socket(monkeypatch, fail, error):
    monkeypatch.setattr(socket, 'socket', lambda *args: BrokenSocket(fail, error))


def test_socket_creation_failure(monkeypatch):
    def fail(*args):
        raise OSError("too many open files")

    monkeypatch.setattr(socket, 'socket', fail)
    with pytest.raises(ConnectError, match="cannot open udp socket"):
        UDPClient().send('127.0.0.1', 56700, b'\x24\x00')


def test_connect_failure(monkeypatch):
    patch_socket(monkeypatch, 'connect', OSError("network is unreachable"))
    with pytest.raises(ConnectError, match="cannot connect"):
        UDPClient().send('127.0.0.1', 56700, b'\x24\x00')


def test_write_failure(monkeypatch):
    patch_socket(monkeypatch, 'send', OSError("message too long"))
    with pytest.raises(WriteError):
        UDPClient().send('127.0.0.1', 56700, b'\x24\x00')


def test_refused_reply_is_connect_error(monkeypatch):
    patch_socket(monkeypatch, 'recv', ConnectionRefusedError(111, "Connection refused"))
    with pytest.raises(ConnectError, match="connection refused"):
        UDPClient().send('127.0.0.1', 56700, b'\x24\x00')


def test_other_read_failure(monkeypatch):
    patch_socket(monkeypatch, 'recv', OSError("bad file descriptor"))
    with pytest.raises(TransportError) as excinfo:
        UDPClient().send('127.0.0.1', 56700, b'\x24\x00')
    assert not isinstance(excinfo.value, (ConnectError, WriteError, ReadTimeoutError))


def test_patched_socket_returns_reply(monkeypatch):
    patch_socket(monkeypatch, None, None)
    data = UDPClient().send('127.0.0.1', 56700, b'\x24\x00')
    assert data == reply(MessageType.STATE_INFO, info_payload(1, 2, 3))
