#!/usr/bin/env python3
"""
Horus error kinds

Every failure raised by the protocol codec, the transport and the device engine
is a HorusError subclass. The HTTP layer maps each kind to a status code.
"""


class HorusError(Exception):
    """Base class for all Horus errors.

    Callers add context while the error travels up with annotate(), which
    keeps the error kind intact:

        try:
            device.update()
        except HorusError as err:
            raise err.annotate(f"updating device {device.uuid}")
    """

    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.context: list[str] = []

    def annotate(self, context: str) -> 'HorusError':
        """Prepend a context line and return the same error."""
        self.context.insert(0, context)
        return self

    def __str__(self) -> str:
        return ": ".join(self.context + [self.message])


class MalformedError(HorusError):
    """Invalid selector syntax, invalid input or missing device settings."""
    status = 400


class NotFoundError(HorusError):
    """Unknown selector, no matching device, unknown message type or protocol."""
    status = 404


class SelectorNotImplementedError(HorusError):
    """Selector is part of the grammar but cannot be matched yet."""
    status = 501


class UnprovisionedError(HorusError):
    """The device registry is empty."""
    status = 503


class TransportError(HorusError):
    status = 502


class ResolutionError(TransportError):
    pass


class ConnectError(TransportError):
    pass


class WriteError(TransportError):
    pass


class ReadTimeoutError(TransportError):
    pass


class ProtocolError(HorusError):
    """A reply or header could not be decoded."""
    status = 502


class MalformedMessageError(ProtocolError):
    """Buffer is too short or its declared size disagrees with its length."""
