#!/usr/bin/env python3
"""
Horus Lights Service

The three operations exposed to the outside world (read devices, set state,
toggle), each taking a selector string. Every operation first refreshes the
configured devices so that selection and toggling work on current state.
Devices are processed one at a time. Used by both the HTTP server and the
terminal console.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from horus_config import Config
from horus_device import Device
from horus_errors import HorusError, UnprovisionedError
from horus_protocol import State
from horus_selector import parse_selector, resolve

logger = logging.getLogger(__name__)


@dataclass
class Result:
    """Outcome of an operation on one device."""
    uuid: str
    label: str
    error: Optional[HorusError] = None

    def to_dict(self) -> dict:
        return {
            'uuid': self.uuid,
            'label': self.label,
            'error': str(self.error) if self.error is not None else None,
        }


class LightsAPI:
    """Runs selector-based operations against the configured devices."""

    def __init__(self, config: Config):
        self.config = config

    @property
    def devices(self) -> list[Device]:
        return self.config.devices

    def refresh(self) -> dict[str, HorusError]:
        """
        Update every device in turn.

        Returns:
            Errors keyed by device uuid; devices that failed stay disconnected
        """
        errors = {}
        for device in self.devices:
            try:
                device.update()
            except HorusError as err:
                logger.warning("Cannot update device %s: %s", device.uuid or device.address, err)
                errors[device.uuid] = err
        return errors

    def _targets(self, selector: str) -> list[Device]:
        parsed = parse_selector(selector)
        if not self.devices:
            raise UnprovisionedError("list of Lifx devices")
        self.refresh()
        devices = resolve(parsed, self.devices)
        logger.debug("selector %s found %d device(s)", parsed, len(devices))
        return devices

    def get_devices(self, selector: str = "") -> list[Device]:
        logger.debug("get-devices selector=%r", selector)
        return self._targets(selector)

    def set_state(self, selector: str, state: State, duration: int = 0) -> list[Result]:
        logger.debug("set-state selector=%r state=%s duration=%d", selector, state, duration)
        results = []
        for device in self._targets(selector):
            error = None
            try:
                device.set_state(state, duration)
            except HorusError as err:
                logger.warning("set-state failed on %s: %s", device.uuid, err)
                error = err
            results.append(Result(uuid=device.uuid, label=device.label, error=error))
        return results

    def toggle(self, selector: str, duration: int = 0) -> list[Result]:
        logger.debug("toggle selector=%r duration=%d", selector, duration)
        results = []
        for device in self._targets(selector):
            error = None
            try:
                device.toggle(self.config.max_brightness, duration)
            except HorusError as err:
                logger.warning("toggle failed on %s: %s", device.uuid, err)
                error = err
            results.append(Result(uuid=device.uuid, label=device.label, error=error))
        return results
