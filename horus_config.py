#!/usr/bin/env python3
"""
Configuration loading.

The config file is JSON:

    {
        "apiKey": "6f1c2f8e-1d2b-4c64-9f4a-0e5b7a8d9c10",
        "source": 1234,
        "maxBrightness": 32767,
        "lifx": [
            {"uuid": "kitchen-1", "label": "Kitchen", "address": "192.168.1.20",
             "port": 56700, "protocol": "udp", "serial": "d0:73:d5:01:02:03"}
        ]
    }

Only address, port and protocol are needed to reach a device; everything
else about it is read from the device by Device.update().
"""

import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from horus_device import Device
from horus_errors import MalformedError
from horus_products import ProductRegistry
from horus_protocol import LIFX_PORT, serial_to_target
from horus_transport import CLIENTS, UDP

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "CONFIG_FILE"
DEFAULT_CONFIG_FILE = "config.json"

DEFAULT_MAX_BRIGHTNESS = 65535


@dataclass
class Config:
    api_key: Optional[uuid.UUID] = None
    source: int = 0
    max_brightness: int = DEFAULT_MAX_BRIGHTNESS
    devices: list[Device] = field(default_factory=list)


def _parse_device(entry: dict, source: int, products: ProductRegistry) -> Device:
    if not isinstance(entry, dict):
        raise MalformedError(f"device entry must be an object, got {entry!r}")

    protocol = str(entry.get('protocol', UDP)).lower()
    if protocol not in CLIENTS:
        raise MalformedError(f"unsupported protocol {protocol!r} for device {entry!r}")

    try:
        port = int(entry.get('port', LIFX_PORT))
    except (TypeError, ValueError):
        raise MalformedError(f"invalid port in device entry {entry!r}") from None
    if not 0 < port < 65536:
        raise MalformedError(f"port out of range in device entry {entry!r}")

    serial = str(entry.get('serial', '') or '')
    if serial:
        try:
            serial_to_target(serial)
        except ValueError as e:
            raise MalformedError(f"invalid serial in device entry {entry!r}: {e}") from e

    return Device(
        address=str(entry.get('address', '') or ''),
        port=port,
        protocol=protocol,
        uuid=str(entry.get('uuid', '') or ''),
        label=str(entry.get('label', '') or ''),
        serial=serial,
        source=source,
        products=products,
    )


def parse_config(data: dict, products: Optional[ProductRegistry] = None) -> Config:
    """Build a Config from decoded JSON."""
    if not isinstance(data, dict):
        raise MalformedError("config must be a JSON object")

    products = products if products is not None else ProductRegistry.builtin()

    api_key = data.get('apiKey')
    if api_key:
        try:
            api_key = uuid.UUID(str(api_key))
        except ValueError:
            raise MalformedError(f"apiKey is not a valid uuid: {api_key!r}") from None
    else:
        api_key = None

    try:
        source = int(data.get('source', 0))
        max_brightness = int(data.get('maxBrightness', DEFAULT_MAX_BRIGHTNESS))
    except (TypeError, ValueError) as e:
        raise MalformedError(f"invalid numeric setting: {e}") from e

    if not 0 <= source <= 0xFFFFFFFF:
        raise MalformedError(f"source out of range: {source}")
    if not 0 <= max_brightness <= 0xFFFF:
        raise MalformedError(f"maxBrightness out of range: {max_brightness}")

    entries = data.get('lifx') or []
    if not isinstance(entries, list):
        raise MalformedError("lifx must be a list of devices")

    devices = [_parse_device(entry, source, products) for entry in entries]

    return Config(
        api_key=api_key,
        source=source,
        max_brightness=max_brightness,
        devices=devices,
    )


def load_config(path: Optional[Union[str, Path]] = None,
                products: Optional[ProductRegistry] = None) -> Config:
    """
    Load the config from path, $CONFIG_FILE, or ./config.json.

    Raises:
        OSError: the file cannot be read
        MalformedError: the file is not valid JSON or has invalid settings
    """
    path = Path(path or os.environ.get(CONFIG_FILE_ENV) or DEFAULT_CONFIG_FILE)
    logger.info("Parsing config file %s", path)

    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise MalformedError(f"cannot unmarshal config file {path}: {e}") from e

    config = parse_config(data, products)
    logger.info("Loaded %d device(s)", len(config.devices))
    return config
