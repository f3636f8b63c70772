#!/usr/bin/env python3
"""
Horus Selectors

A selector picks the devices an operation targets. It is either a static
name (`all`) or a `name:value` pair for one of the dynamic selectors:

    all                     every configured device
    label:Kitchen           devices labelled "Kitchen"
    uuid:<uuid>             the device with that uuid
    group:Downstairs        devices whose group label is "Downstairs"
    location:Home           devices whose location label is "Home"
    group_id, location_id,
    scene_id                parsed, but matching is not implemented

Format reference: https://api.developer.lifx.com/docs/selectors
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from horus_device import Device
from horus_errors import (
    MalformedError,
    NotFoundError,
    SelectorNotImplementedError,
    UnprovisionedError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selector:
    name: str
    is_dynamic: bool
    value: Optional[str] = None

    def __str__(self) -> str:
        if self.is_dynamic:
            return f"{self.name}:{self.value}"
        return self.name


ALL = Selector("all", is_dynamic=False)
LABEL = Selector("label", is_dynamic=True)
UUID = Selector("uuid", is_dynamic=True)
GROUP_ID = Selector("group_id", is_dynamic=True)
GROUP = Selector("group", is_dynamic=True)
LOCATION_ID = Selector("location_id", is_dynamic=True)
LOCATION = Selector("location", is_dynamic=True)
SCENE_ID = Selector("scene_id", is_dynamic=True)

SELECTORS = (ALL, LABEL, UUID, GROUP_ID, GROUP, LOCATION_ID, LOCATION, SCENE_ID)

_BY_NAME = {s.name: s for s in SELECTORS}

_NOT_IMPLEMENTED = {GROUP_ID.name, LOCATION_ID.name, SCENE_ID.name}


def parse_selector(text: str) -> Selector:
    """
    Parse a selector string.

    Raises:
        MalformedError: a dynamic name without a value, or more than one `:`
        NotFoundError: an unknown selector name
    """
    if not text:
        return ALL

    if ':' not in text:
        selector = _BY_NAME.get(text)
        if selector is None:
            raise NotFoundError(f"selector `{text}`")
        if selector.is_dynamic:
            raise MalformedError(
                f"selector `{text}`: since it is a dynamic selector, "
                "it must have the format `type:value`"
            )
        return selector

    parts = text.split(':')
    if len(parts) != 2:
        raise MalformedError(
            f"selector `{text}`: a dynamic selector must have the format `type:value`"
        )

    name, value = parts
    selector = _BY_NAME.get(name)
    if selector is None:
        raise NotFoundError(f"selector `{text}`")

    if not selector.is_dynamic:
        # `all:<anything>` still means all; static selectors never carry a value
        return selector
    return replace(selector, value=value)


def _matches(selector: Selector, device: Device) -> bool:
    if selector.name == LABEL.name:
        return device.label == selector.value
    if selector.name == UUID.name:
        return device.uuid == selector.value
    if selector.name == GROUP.name:
        return device.group is not None and device.group.label == selector.value
    if selector.name == LOCATION.name:
        return device.location is not None and device.location.label == selector.value
    raise NotFoundError(f"sorting by selector {selector.name}")


def resolve(selector: Selector, devices: Sequence[Device]) -> list[Device]:
    """
    Return the devices matching a selector, in registry order.

    Raises:
        UnprovisionedError: the registry is empty
        SelectorNotImplementedError: group_id, location_id, scene_id
        NotFoundError: nothing matches
    """
    if not devices:
        raise UnprovisionedError("list of Lifx devices")

    if selector.name == ALL.name:
        return list(devices)

    if selector.name in _NOT_IMPLEMENTED:
        raise SelectorNotImplementedError(f"selector {selector.name}")

    matched = [device for device in devices if _matches(selector, device)]
    if not matched:
        raise NotFoundError(f"devices corresponding to selector {selector}")

    logger.debug("Selector %s matched %d device(s)", selector, len(matched))
    return matched


def select(text: str, devices: Sequence[Device]) -> list[Device]:
    """Parse and resolve in one step."""
    return resolve(parse_selector(text), devices)
