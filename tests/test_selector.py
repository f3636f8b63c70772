"""Tests for selector parsing and resolution."""

import pytest

from horus_device import Device
from horus_errors import (
    MalformedError,
    NotFoundError,
    SelectorNotImplementedError,
    UnprovisionedError,
)
from horus_protocol import Group, Location
from horus_selector import ALL, parse_selector, resolve, select


@pytest.fixture
def registry():
    return [
        Device(label="kitchen", uuid="u1",
               group=Group(b'\x01', "Downstairs"), location=Location(b'\x02', "Home")),
        Device(label="hall", uuid="u2",
               group=Group(b'\x03', "Upstairs"), location=Location(b'\x02', "Home")),
    ]


def test_parse_empty_is_all():
    assert parse_selector("") == ALL


def test_parse_all():
    assert parse_selector("all") == ALL


def test_parse_dynamic():
    selector = parse_selector("label:kitchen")
    assert selector.name == "label"
    assert selector.is_dynamic
    assert selector.value == "kitchen"
    assert str(selector) == "label:kitchen"


def test_parse_dynamic_without_value():
    with pytest.raises(MalformedError):
        parse_selector("uuid")


def test_parse_unknown_name():
    with pytest.raises(NotFoundError):
        parse_selector("foo:bar")
    with pytest.raises(NotFoundError):
        parse_selector("foo")


def test_parse_too_many_colons():
    with pytest.raises(MalformedError):
        parse_selector("a:b:c")


def test_parse_static_with_value_is_plain_static():
    assert parse_selector("all:whatever") == ALL


def test_resolve_all_keeps_order(registry):
    assert [d.uuid for d in resolve(ALL, registry)] == ["u1", "u2"]


def test_resolve_label(registry):
    assert [d.uuid for d in select("label:kitchen", registry)] == ["u1"]


def test_resolve_label_missing(registry):
    with pytest.raises(NotFoundError):
        select("label:missing", registry)


def test_resolve_uuid(registry):
    assert [d.uuid for d in select("uuid:u2", registry)] == ["u2"]


def test_resolve_group(registry):
    assert [d.uuid for d in select("group:Upstairs", registry)] == ["u2"]


def test_resolve_location(registry):
    assert [d.uuid for d in select("location:Home", registry)] == ["u1", "u2"]


def test_resolve_group_skips_unrefreshed_devices(registry):
    registry.append(Device(label="porch", uuid="u3"))
    assert [d.uuid for d in select("group:Downstairs", registry)] == ["u1"]


@pytest.mark.parametrize("text", ["group_id:abc", "location_id:abc", "scene_id:abc"])
def test_resolve_not_implemented(registry, text):
    with pytest.raises(SelectorNotImplementedError):
        select(text, registry)


def test_resolve_empty_registry():
    with pytest.raises(UnprovisionedError):
        resolve(ALL, [])
