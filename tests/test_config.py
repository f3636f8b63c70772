"""Tests for config parsing and loading."""

import json
import uuid

import pytest

from horus_config import DEFAULT_MAX_BRIGHTNESS, load_config, parse_config
from horus_errors import MalformedError
from horus_products import ProductRegistry

API_KEY = "6f1c2f8e-1d2b-4c64-9f4a-0e5b7a8d9c10"


@pytest.fixture
def config_data():
    return {
        "apiKey": API_KEY,
        "source": 1234,
        "maxBrightness": 32767,
        "lifx": [
            {"uuid": "u1", "label": "Kitchen", "address": "192.0.2.20",
             "serial": "d0:73:d5:01:02:03"},
            {"uuid": "u2", "address": "192.0.2.21", "port": 56701, "protocol": "UDP"},
        ],
    }


def test_parse_config(config_data):
    config = parse_config(config_data)

    assert config.api_key == uuid.UUID(API_KEY)
    assert config.source == 1234
    assert config.max_brightness == 32767
    assert [d.uuid for d in config.devices] == ["u1", "u2"]

    kitchen, second = config.devices
    assert kitchen.port == 56700
    assert kitchen.protocol == "udp"
    assert kitchen.source == 1234
    assert kitchen.target == b'\xd0\x73\xd5\x01\x02\x03\x00\x00'
    assert second.port == 56701
    assert second.protocol == "udp"
    assert second.target is None
    assert not kitchen.connected


def test_parse_config_defaults():
    config = parse_config({})
    assert config.api_key is None
    assert config.source == 0
    assert config.max_brightness == DEFAULT_MAX_BRIGHTNESS
    assert config.devices == []


def test_parse_config_passes_registry(config_data):
    products = ProductRegistry()
    config = parse_config(config_data, products)
    assert all(d.products is products for d in config.devices)


@pytest.mark.parametrize("change", [
    {"apiKey": "not-a-uuid"},
    {"source": -1},
    {"source": "abc"},
    {"maxBrightness": 70000},
    {"lifx": {"uuid": "u1"}},
    {"lifx": ["192.0.2.1"]},
    {"lifx": [{"address": "192.0.2.1", "protocol": "tcp"}]},
    {"lifx": [{"address": "192.0.2.1", "port": 0}]},
    {"lifx": [{"address": "192.0.2.1", "port": "x"}]},
    {"lifx": [{"address": "192.0.2.1", "serial": "d0:73"}]},
])
def test_parse_config_rejects(config_data, change):
    config_data.update(change)
    with pytest.raises(MalformedError):
        parse_config(config_data)


def test_parse_config_not_an_object():
    with pytest.raises(MalformedError):
        parse_config(["lifx"])


def test_load_config_from_path(tmp_path, config_data):
    path = tmp_path / "horus.json"
    path.write_text(json.dumps(config_data))

    config = load_config(path)
    assert len(config.devices) == 2


def test_load_config_from_env(tmp_path, monkeypatch, config_data):
    path = tmp_path / "from-env.json"
    path.write_text(json.dumps(config_data))
    monkeypatch.setenv("CONFIG_FILE", str(path))

    assert load_config().source == 1234


def test_load_config_default_file(tmp_path, monkeypatch, config_data):
    (tmp_path / "config.json").write_text(json.dumps(config_data))
    monkeypatch.delenv("CONFIG_FILE", raising=False)
    monkeypatch.chdir(tmp_path)

    assert load_config().max_brightness == 32767


def test_load_config_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(MalformedError):
        load_config(path)


def test_load_config_missing_file(tmp_path):
    with pytest.raises(OSError):
        load_config(tmp_path / "absent.json")
