#!/usr/bin/env python3
"""
Horus Web API

HTTP server for controlling the configured LIFX lights on the local network.

Usage:
    python3 horus_web.py
    python3 horus_web.py --config config.json --port 2020

Endpoints:
    GET  /lights/?selector=<s>&key=<k>          - Refreshed list of selected lights
    PUT  /lights/state?selector=<s>&key=<k>     - Set state (body: {"hsbk": {...}, "power": "on", "label": "...", "duration": 0})
    POST /lights/toggle?selector=<s>&key=<k>    - Toggle lights (body: {"duration": 0})
    GET  /unsecured/generate                    - Generate an API key
    GET  /unsecured/openapi.json                - OpenAPI document

Environment:
    CONFIG_FILE     config path (default: config.json)
    PRODUCTS_FILE   product catalog path (default: built-in catalog)
    SERVER_PORT     listen port (default: 2020)
    ENVIRONMENT     DEV (debug logs) or PROD (warning logs as JSON)
"""

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
import uuid
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional
from urllib.parse import parse_qs, urlparse

from horus_api import LightsAPI
from horus_config import load_config
from horus_errors import HorusError, MalformedError
from horus_products import load_products
from horus_protocol import HSBK, Power, State

logger = logging.getLogger(__name__)

VERSION = "0.0.3"
DEFAULT_PORT = 2020

MAX_DURATION = 0xFFFFFFFF
MIN_KELVIN = 2500
MAX_KELVIN = 9000


# =============================================================================
# Logging
# =============================================================================

class JSONFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'time': self.formatTime(record),
            'level': record.levelname.lower(),
            'logger': record.name,
            'msg': record.getMessage(),
        }
        if record.exc_info:
            entry['exc'] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(environment: Optional[str] = None):
    """DEV (or unset): debug text logs. PROD: warning JSON logs. Both to stdout."""
    environment = (environment if environment is not None
                   else os.environ.get("ENVIRONMENT", "")).upper()

    handler = logging.StreamHandler(sys.stdout)
    if environment == "PROD":
        handler.setFormatter(JSONFormatter())
        level = logging.WARNING
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
        ))
        level = logging.DEBUG

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)


# =============================================================================
# Request parsing
# =============================================================================

def _bounded_int(value, name: str, low: int, high: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedError(f"{name} must be an integer")
    if not low <= value <= high:
        raise MalformedError(f"{name} must be between {low} and {high}")
    return value


def parse_duration(body: dict) -> int:
    return _bounded_int(body.get('duration', 0), 'duration', 0, MAX_DURATION)


def parse_hsbk(data) -> HSBK:
    if not isinstance(data, dict):
        raise MalformedError("hsbk must be an object")
    missing = [k for k in ('hue', 'saturation', 'brightness', 'kelvin') if k not in data]
    if missing:
        raise MalformedError(f"hsbk is missing {', '.join(missing)}")
    return HSBK(
        hue=_bounded_int(data['hue'], 'hue', 0, 65535),
        saturation=_bounded_int(data['saturation'], 'saturation', 0, 65535),
        brightness=_bounded_int(data['brightness'], 'brightness', 0, 65535),
        kelvin=_bounded_int(data['kelvin'], 'kelvin', MIN_KELVIN, MAX_KELVIN),
    )


def parse_state(body: dict) -> State:
    hsbk = parse_hsbk(body['hsbk']) if body.get('hsbk') is not None else None

    power = body.get('power') or None
    if power is not None:
        try:
            power = Power(power)
        except ValueError:
            raise MalformedError("power must be `on` or `off`") from None

    label = body.get('label') or ""
    if not isinstance(label, str):
        raise MalformedError("label must be a string")

    return State(hsbk=hsbk, power=power, label=label)


# =============================================================================
# OpenAPI
# =============================================================================

_SELECTOR_PARAM = {
    'name': 'selector',
    'in': 'query',
    'description': 'The selector to limit which lights are controlled. '
                   'More information about the format here: '
                   'https://api.developer.lifx.com/docs/selectors',
    'schema': {'type': 'string', 'default': 'all'},
}

_KEY_PARAM = {
    'name': 'key',
    'in': 'query',
    'required': True,
    'description': 'API key returned by /unsecured/generate',
    'schema': {'type': 'string', 'format': 'uuid'},
}

_HSBK_SCHEMA = {
    'type': 'object',
    'description': 'Hue, Saturation, Brightness and Kelvin of the light.',
    'required': ['hue', 'saturation', 'brightness', 'kelvin'],
    'properties': {
        'hue': {'type': 'integer', 'minimum': 0, 'maximum': 65535},
        'saturation': {'type': 'integer', 'minimum': 0, 'maximum': 65535},
        'brightness': {'type': 'integer', 'minimum': 0, 'maximum': 65535},
        'kelvin': {'type': 'integer', 'minimum': MIN_KELVIN, 'maximum': MAX_KELVIN},
    },
}

_DURATION_SCHEMA = {
    'type': 'integer', 'minimum': 0, 'maximum': MAX_DURATION, 'default': 0,
    'description': 'Transition time in milliseconds.',
}

_RESULTS = {
    'description': 'Result of the operation on each light.',
    'content': {'application/json': {'schema': {
        'type': 'array',
        'items': {'type': 'object', 'properties': {
            'uuid': {'type': 'string'},
            'label': {'type': 'string'},
            'error': {'type': 'string', 'nullable': True},
        }},
    }}},
}

_NOT_FOUND = {'description': 'cannot find corresponding lights in the selector.'}


def openapi_document() -> dict:
    return {
        'openapi': '3.0.0',
        'info': {
            'title': 'Horus - Up your local LIFX devices',
            'description': 'Horus is an API which handles your LIFX devices in your local '
                           'network. It uses UDP packets to interact with them, without '
                           'cloud connection.',
            'version': VERSION,
        },
        'paths': {
            '/lights/': {'get': {
                'tags': ['Lights'],
                'summary': 'Gets a list of corresponding lights in the selector.',
                'parameters': [_SELECTOR_PARAM, _KEY_PARAM],
                'responses': {'200': {'description': 'List of lights with their information.'},
                              '404': _NOT_FOUND},
            }},
            '/lights/state': {'put': {
                'tags': ['Lights'],
                'summary': 'Updates the state of the corresponding lights.',
                'parameters': [_SELECTOR_PARAM, _KEY_PARAM],
                'requestBody': {'content': {'application/json': {'schema': {
                    'type': 'object',
                    'properties': {
                        'hsbk': _HSBK_SCHEMA,
                        'duration': _DURATION_SCHEMA,
                        'power': {'type': 'string', 'enum': ['on', 'off']},
                        'label': {'type': 'string'},
                    },
                }}}},
                'responses': {'200': _RESULTS, '404': _NOT_FOUND},
            }},
            '/lights/toggle': {'post': {
                'tags': ['Lights'],
                'summary': 'Toggles power status of corresponding lights.',
                'parameters': [_SELECTOR_PARAM, _KEY_PARAM],
                'requestBody': {'content': {'application/json': {'schema': {
                    'type': 'object',
                    'properties': {'duration': _DURATION_SCHEMA},
                }}}},
                'responses': {'200': _RESULTS, '404': _NOT_FOUND},
            }},
            '/unsecured/generate': {'get': {
                'tags': ['Unsecured'],
                'summary': 'Generates an API key.',
                'description': 'Returns an API key which must be used in /lights routes.',
                'responses': {'200': {'description': 'A new API key.'}},
            }},
            '/unsecured/openapi.json': {'get': {
                'tags': ['Unsecured'],
                'summary': 'This document.',
                'responses': {'200': {'description': 'OpenAPI document.'}},
            }},
        },
    }


# =============================================================================
# HTTP Request Handler
# =============================================================================

class HorusHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the lights API."""

    lights: LightsAPI = None  # Set by server

    def log_message(self, format, *args):
        logger.info("[%s] %s", self.address_string(), format % args)

    def send_json(self, data, status: int = 200):
        body = json.dumps(data).encode('utf-8')
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def send_error_json(self, message: str, status: int):
        self.send_json({'error': message}, status)

    def _query(self) -> dict:
        query = parse_qs(urlparse(self.path).query)
        return {k: v[0] for k, v in query.items()}

    def _read_body(self) -> dict:
        try:
            content_length = int(self.headers.get('Content-Length', 0) or 0)
        except ValueError:
            raise MalformedError("invalid Content-Length") from None
        if content_length <= 0:
            return {}
        try:
            body = json.loads(self.rfile.read(content_length))
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise MalformedError("invalid JSON body") from None
        if not isinstance(body, dict):
            raise MalformedError("JSON body must be an object")
        return body

    def verify_key(self, query: dict) -> bool:
        """Check the api key; sends the error response and returns False when invalid."""
        api_key = self.lights.config.api_key
        if api_key is None:
            self.send_error_json("api key not generated", 400)
            return False

        key = query.get('key', '')
        if not key:
            self.send_error_json("missing api key", 400)
            return False

        if key != str(api_key):
            self.send_error_json("api key not valid", 401)
            return False

        return True

    def _dispatch(self, method: str):
        start = time.time()
        path = urlparse(self.path).path
        logger.info("Request received: %s %s from %s", method, self.path, self.client_address[0])

        try:
            if method == 'GET' and path == '/unsecured/openapi.json':
                self.send_json(openapi_document())
                return

            if method == 'GET' and path == '/unsecured/generate':
                self.send_json({'apiKey': str(uuid.uuid4())})
                return

            if path.rstrip('/') not in ('/lights', '/lights/state', '/lights/toggle'):
                self.send_error_json("unknown endpoint", 404)
                return

            query = self._query()
            if not self.verify_key(query):
                return
            selector = query.get('selector', '')

            if method == 'GET' and path.rstrip('/') == '/lights':
                devices = self.lights.get_devices(selector)
                self.send_json([d.to_dict() for d in devices])
                return

            if method == 'PUT' and path == '/lights/state':
                body = self._read_body()
                state = parse_state(body)
                results = self.lights.set_state(selector, state, parse_duration(body))
                self.send_json([r.to_dict() for r in results])
                return

            if method == 'POST' and path == '/lights/toggle':
                body = self._read_body()
                results = self.lights.toggle(selector, parse_duration(body))
                self.send_json([r.to_dict() for r in results])
                return

            self.send_error_json("method not allowed", 405)
        except HorusError as err:
            logger.info("%s %s failed: %s", method, path, err)
            self.send_error_json(str(err), err.status)
        finally:
            logger.debug("%s %s handled in %.3fs", method, path, time.time() - start)

    def do_GET(self):
        self._dispatch('GET')

    def do_PUT(self):
        self._dispatch('PUT')

    def do_POST(self):
        self._dispatch('POST')


def create_server(lights: LightsAPI, host: str = '0.0.0.0', port: int = DEFAULT_PORT) -> ThreadingHTTPServer:
    """Bind a threaded HTTP server serving the given lights."""
    handler = type('BoundHorusHandler', (HorusHandler,), {'lights': lights})
    return ThreadingHTTPServer((host, port), handler)


# =============================================================================
# Main
# =============================================================================

def main():
    parser = argparse.ArgumentParser(description='Horus - local LIFX lights API')
    parser.add_argument('-c', '--config', default=None, help='Config file (default: $CONFIG_FILE or config.json)')
    parser.add_argument('--products', default=None, help='Products file (default: $PRODUCTS_FILE or built-in)')
    parser.add_argument('-p', '--port', type=int, default=None,
                        help=f'HTTP port (default: $SERVER_PORT or {DEFAULT_PORT})')
    parser.add_argument('--host', default='0.0.0.0', help='Bind address (default: 0.0.0.0)')
    args = parser.parse_args()

    setup_logging()

    try:
        products = load_products(args.products)
        config = load_config(args.config, products)
    except (OSError, HorusError) as e:
        logger.error("Cannot start: %s", e)
        sys.exit(1)

    port = args.port or int(os.environ.get('SERVER_PORT') or DEFAULT_PORT)
    server = create_server(LightsAPI(config), args.host, port)

    stop = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %d", signum)
        stop.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    logger.info("Server running on %s:%d", args.host, port)

    stop.wait()
    server.shutdown()
    server.server_close()
    logger.info("Graceful shutdown")


if __name__ == '__main__':
    main()
