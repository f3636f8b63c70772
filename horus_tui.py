#!/usr/bin/env python3
"""
Horus TUI Console

A terminal user interface for the configured LIFX lights. Every action goes
through the same lights service as the HTTP API, driven by a selector.

Usage:
    python3 horus_tui.py
    python3 horus_tui.py -c config.json
"""

import argparse
import logging
import sys
from threading import Thread
from typing import Callable

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, ScrollableContainer
from textual.widgets import Button, Footer, Header, Input, ListItem, ListView, Static

from horus_api import LightsAPI, Result
from horus_config import load_config
from horus_device import Device
from horus_errors import HorusError
from horus_products import load_products
from horus_protocol import HSBK, Power, State

logger = logging.getLogger(__name__)

TRANSITION_MS = 250

# hue degrees, saturation %, brightness %, kelvin
PRESETS = {
    "red": (0, 100, 100, 3500),
    "orange": (30, 100, 100, 3500),
    "green": (120, 100, 100, 3500),
    "blue": (240, 100, 100, 3500),
    "warm": (0, 0, 100, 2700),
    "neutral": (0, 0, 100, 4000),
    "cool": (0, 0, 100, 5500),
    "daylight": (0, 0, 100, 6500),
}


def preset_hsbk(name: str) -> HSBK:
    h, s, b, k = PRESETS[name]
    return HSBK.from_degrees(h, s / 100, b / 100, k)


def summarize(results: list[Result]) -> str:
    failed = [r for r in results if r.error is not None]
    if not failed:
        return f"{len(results)} device(s) updated"
    return f"{len(failed)} of {len(results)} device(s) failed: {failed[0].error}"


# =============================================================================
# Widgets
# =============================================================================

class DeviceListItem(ListItem):
    """A list item representing a configured device."""

    def __init__(self, device: Device) -> None:
        super().__init__()
        self.device = device

    def compose(self) -> ComposeResult:
        power_icon = "●" if self.device.power == Power.ON else "○"
        if not self.device.connected:
            power_icon = "✕"
        label = self.device.label or self.device.uuid or self.device.address
        yield Static(f"{power_icon} {label}")


class DeviceSidebar(Container):
    """Sidebar listing the configured devices."""

    DEFAULT_CSS = """
    DeviceSidebar {
        width: 30;
        dock: left;
        border-right: solid $primary;
        padding: 1;
    }
    DeviceSidebar ListView {
        height: 1fr;
    }
    DeviceSidebar .sidebar-title {
        text-style: bold;
        text-align: center;
        padding: 1;
        background: $primary;
        color: $text;
    }
    DeviceSidebar Button {
        width: 100%;
        margin: 1 0;
    }
    """

    def compose(self) -> ComposeResult:
        yield Static("LIFX Devices", classes="sidebar-title")
        yield Button("Refresh", id="btn-refresh", variant="primary")
        yield ListView(id="device-list")
        yield Static("", id="device-count")

    def update_devices(self, devices: list[Device]):
        list_view = self.query_one("#device-list", ListView)
        list_view.clear()
        for device in devices:
            list_view.append(DeviceListItem(device))

        connected = sum(1 for d in devices if d.connected)
        self.query_one("#device-count", Static).update(
            f"{connected}/{len(devices)} connected"
        )


class ControlPanel(Container):
    """Selector input plus the actions applied to it."""

    DEFAULT_CSS = """
    ControlPanel {
        padding: 0 1;
        height: auto;
    }
    ControlPanel .panel-title {
        text-style: bold;
        text-align: center;
        padding: 1;
    }
    ControlPanel .button-row {
        height: auto;
        margin: 1 0;
    }
    ControlPanel .button-row Button {
        margin: 0 1;
        min-width: 10;
    }
    ControlPanel #status {
        margin: 1 1;
        color: $text-muted;
    }
    """

    def compose(self) -> ComposeResult:
        yield Static("Selector", classes="panel-title")
        yield Input(placeholder="all, label:Kitchen, group:Downstairs ...", id="selector")
        with Horizontal(classes="button-row"):
            yield Button("Toggle", id="btn-toggle", variant="primary")
            yield Button("ON", id="btn-power-on", variant="success")
            yield Button("OFF", id="btn-power-off", variant="error")
        yield Static("Presets")
        with Horizontal(classes="button-row"):
            for name in list(PRESETS)[:4]:
                yield Button(name.capitalize(), id=f"preset-{name}")
        with Horizontal(classes="button-row"):
            for name in list(PRESETS)[4:]:
                yield Button(name.capitalize(), id=f"preset-{name}")
        yield Static("", id="status")


# =============================================================================
# Main Application
# =============================================================================

class HorusApp(App):
    """Horus terminal console."""

    CSS = """
    Screen {
        layout: horizontal;
    }

    #main-area {
        width: 1fr;
        height: 100%;
    }

    Footer {
        background: $primary;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "refresh", "Refresh"),
        Binding("t", "toggle", "Toggle"),
    ]

    TITLE = "Horus"

    def __init__(self, lights: LightsAPI):
        super().__init__()
        self.lights = lights
        self.last_status = ""

    def compose(self) -> ComposeResult:
        yield Header()
        yield DeviceSidebar()
        with ScrollableContainer(id="main-area"):
            yield ControlPanel()
        yield Footer()

    def on_mount(self) -> None:
        self.action_refresh()

    @property
    def selector(self) -> str:
        return self.query_one("#selector", Input).value.strip()

    def _run(self, description: str, work: Callable[[], str]) -> None:
        """Run work in a thread; its message or error lands in the status line."""
        self._set_status(f"{description}...")

        def target():
            try:
                message = work()
            except HorusError as err:
                logger.info("%s failed: %s", description, err)
                message = f"{description} failed: {err}"
            self.call_from_thread(self._finish, message)

        Thread(target=target, daemon=True).start()

    def _finish(self, message: str) -> None:
        self._set_status(message)
        self.query_one(DeviceSidebar).update_devices(self.lights.devices)

    def _set_status(self, message: str) -> None:
        self.last_status = message
        self.query_one("#status", Static).update(message)

    def action_refresh(self) -> None:
        def work():
            errors = self.lights.refresh()
            total = len(self.lights.devices)
            return f"{total - len(errors)}/{total} device(s) refreshed"

        self._run("Refreshing", work)

    def action_toggle(self) -> None:
        selector = self.selector
        self._run("Toggling", lambda: summarize(self.lights.toggle(selector, TRANSITION_MS)))

    def _apply(self, description: str, state: State) -> None:
        selector = self.selector
        self._run(description, lambda: summarize(
            self.lights.set_state(selector, state, TRANSITION_MS)
        ))

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        """Selecting a device targets it by uuid."""
        if isinstance(event.item, DeviceListItem) and event.item.device.uuid:
            self.query_one("#selector", Input).value = f"uuid:{event.item.device.uuid}"

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Enter shows what the selector matches without changing any light."""
        selector = self.selector

        def work():
            devices = self.lights.get_devices(selector)
            names = ", ".join(d.label or d.uuid for d in devices)
            return f"{len(devices)} device(s) match: {names}"

        self._run("Selecting", work)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id or ""

        if button_id == "btn-refresh":
            self.action_refresh()
        elif button_id == "btn-toggle":
            self.action_toggle()
        elif button_id == "btn-power-on":
            self._apply("Powering on", State(power=Power.ON))
        elif button_id == "btn-power-off":
            self._apply("Powering off", State(power=Power.OFF))
        elif button_id.startswith("preset-"):
            name = button_id.replace("preset-", "")
            self._apply(f"Applying {name}", State(hsbk=preset_hsbk(name)))


# =============================================================================
# Entry Point
# =============================================================================

def main():
    parser = argparse.ArgumentParser(
        description='Horus TUI - Control your configured LIFX lights from the terminal'
    )
    parser.add_argument('-c', '--config', default=None,
                        help='Config file (default: $CONFIG_FILE or config.json)')
    parser.add_argument('--products', default=None,
                        help='Products file (default: $PRODUCTS_FILE or built-in)')
    args = parser.parse_args()

    try:
        config = load_config(args.config, load_products(args.products))
    except (OSError, HorusError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    app = HorusApp(LightsAPI(config))
    app.run()


if __name__ == "__main__":
    main()
