#!/usr/bin/env python3
"""
Horus Product Registry

Read-only catalog of LIFX products keyed by the numeric product id a device
reports in StateVersion (33). The registry is built once at startup and handed
to every device; it is never mutated afterwards.

Product data from https://github.com/LIFX/products/blob/master/products.json
"""

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional, Union

from horus_errors import MalformedError

logger = logging.getLogger(__name__)

PRODUCTS_FILE_ENV = "PRODUCTS_FILE"

LIFX_VENDOR_ID = 1
LIFX_VENDOR_NAME = "LIFX"


@dataclass(frozen=True)
class Capabilities:
    has_color: bool = False
    has_ir: bool = False
    has_multizone: bool = False

    def to_dict(self) -> dict:
        return {
            'hasColor': self.has_color,
            'hasIR': self.has_ir,
            'hasMultiZone': self.has_multizone,
        }


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    vendor: str = LIFX_VENDOR_NAME
    version: int = 0
    capabilities: Capabilities = field(default_factory=Capabilities)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'vendor': self.vendor,
            'version': self.version,
            'capabilities': self.capabilities.to_dict(),
        }


# (id, name, color, infrared, multizone)
_BUILTIN_PRODUCTS = [
    (1, "LIFX Original 1000", True, False, False),
    (3, "LIFX Color 650", True, False, False),
    (10, "LIFX White 800 (Low Voltage)", False, False, False),
    (11, "LIFX White 800 (High Voltage)", False, False, False),
    (15, "LIFX Color 1000", True, False, False),
    (18, "LIFX White 900 BR30 (Low Voltage)", False, False, False),
    (19, "LIFX White 900 BR30 (High Voltage)", False, False, False),
    (20, "LIFX Color 1000 BR30", True, False, False),
    (22, "LIFX Color 1000", True, False, False),
    (27, "LIFX A19", True, False, False),
    (28, "LIFX BR30", True, False, False),
    (29, "LIFX A19 Night Vision", True, True, False),
    (30, "LIFX BR30 Night Vision", True, True, False),
    (31, "LIFX Z", True, False, True),
    (32, "LIFX Z", True, False, True),
    (36, "LIFX Downlight", True, False, False),
    (37, "LIFX Downlight", True, False, False),
    (38, "LIFX Beam", True, False, True),
    (39, "LIFX Downlight White to Warm", False, False, False),
    (40, "LIFX Downlight", True, False, False),
    (43, "LIFX A19", True, False, False),
    (44, "LIFX BR30", True, False, False),
    (45, "LIFX A19 Night Vision", True, True, False),
    (46, "LIFX BR30 Night Vision", True, True, False),
    (49, "LIFX Mini Color", True, False, False),
    (50, "LIFX Mini White to Warm", False, False, False),
    (51, "LIFX Mini White", False, False, False),
    (52, "LIFX GU10", True, False, False),
    (53, "LIFX GU10", True, False, False),
    (55, "LIFX Tile", True, False, False),
    (57, "LIFX Candle", True, False, False),
    (59, "LIFX Mini Color", True, False, False),
    (60, "LIFX Mini White to Warm", False, False, False),
    (61, "LIFX Mini White", False, False, False),
    (62, "LIFX A19", True, False, False),
    (63, "LIFX BR30", True, False, False),
    (64, "LIFX A19 Night Vision", True, True, False),
    (65, "LIFX BR30 Night Vision", True, True, False),
    (66, "LIFX Mini White", False, False, False),
    (68, "LIFX Candle", True, False, False),
    (81, "LIFX Candle White to Warm", False, False, False),
    (82, "LIFX Filament Clear", False, False, False),
    (85, "LIFX Filament Amber", False, False, False),
    (87, "LIFX Mini White", False, False, False),
    (88, "LIFX Mini White", False, False, False),
    (90, "LIFX Clean", True, False, False),
    (91, "LIFX Color", True, False, False),
    (92, "LIFX Color", True, False, False),
    (93, "LIFX A19 Night Vision Intl", True, True, False),
    (94, "LIFX BR30 Night Vision Intl", True, True, False),
    (96, "LIFX A19 Night Vision", True, True, False),
    (97, "LIFX BR30 Night Vision", True, True, False),
    (98, "LIFX Mini White to Warm", False, False, False),
    (99, "LIFX Mini White to Warm", False, False, False),
    (100, "LIFX Candle Color", True, False, False),
    (109, "LIFX A19 Night Vision", True, True, False),
    (110, "LIFX BR30 Night Vision", True, True, False),
    (111, "LIFX A19 Night Vision", True, True, False),
    (112, "LIFX BR30 Night Vision Intl", True, True, False),
    (113, "LIFX Mini White to Warm", False, False, False),
    (114, "LIFX Mini White to Warm", False, False, False),
    (115, "LIFX String", True, False, True),
    (116, "LIFX String", True, False, True),
    (117, "LIFX String", True, False, True),
    (118, "LIFX String", True, False, True),
    (119, "LIFX Neon", True, False, True),
    (120, "LIFX Neon", True, False, True),
    (137, "LIFX Candle Color US", True, False, False),
    (138, "LIFX Candle Colour Intl", True, False, False),
    (176, "LIFX Ceiling US", True, False, False),
    (177, "LIFX Ceiling Intl", True, False, False),
]


class ProductRegistry:
    """Read-only product lookup by numeric id."""

    def __init__(self, products=()):
        self._products: dict[int, Product] = {p.id: p for p in products}

    def __len__(self) -> int:
        return len(self._products)

    def __contains__(self, product_id: int) -> bool:
        return product_id in self._products

    def get(self, product_id: int, version: int = 0) -> Optional[Product]:
        """
        Look up a product.

        Args:
            product_id: Id reported by the device
            version: Hardware version reported alongside it

        Returns:
            The product with the reported version, or None when the id is unknown
        """
        product = self._products.get(product_id)
        if product is None:
            logger.debug("Unknown product id %d", product_id)
            return None
        return replace(product, version=version)

    @classmethod
    def builtin(cls) -> 'ProductRegistry':
        return cls(
            Product(
                id=pid,
                name=name,
                capabilities=Capabilities(has_color=color, has_ir=ir, has_multizone=multizone),
            )
            for pid, name, color, ir, multizone in _BUILTIN_PRODUCTS
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'ProductRegistry':
        """
        Load a catalog from a JSON list of products:

            [{"id": 27, "name": "LIFX A19", "vendor": "LIFX",
              "capabilities": {"hasColor": true, "hasIR": false, "hasMultiZone": false}}]
        """
        logger.info("Parsing products file %s", path)
        with open(path, 'r', encoding='utf-8') as f:
            try:
                entries = json.load(f)
            except json.JSONDecodeError as e:
                raise MalformedError(f"cannot parse products file {path}: {e}") from e

        if not isinstance(entries, list):
            raise MalformedError(f"products file {path} must contain a list")

        products = []
        for entry in entries:
            try:
                caps = entry.get('capabilities') or {}
                products.append(Product(
                    id=int(entry['id']),
                    name=str(entry['name']),
                    vendor=str(entry.get('vendor', LIFX_VENDOR_NAME)),
                    version=int(entry.get('version', 0)),
                    capabilities=Capabilities(
                        has_color=bool(caps.get('hasColor', False)),
                        has_ir=bool(caps.get('hasIR', False)),
                        has_multizone=bool(caps.get('hasMultiZone', False)),
                    ),
                ))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise MalformedError(f"invalid product entry {entry!r}: {e}") from e

        return cls(products)


def load_products(path: Optional[str] = None) -> ProductRegistry:
    """Load the catalog from path, $PRODUCTS_FILE, or fall back to the built-in one."""
    path = path or os.environ.get(PRODUCTS_FILE_ENV)
    if path:
        return ProductRegistry.from_file(path)
    registry = ProductRegistry.builtin()
    logger.info("Using built-in product catalog (%d products)", len(registry))
    return registry
