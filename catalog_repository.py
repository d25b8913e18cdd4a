"""
Radio Quote Expert - Catalog Repository

Read-only product catalog access for the quoting pipeline:
  1. CatalogStore interface (by category, by SKU)
  2. In-memory implementation for tests / local dev
  3. Reference MOTOTRBO catalog used to seed the in-memory store
"""
from __future__ import annotations
import logging
from typing import Iterable, Optional

from models import (
    FrequencyBand, LifecycleStatus, Product, ProductCategory, Subcategory,
    SystemArchitecture,
)

logger = logging.getLogger(__name__)


# ============================================================
# Database Abstraction Layer (Repository Pattern)
# ============================================================

class CatalogStore:
    """
    Abstract catalog access. In production, backed by asyncpg.
    Here we define the interface; implementations are swappable.
    """

    async def get_products_by_category(self, category: ProductCategory) -> list[Product]:
        raise NotImplementedError

    async def get_product(self, sku: str) -> Optional[Product]:
        raise NotImplementedError


# ============================================================
# In-Memory Catalog (for testing / local dev)
# ============================================================

class InMemoryCatalog(CatalogStore):
    """In-memory implementation for testing without a database."""

    def __init__(self, products: Optional[Iterable[Product]] = None):
        self.products: dict[str, Product] = {}
        for p in products or []:
            self.add(p)

    def add(self, product: Product) -> Product:
        self.products[product.sku.upper()] = product
        return product

    async def get_products_by_category(self, category: ProductCategory) -> list[Product]:
        return sorted(
            (p for p in self.products.values() if p.category == category),
            key=lambda p: p.sku,
        )

    async def get_product(self, sku: str) -> Optional[Product]:
        return self.products.get(sku.upper())


# ============================================================
# Reference Catalog
# ============================================================

_ALL = list(SystemArchitecture)
_CONV = [SystemArchitecture.CONVENTIONAL]
_ENTRY = [
    SystemArchitecture.CONVENTIONAL,
    SystemArchitecture.IP_SITE_CONNECT,
    SystemArchitecture.CAPACITY_PLUS,
]

# sku, name, subcategory, family, band, price, cost, stock, architectures
_RADIOS = [
    ('XPR3300E-UHF', 'MOTOTRBO XPR3300e UHF', Subcategory.PORTABLE, 'XPR3000e', 'UHF', 493.00, 300.00, 400, _ALL),
    ('XPR3300E-VHF', 'MOTOTRBO XPR3300e VHF', Subcategory.PORTABLE, 'XPR3000e', 'VHF', 493.00, 300.00, 250, _ALL),
    ('R7-UHF', 'MOTOTRBO R7 UHF', Subcategory.PORTABLE, 'R7', 'UHF', 899.00, 560.00, 300, _ALL),
    ('R7-VHF', 'MOTOTRBO R7 VHF', Subcategory.PORTABLE, 'R7', 'VHF', 899.00, 560.00, 150, _ALL),
    ('XPR7550E-UHF', 'MOTOTRBO XPR7550e UHF', Subcategory.PORTABLE, 'XPR7000e', 'UHF', 999.00, 640.00, 120, _ALL),
    ('SL3500E-UHF', 'MOTOTRBO SL3500e UHF', Subcategory.PORTABLE, 'SL', 'UHF', 649.00, 410.00, 200, _ALL),
    ('R2-UHF', 'Motorola R2 UHF', Subcategory.PORTABLE, 'R2', 'UHF', 299.00, 180.00, 500, _CONV),
    ('CP100D-UHF', 'MOTOTRBO CP100d UHF', Subcategory.PORTABLE, 'CP100d', 'UHF', 559.00, 350.00, 180, _ENTRY),
    ('XPR5550E-UHF', 'MOTOTRBO XPR5550e Mobile UHF', Subcategory.MOBILE, 'XPR5000e', 'UHF', 749.00, 470.00, 60, _ALL),
    ('XPR2500-VHF', 'MOTOTRBO XPR2500 Mobile VHF', Subcategory.MOBILE, 'XPR2500', 'VHF', 429.00, 270.00, 40, _ENTRY),
]

_REPEATERS = [
    ('SLR1000-UHF', 'MOTOTRBO SLR1000 Repeater UHF', 'UHF', 1899.00, 1200.00, 25, _CONV),
    ('SLR5700-UHF', 'MOTOTRBO SLR5700 Repeater UHF', 'UHF', 2899.00, 1850.00, 40, _ENTRY),
    ('SLR5700-VHF', 'MOTOTRBO SLR5700 Repeater VHF', 'VHF', 2899.00, 1850.00, 20, _ENTRY),
    ('SLR8000-UHF', 'MOTOTRBO SLR8000 Repeater UHF', 'UHF', 4799.00, 3100.00, 30, _ALL),
    ('SLR8000-VHF', 'MOTOTRBO SLR8000 Repeater VHF', 'VHF', 4799.00, 3100.00, 15, _ALL),
]

# sku, name, subcategory, band, price, cost, stock
_ACCESSORIES = [
    ('PMNN4807A', 'R7 2200mAh IMPRES Li-ion Battery', Subcategory.BATTERY, 'Universal', 89.00, 52.00, 900),
    ('PMNN4468B', 'IMPRES 2300mAh Li-ion Battery', Subcategory.BATTERY, 'Universal', 79.00, 46.00, 1200),
    ('PMNN4476A', '1600mAh Li-ion Battery', Subcategory.BATTERY, 'Universal', 59.00, 34.00, 800),
    ('PMNN4544A', 'IMPRES 2450mAh Li-ion Battery', Subcategory.BATTERY, 'Universal', 95.00, 56.00, 600),
    ('PMNN4477A', 'IMPRES 3000mAh Li-ion Battery', Subcategory.BATTERY, 'Universal', 99.00, 60.00, 300),
    ('PMNN4598A', 'R2 2100mAh Li-ion Battery', Subcategory.BATTERY, 'Universal', 55.00, 32.00, 700),
    ('PMNN4095', 'SL 1800mAh Li-ion Battery', Subcategory.BATTERY, 'Universal', 69.00, 40.00, 400),
    ('PMPN4137A', 'IMPRES 2 Single-Unit Charger', Subcategory.CHARGER, 'Universal', 129.00, 78.00, 350),
    ('PMLN6598A', 'IMPRES Multi-Unit Charger', Subcategory.CHARGER, 'Universal', 329.00, 205.00, 90),
    ('PMPN4173A', 'Standard Single-Unit Charger', Subcategory.CHARGER, 'Universal', 89.00, 52.00, 300),
    ('PMLN7190', 'SL Series Desktop Charger', Subcategory.CHARGER, 'Universal', 99.00, 60.00, 150),
    ('PMAE4003A', 'UHF Stubby Antenna 403-433MHz', Subcategory.ANTENNA, 'UHF', 25.00, 12.00, 500),
    ('PMAD4170', 'VHF Whip Antenna 136-155MHz', Subcategory.ANTENNA, 'VHF', 25.00, 12.00, 400),
    ('PMAE4016', 'UHF Whip Antenna 403-527MHz', Subcategory.ANTENNA, 'UHF', 22.00, 11.00, 450),
    ('PMAE4095', 'SL UHF Stubby Antenna', Subcategory.ANTENNA, 'UHF', 29.00, 14.00, 200),
    ('PMAD4145', 'SL VHF Stubby Antenna', Subcategory.ANTENNA, 'VHF', 29.00, 14.00, 150),
    ('PMMN4029A', 'Remote Speaker Microphone', Subcategory.AUDIO, 'Universal', 79.00, 45.00, 600),
    ('PMMN4073A', 'IMPRES Windporting RSM', Subcategory.AUDIO, 'Universal', 109.00, 64.00, 300),
    ('PMMN4125A', 'Submersible RSM', Subcategory.AUDIO, 'Universal', 119.00, 70.00, 200),
    ('RLN6554A', 'Wireless Earpiece', Subcategory.AUDIO, 'Universal', 39.00, 21.00, 400),
    ('PMLN7238', 'R7 Carry Holster', Subcategory.CARRYING, 'Universal', 35.00, 18.00, 500),
    ('PMLN5870', 'Leather Carry Case', Subcategory.CARRYING, 'Universal', 29.00, 15.00, 600),
    ('PMLN5868', 'Nylon Carry Case', Subcategory.CARRYING, 'Universal', 27.00, 14.00, 700),
    ('PMLN7008', 'R2 Belt Clip', Subcategory.CARRYING, 'Universal', 25.00, 12.00, 800),
    ('PMLN7190A', 'SL Series Holster', Subcategory.CARRYING, 'Universal', 29.00, 15.00, 300),
]


def default_catalog() -> list[Product]:
    """Reference catalog used to seed InMemoryCatalog."""
    products: list[Product] = []
    for sku, name, sub, family, band, price, cost, stock, archs in _RADIOS:
        products.append(Product(
            sku=sku, name=name, category=ProductCategory.RADIO, subcategory=sub,
            model_family=family, frequency_band=FrequencyBand(band),
            price=price, cost=cost, inventory_qty=stock,
            supported_architectures=list(archs),
        ))
    for sku, name, band, price, cost, stock, archs in _REPEATERS:
        products.append(Product(
            sku=sku, name=name, category=ProductCategory.REPEATER,
            subcategory=Subcategory.REPEATER, model_family=sku.split('-')[0],
            frequency_band=FrequencyBand(band), price=price, cost=cost,
            inventory_qty=stock, supported_architectures=list(archs),
        ))
    for sku, name, sub, band, price, cost, stock in _ACCESSORIES:
        products.append(Product(
            sku=sku, name=name, category=ProductCategory.ACCESSORY, subcategory=sub,
            frequency_band=FrequencyBand(band), price=price, cost=cost,
            inventory_qty=stock, lifecycle_status=LifecycleStatus.ACTIVE,
        ))
    return products


def seeded_catalog() -> InMemoryCatalog:
    catalog = InMemoryCatalog(default_catalog())
    logger.info("Seeded in-memory catalog with %d products", len(catalog.products))
    return catalog
