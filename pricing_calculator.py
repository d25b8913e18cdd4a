"""
Radio Quote Expert - Pricing Calculator

Deterministic aggregation of a quote:
  1. Repeater quantity from users, sites and architecture limits
  2. Radio and per-subcategory accessory quantities
  3. Installation labor (plus site survey/travel for multi-site)
  4. Licensing and inter-site linking
  5. Subtotal, tax, total, price per user and cost basis

No I/O and no clock reads; identical inputs give identical QuoteTotals.
"""
from __future__ import annotations
import logging
import random
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from architecture_selector import repeater_limit
from config import PricingRates
from models import (
    DeploymentRequirement, EquipmentSelection, LineItem, Product,
    QuoteEquipment, QuoteTotal, Subcategory, SystemArchitecture,
)

logger = logging.getLogger(__name__)


# ============================================================
# Quantity Rules
# ============================================================

# Integer ceilings keep quantities exact for every user count
ACCESSORY_QUANTITY_RULES: dict[Subcategory, Callable[[int], int]] = {
    Subcategory.BATTERY: lambda u: (u * 6 + 4) // 5,      # ceil(u * 1.2), spares
    Subcategory.CHARGER: lambda u: (u + 5) // 6,          # ceil(u / 6)
    Subcategory.ANTENNA: lambda u: u,
    Subcategory.CARRYING: lambda u: u,
    Subcategory.AUDIO: lambda u: (u * 3 + 9) // 10,       # ceil(u * 0.3)
}


def accessory_quantities(total_users: int) -> dict[Subcategory, int]:
    return {sub: rule(total_users) for sub, rule in ACCESSORY_QUANTITY_RULES.items()}


def repeater_quantity(total_users: int, architecture: SystemArchitecture, site_count: int = 1) -> int:
    """
    One repeater, plus one per started 100 users beyond the first 100.
    Multi-site needs at least one per site. Capped by the architecture.
    """
    qty = 1 + max(0, (total_users - 100 + 99) // 100)
    if site_count > 1:
        qty = max(qty, site_count)
    return min(qty, repeater_limit(architecture, site_count))


def _link_cost_per_site(rates: PricingRates, architecture: SystemArchitecture) -> float:
    return {
        SystemArchitecture.IP_SITE_CONNECT: rates.ip_site_connect_link_cost,
        SystemArchitecture.LINKED_CAPACITY_PLUS: rates.linked_capacity_plus_link_cost,
        SystemArchitecture.CAPACITY_MAX: rates.capacity_max_link_cost,
    }.get(architecture, 0.0)


# ============================================================
# Calculator
# ============================================================

@dataclass
class LaborBreakdown:
    repeater_hours: float
    radio_hours: float
    setup_hours: float
    site_hours: float = 0.0
    coordination_hours: float = 0.0

    @property
    def total_hours(self) -> float:
        return (self.repeater_hours + self.radio_hours + self.setup_hours
                + self.site_hours + self.coordination_hours)


class PricingCalculator:
    """Turns a requirement, architecture and equipment selection into a QuoteTotal."""

    def __init__(self, rates: Optional[PricingRates] = None):
        self.rates = rates or PricingRates()

    def labor(self, requirement: DeploymentRequirement, repeaters: int) -> LaborBreakdown:
        r = self.rates
        labor = LaborBreakdown(
            repeater_hours=repeaters * r.repeater_install_hours,
            radio_hours=requirement.total_users * r.radio_config_hours,
            setup_hours=r.system_setup_hours,
        )
        if requirement.is_multi_site:
            labor.site_hours = requirement.site_count * (r.site_survey_hours + r.site_travel_hours)
            labor.coordination_hours = (
                r.linked_coordination_hours if requirement.requires_inter_site
                else r.unlinked_coordination_hours
            )
        return labor

    def licensing(self, requirement: DeploymentRequirement) -> float:
        r = self.rates
        fee = r.licensing_fee
        if requirement.is_multi_site:
            fee += (requirement.site_count - 1) * r.additional_site_license_fee
            if requirement.requires_inter_site:
                fee += r.inter_site_license_fee
        return fee

    def linking(self, requirement: DeploymentRequirement, architecture: SystemArchitecture) -> float:
        if not (requirement.is_multi_site and requirement.requires_inter_site):
            return 0.0
        per_site = _link_cost_per_site(self.rates, architecture)
        if per_site == 0.0:
            return 0.0
        return per_site * requirement.site_count + self.rates.networking_equipment_cost

    def calculate(
        self,
        requirement: DeploymentRequirement,
        architecture: SystemArchitecture,
        selection: EquipmentSelection,
        unit_prices: Optional[dict[str, float]] = None,
        unit_costs: Optional[dict[str, float]] = None,
    ) -> QuoteTotal:
        """
        Aggregate every cost line. unit_prices/unit_costs override catalog
        values per SKU (live ERP pricing); absent SKUs use the catalog.
        """
        prices = unit_prices or {}
        costs = unit_costs or {}
        users = requirement.total_users

        def price(p: Product) -> float:
            return prices.get(p.sku, p.price)

        def cost(p: Product) -> float:
            return costs.get(p.sku, p.cost)

        repeaters = repeater_quantity(users, architecture, requirement.site_count)
        qty = accessory_quantities(users)

        repeater_cost = price(selection.repeater) * repeaters
        radio_cost = price(selection.radio) * users
        accessory_cost = sum(
            price(product) * qty[sub] for sub, product in sorted(selection.accessories.items())
        )

        labor = self.labor(requirement, repeaters)
        installation_cost = labor.total_hours * self.rates.labor_rate
        licensing_cost = self.licensing(requirement)
        linking_cost = self.linking(requirement, architecture)

        subtotal = round(
            repeater_cost + radio_cost + accessory_cost
            + installation_cost + licensing_cost + linking_cost, 2)
        tax = round(subtotal * self.rates.tax_rate, 2)
        total = round(subtotal + tax, 2)

        cost_basis = (
            cost(selection.repeater) * repeaters
            + cost(selection.radio) * users
            + sum(cost(product) * qty[sub] for sub, product in sorted(selection.accessories.items()))
            + labor.total_hours * self.rates.labor_cost_rate
            + licensing_cost + linking_cost
        )

        result = QuoteTotal(
            repeater_cost=round(repeater_cost, 2),
            radio_cost=round(radio_cost, 2),
            accessory_cost=round(accessory_cost, 2),
            installation_cost=round(installation_cost, 2),
            licensing_cost=round(licensing_cost, 2),
            linking_cost=round(linking_cost, 2),
            subtotal=subtotal,
            tax=tax,
            total=total,
            price_per_user=round(total / users, 2),
            cost_basis=round(cost_basis, 2),
        )
        logger.debug("Priced %s for %d users: total=%s", architecture.value, users, result.total)
        return result

    def line_items(
        self,
        requirement: DeploymentRequirement,
        architecture: SystemArchitecture,
        selection: EquipmentSelection,
        unit_prices: Optional[dict[str, float]] = None,
    ) -> QuoteEquipment:
        prices = unit_prices or {}
        users = requirement.total_users

        def item(p: Product, quantity: int) -> LineItem:
            unit = prices.get(p.sku, p.price)
            return LineItem(
                sku=p.sku, name=p.name, subcategory=p.subcategory,
                quantity=quantity, unit_price=unit,
                extended_price=round(unit * quantity, 2),
            )

        qty = accessory_quantities(users)
        repeaters = repeater_quantity(users, architecture, requirement.site_count)
        return QuoteEquipment(
            repeaters=[item(selection.repeater, repeaters)],
            radios=[item(selection.radio, users)],
            accessories=[
                item(product, qty[sub]) for sub, product in sorted(selection.accessories.items())
            ],
        )

    def required_quantities(
        self,
        requirement: DeploymentRequirement,
        architecture: SystemArchitecture,
        selection: EquipmentSelection,
    ) -> dict[str, int]:
        """SKU -> units needed, for inventory checks."""
        equipment = self.line_items(requirement, architecture, selection)
        needed: dict[str, int] = {}
        for li in equipment.repeaters + equipment.radios + equipment.accessories:
            needed[li.sku] = needed.get(li.sku, 0) + li.quantity
        return needed


# ============================================================
# Quote Numbers & Formatting
# ============================================================

def generate_quote_number(today: Optional[date] = None, rng: Optional[random.Random] = None) -> str:
    """Q{yymmdd}-{NNN}, e.g. Q261016-042."""
    today = today or date.today()
    rng = rng or random.Random()
    return f"Q{today:%y%m%d}-{rng.randint(0, 999):03d}"


def format_currency(amount: float) -> str:
    return f"${amount:,.2f}"
