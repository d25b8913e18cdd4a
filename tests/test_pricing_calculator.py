"""Tests for PricingCalculator quantities, cost lines and quote numbers."""

import random
import re
from datetime import date

import pytest

from config import Settings
from conftest import make_requirement
from models import EquipmentSelection, Industry, Subcategory, SystemArchitecture as Arch
from pricing_calculator import (
    PricingCalculator, accessory_quantities, format_currency,
    generate_quote_number, repeater_quantity,
)


@pytest.fixture
def calculator():
    return PricingCalculator()


@pytest.fixture
def selection(by_sku):
    return EquipmentSelection(
        radio=by_sku["R7-UHF"],
        repeater=by_sku["SLR1000-UHF"],
        accessories={
            Subcategory.BATTERY: by_sku["PMNN4468B"],
            Subcategory.CHARGER: by_sku["PMPN4137A"],
        },
    )


class TestQuantities:
    def test_accessory_quantities_round_up(self):
        assert accessory_quantities(25) == {
            Subcategory.BATTERY: 30,
            Subcategory.CHARGER: 5,
            Subcategory.ANTENNA: 25,
            Subcategory.CARRYING: 25,
            Subcategory.AUDIO: 8,
        }

    def test_single_user(self):
        qty = accessory_quantities(1)
        assert qty[Subcategory.BATTERY] == 2
        assert qty[Subcategory.CHARGER] == 1
        assert qty[Subcategory.AUDIO] == 1

    @pytest.mark.parametrize("users,arch,sites,expected", [
        (50, Arch.CONVENTIONAL, 1, 1),
        (1000, Arch.CONVENTIONAL, 1, 1),
        (100, Arch.CAPACITY_PLUS, 1, 1),
        (101, Arch.CAPACITY_PLUS, 1, 2),
        (250, Arch.CAPACITY_PLUS, 1, 3),
        (200, Arch.IP_SITE_CONNECT, 5, 5),
        (2000, Arch.CAPACITY_MAX, 4, 20),
    ])
    def test_repeater_quantity(self, users, arch, sites, expected):
        assert repeater_quantity(users, arch, sites) == expected


class TestCalculate:
    def test_single_site_conventional(self, calculator, selection):
        total = calculator.calculate(make_requirement(1, 25), Arch.CONVENTIONAL, selection)
        assert total.repeater_cost == 1899.0
        assert total.radio_cost == 22475.0
        assert total.accessory_cost == 3015.0
        assert total.installation_cost == 2082.5
        assert total.licensing_cost == 800.0
        assert total.linking_cost == 0.0
        assert total.subtotal == 30271.5
        assert total.tax == 2421.72
        assert total.total == 32693.22
        assert total.price_per_user == 1307.73
        assert total.cost_basis == 19117.5

    def test_pure(self, calculator, selection):
        req = make_requirement(1, 25)
        assert calculator.calculate(req, Arch.CONVENTIONAL, selection) == calculator.calculate(
            req, Arch.CONVENTIONAL, selection)

    def test_unit_price_override(self, calculator, selection):
        total = calculator.calculate(
            make_requirement(1, 25), Arch.CONVENTIONAL, selection,
            unit_prices={"R7-UHF": 900.0})
        assert total.radio_cost == 22500.0

    def test_multi_site_fees(self, calculator, selection):
        req = make_requirement(5, 40, Industry.HEALTHCARE)
        assert calculator.licensing(req) == 1800.0
        assert calculator.linking(req, Arch.IP_SITE_CONNECT) == 13700.0
        assert calculator.labor(req, 5).total_hours == 222.0

    def test_rates_from_settings(self):
        settings = Settings(
            _env_file=None, ip_site_connect_link_cost=3000.0, linked_coordination_hours=10.0)
        calculator = PricingCalculator(settings.pricing_rates)
        req = make_requirement(5, 40, Industry.HEALTHCARE)
        assert calculator.linking(req, Arch.IP_SITE_CONNECT) == 16200.0
        assert calculator.labor(req, 5).total_hours == 224.0

    def test_single_site_has_no_linking(self, calculator):
        assert calculator.linking(make_requirement(1, 400), Arch.CAPACITY_PLUS) == 0.0


class TestLineItems:
    def test_line_items(self, calculator, selection):
        equipment = calculator.line_items(make_requirement(1, 25), Arch.CONVENTIONAL, selection)
        assert [(li.sku, li.quantity) for li in equipment.radios] == [("R7-UHF", 25)]
        assert [(li.sku, li.quantity) for li in equipment.repeaters] == [("SLR1000-UHF", 1)]
        battery = next(li for li in equipment.accessories if li.sku == "PMNN4468B")
        assert battery.quantity == 30
        assert battery.extended_price == 2370.0

    def test_required_quantities(self, calculator, selection):
        assert calculator.required_quantities(
            make_requirement(1, 25), Arch.CONVENTIONAL, selection,
        ) == {"R7-UHF": 25, "SLR1000-UHF": 1, "PMNN4468B": 30, "PMPN4137A": 5}


class TestFormatting:
    def test_quote_number(self):
        number = generate_quote_number(date(2026, 10, 16), random.Random(1))
        assert re.fullmatch(r"Q261016-\d{3}", number)

    def test_currency(self):
        assert format_currency(1234.5) == "$1,234.50"
