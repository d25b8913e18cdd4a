"""Shared fixtures: seeded catalog, settings and a recording audit sink."""

import random

import pytest

from catalog_repository import InMemoryCatalog, default_catalog
from config import SafetyThresholds, Settings
from models import DeploymentRequirement, Industry, Product, QuoteTotal
from pricing_service import StaticPricingService
from quote_pipeline import QuotePipeline
from safety_validator import InMemoryAuditSink, SafetyValidator


@pytest.fixture
def products() -> list[Product]:
    return default_catalog()


@pytest.fixture
def by_sku(products) -> dict[str, Product]:
    return {p.sku: p for p in products}


@pytest.fixture
def catalog(products) -> InMemoryCatalog:
    return InMemoryCatalog(products)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def validator(audit_sink) -> SafetyValidator:
    return SafetyValidator(SafetyThresholds(), audit_sink=audit_sink)


@pytest.fixture
def pipeline(catalog, settings, validator) -> QuotePipeline:
    return QuotePipeline(
        catalog,
        StaticPricingService(catalog),
        settings=settings,
        validator=validator,
        rng=random.Random(7),
    )


def make_requirement(
    site_count: int = 1,
    users_per_site: int = 25,
    industry: Industry = Industry.GENERAL,
    **kwargs,
) -> DeploymentRequirement:
    return DeploymentRequirement(
        site_count=site_count, users_per_site=users_per_site, industry=industry, **kwargs)


def make_total(total: float, users: int, cost_basis: float = 0.0) -> QuoteTotal:
    return QuoteTotal(
        repeater_cost=0.0,
        radio_cost=0.0,
        accessory_cost=0.0,
        installation_cost=0.0,
        licensing_cost=0.0,
        subtotal=total,
        tax=0.0,
        total=total,
        price_per_user=round(total / users, 2),
        cost_basis=cost_basis,
    )
