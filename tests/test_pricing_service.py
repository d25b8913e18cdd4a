"""
Tests for pricing_service: circuit breaker, guarded cache/fallback,
static catalog pricing and the aiohttp ERP client.
"""

import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from exceptions import ExternalServiceFailure
from models import InventoryLevel, PriceQuote, PricingSource
from pricing_service import (
    CircuitBreaker, ERPPricingClient, GuardedPricingService, PricingService,
    StaticPricingService,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FlakyPricing(PricingService):
    """Returns $100 for every SKU unless told to fail or stall."""

    def __init__(self):
        self.calls = 0
        self.fail = False
        self.delay = 0.0

    async def _respond(self, skus, value):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ExternalServiceFailure("erp down", service="erp", code="PRICING_FAILURE")
        return {s: value for s in skus}

    async def get_pricing(self, skus):
        return await self._respond(skus, PriceQuote(price=100.0))

    async def get_inventory(self, skus):
        return await self._respond(skus, InventoryLevel(available=10))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def inner():
    return FlakyPricing()


@pytest.fixture
def guarded(inner, clock):
    return GuardedPricingService(inner, timeout=0.05, clock=clock)


class TestCircuitBreaker:
    def test_opens_at_error_rate(self, clock):
        breaker = CircuitBreaker(clock=clock)
        breaker.record_success()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.allow()
        breaker.record_failure()
        assert breaker.state == CircuitBreaker.OPEN
        assert not breaker.allow()

    def test_needs_minimum_calls(self, clock):
        breaker = CircuitBreaker(clock=clock)
        for _ in range(3):
            breaker.record_failure()
        assert breaker.state == CircuitBreaker.CLOSED
        breaker.record_failure()
        assert breaker.state == CircuitBreaker.OPEN

    def test_half_open_trial_success_closes(self, clock):
        breaker = CircuitBreaker(min_calls=1, clock=clock)
        breaker.record_failure()
        clock.advance(30)
        assert breaker.state == CircuitBreaker.HALF_OPEN
        assert breaker.allow()
        breaker.record_success()
        assert breaker.state == CircuitBreaker.CLOSED

    def test_half_open_trial_failure_reopens(self, clock):
        breaker = CircuitBreaker(min_calls=1, clock=clock)
        breaker.record_failure()
        clock.advance(30)
        breaker.record_failure()
        assert breaker.state == CircuitBreaker.OPEN


class TestGuardedPricingService:
    @pytest.mark.asyncio
    async def test_live_then_cached(self, guarded, inner):
        first = await guarded.fetch_pricing(["R7-UHF", "PMNN4468B"])
        second = await guarded.fetch_pricing(["PMNN4468B", "R7-UHF"])
        assert first.source == PricingSource.LIVE
        assert second.source == PricingSource.CACHE
        assert second.values == first.values
        assert inner.calls == 1

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_stale_cache(self, guarded, inner, clock):
        await guarded.fetch_pricing(["R7-UHF"])
        clock.advance(301)
        inner.delay = 1.0
        fetched = await guarded.fetch_pricing(["R7-UHF"])
        assert fetched.source == PricingSource.CACHE
        assert fetched.values["R7-UHF"].price == 100.0

    @pytest.mark.asyncio
    async def test_timeout_without_cache(self, guarded, inner):
        inner.delay = 1.0
        with pytest.raises(ExternalServiceFailure) as exc:
            await guarded.fetch_pricing(["R7-UHF"])
        assert exc.value.code == "TIMEOUT"
        assert exc.value.service == "pricing"

    @pytest.mark.asyncio
    async def test_failure_without_cache(self, guarded, inner):
        inner.fail = True
        with pytest.raises(ExternalServiceFailure) as exc:
            await guarded.fetch_inventory(["R7-UHF"])
        assert exc.value.code == "PRICING_FAILURE"

    @pytest.mark.asyncio
    async def test_fallback_expires(self, guarded, inner, clock):
        await guarded.fetch_pricing(["R7-UHF"])
        clock.advance(86_401)
        inner.fail = True
        with pytest.raises(ExternalServiceFailure):
            await guarded.fetch_pricing(["R7-UHF"])

    @pytest.mark.asyncio
    async def test_partial_cache_is_a_miss(self, guarded, inner):
        await guarded.fetch_pricing(["R7-UHF"])
        fetched = await guarded.fetch_pricing(["R7-UHF", "SLR1000-UHF"])
        assert fetched.source == PricingSource.LIVE
        assert inner.calls == 2

    @pytest.mark.asyncio
    async def test_open_breaker_skips_call(self, inner, clock):
        guarded = GuardedPricingService(
            inner, timeout=0.05, clock=clock,
            breaker=CircuitBreaker(min_calls=1, clock=clock))
        inner.fail = True
        with pytest.raises(ExternalServiceFailure):
            await guarded.fetch_pricing(["R7-UHF"])
        with pytest.raises(ExternalServiceFailure) as exc:
            await guarded.fetch_pricing(["R7-UHF"])
        assert exc.value.code == "CIRCUIT_OPEN"
        assert inner.calls == 1

    @pytest.mark.asyncio
    async def test_plain_interface(self, guarded):
        levels = await guarded.get_inventory(["R7-UHF"])
        assert levels == {"R7-UHF": InventoryLevel(available=10)}


class TestStaticPricingService:
    @pytest.mark.asyncio
    async def test_catalog_values(self, catalog):
        service = StaticPricingService(catalog)
        prices = await service.get_pricing(["R7-UHF", "NOPE"])
        assert prices == {"R7-UHF": PriceQuote(price=899.0, cost=560.0)}
        inventory = await service.get_inventory(["R7-UHF"])
        assert inventory["R7-UHF"].available == 300


# ============================================================
# ERP client against a fake aiohttp session
# ============================================================

class FakeResponse:
    def __init__(self, status, payload):
        self.status = status
        self._payload = payload
        self.request_info = SimpleNamespace(real_url="http://erp.test/rest/search")
        self.history = ()
        self.headers = {}

    async def json(self, content_type=None):
        return self._payload

    async def text(self):
        return str(self._payload)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, status=200, rows=None):
        self.status = status
        self.rows = rows
        self.requests = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers})
        skus = json["filters"][0][2]
        rows = self.rows if self.rows is not None else [
            {"values": {"itemid": s, "baseprice": "10.5", "cost": "6",
                        "lastmodified": 1760000000000,
                        "quantityavailable": "7"}}
            for s in skus
        ]
        return FakeResponse(self.status, {"list": rows})


class TestERPPricingClient:
    @pytest.mark.asyncio
    async def test_batches_and_parses(self):
        session = FakeSession()
        client = ERPPricingClient(session, "http://erp.test/", "token", batch_size=50)
        skus = [f"SKU{i:03d}" for i in range(120)]
        prices = await client.get_pricing(skus)

        assert len(session.requests) == 3
        assert session.requests[0]["url"] == "http://erp.test/rest/search"
        assert session.requests[0]["headers"]["Authorization"] == "Bearer token"
        assert len(prices) == 120
        quote = prices["SKU000"]
        assert (quote.price, quote.cost) == (10.5, 6.0)
        assert quote.last_updated == datetime.fromtimestamp(1760000000, tz=timezone.utc)

    @pytest.mark.asyncio
    async def test_inventory(self):
        client = ERPPricingClient(FakeSession(), "http://erp.test")
        levels = await client.get_inventory(["R7-UHF"])
        assert levels == {"R7-UHF": InventoryLevel(available=7)}

    @pytest.mark.asyncio
    async def test_http_error_is_wrapped(self):
        client = ERPPricingClient(FakeSession(status=500), "http://erp.test")
        with pytest.raises(ExternalServiceFailure) as exc:
            await client.get_pricing(["R7-UHF"])
        assert exc.value.code == "PRICING_FAILURE"
        assert exc.value.service == "erp"

    @pytest.mark.asyncio
    async def test_malformed_row_is_wrapped(self):
        client = ERPPricingClient(FakeSession(rows=[{"values": {"baseprice": "1"}}]), "http://erp.test")
        with pytest.raises(ExternalServiceFailure) as exc:
            await client.get_inventory(["R7-UHF"])
        assert exc.value.code == "INVENTORY_FAILURE"
