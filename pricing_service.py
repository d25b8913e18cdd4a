"""
Radio Quote Expert - Pricing & Inventory Service

Collaborator-side adapters for live unit prices and stock levels:
  1. PricingService interface (get_pricing, get_inventory)
  2. ERPPricingClient: aiohttp client, batched item searches
  3. CircuitBreaker: opens on a sustained error rate, half-opens after a pause
  4. GuardedPricingService: timeout + breaker + short cache + long fallback cache
  5. StaticPricingService: catalog prices for local use and tests

The quote core never retries; recovery is limited to cached values here.
"""
from __future__ import annotations
import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Generic, Optional, TypeVar

import aiohttp

from catalog_repository import CatalogStore
from exceptions import ExternalServiceFailure
from models import InventoryLevel, PriceQuote, PricingSource

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================================
# Interface
# ============================================================

class PricingService:
    """Unit prices and stock levels keyed by SKU."""

    async def get_pricing(self, skus: list[str]) -> dict[str, PriceQuote]:
        raise NotImplementedError

    async def get_inventory(self, skus: list[str]) -> dict[str, InventoryLevel]:
        raise NotImplementedError


# ============================================================
# ERP Client
# ============================================================

def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)):
        # ERP sends epoch milliseconds
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable ERP timestamp %r", value)
        return None


class ERPPricingClient(PricingService):
    """Thin async client for the ERP item search endpoint."""

    PRICE_COLUMNS = ["itemid", "baseprice", "cost", "lastmodified"]
    INVENTORY_COLUMNS = ["itemid", "quantityavailable", "quantityonhand"]

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str,
        api_token: Optional[str] = None,
        *,
        batch_size: int = 50,
        timeout: float = 10.0,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._batch_size = max(1, batch_size)
        self._timeout = timeout

    def _batches(self, skus: list[str]) -> list[list[str]]:
        unique = sorted(set(skus))
        return [unique[i:i + self._batch_size] for i in range(0, len(unique), self._batch_size)]

    async def _search(self, search_type: str, skus: list[str], columns: list[str]) -> list[dict]:
        """POST one item search; returns the 'values' dict of every row."""
        url = f"{self._base_url}/rest/search"
        headers = {"Accept": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        payload = {
            "searchType": search_type,
            "filters": [["itemid", "anyof", skus], "AND", ["isinactive", "is", "F"]],
            "columns": columns,
        }
        logger.debug("ERP search %s for %d SKUs", search_type, len(skus))

        async with self._session.post(
            url, json=payload, headers=headers,
            timeout=aiohttp.ClientTimeout(total=self._timeout),
        ) as resp:
            if resp.status >= 400:
                body = await resp.text()
                logger.error("ERP search %s -> %s; body=%s", search_type, resp.status, body[:200])
                raise aiohttp.ClientResponseError(
                    resp.request_info,
                    resp.history,
                    status=resp.status,
                    message=body,
                    headers=resp.headers,
                )
            data = await resp.json(content_type=None)

        rows = (data or {}).get("list") or []
        return [row.get("values", {}) for row in rows]

    async def get_pricing(self, skus: list[str]) -> dict[str, PriceQuote]:
        prices: dict[str, PriceQuote] = {}
        try:
            for batch in self._batches(skus):
                for v in await self._search("item", batch, self.PRICE_COLUMNS):
                    prices[v["itemid"]] = PriceQuote(
                        price=float(v.get("baseprice") or 0),
                        cost=float(v.get("cost") or 0),
                        last_updated=_parse_timestamp(v.get("lastmodified")),
                    )
        except (aiohttp.ClientError, KeyError, ValueError) as e:
            logger.error("ERP pricing failed for %d SKUs: %s", len(skus), e)
            raise ExternalServiceFailure(
                f"Unable to retrieve pricing: {e}", service="erp", code="PRICING_FAILURE"
            ) from e
        return prices

    async def get_inventory(self, skus: list[str]) -> dict[str, InventoryLevel]:
        levels: dict[str, InventoryLevel] = {}
        try:
            for batch in self._batches(skus):
                for v in await self._search("inventoryitem", batch, self.INVENTORY_COLUMNS):
                    levels[v["itemid"]] = InventoryLevel(
                        available=int(v.get("quantityavailable") or 0))
        except (aiohttp.ClientError, KeyError, ValueError) as e:
            logger.error("ERP inventory failed for %d SKUs: %s", len(skus), e)
            raise ExternalServiceFailure(
                f"Unable to retrieve inventory: {e}", service="erp", code="INVENTORY_FAILURE"
            ) from e
        return levels


# ============================================================
# Circuit Breaker
# ============================================================

class CircuitBreaker:
    """
    closed -> open when the error rate over the recent window reaches the
    threshold (with at least min_calls outcomes); open -> half_open after
    reset_seconds; one trial call then closes or re-opens it.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        error_threshold: float = 0.5,
        min_calls: int = 4,
        reset_seconds: float = 30.0,
        window: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.error_threshold = error_threshold
        self.min_calls = min_calls
        self.reset_seconds = reset_seconds
        self.clock = clock
        self._outcomes: deque[bool] = deque(maxlen=window)
        self._state = self.CLOSED
        self._opened_at = 0.0

    @property
    def state(self) -> str:
        if self._state == self.OPEN and self.clock() - self._opened_at >= self.reset_seconds:
            self._state = self.HALF_OPEN
        return self._state

    def allow(self) -> bool:
        return self.state != self.OPEN

    def record_success(self) -> None:
        if self._state == self.HALF_OPEN:
            logger.info("Circuit breaker closed after successful trial call")
            self._outcomes.clear()
            self._state = self.CLOSED
        self._outcomes.append(True)

    def record_failure(self) -> None:
        if self.state == self.HALF_OPEN:
            self._trip()
            return
        self._outcomes.append(False)
        calls = len(self._outcomes)
        errors = calls - sum(self._outcomes)
        if calls >= self.min_calls and errors / calls >= self.error_threshold:
            self._trip()

    def _trip(self) -> None:
        self._state = self.OPEN
        self._opened_at = self.clock()
        logger.warning("Circuit breaker opened (reset in %.0fs)", self.reset_seconds)


# ============================================================
# Guarded Service
# ============================================================

@dataclass
class Fetched(Generic[T]):
    values: dict[str, T]
    source: PricingSource


class GuardedPricingService(PricingService):
    """
    Wraps a PricingService with a timeout, a circuit breaker and per-SKU
    caching. A fresh cache hit skips the call; on failure, entries younger
    than fallback_ttl are served instead. Nothing cached -> ExternalServiceFailure.
    """

    def __init__(
        self,
        inner: PricingService,
        timeout: float = 10.0,
        cache_ttl: float = 300.0,
        fallback_ttl: float = 86_400.0,
        breaker: Optional[CircuitBreaker] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.inner = inner
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.fallback_ttl = fallback_ttl
        self.breaker = breaker or CircuitBreaker(clock=clock)
        self.clock = clock
        self._cache: dict[tuple[str, str], tuple[float, Any]] = {}

    async def get_pricing(self, skus: list[str]) -> dict[str, PriceQuote]:
        return (await self.fetch_pricing(skus)).values

    async def get_inventory(self, skus: list[str]) -> dict[str, InventoryLevel]:
        return (await self.fetch_inventory(skus)).values

    async def fetch_pricing(self, skus: list[str]) -> Fetched[PriceQuote]:
        return await self._fetch("pricing", skus, self.inner.get_pricing)

    async def fetch_inventory(self, skus: list[str]) -> Fetched[InventoryLevel]:
        return await self._fetch("inventory", skus, self.inner.get_inventory)

    def _cached(self, kind: str, skus: list[str], max_age: float) -> Optional[dict[str, Any]]:
        now = self.clock()
        out = {}
        for sku in skus:
            entry = self._cache.get((kind, sku))
            if entry is None or now - entry[0] > max_age:
                return None
            out[sku] = entry[1]
        return out

    def _store(self, kind: str, values: dict[str, Any]) -> None:
        now = self.clock()
        for sku, value in values.items():
            self._cache[(kind, sku)] = (now, value)

    async def _fetch(
        self,
        kind: str,
        skus: list[str],
        call: Callable[[list[str]], Any],
    ) -> Fetched:
        skus = sorted(set(skus))
        fresh = self._cached(kind, skus, self.cache_ttl)
        if fresh is not None:
            logger.debug("Served %s for %d SKUs from cache", kind, len(skus))
            return Fetched(values=fresh, source=PricingSource.CACHE)

        if not self.breaker.allow():
            code, reason = "CIRCUIT_OPEN", f"{kind} circuit breaker is open"
        else:
            try:
                values = await asyncio.wait_for(call(skus), timeout=self.timeout)
            except asyncio.TimeoutError:
                self.breaker.record_failure()
                code, reason = "TIMEOUT", f"{kind} request timed out after {self.timeout}s"
            except ExternalServiceFailure as e:
                self.breaker.record_failure()
                code, reason = e.code, str(e)
            else:
                self.breaker.record_success()
                self._store(kind, values)
                return Fetched(values=values, source=PricingSource.LIVE)

        fallback = self._cached(kind, skus, self.fallback_ttl)
        if fallback is not None:
            logger.warning("Using fallback %s cache for %d SKUs: %s", kind, len(skus), reason)
            return Fetched(values=fallback, source=PricingSource.CACHE)

        logger.error("No cached %s for %d SKUs: %s", kind, len(skus), reason)
        raise ExternalServiceFailure(
            f"Unable to retrieve {kind}: {reason}",
            service=kind,
            code=code,
        )


# ============================================================
# Static Service
# ============================================================

class StaticPricingService(PricingService):
    """Serves catalog price/cost/stock as if they came from the ERP."""

    def __init__(self, catalog: CatalogStore):
        self.catalog = catalog

    async def get_pricing(self, skus: list[str]) -> dict[str, PriceQuote]:
        out: dict[str, PriceQuote] = {}
        for sku in sorted(set(skus)):
            product = await self.catalog.get_product(sku)
            if product is not None:
                out[sku] = PriceQuote(price=product.price, cost=product.cost)
        return out

    async def get_inventory(self, skus: list[str]) -> dict[str, InventoryLevel]:
        out: dict[str, InventoryLevel] = {}
        for sku in sorted(set(skus)):
            product = await self.catalog.get_product(sku)
            if product is not None:
                out[sku] = InventoryLevel(available=product.inventory_qty)
        return out
