"""
asyncpg_repository.py - Production PostgreSQL catalog and learning-pattern stores.

Implements the CatalogStore and PatternStore interfaces on an asyncpg
connection pool. Tables follow the quoting schema: parts (catalog) and
ai_learning_patterns (learning read path).
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

import asyncpg

from catalog_repository import CatalogStore
from models import (
    FrequencyBand, Industry, LearningPattern, LifecycleStatus, PatternType,
    Product, ProductCategory, Subcategory, SystemArchitecture,
)
from recommendation_engine import PatternStore

logger = logging.getLogger(__name__)

# ── Connection Pool Manager ──────────────────────────────────────────────────

class DatabasePool:
    """Manages asyncpg connection pool lifecycle."""

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[asyncpg.Pool] = None

    async def initialize(self) -> None:
        """Create connection pool and install the jsonb codec."""
        self._pool = await asyncpg.create_pool(
            self.dsn,
            min_size=self.min_size,
            max_size=self.max_size,
            command_timeout=30,
            init=self._init_connection,
        )
        logger.info(
            "Database pool initialized (min=%d, max=%d)", self.min_size, self.max_size
        )

    async def _init_connection(self, conn: asyncpg.Connection) -> None:
        """Per-connection setup: decode jsonb columns to Python objects."""
        await conn.set_type_codec(
            "jsonb",
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")
        return self._pool

    @asynccontextmanager
    async def acquire(self):
        async with self.pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self):
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def healthcheck(self) -> bool:
        async with self.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            logger.info("Database pool closed")


# ── Row Mapping ──────────────────────────────────────────────────────────────

_LIFECYCLE_ALIASES = {
    "current": LifecycleStatus.ACTIVE,
    "new": LifecycleStatus.ACTIVE,
    "legacy": LifecycleStatus.LIMITED,
    "eol": LifecycleStatus.DISCONTINUED,
}


def _lifecycle(value: Optional[str]) -> LifecycleStatus:
    if not value:
        return LifecycleStatus.ACTIVE
    v = value.strip().lower()
    if v in _LIFECYCLE_ALIASES:
        return _LIFECYCLE_ALIASES[v]
    return LifecycleStatus(v)


def _architectures(value: Any) -> list[SystemArchitecture]:
    if value is None:
        return []
    if isinstance(value, str):
        value = json.loads(value)
    return [SystemArchitecture(a) for a in value]


def row_to_product(row: Any) -> Product:
    r = dict(row)
    return Product(
        id=str(r["id"]),
        sku=r["sku"],
        name=r["name"],
        category=ProductCategory(r["category"]),
        subcategory=Subcategory(r["subcategory"]),
        model_family=r.get("model_series"),
        frequency_band=FrequencyBand(r.get("frequency_band") or FrequencyBand.UNIVERSAL.value),
        price=float(r["price"]),
        cost=float(r.get("cost") or 0.0),
        inventory_qty=int(r.get("inventory_qty") or 0),
        lifecycle_status=_lifecycle(r.get("lifecycle_status")),
        supported_architectures=_architectures(r.get("system_architectures")),
        description=r.get("description"),
    )


_PRODUCT_COLUMNS = """
    id, sku, name, category, subcategory, model_series, frequency_band,
    price, cost, inventory_qty, lifecycle_status, system_architectures, description
"""


# ── Catalog Store ────────────────────────────────────────────────────────────

class AsyncPGCatalogStore(CatalogStore):
    """
    Production catalog implementing the CatalogStore interface.

    Methods match the interface defined in catalog_repository.py:
    - get_products_by_category(category) -> list[Product]
    - get_product(sku) -> Optional[Product]
    """

    def __init__(self, db: DatabasePool):
        self.db = db

    async def get_products_by_category(self, category: ProductCategory) -> list[Product]:
        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_PRODUCT_COLUMNS}
                FROM parts
                WHERE category = $1
                ORDER BY sku
                """,
                category.value,
            )
        products = []
        for row in rows:
            try:
                products.append(row_to_product(row))
            except ValueError:
                logger.warning("Skipping malformed catalog row %s", row["sku"], exc_info=True)
        return products

    async def get_product(self, sku: str) -> Optional[Product]:
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_PRODUCT_COLUMNS} FROM parts WHERE UPPER(sku) = UPPER($1)",
                sku,
            )
        return row_to_product(row) if row else None


# ── Learning Patterns ────────────────────────────────────────────────────────

class AsyncPGPatternStore(PatternStore):
    """Learning-pattern read path (plus inserts from outcome tracking)."""

    def __init__(self, db: DatabasePool):
        self.db = db

    async def get_patterns(self, industry: Industry, user_range: str) -> list[LearningPattern]:
        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT pattern_type, pattern_data, confidence_score, success_rate,
                       sample_size, industry, user_count_range
                FROM ai_learning_patterns
                WHERE (industry = $1 OR industry IS NULL)
                  AND (user_count_range = $2 OR user_count_range IS NULL)
                ORDER BY confidence_score DESC, sample_size DESC
                """,
                industry.value,
                user_range,
            )
        return [
            LearningPattern(
                pattern_type=PatternType(r["pattern_type"]),
                industry=Industry(r["industry"]) if r["industry"] else Industry.GENERAL,
                user_range=r["user_count_range"] or user_range,
                data=r["pattern_data"] or {},
                success_rate=float(r["success_rate"] or 0.0),
                sample_size=int(r["sample_size"] or 0),
                confidence=float(r["confidence_score"] or 0.0),
            )
            for r in rows
        ]

    async def add_pattern(self, pattern: LearningPattern) -> None:
        now = datetime.now(timezone.utc)
        async with self.db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO ai_learning_patterns (
                    pattern_type, pattern_data, confidence_score, success_rate,
                    sample_size, industry, user_count_range, created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $8)
                """,
                pattern.pattern_type.value,
                pattern.data,
                pattern.confidence,
                pattern.success_rate,
                pattern.sample_size,
                pattern.industry.value,
                pattern.user_range,
                now,
            )
        logger.info("Stored %s pattern for %s/%s",
                    pattern.pattern_type.value, pattern.industry.value, pattern.user_range)
