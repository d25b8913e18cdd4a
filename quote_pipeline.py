"""
Radio Quote Expert - Quote Pipeline

Orchestrates one quote request end to end:
  text -> requirement -> pre-validation -> architecture -> catalog
       -> equipment (+ learning re-rank) -> live pricing -> totals
       -> post-validation -> Quote | ValidationFailure

Every step appends to the decision trace. Collaborator calls are bounded
by Settings.external_timeout_seconds; only pricing/inventory have a cache.
"""
from __future__ import annotations
import asyncio
import logging
import random
import time
from datetime import date, datetime, timezone
from typing import Optional

from architecture_selector import select_for
from catalog_repository import CatalogStore
from config import Settings, get_settings
from exceptions import ExternalServiceFailure, ValidationFailure
from models import (
    AdjustmentResult, DecisionTrace, DeploymentRequirement, EquipmentSelection,
    InventoryLevel, LearningSummary, PriceQuote, PricingSnapshot, PricingSource,
    Product, ProductCategory, Quote, SystemArchitecture,
)
from pricing_calculator import PricingCalculator, format_currency, generate_quote_number
from pricing_service import CircuitBreaker, GuardedPricingService, PricingService
from recommendation_engine import (
    EquipmentRecommender, InMemoryPatternStore, PatternStore,
    RecommendationAdjuster, profile_for,
)
from requirement_extraction import RequirementExtractor, extractor_from_settings
from safety_validator import SafetyValidator

logger = logging.getLogger(__name__)

_SOURCE_RANK = {
    PricingSource.LIVE: 0,
    PricingSource.CATALOG: 1,
    PricingSource.CACHE: 2,
    PricingSource.UNAVAILABLE: 3,
}


def _worst(*sources: PricingSource) -> PricingSource:
    return max(sources, key=_SOURCE_RANK.__getitem__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class QuotePipeline:
    """
    Requirement-to-quote decision pipeline.

    The synchronous stages (extraction, selection, resolution, pricing math,
    validation) are pure; this class only sequences them and owns the
    collaborator calls.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        pricing: PricingService,
        settings: Optional[Settings] = None,
        validator: Optional[SafetyValidator] = None,
        recommender: Optional[EquipmentRecommender] = None,
        adjuster: Optional[RecommendationAdjuster] = None,
        extractor: Optional[RequirementExtractor] = None,
        calculator: Optional[PricingCalculator] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or get_settings()
        s = self.settings
        self.catalog = catalog
        if isinstance(pricing, GuardedPricingService):
            self.pricing = pricing
        else:
            self.pricing = GuardedPricingService(
                pricing,
                timeout=s.external_timeout_seconds,
                cache_ttl=s.pricing_cache_ttl_seconds,
                fallback_ttl=s.pricing_fallback_ttl_seconds,
                breaker=CircuitBreaker(
                    error_threshold=s.breaker_error_threshold,
                    min_calls=s.breaker_min_calls,
                    reset_seconds=s.breaker_reset_seconds,
                ),
            )
        self.validator = validator or SafetyValidator(s.safety_thresholds)
        self.recommender = recommender or EquipmentRecommender()
        self.adjuster = adjuster
        self.extractor = extractor or extractor_from_settings(s)
        self.calculator = calculator or PricingCalculator(s.pricing_rates)
        self.rng = rng or random.Random()

    # ----------------------------------------------------------
    # Public API
    # ----------------------------------------------------------

    async def build_quote(self, text: str) -> Quote:
        """
        Raises InvalidRequirement / UnreasonableRequestError from extraction,
        ValidationFailure when either validation stage finds a CRITICAL,
        CompatibilityGap when no radio/repeater pairing exists, and
        ExternalServiceFailure when the catalog is unreachable.
        """
        start = time.monotonic()
        trace: list[DecisionTrace] = []

        # --- Step 1: Extract requirement ---
        requirement = self.extractor.extract(text)
        trace.append(DecisionTrace(
            step='requirement_extraction',
            detail=f"{requirement.site_count} site(s) x {requirement.users_per_site} users "
                   f"= {requirement.total_users}; industry={requirement.industry.value}; "
                   f"band={requirement.frequency_band.value}"
                   + (f"; assumptions: {'; '.join(requirement.assumptions)}"
                      if requirement.assumptions else ''),
            timestamp=_now(),
        ))

        # --- Step 2: Pre-validation ---
        pre = self.validator.pre_validate(requirement)
        trace.append(DecisionTrace(
            step='pre_validation',
            detail=f"{'passed' if pre.is_valid else 'failed'} ({pre.audit_id}); "
                   f"{len(pre.errors)} errors, {len(pre.warnings)} warnings",
            timestamp=_now(),
        ))
        if not pre.is_valid:
            raise ValidationFailure(pre)

        # --- Step 3: Architecture ---
        architecture = select_for(requirement)
        trace.append(DecisionTrace(
            step='architecture_selection',
            detail=f"{architecture.value} for {requirement.total_users} users, "
                   f"{'multi' if requirement.is_multi_site else 'single'}-site",
            timestamp=_now(),
        ))

        # --- Step 4: Catalog ---
        products = await self._load_catalog()
        trace.append(DecisionTrace(
            step='catalog_lookup',
            detail=f"{len(products)} catalog products loaded",
            timestamp=_now(),
        ))

        # --- Step 5: Equipment (+ learning) ---
        ranked = self.recommender.rank_radios(requirement, architecture, products)
        insights: list[str] = []
        learning: Optional[LearningSummary] = None
        if self.adjuster is not None:
            adjustment, skipped = await self._adjust(requirement, ranked)
            if skipped:
                trace.append(DecisionTrace(
                    step='learning_adjustment',
                    detail=f"skipped: {skipped}",
                    timestamp=_now(),
                ))
            elif adjustment.patterns_applied:
                ranked = adjustment.radios
                insights.extend(adjustment.insights)
                learning = adjustment.summary()
                trace.append(DecisionTrace(
                    step='learning_adjustment',
                    detail=f"{adjustment.patterns_applied} learned patterns applied",
                    timestamp=_now(),
                ))
        selection = self.recommender.select(
            requirement, architecture, products, ranked_radios=ranked)
        trace.append(DecisionTrace(
            step='equipment_selection',
            detail=f"radio={selection.radio.sku}, repeater={selection.repeater.sku} "
                   f"x{selection.repeater_quantity}, accessories="
                   f"{', '.join(p.sku for _, p in sorted(selection.accessories.items()))}",
            timestamp=_now(),
        ))
        profile = profile_for(requirement.industry)
        if profile.notes:
            insights.append(profile.notes)

        # --- Step 6: Pricing refresh ---
        snapshot = await self._pricing_snapshot(requirement, architecture, selection)
        trace.append(DecisionTrace(
            step='pricing_refresh',
            detail=f"source={snapshot.source.value}"
                   + (f"; {snapshot.failure}" if snapshot.failure else ''),
            timestamp=_now(),
        ))

        # --- Step 7: Totals ---
        unit_prices = {sku: q.price for sku, q in snapshot.erp_prices.items()}
        unit_costs = {sku: q.cost for sku, q in snapshot.erp_prices.items() if q.cost > 0}
        total = self.calculator.calculate(
            requirement, architecture, selection, unit_prices, unit_costs)
        equipment = self.calculator.line_items(
            requirement, architecture, selection, unit_prices)
        snapshot.quoted_prices = {
            li.sku: li.unit_price
            for li in equipment.repeaters + equipment.radios + equipment.accessories
        }
        trace.append(DecisionTrace(
            step='pricing_calculation',
            detail=f"total={format_currency(total.total)}; "
                   f"per user={format_currency(total.price_per_user)}",
            timestamp=_now(),
        ))

        # --- Step 8: Post-validation ---
        validation = self.validator.post_validate(requirement, architecture, total, snapshot)
        trace.append(DecisionTrace(
            step='post_validation',
            detail=f"{'passed' if validation.is_valid else 'failed'} ({validation.audit_id}); "
                   f"{len(validation.errors)} errors, {len(validation.warnings)} warnings",
            timestamp=_now(),
        ))

        quote = Quote(
            quote_number=generate_quote_number(date.today(), self.rng),
            architecture=architecture,
            requirement=requirement,
            equipment=equipment,
            pricing=total,
            validation=validation,
            pricing_source=snapshot.source,
            insights=insights,
            gaps=list(selection.gaps),
            alternate_radios=[p.sku for p in selection.alternate_radios],
            learning=learning,
            total_display=format_currency(total.total),
            decision_trace=trace,
            response_time_ms=int((time.monotonic() - start) * 1000),
        )
        if not validation.is_valid:
            raise ValidationFailure(validation, quote)

        logger.info("Quote %s: %s, %s", quote.quote_number, architecture.value, quote.total_display)
        return quote

    # ----------------------------------------------------------
    # Collaborators
    # ----------------------------------------------------------

    async def _load_catalog(self) -> list[Product]:
        timeout = self.settings.external_timeout_seconds
        categories = [ProductCategory.RADIO, ProductCategory.REPEATER, ProductCategory.ACCESSORY]
        try:
            groups = await asyncio.wait_for(
                asyncio.gather(*(self.catalog.get_products_by_category(c) for c in categories)),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("Catalog lookup timed out after %ss", timeout)
            raise ExternalServiceFailure(
                f"Catalog lookup timed out after {timeout}s",
                service="catalog", code="CATALOG_FAILURE",
            ) from e
        except Exception as e:
            logger.error("Catalog lookup failed: %s", e)
            raise ExternalServiceFailure(
                f"Catalog lookup failed: {e}",
                service="catalog", code="CATALOG_FAILURE",
            ) from e
        return [p for group in groups for p in group]

    async def _adjust(
        self, requirement: DeploymentRequirement, ranked: list[Product]
    ) -> tuple[Optional[AdjustmentResult], Optional[str]]:
        """Learning is advisory: a slow or failing pattern store skips it."""
        timeout = self.settings.external_timeout_seconds
        try:
            adjustment = await asyncio.wait_for(
                self.adjuster.adjust(requirement, ranked), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Learning patterns timed out after %ss; using base ranking", timeout)
            return None, f"pattern store timed out after {timeout}s"
        except Exception as e:
            logger.warning("Learning patterns unavailable (%s); using base ranking", e)
            return None, f"pattern store unavailable: {e}"
        return adjustment, None

    async def _pricing_snapshot(
        self,
        requirement: DeploymentRequirement,
        architecture: SystemArchitecture,
        selection: EquipmentSelection,
    ) -> PricingSnapshot:
        required = self.calculator.required_quantities(requirement, architecture, selection)
        skus = sorted(required)
        failures: list[str] = []

        prices: dict[str, PriceQuote] = {}
        price_source = PricingSource.UNAVAILABLE
        try:
            fetched = await self.pricing.fetch_pricing(skus)
            prices, price_source = fetched.values, fetched.source
        except ExternalServiceFailure as e:
            logger.warning("Pricing unavailable (%s): %s", e.code, e)
            failures.append(f"pricing: {e}")

        inventory: dict[str, InventoryLevel] = {}
        inventory_source = PricingSource.UNAVAILABLE
        try:
            fetched_inv = await self.pricing.fetch_inventory(skus)
            inventory, inventory_source = fetched_inv.values, fetched_inv.source
        except ExternalServiceFailure as e:
            logger.warning("Inventory unavailable (%s): %s", e.code, e)
            failures.append(f"inventory: {e}")

        return PricingSnapshot(
            source=_worst(price_source, inventory_source),
            erp_prices=prices,
            inventory=inventory,
            required_quantities=required,
            failure='; '.join(failures) or None,
        )


def build_pipeline(
    catalog: CatalogStore,
    pricing: PricingService,
    settings: Optional[Settings] = None,
    patterns: Optional[PatternStore] = None,
) -> QuotePipeline:
    """Wire a pipeline from settings; learning uses an empty store unless one is given."""
    settings = settings or get_settings()
    adjuster = RecommendationAdjuster(
        patterns if patterns is not None else InMemoryPatternStore(),
        confidence_threshold=settings.learning_confidence_threshold,
        min_sample_size=settings.learning_min_sample_size,
        enabled=settings.learning_enabled,
    )
    return QuotePipeline(catalog, pricing, settings=settings, adjuster=adjuster)
