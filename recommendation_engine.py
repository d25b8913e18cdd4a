"""
Radio Quote Expert - Recommendation Engine

Responsibilities:
  1. Industry profiles (preferred radio families, accessory kit, install notes)
  2. Radio ranking by band match, industry preference and stock
  3. Repeater and accessory selection through the compatibility resolver
  4. Learning-pattern read path that re-ranks radios and annotates quotes
  5. Never overrides architecture selection or validation
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from compatibility_resolver import (
    bands_conflict, compatible_only, resolve_compatibility,
)
from exceptions import CompatibilityGap
from models import (
    AdjustmentResult, CompatibilityEdge, CompatibilityType,
    DeploymentRequirement, EquipmentSelection, FrequencyBand, Industry,
    LearningPattern, PatternType, Product, ProductCategory, Subcategory,
    SystemArchitecture,
)
from pricing_calculator import repeater_quantity

logger = logging.getLogger(__name__)


# ============================================================
# Industry Profiles
# ============================================================

_PORTABLE_KIT = (Subcategory.BATTERY, Subcategory.CHARGER, Subcategory.AUDIO, Subcategory.CARRYING)
_FULL_KIT = (
    Subcategory.BATTERY, Subcategory.CHARGER, Subcategory.ANTENNA,
    Subcategory.AUDIO, Subcategory.CARRYING,
)


@dataclass
class IndustryProfile:
    """Equipment preferences for one industry."""
    industry: Industry
    preferred_families: list[str] = field(default_factory=list)
    accessories: tuple[Subcategory, ...] = _PORTABLE_KIT
    notes: str = ""


INDUSTRY_PROFILES: dict[Industry, IndustryProfile] = {
    Industry.EDUCATION: IndustryProfile(
        industry=Industry.EDUCATION,
        preferred_families=['XPR3000e', 'R2'],
        notes='Installation window is usually the summer break.',
    ),
    Industry.HEALTHCARE: IndustryProfile(
        industry=Industry.HEALTHCARE,
        preferred_families=['XPR7000e', 'R7', 'SL'],
    ),
    Industry.MANUFACTURING: IndustryProfile(
        industry=Industry.MANUFACTURING,
        preferred_families=['R7', 'XPR3000e', 'XPR5000e'],
        accessories=_FULL_KIT,
        notes='Check for hazardous areas that need intrinsically safe radios.',
    ),
    Industry.CONSTRUCTION: IndustryProfile(
        industry=Industry.CONSTRUCTION,
        preferred_families=['R7', 'XPR7000e'],
        accessories=_FULL_KIT,
    ),
    Industry.WAREHOUSING: IndustryProfile(
        industry=Industry.WAREHOUSING,
        preferred_families=['R7', 'XPR3000e', 'XPR5000e'],
        accessories=_FULL_KIT,
    ),
    Industry.RETAIL: IndustryProfile(
        industry=Industry.RETAIL,
        preferred_families=['SL', 'CP100d', 'R2'],
        accessories=(Subcategory.BATTERY, Subcategory.CHARGER, Subcategory.AUDIO),
    ),
    Industry.HOSPITALITY: IndustryProfile(
        industry=Industry.HOSPITALITY,
        preferred_families=['SL', 'XPR3000e'],
    ),
    Industry.SECURITY: IndustryProfile(
        industry=Industry.SECURITY,
        preferred_families=['R7', 'XPR7000e'],
    ),
    Industry.GENERAL: IndustryProfile(
        industry=Industry.GENERAL,
        preferred_families=['XPR3000e', 'R7'],
    ),
}

_missing_profiles = set(Industry) - set(INDUSTRY_PROFILES)
if _missing_profiles:
    raise RuntimeError(
        f"INDUSTRY_PROFILES has no entry for: {sorted(i.value for i in _missing_profiles)}")


def profile_for(industry: Industry) -> IndustryProfile:
    return INDUSTRY_PROFILES[industry]


# ============================================================
# Equipment Recommender
# ============================================================

TYPE_STRENGTH: dict[CompatibilityType, int] = {
    CompatibilityType.REQUIRED: 3,
    CompatibilityType.RECOMMENDED: 2,
    CompatibilityType.OPTIONAL: 1,
    CompatibilityType.INCOMPATIBLE: 0,
}


def family_rank(product: Product, preferred: list[str]) -> Optional[int]:
    """Index of the first preference naming this product's family or SKU."""
    family = (product.model_family or '').lower()
    sku = product.sku.lower()
    for i, pref in enumerate(preferred):
        p = pref.lower()
        if family == p or sku.startswith(p):
            return i
    return None


@dataclass
class RadioScore:
    product: Product
    score: float = 0.0
    reasons: list[str] = field(default_factory=list)


def score_radio(
    radio: Product, requirement: DeploymentRequirement, profile: IndustryProfile
) -> RadioScore:
    rs = RadioScore(product=radio)

    if radio.frequency_band == requirement.frequency_band:
        rs.score += 3.0
        rs.reasons.append('band_match')
    elif radio.frequency_band == FrequencyBand.UNIVERSAL:
        rs.score += 1.0
        rs.reasons.append('universal_band')

    rank = family_rank(radio, profile.preferred_families)
    if rank is not None:
        n = len(profile.preferred_families)
        rs.score += 2.0 + (n - rank) / n
        rs.reasons.append(f'{profile.industry.value.lower()}_preferred')

    if radio.inventory_qty >= requirement.total_users:
        rs.score += 1.0
        rs.reasons.append('in_stock')
    elif radio.inventory_qty > 0:
        rs.score += 0.5
        rs.reasons.append('partial_stock')

    return rs


class EquipmentRecommender:
    """
    Picks radio, repeater and accessories from a catalog snapshot.
    Pure: the caller fetches the catalog; no I/O happens here.
    """

    def rank_radios(
        self,
        requirement: DeploymentRequirement,
        architecture: SystemArchitecture,
        catalog: Iterable[Product],
    ) -> list[Product]:
        """Active portable radios for the architecture and band, best first."""
        profile = profile_for(requirement.industry)
        scored = [
            score_radio(p, requirement, profile)
            for p in catalog
            if p.category == ProductCategory.RADIO
            and p.subcategory == Subcategory.PORTABLE
            and p.is_active
            and architecture in p.supported_architectures
            and not bands_conflict(p.frequency_band, requirement.frequency_band)
        ]
        scored.sort(key=lambda s: (-s.score, s.product.price, s.product.sku))
        return [s.product for s in scored]

    def select(
        self,
        requirement: DeploymentRequirement,
        architecture: SystemArchitecture,
        catalog: Iterable[Product],
        ranked_radios: Optional[list[Product]] = None,
    ) -> EquipmentSelection:
        products = list(catalog)
        radios = ranked_radios if ranked_radios is not None else self.rank_radios(
            requirement, architecture, products)
        if not radios:
            raise CompatibilityGap(
                f"No active {requirement.frequency_band.value} portable radio supports "
                f"{architecture.value}",
                subcategory=Subcategory.PORTABLE.value,
            )

        repeaters = [
            p for p in products
            if p.subcategory == Subcategory.REPEATER
            and p.is_active
            and architecture in p.supported_architectures
        ]

        for i, radio in enumerate(radios):
            try:
                repeater, edge = self._pick_repeater(radio, repeaters)
            except CompatibilityGap as e:
                logger.warning("Skipping radio %s: %s", radio.sku, e)
                continue
            if repeater is None:
                logger.info("No %s repeater pairs with %s", architecture.value, radio.sku)
                continue

            accessories, acc_edges, gaps = self._pick_accessories(
                radio, requirement, products)
            selection = EquipmentSelection(
                radio=radio,
                repeater=repeater,
                accessories=accessories,
                repeater_quantity=repeater_quantity(
                    requirement.total_users, architecture, requirement.site_count),
                compatibility=[edge] + acc_edges,
                gaps=gaps,
                alternate_radios=radios[i + 1:i + 4],
            )
            logger.info(
                "Selected %s + %s with %d accessories (%d gaps)",
                radio.sku, repeater.sku, len(accessories), len(gaps),
            )
            return selection

        raise CompatibilityGap(
            f"No active {architecture.value} repeater is compatible with any candidate radio",
            subcategory=Subcategory.REPEATER.value,
        )

    @staticmethod
    def _pick_repeater(
        radio: Product, repeaters: list[Product]
    ) -> tuple[Optional[Product], Optional[CompatibilityEdge]]:
        by_id = {r.id: r for r in repeaters}
        required = [
            e for e in resolve_compatibility(radio, repeaters)
            if e.type == CompatibilityType.REQUIRED
        ]
        if not required:
            return None, None
        best = min(required, key=lambda e: (by_id[e.compatible_product_id].price,
                                            e.compatible_product_id))
        return by_id[best.compatible_product_id], best

    @staticmethod
    def _pick_accessories(
        radio: Product,
        requirement: DeploymentRequirement,
        products: list[Product],
    ) -> tuple[dict[Subcategory, Product], list[CompatibilityEdge], list[str]]:
        profile = profile_for(requirement.industry)
        candidates = [
            p for p in products
            if p.category == ProductCategory.ACCESSORY and p.is_active
        ]
        by_id = {p.id: p for p in candidates}
        edges = compatible_only(resolve_compatibility(radio, candidates))

        chosen: dict[Subcategory, Product] = {}
        chosen_edges: list[CompatibilityEdge] = []
        gaps: list[str] = []
        for sub in profile.accessories:
            options = [e for e in edges if by_id[e.compatible_product_id].subcategory == sub]
            if not options:
                gaps.append(f"{sub.value}: no recommendation available for {radio.name}")
                continue
            best = min(options, key=lambda e: (
                -TYPE_STRENGTH[e.type],
                by_id[e.compatible_product_id].price,
                e.compatible_product_id,
            ))
            chosen[sub] = by_id[best.compatible_product_id]
            chosen_edges.append(best)
        return chosen, chosen_edges, gaps


# ============================================================
# Learning Patterns
# ============================================================

def user_range(users: int) -> str:
    if users <= 25:
        return '1-25'
    if users <= 50:
        return '26-50'
    if users <= 100:
        return '51-100'
    if users <= 200:
        return '101-200'
    return '200+'


def price_range(price_per_user: float) -> str:
    if price_per_user < 500:
        return 'budget'
    if price_per_user < 800:
        return 'mid_range'
    if price_per_user < 1200:
        return 'premium'
    return 'enterprise'


class PatternStore:
    """Read path for learned quote patterns."""

    async def get_patterns(self, industry: Industry, user_range: str) -> list[LearningPattern]:
        raise NotImplementedError

    async def add_pattern(self, pattern: LearningPattern) -> None:
        raise NotImplementedError


class InMemoryPatternStore(PatternStore):
    def __init__(self, patterns: Optional[Iterable[LearningPattern]] = None):
        self.patterns: list[LearningPattern] = list(patterns or [])

    async def get_patterns(self, industry: Industry, user_range: str) -> list[LearningPattern]:
        hits = [
            p for p in self.patterns
            if p.industry in (industry, Industry.GENERAL) and p.user_range == user_range
        ]
        return sorted(hits, key=lambda p: (-p.confidence, -p.sample_size))

    async def add_pattern(self, pattern: LearningPattern) -> None:
        self.patterns.append(pattern)


class RecommendationAdjuster:
    """
    Nudges radio ranking from learned patterns and adds insights.
    Output is advisory; architecture and validation are untouched.
    """

    def __init__(
        self,
        patterns: PatternStore,
        confidence_threshold: float = 0.6,
        min_sample_size: int = 3,
        enabled: bool = True,
    ):
        self.patterns = patterns
        self.confidence_threshold = confidence_threshold
        self.min_sample_size = min_sample_size
        self.enabled = enabled

    async def adjust(
        self, requirement: DeploymentRequirement, radios: list[Product]
    ) -> AdjustmentResult:
        result = AdjustmentResult(radios=list(radios))
        if not self.enabled:
            return result

        bucket = user_range(requirement.total_users)
        patterns = [
            p for p in await self.patterns.get_patterns(requirement.industry, bucket)
            if p.confidence >= self.confidence_threshold
            and p.sample_size >= self.min_sample_size
        ]

        for pattern in patterns:
            if pattern.pattern_type == PatternType.INDUSTRY_PREFERENCE:
                self._apply_industry_preference(result, pattern)
            elif pattern.pattern_type == PatternType.PRODUCT_COMBINATION:
                self._apply_product_combination(result, pattern)
            elif pattern.pattern_type == PatternType.PRICE_SENSITIVITY:
                self._apply_price_sensitivity(result, pattern)
            result.patterns_applied += 1

        if patterns:
            logger.info("Applied %d learning patterns for %s/%s",
                        len(patterns), requirement.industry.value, bucket)
        return result

    @staticmethod
    def _apply_industry_preference(result: AdjustmentResult, pattern: LearningPattern) -> None:
        data = pattern.data
        preferred = list(data.get('preferred_radios') or [])
        if preferred:
            # Stable sort keeps the recommender's order among equals
            result.radios.sort(key=lambda r: (
                rank if (rank := family_rank(r, preferred)) is not None else len(preferred)
            ))
            industry = data.get('industry') or pattern.industry.value
            result.insights.append(
                f"Based on {pattern.sample_size} successful {industry} installations")
        if data.get('preferred_accessories'):
            result.recommended_accessories = list(data['preferred_accessories'])
        if data.get('avg_price_per_user'):
            result.target_price_per_user = float(data['avg_price_per_user'])

    @staticmethod
    def _apply_product_combination(result: AdjustmentResult, pattern: LearningPattern) -> None:
        data = pattern.data
        rate = float(data.get('success_rate', pattern.success_rate))
        if data.get('combination') and rate > 0.7:
            result.suggested_combinations.append({
                'products': list(data['combination']),
                'success_rate': rate,
                'reason': 'proven_combination',
            })

    @staticmethod
    def _apply_price_sensitivity(result: AdjustmentResult, pattern: LearningPattern) -> None:
        optimal = pattern.data.get('optimal_price_range')
        if optimal:
            result.optimal_price_range = optimal
            result.insights.append(
                f"Optimal pricing based on {pattern.sample_size} similar quotes")
