"""Tests for industry profiles, equipment selection and the learning adjuster."""

import pytest

from conftest import make_requirement
from exceptions import CompatibilityGap
from models import (
    FrequencyBand, Industry, LearningPattern, PatternType, Product, ProductCategory,
    Subcategory, SystemArchitecture as Arch,
)
from recommendation_engine import (
    INDUSTRY_PROFILES, EquipmentRecommender, InMemoryPatternStore,
    RecommendationAdjuster, price_range, profile_for, user_range,
)


@pytest.fixture
def recommender():
    return EquipmentRecommender()


@pytest.fixture
def hospitals():
    return make_requirement(5, 40, Industry.HEALTHCARE)


def pattern(pattern_type, data, industry=Industry.HEALTHCARE, bucket="101-200",
            confidence=0.8, sample_size=12, success_rate=0.9):
    return LearningPattern(
        pattern_type=pattern_type, industry=industry, user_range=bucket, data=data,
        confidence=confidence, sample_size=sample_size, success_rate=success_rate,
    )


class TestIndustryProfiles:
    def test_every_industry_has_a_profile(self):
        assert set(INDUSTRY_PROFILES) == set(Industry)

    def test_profile_for(self):
        profile = profile_for(Industry.RETAIL)
        assert profile.preferred_families[0] == "SL"
        assert Subcategory.CARRYING not in profile.accessories


class TestRanking:
    def test_hospital_ranking(self, recommender, hospitals, products):
        ranked = recommender.rank_radios(hospitals, Arch.IP_SITE_CONNECT, products)
        assert [p.sku for p in ranked[:3]] == ["R7-UHF", "XPR7550E-UHF", "SL3500E-UHF"]
        assert all(p.subcategory == Subcategory.PORTABLE for p in ranked)
        assert all(p.frequency_band == FrequencyBand.UHF for p in ranked)
        assert all(Arch.IP_SITE_CONNECT in p.supported_architectures for p in ranked)

    def test_conventional_only_radio_excluded(self, recommender, hospitals, products):
        ranked = recommender.rank_radios(hospitals, Arch.IP_SITE_CONNECT, products)
        assert "R2-UHF" not in {p.sku for p in ranked}


class TestSelection:
    def test_hospital_selection(self, recommender, hospitals, products):
        selection = recommender.select(hospitals, Arch.IP_SITE_CONNECT, products)
        assert selection.radio.sku == "R7-UHF"
        assert selection.repeater.sku == "SLR5700-UHF"
        assert selection.repeater_quantity == 5
        assert {sub: p.sku for sub, p in selection.accessories.items()} == {
            Subcategory.BATTERY: "PMNN4468B",
            Subcategory.CHARGER: "PMPN4137A",
            Subcategory.AUDIO: "RLN6554A",
            Subcategory.CARRYING: "PMLN5868",
        }
        assert selection.gaps == []
        assert [p.sku for p in selection.alternate_radios] == [
            "XPR7550E-UHF", "SL3500E-UHF", "XPR3300E-UHF"]

    def test_missing_accessory_is_a_gap(self, recommender, by_sku, products):
        req = make_requirement(1, 25, Industry.HEALTHCARE)
        selection = recommender.select(
            req, Arch.CONVENTIONAL, products, ranked_radios=[by_sku["SL3500E-UHF"]])
        assert selection.repeater.sku == "SLR1000-UHF"
        assert Subcategory.AUDIO not in selection.accessories
        assert selection.gaps == ["Audio: no recommendation available for MOTOTRBO SL3500e UHF"]

    def test_no_radio_for_band(self, recommender, products):
        req = make_requirement(1, 25, frequency_band=FrequencyBand.BAND_800)
        with pytest.raises(CompatibilityGap) as exc:
            recommender.select(req, Arch.CONVENTIONAL, products)
        assert exc.value.subcategory == "Portable"

    def test_no_repeater(self, recommender, products):
        radios_only = [p for p in products if p.category != ProductCategory.REPEATER]
        with pytest.raises(CompatibilityGap) as exc:
            recommender.select(make_requirement(1, 25), Arch.CONVENTIONAL, radios_only)
        assert exc.value.subcategory == "Repeater"

    def test_unknown_family_is_skipped(self, recommender, by_sku, products):
        mystery = Product(
            sku="ZZ-1", name="Mystery radio", category=ProductCategory.RADIO,
            subcategory=Subcategory.PORTABLE, model_family="Mystery", price=10.0,
            frequency_band=FrequencyBand.UHF, supported_architectures=list(Arch),
        )
        selection = recommender.select(
            make_requirement(1, 25), Arch.CONVENTIONAL, products,
            ranked_radios=[mystery, by_sku["R7-UHF"]])
        assert selection.radio.sku == "R7-UHF"


class TestRanges:
    @pytest.mark.parametrize("users,expected", [
        (1, "1-25"), (25, "1-25"), (26, "26-50"), (100, "51-100"),
        (200, "101-200"), (201, "200+"),
    ])
    def test_user_range(self, users, expected):
        assert user_range(users) == expected

    @pytest.mark.parametrize("ppu,expected", [
        (499.99, "budget"), (500, "mid_range"), (800, "premium"), (1200, "enterprise"),
    ])
    def test_price_range(self, ppu, expected):
        assert price_range(ppu) == expected


class TestRecommendationAdjuster:
    """Learned patterns re-rank radios and add insights; nothing else changes."""

    @pytest.fixture
    def ranked(self, recommender, hospitals, products):
        return recommender.rank_radios(hospitals, Arch.IP_SITE_CONNECT, products)

    @pytest.mark.asyncio
    async def test_industry_preference(self, hospitals, ranked):
        store = InMemoryPatternStore([pattern(PatternType.INDUSTRY_PREFERENCE, {
            "industry": "Healthcare",
            "preferred_radios": ["SL"],
            "preferred_accessories": ["Audio"],
            "avg_price_per_user": 1100,
        })])
        result = await RecommendationAdjuster(store).adjust(hospitals, ranked)

        assert result.radios[0].sku == "SL3500E-UHF"
        assert [p.sku for p in result.radios[1:3]] == ["R7-UHF", "XPR7550E-UHF"]
        assert "Based on 12 successful Healthcare installations" in result.insights
        assert result.recommended_accessories == ["Audio"]
        assert result.target_price_per_user == 1100.0
        assert result.patterns_applied == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("confidence,sample_size", [(0.5, 12), (0.9, 2)])
    async def test_weak_patterns_ignored(self, hospitals, ranked, confidence, sample_size):
        store = InMemoryPatternStore([pattern(
            PatternType.INDUSTRY_PREFERENCE, {"preferred_radios": ["SL"]},
            confidence=confidence, sample_size=sample_size)])
        result = await RecommendationAdjuster(store).adjust(hospitals, ranked)
        assert result.radios == ranked
        assert result.patterns_applied == 0

    @pytest.mark.asyncio
    async def test_other_user_range_ignored(self, hospitals, ranked):
        store = InMemoryPatternStore([pattern(
            PatternType.INDUSTRY_PREFERENCE, {"preferred_radios": ["SL"]}, bucket="1-25")])
        result = await RecommendationAdjuster(store).adjust(hospitals, ranked)
        assert result.radios == ranked

    @pytest.mark.asyncio
    async def test_product_combination(self, hospitals, ranked):
        store = InMemoryPatternStore([
            pattern(PatternType.PRODUCT_COMBINATION,
                    {"combination": ["R7-UHF", "PMNN4468B"], "success_rate": 0.8}),
            pattern(PatternType.PRODUCT_COMBINATION,
                    {"combination": ["SL3500E-UHF", "PMNN4095"], "success_rate": 0.65}),
        ])
        result = await RecommendationAdjuster(store).adjust(hospitals, ranked)
        assert result.suggested_combinations == [{
            "products": ["R7-UHF", "PMNN4468B"],
            "success_rate": 0.8,
            "reason": "proven_combination",
        }]

    @pytest.mark.asyncio
    async def test_price_sensitivity(self, hospitals, ranked):
        store = InMemoryPatternStore([pattern(
            PatternType.PRICE_SENSITIVITY, {"optimal_price_range": "premium"},
            industry=Industry.GENERAL, sample_size=7)])
        result = await RecommendationAdjuster(store).adjust(hospitals, ranked)
        assert result.optimal_price_range == "premium"
        assert result.insights == ["Optimal pricing based on 7 similar quotes"]

    @pytest.mark.asyncio
    async def test_disabled(self, hospitals, ranked):
        store = InMemoryPatternStore([pattern(
            PatternType.INDUSTRY_PREFERENCE, {"preferred_radios": ["SL"]})])
        result = await RecommendationAdjuster(store, enabled=False).adjust(hospitals, ranked)
        assert result.radios == ranked
        assert result.insights == []
