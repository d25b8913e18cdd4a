"""
Tests for requirement_extraction: slot strategies, defaults, keyword
detection and the sanity ceilings.
"""

import pytest

from exceptions import InvalidRequirement, UnreasonableRequestError
from models import DeploymentRequirement, FrequencyBand, Industry
from requirement_extraction import (
    COMBINED_STRATEGIES, PER_SITE_STRATEGIES, SITE_STRATEGIES, TOTAL_STRATEGIES,
    RequirementExtractor, detect_budget, detect_industry, detect_inter_site,
    extract_requirements, first_match,
)


@pytest.fixture
def extractor():
    return RequirementExtractor()


class TestStrategies:
    """Each named strategy recognises its own phrasing."""

    def test_facilities_with_users(self):
        m = first_match(COMBINED_STRATEGIES, "5 hospitals with 40 users each")
        assert m.strategy == "facilities_with_users"
        assert m.values == (5, 40)

    def test_combined_skips_total_phrasing(self):
        assert first_match(COMBINED_STRATEGIES, "2 sites and 300 users in total") is None

    def test_separate_locations(self):
        m = first_match(SITE_STRATEGIES, "we operate 3 separate locations")
        assert m.strategy == "separate_locations"
        assert m.value == 3

    def test_facility_noun(self):
        m = first_match(SITE_STRATEGIES, "radios for 4 schools")
        assert m.strategy == "facility_noun"
        assert m.value == 4

    def test_users_each(self):
        m = first_match(PER_SITE_STRATEGIES, "about 40 users per building")
        assert m.strategy == "users_each"
        assert m.value == 40

    def test_each_site_has(self):
        m = first_match(PER_SITE_STRATEGIES, "each location has 30 radios")
        assert m.strategy == "each_site_has"
        assert m.value == 30

    def test_about_users_each(self):
        m = first_match(PER_SITE_STRATEGIES, "staffing is about 12 each")
        assert m.strategy == "about_users_each"
        assert m.value == 12

    def test_users_in_total(self):
        m = first_match(TOTAL_STRATEGIES, "300 users in total")
        assert m.strategy == "users_in_total"
        assert m.value == 300

    def test_range_is_not_a_count(self):
        assert first_match(SITE_STRATEGIES, "between 3-5 sites") is None


class TestExtractor:
    """End-to-end extraction from free text."""

    def test_hospitals_scenario(self, extractor):
        req = extractor.extract(
            "Create quote for 5 hospitals with 40 users each that need to "
            "communicate between locations")
        assert req.site_count == 5
        assert req.users_per_site == 40
        assert req.total_users == 200
        assert req.requires_inter_site is True
        assert req.industry == Industry.HEALTHCARE
        assert req.frequency_band == FrequencyBand.UHF
        assert "frequency_band defaulted to UHF" in req.assumptions

    def test_warehouses_scenario(self, extractor):
        req = extractor.extract("3 warehouses with 200 users each")
        assert req.total_users == 600
        assert req.industry == Industry.WAREHOUSING

    def test_total_split_across_sites(self, extractor):
        req = extractor.extract("2 sites and 300 users in total")
        assert req.site_count == 2
        assert req.users_per_site == 150

    def test_number_words(self, extractor):
        req = extractor.extract("two schools with thirty teachers each")
        assert (req.site_count, req.users_per_site) == (2, 30)
        assert req.industry == Industry.EDUCATION

    def test_single_site_generic_count(self, extractor):
        req = extractor.extract("We have 80 employees at our plant")
        assert req.site_count == 1
        assert req.total_users == 80
        assert req.industry == Industry.MANUFACTURING
        assert "site_count defaulted to 1" in req.assumptions

    def test_defaults_are_recorded(self, extractor):
        req = extractor.extract("We need radios for our office")
        assert (req.site_count, req.users_per_site) == (1, 25)
        assert "users_per_site defaulted to 25" in req.assumptions
        assert req.industry == Industry.GENERAL

    def test_construction_defaults_to_vhf(self, extractor):
        req = extractor.extract("Construction company, 2 sites with 15 workers each")
        assert req.industry == Industry.CONSTRUCTION
        assert req.frequency_band == FrequencyBand.VHF

    def test_explicit_band_wins(self, extractor):
        req = extractor.extract("Construction company, 2 sites with 15 workers each on UHF")
        assert req.frequency_band == FrequencyBand.UHF

    def test_budget(self, extractor):
        req = extractor.extract("10 users, budget of $50,000")
        assert req.budget_ceiling == 50_000

    def test_source_text_is_kept(self, extractor):
        text = "3 stores with 10 staff each"
        assert extractor.extract(text).source_text == text

    def test_convenience_function(self, settings):
        req = extract_requirements("4 schools with 30 teachers each", settings)
        assert req.total_users == 120


class TestRejections:
    """Bad counts raise InvalidRequirement; oversized ones UnreasonableRequestError."""

    def test_zero_users(self, extractor):
        with pytest.raises(InvalidRequirement) as exc:
            extractor.extract("radios for 0 users")
        assert exc.value.field == "users_per_site"

    def test_negative_sites(self, extractor):
        with pytest.raises(InvalidRequirement) as exc:
            extractor.extract("-5 sites with 10 users each")
        assert exc.value.value == -5

    def test_user_mention_over_limit(self, extractor):
        with pytest.raises(UnreasonableRequestError) as exc:
            extractor.extract("We need radios for 50000 users")
        assert exc.value.value == 50_000
        assert exc.value.limit == 5000
        assert "enterprise sales" in str(exc.value)

    def test_too_many_sites(self, extractor):
        with pytest.raises(UnreasonableRequestError) as exc:
            extractor.extract("60 stores with 10 users each")
        assert exc.value.field == "site_count"

    def test_total_over_limit(self, extractor):
        with pytest.raises(UnreasonableRequestError) as exc:
            extractor.extract("20 sites with 300 users each")
        assert exc.value.field == "total_users"
        assert exc.value.value == 6000


class TestKeywords:
    def test_inter_site(self):
        assert detect_inter_site("all sites need to talk to each other")
        assert not detect_inter_site("one building")

    def test_building_is_not_an_industry(self):
        assert detect_industry("a 12 story office building") == Industry.GENERAL

    @pytest.mark.parametrize("text,expected", [
        ("our hospital and clinic network", Industry.HEALTHCARE),
        ("construction crane crews at a job site", Industry.CONSTRUCTION),
        ("forklift drivers in the warehouse", Industry.WAREHOUSING),
        ("radios for the night nurses", Industry.HEALTHCARE),
        ("two campuses, 30 radios per campus", Industry.GENERAL),
        ("a small office", Industry.GENERAL),
        ("", Industry.GENERAL),
    ])
    def test_detect_industry(self, text, expected):
        assert detect_industry(text) == expected

    def test_extracted_industry_matches_detector(self, extractor):
        req = extractor.extract("two campuses, 30 radios per campus")
        assert req.industry == detect_industry("two campuses, 30 radios per campus")

    def test_budget_suffixes(self):
        assert detect_budget("keep it under $75k") == 75_000
        assert detect_budget("no money talk") is None


class TestDeploymentRequirement:
    """Derived fields are recomputed from the counts."""

    @pytest.mark.parametrize("sites", [2, 3, 10, 50])
    def test_multi_site_implies_inter_site(self, sites):
        req = DeploymentRequirement(site_count=sites, users_per_site=10, requires_inter_site=False)
        assert req.requires_inter_site is True
        assert req.total_users == sites * 10

    def test_requirement_is_frozen(self):
        req = DeploymentRequirement(site_count=1, users_per_site=10)
        with pytest.raises(Exception):
            req.site_count = 2
