"""
Radio Quote Expert - Requirement Extraction

Turns a free-form deployment description into a DeploymentRequirement:
1. Site count (facility nouns, "3 separate locations")
2. Users per site (several competing phrasings, first match wins)
3. Total-user phrasings split across sites
4. Inter-site communication keywords
5. Industry, frequency band and budget ceiling
6. Sanity ceilings that stop unreasonable requests early
"""
from __future__ import annotations
import logging
import math
import re
from dataclasses import dataclass
from typing import Optional

from config import SafetyThresholds, Settings, get_settings
from exceptions import InvalidRequirement, UnreasonableRequestError
from models import (
    DeploymentRequirement, FrequencyBand, Industry,
    parse_count, parse_money, replace_number_words,
)

logger = logging.getLogger(__name__)

# ============================================================
# Vocabulary
# ============================================================

# Signed so that "-5 sites" is caught and rejected rather than read as 5
NUM = r'(?<![\w.$-])(-?\d[\d,]*)'

FACILITY_NOUNS = (
    r'(?:locations?|sites?|buildings?|schools?|stores?|offices?|'
    r'facilit(?:y|ies)|warehouses?|plants?|hospitals?|factor(?:y|ies)|'
    r'clinics?|campus(?:es)?|branch(?:es)?)'
)

USER_NOUNS = (
    r'(?:users?|people|employees?|persons?|staff|workers?|radios?|'
    r'guards?|nurses?|teachers?|drivers?)'
)

# ============================================================
# Strategies
# ============================================================

@dataclass(frozen=True)
class ExtractionStrategy:
    """One named regex that fills a slot; returns None when it does not apply."""
    name: str
    pattern: str
    groups: tuple[int, ...] = (1,)

    def apply(self, text: str) -> Optional[tuple[int, ...]]:
        m = re.search(self.pattern, text, re.IGNORECASE)
        if not m:
            return None
        values = tuple(parse_count(m.group(g)) for g in self.groups)
        if any(v is None for v in values):
            return None
        return values


@dataclass(frozen=True)
class SlotMatch:
    strategy: str
    values: tuple[int, ...]

    @property
    def value(self) -> int:
        return self.values[0]


def first_match(strategies: list[ExtractionStrategy], text: str) -> Optional[SlotMatch]:
    """Run strategies in order; the first non-empty result wins."""
    for strategy in strategies:
        values = strategy.apply(text)
        if values is not None:
            logger.debug("Strategy %s matched %s", strategy.name, values)
            return SlotMatch(strategy.name, values)
    return None


# "5 hospitals with 40 users each" - both slots in one phrase
COMBINED_STRATEGIES = [
    ExtractionStrategy(
        'facilities_with_users',
        rf'{NUM}\s*(?:different\s+|separate\s+)?{FACILITY_NOUNS}\b[^.;]*?'
        rf'{NUM}\s*{USER_NOUNS}\b(?!\s+(?:in\s+)?total)',
        groups=(1, 2),
    ),
]

SITE_STRATEGIES = [
    ExtractionStrategy(
        'separate_locations',
        rf'{NUM}\s*(?:different|separate|distinct)\s+{FACILITY_NOUNS}\b',
    ),
    ExtractionStrategy('facility_noun', rf'{NUM}\s*{FACILITY_NOUNS}\b'),
]

PER_SITE_STRATEGIES = [
    ExtractionStrategy(
        'users_each',
        rf'{NUM}\s*{USER_NOUNS}\s+(?:each|per|at\s+each|in\s+each|for\s+each)\b',
    ),
    ExtractionStrategy(
        'each_site_has',
        rf'(?:each|every|per)\s+{FACILITY_NOUNS}\s+(?:has|have|needs?|with|requires?)\s+'
        rf'(?:about\s+|around\s+|approximately\s+)?{NUM}',
    ),
    ExtractionStrategy(
        'with_users_each',
        rf'with\s+{NUM}\s*{USER_NOUNS}?\s*(?:each|apiece)\b',
    ),
    ExtractionStrategy(
        'users_per_facility',
        rf'(?:have|has|with|need)\s+(?:about\s+|around\s+|approximately\s+)?'
        rf'{NUM}\s*{USER_NOUNS}\s+(?:per|at\s+each|in\s+each)\s+{FACILITY_NOUNS}\b',
    ),
    ExtractionStrategy(
        'about_users_each',
        rf'(?:about|around|approximately)\s+{NUM}\s*(?:{USER_NOUNS}\s+)?each\b',
    ),
    ExtractionStrategy(
        'count_per_site',
        rf'{NUM}\s+(?:per|at\s+each|in\s+each)\s+{FACILITY_NOUNS}\b',
    ),
]

TOTAL_STRATEGIES = [
    ExtractionStrategy('users_in_total', rf'{NUM}\s*{USER_NOUNS}\s+(?:in\s+)?total\b'),
    ExtractionStrategy('total_users', rf'{NUM}\s+total\s+{USER_NOUNS}\b'),
    ExtractionStrategy('total_of', rf'total\s+of\s+{NUM}'),
]

GENERIC_USER_STRATEGIES = [
    ExtractionStrategy('generic_user_count', rf'{NUM}\s*{USER_NOUNS}\b'),
]

# ============================================================
# Keyword Maps
# ============================================================

INTER_SITE_KEYWORDS = [
    'talk to each other', 'communicate with each other', 'connect to each other',
    'site to site', 'site-to-site', 'location to location', 'inter-site',
    'intersite', 'between sites', 'between locations', 'all locations connected',
    'link sites', 'network together', 'networked together', 'communicate between',
    'link all', 'connected together', 'talk between', 'communication between',
    'all sites connected', 'sites linked', 'cross-site', 'wide area',
]

# Ordered; first hit wins. 'building' and 'campus' are absent because they
# are also facility nouns.
INDUSTRY_KEYWORDS: list[tuple[tuple[str, ...], Industry]] = [
    (('school', 'education', 'university', 'college', 'district', 'teacher'), Industry.EDUCATION),
    (('warehouse', 'logistics', 'distribution', 'forklift'), Industry.WAREHOUSING),
    (('construction', 'contractor', 'job site', 'jobsite', 'crane'), Industry.CONSTRUCTION),
    (('hospital', 'medical', 'healthcare', 'clinic', 'nurse'), Industry.HEALTHCARE),
    (('manufacturing', 'factory', 'factories', 'industrial', 'plant'), Industry.MANUFACTURING),
    (('retail', 'store'), Industry.RETAIL),
    (('hotel', 'hospitality', 'resort'), Industry.HOSPITALITY),
    (('security', 'guard', 'patrol'), Industry.SECURITY),
]

BAND_PATTERNS: list[tuple[str, FrequencyBand]] = [
    (r'\bvhf\b|136\s*-\s*174', FrequencyBand.VHF),
    (r'\buhf\b|403\s*-\s*(?:470|512)', FrequencyBand.UHF),
    (r'\b800\s*mhz\b', FrequencyBand.BAND_800),
    (r'\b900\s*mhz\b', FrequencyBand.BAND_900),
]

# Outdoor work favors VHF; everything else defaults to in-building UHF
INDUSTRY_DEFAULT_BANDS: dict[Industry, FrequencyBand] = {
    Industry.CONSTRUCTION: FrequencyBand.VHF,
}

BUDGET_PATTERNS = [
    r'budget[^$\d]{0,20}(\$?\s*\d[\d,]*(?:\.\d+)?\s*(?:k|thousand|mm|m|million)?)\b',
    r'(?:under|below|no more than|not to exceed|max(?:imum)? of|up to|cap of)\s+'
    r'(\$\s*\d[\d,]*(?:\.\d+)?\s*(?:k|thousand|mm|m|million)?)\b',
]


def detect_inter_site(text: str) -> bool:
    t = text.lower()
    return any(kw in t for kw in INTER_SITE_KEYWORDS)


def detect_industry(text: str) -> Industry:
    t = text.lower()
    for keywords, industry in INDUSTRY_KEYWORDS:
        if any(kw in t for kw in keywords):
            return industry
    return Industry.GENERAL


def detect_band(text: str) -> Optional[FrequencyBand]:
    for pat, band in BAND_PATTERNS:
        if re.search(pat, text, re.IGNORECASE):
            return band
    return None


def detect_budget(text: str) -> Optional[float]:
    for pat in BUDGET_PATTERNS:
        m = re.search(pat, text, re.IGNORECASE)
        if m:
            value = parse_money(m.group(1))
            if value and value > 0:
                return value
    return None

# ============================================================
# Extractor
# ============================================================

class RequirementExtractor:
    """
    Slot extractor for quote requests. Unresolved slots fall back to
    defaults and are listed in DeploymentRequirement.assumptions; bad or
    oversized counts raise instead.
    """

    def __init__(
        self,
        thresholds: Optional[SafetyThresholds] = None,
        default_users_per_site: int = 25,
        default_site_count: int = 1,
    ):
        self.thresholds = thresholds or SafetyThresholds()
        self.default_users_per_site = default_users_per_site
        self.default_site_count = default_site_count

    def extract(self, text: str) -> DeploymentRequirement:
        source = text or ""
        normalized = replace_number_words(source)
        assumptions: list[str] = []

        self._check_user_mentions(normalized)

        sites: Optional[int] = None
        per_site: Optional[int] = None

        combined = first_match(COMBINED_STRATEGIES, normalized)
        if combined:
            sites, per_site = combined.values
            self._require_positive('site_count', sites)
            self._require_positive('users_per_site', per_site)
        else:
            site_match = first_match(SITE_STRATEGIES, normalized)
            if site_match:
                sites = self._require_positive('site_count', site_match.value)

            per_site_match = first_match(PER_SITE_STRATEGIES, normalized)
            if per_site_match:
                per_site = self._require_positive('users_per_site', per_site_match.value)

            if per_site is None:
                total_match = first_match(TOTAL_STRATEGIES, normalized)
                if total_match:
                    total = self._require_positive('total_users', total_match.value)
                    per_site = math.ceil(total / (sites or 1))

            if per_site is None:
                # Single site or multi-site, a bare "N users" is read as per site
                generic = first_match(GENERIC_USER_STRATEGIES, normalized)
                if generic:
                    per_site = self._require_positive('users_per_site', generic.value)

        if sites is None:
            sites = self.default_site_count
            assumptions.append(f"site_count defaulted to {sites}")
        if per_site is None:
            per_site = self.default_users_per_site
            assumptions.append(f"users_per_site defaulted to {per_site}")

        self._check_ceilings(sites, per_site)

        industry = detect_industry(normalized)
        band = detect_band(normalized)
        if band is None:
            band = INDUSTRY_DEFAULT_BANDS.get(industry, FrequencyBand.UHF)
            assumptions.append(f"frequency_band defaulted to {band.value}")

        requirement = DeploymentRequirement(
            site_count=sites,
            users_per_site=per_site,
            requires_inter_site=sites > 1 or detect_inter_site(normalized),
            industry=industry,
            frequency_band=band,
            budget_ceiling=detect_budget(normalized),
            source_text=source,
            assumptions=tuple(assumptions),
        )
        logger.info(
            "Extracted requirement: %d site(s) x %d users = %d, industry=%s, inter_site=%s",
            requirement.site_count, requirement.users_per_site,
            requirement.total_users, requirement.industry.value,
            requirement.requires_inter_site,
        )
        return requirement

    # ----------------------------------------------------------
    # Guards
    # ----------------------------------------------------------

    @staticmethod
    def _require_positive(field: str, value: int) -> int:
        if value <= 0:
            raise InvalidRequirement(
                f"{field.replace('_', ' ')} must be at least 1, got {value}",
                field=field, value=value,
            )
        return value

    def _check_user_mentions(self, text: str) -> None:
        """Any single user count above the ceiling stops the request."""
        limit = self.thresholds.max_total_users
        for m in re.finditer(rf'{NUM}\s*{USER_NOUNS}\b', text, re.IGNORECASE):
            count = parse_count(m.group(1))
            if count is not None and count > limit:
                raise UnreasonableRequestError(
                    f"Request mentions {count:,} users, above the {limit:,} user limit.",
                    field='total_users', value=count, limit=limit,
                )

    def _check_ceilings(self, sites: int, per_site: int) -> None:
        t = self.thresholds
        if sites > t.max_site_count:
            raise UnreasonableRequestError(
                f"{sites} sites exceeds the {t.max_site_count} site limit.",
                field='site_count', value=sites, limit=t.max_site_count,
            )
        total = sites * per_site
        if total > t.max_total_users:
            raise UnreasonableRequestError(
                f"{total:,} total users exceeds the {t.max_total_users:,} user limit.",
                field='total_users', value=total, limit=t.max_total_users,
            )


def extractor_from_settings(settings: Optional[Settings] = None) -> RequirementExtractor:
    settings = settings or get_settings()
    return RequirementExtractor(
        thresholds=settings.safety_thresholds,
        default_users_per_site=settings.default_users_per_site,
        default_site_count=settings.default_site_count,
    )


def extract_requirements(text: str, settings: Optional[Settings] = None) -> DeploymentRequirement:
    """Convenience: extract with the configured thresholds and defaults."""
    return extractor_from_settings(settings).extract(text)
