"""
Radio Quote Expert - Compatibility Resolver

Responsibilities:
  1. Model family resolution from catalog model strings
  2. Per-family accessory rule tables (battery, charger, antenna, audio, carrying)
  3. Frequency-band checks for band-sensitive subcategories
  4. Radio <-> repeater system architecture matching
  5. Battery <-> charger pairing
  6. Deterministic, order-independent edge output
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from exceptions import CompatibilityGap
from models import (
    CompatibilityEdge, CompatibilityType, FrequencyBand, Product,
    Subcategory,
)

logger = logging.getLogger(__name__)


# ============================================================
# Model Families
# ============================================================

class ModelFamily(str, Enum):
    R7 = "R7"
    XPR3000E = "XPR3000e"
    XPR7000E = "XPR7000e"
    R2 = "R2"
    CP100D = "CP100d"
    SL = "SL"
    XPR5000E = "XPR5000e"
    XPR2500 = "XPR2500"


# Order matters: XPR2500 must be tried before R2.
FAMILY_PATTERNS: list[tuple[str, ModelFamily]] = [
    (r'XPR\s*2500', ModelFamily.XPR2500),
    (r'XPR\s*3\d{3}', ModelFamily.XPR3000E),
    (r'XPR\s*5\d{3}', ModelFamily.XPR5000E),
    (r'XPR\s*7\d{3}', ModelFamily.XPR7000E),
    (r'CP\s*100', ModelFamily.CP100D),
    (r'(?<![A-Z])R7\b', ModelFamily.R7),
    (r'(?<![A-Z])R2\b', ModelFamily.R2),
    (r'^SL\s*\d', ModelFamily.SL),
]


def resolve_family(model_family: Optional[str]) -> Optional[ModelFamily]:
    if not model_family:
        return None
    text = model_family.strip().upper()
    for member in ModelFamily:
        if text == member.value.upper():
            return member
    for pat, family in FAMILY_PATTERNS:
        if re.search(pat, text):
            return family
    return None


# ============================================================
# Rule Tables
# ============================================================

@dataclass(frozen=True)
class FamilyRules:
    """Accepted accessory SKU prefixes and offered bands for one model family."""
    bands: frozenset[FrequencyBand] = field(default_factory=frozenset)
    batteries: frozenset[str] = field(default_factory=frozenset)
    chargers: frozenset[str] = field(default_factory=frozenset)
    antennas: frozenset[str] = field(default_factory=frozenset)
    audio: frozenset[str] = field(default_factory=frozenset)
    carrying: frozenset[str] = field(default_factory=frozenset)
    notes: str = ""

    def accepted(self, subcategory: Subcategory) -> frozenset[str]:
        return {
            Subcategory.BATTERY: self.batteries,
            Subcategory.CHARGER: self.chargers,
            Subcategory.ANTENNA: self.antennas,
            Subcategory.AUDIO: self.audio,
            Subcategory.CARRYING: self.carrying,
        }.get(subcategory, frozenset())


_MOTOTRBO_CHARGERS = frozenset({'PMPN4137', 'PMLN6598', 'PMLN6589'})
_MOTOTRBO_ANTENNAS = frozenset({'PMAE4003', 'PMAD4170'})
_MOTOTRBO_CARRYING = frozenset({'PMLN7238', 'PMLN5870', 'PMLN5868'})
_SPLIT_BANDS = frozenset({FrequencyBand.UHF, FrequencyBand.VHF})
_ALL_BANDS = _SPLIT_BANDS | {FrequencyBand.BAND_800, FrequencyBand.BAND_900}

FAMILY_RULES: dict[ModelFamily, FamilyRules] = {
    ModelFamily.R7: FamilyRules(
        bands=_SPLIT_BANDS,
        batteries=frozenset({'PMNN4807', 'PMNN4468'}),
        chargers=_MOTOTRBO_CHARGERS,
        antennas=_MOTOTRBO_ANTENNAS,
        audio=frozenset({'PMMN4029', 'PMMN4073', 'PMMN4125', 'RLN6562', 'RLN6554'}),
        carrying=_MOTOTRBO_CARRYING,
    ),
    ModelFamily.XPR3000E: FamilyRules(
        bands=_SPLIT_BANDS,
        batteries=frozenset({'PMNN4468', 'PMNN4476', 'PMNN4544'}),
        chargers=_MOTOTRBO_CHARGERS,
        antennas=_MOTOTRBO_ANTENNAS,
        audio=frozenset({'PMMN4029', 'PMMN4073', 'PMMN4125'}),
        carrying=_MOTOTRBO_CARRYING,
    ),
    ModelFamily.XPR7000E: FamilyRules(
        bands=_ALL_BANDS,
        batteries=frozenset({'PMNN4477', 'PMNN4544'}),
        chargers=frozenset({'PMLN6598', 'PMLN6589'}),
        antennas=_MOTOTRBO_ANTENNAS,
        audio=frozenset({'PMMN4029', 'PMMN4073', 'PMMN4125', 'RLN6554'}),
        carrying=frozenset({'PMLN5870', 'PMLN5868'}),
    ),
    ModelFamily.R2: FamilyRules(
        bands=_SPLIT_BANDS,
        batteries=frozenset({'PMNN4598', 'PMNN4476'}),
        chargers=frozenset({'PMPN4173', 'PMLN6598', 'PMLN6589'}),
        antennas=frozenset({'PMAE4016'}),
        audio=frozenset({'PMMN4029', 'PMMN4073'}),
        carrying=frozenset({'PMLN7008', 'PMLN5870', 'PMLN5868'}),
    ),
    ModelFamily.CP100D: FamilyRules(
        bands=_SPLIT_BANDS,
        batteries=frozenset({'PMNN4476'}),
        chargers=frozenset({'PMPN4173'}),
        antennas=frozenset({'PMAE4016'}),
        audio=frozenset({'PMMN4029'}),
        carrying=frozenset({'PMLN7008', 'PMLN5868'}),
    ),
    ModelFamily.SL: FamilyRules(
        bands=_SPLIT_BANDS,
        batteries=frozenset({'PMNN4095'}),
        chargers=frozenset({'PMLN7190'}),
        antennas=frozenset({'PMAE4095', 'PMAD4145'}),
        carrying=frozenset({'PMLN7190A'}),
        notes='Slim form factor; proprietary audio connector',
    ),
    ModelFamily.XPR5000E: FamilyRules(
        bands=_ALL_BANDS,
        notes='Mobile radio; portable accessories do not apply',
    ),
    ModelFamily.XPR2500: FamilyRules(
        bands=_SPLIT_BANDS,
        notes='Mobile radio; portable accessories do not apply',
    ),
}

_missing_rules = set(ModelFamily) - set(FAMILY_RULES)
if _missing_rules:
    raise RuntimeError(
        f"FAMILY_RULES has no entry for: {sorted(f.value for f in _missing_rules)}")

IMPRES_CHARGERS = frozenset({'PMPN4137', 'PMLN6598', 'PMLN6589'})

BAND_SENSITIVE = frozenset({Subcategory.ANTENNA, Subcategory.REPEATER})
RADIO_SUBCATEGORIES = frozenset({Subcategory.PORTABLE, Subcategory.MOBILE})
TABLE_SUBCATEGORIES = frozenset({
    Subcategory.BATTERY, Subcategory.CHARGER, Subcategory.ANTENNA,
    Subcategory.AUDIO, Subcategory.CARRYING,
})

# (type, reason, installation note) per accessory subcategory on a table hit
_TABLE_MATCH: dict[Subcategory, tuple[CompatibilityType, str, str]] = {
    Subcategory.BATTERY: (
        CompatibilityType.REQUIRED, 'battery_compatibility_verified',
        'Direct replacement battery'),
    Subcategory.CHARGER: (
        CompatibilityType.RECOMMENDED, 'charger_compatibility_verified',
        'Single-unit desktop charger'),
    Subcategory.AUDIO: (
        CompatibilityType.RECOMMENDED, 'audio_accessory_verified',
        'Plugs into the side accessory connector'),
    Subcategory.ANTENNA: (
        CompatibilityType.OPTIONAL, 'antenna_upgrade',
        'Replaces the stock antenna; match the radio band'),
    Subcategory.CARRYING: (
        CompatibilityType.OPTIONAL, 'universal_carrying',
        'Belt clip or holster'),
}


# ============================================================
# Helpers
# ============================================================

def sku_matches(sku: str, accepted: Iterable[str]) -> bool:
    """Table entries are SKU prefixes so revision suffixes (A, B...) still match."""
    s = sku.upper()
    return any(s.startswith(a.upper()) for a in accepted)


def bands_conflict(a: FrequencyBand, b: FrequencyBand) -> bool:
    if FrequencyBand.UNIVERSAL in (a, b):
        return False
    return a != b


def family_rules_for(product: Product) -> tuple[ModelFamily, FamilyRules]:
    """
    Rule table for a radio. Raises CompatibilityGap when the family is
    unknown or is not offered in the radio's band.
    """
    family = resolve_family(product.model_family or product.name)
    if family is None:
        raise CompatibilityGap(
            f"No compatibility rules for model family '{product.model_family}' "
            f"({product.sku})",
            subcategory=product.subcategory.value,
        )
    rules = FAMILY_RULES[family]
    band = product.frequency_band
    if band != FrequencyBand.UNIVERSAL and band not in rules.bands:
        raise CompatibilityGap(
            f"{family.value} is not offered in {band.value} ({product.sku})",
            subcategory=product.subcategory.value,
        )
    return family, rules


def _edge(
    primary: Product,
    candidate: Product,
    ctype: CompatibilityType,
    reason: str,
    notes: str = "",
    configuration_required: bool = False,
) -> CompatibilityEdge:
    return CompatibilityEdge(
        primary_product_id=primary.id,
        compatible_product_id=candidate.id,
        type=ctype,
        reason=reason,
        installation_notes=notes,
        configuration_required=configuration_required,
    )


# ============================================================
# Rules
# ============================================================

def _radio_repeater_edge(primary: Product, radio: Product, repeater: Product) -> CompatibilityEdge:
    other = repeater if primary is radio else radio
    if bands_conflict(radio.frequency_band, repeater.frequency_band):
        return _edge(
            primary, other, CompatibilityType.INCOMPATIBLE, 'frequency_band_mismatch',
            f"Radio is {radio.frequency_band.value}, repeater is "
            f"{repeater.frequency_band.value}",
        )
    common = set(radio.supported_architectures) & set(repeater.supported_architectures)
    if not common:
        return _edge(
            primary, other, CompatibilityType.INCOMPATIBLE,
            'system_architecture_incompatible',
            'No shared system architecture',
        )
    archs = ', '.join(sorted(a.value for a in common))
    return _edge(
        primary, other, CompatibilityType.REQUIRED,
        f'system_architecture_match: {archs}',
        'Program radio and repeater with a common system codeplug',
        configuration_required=True,
    )


def _radio_accessory_edge(
    radio: Product, rules: FamilyRules, accessory: Product
) -> CompatibilityEdge:
    sub = accessory.subcategory
    if sub in BAND_SENSITIVE and bands_conflict(radio.frequency_band, accessory.frequency_band):
        return _edge(
            radio, accessory, CompatibilityType.INCOMPATIBLE, 'frequency_band_mismatch',
            f"Radio is {radio.frequency_band.value}, accessory is "
            f"{accessory.frequency_band.value}",
        )
    if not sku_matches(accessory.sku, rules.accepted(sub)):
        return _edge(
            radio, accessory, CompatibilityType.INCOMPATIBLE, 'model_series_incompatible')

    ctype, reason, notes = _TABLE_MATCH[sub]
    if sub == Subcategory.CHARGER and sku_matches(accessory.sku, IMPRES_CHARGERS):
        reason = 'impres_charger_compatibility'
        notes = 'IMPRES charger; extends battery cycle life'
    return _edge(radio, accessory, ctype, reason, notes)


def _battery_charger_edge(battery: Product, charger: Product) -> CompatibilityEdge:
    if sku_matches(charger.sku, IMPRES_CHARGERS):
        return _edge(
            battery, charger, CompatibilityType.RECOMMENDED, 'impres_charger_compatibility',
            'IMPRES charger; extends battery cycle life')
    for rules in FAMILY_RULES.values():
        if sku_matches(battery.sku, rules.batteries) and sku_matches(charger.sku, rules.chargers):
            return _edge(
                battery, charger, CompatibilityType.REQUIRED, 'standard_charger_compatibility',
                'Standard rate charger')
    return _edge(battery, charger, CompatibilityType.INCOMPATIBLE, 'model_series_incompatible')


def _resolve_one(primary: Product, candidate: Product, rules: Optional[FamilyRules]) -> Optional[CompatibilityEdge]:
    p_sub, c_sub = primary.subcategory, candidate.subcategory

    if p_sub in RADIO_SUBCATEGORIES:
        if c_sub == Subcategory.REPEATER:
            return _radio_repeater_edge(primary, primary, candidate)
        if c_sub in TABLE_SUBCATEGORIES and rules is not None:
            return _radio_accessory_edge(primary, rules, candidate)
        return None

    if p_sub == Subcategory.REPEATER:
        if c_sub in RADIO_SUBCATEGORIES:
            return _radio_repeater_edge(primary, candidate, primary)
        return None

    if p_sub == Subcategory.BATTERY and c_sub == Subcategory.CHARGER:
        return _battery_charger_edge(primary, candidate)

    return None


def resolve_compatibility(
    primary: Product, candidates: Iterable[Product]
) -> list[CompatibilityEdge]:
    """
    Compute compatibility edges for one primary product.

    Deterministic and order-independent: duplicates collapse by product id
    and the result is sorted by compatible_product_id.
    """
    rules: Optional[FamilyRules] = None
    if primary.subcategory in RADIO_SUBCATEGORIES:
        _, rules = family_rules_for(primary)

    unique: dict[str, Product] = {}
    for c in candidates:
        if c.id == primary.id:
            continue
        seen = unique.get(c.id)
        if seen is None or seen == c:
            unique[c.id] = c
            continue
        # Conflicting rows share an id: keep the smaller serialization
        logger.warning("Conflicting catalog rows for product id %s", c.id)
        if c.model_dump_json() < seen.model_dump_json():
            unique[c.id] = c

    edges: list[CompatibilityEdge] = []
    for cid in sorted(unique):
        edge = _resolve_one(primary, unique[cid], rules)
        if edge is not None:
            edges.append(edge)
    return edges


def compatible_only(edges: Iterable[CompatibilityEdge]) -> list[CompatibilityEdge]:
    return [e for e in edges if e.is_compatible]
