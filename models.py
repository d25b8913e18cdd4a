"""
Radio Quote Expert - Core Pydantic Models

Shared types for the requirement-to-quote pipeline:
  1. Enums (industry, band, architecture, catalog taxonomy, severity)
  2. Deployment requirement (immutable after extraction)
  3. Catalog products and derived compatibility edges
  4. Pricing and validation value objects
  5. Learning patterns and API request/response models
  6. Text utilities used by extraction (number words, money)
"""
from __future__ import annotations
import re
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

# ============================================================
# Enums
# ============================================================

class Industry(str, Enum):
    EDUCATION = "Education"
    WAREHOUSING = "Warehousing"
    CONSTRUCTION = "Construction"
    HEALTHCARE = "Healthcare"
    MANUFACTURING = "Manufacturing"
    RETAIL = "Retail"
    HOSPITALITY = "Hospitality"
    SECURITY = "Security"
    GENERAL = "General"

class FrequencyBand(str, Enum):
    VHF = "VHF"
    UHF = "UHF"
    BAND_800 = "800MHz"
    BAND_900 = "900MHz"
    UNIVERSAL = "Universal"

class SystemArchitecture(str, Enum):
    CONVENTIONAL = "Conventional"
    IP_SITE_CONNECT = "IP Site Connect"
    CAPACITY_PLUS = "Capacity Plus"
    CAPACITY_MAX = "Capacity Max"
    LINKED_CAPACITY_PLUS = "Linked Capacity Plus"

class ProductCategory(str, Enum):
    RADIO = "Radio"
    REPEATER = "Repeater"
    ACCESSORY = "Accessory"

class Subcategory(str, Enum):
    PORTABLE = "Portable"
    MOBILE = "Mobile"
    REPEATER = "Repeater"
    BATTERY = "Battery"
    CHARGER = "Charger"
    ANTENNA = "Antenna"
    AUDIO = "Audio"
    CARRYING = "Carrying"

class LifecycleStatus(str, Enum):
    ACTIVE = "active"
    LIMITED = "limited"
    DISCONTINUED = "discontinued"

class CompatibilityType(str, Enum):
    REQUIRED = "Required"
    RECOMMENDED = "Recommended"
    OPTIONAL = "Optional"
    INCOMPATIBLE = "Incompatible"

class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"

class ValidationStage(str, Enum):
    PRE = "pre"
    POST = "post"

class PatternType(str, Enum):
    PRODUCT_COMBINATION = "product_combination"
    INDUSTRY_PREFERENCE = "industry_preference"
    PRICE_SENSITIVITY = "price_sensitivity"

class PricingSource(str, Enum):
    LIVE = "live"
    CACHE = "cache"
    CATALOG = "catalog"
    UNAVAILABLE = "unavailable"

ACCESSORY_SUBCATEGORIES: tuple[Subcategory, ...] = (
    Subcategory.BATTERY,
    Subcategory.CHARGER,
    Subcategory.ANTENNA,
    Subcategory.AUDIO,
    Subcategory.CARRYING,
)

# ============================================================
# Deployment Requirement
# ============================================================

class DeploymentRequirement(BaseModel):
    """Structured requirement extracted from one quote request."""
    model_config = ConfigDict(frozen=True)

    site_count: int = Field(default=1, ge=1)
    users_per_site: int = Field(default=25, ge=1)
    total_users: int = Field(default=25, ge=1)
    requires_inter_site: bool = False
    industry: Industry = Industry.GENERAL
    frequency_band: FrequencyBand = FrequencyBand.UHF
    budget_ceiling: Optional[float] = Field(default=None, gt=0)
    source_text: str = ""
    assumptions: tuple[str, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def derive_totals(cls, data: Any) -> Any:
        # total_users is always site_count * users_per_site, and any
        # multi-site deployment requires inter-site communication.
        if not isinstance(data, dict):
            return data
        data = dict(data)
        sites = data.get("site_count", 1)
        per_site = data.get("users_per_site", 25)
        if isinstance(sites, int) and isinstance(per_site, int):
            data["total_users"] = sites * per_site
            if sites > 1:
                data["requires_inter_site"] = True
        return data

    @property
    def is_multi_site(self) -> bool:
        return self.site_count > 1

    def summary(self) -> dict[str, Any]:
        return {
            "site_count": self.site_count,
            "users_per_site": self.users_per_site,
            "total_users": self.total_users,
            "requires_inter_site": self.requires_inter_site,
            "industry": self.industry.value,
            "frequency_band": self.frequency_band.value,
            "budget_ceiling": self.budget_ceiling,
        }

# ============================================================
# Catalog Models
# ============================================================

class Product(BaseModel):
    id: str = ""
    sku: str
    name: str
    category: ProductCategory
    subcategory: Subcategory
    model_family: Optional[str] = None
    frequency_band: FrequencyBand = FrequencyBand.UNIVERSAL
    price: float = Field(ge=0)
    cost: float = Field(default=0.0, ge=0)
    inventory_qty: int = 0
    lifecycle_status: LifecycleStatus = LifecycleStatus.ACTIVE
    supported_architectures: list[SystemArchitecture] = Field(default_factory=list)
    description: Optional[str] = None

    @model_validator(mode="after")
    def default_id(self) -> "Product":
        if not self.id:
            self.id = self.sku
        return self

    @property
    def is_active(self) -> bool:
        return self.lifecycle_status != LifecycleStatus.DISCONTINUED

class CompatibilityEdge(BaseModel):
    """Derived pairing between a primary product and one candidate."""
    model_config = ConfigDict(frozen=True)

    primary_product_id: str
    compatible_product_id: str
    type: CompatibilityType
    reason: str
    installation_notes: str = ""
    configuration_required: bool = False

    @property
    def is_compatible(self) -> bool:
        return self.type != CompatibilityType.INCOMPATIBLE

class EquipmentSelection(BaseModel):
    """Radio, repeater and accessories chosen for one quote."""
    radio: Product
    repeater: Product
    accessories: dict[Subcategory, Product] = Field(default_factory=dict)
    repeater_quantity: int = Field(default=1, ge=1)
    compatibility: list[CompatibilityEdge] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)
    alternate_radios: list[Product] = Field(default_factory=list)

class LineItem(BaseModel):
    sku: str
    name: str
    subcategory: Subcategory
    quantity: int
    unit_price: float
    extended_price: float

# ============================================================
# Pricing Models
# ============================================================

class QuoteTotal(BaseModel):
    model_config = ConfigDict(frozen=True)

    repeater_cost: float
    radio_cost: float
    accessory_cost: float
    installation_cost: float
    licensing_cost: float
    linking_cost: float = 0.0
    subtotal: float
    tax: float
    total: float
    price_per_user: float
    cost_basis: float = 0.0

    @property
    def margin(self) -> float:
        if self.total <= 0:
            return 0.0
        return (self.total - self.cost_basis) / self.total

class PriceQuote(BaseModel):
    """One SKU's price as reported by the ERP."""
    price: float
    cost: float = 0.0
    last_updated: Optional[datetime] = None

class InventoryLevel(BaseModel):
    available: int = 0

class PricingSnapshot(BaseModel):
    """What the post-validation pricing checks compare against."""
    source: PricingSource = PricingSource.CATALOG
    quoted_prices: dict[str, float] = Field(default_factory=dict)
    erp_prices: dict[str, PriceQuote] = Field(default_factory=dict)
    inventory: dict[str, InventoryLevel] = Field(default_factory=dict)
    required_quantities: dict[str, int] = Field(default_factory=dict)
    failure: Optional[str] = None

# ============================================================
# Validation Models
# ============================================================

class Violation(BaseModel):
    rule: str
    message: str
    severity: Severity
    context: dict[str, Any] = Field(default_factory=dict)
    recommendation: Optional[str] = None

class ValidationResult(BaseModel):
    is_valid: bool = True
    errors: list[Violation] = Field(default_factory=list)
    warnings: list[Violation] = Field(default_factory=list)
    audit_id: str
    stage: ValidationStage = ValidationStage.POST
    requires_review: bool = False

    @model_validator(mode="after")
    def critical_blocks(self) -> "ValidationResult":
        if any(v.severity == Severity.CRITICAL for v in self.errors + self.warnings):
            self.is_valid = False
        return self

    @classmethod
    def from_violations(
        cls,
        violations: list[Violation],
        audit_id: str,
        stage: ValidationStage,
        requires_review: bool = False,
    ) -> "ValidationResult":
        errors = [v for v in violations if v.severity == Severity.CRITICAL]
        warnings = [v for v in violations if v.severity != Severity.CRITICAL]
        return cls(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            audit_id=audit_id,
            stage=stage,
            requires_review=requires_review or bool(errors),
        )

    @property
    def violations(self) -> list[Violation]:
        return self.errors + self.warnings

class AuditRecord(BaseModel):
    audit_id: str
    timestamp: str
    stage: ValidationStage
    is_valid: bool
    error_count: int
    warning_count: int
    requires_review: bool
    rule_violations: list[Violation] = Field(default_factory=list)
    request_summary: dict[str, Any] = Field(default_factory=dict)

# ============================================================
# Learning Models
# ============================================================

class LearningPattern(BaseModel):
    pattern_type: PatternType
    industry: Industry = Industry.GENERAL
    user_range: str = "1-25"
    data: dict[str, Any] = Field(default_factory=dict)
    success_rate: float = Field(default=0.0, ge=0, le=1)
    sample_size: int = 0
    confidence: float = Field(default=0.0, ge=0, le=1)

class LearningSummary(BaseModel):
    """Advisory annotations from learned patterns, carried on the quote."""
    patterns_applied: int = 0
    suggested_combinations: list[dict[str, Any]] = Field(default_factory=list)
    recommended_accessories: list[str] = Field(default_factory=list)
    optimal_price_range: Optional[str] = None
    target_price_per_user: Optional[float] = None

class AdjustmentResult(LearningSummary):
    radios: list[Product] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)

    def summary(self) -> LearningSummary:
        return LearningSummary(**self.model_dump(include=set(LearningSummary.model_fields)))

# ============================================================
# API Request/Response Models
# ============================================================

class DecisionTrace(BaseModel):
    step: str
    detail: str
    timestamp: str

class QuoteEquipment(BaseModel):
    repeaters: list[LineItem] = Field(default_factory=list)
    radios: list[LineItem] = Field(default_factory=list)
    accessories: list[LineItem] = Field(default_factory=list)

class Quote(BaseModel):
    quote_number: str
    architecture: SystemArchitecture
    requirement: DeploymentRequirement
    equipment: QuoteEquipment
    pricing: QuoteTotal
    validation: ValidationResult
    pricing_source: PricingSource = PricingSource.CATALOG
    insights: list[str] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)
    alternate_radios: list[str] = Field(default_factory=list)
    learning: Optional[LearningSummary] = None
    total_display: str = ""
    decision_trace: list[DecisionTrace] = Field(default_factory=list)
    response_time_ms: int = 0

class QuoteRequest(BaseModel):
    text: str = Field(min_length=1)
    session_id: Optional[str] = None

class ArchitectureSelectRequest(BaseModel):
    total_users: int = Field(ge=1)
    is_multi_site: bool = False

class HealthResponse(BaseModel):
    status: str
    components: dict[str, dict]
    version: str
    uptime_seconds: int
    request_count: int = 0

# ============================================================
# Utility: Number Words & Money
# ============================================================

NUMBER_WORDS = {
    'one': 1, 'two': 2, 'three': 3, 'four': 4, 'five': 5,
    'six': 6, 'seven': 7, 'eight': 8, 'nine': 9, 'ten': 10,
    'eleven': 11, 'twelve': 12, 'fifteen': 15, 'twenty': 20,
    'thirty': 30, 'forty': 40, 'fifty': 50,
    'a dozen': 12, 'a couple of': 2, 'a couple': 2,
}

def replace_number_words(text: str) -> str:
    """Rewrite 'five hospitals' as '5 hospitals' so digit patterns see it."""
    if not text:
        return ""
    out = text
    # Longest phrases first so 'a couple of' wins over 'a couple'
    for word in sorted(NUMBER_WORDS, key=len, reverse=True):
        out = re.sub(rf'\b{word}\b', str(NUMBER_WORDS[word]), out, flags=re.IGNORECASE)
    return out


def parse_count(raw: str) -> Optional[int]:
    """Parse '1,200' or '-5' into an int."""
    if raw is None:
        return None
    t = raw.replace(',', '').strip()
    if not t:
        return None
    try:
        return int(t)
    except ValueError:
        return None


def parse_money(text: str) -> Optional[float]:
    """Parse amounts like '$50,000', '75k', '$1.2m' or '1.5 million'."""
    if not text:
        return None
    m = re.search(
        r'\$?\s*(\d[\d,]*(?:\.\d+)?)\s*(k|thousand|m|mm|million)?\b',
        text, re.IGNORECASE,
    )
    if not m:
        return None
    value = float(m.group(1).replace(',', ''))
    suffix = (m.group(2) or '').lower()
    if suffix in ('k', 'thousand'):
        value *= 1_000
    elif suffix in ('m', 'mm', 'million'):
        value *= 1_000_000
    return value
