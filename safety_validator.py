"""
Radio Quote Expert - Safety Validator

Gate between an assembled quote and the customer.

Responsibilities:
  1. Pre-validation on the requirement alone (before equipment/pricing)
  2. Post-validation on the priced quote
  3. Every rule runs; violations accumulate instead of short-circuiting
  4. CRITICAL blocks the quote, HIGH/MEDIUM are advisory
  5. Structured audit record for every validation call
"""
from __future__ import annotations
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from uuid import uuid4

from architecture_selector import (
    architecture_profile, select_architecture, supports,
)
from config import SafetyThresholds
from models import (
    AuditRecord, DeploymentRequirement, PricingSnapshot, PricingSource,
    QuoteTotal, Severity, SystemArchitecture, ValidationResult,
    ValidationStage, Violation,
)

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("audit")


# ============================================================
# Audit Sinks
# ============================================================

class AuditSink:
    """Receives one AuditRecord per validation call; persistence is the sink's job."""

    def emit(self, record: AuditRecord) -> None:
        raise NotImplementedError


class LoggingAuditSink(AuditSink):
    def emit(self, record: AuditRecord) -> None:
        audit_logger.info(
            "validation %s stage=%s valid=%s errors=%d warnings=%d",
            record.audit_id, record.stage.value, record.is_valid,
            record.error_count, record.warning_count,
            extra={"data": record.model_dump(mode="json")},
        )


class InMemoryAuditSink(AuditSink):
    def __init__(self):
        self.records: list[AuditRecord] = []

    def emit(self, record: AuditRecord) -> None:
        self.records.append(record)


def new_audit_id() -> str:
    return f"VAL-{int(time.time() * 1000)}-{uuid4().hex[:6]}"


def build_audit_record(
    result: ValidationResult,
    requirement: DeploymentRequirement,
    total: Optional[QuoteTotal] = None,
    architecture: Optional[SystemArchitecture] = None,
) -> AuditRecord:
    summary = requirement.summary()
    if architecture is not None:
        summary['architecture'] = architecture.value
    if total is not None:
        summary['quote_total'] = total.total
        summary['price_per_user'] = total.price_per_user
    return AuditRecord(
        audit_id=result.audit_id,
        timestamp=datetime.now(timezone.utc).isoformat(),
        stage=result.stage,
        is_valid=result.is_valid,
        error_count=len(result.errors),
        warning_count=len(result.warnings),
        requires_review=result.requires_review,
        rule_violations=result.violations,
        request_summary=summary,
    )


# ============================================================
# Validator
# ============================================================

@dataclass
class ValidationContext:
    requirement: DeploymentRequirement
    architecture: Optional[SystemArchitecture] = None
    total: Optional[QuoteTotal] = None
    pricing: Optional[PricingSnapshot] = None


Rule = Callable[[ValidationContext], list[Violation]]

# Rules whose findings always need a human look, whatever their severity
REVIEW_RULES = {'high_value_review', 'multi_site_minimum'}


class SafetyValidator:
    """
    Re-checks requirements and priced quotes against business-risk limits.
    Both call sites read the same SafetyThresholds.
    """

    def __init__(
        self,
        thresholds: Optional[SafetyThresholds] = None,
        audit_sink: Optional[AuditSink] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.thresholds = thresholds or SafetyThresholds()
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.clock = clock

    # ----------------------------------------------------------
    # Public API
    # ----------------------------------------------------------

    def pre_validate(
        self,
        requirement: DeploymentRequirement,
        architecture: Optional[SystemArchitecture] = None,
    ) -> ValidationResult:
        ctx = ValidationContext(requirement=requirement, architecture=architecture)
        rules: list[tuple[str, Rule]] = [
            ('max_users', self._max_users),
            ('max_sites', self._max_sites),
            ('estimated_value', self._estimated_value),
            ('architecture_consistency', self._architecture_consistency),
        ]
        return self._run(ValidationStage.PRE, rules, ctx)

    def post_validate(
        self,
        requirement: DeploymentRequirement,
        architecture: SystemArchitecture,
        total: QuoteTotal,
        pricing: Optional[PricingSnapshot] = None,
    ) -> ValidationResult:
        ctx = ValidationContext(
            requirement=requirement, architecture=architecture,
            total=total, pricing=pricing,
        )
        rules: list[tuple[str, Rule]] = [
            ('max_users', self._max_users),
            ('max_quote_amount', self._max_quote_amount),
            ('price_per_user_band', self._price_per_user_band),
            ('margin_floor', self._margin_floor),
            ('architecture_consistency', self._architecture_consistency),
            ('high_value_review', self._high_value_review),
            ('multi_site_minimum', self._multi_site_minimum),
            ('budget_ceiling', self._budget_ceiling),
            ('pricing_source', self._pricing_source),
            ('pricing_accuracy', self._pricing_accuracy),
            ('recent_price_change', self._recent_price_change),
            ('inventory_availability', self._inventory_availability),
        ]
        return self._run(ValidationStage.POST, rules, ctx)

    # ----------------------------------------------------------
    # Execution
    # ----------------------------------------------------------

    def _run(
        self,
        stage: ValidationStage,
        rules: list[tuple[str, Rule]],
        ctx: ValidationContext,
    ) -> ValidationResult:
        violations: list[Violation] = []
        for name, rule in rules:
            try:
                violations.extend(rule(ctx))
            except Exception as e:
                logger.exception("Validation rule %s raised", name)
                violations.append(Violation(
                    rule='rule_execution_failed',
                    message=f"Rule {name} could not be evaluated: {e}",
                    severity=Severity.CRITICAL,
                    context={'rule': name},
                ))

        requires_review = any(
            v.rule in REVIEW_RULES or v.severity == Severity.HIGH for v in violations
        )
        result = ValidationResult.from_violations(
            violations, audit_id=new_audit_id(), stage=stage,
            requires_review=requires_review,
        )
        self.audit_sink.emit(build_audit_record(
            result, ctx.requirement, ctx.total, ctx.architecture))

        if not result.is_valid:
            logger.warning(
                "%s-validation failed (%s): %s", stage.value, result.audit_id,
                ', '.join(v.rule for v in result.errors),
            )
        return result

    # ----------------------------------------------------------
    # Requirement rules
    # ----------------------------------------------------------

    def _max_users(self, ctx: ValidationContext) -> list[Violation]:
        users, limit = ctx.requirement.total_users, self.thresholds.max_total_users
        if users <= limit:
            return []
        return [Violation(
            rule='max_users',
            message=f"User count {users:,} exceeds maximum {limit:,}",
            severity=Severity.CRITICAL,
            context={'total_users': users, 'limit': limit},
            recommendation='Route to enterprise sales for a custom design',
        )]

    def _max_sites(self, ctx: ValidationContext) -> list[Violation]:
        sites, limit = ctx.requirement.site_count, self.thresholds.max_site_count
        if sites <= limit:
            return []
        return [Violation(
            rule='max_sites',
            message=f"Site count {sites} exceeds maximum {limit}",
            severity=Severity.CRITICAL,
            context={'site_count': sites, 'limit': limit},
        )]

    def _estimated_value(self, ctx: ValidationContext) -> list[Violation]:
        t = self.thresholds
        estimate = ctx.requirement.total_users * t.estimate_price_per_user
        if estimate <= t.max_quote_amount:
            return []
        return [Violation(
            rule='estimated_value',
            message=f"Estimated value ${estimate:,.0f} is above the "
                    f"${t.max_quote_amount:,.0f} quote ceiling",
            severity=Severity.HIGH,
            context={'estimate': estimate, 'limit': t.max_quote_amount},
        )]

    def _architecture_consistency(self, ctx: ValidationContext) -> list[Violation]:
        arch = ctx.architecture
        if arch is None:
            return []
        req = ctx.requirement
        profile = architecture_profile(arch)
        expected = select_architecture(req.total_users, req.is_multi_site)
        if supports(expected, req.total_users, req.site_count):
            fix = f"Use {expected.value}"
        else:
            fix = (f"No standard architecture supports {req.total_users:,} users "
                   f"across {req.site_count} site(s); route to engineering review")
        ctx_data = {
            'assigned': arch.value, 'expected': expected.value,
            'total_users': req.total_users, 'site_count': req.site_count,
        }

        if req.is_multi_site and not profile.multi_site_capable:
            return [Violation(
                rule='architecture_consistency',
                message=f"Multi-site request assigned single-site architecture {arch.value}",
                severity=Severity.CRITICAL, context=ctx_data, recommendation=fix,
            )]
        if req.total_users > profile.max_users or req.site_count > profile.max_sites:
            return [Violation(
                rule='architecture_consistency',
                message=f"{arch.value} supports {profile.max_users:,} users / "
                        f"{profile.max_sites} sites; request needs "
                        f"{req.total_users:,} / {req.site_count}",
                severity=Severity.CRITICAL, context=ctx_data, recommendation=fix,
            )]
        if arch != expected:
            return [Violation(
                rule='architecture_mismatch',
                message=f"Assigned {arch.value}; selector expects {expected.value}",
                severity=Severity.MEDIUM, context=ctx_data, recommendation=fix,
            )]
        return []

    # ----------------------------------------------------------
    # Quote rules
    # ----------------------------------------------------------

    def _max_quote_amount(self, ctx: ValidationContext) -> list[Violation]:
        total, limit = ctx.total.total, self.thresholds.max_quote_amount
        if total <= limit:
            return []
        return [Violation(
            rule='max_quote_amount',
            message=f"Quote total ${total:,.2f} exceeds maximum ${limit:,.2f}",
            severity=Severity.CRITICAL,
            context={'total': total, 'limit': limit},
            recommendation='Split the deployment or route to enterprise sales',
        )]

    def _price_per_user_band(self, ctx: ValidationContext) -> list[Violation]:
        t = self.thresholds
        ppu = ctx.total.price_per_user
        if t.min_price_per_user <= ppu <= t.max_price_per_user:
            return []
        side = 'below' if ppu < t.min_price_per_user else 'above'
        return [Violation(
            rule='price_per_user_band',
            message=f"Price per user ${ppu:,.2f} is {side} the "
                    f"${t.min_price_per_user:,.0f}-${t.max_price_per_user:,.0f} band",
            severity=Severity.HIGH,
            context={'price_per_user': ppu, 'min': t.min_price_per_user,
                     'max': t.max_price_per_user},
        )]

    def _margin_floor(self, ctx: ValidationContext) -> list[Violation]:
        margin, floor = ctx.total.margin, self.thresholds.margin_floor
        if margin >= floor:
            return []
        return [Violation(
            rule='margin_floor',
            message=f"Margin {margin:.1%} is below the {floor:.0%} floor",
            severity=Severity.HIGH,
            context={'margin': round(margin, 4), 'floor': floor,
                     'cost_basis': ctx.total.cost_basis, 'total': ctx.total.total},
        )]

    def _high_value_review(self, ctx: ValidationContext) -> list[Violation]:
        total, limit = ctx.total.total, self.thresholds.high_value_review
        if total <= limit:
            return []
        return [Violation(
            rule='high_value_review',
            message=f"High-value quote ${total:,.2f} requires management review",
            severity=Severity.MEDIUM,
            context={'total': total, 'threshold': limit},
        )]

    def _multi_site_minimum(self, ctx: ValidationContext) -> list[Violation]:
        if not ctx.requirement.is_multi_site:
            return []
        total, floor = ctx.total.total, self.thresholds.min_multi_site_total
        if total >= floor:
            return []
        return [Violation(
            rule='multi_site_minimum',
            message=f"Multi-site quote ${total:,.2f} is suspiciously low",
            severity=Severity.MEDIUM,
            context={'total': total, 'minimum': floor,
                     'site_count': ctx.requirement.site_count},
        )]

    def _budget_ceiling(self, ctx: ValidationContext) -> list[Violation]:
        budget = ctx.requirement.budget_ceiling
        if budget is None or ctx.total.total <= budget:
            return []
        return [Violation(
            rule='budget_ceiling',
            message=f"Quote total ${ctx.total.total:,.2f} exceeds the customer "
                    f"budget of ${budget:,.2f}",
            severity=Severity.HIGH,
            context={'total': ctx.total.total, 'budget': budget},
        )]

    # ----------------------------------------------------------
    # External pricing rules
    # ----------------------------------------------------------

    def _pricing_source(self, ctx: ValidationContext) -> list[Violation]:
        if ctx.pricing is None or ctx.pricing.source != PricingSource.UNAVAILABLE:
            return []
        return [Violation(
            rule='external_service_unavailable',
            message='Live pricing unavailable and no cached prices exist',
            severity=Severity.CRITICAL,
            context={'failure': ctx.pricing.failure},
            recommendation='Retry once the pricing service recovers',
        )]

    def _pricing_accuracy(self, ctx: ValidationContext) -> list[Violation]:
        if ctx.pricing is None:
            return []
        tolerance = self.thresholds.pricing_tolerance
        out = []
        for sku, quoted in sorted(ctx.pricing.quoted_prices.items()):
            erp = ctx.pricing.erp_prices.get(sku)
            if erp is None or erp.price <= 0:
                continue
            deviation = abs(quoted - erp.price) / erp.price
            if deviation > tolerance:
                out.append(Violation(
                    rule='pricing_accuracy',
                    message=f"{sku} quoted at ${quoted:,.2f}; ERP price is ${erp.price:,.2f}",
                    severity=Severity.CRITICAL,
                    context={'sku': sku, 'quoted': quoted, 'erp': erp.price,
                             'deviation': round(deviation, 4)},
                ))
        return out

    def _recent_price_change(self, ctx: ValidationContext) -> list[Violation]:
        if ctx.pricing is None:
            return []
        cutoff = self.clock() - timedelta(hours=self.thresholds.recent_price_change_hours)
        out = []
        for sku, erp in sorted(ctx.pricing.erp_prices.items()):
            if erp.last_updated is None:
                continue
            updated = erp.last_updated
            if updated.tzinfo is None:
                updated = updated.replace(tzinfo=timezone.utc)
            if updated > cutoff:
                out.append(Violation(
                    rule='recent_price_change',
                    message=f"{sku} price changed at {updated.isoformat()}",
                    severity=Severity.MEDIUM,
                    context={'sku': sku, 'last_updated': updated.isoformat()},
                ))
        return out

    def _inventory_availability(self, ctx: ValidationContext) -> list[Violation]:
        if ctx.pricing is None:
            return []
        out = []
        for sku, needed in sorted(ctx.pricing.required_quantities.items()):
            level = ctx.pricing.inventory.get(sku)
            if level is None:
                continue
            if level.available <= 0:
                out.append(Violation(
                    rule='inventory_out_of_stock',
                    message=f"{sku} is out of stock",
                    severity=Severity.HIGH,
                    context={'sku': sku, 'needed': needed, 'available': level.available},
                ))
            elif level.available < needed:
                out.append(Violation(
                    rule='inventory_insufficient',
                    message=f"{sku}: need {needed}, {level.available} available",
                    severity=Severity.MEDIUM,
                    context={'sku': sku, 'needed': needed, 'available': level.available},
                ))
        return out
