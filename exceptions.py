"""
exceptions.py - Typed errors raised by the quoting pipeline.

Callers decide the user-facing message; the pipeline only classifies.
"""

from __future__ import annotations

from typing import Any, Optional


class QuoteError(Exception):
    """Base class for every pipeline error."""


class InvalidRequirement(QuoteError, ValueError):
    """Requirement is unparseable or has a zero/negative count."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.field = field
        self.value = value


class UnreasonableRequestError(QuoteError):
    """Request exceeds a sanity ceiling and must go to manual sales."""

    def __init__(self, message: str, field: str, value: int, limit: int):
        super().__init__(
            f"{message} Please contact our enterprise sales team for a custom quote."
        )
        self.field = field
        self.value = value
        self.limit = limit


class CompatibilityGap(QuoteError):
    """No rule-table entry covers a needed product."""

    def __init__(self, message: str, subcategory: Optional[str] = None):
        super().__init__(message)
        self.subcategory = subcategory


class ExternalServiceFailure(QuoteError):
    """Catalog or pricing collaborator timed out or errored."""

    def __init__(self, message: str, service: str, code: str = "SERVICE_FAILURE"):
        super().__init__(message)
        self.service = service
        self.code = code


class ValidationFailure(QuoteError):
    """Assembled quote was rejected by the safety validator."""

    def __init__(self, result, quote=None):
        # result: models.ValidationResult; quote: partial models.Quote or None
        rules = ", ".join(v.rule for v in result.errors) or "unknown"
        super().__init__(f"Quote failed validation ({rules})")
        self.result = result
        self.quote = quote
