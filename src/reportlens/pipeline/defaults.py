# src/reportlens/pipeline/defaults.py
from __future__ import annotations

from reportlens.core.types import (
    AssetMetric,
    BusinessOverview,
    EmployeeMetric,
    ExtractionQuality,
    FinancialMetrics,
    ProfitLossMetric,
    RevenueMetric,
    ValidationInfo,
)

# Placeholder texts; the quality score recognises them as "not extracted"
DEFAULT_COMPANY_OVERVIEW = "Unable to extract company overview from document"
DEFAULT_BUSINESS_MODEL = "Business model extraction failed"

FALLBACK_SOURCE_TEXT = "Unable to extract - using defaults"
FALLBACK_NOTES = "Fallback mode - limited financial data available"


def default_business_overview(reason: str = "business overview extraction failed") -> BusinessOverview:
    return BusinessOverview(
        company_overview=DEFAULT_COMPANY_OVERVIEW,
        business_model=DEFAULT_BUSINESS_MODEL,
        hr_payroll_relevance="HR/Payroll relevance analysis unavailable",
        industry_classification="Unknown",
        competitive_position="Competitive position analysis unavailable",
        extraction_quality=ExtractionQuality(
            confidence="low",
            completeness="limited",
            source_quality=f"Fallback mode - {reason}",
        ),
    )


def default_financial_metrics(base_currency: str = "USD") -> FinancialMetrics:
    """All-null metrics, flagged for review."""
    return FinancialMetrics(
        revenue=RevenueMetric(currency=base_currency, source_text=FALLBACK_SOURCE_TEXT),
        profit_loss=ProfitLossMetric(
            source_text=FALLBACK_SOURCE_TEXT,
            validation_flags=["fallback_mode"],
        ),
        employees=EmployeeMetric(source_text=FALLBACK_SOURCE_TEXT),
        assets=AssetMetric(currency=base_currency, source_text=FALLBACK_SOURCE_TEXT),
        validation=ValidationInfo(flagged_for_review=True, notes=FALLBACK_NOTES),
    )
