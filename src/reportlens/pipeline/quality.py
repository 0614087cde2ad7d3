# src/reportlens/pipeline/quality.py
from __future__ import annotations

from reportlens.core.types import BusinessOverview, FinancialMetrics, HRInsights
from reportlens.pipeline.defaults import DEFAULT_BUSINESS_MODEL, DEFAULT_COMPANY_OVERVIEW


def business_overview_score(overview: BusinessOverview) -> float:
    score = 0.0
    if overview.company_overview and overview.company_overview != DEFAULT_COMPANY_OVERVIEW:
        score += 5
    if overview.business_model and overview.business_model != DEFAULT_BUSINESS_MODEL:
        score += 5
    if overview.revenue_streams:
        score += 5
    if overview.extraction_quality.confidence == "high":
        score += 5
    return score


def financial_score(metrics: FinancialMetrics) -> float:
    score = 0.0
    if metrics.revenue.current:
        score += 10
    if metrics.revenue.confidence == "high":
        score += 5
    if metrics.profit_loss.amount:
        score += 10
    if metrics.employees.total:
        score += 10
    if metrics.validation.cross_check_passed:
        score += 5
    return score


def hr_score(insights: HRInsights) -> float:
    score = min(20.0, insights.total_insights * 1.5)

    confidence = insights.extraction_quality.overall_confidence
    if confidence == "high":
        score += 15
    elif confidence == "medium":
        score += 8

    completeness = insights.extraction_quality.data_completeness
    if completeness == "complete":
        score += 5
    elif completeness == "partial":
        score += 3
    return score


def calculate_quality_score(
    overview: BusinessOverview,
    metrics: FinancialMetrics,
    insights: HRInsights,
) -> float:
    """
    Advisory 0-100 score: business overview up to 20, financial metrics up
    to 40, HR insights up to 40. Never used to pass or fail a run.
    """
    total = business_overview_score(overview) + financial_score(metrics) + hr_score(insights)
    return min(100.0, total)
