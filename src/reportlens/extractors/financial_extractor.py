# src/reportlens/extractors/financial_extractor.py
from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from reportlens.core.errors import ReportLensError, StageExtractionError
from reportlens.core.types import (
    AssetMetric,
    EmployeeMetric,
    FinancialMetrics,
    ProfitLossMetric,
    RevenueMetric,
    ValidationInfo,
)
from reportlens.extractors.document_client import DocumentAnalysisClient, DocumentHandle
from reportlens.normalization.financial_normalizer import FinancialNormalizer
from reportlens.prompts.stage_prompts import FINANCIAL_PROMPT
from reportlens.utils.json_recovery import extract_json_object
from reportlens.utils.numeric_parser import parse_count, parse_scaled_number

logger = logging.getLogger(__name__)

STAGE = "financial"

_CONFIDENCE = {"high", "medium", "low"}
_METHODS = {"direct_statement", "growth_narrative", "calculated"}
_PL_TYPES = {"profit", "loss", "breakeven"}


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key)
    if not isinstance(value, Mapping):
        logger.warning("financial: missing required field '%s'", key)
        return {}
    return value


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _optional_text(value: Any) -> Optional[str]:
    text = _text(value)
    return text or None


def _confidence(value: Any) -> str:
    value = _text(value).lower()
    return value if value in _CONFIDENCE else "low"


def _method(value: Any) -> str:
    value = _text(value).lower()
    return value if value in _METHODS else "direct_statement"


def _amount(value: Any, field: str) -> Optional[float]:
    if value in (None, ""):
        return None
    parsed = parse_scaled_number(value)
    if parsed is None:
        logger.warning("financial: could not parse %s value %r", field, value)
    return parsed


def _count(value: Any, field: str) -> Optional[int]:
    if value in (None, ""):
        return None
    parsed = parse_count(value)
    if parsed is None:
        logger.warning("financial: could not parse %s value %r", field, value)
    return parsed


class FinancialResponseParser:
    """Turns the service's financialMetrics JSON into a typed FinancialMetrics."""

    def __init__(self, normalizer: FinancialNormalizer) -> None:
        self.normalizer = normalizer

    def _currency(self, value: Any) -> str:
        raw = _text(value)
        if not raw:
            return self.normalizer.settings.base_currency
        found = self.normalizer.currency.find(raw)
        if found is not None:
            return found.code
        if len(raw) == 3 and raw.isalpha():
            return raw.upper()
        return self.normalizer.settings.base_currency

    def parse(self, data: Mapping[str, Any]) -> FinancialMetrics:
        metrics = data.get("financialMetrics")
        if metrics is None and "revenue" in data:
            metrics = data
        if not isinstance(metrics, Mapping):
            raise StageExtractionError(
                STAGE,
                "Missing or invalid financialMetrics structure",
                {"keys": sorted(data.keys())},
            )

        rev = _section(metrics, "revenue")
        pl = _section(metrics, "profitLoss")
        emp = _section(metrics, "employees")
        assets = _section(metrics, "assets")
        val = _section(metrics, "validation")

        pl_type = _text(pl.get("type")).lower()
        pl_type = pl_type if pl_type in _PL_TYPES else "profit"
        amount = _amount(pl.get("amount"), "profitLoss.amount")
        if amount is not None and pl_type == "loss":
            amount = -abs(amount)

        raw_flags = pl.get("validationFlags") or []
        if not isinstance(raw_flags, list):
            raise StageExtractionError(STAGE, "'validationFlags' must be a list", {"type": type(raw_flags).__name__})
        flags: List[str] = [str(f) for f in raw_flags if f]

        return FinancialMetrics(
            revenue=RevenueMetric(
                current=_amount(rev.get("current"), "revenue.current"),
                previous=_amount(rev.get("previous"), "revenue.previous"),
                growth=_optional_text(rev.get("growth")),
                currency=self._currency(rev.get("currency")),
                confidence=_confidence(rev.get("confidence")),
                source_text=_text(rev.get("sourceText")),
                extraction_method=_method(rev.get("extractionMethod")),
            ),
            profit_loss=ProfitLossMetric(
                type=pl_type,
                amount=amount,
                margin=_optional_text(pl.get("margin")),
                confidence=_confidence(pl.get("confidence")),
                source_text=_text(pl.get("sourceText")),
                validation_flags=flags,
                extraction_method=_method(pl.get("extractionMethod")),
            ),
            employees=EmployeeMetric(
                total=_count(emp.get("total"), "employees.total"),
                previous_year=_count(emp.get("previousYear"), "employees.previousYear"),
                growth=_optional_text(emp.get("growth")),
                confidence=_confidence(emp.get("confidence")),
                source_text=_text(emp.get("sourceText")),
                extraction_method=_method(emp.get("extractionMethod")),
            ),
            assets=AssetMetric(
                total=_amount(assets.get("total"), "assets.total"),
                currency=self._currency(assets.get("currency")),
                confidence=_confidence(assets.get("confidence")),
                source_text=_text(assets.get("sourceText")),
                extraction_method=_method(assets.get("extractionMethod")),
            ),
            validation=ValidationInfo(
                revenue_reasonable=bool(val.get("revenueReasonable", False)),
                profit_margin_reasonable=bool(val.get("profitMarginReasonable", False)),
                cross_check_passed=bool(val.get("crossCheckPassed", False)),
                flagged_for_review=bool(val.get("flaggedForReview", False)),
                notes=_text(val.get("notes")),
            ),
        )


def narrative_text(metrics: FinancialMetrics) -> str:
    """Every quoted source sentence plus the validation notes, in a stable order."""
    parts = [
        metrics.revenue.source_text,
        metrics.profit_loss.source_text,
        metrics.employees.source_text,
        metrics.assets.source_text,
        metrics.validation.notes,
    ]
    return ". ".join(p.strip().rstrip(".") for p in parts if p and p.strip())


async def extract_financial_metrics(
    client: DocumentAnalysisClient,
    document: DocumentHandle,
    normalizer: FinancialNormalizer,
) -> FinancialMetrics:
    """
    Stage 1: headline financial metrics.

    The service's figures are re-checked against its own quoted source text
    by the normalizer, which also fills anything the service left null.
    """
    try:
        raw = await client.generate(document, FINANCIAL_PROMPT.text, temperature=0.1)
        data = extract_json_object(raw)
    except StageExtractionError:
        raise
    except ReportLensError as exc:
        raise StageExtractionError(STAGE, str(exc)) from exc

    try:
        parsed = FinancialResponseParser(normalizer).parse(data)
    except (TypeError, ValueError, AttributeError) as exc:
        raise StageExtractionError(STAGE, f"malformed financial metrics response: {exc}") from exc
    metrics = normalizer.repair(parsed, narrative_text(parsed))

    if not metrics.validation.cross_check_passed:
        logger.warning("financial: cross-check did not pass: %s", metrics.validation.notes or "-")

    logger.info(
        "financial: prompt=%s revenue=%s employees=%s flagged=%s",
        FINANCIAL_PROMPT.key,
        metrics.revenue.current,
        metrics.employees.total,
        metrics.validation.flagged_for_review,
    )
    return metrics
