# src/reportlens/extractors/business_overview_extractor.py
from __future__ import annotations

import logging
from typing import Any, List, Mapping

from reportlens.core.errors import ReportLensError, StageExtractionError
from reportlens.core.types import BusinessOverview, ExtractionQuality
from reportlens.extractors.document_client import DocumentAnalysisClient, DocumentHandle
from reportlens.prompts.stage_prompts import BUSINESS_OVERVIEW_PROMPT
from reportlens.utils.json_recovery import extract_json_object

logger = logging.getLogger(__name__)

STAGE = "business_overview"

_CONFIDENCE = {"high", "medium", "low"}
_COMPLETENESS = {"complete", "partial", "limited"}


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def _choice(value: Any, allowed: set, default: str) -> str:
    value = str(value or "").strip().lower()
    return value if value in allowed else default


def parse_business_overview(data: Mapping[str, Any]) -> BusinessOverview:
    """Build a BusinessOverview from the service JSON; overview and model are required."""
    overview = str(data.get("companyOverview") or "").strip()
    model = str(data.get("businessModel") or "").strip()
    if not overview or not model:
        raise StageExtractionError(
            STAGE,
            "business overview response is missing companyOverview/businessModel",
            {"keys": sorted(data.keys())},
        )

    quality = data.get("extractionQuality") or {}
    if not isinstance(quality, Mapping):
        quality = {}

    return BusinessOverview(
        company_overview=overview,
        business_model=model,
        revenue_streams=_str_list(data.get("revenueStreams")),
        key_metrics=_str_list(data.get("keyMetrics")),
        operational_challenges=_str_list(data.get("operationalChallenges")),
        hr_payroll_relevance=str(data.get("hrPayrollRelevance") or "").strip(),
        industry_classification=str(data.get("industryClassification") or "Unknown").strip(),
        competitive_position=str(data.get("competitivePosition") or "").strip(),
        extraction_quality=ExtractionQuality(
            confidence=_choice(quality.get("confidence"), _CONFIDENCE, "low"),
            completeness=_choice(quality.get("completeness"), _COMPLETENESS, "limited"),
            source_quality=str(quality.get("sourceQuality") or "").strip(),
        ),
    )


async def extract_business_overview(
    client: DocumentAnalysisClient,
    document: DocumentHandle,
) -> BusinessOverview:
    """Stage 0: what the company does and how it makes money."""
    try:
        raw = await client.generate(document, BUSINESS_OVERVIEW_PROMPT.text, temperature=0.3)
        data = extract_json_object(raw)
    except StageExtractionError:
        raise
    except ReportLensError as exc:
        raise StageExtractionError(STAGE, str(exc)) from exc

    try:
        overview = parse_business_overview(data)
    except (TypeError, ValueError, AttributeError) as exc:
        raise StageExtractionError(STAGE, f"malformed business overview response: {exc}") from exc

    logger.info(
        "business_overview: prompt=%s industry=%s confidence=%s revenue_streams=%d",
        BUSINESS_OVERVIEW_PROMPT.key,
        overview.industry_classification,
        overview.extraction_quality.confidence,
        len(overview.revenue_streams),
    )
    return overview
