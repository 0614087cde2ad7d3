# src/reportlens/extractors/hr_extractor.py
from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from reportlens.core.errors import ReportLensError, StageExtractionError
from reportlens.core.types import (
    HR_CATEGORIES,
    BusinessOverview,
    FinancialMetrics,
    HRExtractionQuality,
    HRInsight,
    HRInsights,
)
from reportlens.extractors.document_client import DocumentAnalysisClient, DocumentHandle
from reportlens.prompts.stage_prompts import HR_PROMPT, build_hr_instruction
from reportlens.utils.json_recovery import extract_json_object

logger = logging.getLogger(__name__)

STAGE = "hr"

# snake_case field -> key used in the service JSON
CATEGORY_KEYS = {
    "business_context": "businessContext",
    "workforce_insights": "workforceInsights",
    "operational_challenges": "operationalChallenges",
    "strategic_people_initiatives": "strategicPeopleInitiatives",
}

_CONFIDENCE = {"high", "medium", "low"}
_COMPLETENESS = {"complete", "partial", "limited"}


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _insight_confidence(value: Any) -> Optional[int]:
    """1-10 scale; anything unparseable is dropped, out-of-range values are clamped."""
    if value is None or isinstance(value, bool):
        return None
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return None
    return max(1, min(10, score))


def _parse_insight(entry: Any) -> Optional[HRInsight]:
    if not isinstance(entry, Mapping):
        return None
    data_point = _clean(entry.get("dataPoint"))
    if not data_point:
        return None
    return HRInsight(
        data_point=data_point,
        hr_relevance=_clean(entry.get("hrRelevance")) or "",
        conversation_starter=_clean(entry.get("conversationStarter")) or "",
        source_context=_clean(entry.get("sourceContext")),
        confidence=_insight_confidence(entry.get("confidence")),
        page_reference=_clean(entry.get("pageReference")),
    )


def _text_list(raw: Mapping[str, Any], key: str) -> List[str]:
    value = raw.get(key) or []
    if not isinstance(value, list):
        raise StageExtractionError(STAGE, f"'{key}' must be a list", {"type": type(value).__name__})
    return [str(c) for c in value if c]


def _parse_quality(raw: Any) -> HRExtractionQuality:
    if not isinstance(raw, Mapping):
        raw = {}
    overall = str(raw.get("overallConfidence") or "").lower()
    completeness = str(raw.get("dataCompleteness") or "").lower()
    return HRExtractionQuality(
        overall_confidence=overall if overall in _CONFIDENCE else "low",
        data_completeness=completeness if completeness in _COMPLETENESS else "limited",
        validation_concerns=_text_list(raw, "validationConcerns"),
        recommended_follow_up=_text_list(raw, "recommendedFollowUp"),
    )


def parse_hr_insights(data: Mapping[str, Any]) -> HRInsights:
    """
    Validate and type the HR stage response.

    A summary and a businessContext list are required; the other three
    categories default to empty lists when absent.
    """
    summary = _clean(data.get("summary"))
    if not summary or not isinstance(data.get("businessContext"), list):
        raise StageExtractionError(STAGE, "Invalid HR insights structure", {"keys": sorted(data.keys())})

    lists = {}
    for field_name in HR_CATEGORIES:
        raw_list = data.get(CATEGORY_KEYS[field_name]) or []
        if not isinstance(raw_list, list):
            logger.warning("hr: '%s' is not a list, ignoring", CATEGORY_KEYS[field_name])
            raw_list = []
        parsed: List[HRInsight] = [i for i in (_parse_insight(e) for e in raw_list) if i is not None]
        if len(parsed) < len(raw_list):
            logger.debug("hr: dropped %d malformed %s entries", len(raw_list) - len(parsed), field_name)
        lists[field_name] = parsed

    return HRInsights(
        summary=summary,
        extraction_quality=_parse_quality(data.get("extractionQuality")),
        **lists,
    )


async def generate_hr_insights(
    client: DocumentAnalysisClient,
    document: DocumentHandle,
    *,
    min_insights: int = 5,
    overview: Optional[BusinessOverview] = None,
    financials: Optional[FinancialMetrics] = None,
) -> HRInsights:
    """
    Stage 2: HR talking points.

    overview / financials are only passed in sequential runs; in parallel
    runs the stage works from the document alone.
    """
    instruction = build_hr_instruction(min_insights, overview, financials)

    try:
        raw = await client.generate(document, instruction, temperature=0.3)
        data = extract_json_object(raw)
    except StageExtractionError:
        raise
    except ReportLensError as exc:
        raise StageExtractionError(STAGE, str(exc)) from exc

    try:
        insights = parse_hr_insights(data)
    except (TypeError, ValueError, AttributeError) as exc:
        raise StageExtractionError(STAGE, f"malformed HR insights response: {exc}") from exc

    total = insights.total_insights
    if total < min_insights:
        concern = f"only {total} insights extracted (expected at least {min_insights})"
        logger.warning("hr: %s", concern)
        insights.extraction_quality.validation_concerns.append(concern)

    logger.info(
        "hr: prompt=%s business_context=%d workforce=%d overall_confidence=%s",
        HR_PROMPT.key,
        len(insights.business_context),
        len(insights.workforce_insights),
        insights.extraction_quality.overall_confidence,
    )
    return insights
