from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from reportlens.core.types import PipelineResult

logger = logging.getLogger(__name__)

REQUIRED_KEYS = (
    "summary",
    "businessContext",
    "workforceInsights",
    "operationalChallenges",
    "strategicPeopleInitiatives",
)


def to_analysis_data(result: PipelineResult) -> Dict[str, Any]:
    """
    Flatten a PipelineResult into the AnalysisData document the caller
    persists:

    {
        "summary": str,
        "businessOverview": {...},
        "businessContext": [...],
        "workforceInsights": [...],
        "operationalChallenges": [...],
        "strategicPeopleInitiatives": [...],
        "financialMetrics": {...},
        "processingStats": {...},
    }
    """
    hr = result.hr_insights.to_dict()

    return {
        "summary": hr["summary"],
        "businessOverview": result.business_overview.to_dict(),
        "businessContext": hr["businessContext"],
        "workforceInsights": hr["workforceInsights"],
        "operationalChallenges": hr["operationalChallenges"],
        "strategicPeopleInitiatives": hr["strategicPeopleInitiatives"],
        "extractionQuality": hr["extractionQuality"],
        "financialMetrics": result.financial_metrics.to_dict(),
        "processingStats": result.processing_stats.to_dict(),
    }


def validate_analysis_data(data: Mapping[str, Any]) -> bool:
    """True when the summary is non-empty and all four insight lists are present."""
    if not isinstance(data, Mapping):
        return False
    if not data.get("summary"):
        return False
    for key in REQUIRED_KEYS[1:]:
        if not isinstance(data.get(key), list):
            logger.warning("assemble_output: missing or invalid '%s'", key)
            return False
    return True
