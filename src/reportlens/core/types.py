# src/reportlens/core/types.py
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple

Confidence = Literal["high", "medium", "low"]
ExtractionMethod = Literal["direct_statement", "growth_narrative", "calculated"]
ExecutionMode = Literal["sequential", "parallel"]

CONFIDENCE_RANK: Dict[str, int] = {"low": 0, "medium": 1, "high": 2}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _camelize(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {_camel(k): _camelize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_camelize(v) for v in obj]
    return obj


class _Serializable:
    """Mixin giving dataclasses the camelCase dict shape used for storage."""

    def to_dict(self) -> Dict[str, Any]:
        return _camelize(asdict(self))  # type: ignore[call-overload]


# ----------------------------------------------------------------------
# Currency / candidate matches
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class CurrencyInfo:
    symbol: str
    code: str
    name: str


@dataclass(frozen=True)
class FinancialMatch:
    """
    One candidate extraction for a metric, before best-match selection.
    Never persisted; only the winning candidate feeds FinancialMetrics.
    """
    metric: str
    value: float
    currency: CurrencyInfo
    context: str
    year: Optional[int]
    confidence: Confidence
    score: float
    strategy: str
    extraction_method: ExtractionMethod = "direct_statement"
    keyword: str = ""
    span: Tuple[int, int] = (0, 0)


# ----------------------------------------------------------------------
# Financial metrics
# ----------------------------------------------------------------------

@dataclass
class RevenueMetric(_Serializable):
    current: Optional[float] = None
    previous: Optional[float] = None
    growth: Optional[str] = None
    currency: str = "USD"
    confidence: Confidence = "low"
    source_text: str = ""
    extraction_method: ExtractionMethod = "direct_statement"


@dataclass
class ProfitLossMetric(_Serializable):
    type: Literal["profit", "loss", "breakeven"] = "profit"
    amount: Optional[float] = None
    margin: Optional[str] = None
    confidence: Confidence = "low"
    source_text: str = ""
    validation_flags: List[str] = field(default_factory=list)
    extraction_method: ExtractionMethod = "direct_statement"


@dataclass
class EmployeeMetric(_Serializable):
    total: Optional[int] = None
    previous_year: Optional[int] = None
    growth: Optional[str] = None
    confidence: Confidence = "low"
    source_text: str = ""
    extraction_method: ExtractionMethod = "direct_statement"


@dataclass
class AssetMetric(_Serializable):
    total: Optional[float] = None
    currency: str = "USD"
    confidence: Confidence = "low"
    source_text: str = ""
    extraction_method: ExtractionMethod = "direct_statement"


@dataclass
class ValidationInfo(_Serializable):
    revenue_reasonable: bool = False
    profit_margin_reasonable: bool = False
    cross_check_passed: bool = False
    flagged_for_review: bool = False
    notes: str = ""

    def add_note(self, note: str) -> None:
        self.notes = f"{self.notes}; {note}" if self.notes else note


@dataclass
class FinancialMetrics(_Serializable):
    revenue: RevenueMetric = field(default_factory=RevenueMetric)
    profit_loss: ProfitLossMetric = field(default_factory=ProfitLossMetric)
    employees: EmployeeMetric = field(default_factory=EmployeeMetric)
    assets: AssetMetric = field(default_factory=AssetMetric)
    validation: ValidationInfo = field(default_factory=ValidationInfo)


# ----------------------------------------------------------------------
# Stage 0: business overview
# ----------------------------------------------------------------------

@dataclass
class ExtractionQuality(_Serializable):
    confidence: Confidence = "low"
    completeness: Literal["complete", "partial", "limited"] = "limited"
    source_quality: str = ""


@dataclass
class BusinessOverview(_Serializable):
    company_overview: str
    business_model: str
    revenue_streams: List[str] = field(default_factory=list)
    key_metrics: List[str] = field(default_factory=list)
    operational_challenges: List[str] = field(default_factory=list)
    hr_payroll_relevance: str = ""
    industry_classification: str = "Unknown"
    competitive_position: str = ""
    extraction_quality: ExtractionQuality = field(default_factory=ExtractionQuality)


# ----------------------------------------------------------------------
# Stage 2: HR insights
# ----------------------------------------------------------------------

@dataclass
class HRInsight(_Serializable):
    data_point: str
    hr_relevance: str
    conversation_starter: str
    source_context: Optional[str] = None
    confidence: Optional[int] = None
    page_reference: Optional[str] = None


@dataclass
class HRExtractionQuality(_Serializable):
    overall_confidence: Confidence = "low"
    data_completeness: Literal["complete", "partial", "limited"] = "limited"
    validation_concerns: List[str] = field(default_factory=list)
    recommended_follow_up: List[str] = field(default_factory=list)


HR_CATEGORIES: Tuple[str, ...] = (
    "business_context",
    "workforce_insights",
    "operational_challenges",
    "strategic_people_initiatives",
)


@dataclass
class HRInsights(_Serializable):
    summary: str
    business_context: List[HRInsight] = field(default_factory=list)
    workforce_insights: List[HRInsight] = field(default_factory=list)
    operational_challenges: List[HRInsight] = field(default_factory=list)
    strategic_people_initiatives: List[HRInsight] = field(default_factory=list)
    extraction_quality: HRExtractionQuality = field(default_factory=HRExtractionQuality)

    @property
    def total_insights(self) -> int:
        return sum(len(getattr(self, name)) for name in HR_CATEGORIES)


# ----------------------------------------------------------------------
# Pipeline output
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class ProcessingStats(_Serializable):
    stage0_duration: int
    stage1_duration: int
    stage2_duration: int
    total_duration: int
    stage0_success: bool
    stage1_success: bool
    stage2_success: bool
    execution_mode: ExecutionMode
    partial_success: bool = False
    quality_score: float = 0.0
    stage_attempts: Dict[str, int] = field(default_factory=dict)
    fallback_stages: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PipelineResult(_Serializable):
    """
    Aggregate produced once per document analysis run.

    Frozen at the top level only. The nested records are plain dataclasses
    built fresh for each run; the pipeline keeps no reference to them once
    the result is returned, so the caller may edit them freely.
    """
    business_overview: BusinessOverview
    financial_metrics: FinancialMetrics
    hr_insights: HRInsights
    processing_stats: ProcessingStats
