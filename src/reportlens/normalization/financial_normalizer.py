# src/reportlens/normalization/financial_normalizer.py
from __future__ import annotations

import copy
import logging
import re
from typing import Dict, List, Optional, Tuple

from reportlens.config import FinancialRules, Settings, load_rules, load_settings
from reportlens.core.types import (
    CONFIDENCE_RANK,
    AssetMetric,
    EmployeeMetric,
    FinancialMatch,
    FinancialMetrics,
    ProfitLossMetric,
    RevenueMetric,
    ValidationInfo,
)
from reportlens.normalization.currency import CurrencyResolver
from reportlens.normalization.scoring import compute_match_score, confidence_tier
from reportlens.normalization.strategies import (
    STRATEGIES,
    PatternBook,
    RawHit,
    find_years,
    sentence_bounds,
)
from reportlens.utils.formatting import calculate_profit_margin

logger = logging.getLogger(__name__)

# LLM and text values closer than this are treated as agreeing
AGREEMENT_TOLERANCE = 0.05

MARGIN_CEILING = 50.0

_WHITESPACE = re.compile(r"\s+")


def clean_text(text: Optional[str]) -> str:
    """Collapse every whitespace run (newlines, NBSP, ...) to one space."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def _pct(value: float) -> str:
    return f"{value:.1f}%"


def _growth(current: Optional[float], previous: Optional[float]) -> Optional[str]:
    if current is None or not previous:
        return None
    return _pct((current - previous) / abs(previous) * 100)


def _add_note(validation: ValidationInfo, note: str) -> None:
    if note not in validation.notes:
        validation.add_note(note)


def _agrees(a: float, b: float) -> bool:
    if a == b:
        return True
    return abs(a - b) <= AGREEMENT_TOLERANCE * max(abs(a), abs(b))


class FinancialNormalizer:
    """
    Deterministic, offline extraction of revenue, profit/loss, headcount and
    total assets from free text.

    The rules object and settings are fixed at construction; every call is
    independent, so the same text always yields the same FinancialMetrics.
    """

    def __init__(
        self,
        rules: Optional[FinancialRules] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.rules = rules or load_rules()
        self.settings = settings or load_settings()
        self.book = PatternBook(self.rules)
        self.currency = CurrencyResolver(self.rules, self.settings.base_currency)

    # ------------------------------------------------------------------
    # Candidate generation
    # ------------------------------------------------------------------

    def _in_bounds(self, metric: str, value: float) -> bool:
        s = self.settings
        if metric == "employees":
            return value > 0 and s.employee_min <= value <= s.employee_max
        return value != 0 and s.revenue_min <= abs(value) <= s.revenue_max

    def is_not_disclosed(self, text: str, metric: str) -> bool:
        return bool(self.book.not_disclosed[metric].search(clean_text(text)))

    def _is_exact_keyword(self, metric: str, keyword: str) -> bool:
        kw = " ".join(keyword.lower().split())
        primary = self.rules.metrics[metric].primary
        return kw in primary or f"{kw}s" in primary or kw.rstrip("s") in primary

    def _nearest_year(self, text: str, hit: RawHit, bounds: Tuple[int, int]) -> Tuple[Optional[int], bool]:
        if hit.year_hint is not None:
            return hit.year_hint, True

        start, end = hit.value_span
        years = [
            (pos - end if pos >= end else start - (pos + 4), year, fiscal)
            for year, pos, fiscal in find_years(text, *bounds)
            if not start <= pos < end
        ]
        if not years:
            return None, False
        _, year, fiscal = min(years)
        return year, fiscal

    def _score(self, text: str, hit: RawHit, reference_year: Optional[int]) -> FinancialMatch:
        bounds = sentence_bounds(text, *hit.context_span)
        sentence = text[bounds[0]:bounds[1]]
        context = text[hit.context_span[0]:hit.context_span[1]].strip()

        lead_in = text[max(bounds[0], hit.context_span[0] - 25):hit.context_span[0]]
        adjusted = bool(self.book.adjusted_terms.search(lead_in + " " + context))
        current = bool(self.book.current_terms.search(sentence))
        year, fiscal = self._nearest_year(text, hit, bounds)

        parts = compute_match_score(
            strategy=hit.strategy,
            exact_keyword=self._is_exact_keyword(hit.metric, hit.keyword),
            year=year,
            reference_year=reference_year,
            fiscal_qualified=fiscal,
            current_language=current,
            adjusted_language=adjusted,
        )
        score = parts["score"]

        value = hit.value
        if hit.metric == "profit" and self.book.is_loss_keyword(hit.keyword):
            value = -abs(value)

        method = "growth_narrative" if self.book.growth_terms.search(sentence) else "direct_statement"

        logger.debug(
            "normalizer: %s candidate %s via %s (keyword=%r) -> %s",
            hit.metric, hit.value_text, hit.strategy, hit.keyword, parts,
        )

        return FinancialMatch(
            metric=hit.metric,
            value=value,
            currency=self.currency.resolve(hit.value_text, context),
            context=context,
            year=year,
            confidence=confidence_tier(score),
            score=score,
            strategy=hit.strategy,
            extraction_method=method,
            keyword=hit.keyword,
            span=hit.value_span,
        )

    def candidates(self, text: str, metric: str) -> List[FinancialMatch]:
        """
        Scored candidates for one metric from the first strategy that yields
        an in-bounds value. Later strategies never run once one has succeeded.
        """
        text = clean_text(text)
        if not text:
            return []

        years = [year for year, _, _ in find_years(text)]
        reference_year = max(years) if years else None

        for name, strategy in STRATEGIES:
            hits = [h for h in strategy(self.book, text, metric) if self._in_bounds(metric, h.value)]
            if not hits:
                continue

            by_span: Dict[Tuple[int, int], FinancialMatch] = {}
            for hit in hits:
                match = self._score(text, hit, reference_year)
                kept = by_span.get(match.span)
                if kept is None or match.score > kept.score:
                    by_span[match.span] = match

            logger.debug("normalizer: %s resolved by %s (%d candidates)", metric, name, len(by_span))
            return list(by_span.values())

        return []

    @staticmethod
    def rank(candidates: List[FinancialMatch]) -> List[FinancialMatch]:
        """Explicit and later years first, then confidence tier, then the tightest context."""
        return sorted(
            candidates,
            key=lambda m: (
                m.year is None,
                -(m.year or 0),
                -CONFIDENCE_RANK[m.confidence],
                len(m.context),
                m.span[0],
            ),
        )

    def select_best(self, candidates: List[FinancialMatch]) -> Optional[FinancialMatch]:
        ranked = self.rank(candidates)
        return ranked[0] if ranked else None

    @staticmethod
    def _previous(ranked: List[FinancialMatch]) -> Optional[FinancialMatch]:
        best = ranked[0]
        if best.year is None:
            return None
        for match in ranked[1:]:
            if match.year is not None and match.year < best.year and match.value != best.value:
                return match
        return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def normalize(self, text: Optional[str]) -> FinancialMetrics:
        """Extract all four metrics from text. Never raises."""
        try:
            metrics = self._normalize(clean_text(text))
        except Exception as e:
            logger.error("normalizer: failed, returning empty metrics: %s", e, exc_info=True)
            return FinancialMetrics()
        return self.cross_validate(metrics)

    def _normalize(self, text: str) -> FinancialMetrics:
        metrics = FinancialMetrics()
        if not text:
            return metrics

        base = self.settings.base_currency
        metrics.revenue.currency = base
        metrics.assets.currency = base

        for metric in self.rules.metrics:
            if self.is_not_disclosed(text, metric):
                logger.info("normalizer: %s stated as not disclosed, skipping extraction", metric)
                _add_note(metrics.validation, f"{metric} not disclosed")
                continue

            ranked = self.rank(self.candidates(text, metric))
            if not ranked:
                continue

            best = ranked[0]
            previous = self._previous(ranked)
            self._apply(metrics, best, previous)

        return metrics

    @staticmethod
    def _apply(metrics: FinancialMetrics, best: FinancialMatch, previous: Optional[FinancialMatch]) -> None:
        prev_value = previous.value if previous else None

        if best.metric == "revenue":
            metrics.revenue = RevenueMetric(
                current=best.value,
                previous=prev_value,
                growth=_growth(best.value, prev_value),
                currency=best.currency.code,
                confidence=best.confidence,
                source_text=best.context,
                extraction_method=best.extraction_method,
            )
        elif best.metric == "profit":
            if best.value < 0:
                kind = "loss"
            elif best.value == 0:
                kind = "breakeven"
            else:
                kind = "profit"
            metrics.profit_loss = ProfitLossMetric(
                type=kind,
                amount=best.value,
                confidence=best.confidence,
                source_text=best.context,
                extraction_method=best.extraction_method,
            )
        elif best.metric == "employees":
            prev_count = int(round(prev_value)) if prev_value is not None else None
            metrics.employees = EmployeeMetric(
                total=int(round(best.value)),
                previous_year=prev_count,
                growth=_growth(best.value, prev_value),
                confidence=best.confidence,
                source_text=best.context,
                extraction_method=best.extraction_method,
            )
        elif best.metric == "assets":
            metrics.assets = AssetMetric(
                total=best.value,
                currency=best.currency.code,
                confidence=best.confidence,
                source_text=best.context,
                extraction_method=best.extraction_method,
            )

    def cross_validate(self, metrics: FinancialMetrics) -> FinancialMetrics:
        """
        Cross-metric checks on a resolved record. Returns a new record:

          - profit greater than revenue -> profit amount nulled, flagged
          - margin above 50% -> flagged, confidence dropped to low
          - headcount outside the plausible range -> discarded
        """
        out = copy.deepcopy(metrics)
        v = out.validation
        revenue = out.revenue.current
        profit = out.profit_loss

        if profit.amount is not None and revenue is not None and profit.amount > revenue:
            logger.warning(
                "normalizer: profit %s exceeds revenue %s, discarding profit", profit.amount, revenue,
            )
            profit.amount = None
            profit.margin = None
            if "profit_exceeds_revenue" not in profit.validation_flags:
                profit.validation_flags.append("profit_exceeds_revenue")
            v.flagged_for_review = True
            _add_note(v, "profit exceeded revenue and was discarded")

        margin = calculate_profit_margin(revenue, profit.amount)
        if margin is not None:
            profit.margin = _pct(margin)
            if margin > MARGIN_CEILING:
                logger.warning("normalizer: profit margin %.1f%% above %.0f%%", margin, MARGIN_CEILING)
                if "profit_exceeds_50_percent" not in profit.validation_flags:
                    profit.validation_flags.append("profit_exceeds_50_percent")
                profit.confidence = "low"
                v.flagged_for_review = True
                _add_note(v, "profit margin above 50%")

        employees = out.employees
        if employees.total is not None and not (
            self.settings.employee_min <= employees.total <= self.settings.employee_max
        ):
            logger.warning("normalizer: employee count %s outside plausible range", employees.total)
            _add_note(v, f"employee count {employees.total} outside plausible range, discarded")
            out.employees = EmployeeMetric()

        v.revenue_reasonable = revenue is not None and (
            self.settings.revenue_min <= revenue <= self.settings.revenue_max
        )
        v.profit_margin_reasonable = margin is not None and margin <= MARGIN_CEILING
        v.cross_check_passed = v.revenue_reasonable and v.profit_margin_reasonable and not v.flagged_for_review
        return out

    def repair(self, metrics: FinancialMetrics, text: Optional[str]) -> FinancialMetrics:
        """
        Fill the nulls of an externally supplied record from what the text
        itself states, then re-run the cross-metric checks.

        Values present on both sides must agree within 5%; disagreement is
        noted and clears crossCheckPassed.
        """
        out = copy.deepcopy(metrics)
        found = self.normalize(text)
        agree = True

        fields = (
            ("revenue", "current", out.revenue, found.revenue),
            ("profit", "amount", out.profit_loss, found.profit_loss),
            ("employees", "total", out.employees, found.employees),
            ("assets", "total", out.assets, found.assets),
        )
        for metric, attr, mine, theirs in fields:
            own = getattr(mine, attr)
            seen = getattr(theirs, attr)
            if seen is None:
                continue
            if own is None:
                logger.info("normalizer: %s filled from text (%s)", metric, seen)
                if metric == "revenue":
                    out.revenue = copy.deepcopy(theirs)
                elif metric == "profit":
                    out.profit_loss = copy.deepcopy(theirs)
                elif metric == "employees":
                    out.employees = copy.deepcopy(theirs)
                else:
                    out.assets = copy.deepcopy(theirs)
                _add_note(out.validation, f"{metric} recovered from source text")
            elif not _agrees(float(own), float(seen)):
                agree = False
                logger.warning("normalizer: %s disagreement (%s vs text %s)", metric, own, seen)
                _add_note(out.validation, f"{metric} differs from source text ({own} vs {seen})")

        out = self.cross_validate(out)
        out.validation.cross_check_passed = out.validation.cross_check_passed and agree
        return out
