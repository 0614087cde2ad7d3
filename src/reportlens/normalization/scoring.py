# src/reportlens/normalization/scoring.py
from __future__ import annotations

from typing import Any, Optional

from reportlens.core.types import Confidence

# Strategy priors: scaled statements are the most explicit, proximity the least.
STRATEGY_PRIORS = {
    "scaled": 0.6,
    "full_digit": 0.55,
    "fiscal_year": 0.5,
    "proximity": 0.25,
    "unknown": 0.3,
}

HIGH_THRESHOLD = 0.75
MEDIUM_THRESHOLD = 0.5


def compute_match_score(
    *,
    strategy: str,
    exact_keyword: bool,
    year: Optional[int],
    reference_year: Optional[int],
    fiscal_qualified: bool,
    current_language: bool,
    adjusted_language: bool,
) -> dict[str, Any]:
    """
    Score one candidate match.

    Heuristics:
      - strategy prior (scaled > full_digit > fiscal_year > proximity)
      - +0.2 when the exact target keyword (not a loose synonym) was hit
      - explicit year: +0.05, +0.1 more when it is the latest year in the
        document, -0.05 when it is two or more years older
      - +0.05 for a fiscal-year qualifier
      - +0.1 for "current/latest" wording
      - -0.3 for "underlying/adjusted" wording (primary figures preferred)

    Returns the components plus the clamped score, so callers can log why a
    candidate ranked where it did.
    """
    prior = STRATEGY_PRIORS.get(strategy, STRATEGY_PRIORS["unknown"])

    keyword_bonus = 0.2 if exact_keyword else 0.0

    year_bonus = 0.0
    if year is not None:
        year_bonus += 0.05
        if reference_year is not None:
            if year >= reference_year:
                year_bonus += 0.1
            elif reference_year - year >= 2:
                year_bonus -= 0.05

    fiscal_bonus = 0.05 if fiscal_qualified else 0.0
    current_bonus = 0.1 if current_language else 0.0
    adjusted_penalty = 0.3 if adjusted_language else 0.0

    score = prior + keyword_bonus + year_bonus + fiscal_bonus + current_bonus - adjusted_penalty

    # Clamp to [0, 1] just for sanity
    score = max(0.0, min(1.0, round(score, 4)))

    return {
        "prior": prior,
        "keyword_bonus": keyword_bonus,
        "year_bonus": year_bonus,
        "fiscal_bonus": fiscal_bonus,
        "current_bonus": current_bonus,
        "adjusted_penalty": adjusted_penalty,
        "score": score,
    }


def confidence_tier(score: float) -> Confidence:
    if score >= HIGH_THRESHOLD:
        return "high"
    if score >= MEDIUM_THRESHOLD:
        return "medium"
    return "low"
