# tests/test_normalizer.py
import pytest

from reportlens.core.types import (
    EmployeeMetric,
    FinancialMetrics,
    ProfitLossMetric,
    RevenueMetric,
    ValidationInfo,
)


# ---------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------

def test_scaled_revenue(normalizer):
    metrics = normalizer.normalize("Total revenue: $2.61 billion")

    assert metrics.revenue.current == 2_610_000_000.0
    assert metrics.revenue.currency == "USD"
    assert metrics.revenue.confidence == "high"
    assert "Total revenue" in metrics.revenue.source_text


def test_primary_figure_beats_underlying(normalizer):
    metrics = normalizer.normalize("Underlying net profit of $100M. Net profit of $80M.")

    assert metrics.profit_loss.amount == 80_000_000.0
    assert metrics.profit_loss.type == "profit"
    assert metrics.profit_loss.confidence == "high"


def test_not_disclosed_metric_stays_null(normalizer):
    text = "Revenue was $4.2 billion. Employee headcount: not disclosed. We have 12,000 staff."
    metrics = normalizer.normalize(text)

    assert metrics.revenue.current == 4_200_000_000.0
    assert metrics.employees.total is None
    assert "employees not disclosed" in metrics.validation.notes


def test_full_digit_values_and_profit_above_revenue(normalizer):
    metrics = normalizer.normalize("Net profit of $5,000,000 on revenue of $4,000,000.")

    assert metrics.revenue.current == 4_000_000.0
    assert metrics.profit_loss.amount is None
    assert "profit_exceeds_revenue" in metrics.profit_loss.validation_flags
    assert metrics.validation.flagged_for_review is True
    assert metrics.validation.cross_check_passed is False


def test_growth_narrative_picks_latest_year(normalizer):
    metrics = normalizer.normalize("Revenue was $4.2 billion in 2023, up from $3.5 billion in 2022.")

    assert metrics.revenue.current == 4_200_000_000.0
    assert metrics.revenue.previous == 3_500_000_000.0
    assert metrics.revenue.growth == "20.0%"
    assert metrics.revenue.extraction_method == "growth_narrative"


def test_loss_is_negative(normalizer):
    text = "Revenue of $200 million in fiscal 2023. Net loss of $12.5 million in fiscal 2023."
    metrics = normalizer.normalize(text)

    assert metrics.revenue.current == 200_000_000.0
    assert metrics.profit_loss.type == "loss"
    assert metrics.profit_loss.amount == -12_500_000.0
    assert metrics.profit_loss.margin == "-6.2%"


def test_employees_from_full_digit_count(normalizer):
    metrics = normalizer.normalize("The company had 12,000 employees at year end")
    assert metrics.employees.total == 12_000


def test_proximity_fallback_is_low_confidence(normalizer):
    metrics = normalizer.normalize("We booked $250,000 in the period, mostly from online sales.")

    assert metrics.revenue.current == 250_000.0
    assert metrics.revenue.confidence == "low"


def test_proximity_needs_currency_or_scale_for_money(normalizer):
    metrics = normalizer.normalize("We booked 250,000 in the period, mostly from online sales.")
    assert metrics.revenue.current is None


def test_money_is_never_a_headcount(normalizer):
    metrics = normalizer.normalize("The Group employs 12,000 employees. Staff costs of $3.5 million were incurred.")

    assert metrics.employees.total == 12_000
    assert metrics.revenue.current is None


def test_per_employee_figures_stay_with_their_metric(normalizer):
    metrics = normalizer.normalize("The Group has 12,000 employees. Revenue per employee was $250k.")

    assert metrics.employees.total == 12_000
    assert metrics.revenue.current is None


def test_proximity_skips_values_owned_by_other_metrics(normalizer):
    metrics = normalizer.normalize("Revenue grew strongly, and assets of $3 billion back the business.")

    assert metrics.revenue.current is None
    assert metrics.assets.total == 3_000_000_000.0


def test_scaled_headcount_without_currency(normalizer):
    metrics = normalizer.normalize("The group has 12k employees worldwide.")
    assert metrics.employees.total == 12_000


def test_currency_of_matched_value(normalizer):
    metrics = normalizer.normalize("Total revenue for the year was HK$3.2 billion.")

    assert metrics.revenue.current == 3_200_000_000.0
    assert metrics.revenue.currency == "HKD"


def test_years_and_percentages_are_not_amounts(normalizer):
    metrics = normalizer.normalize("Revenue grew 12% in 2023.")
    assert metrics.revenue.current is None


@pytest.mark.parametrize("text", [None, "", "   \n  "])
def test_empty_text(normalizer, text):
    metrics = normalizer.normalize(text)
    assert metrics == FinancialMetrics()


def test_same_text_same_result(normalizer):
    text = "Total revenue: $2.61 billion. Net profit of $200 million. The company had 12,000 employees"
    assert normalizer.normalize(text) == normalizer.normalize(text)


def test_whitespace_is_collapsed(normalizer):
    a = normalizer.normalize("Total revenue:\n$2.61\u00a0billion")
    b = normalizer.normalize("Total revenue: $2.61 billion")
    assert a.revenue.current == b.revenue.current


# ---------------------------------------------------------------------
# Candidate ranking
# ---------------------------------------------------------------------

def test_candidates_are_ranked_by_year_then_confidence(normalizer):
    text = "Revenue was $4.2 billion in 2023, up from $3.5 billion in 2022."
    ranked = normalizer.rank(normalizer.candidates(text, "revenue"))

    assert [m.year for m in ranked] == [2023, 2022]
    assert normalizer.select_best(ranked).value == 4_200_000_000.0


def test_select_best_of_nothing(normalizer):
    assert normalizer.select_best([]) is None


# ---------------------------------------------------------------------
# Cross validation
# ---------------------------------------------------------------------

def test_margin_above_ceiling_is_flagged(normalizer):
    metrics = FinancialMetrics(
        revenue=RevenueMetric(current=100_000_000.0),
        profit_loss=ProfitLossMetric(amount=60_000_000.0, confidence="high"),
    )
    out = normalizer.cross_validate(metrics)

    assert out.profit_loss.margin == "60.0%"
    assert "profit_exceeds_50_percent" in out.profit_loss.validation_flags
    assert out.profit_loss.confidence == "low"
    assert out.validation.flagged_for_review is True
    assert out.validation.profit_margin_reasonable is False
    # input record untouched
    assert metrics.profit_loss.confidence == "high"


def test_implausible_headcount_is_discarded(normalizer):
    metrics = FinancialMetrics(employees=EmployeeMetric(total=9_000_000, confidence="high"))
    out = normalizer.cross_validate(metrics)

    assert out.employees == EmployeeMetric()
    assert "outside plausible range" in out.validation.notes


def test_reasonable_record_passes(normalizer):
    metrics = FinancialMetrics(
        revenue=RevenueMetric(current=2_600_000_000.0),
        profit_loss=ProfitLossMetric(amount=200_000_000.0),
    )
    out = normalizer.cross_validate(metrics)

    assert out.profit_loss.margin == "7.7%"
    assert out.validation.revenue_reasonable is True
    assert out.validation.profit_margin_reasonable is True
    assert out.validation.cross_check_passed is True


# ---------------------------------------------------------------------
# Repair of an external record
# ---------------------------------------------------------------------

def test_repair_fills_missing_values(normalizer):
    llm = FinancialMetrics(revenue=RevenueMetric(current=None))
    out = normalizer.repair(llm, "Total revenue: $2.61 billion")

    assert out.revenue.current == 2_610_000_000.0
    assert "revenue recovered from source text" in out.validation.notes
    assert llm.revenue.current is None


def test_repair_notes_disagreement(normalizer):
    llm = FinancialMetrics(
        revenue=RevenueMetric(current=5_000_000_000.0),
        profit_loss=ProfitLossMetric(amount=200_000_000.0),
    )
    out = normalizer.repair(llm, "Total revenue: $2.61 billion")

    assert out.revenue.current == 5_000_000_000.0
    assert "revenue differs from source text" in out.validation.notes
    assert out.validation.cross_check_passed is False


def test_repair_agreement_passes_cross_check(normalizer):
    llm = FinancialMetrics(
        revenue=RevenueMetric(current=2_600_000_000.0, confidence="high"),
        profit_loss=ProfitLossMetric(amount=200_000_000.0, confidence="high"),
        validation=ValidationInfo(flagged_for_review=False),
    )
    out = normalizer.repair(llm, "Total revenue: $2.61 billion. Net profit of $200 million.")

    assert out.revenue.current == 2_600_000_000.0
    assert out.validation.cross_check_passed is True
    assert out.validation.notes == ""


def test_repair_never_lets_profit_exceed_revenue(normalizer):
    llm = FinancialMetrics(
        revenue=RevenueMetric(current=1_000_000.0),
        profit_loss=ProfitLossMetric(amount=3_000_000.0),
    )
    out = normalizer.repair(llm, "")

    assert out.profit_loss.amount is None
    assert out.validation.flagged_for_review is True
