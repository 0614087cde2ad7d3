# tests/test_pipeline.py
import dataclasses
import json
from unittest.mock import AsyncMock, call, patch

import pytest

from conftest import FINANCIAL_PAYLOAD, HR_PAYLOAD, OVERVIEW_PAYLOAD, FakeClient, good_responses
from reportlens.core.errors import ExternalServiceError, StagedFailure
from reportlens.extractors.business_overview_extractor import parse_business_overview
from reportlens.pipeline.defaults import DEFAULT_COMPANY_OVERVIEW, FALLBACK_NOTES
from reportlens.pipeline.pipeline import AnalysisPipeline


def _pipeline(settings, normalizer, responses):
    client = FakeClient(responses)
    return AnalysisPipeline(settings=settings, client=client, normalizer=normalizer), client


# ---------------------------------------------------------------------
# Happy paths
# ---------------------------------------------------------------------

def test_sequential_run(settings, normalizer, document):
    pipeline, client = _pipeline(settings, normalizer, good_responses())

    result = pipeline.run(document, "sequential")
    stats = result.processing_stats

    assert client.calls == ["business_overview", "financial", "hr"]
    assert stats.execution_mode == "sequential"
    assert stats.stage0_success and stats.stage1_success and stats.stage2_success
    assert stats.partial_success is False
    assert stats.stage_attempts == {"business_overview": 1, "financial": 1, "hr": 1}
    assert stats.quality_score == 89.0
    assert stats.total_duration >= stats.stage2_duration >= 0

    assert result.business_overview.industry_classification == "Manufacturing"
    assert result.financial_metrics.revenue.current == 2_600_000_000.0
    assert result.hr_insights.total_insights == 6

    # stage 0/1 results are handed to the HR stage
    hr_instruction = client.instructions["hr"][0]
    assert "Known context" in hr_instruction
    assert "- Industry: Manufacturing" in hr_instruction


def test_parallel_run_matches_sequential(settings, normalizer, document):
    sequential, _ = _pipeline(settings, normalizer, good_responses())
    parallel, client = _pipeline(settings, normalizer, good_responses())

    seq = sequential.run(document, "sequential")
    par = parallel.run(document, "parallel")

    assert par.processing_stats.execution_mode == "parallel"
    assert sorted(client.calls) == ["business_overview", "financial", "hr"]
    assert "Known context" not in client.instructions["hr"][0]
    assert par.business_overview == seq.business_overview
    assert par.financial_metrics == seq.financial_metrics
    assert par.processing_stats.quality_score == seq.processing_stats.quality_score



def test_results_are_frozen_and_independent(settings, normalizer, document):
    pipeline, _ = _pipeline(settings, normalizer, good_responses())

    first = pipeline.run(document, "sequential")
    second = pipeline.run(document, "sequential")

    with pytest.raises(dataclasses.FrozenInstanceError):
        first.processing_stats = second.processing_stats

    first.financial_metrics.validation.add_note("edited by caller")
    first.hr_insights.extraction_quality.validation_concerns.append("edited by caller")
    assert "edited by caller" not in second.financial_metrics.validation.notes
    assert "edited by caller" not in second.hr_insights.extraction_quality.validation_concerns

def test_mode_defaults_to_settings(normalizer, document, settings):
    parallel_settings = dataclasses.replace(settings, parallel_processing=True)
    pipeline, _ = _pipeline(parallel_settings, normalizer, good_responses())

    assert pipeline.run(document).processing_stats.execution_mode == "parallel"


def test_unknown_mode(settings, normalizer, document):
    pipeline, _ = _pipeline(settings, normalizer, good_responses())
    with pytest.raises(ValueError):
        pipeline.run(document, "turbo")


# ---------------------------------------------------------------------
# Stage 0 / stage 1 fallbacks
# ---------------------------------------------------------------------

def test_business_overview_failure_uses_defaults(settings, normalizer, document):
    responses = good_responses()
    responses["business_overview"] = [ExternalServiceError("service unavailable")]
    pipeline, client = _pipeline(settings, normalizer, responses)

    result = pipeline.run(document, "sequential")
    stats = result.processing_stats

    assert result.business_overview.company_overview == DEFAULT_COMPANY_OVERVIEW
    assert result.business_overview.extraction_quality.confidence == "low"
    assert stats.stage0_success is False
    assert stats.partial_success is True
    assert stats.fallback_stages == ("business_overview",)
    assert stats.quality_score == 69.0

    # the defaulted overview is not passed on, the validated financials are
    hr_instruction = client.instructions["hr"][0]
    assert "- Industry:" not in hr_instruction
    assert "- Revenue: $2.6B (USD)" in hr_instruction


def test_financial_failure_in_parallel_uses_defaults(settings, normalizer, document):
    responses = good_responses()
    responses["financial"] = ["Sorry, the figures are not readable."]
    pipeline, _ = _pipeline(settings, normalizer, responses)

    result = pipeline.run(document, "parallel")
    metrics = result.financial_metrics

    assert result.processing_stats.stage1_success is False
    assert result.processing_stats.partial_success is True
    assert metrics.revenue.current is None
    assert metrics.profit_loss.validation_flags == ["fallback_mode"]
    assert metrics.validation.flagged_for_review is True
    assert metrics.validation.notes == FALLBACK_NOTES


# ---------------------------------------------------------------------
# HR retries
# ---------------------------------------------------------------------

def test_hr_retries_with_linear_backoff(settings, normalizer, document):
    responses = good_responses()
    responses["hr"] = [ExternalServiceError("timeout"), "no json here", json.dumps(HR_PAYLOAD)]
    backoff_settings = dataclasses.replace(settings, hr_retry_backoff_seconds=2.0)
    pipeline, client = _pipeline(backoff_settings, normalizer, responses)

    with patch("reportlens.pipeline.pipeline.asyncio.sleep", new_callable=AsyncMock) as sleep:
        result = pipeline.run(document, "sequential")

    assert client.calls.count("hr") == 3
    assert result.processing_stats.stage_attempts["hr"] == 3
    assert result.processing_stats.stage2_success is True
    assert sleep.await_args_list == [call(2.0), call(4.0)]


def test_malformed_hr_payload_is_retried(settings, normalizer, document):
    bad = dict(HR_PAYLOAD, extractionQuality=dict(HR_PAYLOAD["extractionQuality"], validationConcerns=3))
    responses = good_responses()
    responses["hr"] = [json.dumps(bad), json.dumps(HR_PAYLOAD)]
    pipeline, client = _pipeline(settings, normalizer, responses)

    result = pipeline.run(document, "sequential")

    assert client.calls.count("hr") == 2
    assert result.processing_stats.stage_attempts["hr"] == 2
    assert result.processing_stats.stage2_success is True


def test_hr_failure_is_fatal(settings, normalizer, document):
    responses = good_responses()
    responses["hr"] = [ExternalServiceError("timeout")]
    pipeline, client = _pipeline(settings, normalizer, responses)

    with pytest.raises(StagedFailure) as exc_info:
        pipeline.run(document, "sequential")

    assert exc_info.value.stage == "hr"
    assert "Analysis pipeline failed at hr stage" in str(exc_info.value)
    assert client.calls.count("hr") == settings.hr_max_attempts


def test_hr_failure_is_fatal_in_parallel(settings, normalizer, document):
    responses = good_responses()
    responses["hr"] = ["{}"]
    pipeline, _ = _pipeline(settings, normalizer, responses)

    with pytest.raises(StagedFailure) as exc_info:
        pipeline.run(document, "parallel")
    assert exc_info.value.stage == "hr"


def test_malformed_financial_payload_in_parallel_is_a_stage_failure(settings, normalizer, document):
    bad = json.loads(json.dumps(FINANCIAL_PAYLOAD))
    bad["financialMetrics"]["profitLoss"]["validationFlags"] = 5
    responses = good_responses()
    responses["financial"] = [json.dumps(bad)]
    pipeline, client = _pipeline(settings, normalizer, responses)

    result = pipeline.run(document, "parallel")
    stats = result.processing_stats

    assert sorted(client.calls) == ["business_overview", "financial", "hr"]
    assert stats.execution_mode == "parallel"
    assert stats.stage1_success is False
    assert stats.fallback_stages == ("financial",)
    assert result.financial_metrics.profit_loss.validation_flags == ["fallback_mode"]


# ---------------------------------------------------------------------
# System-level failures
# ---------------------------------------------------------------------

def test_parallel_system_error_retries_sequentially(settings, normalizer, document):
    overview = parse_business_overview(OVERVIEW_PAYLOAD)
    pipeline, _ = _pipeline(settings, normalizer, good_responses())
    stage0 = AsyncMock(side_effect=[RuntimeError("event loop hiccup"), overview])

    with patch("reportlens.pipeline.pipeline.extract_business_overview", stage0):
        result = pipeline.run(document, "parallel")

    assert stage0.await_count == 2
    assert result.processing_stats.execution_mode == "sequential"
    assert result.business_overview == overview
    assert result.processing_stats.partial_success is False


def test_failed_sequential_retry_is_a_pipeline_failure(settings, normalizer, document):
    overview = parse_business_overview(OVERVIEW_PAYLOAD)
    responses = good_responses()
    responses["hr"] = [ExternalServiceError("timeout")]
    pipeline, _ = _pipeline(settings, normalizer, responses)
    stage0 = AsyncMock(side_effect=[RuntimeError("event loop hiccup"), overview])

    with patch("reportlens.pipeline.pipeline.extract_business_overview", stage0):
        with pytest.raises(StagedFailure) as exc_info:
            pipeline.run(document, "parallel")

    assert exc_info.value.stage == "pipeline"


@pytest.mark.parametrize("name", ["missing.pdf", "report.xlsx"])
def test_unusable_document(settings, normalizer, tmp_path, name):
    pipeline, client = _pipeline(settings, normalizer, good_responses())

    with pytest.raises(StagedFailure) as exc_info:
        pipeline.run(tmp_path / name)

    assert exc_info.value.stage == "pipeline"
    assert client.calls == []
