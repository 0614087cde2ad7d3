# src/reportlens/pipeline/pipeline.py
from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from reportlens.config import Settings, load_settings
from reportlens.core.errors import DocumentError, ReportLensError, StagedFailure
from reportlens.core.types import (
    BusinessOverview,
    FinancialMetrics,
    HRInsights,
    PipelineResult,
    ProcessingStats,
)
from reportlens.extractors.business_overview_extractor import extract_business_overview
from reportlens.extractors.document_client import DocumentAnalysisClient, DocumentHandle, as_handle
from reportlens.extractors.financial_extractor import extract_financial_metrics
from reportlens.extractors.hr_extractor import generate_hr_insights
from reportlens.normalization.financial_normalizer import FinancialNormalizer
from reportlens.pipeline.defaults import default_business_overview, default_financial_metrics
from reportlens.pipeline.quality import calculate_quality_score

logger = logging.getLogger(__name__)

STAGE_OVERVIEW = "business_overview"
STAGE_FINANCIAL = "financial"
STAGE_HR = "hr"

MODES = ("sequential", "parallel")

Document = Union[DocumentHandle, str, Path]


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))


class _RunState:
    """Per-run bookkeeping; each stage writes only its own slots."""

    def __init__(self, mode: str) -> None:
        self.mode = mode
        self.start = time.perf_counter()
        self.durations: Dict[str, int] = {}
        self.attempts: Dict[str, int] = {STAGE_OVERVIEW: 0, STAGE_FINANCIAL: 0, STAGE_HR: 0}
        self.success: Dict[str, bool] = {STAGE_OVERVIEW: False, STAGE_FINANCIAL: False, STAGE_HR: False}
        self.fallbacks: List[str] = []


# ----------------------------------------------------------
# Orchestrator
#
# Rules:
#   1. stage 0 / stage 1 failures degrade to documented defaults
#   2. stage 2 (HR) is retried with linear backoff, then fatal
#   3. parallel mode joins on all three stages, never first-failure
#   4. a system-level error in parallel mode re-runs everything
#      sequentially once
# ----------------------------------------------------------

class AnalysisPipeline:
    """
    Three-stage document analysis:
        - stage 0: business overview
        - stage 1: financial metrics (re-checked by the normalizer)
        - stage 2: HR insights (the required deliverable)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[DocumentAnalysisClient] = None,
        normalizer: Optional[FinancialNormalizer] = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.client = client or DocumentAnalysisClient(self.settings)
        self.normalizer = normalizer or FinancialNormalizer(settings=self.settings)

    # ------------------------------------------------------
    # Entry points
    # ------------------------------------------------------

    def run(self, document: Document, mode: Optional[str] = None) -> PipelineResult:
        """Blocking wrapper around run_async (not usable inside a running event loop)."""
        return asyncio.run(self.run_async(document, mode))

    async def run_async(self, document: Document, mode: Optional[str] = None) -> PipelineResult:
        mode = mode or self.settings.execution_mode
        if mode not in MODES:
            raise ValueError(f"unknown execution mode: {mode!r}")

        handle = self._check_document(document)
        logger.info("pipeline: analysing '%s' (%s)", handle.name, mode)

        if mode == "sequential":
            return await self._run_sequential(handle)

        try:
            return await self._run_parallel(handle)
        except StagedFailure:
            raise
        except Exception as exc:
            logger.warning("pipeline: parallel run failed (%s), retrying sequentially", exc, exc_info=True)

        try:
            return await self._run_sequential(handle)
        except Exception as exc:
            cause = exc.cause if isinstance(exc, StagedFailure) else exc
            logger.error("pipeline: sequential retry failed: %s", cause)
            raise StagedFailure("pipeline", cause) from exc

    @staticmethod
    def _check_document(document: Document) -> DocumentHandle:
        try:
            handle = as_handle(document)
            _ = handle.mime_type
            if not handle.path.is_file():
                raise DocumentError("document not found", {"path": str(handle.path)})
        except DocumentError as exc:
            raise StagedFailure("pipeline", exc) from exc
        return handle

    # ------------------------------------------------------
    # Stage wrappers
    # ------------------------------------------------------

    @staticmethod
    async def _timed(stage: str, factory: Callable[[], Awaitable[Any]], state: _RunState) -> Any:
        start = time.perf_counter()
        try:
            return await factory()
        finally:
            state.durations[stage] = _elapsed_ms(start)

    async def _business_overview(self, handle: DocumentHandle, state: _RunState) -> BusinessOverview:
        state.attempts[STAGE_OVERVIEW] += 1
        return await self._timed(
            STAGE_OVERVIEW,
            lambda: extract_business_overview(self.client, handle),
            state,
        )

    async def _financials(self, handle: DocumentHandle, state: _RunState) -> FinancialMetrics:
        state.attempts[STAGE_FINANCIAL] += 1
        return await self._timed(
            STAGE_FINANCIAL,
            lambda: extract_financial_metrics(self.client, handle, self.normalizer),
            state,
        )

    async def _hr_with_retries(
        self,
        handle: DocumentHandle,
        state: _RunState,
        overview: Optional[BusinessOverview] = None,
        financials: Optional[FinancialMetrics] = None,
    ) -> HRInsights:
        max_attempts = self.settings.hr_max_attempts
        backoff = self.settings.hr_retry_backoff_seconds

        async def attempt_loop() -> HRInsights:
            attempt = 0
            while True:
                attempt += 1
                state.attempts[STAGE_HR] = attempt
                try:
                    return await generate_hr_insights(
                        self.client,
                        handle,
                        min_insights=self.settings.min_insight_count,
                        overview=overview,
                        financials=financials,
                    )
                except ReportLensError as exc:
                    if attempt >= max_attempts:
                        raise
                    delay = backoff * attempt
                    logger.warning(
                        "pipeline: hr attempt %d/%d failed (%s), retrying in %.1fs",
                        attempt, max_attempts, exc, delay,
                    )
                    await asyncio.sleep(delay)

        return await self._timed(STAGE_HR, attempt_loop, state)

    def _fallback(self, stage: str, exc: BaseException, state: _RunState) -> Any:
        logger.warning("pipeline: %s failed, using fallback: %s", stage, exc)
        state.fallbacks.append(stage)
        if stage == STAGE_OVERVIEW:
            return default_business_overview(f"business overview extraction failed: {exc}")
        return default_financial_metrics(self.settings.base_currency)

    # ------------------------------------------------------
    # Execution modes
    # ------------------------------------------------------

    async def _run_sequential(self, handle: DocumentHandle) -> PipelineResult:
        state = _RunState("sequential")

        try:
            overview = await self._business_overview(handle, state)
            state.success[STAGE_OVERVIEW] = True
        except Exception as exc:
            overview = self._fallback(STAGE_OVERVIEW, exc, state)

        try:
            financials = await self._financials(handle, state)
            state.success[STAGE_FINANCIAL] = True
        except Exception as exc:
            financials = self._fallback(STAGE_FINANCIAL, exc, state)

        if financials.validation.flagged_for_review:
            logger.warning("pipeline: financial metrics flagged for review: %s", financials.validation.notes)

        use_context = self.settings.hr_use_stage_context
        try:
            insights = await self._hr_with_retries(
                handle,
                state,
                overview=overview if use_context and state.success[STAGE_OVERVIEW] else None,
                financials=financials if use_context and state.success[STAGE_FINANCIAL] else None,
            )
        except Exception as exc:
            logger.error("pipeline: hr stage failed after %d attempt(s): %s", state.attempts[STAGE_HR], exc)
            raise StagedFailure(STAGE_HR, exc) from exc
        state.success[STAGE_HR] = True

        return self._finish(state, overview, financials, insights)

    async def _run_parallel(self, handle: DocumentHandle) -> PipelineResult:
        state = _RunState("parallel")

        results = await asyncio.gather(
            self._business_overview(handle, state),
            self._financials(handle, state),
            self._hr_with_retries(handle, state),
            return_exceptions=True,
        )
        overview_r, financials_r, hr_r = results

        # anything that is not a stage error is a system-level failure
        for r in results:
            if isinstance(r, BaseException) and not isinstance(r, ReportLensError):
                raise r

        if isinstance(overview_r, ReportLensError):
            overview = self._fallback(STAGE_OVERVIEW, overview_r, state)
        else:
            overview = overview_r
            state.success[STAGE_OVERVIEW] = True

        if isinstance(financials_r, ReportLensError):
            financials = self._fallback(STAGE_FINANCIAL, financials_r, state)
        else:
            financials = financials_r
            state.success[STAGE_FINANCIAL] = True

        if isinstance(hr_r, ReportLensError):
            logger.error("pipeline: hr stage failed after %d attempt(s): %s", state.attempts[STAGE_HR], hr_r)
            raise StagedFailure(STAGE_HR, hr_r) from hr_r
        state.success[STAGE_HR] = True

        return self._finish(state, overview, financials, hr_r)

    def _finish(
        self,
        state: _RunState,
        overview: BusinessOverview,
        financials: FinancialMetrics,
        insights: HRInsights,
    ) -> PipelineResult:
        quality = calculate_quality_score(overview, financials, insights)

        stats = ProcessingStats(
            stage0_duration=state.durations.get(STAGE_OVERVIEW, 0),
            stage1_duration=state.durations.get(STAGE_FINANCIAL, 0),
            stage2_duration=state.durations.get(STAGE_HR, 0),
            total_duration=_elapsed_ms(state.start),
            stage0_success=state.success[STAGE_OVERVIEW],
            stage1_success=state.success[STAGE_FINANCIAL],
            stage2_success=state.success[STAGE_HR],
            execution_mode=state.mode,
            partial_success=bool(state.fallbacks),
            quality_score=quality,
            stage_attempts=dict(state.attempts),
            fallback_stages=tuple(state.fallbacks),
        )

        logger.info(
            "pipeline: %s run completed in %d ms (quality=%.1f, partial=%s, hr_attempts=%d)",
            state.mode,
            stats.total_duration,
            quality,
            stats.partial_success,
            state.attempts[STAGE_HR],
        )

        return PipelineResult(
            business_overview=overview,
            financial_metrics=financials,
            hr_insights=insights,
            processing_stats=stats,
        )


# Convenience API
def analyze(document: Document, settings: Optional[Settings] = None) -> PipelineResult:
    return AnalysisPipeline(settings=settings).run(document)
