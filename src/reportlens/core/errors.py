# src/reportlens/core/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional

STAGES = ("business_overview", "financial", "hr", "pipeline")


class ReportLensError(Exception):
    """Base exception for all reportlens errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class DocumentError(ReportLensError):
    """The document handle cannot be read."""


class ExternalServiceError(ReportLensError):
    """The generative document-analysis service failed or returned nothing."""


class JSONRecoveryError(ReportLensError):
    """No JSON object could be recovered from a service response."""


class StageExtractionError(ReportLensError):
    """A single stage extractor failed (service, parse or structure)."""

    def __init__(self, stage: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.stage = stage


class StagedFailure(ReportLensError):
    """
    Failure surfaced to the caller of the pipeline.

    Only the "hr" and "pipeline" stages ever escape the orchestrator; the
    other two degrade into defaulted data.
    """

    def __init__(self, stage: str, cause: BaseException) -> None:
        if stage not in STAGES:
            raise ValueError(f"unknown pipeline stage: {stage!r}")
        super().__init__(
            f"Analysis pipeline failed at {stage} stage: {cause}",
            {"stage": stage},
        )
        self.stage = stage
        self.cause = cause
