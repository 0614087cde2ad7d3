# src/reportlens/cli/run.py

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from typing import List, Optional

from reportlens.config import load_settings, setup_logging
from reportlens.core.errors import StagedFailure
from reportlens.pipeline.io_utils import save_analysis_json, save_metrics_csv
from reportlens.pipeline.pipeline import MODES, AnalysisPipeline
from reportlens.utils.formatting import format_currency, format_number

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reportlens",
        description="Annual report analysis: business overview, financial metrics and HR insights.",
    )
    parser.add_argument(
        "input",
        help="Path to the annual report (PDF, DOCX, DOC or TXT).",
    )
    parser.add_argument(
        "--mode",
        choices=MODES,
        default=None,
        help="Execution mode (default: from ENABLE_PARALLEL_PROCESSING).",
    )
    parser.add_argument(
        "--output",
        "-o",
        help="Path to output JSON file (default: analysis.json).",
        default="analysis.json",
    )
    parser.add_argument(
        "--csv",
        help="Optional path for a flat CSV of the financial metrics.",
        default=None,
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ...).",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    setup_logging(args.log_level)
    logging.getLogger().setLevel(getattr(logging, args.log_level.upper(), logging.INFO))

    settings = load_settings()
    if args.mode:
        settings = dataclasses.replace(settings, parallel_processing=args.mode == "parallel")

    logger.info("CLI: starting analysis on '%s'", args.input)

    try:
        result = AnalysisPipeline(settings=settings).run(args.input)
    except StagedFailure as exc:
        logger.error("CLI: %s", exc)
        return 1

    out_file = save_analysis_json(result, args.output)
    logger.info("CLI: saved analysis to %s", out_file)

    if args.csv:
        csv_file = save_metrics_csv(result.financial_metrics, args.csv)
        logger.info("CLI: saved metrics to %s", csv_file)

    metrics = result.financial_metrics
    stats = result.processing_stats
    logger.info(
        "CLI: revenue=%s employees=%s quality=%.1f mode=%s",
        format_currency(metrics.revenue.current),
        format_number(metrics.employees.total),
        stats.quality_score,
        stats.execution_mode,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
