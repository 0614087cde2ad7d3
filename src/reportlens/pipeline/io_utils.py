import csv
import json
from pathlib import Path

from reportlens.config import load_rules
from reportlens.core.types import FinancialMetrics, PipelineResult
from reportlens.pipeline.assemble_output import to_analysis_data
from reportlens.utils.formatting import format_currency, format_number

CSV_HEADER = ["metric", "value", "display", "currency", "confidence", "extraction_method", "source_text"]


def save_analysis_json(result: PipelineResult, out_path: str) -> Path:
    """
    Write the AnalysisData document for a run as pretty-printed JSON.
    """
    path = Path(out_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(to_analysis_data(result), indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def save_metrics_csv(metrics: FinancialMetrics, out_path: str) -> Path:
    """
    Save the four headline metrics to a CSV file with a stable, flat schema.
    """
    path = Path(out_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    rules = load_rules()
    money = rules.currency_for_code(metrics.revenue.currency).symbol
    assets_money = rules.currency_for_code(metrics.assets.currency).symbol

    rows = [
        ("revenue", metrics.revenue.current, format_currency(metrics.revenue.current, money),
         metrics.revenue.currency, metrics.revenue.confidence,
         metrics.revenue.extraction_method, metrics.revenue.source_text),
        ("profit_loss", metrics.profit_loss.amount, format_currency(metrics.profit_loss.amount, money),
         metrics.revenue.currency, metrics.profit_loss.confidence,
         metrics.profit_loss.extraction_method, metrics.profit_loss.source_text),
        ("employees", metrics.employees.total, format_number(metrics.employees.total),
         "", metrics.employees.confidence,
         metrics.employees.extraction_method, metrics.employees.source_text),
        ("assets", metrics.assets.total, format_currency(metrics.assets.total, assets_money),
         metrics.assets.currency, metrics.assets.confidence,
         metrics.assets.extraction_method, metrics.assets.source_text),
    ]

    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for row in rows:
            writer.writerow(["" if v is None else v for v in row])

    return path
