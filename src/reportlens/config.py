# src/reportlens/config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

import yaml
from dotenv import load_dotenv

from reportlens.core.types import CurrencyInfo

# Load .env as early as possible
load_dotenv()

BASE_DIR = Path(__file__).resolve().parent
SCHEMA_DIR = BASE_DIR / "schemas"
RULES_PATH = SCHEMA_DIR / "financial_rules.yaml"

_TRUE = {"1", "true", "yes", "on"}


def load_yaml(path: Path):
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


# ----------------------------------------------------------------------
# Runtime settings (environment / feature flags)
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Settings:
    parallel_processing: bool = False
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_timeout: float = 120.0
    base_currency: str = "USD"
    employee_min: int = 10
    employee_max: int = 5_000_000
    revenue_min: float = 1_000.0
    revenue_max: float = 1e13
    hr_max_attempts: int = 3
    hr_retry_backoff_seconds: float = 2.0
    min_insight_count: int = 5
    hr_use_stage_context: bool = True

    @property
    def execution_mode(self) -> str:
        return "parallel" if self.parallel_processing else "sequential"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            parallel_processing=_env_bool("ENABLE_PARALLEL_PROCESSING", False),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            openai_timeout=_env_float("OPENAI_TIMEOUT", 120.0),
            base_currency=os.getenv("REPORTLENS_BASE_CURRENCY", "USD").upper(),
            employee_min=_env_int("REPORTLENS_EMPLOYEE_MIN", 10),
            employee_max=_env_int("REPORTLENS_EMPLOYEE_MAX", 5_000_000),
            revenue_min=_env_float("REPORTLENS_REVENUE_MIN", 1_000.0),
            revenue_max=_env_float("REPORTLENS_REVENUE_MAX", 1e13),
            hr_max_attempts=max(1, _env_int("REPORTLENS_HR_MAX_ATTEMPTS", 3)),
            hr_retry_backoff_seconds=_env_float("REPORTLENS_HR_RETRY_BACKOFF", 2.0),
            min_insight_count=_env_int("REPORTLENS_MIN_INSIGHTS", 5),
            hr_use_stage_context=_env_bool("REPORTLENS_HR_STAGE_CONTEXT", True),
        )


def load_settings() -> Settings:
    return Settings.from_env()


# ----------------------------------------------------------------------
# Normalizer rule tables (loaded once, immutable)
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class MetricKeywords:
    primary: Tuple[str, ...]
    synonyms: Tuple[str, ...]

    @property
    def all(self) -> Tuple[str, ...]:
        # longest first so "total revenue" claims a value before "revenue"
        return tuple(sorted(self.primary + self.synonyms, key=len, reverse=True))


@dataclass(frozen=True)
class FinancialRules:
    currencies: Tuple[Tuple[str, CurrencyInfo], ...]
    metrics: Mapping[str, MetricKeywords]
    loss_keywords: Tuple[str, ...]
    scale_words: Mapping[str, int]
    full_digit_min_digits: Mapping[str, int]
    current_terms: Tuple[str, ...]
    adjusted_terms: Tuple[str, ...]
    growth_terms: Tuple[str, ...]
    not_disclosed_terms: Tuple[str, ...]
    keyword_window: int = 80
    proximity_window: int = 100

    def currency_for_code(self, code: str) -> CurrencyInfo:
        code = code.upper()
        for _, info in self.currencies:
            if info.code == code:
                return info
        return CurrencyInfo(symbol=code, code=code, name=code)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "FinancialRules":
        currencies = tuple(
            (
                entry["token"],
                CurrencyInfo(symbol=entry["symbol"], code=entry["code"], name=entry["name"]),
            )
            for entry in raw.get("currencies", [])
        )
        metrics = {
            name: MetricKeywords(
                primary=tuple(k.lower() for k in meta.get("primary", [])),
                synonyms=tuple(k.lower() for k in meta.get("synonyms", [])),
            )
            for name, meta in (raw.get("metrics") or {}).items()
        }
        return cls(
            currencies=currencies,
            metrics=MappingProxyType(metrics),
            loss_keywords=tuple(raw.get("loss_keywords", [])),
            scale_words=MappingProxyType(
                {k.lower(): int(v) for k, v in (raw.get("scale_words") or {}).items()}
            ),
            full_digit_min_digits=MappingProxyType(dict(raw.get("full_digit_min_digits") or {})),
            current_terms=tuple(raw.get("current_terms", [])),
            adjusted_terms=tuple(raw.get("adjusted_terms", [])),
            growth_terms=tuple(raw.get("growth_terms", [])),
            not_disclosed_terms=tuple(raw.get("not_disclosed_terms", [])),
            keyword_window=int(raw.get("keyword_window", 80)),
            proximity_window=int(raw.get("proximity_window", 100)),
        )


@lru_cache(maxsize=4)
def load_rules(path: Path = RULES_PATH) -> FinancialRules:
    """Load the normalizer rule tables once per process."""
    return FinancialRules.from_mapping(load_yaml(path))


def setup_logging(level: str = "INFO") -> None:
    """
    Configure root logger. Safe to call multiple times.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


# Run once automatically
setup_logging()
