# src/reportlens/normalization/strategies.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from reportlens.config import FinancialRules
from reportlens.normalization.currency import token_pattern
from reportlens.utils.numeric_parser import parse_scaled_number

logger = logging.getLogger(__name__)


# =====================================================================
# Raw strategy output
# =====================================================================

@dataclass(frozen=True)
class RawHit:
    """A keyword/value pairing found by one strategy, before scoring."""
    metric: str
    strategy: str
    value: float
    value_text: str
    value_span: Tuple[int, int]
    keyword: str
    context_span: Tuple[int, int]
    year_hint: Optional[int] = None


# Words allowed between a value and a keyword that follows it:
# "12,000 employees", "$4.2 billion in revenue", "$3bn of total assets"
_BACKWARD_CONNECTOR = re.compile(
    r"\s*(?:(?:in|of|total|group|consolidated|full-time|permanent|global)\s+)*",
    re.IGNORECASE,
)

# Words allowed between a keyword and the value it introduces:
# "employees: 12,000", "revenue was $4.2 billion", "staff of 300"
_FORWARD_CONNECTOR = re.compile(
    r"[\s:]*(?:(?:of|was|were|is|are|at|reached|totalled|totaled|stood\s+at)\s+)*",
    re.IGNORECASE,
)

# Metrics counted in heads, never in money
COUNT_METRICS = ("employees",)

_FISCAL = re.compile(
    r"(?<![A-Za-z])(?:fiscal(?:\s+year)?|financial\s+year|FY)\s?'?(?P<year>(?:19|20)\d{2}|\d{2})(?!\d)",
    re.IGNORECASE,
)
_BARE_YEAR = re.compile(r"(?<![\d,.$])(?P<year>(?:19|20)\d{2})(?!\d|,\d)")
_PERCENT_AFTER = re.compile(r"\s?(?:%|percent|per cent)", re.IGNORECASE)


def sentence_bounds(text: str, start: int, end: int) -> Tuple[int, int]:
    """Start/end of the sentence holding text[start:end] (". " delimited)."""
    left = text.rfind(". ", 0, start)
    right = text.find(". ", end)
    return (0 if left == -1 else left + 2, len(text) if right == -1 else right)


def fiscal_year(match: re.Match) -> int:
    year = int(match.group("year"))
    return year + 2000 if year < 100 else year


def find_years(text: str, start: int = 0, end: Optional[int] = None) -> List[Tuple[int, int, bool]]:
    """(year, position, fiscal_qualified) for every year mention in the slice."""
    end = len(text) if end is None else end
    found = [(fiscal_year(m), m.start("year"), True) for m in _FISCAL.finditer(text, start, end)]
    fiscal_positions = {pos for _, pos, _ in found}
    for m in _BARE_YEAR.finditer(text, start, end):
        if m.start("year") not in fiscal_positions:
            found.append((int(m.group("year")), m.start("year"), False))
    return found


def _keyword_regex(keyword: str) -> str:
    """"employees" also matches "employee"; multi-word keywords tolerate any spacing."""
    words = keyword.split()
    last = words[-1]
    if last.endswith("s") and not last.endswith("ss"):
        words[-1] = last[:-1]
        return r"\s+".join(re.escape(w) for w in words) + "s?"
    return r"\s+".join(re.escape(w) for w in words)


def _alternation(keywords: Sequence[str]) -> str:
    ordered = sorted(set(keywords), key=len, reverse=True)
    return "|".join(_keyword_regex(k) for k in ordered)


# =====================================================================
# Compiled pattern book (built once per rules object)
# =====================================================================

class PatternBook:
    """Regexes compiled from the FinancialRules tables."""

    def __init__(self, rules: FinancialRules) -> None:
        self.rules = rules

        tokens = sorted((t for t, _ in rules.currencies), key=len, reverse=True)
        currency = "|".join(token_pattern(t) for t in tokens)
        scales = "|".join(re.escape(w) for w in sorted(rules.scale_words, key=len, reverse=True))
        number = r"\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+,\d{1,2}(?!\d)|\d+(?:\.\d+)?"

        lead = rf"(?<![\w.,])(?P<cur>(?:{currency})\s?)?"
        scale = rf"\s?(?P<scale>{scales})(?![A-Za-z])"

        self.scaled_value = re.compile(rf"{lead}(?P<num>{number}){scale}", re.IGNORECASE)
        self.any_value = re.compile(rf"{lead}(?P<num>{number})(?:{scale})?", re.IGNORECASE)

        self.keywords = {
            metric: re.compile(rf"(?<![A-Za-z])(?P<kw>{_alternation(kw.all)})(?![A-Za-z])", re.IGNORECASE)
            for metric, kw in rules.metrics.items()
        }
        self.other_keywords = {
            metric: re.compile(
                rf"(?<![A-Za-z])(?:{_alternation([k for m, kw in rules.metrics.items() if m != metric for k in kw.all])})(?![A-Za-z])",
                re.IGNORECASE,
            )
            for metric in rules.metrics
        }
        self.full_digit = {
            metric: self._full_digit_pattern(lead, rules.full_digit_min_digits.get(metric, 7), scales)
            for metric in rules.metrics
        }

        not_disclosed = "|".join(re.escape(t) for t in rules.not_disclosed_terms) or r"(?!x)x"
        self.not_disclosed = {
            metric: re.compile(
                rf"(?<![A-Za-z])(?:{_alternation(kw.all)})(?![A-Za-z])[^.;]{{0,40}}?(?:{not_disclosed})"
                rf"|(?:{not_disclosed})[^.;]{{0,25}}?(?<![A-Za-z])(?:{_alternation(kw.all)})(?![A-Za-z])",
                re.IGNORECASE,
            )
            for metric, kw in rules.metrics.items()
        }

        self.current_terms = self._terms(rules.current_terms)
        self.adjusted_terms = self._terms(rules.adjusted_terms)
        self.growth_terms = self._terms(rules.growth_terms)

    @staticmethod
    def _terms(terms: Sequence[str]) -> re.Pattern:
        if not terms:
            return re.compile(r"(?!x)x")
        alternation = "|".join(re.escape(t) for t in sorted(terms, key=len, reverse=True))
        return re.compile(rf"(?<![A-Za-z])(?:{alternation})(?![A-Za-z])", re.IGNORECASE)

    @staticmethod
    def _full_digit_pattern(lead: str, min_digits: int, scales: str) -> re.Pattern:
        groups = max(1, (min_digits - 1) // 3)
        number = rf"\d{{1,3}}(?:,\d{{3}}){{{groups},}}|\d{{{min_digits},}}"
        return re.compile(
            rf"{lead}(?P<num>{number})(?![\d,]|\.\d)(?!\s?(?:{scales})(?![A-Za-z]))",
            re.IGNORECASE,
        )

    def is_loss_keyword(self, keyword: str) -> bool:
        kw = keyword.lower()
        return any(kw in (loss, loss + "s") for loss in self.rules.loss_keywords)


# =====================================================================
# Shared scanning helpers
# =====================================================================

def _extend_token_end(text: str, end: int) -> int:
    """Do not cut a number or scale word in half at a window edge."""
    if end <= 0 or end >= len(text) or not text[end - 1].isalnum():
        return end
    while end < len(text) and (
        text[end].isalnum()
        or (text[end] in ",." and end + 1 < len(text) and text[end + 1].isdigit())
    ):
        end += 1
    return end


def _is_noise(text: str, vm: re.Match, metric: str) -> bool:
    """Bare years and percentages are never amounts; money is never a headcount."""
    if metric in COUNT_METRICS and vm.group("cur"):
        return True
    if _PERCENT_AFTER.match(text, vm.end()):
        return True
    num = vm.group("num")
    has_scale = "scale" in vm.re.groupindex and vm.group("scale")
    if not vm.group("cur") and not has_scale and re.fullmatch(r"(?:19|20)\d{2}", num):
        return True
    return False


def _value_of(vm: re.Match, book: PatternBook) -> Optional[float]:
    scale = vm.group("scale") if "scale" in vm.re.groupindex else None
    raw = f"{vm.group('num')} {scale}" if scale else vm.group("num")
    return parse_scaled_number(raw, book.rules.scale_words)


def _claimed_by_other(book: PatternBook, text: str, metric: str, km: re.Match, vm: re.Match) -> bool:
    """
    True when the value belongs to another metric's keyword: one sits
    between it and our keyword, or one is attached directly to the value
    ("12,000 employees", "per employee was $250k").
    """
    other = book.other_keywords[metric]
    lo, hi = (km.end(), vm.start()) if vm.start() >= km.end() else (vm.end(), km.start())
    if other.search(text, lo, hi):
        return True

    after = _BACKWARD_CONNECTOR.match(text, vm.end())
    if other.match(text, after.end()):
        return True

    for om in other.finditer(text, max(0, vm.start() - 40), vm.start()):
        if _FORWARD_CONNECTOR.fullmatch(text, om.end(), vm.start()):
            return True
    return False


def _iter_keyword_windows(
    book: PatternBook, text: str, metric: str, window: int
) -> Iterator[Tuple[re.Match, int, int, int]]:
    """
    Yield (keyword match, sentence start, forward start, forward end).

    The forward window stops at the sentence end and at the next keyword
    of any metric, so "revenue of $4bn and net profit of $1bn" does not
    hand $1bn to revenue.
    """
    for km in book.keywords[metric].finditer(text):
        sent_start, sent_end = sentence_bounds(text, km.start(), km.end())
        fwd_end = min(km.end() + window, sent_end)
        for stop in (book.keywords[metric], book.other_keywords[metric]):
            nxt = stop.search(text, km.end(), fwd_end)
            if nxt:
                fwd_end = nxt.start()
        yield km, sent_start, km.end(), _extend_token_end(text, fwd_end)


def _scan(
    book: PatternBook,
    text: str,
    metric: str,
    strategy: str,
    value_re: re.Pattern,
    window: int,
    backward: bool = True,
    year_hint: Optional[int] = None,
) -> List[RawHit]:
    hits: List[RawHit] = []

    for km, sent_start, fwd_start, fwd_end in _iter_keyword_windows(book, text, metric, window):
        keyword = km.group("kw")

        for vm in value_re.finditer(text, fwd_start, fwd_end):
            if _is_noise(text, vm, metric):
                continue
            value = _value_of(vm, book)
            if value is None:
                continue
            hits.append(RawHit(
                metric=metric,
                strategy=strategy,
                value=value,
                value_text=vm.group(0),
                value_span=vm.span(),
                keyword=keyword,
                context_span=(km.start(), vm.end()),
                year_hint=year_hint,
            ))

        if not backward:
            continue

        for vm in value_re.finditer(text, sent_start, km.start()):
            if not _BACKWARD_CONNECTOR.fullmatch(text, vm.end(), km.start()):
                continue
            if _is_noise(text, vm, metric):
                continue
            value = _value_of(vm, book)
            if value is None:
                continue
            hits.append(RawHit(
                metric=metric,
                strategy=strategy,
                value=value,
                value_text=vm.group(0),
                value_span=vm.span(),
                keyword=keyword,
                context_span=(vm.start(), km.end()),
                year_hint=year_hint,
            ))

    return hits


# =====================================================================
# Strategies, in priority order
# =====================================================================

def scaled_strategy(book: PatternBook, text: str, metric: str) -> List[RawHit]:
    """"revenue ... $4.2 billion", "$100M net profit"."""
    return _scan(book, text, metric, "scaled", book.scaled_value, book.rules.keyword_window)


def full_digit_strategy(book: PatternBook, text: str, metric: str) -> List[RawHit]:
    """"revenue of $4,241,838,000" (seven or more digits for money)."""
    return _scan(book, text, metric, "full_digit", book.full_digit[metric], book.rules.keyword_window)


def fiscal_year_strategy(book: PatternBook, text: str, metric: str) -> List[RawHit]:
    """Any amount next to the keyword in a sentence anchored by "fiscal YYYY" / "FY YYYY"."""
    hits: List[RawHit] = []
    seen_sentences = set()

    for fm in _FISCAL.finditer(text):
        bounds = sentence_bounds(text, fm.start(), fm.end())
        if bounds in seen_sentences:
            continue
        seen_sentences.add(bounds)

        sentence = text[: bounds[1]]
        year = fiscal_year(fm)
        for hit in _scan(book, sentence, metric, "fiscal_year", book.any_value,
                         book.rules.keyword_window, year_hint=year):
            if hit.context_span[0] >= bounds[0] and not (
                fm.start() <= hit.value_span[0] < fm.end()
            ):
                hits.append(hit)

    return hits


def proximity_strategy(book: PatternBook, text: str, metric: str) -> List[RawHit]:
    """
    Fallback: any sufficiently large number within the proximity window of
    the keyword. Money needs a currency or scale word here, and values
    attached to another metric's keyword are left alone.
    """
    hits: List[RawHit] = []
    window = book.rules.proximity_window

    for km in book.keywords[metric].finditer(text):
        start = max(0, km.start() - window)
        end = _extend_token_end(text, min(len(text), km.end() + window))
        # step back to a token boundary on the left edge as well
        while start > 0 and text[start - 1].isalnum():
            start -= 1

        for vm in book.any_value.finditer(text, start, end):
            if km.start() <= vm.start() < km.end() or _is_noise(text, vm, metric):
                continue
            if metric not in COUNT_METRICS and not (vm.group("cur") or vm.group("scale")):
                continue
            if _claimed_by_other(book, text, metric, km, vm):
                continue
            value = _value_of(vm, book)
            if value is None or abs(value) < 100:
                continue
            span = (min(km.start(), vm.start()), max(km.end(), vm.end()))
            hits.append(RawHit(
                metric=metric,
                strategy="proximity",
                value=value,
                value_text=vm.group(0),
                value_span=vm.span(),
                keyword=km.group("kw"),
                context_span=span,
            ))

    return hits


Strategy = Callable[[PatternBook, str, str], List[RawHit]]

STRATEGIES: Sequence[Tuple[str, Strategy]] = (
    ("scaled", scaled_strategy),
    ("full_digit", full_digit_strategy),
    ("fiscal_year", fiscal_year_strategy),
    ("proximity", proximity_strategy),
)
