from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional


# All known whitespace variants (regular + non-breaking)
SPACE_CHARS = [
    "\u0020",  # normal space
    "\u00A0",  # NBSP
    "\u2007",  # figure space
    "\u202F",  # narrow NBSP
]

# Longest words first; single letters only count as a trailing suffix.
SCALE_WORDS: Mapping[str, int] = {
    "trillion": 1_000_000_000_000,
    "billion": 1_000_000_000,
    "million": 1_000_000,
    "thousand": 1_000,
    "tn": 1_000_000_000_000,
    "bn": 1_000_000_000,
    "mn": 1_000_000,
    "b": 1_000_000_000,
    "m": 1_000_000,
    "k": 1_000,
}

_DECIMAL_WITH_SCALE = re.compile(r"^\d+(?:\.\d{1,3}|,\d{1,2})$")


def _normalize_spaces(s: str) -> str:
    """Replace all types of weird spaces with a normal space."""
    for ch in SPACE_CHARS:
        s = s.replace(ch, " ")
    return s


# (shape, rewrite to a float() literal), first full match wins.
# Grouped thousands come before decimals, so "123,400" reads as 123400.
_LOCALE_SHAPES = (
    (re.compile(r"\d{1,3}(?:[.,]\d{3})+"), lambda s: re.sub(r"[.,]", "", s)),
    (re.compile(r"\d+"), lambda s: s),
    (re.compile(r"\d+[.,]\d+"), lambda s: s.replace(",", ".")),
    (re.compile(r"\d{1,3}(?:,\d{3})+\.\d+"), lambda s: s.replace(",", "")),
)


def parse_locale_number(num: Optional[str]) -> Optional[float]:
    """
    Locale-aware parse of a bare number.

    "1,200,000", "1.200.000", "1 200 000" (any space variant), "1200000.",
    "123.45", "123,45" and "4,241,838.50" are all understood; anything else
    is read with every separator dropped, or rejected.
    """
    if not num:
        return None

    compact = _normalize_spaces(num).strip().rstrip(".").replace(" ", "")
    if not compact:
        return None

    for shape, rewrite in _LOCALE_SHAPES:
        if shape.fullmatch(compact):
            return float(rewrite(compact))

    try:
        return float(re.sub(r"[,.]", "", compact))
    except ValueError:
        return None


def _scale_for(rest: str, scale_words: Mapping[str, int]) -> int:
    token = re.match(r"[a-z]+", rest)
    if not token:
        return 1
    return scale_words.get(token.group(0), 1)


def parse_scaled_number(
    raw: Any,
    scale_words: Optional[Mapping[str, int]] = None,
) -> Optional[float]:
    """
    Parse scaled and signed amounts:
      - "1.2 million", "1,2 million" (EU), "120k"
      - "$2.61 billion", "4.2B", "RM 3.1bn"
      - "-200M", "(200M)"
      - "$4,241,838,000"

    Currency symbols and codes in front of the number are ignored; the
    arithmetic is done in Decimal so "2.61 billion" is exactly 2610000000.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw)

    words = scale_words or SCALE_WORDS
    s = _normalize_spaces(str(raw).strip().lower())
    if not s:
        return None

    negative = s.startswith("-") or s.startswith("\u2212") or (s.startswith("(") and s.endswith(")"))
    s = s.strip("()").lstrip("-\u2212+").strip()

    m = re.search(r"\d[\d.,\s]*", s)
    if not m:
        return None

    num_part = m.group(0).strip().rstrip(".,")
    scale = _scale_for(s[m.end():].strip(), words)

    try:
        if scale > 1 and _DECIMAL_WITH_SCALE.match(num_part):
            base = Decimal(num_part.replace(",", "."))
        else:
            parsed = parse_locale_number(num_part)
            if parsed is None:
                return None
            base = Decimal(str(parsed))
        value = base * Decimal(scale)
    except InvalidOperation:
        return None

    result = float(value)
    return -result if negative else result


def parse_count(raw: Any) -> Optional[int]:
    """Parse a head-count style integer ("50,000", "12.5k", 48000)."""
    value = parse_scaled_number(raw)
    if value is None:
        return None
    return int(round(value))
