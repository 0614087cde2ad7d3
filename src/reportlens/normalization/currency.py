# src/reportlens/normalization/currency.py
from __future__ import annotations

import re
from typing import List, Optional, Tuple

from reportlens.config import FinancialRules
from reportlens.core.types import CurrencyInfo


def token_pattern(token: str) -> str:
    """
    Regex for one currency token. Tokens never start inside a word
    ("$" is not matched inside "HK$", "S$" not inside "US$"), and
    alphabetic codes never end inside one ("RM" not in "RMB").
    """
    pattern = r"(?<![A-Za-z])" + re.escape(token)
    if token[-1].isalpha():
        pattern += r"(?![A-Za-z])"
    return pattern


class CurrencyResolver:
    """
    Resolve the currency of a matched amount.

    Tokens are checked in the configured priority order (most specific
    first), first against the matched value itself and then against its
    surrounding context. Falls back to the base currency.
    """

    def __init__(self, rules: FinancialRules, base_currency: str = "USD") -> None:
        self._table: List[Tuple[str, CurrencyInfo, re.Pattern]] = [
            (token, info, re.compile(token_pattern(token)))
            for token, info in rules.currencies
        ]
        self.base = rules.currency_for_code(base_currency)

    @property
    def tokens(self) -> List[str]:
        return [token for token, _, _ in self._table]

    def find(self, text: Optional[str]) -> Optional[CurrencyInfo]:
        if not text:
            return None
        for _, info, pattern in self._table:
            if pattern.search(text):
                return info
        return None

    def resolve(self, value_text: Optional[str], context: Optional[str] = None) -> CurrencyInfo:
        return self.find(value_text) or self.find(context) or self.base
