# tests/test_currency.py
from reportlens.normalization.currency import CurrencyResolver


def test_specific_tokens_win_over_generic_dollar(rules):
    resolver = CurrencyResolver(rules)

    assert resolver.resolve("HK$3.2 billion").code == "HKD"
    assert resolver.resolve("S$450 million").code == "SGD"
    assert resolver.resolve("US$5m").code == "USD"
    assert resolver.resolve("$3.2 billion").code == "USD"


def test_alphabetic_codes_respect_word_boundaries(rules):
    resolver = CurrencyResolver(rules)

    assert resolver.resolve("RM 3.1bn").code == "MYR"
    assert resolver.find("RMB 20 billion").code == "CNY"
    assert resolver.find("the firm 3 billion") is None


def test_symbols(rules):
    resolver = CurrencyResolver(rules)

    assert resolver.resolve("€1.5bn").code == "EUR"
    assert resolver.resolve("£900m").code == "GBP"


def test_context_then_base_currency(rules):
    resolver = CurrencyResolver(rules)
    assert resolver.resolve("4.2 billion", "sales of 4.2 billion EUR").code == "EUR"
    assert resolver.resolve("4.2 billion", "sales of 4.2 billion").code == "USD"

    gbp = CurrencyResolver(rules, base_currency="GBP")
    assert gbp.resolve("12 million").code == "GBP"
    assert gbp.resolve("12 million").symbol == "£"


def test_token_order_follows_rules(rules):
    tokens = CurrencyResolver(rules).tokens
    assert tokens.index("HK$") < tokens.index("$")
    assert tokens.index("RM") < tokens.index("RMB")
