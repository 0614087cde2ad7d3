from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence

from reportlens.core.errors import JSONRecoveryError

logger = logging.getLogger(__name__)

JsonObject = Dict[str, Any]
ParserStrategy = Callable[[str], Optional[JsonObject]]

_CODE_BLOCK = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_UNQUOTED_KEY = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_\-]*)\s*:")
_SMART_QUOTES = str.maketrans({"“": '"', "”": '"', "‘": "'", "’": "'"})
_STRING_LITERAL = re.compile(r'"(?:[^"\\]|\\.)*"', re.DOTALL)


def _loads_object(s: str) -> Optional[JsonObject]:
    """json.loads that only accepts an object root."""
    try:
        obj = json.loads(s)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None
    if not isinstance(obj, dict):
        logger.debug("json_recovery: root is not an object (got %s)", type(obj).__name__)
        return None
    return obj


def _balanced_objects(s: str) -> List[str]:
    """
    Every top-level {...} substring whose braces balance, ignoring braces
    inside string literals.
    """
    found: List[str] = []
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for i, ch in enumerate(s):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                found.append(s[start:i + 1])

    return found


def _repair_structure(chunk: str) -> str:
    chunk = _TRAILING_COMMA.sub(r"\1", chunk)
    return _UNQUOTED_KEY.sub(r'\1"\2":', chunk)


def repair_json_text(s: str) -> str:
    """Fix the usual model slips: smart quotes, trailing commas, bare keys."""
    s = s.translate(_SMART_QUOTES)

    # string literals are copied through untouched
    out: List[str] = []
    last = 0
    for m in _STRING_LITERAL.finditer(s):
        out.append(_repair_structure(s[last:m.start()]))
        out.append(m.group(0))
        last = m.end()
    out.append(_repair_structure(s[last:]))
    return "".join(out)


# ----------------------------------------------------------------------
# Parser strategies, tried in order
# ----------------------------------------------------------------------

def parse_direct(text: str) -> Optional[JsonObject]:
    return _loads_object(text.strip())


def parse_code_block(text: str) -> Optional[JsonObject]:
    """Parse the first ```json ... ``` fenced block that holds an object."""
    for block in _CODE_BLOCK.findall(text):
        obj = _loads_object(block.strip()) or _loads_object(repair_json_text(block.strip()))
        if obj is not None:
            return obj
    return None


def parse_balanced_braces(text: str) -> Optional[JsonObject]:
    for candidate in _balanced_objects(text):
        obj = _loads_object(candidate)
        if obj is not None:
            return obj
    return None


def parse_repaired(text: str) -> Optional[JsonObject]:
    """Repair, then retry the balanced-brace scan."""
    repaired = repair_json_text(text)
    for candidate in _balanced_objects(repaired):
        obj = _loads_object(candidate)
        if obj is not None:
            return obj
    return None


def parse_largest_substring(text: str) -> Optional[JsonObject]:
    """
    Last resort: try every JSON-looking substring, largest first, from the
    first "{" to each later "}".
    """
    first = text.find("{")
    if first == -1:
        return None

    ends = [i for i, ch in enumerate(text) if ch == "}" and i > first]
    for end in reversed(ends):
        chunk = text[first:end + 1]
        obj = _loads_object(chunk) or _loads_object(repair_json_text(chunk))
        if obj is not None:
            return obj
    return None


JSON_RECOVERY_CHAIN: Sequence[ParserStrategy] = (
    parse_direct,
    parse_code_block,
    parse_balanced_braces,
    parse_repaired,
    parse_largest_substring,
)


def extract_json_object(
    text: Optional[str],
    chain: Sequence[ParserStrategy] = JSON_RECOVERY_CHAIN,
) -> JsonObject:
    """
    Locate and parse one JSON object inside a possibly noisy model response.

    Raises JSONRecoveryError when every strategy in the chain gives up.
    """
    if not text or not text.strip():
        raise JSONRecoveryError("empty response")

    for strategy in chain:
        obj = strategy(text)
        if obj is not None:
            logger.debug("json_recovery: parsed with %s", strategy.__name__)
            return obj

    logger.debug("json_recovery: raw content %r", text[:500])
    raise JSONRecoveryError(
        "no JSON object found in response",
        {"length": len(text), "preview": text[:120]},
    )
