"""
Best-effort extraction of structured values from free-form LLM text.

Every function returns its documented default when nothing usable is
found; none of them raise on malformed input. The intent fallback uses the
JSON, choice, confidence, price and list helpers; `extract_percentage` is
exported for callers that parse pricing advice outside the search core.
"""

import json
import re
from typing import Any, Iterable

MAX_REASONABLE_PRICE = 10000.0

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_LIST_ITEM = re.compile(r"^\s*(?:\d+[.)]|\*|-)\s+(.+?)\s*$", re.MULTILINE)
_CONFIDENCE_PATTERNS = [
    re.compile(r"confidence[^0-9]*([0-9]+(?:\.[0-9]+)?)\s*(%)?", re.IGNORECASE),
    re.compile(r"([0-9]+(?:\.[0-9]+)?)\s*(%)?\s*confiden", re.IGNORECASE),
    re.compile(r"certainty[^0-9]*([0-9]+(?:\.[0-9]+)?)\s*(%)?", re.IGNORECASE),
]


def extract_json_object(text: str) -> dict[str, Any] | None:
    """First-to-last brace span parsed as a JSON object. Default: None."""
    if not text:
        return None

    match = _JSON_OBJECT.search(text)
    if not match:
        return None

    try:
        data = json.loads(match.group())
    except json.JSONDecodeError:
        return None

    return data if isinstance(data, dict) else None


def extract_price(text: str, *keywords: str) -> float | None:
    """Price near one of the keywords, e.g. "optimal price: $49.99".

    Only values in (0, 10000) are accepted. Default: None.
    """
    if not text:
        return None

    for keyword in keywords:
        kw = re.escape(keyword)
        patterns = [
            rf"{kw}[^$]*\$([0-9]+(?:\.[0-9]{{1,2}})?)",
            rf"\$([0-9]+(?:\.[0-9]{{1,2}})?)[^0-9]*{kw}",
            rf"{kw}[^0-9]*([0-9]+(?:\.[0-9]{{1,2}})?)",
        ]
        for pattern in patterns:
            match = re.search(pattern, text, re.IGNORECASE)
            if match:
                price = float(match.group(1))
                if 0 < price < MAX_REASONABLE_PRICE:
                    return price
    return None


def extract_confidence(text: str) -> float | None:
    """Confidence as a fraction in [0, 1].

    Accepts "confidence: 0.85", "85% confidence" and "certainty 70".
    Values above 1 are read as percentages. Default: None.
    """
    if not text:
        return None

    for pattern in _CONFIDENCE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        value = float(match.group(1))
        if match.group(2) or value > 1:
            value /= 100
        if 0 <= value <= 1:
            return value
    return None


def extract_percentage(
    text: str,
    keyword: str = "sustainability premium",
    default: float = 15.0,
    cap: float = 50.0,
) -> float:
    """Percentage attached to a keyword, clamped to [0, cap]. Default: ``default``."""
    if not text:
        return default

    kw = re.escape(keyword)
    match = re.search(rf"{kw}[^0-9]*([0-9]+(?:\.[0-9]+)?)\s*%?", text, re.IGNORECASE)
    if match is None:
        # "20% premium for sustainability"
        head, _, tail = keyword.rpartition(" ")
        if head:
            match = re.search(
                rf"([0-9]+(?:\.[0-9]+)?)\s*%?\s*{re.escape(tail)}.*{re.escape(head)}",
                text,
                re.IGNORECASE,
            )
    if match is None:
        return default

    return min(cap, max(0.0, float(match.group(1))))


def extract_list_items(text: str, limit: int = 5) -> list[str]:
    """Bulleted or numbered list items, in order. Default: []."""
    if not text:
        return []
    return [item for item in _LIST_ITEM.findall(text) if item][:limit]


def extract_choice(text: str, choices: Iterable[str], default: str | None = None) -> str | None:
    """The choice mentioned earliest as a whole word. Default: ``default``."""
    if not text:
        return default

    best: tuple[int, str] | None = None
    for choice in choices:
        match = re.search(rf"\b{re.escape(choice)}\b", text, re.IGNORECASE)
        if match and (best is None or match.start() < best[0]):
            best = (match.start(), choice)

    return best[1] if best else default
