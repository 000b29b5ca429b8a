"""
Common utility functions for the LearnHub backend.

Small numeric and text helpers shared by the evaluator, the aggregator and
the LLM gateway.
"""

import json
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Union

Number = Union[int, float]

_CODE_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*|```")


def safe_divide(numerator: Number, denominator: Number, default: Number = 0) -> float:
    """
    Safely divide two numbers, returning a default value if denominator is zero.

    Args:
        numerator: Number to divide
        denominator: Number to divide by
        default: Value to return if denominator is zero

    Returns:
        Result of division or default value
    """
    if not denominator:
        return default
    return numerator / denominator


def round_half_up(value: Number, digits: int = 0) -> float:
    """
    Round with halves going away from zero (2.5 -> 3), unlike the built-in round.

    Args:
        value: Number to round
        digits: Number of decimal places to keep

    Returns:
        Rounded number (an int when ``digits`` is 0)
    """
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if digits == 0 else float(rounded)


def clamp(value: Number, lower: Number, upper: Number) -> Number:
    """Clamp a value into ``[lower, upper]``."""
    return max(lower, min(upper, value))


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fence markers (```json ... ```) and surrounding whitespace."""
    return _CODE_FENCE_RE.sub("", text or "").strip()


def truncate_string(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """
    Truncate a string to a maximum length, adding a suffix if truncated.

    Args:
        text: String to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated string
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix


def to_text(value: Any) -> str:
    """Render an arbitrary answer value as text; structured values become JSON."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)
