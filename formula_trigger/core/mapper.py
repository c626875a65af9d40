"""Formula value parsing and threshold mapping."""

from __future__ import annotations

import math
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from formula_trigger.config import StatusRule

# Formatting stripped from string results: thousands separators, currency, percent
_FORMATTING_RE = re.compile(r"[,$%]")

# Leading numeral or Infinity; trailing text is ignored ("12 units" -> 12)
_NUMERAL_RE = re.compile(r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


@dataclass(frozen=True)
class ResolvedStatus:
    label: str
    index: int
    color: str


def parse_value(raw: Any) -> float | None:
    """Parse a formula column result into a number, or None if it is not one."""
    if isinstance(raw, bool):
        return None

    if isinstance(raw, (int, float)):
        # Ints of any size are exact; only floats can be NaN
        return None if isinstance(raw, float) and math.isnan(raw) else raw

    if isinstance(raw, str):
        cleaned = _FORMATTING_RE.sub("", raw).strip()
        match = _NUMERAL_RE.match(cleaned)
        if not match:
            return None
        return float(match.group(0))

    return None


def map_to_status(
    value: float | None, rules: Iterable[StatusRule]
) -> ResolvedStatus | None:
    """Return the first rule matching ``value`` in declaration order."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None

    for rule in rules:
        if rule.matches(value):
            return ResolvedStatus(label=rule.label, index=rule.index, color=rule.color)

    return None
