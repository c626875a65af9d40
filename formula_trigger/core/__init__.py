"""Core processing pipeline."""

from formula_trigger.core.bus import Event, EventBus, EventType, FormulaChanged
from formula_trigger.core.mapper import ResolvedStatus, map_to_status, parse_value
from formula_trigger.core.processor import StatusProcessor

__all__ = [
    "Event",
    "EventBus",
    "EventType",
    "FormulaChanged",
    "ResolvedStatus",
    "StatusProcessor",
    "map_to_status",
    "parse_value",
]
