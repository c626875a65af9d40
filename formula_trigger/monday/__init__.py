"""Monday.com API access."""

from formula_trigger.monday.client import MondayClient, calculate_backoff_delay

__all__ = ["MondayClient", "calculate_backoff_delay"]
