"""Webhook event models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class WebhookEvent:
    board_id: str
    item_id: str
    column_id: str | None = None
    column_type: str | None = None
    value: Any = None
    previous_value: Any = None
    user_id: str | None = None
