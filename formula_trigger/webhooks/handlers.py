"""Webhook signature validation, payload normalization and event filtering."""

from __future__ import annotations

import hashlib
import hmac
from typing import Any

from formula_trigger.config import FilterConfig
from formula_trigger.utils.logging import get_logger
from formula_trigger.webhooks.models import WebhookEvent

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Signature validation
# ---------------------------------------------------------------------------

def compute_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the request body keyed by the signing secret."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Validate the ``authorization`` header against the signing secret.

    Returns True without checking when no secret is configured, so a local
    development server accepts unsigned requests. Never raises.
    """
    if not secret:
        log.warning(
            "signature_check_skipped",
            msg="No signing secret configured. Skipping signature verification.",
        )
        return True
    if not signature:
        return False
    try:
        expected = compute_signature(body, secret)
        return hmac.compare_digest(expected, signature)
    except (TypeError, ValueError):
        # Non-ASCII header values cannot be compared with compare_digest
        return False


# ---------------------------------------------------------------------------
# Payload normalization
# ---------------------------------------------------------------------------

def validate_payload(payload: Any) -> bool:
    """A payload must be a JSON object carrying a non-empty ``event``."""
    if not isinstance(payload, dict):
        return False
    return bool(payload.get("event"))


def _as_id(value: Any) -> str | None:
    if value is None or value == "" or isinstance(value, (dict, list, bool)):
        return None
    return str(value)


def extract_event(payload: dict[str, Any]) -> WebhookEvent | None:
    """Flatten a webhook payload into a WebhookEvent.

    Returns None when the event is not an object or when no board or item id
    can be resolved.
    """
    event = payload.get("event")
    if not isinstance(event, dict):
        log.error("event_extraction_failed", reason="event is not an object")
        return None

    board_id = _as_id(event.get("boardId") or payload.get("boardId"))
    item_id = _as_id(event.get("pulseId") or event.get("itemId"))
    # Unaddressable events get a 400 here instead of failing in the background update
    if board_id is None or item_id is None:
        log.error(
            "event_extraction_failed",
            reason="missing board or item id",
            board_id=board_id,
            item_id=item_id,
        )
        return None

    user_id = event.get("userId")
    return WebhookEvent(
        board_id=board_id,
        item_id=item_id,
        column_id=event.get("columnId"),
        column_type=event.get("columnType"),
        value=event.get("value"),
        previous_value=event.get("previousValue"),
        user_id=str(user_id) if user_id is not None else None,
    )


# ---------------------------------------------------------------------------
# Event filtering
# ---------------------------------------------------------------------------

def should_process(event: WebhookEvent, config: FilterConfig) -> bool:
    """Decide whether a column change should be mapped onto the status column."""
    column_type = event.column_type
    if not column_type:
        return config.allow_missing_column_type

    # Writing the status column fires another webhook; never react to it
    if column_type in config.ignore_column_types:
        return False

    if config.formula_column_types and column_type not in config.formula_column_types:
        return False

    return True
