"""Background processing: formula value -> status -> remote update."""

from __future__ import annotations

from typing import Any, Protocol

from formula_trigger.config import Settings
from formula_trigger.core.bus import Event, FormulaChanged
from formula_trigger.core.mapper import ResolvedStatus, map_to_status, parse_value
from formula_trigger.errors import FormulaTriggerError
from formula_trigger.utils.logging import get_logger
from formula_trigger.webhooks.models import WebhookEvent

log = get_logger(__name__)


class StatusUpdater(Protocol):
    async def update_status_column(
        self,
        board_id: str | int,
        item_id: str | int,
        status_column_id: str,
        status_index: int,
    ) -> dict[str, Any]: ...


class StatusProcessor:
    """Resolves the status for a formula change and writes it back.

    Failures end processing for that event and are only logged: the webhook
    sender was acknowledged before this runs.
    """

    def __init__(self, settings: Settings, updater: StatusUpdater) -> None:
        self._settings = settings
        self._updater = updater

    async def handle(self, event: Event) -> None:
        """Event bus entry point."""
        if isinstance(event, FormulaChanged) and event.webhook is not None:
            await self.process(event.webhook)

    async def process(self, event: WebhookEvent) -> ResolvedStatus | None:
        verbose = self._settings.logging.log_webhooks

        value = parse_value(event.value)
        if value is None:
            log.info("formula_value_unparseable", item_id=event.item_id, value=event.value)
            return None
        if verbose:
            log.info("formula_value_parsed", item_id=event.item_id, value=value)

        status = map_to_status(value, self._settings.status_rules)
        if status is None:
            log.info("no_status_match", item_id=event.item_id, value=value)
            return None
        if verbose:
            log.info(
                "formula_value_mapped",
                item_id=event.item_id,
                label=status.label,
                index=status.index,
                color=status.color,
            )

        try:
            await self._updater.update_status_column(
                event.board_id,
                event.item_id,
                self._settings.webhook.status_column_id,
                status.index,
            )
        except FormulaTriggerError as e:
            if self._settings.logging.log_errors:
                log.error(
                    "status_update_failed",
                    board_id=event.board_id,
                    item_id=event.item_id,
                    error=str(e),
                )
            return None

        log.info(
            "status_updated",
            board_id=event.board_id,
            item_id=event.item_id,
            label=status.label,
        )
        return status
