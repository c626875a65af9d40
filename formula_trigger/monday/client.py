"""Monday.com GraphQL client with rate-limit backoff."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx

from formula_trigger.config import LoggingConfig, MondayConfig, RetryConfig
from formula_trigger.errors import MondayApiError, RateLimitExceeded
from formula_trigger.utils.logging import get_logger

log = get_logger(__name__)

CHANGE_COLUMN_VALUE = """
mutation ($boardId: ID!, $itemId: ID!, $columnId: String!, $value: JSON!) {
  change_column_value(
    board_id: $boardId,
    item_id: $itemId,
    column_id: $columnId,
    value: $value
  ) {
    id
    name
  }
}
"""

GET_ITEM = """
query ($itemId: ID!) {
  items(ids: [$itemId]) {
    id
    name
    board {
      id
    }
    column_values {
      id
      type
      text
      value
    }
  }
}
"""

GET_BOARD_COLUMNS = """
query ($boardId: ID!) {
  boards(ids: [$boardId]) {
    columns {
      id
      title
      type
    }
  }
}
"""


def calculate_backoff_delay(retry: RetryConfig, attempt: int) -> int:
    """Delay in milliseconds before retry number ``attempt`` (0-indexed)."""
    delay = retry.initial_delay_ms * retry.backoff_multiplier ** attempt
    return int(min(delay, retry.max_delay_ms))


def _summarize_query(query: str, limit: int = 50) -> str:
    flat = " ".join(query.split())
    return flat if len(flat) <= limit else flat[:limit] + "..."


class MondayClient:
    """Thin wrapper over the Monday.com v2 GraphQL endpoint."""

    def __init__(
        self,
        config: MondayConfig,
        retry: RetryConfig | None = None,
        log_config: LoggingConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._retry = retry or RetryConfig()
        self._logging = log_config or LoggingConfig()
        self._client = http_client or httpx.AsyncClient(timeout=config.timeout)

    async def close(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": self._config.api_token,
            "API-Version": self._config.api_version,
        }

    async def execute_query(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> dict[str, Any]:
        """POST a GraphQL document and return the response ``data`` field.

        HTTP 429 is retried with exponential backoff up to ``max_retries``
        times, after which RateLimitExceeded is raised. Other failures raise
        MondayApiError immediately.
        """
        variables = variables or {}
        try:
            resp = await self._client.post(
                self._config.api_url,
                headers=self._headers(),
                json={"query": query, "variables": variables},
            )

            if resp.status_code == 429:
                if retry_count < self._retry.max_retries:
                    delay = calculate_backoff_delay(self._retry, retry_count)
                    if self._logging.log_api_calls:
                        log.warning(
                            "monday_rate_limited",
                            delay_ms=delay,
                            attempt=retry_count + 1,
                            max_retries=self._retry.max_retries,
                        )
                    await asyncio.sleep(delay / 1000)
                    return await self.execute_query(query, variables, retry_count + 1)
                raise RateLimitExceeded(self._retry.max_retries)

            try:
                body = resp.json()
            except ValueError:
                body = None

            if isinstance(body, dict) and body.get("errors"):
                raise MondayApiError(
                    f"Monday API error: {json.dumps(body['errors'])}",
                    status=resp.status_code,
                    errors=body["errors"],
                )

            if not resp.is_success:
                raise MondayApiError(
                    f"HTTP error! status: {resp.status_code}",
                    status=resp.status_code,
                )

            if not isinstance(body, dict):
                raise MondayApiError(
                    "Monday API returned a non-JSON response",
                    status=resp.status_code,
                )

            if self._logging.log_api_calls:
                log.info(
                    "monday_api_call_ok",
                    query=_summarize_query(query),
                    variables=variables,
                )

            return body.get("data") or {}

        except httpx.HTTPError as e:
            if self._logging.log_errors:
                log.error("monday_api_transport_error", error=str(e))
            raise MondayApiError(f"Request to Monday API failed: {e}") from e
        except MondayApiError as e:
            # Only the outermost attempt reports, so a retried 429 logs once
            if self._logging.log_errors and retry_count == 0:
                log.error("monday_api_error", error=str(e), status=e.status)
            raise

    async def update_status_column(
        self,
        board_id: str | int,
        item_id: str | int,
        status_column_id: str,
        status_index: int,
    ) -> dict[str, Any]:
        """Set a status column on an item to the label with ``status_index``."""
        variables = {
            "boardId": str(board_id),
            "itemId": str(item_id),
            "columnId": status_column_id,
            "value": json.dumps({"index": status_index}),
        }
        if self._logging.log_api_calls:
            log.info("updating_status_column", **variables)
        return await self.execute_query(CHANGE_COLUMN_VALUE, variables)

    async def get_item(self, item_id: str | int) -> dict[str, Any] | None:
        data = await self.execute_query(GET_ITEM, {"itemId": str(item_id)})
        items = data.get("items") or []
        return items[0] if items else None

    async def get_board_columns(self, board_id: str | int) -> list[dict[str, Any]]:
        data = await self.execute_query(GET_BOARD_COLUMNS, {"boardId": str(board_id)})
        boards = data.get("boards") or []
        return boards[0].get("columns", []) if boards else []
