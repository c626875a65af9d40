"""Exception hierarchy for the formula status trigger."""

from __future__ import annotations

from typing import Any


class FormulaTriggerError(Exception):
    """Base class for errors raised by this package."""


class MondayApiError(FormulaTriggerError):
    """The remote API rejected a request or returned error entries."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        errors: list[Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.errors = errors or []


class RateLimitExceeded(MondayApiError):
    """Still rate limited after the configured number of retries."""

    def __init__(self, retries: int) -> None:
        super().__init__(
            f"Rate limit exceeded. Max retries ({retries}) reached.", status=429
        )
        self.retries = retries
