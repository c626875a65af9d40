"""structlog configuration for the webhook service.

Application events and stdlib records (aiohttp, httpx) share one processor
chain, so the configured API token and signing secret are scrubbed from both
and raw webhook bodies are clipped before they reach the log.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

REDACTED = "***REDACTED***"

# Fields carrying raw webhook bodies or formula values
_CLIPPED_FIELDS = ("body", "value", "previous_value")
_MAX_FIELD_CHARS = 2000

# Secrets shorter than this would blank out ordinary words
_MIN_SECRET_CHARS = 4

# Log every request at INFO
_CHATTY_LOGGERS = ("aiohttp.access", "httpx", "httpcore")


class SecretRedactor:
    """Replaces configured secret values wherever they appear in an event."""

    def __init__(self, secrets: Iterable[str]) -> None:
        usable = {s for s in secrets if s and len(s) >= _MIN_SECRET_CHARS}
        # Longest first, so a secret containing another is replaced whole
        self._secrets = sorted(usable, key=len, reverse=True)

    def __call__(
        self, _logger: WrappedLogger, _method: str, event_dict: EventDict
    ) -> EventDict:
        if not self._secrets:
            return event_dict
        for key, value in event_dict.items():
            if isinstance(value, str):
                event_dict[key] = self._scrub(value)
        return event_dict

    def _scrub(self, text: str) -> str:
        for secret in self._secrets:
            if secret in text:
                text = text.replace(secret, REDACTED)
        return text


def clip_payloads(
    _logger: WrappedLogger, _method: str, event_dict: EventDict
) -> EventDict:
    for key in _CLIPPED_FIELDS:
        value = event_dict.get(key)
        if isinstance(value, str) and len(value) > _MAX_FIELD_CHARS:
            event_dict[key] = f"{value[:_MAX_FIELD_CHARS]}... ({len(value)} chars)"
    return event_dict


def _renderer(json_output: bool) -> list[Processor]:
    if json_output:
        return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer()]


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    secrets: Iterable[str] = (),
) -> None:
    """Route structlog and stdlib logging through one redacting chain.

    ``secrets`` are literal values (API token, signing secret) that must never
    appear in output.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    pre_chain: list[Processor] = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        clip_payloads,
        SecretRedactor(secrets),
    ]

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            *pre_chain,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *_renderer(json_output),
        ],
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
