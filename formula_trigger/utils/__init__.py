"""Utility modules for the formula status trigger."""

from .logging import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
