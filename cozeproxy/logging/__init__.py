"""Logging module for the proxy."""

from .access import log_requests
from .setup import LOGGER_NAME, logger, setup_logging

__all__ = [
    "LOGGER_NAME",
    "log_requests",
    "logger",
    "setup_logging",
]
