"""Shared utilities for the edge gateway."""

from .logging import RequestLogger, ServiceLogger, get_logger, request_logger, setup_logging

__all__ = ["RequestLogger", "ServiceLogger", "get_logger", "request_logger", "setup_logging"]
