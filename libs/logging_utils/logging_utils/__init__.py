"""Logging utilities for the storefront services."""

from .config import get_gateway_logger, get_kafka_logger, setup_service_logger

__all__ = [
    "setup_service_logger",
    "get_gateway_logger",
    "get_kafka_logger",
]
