"""Logging configuration shared by the storefront services."""

import sys
from typing import Optional

from loguru import logger as loguru_logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[service]}</cyan> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[service]} | {name}:{function}:{line} - {message}"


def setup_service_logger(
    service_name: str,
    log_level: str = "INFO",
    log_file: Optional[str] = None,
) -> loguru_logger:
    """Configure a logger for a service with standardized settings.

    Args:
        service_name: Name of the service (e.g., 'checkout-service')
        log_level: Logging level (default: INFO)
        log_file: Optional path to log file

    Returns:
        logger: Configured loguru logger bound to the service name
    """
    # Remove any existing handlers
    loguru_logger.remove()
    loguru_logger.configure(extra={"service": service_name})

    loguru_logger.add(
        sys.stderr,
        level=log_level,
        format=CONSOLE_FORMAT,
        colorize=True,
        enqueue=True,
        backtrace=True,
        diagnose=True,
    )

    if log_file:
        loguru_logger.add(
            log_file,
            level=log_level,
            format=FILE_FORMAT,
            rotation="10 MB",
            retention="1 week",
            compression="gz",
        )

    return loguru_logger.bind(service=service_name)


def get_gateway_logger(service_name: str) -> loguru_logger:
    """Get a logger bound to the store API gateway context.

    Args:
        service_name: Name of the service

    Returns:
        logger: Logger whose records carry the ``<service>.gateway`` name
    """
    return loguru_logger.bind(service=f"{service_name}.gateway")


def get_kafka_logger(service_name: str) -> loguru_logger:
    """Get a logger bound to the Kafka producer context.

    Args:
        service_name: Name of the service

    Returns:
        logger: Logger whose records carry the ``<service>.kafka`` name
    """
    return loguru_logger.bind(service=f"{service_name}.kafka")
