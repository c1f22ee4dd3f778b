"""Logger module for logging messages."""

from logging_utils.config import setup_service_logger

from .config import settings

logger = setup_service_logger(
    "checkout-service",
    log_level=settings.log_level,
    log_file=settings.log_file,
)

__all__ = ["logger"]
