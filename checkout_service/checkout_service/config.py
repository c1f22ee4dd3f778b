"""Environment-driven settings for the checkout service."""

import os
from decimal import Decimal

from pydantic import BaseModel, Field


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings(BaseModel):
    """Runtime configuration.

    Attributes:
        store_api_url: Base URL of the catalog/order REST API.
        gateway_timeout: Seconds allowed for a single gateway call.
        shipping_free_threshold: Subtotal above which shipping is waived.
        shipping_flat: Shipping fee charged at or below the threshold.
        compensate: Whether failed checkouts issue compensating deletes.
        kafka_bootstrap_servers: Kafka brokers; events are disabled when unset.
        log_level: Minimum log level.
        log_file: Optional rotating log file path.
        admin_token: Operator token for the orphan endpoints; unset disables them.
        orphan_ledger_limit: Most orphans kept in memory before the oldest are dropped.
    """

    store_api_url: str = "http://localhost:8000"
    gateway_timeout: float = Field(10.0, gt=0)
    shipping_free_threshold: Decimal = Decimal("100.00")
    shipping_flat: Decimal = Decimal("10.00")
    compensate: bool = False
    kafka_bootstrap_servers: str | None = None
    log_level: str = "INFO"
    log_file: str | None = None
    admin_token: str | None = None
    orphan_ledger_limit: int = Field(1000, gt=0)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        return cls(
            store_api_url=os.getenv("STORE_API_URL", "http://localhost:8000"),
            gateway_timeout=float(os.getenv("GATEWAY_TIMEOUT", "10")),
            shipping_free_threshold=Decimal(os.getenv("SHIPPING_FREE_THRESHOLD", "100.00")),
            shipping_flat=Decimal(os.getenv("SHIPPING_FLAT", "10.00")),
            compensate=_env_flag("CHECKOUT_COMPENSATE"),
            kafka_bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE") or None,
            admin_token=os.getenv("ADMIN_TOKEN") or None,
            orphan_ledger_limit=int(os.getenv("ORPHAN_LEDGER_LIMIT", "1000")),
        )


settings = Settings.from_env()
