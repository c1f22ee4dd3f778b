"""Tracking and cleanup of records left behind by failed checkouts."""

from typing import Optional

from .config import settings
from .errors import GatewayError
from .gateway import StoreGateway
from .logger import logger
from .schemas import OrphanRecord, ReconciliationReport

# Dependents are removed before the records they reference.
DELETE_ORDER = {"order_detail": 0, "order": 1, "bill": 2}


async def delete_record(gateway: StoreGateway, record: OrphanRecord) -> None:
    """Issue the compensating delete for one record.

    Raises:
        GatewayError: If the store API rejects or fails the delete.
    """
    if record.kind == "order_detail":
        await gateway.delete_order_detail(record.record_id)
    elif record.kind == "order":
        await gateway.delete_order(record.record_id)
    else:
        await gateway.delete_bill(record.record_id)


class OrphanLedger:
    """In-memory list of orphaned records awaiting reconciliation.

    The ledger only shrinks when a reconciliation sweep resolves records, so
    it is capped at ``limit`` entries. Past the cap the oldest records are
    dropped with an error log. Each one was logged when recorded and, with
    Kafka configured, published to ``checkout.orphans``.

    Args:
        limit: Most records kept; defaults to ``settings.orphan_ledger_limit``.
    """

    def __init__(self, limit: Optional[int] = None):
        self.limit = settings.orphan_ledger_limit if limit is None else limit
        self._records: list[OrphanRecord] = []

    def record(self, records: list[OrphanRecord]) -> None:
        for orphan in records:
            logger.warning(
                f"Orphaned record | kind={orphan.kind} | record_id={orphan.record_id} | "
                f"client_id={orphan.client_id} | checkout_id={orphan.checkout_id} | reason={orphan.reason}"
            )
        self._records.extend(records)

        overflow = len(self._records) - self.limit
        if overflow > 0:
            dropped, self._records = self._records[:overflow], self._records[overflow:]
            for orphan in dropped:
                logger.error(
                    f"Orphan ledger full, dropping record | limit={self.limit} | kind={orphan.kind} | "
                    f"record_id={orphan.record_id} | checkout_id={orphan.checkout_id}"
                )

    def pending(self) -> list[OrphanRecord]:
        return list(self._records)

    def resolve(self, record: OrphanRecord) -> None:
        self._records = [r for r in self._records if r is not record]

    def __len__(self) -> int:
        return len(self._records)


class Reconciler:
    """Retries compensating deletes for every orphan in the ledger."""

    def __init__(self, gateway: StoreGateway, ledger: OrphanLedger):
        self.gateway = gateway
        self.ledger = ledger

    async def sweep(self) -> ReconciliationReport:
        """Delete pending orphans, dependents first.

        A record the API no longer knows (HTTP 404) counts as resolved. Records
        whose delete fails stay in the ledger for the next sweep.

        Returns:
            ReconciliationReport: Counts of attempted, resolved and remaining records.
        """
        pending = sorted(self.ledger.pending(), key=lambda r: DELETE_ORDER[r.kind])
        report = ReconciliationReport(attempted=len(pending))
        for orphan in pending:
            try:
                await delete_record(self.gateway, orphan)
            except GatewayError as e:
                if e.status_code != 404:
                    logger.warning(f"Reconciliation delete failed | kind={orphan.kind} | record_id={orphan.record_id} | error={e}")
                    continue
            self.ledger.resolve(orphan)
            report.resolved += 1
        report.remaining = len(self.ledger)
        logger.info(f"Reconciliation sweep | attempted={report.attempted} | resolved={report.resolved} | remaining={report.remaining}")
        return report
