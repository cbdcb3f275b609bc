import logging
from datetime import datetime, timezone
from typing import Any, Optional

from neo4j import Driver, GraphDatabase
from neo4j.exceptions import DriverError, Neo4jError

from .config import Settings
from .errors import StoreError
from .models import Transaction, TransactionCreate, TransactionStatus, utcnow

logger = logging.getLogger(__name__)

# Driver failures, plus values the packer cannot encode (ints past 64 bits)
STORE_ERRORS = (Neo4jError, DriverError, OverflowError)


def create_driver(settings: Settings) -> Driver:
    # ONE driver per process; sessions are cheap and opened per call
    return GraphDatabase.driver(
        settings.neo4j_uri,
        auth=(settings.neo4j_user, settings.neo4j_password),
    )


def format_timestamp(value: datetime) -> str:
    """
    Timestamps are stored as UTC ISO strings with a fixed
    millisecond precision, so ORDER BY on the string is
    chronological. Naive datetimes are taken as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def to_record(tx: TransactionCreate) -> dict[str, Any]:
    created_at = format_timestamp(tx.created_at)
    record = {
        "customerId": tx.customer_id,
        "businessId": tx.business_id,
        "amount": tx.amount,
        "method": tx.method,
        "status": TransactionStatus(tx.status).value,
        "description": tx.description,
        "currency": tx.currency,
        "txRef": tx.tx_ref,
        "timestamp": format_timestamp(tx.timestamp),
        "createdAt": created_at,
        "updatedAt": created_at,
    }
    # Neo4j drops null properties anyway
    return {k: v for k, v in record.items() if v is not None}


class TransactionStore:
    """Transaction nodes in Neo4j, one node per payment record."""

    def __init__(self, driver: Driver, database: Optional[str] = None):
        self.driver = driver
        self.database = database

    def _session(self):
        return self.driver.session(database=self.database)

    def create_indexes(self) -> None:
        try:
            with self._session() as s:
                s.run("CREATE INDEX tx_id_idx IF NOT EXISTS FOR (t:Transaction) ON (t.id)")
                s.run("CREATE INDEX tx_customer_idx IF NOT EXISTS FOR (t:Transaction) ON (t.customerId)")
                s.run("CREATE INDEX tx_ref_idx IF NOT EXISTS FOR (t:Transaction) ON (t.txRef)")
        except STORE_ERRORS as e:
            logger.exception("Failed to create transaction indexes")
            raise StoreError(str(e)) from e

    def insert(self, tx: TransactionCreate) -> Transaction:
        return self.insert_many([tx])[0]

    def insert_many(self, txs: list[TransactionCreate]) -> list[Transaction]:
        if not txs:
            return []
        batch = [to_record(tx) for tx in txs]
        try:
            with self._session() as s:
                result = s.run("""
                    UNWIND $batch AS props
                    CREATE (t:Transaction)
                    SET t = props,
                        t.id = randomUUID()
                    RETURN t
                """, batch=batch)
                rows = [dict(r["t"]) for r in result]
        except STORE_ERRORS as e:
            logger.exception(f"Failed to insert {len(batch)} transactions")
            raise StoreError(str(e)) from e
        logger.info(f"Inserted {len(rows)} transactions")
        return [Transaction.model_validate(row) for row in rows]

    def find_by_customer(self, customer_id: str, skip: int, limit: int) -> list[Transaction]:
        # Newest first
        try:
            with self._session() as s:
                result = s.run("""
                    MATCH (t:Transaction {customerId: $customer_id})
                    RETURN t
                    ORDER BY t.createdAt DESC
                    SKIP $skip LIMIT $limit
                """, customer_id=customer_id, skip=skip, limit=limit)
                rows = [dict(r["t"]) for r in result]
        except STORE_ERRORS as e:
            logger.exception(f"Failed to fetch transactions for customer {customer_id}")
            raise StoreError(str(e)) from e
        return [Transaction.model_validate(row) for row in rows]

    def count_by_customer(self, customer_id: str) -> int:
        try:
            with self._session() as s:
                record = s.run("""
                    MATCH (t:Transaction {customerId: $customer_id})
                    RETURN count(t) AS c
                """, customer_id=customer_id).single()
        except STORE_ERRORS as e:
            logger.exception(f"Failed to count transactions for customer {customer_id}")
            raise StoreError(str(e)) from e
        return record["c"] if record else 0

    def find_by_tx_ref(self, tx_ref: str) -> Optional[Transaction]:
        try:
            with self._session() as s:
                record = s.run("""
                    MATCH (t:Transaction {txRef: $tx_ref})
                    RETURN t
                    LIMIT 1
                """, tx_ref=tx_ref).single()
        except STORE_ERRORS as e:
            logger.exception(f"Failed to look up transaction {tx_ref}")
            raise StoreError(str(e)) from e
        return Transaction.model_validate(dict(record["t"])) if record else None

    def update_status(self, tx_ref: str, status: TransactionStatus) -> Optional[Transaction]:
        try:
            with self._session() as s:
                record = s.run("""
                    MATCH (t:Transaction {txRef: $tx_ref})
                    SET t.status = $status,
                        t.updatedAt = $updated_at
                    RETURN t
                """, tx_ref=tx_ref,
                     status=TransactionStatus(status).value,
                     updated_at=format_timestamp(utcnow())).single()
        except STORE_ERRORS as e:
            logger.exception(f"Failed to update transaction {tx_ref}")
            raise StoreError(str(e)) from e
        if not record:
            return None
        logger.info(f"Transaction {tx_ref} marked {TransactionStatus(status).value}")
        return Transaction.model_validate(dict(record["t"]))

    def close(self) -> None:
        self.driver.close()
