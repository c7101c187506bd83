"""
operation_event.py - Raw Event Log storage.

GUARANTEES:
1. (source_tx_id, log_position) is the natural key; re-delivery is a no-op
2. Rows are immutable except for the `processed` flag
3. Rows are never deleted
4. Related asset ids/amounts live in an ordered child table so that
   "events related to X" is an indexed lookup
"""

from datetime import UTC, datetime

from sqlalchemy import (
    DDL,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import relationship

from lineage_indexer.database import Base
from lineage_indexer.models.types import Uint256


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class OperationEventRow(Base):
    """One decoded ledger log. Append-only."""

    __tablename__ = "operation_events"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Natural key
    source_tx_id = Column(String(66), nullable=False)
    log_position = Column(Integer, nullable=False)

    # Ordering
    block_height = Column(BigInteger, nullable=False, index=True)
    block_timestamp = Column(BigInteger, nullable=False, index=True)  # Ledger unix seconds

    # Operation payload
    asset_id = Column(String(66), nullable=False, index=True)
    operation = Column(String(20), nullable=False, index=True)
    status = Column(Integer, nullable=False)
    channel = Column(String(66), nullable=True)
    owner = Column(String(42), nullable=True)
    location = Column(String, nullable=True)
    amount = Column(Uint256, nullable=False)
    data_hash = Column(String(66), nullable=True)

    processed = Column(Boolean, nullable=False, default=False, index=True)
    ingested_at = Column(DateTime, nullable=False, default=_utcnow)

    related = relationship(
        "EventRelatedAsset",
        back_populates="event",
        order_by="EventRelatedAsset.position",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("source_tx_id", "log_position", name="uq_operation_event_source"),
        Index("ix_operation_events_order", "block_height", "log_position"),
        Index("ix_operation_events_timeline", "block_timestamp", "block_height", "log_position"),
    )


class EventRelatedAsset(Base):
    """Position-ordered entry of an event's relatedAssetIds / relatedAmounts."""

    __tablename__ = "operation_event_related_assets"

    event_id = Column(
        Integer, ForeignKey("operation_events.id"), primary_key=True
    )
    position = Column(Integer, primary_key=True)
    # The two ledger arrays may differ in length; the shorter one is null-padded
    asset_id = Column(String(66), nullable=True, index=True)
    amount = Column(Uint256, nullable=True)

    event = relationship("OperationEventRow", back_populates="related")


# Append-only enforcement: only `processed` may change, nothing may be deleted
reject_event_mutation = DDL("""
    CREATE OR REPLACE FUNCTION reject_operation_event_mutation()
    RETURNS TRIGGER AS $$
    BEGIN
        IF TG_OP = 'DELETE' THEN
            RAISE EXCEPTION 'operation_events is append-only. DELETE is forbidden.';
        END IF;
        IF (to_jsonb(NEW) - 'processed') IS DISTINCT FROM (to_jsonb(OLD) - 'processed') THEN
            RAISE EXCEPTION 'operation_events rows are immutable except for processed.';
        END IF;
        RETURN NEW;
    END;
    $$ LANGUAGE plpgsql;

    CREATE TRIGGER prevent_operation_event_mutation
    BEFORE UPDATE OR DELETE ON operation_events
    FOR EACH ROW EXECUTE FUNCTION reject_operation_event_mutation();
""")

event.listen(
    OperationEventRow.__table__,
    "after_create",
    reject_event_mutation.execute_if(dialect="postgresql"),
)
