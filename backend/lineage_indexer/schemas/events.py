"""
events.py - Records exchanged between the ledger adapter, decoder and processors.

INVARIANTS:
- (source_tx_id, log_position) identifies an event across re-deliveries
- block_height / log_position is the ONLY ordering authority for processing
"""

from pydantic import BaseModel, Field

from lineage_indexer.models.enums import Operation


class RawLog(BaseModel):
    """Undecoded log as returned by the ledger RPC."""

    address: str | None = Field(None, description="Emitting contract address")
    topics: list[str] = Field(default_factory=list, description="Hex topics, topics[0] is the event signature")
    data: str = Field("0x", description="Hex ABI-encoded non-indexed arguments")
    block_number: int = Field(..., ge=0)
    transaction_hash: str
    log_index: int = Field(..., ge=0)
    removed: bool = Field(False, description="True when dropped by a chain reorganization")


class DecodedEvent(BaseModel):
    """AssetOperationExecuted payload, ready for the Raw Event Log."""

    source_tx_id: str
    log_position: int
    asset_id: str
    operation: Operation
    status: int
    block_height: int
    block_timestamp: int = Field(..., description="Ledger timestamp, unix seconds")
    channel: str | None = None
    owner: str | None = None
    location: str | None = None
    amount: int = 0
    data_hash: str | None = None
    related_asset_ids: list[str] = Field(default_factory=list)
    related_amounts: list[int] = Field(default_factory=list)


class OperationEvent(DecodedEvent):
    """A persisted Raw Event Log row."""

    id: int
    processed: bool = False

    @classmethod
    def from_row(cls, row) -> "OperationEvent":
        related = row.related or []
        return cls(
            id=row.id,
            source_tx_id=row.source_tx_id,
            log_position=row.log_position,
            asset_id=row.asset_id,
            operation=Operation(row.operation),
            status=row.status,
            block_height=row.block_height,
            block_timestamp=row.block_timestamp,
            channel=row.channel,
            owner=row.owner,
            location=row.location,
            amount=row.amount,
            data_hash=row.data_hash,
            related_asset_ids=[r.asset_id for r in related if r.asset_id is not None],
            related_amounts=[r.amount for r in related if r.amount is not None],
            processed=row.processed,
        )


class DecodeSummary(BaseModel):
    stored: int = 0
    duplicates: int = 0
    unrecognized: int = 0


class IngestResult(BaseModel):
    """Outcome of ingest(from_height, to_height)."""

    applied: int = Field(0, description="Events processed into the projection")
    skipped: int = Field(0, description="duplicates + unrecognized")
    stored: int = Field(0, description="New Raw Event Log rows")
    duplicates: int = Field(0, description="Logs already present in the Raw Event Log")
    unrecognized: int = Field(0, description="Logs skipped as unknown, undecodable or removed")
    cursor: int | None = Field(None, description="Last processed height after the call")
