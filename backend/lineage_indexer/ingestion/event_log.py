"""
event_log.py - Raw Event Log access.

GUARANTEES:
1. append() is insert-if-absent on (source_tx_id, log_position)
2. Only the `processed` flag is ever updated
3. Unprocessed events come back in (block_height, log_position) order
"""

from collections.abc import Iterable

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session as DBSession

from lineage_indexer.database import insert_if_absent
from lineage_indexer.models import EventRelatedAsset, OperationEventRow
from lineage_indexer.schemas.events import DecodedEvent, OperationEvent


class RawEventLog:
    def append(self, db: DBSession, event: DecodedEvent) -> bool:
        """Store one decoded event. Returns False when it was already present."""
        event_id = insert_if_absent(
            db,
            OperationEventRow,
            {
                "source_tx_id": event.source_tx_id,
                "log_position": event.log_position,
                "block_height": event.block_height,
                "block_timestamp": event.block_timestamp,
                "asset_id": event.asset_id,
                "operation": event.operation.value,
                "status": event.status,
                "channel": event.channel,
                "owner": event.owner,
                "location": event.location,
                "amount": event.amount,
                "data_hash": event.data_hash,
                "processed": False,
            },
            conflict_columns=["source_tx_id", "log_position"],
            returning=OperationEventRow.id,
        )
        if event_id is None:
            return False

        ids = event.related_asset_ids
        amounts = event.related_amounts
        db.add_all(
            EventRelatedAsset(
                event_id=event_id,
                position=position,
                asset_id=ids[position] if position < len(ids) else None,
                amount=amounts[position] if position < len(amounts) else None,
            )
            for position in range(max(len(ids), len(amounts)))
        )
        db.flush()
        return True

    def fetch_unprocessed(
        self, db: DBSession, from_height: int, to_height: int
    ) -> list[OperationEvent]:
        rows = db.execute(
            select(OperationEventRow)
            .where(
                OperationEventRow.processed.is_(False),
                OperationEventRow.block_height >= from_height,
                OperationEventRow.block_height <= to_height,
            )
            .order_by(OperationEventRow.block_height, OperationEventRow.log_position)
        ).scalars().all()
        return [OperationEvent.from_row(row) for row in rows]

    def mark_processed(self, db: DBSession, event_ids: Iterable[int]) -> int:
        event_ids = list(event_ids)
        if not event_ids:
            return 0
        result = db.execute(
            update(OperationEventRow)
            .where(OperationEventRow.id.in_(event_ids))
            .values(processed=True)
        )
        return result.rowcount

    @staticmethod
    def touching(asset_ids: Iterable[str]):
        """WHERE clause: event's own asset or any related asset is in asset_ids."""
        asset_ids = list(asset_ids)
        related_events = select(EventRelatedAsset.event_id).where(
            EventRelatedAsset.asset_id.in_(asset_ids)
        )
        return or_(
            OperationEventRow.asset_id.in_(asset_ids),
            OperationEventRow.id.in_(related_events),
        )
