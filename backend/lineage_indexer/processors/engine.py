"""
engine.py - Operation Processor Engine.

CRITICAL INVARIANTS:
1. (block_height, log_position) is the ONLY happened-before order
2. One sub-batch = one transaction: every event applies, or none does
3. Events are marked processed and the cursor advances in that same transaction
4. The engine never commits; the caller owns the transaction boundary
"""

import logging
import time
from typing import assert_never

from sqlalchemy import text
from sqlalchemy.orm import Session as DBSession

from lineage_indexer.config import settings
from lineage_indexer.errors import ProcessingTimeout, StructuralViolation
from lineage_indexer.ingestion.cursor import CursorStore
from lineage_indexer.ingestion.event_log import RawEventLog
from lineage_indexer.models import Operation
from lineage_indexer.processors.handlers import OperationHandlers
from lineage_indexer.schemas.events import OperationEvent

logger = logging.getLogger(__name__)


class OperationProcessorEngine:
    def __init__(
        self,
        event_log: RawEventLog | None = None,
        handlers: OperationHandlers | None = None,
        cursor_store: CursorStore | None = None,
        timeout_seconds: float | None = None,
    ):
        self.event_log = event_log or RawEventLog()
        self.handlers = handlers or OperationHandlers()
        self.cursor_store = cursor_store or CursorStore()
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.PROCESSING_TIMEOUT_SECONDS
        )

    def dispatch(self, db: DBSession, event: OperationEvent) -> None:
        operation = event.operation
        if operation is Operation.CREATE:
            self.handlers.create(db, event)
        elif operation is Operation.UPDATE:
            self.handlers.update(db, event)
        elif operation is Operation.TRANSFER:
            self.handlers.transfer(db, event)
        elif operation is Operation.SPLIT:
            self.handlers.split(db, event)
        elif operation is Operation.GROUP:
            self.handlers.group(db, event)
        elif operation is Operation.UNGROUP:
            self.handlers.ungroup(db, event)
        elif operation is Operation.TRANSFORM:
            self.handlers.transform(db, event)
        elif operation is Operation.INACTIVATE:
            self.handlers.inactivate(db, event)
        else:
            assert_never(operation)

    def _apply_statement_timeout(self, db: DBSession) -> None:
        if db.get_bind().dialect.name == "postgresql":
            db.execute(
                text(f"SET LOCAL statement_timeout = {int(self.timeout_seconds * 1000)}")
            )

    def process_range(self, db: DBSession, from_height: int, to_height: int) -> int:
        """
        Apply every unprocessed event at or below to_height and advance the
        cursor to to_height, inside the caller's transaction.

        Events left unprocessed below from_height by an earlier failed
        sub-batch are applied first, so the cursor never passes them.

        Returns:
            Number of events applied.

        Raises:
            StructuralViolation: an event contradicts the projection
            ProcessingTimeout: the deadline passed between two events
        """
        deadline = time.monotonic() + self.timeout_seconds
        self._apply_statement_timeout(db)

        events = self.event_log.fetch_unprocessed(db, 0, to_height)
        backlog = sum(1 for event in events if event.block_height < from_height)
        if backlog:
            logger.warning(
                "Re-applying %d unprocessed events below block %d before blocks %d-%d",
                backlog, from_height, from_height, to_height,
            )
        for event in events:
            if time.monotonic() > deadline:
                raise ProcessingTimeout(
                    f"Processing blocks {from_height}-{to_height} exceeded {self.timeout_seconds}s",
                    {"from_height": from_height, "to_height": to_height, "event_id": event.id},
                )
            try:
                self.dispatch(db, event)
            except StructuralViolation as e:
                e.details.update(
                    {
                        "event_id": event.id,
                        "source_tx_id": event.source_tx_id,
                        "log_position": event.log_position,
                        "block_height": event.block_height,
                    }
                )
                logger.error(
                    "Structural violation %s at block=%d tx=%s index=%d: %s",
                    e.code.value, event.block_height, event.source_tx_id,
                    event.log_position, e.message,
                )
                raise

        self.event_log.mark_processed(db, [event.id for event in events])
        self.cursor_store.set_last_processed_height(db, to_height)

        if events:
            logger.info(
                "Applied %d events for blocks %d-%d", len(events), from_height, to_height
            )
        return len(events)
