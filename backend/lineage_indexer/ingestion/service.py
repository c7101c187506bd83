"""
service.py - Ingest orchestration.

PER SUB-BATCH (at most BLOCK_BATCH_SIZE blocks):
1. Fetch logs from the Ledger Event Source
2. Decode + append to the Raw Event Log          -> COMMIT
3. Apply unprocessed events, mark processed,
   advance cursor                                 -> COMMIT (atomic)

FAILURE SEMANTICS:
- Step 1 failure -> LedgerUnavailableError, nothing written
- Step 3 failure -> rollback of step 3 only; raw events stay stored and
  unprocessed, so the next attempt re-applies them
- Any later range re-applies those stuck events first, so the cursor never
  moves past an event that was not applied
- Re-running any range is a no-op for already processed events
"""

import logging
from collections.abc import Callable, Iterator

from sqlalchemy.orm import Session as DBSession

from lineage_indexer.config import settings
from lineage_indexer.database import SessionLocal
from lineage_indexer.ingestion.cursor import CursorStore
from lineage_indexer.ingestion.decoder import EventDecoder
from lineage_indexer.ledger.source import LedgerEventSource
from lineage_indexer.processors.engine import OperationProcessorEngine
from lineage_indexer.schemas.events import IngestResult

logger = logging.getLogger(__name__)


def sub_batches(from_height: int, to_height: int, size: int) -> Iterator[tuple[int, int]]:
    """Split [from_height, to_height] into consecutive inclusive ranges of at most `size` blocks."""
    if size < 1:
        raise ValueError(f"batch size must be positive, got {size}")
    start = from_height
    while start <= to_height:
        end = min(start + size - 1, to_height)
        yield start, end
        start = end + 1


class IngestService:
    def __init__(
        self,
        source: LedgerEventSource,
        session_factory: Callable[[], DBSession] = SessionLocal,
        decoder: EventDecoder | None = None,
        engine: OperationProcessorEngine | None = None,
        cursor_store: CursorStore | None = None,
        batch_size: int | None = None,
    ):
        self.source = source
        self.session_factory = session_factory
        self.decoder = decoder or EventDecoder()
        self.cursor_store = cursor_store or CursorStore()
        self.engine = engine or OperationProcessorEngine(cursor_store=self.cursor_store)
        self.batch_size = batch_size or settings.BLOCK_BATCH_SIZE

    def current_cursor(self) -> int | None:
        db = self.session_factory()
        try:
            return self.cursor_store.get_last_processed_height(db)
        finally:
            db.close()

    def ingest(self, from_height: int, to_height: int) -> IngestResult:
        """
        Ingest and apply [from_height, to_height]. Idempotent.

        Raises whatever the first failing sub-batch raised; earlier
        sub-batches stay committed.
        """
        if from_height < 0 or to_height < from_height:
            raise ValueError(f"Invalid block range {from_height}-{to_height}")

        result = IngestResult()
        for start, end in sub_batches(from_height, to_height, self.batch_size):
            self._ingest_sub_batch(start, end, result)

        result.skipped = result.duplicates + result.unrecognized
        result.cursor = self.current_cursor()
        return result

    def _ingest_sub_batch(self, start: int, end: int, result: IngestResult) -> None:
        logs = self.source.get_logs(start, end)

        db = self.session_factory()
        try:
            summary = self.decoder.persist(db, logs)
            db.commit()
            result.stored += summary.stored
            result.duplicates += summary.duplicates
            result.unrecognized += summary.unrecognized

            applied = self.engine.process_range(db, start, end)
            db.commit()
            result.applied += applied

            logger.debug(
                "Blocks %d-%d: %d logs, %d stored, %d duplicates, %d unrecognized, %d applied",
                start, end, len(logs), summary.stored, summary.duplicates,
                summary.unrecognized, applied,
            )
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
