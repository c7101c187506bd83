"""
main.py - Polling ingestion worker.

One actor, one tick at a time. Each tick ingests
[cursor + 1 (or GENESIS_BLOCK), head - CONFIRMATION_BLOCKS] in sub-batches of
BLOCK_BATCH_SIZE blocks, each committed with its own cursor advance.

GUARANTEES:
- Ticks never overlap
- The cursor is threaded explicitly: tick(cursor) -> cursor
- Ingestion errors never escape the loop; the failed sub-batch is retried
  on the next tick and earlier sub-batches stay committed
- Graceful shutdown on SIGTERM/SIGINT, between sub-batches
"""

import logging
import signal
import time
from typing import Any

from lineage_indexer.config import settings
from lineage_indexer.errors import IndexerError
from lineage_indexer.ingestion.service import IngestService, sub_batches
from lineage_indexer.ledger.source import LedgerEventSource, Web3LedgerSource

logger = logging.getLogger(__name__)


class IndexerWorker:
    """
    Lifecycle:
    1. Read the cursor from the Cursor Store
    2. Loop: tick(cursor) -> cursor, then sleep POLLING_INTERVAL_SECONDS
    3. On SIGTERM: finish the in-flight sub-batch, exit cleanly
    """

    def __init__(
        self,
        source: LedgerEventSource | None = None,
        service: IngestService | None = None,
        poll_interval: float | None = None,
    ) -> None:
        self.running = False
        self._stopping = False
        self.source = source or Web3LedgerSource()
        self.service = service or IngestService(self.source)
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.POLLING_INTERVAL_SECONDS
        )

    def target_range(self, cursor: int | None) -> tuple[int, int] | None:
        """Blocks to ingest this tick, or None when caught up."""
        head = self.source.latest_height()
        to_height = head - settings.CONFIRMATION_BLOCKS
        from_height = cursor + 1 if cursor is not None else settings.GENESIS_BLOCK
        if from_height > to_height:
            return None
        return from_height, to_height

    def tick(self, cursor: int | None) -> int | None:
        """
        Run one poll. Returns the cursor after the last committed sub-batch.
        """
        try:
            target = self.target_range(cursor)
        except IndexerError as e:
            logger.warning("Ledger head unavailable (%s): %s", e.code.value, e.message)
            return cursor

        if target is None:
            return cursor

        for start, end in sub_batches(*target, settings.BLOCK_BATCH_SIZE):
            try:
                result = self.service.ingest(start, end)
            except Exception:
                logger.exception(
                    "Sub-batch %d-%d failed (rolled back), retrying next tick", start, end
                )
                return cursor

            cursor = result.cursor
            if result.stored or result.applied:
                logger.info(
                    "Blocks %d-%d: stored=%d applied=%d skipped=%d cursor=%s",
                    start, end, result.stored, result.applied, result.skipped, cursor,
                )

            if self._stopping:
                logger.info("Shutdown requested, stopping after block %d", end)
                break

        return cursor

    def start(self) -> None:
        """Start the worker loop."""
        self.running = True
        self._stopping = False

        # Register signal handlers for graceful shutdown
        signal.signal(signal.SIGTERM, self._shutdown_handler)
        signal.signal(signal.SIGINT, self._shutdown_handler)

        cursor = self.service.current_cursor()
        logger.info(
            "Indexer worker started at cursor=%s (genesis=%d, batch=%d, interval=%.1fs)",
            cursor,
            settings.GENESIS_BLOCK,
            settings.BLOCK_BATCH_SIZE,
            self.poll_interval,
        )

        while self.running:
            try:
                cursor = self.tick(cursor)
            except Exception:
                logger.exception("Error in worker loop")
            self._sleep(self.poll_interval)

        logger.info("Indexer worker stopped gracefully at cursor=%s.", cursor)

    def _sleep(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while self.running and time.monotonic() < deadline:
            time.sleep(min(0.5, max(deadline - time.monotonic(), 0)))

    def _shutdown_handler(self, signum: int, frame: Any) -> None:
        """Handle SIGTERM/SIGINT for graceful shutdown."""
        logger.info(
            "Received signal %d. Finishing current sub-batch and shutting down...", signum
        )
        self._stopping = True
        self.running = False


def main() -> None:
    """Entry point for worker process."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    logger.info("Starting Asset Lineage Indexer worker...")
    worker = IndexerWorker()
    worker.start()


if __name__ == "__main__":
    main()
