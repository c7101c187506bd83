"""
cursor.py - Cursor Store.

The cursor is the highest block height whose events are fully processed.
It is written inside the caller's transaction so it only becomes visible
together with the projection mutations of the same sub-batch.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session as DBSession

from lineage_indexer.config import settings
from lineage_indexer.models import BlockCursor

logger = logging.getLogger(__name__)


class CursorStore:
    def __init__(self, cursor_id: str | None = None):
        self.cursor_id = cursor_id or settings.CURSOR_ID

    def get_last_processed_height(self, db: DBSession) -> int | None:
        """None means nothing processed yet: start from GENESIS_BLOCK."""
        return db.execute(
            select(BlockCursor.last_height).where(BlockCursor.id == self.cursor_id)
        ).scalar_one_or_none()

    def set_last_processed_height(self, db: DBSession, height: int) -> int:
        """
        Advance the cursor to `height`. Never regresses.

        Does NOT commit. Returns the stored height after the call.
        """
        row = db.get(BlockCursor, self.cursor_id, with_for_update=True)
        now = datetime.now(UTC).replace(tzinfo=None)

        if row is None:
            db.add(BlockCursor(id=self.cursor_id, last_height=height, updated_at=now))
            db.flush()
            return height

        if height <= row.last_height:
            if height < row.last_height:
                logger.debug(
                    "Ignoring cursor regression %s: %d < %d",
                    self.cursor_id, height, row.last_height,
                )
            return row.last_height

        row.last_height = height
        row.updated_at = now
        db.flush()
        return height
