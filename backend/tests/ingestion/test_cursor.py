"""
test_cursor.py - Cursor Store semantics.

1. Absent cursor reads as None (start from genesis)
2. Writes are part of the caller's transaction
3. The cursor never regresses
"""

from lineage_indexer.database import SessionLocal
from lineage_indexer.ingestion.cursor import CursorStore


def _read(store: CursorStore) -> int | None:
    db = SessionLocal()
    try:
        return store.get_last_processed_height(db)
    finally:
        db.close()


class TestCursorStore:
    def test_absent_cursor_is_none(self):
        assert _read(CursorStore("fresh")) is None

    def test_set_and_get(self, db):
        store = CursorStore("main")
        store.set_last_processed_height(db, 42)
        db.commit()
        assert _read(store) == 42

    def test_rollback_discards_advance(self, db):
        store = CursorStore("main")
        store.set_last_processed_height(db, 10)
        db.commit()

        store.set_last_processed_height(db, 20)
        db.rollback()

        assert _read(store) == 10

    def test_never_regresses(self, db):
        store = CursorStore("main")
        store.set_last_processed_height(db, 50)
        db.commit()

        assert store.set_last_processed_height(db, 30) == 50
        db.commit()

        assert _read(store) == 50

    def test_cursors_are_independent(self, db):
        CursorStore("a").set_last_processed_height(db, 5)
        CursorStore("b").set_last_processed_height(db, 9)
        db.commit()

        assert _read(CursorStore("a")) == 5
        assert _read(CursorStore("b")) == 9
