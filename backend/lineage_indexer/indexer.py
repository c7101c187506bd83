"""
indexer.py - LineageIndexer, the core's outward surface.

Exposes exactly three reads and one write:
- history(asset_id, mode, filters) -> HistoryResult
- exists(asset_id) -> bool
- genealogy(asset_id) -> Genealogy
- ingest(from_height, to_height) -> IngestResult

Every call runs on its own session. Reads never touch ingestion state.
"""

from collections.abc import Callable, Mapping
from typing import Any

from sqlalchemy.orm import Session as DBSession

from lineage_indexer.database import SessionLocal
from lineage_indexer.genealogy.engine import GenealogyQueryEngine
from lineage_indexer.ingestion.service import IngestService
from lineage_indexer.ledger.source import LedgerEventSource, Web3LedgerSource
from lineage_indexer.models import HistoryMode
from lineage_indexer.schemas.events import IngestResult
from lineage_indexer.schemas.history import Genealogy, HistoryFilters, HistoryResult


class LineageIndexer:
    def __init__(
        self,
        source: LedgerEventSource | None = None,
        session_factory: Callable[[], DBSession] = SessionLocal,
        query_engine: GenealogyQueryEngine | None = None,
    ):
        self.session_factory = session_factory
        self.query_engine = query_engine or GenealogyQueryEngine()
        self._source = source
        self._ingest_service: IngestService | None = None

    @property
    def ingest_service(self) -> IngestService:
        # The ledger adapter is only built when the write path is used
        if self._ingest_service is None:
            self._ingest_service = IngestService(
                self._source or Web3LedgerSource(),
                session_factory=self.session_factory,
            )
        return self._ingest_service

    def history(
        self,
        asset_id: str,
        mode: HistoryMode | str = HistoryMode.DIRECT,
        filters: HistoryFilters | Mapping[str, Any] | None = None,
    ) -> HistoryResult:
        db = self.session_factory()
        try:
            return self.query_engine.history(db, asset_id, mode, filters)
        finally:
            db.close()

    def exists(self, asset_id: str) -> bool:
        db = self.session_factory()
        try:
            return self.query_engine.exists(db, asset_id)
        finally:
            db.close()

    def genealogy(self, asset_id: str) -> Genealogy:
        db = self.session_factory()
        try:
            return self.query_engine.genealogy(db, asset_id)
        finally:
            db.close()

    def ingest(self, from_height: int, to_height: int) -> IngestResult:
        return self.ingest_service.ingest(from_height, to_height)
